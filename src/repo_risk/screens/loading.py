"""Loading screen — polls the job and shows its progress."""

from textual.app import ComposeResult
from textual.containers import Center, Vertical
from textual.screen import Screen
from textual.timer import Timer
from textual.widgets import Footer, Header, Label, ProgressBar, Static

from repo_risk.jobs import JobOrchestrator
from repo_risk.models import JobStatus, JobStatusPayload

POLL_INTERVAL = 2.0


class LoadingScreen(Screen):
    """Displayed while the analysis job is queued or processing."""

    CSS = """
    LoadingScreen {
        align: center middle;
    }
    #loading-container {
        width: 72;
        height: auto;
        padding: 2 4;
        border: round $primary;
        background: $surface;
    }
    #loading-title {
        text-align: center;
        text-style: bold;
        margin-bottom: 2;
    }
    #status-label {
        text-align: center;
        margin-bottom: 1;
    }
    #progress-bar {
        margin: 1 0;
    }
    #phase-label {
        text-align: center;
        color: $text-muted;
    }
    """

    def __init__(self, orchestrator: JobOrchestrator, job_id: str, repository: str, **kwargs) -> None:  # type: ignore[no-untyped-def]
        super().__init__(**kwargs)
        self.orchestrator = orchestrator
        self.job_id = job_id
        self.repository = repository
        self._timer: Timer | None = None
        self.last_payload: JobStatusPayload | None = None

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        with Center():
            with Vertical(id="loading-container"):
                yield Static(f"🔍  Analysing {self.repository} …", id="loading-title")
                yield Label("Queued …", id="status-label", markup=False)
                yield ProgressBar(total=100, show_eta=False, id="progress-bar")
                yield Label("", id="phase-label")
        yield Footer()

    def on_mount(self) -> None:
        self.call_after_refresh(self.poll)
        self._timer = self.set_interval(POLL_INTERVAL, self.poll)

    def poll(self) -> None:
        """Fetch the job status and react to terminal states."""
        payload = self.orchestrator.status(self.job_id)
        self.show(payload)
        if not payload.status.is_terminal:
            return
        if self._timer is not None:
            self._timer.stop()
        if payload.status == JobStatus.completed and payload.result is not None:
            self.app.show_results(payload.result)  # type: ignore[attr-defined]
        else:
            self.set_phase("Press [b]  q  [/b] to quit.")

    def show(self, payload: JobStatusPayload) -> None:
        self.last_payload = payload
        self.query_one("#status-label", Label).update(
            f"❌ {payload.message}" if payload.status == JobStatus.failed else payload.message
        )
        self.query_one("#progress-bar", ProgressBar).update(progress=payload.progress)
        if payload.current_step is not None and not payload.status.is_terminal:
            self.set_phase(f"Step: {payload.current_step.value}")

    def set_phase(self, phase: str) -> None:
        self.query_one("#phase-label", Label).update(phase)
