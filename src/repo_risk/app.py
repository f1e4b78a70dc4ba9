"""Textual terminal viewer for a repo-risk job."""

from textual.app import App

from repo_risk.jobs import JobOrchestrator
from repo_risk.models import AnalysisResult
from repo_risk.screens.loading import LoadingScreen
from repo_risk.screens.results import ResultsScreen


class RepoRiskApp(App):
    """Follows one analysis job and shows its result."""

    TITLE = "Repo Risk"
    SUB_TITLE = "Ownership · Bus Factor · Hot Spots"

    CSS = """
    Screen {
        background: $background;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
    ]

    def __init__(self, orchestrator: JobOrchestrator, job_id: str, repository: str, **kwargs) -> None:  # type: ignore[no-untyped-def]
        super().__init__(**kwargs)
        self.orchestrator = orchestrator
        self.job_id = job_id
        self.repository = repository

    def on_mount(self) -> None:
        self.push_screen(LoadingScreen(self.orchestrator, self.job_id, self.repository))

    def show_results(self, result: AnalysisResult) -> None:
        """Replace the loading screen with the results."""
        self.pop_screen()
        self.push_screen(ResultsScreen(result))
