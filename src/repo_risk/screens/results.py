"""Results screen — tabbed view of health, contributors and recommendations."""

from textual.app import ComposeResult
from textual.screen import Screen
from textual.widgets import (
    DataTable,
    Footer,
    Header,
    Label,
    Markdown,
    Static,
    TabbedContent,
    TabPane,
)

from repo_risk.models import AnalysisResult

RISK_ICONS = {"critical": "🔴", "high": "🟠", "medium": "🟡", "low": "🟢"}


class ResultsScreen(Screen):
    """Displays a completed AnalysisResult."""

    CSS = """
    ResultsScreen {
        layout: vertical;
    }
    #results-header {
        height: 3;
        background: $primary;
        color: $text;
        text-align: center;
        padding: 1 2;
        text-style: bold;
    }
    .section-title {
        text-style: bold;
        margin: 1 0;
        color: $secondary;
    }
    #people-table {
        height: auto;
        max-height: 20;
        margin: 1 0;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
    ]

    def __init__(self, result: AnalysisResult, **kwargs) -> None:  # type: ignore[no-untyped-def]
        super().__init__(**kwargs)
        self.result = result

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        yield Static(f"  📊  {self.result.repository}  ", id="results-header")
        with TabbedContent("🩺 Health", "👥 Contributors", "🚌 Recommendations"):
            with TabPane("🩺 Health"):
                yield from self._compose_health()
            with TabPane("👥 Contributors"):
                yield from self._compose_contributors()
            with TabPane("🚌 Recommendations"):
                yield from self._compose_recommendations()
        yield Footer()

    # ── Health tab ────────────────────────────────────────────────────────

    def _compose_health(self) -> ComposeResult:
        h = self.result.codebase_health
        icon = RISK_ICONS.get(h.risk_level, "⚪")
        bus = h.bus_factor if h.bus_factor is not None else "n/a"
        yield Static("CODEBASE HEALTH", classes="section-title")
        yield Label(
            f"Files: {h.total_files}  ·  Commits: {h.total_commits}  ·  "
            f"Active contributors: {h.active_contributors}"
        )
        yield Label(f"Bus Factor: {bus}  ·  Risk Level: {icon} {h.risk_level.upper()}")
        if self.result.primary_languages:
            yield Label(f"Languages: {', '.join(self.result.primary_languages)}")
        if self.result.project_summary:
            yield Markdown(f"> {self.result.project_summary}")
        if h.hot_spots:
            yield Static("HOT SPOTS", classes="section-title")
            yield Markdown("\n".join(f"- `{path}`" for path in h.hot_spots))

    # ── Contributors tab ──────────────────────────────────────────────────

    def _compose_contributors(self) -> ComposeResult:
        yield Static("CONTRIBUTORS", classes="section-title")
        table = DataTable(id="people-table")
        table.add_columns("Contributor", "Commits", "+Lines", "-Lines", "Expertise", "Risk", "Knowledge Areas")
        for p in self.result.contributors:
            table.add_row(
                p.username,
                str(p.total_commits),
                f"+{p.lines_added}",
                f"-{p.lines_deleted}",
                p.expertise_level.value,
                f"{RISK_ICONS.get(p.bus_factor_risk.value, '')} {p.bus_factor_risk.value}",
                ", ".join(p.knowledge_areas[:3]),
            )
        yield table

    # ── Recommendations tab ───────────────────────────────────────────────

    def _compose_recommendations(self) -> ComposeResult:
        yield Static("MITIGATION PLAN", classes="section-title")
        if not self.result.recommendations:
            yield Markdown("> _No knowledge-concentration risks found._")
            return
        yield Markdown("\n".join(f"{i}. {r}" for i, r in enumerate(self.result.recommendations, 1)))
