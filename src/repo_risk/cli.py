"""CLI entry point for repo-risk."""

import time
from datetime import datetime
from typing import Callable, Optional

import typer

from repo_risk.config import AnalysisSettings
from repo_risk.errors import RepoRiskError
from repo_risk.jobs import JobOrchestrator
from repo_risk.logging import add_stream_handler, set_log_level
from repo_risk.models import JobStatus, JobStatusPayload

POLL_INTERVAL = 2.0  # seconds between status polls

app = typer.Typer(
    name="repo-risk",
    help="Code ownership and bus-factor analysis for git repositories.",
    add_completion=False,
)


def poll_until_done(
    orchestrator: JobOrchestrator,
    job_id: str,
    interval: float = POLL_INTERVAL,
    on_update: Optional[Callable[[JobStatusPayload], None]] = None,
) -> JobStatusPayload:
    """Poll a job's status until it reaches a terminal state."""
    while True:
        payload = orchestrator.status(job_id)
        if on_update:
            on_update(payload)
        if payload.status.is_terminal:
            return payload
        time.sleep(interval)


@app.command()
def analyze(
    repository: str = typer.Argument(..., help="Local path, git URL or owner/repo shorthand"),
    workspace: Optional[str] = typer.Option(None, "--workspace", "-w", help="Workspace id (defaults to the repository)"),
    max_commits: Optional[int] = typer.Option(None, "--max-commits", min=1, help="Analyse at most this many recent commits"),
    since: Optional[datetime] = typer.Option(None, "--since", help="Ignore commits before this date"),
    json_output: bool = typer.Option(False, "--json", help="Print the final job payload as JSON instead of the viewer"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log progress to stderr"),
) -> None:
    """Analyse REPOSITORY and report contributors, bus factor and hot spots."""
    if verbose:
        set_log_level("INFO")
        add_stream_handler()

    try:
        settings = AnalysisSettings.from_env(max_commits=max_commits, since=since)
    except ValueError as e:
        typer.echo(f"Invalid configuration: {e}", err=True)
        raise typer.Exit(2)

    with JobOrchestrator(settings) as orchestrator:
        try:
            job_id = orchestrator.submit(repository, workspace_id=workspace)
        except RepoRiskError as e:
            typer.echo(e.tagged(), err=True)
            raise typer.Exit(1)

        if json_output:
            def _progress(p: JobStatusPayload) -> None:
                if verbose:
                    typer.echo(f"{p.progress:3d}%  {p.message}", err=True)

            payload = poll_until_done(orchestrator, job_id, interval=POLL_INTERVAL, on_update=_progress)
            typer.echo(payload.model_dump_json(by_alias=True, indent=2))
        else:
            from repo_risk.app import RepoRiskApp

            RepoRiskApp(orchestrator, job_id, repository).run()
            payload = orchestrator.status(job_id)

    if payload.status == JobStatus.failed:
        raise typer.Exit(1)


def main() -> None:
    """Launch repo-risk."""
    from dotenv import load_dotenv

    load_dotenv()  # Load .env file (e.g. GITHUB_TOKEN, REPO_RISK_*)
    app()


if __name__ == "__main__":
    main()
