"""Job orchestration — one asynchronous analysis job per workspace request.

The registry is the only shared state between worker threads and pollers.
All writes go through its lock, and readers get deep copies, so a poll
never observes a half-applied transition.
"""

import asyncio
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable, Optional

from repo_risk.config import AnalysisSettings
from repo_risk.errors import (
    EmptyHistoryError,
    JobConflictError,
    JobStateError,
    NotFoundError,
    RepoRiskError,
)
from repo_risk.logging import get_logger
from repo_risk.models import (
    STEP_WEIGHTS,
    AnalysisJob,
    AnalysisResult,
    JobStatus,
    JobStatusPayload,
    PipelineStep,
)
from repo_risk.narrative import NarrativeService
from repo_risk.pipeline import AnalysisPipeline, ExtractorFactory, default_extractor, empty_result

logger = get_logger("jobs")

STEP_ORDER = list(PipelineStep)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def progress_before(step: PipelineStep) -> int:
    """Progress reached once every step before *step* has finished."""
    return sum(STEP_WEIGHTS[s] for s in STEP_ORDER[: STEP_ORDER.index(step)])


class JobRegistry:
    """Lock-guarded table of analysis jobs."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._jobs: dict[str, AnalysisJob] = {}
        self._by_workspace: dict[str, list[str]] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    # ── Reads ─────────────────────────────────────────────────────────────

    def get(self, job_id: str) -> AnalysisJob:
        with self._lock:
            return self._require(job_id).model_copy(deep=True)

    def latest_for_workspace(self, workspace_id: str) -> AnalysisJob:
        with self._lock:
            ids = self._by_workspace.get(workspace_id)
            if not ids:
                raise NotFoundError(f"no analysis for workspace {workspace_id}")
            return self._jobs[ids[-1]].model_copy(deep=True)

    def _require(self, job_id: str) -> AnalysisJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise NotFoundError(f"unknown job {job_id}")
        return job

    # ── Transitions ───────────────────────────────────────────────────────

    def create(self, workspace_id: str, repository: str) -> AnalysisJob:
        """Register a queued job, rejecting a second active job for the workspace."""
        with self._lock:
            for job_id in self._by_workspace.get(workspace_id, []):
                active = self._jobs[job_id]
                if not active.status.is_terminal:
                    raise JobConflictError(
                        f"workspace {workspace_id} already has job {active.id} ({active.status.value})"
                    )
            job = AnalysisJob(id=uuid.uuid4().hex, workspace_id=workspace_id, repository=repository, created_at=_now())
            self._jobs[job.id] = job
            self._by_workspace.setdefault(workspace_id, []).append(job.id)
            logger.info(f"Job {job.id} queued for workspace {workspace_id} ({repository})")
            return job.model_copy(deep=True)

    def start(self, job_id: str) -> AnalysisJob:
        with self._lock:
            job = self._require(job_id)
            if job.status != JobStatus.queued:
                raise JobStateError(f"job {job_id} cannot start from {job.status.value}")
            job.status = JobStatus.processing
            job.started_at = _now()
            job.message = "Starting analysis"
            logger.info(f"Job {job_id} processing")
            return job.model_copy(deep=True)

    def advance(self, job_id: str, step: PipelineStep, message: str) -> None:
        """Enter *step*; steps may only move forward."""
        with self._lock:
            job = self._require(job_id)
            if job.status != JobStatus.processing:
                raise JobStateError(f"job {job_id} is {job.status.value}, not processing")
            if job.current_step is not None and STEP_ORDER.index(step) <= STEP_ORDER.index(job.current_step):
                raise JobStateError(f"job {job_id} cannot go from {job.current_step.value} to {step.value}")
            job.current_step = step
            job.progress = progress_before(step)
            job.message = message

    def complete(self, job_id: str, result: AnalysisResult, message: str = "Analysis complete") -> None:
        """Attach the result and mark completed in one write."""
        with self._lock:
            job = self._require(job_id)
            if job.status != JobStatus.processing:
                raise JobStateError(f"job {job_id} cannot complete from {job.status.value}")
            job.result = result
            job.progress = 100
            job.message = message
            job.completed_at = _now()
            job.status = JobStatus.completed
            logger.info(f"Job {job_id} completed")

    def fail(self, job_id: str, category: str, message: str) -> None:
        with self._lock:
            job = self._require(job_id)
            if job.status.is_terminal:
                raise JobStateError(f"job {job_id} is already {job.status.value}")
            job.status = JobStatus.failed
            job.error_category = category
            job.message = message
            job.completed_at = _now()
            logger.warning(f"Job {job_id} failed: {message}")


class JobOrchestrator:
    """Runs analysis jobs on a bounded worker pool and answers status polls.

    Submission never blocks: it registers the job and hands it to a worker.
    Jobs cannot be cancelled once processing has begun.
    """

    def __init__(
        self,
        settings: Optional[AnalysisSettings] = None,
        narrative_factory: Optional[Callable[[], NarrativeService]] = None,
        extractor_factory: ExtractorFactory = default_extractor,
        registry: Optional[JobRegistry] = None,
    ) -> None:
        self.settings = settings or AnalysisSettings()
        self.registry = registry or JobRegistry()
        self._narrative_factory = narrative_factory
        self._extractor_factory = extractor_factory
        self._executor = ThreadPoolExecutor(max_workers=self.settings.max_workers, thread_name_prefix="repo-risk")
        # Only jobs whose worker has not finished; the registry keeps every job
        # record for the life of the process.
        self._futures: dict[str, Future] = {}
        self._futures_lock = threading.Lock()
        self._closed = False

    # ── Public API ────────────────────────────────────────────────────────

    def submit(self, repository: str, workspace_id: Optional[str] = None) -> str:
        """Queue an analysis and return its job id immediately."""
        if self._closed:
            raise JobStateError("orchestrator has been shut down")
        job = self.registry.create(workspace_id or repository, repository)
        with self._futures_lock:
            try:
                future = self._executor.submit(self._execute, job.id, repository)
            except RuntimeError as e:
                self.registry.fail(job.id, "internal", f"[internal] could not schedule job: {e}")
                raise JobStateError(f"could not schedule job {job.id}: {e}") from e
            self._futures[job.id] = future
        future.add_done_callback(lambda _: self._forget(job.id))
        return job.id

    def status(self, job_id: str) -> JobStatusPayload:
        return self.registry.get(job_id).payload()

    def status_for_workspace(self, workspace_id: str) -> JobStatusPayload:
        return self.registry.latest_for_workspace(workspace_id).payload()

    def result(self, job_id: str) -> AnalysisResult:
        """The completed job's result; the same value on every call."""
        job = self.registry.get(job_id)
        if job.status == JobStatus.failed:
            raise JobStateError(f"job {job_id} failed: {job.message}")
        if job.status != JobStatus.completed or job.result is None:
            raise JobStateError(f"job {job_id} is still {job.status.value}")
        return job.result

    def wait(self, job_id: str, timeout: Optional[float] = None) -> JobStatusPayload:
        """Block until the job's worker has finished, then return its status."""
        with self._futures_lock:
            future = self._futures.get(job_id)
        if future is not None:
            if not future.cancelled():
                future.result(timeout=timeout)
            self._forget(job_id)
        return self.status(job_id)

    def cancel(self, job_id: str) -> JobStatusPayload:
        """Cancel a job that has not started yet."""
        with self._futures_lock:
            future = self._futures.get(job_id)
        if future is None:
            job = self.registry.get(job_id)
            raise JobStateError(f"job {job_id} is already {job.status.value} and cannot be cancelled")
        if not future.cancel():
            raise JobStateError(f"job {job_id} is already processing and cannot be cancelled")
        self.registry.fail(job_id, "cancelled", "[cancelled] cancelled before processing started")
        return self.status(job_id)

    def shutdown(self, wait: bool = True) -> None:
        self._closed = True
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "JobOrchestrator":
        return self

    def __exit__(self, *exc: object) -> None:
        self.shutdown()

    # ── Worker ────────────────────────────────────────────────────────────

    def _forget(self, job_id: str) -> None:
        with self._futures_lock:
            self._futures.pop(job_id, None)

    def _narrative(self, job_id: str) -> Optional[NarrativeService]:
        if self._narrative_factory is None:
            return None
        try:
            return self._narrative_factory()
        except Exception as e:
            logger.warning(f"Job {job_id}: narrative service unavailable, continuing without it: {e}")
            return None

    def _execute(self, job_id: str, repository: str) -> None:
        try:
            self.registry.start(job_id)
        except JobStateError as e:
            logger.info(f"Skipping job {job_id}: {e}")
            return

        try:
            pipeline = AnalysisPipeline(
                settings=self.settings,
                narrative=self._narrative(job_id),
                on_step=lambda step, msg: self.registry.advance(job_id, step, msg),
                extractor_factory=self._extractor_factory,
            )
            result = asyncio.run(pipeline.run(repository))
        except EmptyHistoryError as e:
            logger.info(f"Job {job_id}: {e.tagged()}")
            self.registry.complete(job_id, empty_result(repository), f"No history to analyse: {e.message}")
            return
        except RepoRiskError as e:
            self.registry.fail(job_id, e.category, e.tagged())
            return
        except Exception as e:
            logger.error(f"Job {job_id} crashed: {e}", exc_info=True)
            self.registry.fail(job_id, "internal", f"[internal] {e}")
            return
        self.registry.complete(job_id, result)
