"""Error taxonomy for the analysis engine.

Every error carries a ``category`` tag. The job orchestrator records the tag
in the failed job's message so polling clients can tell *why* a job stopped.
"""


class RepoRiskError(Exception):
    """Base class for all repo-risk errors."""

    category = "internal"

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message

    def tagged(self) -> str:
        """Message prefixed with the error category, e.g. ``[extraction] ...``."""
        return f"[{self.category}] {self.message}" if self.message else f"[{self.category}]"


# ── Pipeline errors ───────────────────────────────────────────────────────

class ExtractionError(RepoRiskError):
    """Repository unreachable, unauthorized or unreadable."""

    category = "extraction"


class EmptyHistoryError(RepoRiskError):
    """Repository has no commits in the requested window.

    Not fatal: the orchestrator turns it into a completed job with
    zero-valued health metrics.
    """

    category = "empty_history"


class AggregationError(RepoRiskError):
    """The diff stream is corrupt or cannot be decoded."""

    category = "aggregation"


class ClassificationError(RepoRiskError):
    """An invariant was violated while profiling or classifying risk."""

    category = "classification"


class EnrichmentTimeout(RepoRiskError):
    """The narrative service did not answer in time. Always recovered locally."""

    category = "enrichment"


# ── Interface errors ──────────────────────────────────────────────────────

class NotFoundError(RepoRiskError):
    """Unknown job or workspace identifier."""

    category = "not_found"


class JobConflictError(RepoRiskError):
    """A non-terminal job already exists for the workspace."""

    category = "conflict"


class JobStateError(RepoRiskError):
    """The requested operation is not allowed in the job's current state."""

    category = "state"
