"""Data models for repo-risk."""

from datetime import date, datetime
from enum import Enum
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field


# ── Raw history ───────────────────────────────────────────────────────────

class FileChange(BaseModel):
    """One file's change inside a commit."""

    model_config = ConfigDict(frozen=True)

    path: str
    added: int = Field(default=0, ge=0)
    removed: int = Field(default=0, ge=0)
    renamed_from: Optional[str] = None
    binary: bool = False
    deleted: bool = False


class CommitDiff(BaseModel):
    """A non-merge commit with its per-file line deltas."""

    model_config = ConfigDict(frozen=True)

    sha: str
    author_name: str
    author_email: str = ""
    timestamp: datetime
    changes: tuple[FileChange, ...] = ()

    @property
    def short_sha(self) -> str:
        return self.sha[:7]

    @property
    def author_key(self) -> str:
        """Stable identity for the author: email if known, else name."""
        return self.author_email.strip().lower() or self.author_name.strip()


# ── Ownership ─────────────────────────────────────────────────────────────

class FileOwnership(BaseModel):
    """Accumulated line attribution for one file under its current path."""

    path: str
    lines_by_contributor: dict[str, int] = Field(default_factory=dict)
    last_touched: dict[str, datetime] = Field(default_factory=dict)
    authors: list[str] = Field(default_factory=list)
    last_modified: Optional[datetime] = None
    commit_count: int = 0
    binary: bool = False
    deleted: bool = False
    previous_paths: list[str] = Field(default_factory=list)

    @property
    def total_lines(self) -> int:
        return sum(self.lines_by_contributor.values())

    @property
    def is_live(self) -> bool:
        """Still present at the end of history."""
        return not self.deleted

    @property
    def is_attributed(self) -> bool:
        """Live, textual and carrying at least one attributed line."""
        return self.is_live and not self.binary and self.total_lines > 0

    def share(self, contributor: str) -> float:
        """Fraction (0–1) of this file's attributed lines owned by *contributor*."""
        total = self.total_lines
        if total == 0:
            return 0.0
        return self.lines_by_contributor.get(contributor, 0) / total

    def shares(self) -> dict[str, float]:
        total = self.total_lines
        if total == 0:
            return {}
        return {c: n / total for c, n in self.lines_by_contributor.items()}


class AuthorActivity(BaseModel):
    """Raw per-author counters folded from the commit stream."""

    key: str
    name: str
    email: str = ""
    commit_count: int = 0
    lines_added: int = 0
    lines_deleted: int = 0
    first_commit: Optional[datetime] = None
    last_commit: Optional[datetime] = None
    active_dates: set[date] = Field(default_factory=set)


class FileContribution(BaseModel):
    """A contributor's stake in one file."""

    file_path: str
    lines_contributed: int = 0
    ownership_percentage: float = 0.0  # 0–100
    last_modified: Optional[datetime] = None


# ── People ────────────────────────────────────────────────────────────────

class ExpertiseLevel(str, Enum):
    novice = "novice"
    intermediate = "intermediate"
    advanced = "advanced"
    expert = "expert"


class RiskLevel(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


SINGLE_DAY = "single-day"


class ContributorProfile(BaseModel):
    """Everything known about one author identity after a run."""

    username: str
    email: str = ""
    total_commits: int = 0
    lines_added: int = 0
    lines_deleted: int = 0
    active_days: int = 0
    first_commit_date: Optional[datetime] = None
    last_commit_date: Optional[datetime] = None
    commit_frequency: Union[float, Literal["single-day"], None] = None
    expertise_level: ExpertiseLevel = ExpertiseLevel.novice
    files_contributed: list[FileContribution] = Field(default_factory=list)
    knowledge_areas: list[str] = Field(default_factory=list)
    bus_factor_risk: RiskLevel = RiskLevel.low
    contribution_summary: Optional[str] = None


# ── Codebase health / recommendations ─────────────────────────────────────

class CodebaseHealth(BaseModel):
    """Whole-repository snapshot for one completed job."""

    total_files: int = 0
    total_commits: int = 0
    active_contributors: int = 0
    bus_factor: Optional[int] = Field(default=None, ge=1)
    risk_level: str = "unknown"  # "critical", "high", "medium", "low", "unknown"
    hot_spots: list[str] = Field(default_factory=list)


class RiskAssessment(BaseModel):
    """Intermediate output of the risk analyzer."""

    bus_factor: Optional[int] = None
    risk_level: str = "unknown"
    hot_spots: list[str] = Field(default_factory=list)
    file_bus_factors: dict[str, int] = Field(default_factory=dict)
    contributor_risk: dict[str, RiskLevel] = Field(default_factory=dict)
    at_risk_files: dict[str, list[str]] = Field(default_factory=dict)  # author key -> files


class MitigationAction(BaseModel):
    """A single action to reduce bus factor risk."""

    priority: int = 0
    action: str = ""
    target_contributor: str = ""
    target_area: str = ""
    rationale: str = ""

    def render(self) -> str:
        return f"{self.action} {self.rationale}".strip()


class AnalysisResult(BaseModel):
    """Immutable bundle attached to a completed job."""

    model_config = ConfigDict(frozen=True)

    repository: str = ""
    generated_at: datetime = Field(default_factory=datetime.now)
    project_summary: Optional[str] = None
    primary_languages: list[str] = Field(default_factory=list)
    contributors: list[ContributorProfile] = Field(default_factory=list)
    codebase_health: CodebaseHealth = Field(default_factory=CodebaseHealth)
    actions: list[MitigationAction] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


# ── Jobs ──────────────────────────────────────────────────────────────────

class JobStatus(str, Enum):
    queued = "queued"
    processing = "processing"
    completed = "completed"
    failed = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.completed, JobStatus.failed)


class PipelineStep(str, Enum):
    """Ordered processing stages; the weights sum to 100."""

    extracting = "extracting"
    aggregating = "aggregating"
    profiling = "profiling"
    analyzing_risk = "analyzing_risk"
    synthesizing = "synthesizing"

    @property
    def weight(self) -> int:
        return STEP_WEIGHTS[self]


STEP_WEIGHTS: dict[PipelineStep, int] = {
    PipelineStep.extracting: 20,
    PipelineStep.aggregating: 20,
    PipelineStep.profiling: 20,
    PipelineStep.analyzing_risk: 25,
    PipelineStep.synthesizing: 15,
}


class AnalysisJob(BaseModel):
    """One analysis request and its lifecycle."""

    id: str
    workspace_id: str
    repository: str
    status: JobStatus = JobStatus.queued
    progress: int = Field(default=0, ge=0, le=100)
    current_step: Optional[PipelineStep] = None
    message: str = "Queued"
    error_category: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    result: Optional[AnalysisResult] = None

    def payload(self) -> "JobStatusPayload":
        return JobStatusPayload(
            id=self.id,
            workspace_id=self.workspace_id,
            status=self.status,
            progress=self.progress,
            current_step=self.current_step,
            message=self.message,
            error_category=self.error_category,
            started_at=self.started_at,
            completed_at=self.completed_at,
            result=self.result if self.status == JobStatus.completed else None,
        )


class JobStatusPayload(BaseModel):
    """What a polling client sees. Serialize with ``by_alias=True`` for camelCase timestamps."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    workspace_id: str
    status: JobStatus
    progress: int
    current_step: Optional[PipelineStep] = None
    message: str = ""
    error_category: Optional[str] = None
    started_at: Optional[datetime] = Field(default=None, alias="startedAt")
    completed_at: Optional[datetime] = Field(default=None, alias="completedAt")
    result: Optional[AnalysisResult] = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def has_result(self) -> bool:
        return self.result is not None
