"""Repo Risk — code ownership and bus-factor analysis for git repositories.

Mines commit history to attribute line ownership, profile contributors,
measure knowledge concentration and recommend mitigations.
"""

from repo_risk.config import AnalysisSettings
from repo_risk.jobs import JobOrchestrator
from repo_risk.models import AnalysisResult, JobStatus, JobStatusPayload
from repo_risk.pipeline import AnalysisPipeline

__version__ = "0.1.0"

__all__ = [
    "AnalysisPipeline",
    "AnalysisResult",
    "AnalysisSettings",
    "JobOrchestrator",
    "JobStatus",
    "JobStatusPayload",
    "__version__",
]
