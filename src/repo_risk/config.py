"""Policy knobs for the analysis engine.

None of the thresholds below are physical constants; they are documented
defaults that can be overridden per run or through ``REPO_RISK_*``
environment variables.
"""

import os
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

ENV_PREFIX = "REPO_RISK_"


class ExpertiseBands(BaseModel):
    """Lower score bounds for each expertise band (novice is everything below)."""

    intermediate: float = Field(default=0.15, ge=0.0, le=1.0)
    advanced: float = Field(default=0.35, ge=0.0, le=1.0)
    expert: float = Field(default=0.6, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _ordered(self) -> "ExpertiseBands":
        if not self.intermediate <= self.advanced <= self.expert:
            raise ValueError("expertise bands must satisfy intermediate <= advanced <= expert")
        return self


class AnalysisSettings(BaseModel):
    """Tunable configuration for one analysis run."""

    # History ceiling
    max_commits: Optional[int] = Field(default=None, gt=0)
    since: Optional[datetime] = None

    # Ownership / risk policy
    majority_threshold: float = Field(default=0.5, gt=0.0, le=1.0)
    minority_threshold: float = Field(default=0.2, gt=0.0, le=1.0)
    coverage_fraction: float = Field(default=0.5, gt=0.0, le=1.0)

    # Expertise score = commit_weight * min(commits / commit_saturation, 1)
    #                 + breadth_weight * files_touched / total_files
    commit_weight: float = Field(default=0.6, ge=0.0)
    breadth_weight: float = Field(default=0.4, ge=0.0)
    commit_saturation: int = Field(default=100, gt=0)
    expertise_bands: ExpertiseBands = Field(default_factory=ExpertiseBands)

    # Hot spots and knowledge areas
    hot_spot_limit: int = Field(default=10, gt=0)
    hot_spot_min_commits: int = Field(default=2, ge=1)
    knowledge_area_depth: int = Field(default=2, ge=1)
    knowledge_area_limit: int = Field(default=5, gt=0)

    # A contributor is "active" with a commit this close to the newest commit
    active_window_days: int = Field(default=90, gt=0)

    # Execution
    max_workers: int = Field(default=2, gt=0)

    # Narrative service
    narrative_backend: Literal["none", "http", "copilot"] = "none"
    narrative_url: Optional[str] = None
    narrative_model: str = "gpt-4.1"
    narrative_timeout: float = Field(default=15.0, gt=0.0)

    # Clone credential
    github_token: Optional[str] = None

    @model_validator(mode="after")
    def _check(self) -> "AnalysisSettings":
        if self.minority_threshold > self.majority_threshold:
            raise ValueError("minority_threshold must not exceed majority_threshold")
        if self.narrative_backend == "http" and not self.narrative_url:
            raise ValueError("narrative_backend 'http' requires narrative_url")
        return self

    @classmethod
    def from_env(cls, **overrides: object) -> "AnalysisSettings":
        """Build settings from ``REPO_RISK_*`` environment variables.

        Explicit keyword overrides win over the environment. The clone token
        falls back to ``GITHUB_TOKEN`` / ``GH_TOKEN``.
        """
        values: dict[str, object] = {}
        for name in cls.model_fields:
            if name == "expertise_bands":
                continue
            raw = os.environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None and raw != "":
                values[name] = raw

        bands: dict[str, str] = {}
        for band in ExpertiseBands.model_fields:
            raw = os.environ.get(f"{ENV_PREFIX}EXPERTISE_{band.upper()}")
            if raw:
                bands[band] = raw
        if bands:
            values["expertise_bands"] = bands

        token = os.environ.get("GITHUB_TOKEN") or os.environ.get("GH_TOKEN")
        if token and "github_token" not in values:
            values["github_token"] = token

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls.model_validate(values)
