"""People analysis — contributor profiles from folded history."""

from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime, timedelta
from pathlib import PurePosixPath
from typing import Optional, Union

from repo_risk.config import AnalysisSettings
from repo_risk.errors import ClassificationError
from repo_risk.logging import get_logger
from repo_risk.models import (
    SINGLE_DAY,
    AuthorActivity,
    ContributorProfile,
    ExpertiseLevel,
    FileContribution,
    FileOwnership,
)

logger = get_logger("people")

ROOT_AREA = "(root)"


def commit_frequency(activity: AuthorActivity) -> Union[float, str, None]:
    """Active days per calendar day between first and last commit.

    A contributor whose commits all fall on one day gets ``"single-day"``.
    """
    if activity.first_commit is None or activity.last_commit is None:
        return None
    span = (activity.last_commit.date() - activity.first_commit.date()).days
    if span == 0:
        return SINGLE_DAY
    return round(len(activity.active_dates) / span, 3)


def expertise_score(commits: int, breadth: float, settings: AnalysisSettings) -> float:
    """Weighted mix of commit volume (saturating) and breadth of files touched."""
    volume = min(commits / settings.commit_saturation, 1.0)
    return settings.commit_weight * volume + settings.breadth_weight * breadth


def classify_expertise(score: float, settings: AnalysisSettings) -> ExpertiseLevel:
    bands = settings.expertise_bands
    if score >= bands.expert:
        return ExpertiseLevel.expert
    if score >= bands.advanced:
        return ExpertiseLevel.advanced
    if score >= bands.intermediate:
        return ExpertiseLevel.intermediate
    return ExpertiseLevel.novice


def files_contributed(author: str, files: Iterable[FileOwnership]) -> list[FileContribution]:
    """Live, attributed files the author owns lines in, by ownership descending.

    Ties go to the file the author touched most recently.
    """
    rows: list[tuple[FileContribution, datetime]] = []
    for f in files:
        if not f.is_attributed:
            continue
        lines = f.lines_by_contributor.get(author, 0)
        if lines <= 0:
            continue
        touched = f.last_touched.get(author) or f.last_modified
        rows.append((
            FileContribution(
                file_path=f.path,
                lines_contributed=lines,
                ownership_percentage=round(f.share(author) * 100, 2),
                last_modified=touched,
            ),
            touched or datetime.min,
        ))
    rows.sort(key=lambda r: (-r[0].ownership_percentage, -_ts(r[1]), r[0].file_path))
    return [fc for fc, _ in rows]


def _ts(value: datetime) -> float:
    try:
        return value.timestamp()
    except (OverflowError, ValueError):
        return float("-inf")


def knowledge_areas(
    contributions: list[FileContribution],
    depth: int = 2,
    limit: int = 5,
    min_share: float = 0.0,
) -> list[str]:
    """Cluster a contributor's files by directory prefix, heaviest first."""
    owned = [c for c in contributions if c.ownership_percentage >= min_share * 100] or contributions
    weights: dict[str, int] = defaultdict(int)
    for c in owned:
        parts = PurePosixPath(c.file_path).parts[:-1]
        area = "/".join(parts[:depth]) if parts else ROOT_AREA
        weights[area] += c.lines_contributed
    return [a for a, _ in sorted(weights.items(), key=lambda x: (-x[1], x[0]))[:limit]]


def _check(activity: AuthorActivity) -> None:
    for name in ("commit_count", "lines_added", "lines_deleted"):
        if getattr(activity, name) < 0:
            raise ClassificationError(f"negative {name} for {activity.key}")
    if activity.first_commit and activity.last_commit and activity.first_commit > activity.last_commit:
        raise ClassificationError(f"first commit after last commit for {activity.key}")


def build_contributor_profiles(
    files: dict[str, FileOwnership],
    authors: dict[str, AuthorActivity],
    settings: Optional[AnalysisSettings] = None,
) -> list[ContributorProfile]:
    """One profile per author identity, most commits first."""
    settings = settings or AnalysisSettings()
    live = [f for f in files.values() if f.is_live]
    total_live = len(live)

    profiles: list[ContributorProfile] = []
    for key, activity in authors.items():
        _check(activity)
        touched = sum(1 for f in live if key in f.authors)
        breadth = touched / total_live if total_live else 0.0
        score = expertise_score(activity.commit_count, breadth, settings)
        contributed = files_contributed(key, files.values())

        profiles.append(
            ContributorProfile(
                username=activity.name,
                email=activity.email,
                total_commits=activity.commit_count,
                lines_added=activity.lines_added,
                lines_deleted=activity.lines_deleted,
                active_days=len(activity.active_dates),
                first_commit_date=activity.first_commit,
                last_commit_date=activity.last_commit,
                commit_frequency=commit_frequency(activity),
                expertise_level=classify_expertise(score, settings),
                files_contributed=contributed,
                knowledge_areas=knowledge_areas(
                    contributed,
                    depth=settings.knowledge_area_depth,
                    limit=settings.knowledge_area_limit,
                    min_share=settings.minority_threshold,
                ),
            )
        )

    logger.info(f"Profiled {len(profiles)} contributors")
    return sorted(profiles, key=lambda p: (-p.total_commits, p.username))


def profile_key(profile: ContributorProfile) -> str:
    """The author key a profile was built from (mirrors CommitDiff.author_key)."""
    return profile.email.strip().lower() or profile.username.strip()


def count_active_contributors(authors: dict[str, AuthorActivity], window_days: int = 90) -> int:
    """Authors with a commit within *window_days* of the newest commit in history."""
    latest = max((a.last_commit for a in authors.values() if a.last_commit), default=None)
    if latest is None:
        return 0
    cutoff = latest - timedelta(days=window_days)
    return sum(1 for a in authors.values() if a.last_commit and a.last_commit >= cutoff)
