"""Risk analysis — bus factor, per-contributor risk and hot spots."""

from collections import defaultdict
from collections.abc import Iterable
from typing import Optional

from repo_risk.analysis.people import profile_key
from repo_risk.config import AnalysisSettings
from repo_risk.logging import get_logger
from repo_risk.models import ContributorProfile, FileOwnership, RiskAssessment, RiskLevel

logger = get_logger("risk")


def risk_level_for(bus_factor: Optional[int]) -> str:
    """Codebase-wide risk label derived from the bus factor."""
    if bus_factor is None:
        return "unknown"
    if bus_factor <= 1:
        return "critical"
    if bus_factor <= 2:
        return "high"
    if bus_factor <= 3:
        return "medium"
    return "low"


def file_bus_factor(f: FileOwnership, threshold: float = 0.5) -> int:
    """Minimum number of contributors who together hold more than *threshold* of the file.

    A factor of 1 means one contributor is a majority owner, matching
    ``has_majority_owner``.
    """
    total = f.total_lines
    if total == 0:
        return 0
    cumulative = 0
    for tc, lines in enumerate(sorted(f.lines_by_contributor.values(), reverse=True), start=1):
        cumulative += lines
        if cumulative > total * threshold:
            return tc
    return len(f.lines_by_contributor)


def has_majority_owner(f: FileOwnership, threshold: float = 0.5, excluded: Iterable[str] = ()) -> bool:
    """True if some contributor not in *excluded* holds more than *threshold* of the file."""
    gone = set(excluded)
    return any(share > threshold for c, share in f.shares().items() if c not in gone)


def ownership_footprint(files: Iterable[FileOwnership]) -> list[str]:
    """Contributors ordered by summed ownership share across files, largest first."""
    footprint: dict[str, float] = defaultdict(float)
    lines: dict[str, int] = defaultdict(int)
    for f in files:
        for c, share in f.shares().items():
            footprint[c] += share
            lines[c] += f.lines_by_contributor[c]
    return sorted(footprint, key=lambda c: (-footprint[c], -lines[c], c))


def compute_bus_factor(files: Iterable[FileOwnership], settings: Optional[AnalysisSettings] = None) -> Optional[int]:
    """Greedy codebase bus factor.

    Contributors are removed in order of ownership footprint until more than
    ``coverage_fraction`` of attributed files have no remaining contributor
    with majority ownership. Returns None when no file carries attribution.
    """
    settings = settings or AnalysisSettings()
    eligible = [f for f in files if f.is_attributed]
    if not eligible:
        return None

    order = ownership_footprint(eligible)
    removed: set[str] = set()
    for contributor in order:
        removed.add(contributor)
        orphaned = sum(1 for f in eligible if not has_majority_owner(f, settings.majority_threshold, removed))
        if orphaned / len(eligible) > settings.coverage_fraction:
            return len(removed)
    return len(order)


def at_risk_files(author: str, files: Iterable[FileOwnership], settings: AnalysisSettings) -> tuple[list[str], list[str]]:
    """Split the author's majority-owned files into (unbacked, backed).

    A file is backed when another contributor holds at least
    ``minority_threshold`` of it.
    """
    unbacked: list[str] = []
    backed: list[str] = []
    for f in files:
        if not f.is_attributed or f.share(author) <= settings.majority_threshold:
            continue
        backup = any(
            share >= settings.minority_threshold
            for c, share in f.shares().items()
            if c != author
        )
        (backed if backup else unbacked).append(f.path)
    return sorted(unbacked), sorted(backed)


def classify_contributor_risk(author: str, files: Iterable[FileOwnership], settings: AnalysisSettings) -> RiskLevel:
    unbacked, backed = at_risk_files(author, files, settings)
    if unbacked:
        return RiskLevel.high
    if backed:
        return RiskLevel.medium
    return RiskLevel.low


def rank_hot_spots(files: Iterable[FileOwnership], settings: Optional[AnalysisSettings] = None) -> list[str]:
    """Live files with few people and many commits first."""
    settings = settings or AnalysisSettings()
    candidates = [f for f in files if f.is_live and f.commit_count >= settings.hot_spot_min_commits]
    candidates.sort(key=lambda f: (len(f.authors), -f.commit_count, f.path))
    return [f.path for f in candidates[: settings.hot_spot_limit]]


def what_if(author: str, files: Iterable[FileOwnership], settings: Optional[AnalysisSettings] = None) -> list[str]:
    """Files that would lose their only majority owner if *author* left."""
    settings = settings or AnalysisSettings()
    return sorted(
        f.path
        for f in files
        if f.is_attributed
        and has_majority_owner(f, settings.majority_threshold)
        and not has_majority_owner(f, settings.majority_threshold, {author})
    )


def analyze_risk(
    files: dict[str, FileOwnership],
    profiles: list[ContributorProfile],
    settings: Optional[AnalysisSettings] = None,
) -> RiskAssessment:
    """Compute the risk assessment and set ``bus_factor_risk`` on each profile."""
    settings = settings or AnalysisSettings()
    all_files = list(files.values())
    attributed = [f for f in all_files if f.is_attributed]

    bus_factor = compute_bus_factor(attributed, settings)
    assessment = RiskAssessment(
        bus_factor=bus_factor,
        risk_level=risk_level_for(bus_factor),
        hot_spots=rank_hot_spots(all_files, settings),
        file_bus_factors={f.path: file_bus_factor(f, settings.majority_threshold) for f in attributed},
    )

    for profile in profiles:
        key = profile_key(profile)
        unbacked, _ = at_risk_files(key, attributed, settings)
        level = classify_contributor_risk(key, attributed, settings)
        profile.bus_factor_risk = level
        assessment.contributor_risk[key] = level
        if unbacked:
            assessment.at_risk_files[key] = unbacked

    logger.info(
        f"Bus factor {bus_factor} ({assessment.risk_level}); "
        f"{len(assessment.at_risk_files)} high-risk contributors; {len(assessment.hot_spots)} hot spots"
    )
    return assessment
