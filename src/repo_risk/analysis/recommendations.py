"""Bus factor mitigation — turn risk findings into ranked actions."""

from collections import Counter
from pathlib import PurePosixPath

from repo_risk.analysis.people import ROOT_AREA, profile_key
from repo_risk.models import ContributorProfile, MitigationAction, RiskAssessment

MAX_FILES_NAMED = 5


def _name_files(files: list[str]) -> str:
    named = ", ".join(files[:MAX_FILES_NAMED])
    if len(files) > MAX_FILES_NAMED:
        named += f" and {len(files) - MAX_FILES_NAMED} more"
    return named


def _main_area(files: list[str]) -> str:
    dirs = Counter(str(PurePosixPath(f).parent) for f in files)
    area, _ = sorted(dirs.items(), key=lambda x: (-x[1], x[0]))[0]
    return ROOT_AREA if area == "." else area


def build_mitigation_actions(
    profiles: list[ContributorProfile],
    assessment: RiskAssessment,
) -> list[MitigationAction]:
    """Deterministic, ranked mitigation actions.

    High-risk contributors come first (most unbacked files first), then
    hot spots whose per-file bus factor is 1, in hot-spot order.
    """
    by_key = {profile_key(p): p for p in profiles}
    actions: list[MitigationAction] = []

    for key, files in sorted(assessment.at_risk_files.items(), key=lambda kv: (-len(kv[1]), kv[0])):
        who = by_key[key].username if key in by_key else key
        actions.append(
            MitigationAction(
                priority=1,
                action=f"Pair a second engineer with {who} and document {_name_files(files)}.",
                target_contributor=who,
                target_area=_main_area(files),
                rationale=f"{who} is the only significant owner of {len(files)} file(s).",
            )
        )

    for path in assessment.hot_spots:
        if assessment.file_bus_factors.get(path) != 1:
            continue
        actions.append(
            MitigationAction(
                priority=2,
                action=f"Add a second reviewer/owner for {path}.",
                target_area=path,
                rationale="It changes often and one contributor holds most of its lines.",
            )
        )
    return actions


def render_recommendations(actions: list[MitigationAction], extra: list[str] | None = None) -> list[str]:
    """Deterministic recommendations followed by any narrative additions."""
    rendered = [a.render() for a in sorted(actions, key=lambda a: a.priority)]
    for text in extra or []:
        text = text.strip()
        if text and text not in rendered:
            rendered.append(text)
    return rendered
