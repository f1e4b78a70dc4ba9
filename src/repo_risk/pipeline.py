"""Analysis pipeline.

Runs extraction, aggregation, profiling, risk analysis and synthesis in
order for one repository, reporting each step through a callback, and
optionally enriches the result with narrative prose.
"""

import asyncio
from typing import Any, Callable, Optional

from repo_risk.analysis.languages import detect_languages
from repo_risk.analysis.ownership import OwnershipAggregator
from repo_risk.analysis.people import build_contributor_profiles, count_active_contributors
from repo_risk.analysis.recommendations import build_mitigation_actions, render_recommendations
from repo_risk.analysis.risk import analyze_risk
from repo_risk.config import AnalysisSettings
from repo_risk.extractor import HistoryExtractor
from repo_risk.logging import get_logger
from repo_risk.models import (
    AnalysisResult,
    CodebaseHealth,
    ContributorProfile,
    MitigationAction,
    PipelineStep,
)
from repo_risk.narrative import NarrativeService, best_effort, build_narrative_service

logger = get_logger("pipeline")

StepCallback = Callable[[PipelineStep, str], None]
ExtractorFactory = Callable[[str, AnalysisSettings], HistoryExtractor]

# Contributors sent to the narrative service, most commits first
MAX_NARRATED_CONTRIBUTORS = 20


def default_extractor(repository: str, settings: AnalysisSettings) -> HistoryExtractor:
    return HistoryExtractor(
        repository,
        token=settings.github_token,
        max_commits=settings.max_commits,
        since=settings.since,
    )


def empty_result(repository: str) -> AnalysisResult:
    """Zero-valued result for a repository with no history."""
    return AnalysisResult(repository=repository, codebase_health=CodebaseHealth())


class AnalysisPipeline:
    """End-to-end ownership and risk analysis of one repository."""

    def __init__(
        self,
        settings: Optional[AnalysisSettings] = None,
        narrative: Optional[NarrativeService] = None,
        on_step: Optional[StepCallback] = None,
        extractor_factory: ExtractorFactory = default_extractor,
    ) -> None:
        self.settings = settings or AnalysisSettings()
        self.narrative = narrative
        self._on_step = on_step or (lambda _step, _msg: None)
        self._extractor_factory = extractor_factory

    def _step(self, step: PipelineStep, msg: str) -> None:
        logger.info(f"[{step.value}] {msg}")
        self._on_step(step, msg)

    async def run(self, repository: str) -> AnalysisResult:
        """Run every stage; errors propagate to the caller untouched."""
        settings = self.settings
        extractor = self._extractor_factory(repository, settings)
        narrative = self.narrative or self._default_narrative()
        try:
            # 1. Extraction
            self._step(PipelineStep.extracting, f"Reading history of {repository} …")
            in_scope = extractor.open()

            # 2. Ownership
            self._step(PipelineStep.aggregating, f"Attributing ownership across {in_scope} commits …")
            aggregator = OwnershipAggregator().fold_all(extractor.commits())

            # 3. People
            self._step(PipelineStep.profiling, f"Profiling {len(aggregator.authors)} contributors …")
            profiles = build_contributor_profiles(aggregator.files, aggregator.authors, settings)

            # 4. Risk
            self._step(PipelineStep.analyzing_risk, "Computing bus factor and hot spots …")
            assessment = analyze_risk(aggregator.files, profiles, settings)
            health = CodebaseHealth(
                total_files=len(aggregator.live_files),
                total_commits=aggregator.commit_count,
                active_contributors=count_active_contributors(aggregator.authors, settings.active_window_days),
                bus_factor=assessment.bus_factor,
                risk_level=assessment.risk_level,
                hot_spots=assessment.hot_spots,
            )

            # 5. Synthesis
            self._step(PipelineStep.synthesizing, "Writing recommendations …")
            actions = build_mitigation_actions(profiles, assessment)
            languages = detect_languages(aggregator.files.values())

            summary: Optional[str] = None
            extra: list[str] = []
            if narrative is not None:
                summary, extra = await self._enrich(narrative, repository, profiles, health, languages, actions)

            return AnalysisResult(
                repository=repository,
                project_summary=summary,
                primary_languages=languages,
                contributors=profiles,
                codebase_health=health,
                actions=actions,
                recommendations=render_recommendations(actions, extra),
            )
        finally:
            extractor.cleanup()
            if narrative is not None:
                await best_effort(narrative.close(), settings.narrative_timeout, "narrative teardown")

    # ── Narrative enrichment ──────────────────────────────────────────────

    def _default_narrative(self) -> Optional[NarrativeService]:
        try:
            return build_narrative_service(self.settings)
        except Exception as e:
            logger.warning(f"Narrative service unavailable, continuing without it: {e}")
            return None

    async def _enrich(
        self,
        narrative: NarrativeService,
        repository: str,
        profiles: list[ContributorProfile],
        health: CodebaseHealth,
        languages: list[str],
        actions: list[MitigationAction],
    ) -> tuple[Optional[str], list[str]]:
        """Best-effort prose; the numeric result never depends on it."""
        timeout = self.settings.narrative_timeout
        project_stats = _project_stats(repository, profiles, health, languages, actions)

        summary = await best_effort(narrative.project_summary(project_stats), timeout, "project summary")
        await asyncio.gather(*(
            self._enrich_contributor(narrative, p, timeout)
            for p in profiles[:MAX_NARRATED_CONTRIBUTORS]
        ))
        extra = await best_effort(narrative.recommendations(project_stats), timeout, "recommendations")
        return summary, list(extra or [])

    async def _enrich_contributor(self, narrative: NarrativeService, profile: ContributorProfile, timeout: float) -> None:
        stats = _contributor_stats(profile)
        who = profile.username
        profile.contribution_summary = await best_effort(
            narrative.contribution_summary(stats), timeout, f"contribution summary for {who}"
        )
        if profile.knowledge_areas:
            labels = await best_effort(narrative.label_knowledge_areas(stats), timeout, f"knowledge labels for {who}")
            if labels:
                profile.knowledge_areas = list(labels)


def _contributor_stats(p: ContributorProfile) -> dict[str, Any]:
    return {
        "username": p.username,
        "total_commits": p.total_commits,
        "lines_added": p.lines_added,
        "lines_deleted": p.lines_deleted,
        "active_days": p.active_days,
        "expertise_level": p.expertise_level.value,
        "bus_factor_risk": p.bus_factor_risk.value,
        "knowledge_areas": p.knowledge_areas,
        "top_files": [f.file_path for f in p.files_contributed[:10]],
    }


def _project_stats(
    repository: str,
    profiles: list[ContributorProfile],
    health: CodebaseHealth,
    languages: list[str],
    actions: list[MitigationAction],
) -> dict[str, Any]:
    return {
        "repository": repository,
        "primary_languages": languages,
        "codebase_health": health.model_dump(mode="json"),
        "contributors": [
            {"username": p.username, "total_commits": p.total_commits, "bus_factor_risk": p.bus_factor_risk.value}
            for p in profiles[:MAX_NARRATED_CONTRIBUTORS]
        ],
        "actions": [a.render() for a in actions],
    }
