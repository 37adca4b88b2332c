"""
app/services/analysis_session.py

End-to-end analysis of one roster/activity pair.

The synchronous half (``prepare``) reconciles the two tables and computes
per-student statistics. The asynchronous half (``run``) drives the
generation channel and assembles the FinalReport handed to renderers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from app.config import AnalysisConfig, GenerationSettings, get_analysis_config, get_generation_settings
from app.domain.classroom import ClassSummary, EntityStats, MergedRecord, RawRow, RosterEntry
from app.logging_utils import log_event
from app.mappers.field_extractor import FieldExtractor
from app.services.aggregation_service import PerformanceAggregator
from app.services.batch_planner import should_batch
from app.services.record_integrator import IntegrationResult, RecordIntegrator, merge_duplicates
from app.services.roster_index import RosterIndex
from llm_synthesis.adapter import BaseLLMAdapter
from llm_synthesis.merger import ResultMerger
from llm_synthesis.orchestrator import GenerationOrchestrator
from llm_synthesis.prompt_builder import PromptComposer
from llm_synthesis.schema import FinalReport, GenerationMode, ReportSummary, UsageSummary, ValidationReport
from llm_synthesis.validator import strip_annotations

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreparedAnalysis:
    """
    Everything computed before the first generation call.
    """

    roster: RosterIndex
    integration: IntegrationResult
    merged_records: tuple[MergedRecord, ...]
    entities: tuple[EntityStats, ...]
    inactive: tuple[RosterEntry, ...]
    summary: ClassSummary


def build_report_summary(summary: ClassSummary) -> ReportSummary:
    return ReportSummary(
        total_records=summary.total_records,
        matched_records=summary.matched_records,
        unmatched_records=summary.unmatched_records,
        anomaly_count=summary.anomaly_count,
        match_rate=summary.match_rate,
        total_class_size=summary.total_class_size,
        active_entities=summary.active_entities,
        inactive_entities=summary.inactive_entities,
        inactive_names=list(summary.inactive_names),
    )


class AnalysisSession:
    """
    One analysis run: integration, aggregation, generation, merge.

    A session is used for a single run at a time. Configuration is fixed at
    construction and defaults to the environment-driven settings.
    """

    def __init__(
        self,
        adapter: BaseLLMAdapter,
        config: AnalysisConfig | None = None,
        settings: GenerationSettings | None = None,
        *,
        extractor: FieldExtractor | None = None,
        orchestrator: GenerationOrchestrator | None = None,
    ) -> None:
        self._config = config or get_analysis_config()
        self._settings = settings or get_generation_settings()
        self._extractor = extractor or FieldExtractor()
        self._integrator = RecordIntegrator(extractor=self._extractor)
        self._aggregator = PerformanceAggregator()
        self._merger = ResultMerger()
        self._orchestrator = orchestrator or GenerationOrchestrator(
            adapter=adapter,
            composer=PromptComposer(self._config, self._settings),
            config=self._config,
            settings=self._settings,
        )
        self._prepared: PreparedAnalysis | None = None

    @property
    def prepared(self) -> PreparedAnalysis | None:
        return self._prepared

    def prepare(self, roster_rows: Sequence[RawRow], activity_rows: Sequence[RawRow]) -> PreparedAnalysis:
        """
        Run the in-memory pipeline: roster, integration, dedup, aggregation.
        """

        roster = RosterIndex.build(roster_rows, extractor=self._extractor)
        integration = self._integrator.integrate(activity_rows, roster)
        merged = merge_duplicates(integration.matched)
        entities = self._aggregator.aggregate(merged, roster)
        inactive = self._aggregator.inactive_entries(roster, entities)
        summary = self._aggregator.summarize(roster, integration, entities)

        prepared = PreparedAnalysis(
            roster=roster,
            integration=integration,
            merged_records=merged,
            entities=entities,
            inactive=inactive,
            summary=summary,
        )
        self._prepared = prepared
        log_event(
            logger,
            logging.INFO,
            "analysis_prepared",
            roster_size=roster.size(),
            total_rows=integration.total_rows,
            matched=len(integration.matched),
            unmatched=len(integration.unmatched),
            anomalies=len(integration.anomalies),
            merged_records=len(merged),
            active=len(entities),
            inactive=len(inactive),
            match_rate=integration.match_rate,
        )
        return prepared

    async def run(self, roster_rows: Sequence[RawRow], activity_rows: Sequence[RawRow]) -> FinalReport:
        """
        Prepare the data, generate narratives and assemble the FinalReport.

        Raises
        ------
        ReportGenerationError
            When both batched and single-shot generation failed.
        """

        prepared = self.prepare(roster_rows, activity_rows)
        outcome = await self._orchestrator.generate(prepared.summary, prepared.entities)

        if outcome.mode == "batched":
            overall_text = strip_annotations(outcome.overall_text)
        else:
            overall_text = strip_annotations(outcome.batch_texts[0] if outcome.batch_texts else "")

        report = self._assemble(
            prepared,
            overall_text=overall_text,
            batch_texts=outcome.batch_texts,
            reports=outcome.validation_reports,
            mode=outcome.mode,
            usage=outcome.usage,
        )
        log_event(
            logger,
            logging.INFO,
            "analysis_completed",
            mode=report.mode,
            evaluations=len(report.evaluations),
            missing=len(report.missing_evaluation_ids),
            invalid_batches=sum(1 for item in report.validation_reports if not item.is_valid),
            usage=report.usage,
        )
        return report

    def partial_report(self) -> FinalReport | None:
        """
        Best-effort report from generation results completed so far.

        Intended for a run that was cancelled; returns ``None`` when nothing
        was generated yet.
        """

        prepared = self._prepared
        orchestrator = self._orchestrator
        if prepared is None or (orchestrator.overall_text is None and not orchestrator.completed_batches):
            return None

        mode: GenerationMode = (
            "batched"
            if should_batch(len(prepared.entities), self._config.single_shot_threshold)
            else "single"
        )
        report = self._assemble(
            prepared,
            overall_text=strip_annotations(orchestrator.overall_text or ""),
            batch_texts=tuple(orchestrator.completed_batches),
            reports=tuple(orchestrator.completed_reports),
            mode=mode,
            usage=orchestrator.usage.summary(),
        )
        log_event(
            logger,
            logging.WARNING,
            "analysis_partial",
            mode=mode,
            completed_batches=len(orchestrator.completed_batches),
            usage=report.usage,
            evaluations=len(report.evaluations),
            missing=len(report.missing_evaluation_ids),
        )
        return report

    def _assemble(
        self,
        prepared: PreparedAnalysis,
        *,
        overall_text: str,
        batch_texts: Sequence[str],
        reports: Sequence[ValidationReport],
        mode: GenerationMode,
        usage: UsageSummary,
    ) -> FinalReport:
        evaluations = self._merger.merge(
            batch_texts,
            prepared.entities,
            restore_entity_order=self._config.restore_entity_order,
        )
        evaluated = {evaluation.entity_id for evaluation in evaluations}
        missing = [entity.id for entity in prepared.entities if entity.id not in evaluated]
        if missing:
            logger.warning("%d students have no generated evaluation: %s", len(missing), ", ".join(missing))

        return FinalReport(
            evaluations=evaluations,
            overall_text=overall_text,
            summary=build_report_summary(prepared.summary),
            missing_evaluation_ids=missing,
            validation_reports=list(reports),
            mode=mode,
            model=self._settings.model,
            usage=usage,
        )
