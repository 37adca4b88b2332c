"""Sequencing of generation calls for one analysis session.

Batched runs generate the class narrative first and exactly once, then one
request per batch in index order with a pacing delay between consecutive
batch calls. Any failure of a batched run falls back to a single-shot
request over the full student list, at most once. A failed single-shot
request is fatal for the session.

Marker labels are assigned once over the full student list so a batch
holding only one of two students who share a name still uses the label
the merge step resolves. Token usage is summed over every answered call,
fallback included.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Mapping, Optional, Sequence, Tuple

from app.config import AnalysisConfig, GenerationSettings
from app.domain.classroom import Batch, ClassSummary, EntityStats
from app.services.batch_planner import plan, should_batch
from llm_synthesis.adapter import BaseLLMAdapter
from llm_synthesis.prompt_builder import PromptComposer
from llm_synthesis.retry import generate_with_retry
from llm_synthesis.schema import GenerationMode, GenerationRequest, UsageSummary, ValidationReport
from llm_synthesis.usage import UsageTracker
from llm_synthesis.validator import AnnotationValidator, assign_labels

logger = logging.getLogger(__name__)


class ReportGenerationError(Exception):
    """Raised when neither the batched nor the single-shot path produced a report."""


@dataclass(frozen=True)
class BatchedGeneration:
    overall: str
    per_batch: Tuple[str, ...]
    validation_reports: Tuple[ValidationReport, ...]


@dataclass(frozen=True)
class GenerationOutcome:
    """Raw generated texts for one session plus their contract checks."""

    mode: GenerationMode
    overall_text: str
    batch_texts: Tuple[str, ...]
    validation_reports: Tuple[ValidationReport, ...] = field(default=())
    usage: UsageSummary = field(default_factory=UsageSummary)


class GenerationOrchestrator:
    """Drives the generation channel for one analysis session.

    The instance owns the buffer of completed batch responses; it survives a
    cancelled run so callers can assemble a partial report. ``usage`` sums
    the token usage of the current session.
    """

    def __init__(
        self,
        adapter: BaseLLMAdapter,
        composer: PromptComposer,
        config: AnalysisConfig,
        settings: GenerationSettings,
        validator: Optional[AnnotationValidator] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._adapter = adapter
        self._composer = composer
        self._config = config
        self._settings = settings
        self._validator = validator or AnnotationValidator()
        self._sleep = sleep
        self.overall_text: Optional[str] = None
        self.completed_batches: List[str] = []
        self.completed_reports: List[ValidationReport] = []
        self.usage = UsageTracker()

    async def run_single(self, request: GenerationRequest) -> str:
        """Issue one bounded generation call and return the cleaned text."""
        return await generate_with_retry(
            self._adapter,
            request,
            timeout_seconds=self._settings.timeout_seconds,
            max_retries=self._settings.max_retries,
            tracker=self.usage,
        )

    async def run_batches(
        self,
        batches: Sequence[Batch],
        summary: ClassSummary,
        labels: Optional[Mapping[str, str]] = None,
    ) -> BatchedGeneration:
        """Generate the class narrative, then every batch in order.

        Marker labels default to those assigned over all batch entities.

        Raises:
            GenerationFailedError: If any call fails. Batches finished
                before the failure stay in ``completed_batches``.
        """
        self._reset()
        if labels is None:
            labels = assign_labels([entity for batch in batches for entity in batch.entities])
        overall = await self.run_single(self._composer.compose_overview(summary))
        self.overall_text = overall
        logger.info("Class narrative generated, %d batches to go", len(batches))

        for position, batch in enumerate(batches):
            if position:
                await self._sleep(self._settings.pacing_delay_seconds)
            request = self._composer.compose_batch(
                batch.entities,
                overall,
                batch.index,
                batch.total,
                labels,
            )
            text = await self.run_single(request)
            report = self._validator.validate(text, batch.entities, batch.index, labels)
            self.completed_batches.append(text)
            self.completed_reports.append(report)
            logger.info(
                "Batch %d/%d done (%d students)",
                batch.number,
                batch.total,
                len(batch),
            )

        return BatchedGeneration(
            overall=overall,
            per_batch=tuple(self.completed_batches),
            validation_reports=tuple(self.completed_reports),
        )

    async def generate(
        self,
        summary: ClassSummary,
        entities: Sequence[EntityStats],
    ) -> GenerationOutcome:
        """Pick single-shot or batched mode and apply the fallback policy.

        Raises:
            ReportGenerationError: If the single-shot path fails, either as
                the chosen mode or as the fallback.
            asyncio.CancelledError: If the caller cancels the session.
        """
        self.usage.reset()
        labels = assign_labels(entities)
        if not should_batch(len(entities), self._config.single_shot_threshold):
            logger.info("Single-shot generation for %d students", len(entities))
            return await self._generate_single(summary, entities, "single", labels)

        batches = plan(entities, self._config.batch_size)
        logger.info(
            "Batched generation for %d students in %d batches of up to %d",
            len(entities),
            len(batches),
            self._config.batch_size,
        )
        try:
            result = await self.run_batches(batches, summary, labels)
        except Exception as exc:
            logger.warning(
                "Batched generation failed after %d/%d batches, falling back to single-shot: %s",
                len(self.completed_batches),
                len(batches),
                exc,
            )
            return await self._generate_single(summary, entities, "fallback", labels)

        return GenerationOutcome(
            mode="batched",
            overall_text=result.overall,
            batch_texts=result.per_batch,
            validation_reports=result.validation_reports,
            usage=self.usage.summary(),
        )

    async def _generate_single(
        self,
        summary: ClassSummary,
        entities: Sequence[EntityStats],
        mode: GenerationMode,
        labels: Optional[Mapping[str, str]] = None,
    ) -> GenerationOutcome:
        self._reset()
        request = self._composer.compose_overall(summary, entities, labels)
        try:
            text = await self.run_single(request)
        except Exception as exc:
            logger.error("Single-shot generation failed: %s", exc)
            raise ReportGenerationError(f"report generation failed: {exc}") from exc

        report = self._validator.validate(text, entities, 0, labels)
        self.overall_text = text
        self.completed_batches.append(text)
        self.completed_reports.append(report)
        return GenerationOutcome(
            mode=mode,
            overall_text=text,
            batch_texts=(text,),
            validation_reports=(report,),
            usage=self.usage.summary(),
        )

    def _reset(self) -> None:
        self.overall_text = None
        self.completed_batches = []
        self.completed_reports = []
