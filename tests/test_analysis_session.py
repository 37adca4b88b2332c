"""
tests/test_analysis_session.py

End-to-end runs of AnalysisSession with the mock adapter.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace

import pytest

from app.config import AnalysisConfig, GenerationSettings
from app.services.analysis_session import AnalysisSession
from llm_synthesis.adapter import MockLLMAdapter
from llm_synthesis.orchestrator import ReportGenerationError
from llm_synthesis.schema import GenerationRequest
from llm_synthesis.validator import TERMINATOR, end_marker, start_marker


def _class_rows(count: int) -> tuple[list[dict], list[dict]]:
    roster = [{"学号": str(index), "姓名": f"Student{index:02d}"} for index in range(1, count + 1)]
    activity = [
        {"学号": str(index), "科目": "Math", "日期": "2024年3月1日", "积分": 1}
        for index in range(1, count + 1)
    ]
    return roster, activity


class _SkippingAdapter(MockLLMAdapter):
    """Leaves out one student's evaluation."""

    def __init__(self, skip_name: str) -> None:
        super().__init__()
        self._skip_name = skip_name

    async def generate(self, request: GenerationRequest) -> str:
        names = tuple(name for name in request.expected_names if name != self._skip_name)
        return await super().generate(request.model_copy(update={"expected_names": names}))


class _DuplicatingAdapter(MockLLMAdapter):
    """Annotates the first student of the class again in every batch."""

    async def generate(self, request: GenerationRequest) -> str:
        text = await super().generate(request)
        if request.kind != "batch":
            return text
        extra = f"{start_marker('Student01')}\nrepeat\n{end_marker('Student01')}\n"
        return text.replace(TERMINATOR, extra + TERMINATOR)


class _BrokenAdapter(MockLLMAdapter):
    async def generate(self, request: GenerationRequest) -> str:
        raise ConnectionError("offline")


class _HangingBatchAdapter(MockLLMAdapter):
    """Completes the overview and first batch, then blocks."""

    def __init__(self) -> None:
        super().__init__()
        self.batches_served = 0
        self.blocked = asyncio.Event()

    async def generate(self, request: GenerationRequest) -> str:
        if request.kind == "batch":
            if self.batches_served == 1:
                self.blocked.set()
                await asyncio.sleep(3600)
            self.batches_served += 1
        return await super().generate(request)


def _session(adapter, config: AnalysisConfig, settings: GenerationSettings) -> AnalysisSession:
    return AnalysisSession(adapter, config=config, settings=settings)


class TestPrepare:
    def test_end_to_end_scenario(
        self,
        analysis_config: AnalysisConfig,
        generation_settings: GenerationSettings,
        roster_rows: list[dict],
        activity_rows: list[dict],
    ) -> None:
        prepared = _session(MockLLMAdapter(), analysis_config, generation_settings).prepare(roster_rows, activity_rows)

        (ann,) = prepared.entities
        assert (ann.id, ann.participation_count, ann.total_score) == ("1", 1, 1.0)
        assert prepared.merged_records[0].merged_count == 2
        assert [record.id for record in prepared.integration.unmatched] == ["9"]
        assert [entry.id for entry in prepared.inactive] == ["2", "3"]
        assert prepared.summary.match_rate == pytest.approx(2 / 3)


class TestRun:
    @pytest.mark.asyncio
    async def test_single_shot_report(
        self,
        analysis_config: AnalysisConfig,
        generation_settings: GenerationSettings,
        roster_rows: list[dict],
        activity_rows: list[dict],
    ) -> None:
        report = await _session(MockLLMAdapter(), analysis_config, generation_settings).run(roster_rows, activity_rows)

        assert report.mode == "single"
        assert [evaluation.entity_id for evaluation in report.evaluations] == ["1"]
        assert report.evaluations[0].display_name == "Ann"
        assert report.missing_evaluation_ids == []
        assert report.overall_text
        assert "STUDENT_START" not in report.overall_text
        assert report.summary.inactive_names == ["Bo", "Cy"]
        assert report.summary.match_rate == pytest.approx(2 / 3)
        assert report.model == generation_settings.model

    @pytest.mark.asyncio
    async def test_batched_scenario_with_45_students(
        self, analysis_config: AnalysisConfig, generation_settings: GenerationSettings
    ) -> None:
        roster, activity = _class_rows(45)
        adapter = MockLLMAdapter()
        report = await _session(adapter, replace(analysis_config, batch_size=15), generation_settings).run(roster, activity)

        assert report.mode == "batched"
        assert [request.kind for request in adapter.requests] == ["overview", "batch", "batch", "batch"]
        assert len(report.validation_reports) == 3
        assert len(report.evaluations) == 45
        assert len({evaluation.entity_id for evaluation in report.evaluations}) == 45
        assert report.missing_evaluation_ids == []

    @pytest.mark.asyncio
    async def test_missing_narrative_is_reported_not_hidden(
        self, analysis_config: AnalysisConfig, generation_settings: GenerationSettings
    ) -> None:
        roster, activity = _class_rows(40)
        report = await _session(_SkippingAdapter("Student17"), analysis_config, generation_settings).run(roster, activity)

        assert report.mode == "batched"
        assert len(report.evaluations) == 39
        assert report.missing_evaluation_ids == ["17"]
        invalid = [item for item in report.validation_reports if not item.is_valid]
        assert [item.missing_ids for item in invalid] == [["17"]]

    @pytest.mark.asyncio
    async def test_duplicates_across_batches_keep_first(
        self, analysis_config: AnalysisConfig, generation_settings: GenerationSettings
    ) -> None:
        roster, activity = _class_rows(35)
        report = await _session(_DuplicatingAdapter(), analysis_config, generation_settings).run(roster, activity)

        first = report.evaluation_for("1")
        assert first is not None
        assert first.body_text != "repeat"
        assert len(report.evaluations) == 35

    @pytest.mark.asyncio
    async def test_total_failure_raises(
        self,
        analysis_config: AnalysisConfig,
        generation_settings: GenerationSettings,
        roster_rows: list[dict],
        activity_rows: list[dict],
    ) -> None:
        with pytest.raises(ReportGenerationError):
            await _session(_BrokenAdapter(), analysis_config, generation_settings).run(roster_rows, activity_rows)

    @pytest.mark.asyncio
    async def test_partial_report_after_cancellation(
        self, analysis_config: AnalysisConfig, generation_settings: GenerationSettings
    ) -> None:
        roster, activity = _class_rows(45)
        adapter = _HangingBatchAdapter()
        session = _session(adapter, analysis_config, replace(generation_settings, timeout_seconds=3600.0))
        assert session.partial_report() is None

        task = asyncio.create_task(session.run(roster, activity))
        await adapter.blocked.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        report = session.partial_report()
        assert report is not None
        assert report.mode == "batched"
        assert len(report.evaluations) == 15
        assert len(report.missing_evaluation_ids) == 30
        assert report.overall_text


class TestSharedNames:
    @pytest.mark.asyncio
    async def test_namesakes_each_get_an_evaluation(
        self, analysis_config: AnalysisConfig, generation_settings: GenerationSettings
    ) -> None:
        roster = [{"id": 1, "name": "Ann"}, {"id": 2, "name": "Ann"}]
        activity = [{"id": 1, "score": 1}, {"id": 2, "score": 1}]
        report = await _session(MockLLMAdapter(), analysis_config, generation_settings).run(roster, activity)

        assert report.missing_evaluation_ids == []
        assert [(item.entity_id, item.display_name) for item in report.evaluations] == [("1", "Ann"), ("2", "Ann")]
        assert all(item.is_valid for item in report.validation_reports)

    @pytest.mark.asyncio
    async def test_namesakes_split_across_batches(
        self, analysis_config: AnalysisConfig, generation_settings: GenerationSettings
    ) -> None:
        roster = [{"id": 1, "name": "Ann"}, {"id": 2, "name": "Bo"}, {"id": 3, "name": "Ann"}]
        activity = [{"id": index, "score": 1} for index in (1, 2, 3)]
        config = replace(analysis_config, batch_size=2, single_shot_threshold=2)
        report = await _session(MockLLMAdapter(), config, generation_settings).run(roster, activity)

        assert report.mode == "batched"
        assert report.missing_evaluation_ids == []
        assert report.evaluation_for("3").display_name == "Ann"


class TestUsageReporting:
    @pytest.mark.asyncio
    async def test_report_carries_usage_of_every_call(
        self, analysis_config: AnalysisConfig, generation_settings: GenerationSettings
    ) -> None:
        roster, activity = _class_rows(45)
        report = await _session(MockLLMAdapter(), analysis_config, generation_settings).run(roster, activity)

        assert report.usage.call_count == 4
        assert report.usage.calls_by_kind == {"overview": 1, "batch": 3}
        assert report.usage.total_tokens == report.usage.prompt_tokens + report.usage.completion_tokens > 0

    @pytest.mark.asyncio
    async def test_partial_report_carries_usage_so_far(
        self, analysis_config: AnalysisConfig, generation_settings: GenerationSettings
    ) -> None:
        roster, activity = _class_rows(45)
        adapter = _HangingBatchAdapter()
        session = _session(adapter, analysis_config, replace(generation_settings, timeout_seconds=3600.0))

        task = asyncio.create_task(session.run(roster, activity))
        await adapter.blocked.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        report = session.partial_report()
        assert report is not None
        assert report.usage.calls_by_kind == {"overview": 1, "batch": 1}
