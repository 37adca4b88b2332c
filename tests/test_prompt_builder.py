"""
tests/test_prompt_builder.py
"""

from __future__ import annotations

from dataclasses import replace

import pytest

from app.config import AnalysisConfig, GenerationSettings
from app.domain.classroom import ClassSummary
from llm_synthesis.prompt_builder import PromptComposer
from llm_synthesis.validator import TERMINATOR, end_marker, start_marker


@pytest.fixture()
def summary() -> ClassSummary:
    return ClassSummary(
        total_records=50,
        matched_records=45,
        unmatched_records=3,
        anomaly_count=2,
        match_rate=0.9,
        total_class_size=48,
        active_entities=45,
        inactive_entities=3,
        inactive_names=("Xu", "Yi", "Zo"),
        categories=("Math", "Art"),
        total_score=45.0,
        average_score=1.0,
    )


@pytest.fixture()
def composer(analysis_config: AnalysisConfig, generation_settings: GenerationSettings) -> PromptComposer:
    return PromptComposer(analysis_config, generation_settings)


class TestComposeOverall:
    def test_lists_every_student_and_contract(self, composer: PromptComposer, summary: ClassSummary, entity_factory) -> None:
        entities = entity_factory(3)
        request = composer.compose_overall(summary, entities)

        for entity in entities:
            assert entity.display_name in request.prompt
        assert TERMINATOR in request.prompt
        assert start_marker("Student Name") in request.prompt
        assert end_marker("Student Name") in request.prompt
        assert "90.0%" in request.prompt
        assert "Xu, Yi, Zo" in request.prompt
        assert "150 to 200 words" in request.prompt
        assert request.kind == "overall"
        assert request.expected_names == tuple(entity.display_name for entity in entities)

    def test_request_carries_generation_settings(
        self, composer: PromptComposer, summary: ClassSummary, generation_settings: GenerationSettings, entity_factory
    ) -> None:
        request = composer.compose_overall(summary, entity_factory(1))
        assert request.channel == generation_settings.model
        assert request.temperature == generation_settings.temperature
        assert request.max_tokens == generation_settings.max_tokens
        assert request.system_prompt == generation_settings.system_prompt

    def test_annotations_toggle_removes_marker_instructions(
        self, analysis_config: AnalysisConfig, generation_settings: GenerationSettings, summary: ClassSummary, entity_factory
    ) -> None:
        composer = PromptComposer(replace(analysis_config, use_annotations=False), generation_settings)
        request = composer.compose_overall(summary, entity_factory(2))
        assert TERMINATOR not in request.prompt
        assert "STUDENT_START" not in request.prompt

    def test_no_runs_of_blank_lines(self, composer: PromptComposer, entity_factory) -> None:
        summary = ClassSummary(
            total_records=0,
            matched_records=0,
            unmatched_records=0,
            anomaly_count=0,
            match_rate=0.0,
            total_class_size=0,
            active_entities=0,
            inactive_entities=0,
        )
        request = composer.compose_overall(summary, entity_factory(1))
        assert "\n\n\n" not in request.prompt


class TestComposeOverview:
    def test_class_level_only(self, composer: PromptComposer, summary: ClassSummary) -> None:
        request = composer.compose_overview(summary)
        assert request.kind == "overview"
        assert request.expected_names == ()
        assert TERMINATOR not in request.prompt
        assert "Math, Art" in request.prompt


class TestComposeBatch:
    def test_embeds_overall_context_and_only_batch_students(self, composer: PromptComposer, entity_factory) -> None:
        entities = entity_factory(6)
        request = composer.compose_batch(entities[3:], "The class did well.", 1, 2)

        assert "The class did well." in request.prompt
        assert "batch 2 of 2" in request.prompt
        assert entities[0].display_name not in request.prompt
        for entity in entities[3:]:
            assert entity.display_name in request.prompt
        assert TERMINATOR in request.prompt
        assert request.kind == "batch"

    def test_overall_context_is_stripped_of_annotations(self, composer: PromptComposer, entity_factory) -> None:
        overall = f"Summary text.\n{start_marker('Old')}\nold body\n{end_marker('Old')}\n{TERMINATOR}"
        request = composer.compose_batch(entity_factory(1), overall, 0, 1)
        assert "old body" not in request.prompt
        assert "Summary text." in request.prompt

    def test_batch_prompt_depends_only_on_its_inputs(self, composer: PromptComposer, entity_factory) -> None:
        entities = entity_factory(4)
        first = composer.compose_batch(entities[:2], "ctx", 0, 2)
        again = composer.compose_batch(entities[:2], "ctx", 0, 2)
        assert first.prompt == again.prompt
        later = composer.compose_batch(entities[2:], "ctx", 1, 2)
        assert entities[0].display_name not in later.prompt


class TestEntitySummary:
    def test_flattens_stats(self, composer: PromptComposer, entity_factory) -> None:
        (stats,) = entity_factory(1)
        data = composer.entity_summary(stats)
        assert data["name"] == stats.display_name
        assert data["participation_count"] == 1
        assert data["categories"] == [{"name": "Math", "count": 1, "average": 1.0}]
        assert data["category_text"] == "Math x1 (avg 1)"
        assert data["active_days"] == 1


class TestSharedNames:
    def test_namesakes_are_listed_under_distinct_labels(
        self, composer: PromptComposer, summary: ClassSummary, named_entity_factory
    ) -> None:
        entities = named_entity_factory("Ann", "Bo", "Ann")
        request = composer.compose_overall(summary, entities)

        assert request.expected_names == ("Ann", "Bo", "Ann (2)")
        assert "1. Ann:" in request.prompt
        assert "3. Ann (2):" in request.prompt

    def test_batch_uses_session_labels(self, composer: PromptComposer, named_entity_factory) -> None:
        entities = named_entity_factory("Ann", "Ann")
        labels = {"1": "Ann", "2": "Ann (2)"}
        request = composer.compose_batch(entities[1:], "ctx", 1, 2, labels)
        assert request.expected_names == ("Ann (2)",)

    def test_entity_summary_keeps_display_name(self, composer: PromptComposer, named_entity_factory) -> None:
        (_, second) = named_entity_factory("Ann", "Ann")
        data = composer.entity_summary(second, "Ann (2)")
        assert data["name"] == "Ann (2)"
        assert data["display_name"] == "Ann"
