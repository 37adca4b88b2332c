"""
Shared fixtures for the test suite.

The API module builds its application at import time, so the mock adapter
is selected before any test module is collected.
"""

from __future__ import annotations

import os

os.environ.setdefault("LLM_ADAPTER", "mock")

import pytest

from app.config import AnalysisConfig, GenerationSettings, get_analysis_config, get_generation_settings
from app.domain.classroom import EntityStats, MergedRecord
from app.services.aggregation_service import PerformanceAggregator


def make_entities(count: int, prefix: str = "S") -> tuple[EntityStats, ...]:
    """Build *count* students with one scored record each, in id order."""
    records = [
        MergedRecord(
            id=f"{index}",
            display_name=f"{prefix}{index:02d}",
            category="Math",
            timestamp="2024-01-10",
            score=1.0,
        )
        for index in range(1, count + 1)
    ]
    return PerformanceAggregator().aggregate(records)



def make_named_entities(*names: str) -> tuple[EntityStats, ...]:
    """Build one student per name, ids counting from 1, in that order."""
    records = [
        MergedRecord(id=f"{index}", display_name=name, category="Math", timestamp="2024-01-10", score=1.0)
        for index, name in enumerate(names, start=1)
    ]
    return PerformanceAggregator().aggregate(records)


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_analysis_config.cache_clear()
    get_generation_settings.cache_clear()
    yield
    get_analysis_config.cache_clear()
    get_generation_settings.cache_clear()


@pytest.fixture()
def analysis_config() -> AnalysisConfig:
    return AnalysisConfig()


@pytest.fixture()
def generation_settings() -> GenerationSettings:
    return GenerationSettings(adapter="mock", pacing_delay_seconds=0.0, timeout_seconds=5.0)


@pytest.fixture()
def roster_rows() -> list[dict]:
    return [
        {"id": 1, "name": "Ann"},
        {"id": 2, "name": "Bo"},
        {"id": 3, "name": "Cy"},
    ]


@pytest.fixture()
def activity_rows() -> list[dict]:
    return [
        {"id": 1, "score": 1, "cat": "Math", "ts": "2024-01-10"},
        {"id": 1, "score": 1, "cat": "Math", "ts": "2024-01-10"},
        {"id": 9, "score": 1},
    ]


@pytest.fixture()
def entity_factory():
    return make_entities


@pytest.fixture()
def named_entity_factory():
    return make_named_entities
