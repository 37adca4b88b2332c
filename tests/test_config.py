"""
tests/test_config.py
"""

from __future__ import annotations

import pytest

from app.config import get_analysis_config, get_generation_settings


class TestAnalysisConfig:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in (
            "ANALYSIS_USE_ANNOTATIONS",
            "ANALYSIS_MIN_LENGTH",
            "ANALYSIS_MAX_LENGTH",
            "ANALYSIS_BATCH_SIZE",
            "ANALYSIS_SINGLE_SHOT_THRESHOLD",
            "ANALYSIS_RESTORE_ENTITY_ORDER",
        ):
            monkeypatch.delenv(name, raising=False)
        config = get_analysis_config()
        assert config.use_annotations is True
        assert (config.min_length, config.max_length) == (150, 200)
        assert (config.batch_size, config.single_shot_threshold) == (15, 30)
        assert config.restore_entity_order is False

    def test_env_overrides_and_clamping(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ANALYSIS_BATCH_SIZE", "0")
        monkeypatch.setenv("ANALYSIS_SINGLE_SHOT_THRESHOLD", "10")
        monkeypatch.setenv("ANALYSIS_USE_ANNOTATIONS", "off")
        monkeypatch.setenv("ANALYSIS_MIN_LENGTH", "300")
        monkeypatch.setenv("ANALYSIS_MAX_LENGTH", "100")
        config = get_analysis_config()
        assert config.batch_size == 1
        assert config.single_shot_threshold == 10
        assert config.use_annotations is False
        assert config.max_length == 300

    def test_invalid_integer_falls_back(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ANALYSIS_BATCH_SIZE", "many")
        assert get_analysis_config().batch_size == 15


class TestGenerationSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LLM_ADAPTER", "mock")
        for name in ("LLM_MODEL", "LLM_TEMPERATURE", "LLM_MAX_TOKENS", "LLM_TIMEOUT_SECONDS", "LLM_PACING_DELAY_SECONDS"):
            monkeypatch.delenv(name, raising=False)
        settings = get_generation_settings()
        assert settings.model == "deepseek-chat"
        assert settings.temperature == 0.7
        assert settings.max_tokens == 6000
        assert settings.timeout_seconds == 30.0
        assert settings.pacing_delay_seconds == 0.5

    def test_api_key_fallback(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("LLM_API_KEY", raising=False)
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        assert get_generation_settings().api_key == "sk-test"

    def test_unknown_adapter_is_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LLM_ADAPTER", "carrier-pigeon")
        with pytest.raises(RuntimeError):
            get_generation_settings()
