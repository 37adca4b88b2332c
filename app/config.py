"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

_ALLOWED_ADAPTERS = {"openai", "mock"}

DEFAULT_SYSTEM_PROMPT = (
    "You are an experienced homeroom teacher who analyses classroom "
    "participation data and writes detailed, caring progress reports."
)


def load_env_files() -> None:
    """
    Load simple KEY=VALUE pairs from `.env` and `.env.local` (if present).
    Existing process environment variables are not overwritten.
    """

    project_root = Path(__file__).resolve().parents[1]
    for filename in (".env", ".env.local"):
        env_path = project_root / filename
        if not env_path.exists():
            continue

        for raw_line in env_path.read_text(encoding="utf-8").splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue

            key, value = line.split("=", 1)
            key = key.strip()
            value = value.strip().strip('"').strip("'")
            if key and key not in os.environ:
                os.environ[key] = value


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _get_optional_str_env(name: str) -> str | None:
    """
    Read an optional string value from environment variables.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


@dataclass(frozen=True)
class AnalysisConfig:
    """
    Prompt and batching policy for one analysis session.

    ``batch_size`` and ``single_shot_threshold`` are tunable policy values;
    sets at or below the threshold are generated in a single request.
    """

    use_annotations: bool = True
    min_length: int = 150
    max_length: int = 200
    batch_size: int = 15
    single_shot_threshold: int = 30
    restore_entity_order: bool = False


@dataclass(frozen=True)
class GenerationSettings:
    """
    Runtime settings for the text generation channel.
    """

    adapter: str = "openai"
    model: str = "deepseek-chat"
    temperature: float = 0.7
    max_tokens: int = 6000
    timeout_seconds: float = 30.0
    pacing_delay_seconds: float = 0.5
    max_retries: int = 0
    api_key: str | None = None
    base_url: str | None = None
    system_prompt: str = DEFAULT_SYSTEM_PROMPT


@lru_cache(maxsize=1)
def get_analysis_config() -> AnalysisConfig:
    """
    Return cached analysis policy from environment variables.
    """

    min_length = max(1, _get_int_env("ANALYSIS_MIN_LENGTH", 150))
    return AnalysisConfig(
        use_annotations=_get_bool_env("ANALYSIS_USE_ANNOTATIONS", True),
        min_length=min_length,
        max_length=max(min_length, _get_int_env("ANALYSIS_MAX_LENGTH", 200)),
        batch_size=max(1, _get_int_env("ANALYSIS_BATCH_SIZE", 15)),
        single_shot_threshold=max(0, _get_int_env("ANALYSIS_SINGLE_SHOT_THRESHOLD", 30)),
        restore_entity_order=_get_bool_env("ANALYSIS_RESTORE_ENTITY_ORDER", False),
    )


@lru_cache(maxsize=1)
def get_generation_settings() -> GenerationSettings:
    """
    Return cached generation channel settings from environment variables.

    Raises RuntimeError when LLM_ADAPTER names an unknown adapter.
    """

    adapter = _get_str_env("LLM_ADAPTER", "openai").lower()
    if adapter not in _ALLOWED_ADAPTERS:
        raise RuntimeError(
            f"LLM_ADAPTER '{adapter}' is not valid. "
            f"Allowed values: {sorted(_ALLOWED_ADAPTERS)}."
        )
    return GenerationSettings(
        adapter=adapter,
        model=_get_str_env("LLM_MODEL", "deepseek-chat"),
        temperature=min(2.0, max(0.0, _get_float_env("LLM_TEMPERATURE", 0.7))),
        max_tokens=max(1, _get_int_env("LLM_MAX_TOKENS", 6000)),
        timeout_seconds=max(1.0, _get_float_env("LLM_TIMEOUT_SECONDS", 30.0)),
        pacing_delay_seconds=max(0.0, _get_float_env("LLM_PACING_DELAY_SECONDS", 0.5)),
        max_retries=max(0, _get_int_env("LLM_MAX_RETRIES", 0)),
        api_key=_get_optional_str_env("LLM_API_KEY") or _get_optional_str_env("OPENAI_API_KEY"),
        base_url=_get_optional_str_env("LLM_BASE_URL"),
        system_prompt=_get_str_env("LLM_SYSTEM_PROMPT", DEFAULT_SYSTEM_PROMPT),
    )
