"""
Structured log lines for analysis sessions.

Each session milestone (preparation counters, generation outcome, partial
report) is one JSON object, so a run can be reconstructed from the log
alone. Field values may be the session's own value types: pydantic models
such as ``UsageSummary`` and frozen dataclasses are expanded in place.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, is_dataclass
from typing import Any

from pydantic import BaseModel

# Rates and averages are logged at this precision.
FLOAT_DIGITS = 4


def _to_json_value(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump()
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    if isinstance(value, float):
        return round(value, FLOAT_DIGITS)
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    if isinstance(value, tuple):
        return list(value)
    return value


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    **fields: Any,
) -> None:
    """
    Emit one session milestone as compact JSON with an ``event`` key.

    Nothing is serialized when *level* is disabled for *logger*.
    """

    if not logger.isEnabledFor(level):
        return
    payload = {"event": event}
    payload.update((name, _to_json_value(value)) for name, value in fields.items())
    logger.log(level, json.dumps(payload, default=str, ensure_ascii=False, sort_keys=True))
