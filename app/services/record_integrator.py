"""
app/services/record_integrator.py

Joins activity rows against the roster.

Rows pass a validity filter first (missing id, score outside [0, 100]);
filtered rows are reported as anomalies and appear in neither the matched
nor the unmatched output. Rows with a valid id are then matched by id and
take their display name from the roster.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Sequence

from app.domain.classroom import (
    ActivityRecord,
    Anomaly,
    AnomalyReason,
    MergedRecord,
    RawRow,
    UnmatchedRecord,
)
from app.mappers.field_extractor import FieldExtractor
from app.services.roster_index import RosterIndex

logger = logging.getLogger(__name__)

MIN_SCORE = 0.0
MAX_SCORE = 100.0


@dataclass(frozen=True)
class IntegrationResult:
    """
    Outcome of joining one activity sheet against the roster.
    """

    matched: tuple[ActivityRecord, ...]
    unmatched: tuple[UnmatchedRecord, ...]
    anomalies: tuple[Anomaly, ...]
    total_rows: int

    @property
    def match_rate(self) -> float:
        """
        Share of raw rows matched to the roster; ``0.0`` for an empty sheet.
        """

        if self.total_rows == 0:
            return 0.0
        return len(self.matched) / self.total_rows


class RecordIntegrator:
    """
    Resolves activity rows into typed records matched against a roster.
    """

    def __init__(self, *, extractor: FieldExtractor | None = None) -> None:
        self._extractor = extractor or FieldExtractor()

    def integrate(self, activity_rows: Sequence[RawRow], roster: RosterIndex) -> IntegrationResult:
        matched: list[ActivityRecord] = []
        unmatched: list[UnmatchedRecord] = []
        anomalies: list[Anomaly] = []

        for row_number, row in enumerate(activity_rows, start=1):
            entity_id = self._extractor.extract_id(row)
            score = self._extractor.extract_score(row)

            if not entity_id:
                anomalies.append(Anomaly(row_number=row_number, reason=AnomalyReason.MISSING_ID, score=score))
                continue
            if score is not None and not MIN_SCORE <= score <= MAX_SCORE:
                logger.warning("Score out of range for id=%s: %s", entity_id, score)
                anomalies.append(
                    Anomaly(
                        row_number=row_number,
                        reason=AnomalyReason.SCORE_OUT_OF_RANGE,
                        id=entity_id,
                        score=score,
                    )
                )
                continue

            category = self._extractor.extract_category(row)
            timestamp = self._extractor.extract_timestamp(row)
            display_name = roster.lookup(entity_id)
            if display_name is None:
                unmatched.append(
                    UnmatchedRecord(
                        id=entity_id,
                        display_name=self._extractor.extract_display_name(row),
                        category=category,
                        timestamp=timestamp,
                        score=score,
                        raw_row=row,
                    )
                )
                continue

            matched.append(
                ActivityRecord(
                    id=entity_id,
                    display_name=display_name,
                    category=category,
                    timestamp=timestamp,
                    score=score,
                    raw_row=row,
                )
            )

        result = IntegrationResult(
            matched=tuple(matched),
            unmatched=tuple(unmatched),
            anomalies=tuple(anomalies),
            total_rows=len(activity_rows),
        )
        logger.info(
            "Integrated %d activity rows: matched=%d unmatched=%d anomalies=%d rate=%.3f",
            result.total_rows,
            len(result.matched),
            len(result.unmatched),
            len(result.anomalies),
            result.match_rate,
        )
        return result


def _max_score(left: float | None, right: float | None) -> float | None:
    if left is None:
        return right
    if right is None:
        return left
    return max(left, right)


def merge_duplicates(records: Iterable[ActivityRecord | MergedRecord]) -> tuple[MergedRecord, ...]:
    """
    Fold records sharing ``(id, timestamp, category)`` into one MergedRecord.

    The folded record keeps the highest score and the summed merge count, so
    applying this to its own output returns the same records.
    """

    merged: dict[tuple[str, str | None, str | None], MergedRecord] = {}
    for record in records:
        count = record.merged_count if isinstance(record, MergedRecord) else 1
        key = (record.id, record.timestamp, record.category)
        existing = merged.get(key)
        if existing is None:
            merged[key] = MergedRecord(
                id=record.id,
                display_name=record.display_name,
                category=record.category,
                timestamp=record.timestamp,
                score=record.score,
                merged_count=count,
            )
            continue
        merged[key] = MergedRecord(
            id=existing.id,
            display_name=existing.display_name,
            category=existing.category,
            timestamp=existing.timestamp,
            score=_max_score(existing.score, record.score),
            merged_count=existing.merged_count + count,
        )

    return tuple(merged.values())
