"""
app/services/aggregation_service.py

Per-student aggregation layer.

Translates merged activity records into EntityStats snapshots that the
prompt layer consumes directly.

Scoring conventions
-------------------
A record with a positive score counts as a correct answer and adds to
``total_score``. A score of exactly zero counts as an incorrect answer. A
record without a score (the instructor called on the student and only left a
comment) counts as unscored. Zero and missing scores never contribute to
``total_score``.

Time buckets
------------
Timestamps are parsed against ``YYYY年M月D日``, ``YYYY-MM-DD`` and
``YYYY/MM/DD`` (a trailing time part is ignored) and bucketed by ISO date.
Anything else lands in the ``"unknown"`` bucket.

No prompt wording lives here. Rendering belongs to PromptComposer.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Final, Iterable, Sequence

from app.domain.classroom import (
    UNKNOWN_TIME_BUCKET,
    BucketStats,
    ClassSummary,
    EntityStats,
    MergedRecord,
    RosterEntry,
    Trend,
)
from app.services.record_integrator import IntegrationResult
from app.services.roster_index import RosterIndex

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Thresholds
# ---------------------------------------------------------------------------

TREND_EXCELLENT: Final[float] = 0.8
TREND_GOOD: Final[float] = 0.5
TREND_IMPROVING: Final[float] = 0.3

CATEGORY_EXCELLENT_AVERAGE: Final[float] = 3.0
CATEGORY_GOOD_AVERAGE: Final[float] = 1.0


class PerformancePattern:
    CONSISTENTLY_EXCELLENT = "consistently excellent"
    GOOD = "good"
    FLUCTUATING = "fluctuating"
    NEEDS_ATTENTION = "needs attention"
    NO_DATA = "no data"


_CJK_DATE = re.compile(r"^\s*(\d{4})年(\d{1,2})月(\d{1,2})日")
_SEPARATED_DATE = re.compile(r"^\s*(\d{4})([-/])(\d{1,2})\2(\d{1,2})(?:$|[\sT])")


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def parse_time_bucket(timestamp: str | None) -> str:
    """
    Return the ISO date bucket for *timestamp*, or ``"unknown"``.
    """

    if not timestamp:
        return UNKNOWN_TIME_BUCKET

    match = _CJK_DATE.match(timestamp)
    if match:
        year, month, day = match.group(1), match.group(2), match.group(3)
    else:
        match = _SEPARATED_DATE.match(timestamp)
        if not match:
            return UNKNOWN_TIME_BUCKET
        year, month, day = match.group(1), match.group(3), match.group(4)

    try:
        return date(int(year), int(month), int(day)).isoformat()
    except ValueError:
        return UNKNOWN_TIME_BUCKET


def classify_trend(total_score: float, participation_count: int) -> str:
    """
    Map the per-participation average onto the four trend labels.
    """

    average = total_score / participation_count if participation_count else 0.0
    if average >= TREND_EXCELLENT:
        return Trend.EXCELLENT
    if average >= TREND_GOOD:
        return Trend.GOOD
    if average >= TREND_IMPROVING:
        return Trend.IMPROVING
    return Trend.NEEDS_ATTENTION


def category_performance(stats: BucketStats) -> str:
    if stats.average_score >= CATEGORY_EXCELLENT_AVERAGE:
        return "excellent"
    if stats.average_score >= CATEGORY_GOOD_AVERAGE:
        return "good"
    return "needs_improvement"


def classify_pattern(excellent_days: int, dated_days: int) -> str:
    if dated_days == 0:
        return PerformancePattern.NO_DATA
    rate = excellent_days / dated_days
    if rate >= 0.8:
        return PerformancePattern.CONSISTENTLY_EXCELLENT
    if rate >= 0.6:
        return PerformancePattern.GOOD
    if rate >= 0.4:
        return PerformancePattern.FLUCTUATING
    return PerformancePattern.NEEDS_ATTENTION


@dataclass
class _BucketAccumulator:
    count: int = 0
    total_score: float = 0.0
    positive_count: int = 0

    def add(self, score: float | None) -> None:
        self.count += 1
        if score is not None and score > 0:
            self.total_score += score
            self.positive_count += 1

    def freeze(self) -> BucketStats:
        return BucketStats(
            count=self.count,
            total_score=self.total_score,
            positive_count=self.positive_count,
        )


@dataclass
class _EntityAccumulator:
    id: str
    display_name: str
    first_seen: int
    records: list[MergedRecord] = field(default_factory=list)
    total_score: float = 0.0
    positive_count: int = 0
    zero_count: int = 0
    unscored_count: int = 0
    categories: dict[str, _BucketAccumulator] = field(default_factory=dict)
    time_buckets: dict[str, _BucketAccumulator] = field(default_factory=dict)

    def add(self, record: MergedRecord) -> None:
        self.records.append(record)
        score = record.score
        if score is not None and score > 0:
            self.positive_count += 1
            self.total_score += score
        elif score == 0:
            self.zero_count += 1
        else:
            self.unscored_count += 1

        if record.category:
            self.categories.setdefault(record.category, _BucketAccumulator()).add(score)
        bucket = parse_time_bucket(record.timestamp)
        self.time_buckets.setdefault(bucket, _BucketAccumulator()).add(score)

    def freeze(self) -> EntityStats:
        participation = len(self.records)
        category_stats = {key: acc.freeze() for key, acc in self.categories.items()}
        time_stats = {key: acc.freeze() for key, acc in self.time_buckets.items()}
        dated = [stats for key, stats in time_stats.items() if key != UNKNOWN_TIME_BUCKET]
        excellent_days = sum(1 for stats in dated if stats.positive_count > 0)
        return EntityStats(
            id=self.id,
            display_name=self.display_name,
            records=tuple(self.records),
            participation_count=participation,
            total_score=self.total_score,
            positive_count=self.positive_count,
            zero_count=self.zero_count,
            unscored_count=self.unscored_count,
            category_stats=category_stats,
            time_bucket_stats=time_stats,
            trend=classify_trend(self.total_score, participation),
            performance_pattern=classify_pattern(excellent_days, len(dated)),
            excellent_days=excellent_days,
            excellent_categories=sum(
                1 for stats in category_stats.values() if category_performance(stats) == "excellent"
            ),
        )


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class PerformanceAggregator:
    """
    Groups merged records by student and produces EntityStats snapshots.

    All methods are pure; the returned snapshots are never mutated.
    """

    def aggregate(
        self,
        records: Iterable[MergedRecord],
        roster: RosterIndex | None = None,
    ) -> tuple[EntityStats, ...]:
        """
        Aggregate records into one EntityStats per student with activity.

        Parameters
        ----------
        records:
            Merged activity records, typically from ``merge_duplicates``.
        roster:
            Optional roster used to break participation ties by roster order.

        Returns
        -------
        tuple[EntityStats, ...]
            Sorted by descending ``participation_count``; ties follow roster
            order, then first-seen order for ids outside the roster.
        """

        groups: dict[str, _EntityAccumulator] = {}
        for record in records:
            accumulator = groups.get(record.id)
            if accumulator is None:
                accumulator = _EntityAccumulator(
                    id=record.id,
                    display_name=record.display_name,
                    first_seen=len(groups),
                )
                groups[record.id] = accumulator
            accumulator.add(record)

        def _order(acc: _EntityAccumulator) -> tuple[int, float, int]:
            position = roster.position(acc.id) if roster is not None else None
            return (
                -len(acc.records),
                float(position) if position is not None else float("inf"),
                acc.first_seen,
            )

        entities = tuple(acc.freeze() for acc in sorted(groups.values(), key=_order))
        logger.debug("aggregate → %d entities", len(entities))
        return entities

    @staticmethod
    def inactive_entries(
        roster: RosterIndex,
        entities: Sequence[EntityStats],
    ) -> tuple[RosterEntry, ...]:
        """
        Roster members without any aggregated record, in roster order.
        """

        active_ids = {entity.id for entity in entities}
        return tuple(entry for entry in roster.entries() if entry.id not in active_ids)

    def summarize(
        self,
        roster: RosterIndex,
        integration: IntegrationResult,
        entities: Sequence[EntityStats],
    ) -> ClassSummary:
        """
        Build the class-level counters shared by every prompt of a session.
        """

        inactive = self.inactive_entries(roster, entities)
        categories: dict[str, None] = {}
        for record in integration.matched:
            if record.category:
                categories.setdefault(record.category, None)

        total_score = sum(entity.total_score for entity in entities)
        matched_count = len(integration.matched)
        return ClassSummary(
            total_records=integration.total_rows,
            matched_records=matched_count,
            unmatched_records=len(integration.unmatched),
            anomaly_count=len(integration.anomalies),
            match_rate=integration.match_rate,
            total_class_size=roster.size(),
            active_entities=len(entities),
            inactive_entities=len(inactive),
            inactive_names=tuple(entry.display_name for entry in inactive),
            categories=tuple(categories),
            total_score=total_score,
            average_score=round(total_score / matched_count, 2) if matched_count else 0.0,
        )
