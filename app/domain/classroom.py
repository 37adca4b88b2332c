"""
app/domain/classroom.py

Domain models for roster/activity integration and per-student aggregation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

RawRow = Mapping[str, Any]

UNKNOWN_TIME_BUCKET = "unknown"


class Trend:
    NEEDS_ATTENTION = "NeedsAttention"
    IMPROVING = "Improving"
    GOOD = "Good"
    EXCELLENT = "Excellent"


class AnomalyReason:
    MISSING_ID = "missing id"
    SCORE_OUT_OF_RANGE = "score out of range"


UNMATCHED_REASON = "no roster match"


@dataclass(frozen=True)
class RosterEntry:
    """
    One enrolled student.
    """

    id: str
    display_name: str


@dataclass(frozen=True)
class ActivityRecord:
    """
    One activity row matched against the roster.
    """

    id: str
    display_name: str
    category: str | None
    timestamp: str | None
    score: float | None
    raw_row: RawRow = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class UnmatchedRecord:
    """
    Activity row whose id has no roster entry. Reporting only.
    """

    id: str
    display_name: str | None
    category: str | None
    timestamp: str | None
    score: float | None
    reason: str = UNMATCHED_REASON
    raw_row: RawRow = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class Anomaly:
    """
    Activity row dropped by the validity filter.
    """

    row_number: int
    reason: str
    id: str | None = None
    score: float | None = None


@dataclass(frozen=True)
class MergedRecord:
    """
    Activity records sharing ``(id, timestamp, category)`` folded into one.
    """

    id: str
    display_name: str
    category: str | None
    timestamp: str | None
    score: float | None
    merged_count: int = 1

    @property
    def merge_key(self) -> tuple[str, str | None, str | None]:
        return (self.id, self.timestamp, self.category)


@dataclass(frozen=True)
class BucketStats:
    """
    Count and positive-score total for one category or time bucket.
    """

    count: int = 0
    total_score: float = 0.0
    positive_count: int = 0

    @property
    def average_score(self) -> float:
        return self.total_score / self.count if self.count else 0.0


@dataclass(frozen=True)
class EntityStats:
    """
    Aggregated snapshot for one student. Never mutated after aggregation.
    """

    id: str
    display_name: str
    records: tuple[MergedRecord, ...]
    participation_count: int
    total_score: float
    positive_count: int
    zero_count: int
    unscored_count: int
    category_stats: Mapping[str, BucketStats]
    time_bucket_stats: Mapping[str, BucketStats]
    trend: str
    performance_pattern: str
    excellent_days: int = 0
    excellent_categories: int = 0

    @property
    def average_score(self) -> float:
        if not self.participation_count:
            return 0.0
        return self.total_score / self.participation_count

    @property
    def categories(self) -> tuple[str, ...]:
        return tuple(self.category_stats.keys())

    @property
    def dated_bucket_count(self) -> int:
        return sum(1 for key in self.time_bucket_stats if key != UNKNOWN_TIME_BUCKET)


@dataclass(frozen=True)
class Batch:
    """
    Contiguous, order-preserving slice of the entity list.
    """

    index: int
    total: int
    entities: tuple[EntityStats, ...]

    @property
    def number(self) -> int:
        return self.index + 1

    def __len__(self) -> int:
        return len(self.entities)


@dataclass(frozen=True)
class ClassSummary:
    """
    Class-level counters shared by every prompt of one session.
    """

    total_records: int
    matched_records: int
    unmatched_records: int
    anomaly_count: int
    match_rate: float
    total_class_size: int
    active_entities: int
    inactive_entities: int
    inactive_names: tuple[str, ...] = ()
    categories: tuple[str, ...] = ()
    total_score: float = 0.0
    average_score: float = 0.0

    @property
    def match_rate_percent(self) -> str:
        return f"{self.match_rate * 100:.1f}"
