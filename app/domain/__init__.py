"""
app/domain package marker.
"""

from app.domain.classroom import (
    ActivityRecord,
    Anomaly,
    Batch,
    BucketStats,
    ClassSummary,
    EntityStats,
    MergedRecord,
    RosterEntry,
    Trend,
    UnmatchedRecord,
)

__all__ = [
    "ActivityRecord",
    "Anomaly",
    "Batch",
    "BucketStats",
    "ClassSummary",
    "EntityStats",
    "MergedRecord",
    "RosterEntry",
    "Trend",
    "UnmatchedRecord",
]
