"""
app/services package marker.
"""

from app.services.aggregation_service import PerformanceAggregator
from app.services.batch_planner import plan, should_batch
from app.services.record_integrator import IntegrationResult, RecordIntegrator, merge_duplicates
from app.services.roster_index import RosterIndex

__all__ = [
    "IntegrationResult",
    "PerformanceAggregator",
    "RecordIntegrator",
    "RosterIndex",
    "merge_duplicates",
    "plan",
    "should_batch",
]
