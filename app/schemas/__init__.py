"""
app/schemas package marker.
"""

from app.schemas.report import HealthResponse, ReportRequest

__all__ = [
    "HealthResponse",
    "ReportRequest",
]
