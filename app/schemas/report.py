"""
app/schemas/report.py

Request and response schemas for report endpoints.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ReportRequest(BaseModel):
    """
    API request model for generating a report from decoded table rows.
    """

    model_config = ConfigDict(extra="forbid")

    roster_rows: list[dict[str, Any]] = Field(..., min_length=1)
    activity_rows: list[dict[str, Any]] = Field(default_factory=list)
    batch_size: int | None = Field(default=None, ge=1)
    single_shot_threshold: int | None = Field(default=None, ge=0)


class HealthResponse(BaseModel):
    """
    API response model for the health endpoint.
    """

    status: str
    adapter: str
    model: str
