"""
app/api/routers/report_router.py

Classroom report HTTP endpoints.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Sequence

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status

from app.api.dependencies import ensure_csv_upload, get_llm_adapter
from app.config import get_analysis_config, get_generation_settings
from app.schemas.report import ReportRequest
from app.services.analysis_session import AnalysisSession
from app.services.table_reader import TableFormatError, read_csv_rows
from llm_synthesis.adapter import BaseLLMAdapter
from llm_synthesis.orchestrator import ReportGenerationError
from llm_synthesis.schema import FinalReport

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reports", tags=["reports"])


async def _run_session(
    adapter: BaseLLMAdapter,
    roster_rows: Sequence[dict[str, Any]],
    activity_rows: Sequence[dict[str, Any]],
    batch_size: int | None,
    single_shot_threshold: int | None,
) -> FinalReport:
    config = get_analysis_config()
    overrides: dict[str, int] = {}
    if batch_size is not None:
        overrides["batch_size"] = batch_size
    if single_shot_threshold is not None:
        overrides["single_shot_threshold"] = single_shot_threshold
    if overrides:
        config = replace(config, **overrides)

    session = AnalysisSession(adapter, config=config, settings=get_generation_settings())
    try:
        return await session.run(roster_rows, activity_rows)
    except ReportGenerationError as exc:
        logger.error("Report generation failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Report generation failed. The generation service did not return a usable response.",
        ) from exc


@router.post("", response_model=FinalReport)
async def create_report(
    payload: ReportRequest,
    adapter: BaseLLMAdapter = Depends(get_llm_adapter),
) -> FinalReport:
    """
    Generate a report from already-decoded roster and activity rows.
    """

    return await _run_session(
        adapter,
        payload.roster_rows,
        payload.activity_rows,
        payload.batch_size,
        payload.single_shot_threshold,
    )


@router.post("/csv", response_model=FinalReport)
async def create_report_from_csv(
    roster: UploadFile = File(...),
    activity: UploadFile = File(...),
    batch_size: int | None = Query(default=None, ge=1),
    single_shot_threshold: int | None = Query(default=None, ge=0),
    adapter: BaseLLMAdapter = Depends(get_llm_adapter),
) -> FinalReport:
    """
    Generate a report from two uploaded CSV files.
    """

    ensure_csv_upload(roster, "roster")
    ensure_csv_upload(activity, "activity")
    try:
        roster_rows = read_csv_rows(roster.file)
        activity_rows = read_csv_rows(activity.file)
    except TableFormatError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    finally:
        roster.file.close()
        activity.file.close()

    if not roster_rows:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Roster CSV contains no rows.",
        )

    return await _run_session(adapter, roster_rows, activity_rows, batch_size, single_shot_threshold)
