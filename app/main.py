from __future__ import annotations

import logging
import os

from fastapi import FastAPI

from app.config import get_generation_settings, load_env_files
from app.schemas.report import HealthResponse


def _validate_env() -> None:
    """
    Validate all required environment variables at startup.

    Raises RuntimeError listing every missing or invalid variable so the
    operator can fix all problems in one restart cycle.

    Rules:
    - No empty-string API keys are accepted.
    - LLM API key check is skipped only when LLM_ADAPTER=mock.
    """

    load_env_files()

    errors: list[str] = []

    # --- LLM adapter ----------------------------------------------------
    adapter = os.getenv("LLM_ADAPTER", "openai").strip().lower()
    if adapter not in {"openai", "mock"}:
        errors.append(
            f"LLM_ADAPTER='{adapter}' is not valid. Allowed values: ['mock', 'openai']."
        )

    # --- LLM API key ----------------------------------------------------
    if adapter != "mock":
        llm_api_key = os.getenv("LLM_API_KEY", "").strip()
        openai_api_key = os.getenv("OPENAI_API_KEY", "").strip()
        if not llm_api_key and not openai_api_key:
            errors.append(
                "LLM API key is not set. Provide LLM_API_KEY or OPENAI_API_KEY. "
                "Empty strings are not permitted."
            )

    if errors:
        raise RuntimeError(
            "Startup validation failed: missing or invalid environment variables:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )


def _configure_logging() -> None:
    """
    Configure root logging once for the API process.
    """

    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """

    _validate_env()
    _configure_logging()

    application = FastAPI(
        title="Classroom Report API",
        version="1.0.0",
    )

    from app.api.routers import report_router

    application.include_router(report_router)

    @application.get("/health")
    def healthcheck() -> HealthResponse:
        settings = get_generation_settings()
        return HealthResponse(status="ok", adapter=settings.adapter, model=settings.model)

    return application


app = create_app()
