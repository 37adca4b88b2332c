"""
app/api/dependencies.py

Shared FastAPI dependencies for request validation and adapter selection.
"""

from __future__ import annotations

from fastapi import HTTPException, UploadFile, status

from app.config import get_generation_settings
from llm_synthesis.adapter import BaseLLMAdapter, MockLLMAdapter, OpenAILLMAdapter

CSV_CONTENT_TYPES = {
    "text/csv",
    "application/csv",
    "application/vnd.ms-excel",
}


def ensure_csv_upload(file: UploadFile, field_name: str) -> UploadFile:
    """
    Validate that the uploaded file is a CSV by extension or MIME type.
    """

    filename = (file.filename or "").strip().lower()
    content_type = (file.content_type or "").strip().lower()

    is_csv_filename = filename.endswith(".csv")
    is_csv_content_type = content_type in CSV_CONTENT_TYPES

    if not is_csv_filename and not is_csv_content_type:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Only CSV files are allowed for '{field_name}'.",
        )

    return file


def build_llm_adapter() -> BaseLLMAdapter:
    """
    Instantiate the generation adapter named by LLM_ADAPTER.
    """

    settings = get_generation_settings()
    if settings.adapter == "mock":
        return MockLLMAdapter()
    return OpenAILLMAdapter(
        api_key=settings.api_key,
        base_url=settings.base_url,
        default_max_tokens=settings.max_tokens,
    )


def get_llm_adapter() -> BaseLLMAdapter:
    """
    FastAPI dependency returning the configured generation adapter.
    """

    return build_llm_adapter()
