"""
app/mappers package marker.
"""

from app.mappers.field_extractor import (
    DEFAULT_FIELD_CANDIDATES,
    FieldCandidates,
    FieldExtractor,
    normalize_header,
)

__all__ = [
    "DEFAULT_FIELD_CANDIDATES",
    "FieldCandidates",
    "FieldExtractor",
    "normalize_header",
]
