"""Annotation contract for generated student evaluations.

Every student's narrative must be wrapped in a start and an end marker that
both carry the student's label verbatim, and a response must close
with the terminator once all its students are covered::

    <!-- STUDENT_START:Ann -->
    ...narrative...
    <!-- STUDENT_END:Ann -->
    <!-- STUDENT_ANALYSIS_END -->

A label is the display name, numbered as ``Ann (2)`` when students share a
name.

Validation reports problems as data and never raises.
"""

import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from llm_synthesis.schema import ValidationReport

logger = logging.getLogger(__name__)

START_MARKER = "<!-- STUDENT_START:{name} -->"
END_MARKER = "<!-- STUDENT_END:{name} -->"
TERMINATOR = "<!-- STUDENT_ANALYSIS_END -->"

_START_PATTERN = re.compile(r"<!--\s*STUDENT_START:\s*([^>]+?)\s*-->")
_PAIR_PATTERN = re.compile(
    r"<!--\s*STUDENT_START:\s*(?P<name>[^>]+?)\s*-->"
    r"(?P<body>.*?)"
    r"<!--\s*STUDENT_END:\s*(?P=name)\s*-->",
    re.DOTALL,
)
_END_PATTERN = re.compile(r"<!--\s*STUDENT_END:\s*[^>]+?\s*-->")
_TERMINATOR_PATTERN = re.compile(r"<!--\s*STUDENT_ANALYSIS_END\s*-->")

Expected = Union[str, Any]


def start_marker(name: str) -> str:
    return START_MARKER.format(name=name)


def end_marker(name: str) -> str:
    return END_MARKER.format(name=name)


def _strip_markdown_fences(text: str) -> str:
    """Remove optional markdown code fences wrapping the response.

    Models sometimes wrap output in ```html ... ``` despite instructions.

    Args:
        text: Raw generated text.

    Returns:
        The text with a leading and trailing code fence removed, if present.
    """
    stripped = text.strip()
    stripped = re.sub(r"^```[a-zA-Z]*\s*\n?", "", stripped)
    stripped = re.sub(r"\n?\s*```\s*$", "", stripped)
    return stripped


def clean_generated_text(text: str) -> str:
    """Normalise a raw response: drop code fences, collapse blank runs."""
    if not text:
        return ""
    cleaned = _strip_markdown_fences(text)
    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)
    return cleaned.strip()


def has_annotation_pair(text: str) -> bool:
    return bool(_PAIR_PATTERN.search(text or ""))


def has_terminator(text: str) -> bool:
    return bool(_TERMINATOR_PATTERN.search(text or ""))


def find_start_names(text: str) -> List[str]:
    """Return display names of every start marker, in order of appearance."""
    return [match.group(1).strip() for match in _START_PATTERN.finditer(text or "")]


def extract_annotated_pairs(text: str) -> List[Tuple[str, str]]:
    """Return ``(display_name, body)`` for every well-formed marker pair."""
    return [
        (match.group("name").strip(), match.group("body").strip())
        for match in _PAIR_PATTERN.finditer(text or "")
    ]


def strip_annotations(text: str) -> str:
    """Remove annotated evaluations, stray markers and the terminator."""
    remainder = _PAIR_PATTERN.sub("", text or "")
    remainder = _START_PATTERN.sub("", remainder)
    remainder = _END_PATTERN.sub("", remainder)
    remainder = _TERMINATOR_PATTERN.sub("", remainder)
    return re.sub(r"\n{3,}", "\n\n", remainder).strip()


def entity_identity(item: Expected) -> Tuple[str, str]:
    """Return ``(entity_id, display_name)``; a plain name is its own id."""
    if isinstance(item, str):
        return item, item
    return str(item.id), str(item.display_name)


def assign_labels(expected: Sequence[Expected]) -> Dict[str, str]:
    """Give every entity a marker label that is unique within *expected*.

    The first entity carrying a display name keeps it; later entities with
    the same name get a numbered label such as ``Ann (2)``. Labels never
    collide with another entity's display name.

    Returns:
        Entity id to label, in the order of *expected*.
    """
    identities: List[Tuple[str, str]] = []
    seen_ids = set()
    for item in expected:
        entity_id, name = entity_identity(item)
        if entity_id in seen_ids:
            continue
        seen_ids.add(entity_id)
        identities.append((entity_id, name))

    display_names = {name for _, name in identities}
    taken = set()
    labels: Dict[str, str] = {}
    for entity_id, name in identities:
        label = name
        suffix = 2
        while label in taken or (label != name and label in display_names):
            label = f"{name} ({suffix})"
            suffix += 1
        taken.add(label)
        labels[entity_id] = label
    return labels


def build_name_index(
    expected: Sequence[Expected],
    labels: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    """Map marker labels to entity ids.

    Args:
        expected: Entities, or plain names, the labels refer to.
        labels: Session-wide entity id to label mapping. Computed from
            *expected* when omitted.
    """
    labels = labels if labels is not None else assign_labels(expected)
    index: Dict[str, str] = {}
    for item in expected:
        entity_id, name = entity_identity(item)
        index.setdefault(labels.get(entity_id, name), entity_id)
    return index


class AnnotationValidator:
    """Checks a generation response against the annotation contract."""

    def validate(
        self,
        raw_text: str,
        expected: Sequence[Expected],
        batch_index: int = 0,
        labels: Optional[Mapping[str, str]] = None,
    ) -> ValidationReport:
        """Compare annotated names in *raw_text* with the expected students.

        Args:
            raw_text: The generated response for one batch.
            expected: Expected students, as EntityStats-like objects with
                ``id`` and ``display_name`` or as plain names.
            batch_index: Index of the batch the response belongs to.
            labels: Session-wide entity id to marker label mapping, needed
                when a batch holds only some of the students sharing a name.

        Returns:
            A ValidationReport. Marker names are resolved to entity ids;
            names matching no expected student are listed verbatim in
            ``extra_ids``.
        """
        expected_ids: List[str] = []
        for item in expected:
            entity_id, _ = entity_identity(item)
            if entity_id not in expected_ids:
                expected_ids.append(entity_id)
        name_index = build_name_index(expected, labels)

        found_ids: List[str] = []
        extra_ids: List[str] = []
        for name in find_start_names(raw_text):
            entity_id = name_index.get(name)
            if entity_id is None:
                if name not in extra_ids:
                    extra_ids.append(name)
                continue
            if entity_id not in found_ids:
                found_ids.append(entity_id)

        found = set(found_ids)
        missing_ids = [entity_id for entity_id in expected_ids if entity_id not in found]
        terminated = has_terminator(raw_text)

        report = ValidationReport(
            batch_index=batch_index,
            expected_ids=expected_ids,
            found_ids=found_ids + extra_ids,
            missing_ids=missing_ids,
            extra_ids=extra_ids,
            has_terminator=terminated,
            is_valid=not missing_ids and not extra_ids and terminated,
        )
        if report.is_valid:
            logger.info("Batch %d annotation contract satisfied", batch_index + 1)
        else:
            logger.warning(
                "Batch %d annotation contract violated: %s",
                batch_index + 1,
                "; ".join(report.errors),
            )
        return report
