"""
app/mappers/field_extractor.py

Candidate-column extraction for loosely typed spreadsheet rows.

Roster and activity sheets are authored by hand, so the same concept can
live under several column names (``学号``, ``Student ID``, ``id`` ...).
Each concept carries an ordered tuple of candidate names; the first
candidate holding a non-empty value wins. Rows are resolved here into
typed values and the untyped row is not consulted again downstream.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

_LEADING_NUMBER = re.compile(r"^\s*([-+]?(?:\d+(?:\.\d*)?|\.\d+))")


def normalize_header(header: str) -> str:
    """
    Normalize a column name for flexible matching.
    """

    return "".join(ch for ch in str(header).strip().lower() if ch.isalnum())


@dataclass(frozen=True)
class FieldCandidates:
    """
    Ordered candidate column names per extracted concept.
    """

    id: tuple[str, ...]
    display_name: tuple[str, ...]
    category: tuple[str, ...]
    timestamp: tuple[str, ...]
    score: tuple[str, ...]


DEFAULT_FIELD_CANDIDATES = FieldCandidates(
    id=("学生座号", "座号", "学号", "seat_no", "ID", "id", "studentId", "student_id", "学生ID"),
    display_name=("学生姓名", "姓名", "name", "studentName", "student_name", "学生名字"),
    category=("科目", "学科", "课程", "subject", "课程名称", "category", "cat"),
    timestamp=("课堂日期", "日期", "date", "时间", "上课日期", "timestamp", "ts"),
    score=("积分", "分数", "points", "score", "加分", "得分"),
)


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return not str(value).strip()


def _to_text(value: Any) -> str:
    # Spreadsheet readers hand back seat numbers as 1.0
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _to_score(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None
    match = _LEADING_NUMBER.match(str(value))
    if match is None:
        return None
    number = float(match.group(1))
    return number if math.isfinite(number) else None


class FieldExtractor:
    """
    Resolves per-concept values from raw rows using candidate column names.
    """

    def __init__(self, candidates: FieldCandidates | None = None) -> None:
        self._candidates = candidates or DEFAULT_FIELD_CANDIDATES

    @property
    def candidates(self) -> FieldCandidates:
        return self._candidates

    def extract_id(self, row: Mapping[str, Any]) -> str | None:
        return self._first_text(row, self._candidates.id)

    def extract_display_name(self, row: Mapping[str, Any]) -> str | None:
        return self._first_text(row, self._candidates.display_name)

    def extract_category(self, row: Mapping[str, Any]) -> str | None:
        return self._first_text(row, self._candidates.category)

    def extract_timestamp(self, row: Mapping[str, Any]) -> str | None:
        return self._first_text(row, self._candidates.timestamp)

    def extract_score(self, row: Mapping[str, Any]) -> float | None:
        """
        Return the first candidate value that parses as a finite number.

        Text such as ``"3分"`` yields its leading number; text with no
        leading number counts as no score.
        """

        for value in self._candidate_values(row, self._candidates.score):
            if _is_blank(value):
                continue
            score = _to_score(value)
            if score is not None:
                return score
        return None

    def _first_text(self, row: Mapping[str, Any], candidates: Sequence[str]) -> str | None:
        for value in self._candidate_values(row, candidates):
            if not _is_blank(value):
                return _to_text(value)
        return None

    @staticmethod
    def _candidate_values(row: Mapping[str, Any], candidates: Sequence[str]) -> list[Any]:
        """
        Return row values in candidate order, exact column names first.
        """

        normalized_lookup: dict[str, str] = {}
        for column in row.keys():
            normalized = normalize_header(column)
            if normalized and normalized not in normalized_lookup:
                normalized_lookup[normalized] = column

        values: list[Any] = []
        for candidate in candidates:
            if candidate in row:
                values.append(row[candidate])
                continue
            column = normalized_lookup.get(normalize_header(candidate))
            if column is not None:
                values.append(row[column])
        return values
