"""
app/services/table_reader.py

Decoding of roster and activity tables into raw row mappings.
"""

from __future__ import annotations

import csv
import io
import json
from pathlib import Path
from typing import IO, Any

from app.domain.classroom import RawRow


class TableFormatError(ValueError):
    """
    Raised when an uploaded table cannot be decoded into rows.
    """


def read_csv_rows(raw_file: IO[bytes]) -> list[RawRow]:
    """
    Decode a UTF-8 CSV stream (BOM tolerated) into one mapping per row.

    Completely empty rows are skipped. The stream is left open for the caller.
    """

    raw_file.seek(0)
    text_stream: io.TextIOWrapper | None = None
    rows: list[RawRow] = []
    try:
        text_stream = io.TextIOWrapper(raw_file, encoding="utf-8-sig", newline="")
        reader = csv.DictReader(text_stream)
        if not reader.fieldnames:
            raise TableFormatError("CSV header row is missing.")
        for raw_row in reader:
            row = {key: value for key, value in raw_row.items() if key is not None}
            if all(value is None or not str(value).strip() for value in row.values()):
                continue
            rows.append(row)
    except UnicodeDecodeError as exc:
        raise TableFormatError("CSV must be UTF-8 encoded.") from exc
    except csv.Error as exc:
        raise TableFormatError(f"Invalid CSV format: {exc}") from exc
    finally:
        if text_stream is not None:
            try:
                text_stream.detach()
            except ValueError:
                pass
    return rows


def read_json_rows(payload: Any) -> list[RawRow]:
    """
    Accept a list of objects, or an object with a ``rows`` list.
    """

    if isinstance(payload, dict):
        payload = payload.get("rows")
    if not isinstance(payload, list):
        raise TableFormatError("JSON table must be a list of objects or an object with a 'rows' list.")
    rows: list[RawRow] = []
    for index, item in enumerate(payload, start=1):
        if not isinstance(item, dict):
            raise TableFormatError(f"JSON row {index} is not an object.")
        rows.append(item)
    return rows


def load_table(path: str | Path) -> list[RawRow]:
    """
    Load a ``.csv`` or ``.json`` file from disk.
    """

    file_path = Path(path)
    suffix = file_path.suffix.lower()
    if suffix == ".csv":
        with file_path.open("rb") as handle:
            return read_csv_rows(handle)
    if suffix == ".json":
        try:
            payload = json.loads(file_path.read_text(encoding="utf-8-sig"))
        except UnicodeDecodeError as exc:
            raise TableFormatError(f"JSON in {file_path.name} must be UTF-8 encoded.") from exc
        except json.JSONDecodeError as exc:
            raise TableFormatError(f"Invalid JSON in {file_path.name}: {exc}") from exc
        return read_json_rows(payload)
    raise TableFormatError(f"Unsupported table format '{suffix or file_path.name}'. Use .csv or .json.")
