"""
tests/test_run_report_cli.py
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

from scripts import run_report


@pytest.fixture()
def tables(tmp_path: Path) -> tuple[Path, Path]:
    roster = tmp_path / "roster.csv"
    roster.write_text("id,name\n1,Ann\n2,Bo\n3,Cy\n", encoding="utf-8")
    activity = tmp_path / "activity.json"
    activity.write_text(
        json.dumps(
            [
                {"id": 1, "score": 1, "cat": "Math", "ts": "2024-01-10"},
                {"id": 1, "score": 1, "cat": "Math", "ts": "2024-01-10"},
                {"id": 9, "score": 1},
            ]
        ),
        encoding="utf-8",
    )
    return roster, activity


def test_prepare_only_prints_counters(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], tables: tuple[Path, Path]
) -> None:
    roster, activity = tables
    monkeypatch.setenv("LLM_ADAPTER", "mock")
    monkeypatch.setattr(
        sys, "argv", ["run_report", "--roster", str(roster), "--activity", str(activity), "--prepare-only"]
    )

    assert run_report.main() == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["matched_records"] == 2
    assert payload["inactive_names"] == ["Bo", "Cy"]
    assert payload["entities"][0]["participation_count"] == 1


def test_full_run_with_mock_adapter(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], tables: tuple[Path, Path]
) -> None:
    roster, activity = tables
    monkeypatch.setenv("LLM_ADAPTER", "mock")
    monkeypatch.setattr(sys, "argv", ["run_report", "--roster", str(roster), "--activity", str(activity)])

    assert run_report.main() == 0
    report = json.loads(capsys.readouterr().out)
    assert report["mode"] == "single"
    assert report["evaluations"][0]["display_name"] == "Ann"


def test_missing_file_exits_with_2(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr(
        sys, "argv", ["run_report", "--roster", str(tmp_path / "nope.csv"), "--activity", str(tmp_path / "nope.json")]
    )
    assert run_report.main() == 2


def test_non_utf8_json_exits_with_2(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], tables: tuple[Path, Path], tmp_path: Path
) -> None:
    roster, _ = tables
    activity = tmp_path / "legacy.json"
    activity.write_bytes('[{"id": 1, "name": "甲"}]'.encode("gbk"))
    monkeypatch.setattr(sys, "argv", ["run_report", "--roster", str(roster), "--activity", str(activity)])

    assert run_report.main() == 2
    assert "UTF-8" in capsys.readouterr().err


def test_unknown_adapter_exits_with_3(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], tables: tuple[Path, Path]
) -> None:
    roster, activity = tables
    monkeypatch.setenv("LLM_ADAPTER", "carrier-pigeon")
    monkeypatch.setattr(sys, "argv", ["run_report", "--roster", str(roster), "--activity", str(activity)])

    assert run_report.main() == 3
    assert "LLM_ADAPTER" in capsys.readouterr().err


def test_missing_client_library_exits_with_3(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], tables: tuple[Path, Path]
) -> None:
    roster, activity = tables

    def _no_client():
        raise ImportError("openai package is required for OpenAILLMAdapter.")

    monkeypatch.setenv("LLM_ADAPTER", "mock")
    monkeypatch.setattr(run_report, "build_llm_adapter", _no_client)
    monkeypatch.setattr(sys, "argv", ["run_report", "--roster", str(roster), "--activity", str(activity)])

    assert run_report.main() == 3
    assert "openai" in capsys.readouterr().err
