"""
Generate a classroom participation report from CLI.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import replace

from app.api.dependencies import build_llm_adapter
from app.config import get_analysis_config, get_generation_settings
from app.services.analysis_session import AnalysisSession
from app.services.table_reader import TableFormatError, load_table
from llm_synthesis.orchestrator import ReportGenerationError


def main() -> int:
    parser = argparse.ArgumentParser(description="Generate a classroom participation report.")
    parser.add_argument("--roster", required=True, help="Roster table (.csv or .json).")
    parser.add_argument("--activity", required=True, help="Activity log table (.csv or .json).")
    parser.add_argument(
        "--batch-size",
        dest="batch_size",
        type=int,
        default=None,
        help="Students per generation batch.",
    )
    parser.add_argument(
        "--single-shot-threshold",
        dest="single_shot_threshold",
        type=int,
        default=None,
        help="Largest class generated in one request.",
    )
    parser.add_argument(
        "--prepare-only",
        action="store_true",
        help="Print integration and aggregation counters without generating text.",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").strip().upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        stream=sys.stderr,
    )

    try:
        roster_rows = load_table(args.roster)
        activity_rows = load_table(args.activity)
    except (OSError, TableFormatError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    config = get_analysis_config()
    if args.batch_size is not None:
        config = replace(config, batch_size=max(1, args.batch_size))
    if args.single_shot_threshold is not None:
        config = replace(config, single_shot_threshold=max(0, args.single_shot_threshold))

    try:
        settings = get_generation_settings()
        adapter = build_llm_adapter()
    except (RuntimeError, ImportError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 3

    session = AnalysisSession(adapter, config=config, settings=settings)

    if args.prepare_only:
        prepared = session.prepare(roster_rows, activity_rows)
        summary = prepared.summary
        payload = {
            "total_records": summary.total_records,
            "matched_records": summary.matched_records,
            "unmatched_records": summary.unmatched_records,
            "anomaly_count": summary.anomaly_count,
            "match_rate": summary.match_rate,
            "total_class_size": summary.total_class_size,
            "active_entities": summary.active_entities,
            "inactive_names": list(summary.inactive_names),
            "entities": [
                {
                    "id": entity.id,
                    "display_name": entity.display_name,
                    "participation_count": entity.participation_count,
                    "total_score": entity.total_score,
                    "trend": entity.trend,
                    "performance_pattern": entity.performance_pattern,
                }
                for entity in prepared.entities
            ],
        }
        print(json.dumps(payload, indent=2, ensure_ascii=False))
        return 0

    try:
        report = asyncio.run(session.run(roster_rows, activity_rows))
    except ReportGenerationError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    print(json.dumps(report.model_dump(), indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
