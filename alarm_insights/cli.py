"""Command-line entrypoint: suggest a column mapping or compute statistics for an alarm CSV export."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
from typing import List, Optional, Sequence

import pandas as pd

from .column_mapper import analyze_columns
from .config import INGEST_MAX_ROWS
from .normalizer import process_data_with_mappings, rows_from_frame
from .schemas import CanonicalEvent, Session
from .stats import calculate_statistics

logger = logging.getLogger(__name__)

EXIT_INVALID_MAPPING = 2


def _read_csv(path: str, max_rows: int):
    df = pd.read_csv(path, dtype=str, keep_default_na=False)
    return rows_from_frame(df, max_rows=max_rows)


def _load_sessions(path: Optional[str], events: Sequence[CanonicalEvent]) -> List[Session]:
    """Sessions file: JSON array of arrays of event indexes into the normalized stream."""
    if not path:
        return []
    with open(path, "r", encoding="utf-8") as f:
        groups = json.load(f)
    sessions: List[Session] = []
    for group in groups:
        picked = [events[i] for i in group if 0 <= int(i) < len(events)]
        if picked:
            sessions.append(Session.from_events(picked))
    return sessions


def _print_progress(percent: float, message: str) -> None:
    logger.debug(f"{percent:5.1f}% {message}")


def cmd_columns(args: argparse.Namespace) -> int:
    headers, rows, _ = _read_csv(args.csv, INGEST_MAX_ROWS)
    result = analyze_columns(headers, rows)
    print(result.model_dump_json(indent=2))
    return 0 if result.validation.is_valid else EXIT_INVALID_MAPPING


def cmd_stats(args: argparse.Namespace) -> int:
    headers, rows, errors = _read_csv(args.csv, args.max_rows)
    for err in errors:
        logger.warning(err.message)

    analysis = analyze_columns(headers, rows)
    if not analysis.validation.is_valid:
        logger.error(f"Missing required mappings: {', '.join(analysis.validation.missing_required)}")
        return EXIT_INVALID_MAPPING

    ingest = asyncio.run(process_data_with_mappings(rows, analysis.mappings, _print_progress))
    sessions = _load_sessions(args.sessions, ingest.events)
    stats = calculate_statistics(ingest.events, sessions)

    payload = {
        "processed_rows": ingest.processed_rows,
        "skipped_rows": ingest.skipped_rows,
        "statistics": stats.model_dump() if stats is not None else None,
    }
    print(json.dumps(payload, indent=2, ensure_ascii=False))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="alarm-insights", description="Analyze industrial alarm/event log exports.")
    parser.add_argument("--log-level", dest="log_level", default="INFO",
                        help="Logging level (DEBUG, INFO, WARNING, ERROR)")
    sub = parser.add_subparsers(dest="command", required=True)

    p_cols = sub.add_parser("columns", help="Print the suggested column mapping for a CSV")
    p_cols.add_argument("csv")
    p_cols.set_defaults(func=cmd_columns)

    p_stats = sub.add_parser("stats", help="Normalize a CSV with the suggested mapping and print statistics")
    p_stats.add_argument("csv")
    p_stats.add_argument("--sessions", default=None,
                         help="JSON file with a list of event-index groups, one per session")
    p_stats.add_argument("--max-rows", dest="max_rows", type=int, default=INGEST_MAX_ROWS,
                         help=f"Row cap (default: {INGEST_MAX_ROWS:,})")
    p_stats.set_defaults(func=cmd_stats)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(levelname)s: %(message)s",
    )
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
