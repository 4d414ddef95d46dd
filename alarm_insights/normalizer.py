"""
Event Normalizer

Turns raw export rows plus a ColumnMapping into canonical, time-ordered events.

- Rows are processed in batches; the coroutine yields between batches and reports progress
  so a single-threaded host stays responsive.
- Composite tags keep otherwise identical tags apart, e.g. "LC5003 HI_ALM" vs "LC5003 LO_ALM".
- A final sort runs only when sampling the head and tail of the output finds an inversion.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
import math
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import pandas as pd

from .config import INGEST_BATCH_SIZE
from .schemas import CanonicalEvent, ColumnMapping, IngestError, IngestResult
from .stats import extract_priority
from .timestamps import DateFormatCache, is_missing, resolve_timestamp

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, str], Union[None, Awaitable[None]]]

# Lower-cased journal keywords; both checks run independently
ALARM_KEYWORDS = ("alarm", "alm")
CHANGE_KEYWORDS = ("change", "action", "event")

UNKNOWN_TAG = "UNKNOWN"
UNKNOWN_UNIT = "Unknown"

SORT_SAMPLE_SIZE = 10
BATCH_PROGRESS_CEILING = 90.0  # batch progress fills 0-90; sort and completion take the rest


def _text(row: Mapping[str, Any], column: Optional[str]) -> str:
    """Raw cell as a string; missing, None and NaN become ''."""
    if not column:
        return ""
    value = row.get(column)
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    return str(value)


def classify_journal(journal_value: str) -> Tuple[bool, bool]:
    """Return (is_alarm, is_change) for a journal/type cell."""
    if not journal_value:
        return False, False
    lowered = journal_value.lower()
    is_alarm = any(k in lowered for k in ALARM_KEYWORDS)
    is_change = any(k in lowered for k in CHANGE_KEYWORDS)
    return is_alarm, is_change


def build_composite_tag(base_tag: str, is_alarm: bool, is_change: bool, state: str, param: str) -> str:
    if is_alarm and state.strip():
        return f"{base_tag} {state.strip()}"
    if is_change and param.strip():
        return f"{base_tag} {param.strip()}"
    return base_tag


def needs_sort(events: Sequence[CanonicalEvent]) -> bool:
    """Cheap sortedness probe over the first and last few events (not a full proof)."""
    n = len(events)
    if n < 2:
        return False
    sample = min(SORT_SAMPLE_SIZE, n // 2)
    for i in range(1, sample):
        if events[i].timestamp < events[i - 1].timestamp:
            return True
    for i in range(n - sample + 1, n):
        if events[i].timestamp < events[i - 1].timestamp:
            return True
    return False


def normalize_row(row: Mapping[str, Any], mapping: ColumnMapping, timestamp: int) -> CanonicalEvent:
    is_alarm, is_change = classify_journal(_text(row, mapping.journal))
    base_tag = _text(row, mapping.tag).strip() or UNKNOWN_TAG
    tag = build_composite_tag(
        base_tag,
        is_alarm,
        is_change,
        _text(row, mapping.alarm_state),
        _text(row, mapping.action_parameter),
    )
    priority_raw = _text(row, mapping.priority)
    descriptions = [d for d in (_text(row, c).strip() for c in mapping.descriptive_columns) if d]
    return CanonicalEvent(
        timestamp=timestamp,
        base_tag=base_tag,
        tag=tag,
        unit=_text(row, mapping.unit).strip() or UNKNOWN_UNIT,
        priority=extract_priority(priority_raw) if priority_raw else "low",
        is_alarm=is_alarm,
        is_change=is_change,
        descriptions=descriptions,
        raw=dict(row),
    )


async def _report(on_progress: Optional[ProgressCallback], percent: float, message: str) -> None:
    if on_progress is None:
        return
    result = on_progress(percent, message)
    if inspect.isawaitable(result):
        await result


async def process_data_with_mappings(
    raw_rows: Sequence[Mapping[str, Any]],
    mapping: ColumnMapping,
    on_progress: Optional[ProgressCallback] = None,
    *,
    cache: Optional[DateFormatCache] = None,
    batch_size: int = INGEST_BATCH_SIZE,
    max_rows: Optional[int] = None,
) -> IngestResult:
    """
    Normalize raw rows into canonical events.

    Args:
        raw_rows: Parsed rows (header -> raw value).
        mapping: Column mapping; timestamp/tag/journal should be set.
        on_progress: Optional callback(percent, message), sync or async.
        cache: Date format cache for this ingest; reset before use. A fresh one is created if omitted.
        batch_size: Rows per progress/yield checkpoint.
        max_rows: Optional cap; extra rows are dropped with a FileTooLarge error entry.

    Returns:
        IngestResult with the events and row counters.
    """
    cache = cache if cache is not None else DateFormatCache()
    cache.reset()
    batch_size = max(1, int(batch_size))

    errors: List[IngestError] = []
    rows = raw_rows
    if max_rows is not None and len(rows) > max_rows:
        errors.append(IngestError(
            type="FileTooLarge",
            message=f"File too large. Processing first {max_rows:,} rows only.",
        ))
        rows = rows[:max_rows]

    events: List[CanonicalEvent] = []
    total = len(rows)
    skipped = 0

    for batch_start in range(0, total, batch_size):
        batch_end = min(batch_start + batch_size, total)
        for i in range(batch_start, batch_end):
            row = rows[i]
            ts_raw = _text(row, mapping.timestamp)
            if not ts_raw.strip():
                skipped += 1
                continue
            timestamp = resolve_timestamp(ts_raw, cache)
            if is_missing(timestamp):
                skipped += 1
                continue
            events.append(normalize_row(row, mapping, int(timestamp)))

        await _report(
            on_progress,
            batch_end / total * BATCH_PROGRESS_CEILING,
            f"Processed {len(events):,} rows, skipped {skipped}...",
        )
        await asyncio.sleep(0)

    logger.info(f"Processing complete: {len(events)} rows processed, {skipped} skipped")

    did_sort = needs_sort(events)
    if did_sort:
        logger.info("Sorting data by timestamp...")
        await _report(on_progress, 95.0, "Sorting data...")
        events.sort(key=lambda e: e.timestamp)

    await _report(on_progress, 100.0, "Processing complete!")

    return IngestResult(
        events=events,
        processed_rows=len(events),
        skipped_rows=skipped,
        sorted=did_sort,
        errors=errors,
    )


def rows_from_frame(
    df: pd.DataFrame,
    max_rows: Optional[int] = None,
) -> Tuple[List[str], List[Dict[str, Any]], List[IngestError]]:
    """
    Convert an already-parsed DataFrame into (headers, rows, errors).

    Values are stringified, fully empty rows are dropped and an optional row cap is applied
    with a FileTooLarge error entry.
    """
    if df is None:
        return [], [], []
    headers = [str(c) for c in df.columns]
    errors: List[IngestError] = []
    if df.empty:
        return headers, [], errors

    if max_rows is not None and len(df) > max_rows:
        errors.append(IngestError(
            type="FileTooLarge",
            message=f"File too large. Processing first {max_rows:,} rows only.",
        ))
        df = df.iloc[:max_rows]

    rows: List[Dict[str, Any]] = []
    for rec in df.to_dict(orient="records"):
        row = {str(k): ("" if pd.isna(v) else str(v)) for k, v in rec.items()}
        if any(v.strip() for v in row.values()):
            rows.append(row)
    return headers, rows, errors
