"""Timestamp format detection for alarm exports.

A dataset's timestamp format is detected once, on the first row that parses, and then
reused for every following row of the same ingest. Naive timestamps are read as UTC
wall-clock time so hour-of-day statistics reflect the times printed in the file.
"""
from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from functools import lru_cache
from typing import Optional, Tuple, Union

import pandas as pd

logger = logging.getLogger(__name__)

AUTO = "auto"

# Tried in order with strict matching; month/day variants come before day/month
EXPLICIT_FORMATS = [
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %I:%M:%S %p",
    "%d/%m/%Y %H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%d-%m-%Y %H:%M:%S",
    "%m-%d-%Y %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S.%f",
    "%Y-%m-%dT%H:%M:%S.%f",
]

NAN = float("nan")


class DateFormatCache:
    """Detected format for one ingest batch. Use one instance per concurrent ingestion."""

    def __init__(self) -> None:
        self.format: Optional[str] = None

    def reset(self) -> None:
        self.format = None

    @property
    def detected(self) -> bool:
        return self.format is not None

    def __repr__(self) -> str:
        return f"DateFormatCache(format={self.format!r})"


def _clean(date_string: str) -> str:
    return " ".join(str(date_string).split())


def _to_epoch_ms(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(round(dt.timestamp() * 1000))


def _parse_strict(s: str, fmt: str) -> Optional[int]:
    try:
        return _to_epoch_ms(datetime.strptime(s, fmt))
    except ValueError:
        return None


@lru_cache(maxsize=None)
def cached_format_variants(fmt: str) -> Tuple[str, ...]:
    """
    Formats tried, in order, for rows after detection.

    The detected format first, then the same layout with or without fractional seconds and
    with or without seconds, so a mixed-precision export keeps every row.
    """
    variants = [fmt]
    if ".%f" in fmt:
        variants.append(fmt.replace(".%f", ""))
        variants.append(fmt.replace(":%S.%f", ""))
    elif ":%S" in fmt:
        variants.append(fmt.replace(":%S", ":%S.%f"))
        variants.append(fmt.replace(":%S", ""))
    elif "%M" in fmt:
        variants.append(fmt.replace("%M", "%M:%S"))
        variants.append(fmt.replace("%M", "%M:%S.%f"))
    return tuple(dict.fromkeys(variants))


def _parse_cached(s: str, fmt: str) -> Optional[int]:
    for variant in cached_format_variants(fmt):
        parsed = _parse_strict(s, variant)
        if parsed is not None:
            return parsed
    # Last resort: the cached layout matched anywhere in the string, trailing text ignored
    try:
        ts = pd.to_datetime(s, format=fmt, exact=False, errors="coerce", utc=True)
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(ts):
        return None
    return int(ts.value // 1_000_000)


def _parse_lenient(s: str) -> Optional[int]:
    try:
        ts = pd.to_datetime(s, errors="coerce", utc=True)
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(ts):
        return None
    return int(ts.value // 1_000_000)


def resolve_timestamp(date_string: str, cache: DateFormatCache) -> Union[int, float]:
    """
    Parse a timestamp string to epoch milliseconds.

    On the first call of a batch the explicit formats are tried strictly; the first hit is
    cached. If none matches, permissive parsing is used and the "auto" sentinel is cached.
    Later calls apply the cached choice without re-detection. A cached explicit format also
    accepts rows that add or drop seconds or fractional seconds.

    Returns:
        Epoch milliseconds, or NaN when the string cannot be parsed.
    """
    if date_string is None:
        return NAN
    s = _clean(date_string)
    if not s:
        return NAN

    if cache.format == AUTO:
        parsed = _parse_lenient(s)
        return NAN if parsed is None else parsed
    if cache.format is not None:
        parsed = _parse_cached(s, cache.format)
        return NAN if parsed is None else parsed

    for fmt in EXPLICIT_FORMATS:
        parsed = _parse_strict(s, fmt)
        if parsed is not None:
            cache.format = fmt
            logger.info(f"Detected date format: {fmt}")
            return parsed

    parsed = _parse_lenient(s)
    if parsed is not None:
        cache.format = AUTO
        logger.info(f"No explicit date format matched '{s}'; using permissive parsing")
        return parsed
    return NAN


def is_missing(value: Union[int, float]) -> bool:
    return isinstance(value, float) and math.isnan(value)
