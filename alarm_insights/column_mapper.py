"""
Column Mapper

Suggests which raw CSV header feeds each canonical event field, using name-matching
rules evaluated in priority order (first match wins per header, first header wins per field):

    timestamp -> tag -> journal -> priority -> unit -> alarm_state -> action_parameter -> descriptive

Alias lists are plain data so a site can extend them without code changes
(see config.ALARM_COLUMN_ALIASES_FILE).
"""
from __future__ import annotations

import re
from itertools import islice
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from .config import load_column_aliases
from .schemas import (
    ColumnAnalysis,
    ColumnAnalysisResult,
    ColumnMapping,
    MappingValidation,
)

DEFAULT_COLUMN_ALIASES: Dict[str, List[str]] = {
    "timestamp": ["TimestampUtc", "Timestamp", "DateTime", "Time", "Date"],
    "tag": ["Tag", "TagName", "AlarmTag", "Name", "Point"],
    "journal": ["Journal", "Type", "EventType", "Category", "Event"],
    "priority": ["Priority", "Severity", "Level", "EventPriority"],
    "unit": ["Unit", "Area", "Plant", "Location", "PlantUnit"],
    "alarm_state": ["Alarm", "AlarmState", "State", "Condition", "SubCondition", "Alarm_Type"],
    "action_parameter": ["Parameter", "Value", "NewValue", "Action_Param", "Target"],
    "descriptive": [
        "Desc1", "Desc2", "DescOne", "DescTwo", "TagDescription", "Module_Description",
        "ModuleDesc", "AlarmDescription", "EventDescription", "Message", "Text", "Comment",
        "State_Source_Comment",
    ],
}

# Header fragments that mark a free-text column even without an alias hit
DESCRIPTIVE_FRAGMENTS = ("desc", "message", "comment")

MAX_SAMPLE_CHARS = 50

_DATE_LIKE = re.compile(r"\d{1,4}[/-]\d{1,2}[/-]\d{1,4}")

FIELD_WARNINGS = {
    "priority": "No priority column found - all alarms will be set to low priority",
    "unit": 'No unit column found - all events will be assigned to "Unknown" unit',
    "alarm_state": "No Alarm State column found - alarms will be grouped by Tag only",
}


def _is_number(value: str) -> bool:
    try:
        float(value)
        return True
    except ValueError:
        return False


def _parses_as_date(value: str) -> bool:
    try:
        return not pd.isna(pd.to_datetime(value, errors="coerce"))
    except (ValueError, TypeError, OverflowError):
        return False


def detect_data_type(samples: Sequence[str]) -> str:
    """Classify a column from its first sample value."""
    if not samples:
        return "unknown"
    first = samples[0]
    if _DATE_LIKE.search(first) or _parses_as_date(first):
        return "datetime"
    if _is_number(first):
        return "number"
    return "string"


def _exact(aliases: Sequence[str]) -> Callable[[str], bool]:
    lowered = [a.lower() for a in aliases]
    return lambda header_lower: header_lower in lowered


def _exact_or_contains(aliases: Sequence[str]) -> Callable[[str], bool]:
    lowered = [a.lower() for a in aliases]
    return lambda header_lower: any(header_lower == a or a in header_lower for a in lowered)


def _descriptive(aliases: Sequence[str]) -> Callable[[str], bool]:
    lowered = [a.lower() for a in aliases]
    return lambda header_lower: (
        any(a in header_lower for a in lowered)
        or any(f in header_lower for f in DESCRIPTIVE_FRAGMENTS)
    )


def build_mapping_rules(aliases: Optional[Mapping[str, Sequence[str]]] = None) -> List[Tuple[str, Callable[[str], bool]]]:
    """Return the ordered (field, predicate) rules; later entries only see unclaimed headers."""
    merged: Dict[str, List[str]] = {k: list(v) for k, v in DEFAULT_COLUMN_ALIASES.items()}
    for key, vals in (aliases or {}).items():
        if key in merged:
            merged[key] = list(vals)
    return [
        ("timestamp", _exact_or_contains(merged["timestamp"])),
        ("tag", _exact(merged["tag"])),
        ("journal", _exact(merged["journal"])),
        ("priority", _exact(merged["priority"])),
        ("unit", _exact(merged["unit"])),
        ("alarm_state", _exact(merged["alarm_state"])),
        ("action_parameter", _exact(merged["action_parameter"])),
        ("descriptive", _descriptive(merged["descriptive"])),
    ]


def _collect_samples(header: str, rows: Sequence[Mapping[str, Any]]) -> Tuple[List[str], int]:
    samples: List[str] = []
    null_count = 0
    for row in rows:
        value = row.get(header)
        if value is None or value == "":
            null_count += 1
        else:
            samples.append(str(value)[:MAX_SAMPLE_CHARS])
    return samples, null_count


def validate_mappings(mapping: ColumnMapping) -> MappingValidation:
    missing = mapping.missing_required()
    warnings = [msg for field, msg in FIELD_WARNINGS.items() if not getattr(mapping, field)]
    return MappingValidation(is_valid=not missing, missing_required=missing, warnings=warnings)


def analyze_columns(
    headers: Sequence[str],
    sample_rows: Sequence[Mapping[str, Any]],
    max_samples: int = 3,
    aliases: Optional[Mapping[str, Sequence[str]]] = None,
) -> ColumnAnalysisResult:
    """
    Suggest a ColumnMapping for the given headers.

    Args:
        headers: CSV headers in file order.
        sample_rows: A few parsed rows (header -> raw value); only the first `max_samples` are read.
        max_samples: Sample rows inspected per column.
        aliases: Optional per-field alias overrides; falls back to the configured alias file.

    Returns:
        ColumnAnalysisResult with mappings, per-column analysis and validation.
    """
    if aliases is None:
        aliases = load_column_aliases()
    rules = build_mapping_rules(aliases)
    rows = list(islice(sample_rows, max_samples))

    assigned: Dict[str, str] = {}
    descriptive: List[str] = []
    column_analysis: Dict[str, ColumnAnalysis] = {}

    for header in headers:
        if not header or not header.strip():
            continue
        header_lower = header.lower()
        samples, null_count = _collect_samples(header, rows)
        suggested: Optional[str] = None

        for field, matches in rules:
            if field in assigned or not matches(header_lower):
                continue
            if field == "descriptive":
                descriptive.append(header)
            else:
                assigned[field] = header
            suggested = field
            break

        column_analysis[header] = ColumnAnalysis(
            name=header,
            samples=samples,
            data_type=detect_data_type(samples),
            null_count=null_count,
            suggested_mapping=suggested,
        )

    mapping = ColumnMapping(**assigned, descriptive_columns=descriptive)
    return ColumnAnalysisResult(
        mappings=mapping,
        column_analysis=column_analysis,
        validation=validate_mappings(mapping),
        headers=[h for h in headers if h and h.strip()],
    )
