"""Pydantic schemas for canonical events, sessions, statistics and diagnosis reports."""
from __future__ import annotations

from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, List, Literal, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

Priority = Literal["high", "medium", "low"]
DataType = Literal["datetime", "number", "string", "unknown"]
ChangeType = Literal["SP", "OP", "MODE"]
Confidence = Literal["High", "Medium", "Low"]

REQUIRED_FIELDS = ("timestamp", "tag", "journal")

# Raw-row keys that carry free text in common exports
DESCRIPTION_KEYS = ("Desc1", "Desc2", "Description", "Message")


# ---------------- Column mapping ----------------
class ColumnMapping(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    timestamp: Optional[str] = None
    tag: Optional[str] = None
    journal: Optional[str] = None
    priority: Optional[str] = None
    unit: Optional[str] = None
    alarm_state: Optional[str] = Field(None, alias="alarmState")
    action_parameter: Optional[str] = Field(None, alias="actionParameter")
    descriptive_columns: List[str] = Field(default_factory=list, alias="descriptiveColumns")

    def missing_required(self) -> List[str]:
        return [f for f in REQUIRED_FIELDS if not getattr(self, f)]

    def is_valid(self) -> bool:
        return not self.missing_required()


class ColumnAnalysis(BaseModel):
    name: str
    samples: List[str] = Field(default_factory=list)
    data_type: DataType = "unknown"
    null_count: int = 0
    suggested_mapping: Optional[str] = None


class MappingValidation(BaseModel):
    is_valid: bool
    missing_required: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class ColumnAnalysisResult(BaseModel):
    mappings: ColumnMapping
    column_analysis: Dict[str, ColumnAnalysis] = Field(default_factory=dict)
    validation: MappingValidation
    headers: List[str] = Field(default_factory=list)


# ---------------- Events & sessions ----------------
class CanonicalEvent(BaseModel):
    """One normalized log row. `raw` keeps the source row for provenance."""

    model_config = ConfigDict(frozen=True)

    timestamp: int
    base_tag: str
    tag: str
    unit: str = "Unknown"
    priority: Priority = "low"
    is_alarm: bool = False
    is_change: bool = False
    descriptions: Tuple[str, ...] = ()
    raw: Mapping[str, Any] = Field(default_factory=dict, validate_default=True)

    @field_validator("raw")
    @classmethod
    def _freeze_raw(cls, v: Mapping[str, Any]) -> Mapping[str, Any]:
        # Read-only view over a private copy of the source row
        return MappingProxyType(dict(v))

    @field_serializer("raw")
    def _dump_raw(self, v: Mapping[str, Any]) -> Dict[str, Any]:
        return dict(v)

    def unique_id(self) -> str:
        # Alarms and changes on the same tag must not collide in counts
        if not self.tag:
            return "UNKNOWN"
        if self.is_alarm:
            return f"[A] {self.tag}"
        if self.is_change:
            return f"[C] {self.tag}"
        return f"[E] {self.tag}"

    def description_text(self) -> str:
        parts: List[str] = []
        for text in list(self.descriptions) + [self.raw.get(k) for k in DESCRIPTION_KEYS]:
            if text is None:
                continue
            s = str(text).strip()
            if s and s not in parts:
                parts.append(s)
        return " | ".join(parts)


class Session(BaseModel):
    """Caller-built grouping of consecutive events (grouping rule lives outside this package)."""

    events: List[CanonicalEvent] = Field(default_factory=list)
    duration: float = 0.0  # milliseconds
    alarms: int = 0
    actions: int = 0

    @classmethod
    def from_events(cls, events: List[CanonicalEvent]) -> "Session":
        events = list(events)
        duration = float(events[-1].timestamp - events[0].timestamp) if events else 0.0
        return cls(
            events=events,
            duration=duration,
            alarms=sum(1 for e in events if e.is_alarm),
            actions=sum(1 for e in events if e.is_change),
        )


class IngestError(BaseModel):
    type: str
    message: str


class IngestResult(BaseModel):
    events: List[CanonicalEvent] = Field(default_factory=list)
    processed_rows: int = 0
    skipped_rows: int = 0
    sorted: bool = False
    errors: List[IngestError] = Field(default_factory=list)


# ---------------- Statistics ----------------
class AlarmStatistics(BaseModel):
    total_events: int
    total_alarms: int
    total_actions: int
    total_sessions: int
    avg_session_duration: float = 0.0
    avg_alarms_per_session: float = 0.0
    avg_actions_per_session: float = 0.0
    top_tags: List[Tuple[str, int]] = Field(default_factory=list)
    top_patterns: List[Tuple[str, int]] = Field(default_factory=list)
    hourly_distribution: List[int] = Field(default_factory=lambda: [0] * 24)
    priority_distribution: Dict[str, int] = Field(default_factory=dict)
    top_starting_events: List[Tuple[str, int]] = Field(default_factory=list)
    avg_alarm_rate: float = 0.0
    percent_time_in_flood: float = 0.0
    flood_periods: int = 0
    time_in_flood_ms: int = 0
    top_chattering_alarms: List[Tuple[str, int]] = Field(default_factory=list)


# ---------------- Control loop diagnosis ----------------
def _parse_iso_ms(value: str) -> int:
    s = value.strip()
    if s and "T" not in s and " " in s:
        s = s.replace(" ", "T")
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


class ExtractedChange(BaseModel):
    timestamp: int
    type: ChangeType
    old_val: Optional[float] = None
    new_val: Union[float, str]

    @field_validator("timestamp", mode="before")
    @classmethod
    def _coerce_timestamp(cls, v: Any) -> Any:
        if isinstance(v, str):
            stripped = v.strip()
            try:
                return int(float(stripped))
            except ValueError:
                return _parse_iso_ms(stripped)
        if isinstance(v, float):
            return int(v)
        return v

    @field_validator("old_val", mode="before")
    @classmethod
    def _numeric_old_val(cls, v: Any) -> Any:
        # Non-numeric prior values (e.g. a previous mode name) are unknown as numbers
        if isinstance(v, str):
            try:
                return float(v.strip())
            except ValueError:
                return None
        return v

    @field_validator("type", mode="before")
    @classmethod
    def _upper_type(cls, v: Any) -> Any:
        return v.strip().upper() if isinstance(v, str) else v


class DiagnosisIssue(BaseModel):
    type: str
    confidence: Confidence
    evidence: str
    recommendation: str


class LoopDiagnosis(BaseModel):
    status: Literal["ok"] = "ok"
    tag: str
    input_tag: str
    analysis_timestamp: str
    events_analyzed: int
    issues_detected: List[DiagnosisIssue] = Field(default_factory=list)
    raw_changes: List[ExtractedChange] = Field(default_factory=list)
    summary: str


class NoDataResult(BaseModel):
    status: Literal["no_data"] = "no_data"
    message: str
    tag: str
    input_tag: str


# ---------------- HTTP payloads ----------------
class ColumnAnalysisRequest(BaseModel):
    headers: List[str]
    rows: List[Dict[str, Any]] = Field(default_factory=list, description="Sample rows (3-5 are enough)")


class NormalizeRequest(BaseModel):
    rows: List[Dict[str, Any]]
    mapping: ColumnMapping
    max_rows: Optional[int] = Field(None, ge=1)


class StatisticsRequest(BaseModel):
    events: List[CanonicalEvent]
    sessions: List[Session] = Field(default_factory=list)


class ControlLoopRequest(BaseModel):
    tag: str = Field(..., description="Full tag as it appears in the data, e.g. 'LT50740 COMM_ALM'")
    sessions: List[Session] = Field(default_factory=list)
