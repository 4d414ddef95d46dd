"""
Control Loop Performance Monitoring (CLPM)

Per request: resolve the loop's base tag -> gather its events -> extract SP/OP/MODE changes
through the LLM extractor -> correlate the changes with the loop's alarms.

Diagnoses:
- Ringing / Aggressive Tuning: >= 3 alarms within 15 minutes after a change
- Constraint Violation: an alarm within 2 minutes after a set point change
- Limit Cycle Oscillation: alarms recurring at a near-constant period, independent of changes
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

import numpy as np

from .extraction import ChangeExtractor, OpenAIChangeExtractor
from .schemas import (
    CanonicalEvent,
    DiagnosisIssue,
    ExtractedChange,
    LoopDiagnosis,
    NoDataResult,
    Session,
)

logger = logging.getLogger(__name__)

REACTION_WINDOW_MS = 15 * 60 * 1000
RINGING_MIN_ALARMS = 3
CONSTRAINT_WINDOW_MS = 2 * 60 * 1000
LIMIT_CYCLE_MIN_ALARMS = 10       # strictly more alarms than this before looking for a cycle
LIMIT_CYCLE_MAX_GAP_MS = 20 * 60 * 1000
LIMIT_CYCLE_MIN_INTERVALS = 5     # strictly more intervals than this
LIMIT_CYCLE_MAX_CV = 0.2          # stdDev < 0.2 * mean => periodic
MAX_EXTRACTION_EVENTS = 50

TOOL_NAME = "analyze_control_loop"


def _iso_ms(ms: int) -> str:
    dt = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _js_round(x: float) -> int:
    return int(np.floor(x + 0.5))


def _fmt_value(v: Union[float, str, None]) -> str:
    if isinstance(v, float) and v.is_integer():
        return str(int(v))
    return str(v)


def _belongs_to_loop(event: CanonicalEvent, base_tag: str) -> bool:
    return event.tag.startswith(base_tag) or event.base_tag == base_tag


def derive_base_tag(input_tag: str, sessions: Sequence[Session]) -> str:
    """
    Undo composite-tag construction, e.g. "LT50740 COMM_ALM" -> "LT50740".

    1. An event carrying exactly this tag tells us its base tag.
    2. Otherwise take the text before the first space.
    3. Otherwise the input is already a base tag.
    """
    for session in sessions:
        for event in session.events:
            if event.tag == input_tag and event.base_tag:
                return event.base_tag
    if " " in input_tag:
        return input_tag.split(" ")[0]
    return input_tag


def gather_events_for_extraction(base_tag: str, sessions: Sequence[Session]) -> List[Dict[str, Any]]:
    """Readable log lines for the extractor: loop actions plus any described events, newest 50."""
    events: List[Dict[str, Any]] = []
    seen_timestamps = set()

    for session in sessions:
        for e in session.events:
            if not _belongs_to_loop(e, base_tag):
                continue
            desc = e.description_text()
            if not (e.is_change or desc):
                continue
            if e.timestamp in seen_timestamps:
                continue
            seen_timestamps.add(e.timestamp)
            events.append({
                "id": len(events),
                "timestamp": e.timestamp,
                "text": (
                    f"Time: {_iso_ms(e.timestamp)} | Tag: {e.tag} | "
                    f"Event: {'Action' if e.is_change else 'Alarm'} | Text: {desc}"
                ),
            })

    return events[-MAX_EXTRACTION_EVENTS:]


def _loop_alarms(base_tag: str, sessions: Sequence[Session]) -> List[CanonicalEvent]:
    alarms = [e for s in sessions for e in s.events if e.is_alarm and _belongs_to_loop(e, base_tag)]
    alarms.sort(key=lambda a: a.timestamp)
    return alarms


def _change_issues(change: ExtractedChange, alarms: Sequence[CanonicalEvent]) -> List[DiagnosisIssue]:
    issues: List[DiagnosisIssue] = []
    window_start = change.timestamp
    window_end = window_start + REACTION_WINDOW_MS
    subsequent = [a for a in alarms if window_start <= a.timestamp < window_end]

    if len(subsequent) >= RINGING_MIN_ALARMS:
        tags = list(dict.fromkeys(a.tag for a in subsequent))
        issues.append(DiagnosisIssue(
            type="Ringing / Aggressive Tuning",
            confidence="High",
            evidence=(
                f"After changing {change.type} to {_fmt_value(change.new_val)}, the loop generated "
                f"{len(subsequent)} alarms ({', '.join(tags)}) within 15 minutes."
            ),
            recommendation="Check PID tuning (Gain/Integral). The loop is overshooting the new setpoint.",
        ))

    if subsequent and change.type == "SP":
        time_to_first = subsequent[0].timestamp - window_start
        if time_to_first < CONSTRAINT_WINDOW_MS:
            issues.append(DiagnosisIssue(
                type="Constraint Violation",
                confidence="Medium",
                evidence=(
                    f"Alarm {subsequent[0].tag} triggered {_js_round(time_to_first / 1000)}s "
                    "after Set Point change."
                ),
                recommendation="The new Set Point is too close to the alarm limit.",
            ))
    return issues


def detect_limit_cycle(alarms: Sequence[CanonicalEvent]) -> Optional[DiagnosisIssue]:
    if len(alarms) <= LIMIT_CYCLE_MIN_ALARMS:
        return None
    gaps = np.diff(np.asarray([a.timestamp for a in alarms], dtype=float))
    intervals = gaps[gaps < LIMIT_CYCLE_MAX_GAP_MS]
    if intervals.size <= LIMIT_CYCLE_MIN_INTERVALS:
        return None
    mean = float(intervals.mean())
    std = float(intervals.std())
    if std >= mean * LIMIT_CYCLE_MAX_CV:
        return None
    return DiagnosisIssue(
        type="Limit Cycle Oscillation",
        confidence="High",
        evidence=f"Detected periodic alarming every ~{_js_round(mean / 1000 / 60)} minutes regardless of operator changes.",
        recommendation="Likely Stiction in the valve or aggressive I-term tuning.",
    )


def calculate_oscillation(
    base_tag: str,
    changes: Sequence[ExtractedChange],
    sessions: Sequence[Session],
    input_tag: Optional[str] = None,
) -> LoopDiagnosis:
    """Correlate extracted changes with the loop's alarms. Pure and deterministic."""
    alarms = _loop_alarms(base_tag, sessions)

    issues: List[DiagnosisIssue] = []
    for change in changes:
        issues.extend(_change_issues(change, alarms))

    limit_cycle = detect_limit_cycle(alarms)
    if limit_cycle is not None:
        issues.append(limit_cycle)

    if issues:
        summary = f"Detected {len(issues)} control performance issues for loop {base_tag}."
    else:
        summary = f"Control loop {base_tag} appears stable relative to operator actions."

    return LoopDiagnosis(
        tag=base_tag,
        input_tag=input_tag or base_tag,
        analysis_timestamp=datetime.now(timezone.utc).isoformat(),
        events_analyzed=len(changes),
        issues_detected=issues,
        raw_changes=list(changes),
        summary=summary,
    )


class ControlLoopAnalyzer:
    """Entry point for loop diagnosis. Holds only the extractor; no per-call state."""

    def __init__(self, extractor: Optional[ChangeExtractor] = None) -> None:
        self.extractor: ChangeExtractor = extractor or OpenAIChangeExtractor()

    async def _extract(self, base_tag: str, log_texts: List[str]) -> List[ExtractedChange]:
        try:
            raw = await self.extractor(base_tag, log_texts)
            return [c if isinstance(c, ExtractedChange) else ExtractedChange.model_validate(c) for c in raw or []]
        except Exception as e:
            logger.warning(f"[ControlLoop] Extraction failed for {base_tag}, continuing without changes: {e}")
            return []

    async def analyze_loop_performance(
        self, tag: str, sessions: Sequence[Session]
    ) -> Union[LoopDiagnosis, NoDataResult]:
        base_tag = derive_base_tag(tag, sessions)
        logger.info(f'[ControlLoop] Analyzing request for "{tag}". Derived Base Tag: "{base_tag}"')

        relevant = gather_events_for_extraction(base_tag, sessions)
        if not relevant:
            return NoDataResult(
                message=f"No detailed event logs found for {tag} (Base: {base_tag}) to analyze control performance.",
                tag=base_tag,
                input_tag=tag,
            )

        changes = await self._extract(base_tag, [e["text"] for e in relevant])
        return calculate_oscillation(base_tag, changes, sessions, input_tag=tag)


def get_tool_definition() -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": TOOL_NAME,
            "description": (
                "Specialized analysis for control loops. Use this to check stability, oscillation, or "
                "tuning issues. You MUST provide the FULL tag name exactly as it appears in the data "
                "(e.g., 'LT50740 COMM_ALM'). The system will automatically derive the base controller "
                "tag to find correlated actions."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "tag": {
                        "type": "string",
                        "description": "The FULL tag name to analyze (e.g. 'LT50740 COMM_ALM')",
                    }
                },
                "required": ["tag"],
            },
        },
    }


async def tool_analyze_control_loop(
    args: Dict[str, Any],
    sessions: Sequence[Session],
    analyzer: Optional[ControlLoopAnalyzer] = None,
) -> Dict[str, Any]:
    tag = str(args.get("tag") or "").strip()
    if not tag:
        return {"status": "error", "message": "tag is required"}
    analyzer = analyzer or ControlLoopAnalyzer()
    result = await analyzer.analyze_loop_performance(tag, sessions)
    return result.model_dump()


TOOL_DISPATCH: Dict[str, Callable[..., Awaitable[Dict[str, Any]]]] = {
    TOOL_NAME: tool_analyze_control_loop,
}
