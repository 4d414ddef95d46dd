"""
ISA 18.2 style statistics over a normalized event stream.

Inputs are assumed time-ordered (as produced by the normalizer). Sessions are built by the
caller and only read here.

KPIs:
- Average alarm rate per 10-minute window
- Flood periods (> 10 alarms inside a 10-minute window) and percent time in flood
- Chattering tags (same tag re-alarming within 1 minute)
- Alarm -> operator action patterns inside sessions
- Hourly distribution, priority distribution, starting events
"""
from __future__ import annotations

import re
from collections import Counter
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .schemas import AlarmStatistics, CanonicalEvent, Session

# ISA 18.2 thresholds
FLOOD_WINDOW_MS = 10 * 60 * 1000
FLOOD_THRESHOLD = 10           # strictly more than this many alarms in the window => flood
CHATTER_WINDOW_MS = 60 * 1000  # repeated alarms within 1 minute => chattering

PATTERN_SESSION_LIMIT = 200
PATTERN_LOOKAHEAD = 5

TOP_TAGS = 10
TOP_PATTERNS = 10
TOP_STARTING_EVENTS = 10
TOP_CHATTERING = 5

# Priority number bands: <= 250 high, <= 750 medium, otherwise low
HIGH_PRIORITY_MAX = 250
MEDIUM_PRIORITY_MAX = 750
DEFAULT_PRIORITY_NUMBER = 1000

DISPLAY_GLYPHS = (("[A] ", "⚠️ "), ("[C] ", "✓ "), ("[E] ", ""))

_FIRST_INT = re.compile(r"\d+")


def extract_priority(priority_str: Optional[str]) -> str:
    """Map a priority cell such as "PRIORITY(250)" to high/medium/low."""
    if not priority_str:
        return "low"
    m = _FIRST_INT.search(str(priority_str))
    number = int(m.group(0)) if m else DEFAULT_PRIORITY_NUMBER
    if number <= HIGH_PRIORITY_MAX:
        return "high"
    if number <= MEDIUM_PRIORITY_MAX:
        return "medium"
    return "low"


def format_for_display(label: str) -> str:
    for prefix, glyph in DISPLAY_GLYPHS:
        label = label.replace(prefix, glyph)
    return label


def _top(counter: Counter, n: int, display: bool = False) -> List[Tuple[str, int]]:
    # Counter.most_common keeps first-seen order among equal counts
    out = counter.most_common(n)
    if display:
        return [(format_for_display(k), int(v)) for k, v in out]
    return [(k, int(v)) for k, v in out]


def _mean(values: Iterable[float]) -> float:
    arr = np.asarray(list(values), dtype=float)
    if arr.size == 0:
        return 0.0
    return float(arr.mean())


def detect_flood_periods(alarm_times: Sequence[int]) -> Tuple[int, int]:
    """
    Scan sorted alarm timestamps for ISA floods.

    For each alarm i, extend j while t[j] - t[i] < window. When more than FLOOD_THRESHOLD
    alarms fall in that window, the span t[j-1] - t[i] counts as flood time and the scan
    resumes after the window so overlapping windows are not double counted.

    Returns:
        (time_in_flood_ms, flood_periods)
    """
    n = len(alarm_times)
    time_in_flood = 0
    flood_periods = 0
    i = 0
    j = 0
    while i < n:
        if j < i:
            j = i
        while j < n and alarm_times[j] - alarm_times[i] < FLOOD_WINDOW_MS:
            j += 1
        if j - i > FLOOD_THRESHOLD:
            time_in_flood += alarm_times[j - 1] - alarm_times[i]
            flood_periods += 1
            i = j
        else:
            i += 1
    return time_in_flood, flood_periods


def detect_chattering(alarms: Sequence[CanonicalEvent]) -> Counter:
    """Count back-to-back repeats of the same tag inside the chatter window."""
    chatter: Counter = Counter()
    for prev, cur in zip(alarms, alarms[1:]):
        if prev.tag == cur.tag and (cur.timestamp - prev.timestamp) < CHATTER_WINDOW_MS:
            # First repeat counts both alarms of the pair
            chatter[prev.tag] = (chatter[prev.tag] or 1) + 1
    return chatter


def mine_patterns(sessions: Sequence[Session]) -> Counter:
    """Nearest alarm -> action pairs per session; falls back to alarm -> alarm sequences."""
    patterns: Counter = Counter()
    sample = sessions[:PATTERN_SESSION_LIMIT]

    for session in sample:
        events = session.events
        for i, current in enumerate(events):
            if not current.is_alarm:
                continue
            for nxt in events[i + 1: i + 1 + PATTERN_LOOKAHEAD]:
                if nxt.is_change:
                    patterns[f"{current.unique_id()} → {nxt.unique_id()}"] += 1
                    break

    if patterns:
        return patterns

    for session in sample:
        events = session.events
        for current, nxt in zip(events, events[1:]):
            if current.is_alarm and nxt.is_alarm:
                patterns[f"{current.unique_id()} → {nxt.unique_id()} (alarm sequence)"] += 1
    return patterns


def hourly_distribution(events: Iterable[CanonicalEvent]) -> List[int]:
    buckets = [0] * 24
    for event in events:
        hour = datetime.fromtimestamp(event.timestamp / 1000, tz=timezone.utc).hour
        buckets[hour] += 1
    return buckets


def calculate_statistics(events: Sequence[CanonicalEvent], sessions: Sequence[Session]) -> Optional[AlarmStatistics]:
    """
    Compute the statistics block for one dataset.

    Returns:
        AlarmStatistics, or None when there are no events.
    """
    if not events:
        return None
    sessions = list(sessions or [])

    alarms = [e for e in events if e.is_alarm]
    actions = [e for e in events if e.is_change]

    total_time_ms = events[-1].timestamp - events[0].timestamp
    total_hours = total_time_ms / (1000 * 60 * 60)
    avg_alarm_rate = len(alarms) / (total_hours * 6) if total_hours > 0 else 0.0

    time_in_flood, flood_periods = detect_flood_periods([a.timestamp for a in alarms])
    percent_time_in_flood = (time_in_flood / total_time_ms) * 100 if total_time_ms > 0 else 0.0

    tag_frequency = Counter(e.unique_id() for e in events)
    starting = Counter(
        s.events[0].unique_id() for s in sessions if s.events and s.events[0].is_alarm
    )
    priority_distribution: Dict[str, int] = dict(Counter(a.priority for a in alarms))

    return AlarmStatistics(
        total_events=len(events),
        total_alarms=len(alarms),
        total_actions=len(actions),
        total_sessions=len(sessions),
        avg_session_duration=_mean(s.duration for s in sessions),
        avg_alarms_per_session=_mean(s.alarms for s in sessions),
        avg_actions_per_session=_mean(s.actions for s in sessions),
        top_tags=_top(tag_frequency, TOP_TAGS),
        top_patterns=_top(mine_patterns(sessions), TOP_PATTERNS, display=True),
        hourly_distribution=hourly_distribution(events),
        priority_distribution=priority_distribution,
        top_starting_events=_top(starting, TOP_STARTING_EVENTS, display=True),
        avg_alarm_rate=float(avg_alarm_rate),
        percent_time_in_flood=float(percent_time_in_flood),
        flood_periods=flood_periods,
        time_in_flood_ms=int(time_in_flood),
        top_chattering_alarms=_top(detect_chattering(alarms), TOP_CHATTERING),
    )
