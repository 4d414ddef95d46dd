from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional, Sequence

import pytest

from alarm_insights.schemas import CanonicalEvent, ExtractedChange, Session

MINUTE = 60 * 1000


def ms(year, month, day, hour=0, minute=0, second=0) -> int:
    """Epoch milliseconds for a UTC wall-clock time."""
    return int(datetime(year, month, day, hour, minute, second, tzinfo=timezone.utc).timestamp() * 1000)


T0 = ms(2024, 1, 15, 10, 0, 0)


def make_event(
    timestamp: int,
    tag: str = "T1",
    *,
    is_alarm: bool = True,
    is_change: bool = False,
    base_tag: Optional[str] = None,
    priority: str = "low",
    descriptions: Sequence[str] = (),
    raw: Optional[dict] = None,
) -> CanonicalEvent:
    return CanonicalEvent(
        timestamp=timestamp,
        base_tag=base_tag or tag.split(" ")[0],
        tag=tag,
        priority=priority,
        is_alarm=is_alarm,
        is_change=is_change,
        descriptions=list(descriptions),
        raw=raw or {},
    )


def make_change(timestamp: int, type_: str = "SP", new_val=50.0, old_val=None) -> ExtractedChange:
    return ExtractedChange(timestamp=timestamp, type=type_, old_val=old_val, new_val=new_val)


class StubExtractor:
    """Records calls and returns a canned list (or raises)."""

    def __init__(self, changes: Optional[List[ExtractedChange]] = None, error: Optional[Exception] = None):
        self.changes = changes or []
        self.error = error
        self.calls = []

    async def __call__(self, tag, log_texts):
        self.calls.append((tag, list(log_texts)))
        if self.error is not None:
            raise self.error
        return list(self.changes)


@pytest.fixture
def stub_extractor():
    return StubExtractor()


@pytest.fixture
def sample_rows():
    return [
        {"Timestamp": "01/15/2024 10:00:00", "Tag": "LC5003", "Journal": "Alarm", "Priority": "PRIORITY(250)",
         "Unit": "U1", "Alarm": "HI_ALM", "Parameter": "", "Desc1": "Level high"},
        {"Timestamp": "01/15/2024 10:00:30", "Tag": "LC5003", "Journal": "Alarm", "Priority": "PRIORITY(500)",
         "Unit": "U1", "Alarm": "LO_ALM", "Parameter": "", "Desc1": "Level low"},
        {"Timestamp": "01/15/2024 10:01:00", "Tag": "FIC101", "Journal": "Change", "Priority": "",
         "Unit": "", "Alarm": "", "Parameter": "SP", "Desc1": "SP changed to 50"},
        {"Timestamp": "01/15/2024 10:02:00", "Tag": "", "Journal": "Event", "Priority": "",
         "Unit": "U2", "Alarm": "", "Parameter": "", "Desc1": ""},
    ]


@pytest.fixture
def sample_headers():
    return ["Timestamp", "Tag", "Journal", "Priority", "Unit", "Alarm", "Parameter", "Desc1"]


def one_session(events: Sequence[CanonicalEvent]) -> List[Session]:
    return [Session.from_events(list(events))]
