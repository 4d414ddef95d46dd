import pytest

from alarm_insights.schemas import Session
from alarm_insights.stats import (
    calculate_statistics,
    detect_chattering,
    detect_flood_periods,
    extract_priority,
    format_for_display,
    mine_patterns,
)

from .conftest import MINUTE, T0, make_event, ms, one_session


def test_empty_event_list_yields_none():
    assert calculate_statistics([], []) is None


def test_eleven_alarms_in_five_minutes_is_a_flood():
    alarms = [make_event(T0 + i * 30_000, f"T{i}") for i in range(11)]
    stats = calculate_statistics(alarms, [])
    assert stats.flood_periods >= 1
    assert stats.percent_time_in_flood > 0
    assert stats.time_in_flood_ms == 300_000


def test_ten_alarms_is_not_a_flood():
    alarms = [make_event(T0 + i * 30_000, f"T{i}") for i in range(10)]
    stats = calculate_statistics(alarms, [])
    assert stats.flood_periods == 0
    assert stats.percent_time_in_flood == 0


def test_flood_windows_are_not_double_counted():
    times = [T0 + i * 10_000 for i in range(25)]
    assert detect_flood_periods(times) == (240_000, 1)


def test_two_separate_floods():
    first = [T0 + i * 10_000 for i in range(11)]
    second = [T0 + 60 * MINUTE + i * 10_000 for i in range(12)]
    time_in_flood, periods = detect_flood_periods(first + second)
    assert periods == 2
    assert time_in_flood == 100_000 + 110_000


def test_repeat_within_a_minute_is_chattering():
    alarms = [make_event(T0, "T1"), make_event(T0 + 30_000, "T1")]
    stats = calculate_statistics(alarms, [])
    chatter = dict(stats.top_chattering_alarms)
    assert chatter["T1"] >= 1


def test_chatter_counter_starts_at_two_then_increments():
    alarms = [make_event(T0 + i * 20_000, "T1") for i in range(4)] + [make_event(T0 + 10 * MINUTE, "T2")]
    assert detect_chattering(alarms) == {"T1": 4}


def test_repeat_after_a_minute_is_not_chattering():
    alarms = [make_event(T0, "T1"), make_event(T0 + MINUTE, "T1")]
    assert detect_chattering(alarms) == {}


def test_alarm_rate_per_ten_minutes():
    alarms = [make_event(T0 + i * 12 * MINUTE, f"T{i}") for i in range(6)]
    stats = calculate_statistics(alarms, [])
    # 6 alarms over one hour => one per 10-minute window
    assert stats.avg_alarm_rate == pytest.approx(1.0)


def test_single_instant_has_zero_rate():
    stats = calculate_statistics([make_event(T0)], [])
    assert stats.avg_alarm_rate == 0
    assert stats.percent_time_in_flood == 0


def test_counts_and_distributions():
    events = [
        make_event(ms(2024, 1, 15, 3), "T1", priority="high"),
        make_event(ms(2024, 1, 15, 3, 30), "T1", priority="high"),
        make_event(ms(2024, 1, 15, 5), "T2", priority="medium"),
        make_event(ms(2024, 1, 15, 5, 10), "FIC101 SP", is_alarm=False, is_change=True, priority="high"),
        make_event(ms(2024, 1, 15, 23), "X", is_alarm=False),
    ]
    stats = calculate_statistics(events, [])
    assert stats.total_events == 5
    assert stats.total_alarms == 3
    assert stats.total_actions == 1
    assert stats.total_sessions == 0
    assert stats.priority_distribution == {"high": 2, "medium": 1}
    assert stats.hourly_distribution[3] == 2
    assert stats.hourly_distribution[5] == 2
    assert stats.hourly_distribution[23] == 1
    assert sum(stats.hourly_distribution) == 5
    assert stats.top_tags[0] == ("[A] T1", 2)
    assert ("[C] FIC101 SP", 1) in stats.top_tags
    assert ("[E] X", 1) in stats.top_tags


def test_session_averages_and_starting_events():
    s1 = Session.from_events([make_event(T0, "T1"), make_event(T0 + MINUTE, "T2")])
    s2 = Session.from_events([
        make_event(T0 + 10 * MINUTE, "FIC101 SP", is_alarm=False, is_change=True),
        make_event(T0 + 13 * MINUTE, "T3"),
    ])
    events = s1.events + s2.events
    stats = calculate_statistics(events, [s1, s2])
    assert stats.total_sessions == 2
    assert stats.avg_session_duration == pytest.approx(2 * MINUTE)
    assert stats.avg_alarms_per_session == pytest.approx(1.5)
    assert stats.avg_actions_per_session == pytest.approx(0.5)
    assert stats.top_starting_events == [("⚠️ T1", 1)]


def test_patterns_pair_alarm_with_nearest_action():
    sessions = one_session([
        make_event(T0, "T1"),
        make_event(T0 + 1000, "T2"),
        make_event(T0 + 2000, "FIC101 SP", is_alarm=False, is_change=True),
    ])
    patterns = mine_patterns(sessions)
    assert patterns == {"[A] T1 → [C] FIC101 SP": 1, "[A] T2 → [C] FIC101 SP": 1}


def test_patterns_fall_back_to_alarm_sequences():
    sessions = one_session([make_event(T0, "T1"), make_event(T0 + 1000, "T2")])
    stats = calculate_statistics(sessions[0].events, sessions)
    assert stats.top_patterns == [("⚠️ T1 → ⚠️ T2 (alarm sequence)", 1)]


def test_action_beyond_lookahead_is_not_paired():
    events = [make_event(T0, "T0")] + [make_event(T0 + i, f"T{i}", is_alarm=False) for i in range(1, 6)]
    events.append(make_event(T0 + 10, "FIC101 OP", is_alarm=False, is_change=True))
    patterns = mine_patterns(one_session(events))
    assert "[A] T0 → [C] FIC101 OP" not in patterns


@pytest.mark.parametrize("raw, expected", [
    ("PRIORITY(250)", "high"),
    ("1", "high"),
    ("500", "medium"),
    ("750", "medium"),
    ("999", "low"),
    ("URGENT", "low"),
    ("", "low"),
    (None, "low"),
])
def test_extract_priority(raw, expected):
    assert extract_priority(raw) == expected


def test_format_for_display():
    assert format_for_display("[A] T1 → [C] T2") == "⚠️ T1 → ✓ T2"
    assert format_for_display("[E] X") == "X"
