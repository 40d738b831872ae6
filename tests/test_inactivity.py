# ABOUTME: Tests timeline statistics and largest-gap inactivity detection.
# ABOUTME: Uses synthetic day-spaced events per learner.

from datetime import datetime, timedelta, timezone

import pytest

from xapi_analytics.event_index import build_index
from xapi_analytics.inactivity import (
    DEFAULT_INACTIVITY_THRESHOLD_DAYS,
    detect_inactivity,
    inactivity_frame,
    inactivity_report,
    timeline_stats,
)
from xapi_analytics.schemas import Catalog, Event

START = datetime(2024, 1, 1, 9, tzinfo=timezone.utc)


def _on_days(actor, days, duration=None):
    return [
        Event(
            actor_id=actor,
            verb="progressed",
            object_id=f"http://example.org/{actor}/{day}",
            timestamp=START + timedelta(days=day - 1),
            duration=duration,
        )
        for day in days
    ]


def test_gap_between_day_one_and_day_ten():
    events = _on_days("u1", [10, 1])
    gap = detect_inactivity(events, threshold_days=6)
    assert gap is not None
    assert gap.gap_days == pytest.approx(9.0)
    assert gap.start == START
    assert gap.end == START + timedelta(days=9)
    assert (gap.start_position, gap.end_position) == (1, 0)
    assert gap.active_days == 2
    assert gap.total_days == 10
    assert gap.active_percentage == pytest.approx(20.0)


def test_regular_learner_has_no_gap():
    events = _on_days("u1", range(1, 22, 2))
    assert detect_inactivity(events, threshold_days=6) is None
    assert detect_inactivity(events) is None
    stats = timeline_stats(events)
    assert stats.max_gap_days == pytest.approx(2.0)
    assert stats.total_days == 21


def test_gap_equal_to_threshold_is_reported():
    events = _on_days("u1", [1, 6])
    assert DEFAULT_INACTIVITY_THRESHOLD_DAYS == 5.0
    assert detect_inactivity(events).gap_days == pytest.approx(5.0)


def test_single_event_and_empty_timeline():
    assert detect_inactivity(_on_days("u1", [1]), threshold_days=0) is None
    assert timeline_stats([]) is None
    stats = timeline_stats(_on_days("u1", [1]))
    assert stats.event_count == 1
    assert stats.total_days == 1
    assert stats.max_gap_days == 0.0


def test_first_of_equal_gaps_is_kept():
    events = _on_days("u1", [1, 8, 15])
    gap = detect_inactivity(events)
    assert gap.start == START
    assert gap.end == START + timedelta(days=7)


def test_timeline_sums_durations():
    stats = timeline_stats(_on_days("u1", [1, 2, 2], duration="PT20M"))
    assert stats.total_minutes == 60
    assert stats.active_days == 2


def test_inactivity_report_sorted_longest_first():
    events = _on_days("short", [1, 7]) + _on_days("long", [1, 20]) + _on_days("busy", [1, 2, 3])
    index = build_index(events, Catalog())
    gaps = inactivity_report(index, threshold_days=5)
    assert [gap.actor_id for gap in gaps] == ["long", "short"]

    frame = inactivity_frame(gaps)
    assert list(frame["actor_id"]) == ["long", "short"]
    assert inactivity_frame([]).empty
    assert "gap_days" in inactivity_frame([]).columns
