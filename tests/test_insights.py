# ABOUTME: Tests educator and content-creator alert heuristics.
# ABOUTME: Uses synthetic grade, timing and rating events to trigger alerts.

from datetime import datetime, timedelta, timezone

from xapi_analytics.event_index import build_index
from xapi_analytics.insights import (
    InsightAlert,
    find_poorly_rated_activities,
    find_struggling_learners,
    find_time_deviations,
    generate_insight_report,
)
from xapi_analytics.schemas import Activity, Catalog, Event, Score, Section

START = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _catalog():
    return Catalog(
        sections=(
            Section(
                "S1",
                (
                    Activity("a1", "One", typical_learning_time="PT20M"),
                    Activity("a2", "Two", typical_learning_time="PT30M"),
                ),
            ),
        )
    )


def _event(actor, verb, activity_id, raw=None, duration=None, hours=0):
    return Event(
        actor_id=actor,
        verb=verb,
        object_id=f"http://example.org/{activity_id}",
        timestamp=START + timedelta(hours=hours),
        activity_id=activity_id,
        score=Score(raw=raw) if raw is not None else None,
        duration=duration,
    )


def test_find_struggling_learners():
    events = [
        _event("u1", "scored", "a1", raw=90),
        _event("u2", "scored", "a1", raw=80),
        _event("u3", "scored", "a1", raw=30),
    ]
    alerts = find_struggling_learners(build_index(events, _catalog()))
    assert [alert.subject_id for alert in alerts] == ["u3"]
    assert isinstance(alerts[0], InsightAlert)
    assert alerts[0].alert_type == "low_grades"
    assert alerts[0].evidence["cohort_average"] == 66.7


def test_find_time_deviations():
    events = [
        _event("u1", "completed", "a1", duration="PT21M"),
        _event("u2", "completed", "a1", duration="PT19M"),
        _event("u1", "completed", "a2", duration="PT60M"),
    ]
    alerts = find_time_deviations(build_index(events, _catalog()))
    assert [alert.subject_id for alert in alerts] == ["a2"]
    assert alerts[0].alert_type == "takes_longer"
    assert alerts[0].severity == "high"
    assert alerts[0].evidence["expected_minutes"] == 30


def test_find_poorly_rated_activities():
    events = [_event(f"u{i}", "rated", "a1", raw=9) for i in range(3)]
    events += [_event(f"u{i}", "rated", "a2", raw=2) for i in range(3)]
    alerts = find_poorly_rated_activities(build_index(events, _catalog()))
    assert [alert.subject_id for alert in alerts] == ["a2"]
    assert alerts[0].evidence["low_ratings"] == 3


def test_many_low_ratings_flag_activity():
    events = [_event(f"u{i}", "rated", "a1", raw=1) for i in range(4)]
    events += [_event(f"u{i}", "rated", "a1", raw=10) for i in range(20)]
    alerts = find_poorly_rated_activities(build_index(events, _catalog()), low_count=3)
    assert [alert.subject_id for alert in alerts] == ["a1"]


def test_generate_insight_report_columns():
    events = [
        _event("u1", "scored", "a1", raw=95),
        _event("u2", "scored", "a1", raw=10),
    ]
    report = generate_insight_report(build_index(events, _catalog()))
    assert list(report.columns) == ["subject_id", "alert_type", "severity", "evidence", "recommendation"]
    assert list(report["subject_id"]) == ["u2"]

    empty = generate_insight_report(build_index([], _catalog()))
    assert empty.empty
    assert "severity" in empty.columns
