# ABOUTME: Tests persona-weighted activity recommendations.
# ABOUTME: Covers completed learners, difficulty targeting, prerequisites and review fallback.

from datetime import datetime, timedelta, timezone

import pytest

from xapi_analytics.recommendation import (
    PERSONA_WEIGHTS,
    build_learner_history,
    learner_baseline,
    persona_weights_for,
    prerequisite_id,
    recommend_activities,
)
from xapi_analytics.schemas import Activity, Catalog, Event, LearnerProfile, Score, Section

START = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _catalog(*activities):
    return Catalog(sections=(Section("S1", tuple(activities)),))


def _event(activity_id, verb="progressed", hours=0, scaled=None, duration=None, completion=None):
    return Event(
        actor_id="mailto:learner@example.org",
        verb=verb,
        object_id=f"http://example.org/{activity_id}",
        timestamp=START + timedelta(hours=hours),
        activity_id=activity_id,
        score=Score(scaled=scaled) if scaled is not None else None,
        completion=completion,
        duration=duration,
    )


def _learner(persona="average"):
    return LearnerProfile(id="1", actor_id="mailto:learner@example.org", persona_type=persona)


def test_completed_learner_gets_nothing():
    catalog = _catalog(Activity("a1", "One", difficulty=0.9), Activity("a2", "Two", difficulty=0.2))
    events = [_event("a1", "completed"), _event("a2", completion=True, hours=1)]
    assert recommend_activities(_learner(), events, catalog) == []


def test_gritty_learner_prefers_stretch_difficulty():
    catalog = _catalog(
        Activity("easy", "Easy", difficulty=0.3, estimated_duration=20),
        Activity("stretch", "Stretch", difficulty=0.7, estimated_duration=20),
    )
    events = [_event("warmup", scaled=0.5, duration="PT20M")]
    recs = recommend_activities(_learner("gritty"), events, catalog)

    assert [rec.activity_id for rec in recs] == ["stretch", "easy"]
    stretch, easy = recs
    assert stretch.difficulty_match == pytest.approx(1.0)
    assert easy.difficulty_match == pytest.approx(0.6)
    assert stretch.duration_match == pytest.approx(1.0)
    assert stretch.score == pytest.approx(1.0)
    assert easy.score == pytest.approx(0.6 * 0.8 + 1.0 * 0.2)
    assert not stretch.is_review
    assert "gritty" in stretch.reason


def test_empty_history_uses_zero_baseline():
    catalog = _catalog(Activity("a1", "One", difficulty=0.2, estimated_duration=60))
    recs = recommend_activities(_learner("coaster"), [], catalog)
    assert len(recs) == 1
    assert recs[0].difficulty_match == pytest.approx(1.0)
    assert recs[0].duration_match == pytest.approx(0.0)
    assert recs[0].score == pytest.approx(0.5)


def test_advanced_requires_basic_counterpart():
    catalog = _catalog(
        Activity("loops-basic", "Loops", difficulty=0.2),
        Activity("loops-advanced", "Loops II", difficulty=0.4),
        Activity("other", "Other", difficulty=0.6),
    )
    recs = recommend_activities(_learner(), [], catalog)
    assert [rec.activity_id for rec in recs] == ["loops-basic", "other"]

    recs = recommend_activities(_learner(), [_event("loops-basic", "completed")], catalog)
    assert [rec.activity_id for rec in recs] == ["loops-advanced", "other"]


def test_review_fallback_when_prerequisites_block_everything():
    # files-basic is not offered, so files-advanced can never be unlocked.
    catalog = _catalog(
        Activity("sql", "SQL", difficulty=0.9),
        Activity("intro", "Intro", difficulty=0.2),
        Activity("files-advanced", "Files II", difficulty=0.8),
        Activity("hard", "Hard", difficulty=0.75),
    )
    events = [
        _event("sql", "completed"),
        _event("intro", "completed", hours=1),
        _event("hard", "completed", hours=2),
    ]
    recs = recommend_activities(_learner(), events, catalog)

    assert {rec.activity_id for rec in recs} == {"sql", "files-advanced", "hard"}
    assert all(rec.is_review for rec in recs)
    assert recs[0].reason.startswith("Review")


def test_max_items_and_stable_order():
    catalog = _catalog(*[Activity(f"a{i}", f"A{i}", difficulty=0.2, estimated_duration=15) for i in range(8)])
    recs = recommend_activities(_learner(), [], catalog, max_items=3)
    assert [rec.activity_id for rec in recs] == ["a0", "a1", "a2"]


def test_persona_weights_fall_back_to_average():
    assert persona_weights_for("outlierB") == PERSONA_WEIGHTS["average"]
    assert persona_weights_for("sprinter") == (0.4, 0.6)
    custom = {"average": (0.5, 0.5), "sprinter": (0.1, 0.9)}
    assert persona_weights_for("outlierA", custom) == (0.5, 0.5)


def test_history_and_baseline():
    events = [
        _event("a1", scaled=0.4, duration="PT10M"),
        _event("a1", scaled=0.8, duration="PT30M", hours=1),
        _event("a2", scaled=1.0, hours=2),
        _event("a3", scaled=0.0, duration="PT50M", hours=3),
    ]
    history = build_learner_history(events)
    assert history["a1"].attempts == 2
    assert history["a1"].scores == [0.4, 0.8]
    assert history["a1"].last_duration == 30
    assert history["a2"].last_duration is None

    avg_score, avg_duration = learner_baseline(history)
    assert avg_score == pytest.approx((0.6 + 1.0 + 0.0) / 3)
    assert avg_duration == pytest.approx((30 + 0 + 50) / 3)
    assert learner_baseline({}) == (0.0, 0.0)


def test_unscored_activities_pull_baseline_down():
    events = [
        _event("quiz", "scored", scaled=0.8),
        _event("video", "launched", hours=1),
        _event("reading", "launched", hours=2),
        _event("lab", "launched", hours=3),
    ]
    avg_score, avg_duration = learner_baseline(build_learner_history(events))
    assert avg_score == pytest.approx(0.8 / 4)
    assert avg_duration == pytest.approx(0.0)


def test_prerequisite_id():
    assert prerequisite_id("python-advanced-1") == "python-basic-1"
    assert prerequisite_id("python-1") is None
