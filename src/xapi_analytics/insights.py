# ABOUTME: Flags struggling learners and problematic activities for educators and authors.
# ABOUTME: Provides grade, learning-time and rating heuristics plus a combined report.

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

import pandas as pd

from .duration import parse_duration
from .event_index import EventIndex


@dataclass
class InsightAlert:
    subject_id: str
    alert_type: str
    severity: str
    evidence: Dict
    recommendation: str


class InsightThresholds:
    LOW_GRADE_FACTOR = 0.6
    TIME_DEVIATION = 0.2
    LOW_RATING_FACTOR = 0.7
    LOW_RATING_SCORE = 2
    LOW_RATING_COUNT = 30


def find_struggling_learners(
    index: EventIndex,
    factor: float = InsightThresholds.LOW_GRADE_FACTOR,
) -> List[InsightAlert]:
    """Learners whose mean ``scored`` grade is below ``factor`` times the cohort mean of learner means."""

    frame = index.frame
    scored = frame[(frame["verb"] == "scored") & frame["score_raw"].notna()]
    if scored.empty:
        return []

    learner_means = scored.groupby("actor_id", sort=False)["score_raw"].mean()
    overall = float(learner_means.mean())
    cutoff = overall * factor

    alerts: List[InsightAlert] = []
    for actor_id, mean in learner_means.items():
        if mean >= cutoff:
            continue
        severity = "high" if mean < cutoff / 2 else "medium"
        alerts.append(
            InsightAlert(
                subject_id=str(actor_id),
                alert_type="low_grades",
                severity=severity,
                evidence={
                    "average_grade": round(float(mean), 1),
                    "cohort_average": round(overall, 1),
                    "scored_events": int((scored["actor_id"] == actor_id).sum()),
                },
                recommendation="Grades well below the cohort. Check in and suggest review material.",
            )
        )
    return alerts


def find_time_deviations(
    index: EventIndex,
    tolerance: float = InsightThresholds.TIME_DEVIATION,
) -> List[InsightAlert]:
    """Activities whose mean completed-event time deviates from the typical learning time by more than ``tolerance``."""

    frame = index.frame
    completed = frame[frame["in_catalog"] & (frame["verb"] == "completed") & frame["duration_minutes"].notna()]
    if completed.empty:
        return []

    alerts: List[InsightAlert] = []
    for activity_id, minutes in completed.groupby("activity_id", sort=False)["duration_minutes"]:
        activity = index.activity(activity_id)
        expected = parse_duration(activity.typical_learning_time) if activity else None
        if not expected:
            continue
        actual = float(minutes.mean())
        deviation = abs(actual - expected) / expected
        if deviation <= tolerance:
            continue
        slower = actual > expected
        alerts.append(
            InsightAlert(
                subject_id=str(activity_id),
                alert_type="takes_longer" if slower else "takes_shorter",
                severity="high" if deviation > 2 * tolerance else "medium",
                evidence={
                    "average_minutes": round(actual, 1),
                    "expected_minutes": expected,
                    "deviation_pct": round(deviation * 100, 1),
                },
                recommendation=(
                    "Learners need more time than planned. Consider splitting the activity."
                    if slower
                    else "Learners finish faster than planned. Check whether content is skipped."
                ),
            )
        )
    return alerts


def find_poorly_rated_activities(
    index: EventIndex,
    factor: float = InsightThresholds.LOW_RATING_FACTOR,
    low_score: float = InsightThresholds.LOW_RATING_SCORE,
    low_count: int = InsightThresholds.LOW_RATING_COUNT,
) -> List[InsightAlert]:
    frame = index.frame
    rated = frame[frame["in_catalog"] & (frame["verb"] == "rated") & frame["score_raw"].notna()]
    if rated.empty:
        return []

    activity_means = rated.groupby("activity_id", sort=False)["score_raw"].mean()
    overall = float(activity_means.mean())

    alerts: List[InsightAlert] = []
    for activity_id, ratings in rated.groupby("activity_id", sort=False)["score_raw"]:
        mean = float(ratings.mean())
        low_ratings = int((ratings <= low_score).sum())
        below_average = mean < overall * factor
        many_low = low_ratings > low_count
        if not (below_average or many_low):
            continue
        alerts.append(
            InsightAlert(
                subject_id=str(activity_id),
                alert_type="poor_ratings",
                severity="high" if below_average and many_low else "medium",
                evidence={
                    "average_rating": round(mean, 1),
                    "overall_average": round(overall, 1),
                    "low_ratings": low_ratings,
                    "ratings": int(len(ratings)),
                },
                recommendation="Learners rate this activity poorly. Review its content and difficulty.",
            )
        )
    return alerts


def analyze_cohort(index: EventIndex, thresholds: Optional[Dict[str, float]] = None) -> List[InsightAlert]:
    thresholds = thresholds or {}
    alerts: List[InsightAlert] = []
    alerts.extend(
        find_struggling_learners(index, thresholds.get("low_grade_factor", InsightThresholds.LOW_GRADE_FACTOR))
    )
    alerts.extend(find_time_deviations(index, thresholds.get("time_deviation", InsightThresholds.TIME_DEVIATION)))
    alerts.extend(
        find_poorly_rated_activities(
            index,
            factor=thresholds.get("low_rating_factor", InsightThresholds.LOW_RATING_FACTOR),
            low_score=thresholds.get("low_rating_score", InsightThresholds.LOW_RATING_SCORE),
            low_count=int(thresholds.get("low_rating_count", InsightThresholds.LOW_RATING_COUNT)),
        )
    )
    return alerts


def generate_insight_report(index: EventIndex, thresholds: Optional[Dict[str, float]] = None) -> pd.DataFrame:
    alerts: List[Dict] = []
    for alert in analyze_cohort(index, thresholds):
        alerts.append(
            {
                "subject_id": alert.subject_id,
                "alert_type": alert.alert_type,
                "severity": alert.severity,
                "evidence": alert.evidence,
                "recommendation": alert.recommendation,
            }
        )
    return pd.DataFrame(alerts, columns=["subject_id", "alert_type", "severity", "evidence", "recommendation"])
