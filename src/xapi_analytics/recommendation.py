# ABOUTME: Ranks not-yet-completed catalog activities for one learner.
# ABOUTME: Blends difficulty fit and duration fit using persona-specific weights.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple, Union

import numpy as np
import pandas as pd

from .event_index import as_frame, completion_mask
from .schemas import Activity, Catalog, Event, LearnerProfile

# persona -> (difficulty weight, duration weight)
PERSONA_WEIGHTS: Mapping[str, Tuple[float, float]] = {
    "struggler": (0.7, 0.3),
    "average": (0.6, 0.4),
    "sprinter": (0.4, 0.6),
    "gritty": (0.8, 0.2),
    "coaster": (0.5, 0.5),
}
DEFAULT_PERSONA = "average"

TARGET_DIFFICULTY_NUDGE = 0.2
DURATION_TOLERANCE_MINUTES = 60.0
REVIEW_DIFFICULTY_THRESHOLD = 0.7


@dataclass
class ActivityHistory:
    activity_id: str
    attempts: int = 0
    scores: List[float] = field(default_factory=list)
    last_duration: Optional[float] = None


@dataclass
class RecommendedActivity:
    activity: Activity
    score: float
    difficulty_match: float
    duration_match: float
    reason: str
    is_review: bool = False

    @property
    def activity_id(self) -> str:
        return self.activity.id


def persona_weights_for(
    persona_type: str,
    persona_weights: Mapping[str, Tuple[float, float]] = PERSONA_WEIGHTS,
) -> Tuple[float, float]:
    if persona_type in persona_weights:
        return persona_weights[persona_type]
    return persona_weights.get(DEFAULT_PERSONA, PERSONA_WEIGHTS[DEFAULT_PERSONA])


def build_learner_history(learner_events: Union[pd.DataFrame, Iterable[Event]]) -> Dict[str, ActivityHistory]:
    """
    Per-activity attempts, scaled scores and last observed duration.

    Keys use the attempt key, so statements outside the catalog still shape
    the learner's baseline.
    """

    frame = as_frame(learner_events)
    frame = frame.sort_values("timestamp", kind="mergesort")
    history: Dict[str, ActivityHistory] = {}
    for key, group in frame.groupby("attempt_key", sort=False):
        durations = group["duration_minutes"].dropna()
        history[key] = ActivityHistory(
            activity_id=key,
            attempts=len(group),
            scores=[float(score) for score in group["score_scaled"].dropna()],
            last_duration=float(durations.iloc[-1]) if not durations.empty else None,
        )
    return history


def learner_baseline(history: Mapping[str, ActivityHistory]) -> Tuple[float, float]:
    """
    Average scaled score and average session minutes across the history.

    Every history entry counts: an activity without scores adds 0 to the
    score average, one without a duration adds 0 to the duration average.
    An empty history yields ``(0.0, 0.0)``.
    """

    if not history:
        return 0.0, 0.0
    score_means = [float(np.mean(entry.scores)) if entry.scores else 0.0 for entry in history.values()]
    durations = [entry.last_duration if entry.last_duration is not None else 0.0 for entry in history.values()]
    return float(np.mean(score_means)), float(np.mean(durations))


def score_activity(
    activity: Activity,
    avg_score: float,
    avg_duration: float,
    weights: Tuple[float, float],
) -> Tuple[float, float, float]:
    target = min(avg_score + TARGET_DIFFICULTY_NUDGE, 1.0)
    difficulty_match = _clamp(1.0 - abs(target - activity.difficulty_value))
    duration_gap = abs(activity.duration_minutes - avg_duration) / DURATION_TOLERANCE_MINUTES
    duration_match = _clamp(1.0 - min(1.0, duration_gap))
    difficulty_weight, duration_weight = weights
    combined = _clamp(difficulty_match * difficulty_weight + duration_match * duration_weight)
    return combined, difficulty_match, duration_match


def prerequisite_id(activity_id: str) -> Optional[str]:
    if "advanced" not in activity_id:
        return None
    return activity_id.replace("advanced", "basic")


def recommend_activities(
    learner: LearnerProfile,
    learner_events: Union[pd.DataFrame, Iterable[Event]],
    catalog: Catalog,
    persona_weights: Mapping[str, Tuple[float, float]] = PERSONA_WEIGHTS,
    max_items: int = 5,
    review_difficulty_threshold: float = REVIEW_DIFFICULTY_THRESHOLD,
) -> List[RecommendedActivity]:
    """
    Recommend up to ``max_items`` activities for a learner.

    Steps:
    - Build the learner's per-activity history and numeric baseline.
    - Score every catalog activity the learner has not completed.
    - Drop advanced activities whose basic counterpart is not completed.
    - When every activity is completed, return nothing; when prerequisites
      block everything left, resurface high-difficulty activities for review.
    """

    frame = as_frame(learner_events, catalog)
    history = build_learner_history(frame)
    avg_score, avg_duration = learner_baseline(history)
    weights = persona_weights_for(learner.persona_type, persona_weights)

    completed = _completed_ids(frame)
    activities = catalog.activities()
    available = [activity for activity in activities if activity.id not in completed]
    if not available:
        return []

    eligible = [activity for activity in available if _prerequisite_met(activity.id, completed)]
    if eligible:
        candidates = eligible
        is_review = False
    else:
        candidates = [activity for activity in activities if activity.difficulty_value > review_difficulty_threshold]
        is_review = True

    recs: List[RecommendedActivity] = []
    for activity in candidates:
        score, difficulty_match, duration_match = score_activity(activity, avg_score, avg_duration, weights)
        recs.append(
            RecommendedActivity(
                activity=activity,
                score=score,
                difficulty_match=difficulty_match,
                duration_match=duration_match,
                reason=_reason(learner, activity, avg_score, avg_duration, is_review),
                is_review=is_review,
            )
        )

    recs.sort(key=lambda rec: rec.score, reverse=True)
    return recs[:max_items]


def _completed_ids(frame: pd.DataFrame) -> Set[str]:
    if frame.empty:
        return set()
    return set(frame.loc[completion_mask(frame), "activity_id"].dropna())


def _prerequisite_met(activity_id: str, completed: Set[str]) -> bool:
    required = prerequisite_id(activity_id)
    if required is None:
        return True
    return required in completed


def _reason(
    learner: LearnerProfile,
    activity: Activity,
    avg_score: float,
    avg_duration: float,
    is_review: bool,
) -> str:
    prefix = "Review" if is_review else f"Persona {learner.persona_type}"
    return (
        f"{prefix}: average score {avg_score:.2f}, activity difficulty {activity.difficulty_value:.2f}, "
        f"session {avg_duration:.0f}min vs estimated {activity.duration_minutes}min"
    )


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))
