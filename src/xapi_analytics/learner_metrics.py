# ABOUTME: Computes learner-scoped views: activity history, learning time and section averages.
# ABOUTME: Also provides cohort tables used by the educator view (performance, personas).

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

import pandas as pd

from .aggregation import ATTEMPT_VERBS, completion_ratio
from .event_index import EventIndex, Selector, completion_mask
from .inactivity import DEFAULT_INACTIVITY_THRESHOLD_DAYS, detect_inactivity, timeline_stats
from .schemas import PERSONA_TYPES, ActivityHistoryRow, LearnerMetrics, LearnerProfile, Metric, SectionAverage


def activity_history(index: EventIndex, actor_id: str) -> List[ActivityHistoryRow]:
    """
    Per-activity summary of one learner's catalog events, most recent first.

    ``total_duration`` sums the sessions before completion; the duration on a
    completion event itself is the time-on-task and is not added again.
    """

    frame = index.select(Selector.for_learner(actor_id)).sort_values("timestamp", kind="mergesort")
    rows: List[ActivityHistoryRow] = []
    for activity_id, group in frame.groupby("activity_id", sort=False):
        activity = index.activity(activity_id)
        completions = group[completion_mask(group)]
        scored_completions = completions["score_raw"].dropna()
        sessions = group[group["verb"] != "completed"]
        last_attempt = group["timestamp"].max()
        rows.append(
            ActivityHistoryRow(
                activity_id=activity_id,
                title=activity.title if activity else activity_id,
                section=activity.section if activity else "",
                attempts=len(group),
                completed=not completions.empty,
                scores=tuple(float(score) for score in group["score_raw"].dropna()),
                completion_score=float(scored_completions.iloc[-1]) if not scored_completions.empty else None,
                total_duration=int(sessions["duration_minutes"].fillna(0).sum()),
                last_attempt=None if pd.isna(last_attempt) else last_attempt.to_pydatetime(),
            )
        )
    rows.sort(key=lambda row: (row.last_attempt is not None, row.last_attempt or 0), reverse=True)
    return rows


def total_learning_time(index: EventIndex, actor_id: str) -> int:
    return int(index.for_learner(actor_id)["duration_minutes"].fillna(0).sum())


def daily_learning_time(index: EventIndex, actor_id: str) -> pd.DataFrame:
    frame = index.for_learner(actor_id)
    frame = frame[frame["duration_minutes"].notna() & frame["timestamp"].notna()]
    if frame.empty:
        return pd.DataFrame(columns=["date", "minutes"])
    daily = frame.groupby(frame["timestamp"].dt.date)["duration_minutes"].sum().sort_index()
    return pd.DataFrame({"date": daily.index, "minutes": daily.to_numpy().astype(int)})


def cumulative_learning_time(index: EventIndex, actor_ids: Optional[Iterable[str]] = None) -> pd.DataFrame:
    """Long frame of running minute totals per learner per active day."""

    learners = list(actor_ids) if actor_ids is not None else index.learner_ids
    parts = []
    for actor_id in learners:
        daily = daily_learning_time(index, actor_id)
        if daily.empty:
            continue
        parts.append(
            pd.DataFrame(
                {
                    "actor_id": actor_id,
                    "date": daily["date"],
                    "cumulative_minutes": daily["minutes"].cumsum(),
                }
            )
        )
    if not parts:
        return pd.DataFrame(columns=["actor_id", "date", "cumulative_minutes"])
    return pd.concat(parts, ignore_index=True)


def section_averages(index: EventIndex, actor_id: str) -> Dict[str, SectionAverage]:
    """Mean raw score and mean session minutes per catalog section, in catalog order."""

    frame = index.select(Selector.for_learner(actor_id))
    averages: Dict[str, SectionAverage] = {}
    for section in index.catalog.sections:
        rows = frame[frame["section"] == section.title]
        scores = rows["score_raw"].dropna()
        minutes = rows["duration_minutes"].dropna()
        averages[section.title] = SectionAverage(
            section=section.title,
            average_score=Metric.of(float(scores.mean())) if not scores.empty else Metric.missing(),
            average_time=Metric.of(float(minutes.mean())) if not minutes.empty else Metric.missing(),
        )
    return averages


def performance_table(index: EventIndex, actor_ids: Optional[Iterable[str]] = None) -> pd.DataFrame:
    """Per-learner mean ``scored`` grade and pass/fail attempt count."""

    columns = ["actor_id", "average_grade", "has_grade", "attempts"]
    learners = list(actor_ids) if actor_ids is not None else index.learner_ids
    if not learners:
        return pd.DataFrame(columns=columns)

    frame = index.select(Selector.for_cohort(learners), resolved_only=False)
    grades = frame[(frame["verb"] == "scored") & frame["score_raw"].notna()].groupby("actor_id")["score_raw"].mean()
    attempts = frame[frame["verb"].isin(ATTEMPT_VERBS)].groupby("actor_id").size()
    records = [
        {
            "actor_id": actor_id,
            "average_grade": float(grades.get(actor_id, 0.0)),
            "has_grade": actor_id in grades.index,
            "attempts": int(attempts.get(actor_id, 0)),
        }
        for actor_id in learners
    ]
    return pd.DataFrame(records, columns=columns)


def persona_distribution(learners: Iterable[LearnerProfile]) -> pd.DataFrame:
    """Learner counts per persona; known personas first in their canonical order."""

    counts: Dict[str, int] = {persona: 0 for persona in PERSONA_TYPES}
    for learner in learners:
        counts[learner.persona_type] = counts.get(learner.persona_type, 0) + 1
    total = sum(counts.values())
    return pd.DataFrame(
        [
            {
                "persona": persona,
                "count": count,
                "percentage": round(count / total * 100, 1) if total else 0.0,
            }
            for persona, count in counts.items()
        ],
        columns=["persona", "count", "percentage"],
    )


def learner_metrics(
    index: EventIndex,
    actor_id: str,
    threshold_days: float = DEFAULT_INACTIVITY_THRESHOLD_DAYS,
) -> LearnerMetrics:
    events = index.for_learner(actor_id)
    return LearnerMetrics(
        actor_id=actor_id,
        total_minutes=total_learning_time(index, actor_id),
        completion_ratio=completion_ratio(index, Selector.for_learner(actor_id)),
        history=tuple(activity_history(index, actor_id)),
        timeline=timeline_stats(events),
        inactivity=detect_inactivity(events, threshold_days),
        section_averages=section_averages(index, actor_id),
    )
