# ABOUTME: Analyzes one learner's event timeline for active days and the largest pause.
# ABOUTME: Flags learners whose longest gap between consecutive events meets a threshold.

from __future__ import annotations

import math
from dataclasses import asdict, fields
from typing import Iterable, List, Optional, Union

import numpy as np
import pandas as pd

from .event_index import EventIndex, as_frame
from .schemas import Event, InactivityGap, TimelineStats

DEFAULT_INACTIVITY_THRESHOLD_DAYS = 5.0
SECONDS_PER_DAY = 86400.0

LearnerEvents = Union[pd.DataFrame, Iterable[Event]]


def timeline_stats(learner_events: LearnerEvents) -> Optional[TimelineStats]:
    """
    Summarize a learner's timeline without applying any threshold.

    Events are stable-sorted by timestamp; the first of several equal largest
    gaps is kept. Active days are distinct UTC calendar dates, and total days
    is the rounded-up span plus one.
    """

    frame = as_frame(learner_events)
    frame = frame[frame["timestamp"].notna()].sort_values("timestamp", kind="mergesort")
    if frame.empty:
        return None

    timestamps = frame["timestamp"]
    first, last = timestamps.iloc[0], timestamps.iloc[-1]

    max_gap = 0.0
    gap_start = gap_end = None
    gap_start_position = gap_end_position = None
    if len(frame) >= 2:
        gaps = (timestamps.diff().dt.total_seconds() / SECONDS_PER_DAY).to_numpy()[1:]
        # argmax returns the first occurrence of the maximum.
        end = int(np.argmax(gaps)) + 1
        max_gap = float(gaps[end - 1])
        gap_start = timestamps.iloc[end - 1].to_pydatetime()
        gap_end = timestamps.iloc[end].to_pydatetime()
        gap_start_position = int(frame["position"].iloc[end - 1])
        gap_end_position = int(frame["position"].iloc[end])

    active_days = int(timestamps.dt.date.nunique())
    span_days = (last - first).total_seconds() / SECONDS_PER_DAY
    total_days = math.ceil(span_days) + 1

    return TimelineStats(
        actor_id=str(frame["actor_id"].iloc[0]),
        event_count=len(frame),
        total_minutes=int(frame["duration_minutes"].fillna(0).sum()),
        active_days=active_days,
        total_days=total_days,
        active_percentage=round(active_days / total_days * 100, 1),
        max_gap_days=max_gap,
        gap_start=gap_start,
        gap_end=gap_end,
        gap_start_position=gap_start_position,
        gap_end_position=gap_end_position,
    )


def detect_inactivity(
    learner_events: LearnerEvents,
    threshold_days: float = DEFAULT_INACTIVITY_THRESHOLD_DAYS,
) -> Optional[InactivityGap]:
    stats = timeline_stats(learner_events)
    if stats is None or stats.event_count < 2 or stats.max_gap_days < threshold_days:
        return None
    return InactivityGap(
        actor_id=stats.actor_id,
        gap_days=stats.max_gap_days,
        start=stats.gap_start,
        end=stats.gap_end,
        start_position=stats.gap_start_position,
        end_position=stats.gap_end_position,
        active_days=stats.active_days,
        total_days=stats.total_days,
        active_percentage=stats.active_percentage,
        total_minutes=stats.total_minutes,
    )


def inactivity_report(
    index: EventIndex,
    threshold_days: float = DEFAULT_INACTIVITY_THRESHOLD_DAYS,
    actor_ids: Optional[Iterable[str]] = None,
) -> List[InactivityGap]:
    """Run the detector per learner and return the detected gaps, longest first."""

    learners = list(actor_ids) if actor_ids is not None else index.learner_ids
    gaps: List[InactivityGap] = []
    for actor_id in learners:
        gap = detect_inactivity(index.for_learner(actor_id), threshold_days)
        if gap is not None:
            gaps.append(gap)
    gaps.sort(key=lambda gap: gap.gap_days, reverse=True)
    return gaps


def inactivity_frame(gaps: List[InactivityGap]) -> pd.DataFrame:
    columns = [f.name for f in fields(InactivityGap)]
    if not gaps:
        return pd.DataFrame(columns=columns)
    return pd.DataFrame([asdict(gap) for gap in gaps], columns=columns)
