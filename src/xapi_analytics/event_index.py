# ABOUTME: Builds the per-snapshot event arena and its activity/learner index maps.
# ABOUTME: Resolves statement activity ids against the course catalog once per batch.

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Hashable, Iterable, List, Optional, Sequence, Tuple, TypeVar, Union

import numpy as np
import pandas as pd

from .duration import parse_duration
from .schemas import Activity, Catalog, Event, Section

ACTIVITY_ID_EXTENSION = "https://w3id.org/learning-analytics/learning-management-system/external-id"

EVENT_COLUMNS = [
    "position",
    "actor_id",
    "verb",
    "object_id",
    "activity_id",
    "attempt_key",
    "timestamp",
    "score_raw",
    "score_min",
    "score_max",
    "score_scaled",
    "completion",
    "success",
    "duration",
    "duration_minutes",
    "in_catalog",
    "section",
]
_NUMERIC_COLUMNS = ["score_raw", "score_min", "score_max", "score_scaled", "duration_minutes"]

T = TypeVar("T")
K = TypeVar("K", bound=Hashable)


def activity_id_of(event: Event, fallback_to_object: bool = False) -> Optional[str]:
    """
    Stable activity identifier stored in the statement's object extensions.

    The raw object id is only a fallback for attempt counting; it is not
    guaranteed to match catalog ids.
    """

    activity_id = event.activity_id or event.extensions.get(ACTIVITY_ID_EXTENSION)
    if activity_id:
        return activity_id
    return event.object_id if fallback_to_object else None


def resolve_activity(activity_id: Optional[str], catalog: Catalog) -> Optional[Tuple[Activity, Section]]:
    if not activity_id:
        return None
    for section in catalog.sections:
        for activity in section.activities:
            if activity.id == activity_id:
                return activity, section
    return None


def find_activity_by_title(title: str, catalog: Catalog) -> Optional[Activity]:
    for activity in catalog.activities():
        if activity.title == title:
            return activity
    return None


def group_by(items: Iterable[T], key_fn: Callable[[T], K]) -> Dict[K, List[T]]:
    """Group items by key, preserving first-seen key order and input order within groups."""

    groups: Dict[K, List[T]] = {}
    for item in items:
        groups.setdefault(key_fn(item), []).append(item)
    return groups


def events_to_frame(events: Iterable[Event], catalog: Optional[Catalog] = None) -> pd.DataFrame:
    """
    Flatten canonical events into the arena frame, one row per event.

    ``position`` is the event's input order and doubles as the frame index.
    """

    lookup = _catalog_lookup(catalog)
    rows = []
    for position, event in enumerate(events):
        activity_id = activity_id_of(event)
        resolved = lookup.get(activity_id) if activity_id else None
        score = event.score
        rows.append(
            {
                "position": position,
                "actor_id": event.actor_id,
                "verb": event.verb,
                "object_id": event.object_id,
                "activity_id": activity_id,
                "attempt_key": activity_id_of(event, fallback_to_object=True),
                "timestamp": event.timestamp,
                "score_raw": None if score is None else score.raw,
                "score_min": None if score is None else score.min,
                "score_max": None if score is None else score.max,
                "score_scaled": None if score is None else score.scaled,
                "completion": event.completion is True,
                "success": event.success,
                "duration": event.duration or None,
                "duration_minutes": float(parse_duration(event.duration)) if event.duration else np.nan,
                "in_catalog": resolved is not None,
                "section": resolved[1].title if resolved else None,
            }
        )

    if not rows:
        frame = pd.DataFrame({column: [] for column in EVENT_COLUMNS})
    else:
        frame = pd.DataFrame(rows, columns=EVENT_COLUMNS)

    frame["timestamp"] = pd.to_datetime(frame["timestamp"], utc=True, errors="coerce")
    for column in _NUMERIC_COLUMNS:
        frame[column] = pd.to_numeric(frame[column], errors="coerce").astype(float)
    frame["completion"] = frame["completion"].astype(bool)
    frame["in_catalog"] = frame["in_catalog"].astype(bool)
    frame["position"] = frame["position"].astype("int64")
    return frame.reset_index(drop=True)


def as_frame(events: Union[pd.DataFrame, Iterable[Event]], catalog: Optional[Catalog] = None) -> pd.DataFrame:
    if isinstance(events, pd.DataFrame):
        return events
    return events_to_frame(events, catalog)


def completion_mask(frame: pd.DataFrame) -> pd.Series:
    """An event completes its activity via the ``completed`` verb or an explicit completion flag."""

    return (frame["verb"] == "completed") | frame["completion"]


@dataclass(frozen=True)
class Selector:
    """Narrows an aggregate to one activity, a set of learners, or both."""

    activity_id: Optional[str] = None
    actor_ids: Optional[FrozenSet[str]] = None

    @classmethod
    def for_activity(cls, activity_id: str, actor_ids: Optional[Iterable[str]] = None) -> "Selector":
        return cls(activity_id=activity_id, actor_ids=None if actor_ids is None else frozenset(actor_ids))

    @classmethod
    def for_learner(cls, actor_id: str, activity_id: Optional[str] = None) -> "Selector":
        return cls(activity_id=activity_id, actor_ids=frozenset([actor_id]))

    @classmethod
    def for_cohort(cls, actor_ids: Iterable[str], activity_id: Optional[str] = None) -> "Selector":
        return cls(activity_id=activity_id, actor_ids=frozenset(actor_ids))


class EventIndex:
    """
    Event arena plus secondary index maps, built once per snapshot.

    Maps hold arena positions:
    - ``by_activity``: catalog-resolved activity id -> positions
    - ``by_learner``: actor id -> positions (all events, resolved or not)
    - ``by_activity_learner``: (activity id, actor id) -> positions
    """

    def __init__(self, frame: pd.DataFrame, catalog: Catalog):
        self.frame = frame
        self.catalog = catalog
        self._lookup = _catalog_lookup(catalog)
        resolved = frame[frame["in_catalog"]]
        self.by_activity = _positions(resolved, "activity_id")
        self.by_learner = _positions(frame, "actor_id")
        self.by_activity_learner = _positions(resolved, ["activity_id", "actor_id"])

    def __len__(self) -> int:
        return len(self.frame)

    @property
    def learner_ids(self) -> List[str]:
        return list(self.by_learner.keys())

    def activity(self, activity_id: str) -> Optional[Activity]:
        resolved = self._lookup.get(activity_id)
        return resolved[0] if resolved else None

    def section_of(self, activity_id: str) -> Optional[Section]:
        resolved = self._lookup.get(activity_id)
        return resolved[1] if resolved else None

    def rows(self, positions: Sequence[int]) -> pd.DataFrame:
        return self.frame.iloc[np.asarray(positions, dtype="int64")]

    def for_activity(self, activity_id: str) -> pd.DataFrame:
        return self.rows(self.by_activity.get(activity_id, []))

    def for_learner(self, actor_id: str) -> pd.DataFrame:
        return self.rows(self.by_learner.get(actor_id, []))

    def for_activity_learner(self, activity_id: str, actor_id: str) -> pd.DataFrame:
        return self.rows(self.by_activity_learner.get((activity_id, actor_id), []))

    def select(self, selector: Selector, resolved_only: bool = True) -> pd.DataFrame:
        if selector.activity_id is not None:
            frame = self.for_activity(selector.activity_id)
        elif resolved_only:
            frame = self.frame[self.frame["in_catalog"]]
        else:
            frame = self.frame
        if selector.actor_ids is not None:
            frame = frame[frame["actor_id"].isin(selector.actor_ids)]
        return frame

    def select_attempts(self, selector: Selector) -> pd.DataFrame:
        """Like ``select`` but keyed on the attempt key, which falls back to the object id."""

        frame = self.frame
        if selector.activity_id is not None:
            frame = frame[frame["attempt_key"] == selector.activity_id]
        if selector.actor_ids is not None:
            frame = frame[frame["actor_id"].isin(selector.actor_ids)]
        return frame


def build_index(events: Iterable[Event], catalog: Catalog) -> EventIndex:
    return EventIndex(events_to_frame(events, catalog), catalog)


def _catalog_lookup(catalog: Optional[Catalog]) -> Dict[str, Tuple[Activity, Section]]:
    if catalog is None:
        return {}
    return {activity.id: (activity, section) for section in catalog.sections for activity in section.activities}


def _positions(frame: pd.DataFrame, keys) -> Dict:
    if frame.empty:
        return {}
    labels = frame.index.to_numpy()
    return {key: labels[idx] for key, idx in frame.groupby(keys, sort=False).indices.items()}
