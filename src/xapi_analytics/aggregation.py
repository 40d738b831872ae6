# ABOUTME: Computes activity- and cohort-level aggregates over the event index.
# ABOUTME: Every aggregate returns a Metric so empty selections surface as N/A.

from __future__ import annotations

from typing import Callable, Dict, Iterable, List, Optional, Set

import numpy as np
import pandas as pd

from .duration import parse_duration
from .event_index import EventIndex, Selector, completion_mask
from .schemas import (
    DIFFICULTY_LABEL_VALUES,
    NOT_AVAILABLE,
    ActivityMetrics,
    AttemptOutcomes,
    CommunityComparison,
    LearnerProfile,
    Metric,
    PrecedenceEntry,
    PrecedenceReport,
    StatementStatistics,
)

Aggregate = Callable[[EventIndex, Selector], Metric]

DIFFICULTY_ANCHORS = (
    (0.2, "very low"),
    (0.4, "low"),
    (0.6, "average"),
    (0.8, "high"),
    (1.0, "very high"),
)
_CANONICAL_DIFFICULTY = {label for _, label in DIFFICULTY_ANCHORS}

ATTEMPT_VERBS = ("passed", "failed")
RATING_SCALE = range(1, 11)


def completion_ratio(index: EventIndex, selector: Selector) -> Metric:
    """
    Share of catalog activities completed.

    For several learners the result is the mean of the per-learner ratios, so
    learners without any completion pull the cohort value down.
    """

    total = len(index.catalog)
    actor_ids = list(selector.actor_ids) if selector.actor_ids is not None else index.learner_ids
    if total == 0 or not actor_ids:
        return Metric.missing()

    frame = index.select(Selector(actor_ids=frozenset(actor_ids)))
    completed = frame[completion_mask(frame)]
    per_learner = completed.groupby("actor_id")["activity_id"].nunique()
    ratios = [per_learner.get(actor_id, 0) / total for actor_id in actor_ids]
    return Metric.of(float(np.mean(ratios)))


def completed_activity_ids(index: EventIndex, actor_id: str) -> Set[str]:
    frame = index.select(Selector.for_learner(actor_id))
    return set(frame.loc[completion_mask(frame), "activity_id"])


def average_time_on_task(index: EventIndex, selector: Selector) -> Metric:
    frame = index.select(selector)
    minutes = frame.loc[(frame["verb"] == "completed") & frame["duration_minutes"].notna(), "duration_minutes"]
    if minutes.empty:
        return Metric.missing()
    return Metric.of(float(minutes.mean()))


def average_grade(index: EventIndex, selector: Selector) -> Metric:
    """
    Mean of per-learner mean ``scored`` raw values.

    Repeated attempts by one learner count once through that learner's mean.
    """

    frame = index.select(selector)
    scored = frame[(frame["verb"] == "scored") & frame["score_raw"].notna()]
    return _two_level_mean(scored, "score_raw")


def average_scaled_score(index: EventIndex, selector: Selector) -> Metric:
    frame = index.select(selector)
    scaled = frame[frame["score_scaled"].notna()].assign(percent=lambda df: df["score_scaled"] * 100)
    return _two_level_mean(scaled, "percent")


def average_attempts_to_pass(index: EventIndex, selector: Selector) -> Metric:
    """
    Passed/failed events per distinct (learner, activity) pair that attempted.

    Activities are keyed by attempt key, so statements without the catalog
    extension still count by their object id.
    """

    frame = index.select_attempts(selector)
    attempts = frame[frame["verb"].isin(ATTEMPT_VERBS)]
    if attempts.empty:
        return Metric.missing()
    pairs = attempts.groupby(["actor_id", "attempt_key"]).ngroups
    return Metric.of(round(len(attempts) / pairs, 1))


def attempt_outcomes(index: EventIndex, selector: Selector) -> AttemptOutcomes:
    """Passed and failed event counts plus the passed share, N/A without attempts."""

    frame = index.select_attempts(selector)
    passed = int((frame["verb"] == "passed").sum())
    failed = int((frame["verb"] == "failed").sum())
    total = passed + failed
    percentage = Metric.of(passed / total * 100) if total else Metric.missing()
    return AttemptOutcomes(passed=passed, failed=failed, pass_percentage=percentage)


def pass_percentage(index: EventIndex, selector: Selector) -> Metric:
    return attempt_outcomes(index, selector).pass_percentage


def average_rating(index: EventIndex, selector: Selector) -> Metric:
    ratings = _ratings(index, selector)
    if ratings.empty:
        return Metric.missing()
    return Metric.of(float(ratings.mean()))


def rating_distribution(index: EventIndex, selector: Selector) -> pd.DataFrame:
    ratings = _ratings(index, selector).round()
    return pd.DataFrame(
        {
            "rating": list(RATING_SCALE),
            "count": [int((ratings == value).sum()) for value in RATING_SCALE],
        }
    )


def normalize_difficulty(value) -> str:
    """
    Map a numeric difficulty or label onto the five canonical labels.

    Uses the nearest anchor; on a tie the lower anchor wins.
    """

    if value is None or isinstance(value, bool):
        return NOT_AVAILABLE
    if isinstance(value, str):
        label = value.strip().lower()
        if label in _CANONICAL_DIFFICULTY:
            return label
        if label in DIFFICULTY_LABEL_VALUES:
            value = DIFFICULTY_LABEL_VALUES[label]
        else:
            try:
                value = float(label)
            except ValueError:
                return NOT_AVAILABLE

    numeric = float(value)
    if np.isnan(numeric):
        return NOT_AVAILABLE

    best_label = NOT_AVAILABLE
    best_distance = None
    for anchor, label in DIFFICULTY_ANCHORS:
        # Rounded so float noise cannot break ties such as 0.5.
        distance = round(abs(numeric - anchor), 9)
        if best_distance is None or distance < best_distance:
            best_distance = distance
            best_label = label
    return best_label


def compare_with_community(
    aggregate: Aggregate,
    index: EventIndex,
    actor_id: str,
    cohort_ids: Optional[Iterable[str]] = None,
    activity_id: Optional[str] = None,
) -> CommunityComparison:
    """Evaluate one aggregate for a learner and for the whole cohort."""

    learner = aggregate(index, Selector.for_learner(actor_id, activity_id))
    cohort = None if cohort_ids is None else frozenset(cohort_ids)
    community = aggregate(index, Selector(activity_id=activity_id, actor_ids=cohort))
    return CommunityComparison(learner=learner, community=community)


def completed_before(index: EventIndex, actor_id: str, target_activity_id: str) -> Set[str]:
    """Activities the learner first completed strictly before first completing the target."""

    firsts = _first_completions(index.select(Selector.for_learner(actor_id)))
    learner_firsts = firsts[firsts["actor_id"] == actor_id].set_index("activity_id")["timestamp"]
    if target_activity_id not in learner_firsts.index:
        return set()
    target_time = learner_firsts[target_activity_id]
    return {
        activity_id
        for activity_id, completed_at in learner_firsts.items()
        if activity_id != target_activity_id and completed_at < target_time
    }


def completed_before_report(
    index: EventIndex,
    target_activity_id: str,
    actor_ids: Optional[Iterable[str]] = None,
) -> PrecedenceReport:
    """
    For learners who completed the target, how many completed each other activity first.

    Entries are sorted by count descending, ties in catalog order.
    """

    population = list(actor_ids) if actor_ids is not None else index.learner_ids
    frame = index.select(Selector(actor_ids=frozenset(population)))
    firsts = _first_completions(frame)

    target_times = firsts[firsts["activity_id"] == target_activity_id].set_index("actor_id")["timestamp"]
    completers = len(target_times)
    non_completers = len(population) - completers
    if completers == 0:
        return PrecedenceReport(target_activity_id, completers=0, non_completers=non_completers)

    others = firsts[(firsts["activity_id"] != target_activity_id) & firsts["actor_id"].isin(target_times.index)]
    before = others["timestamp"] < others["actor_id"].map(target_times)
    counts = before.groupby(others["activity_id"]).sum()

    entries = []
    for activity in index.catalog.activities():
        if activity.id not in counts.index:
            continue
        count = int(counts[activity.id])
        entries.append(
            PrecedenceEntry(
                activity_id=activity.id,
                title=activity.title,
                count=count,
                percentage=round(count / completers * 100, 1),
            )
        )
    entries.sort(key=lambda entry: entry.count, reverse=True)
    return PrecedenceReport(
        target_activity_id=target_activity_id,
        completers=completers,
        non_completers=non_completers,
        entries=tuple(entries),
    )


def activity_overview(index: EventIndex) -> List[ActivityMetrics]:
    """One metrics row per catalog activity that appears in the event log, in catalog order."""

    rows: List[ActivityMetrics] = []
    for activity in index.catalog.activities():
        if activity.id not in index.by_activity:
            continue
        selector = Selector.for_activity(activity.id)
        frame = index.for_activity(activity.id)
        completers = frame.loc[completion_mask(frame), "actor_id"].nunique()
        rows.append(
            ActivityMetrics(
                activity_id=activity.id,
                title=activity.title,
                section=activity.section,
                resource_type=activity.learning_resource_type,
                interactivity_type=activity.interactivity_type,
                interactivity_level=activity.interactivity_level,
                semantic_density=activity.semantic_density,
                difficulty=normalize_difficulty(activity.difficulty),
                typical_learning_time=parse_duration(activity.typical_learning_time),
                completion_count=int(completers),
                average_learning_time=average_time_on_task(index, selector),
                average_grade=average_grade(index, selector),
                average_attempts_to_pass=average_attempts_to_pass(index, selector),
                average_rating=average_rating(index, selector),
            )
        )
    return rows


def overview_frame(rows: List[ActivityMetrics]) -> pd.DataFrame:
    columns = [
        "activity_id",
        "title",
        "section",
        "difficulty",
        "typical_learning_time",
        "completion_count",
        "average_learning_time",
        "average_grade",
        "average_attempts_to_pass",
        "average_rating",
    ]
    records = [
        {
            "activity_id": row.activity_id,
            "title": row.title,
            "section": row.section,
            "difficulty": row.difficulty,
            "typical_learning_time": row.typical_learning_time,
            "completion_count": row.completion_count,
            "average_learning_time": row.average_learning_time.display(),
            "average_grade": row.average_grade.display(),
            "average_attempts_to_pass": row.average_attempts_to_pass.display(),
            "average_rating": row.average_rating.display(),
        }
        for row in rows
    ]
    return pd.DataFrame(records, columns=columns)


def learning_time_distribution(
    index: EventIndex,
    activity_id: Optional[str] = None,
    buckets: int = 10,
) -> pd.DataFrame:
    """
    Histogram of per-learner completed-event minutes in equal-width buckets.

    Buckets span the observed min..max; the last bucket is closed on the right.
    """

    columns = ["start", "end", "count"]
    frame = index.select(Selector(activity_id=activity_id))
    completed = frame[(frame["verb"] == "completed") & frame["duration_minutes"].notna()]
    if completed.empty or buckets < 1:
        return pd.DataFrame(columns=columns)

    totals = completed.groupby("actor_id")["duration_minutes"].sum().to_numpy()
    low, high = float(totals.min()), float(totals.max())
    if low == high:
        return pd.DataFrame([{"start": low, "end": high, "count": len(totals)}], columns=columns)

    width = (high - low) / buckets
    positions = np.minimum(((totals - low) / width).astype(int), buckets - 1)
    counts = np.bincount(positions, minlength=buckets)
    return pd.DataFrame(
        {
            "start": [low + i * width for i in range(buckets)],
            "end": [low + (i + 1) * width for i in range(buckets)],
            "count": counts.astype(int),
        },
        columns=columns,
    )


def score_distribution(index: EventIndex, selector: Selector = Selector()) -> pd.DataFrame:
    """
    Five-number summary of ``scored`` raw values per catalog activity.

    Quartiles use linear interpolation; rows follow catalog order and only
    activities with at least one score appear.
    """

    columns = ["activity_id", "title", "count", "min", "q1", "median", "q3", "max"]
    frame = index.select(selector)
    scored = frame[(frame["verb"] == "scored") & frame["score_raw"].notna()]
    if scored.empty:
        return pd.DataFrame(columns=columns)

    grouped = scored.groupby("activity_id")["score_raw"]
    summary = pd.DataFrame(
        {
            "count": grouped.size(),
            "min": grouped.min(),
            "q1": grouped.quantile(0.25),
            "median": grouped.median(),
            "q3": grouped.quantile(0.75),
            "max": grouped.max(),
        }
    )
    order = [activity_id for activity_id in index.catalog.activity_ids() if activity_id in summary.index]
    summary = summary.loc[order].rename_axis("activity_id").reset_index()
    summary["title"] = [index.activity(activity_id).title for activity_id in order]
    return summary[columns]


def statement_statistics(
    index: EventIndex,
    learners: Optional[Iterable[LearnerProfile]] = None,
) -> StatementStatistics:
    """
    Usage counts and per-learner averages over every stored statement.

    Steps:
    - Count statements per verb, per activity id and per catalog section.
      Catalog activities and sections without statements are listed with 0.
    - Take the learner population from the given profiles, or from the log.
    - Average statements, completed activities and minutes over that
      population; an empty population yields N/A.
    - Average score is the mean of per-activity mean ``scored`` raw values.
    """

    frame = index.frame
    if learners is not None:
        actor_ids = list(dict.fromkeys(learner.actor_id for learner in learners))
    else:
        actor_ids = index.learner_ids
    population = frame[frame["actor_id"].isin(actor_ids)]

    activity_usage = dict.fromkeys(index.catalog.activity_ids(), 0)
    activity_usage.update(frame["activity_id"].dropna().value_counts(sort=False).to_dict())
    section_usage = dict.fromkeys((section.title for section in index.catalog.sections), 0)
    section_usage.update(frame["section"].dropna().value_counts(sort=False).to_dict())

    if actor_ids:
        completed = population[completion_mask(population) & population["activity_id"].notna()]
        per_learner = completed.groupby("actor_id")["activity_id"].nunique()
        completed_counts = [per_learner.get(actor_id, 0) for actor_id in actor_ids]
        statements_per_learner = Metric.of(len(frame) / len(actor_ids))
        completed_per_learner = Metric.of(float(np.mean(completed_counts)))
        duration_per_learner = Metric.of(float(population["duration_minutes"].fillna(0).sum()) / len(actor_ids))
    else:
        statements_per_learner = completed_per_learner = duration_per_learner = Metric.missing()

    scored = frame[(frame["verb"] == "scored") & frame["score_raw"].notna() & frame["activity_id"].notna()]
    if scored.empty:
        average_score = Metric.missing()
    else:
        average_score = Metric.of(float(scored.groupby("activity_id")["score_raw"].mean().mean()))

    return StatementStatistics(
        total_statements=len(frame),
        learner_count=len(actor_ids),
        activity_count=len(index.catalog),
        verb_usage=_by_count(frame["verb"].value_counts(sort=False).to_dict()),
        activity_usage=_by_count(activity_usage),
        section_usage=_by_count(section_usage),
        statements_per_learner=statements_per_learner,
        completed_per_learner=completed_per_learner,
        average_score=average_score,
        duration_per_learner=duration_per_learner,
    )


def _ratings(index: EventIndex, selector: Selector) -> pd.Series:
    frame = index.select(selector)
    return frame.loc[(frame["verb"] == "rated") & frame["score_raw"].notna(), "score_raw"]


def _two_level_mean(frame: pd.DataFrame, column: str) -> Metric:
    if frame.empty:
        return Metric.missing()
    per_learner = frame.groupby("actor_id")[column].mean()
    return Metric.of(float(per_learner.mean()))


def _first_completions(frame: pd.DataFrame) -> pd.DataFrame:
    completed = frame[completion_mask(frame) & frame["timestamp"].notna()]
    if completed.empty:
        return pd.DataFrame(columns=["actor_id", "activity_id", "timestamp"])
    return completed.groupby(["actor_id", "activity_id"], sort=False)["timestamp"].min().reset_index()


def _by_count(counts: Dict[str, int]) -> Dict[str, int]:
    return {key: int(count) for key, count in sorted(counts.items(), key=lambda item: item[1], reverse=True)}
