# ABOUTME: Defines canonical data structures shared by every analytics module.
# ABOUTME: Centralizes event, catalog, learner, metric and derived record definitions.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Mapping, Optional, Tuple, Union

from .duration import parse_duration

NOT_AVAILABLE = "N/A"

PERSONA_TYPES = (
    "struggler",
    "average",
    "sprinter",
    "gritty",
    "coaster",
    "outlierA",
    "outlierB",
    "outlierC",
    "outlierD",
)

# LOM difficulty vocabulary and the canonical labels both map onto the same anchors.
DIFFICULTY_LABEL_VALUES: Mapping[str, float] = {
    "very easy": 0.2,
    "very low": 0.2,
    "easy": 0.4,
    "low": 0.4,
    "medium": 0.6,
    "average": 0.6,
    "difficult": 0.8,
    "high": 0.8,
    "very difficult": 1.0,
    "very high": 1.0,
}
DEFAULT_DIFFICULTY = 0.5


@dataclass(frozen=True)
class Score:
    raw: Optional[float] = None
    min: Optional[float] = None
    max: Optional[float] = None
    scaled: Optional[float] = None


@dataclass(frozen=True)
class Event:
    """Canonical learning event derived from one xAPI statement."""

    actor_id: str
    verb: str
    object_id: str
    timestamp: datetime
    activity_id: Optional[str] = None
    score: Optional[Score] = None
    completion: Optional[bool] = None
    success: Optional[bool] = None
    duration: Optional[str] = None
    statement_id: Optional[str] = None
    extensions: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Activity:
    """Catalog content item with its learning-object metadata."""

    id: str
    title: str
    section: str = ""
    difficulty: Union[float, str, None] = None
    interactivity_type: Optional[str] = None
    interactivity_level: Optional[str] = None
    semantic_density: Optional[str] = None
    typical_learning_time: Optional[str] = None
    estimated_duration: Optional[int] = None
    learning_resource_type: Optional[str] = None
    description: str = ""
    href: Optional[str] = None

    @property
    def difficulty_value(self) -> float:
        if self.difficulty is None:
            return DEFAULT_DIFFICULTY
        if isinstance(self.difficulty, (int, float)):
            return float(self.difficulty)
        label = str(self.difficulty).strip().lower()
        if label in DIFFICULTY_LABEL_VALUES:
            return DIFFICULTY_LABEL_VALUES[label]
        try:
            return float(label)
        except ValueError:
            return DEFAULT_DIFFICULTY

    @property
    def duration_minutes(self) -> int:
        if self.estimated_duration is not None:
            return int(self.estimated_duration)
        return parse_duration(self.typical_learning_time)


@dataclass(frozen=True)
class Section:
    title: str
    activities: Tuple[Activity, ...] = ()


@dataclass(frozen=True)
class Catalog:
    """Ordered course sections; activity ids are unique across the catalog."""

    sections: Tuple[Section, ...] = ()
    id: str = ""
    title: str = ""

    def __post_init__(self) -> None:
        seen = set()
        for section in self.sections:
            for activity in section.activities:
                if activity.id in seen:
                    raise ValueError(f"Duplicate activity id '{activity.id}' in catalog.")
                seen.add(activity.id)

    def activities(self) -> List[Activity]:
        return [activity for section in self.sections for activity in section.activities]

    def activity_ids(self) -> List[str]:
        return [activity.id for activity in self.activities()]

    def __len__(self) -> int:
        return sum(len(section.activities) for section in self.sections)


@dataclass(frozen=True)
class LearnerProfile:
    id: str
    actor_id: str
    persona_type: str = "average"


@dataclass(frozen=True)
class Metric:
    """Numeric aggregate with an explicit no-data flag instead of NaN."""

    value: float = 0.0
    has_data: bool = False

    @classmethod
    def of(cls, value: float) -> "Metric":
        return cls(value=float(value), has_data=True)

    @classmethod
    def missing(cls) -> "Metric":
        return cls(value=0.0, has_data=False)

    def display(self, digits: int = 1, unit: str = "") -> str:
        if not self.has_data:
            return NOT_AVAILABLE
        return f"{self.value:.{digits}f}{unit}"


@dataclass(frozen=True)
class CommunityComparison:
    learner: Metric
    community: Metric


@dataclass(frozen=True)
class ActivityMetrics:
    """One row of the per-activity overview."""

    activity_id: str
    title: str
    section: str
    resource_type: Optional[str]
    interactivity_type: Optional[str]
    interactivity_level: Optional[str]
    semantic_density: Optional[str]
    difficulty: str
    typical_learning_time: int
    completion_count: int
    average_learning_time: Metric
    average_grade: Metric
    average_attempts_to_pass: Metric
    average_rating: Metric


@dataclass(frozen=True)
class ActivityHistoryRow:
    activity_id: str
    title: str
    section: str
    attempts: int
    completed: bool
    scores: Tuple[float, ...]
    completion_score: Optional[float]
    total_duration: int
    last_attempt: Optional[datetime]


@dataclass(frozen=True)
class SectionAverage:
    section: str
    average_score: Metric
    average_time: Metric


@dataclass(frozen=True)
class TimelineStats:
    actor_id: str
    event_count: int
    total_minutes: int
    active_days: int
    total_days: int
    active_percentage: float
    max_gap_days: float
    gap_start: Optional[datetime]
    gap_end: Optional[datetime]
    gap_start_position: Optional[int]
    gap_end_position: Optional[int]


@dataclass(frozen=True)
class InactivityGap:
    """Largest pause between two consecutive events of one learner."""

    actor_id: str
    gap_days: float
    start: datetime
    end: datetime
    start_position: int
    end_position: int
    active_days: int
    total_days: int
    active_percentage: float
    total_minutes: int


@dataclass(frozen=True)
class PrecedenceEntry:
    activity_id: str
    title: str
    count: int
    percentage: float


@dataclass(frozen=True)
class PrecedenceReport:
    target_activity_id: str
    completers: int
    non_completers: int
    entries: Tuple[PrecedenceEntry, ...] = ()


@dataclass(frozen=True)
class LearnerMetrics:
    actor_id: str
    total_minutes: int
    completion_ratio: Metric
    history: Tuple[ActivityHistoryRow, ...]
    timeline: Optional[TimelineStats]
    inactivity: Optional[InactivityGap]
    section_averages: Dict[str, SectionAverage] = field(default_factory=dict)


@dataclass(frozen=True)
class AttemptOutcomes:
    passed: int
    failed: int
    pass_percentage: Metric

    @property
    def total(self) -> int:
        return self.passed + self.failed


@dataclass(frozen=True)
class StatementStatistics:
    """Usage counts and per-learner averages over the whole statement store."""

    total_statements: int
    learner_count: int
    activity_count: int
    verb_usage: Dict[str, int]
    activity_usage: Dict[str, int]
    section_usage: Dict[str, int]
    statements_per_learner: Metric
    completed_per_learner: Metric
    average_score: Metric
    duration_per_learner: Metric
