# ABOUTME: Exposes the public API of the xAPI learning analytics engine.
# ABOUTME: Groups loaders, the event index, aggregates, inactivity and recommendations.

from .aggregation import (
    activity_overview,
    attempt_outcomes,
    average_attempts_to_pass,
    average_grade,
    average_rating,
    average_scaled_score,
    average_time_on_task,
    compare_with_community,
    completed_before,
    completed_before_report,
    completion_ratio,
    learning_time_distribution,
    normalize_difficulty,
    rating_distribution,
    score_distribution,
    statement_statistics,
)
from .config import EngineConfig, load_engine_config
from .duration import DEFAULT_DURATION_MINUTES, parse_duration
from .event_index import EventIndex, Selector, build_index, group_by, resolve_activity
from .inactivity import detect_inactivity, inactivity_report, timeline_stats
from .learner_metrics import activity_history, learner_metrics
from .recommendation import PERSONA_WEIGHTS, RecommendedActivity, recommend_activities
from .schemas import Activity, Catalog, Event, LearnerProfile, Metric, Score, Section
from .statements import load_catalog, load_learners, load_statements, parse_statements

__version__ = "0.1.0"
