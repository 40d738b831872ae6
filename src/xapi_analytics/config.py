# ABOUTME: Loads engine settings (thresholds, persona weights) from a YAML file.
# ABOUTME: Falls back to built-in defaults when no configuration file is supplied.

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

import yaml

from .inactivity import DEFAULT_INACTIVITY_THRESHOLD_DAYS
from .insights import InsightThresholds
from .recommendation import PERSONA_WEIGHTS, REVIEW_DIFFICULTY_THRESHOLD

CONFIG_ENV_VAR = "XAPI_ANALYTICS_CONFIG"


def _default_insight_thresholds() -> Dict[str, float]:
    return {
        "low_grade_factor": InsightThresholds.LOW_GRADE_FACTOR,
        "time_deviation": InsightThresholds.TIME_DEVIATION,
        "low_rating_factor": InsightThresholds.LOW_RATING_FACTOR,
        "low_rating_score": InsightThresholds.LOW_RATING_SCORE,
        "low_rating_count": InsightThresholds.LOW_RATING_COUNT,
    }


@dataclass(frozen=True)
class EngineConfig:
    """Tunable engine policies shared by the CLI commands."""

    inactivity_threshold_days: float = DEFAULT_INACTIVITY_THRESHOLD_DAYS
    recommendation_count: int = 5
    review_difficulty_threshold: float = REVIEW_DIFFICULTY_THRESHOLD
    persona_weights: Mapping[str, Tuple[float, float]] = field(default_factory=lambda: dict(PERSONA_WEIGHTS))
    insight_thresholds: Mapping[str, float] = field(default_factory=_default_insight_thresholds)


def load_engine_config(path: Optional[Path] = None) -> EngineConfig:
    """
    Read an ``EngineConfig`` from YAML.

    Without ``path`` the ``XAPI_ANALYTICS_CONFIG`` environment variable is
    consulted; with neither, defaults are returned. Partial persona and
    insight tables are merged over the defaults.
    """

    if path is None:
        env_path = os.environ.get(CONFIG_ENV_VAR)
        if not env_path:
            return EngineConfig()
        path = Path(env_path)

    with open(path, "r") as f:
        cfg = yaml.safe_load(f) or {}
    if not isinstance(cfg, dict):
        raise ValueError(f"Engine config at {path} must be a mapping.")

    known = {f.name for f in fields(EngineConfig)}
    unknown = sorted(set(cfg) - known)
    if unknown:
        raise ValueError(f"Unknown engine config keys: {', '.join(unknown)}")

    defaults = EngineConfig()
    persona_weights = dict(defaults.persona_weights)
    for persona, weights in (cfg.pop("persona_weights", None) or {}).items():
        if len(weights) != 2:
            raise ValueError(f"Persona '{persona}' needs [difficulty_weight, duration_weight], got {weights!r}.")
        persona_weights[persona] = (float(weights[0]), float(weights[1]))

    insight_thresholds = dict(defaults.insight_thresholds)
    extra = cfg.pop("insight_thresholds", None) or {}
    unknown = sorted(set(extra) - set(insight_thresholds))
    if unknown:
        raise ValueError(f"Unknown insight thresholds: {', '.join(unknown)}")
    insight_thresholds.update({key: float(value) for key, value in extra.items()})

    return EngineConfig(persona_weights=persona_weights, insight_thresholds=insight_thresholds, **cfg)
