# ABOUTME: Validates raw xAPI statements, catalog documents and learner records.
# ABOUTME: Converts the store's JSON/YAML payloads into canonical engine dataclasses.

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .event_index import ACTIVITY_ID_EXTENSION
from .schemas import Activity, Catalog, Event, LearnerProfile, Score, Section


class ScorePayload(BaseModel):
    raw: Optional[float] = None
    min: Optional[float] = None
    max: Optional[float] = None
    scaled: Optional[float] = None


class ResultPayload(BaseModel):
    score: Optional[ScorePayload] = None
    completion: Optional[bool] = None
    success: Optional[bool] = None
    duration: Optional[str] = None


class ActorPayload(BaseModel):
    mbox: Optional[str] = None
    name: Optional[str] = None


class VerbPayload(BaseModel):
    id: str
    display: Dict[str, str] = Field(default_factory=dict)


class DefinitionPayload(BaseModel):
    type: Optional[str] = None
    name: Dict[str, str] = Field(default_factory=dict)
    extensions: Dict[str, Any] = Field(default_factory=dict)


class ObjectPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    object_type: Optional[str] = Field(None, alias="objectType")
    definition: DefinitionPayload = Field(default_factory=DefinitionPayload)


class StatementPayload(BaseModel):
    """Subset of the xAPI statement shape the engine reads."""

    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    actor: ActorPayload
    verb: VerbPayload
    object_: ObjectPayload = Field(alias="object")
    timestamp: datetime
    result: Optional[ResultPayload] = None

    def to_event(self) -> Event:
        actor_id = self.actor.mbox or self.actor.name
        if not actor_id:
            raise ValueError(f"Statement {self.id!r} has no actor identifier.")

        extensions = {str(k): str(v) for k, v in self.object_.definition.extensions.items() if v is not None}
        result = self.result or ResultPayload()
        score = None
        if result.score is not None:
            score = Score(
                raw=result.score.raw,
                min=result.score.min,
                max=result.score.max,
                scaled=result.score.scaled,
            )

        return Event(
            actor_id=actor_id,
            verb=verb_name(self.verb.id),
            object_id=self.object_.id,
            timestamp=self.timestamp,
            activity_id=extensions.get(ACTIVITY_ID_EXTENSION) or None,
            score=score,
            completion=result.completion,
            success=result.success,
            duration=result.duration,
            statement_id=self.id,
            extensions=extensions,
        )


class ActivityDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str = ""
    difficulty: Union[float, str, None] = None
    interactivity_type: Optional[str] = Field(None, alias="interactivityType")
    interactivity_level: Optional[str] = Field(None, alias="interactivityLevel")
    semantic_density: Optional[str] = Field(None, alias="semanticDensity")
    typical_learning_time: Optional[str] = Field(None, alias="typicalLearningTime")
    estimated_duration: Optional[float] = Field(None, alias="estimatedDuration")
    learning_resource_type: Optional[str] = Field(None, alias="learningResourceType")
    description: Optional[str] = ""
    href: Optional[str] = None


class SectionDocument(BaseModel):
    title: str
    activities: List[ActivityDocument] = Field(default_factory=list)


class CatalogDocument(BaseModel):
    id: str = ""
    title: str = ""
    sections: List[SectionDocument] = Field(default_factory=list)

    def to_catalog(self) -> Catalog:
        sections = []
        for section in self.sections:
            activities = tuple(
                Activity(
                    id=doc.id,
                    title=doc.title or doc.id,
                    section=section.title,
                    difficulty=doc.difficulty,
                    interactivity_type=doc.interactivity_type,
                    interactivity_level=doc.interactivity_level,
                    semantic_density=doc.semantic_density,
                    typical_learning_time=doc.typical_learning_time,
                    estimated_duration=None if doc.estimated_duration is None else int(round(doc.estimated_duration)),
                    learning_resource_type=doc.learning_resource_type,
                    description=doc.description or "",
                    href=doc.href,
                )
                for doc in section.activities
            )
            sections.append(Section(title=section.title, activities=activities))
        return Catalog(sections=tuple(sections), id=self.id, title=self.title)


class LearnerDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Union[str, int]
    email: Optional[str] = None
    actor_id: Optional[str] = Field(None, alias="actorId")
    persona_type: str = Field("average", alias="personaType")

    def to_profile(self) -> LearnerProfile:
        actor_id = self.actor_id or self.email
        if not actor_id:
            raise ValueError(f"Learner {self.id!r} has neither actorId nor email.")
        return LearnerProfile(id=str(self.id), actor_id=actor_id, persona_type=self.persona_type)


@dataclass(frozen=True)
class ParsedStatements:
    events: List[Event]
    skipped: int = 0


def verb_name(verb_id: str) -> str:
    """Short verb name from an IRI, e.g. ``http://adlnet.gov/expapi/verbs/passed`` -> ``passed``."""

    tail = verb_id.rstrip("/").rsplit("/", 1)[-1]
    return tail.rsplit("#", 1)[-1].strip().lower()


def parse_statements(raw_statements: Iterable[Mapping[str, Any]], strict: bool = False) -> ParsedStatements:
    """
    Convert raw statement dictionaries into canonical events.

    Malformed statements are skipped and counted; with ``strict=True`` the
    first validation error propagates instead.
    """

    events: List[Event] = []
    skipped = 0
    for raw in raw_statements:
        try:
            events.append(StatementPayload.model_validate(raw).to_event())
        except (ValidationError, ValueError):
            if strict:
                raise
            skipped += 1
    return ParsedStatements(events=events, skipped=skipped)


def parse_catalog(document: Mapping[str, Any]) -> Catalog:
    return CatalogDocument.model_validate(document).to_catalog()


def parse_learners(records: Iterable[Mapping[str, Any]]) -> List[LearnerProfile]:
    return [LearnerDocument.model_validate(record).to_profile() for record in records]


def load_statements(path: Path, strict: bool = False) -> ParsedStatements:
    document = _read_document(path)
    if isinstance(document, Mapping):
        # LRS query responses wrap the list in a "statements" key.
        document = document.get("statements", [])
    return parse_statements(document, strict=strict)


def load_catalog(path: Path) -> Catalog:
    document = _read_document(path)
    if not isinstance(document, Mapping):
        raise ValueError(f"Catalog document at {path} must be a mapping with a 'sections' list.")
    return parse_catalog(document)


def load_learners(path: Path) -> List[LearnerProfile]:
    document = _read_document(path)
    if isinstance(document, Mapping):
        document = document.get("learners", [])
    return parse_learners(document)


def _read_document(path: Path) -> Any:
    suffix = path.suffix.lower()
    text = path.read_text(encoding="utf-8")
    if suffix == ".json":
        return json.loads(text)
    if suffix in {".yaml", ".yml"}:
        return yaml.safe_load(text)
    raise ValueError(f"Unsupported document format '{suffix}'. Expected one of: .json, .yaml, .yml.")
