# ABOUTME: Tests validation of raw xAPI statements, catalog documents and learner records.
# ABOUTME: Ensures malformed statements are skipped and loaders honor file formats.

import json
import tempfile
import unittest
from pathlib import Path

import pytest
from pydantic import ValidationError

from xapi_analytics.event_index import ACTIVITY_ID_EXTENSION
from xapi_analytics.statements import (
    load_catalog,
    load_learners,
    load_statements,
    parse_catalog,
    parse_learners,
    parse_statements,
    verb_name,
)


def _statement(verb="completed", actor="mailto:ada@example.org", activity_id="act-1", **result):
    statement = {
        "id": "stmt-1",
        "actor": {"mbox": actor, "name": "Ada"},
        "verb": {"id": f"http://adlnet.gov/expapi/verbs/{verb}", "display": {"en-US": verb}},
        "object": {
            "id": f"http://example.org/activities/{activity_id}",
            "objectType": "Activity",
            "definition": {"extensions": {ACTIVITY_ID_EXTENSION: activity_id}},
        },
        "timestamp": "2024-03-01T10:00:00Z",
    }
    if result:
        statement["result"] = result
    return statement


def test_verb_name_uses_last_iri_segment():
    assert verb_name("http://adlnet.gov/expapi/verbs/passed") == "passed"
    assert verb_name("http://id.tincanapi.com/verb/rated") == "rated"
    assert verb_name("http://example.org/verbs#Scored") == "scored"


def test_parse_statements_builds_events():
    parsed = parse_statements(
        [_statement(score={"raw": 80, "min": 0, "max": 100, "scaled": 0.8}, completion=True, duration="PT20M")]
    )
    assert parsed.skipped == 0
    event = parsed.events[0]
    assert event.actor_id == "mailto:ada@example.org"
    assert event.verb == "completed"
    assert event.activity_id == "act-1"
    assert event.object_id == "http://example.org/activities/act-1"
    assert event.score.raw == 80
    assert event.score.scaled == 0.8
    assert event.completion is True
    assert event.duration == "PT20M"
    assert event.timestamp.tzinfo is not None


def test_parse_statements_without_extension_has_no_activity_id():
    raw = _statement()
    raw["object"]["definition"] = {}
    event = parse_statements([raw]).events[0]
    assert event.activity_id is None
    assert event.object_id.endswith("act-1")


def test_parse_statements_skips_malformed():
    missing_verb = _statement()
    del missing_verb["verb"]
    anonymous = _statement(actor=None)
    anonymous["actor"] = {}
    bad_time = _statement()
    bad_time["timestamp"] = "not a time"

    parsed = parse_statements([_statement(), missing_verb, anonymous, bad_time])
    assert len(parsed.events) == 1
    assert parsed.skipped == 3


def test_parse_statements_strict_raises():
    missing_verb = _statement()
    del missing_verb["verb"]
    with pytest.raises(ValidationError):
        parse_statements([missing_verb], strict=True)


def test_parse_catalog_and_duplicates():
    document = {
        "id": "course-1",
        "title": "Python",
        "sections": [
            {
                "title": "Basics",
                "activities": [
                    {"id": "a1", "title": "Intro", "difficulty": 0.2, "typicalLearningTime": "PT30M"},
                    {"id": "a2", "title": "Loops", "difficulty": "difficult", "estimatedDuration": 40},
                ],
            }
        ],
    }
    catalog = parse_catalog(document)
    assert len(catalog) == 2
    intro, loops = catalog.activities()
    assert intro.section == "Basics"
    assert intro.duration_minutes == 30
    assert loops.difficulty_value == 0.8
    assert loops.duration_minutes == 40

    document["sections"].append({"title": "More", "activities": [{"id": "a1", "title": "Again"}]})
    with pytest.raises(ValueError):
        parse_catalog(document)


def test_parse_learners_prefers_actor_id_then_email():
    learners = parse_learners(
        [
            {"id": 1, "email": "mailto:a@example.org", "personaType": "gritty"},
            {"id": "2", "actorId": "mailto:b@example.org"},
        ]
    )
    assert learners[0].actor_id == "mailto:a@example.org"
    assert learners[0].persona_type == "gritty"
    assert learners[0].id == "1"
    assert learners[1].persona_type == "average"


class LoaderTest(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.root = Path(self.tmpdir.name)

    def tearDown(self) -> None:
        self.tmpdir.cleanup()

    def test_load_statements_accepts_wrapped_json(self):
        path = self.root / "statements.json"
        path.write_text(json.dumps({"statements": [_statement(), {"broken": True}]}))
        parsed = load_statements(path)
        self.assertEqual(len(parsed.events), 1)
        self.assertEqual(parsed.skipped, 1)

    def test_load_catalog_from_yaml(self):
        path = self.root / "course.yaml"
        path.write_text(
            "id: c1\n"
            "title: Course\n"
            "sections:\n"
            "  - title: S1\n"
            "    activities:\n"
            "      - id: a1\n"
            "        title: First\n"
            "        difficulty: medium\n"
        )
        catalog = load_catalog(path)
        self.assertEqual(catalog.activity_ids(), ["a1"])
        self.assertEqual(catalog.activities()[0].difficulty_value, 0.6)

    def test_load_learners_from_json_list(self):
        path = self.root / "learners.json"
        path.write_text(json.dumps([{"id": 7, "email": "mailto:x@example.org", "personaType": "sprinter"}]))
        learners = load_learners(path)
        self.assertEqual(learners[0].persona_type, "sprinter")

    def test_unsupported_suffix_raises(self):
        path = self.root / "statements.csv"
        path.write_text("a,b\n")
        with self.assertRaises(ValueError):
            load_statements(path)
