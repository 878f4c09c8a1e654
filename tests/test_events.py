"""Tests for the NDJSON project event log."""

import json

import pytest

from setzkasten.core import fingerprint
from setzkasten.events import (
    MANIFEST_CREATED,
    QUOTE_GENERATED,
    EventLogError,
    ProjectEvent,
    append_event,
    append_project_event,
    create_event,
    event_log_path,
    read_events,
)


class TestProjectEvent:
    """Event construction and payload hashing."""

    def test_defaults(self):
        event = create_event(MANIFEST_CREATED, "proj_1", payload={"font_count": 0})
        assert event.actor == "local_user"
        assert event.schema_versions == {"manifest": "1.0.0", "license_spec": "1.0.0"}
        assert event.payload_hash == fingerprint({"font_count": 0})
        assert event.ts.endswith("Z")
        assert event.verify_payload()

    def test_schema_version_override(self):
        event = create_event(MANIFEST_CREATED, "p", schema_versions={"manifest": "0.9.0"})
        assert event.schema_versions == {"manifest": "0.9.0", "license_spec": "1.0.0"}

    def test_event_ids_unique(self):
        assert create_event(MANIFEST_CREATED, "p").event_id != create_event(MANIFEST_CREATED, "p").event_id

    def test_tampered_payload_detected(self):
        event = create_event(QUOTE_GENERATED, "p", payload={"total": "10.00"})
        event.payload["total"] = "1.00"
        assert not event.verify_payload()

    def test_dict_round_trip(self):
        event = create_event(QUOTE_GENERATED, "p", payload={"b": 1, "a": [1, 2]}, actor="ci")
        restored = ProjectEvent.from_dict(json.loads(event.to_json()))
        assert restored == event


class TestEventLog:
    """Appending and reading the log."""

    def test_append_and_read(self, tmp_path):
        first = append_project_event(tmp_path, "proj_1", MANIFEST_CREATED, {"font_count": 0})
        second = append_project_event(tmp_path, "proj_1", QUOTE_GENERATED, {"totals": {"EUR": "1.00"}})

        log = tmp_path / ".setzkasten" / "events.log"
        lines = log.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 2
        assert json.loads(lines[0])["event_type"] == MANIFEST_CREATED

        events = read_events(tmp_path)
        assert [e.event_id for e in events] == [first.event_id, second.event_id]
        assert all(e.verify_payload() for e in events)

    def test_custom_log_path(self, tmp_path):
        event = create_event(MANIFEST_CREATED, "p")
        path = append_event(tmp_path, event, log_path="audit/log.ndjson")
        assert path == tmp_path / "audit" / "log.ndjson"
        assert event_log_path(tmp_path, "audit/log.ndjson") == path
        assert read_events(tmp_path, "audit/log.ndjson")[0].event_id == event.event_id
        assert read_events(tmp_path) == []

    def test_blank_lines_ignored(self, tmp_path):
        append_project_event(tmp_path, "p", MANIFEST_CREATED)
        with open(event_log_path(tmp_path), "a", encoding="utf-8") as f:
            f.write("\n\n")
        assert len(read_events(tmp_path)) == 1

    @pytest.mark.parametrize("line", ["{not json", "[]", '{"event_type": "x"}'])
    def test_invalid_line(self, tmp_path, line):
        path = event_log_path(tmp_path)
        path.parent.mkdir(parents=True)
        path.write_text(line + "\n", encoding="utf-8")
        with pytest.raises(EventLogError, match=":1: invalid event"):
            read_events(tmp_path)
