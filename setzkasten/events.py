"""
Setzkasten Project Events

Append-only audit trail of manifest changes and evaluations, stored as
newline-delimited JSON in ``.setzkasten/events.log`` under the project
root. Each event carries a fingerprint of its payload so that log lines
can be checked against the payload they claim to describe.

Event types
───────────

    manifest.created        manifest.font_added     manifest.font_removed
    scan.completed          policy.ok               policy.warning_raised
    quote.generated         migration.planned
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from setzkasten.core import (
    EVENT_LOG_RELATIVE_PATH,
    LICENSE_SPEC_VERSION,
    MANIFEST_VERSION,
    SetzkastenError,
    json_default,
    append_line,
    fingerprint,
    now_iso8601,
)

logger = logging.getLogger(__name__)

DEFAULT_ACTOR = "local_user"

MANIFEST_CREATED = "manifest.created"
MANIFEST_FONT_ADDED = "manifest.font_added"
MANIFEST_FONT_REMOVED = "manifest.font_removed"
SCAN_COMPLETED = "scan.completed"
POLICY_OK = "policy.ok"
POLICY_WARNING_RAISED = "policy.warning_raised"
QUOTE_GENERATED = "quote.generated"
MIGRATION_PLANNED = "migration.planned"


class EventLogError(SetzkastenError):
    """The event log cannot be read."""
    pass


def _schema_versions() -> Dict[str, str]:
    return {"manifest": MANIFEST_VERSION, "license_spec": LICENSE_SPEC_VERSION}


@dataclass
class ProjectEvent:
    """A single audit event."""
    event_type: str
    project_id: str
    payload: Dict[str, Any] = field(default_factory=dict)
    actor: str = DEFAULT_ACTOR
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    ts: str = field(default_factory=now_iso8601)
    schema_versions: Dict[str, str] = field(default_factory=_schema_versions)
    payload_hash: str = ""

    def __post_init__(self):
        if not self.payload_hash:
            self.payload_hash = fingerprint(self.payload)

    def verify_payload(self) -> bool:
        """Whether ``payload_hash`` still matches the payload."""
        return self.payload_hash == fingerprint(self.payload)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "ts": self.ts,
            "actor": self.actor,
            "project_id": self.project_id,
            "schema_versions": dict(self.schema_versions),
            "payload": self.payload,
            "payload_hash": self.payload_hash,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProjectEvent":
        return cls(
            event_type=data["event_type"],
            project_id=data["project_id"],
            payload=data.get("payload") or {},
            actor=data.get("actor") or DEFAULT_ACTOR,
            event_id=data["event_id"],
            ts=data["ts"],
            schema_versions=data.get("schema_versions") or _schema_versions(),
            payload_hash=data.get("payload_hash", ""),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, default=json_default)


def create_event(
    event_type: str,
    project_id: str,
    payload: Optional[Dict[str, Any]] = None,
    actor: Optional[str] = None,
    schema_versions: Optional[Dict[str, str]] = None,
) -> ProjectEvent:
    """Create an event; missing schema versions default to the current ones."""
    versions = _schema_versions()
    versions.update(schema_versions or {})
    return ProjectEvent(
        event_type=event_type,
        project_id=project_id,
        payload=payload or {},
        actor=actor or DEFAULT_ACTOR,
        schema_versions=versions,
    )


def event_log_path(project_root: Union[str, Path], log_path: Optional[str] = None) -> Path:
    """Event log location; ``log_path`` is taken relative to the project root."""
    return Path(project_root) / (log_path or EVENT_LOG_RELATIVE_PATH)


def append_event(
    project_root: Union[str, Path],
    event: ProjectEvent,
    log_path: Optional[str] = None,
) -> Path:
    """Append one event line and return the log path."""
    path = event_log_path(project_root, log_path)
    append_line(path, event.to_json())
    logger.debug("Appended %s event %s to %s", event.event_type, event.event_id, path)
    return path


def read_events(project_root: Union[str, Path], log_path: Optional[str] = None) -> List[ProjectEvent]:
    """Read all events in log order. A missing log reads as empty.

    Raises:
        EventLogError: a line is not a valid event.
    """
    path = event_log_path(project_root, log_path)
    if not path.exists():
        return []

    events: List[ProjectEvent] = []
    with open(path, "r", encoding="utf-8") as f:
        for line_number, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                events.append(ProjectEvent.from_dict(json.loads(line)))
            except (ValueError, KeyError, TypeError) as e:
                raise EventLogError(f"{path}:{line_number}: invalid event: {e}") from e
    return events


def append_project_event(
    project_root: Union[str, Path],
    project_id: str,
    event_type: str,
    payload: Optional[Dict[str, Any]] = None,
    actor: Optional[str] = None,
    log_path: Optional[str] = None,
) -> ProjectEvent:
    """Create and append an event in one step."""
    event = create_event(event_type, project_id, payload=payload, actor=actor)
    append_event(project_root, event, log_path=log_path)
    return event
