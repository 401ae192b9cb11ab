# =============================================================================
# school_core/sync/events.py
# Typed change events and the raw-notification normalizer
# =============================================================================
"""
Supabase delivers ``postgres_changes`` notifications in a couple of shapes
depending on the client library:

    realtime-py:  {"data": {"type": "UPDATE", "record": {...},
                            "old_record": {...}, "table": "class_sessions",
                            "commit_timestamp": "..."}, "ids": [...]}
    supabase-js:  {"eventType": "UPDATE", "new": {...}, "old": {...},
                   "table": "class_sessions", "commit_timestamp": "..."}

``normalize`` turns either into exactly one of Created / Updated / Deleted.
Updated always carries the full post-mutation row, never a diff.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union

from school_core.errors import MalformedEventError

Entity = Dict[str, Any]

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"


@dataclass(frozen=True)
class Created:
    entity: Entity
    collection: Optional[str] = None
    commit_timestamp: Optional[str] = None

    @property
    def id(self) -> str:
        return str(self.entity["id"])


@dataclass(frozen=True)
class Updated:
    entity: Entity
    collection: Optional[str] = None
    commit_timestamp: Optional[str] = None

    @property
    def id(self) -> str:
        return str(self.entity["id"])


@dataclass(frozen=True)
class Deleted:
    id: str
    collection: Optional[str] = None
    commit_timestamp: Optional[str] = None


ChangeEvent = Union[Created, Updated, Deleted]


def _unwrap(raw: Any) -> Mapping[str, Any]:
    if not isinstance(raw, Mapping):
        raise MalformedEventError("Change notification is not a mapping", payload=raw)
    inner = raw.get("data")
    if isinstance(inner, Mapping) and ("type" in inner or "eventType" in inner):
        return inner
    return raw


def _operation(body: Mapping[str, Any], raw: Any) -> str:
    tag = body.get("type") or body.get("eventType") or body.get("event")
    if not isinstance(tag, str):
        # realtime-py may hand us the RealtimePostgresChangesListenEvent enum
        tag = getattr(tag, "value", None)
    if not isinstance(tag, str):
        raise MalformedEventError("Change notification has no operation tag", payload=raw)
    tag = tag.upper()
    if tag not in (INSERT, UPDATE, DELETE):
        raise MalformedEventError(f"Unknown change operation '{tag}'", payload=raw)
    return tag


def _record(body: Mapping[str, Any], *keys: str) -> Optional[Mapping[str, Any]]:
    for key in keys:
        value = body.get(key)
        if isinstance(value, Mapping) and value:
            return value
    return None


def _require_id(record: Optional[Mapping[str, Any]], raw: Any, which: str) -> Entity:
    if record is None:
        raise MalformedEventError(f"Change notification is missing the {which} row", payload=raw)
    row_id = record.get("id")
    if row_id is None or row_id == "":
        raise MalformedEventError(f"The {which} row has no 'id'", payload=raw)
    return dict(record)


def normalize(raw: Any) -> ChangeEvent:
    """
    Convert a raw change notification into a typed event.

    Raises:
        MalformedEventError: for anything that is not a recognizable
            insert/update/delete carrying an identified row
    """
    body = _unwrap(raw)
    operation = _operation(body, raw)
    collection = body.get("table")
    commit_timestamp = body.get("commit_timestamp")

    if operation == INSERT:
        entity = _require_id(_record(body, "record", "new"), raw, "new")
        return Created(entity, collection, commit_timestamp)

    if operation == UPDATE:
        entity = _require_id(_record(body, "record", "new"), raw, "new")
        return Updated(entity, collection, commit_timestamp)

    old = _require_id(_record(body, "old_record", "old"), raw, "old")
    return Deleted(str(old["id"]), collection, commit_timestamp)
