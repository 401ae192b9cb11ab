# =============================================================================
# school_core/data/memory_backend.py
# In-process backend ("mock" provider) for development and tests
# =============================================================================
"""
InMemoryBackend keeps tables in dictionaries and emits realtime-py shaped
notifications for every write, delivered on the event loop (never inline)
so writers observe the same "echo arrives later" behaviour as with
Supabase Realtime.

It also exposes a few knobs to simulate failures:

    backend.fail_next_fetch(ConnectionError("offline"))
    backend.fail_next_subscribe(2)
    backend.drop_feed("class_sessions")          # CHANNEL_ERROR to subscribers
    backend.fetch_gate = asyncio.Event()         # hold fetches until set()
"""

from __future__ import annotations
import asyncio
import copy
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
import uuid

from school_core.logging import get_logger
from school_core.data.interfaces import (
    Entity,
    EventCallback,
    FeedState,
    FeedSubscription,
    RemoteBackend,
    StatusCallback,
)
from school_core.sync.filters import FilterSet

logger = get_logger(__name__)


class InMemoryBackend(RemoteBackend):
    """Dictionary-backed tables with a per-collection change feed."""

    name = "mock"

    def __init__(self, schema: str = "public"):
        self.schema = schema
        self._tables: Dict[str, Dict[str, Entity]] = {}
        self._subscribers: Dict[str, Dict[str, Tuple[EventCallback, Optional[StatusCallback]]]] = {}
        self._pending = 0
        self._fetch_failures: List[Exception] = []
        self._subscribe_failures = 0
        self.fetch_gate: Optional[asyncio.Event] = None
        self.fetch_count = 0
        self.subscribe_count = 0

    # =========================================================================
    # TEST / DEMO HELPERS
    # =========================================================================

    def seed(self, collection: str, rows: List[Entity]) -> None:
        """Load rows without emitting change notifications."""
        table = self._tables.setdefault(collection, {})
        for row in rows:
            row = copy.deepcopy(row)
            row.setdefault("id", uuid.uuid4().hex)
            table[str(row["id"])] = row

    def rows(self, collection: str) -> List[Entity]:
        return [copy.deepcopy(row) for row in self._tables.get(collection, {}).values()]

    def subscriber_count(self, collection: str) -> int:
        return len(self._subscribers.get(collection, {}))

    def fail_next_fetch(self, error: Exception) -> None:
        self._fetch_failures.append(error)

    def fail_next_subscribe(self, times: int = 1) -> None:
        self._subscribe_failures += times

    def drop_feed(self, collection: str, state: FeedState = FeedState.CHANNEL_ERROR) -> None:
        """Simulate the transport dropping every subscription on ``collection``."""
        subscribers = self._subscribers.pop(collection, {})
        error = ConnectionError(f"Realtime channel for {collection} dropped")
        for _, on_status in subscribers.values():
            if on_status is not None:
                self._schedule(on_status, state, error)

    def emit_raw(self, collection: str, payload: Any) -> None:
        """Deliver an arbitrary payload to subscribers (e.g. a malformed one)."""
        for on_event, _ in list(self._subscribers.get(collection, {}).values()):
            self._schedule(on_event, payload)

    async def flush(self) -> None:
        """Yield to the loop until every scheduled notification ran."""
        # One extra turn lets callbacks scheduled by callbacks run too
        while self._pending:
            await asyncio.sleep(0)
        await asyncio.sleep(0)

    # =========================================================================
    # REMOTE QUERY
    # =========================================================================

    async def fetch(
        self,
        collection: str,
        filters: FilterSet,
        selection: str = "*",
    ) -> List[Entity]:
        self.fetch_count += 1
        if self.fetch_gate is not None:
            await self.fetch_gate.wait()
        if self._fetch_failures:
            raise self._fetch_failures.pop(0)

        rows = [
            self._select(row, selection)
            for row in self._tables.get(collection, {}).values()
            if filters.matches(row)
        ]
        return copy.deepcopy(rows)

    @staticmethod
    def _select(row: Entity, selection: str) -> Entity:
        if not selection or selection.strip() == "*":
            return row
        columns = [c.strip() for c in selection.split(",") if c.strip()]
        selected = {c: row.get(c) for c in columns if c in row}
        selected["id"] = row["id"]
        return selected

    # =========================================================================
    # REMOTE WRITER
    # =========================================================================

    async def insert(self, collection: str, fields: Entity) -> Entity:
        table = self._tables.setdefault(collection, {})
        row = copy.deepcopy(dict(fields))
        row.setdefault("id", uuid.uuid4().hex)
        key = str(row["id"])
        if key in table:
            raise ValueError(f'duplicate key value violates unique constraint "{collection}_pkey"')
        now = self._now()
        row.setdefault("created_at", now)
        row.setdefault("updated_at", now)
        table[key] = row
        self._publish(collection, "INSERT", record=row, old_record={})
        return copy.deepcopy(row)

    async def update(self, collection: str, entity_id: str, fields: Entity) -> Optional[Entity]:
        table = self._tables.get(collection, {})
        current = table.get(str(entity_id))
        if current is None:
            return None
        old = copy.deepcopy(current)
        current.update(copy.deepcopy(dict(fields)))
        current["updated_at"] = self._now()
        self._publish(collection, "UPDATE", record=current, old_record={"id": old["id"]})
        return copy.deepcopy(current)

    async def delete(self, collection: str, entity_id: str) -> Optional[Entity]:
        table = self._tables.get(collection, {})
        removed = table.pop(str(entity_id), None)
        if removed is None:
            return None
        # Like Postgres without REPLICA IDENTITY FULL: only the key is sent
        self._publish(collection, "DELETE", record={}, old_record={"id": removed["id"]})
        return copy.deepcopy(removed)

    # =========================================================================
    # CHANGE FEED
    # =========================================================================

    async def subscribe(
        self,
        collection: str,
        on_event: EventCallback,
        on_status: Optional[StatusCallback] = None,
    ) -> FeedSubscription:
        self.subscribe_count += 1
        if self._subscribe_failures:
            self._subscribe_failures -= 1
            raise ConnectionError(f"Could not open realtime channel for {collection}")

        subscription = FeedSubscription(collection=collection)
        self._subscribers.setdefault(collection, {})[subscription.subscription_id] = (on_event, on_status)
        if on_status is not None:
            self._schedule(on_status, FeedState.SUBSCRIBED, None)
        return subscription

    async def unsubscribe(self, subscription: FeedSubscription) -> None:
        subscribers = self._subscribers.get(subscription.collection, {})
        entry = subscribers.pop(subscription.subscription_id, None)
        if entry is not None and entry[1] is not None:
            self._schedule(entry[1], FeedState.CLOSED, None)

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _publish(self, collection: str, operation: str, record: Entity, old_record: Entity) -> None:
        payload = {
            "data": {
                "schema": self.schema,
                "table": collection,
                "type": operation,
                "commit_timestamp": self._now(),
                "record": copy.deepcopy(record),
                "old_record": copy.deepcopy(old_record),
            },
            "ids": [],
        }
        for on_event, _ in list(self._subscribers.get(collection, {}).values()):
            # Each subscriber gets its own copy, like separate websocket frames
            self._schedule(on_event, copy.deepcopy(payload))

    def _schedule(self, callback, *args) -> None:
        loop = asyncio.get_running_loop()
        self._pending += 1

        def _run():
            self._pending -= 1
            try:
                callback(*args)
            except Exception as e:
                logger.error(f"Error in change feed callback: {e}", exc_info=True)

        loop.call_soon(_run)

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()
