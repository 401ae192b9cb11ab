# =============================================================================
# school_core/data/interfaces.py
# Contracts for the remote data service the sync core talks to
# =============================================================================

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional
import uuid

if TYPE_CHECKING:
    from school_core.sync.filters import FilterSet

Entity = Dict[str, Any]
EventCallback = Callable[[Any], None]


class FeedState(Enum):
    """Channel states reported by the change feed (Supabase Realtime names)."""
    SUBSCRIBED = "SUBSCRIBED"
    CHANNEL_ERROR = "CHANNEL_ERROR"
    TIMED_OUT = "TIMED_OUT"
    CLOSED = "CLOSED"

    @classmethod
    def coerce(cls, value: Any) -> FeedState:
        if isinstance(value, FeedState):
            return value
        return cls(str(getattr(value, "value", value)).upper())


StatusCallback = Callable[[FeedState, Optional[Exception]], None]


@dataclass
class FeedSubscription:
    """Handle for one open change-feed subscription."""
    collection: str
    channel: Any = None
    subscription_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])


class RemoteQuery(ABC):
    """Server-side filtered reads."""

    @abstractmethod
    async def fetch(
        self,
        collection: str,
        filters: FilterSet,
        selection: str = "*",
    ) -> List[Entity]:
        """Return every row of ``collection`` matching ``filters``."""


class ChangeFeed(ABC):
    """Push stream of insert/update/delete notifications per collection."""

    @abstractmethod
    async def subscribe(
        self,
        collection: str,
        on_event: EventCallback,
        on_status: Optional[StatusCallback] = None,
    ) -> FeedSubscription:
        """Start delivering raw notifications for ``collection``."""

    @abstractmethod
    async def unsubscribe(self, subscription: FeedSubscription) -> None:
        """Stop delivery for ``subscription``."""


class RemoteWriter(ABC):
    """Single-row writes returning the server's authoritative row."""

    @abstractmethod
    async def insert(self, collection: str, fields: Entity) -> Entity:
        ...

    @abstractmethod
    async def update(self, collection: str, entity_id: str, fields: Entity) -> Optional[Entity]:
        """Return the updated row, or None when no row has ``entity_id``."""

    @abstractmethod
    async def delete(self, collection: str, entity_id: str) -> Optional[Entity]:
        """Return the deleted row, or None when nothing matched."""


class RemoteBackend(RemoteQuery, ChangeFeed, RemoteWriter):
    """A data service providing reads, the change feed and writes."""

    name: str = "backend"

    async def close(self) -> None:
        """Release network resources (no-op by default)."""
