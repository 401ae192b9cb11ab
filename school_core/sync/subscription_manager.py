# =============================================================================
# school_core/sync/subscription_manager.py
# Subscription Lifecycle Manager: live filtered views over remote collections
# =============================================================================
"""
A view is opened with a collection name and a filter set:

    manager = SubscriptionManager(backend, settings)
    async with await manager.open("class_sessions", {"teacher_id": "T1"}) as view:
        render(view.entities)

Opening performs one server-filtered fetch into the view's MirrorStore and
then subscribes to the change feed for the whole collection. Every
notification is normalized and merged against the view's filters, so rows
enter and leave the view as their fields change.

Each view owns its own subscription and its own store. Closing a view
stops event delivery; the store keeps the last snapshot for reading.

When the feed reports an error the view keeps its (stale) rows, exposes
``subscription_error`` and reconnects with exponential backoff, refreshing
after each successful resubscription to pick up missed changes.
"""

from __future__ import annotations
import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional

from school_core.config import SyncSettings
from school_core.errors import (
    ErrorContext,
    FetchError,
    MalformedEventError,
    SubscriptionError,
    handle_error,
)
from school_core.logging import get_logger
from school_core.data.interfaces import FeedState, FeedSubscription, RemoteBackend
from school_core.services import ServiceResult
from school_core.sync.audit import AuditTrail
from school_core.sync.crud import CrudFacade
from school_core.sync.events import normalize
from school_core.sync.filters import FilterInput, FilterSet
from school_core.sync.mirror_store import MirrorStore

logger = get_logger(__name__)

Entity = Dict[str, Any]


class ViewHandle:
    """
    A live, filtered projection of one remote collection.

    Consumer contract: ``entities``, ``loading``, ``error``, ``create``,
    ``update``, ``remove``, ``refresh`` and ``close``. Also usable as an
    async context manager that closes on exit.
    """

    def __init__(
        self,
        manager: SubscriptionManager,
        collection: str,
        filters: FilterSet,
        selection: str,
        crud: CrudFacade,
    ):
        self._manager = manager
        self.collection = collection
        self.selection = selection
        self.crud = crud
        self.store = MirrorStore()

        self.loading = False
        self.error: Optional[FetchError] = None
        self.subscription_error: Optional[SubscriptionError] = None

        self._filters = filters
        self._closed = False
        # Bumped on every (re)start; stale fetches/feeds compare against it
        self._generation = 0
        self._fetch_seq = 0
        self._feed_seq = 0
        self._feed_failed = False
        self._feed_confirmed = False
        # Set while degraded; cleared once a post-reconnect fetch succeeds
        self._catch_up_pending = False
        self._subscription: Optional[FeedSubscription] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._reconnect_attempts = 0

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<ViewHandle {self.collection} {self._filters.to_list()!r} {state} rows={len(self.store)}>"

    # =========================================================================
    # READ API
    # =========================================================================

    @property
    def entities(self) -> List[Entity]:
        return self.store.entities

    @property
    def filters(self) -> FilterSet:
        return self._filters

    @property
    def filter_key(self) -> str:
        return self._filters.canonical_key()

    @property
    def is_open(self) -> bool:
        return not self._closed

    @property
    def is_live(self) -> bool:
        """True while subscribed with no outstanding feed error."""
        return not self._closed and self._subscription is not None and self.subscription_error is None

    def to_dataframe(self):
        return self.store.to_dataframe()

    # =========================================================================
    # WRITE API (delegates to the facade; results arrive via the feed)
    # =========================================================================

    async def create(self, fields: Mapping[str, Any]) -> ServiceResult:
        return await self.crud.create(fields)

    async def update(self, entity_id: str, changes: Mapping[str, Any]) -> ServiceResult:
        return await self.crud.update(entity_id, changes, previous=self.store.get(entity_id))

    async def remove(self, entity_id: str) -> ServiceResult:
        return await self.crud.remove(entity_id)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def refresh(self) -> None:
        """Re-fetch the view's rows, keeping the current subscription."""
        if self._closed:
            return
        await self._load(self._generation)

    async def set_filters(self, filters: FilterInput) -> bool:
        """
        Change the view's filters.

        Filters are compared by value: an equal filter set is a no-op.

        Returns:
            True if the view re-fetched and re-subscribed
        """
        new_filters = FilterSet.coerce(filters)
        if new_filters.canonical_key() == self.filter_key:
            return False
        if self._closed:
            self._filters = new_filters
            return False

        logger.info(f"Filters changed on {self.collection}: {new_filters.to_list()}")
        await self._stop_feed()
        self._filters = new_filters
        await self._start()
        return True

    async def close(self) -> None:
        """Unsubscribe; the store keeps its last snapshot. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self.loading = False
        try:
            await self._stop_feed()
        finally:
            self._manager._release(self)
        logger.info(f"Closed view on {self.collection}")

    async def __aenter__(self) -> ViewHandle:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        await self.close()
        return False

    async def _start(self) -> None:
        self._generation += 1
        generation = self._generation
        self._reconnect_attempts = 0
        self.subscription_error = None
        self._catch_up_pending = False

        await self._load(generation, initial=True)
        if not self._is_current(generation):
            return
        if not await self._subscribe(generation):
            self._schedule_reconnect(generation)

    async def _stop_feed(self) -> None:
        # Invalidate callbacks and fetches belonging to the old generation
        self._generation += 1
        self._feed_seq += 1
        task = self._reconnect_task
        self._reconnect_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        await self._drop_subscription()

    def _is_current(self, generation: int) -> bool:
        return not self._closed and generation == self._generation

    # =========================================================================
    # FETCH
    # =========================================================================

    async def _load(self, generation: int, initial: bool = False) -> bool:
        """
        Fetch the view's rows into the store.

        Only the first load of a generation empties the store on failure;
        a failed refresh or catch-up keeps the last good rows and sets
        ``error``.

        Returns:
            False if this fetch failed, True otherwise (including when it
            was superseded and discarded)
        """
        self._fetch_seq += 1
        fetch_seq = self._fetch_seq
        self.loading = True
        self.error = None

        try:
            rows = await self._manager.backend.fetch(self.collection, self._filters, self.selection)
        except Exception as e:
            if not self._is_latest_fetch(generation, fetch_seq):
                return True
            self.error = e if isinstance(e, FetchError) else FetchError(
                f"Failed to fetch {self.collection}: {e}",
                collection=self.collection,
                filters=self._filters.to_list(),
            )
            handle_error(self.error, log=logger)
            if initial:
                self.store.replace_all([])
            else:
                logger.warning(f"Keeping {len(self.store)} previously loaded rows on {self.collection}")
            self.loading = False
            return False

        if not self._is_latest_fetch(generation, fetch_seq):
            logger.debug(f"Discarding stale fetch of {self.collection}")
            return True

        self.store.replace_all(rows)
        self.loading = False
        logger.info(f"Loaded {len(self.store)} rows into view on {self.collection}")
        return True

    def _is_latest_fetch(self, generation: int, fetch_seq: int) -> bool:
        return self._is_current(generation) and fetch_seq == self._fetch_seq

    # =========================================================================
    # CHANGE FEED
    # =========================================================================

    async def _subscribe(self, generation: int) -> bool:
        self._feed_seq += 1
        feed_seq = self._feed_seq
        self._feed_failed = False
        self._feed_confirmed = False

        def on_event(raw: Any) -> None:
            if feed_seq == self._feed_seq and self._is_current(generation):
                self._handle_raw(raw)

        def on_status(state: FeedState, error: Optional[Exception] = None) -> None:
            if feed_seq == self._feed_seq and self._is_current(generation):
                self._handle_status(FeedState.coerce(state), error, generation)

        try:
            subscription = await self._manager.backend.subscribe(self.collection, on_event, on_status)
        except Exception as e:
            if self._is_current(generation):
                self._mark_degraded(f"Could not subscribe to {self.collection}: {e}", state=None)
            return False

        if not self._is_current(generation) or feed_seq != self._feed_seq:
            # Closed or restarted while subscribing
            await self._unsubscribe(subscription)
            return False

        self._subscription = subscription
        return True

    async def _drop_subscription(self) -> None:
        subscription = self._subscription
        self._subscription = None
        # The CLOSED status our own unsubscribe triggers is not a failure
        self._feed_seq += 1
        if subscription is not None:
            await self._unsubscribe(subscription)

    async def _unsubscribe(self, subscription: FeedSubscription) -> None:
        try:
            await self._manager.backend.unsubscribe(subscription)
        except Exception as e:
            logger.warning(f"Error unsubscribing from {self.collection}: {e}")

    def _handle_raw(self, raw: Any) -> None:
        try:
            event = normalize(raw)
        except MalformedEventError as e:
            # One bad notification must not take the view down
            handle_error(e, log=logger, level=logging.WARNING)
            return

        if event.collection and event.collection != self.collection:
            return
        self.store.apply(event, self._filters)

    def _handle_status(self, state: FeedState, error: Optional[Exception], generation: int) -> None:
        if state == FeedState.SUBSCRIBED:
            self._feed_confirmed = True
            # Stay degraded until the reconnect loop has caught up
            if not self._catch_up_pending:
                self._restore_live()
            return

        self._feed_failed = True
        detail = f": {error}" if error else ""
        self._mark_degraded(f"Change feed for {self.collection} reported {state.value}{detail}", state=state)
        self._schedule_reconnect(generation)

    def _restore_live(self) -> None:
        if self.subscription_error is not None:
            logger.info(f"Live updates restored on {self.collection}")
        self.subscription_error = None
        self._reconnect_attempts = 0

    def _mark_degraded(self, message: str, state: Optional[FeedState]) -> None:
        self._catch_up_pending = True
        self.subscription_error = SubscriptionError(
            message,
            collection=self.collection,
            state=state.value if state else None,
            attempts=self._reconnect_attempts,
        )
        handle_error(self.subscription_error, log=logger, level=logging.WARNING)

    # =========================================================================
    # RECONNECTION
    # =========================================================================

    def _schedule_reconnect(self, generation: int) -> None:
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        self._reconnect_task = asyncio.get_running_loop().create_task(self._reconnect(generation))

    async def _reconnect(self, generation: int) -> None:
        settings = self._manager.settings

        while self._is_current(generation):
            if self._reconnect_attempts >= settings.max_reconnect_attempts:
                self.subscription_error = SubscriptionError(
                    f"Live updates paused for {self.collection} after "
                    f"{self._reconnect_attempts} reconnect attempts",
                    collection=self.collection,
                    attempts=self._reconnect_attempts,
                    recoverable=False,
                )
                handle_error(self.subscription_error, log=logger)
                return

            delay = settings.reconnect_delay(self._reconnect_attempts)
            self._reconnect_attempts += 1
            logger.info(
                f"Reconnecting to {self.collection} in {delay:.1f}s "
                f"(attempt {self._reconnect_attempts}/{settings.max_reconnect_attempts})"
            )
            await asyncio.sleep(delay)
            if not self._is_current(generation):
                return

            await self._drop_subscription()
            if not await self._subscribe(generation):
                continue

            # Catch up on changes missed while the feed was down
            if not await self._load(generation):
                if self._is_current(generation):
                    self._mark_degraded(f"Could not catch up on {self.collection} after reconnecting", state=None)
                continue

            self._catch_up_pending = False
            if self._feed_failed:
                continue
            if self._feed_confirmed:
                self._restore_live()
            return


class SubscriptionManager:
    """
    Opens and tracks views over a backend.

    The manager is the explicit registry of open views: callers hold the
    handle returned by ``open`` and release it with ``close`` (or
    ``close_all`` on shutdown).

    Usage:
        manager = SubscriptionManager(backend, settings)
        view = await manager.open("class_sessions", [("teacher_id", "T1")])
        ...
        await view.close()
    """

    def __init__(
        self,
        backend: RemoteBackend,
        settings: Optional[SyncSettings] = None,
        audit: Optional[AuditTrail] = None,
    ):
        self.backend = backend
        self.settings = settings or SyncSettings()
        self.audit = audit
        self._views: List[ViewHandle] = []

    @property
    def open_views(self) -> List[ViewHandle]:
        return list(self._views)

    def crud(self, collection: str) -> CrudFacade:
        """Write facade for ``collection`` sharing this manager's backend."""
        return CrudFacade(collection, self.backend, audit=self.audit)

    async def open(
        self,
        collection: str,
        filters: FilterInput = None,
        selection: str = "*",
    ) -> ViewHandle:
        """
        Open a live view.

        Fetch failures do not raise: they are exposed on ``view.error``
        with an empty entity list. The view still subscribes, so later
        changes (or a ``refresh``) can populate it.
        """
        view = ViewHandle(
            self,
            collection,
            FilterSet.coerce(filters),
            selection or "*",
            self.crud(collection),
        )
        self._views.append(view)
        logger.info(f"Opening view on {collection} with filters {view.filters.to_list()}")
        await view._start()
        return view

    async def close_all(self) -> None:
        """Close every open view; one failing close does not stop the rest."""
        for view in list(self._views):
            with ErrorContext(f"Closing view on {view.collection}", log=logger):
                await view.close()

    def _release(self, view: ViewHandle) -> None:
        if view in self._views:
            self._views.remove(view)


# Singleton accessor
_subscription_manager: Optional[SubscriptionManager] = None


def get_subscription_manager() -> SubscriptionManager:
    """Get the global SubscriptionManager (backend chosen from settings)."""
    global _subscription_manager
    if _subscription_manager is None:
        from school_core.config import load_settings
        from school_core.data import create_backend

        settings = load_settings()
        _subscription_manager = SubscriptionManager(create_backend(settings), settings)
    return _subscription_manager


async def open_view(
    collection: str,
    filters: FilterInput = None,
    selection: str = "*",
    manager: Optional[SubscriptionManager] = None,
) -> ViewHandle:
    """Open a view on the given (or global) manager."""
    return await (manager or get_subscription_manager()).open(collection, filters, selection)
