# =============================================================================
# school_core/data/supabase_client.py
# Supabase backend: PostgREST reads/writes and Realtime change feeds
# =============================================================================

from __future__ import annotations
from typing import Any, List, Optional
import uuid

from supabase import AsyncClient, acreate_client

from school_core.config import SyncSettings
from school_core.errors import ConfigurationError
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


async def create_supabase_client(settings: SyncSettings) -> AsyncClient:
    """
    Create an async Supabase client from settings.

    Raises:
        ConfigurationError: if the URL or key is missing
    """
    if not settings.supabase_url or not settings.supabase_key:
        raise ConfigurationError(
            "Supabase credentials not found. Configure [supabase] url/key in "
            ".streamlit/secrets.toml or SUPABASE_URL/SUPABASE_KEY in the environment.",
            config_key="supabase",
        )
    return await acreate_client(settings.supabase_url, settings.supabase_key)


class SupabaseBackend(RemoteBackend):
    """
    RemoteBackend over a Supabase project.

    Reads page through the 1000-row PostgREST limit. Each subscription opens
    its own Realtime channel for ``postgres_changes`` on the whole table.

    Usage:
        backend = SupabaseBackend(settings)
        rows = await backend.fetch("class_sessions", FilterSet({"teacher_id": "T1"}))
    """

    name = "supabase"
    BATCH_SIZE = 1000

    def __init__(self, settings: SyncSettings, client: Optional[AsyncClient] = None):
        self.settings = settings
        self._client = client

    async def _get_client(self) -> AsyncClient:
        """Lazy load the Supabase client."""
        if self._client is None:
            self._client = await create_supabase_client(self.settings)
            logger.info("Supabase client initialized")
        return self._client

    async def _table(self, collection: str):
        client = await self._get_client()
        if self.settings.schema and self.settings.schema != "public":
            return client.schema(self.settings.schema).table(collection)
        return client.table(collection)

    # =========================================================================
    # READS
    # =========================================================================

    async def fetch(
        self,
        collection: str,
        filters: FilterSet,
        selection: str = "*",
    ) -> List[Entity]:
        all_data: List[Entity] = []
        offset = 0

        while True:
            query = (await self._table(collection)).select(selection or "*")
            query = filters.apply_to_query(query)
            query = query.range(offset, offset + self.BATCH_SIZE - 1)
            response = await query.execute()

            if not response.data:
                break
            all_data.extend(response.data)
            # Fewer than a full batch means we reached the end
            if len(response.data) < self.BATCH_SIZE:
                break
            offset += self.BATCH_SIZE

        logger.debug(f"Fetched {len(all_data)} rows from {collection}")
        return all_data

    # =========================================================================
    # WRITES
    # =========================================================================

    async def insert(self, collection: str, fields: Entity) -> Entity:
        response = await (await self._table(collection)).insert(fields).execute()
        if not response.data:
            raise RuntimeError(f"Insert into {collection} returned no row")
        return response.data[0]

    async def update(self, collection: str, entity_id: str, fields: Entity) -> Optional[Entity]:
        response = await (await self._table(collection)).update(fields).eq("id", entity_id).execute()
        return response.data[0] if response.data else None

    async def delete(self, collection: str, entity_id: str) -> Optional[Entity]:
        response = await (await self._table(collection)).delete().eq("id", entity_id).execute()
        return response.data[0] if response.data else None

    # =========================================================================
    # CHANGE FEED
    # =========================================================================

    async def subscribe(
        self,
        collection: str,
        on_event: EventCallback,
        on_status: Optional[StatusCallback] = None,
    ) -> FeedSubscription:
        client = await self._get_client()
        subscription_id = uuid.uuid4().hex[:12]
        # Unique topic per view: views never share a channel
        channel = client.channel(f"{collection}-changes-{subscription_id}")
        channel.on_postgres_changes(
            "*",
            schema=self.settings.schema,
            table=collection,
            callback=on_event,
        )

        def _status(state: Any, error: Optional[Exception] = None) -> None:
            if on_status is None:
                return
            try:
                feed_state = FeedState.coerce(state)
            except ValueError:
                logger.debug(f"Ignoring unknown channel state {state!r} on {collection}")
                return
            on_status(feed_state, error)

        await channel.subscribe(_status)
        logger.info(f"Subscribed to {collection} changes ({subscription_id})")
        return FeedSubscription(collection=collection, channel=channel, subscription_id=subscription_id)

    async def unsubscribe(self, subscription: FeedSubscription) -> None:
        client = await self._get_client()
        await client.remove_channel(subscription.channel)
        logger.info(f"Unsubscribed from {subscription.collection} changes ({subscription.subscription_id})")

    async def close(self) -> None:
        if self._client is None:
            return
        await self._client.remove_all_channels()
        self._client = None
