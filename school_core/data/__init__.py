# =============================================================================
# school_core/data/__init__.py
# Remote data service backends
# =============================================================================

from __future__ import annotations
from typing import Optional

from school_core.config import SyncSettings, load_settings
from school_core.data.interfaces import (
    ChangeFeed,
    FeedState,
    FeedSubscription,
    RemoteBackend,
    RemoteQuery,
    RemoteWriter,
)
from school_core.data.memory_backend import InMemoryBackend
from school_core.data.supabase_client import SupabaseBackend, create_supabase_client


def create_backend(settings: Optional[SyncSettings] = None) -> RemoteBackend:
    """
    Build the backend selected by ``settings.provider``.

    Args:
        settings: Sync settings (loaded from secrets/env when omitted)

    Returns:
        RemoteBackend instance
    """
    settings = settings or load_settings()
    if settings.provider == "supabase":
        return SupabaseBackend(settings)
    return InMemoryBackend(schema=settings.schema)


__all__ = [
    "ChangeFeed",
    "FeedState",
    "FeedSubscription",
    "InMemoryBackend",
    "RemoteBackend",
    "RemoteQuery",
    "RemoteWriter",
    "SupabaseBackend",
    "create_backend",
    "create_supabase_client",
]
