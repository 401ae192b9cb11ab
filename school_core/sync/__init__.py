# =============================================================================
# school_core/sync/__init__.py
# Reactive collection synchronization layer
# =============================================================================
"""
Live filtered views over remote collections.

    ┌──────────────┐   fetch (filtered)   ┌──────────────┐
    │  ViewHandle  │ ───────────────────► │   Backend    │
    │ ┌──────────┐ │ ◄─────────────────── │ (Supabase /  │
    │ │  Mirror  │ │   change feed (all)  │   mock)      │
    │ │  Store   │ │                      └──────────────┘
    │ └──────────┘ │                             ▲
    └──────────────┘                             │ writes
            ▲   normalize → matches → apply      │
            └──────────────────────────── CrudFacade

Usage:
------
from school_core.sync import SubscriptionManager

view = await manager.open("class_sessions", {"teacher_id": "T1", "is_active": True})
print(len(view.entities))
await view.update(session_id, {"status": "building"})   # echo arrives via the feed
await view.close()
"""

from school_core.sync.filters import (
    FilterConstraint,
    FilterSet,
    matches,
    normalize_filters,
)

from school_core.sync.events import (
    ChangeEvent,
    Created,
    Updated,
    Deleted,
    normalize,
)

from school_core.sync.mirror_store import MirrorStore

from school_core.sync.audit import AuditTrail, compute_changed_fields

from school_core.sync.crud import CrudFacade

from school_core.sync.subscription_manager import (
    SubscriptionManager,
    ViewHandle,
    get_subscription_manager,
    open_view,
)

__all__ = [
    # Filters
    "FilterConstraint",
    "FilterSet",
    "matches",
    "normalize_filters",
    # Events
    "ChangeEvent",
    "Created",
    "Updated",
    "Deleted",
    "normalize",
    # Store
    "MirrorStore",
    # Writes
    "AuditTrail",
    "compute_changed_fields",
    "CrudFacade",
    # Views
    "SubscriptionManager",
    "ViewHandle",
    "get_subscription_manager",
    "open_view",
]
