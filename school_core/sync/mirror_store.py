# =============================================================================
# school_core/sync/mirror_store.py
# Local Mirror Store: the in-memory contents of one view
# =============================================================================

from __future__ import annotations
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

import pandas as pd

from school_core.logging import get_logger
from school_core.sync.events import ChangeEvent, Created, Deleted, Updated
from school_core.sync.filters import FilterInput, FilterSet

logger = get_logger(__name__)

Entity = Dict[str, Any]
StoreListener = Callable[["MirrorStore"], None]


def entity_key(entity: Entity) -> str:
    return str(entity["id"])


class MirrorStore:
    """
    Ordered, unique-by-id collection of entities backing one view.

    Nothing here raises: unknown ids on delete, or updates for rows that
    are not held and do not match, are no-ops. Rows are replaced wholesale,
    never patched field by field.

    Usage:
        store = MirrorStore()
        store.replace_all(rows)
        store.apply(Updated(row), filters)
        df = store.to_dataframe()
    """

    def __init__(self, entities: Optional[Iterable[Entity]] = None):
        # dicts keep insertion order; replacing a key keeps its position
        self._rows: Dict[str, Entity] = {}
        self._listeners: List[StoreListener] = []
        if entities is not None:
            self.replace_all(entities)

    # =========================================================================
    # READ API
    # =========================================================================

    @property
    def entities(self) -> List[Entity]:
        """Snapshot of the current rows in insertion order."""
        return list(self._rows.values())

    def ids(self) -> List[str]:
        return list(self._rows.keys())

    def get(self, entity_id: Any) -> Optional[Entity]:
        return self._rows.get(str(entity_id))

    def __contains__(self, entity_id: object) -> bool:
        return str(entity_id) in self._rows

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[Entity]:
        return iter(self.entities)

    def to_dataframe(self) -> pd.DataFrame:
        """Rows as a DataFrame for table rendering (empty frame when empty)."""
        if not self._rows:
            return pd.DataFrame()
        return pd.DataFrame(self.entities)

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    def replace_all(self, entities: Iterable[Entity]) -> None:
        """Replace the contents wholesale, e.g. after the initial fetch."""
        rows: Dict[str, Entity] = {}
        for entity in entities:
            if not isinstance(entity, dict) or entity.get("id") is None:
                logger.warning(f"Skipping row without an id: {entity!r}")
                continue
            rows[entity_key(entity)] = entity
        self._rows = rows
        self._notify()

    def apply(self, event: ChangeEvent, filters: FilterInput = None) -> bool:
        """
        Merge one change event into the store.

        Args:
            event: Created, Updated or Deleted
            filters: The view's filter set

        Returns:
            True if the contents changed
        """
        filter_set = FilterSet.coerce(filters)

        if isinstance(event, Deleted):
            changed = self._remove(event.id)
        elif isinstance(event, (Created, Updated)):
            if filter_set.matches(event.entity):
                # Created on a known id is a duplicate delivery: same upsert
                changed = self._upsert(event.entity)
            elif isinstance(event, Updated):
                # The edit moved the row out of this view
                changed = self._remove(event.id)
            else:
                changed = False
        else:
            logger.warning(f"Ignoring unknown event type: {type(event).__name__}")
            changed = False

        if changed:
            self._notify()
        return changed

    def _upsert(self, entity: Entity) -> bool:
        key = entity_key(entity)
        if self._rows.get(key) == entity:
            return False
        self._rows[key] = entity
        return True

    def _remove(self, entity_id: str) -> bool:
        return self._rows.pop(str(entity_id), None) is not None

    # =========================================================================
    # LISTENERS
    # =========================================================================

    def add_listener(self, listener: StoreListener) -> None:
        """Register a callback invoked after each change (e.g. to re-render)."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: StoreListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        for listener in self._listeners:
            try:
                listener(self)
            except Exception as e:
                logger.error(f"Error in mirror store listener: {e}", exc_info=True)
