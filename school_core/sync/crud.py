# =============================================================================
# school_core/sync/crud.py
# CRUD Operation Facade: the write path for a collection
# =============================================================================
"""
Writes go out through the facade and come back as ServiceResult values.
The facade never touches a MirrorStore: views observe the write only when
the change feed delivers its Created/Updated/Deleted echo, which may arrive
before or after the call returns.
"""

from __future__ import annotations
from typing import Any, Dict, Mapping, Optional

from school_core.errors import MutationError
from school_core.services import BaseService, ServiceResult
from school_core.sync.audit import AuditTrail

Entity = Dict[str, Any]


class CrudFacade(BaseService):
    """
    create/update/remove for one collection.

    Usage:
        facade = CrudFacade("class_sessions", backend)
        result = await facade.update(session_id, {"status": "building"})
        if not result:
            show(result.error)
    """

    def __init__(self, collection: str, writer, audit: Optional[AuditTrail] = None):
        super().__init__()
        self.collection = collection
        self.writer = writer
        self.audit = audit

    async def create(self, fields: Mapping[str, Any]) -> ServiceResult:
        """
        Insert one row.

        Returns:
            ServiceResult whose data is the created row
        """
        async def _create() -> Entity:
            if not isinstance(fields, Mapping):
                raise MutationError(
                    "Fields to create must be a mapping",
                    collection=self.collection,
                    operation="create",
                )
            try:
                row = await self.writer.insert(self.collection, dict(fields))
            except Exception as e:
                raise MutationError(
                    f"Failed to create in {self.collection}: {e}",
                    collection=self.collection,
                    operation="create",
                ) from e
            await self._audit("INSERT", row.get("id"), None, row)
            return row

        return await self.safe_execute(f"Creating in {self.collection}", _create)

    async def update(
        self,
        entity_id: str,
        changes: Mapping[str, Any],
        previous: Optional[Mapping[str, Any]] = None,
    ) -> ServiceResult:
        """
        Update one row by id.

        Args:
            entity_id: Row id
            changes: Partial fields to set
            previous: Snapshot the caller holds, used for the audit diff

        Returns:
            ServiceResult whose data is the updated row; an unknown id is a
            failed result (no row is created)
        """
        record_id = str(entity_id)

        async def _update() -> Entity:
            if not isinstance(changes, Mapping) or not changes:
                raise MutationError(
                    "Nothing to update",
                    collection=self.collection,
                    operation="update",
                    record_id=record_id,
                )
            if "id" in changes and str(changes["id"]) != record_id:
                raise MutationError(
                    "The id of a row cannot be changed",
                    collection=self.collection,
                    operation="update",
                    record_id=record_id,
                )
            try:
                row = await self.writer.update(self.collection, record_id, dict(changes))
            except Exception as e:
                raise MutationError(
                    f"Failed to update {self.collection}/{record_id}: {e}",
                    collection=self.collection,
                    operation="update",
                    record_id=record_id,
                ) from e
            if row is None:
                raise MutationError(
                    f"No row with id {record_id} in {self.collection}",
                    collection=self.collection,
                    operation="update",
                    record_id=record_id,
                )
            await self._audit("UPDATE", record_id, previous, row)
            return row

        return await self.safe_execute(f"Updating {self.collection}/{record_id}", _update)

    async def remove(self, entity_id: str) -> ServiceResult:
        """
        Delete one row by id.

        Returns:
            ServiceResult whose data is the deleted row, or None if nothing
            matched
        """
        record_id = str(entity_id)

        async def _remove() -> Optional[Entity]:
            try:
                row = await self.writer.delete(self.collection, record_id)
            except Exception as e:
                raise MutationError(
                    f"Failed to delete {self.collection}/{record_id}: {e}",
                    collection=self.collection,
                    operation="remove",
                    record_id=record_id,
                ) from e
            if row is not None:
                await self._audit("DELETE", record_id, row, None)
            return row

        return await self.safe_execute(f"Deleting {self.collection}/{record_id}", _remove)

    async def _audit(self, action: str, record_id: Any, old: Any, new: Any) -> None:
        if self.audit is None:
            return
        await self.audit.record(
            self.collection,
            action,
            str(record_id) if record_id is not None else None,
            old,
            new,
        )
