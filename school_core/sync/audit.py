# =============================================================================
# school_core/sync/audit.py
# Audit trail for writes made through the CRUD facade
# =============================================================================

from __future__ import annotations
import json
from typing import Any, Dict, List, Mapping, Optional

from school_core.logging import get_logger

logger = get_logger(__name__)

AUDIT_TABLE = "audit_logs"
AUDIT_ACTIONS = ("INSERT", "UPDATE", "DELETE")


def _as_record(data: Any) -> Optional[Dict[str, Any]]:
    if isinstance(data, Mapping):
        return dict(data)
    return None


def _differs(old: Any, new: Any) -> bool:
    if old == new:
        return False
    try:
        return json.dumps(old, sort_keys=True, default=str) != json.dumps(new, sort_keys=True, default=str)
    except (TypeError, ValueError):
        return True


def compute_changed_fields(
    action: str,
    old_data: Optional[Mapping[str, Any]] = None,
    new_data: Optional[Mapping[str, Any]] = None,
) -> List[str]:
    """
    Fields touched by a write.

    INSERT lists every new field, DELETE every old field, UPDATE only the
    fields whose values differ (needs both snapshots, else nothing).
    """
    if action == "INSERT":
        return list(new_data.keys()) if new_data else []
    if action == "DELETE":
        return list(old_data.keys()) if old_data else []
    if not old_data or not new_data:
        return []

    fields = list(dict.fromkeys([*old_data.keys(), *new_data.keys()]))
    return [key for key in fields if _differs(old_data.get(key), new_data.get(key))]


class AuditTrail:
    """
    Writes one ``audit_logs`` row per successful mutation.

    Audit failures are logged and never change the outcome of the write
    being audited.

    Usage:
        audit = AuditTrail(backend, user_email="admin@school.org", user_role="admin")
        facade = CrudFacade("class_sessions", backend, audit=audit)
    """

    def __init__(
        self,
        writer,
        user_email: Optional[str] = None,
        user_role: Optional[str] = None,
        table: str = AUDIT_TABLE,
    ):
        self.writer = writer
        self.user_email = user_email
        self.user_role = user_role
        self.table = table

    def build_entry(
        self,
        table_name: str,
        action: str,
        record_id: Optional[str] = None,
        old_data: Any = None,
        new_data: Any = None,
    ) -> Dict[str, Any]:
        old_record = _as_record(old_data)
        new_record = _as_record(new_data)
        return {
            "table_name": table_name,
            "record_id": record_id,
            "action": action,
            "old_data": old_record,
            "new_data": new_record,
            "changed_fields": compute_changed_fields(action, old_record, new_record),
            "user_email": self.user_email,
            "user_role": self.user_role,
        }

    async def record(
        self,
        table_name: str,
        action: str,
        record_id: Optional[str] = None,
        old_data: Any = None,
        new_data: Any = None,
    ) -> bool:
        """
        Insert an audit row.

        Returns:
            True if the row was written
        """
        if table_name == self.table:
            return False
        if action not in AUDIT_ACTIONS:
            logger.warning(f"Unknown audit action '{action}' for {table_name}")
            return False

        entry = self.build_entry(table_name, action, record_id, old_data, new_data)
        try:
            await self.writer.insert(self.table, entry)
            return True
        except Exception as e:
            logger.error(f"Failed to write audit log entry for {table_name}/{record_id}: {e}")
            return False
