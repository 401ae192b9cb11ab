# =============================================================================
# school_core/sessions/workflow.py
# Session workflow actions: lifecycle-checked writes through the CRUD facade
# =============================================================================

from __future__ import annotations
import logging
from datetime import date
from typing import Any, Callable, Dict, Mapping, Optional

from school_core.errors import InvalidTransitionError, handle_error
from school_core.services import BaseService, ServiceResult
from school_core.sessions.lifecycle import (
    Session,
    SessionStatus,
    check_transition,
    session_status,
)
from school_core.sync.crud import CrudFacade

SESSIONS_COLLECTION = "class_sessions"


class SessionWorkflow(BaseService):
    """
    Teacher/admin actions on class sessions.

    Every action checks the lifecycle before writing. A rejected transition
    comes back as a failed ServiceResult (``SESSION_001``) and nothing is
    written. Accepted transitions go out through the facade, so open views
    pick the change up from the feed like any other write.

    Usage:
        workflow = SessionWorkflow(manager.crud("class_sessions"))
        result = await workflow.save_lesson_plan(session, {"objectives": [...]})
    """

    def __init__(
        self,
        facade: CrudFacade,
        today_provider: Callable[[], date] = date.today,
    ):
        super().__init__()
        self.facade = facade
        self.today_provider = today_provider

    async def transition(
        self,
        session: Session,
        target: Any,
        changes: Optional[Mapping[str, Any]] = None,
    ) -> ServiceResult:
        """
        Move ``session`` to ``target``, writing ``changes`` in the same update.

        Returns:
            ServiceResult with the updated row, or the rejection
        """
        try:
            status = check_transition(session, target, changes, today=self.today_provider())
        except InvalidTransitionError as e:
            handle_error(e, log=self.logger, level=logging.WARNING)
            return ServiceResult.from_exception(e)

        fields: Dict[str, Any] = dict(changes or {})
        fields["status"] = status.value
        return await self.facade.update(session["id"], fields, previous=session)

    async def open_builder(self, session: Session) -> ServiceResult:
        """Enter the lesson builder (scheduled -> building). Re-entering is a no-op."""
        if session_status(session) == SessionStatus.BUILDING:
            return ServiceResult.ok(dict(session))
        return await self.transition(session, SessionStatus.BUILDING)

    async def save_lesson_plan(self, session: Session, plan_data: Mapping[str, Any]) -> ServiceResult:
        """Store the plan and mark the session ready."""
        return await self.transition(
            session,
            SessionStatus.READY,
            {"lesson_plan_data": dict(plan_data), "lesson_plan_completed": True},
        )

    async def start(self, session: Session) -> ServiceResult:
        """Start the lesson on its date; an in-progress session is resumed as is."""
        if session_status(session) == SessionStatus.IN_PROGRESS:
            return ServiceResult.ok(dict(session), metadata={"resumed": True})
        return await self.transition(session, SessionStatus.IN_PROGRESS)

    async def record_attendance(self, session: Session) -> ServiceResult:
        """Mark attendance taken, completing the session."""
        return await self.transition(
            session,
            SessionStatus.COMPLETED,
            {"attendance_taken": True},
        )

    async def cancel(self, session: Session) -> ServiceResult:
        return await self.transition(session, SessionStatus.CANCELLED)
