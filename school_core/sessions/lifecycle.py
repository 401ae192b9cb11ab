# =============================================================================
# school_core/sessions/lifecycle.py
# Session Lifecycle State Machine and UI guard predicates
# =============================================================================
"""
    scheduled ──► building ──► ready ──► in_progress ──► completed
        │            │           │            │
        └────────────┴───────────┴────────────┴──────► cancelled

completed and cancelled are terminal.

| Transition                | Guard                          |
|---------------------------|--------------------------------|
| scheduled -> building     | none                           |
| building -> ready         | lesson_plan_completed is true  |
| ready -> in_progress      | session_date is today          |
| in_progress -> completed  | attendance_taken is true       |
| non-terminal -> cancelled | none (administrative action)   |

Guards are evaluated on the session *after* the accompanying field changes,
since e.g. saving the lesson plan sets ``lesson_plan_completed`` and
``status = "ready"`` in one write.

A session whose date passes does not change status on its own; date
filtering lives in ``school_core.sessions.calendar``.
"""

from __future__ import annotations
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional

from school_core.errors import InvalidStatusError, InvalidTransitionError

Session = Mapping[str, Any]


class SessionStatus(str, Enum):
    """Status of a scheduled teaching session."""
    SCHEDULED = "scheduled"
    BUILDING = "building"
    READY = "ready"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES: FrozenSet[SessionStatus] = frozenset({
    SessionStatus.COMPLETED,
    SessionStatus.CANCELLED,
})

TRANSITIONS: Dict[SessionStatus, FrozenSet[SessionStatus]] = {
    SessionStatus.SCHEDULED: frozenset({SessionStatus.BUILDING, SessionStatus.CANCELLED}),
    SessionStatus.BUILDING: frozenset({SessionStatus.READY, SessionStatus.CANCELLED}),
    SessionStatus.READY: frozenset({SessionStatus.IN_PROGRESS, SessionStatus.CANCELLED}),
    SessionStatus.IN_PROGRESS: frozenset({SessionStatus.COMPLETED, SessionStatus.CANCELLED}),
    SessionStatus.COMPLETED: frozenset(),
    SessionStatus.CANCELLED: frozenset(),
}


# =============================================================================
# FIELD ACCESS
# =============================================================================

def parse_status(value: Any) -> SessionStatus:
    """
    Parse a status value from a row.

    Raises:
        InvalidStatusError: for anything outside the lifecycle
    """
    if isinstance(value, SessionStatus):
        return value
    if isinstance(value, str):
        try:
            return SessionStatus(value.strip().lower())
        except ValueError:
            pass
    raise InvalidStatusError(f"Unknown session status: {value!r}", status=value)


def session_status(session: Session) -> Optional[SessionStatus]:
    """The session's status, or None when missing/unknown."""
    try:
        return parse_status(session.get("status"))
    except InvalidStatusError:
        return None


def parse_session_date(value: Any) -> Optional[date]:
    """Accepts ``date``, ``datetime`` or an ISO string ("2025-03-14[T...]")."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None


def session_date(session: Session) -> Optional[date]:
    return parse_session_date(session.get("session_date"))


def _flag(session: Session, field: str) -> bool:
    return session.get(field) is True


# =============================================================================
# TRANSITIONS
# =============================================================================

def allowed_transitions(status: Any) -> FrozenSet[SessionStatus]:
    """Statuses reachable in one step from ``status``."""
    return TRANSITIONS[parse_status(status)]


def transition_error(
    session: Session,
    target: Any,
    changes: Optional[Mapping[str, Any]] = None,
    today: Optional[date] = None,
) -> Optional[str]:
    """
    Why ``session`` cannot move to ``target``, or None if it can.

    Args:
        session: Current row
        target: Desired status
        changes: Fields written together with the status
        today: Reference date (defaults to date.today())
    """
    current = session_status(session)
    if current is None:
        return f"session has an unknown status {session.get('status')!r}"
    try:
        target_status = parse_status(target)
    except InvalidStatusError:
        return f"unknown target status {target!r}"

    if current.is_terminal:
        return f"session is {current.value}"
    if target_status not in TRANSITIONS[current]:
        return f"cannot go from {current.value} to {target_status.value}"

    after = {**session, **(changes or {})}
    today = today or date.today()

    if target_status == SessionStatus.READY and not _flag(after, "lesson_plan_completed"):
        return "the lesson plan has not been completed"
    if target_status == SessionStatus.IN_PROGRESS and session_date(after) != today:
        return "the session is not scheduled for today"
    if target_status == SessionStatus.COMPLETED and not _flag(after, "attendance_taken"):
        return "attendance has not been taken"
    return None


def can_transition(
    session: Session,
    target: Any,
    changes: Optional[Mapping[str, Any]] = None,
    today: Optional[date] = None,
) -> bool:
    return transition_error(session, target, changes, today) is None


def check_transition(
    session: Session,
    target: Any,
    changes: Optional[Mapping[str, Any]] = None,
    today: Optional[date] = None,
) -> SessionStatus:
    """
    Validate a transition.

    Returns:
        The target status

    Raises:
        InvalidTransitionError: naming the rule that failed
    """
    reason = transition_error(session, target, changes, today)
    if reason is not None:
        raise InvalidTransitionError(
            f"Cannot move session to {target}: {reason}",
            session_id=str(session.get("id")) if session.get("id") is not None else None,
            from_status=str(session.get("status")),
            to_status=str(getattr(target, "value", target)),
        )
    return parse_status(target)


# =============================================================================
# UI GUARDS
# =============================================================================

def can_build_lesson(session: Session) -> bool:
    """The lesson builder may be opened while scheduled or building."""
    return session_status(session) in (SessionStatus.SCHEDULED, SessionStatus.BUILDING)


def can_start_session(session: Session, today: Optional[date] = None) -> bool:
    """A ready session can be started on its own date."""
    return (
        session_status(session) == SessionStatus.READY
        and session_date(session) == (today or date.today())
    )


def can_resume(session: Session) -> bool:
    return session_status(session) == SessionStatus.IN_PROGRESS


def start_action_label(session: Session) -> str:
    return "Resume Lesson" if can_resume(session) else "Start Lesson"
