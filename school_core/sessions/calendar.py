# =============================================================================
# school_core/sessions/calendar.py
# Date bucketing and display labels for class sessions
# =============================================================================

from __future__ import annotations
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from school_core.sessions.lifecycle import Session, SessionStatus, session_date, session_status

PAST = "past"
TODAY = "today"
UPCOMING = "upcoming"
ALL = "all"

DATE_FILTERS = (UPCOMING, PAST, ALL)

TEACHING_STATUS_LABELS = {
    SessionStatus.SCHEDULED: "Scheduled",
    SessionStatus.BUILDING: "Planning",
    SessionStatus.READY: "Ready",
    SessionStatus.IN_PROGRESS: "In Progress",
    SessionStatus.COMPLETED: "Taught",
    SessionStatus.CANCELLED: "Cancelled",
}


def date_bucket(session: Session, today: Optional[date] = None) -> str:
    """past / today / upcoming. A session without a readable date counts as today."""
    today = today or date.today()
    day = session_date(session)
    if day is None or day == today:
        return TODAY
    return PAST if day < today else UPCOMING


def is_today(session: Session, today: Optional[date] = None) -> bool:
    return date_bucket(session, today) == TODAY


def is_past(session: Session, today: Optional[date] = None) -> bool:
    return date_bucket(session, today) == PAST


def partition_by_date(
    sessions: Iterable[Session],
    today: Optional[date] = None,
) -> Dict[str, List[Session]]:
    """Split sessions into past/today/upcoming, keeping their order."""
    today = today or date.today()
    buckets: Dict[str, List[Session]] = {PAST: [], TODAY: [], UPCOMING: []}
    for session in sessions:
        buckets[date_bucket(session, today)].append(session)
    return buckets


def filter_sessions(
    sessions: Iterable[Session],
    when: str = ALL,
    today: Optional[date] = None,
) -> List[Session]:
    """
    Date filter used by the session lists.

    Args:
        when: "upcoming" (today and later), "past" (before today) or "all"

    Raises:
        ValueError: for an unknown filter
    """
    if when not in DATE_FILTERS:
        raise ValueError(f"Unknown date filter '{when}'. Use one of {DATE_FILTERS}")
    today = today or date.today()
    if when == ALL:
        return list(sessions)
    if when == PAST:
        return [s for s in sessions if date_bucket(s, today) == PAST]
    return [s for s in sessions if date_bucket(s, today) != PAST]


def teaching_status_label(status: Any) -> str:
    session = {"status": status}
    return TEACHING_STATUS_LABELS.get(session_status(session), "Scheduled")


def plan_status_label(lesson_plan_completed: Any, status: Any = None) -> str:
    """Done / In Progress / Needs Plan for the lesson plan column."""
    if lesson_plan_completed is True:
        return "Done"
    if session_status({"status": status}) == SessionStatus.BUILDING:
        return "In Progress"
    return "Needs Plan"
