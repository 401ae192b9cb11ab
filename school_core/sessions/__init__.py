# =============================================================================
# school_core/sessions/__init__.py
# Class session lifecycle
# =============================================================================

from school_core.sessions.lifecycle import (
    SessionStatus,
    TERMINAL_STATUSES,
    TRANSITIONS,
    parse_status,
    session_status,
    parse_session_date,
    session_date,
    allowed_transitions,
    transition_error,
    can_transition,
    check_transition,
    can_build_lesson,
    can_start_session,
    can_resume,
    start_action_label,
)

from school_core.sessions.workflow import SESSIONS_COLLECTION, SessionWorkflow

from school_core.sessions.calendar import (
    date_bucket,
    is_today,
    is_past,
    partition_by_date,
    filter_sessions,
    teaching_status_label,
    plan_status_label,
)

__all__ = [
    # Lifecycle
    "SessionStatus",
    "TERMINAL_STATUSES",
    "TRANSITIONS",
    "parse_status",
    "session_status",
    "parse_session_date",
    "session_date",
    "allowed_transitions",
    "transition_error",
    "can_transition",
    "check_transition",
    # UI guards
    "can_build_lesson",
    "can_start_session",
    "can_resume",
    "start_action_label",
    # Workflow
    "SESSIONS_COLLECTION",
    "SessionWorkflow",
    # Calendar
    "date_bucket",
    "is_today",
    "is_past",
    "partition_by_date",
    "filter_sessions",
    "teaching_status_label",
    "plan_status_label",
]
