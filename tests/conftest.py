# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import asyncio
import pytest
from datetime import date, timedelta
from typing import Dict, List
from unittest.mock import AsyncMock, MagicMock

from school_core.config import SyncSettings
from school_core.data import InMemoryBackend
from school_core.sync import SubscriptionManager


TODAY = date(2025, 3, 14)
SESSIONS = "class_sessions"


# =============================================================================
# SAMPLE DATA FIXTURES
# =============================================================================

def make_session(
    session_id: str,
    teacher_id: str,
    is_active: bool = True,
    status: str = "scheduled",
    day_offset: int = 0,
    **extra,
) -> Dict:
    """Build a class_sessions row dated relative to TODAY"""
    row = {
        "id": session_id,
        "teacher_id": teacher_id,
        "class_id": f"C-{teacher_id}",
        "is_active": is_active,
        "status": status,
        "session_date": (TODAY + timedelta(days=day_offset)).isoformat(),
        "lesson_plan_completed": False,
        "attendance_taken": False,
    }
    row.update(extra)
    return row


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def session_factory():
    return make_session


@pytest.fixture
def sample_sessions() -> List[Dict]:
    """Ten sessions; four belong to teacher T1 and are active"""
    return [
        make_session("s1", "T1"),
        make_session("s2", "T1", status="building"),
        make_session("s3", "T1", status="ready", lesson_plan_completed=True),
        make_session("s4", "T1", day_offset=1),
        make_session("s5", "T2", day_offset=-1),
        make_session("s6", "T2"),
        make_session("s7", "T2", status="completed", day_offset=-2,
                     lesson_plan_completed=True, attendance_taken=True),
        make_session("s8", "T2", is_active=False, status="cancelled"),
        make_session("s9", "T3", status="in_progress", lesson_plan_completed=True),
        make_session("s10", "T3", day_offset=7),
    ]


@pytest.fixture
def t1_filters():
    return {"teacher_id": "T1", "is_active": True}


# =============================================================================
# BACKEND / MANAGER FIXTURES
# =============================================================================

@pytest.fixture
def backend(sample_sessions):
    """In-memory backend seeded with class_sessions"""
    backend = InMemoryBackend()
    backend.seed(SESSIONS, sample_sessions)
    return backend


@pytest.fixture
def fast_settings():
    """Reconnect policy with tiny delays so tests do not wait"""
    return SyncSettings(
        provider="mock",
        max_reconnect_attempts=2,
        reconnect_base_delay=0.01,
        reconnect_max_delay=0.05,
    )


@pytest.fixture
async def manager(backend, fast_settings):
    manager = SubscriptionManager(backend, fast_settings)
    yield manager
    await manager.close_all()


@pytest.fixture
def settle():
    """Let scheduled notifications and reconnect tasks run"""
    async def _settle(backend=None, turns: int = 20, delay: float = 0.0):
        if delay:
            await asyncio.sleep(delay)
        if backend is not None:
            await backend.flush()
        for _ in range(turns):
            await asyncio.sleep(0)
    return _settle


# =============================================================================
# MOCK FIXTURES
# =============================================================================

@pytest.fixture
def mock_query():
    """PostgREST-style builder whose filter methods chain back to itself"""
    query = MagicMock()
    for method in ("select", "eq", "is_", "contains", "in_", "range", "insert", "update", "delete"):
        getattr(query, method).return_value = query
    query.execute = AsyncMock()
    return query


@pytest.fixture
def mock_supabase(mock_query):
    """Mock async Supabase client"""
    mock_client = MagicMock()
    mock_client.table.return_value = mock_query
    mock_client.schema.return_value.table.return_value = mock_query

    channel = MagicMock()
    channel.subscribe = AsyncMock(return_value=channel)
    mock_client.channel.return_value = channel
    mock_client.remove_channel = AsyncMock()
    mock_client.remove_all_channels = AsyncMock()
    return mock_client
