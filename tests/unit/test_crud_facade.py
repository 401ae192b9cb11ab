# =============================================================================
# tests/unit/test_crud_facade.py
# Unit Tests for CrudFacade
# =============================================================================

import pytest
from unittest.mock import AsyncMock, MagicMock

from school_core.sync.audit import AuditTrail
from school_core.sync.crud import CrudFacade


@pytest.fixture
def facade(backend):
    return CrudFacade("class_sessions", backend)


class TestCreate:
    """Test inserts"""

    async def test_create_returns_row(self, facade, backend):
        result = await facade.create({"teacher_id": "T4", "status": "scheduled"})

        assert result.success
        assert result.data["id"]
        assert result.data["teacher_id"] == "T4"
        assert any(row["id"] == result.data["id"] for row in backend.rows("class_sessions"))

    async def test_create_rejects_non_mapping(self, facade):
        result = await facade.create(["not", "a", "row"])

        assert not result.success
        assert result.error_code == "SYNC_003"

    async def test_duplicate_id_is_a_failed_result(self, facade):
        result = await facade.create({"id": "s1", "teacher_id": "T1"})

        assert not result.success
        assert result.error_code == "SYNC_003"
        assert result.metadata["operation"] == "create"


class TestUpdate:
    """Test partial updates"""

    async def test_update_returns_full_row(self, facade):
        result = await facade.update("s1", {"status": "building"})

        assert result.success
        assert result.data["status"] == "building"
        assert result.data["teacher_id"] == "T1"

    async def test_unknown_id_fails_without_creating(self, facade, backend):
        before = len(backend.rows("class_sessions"))

        result = await facade.update("missing", {"status": "building"})

        assert not result.success
        assert result.error_code == "SYNC_003"
        assert result.metadata["record_id"] == "missing"
        assert len(backend.rows("class_sessions")) == before

    async def test_empty_changes_rejected(self, facade):
        result = await facade.update("s1", {})
        assert not result.success

    async def test_id_change_rejected(self, facade, backend):
        result = await facade.update("s1", {"id": "s99"})

        assert not result.success
        assert "s1" in [row["id"] for row in backend.rows("class_sessions")]

    async def test_same_id_in_changes_is_allowed(self, facade):
        result = await facade.update("s1", {"id": "s1", "status": "building"})
        assert result.success


class TestRemove:
    """Test deletes"""

    async def test_remove_returns_deleted_row(self, facade, backend):
        result = await facade.remove("s2")

        assert result.success
        assert result.data["id"] == "s2"
        assert "s2" not in [row["id"] for row in backend.rows("class_sessions")]

    async def test_remove_unknown_is_ok_none(self, facade):
        result = await facade.remove("missing")

        assert result.success
        assert result.data is None


class TestBackendFailures:
    """Network errors come back as failed results, never raised"""

    @pytest.fixture
    def broken_writer(self):
        writer = MagicMock()
        writer.insert = AsyncMock(side_effect=ConnectionError("offline"))
        writer.update = AsyncMock(side_effect=ConnectionError("offline"))
        writer.delete = AsyncMock(side_effect=ConnectionError("offline"))
        return writer

    @pytest.mark.parametrize("call", [
        lambda f: f.create({"teacher_id": "T1"}),
        lambda f: f.update("s1", {"status": "ready"}),
        lambda f: f.remove("s1"),
    ])
    async def test_wrapped_as_mutation_error(self, broken_writer, call):
        result = await call(CrudFacade("class_sessions", broken_writer))

        assert not result.success
        assert result.error_code == "SYNC_003"
        assert "offline" in result.error


class TestAudit:
    """Test audit rows written after successful mutations"""

    @pytest.fixture
    def audited(self, backend):
        audit = AuditTrail(backend, user_email="admin@school.org", user_role="admin")
        return CrudFacade("class_sessions", backend, audit=audit)

    async def test_update_is_audited_with_changed_fields(self, audited, backend, sample_sessions):
        previous = sample_sessions[0]

        await audited.update("s1", {"status": "building"}, previous=previous)

        entries = backend.rows("audit_logs")
        assert len(entries) == 1
        entry = entries[0]
        assert entry["table_name"] == "class_sessions"
        assert entry["action"] == "UPDATE"
        assert entry["record_id"] == "s1"
        assert "status" in entry["changed_fields"]
        assert entry["user_email"] == "admin@school.org"

    async def test_failed_mutation_is_not_audited(self, audited, backend):
        await audited.update("missing", {"status": "building"})
        assert backend.rows("audit_logs") == []

    async def test_create_and_remove_are_audited(self, audited, backend):
        created = await audited.create({"teacher_id": "T5"})
        await audited.remove(created.data["id"])

        actions = [entry["action"] for entry in backend.rows("audit_logs")]
        assert actions == ["INSERT", "DELETE"]
