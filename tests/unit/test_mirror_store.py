# =============================================================================
# tests/unit/test_mirror_store.py
# Unit Tests for MirrorStore
# =============================================================================

import pytest

from school_core.sync.events import Created, Deleted, Updated
from school_core.sync.mirror_store import MirrorStore

T1 = {"teacher_id": "T1", "is_active": True}


@pytest.fixture
def store():
    return MirrorStore([
        {"id": "a", "teacher_id": "T1", "is_active": True},
        {"id": "b", "teacher_id": "T1", "is_active": True},
        {"id": "c", "teacher_id": "T1", "is_active": True},
    ])


class TestReplaceAll:
    """Test wholesale loads"""

    def test_keeps_order(self, store):
        assert store.ids() == ["a", "b", "c"]

    def test_duplicate_ids_collapse_last_wins_first_position(self):
        store = MirrorStore([
            {"id": "a", "v": 1},
            {"id": "b", "v": 1},
            {"id": "a", "v": 2},
        ])

        assert store.ids() == ["a", "b"]
        assert store.get("a")["v"] == 2

    def test_rows_without_id_are_skipped(self):
        store = MirrorStore([{"id": "a"}, {"name": "no id"}, {"id": None}])
        assert store.ids() == ["a"]

    def test_numeric_ids_are_looked_up_as_strings(self):
        store = MirrorStore([{"id": 5}])

        assert 5 in store
        assert "5" in store
        assert store.get(5) == {"id": 5}


class TestApply:
    """Test merging change events against a filter set"""

    def test_created_matching_is_appended(self, store):
        changed = store.apply(Created({"id": "d", "teacher_id": "T1", "is_active": True}), T1)

        assert changed
        assert store.ids() == ["a", "b", "c", "d"]

    def test_created_not_matching_is_ignored(self, store):
        changed = store.apply(Created({"id": "d", "teacher_id": "T2", "is_active": True}), T1)

        assert not changed
        assert "d" not in store

    def test_duplicate_created_is_idempotent(self, store):
        row = {"id": "d", "teacher_id": "T1", "is_active": True}

        assert store.apply(Created(row), T1)
        assert not store.apply(Created(dict(row)), T1)
        assert len(store) == 4

    def test_updated_replaces_in_place(self, store):
        store.apply(Updated({"id": "b", "teacher_id": "T1", "is_active": True, "status": "ready"}), T1)

        assert store.ids() == ["a", "b", "c"]
        assert store.get("b")["status"] == "ready"

    def test_updated_replaces_whole_row(self, store):
        store.apply(Updated({"id": "b", "teacher_id": "T1", "is_active": True, "extra": 1}), T1)
        store.apply(Updated({"id": "b", "teacher_id": "T1", "is_active": True}), T1)

        assert "extra" not in store.get("b")

    def test_updated_not_matching_is_evicted(self, store):
        changed = store.apply(Updated({"id": "b", "teacher_id": "T1", "is_active": False}), T1)

        assert changed
        assert store.ids() == ["a", "c"]

    def test_updated_matching_unknown_row_is_admitted(self, store):
        store.apply(Updated({"id": "z", "teacher_id": "T1", "is_active": True}), T1)
        assert store.ids() == ["a", "b", "c", "z"]

    def test_updated_not_matching_unknown_row_is_noop(self, store):
        assert not store.apply(Updated({"id": "z", "teacher_id": "T9"}), T1)
        assert len(store) == 3

    def test_deleted_removes(self, store):
        assert store.apply(Deleted("a"), T1)
        assert store.ids() == ["b", "c"]

    def test_deleted_unknown_is_noop(self, store):
        assert not store.apply(Deleted("zzz"), T1)
        assert len(store) == 3

    def test_unknown_event_type_is_ignored(self, store):
        assert not store.apply(object(), T1)
        assert len(store) == 3

    def test_entities_is_a_copy(self, store):
        store.entities.clear()
        assert len(store) == 3


class TestListeners:
    """Test change notification to consumers"""

    def test_listener_called_on_change_only(self, store):
        calls = []
        store.add_listener(lambda s: calls.append(len(s)))

        store.apply(Deleted("a"), T1)
        store.apply(Deleted("a"), T1)

        assert calls == [2]

    def test_failing_listener_does_not_block_others(self, store):
        calls = []

        def broken(_):
            raise RuntimeError("render failed")

        store.add_listener(broken)
        store.add_listener(lambda s: calls.append("ok"))

        store.apply(Deleted("a"), T1)

        assert calls == ["ok"]

    def test_remove_listener(self, store):
        calls = []
        listener = lambda s: calls.append(1)
        store.add_listener(listener)
        store.remove_listener(listener)

        store.apply(Deleted("a"), T1)

        assert calls == []


class TestToDataFrame:
    """Test table rendering helper"""

    def test_empty_store(self):
        assert MirrorStore().to_dataframe().empty

    def test_columns_are_unioned(self):
        df = MirrorStore([{"id": "a", "x": 1}, {"id": "b", "y": 2}]).to_dataframe()

        assert list(df["id"]) == ["a", "b"]
        assert set(df.columns) == {"id", "x", "y"}
