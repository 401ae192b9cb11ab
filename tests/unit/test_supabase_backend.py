# =============================================================================
# tests/unit/test_supabase_backend.py
# Unit Tests for SupabaseBackend against a mocked client
# =============================================================================

import pytest
from unittest.mock import MagicMock

from school_core.config import SyncSettings
from school_core.data import FeedState, FeedSubscription, SupabaseBackend, create_supabase_client
from school_core.errors import ConfigurationError
from school_core.sync.filters import FilterSet


def response(data):
    """APIResponse stand-in"""
    return MagicMock(data=data)


@pytest.fixture
def settings():
    return SyncSettings(provider="supabase", supabase_url="https://x.supabase.co", supabase_key="anon")


@pytest.fixture
def supabase_backend(settings, mock_supabase):
    return SupabaseBackend(settings, client=mock_supabase)


class TestFetch:
    """Test paginated, filtered reads"""

    async def test_pages_until_short_batch(self, supabase_backend, mock_query):
        supabase_backend.BATCH_SIZE = 2
        mock_query.execute.side_effect = [
            response([{"id": "1"}, {"id": "2"}]),
            response([{"id": "3"}]),
        ]

        rows = await supabase_backend.fetch("class_sessions", FilterSet({"teacher_id": "T1"}))

        assert [r["id"] for r in rows] == ["1", "2", "3"]
        assert [c.args for c in mock_query.range.call_args_list] == [(0, 1), (2, 3)]
        mock_query.eq.assert_called_with("teacher_id", "T1")

    async def test_empty_table(self, supabase_backend, mock_query):
        mock_query.execute.return_value = response([])

        assert await supabase_backend.fetch("class_sessions", FilterSet()) == []
        mock_query.select.assert_called_once_with("*")

    async def test_non_public_schema(self, mock_supabase, mock_query):
        settings = SyncSettings(provider="supabase", supabase_url="u", supabase_key="k", schema="school")
        mock_query.execute.return_value = response([])

        await SupabaseBackend(settings, client=mock_supabase).fetch("class_sessions", FilterSet())

        mock_supabase.schema.assert_called_once_with("school")


class TestWrites:
    """Test single-row writes"""

    async def test_insert_returns_first_row(self, supabase_backend, mock_query):
        mock_query.execute.return_value = response([{"id": "new", "status": "scheduled"}])

        row = await supabase_backend.insert("class_sessions", {"status": "scheduled"})

        assert row["id"] == "new"
        mock_query.insert.assert_called_once_with({"status": "scheduled"})

    async def test_insert_without_row_raises(self, supabase_backend, mock_query):
        mock_query.execute.return_value = response([])

        with pytest.raises(RuntimeError):
            await supabase_backend.insert("class_sessions", {})

    async def test_update_unknown_id_returns_none(self, supabase_backend, mock_query):
        mock_query.execute.return_value = response([])

        assert await supabase_backend.update("class_sessions", "missing", {"status": "ready"}) is None
        mock_query.eq.assert_called_once_with("id", "missing")

    async def test_delete_returns_row(self, supabase_backend, mock_query):
        mock_query.execute.return_value = response([{"id": "s1"}])
        assert await supabase_backend.delete("class_sessions", "s1") == {"id": "s1"}


class TestChangeFeed:
    """Test realtime channel wiring"""

    async def test_subscribe_registers_postgres_changes(self, supabase_backend, mock_supabase):
        on_event = MagicMock()

        subscription = await supabase_backend.subscribe("class_sessions", on_event)

        channel = mock_supabase.channel.return_value
        topic = mock_supabase.channel.call_args.args[0]
        assert topic.startswith("class_sessions-changes-")
        channel.on_postgres_changes.assert_called_once_with(
            "*", schema="public", table="class_sessions", callback=on_event
        )
        assert subscription.channel is channel

    async def test_channel_topics_are_unique_per_subscription(self, supabase_backend, mock_supabase):
        await supabase_backend.subscribe("class_sessions", MagicMock())
        await supabase_backend.subscribe("class_sessions", MagicMock())

        topics = [c.args[0] for c in mock_supabase.channel.call_args_list]
        assert topics[0] != topics[1]

    async def test_status_is_coerced(self, supabase_backend, mock_supabase):
        on_status = MagicMock()
        await supabase_backend.subscribe("class_sessions", MagicMock(), on_status)
        status_callback = mock_supabase.channel.return_value.subscribe.call_args.args[0]

        status_callback("CHANNEL_ERROR", None)
        status_callback("joining", None)

        on_status.assert_called_once_with(FeedState.CHANNEL_ERROR, None)

    async def test_unsubscribe_removes_channel(self, supabase_backend, mock_supabase):
        channel = MagicMock()

        await supabase_backend.unsubscribe(FeedSubscription("class_sessions", channel=channel))

        mock_supabase.remove_channel.assert_awaited_once_with(channel)

    async def test_close(self, supabase_backend, mock_supabase):
        await supabase_backend.close()
        mock_supabase.remove_all_channels.assert_awaited_once()


class TestClientFactory:
    """Test client creation"""

    async def test_missing_credentials(self):
        with pytest.raises(ConfigurationError):
            await create_supabase_client(SyncSettings(provider="supabase"))
