"""
Tests for the per-user session registry
"""
import pytest

from prefsync.core.config import PersistenceBackend, Settings
from prefsync.preferences import (
    FilePersistentStore, InMemoryPersistentStore, LoadSource, PreferenceService,
    RedisPersistentStore, SessionNotFoundError, create_persistent_store
)


@pytest.fixture
def preference_service(settings, fake_authority, memory_store, mock_logger):
    """Preference service for testing"""
    return PreferenceService(settings, fake_authority, memory_store, mock_logger)


class TestCreatePersistentStore:
    """Test backend selection"""

    @pytest.mark.parametrize("backend,expected", [
        (PersistenceBackend.MEMORY, InMemoryPersistentStore),
        (PersistenceBackend.FILE, FilePersistentStore),
        (PersistenceBackend.REDIS, RedisPersistentStore),
    ])
    def test_backend(self, mock_logger, backend, expected):
        settings = Settings(persistence_backend=backend, persistence_ttl_seconds=120)

        store = create_persistent_store(settings, mock_logger)

        assert isinstance(store, expected)
        assert store.ttl_seconds == 120


class TestPreferenceService:
    """Test session lifecycle and delegation"""

    @pytest.mark.asyncio
    async def test_start_session_loads(self, preference_service, fake_authority):
        fake_authority.state["LoggedInDarkModeOn"] = 0

        result = await preference_service.start_user_session("user123")

        assert result.ok is True
        assert result.source == LoadSource.AUTHORITY
        assert preference_service.get_user_preferences("user123").dark_mode is False

    @pytest.mark.asyncio
    async def test_set_and_reset(self, preference_service):
        await preference_service.start_user_session("user123")

        result = await preference_service.set_user_preference("user123", "fixedScroll", True)
        assert result.ok is True
        assert preference_service.get_user_preferences("user123").fixed_scroll is True

        document = await preference_service.reset_user_preferences("user123")
        assert document.fixed_scroll is False

    @pytest.mark.asyncio
    async def test_unknown_session(self, preference_service):
        with pytest.raises(SessionNotFoundError):
            preference_service.get_store("nobody")
        with pytest.raises(SessionNotFoundError):
            await preference_service.end_user_session("nobody")

    @pytest.mark.asyncio
    async def test_extra_consumers_share_channel(self, preference_service):
        await preference_service.start_user_session("user123")
        extra = preference_service.open_store("user123")

        await preference_service.set_user_preference("user123", "darkMode", False)

        assert extra.document.dark_mode is False
        extra.close()

    @pytest.mark.asyncio
    async def test_restart_replaces_session(self, preference_service):
        await preference_service.start_user_session("user123")
        await preference_service.start_user_session("user123")

        assert preference_service.get_channel("user123").subscriber_count == 1

    @pytest.mark.asyncio
    async def test_end_session_drops_channel(self, preference_service):
        await preference_service.start_user_session("user123")

        info = await preference_service.end_user_session("user123")

        assert info["user_id"] == "user123"
        assert preference_service.get_service_health()["statistics"]["channels"] == 0

    @pytest.mark.asyncio
    async def test_end_session_keeps_channel_with_other_consumers(self, preference_service):
        await preference_service.start_user_session("user123")
        extra = preference_service.open_store("user123")

        await preference_service.end_user_session("user123")

        assert preference_service.get_service_health()["statistics"]["channels"] == 1
        extra.close()
        assert preference_service.release_channel("user123") is True
        assert preference_service.get_service_health()["statistics"]["channels"] == 0

    def test_release_unknown_channel(self, preference_service):
        assert preference_service.release_channel("nobody") is False

    @pytest.mark.asyncio
    async def test_stop_ends_all_sessions(self, preference_service):
        await preference_service.start_user_session("user1")
        await preference_service.start_user_session("user2")

        await preference_service.stop()

        assert preference_service.get_service_health()["statistics"]["active_sessions"] == 0
