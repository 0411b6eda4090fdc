"""
Preference Service Layer
Session registry wiring stores to the authority, the durable slot and the per-user channel
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from prefsync.core.config import PersistenceBackend, Settings
from prefsync.core.logging import StructuredLogger

from .broadcast import BroadcastChannel
from .preference_models import LoadResult, PreferenceDocument, UpdateResult
from .preference_storage import (
    FilePersistentStore, InMemoryPersistentStore, PersistentStore, RedisPersistentStore
)
from .preference_store import PreferenceStore


def create_persistent_store(settings: Settings, logger: StructuredLogger,
                            redis_client=None) -> PersistentStore:
    """Create the durable slot backend based on configuration"""
    backend = settings.persistence_backend

    if backend == PersistenceBackend.MEMORY:
        return InMemoryPersistentStore(logger, ttl_seconds=settings.persistence_ttl_seconds)

    elif backend == PersistenceBackend.FILE:
        return FilePersistentStore(logger, directory=settings.persistence_path,
                                   ttl_seconds=settings.persistence_ttl_seconds)

    elif backend == PersistenceBackend.REDIS:
        return RedisPersistentStore(logger, redis_client=redis_client,
                                    key_prefix=settings.redis_key_prefix,
                                    ttl_seconds=settings.persistence_ttl_seconds)

    else:
        raise ValueError(f"Unknown persistence backend: {backend}")


class SessionNotFoundError(KeyError):
    """No active session for the user"""

    def __init__(self, user_id: str):
        super().__init__(user_id)
        self.user_id = user_id


class PreferenceService:
    """Keeps one PreferenceStore per active user session.

    Every store opened for the same user shares that user's BroadcastChannel,
    so extra consumers created through ``open_store`` see each other's changes
    without another authority round trip.
    """

    def __init__(self, settings: Settings, authority, persistent_store: PersistentStore,
                 logger: StructuredLogger):
        self.settings = settings
        self.authority = authority
        self.persistent_store = persistent_store
        self.logger = logger

        self._channels: Dict[str, BroadcastChannel] = {}
        self._sessions: Dict[str, PreferenceStore] = {}
        self._session_started: Dict[str, datetime] = {}

        self.logger.info("Preference service initialized",
                         persistence_backend=settings.persistence_backend.value,
                         sequence_guard=settings.enable_sequence_guard)

    def get_channel(self, user_id: str) -> BroadcastChannel:
        channel = self._channels.get(user_id)
        if channel is None:
            channel = BroadcastChannel(name=f"preferences:{user_id}", logger=self.logger)
            self._channels[user_id] = channel
        return channel

    def release_channel(self, user_id: str) -> bool:
        """Drop the user's channel once nothing is subscribed to it"""
        channel = self._channels.get(user_id)
        if channel is None or channel.subscriber_count > 0:
            return False
        del self._channels[user_id]
        return True

    def _authority_for(self, auth_token: Optional[str]):
        with_token = getattr(self.authority, "with_token", None)
        if auth_token is not None and with_token is not None:
            return with_token(auth_token)
        return self.authority

    def open_store(self, user_id: str, auth_token: Optional[str] = None) -> PreferenceStore:
        """Create a consumer attached to the user's channel; the caller owns it"""
        return PreferenceStore(
            user_id=user_id,
            authority=self._authority_for(auth_token),
            persistent_store=self.persistent_store,
            channel=self.get_channel(user_id),
            logger=self.logger,
            request_timeout_seconds=self.settings.request_timeout_seconds,
            enable_sequence_guard=self.settings.enable_sequence_guard,
        )

    async def start_user_session(self, user_id: str,
                                 auth_token: Optional[str] = None) -> LoadResult:
        """Open (or replace) the user's session store and cold-load it"""
        previous = self._sessions.pop(user_id, None)
        if previous is not None:
            previous.close()

        store = self.open_store(user_id, auth_token)
        self._sessions[user_id] = store
        self._session_started[user_id] = datetime.now(timezone.utc)

        result = await store.load()

        self.logger.info("User session started",
                         user_id=user_id, source=result.source.value, ok=result.ok)
        return result

    async def end_user_session(self, user_id: str) -> Dict[str, Any]:
        """Close the session store; the durable slot is left as is"""
        store = self._sessions.pop(user_id, None)
        if store is None:
            raise SessionNotFoundError(user_id)

        store.close()
        session_start = self._session_started.pop(user_id, None)
        duration = 0
        if session_start is not None:
            duration = int((datetime.now(timezone.utc) - session_start).total_seconds())

        self.release_channel(user_id)

        session_info = {"user_id": user_id, "session_duration_seconds": duration}
        self.logger.info("User session ended", **session_info)
        return session_info

    def get_store(self, user_id: str) -> PreferenceStore:
        store = self._sessions.get(user_id)
        if store is None:
            raise SessionNotFoundError(user_id)
        return store

    def get_user_preferences(self, user_id: str) -> PreferenceDocument:
        return self.get_store(user_id).document

    async def set_user_preference(self, user_id: str, name: str, value: Any) -> UpdateResult:
        return await self.get_store(user_id).update(name, value)

    async def reset_user_preferences(self, user_id: str) -> PreferenceDocument:
        return await self.get_store(user_id).reset()

    async def stop(self):
        """End every open session"""
        for user_id in list(self._sessions.keys()):
            await self.end_user_session(user_id)
        self.logger.info("Preference service stopped")

    def get_service_health(self) -> Dict[str, Any]:
        return {
            "service": "preference_service",
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "configuration": {
                "persistence_backend": self.settings.persistence_backend.value,
                "sequence_guard": self.settings.enable_sequence_guard,
                "request_timeout_seconds": self.settings.request_timeout_seconds,
            },
            "statistics": {
                "active_sessions": len(self._sessions),
                "channels": len(self._channels),
                "unsynced_sessions": sum(1 for s in self._sessions.values() if s.unsynced_fields),
            },
        }
