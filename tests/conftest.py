"""
Shared fixtures for the preference sync test suite
"""
from typing import Any, Dict, List
from unittest.mock import Mock

import pytest

from prefsync.core.config import PersistenceBackend, Settings
from prefsync.preferences import BroadcastChannel, InMemoryPersistentStore, PreferenceStore
from prefsync.preferences.wire_format import RESPONSE_KEYS, WIRE_NAMES


class FakeAuthority:
    """In-process authority holding the canonical document under its response keys"""

    def __init__(self, initial: Dict[str, Any] = None):
        self.state: Dict[str, Any] = dict(initial or {})
        self.fetch_calls: List[str] = []
        self.update_calls: List[Dict[str, Any]] = []

    async def fetch_preferences(self, user_id: str) -> Dict[str, Any]:
        self.fetch_calls.append(user_id)
        return dict(self.state)

    async def update_preferences(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        self.update_calls.append(payload)
        for pref_field, wire_name in WIRE_NAMES.items():
            if wire_name in payload:
                self.state[RESPONSE_KEYS[pref_field][0]] = payload[wire_name]
        return dict(self.state)


@pytest.fixture
def mock_logger():
    """Mock structured logger"""
    logger = Mock()
    logger.debug = Mock()
    logger.info = Mock()
    logger.warning = Mock()
    logger.error = Mock()
    logger.bind = Mock(return_value=logger)
    return logger


@pytest.fixture
def settings():
    """Settings that never touch disk or the network"""
    return Settings(
        upstream_api_url="https://api.test",
        persistence_backend=PersistenceBackend.MEMORY,
        request_timeout_seconds=1.0,
    )


@pytest.fixture
def fake_authority():
    return FakeAuthority()


@pytest.fixture
def memory_store(mock_logger):
    """In-memory durable slot for testing"""
    return InMemoryPersistentStore(mock_logger)


@pytest.fixture
def channel(mock_logger):
    return BroadcastChannel(name="preferences:user123", logger=mock_logger)


@pytest.fixture
def make_store(fake_authority, memory_store, channel, mock_logger):
    """Factory for stores sharing the same authority, slot and channel"""
    created = []

    def factory(**overrides) -> PreferenceStore:
        options = {
            "user_id": "user123",
            "authority": fake_authority,
            "persistent_store": memory_store,
            "channel": channel,
            "logger": mock_logger,
            "request_timeout_seconds": 1.0,
        }
        options.update(overrides)
        store = PreferenceStore(**options)
        created.append(store)
        return store

    yield factory

    for store in created:
        store.close()
