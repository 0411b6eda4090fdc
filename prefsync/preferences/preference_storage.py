"""
Preference Storage Layer
Durable per-user slot holding the last-known complete preference document
"""
import asyncio
import contextlib
import json
import os
import re
import tempfile
import time
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

from prefsync.core.errors import PersistentStoreError
from prefsync.core.logging import StructuredLogger

from .preference_models import PreferenceDocument

DEFAULT_TTL_SECONDS = 60 * 60 * 24 * 30  # 30 days, the cookie max-age


class PersistentStore(ABC):
    """Abstract durable slot; writes always replace the whole document"""

    def __init__(self, logger: StructuredLogger, ttl_seconds: int = DEFAULT_TTL_SECONDS):
        self.logger = logger
        self.ttl_seconds = ttl_seconds

    @abstractmethod
    async def get(self, user_id: str) -> Optional[PreferenceDocument]:
        """Last written document, or None if never written or expired"""
        pass

    @abstractmethod
    async def set(self, user_id: str, document: PreferenceDocument) -> None:
        """Replace the stored document"""
        pass

    @abstractmethod
    async def clear(self, user_id: str) -> bool:
        """Forget the stored document"""
        pass

    def _serialize(self, document: PreferenceDocument) -> str:
        return json.dumps(document.to_dict())

    def _deserialize(self, user_id: str, data: str) -> Optional[PreferenceDocument]:
        try:
            parsed = json.loads(data)
        except (TypeError, ValueError) as e:
            self.logger.warning("Discarding unreadable stored preferences",
                                user_id=user_id, error=str(e))
            return None

        if not isinstance(parsed, dict):
            self.logger.warning("Discarding stored preferences with unexpected shape",
                                user_id=user_id)
            return None

        return PreferenceDocument.from_dict(parsed)


class InMemoryPersistentStore(PersistentStore):
    """In-memory slot for testing and single-process use"""

    def __init__(self, logger: StructuredLogger, ttl_seconds: int = DEFAULT_TTL_SECONDS,
                 clock=time.monotonic):
        super().__init__(logger, ttl_seconds)
        self._clock = clock
        self._documents: Dict[str, Tuple[str, float]] = {}

    async def get(self, user_id: str) -> Optional[PreferenceDocument]:
        entry = self._documents.get(user_id)
        if entry is None:
            return None

        data, written_at = entry
        if self._clock() - written_at >= self.ttl_seconds:
            del self._documents[user_id]
            self.logger.debug("Stored preferences expired", user_id=user_id)
            return None

        return self._deserialize(user_id, data)

    async def set(self, user_id: str, document: PreferenceDocument) -> None:
        self._documents[user_id] = (self._serialize(document), self._clock())
        self.logger.debug("Preferences stored in memory",
                          user_id=user_id, version=document.version)

    async def clear(self, user_id: str) -> bool:
        return self._documents.pop(user_id, None) is not None


class FilePersistentStore(PersistentStore):
    """One flat JSON file per user; the file's mtime carries the lifetime"""

    def __init__(self, logger: StructuredLogger, directory: str,
                 ttl_seconds: int = DEFAULT_TTL_SECONDS):
        super().__init__(logger, ttl_seconds)
        self.directory = directory

    def _path(self, user_id: str) -> str:
        safe_name = re.sub(r"[^A-Za-z0-9_.-]", "_", user_id) or "_"
        return os.path.join(self.directory, f"{safe_name}.json")

    def _read(self, path: str) -> Optional[str]:
        try:
            if time.time() - os.path.getmtime(path) >= self.ttl_seconds:
                os.remove(path)
                return None
            with open(path, "r", encoding="utf-8") as fh:
                return fh.read()
        except FileNotFoundError:
            return None

    def _write(self, path: str, data: str):
        os.makedirs(self.directory, exist_ok=True)
        # Unique temp file per write
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(data)
            os.replace(tmp_path, path)
        except OSError:
            with contextlib.suppress(FileNotFoundError):
                os.remove(tmp_path)
            raise

    async def get(self, user_id: str) -> Optional[PreferenceDocument]:
        path = self._path(user_id)
        loop = asyncio.get_running_loop()
        try:
            data = await loop.run_in_executor(None, self._read, path)
        except OSError as e:
            self.logger.error("Failed to read preferences file",
                              user_id=user_id, path=path, error=str(e))
            return None

        if data is None:
            return None
        return self._deserialize(user_id, data)

    async def set(self, user_id: str, document: PreferenceDocument) -> None:
        path = self._path(user_id)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._write, path, self._serialize(document))
        except OSError as e:
            raise PersistentStoreError(f"Failed to write {path}: {e}") from e

        self.logger.debug("Preferences written to file",
                          user_id=user_id, path=path, version=document.version)

    async def clear(self, user_id: str) -> bool:
        path = self._path(user_id)
        try:
            os.remove(path)
            return True
        except FileNotFoundError:
            return False


class RedisPersistentStore(PersistentStore):
    """Redis-based slot; the lifetime is the key TTL"""

    def __init__(self, logger: StructuredLogger, redis_client=None,
                 key_prefix: str = "user-preferences", ttl_seconds: int = DEFAULT_TTL_SECONDS):
        super().__init__(logger, ttl_seconds)
        self.redis_client = redis_client
        self.key_prefix = key_prefix

    def _make_key(self, user_id: str) -> str:
        return f"{self.key_prefix}:{user_id}"

    async def get(self, user_id: str) -> Optional[PreferenceDocument]:
        if not self.redis_client:
            raise RuntimeError("Redis client not configured")

        try:
            data = await self.redis_client.get(self._make_key(user_id))
        except Exception as e:
            self.logger.error("Failed to get preferences from Redis",
                              user_id=user_id, error=str(e))
            return None

        if data is None:
            return None
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        return self._deserialize(user_id, data)

    async def set(self, user_id: str, document: PreferenceDocument) -> None:
        if not self.redis_client:
            raise RuntimeError("Redis client not configured")

        try:
            await self.redis_client.setex(self._make_key(user_id), self.ttl_seconds,
                                          self._serialize(document))
        except Exception as e:
            raise PersistentStoreError(f"Failed to set preferences in Redis: {e}") from e

        self.logger.debug("Preferences set in Redis",
                          user_id=user_id, version=document.version)

    async def clear(self, user_id: str) -> bool:
        if not self.redis_client:
            raise RuntimeError("Redis client not configured")

        try:
            return await self.redis_client.delete(self._make_key(user_id)) > 0
        except Exception as e:
            self.logger.error("Failed to delete preferences from Redis",
                              user_id=user_id, error=str(e))
            return False
