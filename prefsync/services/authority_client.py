"""
Remote Authority Client
HTTP client for the upstream API that owns the canonical preference document
"""
import time
from typing import Any, Dict, Optional, Protocol
from urllib.parse import urljoin

import httpx

from prefsync.core.config import Settings
from prefsync.core.errors import AuthorityRejected, AuthorityUnreachable, MalformedResponse
from prefsync.core.logging import StructuredLogger


class RemoteAuthority(Protocol):
    """Anything that can read and partially update the canonical document"""

    async def fetch_preferences(self, user_id: str) -> Dict[str, Any]:
        ...

    async def update_preferences(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        ...


class HttpPreferenceAuthority:
    """Talks to the upstream terminal API over httpx.

    Responses come back as the authority's full document (``LoggedIn*`` keys);
    decoding into internal fields is left to ``wire_format``. Every failure is
    raised as an ``AuthorityError`` subclass.
    """

    def __init__(self, settings: Settings, logger: StructuredLogger,
                 http_client: Optional[httpx.AsyncClient] = None,
                 auth_token: Optional[str] = None):
        self.settings = settings
        self.logger = logger
        self.auth_token = auth_token
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.request_timeout_seconds)
        )

    def with_token(self, auth_token: Optional[str]) -> "HttpPreferenceAuthority":
        """Same connection pool, different bearer token"""
        return HttpPreferenceAuthority(self.settings, self.logger,
                                       http_client=self._client, auth_token=auth_token)

    def _headers(self) -> Dict[str, str]:
        if not self.auth_token:
            raise AuthorityRejected("Missing auth token", status_code=401)
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.auth_token}",
        }

    def _url(self, path: str) -> str:
        return urljoin(self.settings.upstream_api_url, path)

    async def fetch_preferences(self, user_id: str) -> Dict[str, Any]:
        """Read the canonical document"""
        return await self._request(
            "GET", self.settings.get_preferences_path,
            params={"userId": user_id}
        )

    async def update_preferences(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Send a single-field update; returns the full authoritative document"""
        return await self._request(
            "POST", self.settings.update_preferences_path,
            json=payload
        )

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = self._url(path)
        headers = self._headers()
        start_time = time.time()

        try:
            response = await self._client.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            self.logger.warning("Authority request timed out", method=method, url=url)
            raise AuthorityUnreachable(f"Timeout calling {path}") from e
        except httpx.RequestError as e:
            self.logger.warning("Authority unreachable", method=method, url=url, error=str(e))
            raise AuthorityUnreachable(f"Request to {path} failed: {e}") from e

        duration_ms = (time.time() - start_time) * 1000

        try:
            data = response.json()
        except ValueError:
            data = None

        if not response.is_success:
            message = "Failed to update preferences"
            if isinstance(data, dict):
                detail = data.get("error") or data.get("message")
                if detail:
                    message = str(detail)
            self.logger.warning("Authority rejected request",
                                method=method, url=url, status_code=response.status_code,
                                error=message, duration_ms=round(duration_ms, 2))
            raise AuthorityRejected(message, status_code=response.status_code)

        if not isinstance(data, dict):
            self.logger.warning("Authority returned malformed body",
                                method=method, url=url, status_code=response.status_code)
            raise MalformedResponse(f"Expected a JSON object from {path}")

        # Some endpoints wrap the document as {"data": {...}}
        inner = data.get("data")
        if isinstance(inner, dict):
            data = inner

        self.logger.debug("Authority request completed",
                          method=method, url=url, status_code=response.status_code,
                          duration_ms=round(duration_ms, 2))
        return data

    async def close(self):
        if self._owns_client:
            await self._client.aclose()
