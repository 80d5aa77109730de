"""HTTP client for the hosted backend (table, storage and auth APIs)."""

import logging
from typing import Any

import httpx

from perspective import config

logger = logging.getLogger(__name__)


class BackendError(Exception):
    """A failed round trip to the hosted backend."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def eq(value: Any) -> str:
    """Equality filter in the table API's query syntax."""
    return f"eq.{value}"


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("message", "msg", "error_description", "error"):
            if body.get(key):
                return str(body[key])
    return response.reason_phrase or f"HTTP {response.status_code}"


class BackendClient:
    def __init__(
        self,
        url: str = config.BACKEND_URL,
        anon_key: str = config.BACKEND_ANON_KEY,
        timeout: float = config.BACKEND_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url.rstrip("/")
        self.anon_key = anon_key
        self.timeout = timeout
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=self.url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._http

    def headers(self, token: str | None = None) -> dict[str, str]:
        return {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {token or self.anon_key}",
        }

    async def request(
        self,
        method: str,
        path: str,
        *,
        token: str | None = None,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send one request; any failure surfaces as BackendError."""
        merged = self.headers(token)
        if headers:
            merged.update(headers)
        try:
            response = await self.http.request(method, path, headers=merged, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("Backend request %s %s failed: %s", method, path, exc)
            raise BackendError("Could not reach the server. Please try again.") from exc

        if response.is_error:
            message = _error_message(response)
            logger.error(
                "Backend request %s %s returned %s: %s",
                method, path, response.status_code, message,
            )
            raise BackendError(message, status_code=response.status_code)
        return response

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None


_backend_client: BackendClient | None = None


def get_backend() -> BackendClient:
    global _backend_client
    if _backend_client is None:
        _backend_client = BackendClient()
    return _backend_client


async def close_backend() -> None:
    global _backend_client
    if _backend_client is not None:
        await _backend_client.aclose()
        _backend_client = None
