"""Async REST transport shared by the Gmail and Graph sessions.

Wraps :class:`httpx.AsyncClient` with a bearer token and Tenacity retries
for throttling (429), server faults (5xx) and transport errors.  Final
failures are mapped onto the :mod:`umbrella_mailbox.errors` hierarchy.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog
from pydantic import SecretStr

from .config import TransportRetryConfig
from .errors import AuthenticationError, ProviderError, ThrottledError
from .retry import with_retry

logger = structlog.get_logger()


class _RetryableResponse(Exception):
    """Raised inside the retry loop for 429 / 5xx responses."""

    def __init__(self, response: httpx.Response) -> None:
        super().__init__(f"HTTP {response.status_code}")
        self.response = response


class RestTransport:
    """Bearer-authenticated JSON transport for one provider session."""

    def __init__(
        self,
        service: str,
        base_url: str,
        access_token: SecretStr | str | None,
        retry: TransportRetryConfig,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._service = service
        self._base_url = base_url.rstrip("/")
        if isinstance(access_token, SecretStr):
            access_token = access_token.get_secret_value()
        self._access_token = access_token
        self._retry = retry
        self._client = client
        self._owns_client = client is None

    @property
    def service(self) -> str:
        return self._service

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=httpx.Timeout(self._retry.request_timeout_seconds),
            )
            logger.debug("rest_transport_started", service=self._service, base_url=self._base_url)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
            logger.debug("rest_transport_stopped", service=self._service)

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"
        return headers

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self._base_url}/{path.lstrip('/')}"

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Send one request, retrying transient failures.

        *path* is relative to the base URL, or an absolute URL (OData
        next links).  Raises :class:`ProviderError` or a subclass.
        """
        client = self._ensure_client()
        url = self._url(path)

        @with_retry(self._retry, retryable_exceptions=(_RetryableResponse, httpx.TransportError))
        async def _send() -> httpx.Response:
            response = await client.request(method, url, params=params, headers=self._headers())
            if response.status_code == 429 or response.status_code >= 500:
                raise _RetryableResponse(response)
            return response

        try:
            response = await _send()
        except _RetryableResponse as exc:
            response = exc.response
        except httpx.TransportError as exc:
            raise ProviderError(self._service, f"{type(exc).__name__}: {exc}") from exc

        self._raise_for_status(response)
        return response

    async def get_json(self, path: str, *, params: dict[str, Any] | None = None) -> dict[str, Any]:
        response = await self.request("GET", path, params=params)
        if not response.content:
            return {}
        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderError(self._service, "Malformed JSON response") from exc
        if not isinstance(payload, dict):
            raise ProviderError(self._service, "Unexpected JSON response shape")
        return payload

    async def delete(self, path: str) -> None:
        await self.request("DELETE", path)

    # ------------------------------------------------------------------
    # Error mapping
    # ------------------------------------------------------------------

    def _raise_for_status(self, response: httpx.Response) -> None:
        status = response.status_code
        if status < 400:
            return

        message = _error_message(response)
        logger.warning(
            "provider_request_failed",
            service=self._service,
            status_code=status,
            error=message,
        )
        if status in (401, 403):
            raise AuthenticationError(self._service, message, status_code=status)
        if status == 429:
            raise ThrottledError(self._service, message, status_code=status)
        raise ProviderError(self._service, message, status_code=status)


def _error_message(response: httpx.Response) -> str:
    """Best-effort error text from a Google or Graph error body."""
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if isinstance(error, str):
        return error
    return response.reason_phrase
