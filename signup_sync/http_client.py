"""Async HTTP plumbing shared by the sheet, store and content-host clients."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

import httpx

LOGGER = logging.getLogger(__name__)

_REDACTED = "<redacted>"
_ERROR_BODY_LIMIT = 300


class HttpRequestError(RuntimeError):
    """Raised when an API request fails or returns an unusable payload."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ApiClient:
    """Owns (or borrows) an ``httpx.AsyncClient`` bound to one API."""

    def __init__(
        self,
        base_url: str,
        *,
        headers: Mapping[str, str] | None = None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url
        self._headers = dict(headers or {})
        self._timeout = timeout
        self._transport = transport
        self._client = client or self._build_client()
        self._owns_client = client is None

    def _build_client(self) -> httpx.AsyncClient:
        kwargs: dict[str, object] = {
            "base_url": self._base_url,
            "headers": self._headers,
            "timeout": self._timeout,
            "follow_redirects": True,
        }
        if self._transport:
            kwargs["transport"] = self._transport
        return httpx.AsyncClient(**kwargs)

    async def request_json(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        params: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> dict[str, Any]:
        try:
            response = await self._client.request(method, url, json=json, params=params, headers=headers)
        except httpx.HTTPError as exc:
            raise HttpRequestError(f"{method} {url} failed: {exc}") from exc

        if response.status_code >= 400:
            body = response.text[:_ERROR_BODY_LIMIT]
            raise HttpRequestError(
                f"Unexpected status {response.status_code} for {method} {url}: {body}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise HttpRequestError(f"{method} {url} returned a non-JSON payload") from exc
        if not isinstance(payload, dict):
            raise HttpRequestError(f"{method} {url} returned {type(payload).__name__}, expected an object")
        return payload

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *_exc_info) -> None:
        await self.aclose()


class SecretRedactingFilter(logging.Filter):
    """Mask API tokens that leak into httpx request logs."""

    def __init__(self, secrets: Iterable[str]) -> None:
        super().__init__()
        self._secrets = tuple(secret for secret in secrets if secret)

    def redact(self, text: str) -> str:
        for secret in self._secrets:
            text = text.replace(secret, _REDACTED)
        return text

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            return True
        masked = self.redact(message)
        if masked != message:
            record.msg = masked
            record.args = ()
        return True


def install_secret_filter(secrets: Iterable[str]) -> None:
    logger = logging.getLogger("httpx")
    if any(isinstance(existing, SecretRedactingFilter) for existing in logger.filters):
        return
    logger.addFilter(SecretRedactingFilter(secrets))
