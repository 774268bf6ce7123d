"""Transport seam: the injected "send request, get body or error" capability."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import httpx

from gemform._errors import (
    RETRYABLE_STATUS_CODES,
    transport_error_from_response,
    wrap_transport_error,
)
from gemform.errors import TransportError
from gemform.retry import RetryPolicy, retry_async, should_retry_send

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransportRequest:
    """One POST to the generateContent endpoint."""

    url: str
    body: dict[str, Any]
    params: Mapping[str, str] = field(default_factory=dict)

    def __repr__(self) -> str:
        redacted = {k: ("[REDACTED]" if k == "key" else v) for k, v in self.params.items()}
        return f"TransportRequest(url={self.url!r}, params={redacted!r})"


@dataclass(frozen=True)
class TransportResponse:
    """Status and raw body of an HTTP exchange."""

    status_code: int
    text: str
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300


@runtime_checkable
class Transport(Protocol):
    """Minimal transport protocol.

    Implementations either return the response (any status) or raise for
    network-level failures. They must be safe for concurrent reuse.
    """

    async def send(self, request: TransportRequest) -> TransportResponse:
        """POST ``request.body`` as JSON and return the response."""
        ...


class HttpxTransport:
    """Default transport over ``httpx.AsyncClient`` with bounded retries.

    Retryable statuses (429, 5xx, ...) and network errors are retried per
    ``retry``; what remains after the last attempt is raised as
    ``TransportError``.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        timeout_s: float = 120.0,
        retry: RetryPolicy | None = None,
    ) -> None:
        """Create a transport, optionally around a caller-owned client."""
        self._client = client
        self._owns_client = client is None
        self._timeout_s = timeout_s
        self._retry = retry or RetryPolicy()

    def _get_client(self) -> httpx.AsyncClient:
        """Lazy-initialize the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout_s)
        return self._client

    async def send(self, request: TransportRequest) -> TransportResponse:
        client = self._get_client()

        async def _attempt() -> TransportResponse:
            try:
                resp = await client.post(
                    request.url, params=dict(request.params), json=request.body
                )
            except asyncio.CancelledError:
                raise
            except httpx.HTTPError as e:
                raise wrap_transport_error(e) from e

            if resp.status_code in RETRYABLE_STATUS_CODES:
                logger.debug("Retryable status %d from %s", resp.status_code, request.url)
                raise transport_error_from_response(
                    resp.status_code, resp.text, resp.headers
                )
            return TransportResponse(
                status_code=resp.status_code,
                text=resp.text,
                headers=dict(resp.headers),
            )

        try:
            return await retry_async(
                _attempt, policy=self._retry, should_retry=should_retry_send
            )
        except asyncio.CancelledError:
            raise
        except TransportError:
            raise
        except Exception as e:
            raise wrap_transport_error(e) from e

    async def aclose(self) -> None:
        """Close the underlying client when this transport created it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
