"""Transport-side error mapping.

Non-success responses and raw httpx failures are mapped into
``TransportError`` with stable retry metadata, so the transport's own
bounded retry never depends on substring matching.
"""

from __future__ import annotations

import asyncio
import json
import re
from typing import TYPE_CHECKING, Any

import httpx

from gemform.errors import TransportError, _walk_exception_chain

if TYPE_CHECKING:
    from collections.abc import Mapping

RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({408, 409, 429, 500, 502, 503, 504})

_PROTO_DURATION_RE = re.compile(r"^(\d+(?:\.\d+)?)s$")
_BODY_PREVIEW_CHARS = 500


def retry_info_seconds(body: str | None) -> float | None:
    """Extract the retry delay from a Google API-style error body.

    Error bodies look like::

        {"error": {"details": [{"@type": "...RetryInfo", "retryDelay": "8s"}]}}

    The ``retryDelay`` value is a protobuf Duration string (e.g. ``"8s"``,
    ``"8.352104981s"``).
    """
    if not body:
        return None
    try:
        payload: Any = json.loads(body)
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    error: Any = payload.get("error")
    if not isinstance(error, dict):
        return None
    details: Any = error.get("details")
    if not isinstance(details, list):
        return None
    for entry in details:
        if not isinstance(entry, dict):
            continue
        at_type = entry.get("@type", "")
        if not isinstance(at_type, str) or "RetryInfo" not in at_type:
            continue
        delay_raw = entry.get("retryDelay")
        if not isinstance(delay_raw, str):
            continue
        m = _PROTO_DURATION_RE.match(delay_raw)
        if m:
            return float(m.group(1))
    return None


def retry_after_header_seconds(headers: Mapping[str, str] | None) -> float | None:
    """Parse a numeric ``Retry-After`` header."""
    if not headers:
        return None
    raw = headers.get("Retry-After") or headers.get("retry-after")
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        seconds = float(raw)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def _status_hint(status_code: int, body: str) -> str | None:
    body_lower = body.lower()
    if status_code in {401, 403} or (
        status_code == 400 and ("api key" in body_lower or "api_key" in body_lower)
    ):
        return "Check credentials/permissions (try setting GEMINI_API_KEY or PromptOptions.api_key)."
    if status_code == 404:
        return "Check the model identifier and base URL."
    if status_code == 429:
        return "Rate limited; slow down or raise the transport's RetryPolicy."
    return None


def transport_error_from_response(
    status_code: int,
    body: str,
    headers: Mapping[str, str] | None = None,
) -> TransportError:
    """Build a ``TransportError`` for a non-success HTTP response."""
    retry_after_s = retry_after_header_seconds(headers)
    if retry_after_s is None:
        retry_after_s = retry_info_seconds(body)
    preview = body[:_BODY_PREVIEW_CHARS]
    return TransportError(
        f"generateContent failed (status={status_code}): {preview}"
        if preview
        else f"generateContent failed (status={status_code})",
        hint=_status_hint(status_code, body),
        status_code=status_code,
        body=body,
        retryable=status_code in RETRYABLE_STATUS_CODES or retry_after_s is not None,
        retry_after_s=retry_after_s,
    )


def wrap_transport_error(exc: BaseException, *, message: str | None = None) -> TransportError:
    """Map a raw transport exception into ``TransportError``."""
    if isinstance(exc, asyncio.CancelledError):
        raise exc

    if isinstance(exc, TransportError):
        return exc

    status_code: int | None = None
    body: str | None = None
    retryable = False
    for e in _walk_exception_chain(exc):
        if isinstance(e, httpx.HTTPStatusError):
            status_code = e.response.status_code
            body = e.response.text
            retryable = status_code in RETRYABLE_STATUS_CODES
            break
        if isinstance(e, (httpx.TimeoutException, httpx.RequestError, TimeoutError)):
            retryable = True
            break

    msg = message or "generateContent request failed"
    status_note = f" (status={status_code})" if status_code is not None else ""
    cause = str(exc)
    return TransportError(
        f"{msg}{status_note}: {cause}" if cause else f"{msg}{status_note}",
        hint="Network failure talking to the endpoint." if status_code is None else None,
        status_code=status_code,
        body=body,
        retryable=retryable,
    )
