"""Pytest configuration and fixtures.

Provides the transport test double, environment isolation, logging
configuration, and automatic API test skipping. All fixtures here are
autouse unless noted.
"""

from __future__ import annotations

from contextlib import suppress
from dataclasses import dataclass, field
import json
import logging
import os
from typing import Any

import pytest

from gemform.client import Client
from gemform.transport import TransportRequest, TransportResponse

# =============================================================================
# Test Doubles
# =============================================================================


def wire_body(
    text: str | None = "ok",
    finish: str | None = "STOP",
    *,
    usage: tuple[int, int, int] = (3, 5, 8),
    response_id: str = "resp-1",
) -> dict[str, Any]:
    """Build a generateContent response body with one candidate."""
    candidate: dict[str, Any] = {
        "content": {
            "role": "model",
            "parts": [] if text is None else [{"text": text}],
        }
    }
    if finish is not None:
        candidate["finishReason"] = finish
    prompt_tokens, candidate_tokens, total_tokens = usage
    return {
        "candidates": [candidate],
        "usageMetadata": {
            "promptTokenCount": prompt_tokens,
            "candidatesTokenCount": candidate_tokens,
            "totalTokenCount": total_tokens,
        },
        "modelVersion": "gemini-test",
        "responseId": response_id,
    }


@dataclass
class FakeTransport:
    """Transport test double that replays a script and records requests.

    Script entries may be a ``TransportResponse``, a response body dict
    (sent as a 200), a raw body string (sent as a 200), or an exception to
    raise. An exhausted script answers ``"ok"`` with ``STOP``.
    """

    script: list[TransportResponse | dict[str, Any] | str | BaseException] = field(
        default_factory=list
    )
    requests: list[TransportRequest] = field(default_factory=list)

    @property
    def calls(self) -> int:
        return len(self.requests)

    @property
    def bodies(self) -> list[dict[str, Any]]:
        return [r.body for r in self.requests]

    async def send(self, request: TransportRequest) -> TransportResponse:
        self.requests.append(request)
        if not self.script:
            return TransportResponse(status_code=200, text=json.dumps(wire_body()))
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, TransportResponse):
            return item
        if isinstance(item, dict):
            return TransportResponse(status_code=200, text=json.dumps(item))
        return TransportResponse(status_code=200, text=item)


@pytest.fixture
def fake_transport() -> FakeTransport:
    """A fresh scripted transport (not autouse)."""
    return FakeTransport()


@pytest.fixture
def client(fake_transport: FakeTransport) -> Client:
    """Client wired to ``fake_transport`` (not autouse)."""
    return Client(api_key="test-key", model="gemini-test", transport=fake_transport)


# =============================================================================
# Environment Isolation (Autouse)
# =============================================================================


@pytest.fixture(autouse=True)
def block_dotenv(request, monkeypatch):
    """Prevent python-dotenv from loading project .env files during tests.

    Opt-out: @pytest.mark.allow_dotenv
    """
    if request.node.get_closest_marker("allow_dotenv"):
        return
    with suppress(Exception):
        monkeypatch.setattr(
            "dotenv.load_dotenv", lambda *_args, **_kwargs: False, raising=False
        )


@pytest.fixture(autouse=True)
def isolate_gemini_env(request, monkeypatch):
    """Ensure a clean environment for each test.

    Clears GEMINI_* env vars to prevent test pollution.
    Opt-out: @pytest.mark.allow_env_pollution or @pytest.mark.api
    """
    if request.node.get_closest_marker("allow_env_pollution") or (
        "api" in request.node.keywords
    ):
        return

    for key in list(os.environ.keys()):
        if key.startswith("GEMINI_"):
            monkeypatch.delenv(key, raising=False)


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def quiet_noisy_libraries():
    """Suppress noisy third-party loggers."""
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


# =============================================================================
# Pytest Hooks
# =============================================================================

API_TESTS_REASON = "API tests require ENABLE_API_TESTS=1"


def _api_tests_enabled() -> bool:
    return bool(os.getenv("ENABLE_API_TESTS"))


def pytest_collection_modifyitems(items):
    """Automatically skip API tests when not explicitly enabled."""
    if _api_tests_enabled():
        return
    skip_api = pytest.mark.skip(reason=API_TESTS_REASON)
    for item in items:
        if "api" in item.keywords:
            item.add_marker(skip_api)


# =============================================================================
# API Test Configuration
# =============================================================================

_GEMINI_TEST_MODEL = "gemini-2.5-flash-lite"


@pytest.fixture
def gemini_api_key():
    """Return GEMINI_API_KEY or skip the test if unavailable."""
    key = os.getenv("GEMINI_API_KEY")
    if not key:
        pytest.skip("GEMINI_API_KEY not set")
    return key


@pytest.fixture
def gemini_test_model():
    """Return the model to use for Gemini API tests."""
    return _GEMINI_TEST_MODEL
