"""Test helpers (small, reusable doubles and target types).

Keep this file tiny and purpose-built: it exists so suites share one set of
target types and transports instead of redefining them per module.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
import json
from typing import Annotated

from pydantic import BaseModel

from gemform.markers import PropertyFormat, SchemaIgnore, SchemaProperty
from gemform.transport import TransportRequest, TransportResponse
from tests.conftest import FakeTransport, wire_body


class Person(BaseModel):
    name: str
    age: int


class Mood(Enum):
    HAPPY = "happy"
    GRUMPY = "grumpy"


@dataclass
class Contact:
    """A way to reach someone."""

    email_address: Annotated[
        str, SchemaProperty(name="email", format=PropertyFormat.EMAIL)
    ]
    mood: Mood
    nickname: str | None = None
    internal_id: Annotated[
        int, SchemaIgnore(), SchemaProperty(name="id", format=PropertyFormat.INT64)
    ] = 0


@dataclass
class TreeNode:
    label: str
    children: list[TreeNode] = field(default_factory=list)


@dataclass
class GateTransport(FakeTransport):
    """FakeTransport that parks every send until ``release`` is set."""

    started: asyncio.Event = field(default_factory=asyncio.Event)
    release: asyncio.Event = field(default_factory=asyncio.Event)

    async def send(self, request: TransportRequest) -> TransportResponse:
        self.started.set()
        await self.release.wait()
        return await super().send(request)


def response(text: str | None = "ok", finish: str | None = "STOP", **kwargs) -> str:
    """Raw response body text, for scripting or parsing directly."""
    return json.dumps(wire_body(text, finish, **kwargs))


@dataclass
class CancellingTransport(FakeTransport):
    """FakeTransport that sets ``cancel_event`` once a response has been returned."""

    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)

    async def send(self, request: TransportRequest) -> TransportResponse:
        response = await super().send(request)
        self.cancel_event.set()
        return response
