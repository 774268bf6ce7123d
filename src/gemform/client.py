"""Client: default options plus the two public generation operations."""

from __future__ import annotations

import asyncio
from dataclasses import replace
import logging
from typing import TYPE_CHECKING, Any, TypeVar, overload

from gemform.config import PromptOptions, resolve_settings
from gemform.driver import ContinuationDriver
from gemform.errors import GemformError
from gemform.materialize import concatenate_text, materialize
from gemform.prompt import Prompt
from gemform.result import ResultEnvelope, TextResult
from gemform.schema import compile_schema
from gemform.transport import HttpxTransport

if TYPE_CHECKING:
    from types import TracebackType

    from gemform.config import TextTools
    from gemform.transport import Transport

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Client:
    """Entry point for structured and free-text generation.

    The client's default options are replaced wholesale by
    ``update_defaults``; each call reads them once at start, so a concurrent
    update never affects a call already in flight.

    Example:
        async with Client(api_key="...", model="gemini-2.5-flash") as client:
            prompt = client.create_prompt().add_text("Invent a person.")
            result = await client.generate_object(prompt, Person)
            if result.is_successful:
                print(result.data)
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        *,
        transport: Transport | None = None,
        default_options: PromptOptions | None = None,
    ) -> None:
        """Create a client. Explicit arguments override *default_options*."""
        defaults = default_options.snapshot() if default_options else PromptOptions()
        if api_key is not None:
            defaults.api_key = api_key
        if model is not None:
            defaults.model = model
        if transport is not None:
            defaults.transport = transport
        self._defaults = defaults
        self._owned_transport: HttpxTransport | None = None

    @property
    def default_options(self) -> PromptOptions:
        """A copy of the current defaults; mutating it changes nothing."""
        return self._defaults.snapshot()

    def update_defaults(self, **changes: Any) -> None:
        """Swap in new defaults with *changes* applied."""
        self._defaults = replace(self._defaults, **changes)

    def create_prompt(self, options: PromptOptions | None = None) -> Prompt:
        """Start an empty prompt seeded with *options* or the client defaults."""
        return Prompt((options or self._defaults).snapshot())

    @overload
    async def generate_object(
        self,
        prompt: Prompt,
        *,
        tools: TextTools | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> ResultEnvelope[str]: ...

    @overload
    async def generate_object(
        self,
        prompt: Prompt,
        target: type[T],
        *,
        tools: TextTools | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> ResultEnvelope[T]: ...

    async def generate_object(
        self,
        prompt: Prompt,
        target: Any = str,
        *,
        tools: TextTools | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> ResultEnvelope[Any]:
        """Generate output shaped as *target*, continuing through truncation.

        Args:
            prompt: Conversation to send. Never mutated.
            target: Type to materialize. ``str`` requests free text and sends
                no schema.
            tools: Built-in tools for the first round.
            cancel_event: Checked before every round; when set the call ends
                with ``CallCancelledError``.

        Returns:
            ResultEnvelope with the materialized data, every round, and the
            augmented conversation; or the original prompt and the error.
        """
        defaults = self._defaults
        try:
            working = prompt.clone()
            schema = compile_schema(target)
            settings = resolve_settings(
                working.options,
                defaults,
                fallback_transport=self._fallback_transport(working.options, defaults),
            )
            driver = ContinuationDriver(
                working,
                settings,
                schema=schema,
                tools=tools.to_wire() if tools else (),
                cancel_event=cancel_event,
            )
            rounds = await driver.run()
            data = materialize(rounds, target)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            return ResultEnvelope.failure(prompt=prompt, error=_as_gemform_error(e))

        logger.debug("generate_object finished after %d round(s)", len(rounds))
        return ResultEnvelope.success(
            prompt=working, rounds=rounds, data=data, text=concatenate_text(rounds)
        )

    async def generate_text(
        self,
        prompt: Prompt,
        tools: TextTools | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> TextResult:
        """Generate one round of free text, optionally with built-in tools.

        No continuation is attempted; check the response's finish reason when
        completeness matters.
        """
        defaults = self._defaults
        try:
            working = prompt.clone()
            settings = resolve_settings(
                working.options,
                defaults,
                fallback_transport=self._fallback_transport(working.options, defaults),
            )
            driver = ContinuationDriver(
                working,
                settings,
                tools=tools.to_wire() if tools else (),
                continue_on_max_tokens=False,
                cancel_event=cancel_event,
            )
            rounds = await driver.run()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            return TextResult(prompt=prompt, error=_as_gemform_error(e))

        return TextResult(prompt=working, response=rounds[-1])

    def _fallback_transport(
        self, options: PromptOptions, defaults: PromptOptions
    ) -> Transport | None:
        if options.transport is not None or defaults.transport is not None:
            return None
        if self._owned_transport is None:
            self._owned_transport = HttpxTransport()
        return self._owned_transport

    async def aclose(self) -> None:
        """Close the transport this client created, if any."""
        if self._owned_transport is not None:
            try:
                await self._owned_transport.aclose()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("Transport cleanup failed: %s", exc)
            self._owned_transport = None

    async def __aenter__(self) -> Client:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        return f"Client(defaults={self._defaults})"


def _as_gemform_error(exc: Exception) -> GemformError:
    if isinstance(exc, GemformError):
        logger.debug("Call failed: %s: %s", type(exc).__name__, exc)
        return exc
    logger.debug("Call failed unexpectedly", exc_info=exc)
    err = GemformError(
        f"Unexpected failure: {type(exc).__name__}: {exc}",
        hint="This is a gemform internal error. Please report it.",
    )
    err.__cause__ = exc
    return err
