"""Protocol driver: the continuation state machine.

One call is a strictly sequential chain of rounds::

    IDLE -> SENT -> EVALUATING -> CONTINUING -> SENT -> ... -> TERMINAL

After each round the model's candidate turns are folded back into the
conversation. When the last candidate of the latest round stopped on
``MAX_TOKENS`` the driver appends a user turn asking the model to continue,
restating the schema as text, and sends again without ``responseSchema``.
Any other finish reason ends the loop.
"""

from __future__ import annotations

import asyncio
from enum import Enum
import logging
from typing import TYPE_CHECKING, Any

from gemform._errors import transport_error_from_response, wrap_transport_error
from gemform.content import FinishReason, RoundResponse, copy_turn, parse_round_response
from gemform.errors import CallCancelledError, GemformError, RoundLimitError
from gemform.transport import TransportRequest

if TYPE_CHECKING:
    from collections.abc import Sequence

    from gemform.config import ResolvedSettings
    from gemform.prompt import Prompt
    from gemform.schema import Schema
    from gemform.transport import TransportResponse

logger = logging.getLogger(__name__)

JSON_MIME_TYPE = "application/json"
TEXT_MIME_TYPE = "text/plain"


class DriverState(Enum):
    IDLE = "idle"
    SENT = "sent"
    EVALUATING = "evaluating"
    CONTINUING = "continuing"
    TERMINAL = "terminal"


def continuation_instruction(schema: Schema | None) -> str:
    """Text of the synthetic user turn that resumes a truncated generation."""
    if schema is None:
        return "Continue."
    return f"Continue. follow this schema: {schema.to_json()}"


def build_generation_config(
    settings: ResolvedSettings, schema: Schema | None
) -> dict[str, Any]:
    config: dict[str, Any] = {
        "temperature": settings.temperature,
        "topK": settings.top_k,
        "topP": settings.top_p,
        "responseMimeType": JSON_MIME_TYPE if schema is not None else TEXT_MIME_TYPE,
        "thinkingConfig": {"thinkingBudget": settings.thinking_budget},
    }
    if settings.max_output_tokens is not None:
        config["maxOutputTokens"] = settings.max_output_tokens
    if schema is not None:
        config["responseSchema"] = schema.to_wire()
    return config


def build_request_body(
    prompt: Prompt,
    settings: ResolvedSettings,
    *,
    schema: Schema | None,
    tools: Sequence[dict[str, Any]] = (),
) -> dict[str, Any]:
    """Serialize one round's request payload."""
    body: dict[str, Any] = {
        "contents": prompt.to_wire(),
        "generationConfig": build_generation_config(settings, schema),
    }
    if tools:
        body["tools"] = [dict(t) for t in tools]
    return body


class ContinuationDriver:
    """Runs the rounds of a single call against the resolved transport.

    The driver owns *prompt* for the duration of the call and mutates it;
    callers pass a clone. It never retries a failed round: transport errors,
    malformed bodies, cancellation and the round cap all end the call.
    """

    def __init__(
        self,
        prompt: Prompt,
        settings: ResolvedSettings,
        *,
        schema: Schema | None = None,
        tools: Sequence[dict[str, Any]] = (),
        continue_on_max_tokens: bool = True,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        self.prompt = prompt
        self.settings = settings
        self.schema = schema
        self.tools = tuple(tools)
        self.continue_on_max_tokens = continue_on_max_tokens
        self.cancel_event = cancel_event
        self.state = DriverState.IDLE
        self.rounds: list[RoundResponse] = []

    async def run(self) -> list[RoundResponse]:
        """Drive rounds until a terminal finish reason; return all rounds in order.

        Raises:
            TransportError: A round could not be exchanged.
            MalformedResponseError: A response body did not parse.
            RoundLimitError: The model was still truncating at the round cap.
            CallCancelledError: ``cancel_event`` was set at a round boundary.
        """
        if self.state is not DriverState.IDLE:
            raise RuntimeError("ContinuationDriver.run() may only be called once")

        schema = self.schema
        tools = self.tools
        while True:
            body = build_request_body(self.prompt, self.settings, schema=schema, tools=tools)
            response = await self._send(body, schema_sent=schema is not None)

            self._transition(DriverState.EVALUATING)
            round_response = parse_round_response(response.text)
            self.rounds.append(round_response)
            self._fold_into_conversation(round_response)

            reason = round_response.last_finish_reason
            logger.debug(
                "Round %d finished: reason=%s candidates=%d",
                len(self.rounds),
                reason.value if reason else None,
                len(round_response.candidates),
            )
            if not (self.continue_on_max_tokens and reason is FinishReason.MAX_TOKENS):
                self._transition(DriverState.TERMINAL)
                return self.rounds

            if len(self.rounds) >= self.settings.max_rounds:
                logger.warning(
                    "Round cap reached after %d round(s); output still truncated",
                    len(self.rounds),
                )
                raise RoundLimitError(
                    f"Model output still truncated after {len(self.rounds)} round(s)",
                    hint="Raise PromptOptions.max_rounds or max_output_tokens.",
                    rounds=len(self.rounds),
                )

            self._transition(DriverState.CONTINUING)
            logger.warning(
                "Round %d hit MAX_TOKENS; requesting continuation", len(self.rounds)
            )
            self.prompt.add_text(continuation_instruction(self.schema))
            # Continuation rounds resend neither the schema nor the tools.
            schema = None
            tools = ()

    async def _send(self, body: dict[str, Any], *, schema_sent: bool) -> TransportResponse:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise CallCancelledError(
                f"Call cancelled before round {len(self.rounds) + 1}"
            )

        request = TransportRequest(
            url=self.settings.endpoint,
            body=body,
            params={"key": self.settings.api_key},
        )
        self._transition(DriverState.SENT)
        logger.debug(
            "Sending round %d to %s (schema=%s, tools=%d)",
            len(self.rounds) + 1,
            request.url,
            schema_sent,
            len(body.get("tools", ())),
        )
        try:
            response = await self.settings.transport.send(request)
        except asyncio.CancelledError:
            raise
        except GemformError:
            raise
        except Exception as e:
            raise wrap_transport_error(e) from e

        if not response.is_success:
            raise transport_error_from_response(
                response.status_code, response.text, response.headers
            )
        return response

    def _fold_into_conversation(self, round_response: RoundResponse) -> None:
        for candidate in round_response.candidates:
            if not candidate.content.parts:
                logger.debug(
                    "Skipping empty candidate content (reason=%s)",
                    candidate.finish_reason.value,
                )
                continue
            self.prompt.append_turn(copy_turn(candidate.content))

    def _transition(self, new_state: DriverState) -> None:
        logger.debug("Driver %s -> %s", self.state.value, new_state.value)
        self.state = new_state
