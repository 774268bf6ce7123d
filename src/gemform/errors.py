"""Exception hierarchy for gemform.

Public operations never raise these at the caller; they are caught at the
client boundary and carried on the returned envelope's ``error`` field.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator


class GemformError(Exception):
    """Base exception for all gemform errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(GemformError):
    """Credential, model, or transport could not be resolved, or options are invalid."""


class SchemaError(ConfigurationError):
    """A target type cannot be compiled into a response schema."""


class TransportError(GemformError):
    """The endpoint answered with a non-success status or could not be reached.

    The transport attaches retry metadata so its own bounded retry can run
    without brittle substring matching.
    """

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        status_code: int | None = None,
        body: str | None = None,
        retryable: bool | None = None,
        retry_after_s: float | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.status_code = status_code
        self.body = body
        self.retryable = retryable
        self.retry_after_s = retry_after_s


class MalformedResponseError(GemformError):
    """A response body does not parse into the expected round-response shape."""

    def __init__(
        self, message: str, *, hint: str | None = None, body: str | None = None
    ) -> None:
        super().__init__(message, hint=hint)
        self.body = body


class MaterializationError(GemformError):
    """Concatenated model output cannot be converted into the target type."""

    def __init__(
        self, message: str, *, hint: str | None = None, text: str | None = None
    ) -> None:
        super().__init__(message, hint=hint)
        self.text = text


class CloneError(GemformError):
    """A conversation could not be copied part for part."""


class RoundLimitError(GemformError):
    """The continuation loop hit its round cap while the model was still truncating."""

    def __init__(self, message: str, *, hint: str | None = None, rounds: int = 0) -> None:
        super().__init__(message, hint=hint)
        self.rounds = rounds


class CallCancelledError(GemformError):
    """The caller's cancel event was set before a transport invocation."""


def _walk_exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield *exc* and its ``__cause__``/``__context__`` chain, with cycle protection."""
    seen: set[int] = set()
    stack: list[BaseException] = [exc]
    while stack:
        cur = stack.pop()
        if id(cur) in seen:
            continue
        seen.add(id(cur))
        yield cur

        cause = cur.__cause__
        if isinstance(cause, BaseException):
            stack.append(cause)
        context = cur.__context__
        if isinstance(context, BaseException):
            stack.append(context)
