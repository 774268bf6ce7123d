"""Result envelopes returned by every public operation.

Callers check ``is_successful`` before trusting ``data``; failures carry the
error instead of raising it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, TypeVar

from gemform.content import (
    ExecutableCodePart,
    ExecutableCodeResultPart,
    TextPart,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from gemform.content import FinishReason, RoundResponse
    from gemform.errors import GemformError
    from gemform.prompt import Prompt

T = TypeVar("T")
P = TypeVar("P")


@dataclass(frozen=True)
class ResultEnvelope(Generic[T]):
    """Outcome of ``generate_object``.

    On success ``prompt`` is the working conversation with every model turn
    and continuation instruction folded in. On failure it is the caller's
    original prompt, untouched, and ``rounds`` is empty.
    """

    prompt: Prompt
    data: T | None = None
    rounds: tuple[RoundResponse, ...] = ()
    error: GemformError | None = None
    #: Concatenated model text the data was materialized from.
    text: str | None = None

    @classmethod
    def success(
        cls,
        *,
        prompt: Prompt,
        rounds: Iterable[RoundResponse],
        data: T | None,
        text: str | None,
    ) -> ResultEnvelope[T]:
        return cls(prompt=prompt, data=data, rounds=tuple(rounds), text=text)

    @classmethod
    def failure(cls, *, prompt: Prompt, error: GemformError) -> ResultEnvelope[T]:
        return cls(prompt=prompt, error=error)

    @property
    def is_successful(self) -> bool:
        return self.error is None and self.data is not None

    @property
    def finish_reasons(self) -> list[FinishReason | None]:
        return [r.last_finish_reason for r in self.rounds]

    @property
    def usage(self) -> dict[str, int]:
        """Token counts summed over all rounds."""
        return _sum_usage(self.rounds)


@dataclass(frozen=True)
class TextResult:
    """Outcome of ``generate_text``: one round, parts grouped by kind."""

    prompt: Prompt
    response: RoundResponse | None = None
    error: GemformError | None = None

    @property
    def is_successful(self) -> bool:
        return self.error is None and self.response is not None

    @property
    def text_parts(self) -> list[TextPart]:
        return self._parts_of(TextPart)

    @property
    def executable_code_parts(self) -> list[ExecutableCodePart]:
        return self._parts_of(ExecutableCodePart)

    @property
    def executable_code_result_parts(self) -> list[ExecutableCodeResultPart]:
        return self._parts_of(ExecutableCodeResultPart)

    @property
    def text(self) -> str | None:
        """All text parts of the first candidate joined, or None."""
        if self.response is None or not self.response.candidates:
            return None
        texts = self.response.candidates[0].content.text_parts()
        return "".join(p.text for p in texts) if texts else None

    @property
    def usage(self) -> dict[str, int]:
        return _sum_usage(() if self.response is None else (self.response,))

    def _parts_of(self, kind: type[P]) -> list[P]:
        if self.response is None:
            return []
        return [
            part
            for candidate in self.response.candidates
            for part in candidate.content.parts
            if isinstance(part, kind)
        ]


def _sum_usage(rounds: Iterable[RoundResponse]) -> dict[str, int]:
    totals = {"input_tokens": 0, "output_tokens": 0, "total_tokens": 0}
    for r in rounds:
        um = r.usage_metadata
        totals["input_tokens"] += um.prompt_token_count
        totals["output_tokens"] += um.candidates_token_count
        totals["total_tokens"] += um.total_token_count
    return totals
