"""Content model: turns, parts, and round responses as they travel on the wire.

Parts have no type tag on the wire. A part object is recognised by which
marker field it carries (``text``, ``inlineData``, ``executableCode``,
``executableCodeResult``), and encoding emits only the variant's own fields.
"""

from __future__ import annotations

from enum import Enum
import logging
from typing import Annotated, Any, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    ValidationError,
    field_validator,
)
from pydantic.alias_generators import to_camel

from gemform.errors import CloneError, MalformedResponseError

logger = logging.getLogger(__name__)


class Role(str, Enum):
    """Speaker of a turn."""

    USER = "user"
    MODEL = "model"


class FinishReason(str, Enum):
    """Why the server stopped generating a candidate."""

    STOP = "STOP"
    MAX_TOKENS = "MAX_TOKENS"
    SAFETY = "SAFETY"
    RECITATION = "RECITATION"
    BLOCKLIST = "BLOCKLIST"
    PROHIBITED_CONTENT = "PROHIBITED_CONTENT"
    OTHER = "OTHER"
    UNSPECIFIED = "FINISH_REASON_UNSPECIFIED"


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class InlineData(_WireModel):
    """Base64 payload plus its MIME type."""

    data: str
    mime_type: str


class ExecutableCode(_WireModel):
    code: str
    language: str = "PYTHON"


class CodeExecutionResult(_WireModel):
    outcome: str
    output: str = ""


class TextPart(_WireModel):
    text: str


class InlineDataPart(_WireModel):
    inline_data: InlineData


class ExecutableCodePart(_WireModel):
    executable_code: ExecutableCode


class ExecutableCodeResultPart(_WireModel):
    # the live API names this field codeExecutionResult
    executable_code_result: CodeExecutionResult = Field(
        validation_alias=AliasChoices(
            "executableCodeResult", "codeExecutionResult", "executable_code_result"
        ),
        serialization_alias="executableCodeResult",
    )


_PART_MARKERS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("text",), "text"),
    (("inlineData", "inline_data"), "inline_data"),
    (("executableCode", "executable_code"), "executable_code"),
    (
        ("executableCodeResult", "codeExecutionResult", "executable_code_result"),
        "executable_code_result",
    ),
)

_PART_TAGS: dict[type, str] = {
    TextPart: "text",
    InlineDataPart: "inline_data",
    ExecutableCodePart: "executable_code",
    ExecutableCodeResultPart: "executable_code_result",
}


def part_tag(value: Any) -> str | None:
    """Return the variant tag of a raw or constructed part, by field presence."""
    if isinstance(value, dict):
        for keys, tag in _PART_MARKERS:
            if any(k in value for k in keys):
                return tag
        return None
    return _PART_TAGS.get(type(value))


Part = Annotated[
    Union[
        Annotated[TextPart, Tag("text")],
        Annotated[InlineDataPart, Tag("inline_data")],
        Annotated[ExecutableCodePart, Tag("executable_code")],
        Annotated[ExecutableCodeResultPart, Tag("executable_code_result")],
    ],
    Discriminator(
        part_tag,
        custom_error_type="unknown_part",
        custom_error_message=(
            "part carries none of text, inlineData, executableCode, "
            "executableCodeResult"
        ),
    ),
]


class Turn(BaseModel):
    """One role-attributed slot of the conversation. Parts are appended in place."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    role: Role
    parts: list[Part] = Field(default_factory=list)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def text_parts(self) -> list[TextPart]:
        return [p for p in self.parts if isinstance(p, TextPart)]


class UsageMetadata(_WireModel):
    prompt_token_count: int = 0
    candidates_token_count: int = 0
    total_token_count: int = 0


def _empty_model_turn() -> Turn:
    return Turn(role=Role.MODEL)


class Candidate(_WireModel):
    """One generated alternative. ``content`` is always a model turn."""

    content: Turn = Field(default_factory=_empty_model_turn)
    finish_reason: FinishReason = FinishReason.UNSPECIFIED

    @field_validator("content", mode="before")
    @classmethod
    def _default_role(cls, v: Any) -> Any:
        if isinstance(v, dict) and "role" not in v:
            return {**v, "role": Role.MODEL.value}
        return v

    @field_validator("finish_reason", mode="before")
    @classmethod
    def _tolerate_new_reasons(cls, v: Any) -> Any:
        if isinstance(v, str) and v not in FinishReason._value2member_map_:
            logger.debug("Unknown finish reason %r mapped to OTHER", v)
            return FinishReason.OTHER
        return v

    @property
    def first_text(self) -> str | None:
        texts = self.content.text_parts()
        return texts[0].text if texts else None


class RoundResponse(_WireModel):
    """One parsed response from the endpoint. Immutable once received."""

    usage_metadata: UsageMetadata = Field(default_factory=UsageMetadata)
    model_version: str = ""
    response_id: str = ""
    candidates: tuple[Candidate, ...] = ()

    @property
    def last_finish_reason(self) -> FinishReason | None:
        """Finish reason of the last candidate, which drives continuation."""
        return self.candidates[-1].finish_reason if self.candidates else None

    @property
    def first_text(self) -> str | None:
        """First text part of the first candidate."""
        return self.candidates[0].first_text if self.candidates else None


def parse_round_response(body: str | bytes) -> RoundResponse:
    """Parse a raw response body.

    Raises:
        MalformedResponseError: If the body is not JSON of the expected shape.
    """
    try:
        return RoundResponse.model_validate_json(body)
    except ValidationError as e:
        text = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else body
        raise MalformedResponseError(
            f"Response body does not match the generateContent shape: "
            f"{e.error_count()} error(s), first: {e.errors()[0]['msg']}",
            hint="Check the endpoint and model identifier; the body is attached as .body.",
            body=text,
        ) from e


def copy_part(part: Any) -> Any:
    """Structural copy of one part.

    Raises:
        CloneError: If *part* is not one of the known part variants.
    """
    if isinstance(part, TextPart):
        return TextPart(text=part.text)
    if isinstance(part, InlineDataPart):
        return InlineDataPart(
            inline_data=InlineData(
                data=part.inline_data.data, mime_type=part.inline_data.mime_type
            )
        )
    if isinstance(part, ExecutableCodePart):
        return ExecutableCodePart(
            executable_code=ExecutableCode(
                code=part.executable_code.code,
                language=part.executable_code.language,
            )
        )
    if isinstance(part, ExecutableCodeResultPart):
        return ExecutableCodeResultPart(
            executable_code_result=CodeExecutionResult(
                outcome=part.executable_code_result.outcome,
                output=part.executable_code_result.output,
            )
        )
    raise CloneError(
        f"Cannot copy part of type {type(part).__name__}",
        hint="Parts must be TextPart, InlineDataPart, ExecutableCodePart or ExecutableCodeResultPart.",
    )


def copy_turn(turn: Turn) -> Turn:
    """Structural copy of a turn and all of its parts."""
    if not isinstance(turn, Turn):
        raise CloneError(f"Cannot copy turn of type {type(turn).__name__}")
    return Turn(role=turn.role, parts=[copy_part(p) for p in turn.parts])
