"""Response materializer: fold all rounds into one typed value."""

from __future__ import annotations

from enum import Enum
import json
import logging
import typing
from typing import TYPE_CHECKING, Any

from pydantic import TypeAdapter, ValidationError

from gemform.errors import MaterializationError, SchemaError
from gemform.schema import (
    enum_literals,
    is_object_type,
    is_raw_text,
    iter_properties,
    sequence_element,
    unwrap_annotation,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from gemform.content import RoundResponse

logger = logging.getLogger(__name__)


def concatenate_text(rounds: Iterable[RoundResponse]) -> str | None:
    """Join each round's first-candidate first text part, in order, unseparated.

    Returns None when no round produced any text.
    """
    pieces = [text for r in rounds if (text := r.first_text) is not None]
    if not pieces:
        return None
    return "".join(pieces)


def materialize(rounds: Iterable[RoundResponse], target: Any) -> Any:
    """Convert the concatenated output of *rounds* into *target*.

    Raw-text targets (``str``) get the concatenation itself. Anything else is
    parsed as JSON, mapped from wire names back to member names, and
    validated with pydantic.

    Returns:
        The materialized value, or None when no round produced text.

    Raises:
        MaterializationError: If the text is not JSON or does not fit *target*.
    """
    text = concatenate_text(rounds)
    if text is None:
        logger.debug("No text in any round; data is absent")
        return None
    if is_raw_text(target):
        return text

    try:
        raw = json.loads(text)
    except ValueError as e:
        raise MaterializationError(
            f"Model output is not valid JSON: {e}",
            hint="The output may have been cut off; inspect .text or the rounds.",
            text=text,
        ) from e

    try:
        shaped = to_member_names(raw, target)
        return TypeAdapter(target).validate_python(shaped)
    except ValidationError as e:
        raise MaterializationError(
            f"Model output does not match {_type_name(target)}: "
            f"{e.error_count()} error(s), first: {e.errors()[0]['msg']}",
            hint="Compare the output against the compiled schema.",
            text=text,
        ) from e
    except SchemaError as e:
        raise MaterializationError(
            f"Cannot materialize into {_type_name(target)}: {e}", text=text
        ) from e


def to_member_names(value: Any, target: Any) -> Any:
    """Rewrite decoded JSON so wire names and enum literals match *target*.

    Keys are mapped from wire names to the keys *target* validates from
    (member names, or pydantic aliases). Enum wire literals become members
    and unknown keys are dropped. Shape mismatches are left for validation
    to report.
    """
    if value is None:
        return None
    base, _, _ = unwrap_annotation(target)

    if enum_literals(base) is not None:
        return _enum_value(base, value)

    element = sequence_element(base)
    if element is not None:
        if isinstance(value, list):
            return [to_member_names(v, element) for v in value]
        return value

    if is_object_type(base) and isinstance(value, dict):
        shaped: dict[str, Any] = {}
        for prop in iter_properties(base):
            if prop.ignored or prop.wire_name not in value:
                continue
            shaped[prop.input_key] = to_member_names(
                value[prop.wire_name], prop.annotation
            )
        return shaped

    return value


def _enum_value(tp: Any, literal: Any) -> Any:
    if not isinstance(literal, str):
        return literal
    if isinstance(tp, type) and issubclass(tp, Enum):
        for member in tp:
            if str(member.value) == literal:
                return member
        return literal
    for arg in typing.get_args(tp):
        if str(arg) == literal:
            return arg
    return literal


def _type_name(target: Any) -> str:
    return getattr(target, "__qualname__", None) or repr(target)
