"""Schema annotations for target types.

Member-level markers ride on ``typing.Annotated`` metadata::

    class Contact(BaseModel):
        email: Annotated[str, SchemaProperty(format=PropertyFormat.EMAIL)]
        internal_id: Annotated[int, SchemaIgnore()]

Type-level markers are class decorators and apply wherever the decorated
type is used as a member. A member-level marker always wins.

Markers only shape the emitted schema; runtime values are never touched.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable

T = TypeVar("T")

_PROPERTY_ATTR = "__gemform_property__"
_IGNORE_ATTR = "__gemform_ignore__"


class PropertyFormat(Enum):
    """Closed set of OpenAPI format keywords a property may carry."""

    NOT_SPECIFIED = ""

    # string formats
    DATE_TIME = "date-time"
    DATE = "date"
    TIME = "time"
    EMAIL = "email"
    UUID = "uuid"
    URI = "uri"
    BYTE = "byte"
    HOSTNAME = "hostname"
    IPV4 = "ipv4"
    IPV6 = "ipv6"
    PASSWORD = "password"

    # number formats
    FLOAT = "float"
    DOUBLE = "double"

    # integer formats
    INT32 = "int32"
    INT64 = "int64"


class NullOption(Enum):
    """Nullability override for a property."""

    NOT_SPECIFIED = "not_specified"
    NULLABLE = "nullable"
    NON_NULLABLE = "non_nullable"


@dataclass(frozen=True, slots=True)
class SchemaProperty:
    """Rename, format, or nullability override for one property."""

    name: str | None = None
    format: PropertyFormat = PropertyFormat.NOT_SPECIFIED
    nullable: NullOption = NullOption.NOT_SPECIFIED
    description: str | None = None


@dataclass(frozen=True, slots=True)
class SchemaIgnore:
    """Exclude a property from the schema. ``SchemaIgnore(False)`` re-includes it."""

    ignore: bool = True


def schema_property(
    name: str | None = None,
    *,
    format: PropertyFormat = PropertyFormat.NOT_SPECIFIED,  # noqa: A002
    nullable: NullOption = NullOption.NOT_SPECIFIED,
    description: str | None = None,
) -> Callable[[type[T]], type[T]]:
    """Class decorator: default property settings for members of this type."""
    marker = SchemaProperty(
        name=name, format=format, nullable=nullable, description=description
    )

    def decorate(cls: type[T]) -> type[T]:
        setattr(cls, _PROPERTY_ATTR, marker)
        return cls

    return decorate


def schema_ignore(cls: type[T]) -> type[T]:
    """Class decorator: members typed with this class are left out of schemas."""
    setattr(cls, _IGNORE_ATTR, SchemaIgnore())
    return cls


def type_property(tp: Any) -> SchemaProperty | None:
    """Return the type-level ``SchemaProperty`` declared on *tp*, if any."""
    # vars() so a subclass does not inherit its parent's rename
    marker = vars(tp).get(_PROPERTY_ATTR) if isinstance(tp, type) else None
    return marker if isinstance(marker, SchemaProperty) else None


def type_ignore(tp: Any) -> SchemaIgnore | None:
    """Return the type-level ``SchemaIgnore`` declared on *tp*, if any."""
    marker = vars(tp).get(_IGNORE_ATTR) if isinstance(tp, type) else None
    return marker if isinstance(marker, SchemaIgnore) else None
