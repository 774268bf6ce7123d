"""Schema compiler: target Python types to response-schema trees.

The compiler walks a target type once per call and produces an immutable
``Schema`` tree in the OpenAPI subset the generateContent endpoint accepts.

Supported targets:
- ``str``, ``int``, ``float``, ``bool`` and the well-known string-shaped types
  ``datetime``, ``date``, ``time``, ``UUID``
- ``Enum`` subclasses and ``Literal[...]`` (emitted as string enums of their
  wire literals)
- ``list``/``tuple[T, ...]``/``set``/``frozenset``/``Sequence`` of a
  supported element type
- ``Optional[T]`` and ``Annotated[T, ...]`` carrying ``gemform.markers``
- dataclasses and pydantic ``BaseModel`` subclasses

Recursive type graphs stay finite: a class met again while it is still being
compiled becomes a nullable string placeholder naming the referenced type.
"""

from __future__ import annotations

import collections.abc
import dataclasses
from dataclasses import dataclass, replace
import datetime as dt
from enum import Enum
import json
import logging
import types
import typing
from typing import Any, Literal
import uuid

from pydantic import AliasChoices, BaseModel
from pydantic.fields import FieldInfo

from gemform.errors import SchemaError
from gemform.markers import (
    NullOption,
    PropertyFormat,
    SchemaIgnore,
    SchemaProperty,
    type_ignore,
    type_property,
)

logger = logging.getLogger(__name__)

_SEQUENCE_ORIGINS: frozenset[Any] = frozenset(
    {
        list,
        set,
        frozenset,
        collections.abc.Sequence,
        collections.abc.MutableSequence,
        collections.abc.Set,
        collections.abc.MutableSet,
        collections.abc.Collection,
        collections.abc.Iterable,
    }
)

# datetime before date: datetime subclasses date
_FORMATTED_STRINGS: tuple[tuple[type, PropertyFormat], ...] = (
    (dt.datetime, PropertyFormat.DATE_TIME),
    (dt.date, PropertyFormat.DATE),
    (dt.time, PropertyFormat.TIME),
    (uuid.UUID, PropertyFormat.UUID),
)


class SchemaType(Enum):
    """Wire-level type keyword of a schema node."""

    OBJECT = "OBJECT"
    ARRAY = "ARRAY"
    STRING = "STRING"
    NUMBER = "NUMBER"
    INTEGER = "INTEGER"
    BOOLEAN = "BOOLEAN"


SchemaKind = Literal["object", "array", "enum", "primitive"]


@dataclass(frozen=True, slots=True)
class Schema:
    """One immutable node of a response schema tree.

    Exactly one of the shape fields is populated per variant:
    ``properties`` for objects, ``items`` for arrays, ``enum`` for string
    enums; primitives carry none of them.
    """

    type: SchemaType
    format: str | None = None
    nullable: bool = False
    description: str | None = None
    enum: tuple[str, ...] | None = None
    items: Schema | None = None
    properties: typing.Mapping[str, Schema] | None = None
    required: tuple[str, ...] = ()

    @classmethod
    def object(
        cls,
        properties: typing.Mapping[str, Schema],
        required: typing.Iterable[str] = (),
        *,
        description: str | None = None,
    ) -> Schema:
        return cls(
            type=SchemaType.OBJECT,
            properties=types.MappingProxyType(dict(properties)),
            required=tuple(required),
            description=description,
        )

    @classmethod
    def array(cls, items: Schema) -> Schema:
        return cls(type=SchemaType.ARRAY, items=items)

    @classmethod
    def string_enum(cls, values: typing.Iterable[str]) -> Schema:
        return cls(type=SchemaType.STRING, format="enum", enum=tuple(values))

    @classmethod
    def primitive(cls, kind: SchemaType, *, format: str | None = None) -> Schema:  # noqa: A002
        if kind in (SchemaType.OBJECT, SchemaType.ARRAY):
            raise SchemaError(f"{kind.value} is not a primitive schema type")
        return cls(type=kind, format=format)

    @property
    def kind(self) -> SchemaKind:
        """Variant of this node."""
        if self.properties is not None:
            return "object"
        if self.items is not None:
            return "array"
        if self.enum is not None:
            return "enum"
        return "primitive"

    def to_wire(self) -> dict[str, Any]:
        """Render the node as the JSON object sent in ``responseSchema``."""
        out: dict[str, Any] = {"type": self.type.value}
        if self.format:
            out["format"] = self.format
        if self.description:
            out["description"] = self.description
        if self.nullable:
            out["nullable"] = True
        if self.enum is not None:
            out["enum"] = list(self.enum)
        if self.items is not None:
            out["items"] = self.items.to_wire()
        if self.properties:
            out["properties"] = {
                name: node.to_wire() for name, node in self.properties.items()
            }
            out["propertyOrdering"] = list(self.properties)
        if self.required:
            out["required"] = list(self.required)
        return out

    def to_json(self) -> str:
        """Compact JSON form, as restated in continuation instructions."""
        return json.dumps(self.to_wire(), separators=(",", ":"))


@dataclass(frozen=True, slots=True)
class PropertySpec:
    """A member of an object-like type as it appears on the wire."""

    member: str
    wire_name: str
    annotation: Any
    #: annotation with Annotated and Optional stripped
    base: Any
    optional: bool
    ignored: bool
    marker: SchemaProperty | None
    type_marker: SchemaProperty | None
    #: key the target type validates this member from (a pydantic alias, or the member name)
    input_key: str
    has_default: bool


def to_lower_camel(name: str) -> str:
    """Convert a member name to its default lowerCamelCase wire name.

    ``first_name`` -> ``firstName``; ``URLValue`` -> ``urlValue``; ``ID`` -> ``id``.
    """
    pieces = [p for p in name.split("_") if p]
    if not pieces:
        return name
    head = _lower_leading_caps(pieces[0])
    return head + "".join(p[:1].upper() + p[1:] for p in pieces[1:])


def _lower_leading_caps(word: str) -> str:
    chars = list(word)
    for i, ch in enumerate(chars):
        if i == 1 and not ch.isupper():
            break
        has_next = i + 1 < len(chars)
        if i > 0 and has_next and not chars[i + 1].isupper():
            break
        chars[i] = ch.lower()
    return "".join(chars)


def unwrap_annotation(tp: Any) -> tuple[Any, bool, tuple[Any, ...]]:
    """Strip ``Annotated`` and ``Optional`` wrappers.

    Returns ``(base_type, optional, metadata)``.
    """
    metadata: tuple[Any, ...] = ()
    optional = False
    while True:
        origin = typing.get_origin(tp)
        if origin is typing.Annotated:
            metadata += tuple(tp.__metadata__)
            tp = typing.get_args(tp)[0]
            continue
        if origin is typing.Union or origin is types.UnionType:
            args = typing.get_args(tp)
            non_none = [a for a in args if a is not type(None)]
            if len(non_none) != 1:
                raise SchemaError(
                    f"Union types are not supported in schemas: {tp!r}",
                    hint="Use a single type, optionally wrapped in Optional[...].",
                )
            optional = optional or len(non_none) != len(args)
            tp = non_none[0]
            continue
        return tp, optional, metadata


def is_object_type(tp: Any) -> bool:
    """True for classes compiled into object schemas."""
    if not isinstance(tp, type):
        return False
    return dataclasses.is_dataclass(tp) or issubclass(tp, BaseModel)


def sequence_element(tp: Any) -> Any | None:
    """Element type for collection annotations, else None."""
    origin = typing.get_origin(tp)
    if origin is tuple:
        args = typing.get_args(tp)
        if len(args) == 2 and args[1] is Ellipsis:
            return args[0]
        raise SchemaError(
            f"Fixed-length tuples are not supported in schemas: {tp!r}",
            hint="Use tuple[T, ...] or list[T].",
        )
    if origin in _SEQUENCE_ORIGINS:
        args = typing.get_args(tp)
        if len(args) != 1:
            raise SchemaError(f"Collection type needs one element type: {tp!r}")
        return args[0]
    if tp in (list, set, frozenset, tuple):
        raise SchemaError(
            f"Bare {tp.__name__} has no element type",
            hint=f"Parameterize it, e.g. {tp.__name__}[str].",
        )
    return None


def enum_literals(tp: Any) -> tuple[str, ...] | None:
    """Wire literals for Enum subclasses and Literal types, else None."""
    if isinstance(tp, type) and issubclass(tp, Enum):
        return tuple(str(member.value) for member in tp)
    if typing.get_origin(tp) is Literal:
        return tuple(str(v) for v in typing.get_args(tp))
    return None


def iter_properties(cls: type) -> list[PropertySpec]:
    """Members of an object-like type, in declaration order, with wire names."""
    specs: list[PropertySpec] = []
    for member in _members(cls):
        base, optional, metadata = unwrap_annotation(member.annotation)
        marker = next((m for m in metadata if isinstance(m, SchemaProperty)), None)
        member_ignore = next((m for m in metadata if isinstance(m, SchemaIgnore)), None)
        type_marker = type_property(base)

        if member_ignore is not None:
            ignored = member_ignore.ignore
        else:
            declared = type_ignore(base)
            ignored = declared is not None and declared.ignore

        wire_name = (
            (marker.name if marker else None)
            or (type_marker.name if type_marker else None)
            or to_lower_camel(member.name)
        )
        specs.append(
            PropertySpec(
                member=member.name,
                wire_name=wire_name,
                annotation=member.annotation,
                base=base,
                optional=optional,
                ignored=ignored,
                marker=marker,
                type_marker=type_marker,
                input_key=member.input_key,
                has_default=member.has_default,
            )
        )
    return specs


@dataclass(frozen=True, slots=True)
class _Member:
    name: str
    annotation: Any
    input_key: str
    has_default: bool


def _members(cls: type) -> list[_Member]:
    if issubclass(cls, BaseModel):
        # pydantic has already resolved the annotations and moved Annotated
        # extras into FieldInfo.metadata
        members: list[_Member] = []
        for name, info in cls.model_fields.items():
            annotation: Any = info.annotation
            if info.metadata:
                annotation = typing.Annotated[(annotation, *info.metadata)]
            members.append(
                _Member(
                    name=name,
                    annotation=annotation,
                    input_key=_pydantic_input_key(name, info),
                    has_default=not info.is_required(),
                )
            )
        return members

    try:
        hints = typing.get_type_hints(cls, include_extras=True)
    except Exception as e:
        raise SchemaError(
            f"Cannot resolve annotations of {cls.__qualname__}: {e}",
            hint="Make sure forward references are importable from the class's module.",
        ) from e
    return [
        _Member(
            name=f.name,
            annotation=hints.get(f.name, Any),
            input_key=f.name,
            has_default=(
                f.default is not dataclasses.MISSING
                or f.default_factory is not dataclasses.MISSING
            ),
        )
        for f in dataclasses.fields(cls)
        if f.init
    ]


def _pydantic_input_key(name: str, info: FieldInfo) -> str:
    """Key pydantic validates this field from: its alias when it has one."""
    alias = info.validation_alias
    if isinstance(alias, AliasChoices):
        alias = next((c for c in alias.choices if isinstance(c, str)), None)
    if isinstance(alias, str):
        return alias
    if isinstance(info.alias, str):
        return info.alias
    return name


class SchemaCompiler:
    """Single-use compiler holding the per-call memo of compiled classes."""

    def __init__(self) -> None:
        self._memo: dict[type, Schema] = {}
        self._in_progress: set[type] = set()

    def compile(self, target: Any) -> Schema:
        base, optional, metadata = unwrap_annotation(target)
        node = self._compile_base(base)
        marker = next((m for m in metadata if isinstance(m, SchemaProperty)), None)
        return _apply_overrides(node, optional=optional, marker=marker, type_marker=None)

    def _compile_base(self, tp: Any) -> Schema:
        if tp is Any or tp is object:
            raise SchemaError(
                "Any/object cannot be described by a response schema",
                hint="Annotate the member with a concrete type.",
            )
        if tp is bool:
            return Schema.primitive(SchemaType.BOOLEAN)
        if tp is int:
            return Schema.primitive(SchemaType.INTEGER)
        if tp is float:
            return Schema.primitive(SchemaType.NUMBER)
        if tp is str:
            return Schema.primitive(SchemaType.STRING)
        for known, fmt in _FORMATTED_STRINGS:
            if isinstance(tp, type) and issubclass(tp, known):
                return Schema.primitive(SchemaType.STRING, format=fmt.value)

        literals = enum_literals(tp)
        if literals is not None:
            return Schema.string_enum(literals)

        element = sequence_element(tp)
        if element is not None:
            return Schema.array(self.compile(element))

        if is_object_type(tp):
            return self._compile_object(tp)

        raise SchemaError(
            f"Unsupported type in schema: {tp!r}",
            hint="Use primitives, enums, collections, dataclasses or pydantic models.",
        )

    def _compile_object(self, cls: type) -> Schema:
        cached = self._memo.get(cls)
        if cached is not None:
            return cached
        if cls in self._in_progress:
            logger.debug("Recursive reference to %s emitted as placeholder", cls.__name__)
            # the endpoint rejects OBJECT nodes without properties
            return Schema(
                type=SchemaType.STRING,
                nullable=True,
                description=f"Recursive reference to {cls.__name__}; always null",
            )

        self._in_progress.add(cls)
        try:
            properties: dict[str, Schema] = {}
            required: list[str] = []
            for prop in iter_properties(cls):
                if prop.ignored:
                    if not prop.has_default:
                        raise SchemaError(
                            f"Excluded member {cls.__qualname__}.{prop.member} has no default",
                            hint="Excluded members are never sent by the model; "
                            "give the member a default value.",
                        )
                    continue
                if prop.wire_name in properties:
                    raise SchemaError(
                        f"Duplicate property name {prop.wire_name!r} on {cls.__qualname__}",
                        hint="Give one of the members a distinct SchemaProperty(name=...).",
                    )
                node = _apply_overrides(
                    self._compile_base(prop.base),
                    optional=prop.optional,
                    marker=prop.marker,
                    type_marker=prop.type_marker,
                )
                properties[prop.wire_name] = node
                if not node.nullable:
                    required.append(prop.wire_name)
        finally:
            self._in_progress.discard(cls)

        node = Schema.object(properties, required, description=_doc_summary(cls))
        self._memo[cls] = node
        return node


def _apply_overrides(
    node: Schema,
    *,
    optional: bool,
    marker: SchemaProperty | None,
    type_marker: SchemaProperty | None,
) -> Schema:
    fmt = PropertyFormat.NOT_SPECIFIED
    null_opt = NullOption.NOT_SPECIFIED
    description = None
    for m in (type_marker, marker):
        if m is None:
            continue
        if m.format is not PropertyFormat.NOT_SPECIFIED:
            fmt = m.format
        if m.nullable is not NullOption.NOT_SPECIFIED:
            null_opt = m.nullable
        if m.description:
            description = m.description

    if null_opt is NullOption.NULLABLE:
        nullable = True
    elif null_opt is NullOption.NON_NULLABLE:
        nullable = False
    else:
        nullable = optional or node.nullable

    changes: dict[str, Any] = {}
    if nullable != node.nullable:
        changes["nullable"] = nullable
    if fmt is not PropertyFormat.NOT_SPECIFIED and node.kind == "primitive":
        changes["format"] = fmt.value
    if description:
        changes["description"] = description
    return replace(node, **changes) if changes else node


def _doc_summary(cls: type) -> str | None:
    # Skip the synthesized dataclass/BaseModel docstrings
    doc = (cls.__dict__.get("__doc__") or "").strip()
    if not doc or doc.startswith(f"{cls.__name__}("):
        return None
    return doc.splitlines()[0]


def is_raw_text(target: Any) -> bool:
    """True when *target* asks for the model's free text instead of JSON."""
    return target is str


def compile_schema(target: Any) -> Schema | None:
    """Compile *target* into a response schema.

    Returns None for raw-text targets (``str``); no schema is sent and the
    server answers with free text.

    Raises:
        SchemaError: If the target, or a type reachable from it, is unsupported.
    """
    if is_raw_text(target):
        return None
    return SchemaCompiler().compile(target)
