"""Type model: tagged-variant descriptors for procedure parameter and result types.

Every value that crosses the wire is described by a ``TypeDescriptor`` tree
built once from Python type annotations (or supplied explicitly at
registration time).  The same trees drive argument coercion in the
dispatcher and client declaration output in :mod:`wsrpc.typescript`.

Variants
--------
- ``Primitive``: number, string, boolean (and null for procedures that
  return nothing)
- ``Struct``: ordered named fields, backed by a dataclass
- ``Array``: homogeneous sequence
- ``Map``: string- or number-keyed associative array
- ``Nullable``: ``T | None``
- ``Unknown``: unconstrained fallback

Consumers walk a tree with a :class:`TypeVisitor`; each variant's
``accept()`` calls exactly one ``visit_*`` method.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping, Sequence
from collections.abc import Set as AbstractSet
from dataclasses import dataclass, field
from enum import Enum
from types import NoneType, UnionType
from typing import Annotated, Any, Protocol, Union, get_args, get_origin, get_type_hints

__all__ = [
    "BOOLEAN",
    "FLOAT",
    "INTEGER",
    "NULL",
    "STRING",
    "UNKNOWN",
    "Array",
    "Field",
    "Map",
    "Nullable",
    "Primitive",
    "PrimitiveKind",
    "Struct",
    "TypeDescriptor",
    "TypeVisitor",
    "Unknown",
    "type_name",
    "type_of",
]


class PrimitiveKind(Enum):
    """Scalar kinds understood by both sides of the wire."""

    NUMBER = "number"
    STRING = "string"
    BOOLEAN = "boolean"
    NULL = "null"


# ---------------------------------------------------------------------------
# Visitor
# ---------------------------------------------------------------------------


class TypeVisitor[R](Protocol):
    """Exhaustive visitor over the ``TypeDescriptor`` variants."""

    def visit_primitive(self, t: Primitive) -> R:
        """Visit a primitive."""
        ...

    def visit_struct(self, t: Struct) -> R:
        """Visit a struct."""
        ...

    def visit_array(self, t: Array) -> R:
        """Visit an array."""
        ...

    def visit_map(self, t: Map) -> R:
        """Visit a map."""
        ...

    def visit_nullable(self, t: Nullable) -> R:
        """Visit a nullable wrapper."""
        ...

    def visit_unknown(self, t: Unknown) -> R:
        """Visit the unconstrained fallback."""
        ...


# ---------------------------------------------------------------------------
# Variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Primitive:
    """A scalar value.

    Attributes:
        kind: Wire-level kind.
        python_type: Concrete Python type produced by coercion
            (``int`` vs ``float`` for numbers).

    """

    kind: PrimitiveKind
    python_type: type = object

    def accept[R](self, visitor: TypeVisitor[R]) -> R:
        """Dispatch to ``visitor.visit_primitive``."""
        return visitor.visit_primitive(self)


@dataclass(frozen=True)
class Field:
    """A named struct member.

    Attributes:
        name: Member name, used verbatim as the JSON object key.
        type: Member type.
        required: ``False`` when the backing dataclass supplies a default.

    """

    name: str
    type: TypeDescriptor
    required: bool = True


@dataclass(frozen=True)
class Struct:
    """An object with an ordered list of named fields.

    Attributes:
        name: Display name (the dataclass name).
        fields: Members in declaration order.
        factory: Callable building a value from coerced keyword arguments;
            ``dict`` when no dataclass backs the struct.

    """

    name: str
    fields: tuple[Field, ...]
    factory: Any = field(default=dict, compare=False, repr=False)

    def accept[R](self, visitor: TypeVisitor[R]) -> R:
        """Dispatch to ``visitor.visit_struct``."""
        return visitor.visit_struct(self)


@dataclass(frozen=True)
class Array:
    """A homogeneous sequence."""

    element: TypeDescriptor

    def accept[R](self, visitor: TypeVisitor[R]) -> R:
        """Dispatch to ``visitor.visit_array``."""
        return visitor.visit_array(self)


@dataclass(frozen=True)
class Map:
    """An associative array keyed by a string or number primitive."""

    key: TypeDescriptor
    value: TypeDescriptor

    def accept[R](self, visitor: TypeVisitor[R]) -> R:
        """Dispatch to ``visitor.visit_map``."""
        return visitor.visit_map(self)


@dataclass(frozen=True)
class Nullable:
    """A value that may also be JSON ``null``."""

    inner: TypeDescriptor

    def accept[R](self, visitor: TypeVisitor[R]) -> R:
        """Dispatch to ``visitor.visit_nullable``."""
        return visitor.visit_nullable(self)


@dataclass(frozen=True)
class Unknown:
    """Unconstrained fallback for types with no structural description."""

    def accept[R](self, visitor: TypeVisitor[R]) -> R:
        """Dispatch to ``visitor.visit_unknown``."""
        return visitor.visit_unknown(self)


type TypeDescriptor = Primitive | Struct | Array | Map | Nullable | Unknown

INTEGER = Primitive(PrimitiveKind.NUMBER, int)
FLOAT = Primitive(PrimitiveKind.NUMBER, float)
STRING = Primitive(PrimitiveKind.STRING, str)
BOOLEAN = Primitive(PrimitiveKind.BOOLEAN, bool)
NULL = Primitive(PrimitiveKind.NULL, NoneType)
UNKNOWN = Unknown()

_PRIMITIVES: dict[Any, Primitive] = {
    bool: BOOLEAN,
    int: INTEGER,
    float: FLOAT,
    str: STRING,
    NoneType: NULL,
    None: NULL,
}


# ---------------------------------------------------------------------------
# Annotation -> descriptor
# ---------------------------------------------------------------------------


def _is_optional_type(python_type: Any) -> tuple[Any, bool]:
    """Check if a type is Optional (X | None) and extract the inner type.

    Returns:
        Tuple of (inner_type, is_nullable). If nullable, inner_type is the
        non-None type. If not nullable, inner_type is the original type.

    """
    origin = get_origin(python_type)
    args = get_args(python_type)
    if origin is UnionType or origin is Union:
        non_none_types = [t for t in args if t is not NoneType]
        if len(non_none_types) == 1 and len(args) == 2:
            return non_none_types[0], True
    return python_type, False


class _DescriptorBuilder:
    """Converts annotations to descriptors, sharing one ``Struct`` per dataclass.

    Tracks the dataclasses currently being expanded so self-referential
    structs are rejected instead of recursing forever.
    """

    __slots__ = ("_in_progress", "_structs")

    def __init__(self) -> None:
        self._structs: dict[type, Struct] = {}
        self._in_progress: list[type] = []

    def build(self, hint: Any) -> TypeDescriptor:
        inner, is_nullable = _is_optional_type(hint)
        if is_nullable:
            return Nullable(self.build(inner))

        origin = get_origin(hint)
        if origin is Annotated:
            return self.build(get_args(hint)[0])

        # NewType - unwrap to underlying type
        if hasattr(hint, "__supertype__"):
            return self.build(hint.__supertype__)

        if hint in _PRIMITIVES:
            return _PRIMITIVES[hint]

        if isinstance(hint, type) and dataclasses.is_dataclass(hint):
            return self._struct(hint)

        args = get_args(hint)
        container = origin if origin is not None else hint
        if isinstance(container, type):
            if issubclass(container, (str, bytes)):
                return UNKNOWN
            if issubclass(container, Mapping):
                if len(args) >= 2:
                    return self._map(args[0], args[1])
                return Map(STRING, UNKNOWN)
            if issubclass(container, tuple):
                if len(args) == 2 and args[1] is Ellipsis:
                    return Array(self.build(args[0]))
                return Array(UNKNOWN)
            if issubclass(container, (Sequence, AbstractSet)):
                return Array(self.build(args[0]) if args else UNKNOWN)

        return UNKNOWN

    def _map(self, key_hint: Any, value_hint: Any) -> Map:
        key = self.build(key_hint)
        if key not in (STRING, INTEGER, FLOAT):
            raise TypeError(f"Map keys must be str, int or float, got {key_hint!r}")
        return Map(key, self.build(value_hint))

    def _struct(self, cls: type) -> Struct:
        cached = self._structs.get(cls)
        if cached is not None:
            return cached
        if cls in self._in_progress:
            chain = " -> ".join(c.__name__ for c in [*self._in_progress, cls])
            raise TypeError(f"Self-referential struct is not supported: {chain}")
        self._in_progress.append(cls)
        try:
            try:
                hints = get_type_hints(cls, include_extras=True)
            except (NameError, AttributeError) as exc:
                raise TypeError(f"Failed to resolve type hints for {cls.__name__}: {exc}") from exc
            members: list[Field] = []
            for f in dataclasses.fields(cls):
                if not f.init:
                    continue
                has_default = f.default is not dataclasses.MISSING or f.default_factory is not dataclasses.MISSING
                members.append(Field(f.name, self.build(hints.get(f.name, Any)), required=not has_default))
        finally:
            self._in_progress.pop()
        struct = Struct(cls.__name__, tuple(members), factory=cls)
        self._structs[cls] = struct
        return struct


def type_of(hint: Any, *, builder: _DescriptorBuilder | None = None) -> TypeDescriptor:
    """Build a ``TypeDescriptor`` from a Python type annotation.

    Supports:
    - Basic types: ``int``/``float`` (number), ``str``, ``bool``, ``None``
    - ``X | None`` / ``Optional[X]``
    - ``list[T]``, ``tuple[T, ...]``, ``set[T]``, ``frozenset[T]``, ``Sequence[T]``
    - ``dict[K, V]`` / ``Mapping[K, V]`` with ``str`` or number keys
    - dataclasses (fields in declaration order)
    - ``Annotated[T, ...]`` and ``NewType`` (unwrapped)

    Anything else (``Any``, unions of several types, arbitrary classes)
    becomes ``Unknown``.

    Args:
        hint: A Python type annotation.
        builder: Shared builder so that one dataclass maps to one ``Struct``
            across a whole registry.

    Raises:
        TypeError: For self-referential dataclasses or unsupported map keys.

    """
    return (builder or _DescriptorBuilder()).build(hint)


# ---------------------------------------------------------------------------
# Human-readable names
# ---------------------------------------------------------------------------


class _TypeNamer:
    """Renders descriptors as short Python-flavoured names (``list[Person]``)."""

    def visit_primitive(self, t: Primitive) -> str:
        if t.kind is PrimitiveKind.NULL:
            return "None"
        if t.kind is PrimitiveKind.NUMBER:
            return t.python_type.__name__ if t.python_type in (int, float) else "number"
        return t.python_type.__name__ if t.python_type in (str, bool) else t.kind.value

    def visit_struct(self, t: Struct) -> str:
        return t.name

    def visit_array(self, t: Array) -> str:
        return f"list[{t.element.accept(self)}]"

    def visit_map(self, t: Map) -> str:
        return f"dict[{t.key.accept(self)}, {t.value.accept(self)}]"

    def visit_nullable(self, t: Nullable) -> str:
        return f"{t.inner.accept(self)} | None"

    def visit_unknown(self, t: Unknown) -> str:
        return "Any"


_NAMER = _TypeNamer()


def type_name(t: TypeDescriptor) -> str:
    """Return a concise, human-readable name for a descriptor."""
    return t.accept(_NAMER)
