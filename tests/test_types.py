# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Tests for the type model: annotation mapping, structs, visitors and names."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Annotated, Any, NewType, Optional

import pytest

from wsrpc.rpc import (
    BOOLEAN,
    FLOAT,
    INTEGER,
    NULL,
    STRING,
    UNKNOWN,
    Array,
    Field,
    Map,
    Nullable,
    Primitive,
    PrimitiveKind,
    Struct,
    Unknown,
    type_name,
    type_of,
)
from wsrpc.rpc._types import _DescriptorBuilder

UserId = NewType("UserId", int)


@dataclass
class Point:
    """Two coordinates."""

    x: float
    y: float


@dataclass
class Profile:
    """A struct with a nullable member and a defaulted member."""

    name: str
    age: int | None
    tags: list[str] = field(default_factory=list)


@dataclass
class Empty:
    """No fields at all."""


@dataclass
class Tree:
    """Directly self-referential."""

    value: int
    children: list[Tree]


@dataclass
class Parent:
    """Mutually recursive with Child."""

    child: Child


@dataclass
class Child:
    """Mutually recursive with Parent."""

    parent: Parent | None


@dataclass
class Line:
    """Two members sharing one struct type."""

    start: Point
    end: Point


# ---------------------------------------------------------------------------
# Primitives
# ---------------------------------------------------------------------------


class TestPrimitives:
    """Scalar annotations map to primitive descriptors."""

    @pytest.mark.parametrize(
        ("hint", "expected"),
        [
            (int, INTEGER),
            (float, FLOAT),
            (str, STRING),
            (bool, BOOLEAN),
            (None, NULL),
            (type(None), NULL),
        ],
    )
    def test_scalar(self, hint: Any, expected: Primitive) -> None:
        """Each scalar type has exactly one descriptor."""
        assert type_of(hint) == expected

    def test_int_and_float_share_number_kind(self) -> None:
        """Both numeric types project to the number kind."""
        assert INTEGER.kind is PrimitiveKind.NUMBER
        assert FLOAT.kind is PrimitiveKind.NUMBER
        assert INTEGER != FLOAT

    def test_bool_is_not_number(self) -> None:
        """bool is matched exactly even though it subclasses int."""
        assert type_of(bool).kind is PrimitiveKind.BOOLEAN

    def test_annotated_and_newtype_unwrap(self) -> None:
        """Annotated metadata and NewType wrappers are transparent."""
        assert type_of(Annotated[int, "meta"]) == INTEGER
        assert type_of(UserId) == INTEGER


# ---------------------------------------------------------------------------
# Containers and nullability
# ---------------------------------------------------------------------------


class TestContainers:
    """Sequence, mapping and optional annotations."""

    def test_list_set_tuple_sequence(self) -> None:
        """Homogeneous collections become arrays."""
        assert type_of(list[int]) == Array(INTEGER)
        assert type_of(set[str]) == Array(STRING)
        assert type_of(frozenset[bool]) == Array(BOOLEAN)
        assert type_of(tuple[float, ...]) == Array(FLOAT)
        assert type_of(Sequence[str]) == Array(STRING)

    def test_fixed_tuple_is_untyped_array(self) -> None:
        """Heterogeneous tuples have no element type."""
        assert type_of(tuple[int, str]) == Array(UNKNOWN)

    def test_bare_list_is_untyped_array(self) -> None:
        """A bare list has Unknown elements."""
        assert type_of(list) == Array(UNKNOWN)

    def test_maps(self) -> None:
        """String and number keyed mappings become maps."""
        assert type_of(dict[str, int]) == Map(STRING, INTEGER)
        assert type_of(Mapping[int, list[str]]) == Map(INTEGER, Array(STRING))
        assert type_of(dict) == Map(STRING, UNKNOWN)

    def test_unsupported_map_key(self) -> None:
        """Map keys other than str or numbers are rejected."""
        with pytest.raises(TypeError, match="Map keys must be str, int or float"):
            type_of(dict[bool, int])

    def test_optional(self) -> None:
        """X | None and Optional[X] are nullable."""
        assert type_of(int | None) == Nullable(INTEGER)
        assert type_of(Optional[str]) == Nullable(STRING)  # noqa: UP045
        assert type_of(list[str | None]) == Array(Nullable(STRING))

    def test_wide_union_is_unknown(self) -> None:
        """Unions of several non-null types have no structural form."""
        assert type_of(int | str) == UNKNOWN
        assert type_of(int | str | None) == UNKNOWN

    def test_fallbacks(self) -> None:
        """Any, bytes and arbitrary classes become Unknown."""
        assert type_of(Any) == UNKNOWN
        assert type_of(bytes) == UNKNOWN
        assert type_of(object) == UNKNOWN
        assert isinstance(type_of(complex), Unknown)


# ---------------------------------------------------------------------------
# Structs
# ---------------------------------------------------------------------------


class TestStructs:
    """Dataclasses become structs with ordered fields."""

    def test_fields_in_declaration_order(self) -> None:
        """Field order follows the dataclass."""
        t = type_of(Point)
        assert isinstance(t, Struct)
        assert t.name == "Point"
        assert [f.name for f in t.fields] == ["x", "y"]
        assert t.factory is Point

    def test_required_and_nullable(self) -> None:
        """Defaults make a field optional; X | None makes it nullable."""
        t = type_of(Profile)
        assert isinstance(t, Struct)
        assert t.fields == (
            Field("name", STRING),
            Field("age", Nullable(INTEGER)),
            Field("tags", Array(STRING), required=False),
        )

    def test_empty_struct(self) -> None:
        """A dataclass with no fields is an empty struct."""
        t = type_of(Empty)
        assert isinstance(t, Struct)
        assert t.fields == ()

    def test_shared_builder_reuses_struct(self) -> None:
        """One dataclass maps to one Struct object per builder."""
        builder = _DescriptorBuilder()
        line = builder.build(Line)
        assert isinstance(line, Struct)
        assert line.fields[0].type is line.fields[1].type
        assert builder.build(Point) is line.fields[0].type

    def test_self_reference_rejected(self) -> None:
        """Direct recursion fails while the descriptor is built."""
        with pytest.raises(TypeError, match="Self-referential struct is not supported: Tree -> Tree"):
            type_of(Tree)

    def test_mutual_recursion_rejected(self) -> None:
        """Recursion through another dataclass also fails."""
        with pytest.raises(TypeError, match="Parent -> Child -> Parent"):
            type_of(Parent)

    def test_descriptors_are_hashable(self) -> None:
        """Descriptor trees can be used as dict keys and set members."""
        seen = {type_of(Profile), type_of(Profile), type_of(list[int]), Array(INTEGER)}
        assert len(seen) == 2


# ---------------------------------------------------------------------------
# Visitor and names
# ---------------------------------------------------------------------------


class _KindCollector:
    """Records which visit method was called."""

    def visit_primitive(self, t: Primitive) -> str:
        return "primitive"

    def visit_struct(self, t: Struct) -> str:
        return "struct"

    def visit_array(self, t: Array) -> str:
        return "array"

    def visit_map(self, t: Map) -> str:
        return "map"

    def visit_nullable(self, t: Nullable) -> str:
        return "nullable"

    def visit_unknown(self, t: Unknown) -> str:
        return "unknown"


class TestVisitor:
    """accept() calls exactly the matching visit method."""

    def test_dispatch(self) -> None:
        """Every variant reaches its own visit method."""
        visitor = _KindCollector()
        assert INTEGER.accept(visitor) == "primitive"
        assert type_of(Point).accept(visitor) == "struct"
        assert Array(STRING).accept(visitor) == "array"
        assert Map(STRING, INTEGER).accept(visitor) == "map"
        assert Nullable(STRING).accept(visitor) == "nullable"
        assert UNKNOWN.accept(visitor) == "unknown"


class TestTypeName:
    """Human-readable descriptor names."""

    @pytest.mark.parametrize(
        ("hint", "expected"),
        [
            (int, "int"),
            (float, "float"),
            (str, "str"),
            (bool, "bool"),
            (None, "None"),
            (Point, "Point"),
            (list[Point], "list[Point]"),
            (dict[str, int], "dict[str, int]"),
            (int | None, "int | None"),
            (Any, "Any"),
        ],
    )
    def test_names(self, hint: Any, expected: str) -> None:
        """Names read like Python annotations."""
        assert type_name(type_of(hint)) == expected
