"""Relational filter predicates pushed down by a host query engine.

The model is a closed set of frozen dataclasses. A leaf's ``field`` is
relative to its context: the column a per-column predicate is attached
to, or the enclosing :class:`NestedAccess`. The empty string names the
context path itself.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Union

from pyesquery._utils import escape_like_pattern


class CompareOp(enum.StrEnum):
    EQ = "="
    NE = "!="
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="

    def mirrored(self) -> CompareOp:
        """The operator with its operands swapped (``a < b`` is ``b > a``)."""
        return _MIRRORED.get(self, self)


_MIRRORED = {
    CompareOp.LT: CompareOp.GT,
    CompareOp.LE: CompareOp.GE,
    CompareOp.GT: CompareOp.LT,
    CompareOp.GE: CompareOp.LE,
}


class BoolOp(enum.StrEnum):
    AND = "and"
    OR = "or"


class GeoRelationKind(enum.StrEnum):
    WITHIN = "within"
    CONTAINS = "contains"
    INTERSECTS = "intersects"
    DISJOINT = "disjoint"


@dataclass(frozen=True)
class Comparison:
    op: CompareOp
    field: str
    constant: Any


@dataclass(frozen=True)
class Conjunction:
    op: BoolOp
    children: tuple[Predicate, ...]


@dataclass(frozen=True)
class SetMembership:
    field: str
    constants: tuple[Any, ...]


@dataclass(frozen=True)
class IsNull:
    field: str


@dataclass(frozen=True)
class IsNotNull:
    field: str


@dataclass(frozen=True)
class Pattern:
    """A SQL ``LIKE`` (or ``ILIKE`` when ``case_insensitive``) pattern."""

    field: str
    pattern: str
    case_insensitive: bool = False
    escape: str = "\\"

    @classmethod
    def prefix(cls, field: str, value: str) -> Pattern:
        return cls(field, escape_like_pattern(value) + "%")

    @classmethod
    def suffix(cls, field: str, value: str) -> Pattern:
        return cls(field, "%" + escape_like_pattern(value))

    @classmethod
    def contains(cls, field: str, value: str) -> Pattern:
        return cls(field, "%" + escape_like_pattern(value) + "%")


@dataclass(frozen=True)
class NestedAccess:
    """``field`` is one struct member; ``inner`` applies beneath it."""

    field: str
    inner: Predicate


@dataclass(frozen=True)
class GeoRelation:
    """A spatial relation between a field and a constant geometry.

    ``field_first`` is False when the constant was the first operand,
    e.g. ``ST_Contains(<constant>, field)``.
    """

    kind: GeoRelationKind
    field: str
    geometry: Any
    field_first: bool = True


@dataclass(frozen=True)
class Opaque:
    """Anything the model cannot express; always evaluated by the caller."""

    description: str = ""


Predicate = Union[
    Comparison,
    Conjunction,
    SetMembership,
    IsNull,
    IsNotNull,
    Pattern,
    NestedAccess,
    GeoRelation,
    Opaque,
]


def and_(*children: Predicate) -> Conjunction:
    return Conjunction(BoolOp.AND, tuple(children))


def or_(*children: Predicate) -> Conjunction:
    return Conjunction(BoolOp.OR, tuple(children))


def nested(path: str, inner: Predicate) -> Predicate:
    """Wrap ``inner`` in one :class:`NestedAccess` per dotted path segment."""
    for segment in reversed(path.split(".")):
        inner = NestedAccess(segment, inner)
    return inner
