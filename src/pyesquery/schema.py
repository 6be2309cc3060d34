"""Relational schema types resolved from Elasticsearch mappings."""

from __future__ import annotations

import enum
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from pyesquery._constants import FULL_TEXT_TYPES


class TypeKind(enum.StrEnum):
    """Shape of a relational type."""

    PRIMITIVE = "primitive"
    LIST = "list"
    STRUCT = "struct"


@dataclass(frozen=True)
class RelType:
    """A relational column type: primitive, list-of-T or struct-of-fields."""

    kind: TypeKind
    name: str = ""
    element: RelType | None = None
    fields: tuple[tuple[str, RelType], ...] = ()

    @classmethod
    def primitive(cls, name: str) -> RelType:
        return cls(TypeKind.PRIMITIVE, name=name)

    @classmethod
    def list_of(cls, element: RelType) -> RelType:
        return cls(TypeKind.LIST, element=element)

    @classmethod
    def struct_of(cls, fields: Iterable[tuple[str, RelType]]) -> RelType:
        return cls(TypeKind.STRUCT, fields=tuple(fields))

    @property
    def type_id(self) -> str:
        """Identity used for cross-index compatibility checks."""
        if self.kind is TypeKind.PRIMITIVE:
            return self.name
        return self.kind.value.upper()

    @property
    def is_list(self) -> bool:
        return self.kind is TypeKind.LIST

    @property
    def is_struct(self) -> bool:
        return self.kind is TypeKind.STRUCT

    def child(self, name: str) -> RelType | None:
        for child_name, child_type in self.fields:
            if child_name == name:
                return child_type
        return None

    def __str__(self) -> str:
        if self.kind is TypeKind.LIST:
            return f"{self.element}[]"
        if self.kind is TypeKind.STRUCT:
            inner = ", ".join(f"{name} {typ}" for name, typ in self.fields)
            return f"STRUCT({inner})"
        return self.name


VARCHAR = RelType.primitive("VARCHAR")
BIGINT = RelType.primitive("BIGINT")
INTEGER = RelType.primitive("INTEGER")
SMALLINT = RelType.primitive("SMALLINT")
TINYINT = RelType.primitive("TINYINT")
DOUBLE = RelType.primitive("DOUBLE")
FLOAT = RelType.primitive("FLOAT")
BOOLEAN = RelType.primitive("BOOLEAN")
TIMESTAMP = RelType.primitive("TIMESTAMP")
JSON = RelType.primitive("JSON")

INTEGER_TYPES = frozenset({"BIGINT", "INTEGER", "SMALLINT", "TINYINT"})
FLOAT_TYPES = frozenset({"DOUBLE", "FLOAT"})


@dataclass(frozen=True)
class ColumnSchema:
    """Schema for a single resolved column."""

    name: str
    path: str
    type: RelType
    es_type: str = "keyword"
    is_full_text: bool = False
    companion_path: str = ""

    @property
    def has_exact_match_companion(self) -> bool:
        return bool(self.companion_path)


class Schema:
    """Resolved index schema with O(1) column lookup.

    Besides the ordered columns this carries every mapped path (nested
    ones included), the external type of each path, the full-text paths
    and the exact-match companion of each full-text path. Full-text paths
    default to those whose external type is full-text.
    """

    def __init__(
        self,
        columns: Iterable[ColumnSchema],
        *,
        mapped_paths: Iterable[str] = (),
        path_types: Mapping[str, str] | None = None,
        companions: Mapping[str, str] | None = None,
        full_text_paths: Iterable[str] | None = None,
        has_unmapped_content: bool = False,
    ) -> None:
        self._columns = tuple(columns)
        self._index: dict[str, ColumnSchema] = {c.name: c for c in self._columns}
        self._mapped_paths = frozenset(mapped_paths)
        self._path_types = dict(path_types or {})
        self._companions = dict(companions or {})
        if full_text_paths is None:
            full_text_paths = (p for p, t in self._path_types.items() if t in FULL_TEXT_TYPES)
        self._full_text_paths = frozenset(full_text_paths)
        self._has_unmapped_content = has_unmapped_content

    @property
    def columns(self) -> list[ColumnSchema]:
        return list(self._columns)

    @property
    def mapped_paths(self) -> frozenset[str]:
        return self._mapped_paths

    @property
    def path_types(self) -> dict[str, str]:
        return dict(self._path_types)

    @property
    def full_text_paths(self) -> frozenset[str]:
        return self._full_text_paths

    @property
    def has_unmapped_content(self) -> bool:
        """Whether sampling saw content outside the mapping."""
        return self._has_unmapped_content

    def find_column(self, name: str) -> ColumnSchema | None:
        return self._index.get(name)

    def es_type(self, path: str) -> str | None:
        return self._path_types.get(path)

    def is_full_text(self, path: str) -> bool:
        return path in self._full_text_paths

    def companion_for(self, path: str) -> str | None:
        return self._companions.get(path)

    def __len__(self) -> int:
        return len(self._columns)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Schema):
            return NotImplemented
        return (
            self._columns == other._columns
            and self._mapped_paths == other._mapped_paths
            and self._path_types == other._path_types
            and self._companions == other._companions
            and self._full_text_paths == other._full_text_paths
            and self._has_unmapped_content == other._has_unmapped_content
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        cols = ", ".join(f"{c.name} {c.type}" for c in self._columns)
        return f"Schema({cols})"
