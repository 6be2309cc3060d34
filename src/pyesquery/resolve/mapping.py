"""Declared-type pass: Elasticsearch mappings to relational columns."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

from pyesquery._constants import FULL_TEXT_TYPES, KEYWORD_SUBFIELD, KEYWORD_TYPE
from pyesquery._errors import (
    ERR_MSG_INCOMPATIBLE_TYPES,
    ERR_MSG_INVALID_RESPONSE,
    DecodeError,
    SchemaConflictError,
)
from pyesquery._utils import join_path
from pyesquery.schema import (
    BIGINT,
    BOOLEAN,
    DOUBLE,
    FLOAT,
    INTEGER,
    SMALLINT,
    TIMESTAMP,
    TINYINT,
    VARCHAR,
    ColumnSchema,
    RelType,
    TypeKind,
)

# Elasticsearch field type -> relational primitive; anything else is VARCHAR
ES_TYPE_MAP: dict[str, RelType] = {
    "text": VARCHAR,
    "match_only_text": VARCHAR,
    "keyword": VARCHAR,
    "constant_keyword": VARCHAR,
    "wildcard": VARCHAR,
    "string": VARCHAR,
    "ip": VARCHAR,
    "geo_point": VARCHAR,
    "geo_shape": VARCHAR,
    "long": BIGINT,
    "unsigned_long": BIGINT,
    "integer": INTEGER,
    "short": SMALLINT,
    "byte": TINYINT,
    "double": DOUBLE,
    "scaled_float": DOUBLE,
    "float": FLOAT,
    "half_float": FLOAT,
    "boolean": BOOLEAN,
    "date": TIMESTAMP,
    "date_nanos": TIMESTAMP,
}


@dataclass(frozen=True)
class FieldMapping:
    """Declared shape of one field path."""

    name: str
    path: str
    es_type: str
    children: tuple[FieldMapping, ...] = ()
    subfields: tuple[tuple[str, str], ...] = ()

    @property
    def is_full_text(self) -> bool:
        return self.es_type in FULL_TEXT_TYPES

    @property
    def companion(self) -> str | None:
        """Path of the keyword multi-field usable for exact matching."""
        keyword_subfields = [name for name, typ in self.subfields if typ == KEYWORD_TYPE]
        if not keyword_subfields:
            return None
        if KEYWORD_SUBFIELD in keyword_subfields:
            return f"{self.path}.{KEYWORD_SUBFIELD}"
        return f"{self.path}.{keyword_subfields[0]}"

    @property
    def rel_type(self) -> RelType:
        """Declared relational type; list form is only added by sampling."""
        if self.children:
            return RelType.struct_of((c.name, c.rel_type) for c in self.children)
        return ES_TYPE_MAP.get(self.es_type, VARCHAR)


@dataclass(frozen=True)
class IndexMapping:
    """Top-level fields declared by one physical index."""

    index: str
    fields: tuple[FieldMapping, ...] = ()


def parse_field(name: str, definition: Any, prefix: str = "") -> FieldMapping:
    path = join_path(prefix, name)
    if not isinstance(definition, dict):
        return FieldMapping(name=name, path=path, es_type="object")
    properties = definition.get("properties")
    es_type = definition.get("type")
    if not isinstance(es_type, str):
        es_type = "object"
    children: tuple[FieldMapping, ...] = ()
    if isinstance(properties, dict):
        children = tuple(parse_properties(properties, path))
    subfields: list[tuple[str, str]] = []
    multi = definition.get("fields")
    if isinstance(multi, dict):
        for sub_name, sub_def in multi.items():
            if isinstance(sub_def, dict) and isinstance(sub_def.get("type"), str):
                subfields.append((sub_name, sub_def["type"]))
    return FieldMapping(
        name=name,
        path=path,
        es_type=es_type,
        children=children,
        subfields=tuple(subfields),
    )


def parse_properties(properties: dict[str, Any], prefix: str = "") -> list[FieldMapping]:
    return [parse_field(name, definition, prefix) for name, definition in properties.items()]


def walk(fields: tuple[FieldMapping, ...] | list[FieldMapping]) -> Iterator[FieldMapping]:
    """Every field at every nesting level, parents first."""
    for f in fields:
        yield f
        yield from walk(f.children)


def _index_properties(mappings: Any) -> dict[str, Any]:
    if not isinstance(mappings, dict):
        return {}
    properties = mappings.get("properties")
    if isinstance(properties, dict):
        return properties
    # pre-7.x responses nest properties under a single document type
    if len(mappings) == 1:
        (inner,) = mappings.values()
        if isinstance(inner, dict) and isinstance(inner.get("properties"), dict):
            return inner["properties"]
    return {}


def parse_mapping_response(data: Any) -> list[IndexMapping]:
    """Split a ``GET /{index}/_mapping`` body into per-index mappings.

    Raises:
        DecodeError: If the body is not an object of index entries.
    """
    if not isinstance(data, dict):
        raise DecodeError(ERR_MSG_INVALID_RESPONSE, f"mapping body is {type(data).__name__}")
    indices = []
    for index_name, body in data.items():
        if not isinstance(body, dict):
            raise DecodeError(
                ERR_MSG_INVALID_RESPONSE,
                f"mapping entry for index {index_name!r} is {type(body).__name__}",
            )
        properties = _index_properties(body.get("mappings"))
        indices.append(IndexMapping(index_name, tuple(parse_properties(properties))))
    return indices


# ---------------------------------------------------------------------------
# Cross-index merge
# ---------------------------------------------------------------------------


def types_compatible(first: RelType, second: RelType) -> bool:
    """Same type-id, recursively; struct field sets may differ."""
    if first == second:
        return True
    if first.type_id != second.type_id:
        return False
    if first.kind is TypeKind.STRUCT:
        for name, child in first.fields:
            other = second.child(name)
            if other is not None and not types_compatible(child, other):
                return False
        return True
    if first.kind is TypeKind.LIST and first.element is not None and second.element is not None:
        return types_compatible(first.element, second.element)
    return False


def _conflict_path(first: RelType, second: RelType, path: str) -> str:
    """Deepest path at which two incompatible types disagree."""
    if first.type_id != second.type_id:
        return path
    if first.kind is TypeKind.STRUCT:
        for name, child in first.fields:
            other = second.child(name)
            if other is not None and not types_compatible(child, other):
                return _conflict_path(child, other, f"{path}.{name}")
    if first.kind is TypeKind.LIST and first.element and second.element:
        return _conflict_path(first.element, second.element, path)
    return path


def merge_types(first: RelType, second: RelType) -> RelType:
    """Union-merge compatible types, keeping first-seen struct field order."""
    if first == second:
        return first
    if first.kind is TypeKind.STRUCT:
        merged: list[tuple[str, RelType]] = []
        for name, child in first.fields:
            other = second.child(name)
            merged.append((name, child if other is None else merge_types(child, other)))
        seen = {name for name, _ in first.fields}
        merged.extend((name, child) for name, child in second.fields if name not in seen)
        return RelType.struct_of(merged)
    if first.kind is TypeKind.LIST and first.element is not None and second.element is not None:
        return RelType.list_of(merge_types(first.element, second.element))
    return first


@dataclass
class _MergedColumn:
    name: str
    type: RelType
    es_type: str
    index: str


@dataclass(frozen=True)
class MergedMapping:
    """Declared columns and path metadata across every matched index."""

    columns: tuple[ColumnSchema, ...]
    mapped_paths: frozenset[str]
    path_types: dict[str, str] = field(default_factory=dict)
    companions: dict[str, str] = field(default_factory=dict)
    full_text_paths: frozenset[str] = frozenset()


def merge_index_mappings(indices: list[IndexMapping]) -> MergedMapping:
    """Merge the top-level fields of several indices into one column set.

    A path is full-text when any index declares it full-text. It keeps a
    companion only when every index declaring the path names the same one,
    so a path that is text in one index and keyword in another has none.

    Raises:
        SchemaConflictError: If one path has different type-ids in two
            indices. The message names the path, both indices and both
            types.
    """
    columns: dict[str, _MergedColumn] = {}
    mapped_paths: set[str] = set()
    path_types: dict[str, str] = {}
    full_text: set[str] = set()
    companion_votes: dict[str, set[str | None]] = {}

    for mapping in indices:
        for f in walk(mapping.fields):
            mapped_paths.add(f.path)
            path_types[f.path] = f.es_type
            if f.is_full_text:
                full_text.add(f.path)
            companion_votes.setdefault(f.path, set()).add(f.companion if f.is_full_text else None)

        for f in mapping.fields:
            declared = f.rel_type
            existing = columns.get(f.name)
            if existing is None:
                columns[f.name] = _MergedColumn(f.name, declared, f.es_type, mapping.index)
                continue
            if not types_compatible(existing.type, declared):
                raise SchemaConflictError(
                    ERR_MSG_INCOMPATIBLE_TYPES.format(
                        path=_conflict_path(existing.type, declared, f.path),
                        first_index=existing.index,
                        first_type=existing.type,
                        second_index=mapping.index,
                        second_type=declared,
                    ),
                    f"merging index {mapping.index!r} into fields first declared by "
                    f"{existing.index!r}",
                )
            existing.type = merge_types(existing.type, declared)

    companions: dict[str, str] = {}
    for path in full_text:
        votes = companion_votes[path]
        (only,) = votes if len(votes) == 1 else (None,)
        if only is not None:
            companions[path] = only
    resolved = tuple(
        ColumnSchema(
            name=c.name,
            path=c.name,
            type=c.type,
            es_type=c.es_type,
            is_full_text=c.name in full_text,
            companion_path=companions.get(c.name, ""),
        )
        for c in columns.values()
    )
    return MergedMapping(
        columns=resolved,
        mapped_paths=frozenset(mapped_paths),
        path_types=path_types,
        companions=companions,
        full_text_paths=frozenset(full_text),
    )
