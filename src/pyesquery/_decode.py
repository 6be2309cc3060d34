"""Row decoding: Elasticsearch hits to relational values."""

from __future__ import annotations

import json
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from pyesquery._constants import ID_COLUMN, SOURCE_COLUMN, UNMAPPED_COLUMN
from pyesquery._geo import decode_geo_point, decode_geo_shape, to_geojson_text
from pyesquery._utils import get_by_path, join_path, parent_paths
from pyesquery.schema import FLOAT_TYPES, INTEGER_TYPES, RelType, Schema, TypeKind


def _compact_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def _parse_timestamp(value: Any) -> datetime | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
        return parsed.replace(tzinfo=None)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            return None
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed
    return None


def _decode_primitive(value: Any, name: str) -> Any:
    if name == "VARCHAR":
        return value if isinstance(value, str) else _compact_json(value)
    if name in INTEGER_TYPES:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        return None
    if name in FLOAT_TYPES:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
        return None
    if name == "BOOLEAN":
        return value if isinstance(value, bool) else None
    if name == "TIMESTAMP":
        return _parse_timestamp(value)
    if name == "JSON":
        return _compact_json(value)
    return value


def decode_value(
    value: Any,
    typ: RelType,
    path: str = "",
    path_types: dict[str, str] | None = None,
) -> Any:
    """Coerce one raw ``_source`` value to ``typ``; None when it does not fit.

    ``path_types`` maps field paths to Elasticsearch types so geo fields,
    nested ones included, decode to GeoJSON.
    """
    es_type = path_types.get(path, "") if path_types else ""
    if value is None:
        return None
    if typ.kind is TypeKind.LIST and typ.element is not None:
        items = value if isinstance(value, list) else [value]
        return [decode_value(item, typ.element, path, path_types) for item in items]
    if es_type == "geo_point":
        return to_geojson_text(decode_geo_point(value))
    if es_type == "geo_shape":
        return to_geojson_text(decode_geo_shape(value))
    if typ.kind is TypeKind.STRUCT:
        if not isinstance(value, dict):
            return None
        return {
            name: decode_value(value.get(name), child, join_path(path, name), path_types)
            for name, child in typ.fields
        }
    return _decode_primitive(value, typ.name)


def collect_unmapped(
    document: Any,
    mapped_paths: frozenset[str],
    parents: frozenset[str] | None = None,
    prefix: str = "",
) -> dict[str, Any]:
    """Everything in ``document`` not covered by a mapped path.

    Objects that are mapped but only partially declared contribute their
    undeclared keys; terminal mapped values are skipped whole.
    """
    if parents is None:
        parents = parent_paths(mapped_paths)
    if not isinstance(document, dict):
        return {}
    found: dict[str, Any] = {}
    for key, value in document.items():
        path = join_path(prefix, key)
        if path not in mapped_paths and path not in parents:
            found[key] = value
        elif path in parents and isinstance(value, dict):
            nested = collect_unmapped(value, mapped_paths, parents, path)
            if nested:
                found[key] = nested
    return found


class RowDecoder:
    """Turns hits into rows for a fixed list of output columns."""

    def __init__(self, columns: list[str], schema: Schema) -> None:
        self._columns = list(columns)
        self._mapped_paths = schema.mapped_paths
        self._parents = parent_paths(self._mapped_paths)
        self._path_types = schema.path_types
        self._extractors: list[Callable[[dict[str, Any]], Any]] = [
            self._extractor(name, schema) for name in self._columns
        ]

    @property
    def columns(self) -> list[str]:
        return list(self._columns)

    def _extractor(self, name: str, schema: Schema) -> Callable[[dict[str, Any]], Any]:
        if name == ID_COLUMN:
            return lambda hit: hit.get("_id")
        if name == UNMAPPED_COLUMN:
            return self._unmapped
        if name == SOURCE_COLUMN:
            return lambda hit: _compact_json(hit.get("_source") or {})
        column = schema.find_column(name)
        if column is None:
            raise KeyError(name)
        path_types = self._path_types
        return lambda hit: decode_value(
            get_by_path(hit.get("_source") or {}, column.path), column.type, column.path, path_types
        )

    def _unmapped(self, hit: dict[str, Any]) -> str | None:
        found = collect_unmapped(hit.get("_source") or {}, self._mapped_paths, self._parents)
        return _compact_json(found) if found else None

    def decode(self, hit: dict[str, Any]) -> dict[str, Any]:
        return {name: extract(hit) for name, extract in zip(self._columns, self._extractors)}
