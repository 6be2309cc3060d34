"""Sampling pass: detect array-valued fields in live documents."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from pyesquery._constants import GEO_TYPES
from pyesquery._decode import collect_unmapped
from pyesquery._errors import DecodeError, TransportError
from pyesquery._utils import get_by_path, join_path, parent_paths
from pyesquery.client import Cursor, ElasticsearchClient
from pyesquery.schema import ColumnSchema, RelType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SampleResult:
    """What the sample revealed beyond the declared mapping."""

    array_paths: frozenset[str] = frozenset()
    has_unmapped_content: bool = False
    documents_seen: int = 0


def trackable_paths(path_types: dict[str, str]) -> list[str]:
    """Mapped paths whose raw value may legitimately be an array of values.

    Geo fields are excluded: their array form encodes coordinates.
    """
    return [path for path, es_type in path_types.items() if es_type not in GEO_TYPES]


def sample_documents(
    client: ElasticsearchClient,
    index: str,
    *,
    paths: Iterable[str],
    mapped_paths: frozenset[str],
    base_query: dict[str, Any] | None = None,
    sample_size: int,
    page_size: int,
    scroll: str,
) -> SampleResult:
    """Scan up to ``sample_size`` documents looking for arrays and unmapped content.

    Stops as soon as every path is known to hold arrays and unmapped
    content was seen. Transport and decode failures end sampling early
    and keep whatever was already observed.
    """
    pending = set(paths)
    if sample_size <= 0 or not pending:
        return SampleResult()

    body = {"query": base_query if base_query else {"match_all": {}}}
    cursor = Cursor(client, index, body, scroll=scroll, size=min(sample_size, page_size))
    parents = parent_paths(mapped_paths)
    arrays: set[str] = set()
    unmapped = False
    seen = 0
    try:
        while seen < sample_size and (pending or not unmapped):
            if not cursor.page:
                if cursor.exhausted:
                    break
                cursor.fetch()
                continue
            hit = cursor.page.popleft()
            seen += 1
            source = hit.get("_source") or {}
            for path in [p for p in pending if isinstance(get_by_path(source, p), list)]:
                pending.discard(path)
                arrays.add(path)
            if not unmapped and collect_unmapped(source, mapped_paths, parents):
                unmapped = True
    except (TransportError, DecodeError) as exc:
        logger.warning(
            "sampling %s failed after %d documents; continuing with partial results",
            index,
            seen,
            extra={"error": exc.internal()},
        )
    finally:
        cursor.close()

    logger.debug(
        "sampled %d documents from %s",
        seen,
        index,
        extra={"array_paths": sorted(arrays), "has_unmapped_content": unmapped},
    )
    return SampleResult(frozenset(arrays), unmapped, seen)


def _wrap_lists(typ: RelType, path: str, array_paths: frozenset[str]) -> RelType:
    if typ.is_struct:
        typ = RelType.struct_of(
            (name, _wrap_lists(child, join_path(path, name), array_paths))
            for name, child in typ.fields
        )
    if path in array_paths and not typ.is_list:
        typ = RelType.list_of(typ)
    return typ


def apply_array_paths(
    columns: Iterable[ColumnSchema], array_paths: frozenset[str]
) -> list[ColumnSchema]:
    """Upgrade sampled array paths to list types; never downgrades."""
    upgraded = []
    for column in columns:
        wrapped = _wrap_lists(column.type, column.path, array_paths)
        if wrapped != column.type:
            column = ColumnSchema(
                name=column.name,
                path=column.path,
                type=wrapped,
                es_type=column.es_type,
                is_full_text=column.is_full_text,
                companion_path=column.companion_path,
            )
        upgraded.append(column)
    return upgraded
