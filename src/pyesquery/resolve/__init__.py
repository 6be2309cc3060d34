"""Schema resolution for Elasticsearch indices.

Resolution runs in two phases: the declared mapping fixes every column's
base type, then a bounded document sample upgrades columns that actually
hold arrays to list types.
"""

from __future__ import annotations

import logging
from typing import Any

from pyesquery._constants import ID_COLUMN, SOURCE_COLUMN, UNMAPPED_COLUMN
from pyesquery.client import ElasticsearchClient
from pyesquery.config import ScanSettings
from pyesquery.resolve.mapping import (
    FieldMapping,
    IndexMapping,
    MergedMapping,
    merge_index_mappings,
    parse_mapping_response,
)
from pyesquery.resolve.sampling import (
    SampleResult,
    apply_array_paths,
    sample_documents,
    trackable_paths,
)
from pyesquery.schema import VARCHAR, ColumnSchema, Schema

__all__ = [
    "FieldMapping",
    "IndexMapping",
    "MergedMapping",
    "SampleResult",
    "output_columns",
    "resolve_schema",
]

logger = logging.getLogger(__name__)


def resolve_schema(
    client: ElasticsearchClient,
    index: str,
    *,
    base_query: dict[str, Any] | None = None,
    settings: ScanSettings | None = None,
) -> Schema:
    """Resolve the relational schema of an index or index pattern.

    Args:
        client: Client used for the mapping request and sampling.
        index: Index name, alias, comma list or wildcard pattern.
        base_query: Query clause restricting which documents are sampled.
        settings: Sample size and sampling scroll settings.

    Returns:
        The resolved :class:`~pyesquery.schema.Schema`.

    Raises:
        TransportError: If the mapping cannot be fetched.
        DecodeError: If the mapping response is malformed.
        SchemaConflictError: If matched indices declare incompatible types.
    """
    if settings is None:
        settings = ScanSettings()

    indices = parse_mapping_response(client.get_mapping(index))
    merged = merge_index_mappings(indices)

    if not merged.columns:
        logger.info("index %s declares no fields; exposing raw _source", index)
        fallback = ColumnSchema(name=SOURCE_COLUMN, path=SOURCE_COLUMN, type=VARCHAR, es_type="object")
        return Schema([fallback], mapped_paths=merged.mapped_paths)

    sample = sample_documents(
        client,
        index,
        paths=trackable_paths(merged.path_types),
        mapped_paths=merged.mapped_paths,
        base_query=base_query,
        sample_size=settings.sample_size,
        page_size=settings.batch_size,
        scroll=settings.sample_scroll_time,
    )
    columns = apply_array_paths(merged.columns, sample.array_paths)
    schema = Schema(
        columns,
        mapped_paths=merged.mapped_paths,
        path_types=merged.path_types,
        companions=merged.companions,
        full_text_paths=merged.full_text_paths,
        has_unmapped_content=sample.has_unmapped_content,
    )
    logger.info(
        "resolved schema for %s",
        index,
        extra={
            "indices": [m.index for m in indices],
            "columns": len(schema),
            "array_paths": sorted(sample.array_paths),
        },
    )
    return schema


def output_columns(schema: Schema) -> list[str]:
    """``_id``, every resolved column, then the ``_unmapped_`` residual column."""
    return [ID_COLUMN, *(c.name for c in schema.columns), UNMAPPED_COLUMN]
