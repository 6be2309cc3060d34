"""Host-facing entry point: bind an index, then scan it."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

import httpx

from pyesquery._cel import RowFilter, parse_filter
from pyesquery._errors import ERR_MSG_MISSING_INDEX, ConfigurationError
from pyesquery._translator import translate_filters
from pyesquery.cache import BindCache, cache_key
from pyesquery.client import ElasticsearchClient, TraceSink
from pyesquery.config import ConnectionConfig, ScanSettings
from pyesquery.predicate import NestedAccess, Predicate, and_
from pyesquery.resolve import output_columns, resolve_schema
from pyesquery.scan import ScanEngine, compile_scan_request
from pyesquery.schema import Schema

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BoundIndex:
    """An index (or pattern) with its resolved schema."""

    index: str
    schema: Schema
    base_query: dict[str, Any] | None = None

    @property
    def columns(self) -> list[str]:
        return output_columns(self.schema)


def _parse_base_query(query: str | dict[str, Any] | None) -> dict[str, Any] | None:
    if query is None or isinstance(query, dict):
        return query or None
    try:
        parsed = json.loads(query)
    except ValueError as exc:
        raise ConfigurationError(
            "query parameter must be a JSON object",
            f"cannot parse query {query[:200]!r}: {exc}",
            exc,
        ) from exc
    if not isinstance(parsed, dict):
        raise ConfigurationError(
            "query parameter must be a JSON object",
            f"query parsed to {type(parsed).__name__}",
        )
    return parsed or None


def _column_path(schema: Schema, name: str) -> str:
    column = schema.find_column(name)
    return column.path if column else name


class Session:
    """Binds indices to cached schemas and runs scans against them.

    A session owns one HTTP client. Scans are single-threaded; run
    independent scans from independent sessions when concurrency is needed.
    The bind cache may be shared between sessions.
    """

    def __init__(
        self,
        config: ConnectionConfig | None = None,
        settings: ScanSettings | None = None,
        *,
        cache: BindCache | None = None,
        trace_sink: TraceSink | None = None,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config if config is not None else ConnectionConfig()
        self._client = ElasticsearchClient(
            self._config, trace_sink=trace_sink, transport=transport, sleep=sleep
        )
        self._settings = settings if settings is not None else ScanSettings()
        self._cache = cache if cache is not None else BindCache()

    @property
    def settings(self) -> ScanSettings:
        return self._settings

    @property
    def cache(self) -> BindCache:
        return self._cache

    @property
    def client(self) -> ElasticsearchClient:
        return self._client

    def update_settings(self, **changes: Any) -> ScanSettings:
        """Apply setting changes; a new sample size invalidates cached schemas."""
        updated = ScanSettings(**{**self._settings.model_dump(), **changes})
        if updated.sample_size != self._settings.sample_size:
            removed = self._cache.clear()
            logger.info(
                "sample_size changed, cleared bind cache",
                extra={"sample_size": updated.sample_size, "entries_removed": removed},
            )
        self._settings = updated
        return updated

    def clear_cache(self) -> int:
        return self._cache.clear()

    def bind(self, index: str, *, query: str | dict[str, Any] | None = None) -> BoundIndex:
        """Resolve (or fetch from cache) the schema of ``index``.

        Args:
            index: Index name, alias, comma list or wildcard pattern.
            query: Optional base query clause, as JSON text or a dict. It
                restricts both sampling and every scan of the bound index.

        Raises:
            ConfigurationError: If the index is missing or the query is not
                a JSON object.
            TransportError: If the mapping cannot be fetched.
            SchemaConflictError: If matched indices are incompatible.
        """
        if not index or not index.strip():
            raise ConfigurationError(ERR_MSG_MISSING_INDEX, "index is empty")
        base_query = _parse_base_query(query)
        key = cache_key(self._config, index, base_query, self._settings.sample_size)
        schema = self._cache.get(key)
        if schema is None:
            schema = resolve_schema(
                self._client, index, base_query=base_query, settings=self._settings
            )
            self._cache.put(key, schema)
        else:
            logger.debug("bind cache hit for %s", index)
        return BoundIndex(index, schema, base_query)

    def scan(
        self,
        bound: BoundIndex,
        *,
        columns: Iterable[str] | None = None,
        filters: Mapping[str, Predicate] | Predicate | None = None,
        where: str | None = None,
        filter_only_columns: Iterable[str] = (),
        limit: int | None = None,
        offset: int = 0,
    ) -> ScanEngine:
        """Compile and start a scan of a bound index.

        Filters are translated here, so unsafe pushdowns fail before any
        search request is sent. When part of ``where`` cannot be pushed
        down, the whole expression is also evaluated on every row, before
        ``offset`` and ``limit`` apply.

        Args:
            bound: Result of :meth:`bind`.
            columns: Output columns; defaults to every column.
            filters: Per-column predicates or one whole-row predicate tree.
            where: CEL filter text, ANDed with ``filters``.
            filter_only_columns: Columns used only by filters.
            limit: Maximum rows; None for no limit.
            offset: Rows to skip.
        """
        row_filter = None
        if where:
            parsed = parse_filter(where)
            if not translate_filters(parsed, bound.schema).fully_pushed:
                row_filter = RowFilter(where)
                logger.info(
                    "filter on %s is partly evaluated client-side",
                    bound.index,
                    extra={"where": where},
                )
            if filters is None:
                filters = parsed
            elif isinstance(filters, Mapping):
                scoped = [
                    NestedAccess(_column_path(bound.schema, name), predicate)
                    for name, predicate in filters.items()
                ]
                filters = and_(*scoped, parsed)
            else:
                filters = and_(filters, parsed)
        request = compile_scan_request(
            bound.schema,
            bound.index,
            columns=list(columns) if columns is not None else bound.columns,
            filters=filters,
            filter_only_columns=filter_only_columns,
            base_query=bound.base_query,
            limit=limit,
            offset=offset,
            settings=self._settings,
            row_filter=row_filter,
        )
        return ScanEngine(self._client, bound.schema, request)

    def query(
        self,
        index: str,
        *,
        query: str | dict[str, Any] | None = None,
        where: str | None = None,
        columns: Iterable[str] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """Bind, scan and collect every row."""
        bound = self.bind(index, query=query)
        with self.scan(bound, columns=columns, where=where, limit=limit, offset=offset) as scan:
            return list(scan)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> Session:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
