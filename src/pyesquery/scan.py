"""Pull-based scan over an Elasticsearch scroll cursor."""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any

from pyesquery import _dsl
from pyesquery._constants import ID_COLUMN, SOURCE_COLUMN, UNMAPPED_COLUMN
from pyesquery._cel import RowFilter
from pyesquery._decode import RowDecoder
from pyesquery._errors import ConfigurationError, InvalidFieldNameError
from pyesquery._translator import translate_filters
from pyesquery.client import Cursor, ElasticsearchClient
from pyesquery.config import ScanSettings
from pyesquery.predicate import Predicate
from pyesquery.schema import Schema

logger = logging.getLogger(__name__)

_VIRTUAL_COLUMNS = frozenset({ID_COLUMN, UNMAPPED_COLUMN, SOURCE_COLUMN})


class ScanState(enum.StrEnum):
    INIT = "init"
    FETCHING = "fetching"
    DRAINING = "draining"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class ScanRequest:
    """Everything a scan sends to Elasticsearch, compiled once up front."""

    index: str
    body: dict[str, Any]
    columns: tuple[str, ...]
    page_size: int
    scroll: str
    limit: int | None = None
    offset: int = 0
    fully_pushed: bool = True
    row_filter: RowFilter | None = None


def page_size_for(limit: int | None, offset: int, settings: ScanSettings) -> int:
    """Fetch small limited scans in a single page; otherwise use batch_size."""
    if limit is not None and limit > 0:
        wanted = limit + offset
        if wanted <= settings.batch_size * settings.batch_size_threshold_factor:
            return wanted
    return settings.batch_size


def source_projection(columns: Iterable[str], schema: Schema) -> list[str] | bool | None:
    """The ``_source`` parameter for the given output columns.

    None means "send no ``_source`` key" (full documents are needed for
    the residual and raw-source columns); False means no source at all.
    """
    columns = list(columns)
    if UNMAPPED_COLUMN in columns or SOURCE_COLUMN in columns:
        return None
    paths = []
    for name in columns:
        if name == ID_COLUMN:
            continue
        column = schema.find_column(name)
        if column is None:
            raise InvalidFieldNameError(
                "unknown column", f"column {name!r} is not part of the schema"
            )
        paths.append(column.path)
    return paths if paths else False


def _check_bounds(limit: int | None, offset: int) -> None:
    if limit is not None and (isinstance(limit, bool) or not isinstance(limit, int) or limit < 0):
        raise ConfigurationError("limit must be a non-negative integer", f"limit={limit!r}")
    if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
        raise ConfigurationError("offset must be a non-negative integer", f"offset={offset!r}")


def compile_scan_request(
    schema: Schema,
    index: str,
    *,
    columns: Iterable[str],
    filters: Mapping[str, Predicate] | Predicate | None = None,
    filter_only_columns: Iterable[str] = (),
    base_query: dict[str, Any] | None = None,
    limit: int | None = None,
    offset: int = 0,
    settings: ScanSettings | None = None,
    row_filter: RowFilter | None = None,
) -> ScanRequest:
    """Validate and compile a scan before any request is sent.

    Args:
        schema: Resolved schema of ``index``.
        index: Index name or pattern.
        columns: Columns the caller needs.
        filters: Per-column predicates, or one whole-row predicate tree.
        filter_only_columns: Columns referenced only by filters. They are
            neither projected from ``_source`` nor returned.
        base_query: User query clause ANDed with the translated filters.
        limit: Maximum rows to return; None for no limit.
        offset: Rows to skip client-side before returning any.
        settings: Page size and scroll settings.
        row_filter: Filter evaluated on every decoded row before offset
            and limit apply. Full documents are fetched so every column is
            available to it, and limited scans page at ``batch_size``.

    Raises:
        ConfigurationError: If limit or offset is not a non-negative int.
        InvalidFieldNameError: If a column is not part of the schema.
        UnsafePushdownError: If a filter targets a full-text field that has
            no keyword companion.
    """
    if settings is None:
        settings = ScanSettings()
    _check_bounds(limit, offset)

    filter_only = set(filter_only_columns)
    output = [c for c in columns if c not in filter_only]
    for name in [*output, *filter_only]:
        if name not in _VIRTUAL_COLUMNS and schema.find_column(name) is None:
            raise InvalidFieldNameError(
                "unknown column",
                f"column {name!r} is not part of the schema for {index!r}",
            )

    translation = translate_filters(filters, schema)
    body: dict[str, Any] = {"query": _dsl.combine(base_query, translation.query)}
    projection = None if row_filter is not None else source_projection(output, schema)
    if projection is not None:
        body["_source"] = projection
    page_size = settings.batch_size if row_filter is not None else page_size_for(limit, offset, settings)

    return ScanRequest(
        index=index,
        body=body,
        columns=tuple(output),
        page_size=page_size,
        scroll=settings.scroll_time,
        limit=limit,
        offset=offset,
        fully_pushed=translation.fully_pushed,
        row_filter=row_filter,
    )


class ScanEngine:
    """Iterates the rows of one compiled scan.

    Rows are dicts keyed by output column. The scroll is cleared exactly
    once: when the scan is exhausted, fails, or is closed early.
    """

    def __init__(self, client: ElasticsearchClient, schema: Schema, request: ScanRequest) -> None:
        self._client = client
        self._request = request
        self._decoder = RowDecoder(list(request.columns), schema)
        self._filter_decoder = (
            RowDecoder([ID_COLUMN, *(c.name for c in schema.columns)], schema)
            if request.row_filter is not None
            else None
        )
        self._cursor: Cursor | None = None
        self._state = ScanState.INIT
        self._skipped = 0
        self._rejected = 0
        self._emitted = 0

    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def request(self) -> ScanRequest:
        return self._request

    @property
    def columns(self) -> list[str]:
        return list(self._request.columns)

    @property
    def rows_emitted(self) -> int:
        return self._emitted

    def __iter__(self) -> Iterator[dict[str, Any]]:
        return self

    def __next__(self) -> dict[str, Any]:
        try:
            return self._next_row()
        except StopIteration:
            raise
        except Exception:
            self._exhaust()
            raise

    def _next_row(self) -> dict[str, Any]:
        request = self._request
        while True:
            if self._state is ScanState.EXHAUSTED:
                raise StopIteration

            if self._state is ScanState.INIT:
                if request.limit == 0:
                    self._exhaust()
                    continue
                logger.info(
                    "starting scan of %s",
                    request.index,
                    extra={"page_size": request.page_size, "limit": request.limit, "offset": request.offset},
                )
                self._cursor = Cursor(
                    self._client,
                    request.index,
                    request.body,
                    scroll=request.scroll,
                    size=request.page_size,
                )
                self._state = ScanState.FETCHING

            cursor = self._cursor
            if cursor is None:
                raise RuntimeError(f"scan of {request.index} is {self._state} without a cursor")

            if self._state is ScanState.FETCHING:
                cursor.fetch()
                if cursor.exhausted:
                    self._exhaust()
                else:
                    self._state = ScanState.DRAINING
                continue

            if not cursor.page:
                self._state = ScanState.FETCHING
                continue
            hit = cursor.page.popleft()
            if self._rejects(hit):
                self._rejected += 1
                continue
            if self._skipped < request.offset:
                self._skipped += 1
                continue
            row = self._decoder.decode(hit)
            self._emitted += 1
            if request.limit is not None and self._emitted >= request.limit:
                self._exhaust()
            return row

    def _rejects(self, hit: dict[str, Any]) -> bool:
        row_filter = self._request.row_filter
        if row_filter is None or self._filter_decoder is None:
            return False
        return not row_filter(self._filter_decoder.decode(hit))

    def _exhaust(self) -> None:
        if self._state is ScanState.EXHAUSTED:
            return
        self._state = ScanState.EXHAUSTED
        if self._cursor is not None:
            self._cursor.close()
        logger.info(
            "scan of %s finished",
            self._request.index,
            extra={"rows": self._emitted, "skipped": self._skipped, "rejected": self._rejected},
        )

    def close(self) -> None:
        """Abandon the scan and release its scroll."""
        self._exhaust()

    def __enter__(self) -> ScanEngine:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
