"""Predicate tree to Elasticsearch query DSL translation."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any

from pyesquery import _dsl
from pyesquery._constants import (
    DEFAULT_MAX_RECURSION_DEPTH,
    GEO_TYPES,
    ID_COLUMN,
    SOURCE_COLUMN,
    UNMAPPED_COLUMN,
)
from pyesquery._errors import (
    ERR_MSG_TEXT_FIELD_FILTER,
    MaxDepthExceededError,
    UnsafePushdownError,
)
from pyesquery._geo import bounding_box, parse_geometry
from pyesquery._operators import RANGE_BOUNDS, SWAPPED_GEO_RELATIONS
from pyesquery._utils import escape_wildcard_literal, join_path, split_like_pattern
from pyesquery.predicate import (
    BoolOp,
    CompareOp,
    Comparison,
    Conjunction,
    GeoRelation,
    GeoRelationKind,
    IsNotNull,
    IsNull,
    NestedAccess,
    Opaque,
    Pattern,
    Predicate,
    SetMembership,
)
from pyesquery.schema import Schema

_UNSUPPORTED = object()

_RESIDUAL_COLUMNS = frozenset({UNMAPPED_COLUMN, SOURCE_COLUMN})


def _json_constant(value: Any) -> Any:
    """Constant as a JSON query value, or ``_UNSUPPORTED``."""
    if value is None:
        return _UNSUPPORTED
    if isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return _UNSUPPORTED


class FilterTranslator:
    """Translates :mod:`pyesquery.predicate` trees against one schema.

    :meth:`translate` returns None for anything that cannot be pushed down
    without changing results; the caller must evaluate it. An AND keeps its
    translatable children, so :attr:`fully_pushed` tells whether anything
    was left behind.
    """

    def __init__(self, schema: Schema, *, max_depth: int = DEFAULT_MAX_RECURSION_DEPTH) -> None:
        self._schema = schema
        self._max_depth = max_depth
        self._depth = 0
        self.fully_pushed = True

    def translate(self, predicate: Predicate, path: str = "") -> dict[str, Any] | None:
        self._depth += 1
        if self._depth > self._max_depth:
            raise MaxDepthExceededError(
                "predicate nesting too deep",
                f"predicate depth exceeds {self._max_depth}",
            )
        try:
            query = self._translate(predicate, path)
        finally:
            self._depth -= 1
        if query is None:
            self.fully_pushed = False
        return query

    def _translate(self, predicate: Predicate, path: str) -> dict[str, Any] | None:
        if isinstance(predicate, Conjunction):
            return self._conjunction(predicate, path)
        if isinstance(predicate, NestedAccess):
            return self.translate(predicate.inner, join_path(path, predicate.field))
        if isinstance(predicate, Opaque):
            return None

        field = join_path(path, predicate.field)
        if not field or field in _RESIDUAL_COLUMNS:
            return None
        if isinstance(predicate, Comparison):
            return self._comparison(predicate.op, field, predicate.constant)
        if isinstance(predicate, SetMembership):
            return self._membership(field, predicate.constants)
        if isinstance(predicate, IsNull):
            return None if field == ID_COLUMN else _dsl.must_not(_dsl.exists(field))
        if isinstance(predicate, IsNotNull):
            return None if field == ID_COLUMN else _dsl.exists(field)
        if isinstance(predicate, Pattern):
            return self._pattern(field, predicate)
        if isinstance(predicate, GeoRelation):
            return self._geo(field, predicate)
        return None

    # ------------------------------------------------------------------
    # Leaves
    # ------------------------------------------------------------------

    def _exact_field(self, field: str) -> str:
        """Field to run exact-match queries on; a text field's keyword companion."""
        if not self._schema.is_full_text(field):
            return field
        companion = self._schema.companion_for(field)
        if companion is None:
            raise UnsafePushdownError(
                ERR_MSG_TEXT_FIELD_FILTER.format(field=field),
                f"full-text field {field!r} has no keyword multi-field",
            )
        return companion

    def _comparison(self, op: CompareOp, field: str, constant: Any) -> dict[str, Any] | None:
        target = self._exact_field(field)
        value = _json_constant(constant)
        if value is _UNSUPPORTED:
            return None
        if op is CompareOp.EQ:
            return _dsl.term(target, value)
        if op is CompareOp.NE:
            return _dsl.must_not(_dsl.term(target, value))
        if field == ID_COLUMN:
            return None
        return _dsl.range_query(target, RANGE_BOUNDS[op], value)

    def _membership(self, field: str, constants: tuple[Any, ...]) -> dict[str, Any] | None:
        target = self._exact_field(field)
        values = []
        for constant in constants:
            if constant is None:
                continue
            value = _json_constant(constant)
            if value is _UNSUPPORTED:
                return None
            values.append(value)
        if not values:
            return None
        return _dsl.terms(target, values)

    def _pattern(self, field: str, predicate: Pattern) -> dict[str, Any] | None:
        target = self._exact_field(field)
        if field == ID_COLUMN:
            return None
        ci = predicate.case_insensitive
        tokens = split_like_pattern(predicate.pattern, predicate.escape)
        wildcards = [i for i, tok in enumerate(tokens) if not tok]
        if not wildcards:
            return _dsl.term(target, "".join(t for t in tokens if t), case_insensitive=ci)
        if wildcards == [len(tokens) - 1] and tokens[-1] is None:
            return _dsl.prefix(target, "".join(t for t in tokens[:-1] if t), case_insensitive=ci)
        parts = []
        for tok in tokens:
            if tok is None:
                parts.append("*")
            elif tok == "":
                parts.append("?")
            else:
                parts.append(escape_wildcard_literal(tok))
        return _dsl.wildcard(target, "".join(parts), case_insensitive=ci)

    def _geo(self, field: str, predicate: GeoRelation) -> dict[str, Any] | None:
        if self._schema.es_type(field) not in GEO_TYPES:
            return None
        geometry = parse_geometry(predicate.geometry)
        if geometry is None:
            return None
        relation = predicate.kind
        if not predicate.field_first:
            relation = SWAPPED_GEO_RELATIONS[relation]
        if relation is GeoRelationKind.WITHIN:
            box = bounding_box(geometry)
            if box is not None:
                return _dsl.geo_bounding_box(field, *box)
        return _dsl.geo_shape(field, geometry, relation.value)

    # ------------------------------------------------------------------
    # Composites
    # ------------------------------------------------------------------

    def _conjunction(self, predicate: Conjunction, path: str) -> dict[str, Any] | None:
        translated = [self.translate(child, path) for child in predicate.children]
        if predicate.op is BoolOp.OR and any(q is None for q in translated):
            return None
        queries = [q for q in translated if q is not None]
        if not queries:
            return None
        if len(queries) == 1:
            return queries[0]
        if predicate.op is BoolOp.AND:
            return _dsl.must(queries)
        return _dsl.should(queries)


@dataclass(frozen=True)
class Translation:
    """Translated filter plus whether the caller must still re-check rows."""

    query: dict[str, Any] | None
    fully_pushed: bool = True


def translate_predicate(
    predicate: Predicate, schema: Schema, path: str = ""
) -> dict[str, Any] | None:
    """Translate one predicate tree; None when it cannot be pushed down.

    Raises:
        UnsafePushdownError: If the tree filters a full-text field that has
            no keyword companion.
    """
    return FilterTranslator(schema).translate(predicate, path)


def translate_filters(
    filters: Mapping[str, Predicate] | Predicate | None, schema: Schema
) -> Translation:
    """Translate per-column predicates (or one whole-row tree) into one query.

    Column predicates are ANDed together; untranslatable ones are dropped
    and reported through :attr:`Translation.fully_pushed`.
    """
    if filters is None:
        return Translation(None)
    translator = FilterTranslator(schema)
    if isinstance(filters, Mapping):
        items = list(filters.items())
    else:
        items = [("", filters)]

    queries = []
    for column_name, predicate in items:
        column = schema.find_column(column_name)
        query = translator.translate(predicate, column.path if column else column_name)
        if query is not None:
            queries.append(query)

    if not queries:
        query = None
    elif len(queries) == 1:
        query = queries[0]
    else:
        query = _dsl.must(queries)
    return Translation(query, translator.fully_pushed)
