"""pyesquery - Query Elasticsearch indices as relational tables."""

from __future__ import annotations

try:
    from pyesquery._version import __version__
except ModuleNotFoundError:  # editable install without VCS metadata
    __version__ = "0.0.0.dev0"

from pyesquery._cel import RowFilter, parse_filter
from pyesquery._errors import (
    ConfigurationError,
    DecodeError,
    EsQueryError,
    FilterSyntaxError,
    InvalidFieldNameError,
    MaxDepthExceededError,
    SchemaConflictError,
    TransportError,
    UnsafePushdownError,
)
from pyesquery._translator import Translation, translate_filters, translate_predicate
from pyesquery.cache import BindCache
from pyesquery.client import ElasticsearchClient, HttpTrace
from pyesquery.config import ConnectionConfig, ScanSettings
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
    and_,
    nested,
    or_,
)
from pyesquery.resolve import output_columns, resolve_schema
from pyesquery.scan import ScanEngine, ScanState, compile_scan_request
from pyesquery.schema import ColumnSchema, RelType, Schema
from pyesquery.session import BoundIndex, Session

__all__ = [
    "Session",
    "BoundIndex",
    "ConnectionConfig",
    "ScanSettings",
    "ElasticsearchClient",
    "HttpTrace",
    "BindCache",
    "resolve_schema",
    "output_columns",
    "compile_scan_request",
    "ScanEngine",
    "ScanState",
    "parse_filter",
    "RowFilter",
    "translate_filters",
    "translate_predicate",
    "Translation",
    "Schema",
    "ColumnSchema",
    "RelType",
    "Predicate",
    "Comparison",
    "Conjunction",
    "SetMembership",
    "IsNull",
    "IsNotNull",
    "Pattern",
    "NestedAccess",
    "GeoRelation",
    "Opaque",
    "CompareOp",
    "BoolOp",
    "GeoRelationKind",
    "and_",
    "or_",
    "nested",
    "EsQueryError",
    "ConfigurationError",
    "TransportError",
    "SchemaConflictError",
    "UnsafePushdownError",
    "DecodeError",
    "FilterSyntaxError",
    "InvalidFieldNameError",
    "MaxDepthExceededError",
]
