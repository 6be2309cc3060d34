"""Exception hierarchy for Elasticsearch query execution."""


class EsQueryError(Exception):
    """Base exception for schema resolution, pushdown and scan errors.

    Provides dual messaging: a sanitized user-facing message and
    internal details for logging (CWE-209 prevention).
    """

    def __init__(
        self,
        user_message: str,
        internal_details: str = "",
        wrapped: Exception | None = None,
    ) -> None:
        super().__init__(user_message)
        self.user_message = user_message
        self.internal_details = internal_details or user_message
        self.wrapped = wrapped

    def internal(self) -> str:
        return self.internal_details


class ConfigurationError(EsQueryError):
    """Raised when a required connection parameter is missing or invalid."""


class TransportError(EsQueryError):
    """Raised when a request fails after the retry policy gave up.

    ``status_code`` is 0 when the request never produced an HTTP response.
    """

    def __init__(
        self,
        user_message: str,
        internal_details: str = "",
        wrapped: Exception | None = None,
        *,
        status_code: int = 0,
        retries: int = 0,
    ) -> None:
        super().__init__(user_message, internal_details, wrapped)
        self.status_code = status_code
        self.retries = retries


class SchemaConflictError(EsQueryError):
    """Raised when two indices declare incompatible shapes for one field."""


class UnsafePushdownError(EsQueryError):
    """Raised when a filter cannot be pushed down without changing results."""


class DecodeError(EsQueryError):
    """Raised when a response body is not the expected JSON document."""


class FilterSyntaxError(EsQueryError):
    """Raised when a filter expression cannot be parsed."""


class InvalidFieldNameError(EsQueryError):
    """Raised when a field path is invalid or empty."""


class MaxDepthExceededError(EsQueryError):
    """Raised when recursion depth limit is exceeded."""


# Sanitized user-facing error message constants
ERR_MSG_MAPPING_FAILED = "Failed to get Elasticsearch mapping"
ERR_MSG_SEARCH_FAILED = "Elasticsearch search failed"
ERR_MSG_SCROLL_FAILED = "Elasticsearch scroll failed"
ERR_MSG_INVALID_RESPONSE = "invalid JSON response from Elasticsearch"
ERR_MSG_MISSING_HOST = "elasticsearch_query requires 'host' parameter"
ERR_MSG_MISSING_INDEX = "elasticsearch_query requires 'index' parameter"
ERR_MSG_INCOMPATIBLE_TYPES = (
    "Incompatible field types for '{path}': index '{first_index}' has type "
    "{first_type}, but index '{second_index}' has type {second_type}"
)
ERR_MSG_TEXT_FIELD_FILTER = (
    "Cannot filter on text field '{field}' because it lacks a .keyword subfield. "
    "Options:\n"
    "  - Add a .keyword subfield to the Elasticsearch mapping\n"
    "  - Use the 'query' parameter with native Elasticsearch text queries"
)
ERR_MSG_LOCAL_GEO_FILTER = (
    "Cannot evaluate geospatial functions outside Elasticsearch. Keep geo_* calls "
    "in a top-level && of the filter so they can be pushed down"
)
