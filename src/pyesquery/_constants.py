"""Protocol constants and default settings for Elasticsearch scans."""

DEFAULT_MAX_RECURSION_DEPTH = 100
"""Maximum predicate/expression recursion depth (CWE-674 prevention)."""

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
"""HTTP statuses treated as transient by the retry client."""

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 9200
DEFAULT_TIMEOUT_MS = 30000
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_INTERVAL_MS = 100
DEFAULT_RETRY_BACKOFF_FACTOR = 2.0

DEFAULT_SAMPLE_SIZE = 100
"""Documents fetched while looking for array-valued fields."""

DEFAULT_BATCH_SIZE = 1000
"""Scroll page size used when no small limit was pushed down."""

DEFAULT_BATCH_SIZE_THRESHOLD_FACTOR = 5
"""limit+offset up to batch_size times this factor is fetched in one page."""

DEFAULT_SCROLL_TIME = "5m"
DEFAULT_SAMPLE_SCROLL_TIME = "1m"

ID_COLUMN = "_id"
UNMAPPED_COLUMN = "_unmapped_"
SOURCE_COLUMN = "_source"

FULL_TEXT_TYPES = frozenset({"text", "match_only_text"})
GEO_TYPES = frozenset({"geo_point", "geo_shape"})
KEYWORD_TYPE = "keyword"
KEYWORD_SUBFIELD = "keyword"
