"""HTTP client for Elasticsearch with transient-error retries and scroll cursors."""

from __future__ import annotations

import json
import logging
import time
from collections import deque
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

import httpx

from pyesquery._constants import RETRYABLE_STATUS_CODES
from pyesquery._errors import (
    ERR_MSG_INVALID_RESPONSE,
    ERR_MSG_MAPPING_FAILED,
    ERR_MSG_SCROLL_FAILED,
    ERR_MSG_SEARCH_FAILED,
    DecodeError,
    TransportError,
)
from pyesquery.config import ConnectionConfig

logger = logging.getLogger(__name__)
http_logger = logging.getLogger("pyesquery.http")

_REDACTED_HEADERS = frozenset({"authorization", "cookie", "set-cookie"})


@dataclass(frozen=True)
class HttpTrace:
    """One HTTP attempt, successful or not."""

    method: str
    url: str
    request_headers: dict[str, str]
    start_time: datetime
    duration_ms: float
    status_code: int | None = None
    reason: str = ""
    response_headers: dict[str, str] | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["start_time"] = self.start_time.isoformat()
        return data


TraceSink = Callable[[HttpTrace], None]


def log_http_trace(trace: HttpTrace) -> None:
    """Default trace sink: one DEBUG record per attempt."""
    http_logger.debug(
        "%s %s -> %s (%.1f ms)",
        trace.method,
        trace.url,
        trace.status_code if trace.status_code is not None else trace.error,
        trace.duration_ms,
        extra={"http_trace": trace.to_dict()},
    )


@dataclass(frozen=True)
class Response:
    """A successful (2xx) response and how many retries it took."""

    status_code: int
    text: str
    retries: int = 0

    def json(self) -> Any:
        try:
            return json.loads(self.text)
        except ValueError as exc:
            raise DecodeError(
                ERR_MSG_INVALID_RESPONSE,
                f"cannot decode body: {exc}; body starts with {self.text[:200]!r}",
                exc,
            ) from exc


@dataclass(frozen=True)
class ScrollPage:
    """One page of hits plus the token for the next one."""

    scroll_id: str | None
    hits: list[dict[str, Any]] = field(default_factory=list)


def _quote_index(index: str) -> str:
    return quote(index, safe=",*")


def _redact(headers: httpx.Headers) -> dict[str, str]:
    return {
        k: ("<redacted>" if k.lower() in _REDACTED_HEADERS else v)
        for k, v in headers.items()
    }


class ElasticsearchClient:
    """Synchronous Elasticsearch client.

    Requests answered with a transient status (429, 500, 502, 503, 504) or
    failing below the HTTP layer are retried with exponential backoff. Any
    other error status is raised immediately as :class:`TransportError`.
    """

    def __init__(
        self,
        config: ConnectionConfig,
        *,
        trace_sink: TraceSink | None = None,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        config.validate_config()
        self._config = config
        self._sleep = sleep
        if trace_sink is None and config.http_logging:
            trace_sink = log_http_trace
        self._trace_sink = trace_sink
        auth = None
        if config.username is not None and config.password is not None:
            auth = httpx.BasicAuth(config.username, config.password)
        self._http = httpx.Client(
            base_url=config.base_url,
            auth=auth,
            verify=config.verify_ssl,
            timeout=config.timeout / 1000,
            follow_redirects=True,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    @property
    def config(self) -> ConnectionConfig:
        return self._config

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> ElasticsearchClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Request execution
    # ------------------------------------------------------------------

    def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        *,
        params: dict[str, Any] | None = None,
        retry: bool = True,
        context: str = "",
    ) -> Response:
        """Execute one logical request, retrying transient failures.

        Args:
            method: HTTP verb.
            path: Path relative to the cluster base URL.
            body: JSON-serializable request body, if any.
            params: Query string parameters.
            retry: If False, the request is attempted exactly once.
            context: Prefix for the error message on failure.

        Returns:
            The successful response with the number of retries used.

        Raises:
            TransportError: On a non-retryable failure or when retries are
                exhausted. The message ends with ``(after N retries)`` when
                any retry was made.
        """
        content = json.dumps(body) if body is not None else None
        headers = {"Content-Type": "application/json"} if content is not None else None
        max_retries = self._config.max_retries if retry else 0
        wait = self._config.retry_interval / 1000
        retries = 0
        while True:
            response, error = self._send(method, path, content, headers, params)
            if response is not None and response.is_success:
                return Response(response.status_code, response.text, retries)

            retryable = error is not None or response.status_code in RETRYABLE_STATUS_CODES
            if not retryable or retries >= max_retries:
                raise self._failure(method, path, response, error, retries, context)

            status = response.status_code if response is not None else 0
            logger.warning(
                "retrying %s %s after status %s",
                method,
                path,
                status,
                extra={"attempt": retries + 1, "wait_seconds": wait},
            )
            self._sleep(wait)
            wait *= self._config.retry_backoff_factor
            retries += 1

    def _send(
        self,
        method: str,
        path: str,
        content: str | None,
        headers: dict[str, str] | None,
        params: dict[str, Any] | None,
    ) -> tuple[httpx.Response | None, httpx.HTTPError | None]:
        request = self._http.build_request(
            method, path, content=content, headers=headers, params=params
        )
        started = datetime.now(timezone.utc)
        clock = time.monotonic()
        response: httpx.Response | None = None
        error: httpx.HTTPError | None = None
        try:
            response = self._http.send(request)
        except httpx.HTTPError as exc:
            error = exc
        finally:
            if self._trace_sink is not None:
                self._emit_trace(request, started, clock, response, error)
        return response, error

    def _emit_trace(
        self,
        request: httpx.Request,
        started: datetime,
        clock: float,
        response: httpx.Response | None,
        error: httpx.HTTPError | None,
    ) -> None:
        trace = HttpTrace(
            method=request.method,
            url=str(request.url),
            request_headers=_redact(request.headers),
            start_time=started,
            duration_ms=(time.monotonic() - clock) * 1000,
            status_code=response.status_code if response is not None else None,
            reason=response.reason_phrase if response is not None else "",
            response_headers=_redact(response.headers) if response is not None else None,
            error=f"{type(error).__name__}: {error}" if error is not None else None,
        )
        try:
            self._trace_sink(trace)  # type: ignore[misc]
        except Exception:
            logger.warning("HTTP trace sink failed", exc_info=True)

    @staticmethod
    def _failure(
        method: str,
        path: str,
        response: httpx.Response | None,
        error: httpx.HTTPError | None,
        retries: int,
        context: str,
    ) -> TransportError:
        if response is not None:
            status = response.status_code
            detail = f"HTTP {status} {response.reason_phrase}".rstrip()
            internal = f"{method} {path}: {detail}: {response.text[:500]}"
        else:
            status = 0
            detail = f"{type(error).__name__}: {error}"
            internal = f"{method} {path}: {detail}"
        message = f"{context}: {detail}" if context else detail
        if retries:
            message += f" (after {retries} retries)"
        return TransportError(message, internal, error, status_code=status, retries=retries)

    # ------------------------------------------------------------------
    # Elasticsearch endpoints
    # ------------------------------------------------------------------

    def get_mapping(self, index: str) -> dict[str, Any]:
        """GET ``/{index}/_mapping``; one entry per matched index."""
        data = self.request(
            "GET", f"/{_quote_index(index)}/_mapping", context=ERR_MSG_MAPPING_FAILED
        ).json()
        if not isinstance(data, dict):
            raise DecodeError(ERR_MSG_INVALID_RESPONSE, f"mapping response is {type(data).__name__}")
        return data

    def open_scroll(
        self, index: str, body: dict[str, Any], *, scroll: str, size: int
    ) -> ScrollPage:
        response = self.request(
            "POST",
            f"/{_quote_index(index)}/_search",
            body,
            params={"scroll": scroll, "size": size},
            context=ERR_MSG_SEARCH_FAILED,
        )
        return _parse_scroll_page(response)

    def continue_scroll(self, scroll_id: str, *, scroll: str) -> ScrollPage:
        response = self.request(
            "POST",
            "/_search/scroll",
            {"scroll": scroll, "scroll_id": scroll_id},
            context=ERR_MSG_SCROLL_FAILED,
        )
        return _parse_scroll_page(response)

    def clear_scroll(self, scroll_id: str) -> bool:
        """Release a scroll. Sent once; failures are logged, never raised."""
        try:
            self.request("DELETE", "/_search/scroll", {"scroll_id": scroll_id}, retry=False)
        except TransportError as exc:
            logger.warning("failed to clear scroll: %s", exc.internal())
            return False
        return True


def _parse_scroll_page(response: Response) -> ScrollPage:
    data = response.json()
    try:
        hits = data["hits"]["hits"]
    except (KeyError, TypeError) as exc:
        raise DecodeError(ERR_MSG_INVALID_RESPONSE, f"search response has no hits.hits: {exc!r}", exc) from exc
    if not isinstance(hits, list):
        raise DecodeError(ERR_MSG_INVALID_RESPONSE, "hits.hits is not an array")
    scroll_id = data.get("_scroll_id")
    return ScrollPage(scroll_id if isinstance(scroll_id, str) else None, hits)


class Cursor:
    """A scroll context owned by exactly one scan.

    The first :meth:`fetch` opens the scroll, later calls continue it. An
    empty page or a response without a scroll id exhausts the cursor. A
    closed or exhausted cursor is never reopened.
    """

    def __init__(
        self,
        client: ElasticsearchClient,
        index: str,
        body: dict[str, Any],
        *,
        scroll: str,
        size: int,
    ) -> None:
        self._client = client
        self._index = index
        self._body = body
        self._scroll = scroll
        self._size = size
        self._scroll_id: str | None = None
        self._opened = False
        self._finished = False
        self._closed = False
        self.page: deque[dict[str, Any]] = deque()

    @property
    def exhausted(self) -> bool:
        return self._finished and not self.page

    def fetch(self) -> int:
        """Pull the next page into :attr:`page`; returns the number of hits."""
        if self._finished:
            return 0
        if not self._opened:
            self._opened = True
            result = self._client.open_scroll(
                self._index, self._body, scroll=self._scroll, size=self._size
            )
        elif self._scroll_id is None:
            self._finished = True
            return 0
        else:
            result = self._client.continue_scroll(self._scroll_id, scroll=self._scroll)
        if result.scroll_id is not None:
            self._scroll_id = result.scroll_id
        if not result.hits or result.scroll_id is None:
            self._finished = True
        self.page.extend(result.hits)
        return len(result.hits)

    def close(self) -> None:
        """Clear the server-side scroll once; never raises."""
        self._finished = True
        self.page.clear()
        if self._closed:
            return
        self._closed = True
        if self._scroll_id is not None:
            self._client.clear_scroll(self._scroll_id)
            self._scroll_id = None
