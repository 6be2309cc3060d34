"""Shared test fixtures."""

from __future__ import annotations

import json
from typing import Any
from unittest.mock import MagicMock

import httpx
import pytest

from pyesquery.client import ElasticsearchClient
from pyesquery.config import ConnectionConfig
from pyesquery.resolve.mapping import merge_index_mappings, parse_mapping_response
from pyesquery.schema import Schema

SAMPLE_PROPERTIES: dict[str, Any] = {
    "name": {"type": "text", "fields": {"keyword": {"type": "keyword", "ignore_above": 256}}},
    "body": {"type": "text"},
    "status": {"type": "keyword"},
    "age": {"type": "integer"},
    "score": {"type": "double"},
    "active": {"type": "boolean"},
    "created": {"type": "date"},
    "location": {"type": "geo_point"},
    "area": {"type": "geo_shape"},
    "tags": {"type": "keyword"},
    "address": {
        "properties": {
            "city": {"type": "keyword"},
            "street": {"type": "text", "fields": {"raw": {"type": "keyword"}}},
            "zip": {"type": "integer"},
        }
    },
}


def mapping_body(properties: dict[str, Any], index: str = "people") -> dict[str, Any]:
    return {index: {"mappings": {"properties": properties}}}


def schema_from(properties: dict[str, Any]) -> Schema:
    merged = merge_index_mappings(parse_mapping_response(mapping_body(properties)))
    return Schema(
        merged.columns,
        mapped_paths=merged.mapped_paths,
        path_types=merged.path_types,
        companions=merged.companions,
        full_text_paths=merged.full_text_paths,
    )


class FakeCluster:
    """In-memory Elasticsearch answering mapping, scroll and clear-scroll calls.

    Queries are not evaluated: every search returns ``documents`` in order.
    ``failures`` maps ``(method, path)`` to a status returned instead;
    ``errors`` maps it to an exception raised from the transport.
    """

    def __init__(
        self,
        mappings: dict[str, Any] | None = None,
        documents: list[dict[str, Any]] | None = None,
    ) -> None:
        self.mappings = mappings if mappings is not None else mapping_body(SAMPLE_PROPERTIES)
        self.documents = documents or []
        self.failures: dict[tuple[str, str], int] = {}
        self.errors: dict[tuple[str, str], Exception] = {}
        self.requests: list[tuple[str, str, dict[str, str], Any]] = []
        self._scrolls: dict[str, list[dict[str, Any]]] = {}
        self._sizes: dict[str, int] = {}
        self._counter = 0

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        method, path = request.method, request.url.path
        self.requests.append((method, path, dict(request.url.params), body))

        error = self.errors.get((method, path))
        if error is not None:
            raise error

        status = self.failures.get((method, path))
        if status is not None:
            return httpx.Response(status, json={"error": {"type": "injected"}})
        if method == "GET" and path.endswith("/_mapping"):
            return httpx.Response(200, json=self.mappings)
        if path == "/_search/scroll":
            if method == "DELETE":
                return httpx.Response(200, json={"succeeded": True, "num_freed": 1})
            return self._page(body["scroll_id"])
        if method == "POST" and path.endswith("/_search"):
            self._counter += 1
            scroll_id = f"scroll-{self._counter}"
            self._scrolls[scroll_id] = list(self.documents)
            self._sizes[scroll_id] = int(request.url.params["size"])
            return self._page(scroll_id)
        return httpx.Response(404, json={"error": "not found"})

    def _page(self, scroll_id: str) -> httpx.Response:
        remaining = self._scrolls[scroll_id]
        size = self._sizes[scroll_id]
        page, self._scrolls[scroll_id] = remaining[:size], remaining[size:]
        return httpx.Response(200, json={"_scroll_id": scroll_id, "hits": {"hits": page}})

    def calls(self, method: str, path: str | None = None) -> list[tuple[str, str, dict[str, str], Any]]:
        return [r for r in self.requests if r[0] == method and (path is None or r[1] == path)]

    def searches(self) -> list[tuple[str, str, dict[str, str], Any]]:
        return [r for r in self.requests if r[0] == "POST" and r[1].endswith("/_search")]


def make_documents(count: int) -> list[dict[str, Any]]:
    return [
        {"_id": str(i), "_source": {"age": i, "name": f"user{i}", "status": "active"}}
        for i in range(1, count + 1)
    ]


def make_client(cluster: FakeCluster, **config: Any) -> ElasticsearchClient:
    return ElasticsearchClient(
        ConnectionConfig(**config), transport=cluster.transport, sleep=MagicMock()
    )


@pytest.fixture
def schema():
    return schema_from(SAMPLE_PROPERTIES)


@pytest.fixture
def cluster():
    return FakeCluster()


@pytest.fixture
def client(cluster):
    with make_client(cluster) as c:
        yield c
