"""Builders for Elasticsearch query DSL clauses.

Every builder returns a freshly allocated tree; callers compose them
bottom-up and never mutate a clause after it was built.
"""

from __future__ import annotations

from typing import Any


def match_all() -> dict[str, Any]:
    return {"match_all": {}}


def term(field: str, value: Any, *, case_insensitive: bool = False) -> dict[str, Any]:
    if case_insensitive:
        return {"term": {field: {"value": value, "case_insensitive": True}}}
    return {"term": {field: value}}


def terms(field: str, values: list[Any]) -> dict[str, Any]:
    return {"terms": {field: list(values)}}


def range_query(field: str, bound: str, value: Any) -> dict[str, Any]:
    return {"range": {field: {bound: value}}}


def exists(field: str) -> dict[str, Any]:
    return {"exists": {"field": field}}


def must_not(query: dict[str, Any]) -> dict[str, Any]:
    return {"bool": {"must_not": [query]}}


def must(queries: list[dict[str, Any]]) -> dict[str, Any]:
    return {"bool": {"must": list(queries)}}


def should(queries: list[dict[str, Any]]) -> dict[str, Any]:
    return {"bool": {"should": list(queries), "minimum_should_match": 1}}


def prefix(field: str, value: str, *, case_insensitive: bool = False) -> dict[str, Any]:
    body: dict[str, Any] = {"value": value}
    if case_insensitive:
        body["case_insensitive"] = True
    return {"prefix": {field: body}}


def wildcard(field: str, value: str, *, case_insensitive: bool = False) -> dict[str, Any]:
    body: dict[str, Any] = {"value": value}
    if case_insensitive:
        body["case_insensitive"] = True
    return {"wildcard": {field: body}}


def geo_shape(field: str, shape: dict[str, Any], relation: str) -> dict[str, Any]:
    return {"geo_shape": {field: {"shape": shape, "relation": relation}}}


def geo_bounding_box(
    field: str, min_lon: float, min_lat: float, max_lon: float, max_lat: float
) -> dict[str, Any]:
    return {
        "geo_bounding_box": {
            field: {
                "top_left": {"lat": max_lat, "lon": min_lon},
                "bottom_right": {"lat": min_lat, "lon": max_lon},
            }
        }
    }


def combine(base: dict[str, Any] | None, extra: dict[str, Any] | None) -> dict[str, Any]:
    """AND a user-supplied base query with a translated filter."""
    if base and extra:
        return must([base, extra])
    if base:
        return base
    if extra:
        return extra
    return match_all()
