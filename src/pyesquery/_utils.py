"""Field path helpers and escaping utilities."""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Any

from pyesquery._errors import InvalidFieldNameError

MAX_FIELD_PATH_LENGTH = 1024

FIELD_SEGMENT_RE = re.compile(r"^[^.\s\x00][^.\x00]*$")


def validate_field_path(path: str) -> None:
    """Validate a dotted Elasticsearch field path."""
    if not path:
        raise InvalidFieldNameError(
            "field name cannot be empty",
            "empty field path provided",
        )
    if len(path) > MAX_FIELD_PATH_LENGTH:
        raise InvalidFieldNameError(
            "field name too long",
            f"field path '{path[:64]}...' exceeds {MAX_FIELD_PATH_LENGTH} characters",
        )
    for segment in path.split("."):
        if not FIELD_SEGMENT_RE.match(segment):
            raise InvalidFieldNameError(
                "invalid field name format",
                f"field path '{path}' has an empty or invalid segment {segment!r}",
            )


def join_path(*parts: str) -> str:
    """Join path segments with dots, skipping empty ones."""
    return ".".join(p for p in parts if p)


def get_by_path(document: Any, path: str) -> Any:
    """Resolve a dotted path against nested objects; None when absent.

    Traversal stops at arrays: ``a.b`` is not looked up inside a list
    stored under ``a``.
    """
    current = document
    for segment in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(segment)
        if current is None:
            return None
    return current


def parent_paths(paths: Iterable[str]) -> frozenset[str]:
    """Every strict dotted prefix of the given paths."""
    parents: set[str] = set()
    for path in paths:
        segments = path.split(".")
        for i in range(1, len(segments)):
            parents.add(".".join(segments[:i]))
    return frozenset(parents)


def escape_like_pattern(value: str, escape: str = "\\") -> str:
    """Escape a literal so it matches itself inside a SQL LIKE pattern."""
    result = value.replace(escape, escape + escape)
    result = result.replace("%", escape + "%")
    return result.replace("_", escape + "_")


def escape_wildcard_literal(value: str) -> str:
    """Escape characters that are special in Elasticsearch wildcard queries."""
    result = value.replace("\\", "\\\\")
    result = result.replace("*", "\\*")
    return result.replace("?", "\\?")


def split_like_pattern(pattern: str, escape: str = "\\") -> list[str | None]:
    """Split a LIKE pattern into literal characters and wildcards.

    Literal characters are returned as one-character strings; ``%`` is
    returned as ``None`` and ``_`` as the empty string.
    """
    tokens: list[str | None] = []
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if escape and ch == escape and i + 1 < len(pattern):
            tokens.append(pattern[i + 1])
            i += 2
            continue
        if ch == "%":
            tokens.append(None)
        elif ch == "_":
            tokens.append("")
        else:
            tokens.append(ch)
        i += 1
    return tokens


def like_to_regex(pattern: str, escape: str = "\\", *, case_insensitive: bool = False) -> re.Pattern[str]:
    """Compile a LIKE pattern to a regular expression meant for ``fullmatch``."""
    parts = []
    for token in split_like_pattern(pattern, escape):
        if token is None:
            parts.append(".*")
        elif token == "":
            parts.append(".")
        else:
            parts.append(re.escape(token))
    flags = re.DOTALL | (re.IGNORECASE if case_insensitive else 0)
    return re.compile("".join(parts), flags)
