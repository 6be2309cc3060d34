"""In-process cache of resolved schemas."""

from __future__ import annotations

import json
import threading
from typing import Any

from pyesquery.config import ConnectionConfig
from pyesquery.schema import Schema


def cache_key(
    config: ConnectionConfig,
    index: str,
    base_query: dict[str, Any] | None,
    sample_size: int,
) -> str:
    """Key covering everything that can change a resolved schema.

    Credentials and TLS flags are part of the key: different users may
    see different indices behind the same name.
    """
    query = json.dumps(base_query, sort_keys=True) if base_query else ""
    parts = [
        config.host,
        str(config.port),
        index,
        query,
        config.username or "",
        config.password or "",
        "1" if config.use_ssl else "0",
        "1" if config.verify_ssl else "0",
        str(sample_size),
    ]
    return "\0".join(parts)


class BindCache:
    """Thread-safe map from :func:`cache_key` to :class:`Schema`.

    Schemas are immutable, so cached entries are never aliased mutably.
    Invalidation is always a full wipe.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, Schema] = {}

    def get(self, key: str) -> Schema | None:
        with self._lock:
            return self._entries.get(key)

    def put(self, key: str, schema: Schema) -> None:
        with self._lock:
            self._entries[key] = schema

    def clear(self) -> int:
        """Drop every entry; returns how many were removed."""
        with self._lock:
            removed = len(self._entries)
            self._entries.clear()
            return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
