#!/usr/bin/env python3
"""
Two-tier TTL cache.

Tier 1 is process memory; tier 2 is an injected persistent store. Reads check
memory first, then the persistent store, repopulating memory on a persistent
hit. Persistent-store failures are logged and treated as a miss.
"""

import json
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, Protocol, Tuple, runtime_checkable

import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError

from yields_fun.config import CACHE_TTL_SECONDS
from yields_fun.db_engine import get_engine, upsert
from yields_fun.models import cache_entries, create_all

logger = logging.getLogger("yields_fun.cache")

DEFAULT_NAMESPACE = "yields/opportunities"


@runtime_checkable
class CacheStore(Protocol):
    """Persistent cache backend."""
    def get_entry(self, key: str) -> Optional[Tuple[Any, float]]: ...
    def set(self, key: str, value: Any, expires_at: float) -> None: ...
    def delete(self, key: str) -> None: ...


class MemoryCacheStore:
    """Dict-backed store, used for ephemeral sessions and tests."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._data: Dict[str, Tuple[Any, float]] = {}
        self._clock = clock

    def get_entry(self, key: str) -> Optional[Tuple[Any, float]]:
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry[1] <= self._clock():
            self._data.pop(key, None)
            return None
        return entry

    def get(self, key: str) -> Optional[Any]:
        entry = self.get_entry(key)
        return entry[0] if entry else None

    def set(self, key: str, value: Any, expires_at: float) -> None:
        self._data[key] = (value, expires_at)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class SqlCacheStore:
    """Persistent store on SQLAlchemy Core; values are JSON encoded."""

    def __init__(self, url: Optional[str] = None, engine: Optional[sa.Engine] = None,
                 clock: Callable[[], float] = time.time):
        self.engine = engine if engine is not None else get_engine(url)
        self._clock = clock
        create_all(self.engine)

    def get_entry(self, key: str) -> Optional[Tuple[Any, float]]:
        """Return ``(value, expires_at)`` for a live row, else None."""
        with self.engine.connect() as conn:
            row = conn.execute(
                sa.select(cache_entries.c.value_json, cache_entries.c.expires_at)
                .where(cache_entries.c.key == key)
            ).mappings().fetchone()
        if not row or row['expires_at'] <= self._clock():
            return None
        return json.loads(row['value_json']), row['expires_at']

    def get(self, key: str) -> Optional[Any]:
        entry = self.get_entry(key)
        return entry[0] if entry else None

    def delete(self, key: str) -> None:
        with self.engine.begin() as conn:
            conn.execute(sa.delete(cache_entries).where(cache_entries.c.key == key))

    def set(self, key: str, value: Any, expires_at: float) -> None:
        upsert(
            self.engine,
            cache_entries,
            {
                'key': key,
                'value_json': json.dumps(value),
                'expires_at': expires_at,
                'updated_at': self._clock(),
            },
            index_elements=['key'],
            update_columns=['value_json', 'expires_at', 'updated_at'],
        )

    def purge_expired(self) -> int:
        """Delete expired rows. Returns the number removed."""
        with self.engine.begin() as conn:
            result = conn.execute(
                sa.delete(cache_entries).where(cache_entries.c.expires_at <= self._clock())
            )
        return result.rowcount or 0


class TwoTierCache:
    """
    Memory + persistent key/value cache with TTL.

    One instance per agent session; providers receive it explicitly.
    """

    def __init__(
        self,
        store: Optional[CacheStore] = None,
        namespace: str = DEFAULT_NAMESPACE,
        default_ttl: int = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.time
    ):
        self.store = store
        self.namespace = namespace.strip('/')
        self.default_ttl = default_ttl
        self._clock = clock
        self._memory: Dict[str, Tuple[Any, float]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._store_errors = 0

    def _store_key(self, key: str) -> str:
        return f"{self.namespace}/{key}" if self.namespace else key

    def get(self, key: str) -> Optional[Any]:
        now = self._clock()
        with self._lock:
            entry = self._memory.get(key)
            if entry is not None:
                value, expires_at = entry
                if expires_at > now:
                    self._hits += 1
                    return value
                del self._memory[key]

        stored = self._store_get(key)
        if stored is not None and stored[1] > now:
            value, expires_at = stored
            with self._lock:
                self._memory[key] = (value, expires_at)
                self._hits += 1
            return value

        with self._lock:
            self._misses += 1
        return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        expires_at = self._clock() + (ttl if ttl is not None else self.default_ttl)
        with self._lock:
            self._memory[key] = (value, expires_at)
        self._store_set(key, value, expires_at)

    def get_or_set(self, key: str, loader: Callable[[], Any], ttl: Optional[int] = None) -> Any:
        """Return the cached value for ``key`` or load, cache and return it."""
        cached = self.get(key)
        if cached is not None:
            return cached
        value = loader()
        if value is not None:
            self.set(key, value, ttl)
        return value

    def delete(self, key: str) -> None:
        with self._lock:
            self._memory.pop(key, None)
        self._store_delete(key)

    def clear(self) -> None:
        """Clear the memory tier only."""
        with self._lock:
            self._memory.clear()

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                'hits': self._hits,
                'misses': self._misses,
                'memoryEntries': len(self._memory),
                'storeErrors': self._store_errors,
            }

    def _store_get(self, key: str) -> Optional[Tuple[Any, float]]:
        if self.store is None:
            return None
        try:
            return self.store.get_entry(self._store_key(key))
        except (SQLAlchemyError, OSError, ValueError) as e:
            self._store_errors += 1
            logger.warning(f"[Cache] Persistent read failed for {key}, treating as miss: {e}")
            return None

    def _store_set(self, key: str, value: Any, expires_at: float) -> None:
        if self.store is None:
            return
        try:
            self.store.set(self._store_key(key), value, expires_at)
        except (SQLAlchemyError, OSError, ValueError, TypeError) as e:
            self._store_errors += 1
            logger.warning(f"[Cache] Persistent write failed for {key}: {e}")

    def _store_delete(self, key: str) -> None:
        if self.store is None:
            return
        try:
            self.store.delete(self._store_key(key))
        except (SQLAlchemyError, OSError) as e:
            self._store_errors += 1
            logger.warning(f"[Cache] Persistent delete failed for {key}: {e}")
