"""
TTL caching of live table metadata.

Nothing is cached unless a connection is configured with a positive
``schema_cache_ttl``. Each connection gets its own cachetools TTLCache whose
keys are ``(kind, table)`` tuples, so a single table can be forgotten after
its schema changes.
"""
import logging
import threading
from collections.abc import Hashable

import cachetools

logger = logging.getLogger(__name__)


class Cache:
    """Process-wide registry of per-connection schema caches.

    Thread-safe singleton.
    """

    _instance = None
    _lock = threading.RLock()

    def __init__(self) -> None:
        self._caches: dict[Hashable, cachetools.TTLCache] = {}

    @classmethod
    def get_instance(cls) -> 'Cache':
        """Get singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def get_schema_cache(self, owner: Hashable, ttl: int, maxsize: int = 64) -> cachetools.TTLCache:
        """Get or create the schema cache of one connection.

        Args:
            owner: Connection identifier
            ttl: Seconds an entry stays valid
            maxsize: Maximum number of entries

        Returns
            TTLCache keyed by ``(kind, table)``
        """
        with self._lock:
            cache = self._caches.get(owner)
            if cache is None or cache.ttl != ttl:
                cache = self._caches[owner] = cachetools.TTLCache(maxsize=maxsize, ttl=ttl)
            return cache

    def clear_all(self) -> None:
        """Drop every cached entry of every connection."""
        with self._lock:
            for cache in self._caches.values():
                cache.clear()

    def clear_owner(self, owner: Hashable) -> None:
        """Drop the cached entries of one connection."""
        with self._lock:
            cache = self._caches.pop(owner, None)
            if cache is not None:
                cache.clear()

    def clear_for_table(self, table_name: str) -> None:
        """Drop the entries of one table from every connection's cache.
        """
        table = table_name.lower()
        with self._lock:
            for cache in self._caches.values():
                for key in [k for k in list(cache) if str(k[1]).lower() == table]:
                    cache.pop(key, None)
                    logger.debug(f'Cleared cached {key[0]} for table {table_name}')
