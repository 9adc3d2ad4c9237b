import hashlib
from typing import Any, Dict, Optional

import orjson
from cachetools import TTLCache

from .logging import get_logger

logger = get_logger(__name__)


class QueryCache:
    """TTL cache for per-layer intersection query results."""

    def __init__(self, max_size: int = 1000, ttl: int = 900):
        self._entries = TTLCache(maxsize=max_size, ttl=ttl)
        self.hits = 0
        self.misses = 0

    @staticmethod
    def make_key(layer_id: str, point: Dict[str, Any]) -> str:
        serialized = orjson.dumps(
            {'layer': layer_id, 'point': point},
            option=orjson.OPT_SORT_KEYS,
        )
        return hashlib.sha256(serialized).hexdigest()[:16]

    def get(self, key: str) -> Optional[Any]:
        try:
            value = self._entries[key]
        except KeyError:
            self.misses += 1
            return None
        self.hits += 1
        logger.debug("Query cache hit", extra={'cache_key': key})
        return value

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = value

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0
        logger.info("Query cache cleared")

    def get_stats(self) -> Dict[str, Any]:
        lookups = self.hits + self.misses
        return {
            'hits': self.hits,
            'misses': self.misses,
            'hit_rate': self.hits / lookups if lookups else 0,
            'size': len(self._entries),
            'max_size': self._entries.maxsize,
        }


_cache: Optional[QueryCache] = None


def get_cache(ttl: int = 900, max_size: int = 1000) -> QueryCache:
    """Return the process-wide query cache, creating it on first use."""
    global _cache
    if _cache is None:
        _cache = QueryCache(max_size=max_size, ttl=ttl)
        logger.info(f"Initialized query cache with TTL={ttl}s, max_size={max_size}")
    return _cache
