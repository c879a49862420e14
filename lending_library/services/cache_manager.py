"""
In-memory TTL cache used for book metadata fetched from remote sources.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

from lending_library.config import settings

logger = logging.getLogger(__name__)

MAX_ENTRIES = 1000


class CacheManager:
    """Thread-safe key/value cache whose entries expire after a TTL."""

    def __init__(self, default_ttl: Optional[int] = None, max_entries: int = MAX_ENTRIES):
        self.default_ttl = settings.cache_ttl if default_ttl is None else default_ttl
        self.max_entries = max_entries
        self.memory_cache: Dict[str, Tuple[Any, datetime]] = {}
        self.memory_cache_lock = threading.RLock()
        self.cache_stats = {
            'hits': 0,
            'misses': 0,
        }

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None when missing or expired."""
        with self.memory_cache_lock:
            cache_entry = self.memory_cache.get(key)
            if cache_entry:
                value, expires_at = cache_entry
                if datetime.now() < expires_at:
                    self.cache_stats['hits'] += 1
                    return value
                del self.memory_cache[key]
            self.cache_stats['misses'] += 1
        return None

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        with self.memory_cache_lock:
            self.memory_cache[key] = (value, datetime.now() + timedelta(seconds=ttl))

            # Drop the oldest 10% once the cache grows past its bound
            if len(self.memory_cache) > self.max_entries:
                sorted_items = sorted(self.memory_cache.items(), key=lambda x: x[1][1])
                for k, _ in sorted_items[:max(1, self.max_entries // 10)]:
                    self.memory_cache.pop(k, None)
                logger.debug(f"Cache trimmed to {len(self.memory_cache)} entries")

    def delete(self, key: str) -> bool:
        with self.memory_cache_lock:
            return self.memory_cache.pop(key, None) is not None

    def invalidate_pattern(self, pattern: str) -> int:
        """Remove every key starting with ``pattern`` (a trailing ``*`` is ignored)."""
        prefix = pattern.replace('*', '')
        with self.memory_cache_lock:
            keys_to_remove = [key for key in self.memory_cache if key.startswith(prefix)]
            for key in keys_to_remove:
                self.memory_cache.pop(key, None)
        return len(keys_to_remove)

    def clear(self) -> None:
        with self.memory_cache_lock:
            self.memory_cache.clear()

    def get_stats(self) -> Dict[str, Any]:
        stats = self.cache_stats.copy()
        stats['memory_cache_size'] = len(self.memory_cache)
        total = stats['hits'] + stats['misses']
        stats['hit_ratio'] = stats['hits'] / total if total else 0.0
        return stats
