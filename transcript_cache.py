import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Any

from models import TranscriptResult

# Entries are valid strictly less than this many seconds after being written
CACHE_TTL_SECONDS = 60 * 60


def cache_key(video_id: str, language: str = "en") -> str:
    """Composite key for a video_id and language combination"""
    return f"{video_id}_{language}"


@dataclass
class CacheEntry:
    key: str
    written_at: float
    value: TranscriptResult


class TranscriptCache:
    """In-memory transcript cache with a fixed one hour TTL.

    Expiry is lazy: stale entries read as a miss but stay in memory until
    overwritten or until cleanup_expired() runs, so growth is unbounded.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self.ttl_seconds = CACHE_TTL_SECONDS
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

        logging.info(f"TranscriptCache initialized with {self.ttl_seconds}s TTL")

    def _is_fresh(self, entry: CacheEntry, now: float) -> bool:
        return (now - entry.written_at) < self.ttl_seconds

    def get(self, key: str) -> Optional[TranscriptResult]:
        """Get cached result if available and not expired"""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or not self._is_fresh(entry, self.clock()):
                self._misses += 1
                logging.debug(f"No valid cache entry for {key}")
                return None
            self._hits += 1

        logging.info(f"Cache hit for {key}")
        return entry.value

    def put(self, key: str, value: TranscriptResult) -> None:
        """Store result, overwriting any previous entry for the key"""
        with self._lock:
            self._entries[key] = CacheEntry(key=key, written_at=self.clock(), value=value)

        logging.info(f"Cached result for {key} ({len(value.captions)} captions, ttl: {self.ttl_seconds}s)")

    def view(self, bypass: bool = False) -> "CacheView":
        """Per-request handle; a bypassed view neither reads nor writes"""
        return CacheView(self, bypass)

    def cleanup_expired(self) -> int:
        """Remove expired entries and return count of removed items"""
        with self._lock:
            now = self.clock()
            expired_keys = [k for k, e in self._entries.items() if not self._is_fresh(e, now)]
            for key in expired_keys:
                del self._entries[key]

        if expired_keys:
            logging.info(f"Cleaned up {len(expired_keys)} expired cache entries")
        return len(expired_keys)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            now = self.clock()
            total = len(self._entries)
            valid = sum(1 for e in self._entries.values() if self._is_fresh(e, now))
            empty = sum(1 for e in self._entries.values()
                        if self._is_fresh(e, now) and not e.value.captions)

            return {
                "total_entries": total,
                "valid_entries": valid,
                "expired_entries": total - valid,
                "empty_results": empty,
                "hits": self._hits,
                "misses": self._misses,
                "ttl_seconds": self.ttl_seconds,
            }

    def clear_all(self) -> None:
        """Clear all cache entries (for testing/maintenance)"""
        with self._lock:
            self._entries.clear()
        logging.info("Cleared all cache entries")


class CacheView:
    """Cache access scoped to a single request"""

    def __init__(self, cache: TranscriptCache, bypass: bool):
        self.cache = cache
        self.bypass = bypass

    def get(self, key: str) -> Optional[TranscriptResult]:
        if self.bypass:
            return None
        return self.cache.get(key)

    def put(self, key: str, value: TranscriptResult) -> None:
        if self.bypass:
            return
        self.cache.put(key, value)
