"""
TTL cache for prediction results.

Keys are md5 digests of the request's rounded cache fields. Expiry is lazy:
an entry is only dropped when a lookup finds it stale. When the store is full
the oldest entry is evicted. compute_once() gives at-most-one in-flight
computation per key; concurrent callers for the same key block on that key's
lock and then read the freshly stored entry.
"""
import copy
import hashlib
import logging
import threading
import time
from dataclasses import dataclass

logger = logging.getLogger(__name__)

__all__ = ['CacheEntry', 'PredictionCache', 'cache_key']

DEFAULT_TTL = 300.0
DEFAULT_MAX_SIZE = 200

def cache_key(request):
    """md5 of the request's identifying fields."""
    return hashlib.md5(request.cache_fields().encode()).hexdigest()

@dataclass(frozen=True)
class CacheEntry:
    key: str
    result: object
    created_at: float
    expires_at: float

class PredictionCache:
    """
    Thread-safe TTL store.

    `clock` returns seconds (time.time by default) and is injectable so tests
    can step past the TTL without sleeping. Hits return a deep copy so
    callers cannot mutate the stored result.
    """
    def __init__(self, ttl=DEFAULT_TTL, max_size=DEFAULT_MAX_SIZE, clock=None):
        self.ttl = ttl
        self.max_size = max_size
        self.clock = clock or time.time
        self._entries = {}
        self._lock = threading.Lock()
        self._key_locks = {}
        self._key_users = {}
        self.hits = 0
        self.misses = 0

    def __len__(self):
        return len(self._entries)

    def __contains__(self, key):
        return self.get(key) is not None

    def get(self, key):
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            if self.clock() >= entry.expires_at:
                del self._entries[key]
                self.misses += 1
                return None
            self.hits += 1
            return copy.deepcopy(entry.result)

    def put(self, key, result):
        now = self.clock()
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.max_size:
                oldest = min(self._entries.values(), key=lambda e: e.created_at)
                del self._entries[oldest.key]
                logger.debug(f"Cache full ({self.max_size}), evicted {oldest.key}")
            self._entries[key] = CacheEntry(key, copy.deepcopy(result), now, now + self.ttl)

    def invalidate(self, key=None):
        """Drop one key, or everything when key is None."""
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    def _acquire_slot(self, key):
        with self._lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = self._key_locks[key] = threading.Lock()
            self._key_users[key] = self._key_users.get(key, 0) + 1
        lock.acquire()
        return lock

    def _release_slot(self, key, lock):
        lock.release()
        with self._lock:
            self._key_users[key] -= 1
            if self._key_users[key] == 0:
                del self._key_users[key]
                del self._key_locks[key]

    def compute_once(self, key, compute):
        """
        Return (result, hit). On a miss, run `compute()` while holding the
        key's slot. `compute` returns (result, cacheable); only cacheable
        results are stored, so a caller waiting behind a failed or degraded
        computation runs its own.
        """
        cached = self.get(key)
        if cached is not None:
            return cached, True
        lock = self._acquire_slot(key)
        try:
            cached = self.get(key)
            if cached is not None:
                return cached, True
            result, cacheable = compute()
            if cacheable:
                self.put(key, result)
            return result, False
        finally:
            self._release_slot(key, lock)

    def stats(self):
        with self._lock:
            return {'size': len(self._entries), 'max_size': self.max_size, 'ttl': self.ttl,
                    'hits': self.hits, 'misses': self.misses}
