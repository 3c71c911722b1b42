"""
cache/store.py -- Short-lived in-process cache for resolved sessions.

Avoids a database round trip on every authenticated request by keeping the
resolved session for a configurable TTL (default 5 minutes). The cache only
ever shortens the path to a session that was valid when stored: callers must
still check the session's own expiry on a hit, and sign-out / password reset
evict entries explicitly.

Session resolution runs in the threadpool, so every operation takes the
cache lock.

Usage:
    cache = SessionCache(ttl=300)
    cache.set(token_hash, session)
    session = cache.get(token_hash)     # value or None
    cache.delete(token_hash)
    cache.purge_expired()               # call periodically to trim old entries
"""

import threading
import time
from typing import Any, Callable, Optional

_DEFAULT_TTL = 5 * 60  # 5 minutes in seconds


class SessionCache:
    def __init__(self, ttl: int = _DEFAULT_TTL, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value for key if it exists and hasn't expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, cached_at = entry
            if self._clock() - cached_at > self.ttl:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any) -> None:
        """Store value for key, replacing any existing entry."""
        if self.ttl <= 0:
            return
        with self._lock:
            self._entries[key] = (value, self._clock())

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def delete_where(self, predicate: Callable[[Any], bool]) -> int:
        """Evict every entry whose value matches predicate. Returns number removed."""
        with self._lock:
            doomed = [key for key, (value, _) in self._entries.items() if predicate(value)]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def purge_expired(self) -> int:
        """Delete all entries older than TTL. Returns number of entries removed."""
        with self._lock:
            cutoff = self._clock() - self.ttl
            expired = [key for key, (_, cached_at) in self._entries.items() if cached_at < cutoff]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
