"""Thread-safe in-memory registry with absolute-deadline expiry.

WHY: Slack delivers the pieces of one print request (command, modal,
file_shared) as independent webhooks. The bot correlates them through
short-lived in-memory records. One registry type serves all three record
kinds so the matching and expiry rules can be tested without Slack.

HOW: Entries live in a plain dict keyed by correlation key, each with an
optional absolute expiry computed from an injectable clock. Expiry is
sweep-driven: get() never evicts, a periodic sweep() removes everything
whose deadline has passed.

RULES:
- All public methods acquire self._lock (bolt runs listeners on threads)
- get() returns stale entries until the next sweep; use is_expired()
- An entry whose expiry equals "now" counts as expired
- Insertion order is preserved, so values() scans oldest-first
- Overwriting a key with put() moves it to the end of the scan order
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Hashable, List, Optional, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

Clock = Callable[[], float]


@dataclass
class _Entry(Generic[V]):
    value: V
    expires_at: Optional[float] = None


class ExpiringRegistry(Generic[K, V]):
    """Key-value store where each entry may carry an absolute deadline.

    RULES:
    - put() overwrites; put_if_absent() only inserts
    - delete() is idempotent and reports whether anything was removed
    - sweep() returns the number of removed entries
    """

    def __init__(self, name: str, clock: Clock = time.time) -> None:
        self.name = name
        self._clock = clock
        self._entries: Dict[K, _Entry[V]] = {}
        self._lock = threading.RLock()

    def _deadline(self, ttl: Optional[float]) -> Optional[float]:
        if ttl is None:
            return None
        return self._clock() + ttl

    def put(self, key: K, value: V, ttl: Optional[float] = None) -> None:
        """Insert or overwrite an entry, recording ``now + ttl`` as its expiry."""
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = _Entry(value=value, expires_at=self._deadline(ttl))

    def put_if_absent(self, key: K, value: V, ttl: Optional[float] = None) -> bool:
        """Insert only if the key is not present. Returns True if inserted."""
        with self._lock:
            if key in self._entries:
                return False
            self._entries[key] = _Entry(value=value, expires_at=self._deadline(ttl))
            return True

    def get(self, key: K) -> Optional[V]:
        with self._lock:
            entry = self._entries.get(key)
            return entry.value if entry is not None else None

    def expires_at(self, key: K) -> Optional[float]:
        with self._lock:
            entry = self._entries.get(key)
            return entry.expires_at if entry is not None else None

    def is_expired(self, key: K, now: Optional[float] = None) -> bool:
        """True if the key is present and its deadline is at or before ``now``."""
        now = self._clock() if now is None else now
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.expires_at is None:
                return False
            return entry.expires_at <= now

    def delete(self, key: K) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def values(self) -> List[V]:
        """Snapshot of all values, oldest insertion first."""
        with self._lock:
            return [entry.value for entry in self._entries.values()]

    def sweep(self, now: Optional[float] = None) -> int:
        """Remove every entry whose expiry is at or before ``now``.

        Entries without an expiry are never removed.
        """
        now = self._clock() if now is None else now
        with self._lock:
            expired = [
                key for key, entry in self._entries.items()
                if entry.expires_at is not None and entry.expires_at <= now
            ]
            for key in expired:
                del self._entries[key]

        if expired:
            logger.debug("Swept %d expired %s entries", len(expired), self.name)
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: Any) -> bool:
        with self._lock:
            return key in self._entries
