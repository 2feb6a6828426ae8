"""Short-lived cache of successful upstream responses.

The cache absorbs bursts of identical requests (page re-renders, duplicate
frame loads). It is keyed by the exact requested URL string with no
normalization, so syntactically different spellings of one URL miss each
other.
"""

from dataclasses import dataclass
from typing import Optional

from relay.app.core.config import settings
from relay.app.core.logging import get_logger
from relay.app.core.store import InMemoryStore, StateStore
from relay.app.core.utils import Clock, now_ms

logger = get_logger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """A cached upstream payload."""
    payload: bytes
    content_type: Optional[str]
    stored_at: float  # milliseconds
    status_code: int = 200


class ResponseCache:
    """TTL cache with a soft size ceiling.

    When a write leaves the store above ``max_entries``, every entry older
    than the TTL is removed. Nothing else is evicted, so the store can stay
    above the ceiling until entries expire.
    """

    def __init__(
        self,
        ttl_seconds: float = 30.0,
        max_entries: int = 100,
        store: Optional[StateStore[CacheEntry]] = None,
        clock: Clock = now_ms,
    ):
        self.ttl_ms = ttl_seconds * 1000
        self.max_entries = max_entries
        self.backend: StateStore[CacheEntry] = store if store is not None else InMemoryStore()
        self._clock = clock

    @classmethod
    def from_settings(cls) -> "ResponseCache":
        return cls(
            ttl_seconds=settings.cache_ttl_seconds,
            max_entries=settings.cache_max_entries,
        )

    def _is_fresh(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.stored_at < self.ttl_ms

    async def lookup(self, url: str) -> Optional[CacheEntry]:
        """Return the fresh entry for ``url``, or None on a miss."""
        entry = self.backend.get(url)
        if entry is None:
            return None
        if not self._is_fresh(entry, self._clock()):
            return None
        return entry

    async def store(
        self,
        url: str,
        payload: bytes,
        content_type: Optional[str],
        status_code: int = 200,
    ) -> CacheEntry:
        """Store a successful response payload.

        Callers must only pass 2xx responses. The status is replayed on hits.
        """
        now = self._clock()
        entry = CacheEntry(
            payload=payload,
            content_type=content_type,
            stored_at=now,
            status_code=status_code,
        )
        self.backend.set(url, entry)

        if len(self.backend) > self.max_entries:
            removed = self.backend.sweep(lambda e: not self._is_fresh(e, now))
            logger.debug(
                f"Cache above ceiling ({self.max_entries}); swept {removed} expired entries"
            )
        return entry

    def __len__(self) -> int:
        return len(self.backend)
