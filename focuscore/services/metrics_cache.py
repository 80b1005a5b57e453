"""
Typed read-through cache for metrics aggregates.

Entries are keyed by (user_id, time_range, view) so different aggregate
views over the same range never collide. Staleness is bounded only by
explicit invalidation; there is no background refresh. Invalidation
builds a new mapping and swaps it in, so a reader never observes a
half-invalidated cache.

Each invalidation also advances the user's generation. A reader captures
the generation before it queries the store and passes it to ``put``; if
an invalidation landed in between, the result is not cached.
"""

import itertools
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, Optional

import structlog

from focuscore.domain.models.metrics import TimeRange

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CacheKey:
    """Identity of one cached aggregate."""

    user_id: str
    time_range: Optional[TimeRange] = None
    view: str = "metrics"


class MetricsCache:
    """Process-local, size-bounded aggregate cache (LRU eviction)."""

    def __init__(self, max_entries: int = 256):
        self.max_entries = max_entries
        self._entries: "OrderedDict[CacheKey, Any]" = OrderedDict()
        self._counter = itertools.count(1)
        self._generations: Dict[str, int] = {}
        self._cleared_at = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: CacheKey) -> bool:
        return key in self._entries

    def generation(self, user_id: str) -> int:
        """Current invalidation generation for a user."""
        return max(self._generations.get(user_id, 0), self._cleared_at)

    def get(self, key: CacheKey) -> Optional[Any]:
        if key in self._entries:
            self._entries.move_to_end(key)
            return self._entries[key]
        return None

    def put(self, key: CacheKey, value: Any, generation: Optional[int] = None) -> bool:
        """
        Store a value. Returns False without storing when ``generation``
        is given and the user has been invalidated since it was read.
        """
        if generation is not None and generation != self.generation(key.user_id):
            log.debug("metrics_cache_put_skipped", user_id=key.user_id, view=key.view)
            return False

        self._entries[key] = value
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            log.debug("metrics_cache_evicted", user_id=evicted.user_id, view=evicted.view)
        return True

    def invalidate(self, key: CacheKey) -> bool:
        """Drop one entry. Returns True if it was cached."""
        self._generations[key.user_id] = next(self._counter)
        if key not in self._entries:
            return False
        self._entries = OrderedDict((k, v) for k, v in self._entries.items() if k != key)
        return True

    def invalidate_user(self, user_id: str) -> int:
        """Drop every entry for a user. Returns the number dropped."""
        self._generations[user_id] = next(self._counter)
        kept = OrderedDict((k, v) for k, v in self._entries.items() if k.user_id != user_id)
        dropped = len(self._entries) - len(kept)
        self._entries = kept
        if dropped:
            log.debug("metrics_cache_invalidated", user_id=user_id, dropped=dropped)
        return dropped

    def clear(self) -> None:
        self._cleared_at = next(self._counter)
        self._entries = OrderedDict()
