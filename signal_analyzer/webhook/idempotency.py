"""Deduplication of inbound webhook signals."""

from collections import OrderedDict
from datetime import datetime

from signal_analyzer.utils.timestamps import utc_now


class IdempotencyStore:
    """In-memory LRU of signal keys already accepted, with first-seen times.

    Bounded to ``max_size`` entries; the least recently seen key is evicted.
    """

    def __init__(self, max_size: int = 10000):
        self._max_size = max_size
        self._store: OrderedDict[str, datetime] = OrderedDict()

    def check_and_add(self, key: str) -> bool:
        """Record ``key``. Returns True if it was already present."""
        if key in self._store:
            self._store.move_to_end(key)
            return True

        self._store[key] = utc_now()
        while len(self._store) > self._max_size:
            self._store.popitem(last=False)
        return False

    def first_seen(self, key: str) -> datetime | None:
        return self._store.get(key)

    def __contains__(self, key: str) -> bool:
        return key in self._store

    def __len__(self) -> int:
        return len(self._store)
