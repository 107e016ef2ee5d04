"""Per-source record of item ids that were already delivered or considered."""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Optional

from newsrelay.storage.data_store import DataStore
from newsrelay.storage.record_codec import SEEN_ITEM_CODEC, parse_timestamp_field

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_SECONDS = 24 * 60 * 60


def seen_items_filename(source_name: str) -> str:
    return f"{source_name}_seen_items.csv"


class SeenItemStore:
    """In-memory ``source -> {item_id: seen_at}`` map with write-through persistence.

    A source's file is loaded the first time the source is touched. Every
    ``mark_seen`` rewrites that source's file; with posts minutes apart this
    is cheaper than reasoning about batching. An entry older than the
    source's retention period reads as unseen even before ``evict_expired``
    removes it.
    """

    def __init__(self, data_store: DataStore, clock: Callable[[], float] = time.time):
        self.data_store = data_store
        self._clock = clock
        self._items: Dict[str, Dict[str, float]] = {}
        self._retention: Dict[str, float] = {}

    def set_retention_period(self, source_name: str, seconds: float) -> None:
        self._retention[source_name] = float(seconds)

    def retention_period(self, source_name: str) -> float:
        return self._retention.get(source_name, DEFAULT_RETENTION_SECONDS)

    def load(self, source_name: str) -> int:
        """(Re)load a source from disk, dropping expired entries. Returns the count kept."""
        items: Dict[str, float] = {}
        for fields in self.data_store.load_records(seen_items_filename(source_name), SEEN_ITEM_CODEC):
            if len(fields) < 2 or not fields[0]:
                continue
            ts = parse_timestamp_field(fields[1])
            if ts is None:
                continue
            items[fields[0]] = ts
        self._items[source_name] = items
        self.evict_expired(source_name)
        logger.debug(f"Loaded {len(items)} seen items for {source_name}")
        return len(items)

    def _bucket(self, source_name: str) -> Dict[str, float]:
        if source_name not in self._items:
            self.load(source_name)
        return self._items[source_name]

    def _is_expired(self, source_name: str, seen_at: float, now: float) -> bool:
        return now - seen_at > self.retention_period(source_name)

    def has_seen(self, source_name: str, item_id: str) -> bool:
        seen_at = self._bucket(source_name).get(item_id)
        if seen_at is None:
            return False
        return not self._is_expired(source_name, seen_at, self._clock())

    def seen_at(self, source_name: str, item_id: str) -> Optional[float]:
        return self._bucket(source_name).get(item_id)

    def mark_seen(self, source_name: str, item_id: str) -> None:
        self._bucket(source_name)[item_id] = self._clock()
        self.save(source_name)

    def evict_expired(self, source_name: str) -> int:
        items = self._bucket(source_name)
        now = self._clock()
        expired = [item_id for item_id, ts in items.items() if self._is_expired(source_name, ts, now)]
        for item_id in expired:
            del items[item_id]
        if expired:
            logger.debug(f"Evicted {len(expired)} expired seen items for {source_name}")
            self.save(source_name)
        return len(expired)

    def save(self, source_name: str) -> bool:
        items = self._items.get(source_name, {})
        records = [(item_id, repr(ts)) for item_id, ts in items.items()]
        return self.data_store.save_records(seen_items_filename(source_name), SEEN_ITEM_CODEC, records)

    def save_all(self) -> None:
        for source_name in list(self._items):
            self.save(source_name)

    def count(self, source_name: str) -> int:
        return len(self._bucket(source_name))
