"""Hard daily request ceiling for metered APIs."""

from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Dict

from newsrelay.storage.data_store import DataStore
from newsrelay.storage.record_codec import SEEN_ITEM_CODEC

logger = logging.getLogger(__name__)


def request_count_filename(name: str) -> str:
    return f"{name}_request_count.csv"


class DailyRequestQuota:
    """Counts requests per local calendar date.

    The date is re-read on every check, so a long-running process rolls
    over at midnight without any timer.
    """

    def __init__(self, name: str, limit: int, data_store: DataStore, today: Callable[[], date] = date.today):
        self.name = name
        self.limit = int(limit)
        self.data_store = data_store
        self._today = today
        self._date = today().isoformat()
        self._count = 0

    def load(self) -> None:
        records = self.data_store.load_records(request_count_filename(self.name), SEEN_ITEM_CODEC)
        for fields in records:
            if len(fields) < 2:
                continue
            try:
                count = int(fields[1])
            except ValueError:
                continue
            self._date, self._count = fields[0], count
        self._roll_over()
        logger.info(f"{self.name} requests today: {self._count}/{self.limit}")

    def save(self) -> bool:
        return self.data_store.save_records(
            request_count_filename(self.name), SEEN_ITEM_CODEC, [(self._date, str(self._count))]
        )

    def _roll_over(self) -> None:
        today = self._today().isoformat()
        if self._date != today:
            logger.info(f"New day for {self.name}, resetting request count (was {self._count} on {self._date})")
            self._date = today
            self._count = 0
            self.save()

    def can_request(self) -> bool:
        self._roll_over()
        return self._count < self.limit

    def record_request(self) -> int:
        self._roll_over()
        self._count += 1
        self.save()
        logger.debug(f"{self.name} request count: {self._count}/{self.limit}")
        return self._count

    @property
    def count(self) -> int:
        self._roll_over()
        return self._count

    def remaining(self) -> int:
        return max(0, self.limit - self.count)

    def stats(self) -> Dict:
        return {
            "date": self._today().isoformat(),
            "requestsToday": self.count,
            "dailyLimit": self.limit,
            "remaining": self.remaining(),
        }
