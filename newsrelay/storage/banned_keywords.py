"""Shared URL denylist, persisted as ``banned_keywords.csv``."""

from __future__ import annotations

import logging
from typing import List

from newsrelay.storage.data_store import DataStore

logger = logging.getLogger(__name__)

BANNED_KEYWORDS_FILE = "banned_keywords.csv"


class BannedKeywordList:
    """Case-insensitive substrings that disqualify a URL."""

    def __init__(self, data_store: DataStore):
        self.data_store = data_store
        self._keywords: List[str] = []

    def load(self) -> int:
        self.data_store.ensure_file(BANNED_KEYWORDS_FILE, "")
        keywords: List[str] = []
        for line in self.data_store.load_lines(BANNED_KEYWORDS_FILE):
            for keyword in line.split(","):
                keyword = keyword.strip()
                if keyword and keyword not in keywords:
                    keywords.append(keyword)
        self._keywords = keywords
        return len(keywords)

    def save(self) -> bool:
        return self.data_store.save_lines(BANNED_KEYWORDS_FILE, self._keywords)

    @property
    def keywords(self) -> List[str]:
        return list(self._keywords)

    def add(self, keyword: str) -> bool:
        keyword = (keyword or "").strip()
        if not keyword or keyword in self._keywords:
            return False
        self._keywords.append(keyword)
        self.save()
        logger.info(f"Banned keyword added: {keyword}")
        return True

    def remove(self, keyword: str) -> bool:
        keyword = (keyword or "").strip()
        if keyword not in self._keywords:
            return False
        self._keywords.remove(keyword)
        self.save()
        logger.info(f"Banned keyword removed: {keyword}")
        return True

    def matches(self, url: str) -> bool:
        lower_url = (url or "").lower()
        return any(k.lower() in lower_url for k in self._keywords)

    def __len__(self) -> int:
        return len(self._keywords)
