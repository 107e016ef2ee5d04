"""Reddit listing feeds (``/r/<sub>/new.json`` and friends)."""

from __future__ import annotations

import logging
import random
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional

import requests

from newsrelay.ingestion.adapter import DAY, SourcePolicy, SourceStrategy
from newsrelay.ingestion.candidate import Candidate, FetchBatch, parse_timestamp
from newsrelay.sources.http import get_json
from newsrelay.storage.data_store import DataStore

logger = logging.getLogger(__name__)

REDDIT_SOURCES_FILE = "reddit_sources.csv"
SOURCES_HEADER = "author,json_url"
DEFAULT_FEED_URL = "https://www.reddit.com/r/news/new.json"
USER_AGENT = "news_feed_monitor"


def map_post(child: Dict[str, Any]) -> Optional[Candidate]:
    data = child.get("data") if isinstance(child, dict) else None
    if not isinstance(data, dict):
        return None
    return Candidate(
        id=str(data.get("id") or ""),
        title=str(data.get("title") or "").strip(),
        url=str(data.get("url_overridden_by_dest") or data.get("url") or "").strip(),
        published_at=parse_timestamp(data.get("created_utc")),
        author=data.get("author"),
        source_name="reddit",
        raw=data,
    )


class RedditSource(SourceStrategy):
    """Each configured feed is one batch; feeds are shuffled every fetch."""

    name = "reddit"
    policy = SourcePolicy(
        retention_seconds=DAY,
        lookback=timedelta(hours=24),
        target_language=None,
        use_denylist=True,
        use_similarity=False,
    )

    def __init__(self, timeout: float = 10.0, rng: Optional[random.Random] = None):
        self.timeout = timeout
        self.rng = rng or random.Random()
        self.data_store: Optional[DataStore] = None
        # json_url -> author
        self.feeds: Dict[str, str] = {}

    def initialize(self, data_store: DataStore) -> None:
        self.data_store = data_store
        self.load_feeds()

    def load_feeds(self) -> int:
        self.data_store.ensure_file(REDDIT_SOURCES_FILE, f"{SOURCES_HEADER}\nany,{DEFAULT_FEED_URL}\n")
        feeds: Dict[str, str] = {}
        for line in self.data_store.load_lines(REDDIT_SOURCES_FILE):
            if line.lower() == SOURCES_HEADER:
                continue
            author, sep, json_url = line.partition(",")
            if not sep or not author.strip() or not json_url.strip():
                continue
            feeds[json_url.strip()] = author.strip()
        if not feeds:
            feeds[DEFAULT_FEED_URL] = "any"
        self.feeds = feeds
        logger.info(f"Loaded {len(feeds)} reddit feeds")
        return len(feeds)

    def save_feeds(self) -> bool:
        lines = [SOURCES_HEADER] + [f"{author},{json_url}" for json_url, author in self.feeds.items()]
        return self.data_store.save_lines(REDDIT_SOURCES_FILE, lines)

    def add_feed(self, author: str, json_url: str) -> None:
        author = (author or "any").strip() or "any"
        json_url = (json_url or "").strip()
        if not json_url.startswith(("http://", "https://")):
            raise ValueError("json_url must be an http(s) URL")
        self.feeds[json_url] = author
        self.save_feeds()
        logger.info(f"Reddit feed added: {author} {json_url}")

    def remove_feed(self, json_url: str) -> bool:
        if self.feeds.pop((json_url or "").strip(), None) is None:
            return False
        self.save_feeds()
        logger.info(f"Reddit feed removed: {json_url}")
        return True

    def list_feeds(self) -> List[Dict[str, str]]:
        return [{"author": author, "jsonUrl": json_url} for json_url, author in self.feeds.items()]

    def fetch_feed(self, session: requests.Session, json_url: str) -> List[Candidate]:
        data = get_json(session, json_url, source="Reddit", headers={"User-Agent": USER_AGENT}, timeout=self.timeout)
        children = ((data or {}).get("data") or {}).get("children") or []
        return [c for c in (map_post(child) for child in children) if c is not None]

    def batches(self, session: requests.Session) -> Iterable[FetchBatch]:
        entries = list(self.feeds.items())
        self.rng.shuffle(entries)
        for json_url, author in entries:
            yield FetchBatch(
                label=json_url,
                load=lambda url=json_url: self.fetch_feed(session, url),
                author=author,
            )

    def stats(self) -> Dict[str, Any]:
        return {"feeds": len(self.feeds)}
