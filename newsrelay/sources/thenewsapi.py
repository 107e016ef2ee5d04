"""TheNewsAPI: headlines first, then top stories."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional

import requests

from newsrelay.ingestion.adapter import DAY, SourcePolicy, SourceStrategy
from newsrelay.ingestion.candidate import Candidate, FetchBatch, parse_timestamp
from newsrelay.sources.http import get_json

logger = logging.getLogger(__name__)

THENEWSAPI_URL = "https://api.thenewsapi.com/v1"
ENDPOINTS = ("headlines", "top")

STATUS_HINTS = {
    402: "💳 paid subscription required, see https://www.thenewsapi.com/pricing",
    403: "🔑 access denied, check your API token or subscription level",
    429: "⏰ rate limit exceeded, wait before making more requests",
}


def _article_records(data: Any) -> List[Dict[str, Any]]:
    records = (data or {}).get("data") or []
    # /news/headlines groups articles by category
    if isinstance(records, dict):
        grouped: List[Dict[str, Any]] = []
        for items in records.values():
            grouped.extend(items or [])
        return grouped
    return records


def map_article(article: Dict[str, Any], source_name: str = "thenewsapi") -> Optional[Candidate]:
    if not isinstance(article, dict):
        return None
    description = (article.get("description") or article.get("snippet") or "").strip()
    return Candidate(
        id=str(article.get("uuid") or ""),
        title=str(article.get("title") or "").strip(),
        url=str(article.get("url") or "").strip(),
        published_at=parse_timestamp(article.get("published_at")),
        description=description or None,
        author=article.get("source"),
        language=article.get("language") or None,
        source_name=source_name,
        raw=article,
    )


class TheNewsAPISource(SourceStrategy):
    name = "thenewsapi"
    policy = SourcePolicy(
        retention_seconds=DAY,
        lookback=timedelta(hours=24),
        target_language="en",
        use_denylist=True,
        use_similarity=True,
    )

    def __init__(self, api_key: str, timeout: float = 15.0, base_url: str = THENEWSAPI_URL):
        self.api_key = api_key
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def fetch_articles(self, session: requests.Session, endpoint: str) -> List[Candidate]:
        url = f"{self.base_url}/news/{endpoint}"
        logger.info(f"🌐 Making API call to: {url} ({endpoint})")
        params = {
            "api_token": self.api_key,
            "language": "en",
            "limit": 10,
            "sort": "published_at:desc",
        }
        data = get_json(session, url, source="TheNewsAPI", params=params, timeout=self.timeout, hints=STATUS_HINTS)
        articles = _article_records(data)
        logger.info(f"✅ API call completed for {endpoint} (found {len(articles)} articles)")
        return [c for c in (map_article(a) for a in articles) if c is not None]

    def batches(self, session: requests.Session) -> Iterable[FetchBatch]:
        for endpoint in ENDPOINTS:
            yield FetchBatch(label=endpoint, load=lambda e=endpoint: self.fetch_articles(session, e))
