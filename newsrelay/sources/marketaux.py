"""Marketaux financial news, metered by a daily request allowance."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional

import requests

from newsrelay.ingestion.adapter import WEEK, SourcePolicy, SourceStrategy
from newsrelay.ingestion.candidate import Candidate, FetchBatch, format_timestamp, parse_timestamp
from newsrelay.sources.http import get_json

logger = logging.getLogger(__name__)

MARKETAUX_URL = "https://api.marketaux.com/v1"
ENTITY_RELEVANCE = 0.7
MAX_ENTITIES = 3

STATUS_HINTS = {
    402: "💳 plan limit reached, see https://www.marketaux.com/pricing",
    403: "🔑 access denied, check MARKETAUX_TOKEN",
    429: "⏰ rate limit exceeded, wait before making more requests",
}


def overall_sentiment(article: Dict[str, Any]) -> Optional[str]:
    """positive/negative/None from an explicit label or averaged entity scores."""
    label = article.get("sentiment")
    if isinstance(label, str) and label:
        return None if label == "neutral" else label
    scores = [e.get("sentiment_score") for e in article.get("entities") or [] if isinstance(e.get("sentiment_score"), (int, float))]
    if not scores:
        return None
    mean = sum(scores) / len(scores)
    if mean > 0.15:
        return "positive"
    if mean < -0.15:
        return "negative"
    return None


def article_details(article: Dict[str, Any]) -> str:
    lines = [f"Published: {format_timestamp(article.get('published_at'), '%b %d, %I:%M %p')}"]
    if article.get("source"):
        lines.append(f"Source: {article['source']}")

    entities = [
        e.get("name")
        for e in article.get("entities") or []
        if e.get("name") and (e.get("relevance_score") or 0) > ENTITY_RELEVANCE
    ][:MAX_ENTITIES]
    if entities:
        lines.append(f"Related: {', '.join(entities)}")

    sentiment = overall_sentiment(article)
    if sentiment:
        emoji = "📈" if sentiment == "positive" else "📉"
        lines.append(f"Sentiment: {emoji} {sentiment}")
    return "\n".join(lines)


def map_article(article: Dict[str, Any]) -> Optional[Candidate]:
    if not isinstance(article, dict):
        return None
    return Candidate(
        id=str(article.get("uuid") or ""),
        title=str(article.get("title") or "").strip(),
        url=str(article.get("url") or "").strip(),
        published_at=parse_timestamp(article.get("published_at")),
        description=(article.get("description") or "").strip() or None,
        details=article_details(article),
        author=article.get("source"),
        language=article.get("language") or None,
        source_name="marketaux",
        raw=article,
    )


class MarketauxSource(SourceStrategy):
    name = "marketaux"

    def __init__(self, api_key: str, daily_limit: int = 100, timeout: float = 15.0, base_url: str = MARKETAUX_URL):
        self.api_key = api_key
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")
        self.policy = SourcePolicy(
            retention_seconds=WEEK,
            lookback=timedelta(hours=24),
            target_language="en",
            use_denylist=True,
            use_similarity=False,
            daily_request_limit=daily_limit,
        )

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def fetch_articles(self, session: requests.Session) -> List[Candidate]:
        url = f"{self.base_url}/news/all"
        logger.info(f"🌐 Making API call to: {url}")
        params = {
            "api_token": self.api_key,
            "filter_entities": "true",
            "language": "en",
            "limit": 10,
            "sort": "published_at:desc",
        }
        data = get_json(session, url, source="Marketaux", params=params, timeout=self.timeout, hints=STATUS_HINTS) or {}
        articles = data.get("data") or []
        logger.info(f"✅ API call completed for Marketaux (found {len(articles)} articles)")
        return [c for c in (map_article(a) for a in articles) if c is not None]

    def batches(self, session: requests.Session) -> Iterable[FetchBatch]:
        yield FetchBatch(label="news/all", load=lambda: self.fetch_articles(session))
