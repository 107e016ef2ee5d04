"""Builds the source strategies named in ``KNOWN_ENDPOINTS`` from config."""

from __future__ import annotations

from typing import Dict

from newsrelay.config import Config
from newsrelay.ingestion.adapter import SourceStrategy
from newsrelay.sources.asteroids import AsteroidSource
from newsrelay.sources.congress import CongressSource
from newsrelay.sources.marketaux import MarketauxSource
from newsrelay.sources.reddit import RedditSource
from newsrelay.sources.thenewsapi import TheNewsAPISource


def build_sources(config: Config) -> Dict[str, SourceStrategy]:
    timeout = config.request_timeout
    return {
        "reddit": RedditSource(timeout=timeout or 10.0),
        "congress": CongressSource(config.congress_token, config.current_congress, timeout=timeout or 10.0),
        "asteroid": AsteroidSource(config.nasa_token, timeout=timeout or 15.0),
        "thenewsapi": TheNewsAPISource(config.thenewsapi_token, timeout=timeout or 15.0),
        "marketaux": MarketauxSource(config.marketaux_token, daily_limit=config.marketaux_daily_limit, timeout=timeout or 15.0),
    }
