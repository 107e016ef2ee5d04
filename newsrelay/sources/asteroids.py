"""NASA NeoWs: potentially hazardous asteroids with upcoming close approaches."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

import requests

from newsrelay.ingestion.adapter import WEEK, SourcePolicy, SourceStrategy
from newsrelay.ingestion.candidate import Candidate, FetchBatch
from newsrelay.sources.http import get_json

logger = logging.getLogger(__name__)

NASA_API_URL = "https://api.nasa.gov"
FEED_DAYS = 7
MAX_LISTED = 5


def close_approach_time(asteroid: Dict[str, Any]) -> Optional[datetime]:
    approaches = asteroid.get("close_approach_data") or []
    if not approaches:
        return None
    approach = approaches[0]
    epoch_ms = approach.get("epoch_date_close_approach")
    if epoch_ms is not None:
        try:
            return datetime.fromtimestamp(float(epoch_ms) / 1000.0, tz=timezone.utc)
        except (TypeError, ValueError, OverflowError, OSError):
            pass
    full = approach.get("close_approach_date_full")
    if full:
        try:
            return datetime.strptime(full, "%Y-%b-%d %H:%M").replace(tzinfo=timezone.utc)
        except ValueError:
            pass
    day = approach.get("close_approach_date")
    if day:
        try:
            return datetime.strptime(day, "%Y-%m-%d").replace(tzinfo=timezone.utc)
        except ValueError:
            return None
    return None


def _float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def asteroid_details(asteroid: Dict[str, Any]) -> str:
    diameter = _float(((asteroid.get("estimated_diameter") or {}).get("miles") or {}).get("estimated_diameter_max"))
    approach = (asteroid.get("close_approach_data") or [{}])[0]
    when = close_approach_time(asteroid)
    approach_text = when.strftime("%b %d, %Y, %I:%M %p") if when else approach.get("close_approach_date_full", "")
    speed = _float((approach.get("relative_velocity") or {}).get("miles_per_hour"))
    distance = _float((approach.get("miss_distance") or {}).get("miles"))
    return (
        f"Diameter: {diameter:.2f} miles | "
        f"Approach: {approach_text} | "
        f"Speed: {speed:,.0f} mph | "
        f"Distance: {distance:,.0f} miles"
    )


def map_asteroid(asteroid: Dict[str, Any]) -> Candidate:
    return Candidate(
        id=str(asteroid.get("id") or ""),
        title=f"☄️ HAZARDOUS ASTEROID: {asteroid.get('name', '')}",
        url=str(asteroid.get("nasa_jpl_url") or ""),
        published_at=close_approach_time(asteroid),
        details=asteroid_details(asteroid),
        source_name="asteroid",
        raw=asteroid,
    )


class AsteroidSource(SourceStrategy):
    """The candidate timestamp is the close-approach time, so upcoming approaches pass the lookback."""

    name = "asteroid"
    policy = SourcePolicy(
        retention_seconds=WEEK,
        lookback=timedelta(hours=24),
        target_language=None,
        use_denylist=False,
        use_similarity=False,
    )

    def __init__(self, api_key: str, timeout: float = 15.0, base_url: str = NASA_API_URL, clock: Callable[[], float] = time.time):
        self.api_key = api_key
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")
        self._clock = clock

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def fetch_hazardous(self, session: requests.Session) -> List[Dict[str, Any]]:
        """Hazardous asteroids seen in the last week whose approach is still ahead, earliest first."""
        now = datetime.fromtimestamp(self._clock(), tz=timezone.utc)
        params = {
            "start_date": (now - timedelta(days=FEED_DAYS)).date().isoformat(),
            "end_date": now.date().isoformat(),
            "api_key": self.api_key,
        }
        data = get_json(session, f"{self.base_url}/neo/rest/v1/feed", source="NASA", params=params, timeout=self.timeout) or {}

        hazardous = []
        for objects in (data.get("near_earth_objects") or {}).values():
            for asteroid in objects or []:
                if not asteroid.get("is_potentially_hazardous_asteroid"):
                    continue
                when = close_approach_time(asteroid)
                if when is not None and when >= now:
                    hazardous.append((when, asteroid))
        hazardous.sort(key=lambda pair: pair[0])
        logger.debug(f"Found {len(hazardous)} upcoming hazardous asteroids")
        return [asteroid for _, asteroid in hazardous]

    def batches(self, session: requests.Session) -> Iterable[FetchBatch]:
        yield FetchBatch(
            label="neo feed",
            load=lambda: [map_asteroid(a) for a in self.fetch_hazardous(session)],
        )

    def summary_lines(self, session: requests.Session, limit: int = MAX_LISTED) -> List[str]:
        """One line per upcoming hazardous asteroid for the chat command."""
        asteroids = self.fetch_hazardous(session)
        if not asteroids:
            return ["No upcoming hazardous asteroids found this week."]
        lines = [f"☄️ {len(asteroids)} upcoming hazardous asteroid(s):"]
        for asteroid in asteroids[:limit]:
            lines.append(f"• {asteroid.get('name', '?')} - {asteroid_details(asteroid)}")
        if len(asteroids) > limit:
            lines.append(f"... and {len(asteroids) - limit} more")
        return lines
