"""Shared ingestion data types."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional


def parse_timestamp(value: Any) -> Optional[datetime]:
    """ISO-8601 string, epoch seconds or datetime -> aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(float(value), tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    s = str(value).strip()
    if not s:
        return None
    s = s.replace("Z", "+00:00")
    if " " in s and "T" not in s:
        s = s.replace(" ", "T", 1)
    try:
        parsed = datetime.fromisoformat(s)
    except ValueError:
        return None
    # Normalize naive to UTC
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: Any, fmt: str = "%b %d, %Y") -> str:
    """Human-readable date for message details; falls back to the raw value."""
    parsed = parse_timestamp(value)
    if parsed is None:
        return str(value or "")
    return parsed.strftime(fmt)


@dataclass(frozen=True)
class Candidate:
    """Normalized item fetched from a source, pending filters."""

    id: str
    title: str
    url: str
    published_at: Optional[datetime] = None
    description: Optional[str] = None
    details: Optional[str] = None
    author: Optional[str] = None
    language: Optional[str] = None
    source_name: str = "unknown"
    raw: Optional[Dict[str, Any]] = field(default=None, compare=False, repr=False)

    @property
    def published_epoch(self) -> Optional[float]:
        return self.published_at.timestamp() if self.published_at else None

    @property
    def similarity_text(self) -> str:
        return self.title

    def with_details(self, details: Optional[str]) -> "Candidate":
        return replace(self, details=details)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "url": self.url,
            "description": self.description,
            "details": self.details,
            "author": self.author,
            "publishedAt": self.published_at.isoformat() if self.published_at else None,
            "source": self.source_name,
        }


@dataclass(frozen=True)
class FetchBatch:
    """One upstream request, made lazily by the adapter.

    ``load`` performs the network call and returns candidates in fetch
    order. ``author`` is the required author for this batch ("any" matches
    every author). Batches that do not count toward a daily quota set
    ``counts_toward_quota`` to False.
    """

    label: str
    load: Callable[[], List[Candidate]]
    author: str = "any"
    counts_toward_quota: bool = True
