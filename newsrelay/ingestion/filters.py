"""Candidate filter stages.

Each stage takes a candidate and returns a ``StageResult``; the adapter
runs them in order and stops at the first rejection. Stages do not touch
persistent state themselves, except through the collaborators passed in.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from newsrelay.ingestion.candidate import Candidate
from newsrelay.similarity.index import SimilarityIndex, SimilarityMatch
from newsrelay.storage.banned_keywords import BannedKeywordList
from newsrelay.storage.seen_items import SeenItemStore

# Common English function words used when a source gives no language tag.
ENGLISH_FUNCTION_WORDS = frozenset({
    "the", "and", "for", "are", "with", "that", "this", "from", "they", "have",
    "been", "their", "said", "each", "which", "what", "will", "there", "could",
})
MIN_FUNCTION_WORDS = 2
SHORT_TEXT_LENGTH = 10

_WORD_RE = re.compile(r"[^\W\d_]+")


class RejectReason(str, Enum):
    MISSING_FIELDS = "missing_fields"
    STALE = "stale"
    AUTHOR_MISMATCH = "author_mismatch"
    BANNED_URL = "banned_url"
    ALREADY_SEEN = "already_seen"
    LANGUAGE = "language"
    NEAR_DUPLICATE = "near_duplicate"


# Rejections that still record the item as seen so it is not re-examined.
MARKS_SEEN = frozenset({RejectReason.BANNED_URL, RejectReason.LANGUAGE, RejectReason.NEAR_DUPLICATE})

# Routine on every poll; not worth reporting.
QUIET_REASONS = frozenset({RejectReason.MISSING_FIELDS, RejectReason.STALE, RejectReason.ALREADY_SEEN})


@dataclass(frozen=True)
class StageResult:
    accepted: bool
    reason: Optional[RejectReason] = None
    detail: str = ""
    match: Optional[SimilarityMatch] = None

    @classmethod
    def ok(cls, match: Optional[SimilarityMatch] = None) -> "StageResult":
        return cls(True, match=match)

    @classmethod
    def reject(cls, reason: RejectReason, detail: str = "", match: Optional[SimilarityMatch] = None) -> "StageResult":
        return cls(False, reason=reason, detail=detail, match=match)


PASS = StageResult.ok()


def check_required_fields(candidate: Candidate) -> StageResult:
    missing = [name for name in ("id", "title", "url") if not (getattr(candidate, name) or "").strip()]
    if missing:
        return StageResult.reject(RejectReason.MISSING_FIELDS, f"missing {', '.join(missing)}")
    return PASS


def check_recency(candidate: Candidate, lookback: Optional[timedelta], now: datetime) -> StageResult:
    """Published time must not be older than ``now - lookback``; future times pass."""
    if lookback is None:
        return PASS
    if candidate.published_at is None:
        return StageResult.reject(RejectReason.STALE, "no published time")
    if candidate.published_at < now - lookback:
        return StageResult.reject(RejectReason.STALE, f"published {candidate.published_at.isoformat()}")
    return PASS


def check_author(candidate: Candidate, required_author: Optional[str]) -> StageResult:
    if not required_author or required_author.lower() == "any":
        return PASS
    if (candidate.author or "").lower() == required_author.lower():
        return PASS
    return StageResult.reject(RejectReason.AUTHOR_MISMATCH, f"author {candidate.author!r} != {required_author!r}")


def check_denylist(candidate: Candidate, banned: Optional[BannedKeywordList]) -> StageResult:
    if banned is not None and banned.matches(candidate.url):
        return StageResult.reject(RejectReason.BANNED_URL, candidate.url)
    return PASS


def check_unseen(candidate: Candidate, seen: SeenItemStore, source_name: str) -> StageResult:
    if seen.has_seen(source_name, candidate.id):
        return StageResult.reject(RejectReason.ALREADY_SEEN)
    return PASS


def _primary_subtag(tag: str) -> str:
    return tag.strip().lower().replace("_", "-").split("-")[0]


def count_function_words(text: str) -> int:
    words = set(_WORD_RE.findall((text or "").lower()))
    return len(words & ENGLISH_FUNCTION_WORDS)


def is_target_language(candidate: Candidate, target_language: str = "en") -> bool:
    """Language tag wins when present; otherwise the English word heuristic.

    The heuristic only knows English, so untagged text is always checked
    against it.
    """
    if candidate.language:
        return _primary_subtag(candidate.language) == _primary_subtag(target_language)
    text = f"{candidate.title or ''} {candidate.description or ''}".strip()
    if len(text) < SHORT_TEXT_LENGTH:
        return True
    return count_function_words(text) >= MIN_FUNCTION_WORDS


def check_language(candidate: Candidate, target_language: Optional[str]) -> StageResult:
    if not target_language:
        return PASS
    if is_target_language(candidate, target_language):
        return PASS
    return StageResult.reject(RejectReason.LANGUAGE, candidate.language or "heuristic")


def check_similarity(candidate: Candidate, index: Optional[SimilarityIndex]) -> StageResult:
    if index is None:
        return PASS
    match = index.is_near_duplicate(candidate.similarity_text)
    if match.is_duplicate:
        return StageResult.reject(
            RejectReason.NEAR_DUPLICATE,
            f"{match.score:.3f} similar to \"{(match.matched_text or '')[:50]}\"",
            match=match,
        )
    return StageResult.ok(match=match)
