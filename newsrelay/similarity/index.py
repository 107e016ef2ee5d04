"""Near-duplicate headline detection over a bounded, time-windowed history.

One ``SimilarityIndex`` serves one source; histories are never shared
across sources. Lookup is a linear cosine scan, which is fine for the
default window of 500 headlines.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from newsrelay.similarity.embeddings import EmbeddingProvider, Vector, cosine_similarity
from newsrelay.storage.data_store import DataStore
from newsrelay.storage.record_codec import HEADLINE_CODEC, parse_timestamp_field

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.85
DEFAULT_MAX_HISTORY = 500
DEFAULT_RETENTION_HOURS = 48.0


def headlines_filename(source_name: str) -> str:
    return f"{source_name}_recent_headlines.csv"


@dataclass(frozen=True)
class HeadlineRecord:
    headline: str
    embedding: Vector
    recorded_at: float


@dataclass(frozen=True)
class SimilarityMatch:
    is_duplicate: bool
    score: float
    matched_text: Optional[str]

    def to_dict(self) -> Dict:
        return {"isDuplicate": self.is_duplicate, "score": self.score, "matchedText": self.matched_text}


NO_MATCH = SimilarityMatch(is_duplicate=False, score=0.0, matched_text=None)


class SimilarityIndex:
    def __init__(
        self,
        source_name: str,
        provider: EmbeddingProvider,
        data_store: DataStore,
        *,
        threshold: float = DEFAULT_THRESHOLD,
        max_history_size: int = DEFAULT_MAX_HISTORY,
        retention_hours: float = DEFAULT_RETENTION_HOURS,
        clock: Callable[[], float] = time.time,
    ):
        self.source_name = source_name
        self.provider = provider
        self.data_store = data_store
        self.threshold = min(1.0, max(0.0, threshold))
        self.max_history_size = max_history_size
        self.retention_hours = retention_hours
        self._clock = clock
        self._records: Dict[str, HeadlineRecord] = {}

    @property
    def retention_seconds(self) -> float:
        return self.retention_hours * 60 * 60

    def __len__(self) -> int:
        return len(self._records)

    def headlines(self) -> List[str]:
        return list(self._records)

    def load(self) -> int:
        """Load persisted headlines still inside the window and re-embed them."""
        cutoff = self._clock() - self.retention_seconds
        rows = []
        for fields in self.data_store.load_records(headlines_filename(self.source_name), HEADLINE_CODEC):
            if len(fields) < 2 or not fields[0].strip():
                continue
            ts = parse_timestamp_field(fields[1])
            if ts is None or ts < cutoff:
                continue
            rows.append((fields[0].strip(), ts))

        logger.debug(f"Loading {len(rows)} recent headlines for {self.source_name}")
        if rows:
            vectors = self.provider.embed_batch([headline for headline, _ in rows])
            for (headline, ts), vector in zip(rows, vectors):
                if vector is not None:
                    self._records[headline] = HeadlineRecord(headline, vector, ts)
        self.prune()
        logger.info(f"Loaded {len(self._records)} recent headlines with embeddings for {self.source_name}")
        return len(self._records)

    def save(self) -> bool:
        cutoff = self._clock() - self.retention_seconds
        rows = [
            (r.headline, repr(r.recorded_at))
            for r in self._records.values()
            if r.recorded_at >= cutoff
        ]
        ok = self.data_store.save_records(headlines_filename(self.source_name), HEADLINE_CODEC, rows)
        if ok:
            logger.debug(f"Saved {len(rows)} recent headlines for {self.source_name}")
        return ok

    def is_near_duplicate(self, text: str) -> SimilarityMatch:
        """Best match among stored headlines; duplicate iff score >= threshold.

        Any failure to embed ``text`` reports "not a duplicate".
        """
        try:
            vector = self.provider.embed(text)
        except Exception as e:
            logger.warning(f"Embedding failed for similarity check, allowing headline: {e}")
            return NO_MATCH
        if vector is None:
            logger.warning(f"Could not generate embedding for headline, allowing it: \"{text[:50]}\"")
            return NO_MATCH
        if not self._records or not any(vector):
            return NO_MATCH

        best_score = 0.0
        best_text = None
        for record in list(self._records.values()):
            if len(record.embedding) != len(vector):
                continue
            score = cosine_similarity(vector, record.embedding)
            if best_text is None or score > best_score:
                best_score = score
                best_text = record.headline

        if best_text is None:
            return NO_MATCH
        is_duplicate = best_score >= self.threshold
        if is_duplicate:
            logger.debug(f"Similar headline detected: {best_score:.3f} similarity with \"{best_text[:50]}...\"")
        return SimilarityMatch(is_duplicate=is_duplicate, score=best_score, matched_text=best_text)

    def record(self, text: str) -> bool:
        """Remember an accepted headline, prune, and persist."""
        try:
            vector = self.provider.embed(text)
        except Exception as e:
            logger.error(f"Error adding headline to similarity index: {e}")
            return False
        if vector is None:
            logger.warning(f"Skipping similarity record, no embedding for \"{text[:50]}\"")
            return False
        self._records.pop(text, None)
        self._records[text] = HeadlineRecord(text, vector, self._clock())
        self.prune()
        self.save()
        return True

    def prune(self) -> int:
        """Drop records past the retention window, then the oldest above the size bound."""
        initial = len(self._records)
        cutoff = self._clock() - self.retention_seconds
        for headline in [h for h, r in self._records.items() if r.recorded_at < cutoff]:
            del self._records[headline]

        overflow = len(self._records) - self.max_history_size
        if overflow > 0:
            oldest = sorted(self._records.values(), key=lambda r: r.recorded_at)[:overflow]
            for record in oldest:
                del self._records[record.headline]

        removed = initial - len(self._records)
        if removed:
            logger.debug(f"Pruned {removed} old headlines, kept {len(self._records)}")
        return removed

    def update_threshold(self, threshold: float) -> float:
        self.threshold = min(1.0, max(0.0, float(threshold)))
        logger.info(f"Similarity threshold for {self.source_name} updated to {self.threshold}")
        return self.threshold

    def clear(self) -> None:
        self._records.clear()
        self.save()
        logger.info(f"Similarity history cleared for {self.source_name}")

    def stats(self) -> Dict:
        return {
            "totalHeadlines": len(self._records),
            "threshold": self.threshold,
            "retentionHours": self.retention_hours,
            "maxHistorySize": self.max_history_size,
            "cacheSize": self.provider.cache_len,
        }
