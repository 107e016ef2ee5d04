"""The single source adapter type.

Every source goes through ``SourceAdapter``; what differs between sources
(request shapes, payload mapping, enrichment) lives in a strategy object,
and the filtering knobs live in a ``SourcePolicy``. The adapter owns the
per-source state: seen items, the similarity index and the daily quota.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import requests

from newsrelay.ingestion.candidate import Candidate, FetchBatch
from newsrelay.ingestion.filters import (
    MARKS_SEEN,
    QUIET_REASONS,
    StageResult,
    check_author,
    check_denylist,
    check_language,
    check_recency,
    check_required_fields,
    check_similarity,
    check_unseen,
)
from newsrelay.ingestion.quota import DailyRequestQuota
from newsrelay.similarity.embeddings import EmbeddingProvider, EmbeddingUnavailable
from newsrelay.similarity.index import (
    DEFAULT_MAX_HISTORY,
    DEFAULT_RETENTION_HOURS,
    DEFAULT_THRESHOLD,
    SimilarityIndex,
)
from newsrelay.sources.http import SourceAuthError, SourceError, SourceQuotaError
from newsrelay.storage.banned_keywords import BannedKeywordList
from newsrelay.storage.data_store import DataStore
from newsrelay.storage.seen_items import SeenItemStore

logger = logging.getLogger(__name__)

DAY = 24 * 60 * 60
WEEK = 7 * DAY


@dataclass(frozen=True)
class SourcePolicy:
    """Filtering and retention knobs for one source."""

    retention_seconds: float = DAY
    lookback: Optional[timedelta] = timedelta(hours=24)
    target_language: Optional[str] = "en"
    use_denylist: bool = True
    use_similarity: bool = True
    daily_request_limit: Optional[int] = None


class SourceStrategy:
    """What a source supplies to the adapter.

    ``batches`` yields lazily-evaluated requests in the order they should be
    tried; the adapter stops at the first one that produces an accepted
    candidate. ``finalize`` may enrich an accepted candidate and is allowed
    to fail.
    """

    name: str = "base"
    policy: SourcePolicy = SourcePolicy()

    def is_configured(self) -> bool:
        return True

    def initialize(self, data_store: DataStore) -> None:
        pass

    def batches(self, session: requests.Session) -> Iterable[FetchBatch]:
        raise NotImplementedError

    def finalize(self, candidate: Candidate, session: requests.Session) -> Candidate:
        return candidate

    def stats(self) -> Dict[str, Any]:
        return {}


@dataclass
class SourceState:
    """Runtime-adjustable settings; changed without restart."""

    enabled: bool = True
    weight: float = 1.0
    similarity_enabled: bool = True
    similarity_threshold: float = DEFAULT_THRESHOLD


@dataclass
class FetchReport:
    """What happened during the most recent ``fetch_candidate`` call."""

    source: str
    batches: int = 0
    examined: int = 0
    rejections: List[Tuple[Candidate, StageResult]] = field(default_factory=list)
    error: Optional[str] = None
    quota_exhausted: bool = False
    accepted: Optional[Candidate] = None


class SourceAdapter:
    def __init__(
        self,
        strategy: SourceStrategy,
        seen_store: SeenItemStore,
        data_store: DataStore,
        *,
        banned_keywords: Optional[BannedKeywordList] = None,
        embedding_provider: Optional[EmbeddingProvider] = None,
        state: Optional[SourceState] = None,
        similarity_max_history: int = DEFAULT_MAX_HISTORY,
        similarity_retention_hours: float = DEFAULT_RETENTION_HOURS,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.time,
        today: Callable[[], date] = date.today,
    ):
        self.strategy = strategy
        self.policy = strategy.policy
        self.name = strategy.name
        self.seen_store = seen_store
        self.data_store = data_store
        self.banned_keywords = banned_keywords
        self.embedding_provider = embedding_provider
        self.state = state or SourceState()
        if not self.policy.use_similarity:
            self.state.similarity_enabled = False
        self.similarity_max_history = similarity_max_history
        self.similarity_retention_hours = similarity_retention_hours
        self.session = session or requests.Session()
        self._clock = clock
        self.similarity: Optional[SimilarityIndex] = None
        self.quota: Optional[DailyRequestQuota] = None
        if self.policy.daily_request_limit is not None:
            self.quota = DailyRequestQuota(self.name, self.policy.daily_request_limit, data_store, today=today)
        self.initialized = False
        self.last_report: Optional[FetchReport] = None
        self.accepted_count = 0

    # -- lifecycle -------------------------------------------------------

    def is_configured(self) -> bool:
        return self.strategy.is_configured()

    @property
    def enabled(self) -> bool:
        return self.state.enabled and self.is_configured()

    @property
    def weight(self) -> float:
        return self.state.weight

    def initialize(self) -> bool:
        if not self.is_configured():
            self.state.enabled = False
            logger.warning(f"⚠️ {self.name} is missing credentials, endpoint disabled")
            return False

        self.seen_store.set_retention_period(self.name, self.policy.retention_seconds)
        self.seen_store.load(self.name)
        self.strategy.initialize(self.data_store)
        if self.quota is not None:
            self.quota.load()
        if self.state.similarity_enabled:
            self._start_similarity()
        self.initialized = True
        logger.info(f"✅ {self.name} endpoint initialized ({self.seen_store.count(self.name)} seen items)")
        return True

    def _start_similarity(self) -> bool:
        if self.embedding_provider is None:
            logger.warning(f"No embedding provider, similarity checks disabled for {self.name}")
            self.state.similarity_enabled = False
            return False
        if not self.embedding_provider.is_initialized:
            try:
                self.embedding_provider.initialize()
            except EmbeddingUnavailable as e:
                logger.warning(f"Embeddings unavailable, similarity checks disabled for {self.name}: {e}")
                self.state.similarity_enabled = False
                return False
        self.similarity = SimilarityIndex(
            self.name,
            self.embedding_provider,
            self.data_store,
            threshold=self.state.similarity_threshold,
            max_history_size=self.similarity_max_history,
            retention_hours=self.similarity_retention_hours,
            clock=self._clock,
        )
        self.similarity.load()
        self.state.similarity_enabled = True
        return True

    def shutdown(self) -> None:
        if self.similarity is not None:
            self.similarity.save()
        self.seen_store.save(self.name)
        logger.info(f"{self.name} endpoint shut down")

    # -- runtime tuning --------------------------------------------------

    def set_enabled(self, enabled: bool) -> bool:
        if enabled and not self.is_configured():
            return False
        self.state.enabled = enabled
        logger.info(f"{self.name} endpoint {'enabled' if enabled else 'disabled'}")
        return True

    def set_weight(self, weight: float) -> None:
        weight = float(weight)
        if weight < 0:
            raise ValueError("weight must be >= 0")
        self.state.weight = weight
        logger.info(f"{self.name} weight set to {weight}")

    def update_similarity_threshold(self, threshold: float) -> float:
        threshold = min(1.0, max(0.0, float(threshold)))
        self.state.similarity_threshold = threshold
        if self.similarity is not None:
            self.similarity.update_threshold(threshold)
        return threshold

    def enable_similarity(self) -> bool:
        if self.similarity is not None:
            return True
        return self._start_similarity()

    def disable_similarity(self) -> None:
        if self.similarity is not None:
            self.similarity.save()
        self.similarity = None
        self.state.similarity_enabled = False
        logger.info(f"Similarity checks disabled for {self.name}")

    def clear_similarity(self) -> bool:
        if self.similarity is None:
            return False
        self.similarity.clear()
        return True

    # -- fetching --------------------------------------------------------

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc)

    def fetch_candidate(self) -> Optional[Candidate]:
        """Return the first still-eligible candidate across this source's batches, or None."""
        report = FetchReport(source=self.name)
        self.last_report = report
        if not self.enabled:
            return None

        self.seen_store.evict_expired(self.name)
        for batch in self.strategy.batches(self.session):
            if self.quota is not None and batch.counts_toward_quota and not self.quota.can_request():
                logger.warning(f"⚠️ {self.name} daily request limit reached ({self.quota.limit}), skipping")
                report.quota_exhausted = True
                return None

            report.batches += 1
            try:
                candidates = batch.load()
            except (SourceQuotaError, SourceAuthError) as e:
                logger.error(f"❌ {self.name} {batch.label}: {e}")
                report.error = str(e)
                return None
            except SourceError as e:
                logger.warning(f"{self.name} {batch.label} failed, trying next: {e}")
                report.error = str(e)
                continue

            if self.quota is not None and batch.counts_toward_quota:
                self.quota.record_request()

            logger.debug(f"{self.name} {batch.label}: {len(candidates)} raw items")
            candidate = self._first_eligible(candidates, batch.author, report)
            if candidate is not None:
                report.accepted = self._accept(candidate)
                return report.accepted

        logger.info(f"No new items from {self.name}")
        return None

    def evaluate(self, candidate: Candidate, required_author: str = "any") -> StageResult:
        """Run the filter stages in order, stopping at the first rejection."""
        now = self._now()
        stages = (
            lambda c: check_required_fields(c),
            lambda c: check_recency(c, self.policy.lookback, now),
            lambda c: check_author(c, required_author),
            lambda c: check_denylist(c, self.banned_keywords if self.policy.use_denylist else None),
            lambda c: check_unseen(c, self.seen_store, self.name),
            lambda c: check_language(c, self.policy.target_language),
            lambda c: check_similarity(c, self.similarity),
        )
        result = StageResult.ok()
        for stage in stages:
            result = stage(candidate)
            if not result.accepted:
                return result
        return result

    def _first_eligible(self, candidates: List[Candidate], required_author: str, report: FetchReport) -> Optional[Candidate]:
        for candidate in candidates:
            report.examined += 1
            result = self.evaluate(candidate, required_author)
            if result.accepted:
                return candidate
            self._reject(candidate, result)
            report.rejections.append((candidate, result))
        return None

    def _reject(self, candidate: Candidate, result: StageResult) -> None:
        if result.reason in MARKS_SEEN and not self.seen_store.has_seen(self.name, candidate.id):
            self.seen_store.mark_seen(self.name, candidate.id)
        if result.reason in QUIET_REASONS:
            return
        logger.debug(f"{self.name} rejected {candidate.id} ({result.reason.value}): {result.detail}")

    def _accept(self, candidate: Candidate) -> Candidate:
        self.seen_store.mark_seen(self.name, candidate.id)
        if self.similarity is not None:
            self.similarity.record(candidate.similarity_text)
        self.accepted_count += 1
        try:
            candidate = self.strategy.finalize(candidate, self.session)
        except Exception as e:
            logger.warning(f"Could not enrich {self.name} item {candidate.id}: {e}")
        logger.info(f"📰 {self.name} accepted: {candidate.title[:80]}")
        return candidate

    def stats(self) -> Dict[str, Any]:
        stats = {
            "name": self.name,
            "enabled": self.enabled,
            "configured": self.is_configured(),
            "weight": self.state.weight,
            "seenItems": self.seen_store.count(self.name) if self.initialized else 0,
            "acceptedCount": self.accepted_count,
            "vectorEmbedding": self.similarity is not None,
            "similarityThreshold": self.state.similarity_threshold,
        }
        if self.similarity is not None:
            stats["similarity"] = self.similarity.stats()
        if self.quota is not None:
            stats["quota"] = self.quota.stats()
        if self.last_report is not None and self.last_report.error:
            stats["lastError"] = self.last_report.error
        stats.update(self.strategy.stats())
        return stats
