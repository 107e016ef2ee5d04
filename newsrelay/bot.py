"""NewsBot: wires storage, sources, scheduler and delivery together."""

from __future__ import annotations

import logging
import random
import time
from datetime import date
from typing import Any, Callable, Dict, List, Optional

import requests

from newsrelay.commands import CommandResult, CommandRouter
from newsrelay.config import Config
from newsrelay.delivery.discord import DiscordTransport
from newsrelay.delivery.gate import ActivityLog, DeliveryGate, MessageTransport
from newsrelay.ingestion.adapter import SourceAdapter, SourceState, SourceStrategy
from newsrelay.scheduler import CycleResult, CycleState, SelectionScheduler
from newsrelay.similarity.embeddings import EmbeddingProvider, create_embedding_provider
from newsrelay.sources.reddit import RedditSource
from newsrelay.sources.registry import build_sources
from newsrelay.storage.banned_keywords import BannedKeywordList
from newsrelay.storage.data_store import DataStore
from newsrelay.storage.seen_items import SeenItemStore

logger = logging.getLogger(__name__)

_DEFAULT = object()


class NewsBot:
    """Owns every long-lived component; the control panel and main loop talk to this."""

    def __init__(
        self,
        config: Config,
        transport: Optional[MessageTransport] = None,
        strategies: Optional[Dict[str, SourceStrategy]] = None,
        embedding_provider: Any = _DEFAULT,
        session: Optional[requests.Session] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
        today: Callable[[], date] = date.today,
    ):
        self.config = config
        self._clock = clock
        self._today = today
        self.session = session or requests.Session()
        self.data_store = DataStore(config.data_directory)
        self.seen_store = SeenItemStore(self.data_store, clock=clock)
        self.banned_keywords = BannedKeywordList(self.data_store)
        self.transport = transport or DiscordTransport(
            config.discord_bot_token,
            self.data_store,
            webhook_urls=config.discord_webhook_urls,
            testing=config.testing,
            test_channel=config.test_channel,
        )
        self.activity = ActivityLog(clock=clock)
        self.gate = DeliveryGate(self.transport, self.activity)
        if embedding_provider is _DEFAULT:
            embedding_provider = create_embedding_provider(config)
        self.embedding_provider: Optional[EmbeddingProvider] = embedding_provider

        self.adapters: Dict[str, SourceAdapter] = {}
        for strategy in (strategies if strategies is not None else build_sources(config)).values():
            self.register_endpoint(strategy)

        self.cycle_state = CycleState.from_config(config)
        self.scheduler = SelectionScheduler(self.adapters, self.gate, self.cycle_state, rng=rng, clock=clock)
        self.commands = CommandRouter(self)
        self.started_at: Optional[float] = None
        self.is_running = False
        self._shut_down = False

    def register_endpoint(self, strategy: SourceStrategy) -> SourceAdapter:
        state = SourceState(
            enabled=self.config.is_endpoint_enabled(strategy.name),
            weight=self.config.endpoint_weight(strategy.name),
            similarity_enabled=self.config.vector_embedding,
            similarity_threshold=self.config.similarity_threshold,
        )
        adapter = SourceAdapter(
            strategy,
            self.seen_store,
            self.data_store,
            banned_keywords=self.banned_keywords,
            embedding_provider=self.embedding_provider,
            state=state,
            similarity_max_history=self.config.similarity_max_history,
            similarity_retention_hours=self.config.similarity_retention_hours,
            session=self.session,
            clock=self._clock,
            today=self._today,
        )
        self.adapters[strategy.name] = adapter
        return adapter

    def get_endpoint(self, name: str) -> Optional[SourceAdapter]:
        return self.adapters.get(name)

    @property
    def reddit(self) -> Optional[RedditSource]:
        adapter = self.adapters.get("reddit")
        if adapter is not None and isinstance(adapter.strategy, RedditSource):
            return adapter.strategy
        return None

    def initialize(self) -> bool:
        logger.info("🚀 Initializing news relay...")
        self.banned_keywords.load()
        logger.info(f"Loaded {len(self.banned_keywords)} banned keywords")
        if not self.transport.initialize():
            logger.warning("⚠️ Messaging transport not ready; updates will not be delivered")

        for name, adapter in self.adapters.items():
            if not adapter.is_configured():
                adapter.state.enabled = False
                if self.config.is_endpoint_enabled(name):
                    logger.warning(f"⚠️ {name} is enabled but missing credentials, disabling")
                continue
            adapter.initialize()

        enabled = [a.name for a in self.scheduler.enabled_adapters()]
        logger.info(f"✅ Enabled endpoints: {', '.join(enabled) or 'none'}")
        self.started_at = self._clock()
        self.is_running = True
        return self.transport.is_ready()

    # -- cycles ----------------------------------------------------------

    def run_cycle(self) -> CycleResult:
        return self.scheduler.run_cycle()

    def manual_fetch(self, endpoint: Optional[str] = None) -> CycleResult:
        logger.info(f"Manual fetch requested{f' for {endpoint}' if endpoint else ''}")
        return self.scheduler.try_run_exclusive(endpoint)

    @property
    def current_interval_minutes(self) -> float:
        return self.cycle_state.current_interval_minutes

    def set_interval(self, base_minutes: Optional[float] = None, max_minutes: Optional[float] = None) -> Dict[str, Any]:
        self.cycle_state.set_intervals(base_minutes, max_minutes)
        logger.info(
            f"Polling interval set to {self.cycle_state.base_interval_minutes} min "
            f"(max {self.cycle_state.max_interval_minutes} min)"
        )
        return self.cycle_state.to_dict()

    # -- runtime tuning --------------------------------------------------

    def add_banned_keyword(self, keyword: str) -> bool:
        return self.banned_keywords.add(keyword)

    def remove_banned_keyword(self, keyword: str) -> bool:
        return self.banned_keywords.remove(keyword)

    def handle_command(self, name: str, **kwargs) -> CommandResult:
        return self.commands.handle(name, **kwargs)

    def status(self) -> Dict[str, Any]:
        transport_stats = getattr(self.transport, "stats", None)
        return {
            "running": self.is_running,
            "startedAt": self.started_at,
            "transportReady": self.transport.is_ready(),
            "transport": transport_stats() if transport_stats is not None else {},
            "enabledEndpoints": [a.name for a in self.scheduler.enabled_adapters()],
            "scheduler": self.scheduler.stats(),
            "delivery": self.gate.stats(),
            "bannedKeywords": len(self.banned_keywords),
            "endpoints": {name: adapter.stats() for name, adapter in self.adapters.items()},
        }

    def recent_activity(self, limit: int = 50) -> List[Dict[str, Any]]:
        return [event.to_dict() for event in self.activity.recent(limit)]

    def shutdown(self, timeout: float = 30.0) -> None:
        if self._shut_down:
            return
        self._shut_down = True
        logger.info("🛑 Shutting down news relay...")
        self.scheduler.stop(timeout=timeout)
        for adapter in self.adapters.values():
            if adapter.initialized:
                try:
                    adapter.shutdown()
                except Exception as e:
                    logger.error(f"Error shutting down {adapter.name}: {e}")
        self.seen_store.save_all()
        shutdown = getattr(self.transport, "shutdown", None)
        if shutdown is not None:
            shutdown()
        self.is_running = False
        logger.info("👋 Shutdown complete")
