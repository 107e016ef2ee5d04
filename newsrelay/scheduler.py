"""Selection scheduler: one weighted-random source per cycle, adaptive interval.

Each cycle draws one enabled source with probability proportional to its
weight and queries only that source. Cycles never overlap; the scheduled
loop and manual fetches share one lock.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

from newsrelay.delivery.gate import DeliveryGate
from newsrelay.ingestion.adapter import SourceAdapter
from newsrelay.ingestion.candidate import Candidate

logger = logging.getLogger(__name__)

CYCLE_BUSY_MESSAGE = "A fetch cycle is already running"


class CycleStatus(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    DELIVERING = "delivering"
    SLEEPING = "sleeping"
    STOPPED = "stopped"


@dataclass
class CycleState:
    base_interval_minutes: float
    current_interval_minutes: float
    max_interval_minutes: float
    increment_minutes: float
    last_success_epoch: Optional[float] = None

    @classmethod
    def from_config(cls, config) -> "CycleState":
        return cls(
            base_interval_minutes=config.interval_minutes,
            current_interval_minutes=config.interval_minutes,
            max_interval_minutes=config.max_interval_minutes,
            increment_minutes=config.interval_increment_minutes,
        )

    def record_success(self, now: float) -> None:
        self.current_interval_minutes = self.base_interval_minutes
        self.last_success_epoch = now

    def record_empty(self) -> None:
        self.current_interval_minutes = min(
            self.current_interval_minutes + self.increment_minutes,
            self.max_interval_minutes,
        )

    def set_intervals(self, base: Optional[float] = None, maximum: Optional[float] = None) -> None:
        new_base = self.base_interval_minutes if base is None else float(base)
        new_max = self.max_interval_minutes if maximum is None else float(maximum)
        if new_base <= 0:
            raise ValueError("base interval must be greater than 0")
        if new_base > new_max:
            raise ValueError("base interval must not exceed the maximum interval")
        self.base_interval_minutes = new_base
        self.max_interval_minutes = new_max
        self.current_interval_minutes = new_base

    def to_dict(self) -> Dict[str, Any]:
        return {
            "baseIntervalMinutes": self.base_interval_minutes,
            "currentIntervalMinutes": self.current_interval_minutes,
            "maxIntervalMinutes": self.max_interval_minutes,
            "incrementMinutes": self.increment_minutes,
            "lastSuccess": self.last_success_epoch,
        }


@dataclass
class CycleResult:
    success: bool
    message: str
    source: Optional[str] = None
    candidate: Optional[Candidate] = None
    delivered: bool = False
    next_interval_minutes: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "source": self.source,
            "delivered": self.delivered,
            "item": self.candidate.to_dict() if self.candidate else None,
            "nextIntervalMinutes": self.next_interval_minutes,
        }


def select_weighted(adapters: Iterable[SourceAdapter], rng: random.Random) -> Optional[SourceAdapter]:
    """Cumulative-weight draw over enabled adapters; weight 0 is never picked."""
    pool = [a for a in adapters if a.enabled and a.weight > 0]
    total = sum(a.weight for a in pool)
    if not pool or total <= 0:
        return None
    r = rng.uniform(0, total)
    for adapter in pool:
        r -= adapter.weight
        if r <= 0:
            return adapter
    # Float rounding can leave a sliver of r
    return pool[-1]


class SelectionScheduler:
    def __init__(
        self,
        adapters: Dict[str, SourceAdapter],
        gate: DeliveryGate,
        cycle_state: CycleState,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.adapters = adapters
        self.gate = gate
        self.cycle_state = cycle_state
        self.rng = rng or random.Random()
        self._clock = clock
        self._lock = threading.Lock()
        self.status = CycleStatus.IDLE
        self.cycles_run = 0

    @property
    def is_busy(self) -> bool:
        return self._lock.locked()

    def enabled_adapters(self) -> List[SourceAdapter]:
        return [a for a in self.adapters.values() if a.enabled]

    def select_source(self) -> Optional[SourceAdapter]:
        return select_weighted(self.adapters.values(), self.rng)

    def run_cycle(self) -> CycleResult:
        """Scheduled tick; waits for any manual fetch in flight."""
        with self._lock:
            return self._run(None, adjust_interval=True)

    def try_run_exclusive(self, source_name: Optional[str] = None) -> CycleResult:
        """Manual fetch; fails immediately instead of waiting when a cycle is running.

        A fetch from a named source leaves the polling interval alone.
        """
        if source_name is not None and source_name not in self.adapters:
            return CycleResult(False, f"Unknown endpoint: {source_name}")
        if not self._lock.acquire(blocking=False):
            return CycleResult(False, CYCLE_BUSY_MESSAGE)
        try:
            adapter = self.adapters[source_name] if source_name else None
            if adapter is not None and not adapter.enabled:
                return CycleResult(False, f"Endpoint {source_name} is disabled", source=source_name)
            return self._run(adapter, adjust_interval=source_name is None)
        finally:
            self._lock.release()

    def _run(self, adapter: Optional[SourceAdapter], adjust_interval: bool) -> CycleResult:
        if self.status == CycleStatus.STOPPED:
            return CycleResult(False, "Scheduler is stopped")

        self.status = CycleStatus.FETCHING
        self.cycles_run += 1
        delivered = False
        candidate = None
        no_source = False
        source_name = adapter.name if adapter else None
        try:
            if adapter is None:
                adapter = self.select_source()
            if adapter is None:
                no_source = True
                logger.warning("⚠️ No enabled endpoints with positive weight, skipping cycle")
            else:
                source_name = adapter.name
                logger.info(f"🔍 Checking {source_name} for new items...")
                candidate = adapter.fetch_candidate()
                if adapter.last_report is not None:
                    self.gate.note_rejections(source_name, adapter.last_report.rejections)
                if candidate is not None:
                    self.status = CycleStatus.DELIVERING
                    delivered = self.gate.deliver(candidate)
        except Exception as e:
            logger.error(f"💥 Cycle failed for {source_name or 'unknown source'}: {e}", exc_info=True)
            self.gate.note_error(source_name, f"Cycle failed: {e}")
            delivered = False
        finally:
            if self.status != CycleStatus.STOPPED:
                self.status = CycleStatus.SLEEPING

        if adjust_interval and not no_source:
            if delivered:
                self.cycle_state.record_success(self._clock())
            else:
                self.cycle_state.record_empty()
        next_interval = self.cycle_state.current_interval_minutes

        if no_source:
            return CycleResult(False, "No enabled endpoints", next_interval_minutes=next_interval)
        if delivered:
            message = f"Sent update from {source_name}"
        elif candidate is not None:
            message = f"Found an update from {source_name} but delivery failed"
        else:
            message = f"No new updates from {source_name}"
            logger.info(f"😴 {message}, next check in {next_interval:.2f} minutes")
        return CycleResult(
            success=delivered,
            message=message,
            source=source_name,
            candidate=candidate,
            delivered=delivered,
            next_interval_minutes=next_interval,
        )

    def stop(self, timeout: float = 30.0) -> bool:
        """Stop scheduling; waits up to ``timeout`` for an in-flight cycle."""
        acquired = self._lock.acquire(timeout=timeout)
        self.status = CycleStatus.STOPPED
        if acquired:
            self._lock.release()
        else:
            logger.warning(f"⚠️ In-flight cycle did not finish within {timeout}s, abandoning it")
        return acquired

    def stats(self) -> Dict[str, Any]:
        stats = self.cycle_state.to_dict()
        stats.update({"status": self.status.value, "cyclesRun": self.cycles_run, "busy": self.is_busy})
        return stats
