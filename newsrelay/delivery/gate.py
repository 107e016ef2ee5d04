"""Delivery gate: renders an accepted candidate and hands it to the transport.

Also keeps a small in-memory activity log (fetched / sent / error /
rejected events) for the control panel.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional, Protocol, Sequence, Tuple

from newsrelay.ingestion.candidate import Candidate
from newsrelay.ingestion.filters import QUIET_REASONS, StageResult

logger = logging.getLogger(__name__)

ACTIVITY_LIMIT = 200


class MessageTransport(Protocol):
    def initialize(self) -> bool: ...

    def is_ready(self) -> bool: ...

    def send_to_all_targets(self, text: str) -> bool: ...


@dataclass(frozen=True)
class ActivityEvent:
    kind: str
    source: Optional[str]
    message: str
    timestamp: float
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind,
            "source": self.source,
            "message": self.message,
            "timestamp": self.timestamp,
            "data": self.data,
        }


class ActivityLog:
    """Bounded, thread-safe ring of recent events; newest last."""

    def __init__(self, limit: int = ACTIVITY_LIMIT, clock: Callable[[], float] = time.time):
        self._events: Deque[ActivityEvent] = deque(maxlen=limit)
        self._lock = threading.Lock()
        self._clock = clock

    def record(self, kind: str, message: str, source: Optional[str] = None, **data) -> ActivityEvent:
        event = ActivityEvent(kind=kind, source=source, message=message, timestamp=self._clock(), data=data)
        with self._lock:
            self._events.append(event)
        return event

    def recent(self, limit: int = 50, kind: Optional[str] = None) -> List[ActivityEvent]:
        with self._lock:
            events = [e for e in self._events if kind is None or e.kind == kind]
        return events[-limit:] if limit else events

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)


def render_message(candidate: Candidate) -> str:
    """Title, optional description and details, then the URL on its own line."""
    parts = [f"**{candidate.title}**"]
    if candidate.description:
        parts.append(candidate.description)
    if candidate.details:
        parts.append(candidate.details)
    parts.append(candidate.url)
    return "\n".join(parts)


class DeliveryGate:
    def __init__(self, transport: MessageTransport, activity: Optional[ActivityLog] = None):
        self.transport = transport
        self.activity = activity or ActivityLog()
        self.sent_count = 0
        self.failed_count = 0

    def render(self, candidate: Candidate) -> str:
        return render_message(candidate)

    def deliver(self, candidate: Candidate) -> bool:
        """Send one candidate to every target; True iff at least one accepted it."""
        self.activity.record("fetched", candidate.title, source=candidate.source_name, url=candidate.url, id=candidate.id)
        text = self.render(candidate)
        try:
            success = self.transport.send_to_all_targets(text)
        except Exception as e:
            logger.error(f"❌ Delivery failed for {candidate.source_name} item {candidate.id}: {e}", exc_info=True)
            self.failed_count += 1
            self.activity.record("error", f"Delivery failed: {e}", source=candidate.source_name, id=candidate.id)
            return False

        if success:
            self.sent_count += 1
            logger.info(f"✅ Sent {candidate.source_name} item: {candidate.title[:80]}")
            self.activity.record("sent", candidate.title, source=candidate.source_name, url=candidate.url, id=candidate.id)
        else:
            self.failed_count += 1
            logger.warning(f"⚠️ No target accepted {candidate.source_name} item {candidate.id}")
            self.activity.record("error", "No target accepted the message", source=candidate.source_name, id=candidate.id)
        return success

    def note_rejections(self, source: str, rejections: Sequence[Tuple[Candidate, StageResult]]) -> None:
        for candidate, result in rejections:
            if result.reason is None or result.reason in QUIET_REASONS:
                continue
            self.activity.record(
                "rejected",
                candidate.title or candidate.id,
                source=source,
                reason=result.reason.value,
                detail=result.detail,
            )

    def note_error(self, source: Optional[str], message: str) -> None:
        self.activity.record("error", message, source=source)

    def stats(self) -> Dict[str, Any]:
        return {"sent": self.sent_count, "failed": self.failed_count}
