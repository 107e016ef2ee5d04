"""Chat command intents, answered with structured results."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from newsrelay.sources.asteroids import AsteroidSource
from newsrelay.sources.http import SourceError

if TYPE_CHECKING:
    from newsrelay.bot import NewsBot

logger = logging.getLogger(__name__)

COMMAND_PREFIX = "!"


@dataclass
class CommandResult:
    success: bool
    message: str
    messages: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"success": self.success, "message": self.message, "messages": list(self.messages)}


def parse_command(text: str) -> Optional[str]:
    """``"!ping"`` -> ``"ping"``; None for anything that is not a command."""
    text = (text or "").strip()
    if not text.startswith(COMMAND_PREFIX) or len(text) == 1:
        return None
    return text[len(COMMAND_PREFIX):].split()[0].lower()


class CommandRouter:
    def __init__(self, bot: "NewsBot"):
        self.bot = bot
        self._handlers: Dict[str, Callable[..., CommandResult]] = {
            "ping": self.ping,
            "setchannel": self.set_channel,
            "asteroids": self.asteroids,
            "congress": self.congress,
        }

    @property
    def names(self) -> List[str]:
        return sorted(self._handlers)

    def handle(self, name: str, **kwargs) -> CommandResult:
        handler = self._handlers.get(parse_command(name) or (name or "").strip().lower())
        if handler is None:
            return CommandResult(False, f"Unknown command: {name}")
        logger.info(f"Command received: {name}")
        return handler(**kwargs)

    def ping(self, **_) -> CommandResult:
        return CommandResult(True, "Pong!")

    def set_channel(self, channel_id: Optional[str] = None, **_) -> CommandResult:
        if not channel_id:
            return CommandResult(False, "This command must be used in a text channel.")
        if self.bot.transport.register_channel(str(channel_id)):
            return CommandResult(True, f"Channel {channel_id} registered for automatic posts.")
        return CommandResult(True, "This channel is already registered for automatic posts.")

    def asteroids(self, **_) -> CommandResult:
        adapter = self.bot.get_endpoint("asteroid")
        if adapter is None or not isinstance(adapter.strategy, AsteroidSource) or not adapter.is_configured():
            return CommandResult(False, "NASA API token not configured")
        try:
            lines = adapter.strategy.summary_lines(adapter.session)
        except SourceError as e:
            logger.error(f"Asteroid command failed: {e}")
            return CommandResult(False, f"Could not fetch asteroid data: {e}")
        return CommandResult(True, "\n".join(lines), messages=lines)

    def congress(self, **_) -> CommandResult:
        adapter = self.bot.get_endpoint("congress")
        if adapter is None or not adapter.is_configured():
            return CommandResult(False, "Congress API token not configured")
        result = self.bot.manual_fetch("congress")
        messages = [self.bot.gate.render(result.candidate)] if result.candidate else []
        return CommandResult(result.success, result.message, messages=messages)
