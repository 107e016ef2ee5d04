"""Discord delivery over the REST API (bot channels) and incoming webhooks."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

import requests

from newsrelay.retry import retry_with_backoff
from newsrelay.storage.data_store import DataStore

logger = logging.getLogger(__name__)

DISCORD_API_URL = "https://discord.com/api/v10"
DISCORD_MAX_MESSAGE_LENGTH = 2000
TARGET_CHANNELS_FILE = "target_channels.csv"


def truncate_message(text: str, limit: int = DISCORD_MAX_MESSAGE_LENGTH) -> str:
    """Trim to ``limit`` characters, keeping the trailing URL line intact."""
    if len(text) <= limit:
        return text
    head, sep, last_line = text.rpartition("\n")
    if not sep or len(last_line) + 5 > limit:
        return text[: limit - 3] + "..."
    room = limit - len(last_line) - 4
    return head[:room].rstrip() + "...\n" + last_line


class DiscordTransport:
    """Sends to registered channels with the bot token, and to every webhook.

    With ``testing`` on, only ``test_channel`` receives bot messages.
    """

    def __init__(
        self,
        bot_token: str,
        data_store: DataStore,
        webhook_urls: Optional[List[str]] = None,
        testing: bool = False,
        test_channel: str = "",
        timeout: float = 10.0,
        max_retries: int = 3,
        base_delay: float = 2.0,
        session: Optional[requests.Session] = None,
    ):
        self.bot_token = bot_token
        self.data_store = data_store
        self.webhook_urls = list(webhook_urls or [])
        self.testing = testing
        self.test_channel = test_channel
        self.timeout = timeout
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.session = session or requests.Session()
        self.channels: List[str] = []
        self.user_tag: Optional[str] = None
        self._bot_ready = False

    # -- lifecycle -------------------------------------------------------

    def initialize(self) -> bool:
        logger.info("Initializing Discord transport...")
        self.load_target_channels()
        if self.bot_token:
            try:
                response = self.session.get(
                    f"{DISCORD_API_URL}/users/@me", headers=self._headers(), timeout=self.timeout
                )
                response.raise_for_status()
                user = response.json() or {}
                self.user_tag = user.get("username") or "unknown"
                self._bot_ready = True
                logger.info(f"✅ Discord bot ready as {self.user_tag}")
            except requests.exceptions.RequestException as e:
                logger.error(f"❌ Discord login failed: {e}")
                self._bot_ready = False
        if self.webhook_urls:
            logger.info(f"Discord webhooks configured: {len(self.webhook_urls)}")
        return self.is_ready()

    def is_ready(self) -> bool:
        return self._bot_ready or bool(self.webhook_urls)

    def shutdown(self) -> None:
        logger.info("Shutting down Discord transport...")
        self.session.close()

    # -- channels --------------------------------------------------------

    def load_target_channels(self) -> int:
        self.data_store.ensure_file(TARGET_CHANNELS_FILE, "")
        channels: List[str] = []
        for line in self.data_store.load_lines(TARGET_CHANNELS_FILE):
            if line not in channels:
                channels.append(line)
        self.channels = channels
        logger.info(f"Loaded {len(channels)} target channels")
        return len(channels)

    def register_channel(self, channel_id: str) -> bool:
        """Add a channel for automatic posts; False if it was already registered."""
        channel_id = str(channel_id or "").strip()
        if not channel_id:
            raise ValueError("channel id is required")
        if channel_id in self.channels:
            return False
        self.channels.append(channel_id)
        self.data_store.save_lines(TARGET_CHANNELS_FILE, self.channels)
        logger.info(f"Channel registered: {channel_id}")
        return True

    def target_channels(self) -> List[str]:
        if self.testing:
            return [self.test_channel] if self.test_channel else []
        return list(self.channels)

    # -- sending ---------------------------------------------------------

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bot {self.bot_token}",
            "Content-Type": "application/json",
            "User-Agent": "DiscordBot (newsrelay, 1.0)",
        }

    def _post(self, url: str, payload: Dict, headers: Optional[Dict[str, str]] = None) -> None:
        retrying = retry_with_backoff(
            max_retries=self.max_retries,
            base_delay=self.base_delay,
            retry_on=(requests.exceptions.RequestException,),
        )

        def post():
            response = self.session.post(url, json=payload, headers=headers, timeout=self.timeout)
            response.raise_for_status()
            return response

        retrying(post)()

    def send_to_channel(self, channel_id: str, text: str) -> bool:
        if not self._bot_ready:
            logger.warning("Discord bot not ready, cannot send message")
            return False
        try:
            self._post(
                f"{DISCORD_API_URL}/channels/{channel_id}/messages",
                {"content": truncate_message(text)},
                headers=self._headers(),
            )
            logger.debug(f"Message sent to channel {channel_id}")
            return True
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            if status == 403:
                logger.error(f"Discord forbidden for channel {channel_id} - check bot permissions")
            elif status == 404:
                logger.error(f"Discord channel not found: {channel_id}")
            else:
                logger.error(f"Discord HTTP error for channel {channel_id}: {e}")
            return False
        except requests.exceptions.RequestException as e:
            logger.error(f"Error sending message to channel {channel_id}: {e}")
            return False

    def send_to_webhook(self, webhook_url: str, text: str) -> bool:
        try:
            self._post(webhook_url, {"content": truncate_message(text)})
            return True
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            if status == 400:
                logger.error("Discord bad request - check webhook URL")
            elif status == 404:
                logger.error("Discord webhook not found - check URL")
            else:
                logger.error(f"Discord HTTP error: {e}")
            return False
        except requests.exceptions.RequestException as e:
            logger.error(f"Discord webhook error: {e}")
            return False

    def send_to_all_targets(self, text: str) -> bool:
        """True iff at least one channel or webhook accepted the message."""
        channels = self.target_channels() if self._bot_ready else []
        webhooks = [] if self.testing and self._bot_ready else self.webhook_urls
        total = len(channels) + len(webhooks)
        if total == 0:
            logger.warning("No target channels configured")
            return False

        success_count = 0
        for channel_id in channels:
            if self.send_to_channel(channel_id, text):
                success_count += 1
        for webhook_url in webhooks:
            if self.send_to_webhook(webhook_url, text):
                success_count += 1
        logger.info(f"Message sent to {success_count}/{total} targets")
        return success_count > 0

    def stats(self) -> Dict:
        return {
            "ready": self.is_ready(),
            "botReady": self._bot_ready,
            "user": self.user_tag,
            "channels": self.target_channels(),
            "webhooks": len(self.webhook_urls),
            "testing": self.testing,
        }
