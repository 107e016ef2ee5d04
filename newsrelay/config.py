"""Runtime configuration for the news relay.

Everything is read from the environment (a local ``.env`` is honoured via
python-dotenv). ``Config.from_env()`` collects every problem it finds and
raises a single ``ValueError`` so a misconfigured deployment fails loudly
at startup instead of halfway through a cycle.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

KNOWN_ENDPOINTS = ("reddit", "congress", "asteroid", "thenewsapi", "marketaux")
DISCORD_WEBHOOK_PREFIX = "https://discord.com/api/webhooks/"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring non-numeric {name}={raw!r}, using {default}")
        return default


def _env_list(name: str, default: str = "") -> List[str]:
    raw = os.getenv(name, default) or ""
    return [item.strip() for item in raw.split(",") if item.strip()]


def parse_weights(weights_string: Optional[str]) -> Dict[str, float]:
    """Parse ``reddit:3,congress:1`` into a name -> weight mapping.

    Malformed pairs are skipped with a warning rather than failing startup.
    """
    weights: Dict[str, float] = {}
    if not weights_string:
        return weights
    for pair in weights_string.split(","):
        if not pair.strip():
            continue
        name, sep, value = pair.partition(":")
        if not sep or not name.strip():
            logger.warning(f"Ignoring malformed endpoint weight {pair!r}")
            continue
        try:
            weights[name.strip()] = float(value)
        except ValueError:
            logger.warning(f"Ignoring malformed endpoint weight {pair!r}")
    return weights


@dataclass
class Config:
    """Validated configuration for the bot process and control panel."""

    # Messaging transport
    discord_bot_token: str = ""
    discord_webhook_urls: List[str] = field(default_factory=list)
    test_channel: str = ""
    testing: bool = False

    # Source credentials
    congress_token: str = ""
    current_congress: int = 119
    nasa_token: str = ""
    thenewsapi_token: str = ""
    marketaux_token: str = ""
    marketaux_daily_limit: int = 100
    request_timeout: Optional[float] = None

    # Selection
    enabled_endpoints: List[str] = field(default_factory=lambda: ["reddit", "congress"])
    endpoint_weights: Dict[str, float] = field(default_factory=dict)

    # Polling interval
    interval_minutes: float = 1.25
    max_interval_minutes: float = 60.0
    interval_increment_seconds: float = 30.0

    # Similarity
    vector_embedding: bool = True
    similarity_threshold: float = 0.85
    similarity_max_history: int = 500
    similarity_retention_hours: float = 48.0
    openai_api_key: str = ""
    voyage_api_key: str = ""
    embedding_model: str = ""

    # Process
    data_directory: str = "./data"
    disable_gui: bool = False
    gui_host: str = "127.0.0.1"
    gui_port: int = 3001
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Config":
        """Load and validate configuration from environment variables"""
        load_dotenv()
        timeout = _env_float("REQUEST_TIMEOUT_SECONDS", 0.0)
        config = cls(
            discord_bot_token=os.getenv("DISCORD_BOT_TOKEN", "").strip(),
            discord_webhook_urls=_env_list("DISCORD_WEBHOOK_URLS"),
            test_channel=os.getenv("TEST_CHANNEL", "").strip(),
            testing=_env_bool("TESTING", False),

            congress_token=os.getenv("CONGRESS_GOV_TOKEN", "").strip(),
            current_congress=int(_env_float("CURRENT_CONGRESS", 119)),
            nasa_token=os.getenv("NASA_TOKEN", "").strip(),
            thenewsapi_token=os.getenv("THENEWSAPI_TOKEN", "").strip(),
            marketaux_token=os.getenv("MARKETAUX_TOKEN", "").strip(),
            marketaux_daily_limit=int(_env_float("MARKETAUX_DAILY_LIMIT", 100)),
            request_timeout=timeout or None,

            enabled_endpoints=_env_list("ENABLED_ENDPOINTS", "reddit,congress"),
            endpoint_weights=parse_weights(os.getenv("ENDPOINT_WEIGHTS")),

            interval_minutes=_env_float("INTERVAL_MINUTES", 1.25),
            max_interval_minutes=_env_float("MAX_INTERVAL_MINUTES", 60.0),
            interval_increment_seconds=_env_float("INTERVAL_INCREMENT_SECONDS", 30.0),

            vector_embedding=_env_bool("VECTOR_EMBEDDING", True),
            similarity_threshold=_env_float("SIMILARITY_THRESHOLD", 0.85),
            similarity_max_history=int(_env_float("SIMILARITY_MAX_HISTORY", 500)),
            similarity_retention_hours=_env_float("SIMILARITY_RETENTION_HOURS", 48.0),
            openai_api_key=os.getenv("OPENAI_API_KEY", "").strip(),
            voyage_api_key=os.getenv("VOYAGE_API_KEY", "").strip(),
            embedding_model=os.getenv("EMBEDDING_MODEL", "").strip(),

            data_directory=os.getenv("DATA_DIRECTORY", "./data"),
            disable_gui=_env_bool("DISABLE_GUI", False),
            gui_host=os.getenv("GUI_HOST", "127.0.0.1"),
            gui_port=int(_env_float("PORT", 3001)),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )

        if config.testing:
            config.interval_minutes = 0.1

        config._validate()
        return config

    def _validate(self):
        """Validate configuration values"""
        errors = []

        if not self.discord_bot_token and not self.discord_webhook_urls:
            errors.append("DISCORD_BOT_TOKEN or DISCORD_WEBHOOK_URLS is required")

        for url in self.discord_webhook_urls:
            if not url.startswith(DISCORD_WEBHOOK_PREFIX):
                errors.append(f"Invalid Discord webhook URL format: {url}")

        if self.testing and self.discord_bot_token and not self.test_channel:
            errors.append("TESTING is enabled but TEST_CHANNEL is not set")

        unknown = [name for name in self.enabled_endpoints if name not in KNOWN_ENDPOINTS]
        if unknown:
            errors.append(f"Unknown endpoints in ENABLED_ENDPOINTS: {', '.join(unknown)}")

        for name, weight in self.endpoint_weights.items():
            if weight < 0:
                errors.append(f"Endpoint weight for {name} must be >= 0")

        if self.interval_minutes <= 0:
            errors.append("INTERVAL_MINUTES must be greater than 0")
        elif self.interval_minutes > self.max_interval_minutes:
            errors.append("INTERVAL_MINUTES must not exceed MAX_INTERVAL_MINUTES")

        if self.interval_increment_seconds < 0:
            errors.append("INTERVAL_INCREMENT_SECONDS must be >= 0")

        if not 0.0 <= self.similarity_threshold <= 1.0:
            errors.append("SIMILARITY_THRESHOLD should be between 0 and 1")

        if self.similarity_max_history < 1:
            errors.append("SIMILARITY_MAX_HISTORY must be at least 1")

        if self.marketaux_daily_limit < 0:
            errors.append("MARKETAUX_DAILY_LIMIT must be >= 0")

        if self.request_timeout is not None and not 1 <= self.request_timeout <= 120:
            errors.append("REQUEST_TIMEOUT_SECONDS should be between 1 and 120 seconds")

        if errors:
            error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in errors)
            raise ValueError(error_msg)

        logger.info(f"Configuration validated successfully. Enabled endpoints: {', '.join(self.enabled_endpoints) or 'none'}")

    def is_endpoint_enabled(self, name: str) -> bool:
        return name in self.enabled_endpoints

    def endpoint_weight(self, name: str) -> float:
        return self.endpoint_weights.get(name, 1.0)

    @property
    def interval_increment_minutes(self) -> float:
        return self.interval_increment_seconds / 60.0
