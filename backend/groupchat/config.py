"""Group chat application configuration.

Loads settings from a single YAML file:
  * groupchat.settings.yaml: server, database, chat and logging settings

The path can be overridden with the GROUPCHAT_SETTINGS environment variable.
Every section is optional; a missing file yields the defaults below.
"""
from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("groupchat.settings.yaml")


def _settings_path() -> Path:
    override = os.environ.get("GROUPCHAT_SETTINGS")
    return Path(override) if override else SETTINGS_FILE


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str       = "0.0.0.0"
    port:            int       = 3000
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])


class DatabaseSettings(BaseModel):
    path:        str  = "groupchat.duckdb"
    seed_sample: bool = True


class ChatSettings(BaseModel):
    """Broker tuning knobs.

    Attributes:
        default_room_id: Room every newly created user is added to.
        anonymous_label: Display name shown for anonymous authors.
        max_message_length: Longest accepted message text (after trimming).
        typing_idle_seconds: Idle window after which a typing state expires.
        mailbox_size: Outbound events buffered per connection before the
            connection is treated as too slow to deliver to.
    """
    default_room_id:     int   = 1
    anonymous_label:     str   = "Anonymous"
    max_message_length:  int   = 2000
    typing_idle_seconds: float = 5.0
    mailbox_size:        int   = 256

    @field_validator("typing_idle_seconds")
    @classmethod
    def _positive_idle(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("typing_idle_seconds must be positive")
        return value

    @field_validator("max_message_length", "mailbox_size")
    @classmethod
    def _positive_int(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value


class LoggingSettings(BaseModel):
    level: str = "info"


class AppSettings(BaseModel):
    server:   ServerSettings   = Field(default_factory=ServerSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    chat:     ChatSettings     = Field(default_factory=ChatSettings)
    logging:  LoggingSettings  = Field(default_factory=LoggingSettings)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_settings(path: Path | None = None) -> AppSettings:
    """Load *AppSettings* from YAML, falling back to defaults."""
    settings_data = _load_yaml(path or _settings_path())

    app_settings = AppSettings(**settings_data)
    logger.info(
        "Settings loaded (server=%s:%s, database=%s, typing_idle=%ss)",
        app_settings.server.host,
        app_settings.server.port,
        app_settings.database.path,
        app_settings.chat.typing_idle_seconds,
    )
    return app_settings


@lru_cache(maxsize=1)
def get_config() -> AppSettings:
    """Process-wide settings, loaded once on first use."""
    return load_settings()
