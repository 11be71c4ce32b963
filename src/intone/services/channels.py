"""
Channel registry.

Channels are output destinations (X post, SMS, email subject...) with an
optional character limit and a strictness flag.

Configuration:
    src/intone/config/channels.yaml (override with CHANNELS_CONFIG_PATH)
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog
import yaml
from pydantic import BaseModel, Field

from ..core.config import get_settings

logger = structlog.get_logger(__name__)


class Channel(BaseModel):
    id: str
    name: str
    char_limit: Optional[int] = Field(None, gt=0)
    strict_limit: bool = False
    formatting: str = "plain"
    description: str = ""


# ============================================================================
# Configuration Loading
# ============================================================================


def _default_channels() -> List[Dict[str, Any]]:
    """Fallback definitions if the YAML file is not found"""
    return [
        {"id": "x_post", "name": "X post (Tweet)", "char_limit": 280, "strict_limit": True},
        {"id": "bluesky_post", "name": "Bluesky post", "char_limit": 300, "strict_limit": True},
        {"id": "linkedin_post", "name": "LinkedIn post", "char_limit": 3000},
        {"id": "instagram_caption", "name": "Instagram caption", "char_limit": 2200},
        {"id": "threads_post", "name": "Threads post", "char_limit": 500, "strict_limit": True},
        {"id": "sms", "name": "SMS", "char_limit": 160, "strict_limit": True},
        {"id": "push_notification", "name": "Push notification", "char_limit": 120},
        {"id": "email_subject", "name": "Email subject line", "char_limit": 60},
        {"id": "hero_headline", "name": "Hero headline", "char_limit": 70},
        {"id": "cta_button", "name": "CTA button label", "char_limit": 18},
        {"id": "error_message", "name": "Error message", "char_limit": 120},
        {"id": "print_ad_half", "name": "Print ad (half page)"},
        {"id": "web_banner", "name": "Web banner", "char_limit": 120},
        {"id": "press_release", "name": "Press release", "formatting": "markdown"},
        {"id": "website", "name": "Website"},
        {"id": "ui", "name": "Product UI"},
        {"id": "support", "name": "Support"},
        {"id": "marketing", "name": "Marketing"},
    ]


def _config_paths() -> List[Path]:
    paths = []
    override = get_settings().channels_config_path
    if override:
        paths.append(Path(override))
    paths.append(Path(__file__).parent.parent / "config" / "channels.yaml")
    return paths


def load_channel_config() -> List[Dict[str, Any]]:
    """
    Load channel definitions from YAML.

    Returns:
        List of raw channel dictionaries
    """
    config_paths = _config_paths()
    for config_path in config_paths:
        if config_path.exists():
            logger.info("Loading channel config", path=str(config_path))
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            return data.get("channels", [])

    logger.warning(
        "Channel config not found, using defaults",
        searched_paths=[str(p) for p in config_paths],
    )
    return _default_channels()


@lru_cache()
def get_channel_registry() -> Dict[str, Channel]:
    """Channels keyed by id, loaded once."""
    return {entry["id"]: Channel(**entry) for entry in load_channel_config()}


def get_channel(channel_id: Optional[str]) -> Optional[Channel]:
    if not channel_id:
        return None
    return get_channel_registry().get(channel_id)


def list_channels() -> List[Channel]:
    return list(get_channel_registry().values())


def get_default_char_limit(channel_id: Optional[str]) -> Optional[int]:
    channel = get_channel(channel_id)
    return channel.char_limit if channel else None


def is_strict_limit(channel_id: Optional[str]) -> bool:
    channel = get_channel(channel_id)
    return channel.strict_limit if channel else False
