"""
Logging configuration for the governance engine.
"""

import logging
import re
import sys

import structlog


class SecretScrubber:
    """
    Scrub credentials from log events.

    Redacts:
    - Bearer tokens
    - Provider API keys (sk-...)
    - Long opaque tokens next to "key"/"token"
    """

    BEARER_PATTERN = re.compile(r"Bearer\s+[A-Za-z0-9._\-]+")
    SK_KEY_PATTERN = re.compile(r"\bsk-[A-Za-z0-9_\-]{8,}")
    OPAQUE_PATTERN = re.compile(r"\b[A-Za-z0-9_\-]{32,}\b")

    @classmethod
    def scrub(cls, text: str) -> str:
        text = cls.BEARER_PATTERN.sub("Bearer [KEY_REDACTED]", text)
        text = cls.SK_KEY_PATTERN.sub("[KEY_REDACTED]", text)

        # Only scrub opaque strings when they look like a key
        lowered = text.lower()
        if "key" in lowered or "token" in lowered:
            text = cls.OPAQUE_PATTERN.sub("[KEY_REDACTED]", text)

        return text

    @classmethod
    def scrub_dict(cls, data: dict) -> dict:
        scrubbed = {}
        for key, value in data.items():
            if isinstance(value, str):
                scrubbed[key] = cls.scrub(value)
            elif isinstance(value, dict):
                scrubbed[key] = cls.scrub_dict(value)
            else:
                scrubbed[key] = value
        return scrubbed


def secret_scrubbing_processor(logger, method_name, event_dict):
    """Structlog processor that removes credentials before rendering."""
    for key, value in list(event_dict.items()):
        if isinstance(value, str):
            event_dict[key] = SecretScrubber.scrub(value)
        elif isinstance(value, dict):
            event_dict[key] = SecretScrubber.scrub_dict(value)
    return event_dict


def setup_logging(level: str = "INFO", json_format: bool = True) -> None:
    """
    Setup structured logging with structlog.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: Render JSON lines (True) or human-readable console output
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        stream=sys.stdout,
        format="%(message)s",
    )

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        secret_scrubbing_processor,
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
