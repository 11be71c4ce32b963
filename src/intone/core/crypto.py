"""Symmetric encryption helpers for stored evaluator API keys."""

from __future__ import annotations

import base64
import hashlib
from typing import Optional

import structlog
from cryptography.fernet import Fernet, InvalidToken

logger = structlog.get_logger(__name__)


def _derive_key(secret: str) -> bytes:
    """Derive a stable Fernet key from an arbitrary secret string."""
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest)


def _get_cipher(secret: str) -> Fernet:
    return Fernet(_derive_key(secret))


def encrypt_secret(secret: str, value: str) -> str:
    """Encrypt ``value`` with a key derived from ``secret``."""
    token = _get_cipher(secret).encrypt(value.encode("utf-8"))
    return token.decode("utf-8")


def decrypt_secret(secret: str, token: str) -> Optional[str]:
    """
    Decrypt a token produced by :func:`encrypt_secret`.

    Returns None when the token is invalid or was encrypted with another secret.
    """
    if not token:
        return None
    try:
        value = _get_cipher(secret).decrypt(token.encode("utf-8"))
    except (InvalidToken, ValueError):
        logger.warning("Failed to decrypt stored secret")
        return None
    return value.decode("utf-8")
