"""
Evaluator credential resolution.

Sources are tried in a fixed order:
1. The user's stored key (Fernet-encrypted with SECRET_KEY)
2. The EVALUATOR_API_KEY setting
"""

from enum import Enum
from typing import Optional

import structlog
from pydantic import BaseModel

from ..core.config import get_settings
from ..core.crypto import decrypt_secret
from ..core.exceptions import CredentialError

logger = structlog.get_logger(__name__)


class CredentialSource(str, Enum):
    USER = "user"
    ENVIRONMENT = "environment"


class Credential(BaseModel):
    api_key: str
    source: CredentialSource

    def __repr__(self) -> str:
        return f"Credential(source={self.source.value!r})"

    __str__ = __repr__


def resolve_credential(user_encrypted_key: Optional[str] = None) -> Credential:
    """
    Resolve the evaluator API key.

    Args:
        user_encrypted_key: The user's stored, encrypted key, if any

    Returns:
        Credential with the key and the source it came from

    Raises:
        CredentialError: no source yielded a key
    """
    settings = get_settings()

    if user_encrypted_key:
        api_key = decrypt_secret(settings.secret_key, user_encrypted_key)
        logger.info("Credential lookup", source=CredentialSource.USER.value, found=bool(api_key))
        if api_key:
            return Credential(api_key=api_key, source=CredentialSource.USER)

    api_key = settings.evaluator_api_key
    logger.info("Credential lookup", source=CredentialSource.ENVIRONMENT.value, found=bool(api_key))
    if api_key:
        return Credential(api_key=api_key, source=CredentialSource.ENVIRONMENT)

    raise CredentialError()
