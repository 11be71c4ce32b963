"""
Health check endpoint.
"""

from datetime import datetime

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..core.config import Settings, get_settings
from ..services.channels import list_channels

logger = structlog.get_logger(__name__)
router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    version: str
    channels: int
    evaluator_configured: bool


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(settings: Settings = Depends(get_settings)) -> HealthResponse:
    """Liveness plus a summary of loaded configuration."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.utcnow(),
        version=settings.app_version,
        channels=len(list_channels()),
        evaluator_configured=bool(settings.evaluator_api_key),
    )
