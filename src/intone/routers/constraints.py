"""
Channel constraint endpoints.
"""

from typing import List

from fastapi import APIRouter

from ..core.exceptions import ValidationError
from ..schemas.evaluation import TrimRequest, TrimResult
from ..services.channels import Channel, get_channel, list_channels
from ..services.constraints import enforce_channel_limit

router = APIRouter()


@router.post("/trim", response_model=TrimResult)
async def trim(request: TrimRequest) -> TrimResult:
    """Fit text to a channel's limit or an explicit one."""
    if request.channel and get_channel(request.channel) is None:
        raise ValidationError(f"Unknown channel: {request.channel}")
    if request.channel is None and request.char_limit is None:
        raise ValidationError("Provide a channel or a char_limit")
    return enforce_channel_limit(request.text, request.channel, request.char_limit, request.strict)


@router.get("/channels", response_model=List[Channel])
async def channels() -> List[Channel]:
    return list_channels()
