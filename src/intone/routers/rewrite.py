"""
Interactive rewrite, generate and lint endpoints.
"""

from fastapi import APIRouter, Depends

from ..dependencies import get_rewrite_service
from ..schemas.evaluation import LintRequest, LintResponse, RewriteRequest, RewriteResponse
from ..services.rewrite_service import RewriteService

router = APIRouter()


@router.post("/rewrite", response_model=RewriteResponse)
async def rewrite(
    request: RewriteRequest,
    service: RewriteService = Depends(get_rewrite_service),
) -> RewriteResponse:
    return await service.rewrite(request)


@router.post("/lint", response_model=LintResponse)
async def lint(
    request: LintRequest,
    service: RewriteService = Depends(get_rewrite_service),
) -> LintResponse:
    return await service.lint(request)
