"""
Audit endpoints.

Audits run in the background; ``POST`` returns the pending audit immediately
and clients poll ``GET /audits/{audit_id}``.
"""

from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from pydantic import BaseModel

from ..core.config import Settings, get_settings
from ..core.exceptions import IngestionError, ValidationError
from ..dependencies import get_audit_processor, get_audit_store
from ..schemas.audit import Audit, AuditIssue, AuditSourceType, IssueStatus
from ..services.audit_processor import AuditProcessor, AuditRequest
from ..services.audit_store import AuditStore

logger = structlog.get_logger(__name__)
router = APIRouter()


class AuditDetailResponse(BaseModel):
    audit: Audit
    issues: List[AuditIssue]


class IssueUpdateRequest(BaseModel):
    status: Optional[IssueStatus] = None
    notes: Optional[str] = None


@router.post("/audits", response_model=Audit, status_code=status.HTTP_202_ACCEPTED)
async def start_audit(
    request: AuditRequest,
    processor: AuditProcessor = Depends(get_audit_processor),
) -> Audit:
    """Start a website or file-link audit."""
    if request.source_type == AuditSourceType.FILE_UPLOAD:
        raise ValidationError("Use /audits/upload for file uploads")
    return await processor.start_audit(request)


@router.post("/audits/upload", response_model=Audit, status_code=status.HTTP_202_ACCEPTED)
async def start_upload_audit(
    brand_id: str = Form(...),
    locale: Optional[str] = Form(None),
    encrypted_api_key: Optional[str] = Form(None),
    file: UploadFile = File(...),
    processor: AuditProcessor = Depends(get_audit_processor),
    settings: Settings = Depends(get_settings),
) -> Audit:
    """Start an audit over an uploaded PDF, DOCX, HTML or text file."""
    data = await file.read()
    if len(data) > settings.max_file_size:
        raise IngestionError("File exceeds the maximum allowed size", source=file.filename)

    request = AuditRequest(
        brand_id=brand_id,
        source_type=AuditSourceType.FILE_UPLOAD,
        file_name=file.filename,
        content_type=file.content_type,
        locale=locale,
        encrypted_api_key=encrypted_api_key,
    )
    logger.info("Upload received", brand_id=brand_id, size=len(data), content_type=file.content_type)
    return await processor.start_audit(request, file_data=data)


@router.get("/audits/{audit_id}", response_model=AuditDetailResponse)
async def get_audit(
    audit_id: str,
    processor: AuditProcessor = Depends(get_audit_processor),
    store: AuditStore = Depends(get_audit_store),
) -> AuditDetailResponse:
    audit = await processor.get_audit_status(audit_id)
    issues = await store.list_issues(audit_id)
    return AuditDetailResponse(audit=audit, issues=issues)


@router.patch("/audits/{audit_id}/issues/{issue_id}", response_model=AuditIssue)
async def update_issue(
    audit_id: str,
    issue_id: str,
    update: IssueUpdateRequest,
    store: AuditStore = Depends(get_audit_store),
) -> AuditIssue:
    """Review an issue: change its status and/or attach notes."""
    return await store.update_issue(audit_id, issue_id, status=update.status, notes=update.notes)
