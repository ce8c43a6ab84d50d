"""
Audit Routes — Read access to the audit trail and chain verification.
"""
import math
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from certrbac.database import get_db
from certrbac.models.user import User
from certrbac.rbac import Permission
from certrbac.routes.deps import require_permission
from certrbac.schemas.schemas import AuditListResponse, AuditLogEntry, Pagination
from certrbac.services.audit_service import AuditService
from certrbac.utils.timeutil import as_naive_utc

router = APIRouter(prefix="/api/audit", tags=["Audit"])

_can_read = require_permission(Permission.AUDIT_READ)


def _page(logs, total: int, page: int, limit: int) -> AuditListResponse:
    return AuditListResponse(
        logs=[AuditLogEntry.model_validate(entry) for entry in logs],
        pagination=Pagination(total=total, page=page, limit=limit, pages=math.ceil(total / limit)),
    )


@router.get("", response_model=AuditListResponse)
def list_audit_logs(
    action: Optional[str] = None,
    severity: Optional[str] = None,
    user_id: Optional[str] = None,
    resource: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(_can_read),
    db: Session = Depends(get_db),
):
    logs, total = AuditService.search(
        db,
        action=action,
        severity=severity,
        user_id=user_id,
        resource=resource,
        start=as_naive_utc(start),
        end=as_naive_utc(end),
        page=page,
        limit=limit,
    )
    return _page(logs, total, page, limit)


@router.get("/security", response_model=AuditListResponse)
def security_events(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(_can_read),
    db: Session = Depends(get_db),
):
    """Warnings, critical events, failed operations and security.* actions."""
    logs, total = AuditService.security_events(db, page, limit)
    return _page(logs, total, page, limit)


@router.get("/verify")
def verify_audit_chain(user: User = Depends(_can_read), db: Session = Depends(get_db)):
    return {"success": True, **AuditService.verify_chain(db)}
