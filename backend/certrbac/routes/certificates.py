"""
Certificate Routes — Issuance, signing, revocation, export and the expiry sweep.
"""
import math
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from certrbac.database import get_db
from certrbac.models.user import User
from certrbac.rbac import Permission
from certrbac.routes.deps import (
    get_current_user, request_meta, require_any_permission, require_permission,
)
from certrbac.schemas.schemas import (
    CertificateCreateRequest, CertificateListResponse, CertificateOut,
    CertificateResponse, ExpireSweepResponse, Pagination, RevokeRequest,
)
from certrbac.services.certificate_service import CertificateService

router = APIRouter(prefix="/api/certificates", tags=["Certificates"])

_can_read = require_any_permission(Permission.CERTIFICATE_READ, Permission.CERTIFICATE_READ_OWN)


@router.get("/stats")
def certificate_stats(user: User = Depends(_can_read), db: Session = Depends(get_db)):
    """Counts by status and type; holders only see their own."""
    return {"success": True, "stats": CertificateService(db).stats_for(user)}


@router.get("", response_model=CertificateListResponse)
def list_certificates(
    status: Optional[str] = None,
    type: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: User = Depends(_can_read),
    db: Session = Depends(get_db),
):
    certificates, total = CertificateService(db).list_for(user, status, type, search, page, limit)
    return CertificateListResponse(
        certificates=[CertificateOut.model_validate(c) for c in certificates],
        pagination=Pagination(total=total, page=page, limit=limit, pages=math.ceil(total / limit)),
    )


@router.post("", response_model=CertificateResponse, status_code=201)
def create_certificate(
    payload: CertificateCreateRequest,
    request: Request,
    user: User = Depends(require_permission(Permission.CERTIFICATE_CREATE)),
    db: Session = Depends(get_db),
):
    data = payload.model_dump()
    data["type"] = payload.type.value
    certificate = CertificateService(db).create(user, data, meta=request_meta(request))
    return CertificateResponse(
        message="Certificate created successfully.",
        certificate=CertificateOut.model_validate(certificate),
    )


@router.get("/{certificate_id}", response_model=CertificateResponse)
def get_certificate(
    certificate_id: str,
    request: Request,
    user: User = Depends(_can_read),
    db: Session = Depends(get_db),
):
    certificate = CertificateService(db).get_for(user, certificate_id, meta=request_meta(request))
    return CertificateResponse(certificate=CertificateOut.model_validate(certificate))


@router.post("/{certificate_id}/sign", response_model=CertificateResponse)
def sign_certificate(
    certificate_id: str,
    request: Request,
    user: User = Depends(require_permission(Permission.CERTIFICATE_SIGN)),
    db: Session = Depends(get_db),
):
    certificate = CertificateService(db).sign(user, certificate_id, meta=request_meta(request))
    return CertificateResponse(
        message="Certificate signed and activated.",
        certificate=CertificateOut.model_validate(certificate),
    )


@router.put("/{certificate_id}/revoke", response_model=CertificateResponse)
def revoke_certificate(
    certificate_id: str,
    request: Request,
    payload: Optional[RevokeRequest] = None,
    user: User = Depends(require_permission(Permission.CERTIFICATE_REVOKE)),
    db: Session = Depends(get_db),
):
    reason = payload.reason if payload else None
    certificate = CertificateService(db).revoke(user, certificate_id, reason, meta=request_meta(request))
    return CertificateResponse(
        message="Certificate revoked successfully.",
        certificate=CertificateOut.model_validate(certificate),
    )


@router.get("/{certificate_id}/export")
def export_certificate(
    certificate_id: str,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Structured export; allowed for exporters and the certificate holder."""
    export = CertificateService(db).export_for(user, certificate_id, meta=request_meta(request))
    return {"success": True, "export": export}


@router.post("/expire", response_model=ExpireSweepResponse)
def expire_certificates(
    request: Request,
    user: User = Depends(require_permission(Permission.CERTIFICATE_UPDATE)),
    db: Session = Depends(get_db),
):
    count = CertificateService(db).expire_overdue(user, meta=request_meta(request))
    return ExpireSweepResponse(expired=count)
