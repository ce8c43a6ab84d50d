"""
Verification Routes — Public certificate verification by token.

No authentication required. When a valid bearer token is presented the caller
is recorded on the verification history.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from certrbac.database import get_db
from certrbac.models.certificate import VerificationResult
from certrbac.models.user import User
from certrbac.routes.deps import get_optional_user, request_meta
from certrbac.schemas.schemas import CertificateSummary, VerificationResponse
from certrbac.services.certificate_service import CertificateService

router = APIRouter(prefix="/api/verify", tags=["Verification"])


def _verify(token: str, request: Request, caller: Optional[User], db: Session):
    outcome = CertificateService(db).verify(token, caller=caller, meta=request_meta(request))
    if outcome.certificate is None:
        return JSONResponse(status_code=404, content={
            "success": False,
            "error": outcome.message,
            "code": "CERT_NOT_FOUND",
            "result": outcome.result.value,
        })

    return VerificationResponse(
        result=outcome.result.value,
        message=outcome.message,
        is_valid=outcome.result == VerificationResult.VALID,
        verified_at=outcome.verified_at,
        certificate=CertificateSummary.model_validate(outcome.certificate),
    )


@router.get("/{token}", response_model=VerificationResponse)
def verify_certificate(
    token: str,
    request: Request,
    caller: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    return _verify(token, request, caller, db)


@router.post("/{token}", response_model=VerificationResponse)
def verify_certificate_post(
    token: str,
    request: Request,
    caller: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    """Same as GET; for QR scanners and clients that prefer POST."""
    return _verify(token, request, caller, db)
