"""
Certificate Service — Issuance, signing, revocation and public verification.

Identifiers and the content checksum are computed once, when the entity is
built, and never again. Verification re-derives the checksum from the current
field values, so any post-signing edit to a covered field shows up as an
invalid signature.
"""
import base64
import io
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import qrcode
from sqlalchemy import func, or_, update
from sqlalchemy.orm import Session

from certrbac.config import Settings, get_settings
from certrbac.errors import (
    AlreadyRevoked, CertificateNotFound, HolderNotFound, HolderRequired,
    InvalidStatusTransition, OwnershipRequired, PermissionDenied, ValidationFailure,
)
from certrbac.models.audit import AuditAction, AuditSeverity
from certrbac.models.certificate import (
    Certificate, CertificateStatus, CertificateVerification, VerificationResult,
)
from certrbac.models.user import User
from certrbac.rbac import Permission
from certrbac.services.audit_service import AuditService, RequestMeta
from certrbac.services.authorization import has_permission
from certrbac.utils.hashing import (
    compute_signature, generate_certificate_id, generate_serial_number,
    generate_verification_token, verify_signature,
)
from certrbac.utils.timeutil import as_naive_utc, utcnow

logger = logging.getLogger(__name__)

DEFAULT_REVOCATION_REASON = "No reason provided"


# ─── Integrity primitives ────────────────────────────────────────────

def build_certificate(
    *,
    title: str,
    type: str,
    holder_id: str,
    holder_name: str,
    issued_by: str,
    issuer_name: str,
    issuing_organization: str,
    base_url: str,
    issued_at: Optional[datetime] = None,
    **fields,
) -> Certificate:
    """Factory for a fully initialised, pending certificate.

    Identifiers, verification token/URL and checksum are all assigned here so
    no Certificate ever exists half-initialised.
    """
    issued_at = issued_at or utcnow()
    token = generate_verification_token()
    certificate = Certificate(
        certificate_id=generate_certificate_id(issued_at.year),
        serial_number=generate_serial_number(),
        verification_token=token,
        verification_url=f"{base_url.rstrip('/')}/verify/{token}",
        title=title,
        type=type,
        status=CertificateStatus.PENDING.value,
        holder_id=holder_id,
        holder_name=holder_name,
        issued_by=issued_by,
        issuer_name=issuer_name,
        issuing_organization=issuing_organization,
        issued_at=issued_at,
        **fields,
    )
    certificate.checksum = certificate.compute_checksum()
    return certificate


def sign_certificate(certificate: Certificate, secret: str) -> str:
    certificate.digital_signature = compute_signature(
        secret, certificate.certificate_id, certificate.serial_number, certificate.checksum,
    )
    certificate.signed_at = utcnow()
    return certificate.digital_signature


def signature_is_valid(certificate: Certificate, secret: str) -> bool:
    """HMAC over the checksum of the *current* field values."""
    return verify_signature(
        secret,
        certificate.digital_signature,
        certificate.certificate_id,
        certificate.serial_number,
        certificate.compute_checksum(),
    )


def build_qr_data_url(certificate: Certificate) -> str:
    """PNG data URL encoding the public verification payload."""
    payload = json.dumps({
        "id": certificate.certificate_id,
        "serial": certificate.serial_number,
        "verifyUrl": certificate.verification_url,
        "holder": certificate.holder_name,
        "issuer": certificate.issuing_organization,
        "issuedAt": certificate.issued_at.isoformat() if certificate.issued_at else None,
    })
    qr = qrcode.QRCode(error_correction=qrcode.constants.ERROR_CORRECT_H, box_size=10, border=1)
    qr.add_data(payload)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    img_base64 = base64.b64encode(buffer.getvalue()).decode()
    return f"data:image/png;base64,{img_base64}"


def evaluate_status(certificate: Certificate, secret: str, now: Optional[datetime] = None) -> tuple[VerificationResult, str]:
    """Verification result and message.

    Precedence: revoked, suspended, expired, any other non-active status,
    then the signature. The first match wins.
    """
    now = now or utcnow()
    if certificate.status == CertificateStatus.REVOKED.value:
        return VerificationResult.REVOKED, f"Certificate has been revoked. Reason: {certificate.revocation_reason}"
    if certificate.status == CertificateStatus.SUSPENDED.value:
        return VerificationResult.SUSPENDED, "Certificate is currently suspended."
    if certificate.is_expired(now):
        return VerificationResult.EXPIRED, f"Certificate expired on {certificate.expires_at.date().isoformat()}."
    if certificate.status != CertificateStatus.ACTIVE.value:
        return VerificationResult.INVALID, "Certificate is not active."
    if not signature_is_valid(certificate, secret):
        return VerificationResult.INVALID, "Certificate signature verification failed. Data may have been tampered."
    return VerificationResult.VALID, "Certificate is valid and authentic."


@dataclass
class VerificationOutcome:
    result: VerificationResult
    message: str
    verified_at: datetime
    certificate: Optional[Certificate] = None


# ─── Service ─────────────────────────────────────────────────────────

class CertificateService:
    """Certificate lifecycle operations. Permission guards run before these are called;
    row-level ownership for `:own` grants is checked here."""

    def __init__(self, db: Session, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    @property
    def signing_secret(self) -> str:
        return self.settings.CERT_SIGNING_SECRET

    def _get(self, certificate_pk: str) -> Certificate:
        certificate = self.db.get(Certificate, certificate_pk)
        if not certificate:
            raise CertificateNotFound()
        return certificate

    def _activate(self, certificate: Certificate) -> None:
        sign_certificate(certificate, self.signing_secret)
        certificate.status = CertificateStatus.ACTIVE.value
        try:
            certificate.qr_code = build_qr_data_url(certificate)
        except Exception as exc:
            logger.warning("QR code generation failed for %s: %s", certificate.certificate_id, exc)

    def _resolve_holder(self, holder_id: Optional[str], holder_email: Optional[str]) -> User:
        if holder_id:
            holder = self.db.get(User, holder_id)
        elif holder_email:
            holder = self.db.query(User).filter(User.email == holder_email.strip().lower()).first()
        else:
            raise HolderRequired()
        if not holder:
            raise HolderNotFound(
                f"User with email {holder_email} not found." if holder_email and not holder_id else None
            )
        return holder

    # ─── Create / sign / revoke ──────────────────────────────────────

    def create(self, actor: User, data: dict, meta: Optional[RequestMeta] = None) -> Certificate:
        """Issue a certificate. Starts pending; activates and signs immediately
        when the creator also holds certificate:sign."""
        data = dict(data)
        holder = self._resolve_holder(data.pop("holder_id", None), data.pop("holder_email", None))

        issuing_organization = data.pop("issuing_organization", None) or actor.organization
        if not issuing_organization:
            raise ValidationFailure(errors=[{
                "field": "issuing_organization",
                "message": "Issuing organization is required",
            }])

        certificate = build_certificate(
            title=data.pop("title"),
            type=data.pop("type"),
            holder_id=holder.id,
            holder_name=data.pop("holder_name", None) or holder.full_name,
            issued_by=actor.id,
            issuer_name=actor.full_name,
            issuing_organization=issuing_organization,
            base_url=self.settings.APP_BASE_URL,
            holder_national_id=data.pop("holder_national_id", None) or holder.national_id,
            issuing_department=data.pop("issuing_department", None) or actor.department,
            expires_at=as_naive_utc(data.pop("expires_at", None)),
            skills=data.pop("skills", None) or [],
            tags=[t.strip().lower() for t in (data.pop("tags", None) or [])],
            cert_metadata=data.pop("metadata", None) or {},
            **data,
        )

        if has_permission(actor.role, Permission.CERTIFICATE_SIGN):
            self._activate(certificate)

        self.db.add(certificate)
        self.db.commit()
        self.db.refresh(certificate)

        AuditService.log(
            AuditAction.CERT_CREATE,
            actor=actor,
            resource="certificate",
            resource_id=certificate.id,
            resource_name=certificate.title,
            meta=meta,
            details={
                "certificateId": certificate.certificate_id,
                "type": certificate.type,
                "holder": certificate.holder_name,
                "status": certificate.status,
                "signed": certificate.digital_signature is not None,
            },
        )
        logger.info("Certificate created: %s by %s", certificate.certificate_id, actor.email)
        return certificate

    def sign(self, actor: User, certificate_pk: str, meta: Optional[RequestMeta] = None) -> Certificate:
        """Promote a pending certificate to active and sign it."""
        certificate = self._get(certificate_pk)
        if certificate.status != CertificateStatus.PENDING.value:
            raise InvalidStatusTransition(
                f"Only pending certificates can be signed (status: {certificate.status}).",
                status=certificate.status,
            )

        self._activate(certificate)
        self.db.commit()
        self.db.refresh(certificate)

        AuditService.log(
            AuditAction.CERT_SIGN,
            actor=actor,
            resource="certificate",
            resource_id=certificate.id,
            resource_name=certificate.title,
            meta=meta,
            changes={"before": {"status": CertificateStatus.PENDING.value}, "after": {"status": certificate.status}},
            details={"certificateId": certificate.certificate_id},
        )
        logger.info("Certificate signed: %s by %s", certificate.certificate_id, actor.email)
        return certificate

    def revoke(
        self,
        actor: User,
        certificate_pk: str,
        reason: Optional[str] = None,
        meta: Optional[RequestMeta] = None,
    ) -> Certificate:
        certificate = self._get(certificate_pk)
        if certificate.status == CertificateStatus.REVOKED.value:
            raise AlreadyRevoked()

        previous_status = certificate.status
        certificate.status = CertificateStatus.REVOKED.value
        certificate.revoked_at = utcnow()
        certificate.revoked_by = actor.id
        certificate.revocation_reason = reason or DEFAULT_REVOCATION_REASON
        self.db.commit()
        self.db.refresh(certificate)

        AuditService.log(
            AuditAction.CERT_REVOKE,
            severity=AuditSeverity.CRITICAL,
            actor=actor,
            resource="certificate",
            resource_id=certificate.id,
            resource_name=certificate.title,
            meta=meta,
            details={
                "certificateId": certificate.certificate_id,
                "reason": certificate.revocation_reason,
                "previousStatus": previous_status,
            },
            changes={"before": {"status": previous_status}, "after": {"status": certificate.status}},
        )
        logger.info("Certificate revoked: %s by %s", certificate.certificate_id, actor.email)
        return certificate

    def expire_overdue(self, actor: Optional[User] = None, meta: Optional[RequestMeta] = None) -> int:
        """Flip every active, past-expiry certificate to expired in one conditional UPDATE."""
        now = utcnow()
        result = self.db.execute(
            update(Certificate)
            .where(
                Certificate.status == CertificateStatus.ACTIVE.value,
                Certificate.expires_at.is_not(None),
                Certificate.expires_at < now,
            )
            .values(status=CertificateStatus.EXPIRED.value, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        # Loaded instances may still hold the old status
        self.db.expire_all()
        count = result.rowcount or 0

        AuditService.log(
            AuditAction.CERT_EXPIRE_SWEEP,
            actor=actor,
            resource="certificate",
            meta=meta,
            details={"expired": count},
        )
        if count:
            logger.info("Expired %d certificate(s)", count)
        return count

    # ─── Public verification ─────────────────────────────────────────

    def verify(self, token: str, caller: Optional[User] = None, meta: Optional[RequestMeta] = None) -> VerificationOutcome:
        """Look up by verification token and evaluate. Never raises for a bad token."""
        meta = meta or RequestMeta()
        now = utcnow()
        certificate = (
            self.db.query(Certificate).filter(Certificate.verification_token == token).first()
            if token else None
        )

        if not certificate:
            AuditService.log(
                AuditAction.CERT_VERIFY_FAILED,
                severity=AuditSeverity.WARNING,
                actor=caller,
                meta=meta,
                success=False,
                status_code=404,
                details={"tokenPrefix": (token or "")[:8], "reason": "Certificate not found"},
            )
            return VerificationOutcome(VerificationResult.INVALID, "Certificate not found.", now)

        result, message = evaluate_status(certificate, self.signing_secret, now)

        certificate.verification_history.append(CertificateVerification(
            verified_by=caller.id if caller is not None else None,
            verified_at=now,
            ip_address=meta.ip_address,
            user_agent=(meta.user_agent or "")[:256] or None,
            result=result.value,
        ))
        self.db.commit()
        self.db.refresh(certificate)

        AuditService.log(
            AuditAction.CERT_VERIFY,
            actor=caller,
            resource="certificate",
            resource_id=certificate.id,
            resource_name=certificate.title,
            meta=meta,
            success=result == VerificationResult.VALID,
            details={"result": result.value, "certificateId": certificate.certificate_id},
        )
        return VerificationOutcome(result, message, now, certificate)

    # ─── Reads ───────────────────────────────────────────────────────

    def _ensure_can_read(self, actor: User, certificate: Certificate, meta: Optional[RequestMeta]) -> None:
        if has_permission(actor.role, Permission.CERTIFICATE_READ):
            return
        if has_permission(actor.role, Permission.CERTIFICATE_READ_OWN) and certificate.holder_id == actor.id:
            return
        self._deny(actor, certificate, meta, "This is not your certificate.")

    def _deny(self, actor: User, certificate: Certificate, meta: Optional[RequestMeta], message: str) -> None:
        AuditService.log(
            AuditAction.CERT_ACCESS_DENIED,
            severity=AuditSeverity.WARNING,
            actor=actor,
            resource="certificate",
            resource_id=certificate.id,
            meta=meta,
            success=False,
            status_code=403,
        )
        raise OwnershipRequired(f"Access denied. {message}")

    def list_for(
        self,
        actor: User,
        status: Optional[str] = None,
        type: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[Certificate], int]:
        query = self.db.query(Certificate)
        if not has_permission(actor.role, Permission.CERTIFICATE_READ):
            if not has_permission(actor.role, Permission.CERTIFICATE_READ_OWN):
                raise PermissionDenied(
                    requiredPermissions=[Permission.CERTIFICATE_READ.value, Permission.CERTIFICATE_READ_OWN.value],
                    userRole=actor.role,
                )
            query = query.filter(Certificate.holder_id == actor.id)

        if status:
            query = query.filter(Certificate.status == status)
        if type:
            query = query.filter(Certificate.type == type)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                Certificate.title.ilike(pattern),
                Certificate.certificate_id.ilike(pattern),
                Certificate.holder_name.ilike(pattern),
                Certificate.serial_number.ilike(pattern),
            ))

        total = query.count()
        certificates = (
            query.order_by(Certificate.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return certificates, total

    def get_for(self, actor: User, certificate_pk: str, meta: Optional[RequestMeta] = None) -> Certificate:
        certificate = self._get(certificate_pk)
        self._ensure_can_read(actor, certificate, meta)

        AuditService.log(
            AuditAction.CERT_VIEW,
            actor=actor,
            resource="certificate",
            resource_id=certificate.id,
            resource_name=certificate.title,
            meta=meta,
        )
        return certificate

    def export_for(self, actor: User, certificate_pk: str, meta: Optional[RequestMeta] = None) -> dict:
        """Full structured dump for exporters or the holder themself."""
        certificate = self._get(certificate_pk)
        if not has_permission(actor.role, Permission.CERTIFICATE_EXPORT) and certificate.holder_id != actor.id:
            self._deny(actor, certificate, meta, "Only the holder or an exporter may export this certificate.")

        AuditService.log(
            AuditAction.CERT_EXPORT,
            actor=actor,
            resource="certificate",
            resource_id=certificate.id,
            resource_name=certificate.title,
            meta=meta,
        )

        holder = certificate.holder
        return {
            "certificate_id": certificate.certificate_id,
            "serial_number": certificate.serial_number,
            "title": certificate.title,
            "description": certificate.description,
            "type": certificate.type,
            "status": certificate.status,
            "holder": {
                "name": certificate.holder_name,
                "email": holder.email if holder else None,
                "national_id": certificate.holder_national_id,
                "organization": holder.organization if holder else None,
            },
            "issuer": {
                "name": certificate.issuer_name,
                "organization": certificate.issuing_organization,
                "department": certificate.issuing_department,
            },
            "dates": {
                "issued_at": certificate.issued_at,
                "expires_at": certificate.expires_at,
                "revoked_at": certificate.revoked_at,
            },
            "verification": {
                "url": certificate.verification_url,
                "token": certificate.verification_token,
                "checksum": certificate.checksum,
                "signature_algorithm": certificate.signature_algorithm,
            },
            "skills": certificate.skills or [],
            "grade": certificate.grade,
            "score": certificate.score,
            "credits": certificate.credits,
            "duration": certificate.duration,
            "exported_at": utcnow(),
            "exported_by": actor.email,
        }

    def stats_for(self, actor: User) -> dict:
        query = self.db.query(Certificate.status, Certificate.type, func.count(Certificate.id))
        if not has_permission(actor.role, Permission.CERTIFICATE_READ):
            query = query.filter(Certificate.holder_id == actor.id)
        rows = query.group_by(Certificate.status, Certificate.type).all()

        summary = {"total": 0, **{s.value: 0 for s in CertificateStatus}}
        by_type: dict[str, int] = {}
        for status, cert_type, count in rows:
            summary["total"] += count
            summary[status] = summary.get(status, 0) + count
            by_type[cert_type] = by_type.get(cert_type, 0) + count
        return {"summary": summary, "by_type": by_type}
