"""
Certificate Model — Issued credentials with integrity fields and the
append-only verification history.
"""
from enum import Enum

from sqlalchemy import Column, String, Integer, DateTime, JSON, ForeignKey, Boolean, Float, Text
from sqlalchemy.orm import relationship

from certrbac.database import Base
from certrbac.models.user import new_id
from certrbac.utils.hashing import generate_hash
from certrbac.utils.timeutil import utcnow


class CertificateType(str, Enum):
    ACADEMIC = "academic"
    PROFESSIONAL = "professional"
    TRAINING = "training"
    ACHIEVEMENT = "achievement"
    MEDICAL = "medical"
    GOVERNMENT = "government"
    OTHER = "other"


class CertificateStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    ACTIVE = "active"
    EXPIRED = "expired"
    REVOKED = "revoked"
    SUSPENDED = "suspended"  # reserved, nothing transitions into it yet


class VerificationResult(str, Enum):
    VALID = "valid"
    INVALID = "invalid"
    EXPIRED = "expired"
    REVOKED = "revoked"
    SUSPENDED = "suspended"


SIGNATURE_ALGORITHM = "SHA-256-HMAC"


class Certificate(Base):
    __tablename__ = "certificates"

    id = Column(String(36), primary_key=True, default=new_id, index=True)

    # Identity (assigned once by build_certificate, never recomputed)
    certificate_id = Column(String(32), unique=True, nullable=False, index=True)
    serial_number = Column(String(16), unique=True, nullable=False, index=True)
    verification_token = Column(String(64), unique=True, nullable=False, index=True)
    verification_url = Column(String(512))

    # Content
    title = Column(String(200), nullable=False)
    description = Column(Text)
    type = Column(String(24), nullable=False)
    status = Column(String(16), nullable=False, default=CertificateStatus.PENDING.value, index=True)

    # Parties
    holder_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    holder_name = Column(String(100), nullable=False)
    holder_national_id = Column(String(64))
    issued_by = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    issuer_name = Column(String(100), nullable=False)
    issuing_organization = Column(String(200), nullable=False)
    issuing_department = Column(String(200))

    # Dates
    issued_at = Column(DateTime, nullable=False, default=utcnow)
    expires_at = Column(DateTime, nullable=True, index=True)
    revoked_at = Column(DateTime, nullable=True)
    suspended_at = Column(DateTime, nullable=True)

    # Revocation
    revoked_by = Column(String(36), ForeignKey("users.id"), nullable=True)
    revocation_reason = Column(String(500))

    # Integrity
    checksum = Column(String(64), nullable=False)
    digital_signature = Column(String(64), nullable=True)
    signature_algorithm = Column(String(32), default=SIGNATURE_ALGORITHM)
    signed_at = Column(DateTime, nullable=True)
    qr_code = Column(Text, nullable=True)  # PNG data URL

    # Achievement details
    skills = Column(JSON, default=list)
    grade = Column(String(32))
    score = Column(Float)
    credits = Column(Float)
    duration = Column(String(64))
    is_public = Column(Boolean, default=False)
    tags = Column(JSON, default=list)
    cert_metadata = Column(JSON, default=dict)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    holder = relationship("User", foreign_keys=[holder_id])
    issuer = relationship("User", foreign_keys=[issued_by])
    verification_history = relationship(
        "CertificateVerification",
        back_populates="certificate",
        order_by="CertificateVerification.id",
        cascade="all, delete-orphan",
    )

    def checksum_fields(self) -> dict:
        """Canonical subset of fields covered by the content checksum."""
        return {
            "title": self.title,
            "holder": self.holder_id,
            "holderName": self.holder_name,
            "issuingOrganization": self.issuing_organization,
            "issuedAt": self.issued_at.isoformat() if self.issued_at else None,
            "type": self.type,
        }

    def compute_checksum(self) -> str:
        return generate_hash(self.checksum_fields())

    def is_expired(self, now=None) -> bool:
        now = now or utcnow()
        return bool(self.expires_at and self.expires_at < now)

    def is_valid(self, now=None) -> bool:
        return self.status == CertificateStatus.ACTIVE.value and not self.is_expired(now)


class CertificateVerification(Base):
    """One row per verification attempt. Rows are only ever appended."""
    __tablename__ = "certificate_verifications"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    certificate_pk = Column(String(36), ForeignKey("certificates.id"), nullable=False, index=True)

    verified_by = Column(String(36), nullable=True)   # None for anonymous callers
    verified_at = Column(DateTime, default=utcnow)
    ip_address = Column(String(45))
    user_agent = Column(String(256))
    result = Column(String(16), nullable=False)

    certificate = relationship("Certificate", back_populates="verification_history")
