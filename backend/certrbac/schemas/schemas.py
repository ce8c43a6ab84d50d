"""
Pydantic Schemas — Request & Response models for API validation.
"""
from datetime import datetime
from typing import Optional, Dict, List, Any
from pydantic import BaseModel, Field, field_validator

from certrbac.models.certificate import CertificateType
from certrbac.rbac import Role
from certrbac.utils.validators import validate_email, validate_password_strength


def _check_email(value: str) -> str:
    if not validate_email(value):
        raise ValueError("Valid email is required")
    return value.strip().lower()


def _check_password(value: str) -> str:
    ok, message = validate_password_strength(value)
    if not ok:
        raise ValueError(message)
    return value


# ──────────────── Auth ────────────────

class RegisterRequest(BaseModel):
    full_name: str = Field(..., min_length=2, max_length=100)
    email: str
    password: str
    organization: Optional[str] = Field(None, max_length=200)
    department: Optional[str] = Field(None, max_length=200)
    national_id: Optional[str] = Field(None, max_length=64)
    phone_number: Optional[str] = Field(None, max_length=32)

    @field_validator("email")
    @classmethod
    def check_email(cls, value: str) -> str:
        return _check_email(value)

    @field_validator("password")
    @classmethod
    def check_password(cls, value: str) -> str:
        return _check_password(value)


class LoginRequest(BaseModel):
    email: str
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def check_email(cls, value: str) -> str:
        return _check_email(value)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class TokenPairOut(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int

    class Config:
        from_attributes = True


class UserOut(BaseModel):
    id: str
    full_name: str
    email: str
    role: str
    is_active: bool
    organization: Optional[str] = None
    department: Optional[str] = None
    national_id: Optional[str] = None
    phone_number: Optional[str] = None
    is_email_verified: bool = False
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AuthResponse(BaseModel):
    success: bool = True
    message: str
    user: UserOut
    tokens: TokenPairOut


class RefreshResponse(BaseModel):
    success: bool = True
    message: str = "Token refreshed."
    tokens: TokenPairOut


class MessageResponse(BaseModel):
    success: bool = True
    message: str


# ──────────────── Users ────────────────

class UserCreateRequest(RegisterRequest):
    role: Role = Role.HOLDER


class RoleAssignRequest(BaseModel):
    role: Role


class StatusUpdateRequest(BaseModel):
    is_active: bool


class RoleAssignResponse(BaseModel):
    success: bool = True
    message: str
    user_id: str
    email: str
    previous_role: str
    new_role: str


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    pages: int


class UserListResponse(BaseModel):
    success: bool = True
    users: List[UserOut]
    pagination: Pagination


# ──────────────── Certificates ────────────────

class CertificateCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    type: CertificateType
    holder_id: Optional[str] = None
    holder_email: Optional[str] = None
    holder_name: Optional[str] = Field(None, max_length=100)
    holder_national_id: Optional[str] = None
    issuing_organization: Optional[str] = Field(None, max_length=200)
    issuing_department: Optional[str] = Field(None, max_length=200)
    expires_at: Optional[datetime] = None
    skills: List[str] = []
    grade: Optional[str] = Field(None, max_length=32)
    score: Optional[float] = Field(None, ge=0, le=100)
    credits: Optional[float] = Field(None, ge=0)
    duration: Optional[str] = Field(None, max_length=64)
    is_public: bool = False
    tags: List[str] = []
    metadata: Dict[str, Any] = {}


class RevokeRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class VerificationRecordOut(BaseModel):
    verified_by: Optional[str] = None
    verified_at: datetime
    ip_address: Optional[str] = None
    result: str

    class Config:
        from_attributes = True


class CertificateOut(BaseModel):
    """Authenticated view. The signature itself is never serialized."""
    id: str
    certificate_id: str
    serial_number: str
    title: str
    description: Optional[str] = None
    type: str
    status: str
    holder_id: str
    holder_name: str
    issued_by: str
    issuer_name: str
    issuing_organization: str
    issuing_department: Optional[str] = None
    issued_at: datetime
    expires_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None
    revoked_by: Optional[str] = None
    revocation_reason: Optional[str] = None
    checksum: str
    signature_algorithm: Optional[str] = None
    signed_at: Optional[datetime] = None
    verification_token: str
    verification_url: Optional[str] = None
    qr_code: Optional[str] = None
    skills: List[str] = []
    grade: Optional[str] = None
    score: Optional[float] = None
    credits: Optional[float] = None
    duration: Optional[str] = None
    is_public: bool = False
    tags: List[str] = []
    verification_history: List[VerificationRecordOut] = []
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CertificateResponse(BaseModel):
    success: bool = True
    message: str = ""
    certificate: CertificateOut


class CertificateListResponse(BaseModel):
    success: bool = True
    certificates: List[CertificateOut]
    pagination: Pagination


class CertificateSummary(BaseModel):
    """Redacted public view returned by verification."""
    certificate_id: str
    serial_number: str
    title: str
    type: str
    status: str
    holder_name: str
    issuing_organization: str
    issued_at: datetime
    expires_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None
    revocation_reason: Optional[str] = None

    class Config:
        from_attributes = True


class VerificationResponse(BaseModel):
    success: bool = True
    result: str  # valid | revoked | expired | suspended | invalid
    message: str
    is_valid: bool
    verified_at: datetime
    certificate: CertificateSummary


class ExpireSweepResponse(BaseModel):
    success: bool = True
    expired: int


# ──────────────── Audit ────────────────

class AuditLogEntry(BaseModel):
    id: int
    action: str
    severity: str
    performed_by: Optional[str] = None
    performed_by_email: Optional[str] = None
    performed_by_role: Optional[str] = None
    target_resource: Optional[str] = None
    target_id: Optional[str] = None
    target_name: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    request_method: Optional[str] = None
    request_path: Optional[str] = None
    success: bool
    status_code: Optional[int] = None
    error_message: Optional[str] = None
    details: Optional[Dict] = None
    changes: Optional[Dict] = None
    payload_hash: Optional[str] = None
    timestamp: datetime

    class Config:
        from_attributes = True


class AuditListResponse(BaseModel):
    success: bool = True
    logs: List[AuditLogEntry]
    pagination: Pagination


# ──────────────── Generic ────────────────

class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    database: str
    uptime_seconds: float

