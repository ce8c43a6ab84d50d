"""
Audit Log Model — Immutable, tamper-evident audit trail.
Every entry snapshots the actor and is SHA-256 hash-chained to its predecessor.
"""
from enum import Enum

from sqlalchemy import Column, String, Integer, DateTime, JSON, Boolean

from certrbac.database import Base
from certrbac.utils.timeutil import utcnow


class AuditAction(str, Enum):
    # Auth actions
    AUTH_LOGIN = "auth.login"
    AUTH_LOGOUT = "auth.logout"
    AUTH_REGISTER = "auth.register"
    AUTH_LOGIN_FAILED = "auth.login_failed"
    AUTH_ACCOUNT_LOCKED = "auth.account_locked"
    AUTH_PASSWORD_RESET = "auth.password_reset"
    AUTH_TOKEN_REFRESH = "auth.token_refresh"

    # Certificate actions
    CERT_CREATE = "certificate.create"
    CERT_VIEW = "certificate.view"
    CERT_UPDATE = "certificate.update"
    CERT_DELETE = "certificate.delete"
    CERT_REVOKE = "certificate.revoke"
    CERT_SIGN = "certificate.sign"
    CERT_VERIFY = "certificate.verify"
    CERT_EXPORT = "certificate.export"
    CERT_VERIFY_FAILED = "certificate.verify_failed"
    CERT_ACCESS_DENIED = "certificate.access_denied"
    CERT_EXPIRE_SWEEP = "certificate.expire_sweep"

    # User actions
    USER_CREATE = "user.create"
    USER_UPDATE = "user.update"
    USER_DELETE = "user.delete"
    USER_ROLE_ASSIGN = "user.role_assign"
    USER_ACTIVATE = "user.activate"
    USER_DEACTIVATE = "user.deactivate"

    # Security events
    SECURITY_UNAUTHORIZED = "security.unauthorized"
    SECURITY_FORBIDDEN = "security.forbidden"
    SECURITY_RATE_LIMIT = "security.rate_limit"
    SECURITY_SUSPICIOUS = "security.suspicious_activity"


class AuditSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"
    ERROR = "error"


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)

    action = Column(String(50), nullable=False, index=True)
    severity = Column(String(16), nullable=False, default=AuditSeverity.INFO.value, index=True)

    # Actor snapshot (not a live reference: users may be deleted or change role)
    performed_by = Column(String(36), index=True)
    performed_by_email = Column(String(254))
    performed_by_role = Column(String(16))

    # Target
    target_resource = Column(String(32), index=True)   # certificate | user
    target_id = Column(String(64), index=True)
    target_name = Column(String(200))

    # Request context
    ip_address = Column(String(45), index=True)
    user_agent = Column(String(256))
    request_method = Column(String(8))
    request_path = Column(String(512))

    # Outcome
    success = Column(Boolean, default=True)
    error_message = Column(String(512))
    status_code = Column(Integer)

    details = Column(JSON, default=dict)
    changes = Column(JSON, nullable=True)   # {"before": {...}, "after": {...}}

    payload_hash = Column(String(64))       # Chain hash of this entry
    previous_hash = Column(String(64))      # Hash of the entry before it

    timestamp = Column(DateTime, default=utcnow, index=True)
