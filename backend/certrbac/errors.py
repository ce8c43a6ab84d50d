"""
Error Taxonomy — Domain exceptions rendered into the uniform error envelope:
    {"success": false, "error": <message>, "code": <CODE>, ...extra}
"""
from typing import Any


class AppError(Exception):
    """Base application error. Subclasses fix status_code, code and a default message."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    message: str = "Internal server error"

    def __init__(self, message: str | None = None, **extra: Any):
        self.message = message or self.message
        self.extra = extra
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"success": False, "error": self.message, "code": self.code, **self.extra}


# ─── Authentication (401) ───────────────────────────────────────────

class AuthenticationFailure(AppError):
    status_code = 401
    code = "AUTH_REQUIRED"
    message = "Authentication required. Please provide a valid token."


class AuthRequired(AuthenticationFailure):
    pass


class TokenExpired(AuthenticationFailure):
    code = "TOKEN_EXPIRED"
    message = "Token expired. Please refresh your session."


class TokenInvalid(AuthenticationFailure):
    code = "TOKEN_INVALID"
    message = "Invalid token."


class TokenTypeInvalid(AuthenticationFailure):
    code = "TOKEN_TYPE_INVALID"
    message = "Invalid token type."


class AccountInactive(AuthenticationFailure):
    code = "ACCOUNT_INACTIVE"
    message = "Account is deactivated. Contact administrator."


class InvalidCredentials(AuthenticationFailure):
    code = "INVALID_CREDENTIALS"
    message = "Invalid email or password."


# ─── Authorization (403) ────────────────────────────────────────────

class AuthorizationFailure(AppError):
    status_code = 403
    code = "PERMISSION_DENIED"
    message = "Access denied. Insufficient permissions."


class PermissionDenied(AuthorizationFailure):
    pass


class RoleDenied(AuthorizationFailure):
    code = "ROLE_DENIED"
    message = "Access denied. Insufficient role."


class OwnershipRequired(AuthorizationFailure):
    code = "OWNERSHIP_REQUIRED"
    message = "Access denied. You can only access your own resources."


class InsufficientPrivilege(AuthorizationFailure):
    code = "INSUFFICIENT_PRIVILEGE"
    message = "Only super admins can grant admin roles."


# ─── Lockout (423) ──────────────────────────────────────────────────

class AccountLocked(AppError):
    status_code = 423
    code = "ACCOUNT_LOCKED"
    message = "Account locked due to multiple failed login attempts."


# ─── Conflicts (409 / 400) ──────────────────────────────────────────

class EmailTaken(AppError):
    status_code = 409
    code = "EMAIL_TAKEN"
    message = "Email already registered."


class NationalIdTaken(AppError):
    status_code = 409
    code = "NATIONAL_ID_TAKEN"
    message = "National ID already registered."


class UserHasCertificates(AppError):
    status_code = 409
    code = "USER_HAS_CERTIFICATES"
    message = "User is referenced by certificates. Deactivate the account instead."


class AlreadyRevoked(AppError):
    status_code = 400
    code = "ALREADY_REVOKED"
    message = "Certificate is already revoked."


class InvalidStatusTransition(AppError):
    status_code = 400
    code = "INVALID_STATUS"
    message = "Certificate status does not allow this operation."


class SelfDeactivation(AppError):
    status_code = 400
    code = "SELF_DEACTIVATION"
    message = "Cannot deactivate your own account."


class SelfDeletion(AppError):
    status_code = 400
    code = "SELF_DELETION"
    message = "Cannot delete your own account."


class HolderRequired(AppError):
    status_code = 400
    code = "HOLDER_REQUIRED"
    message = "Certificate holder is required. Provide holder_id or holder_email."


# ─── Not found (404) ────────────────────────────────────────────────

class NotFound(AppError):
    status_code = 404
    code = "NOT_FOUND"
    message = "Resource not found."


class CertificateNotFound(NotFound):
    code = "CERT_NOT_FOUND"
    message = "Certificate not found."


class UserNotFound(NotFound):
    code = "USER_NOT_FOUND"
    message = "User not found."


class HolderNotFound(NotFound):
    code = "HOLDER_NOT_FOUND"
    message = "Certificate holder not found."


# ─── Validation (422) ───────────────────────────────────────────────

class ValidationFailure(AppError):
    status_code = 422
    code = "VALIDATION_ERROR"
    message = "Validation failed"
