"""
Route Dependencies — Authentication and authorization guards for FastAPI routes.

Guards run in order: authenticate (`get_current_user`) then exactly one
authorization guard. The user is re-read from the database on every request,
so role changes and deactivation take effect before the token expires.
"""
import logging
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from certrbac.database import get_db
from certrbac.errors import (
    AccountInactive, AppError, AuthRequired, OwnershipRequired, PermissionDenied,
    RoleDenied, TokenInvalid,
)
from certrbac.models.audit import AuditAction, AuditSeverity
from certrbac.models.user import User
from certrbac.rbac import Permission, Role
from certrbac.services.audit_service import AuditService, RequestMeta
from certrbac.services.authorization import has_any_permission, has_permission, has_role
from certrbac.services.token_service import TokenService, extract_bearer_token

logger = logging.getLogger(__name__)


def request_meta(request: Request) -> RequestMeta:
    return RequestMeta(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent", "")[:256],
        method=request.method,
        path=request.url.path,
    )


@lru_cache()
def get_token_service() -> TokenService:
    return TokenService.from_settings()


def _authenticate(token: Optional[str], db: Session, tokens: TokenService) -> User:
    if not token:
        raise AuthRequired()
    claims = tokens.verify_access_token(token)
    user = db.get(User, claims["sub"])
    if not user:
        raise TokenInvalid("User not found.")
    if not user.is_active:
        raise AccountInactive()
    return user


def get_current_user(
    request: Request,
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
) -> User:
    """Resolve the bearer token to an active user, auditing every rejection."""
    try:
        return _authenticate(extract_bearer_token(authorization), db, tokens)
    except AppError as exc:
        AuditService.log(
            AuditAction.SECURITY_UNAUTHORIZED,
            severity=AuditSeverity.WARNING,
            meta=request_meta(request),
            success=False,
            status_code=exc.status_code,
            error_message=exc.message,
            details={"reason": exc.code},
        )
        raise


def get_optional_user(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
) -> Optional[User]:
    """Caller identity for public endpoints; any token problem means anonymous."""
    token = extract_bearer_token(authorization)
    if not token:
        return None
    try:
        return _authenticate(token, db, tokens)
    except AppError as exc:
        logger.debug("Ignoring unusable token on public endpoint: %s", exc.code)
        return None


def _forbid(request: Request, user: User, error: AppError) -> None:
    AuditService.log(
        AuditAction.SECURITY_FORBIDDEN,
        severity=AuditSeverity.WARNING,
        actor=user,
        meta=request_meta(request),
        success=False,
        status_code=error.status_code,
        error_message=error.message,
        details=error.extra,
    )
    raise error


def require_permission(permission: Permission):
    """Guard: the caller's role must grant `permission`."""
    def guard(request: Request, user: User = Depends(get_current_user)) -> User:
        if not has_permission(user.role, permission):
            _forbid(request, user, PermissionDenied(
                requiredPermission=permission.value,
                userRole=user.role,
            ))
        return user
    return guard


def require_any_permission(*permissions: Permission):
    def guard(request: Request, user: User = Depends(get_current_user)) -> User:
        if not has_any_permission(user.role, permissions):
            _forbid(request, user, PermissionDenied(
                requiredPermissions=[p.value for p in permissions],
                userRole=user.role,
            ))
        return user
    return guard


def require_role(*roles: Role):
    def guard(request: Request, user: User = Depends(get_current_user)) -> User:
        if not has_role(user.role, roles):
            _forbid(request, user, RoleDenied(
                allowedRoles=[r.value for r in roles],
                userRole=user.role,
            ))
        return user
    return guard


def require_owner_or_admin(admin_permission: Permission):
    """Guard: caller is the `user_id` path target, or holds `admin_permission`."""
    def guard(user_id: str, request: Request, user: User = Depends(get_current_user)) -> User:
        if user.id != user_id and not has_permission(user.role, admin_permission):
            _forbid(request, user, OwnershipRequired())
        return user
    return guard
