"""
Auth Service — Registration, login (with lockout), token refresh and logout.
"""
import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

from certrbac.errors import (
    AccountInactive, AccountLocked, AppError, EmailTaken, InvalidCredentials,
    NationalIdTaken, TokenInvalid,
)
from certrbac.models.audit import AuditAction, AuditSeverity
from certrbac.models.user import User
from certrbac.rbac import Role
from certrbac.services.audit_service import AuditService, RequestMeta
from certrbac.services.lockout import AccountLockoutGuard
from certrbac.services.token_service import TokenPair, TokenService
from certrbac.utils.passwords import hash_password, verify_password
from certrbac.utils.timeutil import utcnow
from certrbac.utils.validators import normalize_email, sanitize_name

logger = logging.getLogger(__name__)


def ensure_unique_identity(db: Session, email: str, national_id: Optional[str]) -> None:
    if db.query(User).filter(User.email == email).first():
        raise EmailTaken()
    if national_id and db.query(User).filter(User.national_id == national_id).first():
        raise NationalIdTaken()


class AuthService:
    """Authentication flows. Password hashing is pluggable for tests."""

    def __init__(
        self,
        db: Session,
        tokens: Optional[TokenService] = None,
        lockout: Optional[AccountLockoutGuard] = None,
        password_hasher: Callable[[str], str] = hash_password,
        password_verifier: Callable[[str, str], bool] = verify_password,
    ):
        self.db = db
        self.tokens = tokens or TokenService.from_settings()
        self.lockout = lockout or AccountLockoutGuard.from_settings()
        self.password_hasher = password_hasher
        self.password_verifier = password_verifier

    def register(
        self,
        full_name: str,
        email: str,
        password: str,
        organization: Optional[str] = None,
        department: Optional[str] = None,
        national_id: Optional[str] = None,
        phone_number: Optional[str] = None,
        meta: Optional[RequestMeta] = None,
    ) -> tuple[User, TokenPair]:
        """Self-registration. The role is always holder."""
        email = normalize_email(email)
        ensure_unique_identity(self.db, email, national_id)

        user = User(
            full_name=sanitize_name(full_name),
            email=email,
            password_hash=self.password_hasher(password),
            role=Role.HOLDER.value,
            organization=organization,
            department=department,
            national_id=national_id,
            phone_number=phone_number,
        )
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)

        tokens = self.tokens.create_token_pair(user)

        AuditService.log(
            AuditAction.AUTH_REGISTER,
            actor=user,
            resource="user",
            resource_id=user.id,
            resource_name=user.full_name,
            meta=meta,
            details={"email": user.email, "role": user.role},
        )
        logger.info("New user registered: %s (%s)", user.email, user.role)
        return user, tokens

    def login(self, email: str, password: str, meta: Optional[RequestMeta] = None) -> tuple[User, TokenPair]:
        """Authenticate by e-mail and password.

        Raises:
            InvalidCredentials: unknown e-mail or wrong password.
            AccountLocked: lock window still open; the password is not checked.
            AccountInactive: account deactivated.
        """
        email = normalize_email(email)
        user = self.db.query(User).filter(User.email == email).first()

        if not user:
            AuditService.log(
                AuditAction.AUTH_LOGIN_FAILED,
                severity=AuditSeverity.WARNING,
                actor_email=email,
                meta=meta,
                success=False,
                status_code=401,
                details={"email": email, "reason": "User not found"},
            )
            raise InvalidCredentials()

        now = utcnow()
        if self.lockout.is_locked(user, now):
            AuditService.log(
                AuditAction.AUTH_ACCOUNT_LOCKED,
                severity=AuditSeverity.CRITICAL,
                actor=user,
                resource="user",
                resource_id=user.id,
                meta=meta,
                success=False,
                status_code=423,
                details={"lockUntil": user.lock_until},
            )
            raise AccountLocked(
                "Account locked due to multiple failed login attempts. Try again later.",
                lockUntil=user.lock_until.isoformat(),
            )

        if not user.is_active:
            AuditService.log(
                AuditAction.AUTH_LOGIN_FAILED,
                severity=AuditSeverity.WARNING,
                actor=user,
                resource="user",
                resource_id=user.id,
                meta=meta,
                success=False,
                status_code=401,
                details={"reason": "Account deactivated"},
            )
            raise AccountInactive("Account deactivated. Contact administrator.")

        if not self.password_verifier(password, user.password_hash):
            self.lockout.register_failure(user, now)
            self.db.commit()
            AuditService.log(
                AuditAction.AUTH_LOGIN_FAILED,
                severity=AuditSeverity.WARNING,
                actor=user,
                resource="user",
                resource_id=user.id,
                meta=meta,
                success=False,
                status_code=401,
                details={
                    "reason": "Wrong password",
                    "attempts": user.login_attempts,
                    "locked": user.lock_until is not None,
                },
            )
            raise InvalidCredentials()

        self.lockout.register_success(user, now)
        self.db.commit()
        self.db.refresh(user)

        tokens = self.tokens.create_token_pair(user)

        AuditService.log(
            AuditAction.AUTH_LOGIN,
            actor=user,
            resource="user",
            resource_id=user.id,
            meta=meta,
            details={"role": user.role},
        )
        logger.info("User logged in: %s", user.email)
        return user, tokens

    def refresh(self, refresh_token: str, meta: Optional[RequestMeta] = None) -> TokenPair:
        """Exchange a valid refresh token for a brand-new pair.

        The presented refresh token stays valid until it expires.
        """
        try:
            claims = self.tokens.verify_refresh_token(refresh_token)
            user = self.db.get(User, claims["sub"])
            if not user:
                raise TokenInvalid("User not found.")
            if not user.is_active:
                raise AccountInactive()
        except AppError as exc:
            AuditService.log(
                AuditAction.SECURITY_UNAUTHORIZED,
                severity=AuditSeverity.WARNING,
                meta=meta,
                success=False,
                status_code=exc.status_code,
                error_message=exc.message,
                details={"reason": exc.code, "token": "refresh"},
            )
            raise

        tokens = self.tokens.create_token_pair(user)
        AuditService.log(AuditAction.AUTH_TOKEN_REFRESH, actor=user, meta=meta)
        return tokens

    def logout(self, user: User, meta: Optional[RequestMeta] = None) -> None:
        """Record the logout. Issued tokens are not revoked server-side."""
        AuditService.log(AuditAction.AUTH_LOGOUT, actor=user, meta=meta)
