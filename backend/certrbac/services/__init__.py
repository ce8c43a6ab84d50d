from certrbac.services.audit_service import AuditService
from certrbac.services.auth_service import AuthService
from certrbac.services.authorization import AuthorizationEngine
from certrbac.services.certificate_service import CertificateService
from certrbac.services.lockout import AccountLockoutGuard
from certrbac.services.token_service import TokenService
from certrbac.services.user_service import UserService

__all__ = [
    "AuditService", "AuthService", "AuthorizationEngine", "CertificateService",
    "AccountLockoutGuard", "TokenService", "UserService",
]
