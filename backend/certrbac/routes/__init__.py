from certrbac.routes.auth import router as auth_router
from certrbac.routes.users import router as users_router
from certrbac.routes.certificates import router as certificates_router
from certrbac.routes.verify import router as verify_router
from certrbac.routes.audit import router as audit_router

__all__ = ["auth_router", "users_router", "certificates_router", "verify_router", "audit_router"]
