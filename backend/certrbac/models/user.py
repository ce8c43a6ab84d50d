"""
User Model — Account identity, role label and login-lockout state.
Maps to the 'users' table.
"""
import uuid
from sqlalchemy import Column, String, DateTime, JSON, Integer, Boolean

from certrbac.database import Base
from certrbac.rbac import Role
from certrbac.utils.timeutil import utcnow


def new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id, index=True)
    full_name = Column(String(100), nullable=False)
    email = Column(String(254), unique=True, nullable=False, index=True)
    password_hash = Column(String(128), nullable=False)

    role = Column(String(16), nullable=False, default=Role.HOLDER.value, index=True)
    # Roles: super_admin | admin | issuer | verifier | holder

    is_active = Column(Boolean, default=True, nullable=False)
    is_email_verified = Column(Boolean, default=False)

    # Lockout state
    login_attempts = Column(Integer, default=0, nullable=False)
    lock_until = Column(DateTime, nullable=True)
    last_login = Column(DateTime, nullable=True)

    # Organization metadata
    organization = Column(String(200))
    department = Column(String(200))
    national_id = Column(String(64), unique=True, nullable=True)
    phone_number = Column(String(32))

    created_by = Column(String(36), nullable=True)
    user_metadata = Column(JSON, default=dict)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def is_locked(self, now=None) -> bool:
        now = now or utcnow()
        return bool(self.lock_until and self.lock_until > now)

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role})>"
