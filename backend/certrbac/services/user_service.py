"""
User Service — Administrative user management under the privilege-escalation rule.
"""
import logging
from typing import Optional

from sqlalchemy import case, func, or_
from sqlalchemy.orm import Session

from certrbac.errors import (
    InsufficientPrivilege, SelfDeactivation, SelfDeletion, UserHasCertificates, UserNotFound,
    ValidationFailure,
)
from certrbac.models.audit import AuditAction, AuditSeverity
from certrbac.models.certificate import Certificate
from certrbac.models.user import User
from certrbac.rbac import MANAGEMENT_ROLES, Role
from certrbac.services.audit_service import AuditService, RequestMeta
from certrbac.services.auth_service import ensure_unique_identity
from certrbac.utils.passwords import hash_password
from certrbac.utils.validators import normalize_email, sanitize_name

logger = logging.getLogger(__name__)

_ROLE_VALUES = {r.value for r in Role}


def check_role_grant(actor: User, role: str, meta: Optional[RequestMeta] = None) -> None:
    """Only a super_admin may hand out admin or super_admin. Denials are audited."""
    if role in {r.value for r in MANAGEMENT_ROLES} and actor.role != Role.SUPER_ADMIN.value:
        error = InsufficientPrivilege(
            "Only super admins can assign admin roles.",
            requestedRole=role,
            userRole=actor.role,
        )
        AuditService.log(
            AuditAction.SECURITY_FORBIDDEN,
            severity=AuditSeverity.WARNING,
            actor=actor,
            meta=meta,
            success=False,
            status_code=error.status_code,
            error_message=error.message,
            details=error.extra,
        )
        logger.warning("Role grant denied: %s (%s) requested %s", actor.email, actor.role, role)
        raise error


class UserService:

    def __init__(self, db: Session):
        self.db = db

    def _get(self, user_id: str) -> User:
        user = self.db.get(User, user_id)
        if not user:
            raise UserNotFound()
        return user

    def get(self, user_id: str) -> User:
        return self._get(user_id)

    def list_users(
        self,
        role: Optional[str] = None,
        is_active: Optional[bool] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[User], int]:
        query = self.db.query(User)
        if role and role in _ROLE_VALUES:
            query = query.filter(User.role == role)
        if is_active is not None:
            query = query.filter(User.is_active.is_(is_active))
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                User.full_name.ilike(pattern),
                User.email.ilike(pattern),
                User.organization.ilike(pattern),
            ))

        total = query.count()
        users = (
            query.order_by(User.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return users, total

    def create(
        self,
        actor: User,
        full_name: str,
        email: str,
        password: str,
        role: Optional[str] = None,
        organization: Optional[str] = None,
        department: Optional[str] = None,
        national_id: Optional[str] = None,
        phone_number: Optional[str] = None,
        meta: Optional[RequestMeta] = None,
    ) -> User:
        role = role or Role.HOLDER.value
        if role not in _ROLE_VALUES:
            raise ValidationFailure("Invalid role.", errors=[{"field": "role", "message": "Invalid role"}])
        check_role_grant(actor, role, meta)

        email = normalize_email(email)
        ensure_unique_identity(self.db, email, national_id)

        user = User(
            full_name=sanitize_name(full_name),
            email=email,
            password_hash=hash_password(password),
            role=role,
            organization=organization,
            department=department,
            national_id=national_id,
            phone_number=phone_number,
            created_by=actor.id,
        )
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)

        AuditService.log(
            AuditAction.USER_CREATE,
            severity=AuditSeverity.WARNING if role in {r.value for r in MANAGEMENT_ROLES} else AuditSeverity.INFO,
            actor=actor,
            resource="user",
            resource_id=user.id,
            resource_name=user.full_name,
            meta=meta,
            details={"email": user.email, "role": user.role},
        )
        logger.info("User created: %s (%s) by %s", user.email, user.role, actor.email)
        return user

    def assign_role(self, actor: User, user_id: str, role: str, meta: Optional[RequestMeta] = None) -> tuple[User, str]:
        """Change a user's role. Returns the user and the previous role."""
        if role not in _ROLE_VALUES:
            raise ValidationFailure("Invalid role.", errors=[{"field": "role", "message": "Invalid role"}])
        check_role_grant(actor, role, meta)

        user = self._get(user_id)
        previous_role = user.role
        user.role = role
        self.db.commit()
        self.db.refresh(user)

        AuditService.log(
            AuditAction.USER_ROLE_ASSIGN,
            severity=AuditSeverity.WARNING,
            actor=actor,
            resource="user",
            resource_id=user.id,
            resource_name=user.full_name,
            meta=meta,
            changes={"before": {"role": previous_role}, "after": {"role": role}},
        )
        logger.info("Role assigned: %s -> %s by %s", user.email, role, actor.email)
        return user, previous_role

    def set_active(self, actor: User, user_id: str, is_active: bool, meta: Optional[RequestMeta] = None) -> User:
        if user_id == actor.id and not is_active:
            raise SelfDeactivation()

        user = self._get(user_id)
        previous = user.is_active
        user.is_active = is_active
        self.db.commit()
        self.db.refresh(user)

        AuditService.log(
            AuditAction.USER_ACTIVATE if is_active else AuditAction.USER_DEACTIVATE,
            severity=AuditSeverity.WARNING,
            actor=actor,
            resource="user",
            resource_id=user.id,
            resource_name=user.full_name,
            meta=meta,
            changes={"before": {"is_active": previous}, "after": {"is_active": is_active}},
        )
        return user

    def delete(self, actor: User, user_id: str, meta: Optional[RequestMeta] = None) -> None:
        """Hard delete. Route-level guard restricts this to super_admin.

        Users still referenced by a certificate as holder, issuer or revoker
        are refused; deactivation keeps them out without orphaning records.
        """
        if user_id == actor.id:
            raise SelfDeletion()

        user = self._get(user_id)
        referenced = (
            self.db.query(func.count(Certificate.id))
            .filter(or_(
                Certificate.holder_id == user.id,
                Certificate.issued_by == user.id,
                Certificate.revoked_by == user.id,
            ))
            .scalar()
        )
        if referenced:
            raise UserHasCertificates(certificateCount=referenced)

        snapshot = {"id": user.id, "email": user.email, "role": user.role, "full_name": user.full_name}
        self.db.delete(user)
        self.db.commit()

        AuditService.log(
            AuditAction.USER_DELETE,
            severity=AuditSeverity.CRITICAL,
            actor=actor,
            resource="user",
            resource_id=snapshot["id"],
            resource_name=snapshot["full_name"],
            meta=meta,
            changes={"before": snapshot, "after": None},
        )
        logger.info("User deleted: %s by %s", snapshot["email"], actor.email)

    def stats(self) -> dict:
        rows = (
            self.db.query(User.role, func.count(User.id), func.sum(case((User.is_active.is_(True), 1), else_=0)))
            .group_by(User.role)
            .all()
        )
        total = self.db.query(func.count(User.id)).scalar() or 0
        return {
            "total": total,
            "by_role": [
                {"role": role, "count": count, "active": int(active or 0)}
                for role, count, active in rows
            ],
        }
