"""
RBAC Catalog — Roles, permissions and the static role → permission table.

The table is built once at import time and exposed read-only; there is no
code path that mutates it at runtime.
"""
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping


class Role(str, Enum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    ISSUER = "issuer"
    VERIFIER = "verifier"
    HOLDER = "holder"


class Permission(str, Enum):
    # Certificate permissions
    CERTIFICATE_CREATE = "certificate:create"
    CERTIFICATE_READ = "certificate:read"
    CERTIFICATE_READ_OWN = "certificate:read:own"
    CERTIFICATE_UPDATE = "certificate:update"
    CERTIFICATE_DELETE = "certificate:delete"
    CERTIFICATE_REVOKE = "certificate:revoke"
    CERTIFICATE_VERIFY = "certificate:verify"
    CERTIFICATE_EXPORT = "certificate:export"
    CERTIFICATE_SIGN = "certificate:sign"

    # User permissions
    USER_CREATE = "user:create"
    USER_READ = "user:read"
    USER_READ_OWN = "user:read:own"
    USER_UPDATE = "user:update"
    USER_UPDATE_OWN = "user:update:own"
    USER_DELETE = "user:delete"
    USER_ASSIGN_ROLE = "user:assign_role"

    # Role permissions
    ROLE_CREATE = "role:create"
    ROLE_READ = "role:read"
    ROLE_UPDATE = "role:update"
    ROLE_DELETE = "role:delete"

    # Audit log permissions
    AUDIT_READ = "audit:read"
    AUDIT_EXPORT = "audit:export"

    # System permissions
    SYSTEM_CONFIG = "system:config"
    SYSTEM_BACKUP = "system:backup"


# Grants every catalogued permission
ALL_PERMISSIONS = "*"

# Roles allowed to hand out management roles
MANAGEMENT_ROLES = frozenset({Role.ADMIN, Role.SUPER_ADMIN})

# Lowest privilege first
ROLE_HIERARCHY = (
    Role.HOLDER,
    Role.VERIFIER,
    Role.ISSUER,
    Role.ADMIN,
    Role.SUPER_ADMIN,
)

ROLE_DESCRIPTIONS = MappingProxyType({
    Role.SUPER_ADMIN: "Full system access - all permissions",
    Role.ADMIN: "Manage users, certificates, view audit logs",
    Role.ISSUER: "Issue, sign and revoke certificates",
    Role.VERIFIER: "Verify certificate authenticity",
    Role.HOLDER: "View own certificates only",
})


@dataclass(frozen=True)
class PermissionCatalog:
    """Immutable role → ordered permissions mapping."""

    grants: Mapping[str, tuple[str, ...]]

    @classmethod
    def build(cls, table: Mapping[Role, tuple]) -> "PermissionCatalog":
        frozen = {
            role.value: tuple(p.value if isinstance(p, Permission) else p for p in perms)
            for role, perms in table.items()
        }
        return cls(grants=MappingProxyType(frozen))

    def permissions_for(self, role: str) -> tuple[str, ...]:
        return self.grants.get(role, ())

    def known_roles(self) -> tuple[str, ...]:
        return tuple(self.grants)


DEFAULT_CATALOG = PermissionCatalog.build({
    Role.SUPER_ADMIN: (ALL_PERMISSIONS,),

    Role.ADMIN: (
        Permission.CERTIFICATE_CREATE,
        Permission.CERTIFICATE_READ,
        Permission.CERTIFICATE_UPDATE,
        Permission.CERTIFICATE_DELETE,
        Permission.CERTIFICATE_REVOKE,
        Permission.CERTIFICATE_VERIFY,
        Permission.CERTIFICATE_EXPORT,
        Permission.CERTIFICATE_SIGN,
        Permission.USER_CREATE,
        Permission.USER_READ,
        Permission.USER_UPDATE,
        Permission.USER_DELETE,
        Permission.USER_ASSIGN_ROLE,
        Permission.ROLE_READ,
        Permission.AUDIT_READ,
        Permission.AUDIT_EXPORT,
    ),

    Role.ISSUER: (
        Permission.CERTIFICATE_CREATE,
        Permission.CERTIFICATE_READ,
        Permission.CERTIFICATE_UPDATE,
        Permission.CERTIFICATE_REVOKE,
        Permission.CERTIFICATE_VERIFY,
        Permission.CERTIFICATE_EXPORT,
        Permission.CERTIFICATE_SIGN,
        Permission.USER_READ,
        Permission.AUDIT_READ,
    ),

    Role.VERIFIER: (
        Permission.CERTIFICATE_READ,
        Permission.CERTIFICATE_VERIFY,
        Permission.USER_READ_OWN,
        Permission.USER_UPDATE_OWN,
    ),

    Role.HOLDER: (
        Permission.CERTIFICATE_READ_OWN,
        Permission.CERTIFICATE_VERIFY,
        Permission.USER_READ_OWN,
        Permission.USER_UPDATE_OWN,
    ),
})
