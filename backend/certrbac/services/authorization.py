"""
Authorization Engine — Answers "may this role do that?" against the catalog.
Pure functions over static data; never raises on unknown input.
"""
from typing import Iterable

from certrbac.rbac import ALL_PERMISSIONS, DEFAULT_CATALOG, Permission, PermissionCatalog

_KNOWN_PERMISSIONS = frozenset(p.value for p in Permission)


def _value(item) -> str:
    return item.value if hasattr(item, "value") else item


class AuthorizationEngine:
    """Stateless permission evaluator bound to one PermissionCatalog."""

    def __init__(self, catalog: PermissionCatalog = DEFAULT_CATALOG):
        self.catalog = catalog

    def has_permission(self, role, permission) -> bool:
        """True iff the role's grant list contains the permission or the all-sentinel.

        `resource:action` and `resource:action:own` are independent grants;
        ownership itself is checked by the calling operation.
        """
        if role is None or permission is None:
            return False
        permission = _value(permission)
        grants = self.catalog.permissions_for(_value(role))
        if ALL_PERMISSIONS in grants:
            return permission in _KNOWN_PERMISSIONS
        return permission in grants

    def has_any_permission(self, role, permissions: Iterable) -> bool:
        return any(self.has_permission(role, p) for p in permissions)

    def has_role(self, role, allowed_roles: Iterable) -> bool:
        if role is None:
            return False
        return _value(role) in {_value(r) for r in allowed_roles}

    def get_permissions(self, role) -> tuple[str, ...]:
        """Expanded permission list for a role (the sentinel is expanded)."""
        grants = self.catalog.permissions_for(_value(role))
        if ALL_PERMISSIONS in grants:
            return tuple(p.value for p in Permission)
        return grants


engine = AuthorizationEngine()

has_permission = engine.has_permission
has_any_permission = engine.has_any_permission
has_role = engine.has_role
get_permissions = engine.get_permissions
