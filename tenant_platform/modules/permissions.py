"""
Module Permission Synchronization

Grants module permissions and module-scoped roles to tenant users according
to a fixed role hierarchy. Permissions are named ``<module>.<action>``.
"""

import logging
from typing import Iterable, List, Optional, Protocol, Set

from django.contrib.auth.models import Group, Permission
from django.contrib.contenttypes.models import ContentType
from django.db import transaction

from .exceptions import ModuleError, PermissionSyncError

logger = logging.getLogger(__name__)


OWNER = 'Owner'
ADMIN = 'Admin'
MANAGER = 'Manager'
MEMBER = 'Member'

ROLE_HIERARCHY = (OWNER, ADMIN, MANAGER, MEMBER)
MANAGING_ROLES = {OWNER.lower(), ADMIN.lower()}

# Content type model name shared by every module's permissions
PERMISSION_MODEL = 'module'


def permissions_for_role(role: str, permissions: Iterable[str]) -> Set[str]:
    """
    Subset of ``permissions`` granted to ``role``.

    Owner and Admin get everything, Manager everything except delete/manage,
    Member only view. Unknown roles get nothing.
    """
    role = role.lower()
    permissions = set(permissions)

    if role in MANAGING_ROLES:
        return permissions
    if role == MANAGER.lower():
        return {p for p in permissions if not p.endswith(('.delete', '.manage'))}
    if role == MEMBER.lower():
        return {p for p in permissions if p.endswith('.view')}
    return set()


def module_role_name(module_name: str, roles: Iterable[str]) -> str:
    """Coarse module-scoped role for a user holding ``roles``."""
    if any(role.lower() in MANAGING_ROLES for role in roles):
        return f"{module_name}-manager"
    return f"{module_name}-user"


class PermissionStore(Protocol):
    """Role/permission backend used by the synchronizer."""

    def permissions_for_module(self, module_name: str) -> List[str]: ...

    def ensure_permission(self, permission: str) -> None: ...

    def grant_permission(self, user, permission: str) -> None: ...

    def assign_role(self, user, role: str) -> None: ...

    def get_role_names(self, user) -> Set[str]: ...

    def has_permission(self, user, permission: str) -> bool: ...


class DjangoPermissionStore:
    """
    PermissionStore backed by ``django.contrib.auth``.

    Each module gets a content type with ``app_label=<module>``, so the
    permission ``inventory.view`` is checked with ``user.has_perm('inventory.view')``.
    Roles are auth groups.
    """

    def _content_type(self, module_name: str) -> ContentType:
        content_type, _ = ContentType.objects.get_or_create(
            app_label=module_name,
            model=PERMISSION_MODEL,
        )
        return content_type

    @staticmethod
    def _split(permission: str):
        if '.' not in permission:
            raise ModuleError(f"Permission {permission} must be named <module>.<action>")
        return permission.split('.', 1)

    def permissions_for_module(self, module_name: str) -> List[str]:
        codenames = Permission.objects.filter(
            content_type__app_label=module_name,
            content_type__model=PERMISSION_MODEL,
        ).order_by('codename').values_list('codename', flat=True)
        return [f"{module_name}.{codename}" for codename in codenames]

    def ensure_permission(self, permission: str) -> None:
        module_name, action = self._split(permission)
        Permission.objects.get_or_create(
            content_type=self._content_type(module_name),
            codename=action,
            defaults={'name': f"Can {action.replace('_', ' ')} {module_name}"},
        )

    def grant_permission(self, user, permission: str) -> None:
        module_name, action = self._split(permission)
        perm = Permission.objects.get(
            content_type__app_label=module_name,
            content_type__model=PERMISSION_MODEL,
            codename=action,
        )
        user.user_permissions.add(perm)

    def assign_role(self, user, role: str) -> None:
        group, _ = Group.objects.get_or_create(name=role)
        user.groups.add(group)

    def get_role_names(self, user) -> Set[str]:
        return set(user.groups.values_list('name', flat=True))

    def has_permission(self, user, permission: str) -> bool:
        if user is None or not getattr(user, 'is_active', False):
            return False
        return user.has_perm(permission)


class PermissionSynchronizer:
    """Reconciles module permissions for tenant users."""

    def __init__(self, store: Optional[PermissionStore] = None, registry=None, provisioners=None):
        self.store = store or DjangoPermissionStore()
        self._registry = registry
        self._provisioners = provisioners

    @property
    def registry(self):
        if self._registry is None:
            from .registry import module_registry
            self._registry = module_registry
        return self._registry

    @property
    def provisioners(self):
        if self._provisioners is None:
            from .provisioning import provisioners
            self._provisioners = provisioners
        return self._provisioners

    def reconcile(self, tenant, module_name: str, users: Optional[Iterable] = None) -> int:
        """
        Grant ``module_name`` permissions to ``users`` by role.

        Additive and safe to re-run. A module without permissions, even after
        one seeding pass, grants nothing.

        Args:
            tenant: Tenant whose users are reconciled
            module_name: Module name
            users: Users to reconcile (defaults to every tenant user)

        Returns:
            Number of users reconciled

        Raises:
            PermissionSyncError: If the permission store fails
        """
        try:
            with transaction.atomic():
                return self._reconcile(tenant, module_name, users)
        except ModuleError:
            raise
        except Exception as e:
            logger.error(f"Permission sync for {module_name} on tenant {tenant.pk} failed: {e}")
            raise PermissionSyncError(f"Could not reconcile permissions for {module_name}: {e}") from e

    def _reconcile(self, tenant, module_name: str, users: Optional[Iterable]) -> int:
        permissions = self.store.permissions_for_module(module_name)
        if not permissions:
            self._seed(tenant, module_name)
            permissions = self.store.permissions_for_module(module_name)
            if not permissions:
                logger.info(f"Module {module_name} declares no permissions, nothing to grant")
                return 0

        if users is None:
            users = tenant.users.all()

        count = 0
        for user in users:
            roles = self.store.get_role_names(user)
            granted: Set[str] = set()
            for role in roles:
                granted |= permissions_for_role(role, permissions)

            for permission in sorted(granted):
                self.store.grant_permission(user, permission)
            self.store.assign_role(user, module_role_name(module_name, roles))
            count += 1

        logger.info(f"Reconciled {module_name} permissions for {count} users of tenant {tenant.pk}")
        return count

    def _seed(self, tenant, module_name: str) -> None:
        descriptor = self.registry.get(module_name)
        if descriptor is None:
            return
        self.provisioners.get(descriptor).seed_permissions(tenant, self.store)
