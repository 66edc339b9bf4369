"""
Module Provisioning

Runs a module's schema setup and seed data inside a tenant's data scope.

Modules that need more than declared migrations and fixtures register a provisioner class
under their name::

    @provisioner('inventory')
    class InventoryProvisioner(ModuleProvisioner):
        def migrate(self, tenant):
            ...
"""

import logging
import threading
from typing import Dict, Optional, Type

from django.core.management import call_command

from .base import ModuleDescriptor
from .exceptions import ProvisioningError

logger = logging.getLogger(__name__)


class ModuleProvisioner:
    """
    Default provisioner.

    ``migrate`` runs Django migrations for the app labels the descriptor lists
    under ``migrations``; ``seed`` loads its ``fixtures``; ``seed_permissions``
    creates the permissions it declares.
    """

    def __init__(self, descriptor: ModuleDescriptor):
        self.descriptor = descriptor

    @property
    def module_name(self) -> str:
        return self.descriptor.name

    def migrate(self, tenant) -> None:
        """Apply module schema changes for ``tenant``."""
        for app_label in self.descriptor.migrations:
            logger.info(f"Migrating {app_label} for module {self.module_name}, tenant {tenant.pk}")
            call_command('migrate', app_label, interactive=False, verbosity=0)

    def seed(self, tenant) -> None:
        """Insert module seed data for ``tenant``."""
        fixtures = self.descriptor.fixture_paths()
        if fixtures:
            logger.info(f"Loading {len(fixtures)} fixtures for module {self.module_name}, tenant {tenant.pk}")
            call_command('loaddata', *fixtures, verbosity=0)

    def seed_permissions(self, tenant, store) -> int:
        """Create declared permissions in ``store``. Returns how many were ensured."""
        permissions = self.descriptor.permissions
        for permission in permissions:
            store.ensure_permission(permission)
        return len(permissions)

    def provision(self, tenant, store=None) -> None:
        self.migrate(tenant)
        self.seed(tenant)
        if store is not None:
            self.seed_permissions(tenant, store)


class ProvisionerRegistry:
    """Maps module names to provisioner classes."""

    def __init__(self):
        self._provisioners: Dict[str, Type[ModuleProvisioner]] = {}
        self._lock = threading.Lock()

    def register(self, name: str, provisioner_class: Optional[Type[ModuleProvisioner]] = None):
        """Register ``provisioner_class`` for ``name``. Usable as a decorator."""
        def decorator(cls):
            if not issubclass(cls, ModuleProvisioner):
                raise TypeError(f"{cls.__name__} must inherit from ModuleProvisioner")
            with self._lock:
                self._provisioners[name] = cls
            logger.debug(f"Registered provisioner {cls.__name__} for module {name}")
            return cls

        if provisioner_class is not None:
            return decorator(provisioner_class)
        return decorator

    def unregister(self, name: str) -> None:
        with self._lock:
            self._provisioners.pop(name, None)

    def get(self, descriptor: ModuleDescriptor) -> ModuleProvisioner:
        provisioner_class = self._provisioners.get(descriptor.name, ModuleProvisioner)
        return provisioner_class(descriptor)

    def __contains__(self, name: str) -> bool:
        return name in self._provisioners


provisioners = ProvisionerRegistry()


def provisioner(name: str):
    """Decorator registering a provisioner class with the global registry."""
    return provisioners.register(name)


def provision_module(activation, descriptor: ModuleDescriptor, tenancy, store=None, registry=None) -> bool:
    """
    Provision ``descriptor`` for the activation's tenant if not already done.

    Provisioning is skipped when the tenant was already provisioned at the
    descriptor's version, so repeated enables never re-run migrations.

    Returns:
        True if provisioning ran

    Raises:
        ProvisioningError: If the provisioner fails
    """
    if not activation.needs_provisioning(descriptor.version):
        logger.debug(f"{descriptor} already provisioned for tenant {activation.tenant_id}")
        return False

    tenant = activation.tenant
    handler = (registry or provisioners).get(descriptor)

    logger.info(f"Provisioning {descriptor} for tenant {tenant.pk}")
    try:
        tenancy.run(tenant, handler.provision, tenant, store)
    except ProvisioningError:
        raise
    except Exception as e:
        raise ProvisioningError(f"Provisioning {descriptor.name} failed: {e}") from e

    activation.mark_provisioned(descriptor.version)
    return True
