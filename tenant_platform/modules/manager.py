"""
Module Manager

Transactional lifecycle of tenant modules. ``enable`` and ``disable``
update the activation record, provision the module, reconcile permissions
and write the audit log in one transaction, then publish a state event once
the transaction commits.

All public operations report failures through ``OperationResult`` instead of
raising.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

import jsonschema
from django.db import DatabaseError, transaction
from django.utils import timezone

from .events import ModuleEventBus, ModuleStateEvent, event_bus
from .exceptions import (
    ModuleError, ModuleNotFoundError, ModuleValidationError,
    TenantNotFoundError, TransactionError
)
from .models import Module, ModuleAction, ModuleLog, TenantModule
from .permissions import PermissionSynchronizer
from .provisioning import provision_module, provisioners as default_provisioners
from .registry import ModuleRegistry, catalog_defaults, module_registry

logger = logging.getLogger(__name__)


@dataclass
class OperationResult:
    """Outcome of a module operation."""
    success: bool
    action: str
    module_name: str
    tenant_id: Optional[str] = None
    changed: bool = False
    error: Optional[ModuleError] = None

    def __bool__(self):
        return self.success

    @property
    def message(self) -> str:
        return str(self.error) if self.error else ''

    def raise_for_error(self) -> 'OperationResult':
        if self.error is not None:
            raise self.error
        return self


class ModuleManager:
    """
    Orchestrates module state for tenants.

    Collaborators are injectable; defaults are the process-wide registry,
    Django permission store, tenancy context, provisioner registry and
    event bus.
    """

    def __init__(
        self,
        registry: Optional[ModuleRegistry] = None,
        synchronizer: Optional[PermissionSynchronizer] = None,
        tenancy=None,
        provisioners=None,
        bus: Optional[ModuleEventBus] = None,
    ):
        self.registry = registry or module_registry
        self.provisioners = provisioners or default_provisioners
        self.synchronizer = synchronizer or PermissionSynchronizer(
            registry=self.registry,
            provisioners=self.provisioners,
        )
        if tenancy is None:
            from tenant_platform.tenants.context import tenancy
        self.tenancy = tenancy
        self.bus = bus or event_bus

    # Lifecycle

    def enable(self, tenant, module_name: str, acting_user=None) -> OperationResult:
        """
        Enable ``module_name`` for ``tenant``.

        Enabling an already active module succeeds without provisioning,
        logging or publishing anything.
        """
        tenant_id = str(tenant.pk)
        logger.info(f"Enabling module {module_name} for tenant {tenant_id}")

        try:
            descriptor = self.registry.lookup(module_name)
            module = self._get_or_create_module(descriptor)

            with transaction.atomic():
                activation, created = TenantModule.objects.select_for_update().get_or_create(
                    tenant=tenant,
                    module=module,
                )
                if activation.is_active:
                    logger.info(f"Module {module_name} already enabled for tenant {tenant_id}")
                    return OperationResult(True, ModuleAction.ENABLED, module_name, tenant_id)

                activation.activate()
                provision_module(
                    activation,
                    descriptor,
                    self.tenancy,
                    store=self.synchronizer.store,
                    registry=self.provisioners,
                )
                activation.save()

                self.synchronizer.reconcile(tenant, module_name)
                log = ModuleLog.objects.record(
                    tenant, module_name, ModuleAction.ENABLED,
                    occurred_at=activation.activated_at,
                    performed_by=acting_user,
                )

                event = ModuleStateEvent.for_module(
                    ModuleAction.ENABLED, tenant, module,
                    performed_by=acting_user,
                    timestamp=log.occurred_at,
                )
                transaction.on_commit(lambda: self.bus.publish(event), robust=True)

        except Exception as e:
            return self._failure(ModuleAction.ENABLED, tenant_id, module_name, e)

        logger.info(f"Enabled module {module_name} for tenant {tenant_id}")
        return OperationResult(True, ModuleAction.ENABLED, module_name, tenant_id, changed=True)

    def disable(self, tenant, module_name: str, acting_user=None) -> OperationResult:
        """
        Disable ``module_name`` for ``tenant``.

        Provisioned data is kept so the module can be enabled again.
        """
        tenant_id = str(tenant.pk)
        logger.info(f"Disabling module {module_name} for tenant {tenant_id}")

        try:
            module = Module.objects.filter(name=module_name).first()
            if module is None:
                raise ModuleNotFoundError(f"Module {module_name} not found")
            if module.is_core:
                raise ModuleValidationError(f"Module {module_name} is a core module and cannot be disabled")

            with transaction.atomic():
                activation = TenantModule.objects.select_for_update().filter(
                    tenant=tenant,
                    module=module,
                ).first()
                if activation is None or not activation.is_active:
                    logger.info(f"Module {module_name} already disabled for tenant {tenant_id}")
                    return OperationResult(True, ModuleAction.DISABLED, module_name, tenant_id)

                activation.deactivate()
                activation.save(update_fields=['is_active', 'deactivated_at', 'updated_at'])

                log = ModuleLog.objects.record(
                    tenant, module_name, ModuleAction.DISABLED,
                    occurred_at=activation.deactivated_at,
                    performed_by=acting_user,
                )

                event = ModuleStateEvent.for_module(
                    ModuleAction.DISABLED, tenant, module,
                    performed_by=acting_user,
                    timestamp=log.occurred_at,
                )
                transaction.on_commit(lambda: self.bus.publish(event), robust=True)

        except Exception as e:
            return self._failure(ModuleAction.DISABLED, tenant_id, module_name, e)

        logger.info(f"Disabled module {module_name} for tenant {tenant_id}")
        return OperationResult(True, ModuleAction.DISABLED, module_name, tenant_id, changed=True)

    def delete_module(self, module_name: str, force: bool = False, acting_user=None) -> OperationResult:
        """
        Remove a module from the catalog along with every tenant activation.

        Core modules and modules active for any tenant are refused unless
        ``force`` is set. Audit entries are kept.
        """
        logger.info(f"Deleting module {module_name} (force={force})")

        try:
            with transaction.atomic():
                module = Module.objects.select_for_update().filter(name=module_name).first()
                if module is None:
                    raise ModuleNotFoundError(f"Module {module_name} not found")

                activations = list(module.activations.select_related('tenant'))
                active = [a for a in activations if a.is_active]

                if module.is_core and not force:
                    raise ModuleValidationError(f"Module {module_name} is a core module and cannot be deleted")
                if active and not force:
                    raise ModuleValidationError(
                        f"Module {module_name} is enabled for {len(active)} tenant(s); use force to delete it"
                    )

                now = timezone.now()
                for activation in activations:
                    ModuleLog.objects.record(
                        activation.tenant, module_name, ModuleAction.DELETED,
                        occurred_at=now,
                        performed_by=acting_user,
                    )

                events = [
                    ModuleStateEvent.for_module(
                        ModuleAction.DISABLED, activation.tenant, module,
                        performed_by=acting_user,
                        timestamp=now,
                    )
                    for activation in active
                ]
                module.delete()

                def publish_all():
                    for event in events:
                        self.bus.publish(event)

                transaction.on_commit(publish_all, robust=True)

        except Exception as e:
            return self._failure(ModuleAction.DELETED, None, module_name, e)

        logger.info(f"Deleted module {module_name}")
        return OperationResult(True, ModuleAction.DELETED, module_name, changed=True)

    # Queries

    def is_enabled(self, tenant, module_name: str) -> bool:
        """Active for the tenant and not switched off globally."""
        active = TenantModule.objects.for_tenant(tenant).for_module(module_name).active().exists()
        return active and self.registry.is_available(module_name)

    def get_enabled_modules(self, tenant) -> Set[str]:
        """Names of modules active for ``tenant``, ignoring the global kill switch."""
        return TenantModule.objects.for_tenant(tenant).active().names()

    def get_available_modules(self, tenant) -> Set[str]:
        """Names of modules active for ``tenant`` and globally enabled."""
        available = self.registry.discover()
        return {name for name in self.get_enabled_modules(tenant) if name in available}

    def get_status(self, tenant, module_name: Optional[str] = None) -> List[Dict[str, Any]]:
        """Activation state rows for ``tenant``, optionally for one module."""
        activations = TenantModule.objects.for_tenant(tenant).select_related('module').order_by('module__name')
        if module_name:
            activations = activations.for_module(module_name)

        return [
            {
                'module': activation.module.name,
                'version': activation.module.version,
                'is_active': activation.is_active,
                'available': self.registry.is_available(activation.module.name),
                'activated_at': activation.activated_at,
                'deactivated_at': activation.deactivated_at,
            }
            for activation in activations
        ]

    # Settings and billing

    def get_settings(self, tenant, module_name: str) -> Dict[str, Any]:
        """
        Tenant settings for a module.

        Raises:
            NotFoundError: If the module has never been activated for the tenant
        """
        activation = self._get_activation(tenant, module_name)
        return dict(activation.settings or {})

    def update_settings(self, tenant, module_name: str, values: Dict[str, Any], replace: bool = False) -> OperationResult:
        """Merge (or replace) tenant settings, validated against the module's settings schema."""
        tenant_id = str(tenant.pk)
        try:
            with transaction.atomic():
                activation = self._get_activation(tenant, module_name, for_update=True)
                merged = dict(values) if replace else {**(activation.settings or {}), **values}

                schema = activation.module.settings_schema
                if schema:
                    try:
                        jsonschema.validate(instance=merged, schema=schema)
                    except jsonschema.ValidationError as e:
                        raise ModuleValidationError(f"Invalid settings for {module_name}: {e.message}") from e
                    except jsonschema.SchemaError as e:
                        raise ModuleValidationError(f"Invalid settings schema for {module_name}: {e.message}") from e

                activation.settings = merged
                activation.save(update_fields=['settings', 'updated_at'])
        except Exception as e:
            return self._failure('settings', tenant_id, module_name, e)

        logger.info(f"Updated settings of {module_name} for tenant {tenant_id}")
        return OperationResult(True, 'settings', module_name, tenant_id, changed=True)

    def record_billing(self, tenant, module_name: str, billing_cycle: Optional[str] = None,
                       billed_at: Optional[datetime] = None) -> OperationResult:
        """Store billing metadata supplied by the billing system."""
        tenant_id = str(tenant.pk)
        try:
            with transaction.atomic():
                activation = self._get_activation(tenant, module_name, for_update=True)
                activation.last_billed_at = billed_at or timezone.now()
                if billing_cycle is not None:
                    activation.billing_cycle = billing_cycle
                activation.save(update_fields=['last_billed_at', 'billing_cycle', 'updated_at'])
        except Exception as e:
            return self._failure('billing', tenant_id, module_name, e)

        return OperationResult(True, 'billing', module_name, tenant_id, changed=True)

    # Tenants

    def resolve_tenant(self, domain: Optional[str]):
        """
        Tenant owning ``domain``.

        Raises:
            ModuleValidationError: If no domain was given
            TenantNotFoundError: If no tenant owns the domain
        """
        if not domain or not domain.strip():
            raise ModuleValidationError("A tenant domain is required")

        from tenant_platform.tenants.models import Tenant

        tenant = Tenant.objects.get_by_domain(domain)
        if tenant is None:
            raise TenantNotFoundError(f"Tenant with domain {domain} not found")
        return tenant

    # Helpers

    def _get_or_create_module(self, descriptor) -> Module:
        # Unique name constraint keeps concurrent first activations from duplicating rows
        module, created = Module.objects.get_or_create(
            name=descriptor.name,
            defaults=catalog_defaults(descriptor),
        )
        if created:
            logger.info(f"Added module {descriptor.name} to catalog")
            return module

        defaults = catalog_defaults(descriptor)
        changed = [field for field, value in defaults.items() if getattr(module, field) != value]
        if changed:
            for field in changed:
                setattr(module, field, defaults[field])
            module.save(update_fields=changed + ['updated_at'])
        return module

    def _get_activation(self, tenant, module_name: str, for_update: bool = False) -> TenantModule:
        queryset = TenantModule.objects.select_related('module')
        if for_update:
            queryset = queryset.select_for_update()
        activation = queryset.for_tenant(tenant).for_module(module_name).first()
        if activation is None:
            raise ModuleNotFoundError(f"Module {module_name} has not been enabled for tenant {tenant.pk}")
        return activation

    def _failure(self, action, tenant_id, module_name: str, exc: Exception) -> OperationResult:
        if isinstance(exc, ModuleError):
            error = exc
            logger.error(f"Module {action} of {module_name} for tenant {tenant_id} failed: {exc}")
        elif isinstance(exc, DatabaseError):
            error = TransactionError(f"Database error during {action} of {module_name}: {exc}")
            error.__cause__ = exc
            logger.error(f"Module {action} of {module_name} for tenant {tenant_id} failed: {exc}")
        else:
            error = TransactionError(f"Unexpected error during {action} of {module_name}: {exc}")
            error.__cause__ = exc
            logger.exception(f"Module {action} of {module_name} for tenant {tenant_id} failed")

        return OperationResult(False, str(action), module_name, tenant_id, error=error)


# Global manager instance
module_manager = ModuleManager()
