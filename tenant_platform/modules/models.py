"""
Module System Models

Defines the data models for the tenant module system including:
- Module: catalog entry for a feature module
- TenantModule: per-tenant activation state, settings and billing metadata
- ModuleLog: append-only audit trail of module state changes
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional, Set

from django.conf import settings
from django.db import models
from django.utils import timezone

from .exceptions import ImmutableRecordError

logger = logging.getLogger(__name__)


class ModuleAction(models.TextChoices):
    ENABLED = 'enabled', 'Enabled'
    DISABLED = 'disabled', 'Disabled'
    DELETED = 'deleted', 'Deleted'


class Module(models.Model):
    """
    Catalog entry for a module that tenants can activate.

    Rows are created on first discovery or first activation and only removed
    by an explicit administrative delete.
    """
    name = models.CharField(
        max_length=191,
        unique=True,
        help_text="Unique module name (e.g. inventory)"
    )
    description = models.CharField(max_length=255, blank=True, default='')
    version = models.CharField(
        max_length=50,
        default='1.0.0',
        help_text="Semantic version (e.g., 1.0.0)"
    )
    is_core = models.BooleanField(
        default=False,
        help_text="Core modules cannot be disabled or deleted through the normal flow"
    )
    settings_schema = models.JSONField(
        null=True,
        blank=True,
        help_text="JSON Schema for per-tenant module settings"
    )

    tenants = models.ManyToManyField(
        'tenants.Tenant',
        through='TenantModule',
        related_name='modules',
        blank=True,
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'modules'
        ordering = ['name']

    def __str__(self):
        return f"{self.name}@{self.version}"

    def active_tenants(self):
        """Tenants with an active activation for this module."""
        return self.tenants.filter(module_activations__module=self, module_activations__is_active=True)


class TenantModuleQuerySet(models.QuerySet):
    """QuerySet for activation records."""

    def for_tenant(self, tenant) -> 'TenantModuleQuerySet':
        return self.filter(tenant_id=getattr(tenant, 'pk', tenant))

    def for_module(self, module_name: str) -> 'TenantModuleQuerySet':
        return self.filter(module__name=module_name)

    def active(self) -> 'TenantModuleQuerySet':
        return self.filter(is_active=True)

    def inactive(self) -> 'TenantModuleQuerySet':
        return self.filter(is_active=False)

    def in_activation_order(self) -> 'TenantModuleQuerySet':
        return self.order_by('activated_at', 'id')

    def names(self) -> Set[str]:
        return set(self.values_list('module__name', flat=True))


class TenantModule(models.Model):
    """
    Activation record for one (tenant, module) pair.

    ``is_active`` implies ``activated_at`` is set and ``deactivated_at`` is
    null for the current activation epoch.
    """
    tenant = models.ForeignKey(
        'tenants.Tenant',
        on_delete=models.CASCADE,
        related_name='module_activations'
    )
    module = models.ForeignKey(
        Module,
        on_delete=models.CASCADE,
        related_name='activations'
    )

    is_active = models.BooleanField(default=False)
    activated_at = models.DateTimeField(null=True, blank=True)
    deactivated_at = models.DateTimeField(null=True, blank=True)

    settings = models.JSONField(
        default=dict,
        blank=True,
        help_text="Module settings specific to this tenant"
    )

    # Billing metadata is stored for external billing, never computed here
    last_billed_at = models.DateTimeField(null=True, blank=True)
    billing_cycle = models.CharField(max_length=50, blank=True, default='')

    # Provisioning bookkeeping
    provisioned_version = models.CharField(max_length=50, blank=True, default='')
    provisioned_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = TenantModuleQuerySet.as_manager()

    class Meta:
        db_table = 'tenant_modules'
        constraints = [
            models.UniqueConstraint(fields=['tenant', 'module'], name='unique_tenant_module'),
        ]
        indexes = [
            models.Index(fields=['tenant', 'is_active'], name='tenant_mod_tenant_active_idx'),
        ]

    def __str__(self):
        state = 'active' if self.is_active else 'inactive'
        return f"{self.module.name} for {self.tenant_id} ({state})"

    def activate(self, when: Optional[datetime] = None) -> None:
        self.is_active = True
        self.activated_at = when or timezone.now()
        self.deactivated_at = None

    def deactivate(self, when: Optional[datetime] = None) -> None:
        self.is_active = False
        self.deactivated_at = when or timezone.now()

    def mark_provisioned(self, version: str, when: Optional[datetime] = None) -> None:
        self.provisioned_version = version
        self.provisioned_at = when or timezone.now()

    def needs_provisioning(self, version: str) -> bool:
        return self.provisioned_version != version

    def active_duration(self, now: Optional[datetime] = None) -> float:
        """Seconds this module has been active in its latest epoch."""
        if self.activated_at is None:
            return 0.0

        end = (now or timezone.now()) if self.is_active else self.deactivated_at
        if end is None or end < self.activated_at:
            return 0.0
        return (end - self.activated_at).total_seconds()


class ModuleLogQuerySet(models.QuerySet):
    """Read-only QuerySet for audit entries."""

    def for_tenant(self, tenant) -> 'ModuleLogQuerySet':
        return self.filter(tenant_id=getattr(tenant, 'pk', tenant))

    def for_module(self, module_name: str) -> 'ModuleLogQuerySet':
        return self.filter(module_name=module_name)

    def for_action(self, action: str) -> 'ModuleLogQuerySet':
        return self.filter(action=action)

    def update(self, **kwargs):
        raise ImmutableRecordError("Module log entries cannot be updated")

    def delete(self):
        raise ImmutableRecordError(
            "Module log entries can only be removed with ModuleLog.objects.purge_tenant()"
        )


class ModuleLogManager(models.Manager.from_queryset(ModuleLogQuerySet)):
    """Append-only writer for module audit entries."""

    def record(
        self,
        tenant,
        module_name: str,
        action: str,
        occurred_at: Optional[datetime] = None,
        performed_by=None,
    ) -> 'ModuleLog':
        """
        Append an audit entry.

        Args:
            tenant: Tenant the action applied to
            module_name: Module name (kept as a string, survives module deletion)
            action: One of ModuleAction
            occurred_at: When the action happened (defaults to now)
            performed_by: User who triggered the action

        Returns:
            Created ModuleLog instance
        """
        entry = self.create(
            tenant=tenant,
            module_name=module_name,
            action=ModuleAction(action),
            occurred_at=occurred_at or timezone.now(),
            performed_by=performed_by,
        )
        logger.debug(f"Recorded module log {entry.action} for {module_name} on tenant {entry.tenant_id}")
        return entry

    def purge_tenant(self, tenant) -> int:
        """Remove every entry for ``tenant``. Only used when a tenant is deleted."""
        queryset = self.get_queryset().for_tenant(tenant)
        deleted, _ = models.QuerySet.delete(queryset)
        if deleted:
            logger.info(f"Purged {deleted} module log entries for tenant {getattr(tenant, 'pk', tenant)}")
        return deleted


class ModuleLog(models.Model):
    """
    Immutable audit record of a module state change.

    Keyed by module name rather than a foreign key so entries remain a
    historical record after the module row is deleted.
    """
    tenant = models.ForeignKey(
        'tenants.Tenant',
        on_delete=models.CASCADE,
        related_name='module_logs'
    )
    module_name = models.CharField(max_length=191, db_index=True)
    action = models.CharField(max_length=20, choices=ModuleAction.choices)
    occurred_at = models.DateTimeField(default=timezone.now)
    performed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    objects = ModuleLogManager()

    class Meta:
        db_table = 'module_logs'
        ordering = ['occurred_at', 'id']
        indexes = [
            models.Index(fields=['tenant', 'module_name', 'occurred_at'], name='module_logs_tenant_mod_idx'),
        ]

    def __str__(self):
        return f"{self.module_name} {self.action} for {self.tenant_id} at {self.occurred_at}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ImmutableRecordError("Module log entries cannot be updated")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableRecordError(
            "Module log entries can only be removed with ModuleLog.objects.purge_tenant()"
        )


def module_snapshot(module: Module) -> Dict[str, Any]:
    """Plain metadata snapshot of a module used in events."""
    return {
        'name': module.name,
        'description': module.description,
        'version': module.version,
        'is_core': module.is_core,
    }
