"""
Tenant Models

- Tenant: an isolated customer scope with its own data partition
- Domain: host names that resolve to a tenant
- TenantMembership: users associated with a tenant
"""

import uuid
from typing import List, Optional

from django.conf import settings
from django.db import models


class TenantQuerySet(models.QuerySet):
    """QuerySet for tenants with domain lookups."""

    def for_domain(self, domain: str) -> 'TenantQuerySet':
        """Filter tenants that own the given domain."""
        return self.filter(domains__domain=(domain or '').strip().lower())


class TenantManager(models.Manager.from_queryset(TenantQuerySet)):

    def get_by_domain(self, domain: str) -> Optional['Tenant']:
        """Return the tenant owning ``domain`` or None."""
        return self.get_queryset().for_domain(domain).first()


class Tenant(models.Model):
    """A customer account with its own data scope."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=200)

    users = models.ManyToManyField(
        settings.AUTH_USER_MODEL,
        through='TenantMembership',
        related_name='tenants',
        blank=True,
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = TenantManager()

    class Meta:
        db_table = 'tenants'
        ordering = ['name']

    def __str__(self):
        return self.name

    @property
    def primary_domain(self) -> Optional[str]:
        domain = self.domains.order_by('-is_primary', 'id').first()
        return domain.domain if domain else None

    def run(self, callback, *args, **kwargs):
        """Run ``callback`` inside this tenant's data scope."""
        from .context import tenancy
        return tenancy.run(self, callback, *args, **kwargs)

    # Module helpers

    def active_modules(self):
        """Modules whose activation is currently active for this tenant."""
        return self.modules.filter(activations__tenant=self, activations__is_active=True)

    def list_active_modules(self) -> List[str]:
        return list(self.active_modules().values_list('name', flat=True))

    def has_module(self, module_name: str) -> bool:
        return self.active_modules().filter(name=module_name).exists()

    def get_module(self, module_name: str):
        """Return this tenant's activation record for ``module_name``, if any."""
        return self.module_activations.select_related('module').filter(
            module__name=module_name
        ).first()

    def has_modules(self) -> bool:
        return self.module_activations.exists()


class Domain(models.Model):
    """Host name resolving to a tenant."""

    tenant = models.ForeignKey(Tenant, on_delete=models.CASCADE, related_name='domains')
    domain = models.CharField(max_length=255, unique=True)
    is_primary = models.BooleanField(default=False)

    class Meta:
        db_table = 'tenant_domains'

    def __str__(self):
        return self.domain

    def save(self, *args, **kwargs):
        self.domain = self.domain.strip().lower()
        super().save(*args, **kwargs)


class TenantMembership(models.Model):
    """Through model for user-tenant relationships"""

    tenant = models.ForeignKey(Tenant, on_delete=models.CASCADE)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE)
    joined_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'tenant_memberships'
        unique_together = ['tenant', 'user']

    def __str__(self):
        return f"{self.user} in {self.tenant}"
