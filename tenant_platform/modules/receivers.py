"""
Module System Receivers

Keeps navigation caches and audit records consistent with module and
tenant changes.
"""

import logging

from django.db.models.signals import pre_delete
from django.dispatch import receiver

from tenant_platform.tenants.models import Tenant

from .events import ModuleStateEvent
from .models import ModuleLog
from .navigation import navigation_cache
from .signals import module_state_changed

logger = logging.getLogger(__name__)


@receiver(module_state_changed, sender=ModuleStateEvent)
def invalidate_navigation(sender, event, **kwargs):
    """Drop the tenant's cached menu whenever a module changes state."""
    navigation_cache.invalidate(event.tenant_id)


@receiver(pre_delete, sender=Tenant)
def purge_module_logs(sender, instance, **kwargs):
    """Audit entries go with their tenant."""
    ModuleLog.objects.purge_tenant(instance)
