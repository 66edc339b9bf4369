"""
Tenant Platform Package

Provides tenant-scoped feature modules for multi-tenant Django projects:
- Tenants, domains and tenant membership
- Module activation per tenant with audit trail
- Permission reconciliation and per-tenant navigation
"""

__version__ = '1.0.0'

# This will make sure the app is always imported when
# Django starts so that shared_task will use this app.
from .celery import app as celery_app


def get_module_manager():
    """Lazy import the module manager to avoid early Django model loading"""
    from .modules.manager import module_manager
    return module_manager


def get_module_registry():
    """Lazy import module registry to avoid early Django model loading"""
    from .modules.registry import module_registry
    return module_registry


__all__ = [
    'celery_app',
    'get_module_manager',
    'get_module_registry',
]
