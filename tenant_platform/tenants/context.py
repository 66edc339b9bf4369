"""
Tenancy Context

Runs callbacks inside a tenant's data scope. The default implementation
tracks the active tenant in a context variable; deployments that keep a
schema or database per tenant subclass ``TenancyContext`` and switch the
connection in ``enter``/``exit``.
"""

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

_current_tenant: ContextVar = ContextVar('current_tenant', default=None)


def get_current_tenant():
    """Return the tenant whose scope is active, if any."""
    return _current_tenant.get()


class TenancyContext:
    """Switches the active tenant scope."""

    def enter(self, tenant) -> None:
        """Hook for scope switching (search_path, connection alias...)."""

    def exit(self, tenant) -> None:
        """Hook called when leaving a tenant scope."""

    @contextmanager
    def scope(self, tenant):
        token = _current_tenant.set(tenant)
        self.enter(tenant)
        try:
            yield tenant
        finally:
            self.exit(tenant)
            _current_tenant.reset(token)

    def run(self, tenant, callback: Callable[..., Any], *args, **kwargs) -> Any:
        """Run ``callback`` with ``tenant`` as the active scope."""
        logger.debug(f"Entering tenant scope {getattr(tenant, 'pk', tenant)}")
        with self.scope(tenant):
            return callback(*args, **kwargs)


tenancy = TenancyContext()


def tenant_context(tenant: Optional[Any]):
    """Context manager shortcut for ``tenancy.scope``."""
    return tenancy.scope(tenant)
