"""
Module Navigation

Builds a tenant's menu from the navigation each active module declares,
filtered by the viewing user's permissions and translated for their locale.
"""

import logging
from collections import OrderedDict
from typing import Any, Dict, List, Optional

from django.core.cache import cache

from .base import NavigationNode
from .conf import module_settings
from .models import ModuleAction, TenantModule
from .permissions import DjangoPermissionStore
from .signals import module_state_changed, navigation_invalidated
from .translation import ModuleTranslator

logger = logging.getLogger(__name__)


class NavigationCache:
    """Per-tenant cache of flattened navigation trees."""

    prefix = 'tenant_modules:navigation'

    def __init__(self, timeout: Optional[int] = None):
        self._timeout = timeout

    @property
    def timeout(self) -> int:
        return self._timeout if self._timeout is not None else module_settings.CACHE_TIMEOUT

    def key(self, tenant_id) -> str:
        return f"{self.prefix}:{tenant_id}"

    def get(self, tenant_id) -> Optional[List[NavigationNode]]:
        return cache.get(self.key(tenant_id))

    def set(self, tenant_id, nodes: List[NavigationNode]) -> None:
        cache.set(self.key(tenant_id), nodes, self.timeout)

    def invalidate(self, tenant_id) -> None:
        cache.delete(self.key(tenant_id))
        navigation_invalidated.send(sender=self.__class__, tenant_id=str(tenant_id))
        logger.debug(f"Invalidated navigation cache for tenant {tenant_id}")


navigation_cache = NavigationCache()


class NavigationComposer:
    """
    Menu composer for one tenant, user and locale.

    A module is registered while it is active for the tenant and available
    in the registry. Registered trees are kept in registration order, and
    composers follow enable/disable events for their tenant.
    """

    def __init__(self, tenant, user=None, locale: Optional[str] = None,
                 registry=None, store=None, translator=None, cache=None):
        self.tenant = tenant
        self.user = user
        self.locale = locale
        self._registry = registry
        self.store = store or DjangoPermissionStore()
        self.translator = translator or ModuleTranslator(registry=registry)
        self.cache = cache or navigation_cache
        self._registered: 'OrderedDict[str, List[NavigationNode]]' = OrderedDict()

        self._load()
        module_state_changed.connect(self._on_state_changed, weak=True)

    @property
    def registry(self):
        if self._registry is None:
            from .registry import module_registry
            self._registry = module_registry
        return self._registry

    @property
    def tenant_id(self) -> str:
        return str(self.tenant.pk)

    @property
    def registered_modules(self) -> List[str]:
        return list(self._registered)

    # Registration

    def _load(self) -> None:
        available = self.registry.discover()
        activations = (
            TenantModule.objects.for_tenant(self.tenant)
            .active()
            .in_activation_order()
            .select_related('module')
        )

        self._registered.clear()
        for activation in activations:
            descriptor = available.get(activation.module.name)
            if descriptor is not None:
                self._registered[descriptor.name] = list(descriptor.navigation)

    def switch_tenant(self, tenant) -> None:
        """Recompute the registered set for ``tenant``."""
        self.tenant = tenant
        self._load()
        self.cache.invalidate(self.tenant_id)

    def register_module(self, module_name: str) -> bool:
        """Register (or move to the end) a module's navigation."""
        descriptor = self.registry.discover().get(module_name)
        if descriptor is None:
            logger.debug(f"Module {module_name} is not available, navigation not registered")
            return False

        self._registered.pop(module_name, None)
        self._registered[module_name] = list(descriptor.navigation)
        self.cache.invalidate(self.tenant_id)
        return True

    def unregister_module(self, module_name: str) -> bool:
        removed = self._registered.pop(module_name, None) is not None
        if removed:
            self.cache.invalidate(self.tenant_id)
        return removed

    def _on_state_changed(self, sender, event, **kwargs):
        if event.tenant_id != self.tenant_id:
            return
        if event.action == ModuleAction.ENABLED:
            self.register_module(event.module_name)
        else:
            self.unregister_module(event.module_name)

    # Queries

    def get_flattened_tree(self) -> List[NavigationNode]:
        """Top-level nodes of every registered module, in registration order."""
        nodes = self.cache.get(self.tenant_id)
        if nodes is None:
            nodes = [node for tree in self._registered.values() for node in tree]
            self.cache.set(self.tenant_id, nodes)
        return nodes

    def can_view(self, node: NavigationNode) -> bool:
        if not node.permission:
            return True
        if self.user is None:
            return False
        return self.store.has_permission(self.user, node.permission)

    def translate(self, key: str, module: Optional[str] = None) -> str:
        return self.translator.translate(key, self.locale, module=module)

    def get_menu(self) -> List[Dict[str, Any]]:
        """Visible nodes with translated labels."""
        return self._render(self.get_flattened_tree())

    def _render(self, nodes: List[NavigationNode]) -> List[Dict[str, Any]]:
        menu = []
        for node in nodes:
            if not self.can_view(node):
                continue
            item = node.to_dict()
            item['label'] = self.translate(node.label, module=node.module)
            item['children'] = self._render(node.children)
            menu.append(item)
        return menu

    def get_module_groups(self) -> List[Dict[str, Any]]:
        """Menu grouped per module, headed by the module's display name."""
        groups = []
        for module_name, tree in self._registered.items():
            items = self._render(tree)
            if not items:
                continue
            descriptor = self.registry.get(module_name)
            groups.append({
                'module': module_name,
                'label': descriptor.get_display_name(self.locale) if descriptor else module_name,
                'items': items,
            })
        return groups

    def to_dict(self) -> Dict[str, Any]:
        return {
            'tenant_id': self.tenant_id,
            'locale': self.locale,
            'modules': self.registered_modules,
            'menu': self.get_menu(),
        }
