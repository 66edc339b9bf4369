"""
Module System Signals

Django signals for module state changes.
"""

from django.dispatch import Signal

module_state_changed = Signal()   # After a module is enabled or disabled for a tenant (event=ModuleStateEvent)
navigation_invalidated = Signal() # When a tenant's cached navigation tree is dropped (tenant_id=...)
