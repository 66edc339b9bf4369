"""
Module System Settings

Reads the ``TENANT_MODULES`` settings dict and fills in defaults.
"""

import os
from typing import Any, Dict

from django.conf import settings

DEFAULTS: Dict[str, Any] = {
    'PATH': None,
    'DESCRIPTOR_FILES': ['module.yaml', 'module.yml'],
    'NAVIGATION_FILE': os.path.join('config', 'navigation.yaml'),
    'FALLBACK_LOCALE': None,
    'CACHE_TIMEOUT': 300,
    'BROADCAST_ENABLED': True,
}


class ModuleSettings:
    """Lazy accessor so ``override_settings`` is honoured in tests."""

    def __getattr__(self, name: str) -> Any:
        if name not in DEFAULTS:
            raise AttributeError(f"Invalid module setting: {name}")

        user_settings = getattr(settings, 'TENANT_MODULES', {}) or {}
        value = user_settings.get(name, DEFAULTS[name])

        if value is None and name == 'PATH':
            value = os.path.join(str(getattr(settings, 'BASE_DIR', os.getcwd())), 'modules')
        elif value is None and name == 'FALLBACK_LOCALE':
            value = settings.LANGUAGE_CODE

        return value


module_settings = ModuleSettings()
