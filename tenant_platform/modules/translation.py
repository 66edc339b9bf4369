"""
Module Label Translation

Resolves navigation labels: module catalog and Django gettext in the
requested locale, then the same in the fallback locale, then the raw key.
"""

import logging
from typing import Optional

from django.utils import translation

from .conf import module_settings

logger = logging.getLogger(__name__)


class ModuleTranslator:
    """Translation lookup with fallback-locale semantics. Never raises."""

    def __init__(self, registry=None, fallback_locale: Optional[str] = None):
        self._registry = registry
        self._fallback_locale = fallback_locale

    @property
    def registry(self):
        if self._registry is None:
            from .registry import module_registry
            self._registry = module_registry
        return self._registry

    @property
    def fallback_locale(self) -> str:
        return self._fallback_locale or module_settings.FALLBACK_LOCALE

    def translate(self, key: str, locale: Optional[str] = None, module: Optional[str] = None) -> str:
        if not key:
            return key

        locale = locale or translation.get_language() or self.fallback_locale
        candidates = [locale]
        if self.fallback_locale and self.fallback_locale != locale:
            candidates.append(self.fallback_locale)

        for candidate in candidates:
            value = self._lookup(key, candidate, module)
            if value:
                return value

        return key

    def _lookup(self, key: str, locale: str, module: Optional[str]) -> Optional[str]:
        if module:
            descriptor = self.registry.get(module)
            if descriptor is not None:
                value = descriptor.translate(key, locale)
                if value:
                    return value

        with translation.override(locale):
            value = translation.gettext(key)
        if value and value != key:
            return value
        return None
