"""
Module Registry

Discovers available modules from static descriptors under the module source
root and keeps the persisted module catalog in step with them.
"""

import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional, Union

from django.db import transaction

from .base import ModuleDescriptor
from .conf import module_settings
from .exceptions import DescriptorError, ModuleNotFoundError

logger = logging.getLogger(__name__)


class ModuleRegistry:
    """
    Registry of module descriptors.

    Scans are cached for the lifetime of the instance. Nothing invalidates
    the cache automatically; call ``refresh()`` after the module source root
    changes.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self._path = Path(path) if path else None
        self._descriptors: Optional[Dict[str, ModuleDescriptor]] = None
        self._registered: Dict[str, ModuleDescriptor] = {}
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path or Path(module_settings.PATH)

    # Discovery

    def all_descriptors(self) -> Dict[str, ModuleDescriptor]:
        """Every well-formed descriptor, including globally disabled ones."""
        with self._lock:
            if self._descriptors is None:
                self._descriptors = self._scan()
            descriptors = dict(self._descriptors)
            descriptors.update(self._registered)
            return dict(sorted(descriptors.items()))

    def discover(self) -> Dict[str, ModuleDescriptor]:
        """Descriptors whose global enabled flag is set."""
        return {
            name: descriptor
            for name, descriptor in self.all_descriptors().items()
            if descriptor.enabled
        }

    def lookup(self, name: str) -> ModuleDescriptor:
        """
        Get the descriptor for an activatable module.

        Raises:
            ModuleNotFoundError: If the module is unknown or globally disabled
        """
        descriptor = self.discover().get(name)
        if descriptor is None:
            raise ModuleNotFoundError(f"Module {name} not found")
        return descriptor

    def get(self, name: str) -> Optional[ModuleDescriptor]:
        """Descriptor for ``name`` regardless of its kill switch, or None."""
        return self.all_descriptors().get(name)

    def is_available(self, name: str) -> bool:
        return name in self.discover()

    def refresh(self) -> None:
        """Drop cached scan results."""
        with self._lock:
            self._descriptors = None
        logger.debug("Module registry cache cleared")

    def register(self, descriptor: ModuleDescriptor) -> None:
        """Register a descriptor that has no directory on disk."""
        with self._lock:
            self._registered[descriptor.name] = descriptor
        logger.info(f"Registered module descriptor {descriptor}")

    def unregister(self, name: str) -> None:
        with self._lock:
            self._registered.pop(name, None)

    def _scan(self) -> Dict[str, ModuleDescriptor]:
        root = self.path
        descriptors: Dict[str, ModuleDescriptor] = {}

        if not root.is_dir():
            logger.warning(f"Module path {root} does not exist")
            return descriptors

        for directory in sorted(p for p in root.iterdir() if p.is_dir()):
            if directory.name.startswith(('.', '_')):
                continue
            try:
                descriptor = ModuleDescriptor.load(directory)
            except DescriptorError as e:
                logger.warning(f"Skipping module {directory.name}: {e}")
                continue
            descriptors[descriptor.name] = descriptor

        logger.info(f"Discovered {len(descriptors)} module descriptors in {root}")
        return descriptors

    # Catalog

    def sync_catalog(self) -> List:
        """
        Upsert every discovered descriptor into the persisted catalog.

        Returns:
            List of (Module, created) tuples
        """
        from .models import Module

        results = []
        with transaction.atomic():
            for name, descriptor in self.all_descriptors().items():
                module, created = Module.objects.update_or_create(
                    name=name,
                    defaults=catalog_defaults(descriptor),
                )
                results.append((module, created))
                if created:
                    logger.info(f"Added module {name} to catalog")
        return results


def catalog_defaults(descriptor: ModuleDescriptor) -> Dict:
    """Module row fields taken from a descriptor."""
    return {
        'description': descriptor.description[:255],
        'version': descriptor.version,
        'is_core': descriptor.is_core,
        'settings_schema': descriptor.settings_schema,
    }


# Global registry instance
module_registry = ModuleRegistry()
