"""
Module Descriptors

Static, non-persisted description of a module loaded from the module's own
configuration directory. A descriptor is the source of truth for whether a
module can be activated at all.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

from .conf import module_settings
from .exceptions import DescriptorError

logger = logging.getLogger(__name__)


@dataclass
class NavigationNode:
    """
    Menu entry contributed by a module.

    ``label`` is a translation key; ``permission`` is an optional
    ``<module>.<action>`` requirement checked against the viewing user.
    """
    label: str
    route: str = '#'
    icon: Optional[str] = None
    permission: Optional[str] = None
    children: List['NavigationNode'] = field(default_factory=list)
    module: Optional[str] = None

    def __post_init__(self):
        if self.icon is None:
            self.icon = 'folder' if self.children else 'circle'

    @classmethod
    def from_dict(cls, data: Dict[str, Any], module: Optional[str] = None) -> 'NavigationNode':
        if not isinstance(data, dict):
            raise DescriptorError(f"Navigation item must be a mapping, got {type(data).__name__}")

        label = data.get('label') or data.get('title')
        if not label:
            raise DescriptorError("Navigation item is missing a label")

        children = data.get('children') or []
        if not isinstance(children, list):
            raise DescriptorError(f"Children of navigation item {label} must be a list")

        children = [cls.from_dict(child, module) for child in children]
        return cls(
            label=str(label),
            route=str(data.get('route') or '#'),
            icon=data.get('icon'),
            permission=data.get('permission'),
            children=children,
            module=module,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'label': self.label,
            'route': self.route,
            'icon': self.icon,
            'permission': self.permission,
            'module': self.module,
            'children': [child.to_dict() for child in self.children],
        }


@dataclass
class ModuleDescriptor:
    """Parsed module descriptor."""
    name: str
    display_name: str = ''
    enabled: bool = False
    description: str = ''
    version: str = '1.0.0'
    is_core: bool = False
    settings_schema: Optional[Dict[str, Any]] = None
    navigation: List[NavigationNode] = field(default_factory=list)
    assets: Dict[str, List[str]] = field(default_factory=dict)
    permissions: List[str] = field(default_factory=list)
    translations: Dict[str, Dict[str, str]] = field(default_factory=dict)
    display_names: Dict[str, str] = field(default_factory=dict)
    migrations: List[str] = field(default_factory=list)
    fixtures: List[str] = field(default_factory=list)
    path: Optional[Path] = None

    def __post_init__(self):
        if not self.display_name:
            self.display_name = self.name.replace('_', ' ').replace('-', ' ').title()

    def __str__(self):
        return f"{self.name}@{self.version}"

    # Loading

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any], path: Optional[Path] = None) -> 'ModuleDescriptor':
        """
        Build a descriptor from parsed configuration data.

        Args:
            name: Module key (the module directory name)
            data: Parsed descriptor mapping
            path: Directory the descriptor was loaded from

        Raises:
            DescriptorError: If the data is malformed
        """
        if not isinstance(data, dict):
            raise DescriptorError(f"Descriptor for {name} must be a mapping")

        settings_schema = data.get('settings_schema')
        if settings_schema is not None and not isinstance(settings_schema, dict):
            raise DescriptorError(f"settings_schema for {name} must be a mapping")

        navigation = data.get('navigation') or []
        if not isinstance(navigation, list):
            raise DescriptorError(f"navigation for {name} must be a list")

        return cls(
            name=name,
            display_name=str(data.get('name') or ''),
            enabled=bool(data.get('enabled', False)),
            description=str(data.get('description') or ''),
            version=str(data.get('version') or '1.0.0'),
            is_core=bool(data.get('is_core', data.get('core', False))),
            settings_schema=settings_schema,
            navigation=[NavigationNode.from_dict(item, name) for item in navigation],
            assets=cls._parse_assets(name, data.get('assets')),
            permissions=cls._parse_permissions(name, data.get('permissions')),
            translations=cls._parse_translations(name, data.get('translations')),
            display_names=cls._parse_mapping(name, 'display_names', data.get('display_names')),
            migrations=cls._parse_names(name, 'migrations', data.get('migrations')),
            fixtures=cls._parse_names(name, 'fixtures', data.get('fixtures')),
            path=path,
        )

    @classmethod
    def load(cls, directory: Path, descriptor_files: Optional[Sequence[str]] = None) -> 'ModuleDescriptor':
        """
        Load the descriptor for the module rooted at ``directory``.

        Navigation may also come from ``config/navigation.yaml`` (an ``items``
        list) when the descriptor itself declares none.
        """
        directory = Path(directory)
        descriptor_files = descriptor_files or module_settings.DESCRIPTOR_FILES

        descriptor_path = next(
            (directory / filename for filename in descriptor_files if (directory / filename).is_file()),
            None
        )
        if descriptor_path is None:
            raise DescriptorError(f"No descriptor found in {directory}")

        data = _read_yaml(descriptor_path)
        if data is None:
            data = {}

        if isinstance(data, dict) and not data.get('navigation'):
            navigation_path = directory / module_settings.NAVIGATION_FILE
            if navigation_path.is_file():
                navigation_data = _read_yaml(navigation_path) or {}
                if not isinstance(navigation_data, dict):
                    raise DescriptorError(f"{navigation_path} must be a mapping")
                data = dict(data, navigation=navigation_data.get('items') or [])

        try:
            return cls.from_dict(directory.name, data, path=directory)
        except (TypeError, ValueError, AttributeError) as e:
            raise DescriptorError(f"Malformed descriptor in {directory}: {e}") from e

    # Parsing helpers

    @staticmethod
    def _parse_permissions(name: str, value: Any) -> List[str]:
        if value is None:
            return []
        if not isinstance(value, list):
            raise DescriptorError(f"permissions for {name} must be a list")

        permissions = []
        for item in value:
            action = str(item).strip()
            if not action:
                continue
            # Bare actions are scoped to the module
            if '.' not in action:
                action = f"{name}.{action}"
            if action not in permissions:
                permissions.append(action)
        return permissions

    @staticmethod
    def _parse_names(name: str, key: str, value: Any) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, list):
            raise DescriptorError(f"{key} for {name} must be a list")
        return [str(item).strip() for item in value if item is not None and str(item).strip()]

    @staticmethod
    def _parse_assets(name: str, value: Any) -> Dict[str, List[str]]:
        if value is None:
            return {}
        if isinstance(value, list):
            return {'default': [str(item) for item in value]}
        if not isinstance(value, dict):
            raise DescriptorError(f"assets for {name} must be a list or mapping")
        bundles = {}
        for bundle, files in value.items():
            files = files or []
            if not isinstance(files, list):
                raise DescriptorError(f"assets.{bundle} for {name} must be a list")
            bundles[str(bundle)] = [str(item) for item in files]
        return bundles

    @staticmethod
    def _parse_translations(name: str, value: Any) -> Dict[str, Dict[str, str]]:
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise DescriptorError(f"translations for {name} must be a mapping of locale to catalog")

        catalogs = {}
        for locale, catalog in value.items():
            catalogs[str(locale)] = ModuleDescriptor._parse_mapping(name, f'translations.{locale}', catalog)
        return catalogs

    @staticmethod
    def _parse_mapping(name: str, key: str, value: Any) -> Dict[str, str]:
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise DescriptorError(f"{key} for {name} must be a mapping")
        return {str(k): str(v) for k, v in value.items() if v is not None}

    # Queries

    def translate(self, key: str, locale: str) -> Optional[str]:
        """Catalog lookup for ``key`` in ``locale``, falling back to the base language."""
        for candidate in (locale, locale.split('-')[0].split('_')[0]):
            catalog = self.translations.get(candidate)
            if catalog and key in catalog:
                return catalog[key]
        return None

    def get_display_name(self, locale: Optional[str] = None) -> str:
        if locale:
            for candidate in (locale, locale.split('-')[0].split('_')[0]):
                if candidate in self.display_names:
                    return self.display_names[candidate]
        return self.display_name

    def fixture_paths(self) -> List[str]:
        """Fixture names, with relative file paths resolved against the module directory."""
        paths = []
        for fixture in self.fixtures:
            # Bare names are left for loaddata to find in app fixture dirs
            if self.path is not None and Path(fixture).suffix and not Path(fixture).is_absolute():
                fixture = str(self.path / fixture)
            paths.append(fixture)
        return paths

    def permission_actions(self) -> List[str]:
        return [permission.split('.', 1)[1] for permission in self.permissions]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'display_name': self.display_name,
            'enabled': self.enabled,
            'description': self.description,
            'version': self.version,
            'is_core': self.is_core,
            'permissions': list(self.permissions),
            'assets': dict(self.assets),
            'migrations': list(self.migrations),
            'fixtures': list(self.fixtures),
            'navigation': [node.to_dict() for node in self.navigation],
        }


def _read_yaml(path: Path) -> Any:
    try:
        with open(path, 'r', encoding='utf-8') as fh:
            return yaml.safe_load(fh)
    except yaml.YAMLError as e:
        raise DescriptorError(f"Invalid YAML in {path}: {e}") from e
    except UnicodeDecodeError as e:
        raise DescriptorError(f"{path} is not valid UTF-8: {e}") from e
    except OSError as e:
        raise DescriptorError(f"Cannot read {path}: {e}") from e
