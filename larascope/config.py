"""Run configuration"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CACHE_SUBDIRECTORY = Path('storage') / 'app' / 'larascope' / 'cache'


def _bool(data: Mapping[str, Any], key: str, default: bool) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ConfigurationError(f"'{key}' must be true or false, got {value!r}")
    return value


def _string(data: Mapping[str, Any], key: str, default: Optional[str]) -> Optional[str]:
    value = data.get(key, default)
    if value is not None and not isinstance(value, str):
        raise ConfigurationError(f"'{key}' must be a string, got {value!r}")
    return value


def _strings(data: Mapping[str, Any], key: str, default: List[str]) -> List[str]:
    value = data.get(key, default)
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        raise ConfigurationError(f"'{key}' must be a list of strings, got {value!r}")
    return list(value)


@dataclass
class Config:
    project_root: Path = field(default_factory=lambda: Path('.'))
    cache_enabled: bool = True
    cache_directory: Optional[Path] = None
    route_patterns: List[str] = field(default_factory=lambda: ['api/*'])
    route_files: List[str] = field(default_factory=lambda: ['routes/api.php'])
    route_table: Optional[Path] = None
    excluded_methods: List[str] = field(default_factory=list)
    title: str = 'API Documentation'
    version: str = '1.0.0'
    description: Optional[str] = None
    servers: List[Dict[str, Any]] = field(default_factory=list)
    custom_auth_schemes: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    fail_on_error: bool = False

    @property
    def resolved_cache_directory(self) -> Path:
        if self.cache_directory is None:
            return self.project_root / DEFAULT_CACHE_SUBDIRECTORY
        if self.cache_directory.is_absolute():
            return self.cache_directory
        return self.project_root / self.cache_directory

    def route_file_paths(self) -> List[Path]:
        return [path if path.is_absolute() else self.project_root / path for path in map(Path, self.route_files)]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], project_root: Optional[Union[str, Path]] = None) -> 'Config':
        """Build from camelCase keys; unknown keys are ignored with a warning"""
        known = {'projectRoot', 'cacheEnabled', 'cacheDirectory', 'routePatterns', 'routeFiles', 'routeTable',
                 'excludedMethods', 'title', 'version', 'description', 'servers', 'customAuthSchemes', 'failOnError'}
        for key in data:
            if key not in known:
                logger.warning("Ignoring unknown configuration key: %s", key)

        root = Path(project_root) if project_root is not None else Path(_string(data, 'projectRoot', '.'))
        cache_directory = _string(data, 'cacheDirectory', None)
        route_table = _string(data, 'routeTable', None)
        servers = data.get('servers', [])
        if not isinstance(servers, list) or not all(isinstance(s, dict) and 'url' in s for s in servers):
            raise ConfigurationError("'servers' must be a list of {url, description} objects")
        custom = data.get('customAuthSchemes', {})
        if not isinstance(custom, dict) or not all(isinstance(s, dict) for s in custom.values()):
            raise ConfigurationError("'customAuthSchemes' must map middleware names to scheme objects")

        route_table_path = None
        if route_table is not None:
            route_table_path = Path(route_table)
            if not route_table_path.is_absolute():
                route_table_path = root / route_table_path

        return cls(
            project_root=root,
            cache_enabled=_bool(data, 'cacheEnabled', True),
            cache_directory=Path(cache_directory) if cache_directory else None,
            route_patterns=_strings(data, 'routePatterns', ['api/*']),
            route_files=_strings(data, 'routeFiles', ['routes/api.php']),
            route_table=route_table_path,
            excluded_methods=[m.upper() for m in _strings(data, 'excludedMethods', [])],
            title=_string(data, 'title', 'API Documentation'),
            version=_string(data, 'version', '1.0.0'),
            description=_string(data, 'description', None),
            servers=list(servers),
            custom_auth_schemes=dict(custom),
            fail_on_error=_bool(data, 'failOnError', False),
        )

    @classmethod
    def load(cls, path: Union[str, Path], project_root: Optional[Union[str, Path]] = None) -> 'Config':
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Cannot read configuration {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration {path} must be a JSON object")
        return cls.from_dict(data, project_root)
