"""
Map fully qualified class names to PHP files in a Laravel project.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from tree_sitter import Node

from .parser import ParseFailure, SourceFile, SourceParser, short_name

logger = logging.getLogger(__name__)

DEFAULT_ROOTS = {'App': 'app', 'Database': 'database', 'Tests': 'tests'}


@dataclass
class LocatedClass:
    """A class (or enum) declaration found on disk"""
    fqcn: str
    path: Path
    source_file: SourceFile
    node: Node


class ClassLocator:
    """Resolve class names to files and parsed declarations"""

    def __init__(self, project_root: Union[str, Path], parser: Optional[SourceParser] = None):
        self.project_root = Path(project_root)
        self.parser = parser or SourceParser()
        self.psr4 = self._load_psr4()
        self._parsed: Dict[Path, Union[SourceFile, ParseFailure]] = {}
        self._by_short_name: Optional[Dict[str, List[Path]]] = None

    def _load_psr4(self) -> List[Tuple[str, Path]]:
        mapping: Dict[str, List[str]] = {}
        composer = self.project_root / 'composer.json'
        if composer.exists():
            try:
                with open(composer, 'r', encoding='utf-8') as f:
                    data = json.load(f)
            except (OSError, ValueError) as e:
                logger.warning("Cannot read %s: %s", composer, e)
                data = {}
            for section in ('autoload', 'autoload-dev'):
                for prefix, dirs in (data.get(section, {}).get('psr-4') or {}).items():
                    dirs = dirs if isinstance(dirs, list) else [dirs]
                    mapping.setdefault(prefix.rstrip('\\'), []).extend(dirs)
        for prefix, directory in DEFAULT_ROOTS.items():
            mapping.setdefault(prefix, [directory])
        entries = [(prefix, self.project_root / d) for prefix, dirs in mapping.items() for d in dirs]
        # longest namespace prefix first
        return sorted(entries, key=lambda e: len(e[0]), reverse=True)

    def namespace_to_file(self, fqcn: str) -> Optional[Path]:
        """Convert a class name to its file path via PSR-4 prefixes"""
        fqcn = fqcn.lstrip('\\')
        for prefix, directory in self.psr4:
            if fqcn == prefix or fqcn.startswith(prefix + '\\'):
                relative = fqcn[len(prefix):].lstrip('\\').replace('\\', '/')
                candidate = directory / f"{relative}.php"
                if candidate.exists():
                    return candidate
        return None

    def locate(self, fqcn: str) -> Optional[Path]:
        path = self.namespace_to_file(fqcn)
        if path is not None:
            return path
        candidates = self._short_name_index().get(short_name(fqcn), [])
        if len(candidates) == 1:
            return candidates[0]
        # several classes share the short name: prefer the one whose path matches the namespace
        tail = '/'.join(fqcn.lstrip('\\').split('\\')[1:]).lower() + '.php'
        for candidate in candidates:
            if candidate.as_posix().lower().endswith(tail):
                return candidate
        return candidates[0] if candidates else None

    def _short_name_index(self) -> Dict[str, List[Path]]:
        if self._by_short_name is None:
            self._by_short_name = {}
            app_dir = self.project_root / 'app'
            if app_dir.exists():
                for php_file in sorted(app_dir.rglob('*.php')):
                    self._by_short_name.setdefault(php_file.stem, []).append(php_file)
        return self._by_short_name

    def parse(self, path: Path) -> Union[SourceFile, ParseFailure]:
        if path not in self._parsed:
            self._parsed[path] = self.parser.parse(path)
        return self._parsed[path]

    def load(self, fqcn: str) -> Union[LocatedClass, ParseFailure, None]:
        """Parsed declaration of a class, enum or trait; None when it cannot be found"""
        path = self.locate(fqcn)
        if path is None:
            return None
        parsed = self.parse(path)
        if isinstance(parsed, ParseFailure):
            return parsed
        name = short_name(fqcn)
        node = parsed.find_class(name) or parsed.find_enum(name)
        if node is None:
            return None
        return LocatedClass(fqcn=fqcn.lstrip('\\'), path=path, source_file=parsed, node=node)
