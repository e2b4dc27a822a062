"""
Dependency-fingerprinted documentation cache.

Each entry lives in its own file named after the sha1 of its key and records
the fingerprint (md5 of the content plus mtime) of every file it was computed
from. An entry is only reused while all of those fingerprints still match.
"""

import fnmatch
import hashlib
import json
import logging
import os
import re
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from .diagnostics import AnalyzerErrorType, ErrorCollector, now_iso

logger = logging.getLogger(__name__)

CACHE_VERSION = 1

_MISS = object()


def file_fingerprint(path: Union[str, Path]) -> Optional[str]:
    """md5:mtime of a file, None if it cannot be read"""
    try:
        with open(path, 'rb') as f:
            digest = hashlib.md5(f.read()).hexdigest()
        return f"{digest}:{int(os.path.getmtime(path))}"
    except OSError:
        return None


def human_filesize(size: int) -> str:
    units = ['B', 'KB', 'MB', 'GB']
    value = float(size)
    for unit in units:
        if value < 1024 or unit == units[-1]:
            return f"{value:.2f} {unit}"
        value /= 1024
    return f"{size} B"


class DocumentationCache:
    """File-backed memoization of analyzer results"""

    def __init__(self, cache_directory: Union[str, Path], enabled: bool = True,
                 error_collector: Optional[ErrorCollector] = None):
        self.cache_directory = Path(cache_directory)
        self.enabled = enabled
        self.error_collector = error_collector

    def enable(self) -> None:
        self.enabled = True

    def disable(self) -> None:
        self.enabled = False

    def is_enabled(self) -> bool:
        return self.enabled

    def remember(self, key: str, compute: Callable[[], Any],
                 dependencies: Iterable[Union[str, Path]] = ()) -> Any:
        """Cached value for key, recomputed when a dependency changed"""
        if not self.enabled:
            return compute()

        dependencies = self._normalize(dependencies)
        envelope = self._read(key)
        if envelope is not None and self._is_fresh(envelope, dependencies):
            logger.debug("Cache hit: %s", key)
            return envelope['data']

        logger.debug("Cache miss: %s", key)
        result = compute()
        self.put(key, result, dependencies)
        return result

    def get(self, key: str, default: Any = None) -> Any:
        envelope = self._read(key)
        return envelope['data'] if envelope is not None else default

    def put(self, key: str, data: Any, dependencies: Iterable[Union[str, Path]] = ()) -> bool:
        if not self.enabled:
            return False
        fingerprints = {}
        for dependency in self._normalize(dependencies):
            fingerprint = file_fingerprint(dependency)
            if fingerprint is not None:
                fingerprints[dependency] = fingerprint
        envelope = {
            'version': CACHE_VERSION,
            'metadata': {'key': key, 'created_at': now_iso(), 'dependencies': fingerprints},
            'data': data,
        }
        path = self._path(key)
        try:
            self.cache_directory.mkdir(parents=True, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(dir=str(self.cache_directory), suffix='.tmp')
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    json.dump(envelope, f)
                os.replace(temp_path, path)
            except BaseException:
                if os.path.exists(temp_path):
                    os.unlink(temp_path)
                raise
        except (OSError, TypeError, ValueError) as e:
            logger.warning("Cannot write cache entry %s: %s", key, e)
            if self.error_collector is not None:
                self.error_collector.add_warning('DocumentationCache', f"Cannot write cache entry {key}: {e}",
                                                 {'key': key}, AnalyzerErrorType.CACHE_ERROR)
            return False
        return True

    def remember_form_request(self, fqcn: str, file_path: Optional[Union[str, Path]],
                              compute: Callable[[], Any]) -> Any:
        dependencies = [file_path] if file_path else []
        return self.remember(f"form_request:{fqcn}", compute, dependencies)

    def remember_resource(self, fqcn: str, file_path: Optional[Union[str, Path]], compute: Callable[[], Any],
                          resolve: Optional[Callable[[str], Optional[Path]]] = None) -> Any:
        """Like remember(), with directly referenced resources as extra dependencies"""
        dependencies: List[Union[str, Path]] = []
        if file_path:
            dependencies.append(file_path)
            dependencies.extend(self.find_resource_dependencies(file_path, resolve))
        return self.remember(f"resource:{fqcn}", compute, dependencies)

    def remember_routes(self, files: Iterable[Union[str, Path]], compute: Callable[[], Any]) -> Any:
        existing = [f for f in files if Path(f).exists()]
        return self.remember('routes:all', compute, existing)

    def find_resource_dependencies(self, file_path: Union[str, Path],
                                   resolve: Optional[Callable[[str], Optional[Path]]] = None) -> List[Path]:
        try:
            content = Path(file_path).read_text(encoding='utf-8', errors='ignore')
        except OSError:
            return []
        names = re.findall(r'new\s+\\?([\w\\]*Resource)\s*\(', content)
        names += re.findall(r'\\?([\w\\]*Resource)::collection\s*\(', content)
        dependencies: List[Path] = []
        for name in names:
            candidates = [name] if '\\' in name else [name, f"App\\Http\\Resources\\{name}"]
            for candidate in candidates:
                path = resolve(candidate) if resolve is not None else None
                if path is not None:
                    if path not in dependencies:
                        dependencies.append(path)
                    break
        return dependencies

    def forget(self, key: str) -> bool:
        path = self._path(key)
        if path.exists():
            path.unlink()
            return True
        return False

    def forget_by_pattern(self, pattern: str) -> int:
        count = 0
        for path in self._entry_files():
            envelope = self._load_file(path)
            if envelope is None:
                self._discard(path)
                continue
            if fnmatch.fnmatch(envelope['metadata'].get('key', ''), pattern):
                self._discard(path)
                count += 1
        return count

    def clear(self) -> None:
        for path in self._entry_files():
            self._discard(path)

    def get_all_cache_keys(self) -> List[str]:
        keys = []
        for path in self._entry_files():
            envelope = self._load_file(path)
            if envelope is not None and envelope['metadata'].get('key'):
                keys.append(envelope['metadata']['key'])
        return keys

    def get_stats(self) -> Dict[str, Any]:
        files = self._entry_files()
        sizes = [p.stat().st_size for p in files]
        mtimes = [p.stat().st_mtime for p in files]
        total = sum(sizes)
        return {
            'enabled': self.enabled,
            'cache_directory': str(self.cache_directory),
            'cache_version': CACHE_VERSION,
            'total_files': len(files),
            'total_size': total,
            'total_size_human': human_filesize(total),
            'oldest_file': datetime.fromtimestamp(min(mtimes)).isoformat() if mtimes else None,
            'newest_file': datetime.fromtimestamp(max(mtimes)).isoformat() if mtimes else None,
        }

    def _path(self, key: str) -> Path:
        return self.cache_directory / (hashlib.sha1(key.encode('utf-8')).hexdigest() + '.cache')

    def _entry_files(self) -> List[Path]:
        if not self.cache_directory.is_dir():
            return []
        return sorted(self.cache_directory.glob('*.cache'))

    def _normalize(self, dependencies: Iterable[Union[str, Path]]) -> List[str]:
        result = []
        for dependency in dependencies:
            normalized = str(Path(dependency).resolve())
            if normalized not in result:
                result.append(normalized)
        return result

    def _read(self, key: str) -> Optional[Dict[str, Any]]:
        path = self._path(key)
        if not path.exists():
            return None
        envelope = self._load_file(path)
        if envelope is None or envelope['metadata'].get('key') != key:
            # corrupt entries heal by being rewritten on the next miss
            self._discard(path)
            return None
        return envelope

    def _load_file(self, path: Path) -> Optional[Dict[str, Any]]:
        try:
            with open(path, 'r', encoding='utf-8') as f:
                envelope = json.load(f)
        except (OSError, ValueError) as e:
            logger.debug("Unreadable cache entry %s: %s", path, e)
            return None
        if (not isinstance(envelope, dict) or envelope.get('version') != CACHE_VERSION
                or not isinstance(envelope.get('metadata'), dict) or 'data' not in envelope):
            return None
        return envelope

    def _is_fresh(self, envelope: Dict[str, Any], dependencies: List[str]) -> bool:
        recorded = envelope['metadata'].get('dependencies') or {}
        if set(recorded) != set(dependencies):
            return False
        return all(file_fingerprint(path) == fingerprint for path, fingerprint in recorded.items())

    def _discard(self, path: Path) -> None:
        try:
            path.unlink()
        except OSError as e:
            logger.debug("Cannot remove cache entry %s: %s", path, e)
