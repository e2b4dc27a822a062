"""Static reading of PHP enum declarations"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from tree_sitter import Node

from .locator import ClassLocator, LocatedClass
from .parser import NOT_LITERAL, find_child, literal_value, named, node_text

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnumInfo:
    class_name: str
    values: List[Any] = field(default_factory=list)
    type: str = 'string'

    @property
    def openapi_type(self) -> str:
        return 'integer' if self.type == 'int' else 'string'

    def to_dict(self) -> Dict[str, Any]:
        return {'class': self.class_name, 'values': list(self.values), 'type': self.openapi_type}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EnumInfo':
        backing = data.get('type', 'string')
        return cls(class_name=data.get('class', ''), values=list(data.get('values') or []),
                   type='int' if backing in ('int', 'integer') else 'string')


def enum_backing_type(enum_node: Node) -> Optional[str]:
    seen_colon = False
    for child in enum_node.children:
        if not child.is_named and child.type == ':':
            seen_colon = True
        elif seen_colon and child.is_named and child.type in ('primitive_type', 'named_type', 'union_type'):
            return node_text(child).strip().lower()
    return None


def enum_cases(enum_node: Node) -> List[Dict[str, Any]]:
    body = enum_node.child_by_field_name('body') or find_child(enum_node, 'enum_declaration_list')
    cases = []
    for child in named(body):
        if child.type != 'enum_case':
            continue
        name_node = child.child_by_field_name('name') or find_child(child, 'name')
        value_node = child.child_by_field_name('value')
        if value_node is None:
            parts = [p for p in named(child) if p is not name_node and p.type != 'attribute_list']
            value_node = parts[-1] if parts else None
        value = literal_value(value_node) if value_node is not None else NOT_LITERAL
        cases.append({'name': node_text(name_node), 'value': None if value is NOT_LITERAL else value})
    return cases


class EnumAnalyzer:
    """Resolve enum classes to their case values, memoized per run"""

    def __init__(self, locator: ClassLocator):
        self.locator = locator
        self._cache: Dict[str, Optional[EnumInfo]] = {}

    def extract_enum_info(self, fqcn: str) -> Optional[EnumInfo]:
        fqcn = fqcn.lstrip('\\')
        if fqcn not in self._cache:
            self._cache[fqcn] = self._extract(fqcn)
        return self._cache[fqcn]

    def __call__(self, fqcn: str) -> Optional[EnumInfo]:
        return self.extract_enum_info(fqcn)

    def _extract(self, fqcn: str) -> Optional[EnumInfo]:
        located = self.locator.load(fqcn)
        if not isinstance(located, LocatedClass) or located.node.type != 'enum_declaration':
            logger.debug("Enum %s not found", fqcn)
            return None
        backing = enum_backing_type(located.node)
        cases = enum_cases(located.node)
        if backing is None:
            # pure enum: case names are the only values
            return EnumInfo(class_name=fqcn, values=[c['name'] for c in cases], type='string')
        values = [c['value'] for c in cases if c['value'] is not None]
        return EnumInfo(class_name=fqcn, values=values, type='int' if backing == 'int' else 'string')
