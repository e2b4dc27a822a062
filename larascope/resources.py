"""
Response structure analysis for API resources and Fractal transformers.

The transform method's top-level return (closures excluded) is read as an
array literal; each value is typed by its expression shape and, for plain
property access, by name heuristics.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from tree_sitter import Node

from .cache import DocumentationCache
from .diagnostics import AnalyzerErrorType, ErrorCollector
from .locator import ClassLocator, LocatedClass
from .parser import (CLOSURE_TYPES, MEMBER_ACCESS_TYPES, MEMBER_CALL_TYPES, STRING_TYPES, SourceFile,
                     argument_nodes, array_elements, binary_operands, binary_operator, call_name,
                     call_object, call_scope, class_properties, is_this, literal_value, method_table,
                     named, new_class_name, node_text, parent_class_name, render, short_name,
                     string_value, ternary_parts, unwrap, variable_name, walk_outside_closures)

logger = logging.getLogger(__name__)

MAX_PARENT_DEPTH = 5
COMPONENT_PREFIX = '#/components/schemas/'

PROPERTY_TYPES = {
    'id': 'integer',
    'uuid': 'string',
    'name': 'string',
    'title': 'string',
    'description': 'string',
    'email': 'string',
    'phone': 'string',
    'url': 'string',
    'price': 'number',
    'amount': 'number',
    'total': 'number',
    'cost': 'number',
    'count': 'integer',
    'quantity': 'integer',
    'status': 'string',
    'type': 'string',
    'image': 'string',
    'photo': 'string',
    'avatar': 'string',
    'data': 'object',
    'meta': 'object',
    'metadata': 'object',
    'settings': 'object',
    'config': 'object',
}

PROPERTY_AFFIXES = [
    ('is_', 'boolean'),
    ('has_', 'boolean'),
    ('can_', 'boolean'),
    ('_at', 'string'),
    ('_date', 'string'),
    ('_id', 'integer'),
    ('_count', 'integer'),
    ('_price', 'number'),
    ('_amount', 'number'),
]

PROPERTY_FORMATS = {
    'uuid': 'uuid',
    'email': 'email',
    'url': 'uri',
}

PROPERTY_EXAMPLES = {
    'id': 1,
    'uuid': '550e8400-e29b-41d4-a716-446655440000',
    'name': 'John Doe',
    'email': 'user@example.com',
    'phone': '+1-555-555-5555',
    'price': 99.99,
    'quantity': 10,
    'is_active': True,
    'created_at': '2024-01-01T00:00:00Z',
    'updated_at': '2024-01-01T00:00:00Z',
}

DATE_METHODS = ('format', 'toDateString', 'toTimeString', 'toDateTimeString', 'toIso8601String',
                'toISOString', 'toAtomString', 'toRfc3339String', 'toJSON', 'diffForHumans')
CAST_TYPES = {
    'int': 'integer', 'integer': 'integer', 'bool': 'boolean', 'boolean': 'boolean',
    'float': 'number', 'double': 'number', 'real': 'number', 'string': 'string',
    'array': 'array', 'object': 'object',
}
FUNCTION_TYPES = {
    'number_format': 'string', 'round': 'number', 'floor': 'number', 'ceil': 'number', 'abs': 'number',
    'floatval': 'number', 'intval': 'integer', 'count': 'integer', 'strlen': 'integer',
    'boolval': 'boolean', 'is_null': 'boolean', 'in_array': 'boolean', 'strtoupper': 'string',
    'strtolower': 'string', 'ucfirst': 'string', 'ucwords': 'string', 'trim': 'string',
    'str_replace': 'string', 'substr': 'string', 'sprintf': 'string', 'implode': 'string',
    '__': 'string', 'trans': 'string', 'url': 'string', 'route': 'string', 'asset': 'string',
    'array_merge': 'object', 'json_decode': 'object', 'array_values': 'array', 'array_keys': 'array',
    'explode': 'array', 'array_map': 'array', 'array_filter': 'array',
}


@dataclass
class ResourceFieldInfo:
    """One inferred output field"""
    type: str = 'mixed'
    nullable: bool = False
    source: Optional[str] = None
    format: Optional[str] = None
    example: Any = None
    properties: Optional[Dict[str, 'ResourceFieldInfo']] = None
    items: Optional['ResourceFieldInfo'] = None
    resource: Optional[str] = None
    is_collection: bool = False
    conditional: bool = False
    condition: Optional[str] = None
    relation: Optional[str] = None
    has_transformation: bool = False
    expression: Optional[str] = None

    def to_schema(self) -> Dict[str, Any]:
        if self.resource:
            ref = {'$ref': COMPONENT_PREFIX + short_name(self.resource)}
            if self.is_collection:
                schema: Dict[str, Any] = {'type': 'array', 'items': ref}
            elif self.nullable or self.conditional:
                schema = {'allOf': [ref]}
            else:
                return ref
        elif self.type == 'mixed':
            schema = {}
        else:
            schema = {'type': self.type}
            if self.format:
                schema['format'] = self.format
            if self.properties is not None:
                schema['properties'] = {k: v.to_schema() for k, v in self.properties.items()}
            if self.type == 'array':
                schema['items'] = self.items.to_schema() if self.items is not None else {}
        if self.nullable:
            schema['nullable'] = True
        if self.example is not None:
            schema['example'] = self.example
        return schema

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {'type': self.type, 'nullable': self.nullable}
        for name in ('source', 'format', 'example', 'resource', 'condition', 'relation', 'expression'):
            value = getattr(self, name)
            if value is not None:
                result[name] = value
        if self.properties is not None:
            result['properties'] = {k: v.to_dict() for k, v in self.properties.items()}
        if self.items is not None:
            result['items'] = self.items.to_dict()
        for name in ('is_collection', 'conditional', 'has_transformation'):
            if getattr(self, name):
                result[name] = True
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ResourceFieldInfo':
        properties = data.get('properties')
        items = data.get('items')
        return cls(
            type=data.get('type', 'mixed'),
            nullable=data.get('nullable', False),
            source=data.get('source'),
            format=data.get('format'),
            example=data.get('example'),
            properties={k: cls.from_dict(v) for k, v in properties.items()} if properties is not None else None,
            items=cls.from_dict(items) if items is not None else None,
            resource=data.get('resource'),
            is_collection=data.get('is_collection', False),
            conditional=data.get('conditional', False),
            condition=data.get('condition'),
            relation=data.get('relation'),
            has_transformation=data.get('has_transformation', False),
            expression=data.get('expression'),
        )


def property_field(name: str) -> ResourceFieldInfo:
    """Type and example guessed from a model attribute name"""
    lowered = name.lower()
    type_name = PROPERTY_TYPES.get(lowered)
    if type_name is None:
        for affix, affix_type in PROPERTY_AFFIXES:
            if lowered.startswith(affix) or lowered.endswith(affix):
                type_name = affix_type
                break
    if type_name is None:
        if lowered.endswith('s') and lowered not in ('status', 'address', 'is', 'has'):
            type_name = 'array'
        else:
            type_name = 'string'
    field_format = PROPERTY_FORMATS.get(lowered)
    if lowered.endswith('_at'):
        field_format = 'date-time'
    elif lowered.endswith('_date'):
        field_format = 'date'
    return ResourceFieldInfo(type=type_name, source='property', format=field_format,
                             example=PROPERTY_EXAMPLES.get(lowered))


def is_resource_name(name: str) -> bool:
    name = short_name(name)
    return name.endswith('Resource') or name.endswith('Collection') or name.endswith('Transformer')


def closure_result(node: Node) -> Optional[Node]:
    """Returned expression of a closure or arrow function"""
    if node.type == 'arrow_function':
        body = node.child_by_field_name('body')
        if body is not None:
            return body
        parts = named(node)
        return parts[-1] if parts else None
    body = node.child_by_field_name('body')
    if body is None:
        return None
    for child in walk_outside_closures(body):
        if child.type == 'return_statement':
            values = named(child)
            return values[0] if values else None
    return None


@dataclass
class ResourceStructure:
    properties: Dict[str, ResourceFieldInfo] = field(default_factory=dict)
    conditional_fields: List[str] = field(default_factory=list)
    nested_resources: List[str] = field(default_factory=list)
    found: bool = False


class ResourceStructureAnalyzer:
    """Analyze the array returned by a resource's transform method"""

    def __init__(self, source_file: Optional[SourceFile] = None, collects: Optional[str] = None):
        self.source_file = source_file
        self.collects = collects
        self.structure = ResourceStructure()
        self._bindings: Dict[str, Node] = {}
        self._resolving: Set[str] = set()

    def analyze_method(self, method_node: Node) -> ResourceStructure:
        self.structure = ResourceStructure()
        self._bindings = {}
        self._resolving = set()
        extra: Dict[str, ResourceFieldInfo] = {}
        returned: Optional[Node] = None
        for node in walk_outside_closures(method_node):
            if node.type == 'assignment_expression':
                self._bind(node, extra)
            elif node.type == 'return_statement':
                values = named(node)
                if values:
                    returned = values[0]
                    break
        if returned is not None:
            properties = self._returned_properties(returned)
            if properties is not None:
                properties.update(extra)
                self.structure.properties = properties
                self.structure.found = True
        return self.structure

    def _bind(self, node: Node, extra: Dict[str, ResourceFieldInfo]) -> None:
        left = unwrap(node.child_by_field_name('left'))
        right = node.child_by_field_name('right')
        if left is None or right is None:
            return
        name = variable_name(left)
        if name is not None:
            self._bindings[name] = right
            return
        # $data['key'] = value adds a field to a bound array
        if left.type == 'subscript_expression':
            parts = named(left)
            if len(parts) == 2 and variable_name(parts[0]) in self._bindings:
                key = string_value(parts[1])
                if key is not None:
                    extra[key] = self.analyze_value(right)

    def _returned_properties(self, node: Node) -> Optional[Dict[str, ResourceFieldInfo]]:
        node = unwrap(node)
        if node is None:
            return None
        if node.type == 'array_creation_expression':
            return self.analyze_array(node)
        if node.type == 'variable_name':
            name = variable_name(node)
            bound = self._bindings.get(name)
            if bound is None or name in self._resolving:
                return None
            self._resolving.add(name)
            try:
                return self._returned_properties(bound)
            finally:
                self._resolving.discard(name)
        if node.type == 'function_call_expression' and call_name(node) == 'array_merge':
            merged: Dict[str, ResourceFieldInfo] = {}
            for arg in argument_nodes(node):
                properties = self._returned_properties(arg)
                if properties:
                    merged.update(properties)
            return merged
        if node.type == 'scoped_call_expression' and call_scope(node) == 'parent':
            return {}
        return None

    def analyze_array(self, node: Node) -> Dict[str, ResourceFieldInfo]:
        properties: Dict[str, ResourceFieldInfo] = {}
        for key_node, value_node, spread in array_elements(node):
            value = unwrap(value_node)
            if key_node is None:
                merged = self._merge_element(value)
                if merged is not None:
                    properties.update(merged)
                continue
            key = literal_value(key_node)
            if not isinstance(key, (str, int)) or isinstance(key, bool):
                continue
            properties[str(key)] = self.analyze_value(value)
        return properties

    def _merge_element(self, node: Optional[Node]) -> Optional[Dict[str, ResourceFieldInfo]]:
        """Keys contributed by $this->merge([...]) / $this->mergeWhen(cond, [...])"""
        if node is None or node.type not in MEMBER_CALL_TYPES or not is_this(call_object(node)):
            return None
        name = call_name(node)
        args = argument_nodes(node)
        if name == 'merge' and args:
            target, conditional = args[0], False
        elif name in ('mergeWhen', 'mergeUnless') and len(args) >= 2:
            target, conditional = args[1], True
        else:
            return None
        target = unwrap(target)
        if target is not None and target.type in CLOSURE_TYPES:
            target = unwrap(closure_result(target))
        if target is None or target.type != 'array_creation_expression':
            return None
        properties = self.analyze_array(target)
        if conditional:
            expression = render(node)
            self._add_conditional(expression)
            for info in properties.values():
                info.conditional = True
                info.condition = name
                info.expression = expression
        return properties

    def _add_conditional(self, expression: str) -> None:
        if expression not in self.structure.conditional_fields:
            self.structure.conditional_fields.append(expression)

    def _add_nested(self, raw: str) -> str:
        fqcn = self.source_file.resolve_name(raw) if self.source_file is not None else raw.lstrip('\\')
        if fqcn not in self.structure.nested_resources:
            self.structure.nested_resources.append(fqcn)
        return fqcn

    def analyze_value(self, node: Optional[Node]) -> ResourceFieldInfo:
        node = unwrap(node)
        if node is None:
            return ResourceFieldInfo()
        kind = node.type

        if kind in STRING_TYPES:
            value = string_value(node)
            return ResourceFieldInfo(type='string', source='literal', example=value)
        if kind == 'integer':
            return ResourceFieldInfo(type='integer', source='literal', example=literal_value(node))
        if kind == 'float':
            return ResourceFieldInfo(type='number', source='literal', example=literal_value(node))
        if kind == 'boolean':
            return ResourceFieldInfo(type='boolean', source='literal', example=literal_value(node))
        if kind == 'null':
            return ResourceFieldInfo(nullable=True, source='literal')

        if kind in MEMBER_ACCESS_TYPES:
            return self._member_access(node)
        if kind in MEMBER_CALL_TYPES:
            return self._member_call(node)
        if kind == 'scoped_call_expression':
            return self._static_call(node)
        if kind == 'object_creation_expression':
            return self._new_resource(node)
        if kind == 'cast_expression':
            cast = node.child_by_field_name('type')
            cast_text = node_text(cast).strip('() ').lower() if cast is not None else ''
            return ResourceFieldInfo(type=CAST_TYPES.get(cast_text, 'mixed'))
        if kind == 'array_creation_expression':
            elements = array_elements(node)
            if elements and all(key is None for key, _, spread in elements if not spread):
                return ResourceFieldInfo(type='array', items=self.analyze_value(elements[0][1]))
            return ResourceFieldInfo(type='object', properties=self.analyze_array(node))
        if kind == 'function_call_expression':
            return ResourceFieldInfo(type=FUNCTION_TYPES.get(call_name(node) or '', 'mixed'))
        if kind == 'binary_expression':
            return self._binary(node)
        if kind == 'conditional_expression':
            condition, body, alternative = ternary_parts(node)
            return self._either(self.analyze_value(body if body is not None else condition),
                                self.analyze_value(alternative))
        if kind == 'unary_op_expression':
            return ResourceFieldInfo(type='boolean' if node_text(node).lstrip().startswith('!') else 'number')
        if kind == 'variable_name':
            name = variable_name(node)
            bound = self._bindings.get(name)
            # $name = $name ?? ... refers back to itself
            if bound is not None and name not in self._resolving:
                self._resolving.add(name)
                try:
                    return self.analyze_value(bound)
                finally:
                    self._resolving.discard(name)
        return ResourceFieldInfo(expression=render(node))

    def _either(self, first: ResourceFieldInfo, second: ResourceFieldInfo) -> ResourceFieldInfo:
        if first.type == 'mixed' and first.nullable and first.source == 'literal':
            second.nullable = True
            return second
        if second.type == 'mixed' and second.nullable and second.source == 'literal':
            first.nullable = True
            return first
        if first.type == second.type:
            return first
        return ResourceFieldInfo()

    def _binary(self, node: Node) -> ResourceFieldInfo:
        operator = binary_operator(node)
        if operator == '.':
            return ResourceFieldInfo(type='string')
        if operator == '??':
            left, right = binary_operands(node)
            info = self.analyze_value(left)
            fallback = self.analyze_value(right)
            if fallback.source == 'literal' and fallback.type == 'mixed':
                info.nullable = True
            return info
        if operator in ('+', '-', '*', '/', '%', '**'):
            return ResourceFieldInfo(type='number')
        if operator in ('==', '===', '!=', '!==', '<', '>', '<=', '>=', '&&', '||', 'and', 'or', 'instanceof'):
            return ResourceFieldInfo(type='boolean')
        return ResourceFieldInfo(expression=render(node))

    def _member_access(self, node: Node) -> ResourceFieldInfo:
        target = unwrap(call_object(node))
        name = call_name(node) or ''
        nullsafe = node.type == 'nullsafe_member_access_expression'
        if is_this(target):
            if name == 'collection' and self.collects:
                fqcn = self._add_nested(self.collects)
                return ResourceFieldInfo(type='array', resource=fqcn, is_collection=True)
            return property_field(name)
        if target is not None and target.type in MEMBER_ACCESS_TYPES:
            if name == 'value':
                parent = call_name(target) or ''
                parent_info = property_field(parent)
                enum_type = 'integer' if parent_info.type == 'integer' else 'string'
                return ResourceFieldInfo(type=enum_type, source='enum',
                                         nullable=nullsafe or target.type == 'nullsafe_member_access_expression')
            if is_this(call_object(target)) and call_name(target) == 'resource':
                return property_field(name)
            info = property_field(name)
            info.nullable = nullsafe
            return info
        # transformer parameter ($user->name)
        if target is not None and target.type == 'variable_name':
            info = property_field(name)
            info.nullable = nullsafe
            return info
        return ResourceFieldInfo(expression=render(node))

    def _member_call(self, node: Node) -> ResourceFieldInfo:
        name = call_name(node) or ''
        target = unwrap(call_object(node))
        args = argument_nodes(node)

        if is_this(target):
            if name == 'when' or name == 'unless':
                return self._when(node, name, args)
            if name == 'whenLoaded':
                return self._when_loaded(node, args)
            if name == 'whenCounted':
                return self._conditional(node, 'whenCounted', ResourceFieldInfo(type='integer'),
                                         relation=string_value(args[0]) if args else None)
            if name == 'whenAggregated':
                return self._conditional(node, 'whenAggregated', ResourceFieldInfo(type='number'),
                                         relation=string_value(args[0]) if args else None)
            if name == 'whenNotNull':
                info = self.analyze_value(args[0]) if args else ResourceFieldInfo()
                return self._conditional(node, 'whenNotNull', info)
            if name == 'whenHas':
                attribute = string_value(args[0]) if args else None
                info = property_field(attribute) if attribute else ResourceFieldInfo()
                if len(args) > 1:
                    info = self._closure_or_value(args[1])
                return self._conditional(node, 'whenHas', info)
            if name == 'whenPivotLoaded':
                return self._conditional(node, 'whenPivotLoaded', self._closure_or_value(args[1])
                                         if len(args) > 1 else ResourceFieldInfo())

        if name in DATE_METHODS:
            return ResourceFieldInfo(type='string', format=None if name == 'diffForHumans' else 'date-time',
                                     example=None if name == 'diffForHumans' else '2024-01-01T00:00:00Z')
        if name == 'value' and target is not None and target.type in MEMBER_ACCESS_TYPES:
            return ResourceFieldInfo(type='string', source='enum')
        if name in ('count', 'sum_count'):
            return ResourceFieldInfo(type='integer')
        if name in ('sum', 'avg', 'average', 'min', 'max'):
            return ResourceFieldInfo(type='number')
        if name in ('pluck', 'toArray', 'all', 'values', 'keys', 'map', 'get'):
            return ResourceFieldInfo(type='array')
        if name == 'exists' or re.match(r'^(has|is|can)[A-Z_]', name):
            return ResourceFieldInfo(type='boolean')
        if name in ('toString', '__toString'):
            return ResourceFieldInfo(type='string')
        return ResourceFieldInfo(expression=render(node))

    def _closure_or_value(self, node: Node) -> ResourceFieldInfo:
        node = unwrap(node)
        if node is not None and node.type in CLOSURE_TYPES:
            result = closure_result(node)
            return self.analyze_value(result) if result is not None else ResourceFieldInfo()
        return self.analyze_value(node)

    def _conditional(self, node: Node, condition: str, info: ResourceFieldInfo,
                     relation: Optional[str] = None) -> ResourceFieldInfo:
        expression = render(node)
        self._add_conditional(expression)
        info.conditional = True
        info.condition = condition
        info.expression = expression
        if relation is not None:
            info.relation = relation
        return info

    def _when(self, node: Node, name: str, args: List[Node]) -> ResourceFieldInfo:
        info = self._closure_or_value(args[1]) if len(args) > 1 else ResourceFieldInfo()
        return self._conditional(node, name, info)

    def _when_loaded(self, node: Node, args: List[Node]) -> ResourceFieldInfo:
        relation = string_value(args[0]) if args else None
        if len(args) > 1:
            info = self._closure_or_value(args[1])
            info.has_transformation = True
        elif relation and relation.endswith('s'):
            info = ResourceFieldInfo(type='array')
        else:
            info = ResourceFieldInfo(type='object')
        return self._conditional(node, 'whenLoaded', info, relation=relation)

    def _static_call(self, node: Node) -> ResourceFieldInfo:
        scope = node.child_by_field_name('scope')
        raw = node_text(scope) if scope is not None else ''
        name = call_name(node)
        args = argument_nodes(node)
        if is_resource_name(raw) and name in ('collection', 'make'):
            fqcn = self._add_nested(raw)
            collection = name == 'collection'
            info = ResourceFieldInfo(type='array' if collection else 'object', resource=fqcn,
                                     is_collection=collection)
            return self._wrapped_relation(info, args)
        return ResourceFieldInfo(expression=render(node))

    def _new_resource(self, node: Node) -> ResourceFieldInfo:
        raw = new_class_name(node) or ''
        if not is_resource_name(raw):
            return ResourceFieldInfo(type='object', expression=render(node))
        fqcn = self._add_nested(raw)
        is_collection = short_name(raw).endswith('Collection')
        info = ResourceFieldInfo(type='array' if is_collection else 'object', resource=fqcn)
        return self._wrapped_relation(info, argument_nodes(node))

    def _wrapped_relation(self, info: ResourceFieldInfo, args: List[Node]) -> ResourceFieldInfo:
        """UserResource::collection($this->whenLoaded('users')) keeps the relation gate"""
        inner = unwrap(args[0]) if args else None
        if (inner is not None and inner.type in MEMBER_CALL_TYPES and is_this(call_object(inner))
                and call_name(inner) == 'whenLoaded'):
            inner_args = argument_nodes(inner)
            return self._conditional(inner, 'whenLoaded', info,
                                     relation=string_value(inner_args[0]) if inner_args else None)
        return info


@dataclass
class ResourceInfo:
    class_name: str
    properties: Dict[str, ResourceFieldInfo] = field(default_factory=dict)
    with_data: Dict[str, ResourceFieldInfo] = field(default_factory=dict)
    conditional_fields: List[str] = field(default_factory=list)
    nested_resources: List[str] = field(default_factory=list)
    is_collection: bool = False
    collects: Optional[str] = None
    available_includes: List[str] = field(default_factory=list)
    default_includes: List[str] = field(default_factory=list)
    is_valid: bool = True
    kind: str = 'resource'

    @classmethod
    def empty(cls, class_name: str) -> 'ResourceInfo':
        return cls(class_name=class_name, is_valid=False)

    @property
    def schema_name(self) -> str:
        return short_name(self.class_name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'class_name': self.class_name,
            'properties': {k: v.to_dict() for k, v in self.properties.items()},
            'with': {k: v.to_dict() for k, v in self.with_data.items()},
            'conditional_fields': list(self.conditional_fields),
            'nested_resources': list(self.nested_resources),
            'is_collection': self.is_collection,
            'collects': self.collects,
            'available_includes': list(self.available_includes),
            'default_includes': list(self.default_includes),
            'is_valid': self.is_valid,
            'kind': self.kind,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ResourceInfo':
        return cls(
            class_name=data['class_name'],
            properties={k: ResourceFieldInfo.from_dict(v) for k, v in (data.get('properties') or {}).items()},
            with_data={k: ResourceFieldInfo.from_dict(v) for k, v in (data.get('with') or {}).items()},
            conditional_fields=list(data.get('conditional_fields') or []),
            nested_resources=list(data.get('nested_resources') or []),
            is_collection=data.get('is_collection', False),
            collects=data.get('collects'),
            available_includes=list(data.get('available_includes') or []),
            default_includes=list(data.get('default_includes') or []),
            is_valid=data.get('is_valid', True),
            kind=data.get('kind', 'resource'),
        )


def studly(name: str) -> str:
    return ''.join(part[:1].upper() + part[1:] for part in re.split(r'[_\-\s.]+', name) if part)


class ResourceAnalyzer:
    """Analyze JsonResource, ResourceCollection and Fractal transformer classes"""

    def __init__(self, locator: ClassLocator, cache: Optional[DocumentationCache] = None,
                 error_collector: Optional[ErrorCollector] = None):
        self.locator = locator
        self.cache = cache
        self.error_collector = error_collector or ErrorCollector()

    def analyze(self, fqcn: str) -> ResourceInfo:
        fqcn = fqcn.lstrip('\\')
        located = self.locator.load(fqcn)
        if located is None or not isinstance(located, LocatedClass):
            if located is None:
                self.error_collector.add_warning('ResourceAnalyzer', f"Resource class not found: {fqcn}",
                                                 {'class': fqcn}, AnalyzerErrorType.MISSING_CLASS)
            else:
                self.error_collector.add_warning('ResourceAnalyzer', f"Cannot parse {located.path}: {located.message}",
                                                 {'class': fqcn, **located.to_dict()}, AnalyzerErrorType.PARSE_ERROR)
            return ResourceInfo.empty(fqcn)

        if self.cache is None:
            return self._analyze(located)
        data = self.cache.remember_resource(fqcn, located.path, lambda: self._analyze(located).to_dict(),
                                            resolve=self.locator.locate)
        return ResourceInfo.from_dict(data)

    def _ancestors(self, located: LocatedClass) -> List[LocatedClass]:
        chain = [located]
        current = located
        for _ in range(MAX_PARENT_DEPTH):
            parent = parent_class_name(current.node)
            if parent is None:
                break
            parent_located = self.locator.load(current.source_file.resolve_name(parent))
            if not isinstance(parent_located, LocatedClass):
                break
            chain.append(parent_located)
            current = parent_located
        return chain

    def _base_kind(self, chain: List[LocatedClass]) -> str:
        for located in chain:
            parent = parent_class_name(located.node)
            if parent is None:
                continue
            base = short_name(parent)
            if base == 'TransformerAbstract':
                return 'fractal'
            if base == 'ResourceCollection':
                return 'collection'
        return 'resource'

    def _find_method(self, chain: List[LocatedClass], name: str):
        for located in chain:
            method = method_table(located.node).get(name)
            if method is not None:
                return located, method
        return None, None

    def _analyze(self, located: LocatedClass) -> ResourceInfo:
        logger.debug("Analyzing resource %s", located.fqcn)
        chain = self._ancestors(located)
        kind = self._base_kind(chain)
        info = ResourceInfo(class_name=located.fqcn, kind=kind)

        if kind == 'collection':
            info.is_collection = True
            info.collects = self._collects(chain)
            if info.collects is None and located.fqcn.endswith('Collection'):
                guess = located.fqcn[:-len('Collection')] + 'Resource'
                if self.locator.locate(guess) is not None:
                    info.collects = guess

        method_name = 'transform' if kind == 'fractal' else 'toArray'
        owner, method = self._find_method(chain, method_name)
        if method is None:
            if kind != 'collection':
                self.error_collector.add_warning('ResourceAnalyzer', f"No {method_name}() method in {located.fqcn}",
                                                 {'class': located.fqcn}, AnalyzerErrorType.METHOD_NOT_FOUND)
                info.is_valid = False
            elif info.collects:
                info.nested_resources.append(info.collects)
            return info

        analyzer = ResourceStructureAnalyzer(owner.source_file, collects=info.collects)
        structure = analyzer.analyze_method(method)
        info.properties = structure.properties
        info.conditional_fields = list(structure.conditional_fields)
        info.nested_resources = list(structure.nested_resources)
        if not structure.found:
            info.is_valid = kind == 'collection'

        owner_with, with_method = self._find_method(chain, 'with')
        if with_method is not None and kind != 'fractal':
            with_structure = ResourceStructureAnalyzer(owner_with.source_file).analyze_method(with_method)
            info.with_data = with_structure.properties

        if kind == 'fractal':
            self._fractal_includes(chain, info)
        return info

    def _collects(self, chain: List[LocatedClass]) -> Optional[str]:
        for located in chain:
            value = class_properties(located.node).get('collects')
            value = unwrap(value)
            if value is not None and value.type == 'class_constant_access_expression':
                parts = named(value)
                if len(parts) == 2 and node_text(parts[1]) == 'class':
                    return located.source_file.resolve_name(node_text(parts[0]))
        return None

    def _fractal_includes(self, chain: List[LocatedClass], info: ResourceInfo) -> None:
        for located in chain:
            properties = class_properties(located.node)
            for name, target in (('availableIncludes', info.available_includes),
                                 ('defaultIncludes', info.default_includes)):
                value = literal_value(properties.get(name)) if properties.get(name) is not None else None
                if isinstance(value, list):
                    for item in value:
                        if isinstance(item, str) and item not in target:
                            target.append(item)

        for include in info.default_includes + info.available_includes:
            if include in info.properties:
                continue
            owner, method = self._find_method(chain, 'include' + studly(include))
            field_info = ResourceFieldInfo(type='object')
            if method is not None:
                field_info = self._include_field(owner, method, info)
            if include not in info.default_includes:
                field_info.conditional = True
                field_info.condition = 'include'
                field_info.expression = f"include={include}"
                if field_info.expression not in info.conditional_fields:
                    info.conditional_fields.append(field_info.expression)
            info.properties[include] = field_info

    def _include_field(self, owner: LocatedClass, method: Node, info: ResourceInfo) -> ResourceFieldInfo:
        for node in walk_outside_closures(method):
            if node.type != 'return_statement':
                continue
            values = named(node)
            value = unwrap(values[0]) if values else None
            if value is None or value.type not in MEMBER_CALL_TYPES:
                break
            name = call_name(value)
            transformer = None
            for arg in argument_nodes(value):
                arg = unwrap(arg)
                if arg is not None and arg.type == 'object_creation_expression':
                    transformer = new_class_name(arg)
            if transformer is not None:
                fqcn = owner.source_file.resolve_name(transformer)
                if fqcn not in info.nested_resources:
                    info.nested_resources.append(fqcn)
                if name == 'collection':
                    return ResourceFieldInfo(type='array', resource=fqcn, is_collection=True)
                if name == 'item':
                    return ResourceFieldInfo(type='object', resource=fqcn)
            if name == 'null':
                return ResourceFieldInfo(nullable=True)
            break
        return ResourceFieldInfo(type='object')

    @staticmethod
    def generate_schema(info: ResourceInfo) -> Dict[str, Any]:
        """OpenAPI object schema for a resource"""
        properties: Dict[str, Any] = {}
        required: List[str] = []
        for name, field_info in info.properties.items():
            schema = field_info.to_schema()
            if field_info.conditional:
                schema = dict(schema)
                if '$ref' in schema:
                    schema = {'allOf': [schema]}
                schema['nullable'] = True
                schema['description'] = f"Conditional field ({field_info.expression or field_info.condition})"
            elif not field_info.nullable:
                required.append(name)
            properties[name] = schema
        result: Dict[str, Any] = {'type': 'object', 'properties': properties}
        if required:
            result['required'] = required
        return result
