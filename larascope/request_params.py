"""
Query and header parameters read directly from the request in a controller method.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from tree_sitter import Node

from .parameters import ParameterDefinition
from .parser import (MEMBER_ACCESS_TYPES, MEMBER_CALL_TYPES, NOT_LITERAL, argument_nodes, binary_operands,
                     binary_operator, call_name, call_object, call_scope, literal_value, named, string_value,
                     unwrap, variable_name, walk)

logger = logging.getLogger(__name__)

REQUEST_METHODS = ('input', 'query', 'get', 'post', 'has', 'filled', 'missing', 'boolean', 'bool',
                   'integer', 'int', 'float', 'double', 'string', 'str', 'array', 'date', 'enum')
TYPED_METHODS = ('boolean', 'bool', 'integer', 'int', 'float', 'double', 'string', 'str', 'array', 'date', 'enum')
METHOD_TYPES = {
    'boolean': 'boolean', 'bool': 'boolean',
    'integer': 'integer', 'int': 'integer',
    'float': 'number', 'double': 'number',
    'string': 'string', 'str': 'string',
    'array': 'array',
    'date': 'string',
}
UPPER_WORDS = ('id', 'api', 'url', 'ip')
HEADER_METHODS = ('header', 'hasHeader', 'bearerToken')
HEADER_DESCRIPTIONS = {
    'Idempotency-Key': 'Unique key to ensure idempotent requests',
    'X-Request-Id': 'Unique identifier for request tracing',
    'X-Correlation-Id': 'Correlation ID for distributed tracing',
    'X-Tenant-Id': 'Tenant identifier for multi-tenant applications',
    'X-Api-Key': 'API key for authentication',
    'Accept-Language': 'Preferred language for the response',
}


def describe_name(name: str) -> str:
    words = [w.upper() if w.lower() in UPPER_WORDS else w[:1].upper() + w[1:] for w in name.split('_') if w]
    return ' '.join(words)


def type_of_value(value: Any) -> str:
    if isinstance(value, bool):
        return 'boolean'
    if isinstance(value, int):
        return 'integer'
    if isinstance(value, float):
        return 'number'
    if isinstance(value, (list, dict)):
        return 'array'
    return 'string'


@dataclass
class QueryParameter:
    """A request input read by the controller itself"""
    name: str
    type: str = 'string'
    required: bool = False
    default: Any = None
    source: str = 'input'
    description: str = ''
    enum: Optional[List[Any]] = None
    format: Optional[str] = None
    validation: List[Any] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'name': self.name,
            'type': self.type,
            'required': self.required,
            'default': self.default,
            'source': self.source,
            'description': self.description,
        }
        if self.enum is not None:
            result['enum'] = list(self.enum)
        if self.format is not None:
            result['format'] = self.format
        if self.validation:
            result['validation'] = list(self.validation)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'QueryParameter':
        enum = data.get('enum')
        return cls(name=data['name'], type=data.get('type', 'string'), required=data.get('required', False),
                   default=data.get('default'), source=data.get('source', 'input'),
                   description=data.get('description', ''), enum=list(enum) if enum is not None else None,
                   format=data.get('format'), validation=list(data.get('validation') or []))

    def to_parameter(self) -> ParameterDefinition:
        constraints = {'default': self.default} if self.default is not None else {}
        return ParameterDefinition(
            name=self.name,
            location='query',
            required=self.required,
            type=self.type,
            description=self.description,
            validation=tuple(self.validation),
            format=self.format,
            enum=tuple(self.enum) if self.enum is not None else None,
            example=self.default,
            constraints=constraints,
        )


@dataclass
class _Detected:
    name: str
    method: str
    default: Any = None
    context: Dict[str, Any] = field(default_factory=dict)


class _RequestReceivers:
    """Decides whether an expression is the current request"""

    def __init__(self, variables: Iterable[str] = ('request',)):
        self.variables = set(variables)

    def __call__(self, node: Optional[Node]) -> bool:
        node = unwrap(node)
        if node is None:
            return False
        if variable_name(node) in self.variables:
            return True
        if node.type == 'function_call_expression' and call_name(node) == 'request' and not argument_nodes(node):
            return True
        return False


class QueryParameterDetector:
    """Detect `$request->input('x')` style parameter access in a method body"""

    def __init__(self, request_variables: Iterable[str] = ('request',)):
        self.is_request = _RequestReceivers(request_variables)

    def detect(self, method_node: Node) -> List[QueryParameter]:
        detected: List[_Detected] = []
        assignments: Dict[str, str] = {}
        for node in walk(method_node):
            if node.type == 'assignment_expression':
                self._track_assignment(node, assignments)
            elif node.type in MEMBER_CALL_TYPES and self.is_request(call_object(node)):
                self._method_call(node, detected)
            elif node.type == 'scoped_call_expression' and call_scope(node) == 'Request':
                self._method_call(node, detected)
            elif node.type in MEMBER_ACCESS_TYPES and self.is_request(call_object(node)):
                name = call_name(node)
                if name:
                    detected.append(_Detected(name, 'magic'))
            elif node.type == 'binary_expression' and binary_operator(node) == '??':
                self._coalesce(node, detected)
            elif node.type == 'function_call_expression' and call_name(node) == 'in_array':
                self._in_array(node, detected, assignments)
            elif node.type in ('switch_statement', 'match_expression'):
                self._enum_cases(node, detected, assignments)
            elif node.type == 'if_statement':
                self._if_context(node, detected)
        return [self._to_parameter(p) for p in self._consolidate(detected)]

    def _parameter_name(self, node: Node) -> Optional[str]:
        args = argument_nodes(node)
        return string_value(args[0]) if args else None

    def _method_call(self, node: Node, detected: List[_Detected]) -> None:
        method = call_name(node)
        if method not in REQUEST_METHODS:
            return
        name = self._parameter_name(node)
        if not name:
            return
        args = argument_nodes(node)
        default = literal_value(args[1]) if len(args) > 1 else None
        context = {f"{method}_check": True} if method in ('has', 'filled') else {}
        detected.append(_Detected(name, method, None if default is NOT_LITERAL else default, context))

    def _coalesce(self, node: Node, detected: List[_Detected]) -> None:
        left, right = binary_operands(node)
        left = unwrap(left)
        if left is None or left.type not in MEMBER_ACCESS_TYPES or not self.is_request(call_object(left)):
            return
        name = call_name(left)
        default = literal_value(right)
        if not name or default is NOT_LITERAL:
            return
        for param in detected:
            if param.name == name and param.method == 'magic':
                param.default = default
                return
        detected.append(_Detected(name, 'magic', default))

    def _track_assignment(self, node: Node, assignments: Dict[str, str]) -> None:
        target = variable_name(node.child_by_field_name('left'))
        value = unwrap(node.child_by_field_name('right'))
        if target is None or value is None:
            return
        if value.type == 'binary_expression' and binary_operator(value) == '??':
            value = unwrap(binary_operands(value)[0])
        if value is None:
            return
        if value.type in MEMBER_CALL_TYPES and self.is_request(call_object(value)):
            if call_name(value) in REQUEST_METHODS:
                name = self._parameter_name(value)
                if name:
                    assignments[target] = name
        elif value.type in MEMBER_ACCESS_TYPES and self.is_request(call_object(value)):
            name = call_name(value)
            if name:
                assignments[target] = name

    def _traced_name(self, node: Optional[Node], assignments: Dict[str, str]) -> Optional[str]:
        node = unwrap(node)
        if node is None:
            return None
        if node.type in MEMBER_CALL_TYPES and self.is_request(call_object(node)):
            return self._parameter_name(node)
        name = variable_name(node)
        return assignments.get(name) if name else None

    def _in_array(self, node: Node, detected: List[_Detected], assignments: Dict[str, str]) -> None:
        args = argument_nodes(node)
        if len(args) < 2:
            return
        name = self._traced_name(args[0], assignments)
        values = literal_value(args[1])
        if name and isinstance(values, list) and values:
            self._update_context(detected, name, {'enum_values': values})

    def _enum_cases(self, node: Node, detected: List[_Detected], assignments: Dict[str, str]) -> None:
        name = self._traced_name(node.child_by_field_name('condition'), assignments)
        if not name:
            return
        values: List[Any] = []
        for param in detected:
            if param.name == name and 'enum_values' in param.context:
                values = list(param.context['enum_values'])
                break
        body = node.child_by_field_name('body')
        for child in named(body):
            if child.type == 'case_statement':
                candidates = [child.child_by_field_name('value') or (named(child)[0] if named(child) else None)]
            elif child.type == 'match_conditional_expression':
                conditions = child.child_by_field_name('conditional_expressions')
                candidates = named(conditions) if conditions is not None else named(child)[:1]
            else:
                continue
            for candidate in candidates:
                value = literal_value(candidate)
                if value is not NOT_LITERAL and value is not None and value not in values:
                    values.append(value)
        if values:
            self._update_context(detected, name, {'enum_values': values})

    def _if_context(self, node: Node, detected: List[_Detected]) -> None:
        condition = unwrap(node.child_by_field_name('condition'))
        if condition is None or condition.type not in MEMBER_CALL_TYPES or not self.is_request(call_object(condition)):
            return
        method = call_name(condition)
        if method in ('has', 'filled'):
            name = self._parameter_name(condition)
            if name:
                self._update_context(detected, name, {f"{method}_check": True})

    def _update_context(self, detected: List[_Detected], name: str, context: Dict[str, Any]) -> None:
        for param in detected:
            if param.name == name:
                param.context.update(context)

    def _consolidate(self, detected: List[_Detected]) -> List[_Detected]:
        seen: Dict[str, _Detected] = {}
        for param in detected:
            existing = seen.get(param.name)
            if existing is None:
                seen[param.name] = _Detected(param.name, param.method, param.default, dict(param.context))
                continue
            existing.context.update(param.context)
            if param.method in TYPED_METHODS and existing.method not in TYPED_METHODS:
                existing.method = param.method
            if existing.default is None and param.default is not None:
                existing.default = param.default
        return list(seen.values())

    def _to_parameter(self, param: _Detected) -> QueryParameter:
        if param.method in METHOD_TYPES:
            type_name = METHOD_TYPES[param.method]
        elif param.default is not None:
            type_name = type_of_value(param.default)
        else:
            type_name = 'string'
        return QueryParameter(
            name=param.name,
            type=type_name,
            required=bool(param.context.get('has_check')),
            default=param.default,
            source=param.method,
            description=describe_name(param.name),
            enum=param.context.get('enum_values'),
            format='date' if param.method == 'date' else None,
        )


def merge_with_validation(parameters: List[QueryParameter],
                          validated: Dict[str, ParameterDefinition]) -> List[QueryParameter]:
    """Validation rules for the same field win on type and required flag"""
    merged = []
    for param in parameters:
        definition = validated.get(param.name)
        if definition is not None:
            param = QueryParameter(
                name=param.name,
                type=definition.type if definition.type != 'mixed' else param.type,
                required=definition.required,
                default=param.default,
                source=param.source,
                description=param.description,
                enum=list(definition.enum) if definition.enum is not None else param.enum,
                format=definition.format or param.format,
                validation=list(definition.validation),
            )
        merged.append(param)
    return merged


@dataclass
class HeaderParameter:
    name: str
    required: bool = False
    type: str = 'string'
    default: Any = None
    source: str = 'header'
    description: str = ''
    is_bearer_token: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'required': self.required,
            'type': self.type,
            'default': self.default,
            'source': self.source,
            'description': self.description,
            'is_bearer_token': self.is_bearer_token,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'HeaderParameter':
        return cls(name=data['name'], required=data.get('required', False), type=data.get('type', 'string'),
                   default=data.get('default'), source=data.get('source', 'header'),
                   description=data.get('description', ''), is_bearer_token=data.get('is_bearer_token', False))

    def to_parameter(self) -> ParameterDefinition:
        return ParameterDefinition(name=self.name, location='header', required=self.required, type=self.type,
                                   description=self.description, example=self.default)


class HeaderParameterDetector:
    """Detect header(), hasHeader() and bearerToken() calls on the request"""

    def __init__(self, request_variables: Iterable[str] = ('request',)):
        self.is_request = _RequestReceivers(request_variables)

    def detect(self, method_node: Node) -> List[HeaderParameter]:
        headers: Dict[str, HeaderParameter] = {}
        for node in walk(method_node):
            if node.type not in MEMBER_CALL_TYPES or not self.is_request(call_object(node)):
                continue
            method = call_name(node)
            if method not in HEADER_METHODS:
                continue
            if method == 'bearerToken':
                # bearer tokens are usually covered by the security scheme
                headers.setdefault('Authorization', HeaderParameter(
                    name='Authorization', source='bearerToken', is_bearer_token=True,
                    description='Bearer token for authentication'))
                continue
            args = argument_nodes(node)
            name = string_value(args[0]) if args else None
            if not name:
                continue
            default = literal_value(args[1]) if len(args) > 1 else None
            default = None if default is NOT_LITERAL else default
            existing = headers.get(name)
            if existing is None:
                headers[name] = HeaderParameter(name=name, default=default, source=method,
                                                description=HEADER_DESCRIPTIONS.get(name, f"Request header: {name}"))
            elif existing.default is None and default is not None:
                existing.default = default
        return list(headers.values())


def validated_by_name(parameters: Iterable[ParameterDefinition]) -> Dict[str, ParameterDefinition]:
    return {p.name: p for p in parameters}

