"""
Controller method analysis.

Reads one controller action and reports what the route consumes and produces:
the FormRequest or inline validation, enum-typed parameters, query and header
access, the resource or Fractal transformer returned, pagination calls,
explicit JSON responses with their status codes and declared callbacks.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from tree_sitter import Node

from .conditions import ConditionClassifier, is_request_receiver
from .diagnostics import AnalyzerErrorType, ErrorCollector
from .enums import EnumAnalyzer
from .form_requests import FormRequestAnalyzer
from .locator import ClassLocator, LocatedClass
from .parser import (MEMBER_CALL_TYPES, NOT_LITERAL, ParseFailure, SourceFile, argument_nodes, arguments,
                     binary_operands, binary_operator,
                     call_name, call_object, call_scope, find_child, literal_value, method_parameters,
                     method_table, named, new_class_name, node_text, parent_class_name, short_name,
                     unwrap, variable_name, walk, walk_outside_closures)
from .request_params import HeaderParameter, HeaderParameterDetector, QueryParameter, QueryParameterDetector
from .resources import ResourceStructureAnalyzer, is_resource_name, studly
from .routes import singular
from .rules import Binding, ConditionalRule, ConditionalRuleSet, Resolved, RuleSetExtractor, union_rules

logger = logging.getLogger(__name__)

MAX_PARENT_DEPTH = 5
PAGINATION_METHODS = ('paginate', 'simplePaginate', 'cursorPaginate')
PAGINATOR_RETURN_TYPES = {
    'LengthAwarePaginator': 'paginate',
    'Paginator': 'simplePaginate',
    'CursorPaginator': 'cursorPaginate',
}
REQUEST_TYPES = ('Request', 'Illuminate\\Http\\Request')
BUILTIN_TYPES = ('int', 'integer', 'string', 'bool', 'boolean', 'float', 'array', 'mixed', 'object',
                 'callable', 'iterable', 'self', 'static', 'null', 'void')
RESPONSE_WRAPPERS = ('response', 'setStatusCode', 'additional', 'withResponse', 'header', 'withHeaders')
CALLBACK_FIELDS = ('name', 'expression', 'method', 'requestBody', 'responses', 'description', 'summary', 'ref')


@dataclass
class PaginationInfo:
    type: str
    model: Optional[str] = None
    resource: Optional[str] = None
    source: Optional[str] = None
    per_page: Optional[int] = None

    @property
    def kind(self) -> str:
        return {'paginate': 'length_aware', 'simplePaginate': 'simple', 'cursorPaginate': 'cursor'}[self.type]

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.type, 'model': self.model, 'resource': self.resource, 'source': self.source,
                'per_page': self.per_page}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PaginationInfo':
        return cls(type=data['type'], model=data.get('model'), resource=data.get('resource'),
                   source=data.get('source'), per_page=data.get('per_page'))


@dataclass
class FractalInfo:
    transformer: str
    collection: bool = False
    has_includes: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {'transformer': self.transformer, 'collection': self.collection, 'type':
                'collection' if self.collection else 'item', 'has_includes': self.has_includes}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FractalInfo':
        return cls(transformer=data['transformer'], collection=data.get('collection', False),
                   has_includes=data.get('has_includes', False))


@dataclass
class ResponseInfo:
    """Shape of an explicit response; schema is an OpenAPI schema dict"""
    type: str = 'unknown'
    status: Optional[int] = None
    schema: Optional[Dict[str, Any]] = None
    content_type: str = 'application/json'

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.type, 'status': self.status, 'schema': self.schema, 'content_type': self.content_type}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ResponseInfo':
        return cls(type=data.get('type', 'unknown'), status=data.get('status'), schema=data.get('schema'),
                   content_type=data.get('content_type', 'application/json'))


@dataclass
class CallbackInfo:
    """An OpenAPI callback declared with #[OpenApiCallback(...)]"""
    name: str
    expression: str
    method: str = 'post'
    request_body: Optional[Dict[str, Any]] = None
    responses: Optional[Dict[str, Any]] = None
    description: Optional[str] = None
    summary: Optional[str] = None
    ref: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'name': self.name, 'expression': self.expression, 'method': self.method,
                'requestBody': self.request_body, 'responses': self.responses,
                'description': self.description, 'summary': self.summary, 'ref': self.ref}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CallbackInfo':
        if not data.get('name') or not data.get('expression'):
            raise ValueError('callback needs a name and an expression')
        return cls(name=data['name'], expression=data['expression'], method=(data.get('method') or 'post').lower(),
                   request_body=data.get('requestBody'), responses=data.get('responses'),
                   description=data.get('description'), summary=data.get('summary'), ref=data.get('ref'))


@dataclass
class EnumParameter:
    name: str
    enum_class: str
    type: str = 'string'
    values: List[Any] = field(default_factory=list)
    required: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {'name': self.name, 'enumClass': self.enum_class, 'type': self.type, 'enum': list(self.values),
                'required': self.required, 'description': f"Enum parameter of type {self.enum_class}"}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EnumParameter':
        return cls(name=data['name'], enum_class=data['enumClass'], type=data.get('type', 'string'),
                   values=list(data.get('enum') or []), required=data.get('required', True))


@dataclass
class InlineValidation:
    rule_set: ConditionalRuleSet = field(default_factory=ConditionalRuleSet.empty)
    messages: Dict[str, str] = field(default_factory=dict)
    attributes: Dict[str, str] = field(default_factory=dict)
    sources: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {'rule_set': self.rule_set.to_dict(), 'messages': dict(self.messages),
                'attributes': dict(self.attributes), 'sources': list(self.sources)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'InlineValidation':
        return cls(rule_set=ConditionalRuleSet.from_dict(data.get('rule_set') or {}),
                   messages=dict(data.get('messages') or {}), attributes=dict(data.get('attributes') or {}),
                   sources=list(data.get('sources') or []))


@dataclass
class ControllerInfo:
    controller: str
    method: str
    form_request: Optional[str] = None
    inline_validation: Optional[InlineValidation] = None
    resource: Optional[str] = None
    returns_collection: bool = False
    fractal: Optional[FractalInfo] = None
    pagination: Optional[PaginationInfo] = None
    query_parameters: List[QueryParameter] = field(default_factory=list)
    header_parameters: List[HeaderParameter] = field(default_factory=list)
    enum_parameters: List[EnumParameter] = field(default_factory=list)
    response: Optional[ResponseInfo] = None
    callbacks: List[CallbackInfo] = field(default_factory=list)
    found: bool = True

    @classmethod
    def empty(cls, controller: str, method: str) -> 'ControllerInfo':
        return cls(controller=controller, method=method, found=False)

    def has_validation(self) -> bool:
        return self.form_request is not None or self.inline_validation is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'controller': self.controller,
            'method': self.method,
            'formRequest': self.form_request,
            'inlineValidation': self.inline_validation.to_dict() if self.inline_validation else None,
            'resource': self.resource,
            'returnsCollection': self.returns_collection,
            'fractal': self.fractal.to_dict() if self.fractal else None,
            'pagination': self.pagination.to_dict() if self.pagination else None,
            'queryParameters': [p.to_dict() for p in self.query_parameters],
            'headerParameters': [p.to_dict() for p in self.header_parameters],
            'enumParameters': [p.to_dict() for p in self.enum_parameters],
            'response': self.response.to_dict() if self.response else None,
            'callbacks': [c.to_dict() for c in self.callbacks],
            'found': self.found,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ControllerInfo':
        inline = data.get('inlineValidation')
        fractal = data.get('fractal')
        pagination = data.get('pagination')
        response = data.get('response')
        return cls(
            controller=data['controller'],
            method=data['method'],
            form_request=data.get('formRequest'),
            inline_validation=InlineValidation.from_dict(inline) if inline else None,
            resource=data.get('resource'),
            returns_collection=data.get('returnsCollection', False),
            fractal=FractalInfo.from_dict(fractal) if fractal else None,
            pagination=PaginationInfo.from_dict(pagination) if pagination else None,
            query_parameters=[QueryParameter.from_dict(p) for p in data.get('queryParameters') or []],
            header_parameters=[HeaderParameter.from_dict(p) for p in data.get('headerParameters') or []],
            enum_parameters=[EnumParameter.from_dict(p) for p in data.get('enumParameters') or []],
            response=ResponseInfo.from_dict(response) if response else None,
            callbacks=[CallbackInfo.from_dict(c) for c in data.get('callbacks') or []],
            found=data.get('found', True),
        )


def strip_wrappers(node: Optional[Node]) -> Tuple[Optional[Node], Optional[int]]:
    """Remove ->response()->setStatusCode(n) style wrappers; returns (inner, status)"""
    status = None
    node = unwrap(node)
    while node is not None and node.type in MEMBER_CALL_TYPES and call_name(node) in RESPONSE_WRAPPERS:
        if call_name(node) == 'setStatusCode':
            args = argument_nodes(node)
            value = literal_value(args[0]) if args else NOT_LITERAL
            if isinstance(value, int) and not isinstance(value, bool) and status is None:
                status = value
        node = unwrap(call_object(node))
    return node, status


def chain_root(node: Node) -> Node:
    """Innermost receiver of a fluent call chain"""
    current = node
    while current.type in MEMBER_CALL_TYPES:
        inner = unwrap(call_object(current))
        if inner is None:
            break
        current = inner
    return current


class ControllerAnalyzer:
    """Analyze controller actions"""

    def __init__(self, locator: ClassLocator, form_request_analyzer: Optional[FormRequestAnalyzer] = None,
                 enum_analyzer: Optional[EnumAnalyzer] = None, error_collector: Optional[ErrorCollector] = None,
                 classifier: Optional[ConditionClassifier] = None):
        self.locator = locator
        self.error_collector = error_collector or ErrorCollector()
        self.enum_analyzer = enum_analyzer or EnumAnalyzer(locator)
        self.classifier = classifier or ConditionClassifier()
        self.form_request_analyzer = form_request_analyzer or FormRequestAnalyzer(
            locator, enum_analyzer=self.enum_analyzer, error_collector=self.error_collector,
            classifier=self.classifier)

    def analyze(self, fqcn: str, method: str) -> ControllerInfo:
        fqcn = fqcn.lstrip('\\')
        located = self.locator.load(fqcn)
        if isinstance(located, ParseFailure):
            self.error_collector.add_warning('ControllerAnalyzer', f"Cannot parse {located.path}: {located.message}",
                                             {'class': fqcn, **located.to_dict()}, AnalyzerErrorType.PARSE_ERROR)
            return ControllerInfo.empty(fqcn, method)
        if located is None:
            self.error_collector.add_warning('ControllerAnalyzer', f"Controller class not found: {fqcn}",
                                             {'class': fqcn}, AnalyzerErrorType.MISSING_CLASS)
            return ControllerInfo.empty(fqcn, method)

        owner, method_node = self._find_method(located, method)
        if method_node is None:
            self.error_collector.add_warning('ControllerAnalyzer', f"Method {fqcn}::{method} not found",
                                             {'class': fqcn, 'method': method}, AnalyzerErrorType.METHOD_NOT_FOUND)
            return ControllerInfo.empty(fqcn, method)

        logger.debug("Analyzing %s::%s", fqcn, method)
        info = ControllerInfo(controller=fqcn, method=method)
        request_variables = self._parameters(owner, method_node, info)
        info.inline_validation = self.inline_validation(owner, method_node, request_variables)
        self._returns(owner, method_node, info)
        info.pagination = self.pagination(owner, method_node)
        if info.pagination is not None and info.pagination.resource is None and info.resource:
            info.pagination.resource = info.resource
        info.query_parameters = QueryParameterDetector(request_variables).detect(method_node)
        info.header_parameters = HeaderParameterDetector(request_variables).detect(method_node)
        info.callbacks = self.callbacks(method_node, fqcn, method)
        return info

    def _find_method(self, located: LocatedClass, method: str) -> Tuple[LocatedClass, Optional[Node]]:
        current: Optional[LocatedClass] = located
        for _ in range(MAX_PARENT_DEPTH + 1):
            if current is None:
                break
            node = method_table(current.node).get(method)
            if node is not None:
                return current, node
            parent = parent_class_name(current.node)
            if parent is None:
                break
            loaded = self.locator.load(current.source_file.resolve_name(parent))
            current = loaded if isinstance(loaded, LocatedClass) else None
        return located, None

    def _parameters(self, owner: LocatedClass, method_node: Node, info: ControllerInfo) -> List[str]:
        request_variables = ['request']
        for parameter in method_parameters(method_node):
            type_name = parameter['type']
            if not type_name or type_name.lower() in BUILTIN_TYPES:
                continue
            resolved = owner.source_file.resolve_name(type_name)
            if resolved in REQUEST_TYPES or short_name(resolved) == 'Request':
                request_variables.append(parameter['name'])
                continue
            if info.form_request is None and self.form_request_analyzer.is_form_request(resolved):
                info.form_request = resolved
                request_variables.append(parameter['name'])
                continue
            enum_info = self.enum_analyzer.extract_enum_info(resolved)
            if enum_info is not None:
                info.enum_parameters.append(EnumParameter(
                    name=parameter['name'],
                    enum_class=resolved,
                    type=enum_info.openapi_type,
                    values=list(enum_info.values),
                    required=not parameter['nullable'] and not parameter['has_default'],
                ))
        return list(dict.fromkeys(request_variables))

    # -- inline validation ------------------------------------------------

    def inline_validation(self, owner: LocatedClass, method_node: Node,
                          request_variables: Optional[List[str]] = None) -> Optional[InlineValidation]:
        extractor = RuleSetExtractor(owner.source_file, owner.node, self.classifier, self.enum_analyzer)
        scope: Dict[str, Binding] = {}
        variables = set(request_variables or ['request'])
        validation = InlineValidation()
        mappings = []
        for node in walk_outside_closures(method_node):
            if node.type in ('assignment_expression', 'augmented_assignment_expression'):
                extractor.assign(node, scope)
                continue
            found = self._validation_call(node, variables)
            if found is None:
                continue
            source, rules_node, messages_node, attributes_node = found
            mapping = extractor.evaluate_mapping(rules_node, scope)
            if not isinstance(mapping, Resolved) or not mapping.value:
                continue
            mappings.append(mapping.value)
            validation.sources.append(source)
            if messages_node is not None:
                validation.messages.update(extractor.string_map(messages_node))
            if attributes_node is not None:
                validation.attributes.update(extractor.string_map(attributes_node))
        if not mappings:
            return None
        validation.rule_set = ConditionalRuleSet.from_rule_sets(
            [ConditionalRule(conditions=[], rules=union_rules(*mappings), probability=1.0)])
        return validation

    def _validation_call(self, node: Node, variables) -> Optional[Tuple[str, Node, Optional[Node], Optional[Node]]]:
        if node.type in MEMBER_CALL_TYPES and call_name(node) == 'validate':
            receiver = unwrap(call_object(node))
            args = argument_nodes(node)
            if variable_name(receiver) == 'this':
                # $this->validate($request, rules, messages, attributes)
                if len(args) >= 2:
                    return ('validate', args[1], args[2] if len(args) > 2 else None,
                            args[3] if len(args) > 3 else None)
                return None
            if variable_name(receiver) in variables or (receiver is not None and is_request_receiver(receiver)):
                if args:
                    return ('request_validate', args[0], args[1] if len(args) > 1 else None,
                            args[2] if len(args) > 2 else None)
            return None
        if node.type == 'scoped_call_expression' and call_scope(node) == 'Validator' and call_name(node) == 'make':
            args = argument_nodes(node)
            if len(args) >= 2:
                return ('validator_make', args[1], args[2] if len(args) > 2 else None,
                        args[3] if len(args) > 3 else None)
        return None

    # -- responses ---------------------------------------------------------

    def _returns(self, owner: LocatedClass, method_node: Node, info: ControllerInfo) -> None:
        source_file = owner.source_file
        bindings: Dict[str, Node] = {}
        saw_return = False
        for node in walk_outside_closures(method_node):
            if node.type == 'assignment_expression':
                name = variable_name(node.child_by_field_name('left'))
                right = node.child_by_field_name('right')
                if name and right is not None:
                    bindings[name] = right
                continue
            if node.type != 'return_statement':
                continue
            saw_return = True
            values = named(node)
            if not values:
                continue
            expression, status = strip_wrappers(values[0])
            if expression is not None and expression.type == 'variable_name':
                bound = bindings.get(variable_name(expression))
                if bound is not None:
                    expression, bound_status = strip_wrappers(bound)
                    status = status if status is not None else bound_status
            if expression is None:
                continue
            self._return_expression(expression, status, source_file, info)

        if info.resource is None and info.fractal is None:
            self._return_type(method_node, source_file, info)
        if not saw_return and info.response is None:
            info.response = ResponseInfo(type='void', status=204)

    def _return_expression(self, node: Node, status: Optional[int], source_file: SourceFile,
                           info: ControllerInfo) -> None:
        if info.fractal is None:
            fractal = self.fractal(node, source_file)
            if fractal is not None:
                info.fractal = fractal
                self._set_status(info, status)
                return

        if info.resource is None:
            resource, collection = self._resource(node, source_file)
            if resource is not None:
                info.resource = resource
                info.returns_collection = collection
                self._set_status(info, status)
                return

        response = self._json_response(node, status)
        if response is not None and info.response is None:
            info.response = response

    def _set_status(self, info: ControllerInfo, status: Optional[int]) -> None:
        if status is not None and info.response is None:
            info.response = ResponseInfo(type='resource', status=status)

    def _resource(self, node: Node, source_file: SourceFile) -> Tuple[Optional[str], bool]:
        if node.type == 'scoped_call_expression':
            scope = node.child_by_field_name('scope')
            raw = node_text(scope) if scope is not None else ''
            name = call_name(node)
            if is_resource_name(raw) and name in ('collection', 'make'):
                return source_file.resolve_name(raw), name == 'collection'
        if node.type == 'object_creation_expression':
            raw = new_class_name(node) or ''
            if is_resource_name(raw):
                return source_file.resolve_name(raw), False
        return None, False

    def _json_response(self, node: Node, status: Optional[int]) -> Optional[ResponseInfo]:
        if node.type in MEMBER_CALL_TYPES:
            name = call_name(node)
            root = unwrap(call_object(node))
            from_helper = root is not None and root.type == 'function_call_expression' and call_name(root) == 'response'
            if from_helper and name == 'json':
                args = argument_nodes(node)
                schema: Dict[str, Any] = {'type': 'object'}
                if args:
                    payload = unwrap(args[0])
                    if payload is not None and payload.type == 'array_creation_expression':
                        properties = ResourceStructureAnalyzer().analyze_array(payload)
                        schema['properties'] = {k: v.to_schema() for k, v in properties.items()}
                if len(args) > 1:
                    code = literal_value(args[1])
                    if isinstance(code, int) and not isinstance(code, bool):
                        status = status if status is not None else code
                return ResponseInfo(type='object', status=status, schema=schema)
            if from_helper and name == 'noContent':
                return ResponseInfo(type='void', status=204)
            if from_helper and name in ('download', 'file', 'streamDownload', 'stream'):
                return ResponseInfo(type='binary', status=status, content_type='application/octet-stream')
        if node.type == 'function_call_expression' and call_name(node) == 'response':
            args = argument_nodes(node)
            code = literal_value(args[1]) if len(args) > 1 else NOT_LITERAL
            if isinstance(code, int) and not isinstance(code, bool):
                status = status if status is not None else code
            if args and literal_value(args[0]) in ('', None):
                return ResponseInfo(type='void', status=status or 204)
            return ResponseInfo(type='unknown', status=status)
        if node.type == 'array_creation_expression':
            properties = ResourceStructureAnalyzer().analyze_array(node)
            return ResponseInfo(type='object', status=status,
                                schema={'type': 'object', 'properties': {k: v.to_schema() for k, v in properties.items()}})
        return None

    def _return_type(self, method_node: Node, source_file: SourceFile, info: ControllerInfo) -> None:
        return_type = method_node.child_by_field_name('return_type')
        if return_type is None:
            return
        raw = node_text(return_type).strip().lstrip('?:').strip()
        if not raw or '|' in raw:
            return
        if is_resource_name(raw) and short_name(raw) not in ('JsonResource', 'ResourceCollection',
                                                              'AnonymousResourceCollection'):
            info.resource = source_file.resolve_name(raw)
            info.returns_collection = False

    def fractal(self, node: Node, source_file: SourceFile) -> Optional[FractalInfo]:
        """fractal($data, new T) or fractal()->item/collection($data, new T)"""
        calls = []
        current = node
        while current.type in MEMBER_CALL_TYPES:
            calls.append(current)
            inner = unwrap(call_object(current))
            if inner is None:
                return None
            current = inner
        if current.type != 'function_call_expression' or call_name(current) != 'fractal':
            return None
        names = [call_name(c) for c in calls]
        has_includes = 'parseIncludes' in names
        for call in calls:
            if call_name(call) == 'transformWith':
                transformer = self._transformer([None] + argument_nodes(call), source_file)
                if transformer is not None:
                    return FractalInfo(transformer=transformer, collection='collection' in names,
                                       has_includes=has_includes)
        candidates = [(call_name(c), argument_nodes(c)) for c in calls if call_name(c) in ('item', 'collection')]
        candidates.append(('fractal', argument_nodes(current)))
        for name, args in candidates:
            transformer = self._transformer(args, source_file)
            if transformer is None:
                continue
            collection = name == 'collection'
            if name == 'fractal':
                # fractal($items, ...) picks item vs collection from the data
                collection = 'collection' in names or self._looks_like_collection(args[0] if args else None)
            return FractalInfo(transformer=transformer, collection=collection, has_includes=has_includes)
        return None

    def _transformer(self, args: List[Node], source_file: SourceFile) -> Optional[str]:
        for arg in args[1:]:
            arg = unwrap(arg)
            if arg is None:
                continue
            if arg.type == 'object_creation_expression':
                raw = new_class_name(arg)
                if raw:
                    return source_file.resolve_name(raw)
            if arg.type == 'class_constant_access_expression':
                parts = named(arg)
                if len(parts) == 2 and node_text(parts[1]) == 'class':
                    return source_file.resolve_name(node_text(parts[0]))
        return None

    def _looks_like_collection(self, node: Optional[Node]) -> bool:
        node = unwrap(node)
        if node is None:
            return False
        if node.type in MEMBER_CALL_TYPES or node.type == 'scoped_call_expression':
            return call_name(node) in ('get', 'all', 'paginate', 'simplePaginate', 'cursorPaginate')
        name = variable_name(node)
        return bool(name) and name.endswith('s')

    # -- pagination ---------------------------------------------------------

    def pagination(self, owner: LocatedClass, method_node: Node) -> Optional[PaginationInfo]:
        source_file = owner.source_file
        bindings: Dict[str, Node] = {}
        wrapped: Dict[int, str] = {}
        found: List[Tuple[Node, PaginationInfo]] = []
        for node in walk(method_node):
            if node.type == 'assignment_expression':
                name = variable_name(node.child_by_field_name('left'))
                right = node.child_by_field_name('right')
                if name and right is not None:
                    bindings[name] = right
            elif node.type in ('scoped_call_expression', 'object_creation_expression'):
                resource, _ = self._resource(node, source_file)
                args = argument_nodes(node)
                if resource is not None and args:
                    inner = unwrap(args[0])
                    if inner is not None and inner.type == 'variable_name' and variable_name(inner) in bindings:
                        inner = unwrap(bindings[variable_name(inner)])
                    if inner is not None:
                        wrapped[inner.id] = resource
            if node.type in MEMBER_CALL_TYPES or node.type == 'scoped_call_expression':
                if call_name(node) in PAGINATION_METHODS:
                    found.append((node, self._pagination_call(node, bindings, source_file)))
        if not found:
            return self._paginator_return_type(method_node)
        node, info = found[0]
        info.resource = wrapped.get(node.id)
        return info

    def _pagination_call(self, node: Node, bindings: Dict[str, Node], source_file: SourceFile) -> PaginationInfo:
        info = PaginationInfo(type=call_name(node))
        args = arguments(node)
        per_page = None
        for name, value in args:
            if name in (None, 'perPage'):
                per_page = self._per_page(value, dict(bindings))
                break
        info.per_page = per_page

        root = chain_root(node)
        seen = set()
        while root.type == 'variable_name' and variable_name(root) in bindings and variable_name(root) not in seen:
            seen.add(variable_name(root))
            root = chain_root(unwrap(bindings[variable_name(root)]))

        if root.type == 'scoped_call_expression':
            scope = call_scope(root)
            if scope == 'DB':
                args = argument_nodes(root)
                table = literal_value(args[0]) if args else NOT_LITERAL
                info.model = table if isinstance(table, str) else None
                info.source = 'query_builder'
            elif scope not in ('self', 'static', 'parent'):
                scope_node = root.child_by_field_name('scope')
                info.model = source_file.resolve_name(node_text(scope_node)) if scope_node is not None else scope
                info.source = 'model'
        elif root.type == 'variable_name' and node.type in MEMBER_CALL_TYPES:
            relation = self._relation_name(node)
            if relation:
                info.model = studly(singular(relation))
                info.source = 'relation'
            else:
                info.source = 'query_builder'
        return info

    def _relation_name(self, node: Node) -> Optional[str]:
        """posts in $user->posts()->latest()->paginate()"""
        current = node
        relation = None
        while current.type in MEMBER_CALL_TYPES:
            inner = unwrap(call_object(current))
            if inner is None:
                break
            if inner.type == 'variable_name' and current is not node:
                relation = call_name(current)
            current = inner
        return relation

    def _per_page(self, node: Optional[Node], bindings: Optional[Dict[str, Node]] = None) -> Optional[int]:
        node = unwrap(node)
        value = literal_value(node)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        name = variable_name(node)
        if name and bindings and name in bindings:
            # $perPage = $request->input('per_page', 15)
            return self._per_page(bindings.pop(name), bindings)
        if node is not None and node.type == 'binary_expression' and binary_operator(node) == '??':
            return self._per_page(binary_operands(node)[1], bindings)
        if node is not None and node.type in MEMBER_CALL_TYPES:
            args = argument_nodes(node)
            default = literal_value(args[1]) if len(args) > 1 else NOT_LITERAL
            if isinstance(default, int) and not isinstance(default, bool):
                return default
        return None

    def _paginator_return_type(self, method_node: Node) -> Optional[PaginationInfo]:
        return_type = method_node.child_by_field_name('return_type')
        if return_type is None:
            return None
        raw = short_name(node_text(return_type).strip().lstrip('?:').strip())
        kind = PAGINATOR_RETURN_TYPES.get(raw)
        return PaginationInfo(type=kind) if kind else None

    # -- callbacks ------------------------------------------------------------

    def callbacks(self, method_node: Node, controller: str = '', method: str = '') -> List[CallbackInfo]:
        attribute_list = method_node.child_by_field_name('attributes') or find_child(method_node, 'attribute_list')
        if attribute_list is None:
            return []
        result = []
        for node in walk(attribute_list):
            if node.type != 'attribute':
                continue
            name_nodes = [c for c in named(node) if c.type in ('name', 'qualified_name')]
            if not name_nodes or short_name(node_text(name_nodes[0])) != 'OpenApiCallback':
                continue
            values: Dict[str, Any] = {}
            parameters = node.child_by_field_name('parameters') or find_child(node, 'arguments')
            position = 0
            for arg_name, value_node in (arguments(node) if parameters is not None else []):
                value = literal_value(value_node)
                if value is NOT_LITERAL:
                    value = None
                key = arg_name if arg_name else (CALLBACK_FIELDS[position] if position < len(CALLBACK_FIELDS) else None)
                position += 1
                if key:
                    values[key] = value
            try:
                result.append(CallbackInfo.from_dict(values))
            except ValueError as e:
                self.error_collector.add_warning('ControllerAnalyzer',
                                                 f"Invalid OpenApiCallback on {controller}::{method}: {e}",
                                                 {'class': controller, 'method': method},
                                                 AnalyzerErrorType.ANALYSIS_ERROR)
        return result
