"""
Route table loading.

Routes come either from a JSON route table (canonical records or the output of
`php artisan route:list --json`) or from reading Laravel route files with
tree-sitter. Both paths end up as canonical records that RouteLoader filters
and turns into RouteInfo objects.
"""

import fnmatch
import json
import logging
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from tree_sitter import Node

from .diagnostics import AnalyzerErrorType, ErrorCollector
from .exceptions import RouteTableError
from .parser import (CLOSURE_TYPES, MEMBER_CALL_TYPES, ParseFailure, SourceFile, SourceParser,
                     argument_nodes, array_elements, call_name, call_object, call_scope, literal_value,
                     named, node_text, string_value, unwrap)

logger = logging.getLogger(__name__)

HTTP_VERBS = ('get', 'post', 'put', 'patch', 'delete', 'options')
ANY_METHODS = ['GET', 'HEAD', 'POST', 'PUT', 'PATCH', 'DELETE', 'OPTIONS']
EXCLUDED_MIDDLEWARE = ('web', 'api')
DEFAULT_CONTROLLER_NAMESPACE = 'App\\Http\\Controllers'

# action, methods, uri suffix (with {param} placeholder)
RESOURCE_ACTIONS = [
    ('index', ['GET', 'HEAD'], ''),
    ('create', ['GET', 'HEAD'], '/create'),
    ('store', ['POST'], ''),
    ('show', ['GET', 'HEAD'], '/{param}'),
    ('edit', ['GET', 'HEAD'], '/{param}/edit'),
    ('update', ['PUT', 'PATCH'], '/{param}'),
    ('destroy', ['DELETE'], '/{param}'),
]
API_RESOURCE_ACTIONS = ('index', 'store', 'show', 'update', 'destroy')

WHERE_SHORTCUTS = {
    'whereNumber': '[0-9]+',
    'whereAlpha': '[a-zA-Z]+',
    'whereAlphaNumeric': '[a-zA-Z0-9]+',
    'whereUuid': '[\\da-fA-F]{8}-[\\da-fA-F]{4}-[\\da-fA-F]{4}-[\\da-fA-F]{4}-[\\da-fA-F]{12}',
    'whereUlid': '[0-7][0-9a-hjkmnp-tv-zA-HJKMNP-TV-Z]{25}',
}

INTEGER_PATTERNS = [
    r'^\[0-9\]\+$',
    r'^\\d\+$',
    r'^\[0-9\]\*$',
    r'^\[0-9\]\{1,\d*\}$',
]
UUID_PATTERNS = [
    '[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}',
    '[\\da-fA-F]{8}-[\\da-fA-F]{4}-[\\da-fA-F]{4}-[\\da-fA-F]{4}-[\\da-fA-F]{12}',
    '[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12}',
    '[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}',
]


@dataclass
class RouteParameter:
    """Path parameter of a route"""
    name: str
    required: bool = True
    location: str = 'path'
    schema: Dict[str, Any] = field(default_factory=lambda: {'type': 'string'})

    def to_dict(self) -> Dict[str, Any]:
        return {'name': self.name, 'required': self.required, 'in': self.location, 'schema': dict(self.schema)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RouteParameter':
        return cls(name=data['name'], required=data.get('required', True), location=data.get('in', 'path'),
                   schema=dict(data.get('schema') or {'type': 'string'}))


@dataclass
class RouteInfo:
    """One route with a controller handler"""
    uri: str
    http_methods: List[str]
    controller: Optional[str] = None
    method: Optional[str] = None
    name: Optional[str] = None
    middleware: List[str] = field(default_factory=list)
    parameters: List[RouteParameter] = field(default_factory=list)

    @property
    def path(self) -> str:
        """OpenAPI path template: leading slash, optional markers removed"""
        return '/' + re.sub(r'\{(\w+)\?\}', r'{\1}', self.uri.strip('/'))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'uri': self.uri,
            'httpMethods': list(self.http_methods),
            'controller': self.controller,
            'method': self.method,
            'name': self.name,
            'middleware': list(self.middleware),
            'parameters': [p.to_dict() for p in self.parameters],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RouteInfo':
        return cls(
            uri=data['uri'],
            http_methods=list(data.get('httpMethods') or []),
            controller=data.get('controller'),
            method=data.get('method'),
            name=data.get('name'),
            middleware=list(data.get('middleware') or []),
            parameters=[RouteParameter.from_dict(p) for p in data.get('parameters') or []],
        )


def pattern_schema(pattern: str) -> Dict[str, Any]:
    """Schema for a route `where` constraint"""
    for integer_pattern in INTEGER_PATTERNS:
        if re.match(integer_pattern, pattern):
            return {'type': 'integer'}
    if any(pattern.lower() == uuid.lower() for uuid in UUID_PATTERNS):
        return {'type': 'string', 'format': 'uuid'}
    return {'type': 'string', 'pattern': f"^{pattern}$"}


def parse_path_parameters(uri: str, wheres: Optional[Dict[str, str]] = None) -> List[RouteParameter]:
    wheres = wheres or {}
    parameters = []
    for match in re.finditer(r'\{([^}]+)\}', uri):
        raw = match.group(1)
        name = raw.rstrip('?')
        # scoped bindings: {post:slug}
        name = name.split(':')[0]
        schema = pattern_schema(wheres[name]) if name in wheres else {'type': 'string'}
        parameters.append(RouteParameter(name=name, required=not raw.endswith('?'), schema=schema))
    return parameters


def join_uri(*parts: str) -> str:
    return '/'.join(p.strip('/') for p in parts if p and p.strip('/'))


def singular(word: str) -> str:
    if word.endswith('ies') and len(word) > 3:
        return word[:-3] + 'y'
    if word.endswith(('ses', 'xes', 'zes', 'ches', 'shes')):
        return word[:-2]
    if word.endswith('s') and not word.endswith(('ss', 'us', 'is')):
        return word[:-1]
    return word


class RouteLoader:
    """Filter route records into RouteInfo objects"""

    def __init__(self, route_patterns: Iterable[str] = ('api/*',), excluded_methods: Iterable[str] = (),
                 error_collector: Optional[ErrorCollector] = None):
        self.route_patterns = list(route_patterns)
        self.excluded_methods = [m.upper() for m in excluded_methods]
        self.error_collector = error_collector or ErrorCollector()

    def load_table_file(self, path: Union[str, Path]) -> List[RouteInfo]:
        """Load a JSON route table; an unusable table is fatal"""
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise RouteTableError(f"Cannot read route table {path}: {e}") from e
        if isinstance(data, dict) and isinstance(data.get('routes'), list):
            data = data['routes']
        if not isinstance(data, list):
            raise RouteTableError(f"Route table {path} must be a list of route records")
        return self.load_records(data)

    def load_records(self, records: Iterable[Dict[str, Any]]) -> List[RouteInfo]:
        routes = []
        for index, record in enumerate(records):
            try:
                route = self._from_record(record)
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                self.error_collector.add_error('RouteLoader', f"Invalid route record #{index}: {e}",
                                               {'record': record if isinstance(record, dict) else repr(record)},
                                               AnalyzerErrorType.ANALYSIS_ERROR)
                continue
            if route is not None:
                routes.append(route)
        logger.debug("Loaded %d routes", len(routes))
        return routes

    def is_api_route(self, uri: str) -> bool:
        return any(fnmatch.fnmatchcase(uri, pattern) for pattern in self.route_patterns)

    def filter_http_methods(self, methods: List[str]) -> List[str]:
        methods = [m.upper() for m in methods]
        if 'GET' in methods:
            methods = [m for m in methods if m != 'HEAD']
        return [m for m in methods if m not in self.excluded_methods]

    def _from_record(self, record: Dict[str, Any]) -> Optional[RouteInfo]:
        if 'action' in record and 'controllerClass' not in record:
            record = self._from_artisan(record)
            if record is None:
                return None

        uri = str(record['uri']).strip('/')
        if not self.is_api_route(uri):
            return None

        controller = record.get('controllerClass')
        method = record.get('methodName')
        if not controller or controller == 'Closure' or method == 'Closure':
            return None
        controller = str(controller).lstrip('\\')
        if not method or method == controller:
            method = '__invoke'

        methods = record.get('httpMethods') or []
        if isinstance(methods, str):
            methods = methods.split('|')
        methods = self.filter_http_methods(list(methods))
        if not methods:
            return None

        middleware = [m for m in record.get('middleware') or [] if m not in EXCLUDED_MIDDLEWARE]
        return RouteInfo(
            uri=uri,
            http_methods=methods,
            controller=controller,
            method=method,
            name=record.get('routeName') or None,
            middleware=middleware,
            parameters=parse_path_parameters(uri, record.get('wheres') or {}),
        )

    def _from_artisan(self, row: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Convert a `route:list --json` row to a canonical record"""
        action = row.get('action') or ''
        if action == 'Closure' or not action:
            return None
        controller, _, method = action.partition('@')
        methods = row.get('method') or ''
        return {
            'uri': row['uri'],
            'httpMethods': methods.split('|') if isinstance(methods, str) else list(methods),
            'controllerClass': controller,
            'methodName': method or '__invoke',
            'routeName': row.get('name'),
            'middleware': row.get('middleware') or [],
        }


@dataclass
class GroupContext:
    """Attributes inherited from enclosing Route groups"""
    prefix: str = ''
    middleware: List[str] = field(default_factory=list)
    name: str = ''
    controller: Optional[str] = None


def route_chain(node: Optional[Node]) -> Optional[List[Tuple[str, List[Node]]]]:
    """Calls of a fluent Route:: chain, innermost first"""
    calls = []
    current = unwrap(node)
    while current is not None and current.type in MEMBER_CALL_TYPES:
        calls.append((call_name(current) or '', argument_nodes(current)))
        current = unwrap(call_object(current))
    if current is None or current.type != 'scoped_call_expression' or call_scope(current) != 'Route':
        return None
    calls.append((call_name(current) or '', argument_nodes(current)))
    calls.reverse()
    return calls


def string_list(node: Optional[Node]) -> List[str]:
    value = literal_value(node)
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [v for v in value if isinstance(v, str)]
    return []


def strings_of(args: List[Node]) -> List[str]:
    result = []
    for arg in args:
        result.extend(string_list(arg))
    return result


class RouteFileReader:
    """Statically read Laravel route files into canonical route records"""

    def __init__(self, parser: Optional[SourceParser] = None, error_collector: Optional[ErrorCollector] = None):
        self.parser = parser or SourceParser()
        self.error_collector = error_collector or ErrorCollector()

    def read_files(self, files: Iterable[Union[str, Path]]) -> List[Dict[str, Any]]:
        records: List[Dict[str, Any]] = []
        for path in files:
            path = Path(path)
            if not path.exists():
                self.error_collector.add_warning('RouteFileReader', f"Route file not found: {path}",
                                                 {'file': str(path)}, AnalyzerErrorType.ROUTE_LOADING_ERROR)
                continue
            prefix = 'api' if path.name == 'api.php' else ''
            try:
                records.extend(self.read(path, prefix))
            except RouteTableError as e:
                self.error_collector.add_error('RouteFileReader', f"Failed to load route file {path}: {e}",
                                               {'file': str(path)}, AnalyzerErrorType.ROUTE_LOADING_ERROR)
        return records

    def read(self, path: Union[str, Path], prefix: str = '') -> List[Dict[str, Any]]:
        parsed = self.parser.parse(path)
        if isinstance(parsed, ParseFailure):
            raise RouteTableError(parsed.message or parsed.reason)
        return self.read_source(parsed, prefix)

    def read_source(self, source_file: SourceFile, prefix: str = '') -> List[Dict[str, Any]]:
        records: List[Dict[str, Any]] = []
        self._statements(named(source_file.root), GroupContext(prefix=prefix), source_file, records)
        logger.debug("Read %d routes from %s", len(records), source_file.path)
        return records

    def _statements(self, statements: List[Node], context: GroupContext, source_file: SourceFile,
                    records: List[Dict[str, Any]]) -> None:
        for statement in statements:
            if statement.type != 'expression_statement':
                continue
            expressions = named(statement)
            if not expressions:
                continue
            calls = route_chain(expressions[0])
            if calls:
                self._route_call(calls, context, source_file, records)

    def _route_call(self, calls: List[Tuple[str, List[Node]]], context: GroupContext, source_file: SourceFile,
                    records: List[Dict[str, Any]]) -> None:
        context = replace(context, middleware=list(context.middleware))
        for index, (name, args) in enumerate(calls):
            if name in HTTP_VERBS or name in ('any', 'match'):
                records.append(self._verb_route(name, args, calls[index + 1:], context, source_file))
                return
            if name in ('resource', 'apiResource'):
                records.extend(self._resource(name, args, calls[index + 1:], context, source_file))
                return
            if name in ('resources', 'apiResources'):
                mapping = unwrap(args[0]) if args else None
                if mapping is not None and mapping.type == 'array_creation_expression':
                    single = name[:-1]
                    for key_node, value_node, _ in array_elements(mapping):
                        if key_node is not None:
                            records.extend(self._resource(single, [key_node, value_node], calls[index + 1:],
                                                          context, source_file))
                return
            if name == 'group':
                self._group(args, context, source_file, records)
                return
            self._apply_attribute(name, args, context, source_file)

    def _apply_attribute(self, name: str, args: List[Node], context: GroupContext, source_file: SourceFile) -> None:
        if name == 'prefix' and args:
            context.prefix = join_uri(context.prefix, string_value(args[0]) or '')
        elif name == 'middleware':
            context.middleware.extend(m for m in strings_of(args) if m not in context.middleware)
        elif name in ('name', 'as') and args:
            context.name += string_value(args[0]) or ''
        elif name == 'controller' and args:
            controller = self._class_reference(args[0], source_file)
            if controller:
                context.controller = controller

    def _group(self, args: List[Node], context: GroupContext, source_file: SourceFile,
               records: List[Dict[str, Any]]) -> None:
        closure = None
        for arg in args:
            arg = unwrap(arg)
            if arg is None:
                continue
            if arg.type in CLOSURE_TYPES:
                closure = arg
            elif arg.type == 'array_creation_expression':
                for key_node, value_node, _ in array_elements(arg):
                    key = string_value(key_node) if key_node is not None else None
                    if key:
                        self._apply_attribute(key, [value_node], context, source_file)
        if closure is None:
            return
        body = closure.child_by_field_name('body')
        if body is not None:
            self._statements(named(body), context, source_file, records)

    def _class_reference(self, node: Optional[Node], source_file: SourceFile) -> Optional[str]:
        node = unwrap(node)
        if node is None:
            return None
        if node.type == 'class_constant_access_expression':
            parts = named(node)
            if len(parts) == 2 and node_text(parts[1]) == 'class':
                return source_file.resolve_name(node_text(parts[0]))
        value = string_value(node)
        if value:
            if '\\' in value:
                return value.lstrip('\\')
            return f"{DEFAULT_CONTROLLER_NAMESPACE}\\{value}"
        return None

    def _handler(self, node: Optional[Node], context: GroupContext,
                 source_file: SourceFile) -> Tuple[Optional[str], Optional[str]]:
        node = unwrap(node)
        if node is None or node.type in CLOSURE_TYPES:
            return 'Closure', 'Closure'
        if node.type == 'array_creation_expression':
            elements = array_elements(node)
            if len(elements) >= 2:
                controller = self._class_reference(elements[0][1], source_file)
                return controller, string_value(elements[1][1])
            if len(elements) == 1:
                return self._class_reference(elements[0][1], source_file), '__invoke'
            return None, None
        value = string_value(node)
        if value is not None:
            if '@' in value:
                controller, _, method = value.partition('@')
                return self._class_reference_text(controller), method
            if context.controller:
                return context.controller, value
            return self._class_reference_text(value), '__invoke'
        return self._class_reference(node, source_file), '__invoke'

    def _class_reference_text(self, value: str) -> str:
        return value.lstrip('\\') if '\\' in value else f"{DEFAULT_CONTROLLER_NAMESPACE}\\{value}"

    def _verb_route(self, verb: str, args: List[Node], chain: List[Tuple[str, List[Node]]],
                    context: GroupContext, source_file: SourceFile) -> Dict[str, Any]:
        if verb == 'match':
            methods = [m.upper() for m in string_list(args[0])] if args else []
            args = args[1:]
        elif verb == 'any':
            methods = list(ANY_METHODS)
        elif verb == 'get':
            methods = ['GET', 'HEAD']
        else:
            methods = [verb.upper()]

        uri = join_uri(context.prefix, (string_value(args[0]) if args else None) or '')
        controller, method = self._handler(args[1] if len(args) > 1 else None, context, source_file)
        record = {
            'uri': uri,
            'httpMethods': methods,
            'controllerClass': controller,
            'methodName': method,
            'routeName': None,
            'middleware': list(context.middleware),
            'wheres': {},
        }
        route_name = None
        for name, chain_args in chain:
            if name == 'name' and chain_args:
                route_name = string_value(chain_args[0])
            elif name == 'middleware':
                record['middleware'].extend(m for m in strings_of(chain_args) if m not in record['middleware'])
            elif name == 'withoutMiddleware':
                removed = strings_of(chain_args)
                record['middleware'] = [m for m in record['middleware'] if m not in removed]
            else:
                record['wheres'].update(self._where(name, chain_args))
        if route_name is not None:
            record['routeName'] = context.name + route_name
        return record

    def _where(self, name: str, args: List[Node]) -> Dict[str, str]:
        if name == 'where' and args:
            value = literal_value(args[0])
            if isinstance(value, dict):
                return {k: v for k, v in value.items() if isinstance(v, str)}
            pattern = string_value(args[1]) if len(args) > 1 else None
            if isinstance(value, str) and pattern is not None:
                return {value: pattern}
        if name in WHERE_SHORTCUTS:
            return {p: WHERE_SHORTCUTS[name] for p in strings_of(args)}
        if name == 'whereIn' and len(args) > 1:
            values = literal_value(args[1])
            if isinstance(values, list):
                return {p: '|'.join(str(v) for v in values) for p in string_list(args[0])}
        return {}

    def _resource(self, kind: str, args: List[Node], chain: List[Tuple[str, List[Node]]],
                  context: GroupContext, source_file: SourceFile) -> List[Dict[str, Any]]:
        resource_name = string_value(args[0]) if args else None
        controller = self._class_reference(args[1], source_file) if len(args) > 1 else None
        if not resource_name or not controller:
            return []

        actions = list(API_RESOURCE_ACTIONS) if kind == 'apiResource' else [a for a, _, _ in RESOURCE_ACTIONS]
        middleware = list(context.middleware)
        parameter_names: Dict[str, str] = {}
        for name, chain_args in chain:
            if name == 'only':
                only = strings_of(chain_args)
                actions = [a for a in actions if a in only]
            elif name == 'except':
                excluded = strings_of(chain_args)
                actions = [a for a in actions if a not in excluded]
            elif name == 'middleware':
                middleware.extend(m for m in strings_of(chain_args) if m not in middleware)
            elif name == 'parameters' and chain_args:
                value = literal_value(chain_args[0])
                if isinstance(value, dict):
                    parameter_names.update({k: v for k, v in value.items() if isinstance(v, str)})

        # photos.comments -> photos/{photo}/comments/{comment}
        segments = resource_name.split('.')
        base_parts = []
        for segment in segments[:-1]:
            param = parameter_names.get(segment, singular(segment).replace('-', '_'))
            base_parts.append(f"{segment}/{{{param}}}")
        last = segments[-1]
        base = join_uri(context.prefix, *base_parts, last)
        param = parameter_names.get(last, singular(last).replace('-', '_'))

        records = []
        for action, methods, suffix in RESOURCE_ACTIONS:
            if action not in actions:
                continue
            records.append({
                'uri': base + suffix.replace('{param}', f"{{{param}}}"),
                'httpMethods': list(methods),
                'controllerClass': controller,
                'methodName': action,
                'routeName': f"{context.name}{resource_name}.{action}",
                'middleware': list(middleware),
                'wheres': {},
            })
        return records
