"""
OpenAPI document assembly.

Turns per-route analysis results into an OpenApiSpec: operations with their
parameters, request bodies, responses, security and callbacks, plus the
shared components (resource schemas and security schemes).
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .auth import AuthenticationResult
from .controllers import ControllerInfo, PaginationInfo
from .form_requests import FormRequestInfo
from .openapi import (OpenApiInfo, OpenApiOperation, OpenApiParameter, OpenApiRequestBody, OpenApiResponse,
                      OpenApiSchema, OpenApiServer, OpenApiSpec)
from .parameters import ParameterBuilder, ParameterDefinition
from .parser import short_name
from .request_params import merge_with_validation, validated_by_name
from .resources import COMPONENT_PREFIX, ResourceAnalyzer, ResourceInfo, studly
from .routes import RouteInfo, singular
from .rules import ConditionalRuleSet

logger = logging.getLogger(__name__)

QUERY_METHODS = ('GET', 'HEAD', 'DELETE')
IGNORED_SEGMENT = re.compile(r'^(api|v\d+)$', re.IGNORECASE)
PATH_PARAMETER = re.compile(r'^\{[^}]+\??\}$')
ACTION_SUMMARIES = {
    'index': 'List all {resource}',
    'show': 'Get {resource} by ID',
    'store': 'Create a new {resource}',
    'update': 'Update {resource}',
    'destroy': 'Delete {resource}',
}
VALIDATION_ERROR_SCHEMA = {
    'type': 'object',
    'properties': {
        'message': {'type': 'string', 'example': 'The given data was invalid.'},
        'errors': {'type': 'object', 'additionalProperties': {'type': 'array', 'items': {'type': 'string'}}},
    },
}
MESSAGE_SCHEMA = {'type': 'object', 'properties': {'message': {'type': 'string'}}}
URI_STRING = {'type': 'string', 'format': 'uri'}
NULLABLE_URI = {'type': 'string', 'format': 'uri', 'nullable': True}


@dataclass
class RouteAnalysis:
    """Everything known about one route"""
    route: RouteInfo
    controller: Optional[ControllerInfo] = None
    form_request: Optional[FormRequestInfo] = None
    resources: Dict[str, ResourceInfo] = field(default_factory=dict)

    def rule_set(self) -> Tuple[ConditionalRuleSet, Dict[str, str]]:
        """Validation rules with their attribute labels, FormRequest first"""
        if self.form_request is not None and self.form_request.has_rules():
            return self.form_request.rule_set, self.form_request.attributes
        if self.controller is not None and self.controller.inline_validation is not None:
            inline = self.controller.inline_validation
            return inline.rule_set, inline.attributes
        return ConditionalRuleSet.empty(), {}

    def has_validation(self) -> bool:
        return not self.rule_set()[0].is_empty()


def meaningful_segments(uri: str) -> List[str]:
    segments = []
    for segment in uri.strip('/').split('/'):
        if not segment or PATH_PARAMETER.match(segment):
            continue
        segment = re.sub(r'\{[^}]+\??\}', '', segment)
        if segment and not IGNORED_SEGMENT.match(segment):
            segments.append(segment)
    return segments


def resource_name(uri: str) -> str:
    segments = meaningful_segments(uri)
    return studly(singular(segments[-1])) if segments else 'Resource'


def camel(text: str) -> str:
    words = [w for w in re.split(r'[^0-9A-Za-z]+', text) if w]
    if not words:
        return ''
    first = words[0][:1].lower() + words[0][1:]
    return first + ''.join(w[:1].upper() + w[1:] for w in words[1:])


def query_name(field_name: str) -> str:
    """filter.status -> filter[status], ids.* -> ids[]"""
    head, *rest = field_name.split('.')
    return head + ''.join('[]' if part == '*' else f"[{part}]" for part in rest)


def pagination_schema(kind: str, item: Dict[str, Any], wrapped: bool = False) -> Dict[str, Any]:
    """Paginator JSON shape; wrapped is the resource collection form with links/meta"""
    data = {'type': 'array', 'items': item}
    if wrapped:
        meta = {'path': URI_STRING, 'per_page': {'type': 'integer'}}
        if kind == 'length_aware':
            meta = {'current_page': {'type': 'integer', 'example': 1}, 'from': {'type': 'integer', 'nullable': True},
                    'last_page': {'type': 'integer'}, 'path': URI_STRING, 'per_page': {'type': 'integer'},
                    'to': {'type': 'integer', 'nullable': True}, 'total': {'type': 'integer'}}
        elif kind == 'simple':
            meta = {'current_page': {'type': 'integer', 'example': 1}, 'from': {'type': 'integer', 'nullable': True},
                    'path': URI_STRING, 'per_page': {'type': 'integer'}, 'to': {'type': 'integer', 'nullable': True}}
        elif kind == 'cursor':
            meta.update({'next_cursor': {'type': 'string', 'nullable': True},
                         'prev_cursor': {'type': 'string', 'nullable': True}})
        links = {'first': NULLABLE_URI, 'last': NULLABLE_URI, 'prev': NULLABLE_URI, 'next': NULLABLE_URI}
        return {'type': 'object', 'properties': {
            'data': data,
            'links': {'type': 'object', 'properties': links},
            'meta': {'type': 'object', 'properties': meta},
        }}

    if kind == 'length_aware':
        properties = {
            'data': data,
            'current_page': {'type': 'integer', 'example': 1},
            'first_page_url': URI_STRING,
            'from': {'type': 'integer', 'nullable': True},
            'last_page': {'type': 'integer'},
            'last_page_url': URI_STRING,
            'links': {'type': 'array', 'items': {'type': 'object', 'properties': {
                'url': NULLABLE_URI, 'label': {'type': 'string'}, 'active': {'type': 'boolean'}}}},
            'next_page_url': NULLABLE_URI,
            'path': URI_STRING,
            'per_page': {'type': 'integer'},
            'prev_page_url': NULLABLE_URI,
            'to': {'type': 'integer', 'nullable': True},
            'total': {'type': 'integer'},
        }
    elif kind == 'simple':
        properties = {
            'data': data,
            'first_page_url': URI_STRING,
            'from': {'type': 'integer', 'nullable': True},
            'next_page_url': NULLABLE_URI,
            'path': URI_STRING,
            'per_page': {'type': 'integer'},
            'prev_page_url': NULLABLE_URI,
            'to': {'type': 'integer', 'nullable': True},
        }
    else:
        properties = {
            'data': data,
            'path': URI_STRING,
            'per_page': {'type': 'integer'},
            'next_cursor': {'type': 'string', 'nullable': True},
            'next_page_url': NULLABLE_URI,
            'prev_cursor': {'type': 'string', 'nullable': True},
            'prev_page_url': NULLABLE_URI,
        }
    return {'type': 'object', 'properties': properties}


def merge_leaf(target: Dict[str, Any], leaf: Dict[str, Any]) -> None:
    """Apply a field's own schema without losing structure built by its children"""
    structure = {key: target[key] for key in ('properties', 'required', 'items') if key in target}
    target.clear()
    target.update(leaf)
    if 'properties' in structure:
        target['type'] = 'object'
        target.pop('items', None)
    elif 'items' in structure and structure['items']:
        target['type'] = 'array'
    target.update(structure)


def fold_parameters(parameters: List[ParameterDefinition]) -> Dict[str, Any]:
    """Nest dotted and wildcard field names into an object schema"""
    root: Dict[str, Any] = {'type': 'object', 'properties': {}}
    for parameter in parameters:
        segments = parameter.name.split('.')
        node = root
        for index, segment in enumerate(segments):
            last = index == len(segments) - 1
            if segment == '*':
                node['type'] = 'array'
                node.pop('properties', None)
                node.pop('required', None)
                items = node.setdefault('items', {})
                if last:
                    merge_leaf(items, parameter.to_schema())
                node = items
                continue
            if node.get('type') != 'object':
                node['type'] = 'object'
                node.pop('items', None)
            target = node.setdefault('properties', {}).setdefault(segment, {})
            if last:
                merge_leaf(target, parameter.to_schema())
                if parameter.required and segment not in node.setdefault('required', []):
                    node['required'].append(segment)
            node = target
    if not root.get('required'):
        root.pop('required', None)
    return root


class SpecAssembler:
    """Assemble an OpenAPI document from route analyses"""

    def __init__(self, title: str = 'API Documentation', version: str = '1.0.0',
                 description: Optional[str] = None, servers: Optional[List[Dict[str, Any]]] = None,
                 parameter_builder: Optional[ParameterBuilder] = None):
        self.info = OpenApiInfo(title=title, version=version, description=description)
        self.servers = [OpenApiServer.from_dict(s) for s in servers or []]
        self.parameter_builder = parameter_builder or ParameterBuilder()

    def assemble(self, analyses: List[RouteAnalysis], auth: Optional[AuthenticationResult] = None) -> OpenApiSpec:
        auth = auth or AuthenticationResult()
        spec = OpenApiSpec(info=self.info, servers=list(self.servers))
        operation_ids = set()
        tags: List[str] = []

        for index, analysis in enumerate(analyses):
            route = analysis.route
            self._register_resources(spec, analysis.resources)
            authentication = auth.for_route(index)
            for http_method in route.http_methods:
                if http_method.upper() == 'HEAD':
                    continue
                operation = self.operation(analysis, http_method.upper(), authentication is not None)
                if authentication is not None:
                    operation.security = [{authentication.scheme.name: []}]
                if operation.operation_id in operation_ids:
                    operation.operation_id = camel(f"{operation.operation_id}_{http_method.lower()}")
                operation_ids.add(operation.operation_id)
                for tag in operation.tags:
                    if tag not in tags:
                        tags.append(tag)
                spec.paths.setdefault(route.path, {})[http_method.lower()] = operation

        spec.security_schemes = {name: scheme.to_security_scheme() for name, scheme in auth.schemes.items()}
        spec.tags = [{'name': tag} for tag in tags]
        logger.debug("Assembled %d paths", len(spec.paths))
        return spec

    # -- operations ---------------------------------------------------------

    def operation(self, analysis: RouteAnalysis, http_method: str, authenticated: bool = False) -> OpenApiOperation:
        route = analysis.route
        controller = analysis.controller
        operation = OpenApiOperation(
            operation_id=self.operation_id(route, http_method),
            summary=self.summary(route, http_method),
            tags=self.tags(route),
        )

        rule_set, attributes = analysis.rule_set()
        in_query = http_method in QUERY_METHODS
        validated = []
        if not rule_set.is_empty():
            validated = self.parameter_builder.build_conditional(rule_set, http_method,
                                                                 'query' if in_query else 'body', attributes)

        operation.parameters = self.parameters(analysis, validated if in_query else [], validated, authenticated)
        if not in_query and validated:
            operation.request_body = self.request_body(validated)
        operation.responses = self.responses(analysis, http_method, authenticated)
        if controller is not None and controller.callbacks:
            operation.callbacks = self.callbacks(controller)
        return operation

    def operation_id(self, route: RouteInfo, http_method: str) -> str:
        if route.name:
            return camel(route.name.replace('.', '_'))
        uri = re.sub(r'[/{}?]', lambda m: '_' if m.group(0) == '/' else '', route.uri)
        return camel(f"{http_method.lower()}_{uri}")

    def summary(self, route: RouteInfo, http_method: str) -> str:
        resource = resource_name(route.uri)
        action = (route.method or '').strip()
        template = ACTION_SUMMARIES.get(action)
        if template is None and action and action != '__invoke' and not action.startswith('_'):
            words = re.sub(r'(?<!^)(?=[A-Z])', ' ', action).replace('_', ' ').lower()
            return f"{words[:1].upper()}{words[1:]} {resource}"
        if template is None:
            template = {
                'GET': 'List all {resource}',
                'POST': 'Create a new {resource}',
                'PUT': 'Update {resource}',
                'PATCH': 'Update {resource}',
                'DELETE': 'Delete {resource}',
            }.get(http_method, http_method.capitalize() + ' {resource}')
            last = route.uri.strip('/').split('/')[-1]
            if http_method == 'GET' and PATH_PARAMETER.match(last):
                template = 'Get {resource} by ID'
        return template.format(resource=resource)

    def tags(self, route: RouteInfo) -> List[str]:
        segments = meaningful_segments(route.uri)
        return [studly(segments[0])] if segments else []

    # -- parameters -----------------------------------------------------------

    def parameters(self, analysis: RouteAnalysis, query_validated: List[ParameterDefinition],
                   validated: List[ParameterDefinition], authenticated: bool) -> List[OpenApiParameter]:
        route = analysis.route
        controller = analysis.controller
        result: List[OpenApiParameter] = []
        seen = set()

        def add(parameter: OpenApiParameter) -> None:
            key = (parameter.name, parameter.location)
            if key not in seen:
                seen.add(key)
                result.append(parameter)

        enums = {p.name: p for p in controller.enum_parameters} if controller is not None else {}
        for path_parameter in route.parameters:
            schema = dict(path_parameter.schema)
            description = None
            enum_parameter = enums.get(path_parameter.name)
            if enum_parameter is not None:
                schema = {'type': enum_parameter.type, 'enum': list(enum_parameter.values)}
                description = f"Enum parameter of type {short_name(enum_parameter.enum_class)}"
            add(OpenApiParameter(name=path_parameter.name, location='path', required=True,
                                 schema=OpenApiSchema.from_dict(schema), description=description))

        by_name = validated_by_name(validated)
        detected = merge_with_validation(controller.query_parameters, by_name) if controller is not None else []
        defaults = {p.name: p.default for p in detected if p.default is not None}
        for definition in query_validated:
            add(self._query_parameter(definition, query_name(definition.name), defaults.get(definition.name)))

        if controller is not None:
            # fields validated as body input are not query parameters
            for parameter in detected:
                if parameter.name not in by_name:
                    add(self._query_parameter(parameter.to_parameter(), parameter.name))
            if controller.fractal is not None:
                includes = self._fractal_includes(analysis)
                if includes:
                    add(OpenApiParameter(
                        name='include', location='query', required=False,
                        schema=OpenApiSchema.of('string'),
                        description='Comma separated relations to include: ' + ', '.join(includes)))
            for header in controller.header_parameters:
                if header.is_bearer_token and authenticated:
                    continue
                definition = header.to_parameter()
                schema = self._schema(definition)
                schema.pop('description', None)
                add(OpenApiParameter(name=definition.name, location='header', required=definition.required,
                                     schema=OpenApiSchema.from_dict(schema),
                                     description=definition.description or None))
        return result

    def _query_parameter(self, definition: ParameterDefinition, name: str, default: Any = None) -> OpenApiParameter:
        schema = self._schema(definition)
        if default is not None:
            schema['default'] = default
        description = schema.pop('description', None)
        return OpenApiParameter(name=name, location='query', required=definition.required,
                                schema=OpenApiSchema.from_dict(schema), description=description)

    def _schema(self, definition: ParameterDefinition) -> Dict[str, Any]:
        schema = definition.to_schema()
        if 'default' in definition.constraints:
            schema['default'] = definition.constraints['default']
        return schema

    def _fractal_includes(self, analysis: RouteAnalysis) -> List[str]:
        transformer = analysis.resources.get(analysis.controller.fractal.transformer)
        return list(transformer.available_includes) if transformer is not None else []

    def request_body(self, parameters: List[ParameterDefinition]) -> OpenApiRequestBody:
        schema = fold_parameters(parameters)
        media_type = 'multipart/form-data' if any(p.is_file_upload() for p in parameters) else 'application/json'
        return OpenApiRequestBody(content={media_type: OpenApiSchema.from_dict(schema)},
                                  required=any(p.required for p in parameters))

    # -- responses ------------------------------------------------------------

    def responses(self, analysis: RouteAnalysis, http_method: str, authenticated: bool) -> Dict[str, OpenApiResponse]:
        route = analysis.route
        schema, media_type = self.success_schema(analysis)
        status = self.success_status(analysis, http_method, schema is not None)
        description = {201: 'Created', 204: 'No content'}.get(status, 'Successful response')
        responses: Dict[str, OpenApiResponse] = {}
        if status == 204 or schema is None:
            responses[str(status)] = OpenApiResponse(description=description)
        else:
            responses[str(status)] = OpenApiResponse(description=description,
                                                     content={media_type: OpenApiSchema.from_dict(schema)})
        if analysis.has_validation():
            responses['422'] = OpenApiResponse(description='Validation error', content={
                'application/json': OpenApiSchema.from_dict(VALIDATION_ERROR_SCHEMA)})
        if authenticated:
            responses['401'] = OpenApiResponse(description='Unauthenticated', content={
                'application/json': OpenApiSchema.from_dict(MESSAGE_SCHEMA)})
        if route.parameters:
            responses['404'] = OpenApiResponse(description='Not found', content={
                'application/json': OpenApiSchema.from_dict(MESSAGE_SCHEMA)})
        return responses

    def success_status(self, analysis: RouteAnalysis, http_method: str, has_body: bool) -> int:
        controller = analysis.controller
        if controller is not None and controller.response is not None and controller.response.status is not None:
            return controller.response.status
        if controller is not None and controller.response is not None and controller.response.type == 'void':
            return 204
        if http_method == 'POST' and analysis.route.method == 'store':
            return 201
        if http_method == 'DELETE' and not has_body:
            return 204
        return 200

    def success_schema(self, analysis: RouteAnalysis) -> Tuple[Optional[Dict[str, Any]], str]:
        controller = analysis.controller
        if controller is None:
            return None, 'application/json'

        if controller.pagination is not None:
            return self._pagination(controller.pagination, analysis), 'application/json'

        if controller.fractal is not None:
            item = self._reference(controller.fractal.transformer, analysis)
            data = {'type': 'array', 'items': item} if controller.fractal.collection else item
            return {'type': 'object', 'properties': {'data': data}}, 'application/json'

        if controller.resource:
            return self._resource_response(controller, analysis), 'application/json'

        response = controller.response
        if response is not None:
            if response.type == 'binary':
                return {'type': 'string', 'format': 'binary'}, response.content_type
            if response.schema is not None:
                return dict(response.schema), response.content_type
        return None, 'application/json'

    def _resource_response(self, controller: ControllerInfo, analysis: RouteAnalysis) -> Dict[str, Any]:
        info = analysis.resources.get(controller.resource)
        reference = self._reference(controller.resource, analysis)
        data = {'type': 'array', 'items': reference} if controller.returns_collection else reference
        if info is None or not info.with_data:
            return data
        properties = {'data': data}
        properties.update({name: f.to_schema() for name, f in info.with_data.items()})
        return {'type': 'object', 'properties': properties}

    def _pagination(self, pagination: PaginationInfo, analysis: RouteAnalysis) -> Dict[str, Any]:
        if pagination.resource:
            info = analysis.resources.get(pagination.resource)
            item_class = info.collects if info is not None and info.kind == 'collection' and info.collects \
                else pagination.resource
            return pagination_schema(pagination.kind, self._reference(item_class, analysis), wrapped=True)
        item: Dict[str, Any] = {'type': 'object'}
        if pagination.model:
            item['description'] = f"{short_name(pagination.model)} record"
        return pagination_schema(pagination.kind, item)

    def _reference(self, fqcn: str, analysis: RouteAnalysis) -> Dict[str, Any]:
        info = analysis.resources.get(fqcn)
        if info is not None and info.kind == 'collection' and not info.properties and info.collects:
            return {'type': 'array', 'items': {'$ref': COMPONENT_PREFIX + short_name(info.collects)}}
        return {'$ref': COMPONENT_PREFIX + short_name(fqcn)}

    # -- components -----------------------------------------------------------

    def _register_resources(self, spec: OpenApiSpec, resources: Dict[str, ResourceInfo]) -> None:
        for fqcn, info in resources.items():
            name = short_name(fqcn)
            if name in spec.schemas:
                continue
            if info.is_valid:
                schema = ResourceAnalyzer.generate_schema(info)
            else:
                schema = {'type': 'object', 'description': f"{name} (structure could not be analyzed)"}
            spec.schemas[name] = OpenApiSchema.from_dict(schema)

    def callbacks(self, controller: ControllerInfo) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for callback in controller.callbacks:
            if callback.ref:
                result[callback.name] = {'$ref': '#/components/callbacks/' + callback.ref}
                continue
            operation: Dict[str, Any] = {}
            if callback.summary is not None:
                operation['summary'] = callback.summary
            if callback.description is not None:
                operation['description'] = callback.description
            if callback.request_body:
                operation['requestBody'] = {'content': {'application/json': {'schema': callback.request_body}}}
            operation['responses'] = callback.responses or {'200': {'description': 'Callback received successfully'}}
            result[callback.name] = {callback.expression: {callback.method: operation}}
        return result
