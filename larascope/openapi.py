"""
OpenAPI object model.

Each object has a to_dict()/from_dict() pair; to_dict() emits keys in a fixed
order and from_dict(to_dict(x)) == x.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

OPENAPI_VERSION = '3.0.3'
HTTP_METHODS = ('get', 'put', 'post', 'delete', 'options', 'head', 'patch', 'trace')
SCHEMA_SCALARS = ('type', 'format', 'description', 'nullable', 'default', 'example', 'enum', 'pattern',
                  'minimum', 'maximum', 'exclusiveMinimum', 'exclusiveMaximum', 'minLength', 'maxLength',
                  'minItems', 'maxItems', 'uniqueItems', 'readOnly', 'writeOnly', 'deprecated')


@dataclass
class OpenApiSchema:
    """A (possibly nested) schema object; unknown keywords are kept in extensions"""
    ref: Optional[str] = None
    values: Dict[str, Any] = field(default_factory=dict)
    items: Optional['OpenApiSchema'] = None
    properties: Optional[Dict[str, 'OpenApiSchema']] = None
    required: Optional[List[str]] = None
    all_of: Optional[List['OpenApiSchema']] = None
    one_of: Optional[List['OpenApiSchema']] = None
    additional_properties: Any = None
    extensions: Dict[str, Any] = field(default_factory=dict)

    @property
    def type(self) -> Optional[str]:
        return self.values.get('type')

    @classmethod
    def of(cls, type_name: str, **values: Any) -> 'OpenApiSchema':
        return cls(values={'type': type_name, **values})

    @classmethod
    def reference(cls, name: str) -> 'OpenApiSchema':
        return cls(ref=f"#/components/schemas/{name}")

    def to_dict(self) -> Dict[str, Any]:
        if self.ref is not None:
            return {'$ref': self.ref, **self.extensions}
        result: Dict[str, Any] = {}
        for key in SCHEMA_SCALARS:
            if key in self.values:
                result[key] = self.values[key]
        if self.all_of is not None:
            result['allOf'] = [s.to_dict() for s in self.all_of]
        if self.one_of is not None:
            result['oneOf'] = [s.to_dict() for s in self.one_of]
        if self.items is not None:
            result['items'] = self.items.to_dict()
        if self.properties is not None:
            result['properties'] = {name: s.to_dict() for name, s in self.properties.items()}
        if self.required is not None:
            result['required'] = list(self.required)
        if self.additional_properties is not None:
            extra = self.additional_properties
            result['additionalProperties'] = extra.to_dict() if isinstance(extra, OpenApiSchema) else extra
        result.update(self.extensions)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OpenApiSchema':
        data = dict(data)
        if '$ref' in data:
            ref = data.pop('$ref')
            return cls(ref=ref, extensions=data)
        schema = cls()
        for key in SCHEMA_SCALARS:
            if key in data:
                schema.values[key] = data.pop(key)
        if 'allOf' in data:
            schema.all_of = [cls.from_dict(s) for s in data.pop('allOf')]
        if 'oneOf' in data:
            schema.one_of = [cls.from_dict(s) for s in data.pop('oneOf')]
        if 'items' in data:
            schema.items = cls.from_dict(data.pop('items'))
        if 'properties' in data:
            schema.properties = {name: cls.from_dict(s) for name, s in data.pop('properties').items()}
        if 'required' in data:
            schema.required = list(data.pop('required'))
        if 'additionalProperties' in data:
            extra = data.pop('additionalProperties')
            schema.additional_properties = cls.from_dict(extra) if isinstance(extra, dict) else extra
        schema.extensions = data
        return schema


@dataclass
class OpenApiInfo:
    title: str
    version: str
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {'title': self.title, 'version': self.version}
        if self.description is not None:
            result['description'] = self.description
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OpenApiInfo':
        return cls(title=data.get('title', ''), version=data.get('version', ''), description=data.get('description'))


@dataclass
class OpenApiServer:
    url: str
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {'url': self.url}
        if self.description is not None:
            result['description'] = self.description
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OpenApiServer':
        return cls(url=data['url'], description=data.get('description'))


@dataclass
class OpenApiParameter:
    name: str
    location: str
    required: bool
    schema: OpenApiSchema
    description: Optional[str] = None
    style: Optional[str] = None
    explode: Optional[bool] = None
    deprecated: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {'name': self.name, 'in': self.location, 'required': self.required,
                                  'schema': self.schema.to_dict()}
        for key, value in (('description', self.description), ('style', self.style), ('explode', self.explode),
                           ('deprecated', self.deprecated)):
            if value is not None:
                result[key] = value
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OpenApiParameter':
        return cls(name=data['name'], location=data.get('in', 'query'), required=data.get('required', False),
                   schema=OpenApiSchema.from_dict(data.get('schema') or {'type': 'string'}),
                   description=data.get('description'), style=data.get('style'), explode=data.get('explode'),
                   deprecated=data.get('deprecated'))


def _content_to_dict(content: Dict[str, OpenApiSchema]) -> Dict[str, Any]:
    return {media: {'schema': schema.to_dict()} for media, schema in content.items()}


def _content_from_dict(data: Optional[Dict[str, Any]]) -> Dict[str, OpenApiSchema]:
    return {media: OpenApiSchema.from_dict((body or {}).get('schema') or {}) for media, body in (data or {}).items()}


@dataclass
class OpenApiRequestBody:
    content: Dict[str, OpenApiSchema] = field(default_factory=dict)
    required: bool = True
    description: Optional[str] = None

    @property
    def media_type(self) -> Optional[str]:
        return next(iter(self.content), None)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {'required': self.required, 'content': _content_to_dict(self.content)}
        if self.description is not None:
            result['description'] = self.description
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OpenApiRequestBody':
        return cls(content=_content_from_dict(data.get('content')), required=data.get('required', True),
                   description=data.get('description'))


@dataclass
class OpenApiResponse:
    description: str
    content: Optional[Dict[str, OpenApiSchema]] = None
    headers: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {'description': self.description}
        if self.headers is not None:
            result['headers'] = self.headers
        if self.content is not None:
            result['content'] = _content_to_dict(self.content)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OpenApiResponse':
        return cls(description=data.get('description', ''),
                   content=_content_from_dict(data['content']) if 'content' in data else None,
                   headers=data.get('headers'))


@dataclass
class OpenApiOperation:
    operation_id: str
    summary: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    parameters: List[OpenApiParameter] = field(default_factory=list)
    responses: Dict[str, OpenApiResponse] = field(default_factory=dict)
    description: Optional[str] = None
    request_body: Optional[OpenApiRequestBody] = None
    security: Optional[List[Dict[str, List[str]]]] = None
    callbacks: Optional[Dict[str, Any]] = None
    deprecated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {'operationId': self.operation_id}
        if self.summary is not None:
            result['summary'] = self.summary
        if self.description is not None:
            result['description'] = self.description
        result['tags'] = list(self.tags)
        result['parameters'] = [p.to_dict() for p in self.parameters]
        if self.request_body is not None:
            result['requestBody'] = self.request_body.to_dict()
        result['responses'] = {code: r.to_dict() for code, r in self.responses.items()}
        if self.security is not None:
            result['security'] = self.security
        if self.callbacks is not None:
            result['callbacks'] = self.callbacks
        if self.deprecated:
            result['deprecated'] = True
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OpenApiOperation':
        body = data.get('requestBody')
        return cls(
            operation_id=data.get('operationId', ''),
            summary=data.get('summary'),
            tags=list(data.get('tags') or []),
            parameters=[OpenApiParameter.from_dict(p) for p in data.get('parameters') or []],
            responses={str(code): OpenApiResponse.from_dict(r) for code, r in (data.get('responses') or {}).items()},
            description=data.get('description'),
            request_body=OpenApiRequestBody.from_dict(body) if body else None,
            security=data.get('security'),
            callbacks=data.get('callbacks'),
            deprecated=data.get('deprecated', False),
        )


@dataclass
class OpenApiSpec:
    info: OpenApiInfo
    openapi: str = OPENAPI_VERSION
    servers: List[OpenApiServer] = field(default_factory=list)
    paths: Dict[str, Dict[str, OpenApiOperation]] = field(default_factory=dict)
    schemas: Dict[str, OpenApiSchema] = field(default_factory=dict)
    security_schemes: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    security: List[Dict[str, List[str]]] = field(default_factory=list)
    tags: List[Dict[str, Any]] = field(default_factory=list)

    def operation(self, path: str, method: str) -> Optional[OpenApiOperation]:
        return self.paths.get(path, {}).get(method.lower())

    def operations(self):
        for path, methods in self.paths.items():
            for method, operation in methods.items():
                yield path, method, operation

    def to_dict(self) -> Dict[str, Any]:
        components: Dict[str, Any] = {}
        if self.schemas:
            components['schemas'] = {name: s.to_dict() for name, s in self.schemas.items()}
        if self.security_schemes:
            components['securitySchemes'] = dict(self.security_schemes)
        result: Dict[str, Any] = {
            'openapi': self.openapi,
            'info': self.info.to_dict(),
            'servers': [s.to_dict() for s in self.servers],
            'paths': {path: {method: op.to_dict() for method, op in methods.items()}
                      for path, methods in self.paths.items()},
            'components': components,
        }
        if self.security:
            result['security'] = self.security
        if self.tags:
            result['tags'] = self.tags
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OpenApiSpec':
        components = data.get('components') or {}
        paths = {}
        for path, methods in (data.get('paths') or {}).items():
            paths[path] = {method: OpenApiOperation.from_dict(op) for method, op in methods.items()
                           if method in HTTP_METHODS}
        return cls(
            info=OpenApiInfo.from_dict(data.get('info') or {}),
            openapi=data.get('openapi', OPENAPI_VERSION),
            servers=[OpenApiServer.from_dict(s) for s in data.get('servers') or []],
            paths=paths,
            schemas={name: OpenApiSchema.from_dict(s) for name, s in (components.get('schemas') or {}).items()},
            security_schemes=dict(components.get('securitySchemes') or {}),
            security=list(data.get('security') or []),
            tags=list(data.get('tags') or []),
        )
