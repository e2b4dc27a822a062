"""Authentication scheme detection from route middleware"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .exceptions import ConfigurationError
from .routes import RouteInfo

logger = logging.getLogger(__name__)

SCHEME_TYPES = ('http', 'apiKey', 'oauth2', 'openIdConnect')


@dataclass(frozen=True)
class AuthenticationScheme:
    """A security scheme as it appears under components.securitySchemes"""
    type: str
    name: str
    scheme: Optional[str] = None
    bearer_format: Optional[str] = None
    location: Optional[str] = None
    header_name: Optional[str] = None
    flows: Optional[Dict[str, Any]] = None
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {'type': self.type, 'name': self.name}
        for key, value in (('scheme', self.scheme), ('bearerFormat', self.bearer_format), ('in', self.location),
                           ('headerName', self.header_name), ('flows', self.flows),
                           ('description', self.description)):
            if value is not None:
                result[key] = value
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuthenticationScheme':
        scheme_type = data.get('type', 'http')
        if scheme_type not in SCHEME_TYPES:
            raise ConfigurationError(f"Unknown security scheme type: {scheme_type}")
        if not data.get('name'):
            raise ConfigurationError('Security scheme needs a name')
        return cls(type=scheme_type, name=data['name'], scheme=data.get('scheme'),
                   bearer_format=data.get('bearerFormat'), location=data.get('in'),
                   header_name=data.get('headerName'), flows=data.get('flows'),
                   description=data.get('description'))

    def to_security_scheme(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {'type': self.type}
        if self.type == 'http':
            if self.scheme:
                result['scheme'] = self.scheme
            if self.bearer_format:
                result['bearerFormat'] = self.bearer_format
        elif self.type == 'apiKey':
            result['in'] = self.location or 'header'
            result['name'] = self.header_name or 'X-API-Key'
        elif self.type == 'oauth2':
            result['flows'] = self.flows or {}
        if self.description:
            result['description'] = self.description
        return result


SANCTUM = AuthenticationScheme('http', 'sanctumAuth', scheme='bearer', bearer_format='JWT',
                               description='Laravel Sanctum token authentication')
API_TOKEN = AuthenticationScheme('http', 'apiAuth', scheme='bearer', bearer_format='API Token',
                                 description='API token authentication')
BASIC = AuthenticationScheme('http', 'basicAuth', scheme='basic', description='Basic HTTP authentication')
BEARER = AuthenticationScheme('http', 'bearerAuth', scheme='bearer', bearer_format='JWT',
                              description='Bearer token authentication')
PASSPORT = AuthenticationScheme('oauth2', 'passportAuth', flows={
    'authorizationCode': {'authorizationUrl': '/oauth/authorize', 'tokenUrl': '/oauth/token', 'scopes': {}},
    'password': {'tokenUrl': '/oauth/token', 'scopes': {}},
}, description='Laravel Passport OAuth2 authentication')

MIDDLEWARE_SCHEMES = {
    'auth:sanctum': SANCTUM,
    'auth:api': API_TOKEN,
    'auth.basic': BASIC,
    'auth': BEARER,
    'passport': PASSPORT,
}
KNOWN_GUARDS = {'sanctum': SANCTUM, 'api': API_TOKEN, 'web': BEARER}
# substring -> scheme, checked in order
API_KEY_PATTERNS: Tuple[Tuple[str, AuthenticationScheme], ...] = (
    ('api-key', AuthenticationScheme('apiKey', 'apiKeyAuth', location='header', header_name='X-API-Key',
                                     description='API Key authentication')),
    ('api_key', AuthenticationScheme('apiKey', 'apiKeyAuth', location='header', header_name='X-API-Key',
                                     description='API Key authentication')),
    ('authorization-token', AuthenticationScheme('apiKey', 'customTokenAuth', location='header',
                                                 header_name='Authorization-Token',
                                                 description='Custom authorization token')),
)


@dataclass(frozen=True)
class RouteAuthentication:
    scheme: AuthenticationScheme
    required: bool = True
    middleware: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {'scheme': self.scheme.to_dict(), 'required': self.required, 'middleware': list(self.middleware)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RouteAuthentication':
        return cls(scheme=AuthenticationScheme.from_dict(data['scheme']), required=data.get('required', True),
                   middleware=tuple(data.get('middleware') or ()))


class AuthenticationDetector:
    """Maps middleware names to security schemes"""

    def __init__(self, custom_schemes: Optional[Dict[str, Dict[str, Any]]] = None):
        self.schemes: Dict[str, AuthenticationScheme] = dict(MIDDLEWARE_SCHEMES)
        for middleware, scheme in (custom_schemes or {}).items():
            self.add_custom_scheme(middleware, scheme)

    def add_custom_scheme(self, middleware: str, scheme: Dict[str, Any]) -> None:
        self.schemes[middleware] = AuthenticationScheme.from_dict(scheme)

    def detect(self, middleware: List[str]) -> Optional[AuthenticationScheme]:
        """First middleware that implies authentication wins"""
        for name in middleware:
            if name in self.schemes:
                return self.schemes[name]
            if name.startswith('auth:'):
                return self.from_guard(name[len('auth:'):])
            for pattern, scheme in API_KEY_PATTERNS:
                if pattern in name:
                    return scheme
        return None

    def detect_all(self, middleware: List[str]) -> List[AuthenticationScheme]:
        found: Dict[str, AuthenticationScheme] = {}
        for name in middleware:
            scheme = self.detect([name])
            if scheme is not None:
                found.setdefault(scheme.name, scheme)
        return list(found.values())

    def from_guard(self, guard: str) -> AuthenticationScheme:
        # auth:api,sanctum lists several guards
        guard = guard.split(',')[0].strip()
        if guard in KNOWN_GUARDS:
            return KNOWN_GUARDS[guard]
        return AuthenticationScheme('http', f"{guard}Auth", scheme='bearer', bearer_format='JWT',
                                    description=f"Authentication using {guard} guard")


@dataclass
class AuthenticationResult:
    schemes: Dict[str, AuthenticationScheme] = field(default_factory=dict)
    routes: Dict[int, RouteAuthentication] = field(default_factory=dict)

    def for_route(self, index: int) -> Optional[RouteAuthentication]:
        return self.routes.get(index)

    def to_dict(self) -> Dict[str, Any]:
        return {'schemes': {name: s.to_dict() for name, s in self.schemes.items()},
                'routes': {str(index): r.to_dict() for index, r in self.routes.items()}}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuthenticationResult':
        return cls(
            schemes={name: AuthenticationScheme.from_dict(s) for name, s in (data.get('schemes') or {}).items()},
            routes={int(index): RouteAuthentication.from_dict(r) for index, r in (data.get('routes') or {}).items()},
        )


class AuthenticationAnalyzer:

    def __init__(self, detector: Optional[AuthenticationDetector] = None):
        self.detector = detector or AuthenticationDetector()

    def analyze(self, routes: List[RouteInfo]) -> AuthenticationResult:
        result = AuthenticationResult()
        for index, route in enumerate(routes):
            authentication = self.analyze_route(route)
            if authentication is None:
                continue
            result.routes[index] = authentication
            result.schemes.setdefault(authentication.scheme.name, authentication.scheme)
        logger.debug("Detected %d security schemes over %d routes", len(result.schemes), len(routes))
        return result

    def analyze_route(self, route: RouteInfo) -> Optional[RouteAuthentication]:
        if not route.middleware:
            return None
        scheme = self.detector.detect(list(route.middleware))
        if scheme is None:
            return None
        return RouteAuthentication(scheme=scheme, required=True, middleware=tuple(route.middleware))
