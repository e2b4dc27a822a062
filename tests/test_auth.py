import pytest

from larascope.auth import AuthenticationAnalyzer, AuthenticationDetector, AuthenticationResult, AuthenticationScheme
from larascope.exceptions import ConfigurationError
from larascope.routes import RouteInfo


@pytest.fixture
def detector():
    return AuthenticationDetector()


class TestAuthenticationDetector:

    @pytest.mark.parametrize('middleware,name', [
        (['auth:sanctum'], 'sanctumAuth'),
        (['auth:api'], 'apiAuth'),
        (['auth'], 'bearerAuth'),
        (['auth.basic'], 'basicAuth'),
        (['passport'], 'passportAuth'),
        (['auth:admin'], 'adminAuth'),
        (['throttle:60,1', 'verify-api-key'], 'apiKeyAuth'),
        (['auth:sanctum,web'], 'sanctumAuth'),
    ])
    def test_detect(self, detector, middleware, name):
        assert detector.detect(middleware).name == name

    def test_no_authentication(self, detector):
        assert detector.detect(['throttle:60,1', 'bindings']) is None

    def test_security_scheme_objects(self, detector):
        assert detector.detect(['auth:sanctum']).to_security_scheme() == {
            'type': 'http', 'scheme': 'bearer', 'bearerFormat': 'JWT',
            'description': 'Laravel Sanctum token authentication'}
        api_key = detector.detect(['api_key'])
        assert api_key.to_security_scheme()['in'] == 'header'
        assert api_key.to_security_scheme()['name'] == 'X-API-Key'
        assert detector.detect(['passport']).to_security_scheme()['type'] == 'oauth2'

    def test_custom_scheme(self):
        detector = AuthenticationDetector({'partner': {'type': 'apiKey', 'name': 'partnerKey', 'in': 'query',
                                                       'headerName': 'partner_token'}})
        scheme = detector.detect(['partner'])
        assert scheme.to_security_scheme() == {'type': 'apiKey', 'in': 'query', 'name': 'partner_token'}

    @pytest.mark.parametrize('scheme', [
        {'type': 'digest', 'name': 'x'},
        {'type': 'http'},
    ])
    def test_invalid_custom_scheme(self, scheme):
        with pytest.raises(ConfigurationError):
            AuthenticationDetector({'custom': scheme})

    def test_detect_all_deduplicates(self, detector):
        schemes = detector.detect_all(['auth', 'auth:sanctum', 'auth:web'])
        assert [s.name for s in schemes] == ['bearerAuth', 'sanctumAuth']


class TestAuthenticationAnalyzer:

    def test_routes_map_to_schemes(self):
        routes = [
            RouteInfo(uri='api/tags', http_methods=['GET']),
            RouteInfo(uri='api/posts', http_methods=['POST'], middleware=['auth:sanctum', 'throttle:api']),
            RouteInfo(uri='api/posts/{post}', http_methods=['DELETE'], middleware=['auth:sanctum']),
        ]
        result = AuthenticationAnalyzer().analyze(routes)
        assert result.for_route(0) is None
        assert result.for_route(1).scheme.name == 'sanctumAuth'
        assert result.for_route(1).middleware == ('auth:sanctum', 'throttle:api')
        assert list(result.schemes) == ['sanctumAuth']
        assert AuthenticationResult.from_dict(result.to_dict()) == result

    def test_scheme_round_trip(self):
        scheme = AuthenticationScheme('http', 'bearerAuth', scheme='bearer', bearer_format='JWT')
        assert AuthenticationScheme.from_dict(scheme.to_dict()) == scheme
