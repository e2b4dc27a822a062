import json

import pytest

from larascope.diagnostics import ErrorCollector
from larascope.exceptions import RouteTableError
from larascope.routes import (RouteFileReader, RouteInfo, RouteLoader, parse_path_parameters, pattern_schema,
                              singular)


def read_routes(php, source, prefix='api'):
    return RouteFileReader().read_source(php(source), prefix)


class TestRouteFileReader:

    def test_fixture_route_file(self, laravel_app):
        records = RouteFileReader().read_files([laravel_app / 'routes' / 'api.php'])
        by_name = {r['routeName']: r for r in records if r['routeName']}

        assert by_name['tags.index']['uri'] == 'api/tags'
        assert by_name['tags.index']['middleware'] == []
        assert by_name['posts.update']['uri'] == 'api/posts/{post}'
        assert by_name['posts.update']['httpMethods'] == ['PUT', 'PATCH']
        assert by_name['posts.by-status']['middleware'] == ['auth:sanctum']
        assert by_name['comments.store']['controllerClass'] == 'App\\Http\\Controllers\\CommentController'

        closure = [r for r in records if r['controllerClass'] == 'Closure']
        assert [r['uri'] for r in closure] == ['api/v1/health']

    def test_api_resource_actions(self, php):
        records = read_routes(php, """
use App\\Http\\Controllers\\PhotoController;
Route::apiResource('photos', PhotoController::class)->except(['destroy']);
""")
        assert [r['methodName'] for r in records] == ['index', 'store', 'show', 'update']
        assert records[2]['uri'] == 'api/photos/{photo}'

    def test_full_resource_and_nested_names(self, php):
        records = read_routes(php, """
Route::resource('photos.comments', 'PhotoCommentController')->only(['index', 'edit']);
""", prefix='')
        assert [r['uri'] for r in records] == ['photos/{photo}/comments', 'photos/{photo}/comments/{comment}/edit']
        assert records[0]['controllerClass'] == 'App\\Http\\Controllers\\PhotoCommentController'

    def test_group_attributes_and_controller_groups(self, php):
        records = read_routes(php, """
Route::group(['prefix' => 'admin', 'middleware' => ['auth'], 'as' => 'admin.'], function () {
    Route::controller(App\\Http\\Controllers\\OrderController::class)->group(function () {
        Route::get('orders/{order}', 'show')->name('orders.show')->whereNumber('order');
    });
});
""")
        record = records[0]
        assert record['uri'] == 'api/admin/orders/{order}'
        assert record['controllerClass'] == 'App\\Http\\Controllers\\OrderController'
        assert record['methodName'] == 'show'
        assert record['routeName'] == 'admin.orders.show'
        assert record['middleware'] == ['auth']
        assert record['wheres'] == {'order': '[0-9]+'}

    def test_match_any_and_invokable(self, php):
        records = read_routes(php, """
Route::match(['get', 'post'], 'search', 'SearchController@handle');
Route::any('ping', PingController::class)->withoutMiddleware('throttle');
""")
        assert records[0]['httpMethods'] == ['GET', 'POST']
        assert records[0]['methodName'] == 'handle'
        assert records[1]['methodName'] == '__invoke'
        assert 'OPTIONS' in records[1]['httpMethods']

    def test_missing_route_file_is_a_warning(self, tmp_path):
        collector = ErrorCollector()
        assert RouteFileReader(error_collector=collector).read_files([tmp_path / 'api.php']) == []
        assert collector.warnings[0].context == 'RouteFileReader'


class TestRouteLoader:

    def test_records_are_filtered(self):
        loader = RouteLoader()
        routes = loader.load_records([
            {'uri': 'api/users', 'httpMethods': ['GET', 'HEAD'], 'controllerClass': 'App\\UserController',
             'methodName': 'index', 'middleware': ['api', 'auth:sanctum']},
            {'uri': 'web/home', 'httpMethods': ['GET'], 'controllerClass': 'App\\HomeController',
             'methodName': 'index'},
            {'uri': 'api/health', 'httpMethods': ['GET'], 'controllerClass': 'Closure', 'methodName': 'Closure'},
        ])
        assert len(routes) == 1
        assert routes[0].http_methods == ['GET']
        assert routes[0].middleware == ['auth:sanctum']

    def test_artisan_rows(self):
        routes = RouteLoader().load_records([
            {'uri': 'api/users/{user}', 'method': 'PUT|PATCH', 'name': 'users.update',
             'action': 'App\\Http\\Controllers\\UserController@update', 'middleware': ['api']},
            {'uri': 'api/ping', 'method': 'GET|HEAD', 'action': 'Closure'},
        ])
        assert len(routes) == 1
        route = routes[0]
        assert route.http_methods == ['PUT', 'PATCH']
        assert route.method == 'update'
        assert route.parameters[0].name == 'user'

    def test_excluded_methods(self):
        loader = RouteLoader(excluded_methods=['delete'])
        routes = loader.load_records([{'uri': 'api/users/{user}', 'httpMethods': ['DELETE'],
                                       'controllerClass': 'App\\UserController', 'methodName': 'destroy'}])
        assert routes == []

    def test_invalid_record_is_collected(self):
        collector = ErrorCollector()
        assert RouteLoader(error_collector=collector).load_records([{'httpMethods': ['GET']}]) == []
        assert collector.has_errors()

    def test_route_table_file(self, tmp_path):
        table = tmp_path / 'routes.json'
        table.write_text(json.dumps({'routes': [
            {'uri': 'api/posts', 'httpMethods': ['GET'], 'controllerClass': 'App\\PostController',
             'methodName': 'index'},
        ]}))
        routes = RouteLoader().load_table_file(table)
        assert routes[0].path == '/api/posts'

    def test_unusable_route_table_is_fatal(self, tmp_path):
        table = tmp_path / 'routes.json'
        table.write_text('{"routes": 3}')
        with pytest.raises(RouteTableError):
            RouteLoader().load_table_file(table)

    def test_route_info_round_trip(self):
        route = RouteInfo(uri='api/posts/{post?}', http_methods=['GET'], controller='C', method='show',
                          parameters=parse_path_parameters('api/posts/{post?}'))
        assert route.path == '/api/posts/{post}'
        assert not route.parameters[0].required
        assert RouteInfo.from_dict(route.to_dict()) == route


class TestPathParameters:

    @pytest.mark.parametrize('pattern,schema', [
        ('[0-9]+', {'type': 'integer'}),
        ('\\d+', {'type': 'integer'}),
        ('[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}', {'type': 'string', 'format': 'uuid'}),
        ('[a-z-]+', {'type': 'string', 'pattern': '^[a-z-]+$'}),
    ])
    def test_pattern_schema(self, pattern, schema):
        assert pattern_schema(pattern) == schema

    def test_scoped_binding_name(self):
        parameters = parse_path_parameters('posts/{post:slug}', {'post': '[a-z]+'})
        assert parameters[0].name == 'post'
        assert parameters[0].schema['pattern'] == '^[a-z]+$'

    @pytest.mark.parametrize('word,expected', [
        ('posts', 'post'),
        ('categories', 'category'),
        ('boxes', 'box'),
        ('status', 'status'),
        ('address', 'address'),
    ])
    def test_singular(self, word, expected):
        assert singular(word) == expected
