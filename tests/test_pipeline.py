import json

import pytest

from larascope.cli import main
from larascope.config import Config
from larascope.exceptions import RouteTableError
from larascope.pipeline import Pipeline


@pytest.fixture
def config(laravel_app, tmp_path):
    return Config(project_root=laravel_app, cache_directory=tmp_path / 'cache', title='Blog API')


@pytest.fixture
def spec(config):
    spec, _ = Pipeline(config).run()
    return spec


class TestPipeline:

    def test_paths(self, spec):
        assert {'/api/tags', '/api/posts', '/api/posts/{post}', '/api/posts/status/{status}',
                '/api/posts/{post}/comments'} <= set(spec.paths)
        assert spec.info.title == 'Blog API'

    def test_security(self, spec):
        assert spec.operation('/api/tags', 'get').security is None
        assert spec.operation('/api/posts', 'post').security == [{'sanctumAuth': []}]
        assert '401' in spec.operation('/api/posts/{post}', 'delete').responses
        assert list(spec.security_schemes) == ['sanctumAuth']

    def test_resource_schemas(self, spec):
        assert {'PostResource', 'UserResource', 'TagTransformer'} <= set(spec.schemas)
        show = spec.operation('/api/posts/{post}', 'get')
        assert show.responses['200'].content['application/json'].ref == '#/components/schemas/PostResource'

    def test_store(self, spec):
        store = spec.operation('/api/posts', 'post')
        assert store.operation_id == 'postsStore'
        assert store.request_body.media_type == 'multipart/form-data'
        assert list(store.responses)[:2] == ['201', '422']

    def test_update_rules_depend_on_method(self, spec):
        put = spec.operation('/api/posts/{post}', 'put')
        patch = spec.operation('/api/posts/{post}', 'patch')
        assert put.operation_id == 'postsUpdate'
        assert patch.operation_id == 'postsUpdatePatch'
        assert put.request_body.content['application/json'].required == ['title', 'body']
        assert patch.request_body.content['application/json'].required is None

    def test_destroy_and_comments(self, spec):
        assert '204' in spec.operation('/api/posts/{post}', 'delete').responses
        comments = spec.operation('/api/posts/{post}/comments', 'post').responses
        assert '201' in comments and '422' in comments

    def test_index_pagination(self, spec):
        index = spec.operation('/api/posts', 'get')
        per_page = next(p for p in index.parameters if p.name == 'per_page')
        assert per_page.schema.values['default'] == 15
        schema = index.responses['200'].content['application/json']
        assert set(schema.properties) == {'data', 'links', 'meta'}

    def test_fractal_include_parameter(self, spec):
        tags = spec.operation('/api/tags', 'get')
        assert [p.name for p in tags.parameters] == ['include']
        assert 'posts' in tags.parameters[0].description

    def test_enum_path_parameter(self, spec):
        by_status = spec.operation('/api/posts/status/{status}', 'get')
        assert by_status.parameters[0].schema.values['enum'] == ['draft', 'published', 'archived']

    def test_cached_run_matches(self, config, spec):
        again, _ = Pipeline(config).run()
        assert again.to_dict() == spec.to_dict()

    def test_missing_routes(self, tmp_path):
        with pytest.raises(RouteTableError):
            Pipeline(Config(project_root=tmp_path)).run()


class TestCli:

    def test_writes_document(self, laravel_app, tmp_path, capsys):
        (laravel_app / 'larascope.json').write_text(json.dumps({'title': 'Blog API', 'cacheEnabled': False}))
        output = tmp_path / 'openapi.json'
        assert main([str(laravel_app), str(output)]) == 0
        document = json.loads(output.read_text())
        assert document['info']['title'] == 'Blog API'
        assert '/api/posts' in document['paths']
        assert 'Documentation generated' in capsys.readouterr().out

    def test_usage(self, capsys):
        assert main([]) == 1
        assert 'Usage' in capsys.readouterr().out

    def test_missing_project(self, tmp_path):
        assert main([str(tmp_path / 'nowhere')]) == 1

    def test_invalid_configuration(self, laravel_app, tmp_path):
        (laravel_app / 'larascope.json').write_text('{"cacheEnabled": "yes"}')
        assert main([str(laravel_app), str(tmp_path / 'out.json')]) == 1

    def test_missing_routes(self, tmp_path):
        assert main([str(tmp_path), str(tmp_path / 'out.json')]) == 2
