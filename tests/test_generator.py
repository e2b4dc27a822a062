import pytest

from larascope.auth import AuthenticationAnalyzer
from larascope.controllers import (CallbackInfo, ControllerInfo, EnumParameter, InlineValidation, PaginationInfo,
                                  ResponseInfo)
from larascope.generator import (RouteAnalysis, SpecAssembler, camel, fold_parameters, query_name,
                                 resource_name)
from larascope.openapi import OpenApiSpec
from larascope.parameters import ParameterBuilder
from larascope.request_params import QueryParameter
from larascope.resources import ResourceFieldInfo, ResourceInfo
from larascope.routes import RouteInfo, parse_path_parameters
from larascope.rules import ConditionalRule, ConditionalRuleSet

POST_RESOURCE = 'App\\Http\\Resources\\PostResource'


def analysis(uri, methods, action, name=None, rules=None, middleware=(), resources=None, **controller):
    validation = None
    if rules is not None:
        validation = InlineValidation(rule_set=ConditionalRuleSet.from_rule_sets(
            [ConditionalRule(conditions=[], rules=rules)]))
    return RouteAnalysis(
        route=RouteInfo(uri=uri, http_methods=list(methods), controller='App\\Http\\Controllers\\PostController',
                        method=action, name=name, middleware=list(middleware),
                        parameters=parse_path_parameters(uri)),
        controller=ControllerInfo(controller='App\\Http\\Controllers\\PostController', method=action,
                                  inline_validation=validation, **controller),
        resources=resources or {},
    )


def assemble(*analyses):
    routes = [a.route for a in analyses]
    return SpecAssembler(title='Blog API').assemble(list(analyses), AuthenticationAnalyzer().analyze(routes))


def post_resource():
    return {POST_RESOURCE: ResourceInfo(class_name=POST_RESOURCE,
                                        properties={'id': ResourceFieldInfo(type='integer')})}


class TestHelpers:

    def test_fold_parameters_nests_dotted_and_wildcard_fields(self):
        parameters = ParameterBuilder().build({
            'items': ['required', 'array'],
            'items.*.id': ['required', 'integer'],
            'meta.tag': ['string'],
        })
        schema = fold_parameters(parameters)
        assert schema['required'] == ['items']
        items = schema['properties']['items']
        assert items['type'] == 'array'
        assert items['items']['type'] == 'object'
        assert items['items']['required'] == ['id']
        assert items['items']['properties']['id']['type'] == 'integer'
        assert 'required' not in schema['properties']['meta']

    @pytest.mark.parametrize('field,expected', [
        ('filter.status', 'filter[status]'),
        ('ids.*', 'ids[]'),
        ('sort', 'sort'),
    ])
    def test_query_name(self, field, expected):
        assert query_name(field) == expected

    def test_naming(self):
        assert camel('posts_update_patch') == 'postsUpdatePatch'
        assert resource_name('api/v1/blog-posts/{post}') == 'BlogPost'


class TestSpecAssembler:

    def test_query_parameters_for_get(self):
        spec = assemble(analysis('api/posts/search', ['GET', 'HEAD'], 'search',
                                 rules={'filter.status': ['in:draft,published'], 'ids.*': ['integer'],
                                        'q': ['required', 'string']},
                                 query_parameters=[QueryParameter('per_page', 'integer', default=15)]))
        operation = spec.operation('/api/posts/search', 'get')
        assert operation.operation_id == 'getApiPostsSearch'
        assert [p.name for p in operation.parameters] == ['filter[status]', 'ids[]', 'q', 'per_page']
        assert operation.parameters[2].required
        assert operation.parameters[3].schema.values['default'] == 15
        assert operation.request_body is None
        assert list(operation.responses) == ['200', '422']
        assert spec.operation('/api/posts/search', 'head') is None

    def test_store_with_file_is_multipart_and_created(self):
        spec = assemble(analysis('api/posts', ['POST'], 'store', name='posts.store',
                                 rules={'title': ['required', 'string'], 'cover': ['image']},
                                 middleware=['auth:sanctum'], resource=POST_RESOURCE,
                                 resources=post_resource()))
        operation = spec.operation('/api/posts', 'post')
        assert operation.summary == 'Create a new Post'
        assert operation.tags == ['Posts']
        assert operation.request_body.media_type == 'multipart/form-data'
        assert operation.request_body.required
        assert operation.security == [{'sanctumAuth': []}]
        assert list(operation.responses) == ['201', '422', '401']
        assert operation.responses['201'].content['application/json'].ref == '#/components/schemas/PostResource'
        assert spec.security_schemes['sanctumAuth']['scheme'] == 'bearer'
        assert spec.schemas['PostResource'].required == ['id']

    def test_duplicate_operation_ids_get_a_method_suffix(self):
        spec = assemble(analysis('api/posts/{post}', ['PUT', 'PATCH'], 'update', name='posts.update',
                                 rules={'title': ['sometimes', 'string']}))
        assert spec.operation('/api/posts/{post}', 'put').operation_id == 'postsUpdate'
        assert spec.operation('/api/posts/{post}', 'patch').operation_id == 'postsUpdatePatch'
        assert '404' in spec.operation('/api/posts/{post}', 'put').responses

    def test_delete_without_body_is_no_content(self):
        spec = assemble(analysis('api/posts/{post}', ['DELETE'], 'destroy'))
        responses = spec.operation('/api/posts/{post}', 'delete').responses
        assert list(responses) == ['204', '404']
        assert responses['204'].content is None

    def test_explicit_status_wins(self):
        spec = assemble(analysis('api/posts/{post}', ['POST'], 'publish',
                                 response=ResponseInfo(type='object', status=202, schema={'type': 'object'})))
        operation = spec.operation('/api/posts/{post}', 'post')
        assert '202' in operation.responses
        assert operation.summary == 'Publish Post'

    def test_paginated_resource_collection(self):
        spec = assemble(analysis('api/posts', ['GET'], 'index', resource=POST_RESOURCE, returns_collection=True,
                                 pagination=PaginationInfo(type='paginate', resource=POST_RESOURCE),
                                 resources=post_resource()))
        schema = spec.operation('/api/posts', 'get').responses['200'].content['application/json'].to_dict()
        assert set(schema['properties']) == {'data', 'links', 'meta'}
        assert schema['properties']['data']['items'] == {'$ref': '#/components/schemas/PostResource'}
        assert 'total' in schema['properties']['meta']['properties']

    def test_unanalyzable_resource_gets_placeholder_schema(self):
        ghost = 'App\\Http\\Resources\\GhostResource'
        spec = assemble(analysis('api/ghosts', ['GET'], 'index', resource=ghost,
                                 resources={ghost: ResourceInfo.empty(ghost)}))
        assert spec.schemas['GhostResource'].to_dict() == {
            'type': 'object', 'description': 'GhostResource (structure could not be analyzed)'}

    def test_enum_path_parameter_and_callbacks(self):
        spec = assemble(analysis('api/posts/status/{status}', ['GET'], 'byStatus',
                                 enum_parameters=[EnumParameter('status', 'App\\Enums\\PostStatus',
                                                                values=['draft', 'published'])],
                                 callbacks=[CallbackInfo(name='onChange', expression='{$request.body#/url}')]))
        operation = spec.operation('/api/posts/status/{status}', 'get')
        assert operation.parameters[0].schema.values['enum'] == ['draft', 'published']
        assert operation.parameters[0].description == 'Enum parameter of type PostStatus'
        assert operation.callbacks == {'onChange': {'{$request.body#/url}': {'post': {
            'responses': {'200': {'description': 'Callback received successfully'}}}}}}

    def test_document_round_trip(self):
        spec = assemble(
            analysis('api/posts', ['GET'], 'index', resource=POST_RESOURCE, returns_collection=True,
                     pagination=PaginationInfo(type='cursorPaginate', resource=POST_RESOURCE),
                     resources=post_resource(), middleware=['auth']),
            analysis('api/posts', ['POST'], 'store', name='posts.store', rules={'title': ['required', 'max:255']}),
        )
        data = spec.to_dict()
        assert data['openapi'] == '3.0.3'
        assert data['info'] == {'title': 'Blog API', 'version': '1.0.0'}
        assert OpenApiSpec.from_dict(data) == spec
        assert OpenApiSpec.from_dict(data).to_dict() == data
