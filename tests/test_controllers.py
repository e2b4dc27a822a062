import pytest

from larascope.controllers import CallbackInfo, ControllerAnalyzer, ControllerInfo
from larascope.diagnostics import ErrorCollector
from larascope.locator import ClassLocator

POSTS = 'App\\Http\\Controllers\\PostController'

SUBSCRIPTION_CONTROLLER = """<?php

namespace App\\Http\\Controllers;

use App\\Http\\Resources\\SubscriptionResource;
use App\\Models\\User;
use Illuminate\\Http\\Request;

class SubscriptionController extends Controller
{
    #[OpenApiCallback(name: 'paymentSucceeded', expression: '{$request.body#/callbackUrl}', method: 'POST')]
    public function pay(Request $request)
    {
        if ($request->has('coupon')) {
            $coupon = $request->string('coupon');
        }
        $locale = $request->header('Accept-Language', 'en');

        return response()->json(['paid' => true], 202);
    }

    public function feed(User $user)
    {
        return SubscriptionResource::collection($user->subscriptions()->cursorPaginate());
    }

    #[OpenApiCallback(expression: '{$request.body#/url}')]
    public function broken()
    {
    }
}
"""


@pytest.fixture
def collector():
    return ErrorCollector()


@pytest.fixture
def analyzer(laravel_app, collector):
    path = laravel_app / 'app' / 'Http' / 'Controllers' / 'SubscriptionController.php'
    path.write_text(SUBSCRIPTION_CONTROLLER)
    return ControllerAnalyzer(ClassLocator(laravel_app), error_collector=collector)


class TestControllerAnalyzer:

    def test_paginated_collection(self, analyzer):
        info = analyzer.analyze(POSTS, 'index')
        assert info.resource == 'App\\Http\\Resources\\PostResource'
        assert info.returns_collection
        assert info.pagination.kind == 'length_aware'
        assert info.pagination.per_page == 15
        assert info.pagination.model == 'App\\Models\\Post'
        assert info.pagination.resource == 'App\\Http\\Resources\\PostResource'
        per_page = info.query_parameters[0]
        assert (per_page.name, per_page.type, per_page.default) == ('per_page', 'integer', 15)

    def test_form_request_parameter(self, analyzer):
        info = analyzer.analyze(POSTS, 'store')
        assert info.form_request == 'App\\Http\\Requests\\StorePostRequest'
        assert info.resource == 'App\\Http\\Resources\\PostResource'
        assert not info.returns_collection
        assert info.response is None

    def test_no_content_response(self, analyzer):
        info = analyzer.analyze(POSTS, 'destroy')
        assert info.response.type == 'void'
        assert info.response.status == 204
        assert info.form_request is None

    def test_enum_route_parameter(self, analyzer):
        info = analyzer.analyze(POSTS, 'byStatus')
        enum = info.enum_parameters[0]
        assert enum.name == 'status'
        assert enum.enum_class == 'App\\Enums\\PostStatus'
        assert enum.values == ['draft', 'published', 'archived']
        assert info.returns_collection
        assert info.pagination is None

    def test_inline_validation_and_json_status(self, analyzer):
        info = analyzer.analyze('App\\Http\\Controllers\\CommentController', 'store')
        validation = info.inline_validation
        assert validation.sources == ['request_validate']
        assert validation.rule_set.merged_rules == {
            'body': ['required', 'string', 'max:1000'],
            'rating': ['nullable', 'integer', 'between:1,5'],
        }
        assert info.response.status == 201
        assert info.response.schema['properties']['id'] == {'type': 'integer', 'example': 1}

    def test_fractal_transformer(self, analyzer):
        info = analyzer.analyze('App\\Http\\Controllers\\TagController', 'index')
        assert info.fractal.transformer == 'App\\Transformers\\TagTransformer'
        assert info.fractal.collection
        assert info.resource is None

    def test_query_header_and_callbacks(self, analyzer):
        info = analyzer.analyze('App\\Http\\Controllers\\SubscriptionController', 'pay')
        coupon = info.query_parameters[0]
        assert (coupon.name, coupon.type, coupon.required) == ('coupon', 'string', True)
        header = info.header_parameters[0]
        assert (header.name, header.default) == ('Accept-Language', 'en')
        assert info.response.status == 202
        assert info.callbacks == [CallbackInfo(name='paymentSucceeded', expression='{$request.body#/callbackUrl}',
                                               method='post')]

    def test_relation_cursor_pagination(self, analyzer):
        info = analyzer.analyze('App\\Http\\Controllers\\SubscriptionController', 'feed')
        assert info.pagination.kind == 'cursor'
        assert info.pagination.source == 'relation'
        assert info.pagination.model == 'Subscription'
        assert info.pagination.resource == 'App\\Http\\Resources\\SubscriptionResource'

    def test_invalid_callback_and_empty_body(self, analyzer, collector):
        info = analyzer.analyze('App\\Http\\Controllers\\SubscriptionController', 'broken')
        assert info.callbacks == []
        assert info.response.status == 204
        assert 'Invalid OpenApiCallback' in collector.warnings[-1].message

    def test_missing_method(self, analyzer, collector):
        info = analyzer.analyze(POSTS, 'archive')
        assert not info.found
        assert collector.warnings[-1].error_type.value == 'method_not_found'

    def test_round_trip(self, analyzer):
        for method in ('index', 'store', 'byStatus'):
            info = analyzer.analyze(POSTS, method)
            assert ControllerInfo.from_dict(info.to_dict()) == info
