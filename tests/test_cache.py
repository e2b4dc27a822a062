import pytest

from larascope.cache import DocumentationCache, human_filesize
from larascope.diagnostics import ErrorCollector


class Counter:

    def __init__(self, value):
        self.value = value
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return self.value


@pytest.fixture
def cache(tmp_path):
    return DocumentationCache(tmp_path / 'cache')


@pytest.fixture
def dependency(tmp_path):
    path = tmp_path / 'StoreUserRequest.php'
    path.write_text("<?php\nclass StoreUserRequest {}\n")
    return path


class TestDocumentationCache:

    def test_computes_once_while_dependencies_are_unchanged(self, cache, dependency):
        compute = Counter({'name': ['required']})
        assert cache.remember('form_request:A', compute, [dependency]) == {'name': ['required']}
        assert cache.remember('form_request:A', compute, [dependency]) == {'name': ['required']}
        assert compute.calls == 1

    def test_modified_dependency_invalidates(self, cache, dependency):
        compute = Counter([1, 2])
        cache.remember('k', compute, [dependency])
        dependency.write_text("<?php\nclass StoreUserRequest { public $changed; }\n")
        cache.remember('k', compute, [dependency])
        assert compute.calls == 2

    def test_changed_dependency_list_invalidates(self, cache, dependency, tmp_path):
        other = tmp_path / 'Other.php'
        other.write_text('<?php')
        compute = Counter('x')
        cache.remember('k', compute, [dependency])
        cache.remember('k', compute, [dependency, other])
        assert compute.calls == 2

    def test_corrupt_entry_is_a_miss(self, cache, dependency):
        compute = Counter('fresh')
        cache.remember('k', compute, [dependency])
        cache._path('k').write_text('{not json')
        assert cache.remember('k', compute, [dependency]) == 'fresh'
        assert compute.calls == 2
        assert cache.get('k') == 'fresh'

    def test_disabled_cache_always_computes(self, tmp_path):
        cache = DocumentationCache(tmp_path / 'cache', enabled=False)
        compute = Counter(1)
        cache.remember('k', compute)
        cache.remember('k', compute)
        assert compute.calls == 2
        assert not (tmp_path / 'cache').exists()

    def test_unserializable_value_is_reported_as_warning(self, tmp_path):
        collector = ErrorCollector()
        cache = DocumentationCache(tmp_path / 'cache', error_collector=collector)
        assert cache.remember('k', lambda: {1, 2}) == {1, 2}
        assert len(collector.warnings) == 1
        assert cache.get_all_cache_keys() == []

    def test_keys_forget_and_stats(self, cache):
        cache.put('resource:App\\Http\\Resources\\PostResource', {'a': 1})
        cache.put('resource:App\\Http\\Resources\\UserResource', {'b': 2})
        cache.put('routes:all', [])
        assert sorted(cache.get_all_cache_keys())[-1] == 'routes:all'

        assert cache.forget_by_pattern('resource:*') == 2
        assert cache.get_all_cache_keys() == ['routes:all']
        assert cache.forget('routes:all')
        assert not cache.forget('routes:all')

        stats = cache.get_stats()
        assert stats['total_files'] == 0
        assert stats['oldest_file'] is None

    def test_resource_dependencies_follow_nested_resources(self, cache, tmp_path):
        nested = tmp_path / 'UserResource.php'
        nested.write_text('<?php')
        resource = tmp_path / 'PostResource.php'
        resource.write_text("<?php\nreturn ['author' => new UserResource($this->author)];\n")
        resolve = {'App\\Http\\Resources\\UserResource': nested}.get
        assert cache.find_resource_dependencies(resource, resolve) == [nested]


def test_human_filesize():
    assert human_filesize(512) == '512.00 B'
    assert human_filesize(2048) == '2.00 KB'
