import pytest

from larascope.cache import DocumentationCache
from larascope.diagnostics import ErrorCollector
from larascope.locator import ClassLocator
from larascope.parser import method_table
from larascope.resources import (ResourceAnalyzer, ResourceFieldInfo, ResourceInfo, ResourceStructureAnalyzer,
                                 property_field)

POST_RESOURCE = 'App\\Http\\Resources\\PostResource'


@pytest.fixture
def analyzer(laravel_app):
    return ResourceAnalyzer(ClassLocator(laravel_app))


def structure_of(php, body):
    source_file = php("""
namespace App\\Http\\Resources;

class SampleResource
{
    public function toArray($request)
    {
""" + body + """
    }
}
""")
    method = method_table(source_file.find_class('SampleResource'))['toArray']
    return ResourceStructureAnalyzer(source_file).analyze_method(method)


class TestResourceAnalyzer:

    def test_json_resource_fields(self, analyzer):
        info = analyzer.analyze(POST_RESOURCE)
        assert info.is_valid and info.kind == 'resource'
        properties = info.properties
        assert properties['id'].type == 'integer'
        assert properties['status'].type == 'string' and properties['status'].source == 'enum'
        assert properties['is_featured'].type == 'boolean'
        assert properties['created_at'].format == 'date-time'
        assert properties['comments_count'].type == 'integer'
        assert properties['comments_count'].conditional

    def test_nested_resource_keeps_relation_gate(self, analyzer):
        info = analyzer.analyze(POST_RESOURCE)
        author = info.properties['author']
        assert author.resource == 'App\\Http\\Resources\\UserResource'
        assert author.conditional and author.relation == 'author'
        assert info.nested_resources == ['App\\Http\\Resources\\UserResource']
        assert len(info.conditional_fields) == 2

    def test_generated_schema(self, analyzer):
        schema = ResourceAnalyzer.generate_schema(analyzer.analyze(POST_RESOURCE))
        assert schema['required'] == ['id', 'title', 'status', 'is_featured', 'created_at']
        author = schema['properties']['author']
        assert author['allOf'] == [{'$ref': '#/components/schemas/UserResource'}]
        assert author['nullable'] is True
        assert author['description'].startswith('Conditional field')

    def test_fractal_transformer_and_includes(self, analyzer):
        info = analyzer.analyze('App\\Transformers\\TagTransformer')
        assert info.kind == 'fractal'
        assert info.available_includes == ['posts']
        assert info.properties['id'].type == 'integer'
        assert info.properties['name'].type == 'string'
        assert info.properties['posts'].conditional
        assert 'include=posts' in info.conditional_fields

    def test_missing_class_is_a_warning(self, laravel_app):
        collector = ErrorCollector()
        info = ResourceAnalyzer(ClassLocator(laravel_app), error_collector=collector).analyze(
            'App\\Http\\Resources\\MissingResource')
        assert not info.is_valid
        assert collector.warnings[0].context == 'ResourceAnalyzer'

    def test_cached_result_matches_fresh_analysis(self, laravel_app, tmp_path):
        locator = ClassLocator(laravel_app)
        cache = DocumentationCache(tmp_path / 'cache')
        first = ResourceAnalyzer(locator, cache).analyze(POST_RESOURCE)
        second = ResourceAnalyzer(locator, cache).analyze(POST_RESOURCE)
        assert first == second
        assert cache.get_all_cache_keys() == ['resource:' + POST_RESOURCE]


class TestResourceStructure:

    def test_merge_when_and_when(self, php):
        structure = structure_of(php, """
        return [
            'id' => $this->id,
            'secret' => $this->when($this->isAdmin(), 'value'),
            $this->mergeWhen($this->isAdmin(), [
                'role' => $this->role,
            ]),
        ];
""")
        assert structure.found
        assert structure.properties['secret'].conditional
        assert structure.properties['role'].condition == 'mergeWhen'
        assert len(structure.conditional_fields) == 2

    def test_self_referencing_bindings(self, php):
        structure = structure_of(php, """
        $name = $this->name;
        $name = $name ?? 'anonymous';
        $a = $b;
        $b = $a;
        return [
            'name' => $name,
            'a' => $a,
        ];
""")
        assert structure.found
        assert structure.properties['name'].expression == '$name'
        assert structure.properties['a'].expression == '$a'

    def test_self_referencing_returned_variable(self, php):
        structure = structure_of(php, """
        $data = $data;
        return $data;
""")
        assert not structure.found

    def test_collection_and_null_coalescing(self, php):
        structure = structure_of(php, """
        return [
            'tags' => TagResource::collection($this->whenLoaded('tags')),
            'nickname' => $this->nickname ?? null,
            'label' => 'Post #' . $this->id,
        ];
""")
        tags = structure.properties['tags']
        assert tags.is_collection and tags.relation == 'tags'
        assert tags.to_schema() == {'type': 'array', 'items': {'$ref': '#/components/schemas/TagResource'}}
        assert structure.properties['nickname'].nullable
        assert structure.properties['label'].type == 'string'

    def test_returned_variable_with_added_keys(self, php):
        structure = structure_of(php, """
        $data = ['id' => $this->id];
        $data['url'] = route('posts.show', $this->id);
        return $data;
""")
        assert set(structure.properties) == {'id', 'url'}
        assert structure.properties['url'].type == 'string'

    def test_dynamic_return_is_not_found(self, php):
        assert not structure_of(php, "return parent::toArray($request) + $this->extra();").found


class TestPropertyHeuristics:

    @pytest.mark.parametrize('name,expected', [
        ('id', 'integer'),
        ('is_active', 'boolean'),
        ('user_id', 'integer'),
        ('total_price', 'number'),
        ('tags', 'array'),
        ('status', 'string'),
    ])
    def test_types(self, name, expected):
        assert property_field(name).type == expected

    def test_date_formats(self):
        assert property_field('updated_at').format == 'date-time'
        assert property_field('birth_date').format == 'date'

    def test_round_trip(self):
        info = ResourceInfo(class_name='X', properties={'a': ResourceFieldInfo(type='integer', conditional=True)})
        assert ResourceInfo.from_dict(info.to_dict()) == info
