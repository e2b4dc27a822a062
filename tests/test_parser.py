from larascope.parser import (NOT_LITERAL, ParseFailure, SourceParser, array_elements, literal_value,
                              method_parameters, method_table, parse_use_statement, render, walk)


def first(source_file, node_type):
    for node in walk(source_file.root):
        if node.type == node_type:
            return node
    return None


class TestSourceParser:

    def test_syntax_error_is_reported_not_raised(self):
        result = SourceParser().parse_source('<?php\nclass Broken {\n    public function (\n')
        assert isinstance(result, ParseFailure)
        assert result.reason == 'syntax'
        assert result.line is not None

    def test_missing_file_is_unreadable(self, tmp_path):
        result = SourceParser().parse(tmp_path / 'nope.php')
        assert isinstance(result, ParseFailure)
        assert result.reason == 'unreadable'

    def test_namespace_and_imports_resolve_names(self, php):
        source_file = php("""
namespace App\\Http\\Controllers;

use App\\Http\\Resources\\PostResource;
use App\\Models\\{Post, Comment as Reply};

class PostController {}
""")
        assert source_file.namespace == 'App\\Http\\Controllers'
        assert source_file.resolve_name('PostResource') == 'App\\Http\\Resources\\PostResource'
        assert source_file.resolve_name('Reply') == 'App\\Models\\Comment'
        assert source_file.resolve_name('Helper') == 'App\\Http\\Controllers\\Helper'
        assert source_file.resolve_name('\\Carbon\\Carbon') == 'Carbon\\Carbon'


class TestLiterals:

    def test_scalars_and_arrays(self, php):
        source_file = php("$x = ['a' => 1, 'b' => [true, null, -2.5], 'c' => \"text\"];")
        array = first(source_file, 'array_creation_expression')
        assert literal_value(array) == {'a': 1, 'b': [True, None, -2.5], 'c': 'text'}

    def test_dynamic_values_are_not_literal(self, php):
        source_file = php("$x = [$y, 1];")
        array = first(source_file, 'array_creation_expression')
        assert literal_value(array) is NOT_LITERAL

    def test_array_elements_keep_spread_flag(self, php):
        source_file = php("$x = ['k' => 1, ...$rest, 2];")
        elements = array_elements(first(source_file, 'array_creation_expression'))
        assert [spread for _, _, spread in elements] == [False, True, False]
        assert elements[0][0] is not None and elements[2][0] is None

    def test_render_keeps_quoted_whitespace(self, php):
        source_file = php("$ok = preg_match('/a  b/',\n        $value,   \"x  y\");")
        call = first(source_file, 'function_call_expression')
        assert render(call) == "preg_match('/a  b/', $value, \"x  y\")"


class TestDeclarations:

    def test_method_parameters(self, php):
        source_file = php("""
class Sample
{
    public function handle(Request $request, ?int $page = 1, string|null $sort = null) {}
}
""")
        method = method_table(source_file.find_class('Sample'))['handle']
        parameters = {p['name']: p for p in method_parameters(method)}
        assert parameters['request']['type'] == 'Request'
        assert parameters['page']['nullable'] and parameters['page']['default'] == 1
        assert parameters['sort']['type'] == 'string' and parameters['sort']['nullable']


class TestUseStatements:

    def test_alias_and_group(self):
        assert parse_use_statement('use Foo\\Bar as Baz;') == {'Baz': 'Foo\\Bar'}
        assert parse_use_statement('use App\\{A, B\\C};') == {'A': 'App\\A', 'C': 'App\\B\\C'}
