import pytest

from larascope.file_uploads import FileUploadAnalyzer
from larascope.parameters import ParameterBuilder
from larascope.requirements import RuleRequirementAnalyzer
from larascope.type_inference import TypeInference, generate_example


@pytest.fixture
def infer():
    return TypeInference().infer


class TestTypeInference:

    @pytest.mark.parametrize('tokens,expected', [
        (['required', 'string', 'max:255'], 'string'),
        (['integer', 'min:1'], 'integer'),
        (['numeric'], 'number'),
        (['boolean'], 'boolean'),
        (['array'], 'array'),
        (['image'], 'file'),
        (['string', 'integer'], 'integer'),
        ([], 'string'),
    ])
    def test_base_type(self, infer, tokens, expected):
        assert infer(tokens).type == expected

    def test_string_bounds_and_format(self, infer):
        info = infer(['required', 'email', 'max:255'])
        assert info.format == 'email'
        assert info.max_length == 255
        assert info.required

    def test_numeric_bounds(self, infer):
        info = infer(['integer', 'between:1,5'])
        assert (info.minimum, info.maximum) == (1, 5)
        exclusive = infer(['numeric', 'gt:0'])
        assert exclusive.minimum == 0 and exclusive.exclusive_minimum

    def test_gt_against_other_field_is_ignored(self, infer):
        assert infer(['integer', 'gt:start']).minimum is None

    def test_in_rule_becomes_enum(self, infer):
        assert infer(['integer', 'in:1,2,3']).enum == [1, 2, 3]
        assert infer(['string', 'in:draft,published']).enum == ['draft', 'published']

    def test_regex_delimiters_are_stripped(self, infer):
        assert infer(['regex:/^[a-z]+$/i']).pattern == '^[a-z]+$'

    def test_sometimes_cancels_required(self, infer):
        assert not infer(['sometimes', 'required', 'string']).required

    def test_nullable_date(self, infer):
        info = infer(['nullable', 'date'])
        assert info.nullable and info.format == 'date-time'
        assert info.to_schema() == {'type': 'string', 'format': 'date-time', 'nullable': True}

    def test_enum_descriptor(self, infer):
        info = infer(['required', {'type': 'enum', 'class': 'Priority', 'values': [1, 2], 'backing': 'int'}])
        assert info.type == 'integer'
        assert info.enum == [1, 2]

    def test_password_descriptor(self, infer):
        info = infer([{'type': 'password', 'min_length': 10, 'letters': True, 'mixed_case': False,
                       'numbers': True, 'symbols': False}])
        assert info.format == 'password'
        assert info.min_length == 10
        assert info.description == 'Must contain letters, numbers'

    def test_concatenated_fallback_is_expanded(self, infer):
        info = infer(["'string|max:' . $max"])
        assert info.type == 'string'
        assert info.max_length is None

    def test_examples_respect_names_and_bounds(self, infer):
        assert generate_example('user_id', infer(['integer'])) == 1
        assert generate_example('contact.email', infer(['string'])) == 'user@example.com'
        assert generate_example('code', infer(['string', 'min:8'])) == 'stringxx'
        assert generate_example('status', infer(['in:open,closed'])) == 'open'
        assert generate_example('timezone', infer(['string'])) == 'UTC'
        assert generate_example('start_time', infer(['string'])) == '14:30:00'


class TestFileUploads:

    def test_constraints(self):
        info = FileUploadAnalyzer().analyze(['required', 'file', 'mimes:pdf,docx', 'max:10240'], 'document')
        assert info.mimes == ['pdf', 'docx']
        assert info.mime_types == ['application/pdf',
                                   'application/vnd.openxmlformats-officedocument.wordprocessingml.document']
        assert info.max_size_kb == 10240
        assert info.max_size_bytes == 10240 * 1024
        assert 'Max size: 10MB' in info.description()

    def test_image_dimensions_and_multiple(self):
        info = FileUploadAnalyzer().analyze(['image', 'dimensions:min_width=100,max_height=500'], 'photos.*')
        assert info.is_image and info.multiple
        assert info.dimensions.min_width == 100
        assert info.dimensions.max_height == 500
        assert 'image/jpeg' in info.mime_types

    def test_non_file_field(self):
        assert FileUploadAnalyzer().analyze(['string', 'max:10'], 'name') is None


class TestRequirements:

    def test_conditional_requirement(self):
        analyzer = RuleRequirementAnalyzer()
        tokens = ['required_if:type,company', 'string']
        assert analyzer.is_conditionally_required(tokens)
        assert not analyzer.is_required(tokens)
        detail = analyzer.conditional_rules(tokens)[0]
        assert (detail.type, detail.parameters) == ('required_if', 'type,company')


class TestParameterBuilder:

    def test_build_uses_attribute_labels(self):
        parameters = ParameterBuilder().build({'published_at': ['nullable', 'date']},
                                              attributes={'published_at': 'Publication date'})
        assert parameters[0].description == 'Publication date'
        assert parameters[0].nullable

    def test_excluded_and_private_fields_are_skipped(self):
        parameters = ParameterBuilder().build({'_token': ['string'], 'internal': ['exclude'], 'name': ['string']})
        assert [p.name for p in parameters] == ['name']

    def test_file_parameter_schema(self):
        parameter = ParameterBuilder().build_parameter('avatar', ['required', 'image', 'max:2048'])
        assert parameter.is_file_upload()
        assert parameter.required
        schema = parameter.to_schema()
        assert schema['type'] == 'string' and schema['format'] == 'binary'
        assert 'Max size: 2MB' in schema['description']
