from larascope.conditions import ConditionKind
from larascope.rules import ConditionalRuleSet, kilobytes, union_rules

IMPORTS = """
use App\\Rules\\StrongPassword;
use Illuminate\\Validation\\Rule;
use Illuminate\\Validation\\Rules\\File;
use Illuminate\\Validation\\Rules\\Password;
"""


class TestConditionalRules:

    def test_plain_return_has_single_unconditional_rule_set(self, extract_rules):
        result = extract_rules("""
    public function rules()
    {
        return ['name' => 'required|string|max:255'];
    }
""")
        assert len(result.rule_sets) == 1
        assert result.rule_sets[0].conditions == []
        assert result.merged_rules == {'name': ['required', 'string', 'max:255']}
        assert not result.has_conditions

    def test_if_elseif_else_gives_one_rule_set_per_arm(self, extract_rules):
        result = extract_rules("""
    public function rules()
    {
        if ($this->isMethod('POST')) {
            return ['name' => 'required'];
        } elseif ($this->user()->isAdmin()) {
            return ['role' => 'required'];
        } else {
            return ['name' => 'sometimes'];
        }
    }
""")
        kinds = [[c.kind for c in r.conditions] for r in result.rule_sets]
        assert kinds == [[ConditionKind.HTTP_METHOD], [ConditionKind.USER_CHECK], [ConditionKind.ELSE_BRANCH]]
        assert result.rule_sets[0].get_http_method() == 'POST'
        assert result.merged_rules == {'name': ['required', 'sometimes'], 'role': ['required']}

    def test_if_without_else_falls_through(self, extract_rules):
        result = extract_rules("""
    public function rules()
    {
        if ($this->isMethod('PUT')) {
            return ['title' => 'required'];
        }

        return ['title' => 'sometimes'];
    }
""")
        assert len(result.rule_sets) == 2
        assert result.rule_sets[0].is_http_method_condition()
        assert result.rule_sets[1].conditions == []
        assert not any(c.is_else_branch() for r in result.rule_sets for c in r.conditions)

    def test_http_method_selection(self, extract_rules):
        result = extract_rules("""
    public function rules()
    {
        $rules = ['email' => 'email'];
        if ($this->isMethod('POST')) {
            $rules['password'] = 'required';
            return array_merge($rules, ['name' => 'required']);
        }

        return $rules;
    }
""")
        post = result.rules_for_http_method('post')
        assert len(post) == 1
        assert set(post[0].rules) == {'email', 'name'}
        patch = result.rules_for_http_method('PATCH')
        assert [r.rules for r in patch] == [{'email': ['email']}]

    def test_assignment_and_augmented_assignment(self, extract_rules):
        result = extract_rules("""
    public function rules()
    {
        $rules = ['name' => 'required'];
        $rules += ['name' => 'nullable', 'age' => 'integer'];

        return $rules;
    }
""")
        assert result.merged_rules == {'name': ['required'], 'age': ['integer']}

    def test_array_merge_overwrites_and_plus_keeps_first(self, extract_rules):
        merged = extract_rules("""
    public function rules()
    {
        return array_merge(['a' => 'required'], ['a' => 'nullable']);
    }
""")
        plus = extract_rules("""
    public function rules()
    {
        return ['a' => 'required'] + ['a' => 'nullable', 'b' => 'string'];
    }
""")
        assert merged.merged_rules == {'a': ['nullable']}
        assert plus.merged_rules == {'a': ['required'], 'b': ['string']}

    def test_match_on_request_method(self, extract_rules):
        result = extract_rules("""
    public function rules()
    {
        return match ($this->method()) {
            'POST' => ['name' => 'required'],
            'PUT', 'PATCH' => ['name' => 'sometimes'],
            default => [],
        };
    }
""")
        methods = [r.get_http_method() for r in result.rule_sets]
        assert methods == ['POST', 'PUT', 'PATCH', None]
        assert result.rule_sets[-1].conditions[-1].is_else_branch()

    def test_switch_cases_share_body(self, extract_rules):
        result = extract_rules("""
    public function rules()
    {
        switch ($this->method()) {
            case 'POST':
            case 'PUT':
                return ['title' => 'required'];
            default:
                return [];
        }
    }
""")
        assert [r.get_http_method() for r in result.rule_sets] == ['POST', 'PUT', None]
        assert result.rule_sets[0].rules == result.rule_sets[1].rules == {'title': ['required']}

    def test_delegated_methods(self, extract_rules):
        result = extract_rules("""
    public function rules()
    {
        return array_merge($this->baseRules(), ['extra' => 'string']);
    }

    protected function baseRules()
    {
        return ['name' => 'required'];
    }
""")
        assert result.merged_rules == {'name': ['required'], 'extra': ['string']}

    def test_probability_halves_per_condition(self, extract_rules):
        result = extract_rules("""
    public function rules()
    {
        if ($this->has('a')) {
            if ($this->filled('b')) {
                return ['x' => 'required'];
            }
        }
        return [];
    }
""")
        assert result.rule_sets[0].probability == 0.25
        assert result.rule_sets[-1].probability == 1.0


class TestRuleTokens:

    def test_rule_builders(self, extract_rules):
        result = extract_rules("""
    public function rules()
    {
        return [
            'status' => ['required', Rule::in(['draft', 'published'])],
            'type' => [Rule::notIn(['a'])],
            'email' => ['email', Rule::unique('users')->ignore(1)],
            'team_id' => [Rule::exists('teams', 'id')],
            'role' => Rule::requiredIf(true),
        ];
    }
""", header=IMPORTS)
        rules = result.merged_rules
        assert rules['status'] == ['required', 'in:draft,published']
        assert rules['type'] == ['not_in:a']
        assert rules['email'] == ['email', 'unique:users']
        assert rules['team_id'] == ['exists:teams']

    def test_rule_builder_edge_cases(self, extract_rules):
        result = extract_rules("""
    public function rules()
    {
        return [
            'empty_in' => [Rule::in()],
            'dynamic_in' => [Rule::in($this->allowedValues())],
            'chained_in' => [Rule::in(['a', 'b'])->where('active', 1)],
            'runtime_when' => [Rule::when($this->isAdmin(), 'required')],
            'literal_when' => [Rule::when(true, 'required|email', 'nullable')],
            'false_when' => [Rule::when(false, 'required', 'nullable')],
            'status' => ['required', new Enum(PostStatus::class)],
            'kind' => [new Enum($this->enumClass)],
            'elvis' => $this->strict ?: 'string',
            'ternary' => $this->strict ? $this->dynamicRules : 'integer',
            'joined' => 'a' . 'b' . '|c',
        ];
    }
""", header=IMPORTS)
        rules = result.merged_rules
        assert rules['empty_in'] == ['in:']
        assert rules['dynamic_in'] == ['in:...']
        assert rules['chained_in'] == ['in:a,b']
        assert rules['runtime_when'] == ['sometimes']
        assert rules['literal_when'] == ['required', 'email']
        assert rules['false_when'] == ['nullable']
        assert rules['status'] == ['required', {'type': 'enum', 'class': 'PostStatus'}]
        assert rules['kind'] == ['__enum__']
        assert rules['elvis'] == ['string']
        assert rules['ternary'] == ['integer']
        assert rules['joined'] == ['ab', 'c']

    def test_password_and_file_rules(self, extract_rules):
        result = extract_rules("""
    public function rules()
    {
        return [
            'password' => ['required', Password::min(12)->mixedCase()->numbers()],
            'secret' => [Password::defaults()],
            'avatar' => [File::image()->max('2mb')],
            'doc' => [File::types(['pdf', 'docx'])->max(512)],
        ];
    }
""", header=IMPORTS)
        password = result.merged_rules['password'][1]
        assert password['type'] == 'password'
        assert password['min_length'] == 12
        assert password['mixed_case'] and password['numbers'] and not password['symbols']
        assert result.merged_rules['secret'][0]['min_length'] == 8
        assert result.merged_rules['avatar'] == ['image', 'max:2048']
        assert result.merged_rules['doc'] == ['file', 'mimes:pdf,docx', 'max:512']

    def test_custom_rule_objects_are_deduplicated(self, extract_rules):
        result = extract_rules("""
    public function rules()
    {
        if ($this->isMethod('POST')) {
            return ['password' => ['required', new StrongPassword(minLength: 10)]];
        }
        return ['password' => ['required', new StrongPassword(minLength: 10)]];
    }
""", header=IMPORTS)
        tokens = result.merged_rules['password']
        assert tokens == ['required', {'type': 'custom_rule', 'class': 'StrongPassword', 'args': {'minLength': 10}}]

    def test_unresolvable_values_fall_back_to_source_text(self, extract_rules):
        result = extract_rules("""
    public function rules()
    {
        return ['slug' => $this->slugRule, 'code' => 'regex:' . self::PATTERN];
    }
""")
        assert result.merged_rules['slug'] == ['$this->slugRule']
        assert result.merged_rules['code'] == ["'regex:' . self::PATTERN"]


class TestHelpers:

    def test_union_rules_deduplicates(self):
        assert union_rules({'a': ['x', 'y']}, {'a': ['y', 'z'], 'b': ['w']}) == {'a': ['x', 'y', 'z'], 'b': ['w']}

    def test_kilobytes(self):
        assert kilobytes('2mb') == 2048
        assert kilobytes(512) == 512
        assert kilobytes('1GB') == 1024 * 1024
        assert kilobytes('lots') is None

    def test_rule_set_round_trip(self, extract_rules):
        result = extract_rules("""
    public function rules()
    {
        if ($this->isMethod('POST')) {
            return ['name' => 'required'];
        }
        return ['name' => 'sometimes'];
    }
""")
        assert ConditionalRuleSet.from_dict(result.to_dict()) == result
