"""
Conditional validation rule extraction.

Walks a rules() style method body and reconstructs every reachable rule set:
one ConditionalRule per return reached, tagged with the conjunction of the
branch conditions leading to it. Rule values are evaluated statically into
rule tokens; anything that cannot be resolved degrades to an empty
contribution or a rendered fallback token instead of raising.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from tree_sitter import Node

from .conditions import ConditionClassifier, ConditionKind, ConditionResult
from .parser import (CLOSURE_TYPES, MEMBER_CALL_TYPES, NOT_LITERAL, STRING_TYPES, SourceFile,
                     argument_nodes, arguments, array_elements, binary_operands, binary_operator,
                     call_name, call_object, call_scope, interpolated_body, is_this,
                     literal_value, method_body_statements, method_table, named, new_class_name,
                     node_text, render, short_name, string_value, ternary_parts, unwrap,
                     variable_name, walk_outside_closures)

logger = logging.getLogger(__name__)

RuleMapping = Dict[str, List[Any]]

ENUM_FALLBACK = '__enum__'
DEFAULT_PASSWORD_LENGTH = 8
MAX_LIVE_STATES = 32

LOOP_TYPES = ('foreach_statement', 'for_statement', 'while_statement', 'do_statement')
FRAMEWORK_RULE_CLASSES = ('Enum', 'In', 'NotIn', 'Unique', 'Exists', 'Password', 'Dimensions',
                          'File', 'ImageFile', 'RequiredIf', 'ExcludeIf', 'ProhibitedIf', 'Email')


@dataclass(frozen=True)
class Resolved:
    value: Any


@dataclass(frozen=True)
class Fallback:
    text: str


@dataclass(frozen=True)
class Empty:
    pass


EMPTY = Empty()
Result = Union[Resolved, Fallback, Empty]


def split_rule_string(value: str) -> List[str]:
    return [part.strip() for part in value.split('|') if part.strip()]


def add_token(tokens: List[Any], token: Any) -> None:
    if token not in tokens:
        tokens.append(token)


def dedupe_tokens(tokens: List[Any]) -> List[Any]:
    result: List[Any] = []
    for token in tokens:
        add_token(result, token)
    return result


def union_rules(*mappings: RuleMapping) -> RuleMapping:
    """Field-wise union of token lists, duplicates removed"""
    merged: RuleMapping = {}
    for mapping in mappings:
        for field_name, tokens in mapping.items():
            target = merged.setdefault(field_name, [])
            for token in tokens:
                add_token(target, token)
    return merged


def overwrite_rules(first: RuleMapping, second: RuleMapping) -> RuleMapping:
    """array_merge(): later fields replace earlier ones"""
    result = dict(first)
    result.update(second)
    return result


def keep_first_rules(first: RuleMapping, second: RuleMapping) -> RuleMapping:
    """The + operator: earlier fields win"""
    result = dict(first)
    for field_name, tokens in second.items():
        if field_name not in result:
            result[field_name] = tokens
    return result


def snake_case(name: str) -> str:
    return re.sub(r'(?<!^)(?=[A-Z])', '_', name).lower()


def php_string(value: Any) -> str:
    if isinstance(value, bool):
        return '1' if value else ''
    if value is None:
        return ''
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def kilobytes(value: Any) -> Optional[int]:
    """File size argument of File::max()/min() in kilobytes"""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        match = re.match(r'^\s*(\d+(?:\.\d+)?)\s*(kb|mb|gb|tb)?\s*$', value, re.IGNORECASE)
        if match:
            factor = {'kb': 1, 'mb': 1024, 'gb': 1024 ** 2, 'tb': 1024 ** 3}[(match.group(2) or 'kb').lower()]
            return int(float(match.group(1)) * factor)
    return None


@dataclass
class ConditionalRule:
    """Rules produced by one reachable branch"""
    conditions: List[ConditionResult] = field(default_factory=list)
    rules: RuleMapping = field(default_factory=dict)
    probability: float = 1.0

    def has_rules(self) -> bool:
        return bool(self.rules)

    def is_http_method_condition(self) -> bool:
        return any(c.kind == ConditionKind.HTTP_METHOD for c in self.conditions)

    def get_http_method(self) -> Optional[str]:
        for condition in self.conditions:
            if condition.kind == ConditionKind.HTTP_METHOD:
                return condition.method
        return None

    def field_names(self) -> List[str]:
        return list(self.rules.keys())

    def to_dict(self) -> Dict[str, Any]:
        return {
            'conditions': [c.to_dict() for c in self.conditions],
            'rules': {name: list(tokens) for name, tokens in self.rules.items()},
            'probability': self.probability,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ConditionalRule':
        return cls(
            conditions=[ConditionResult.from_dict(c) for c in data.get('conditions', [])],
            rules={name: list(tokens) for name, tokens in data.get('rules', {}).items()},
            probability=data.get('probability', 1.0),
        )


@dataclass
class ConditionalRuleSet:
    """All reachable rule sets of a method plus their deduplicated union"""
    rule_sets: List[ConditionalRule] = field(default_factory=list)
    merged_rules: RuleMapping = field(default_factory=dict)
    has_conditions: bool = False

    @classmethod
    def empty(cls) -> 'ConditionalRuleSet':
        return cls()

    @classmethod
    def from_rule_sets(cls, rule_sets: List[ConditionalRule]) -> 'ConditionalRuleSet':
        return cls(
            rule_sets=list(rule_sets),
            merged_rules=union_rules(*(r.rules for r in rule_sets)),
            has_conditions=any(r.conditions for r in rule_sets),
        )

    def is_empty(self) -> bool:
        return not self.merged_rules

    def rules_for_http_method(self, method: Optional[str]) -> List[ConditionalRule]:
        """Branches relevant to a route method"""
        if not method:
            return list(self.rule_sets)
        method = method.upper()
        matching = [r for r in self.rule_sets
                    if any(c.kind == ConditionKind.HTTP_METHOD and c.method == method for c in r.conditions)]
        if matching:
            return matching
        if any(r.is_http_method_condition() for r in self.rule_sets):
            return [r for r in self.rule_sets if not r.is_http_method_condition()]
        return list(self.rule_sets)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'rule_sets': [r.to_dict() for r in self.rule_sets],
            'merged_rules': {name: list(tokens) for name, tokens in self.merged_rules.items()},
            'has_conditions': self.has_conditions,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ConditionalRuleSet':
        return cls(
            rule_sets=[ConditionalRule.from_dict(r) for r in data.get('rule_sets', [])],
            merged_rules={name: list(tokens) for name, tokens in data.get('merged_rules', {}).items()},
            has_conditions=data.get('has_conditions', False),
        )


@dataclass(frozen=True)
class Binding:
    """Best known value of a local variable"""
    mapping: Result
    tokens: Result


@dataclass
class _State:
    path: List[ConditionResult]
    scope: Dict[str, Binding]


class RuleSetExtractor:
    """Extract conditional rule sets from the methods of one class"""

    def __init__(self, source_file: Optional[SourceFile] = None, class_node: Optional[Node] = None,
                 classifier: Optional[ConditionClassifier] = None,
                 enum_resolver: Optional[Callable[[str], Any]] = None):
        self.source_file = source_file
        self.class_node = class_node
        self.classifier = classifier or ConditionClassifier()
        self.enum_resolver = enum_resolver
        self.methods: Dict[str, Node] = method_table(class_node) if class_node is not None else {}
        self._resolving: List[str] = []
        self._method_cache: Dict[str, ConditionalRuleSet] = {}
        self._rule_builders: Dict[str, Callable[[Node, List[Node], Dict[str, Binding]], List[Any]]] = {
            'in': self._rule_in,
            'notIn': self._rule_not_in,
            'exists': self._rule_exists,
            'unique': self._rule_unique,
            'requiredIf': self._rule_required_if,
            'excludeIf': lambda root, chain, scope: ['exclude_if'],
            'prohibitedIf': lambda root, chain, scope: ['prohibited_if'],
            'when': self._rule_when,
            'enum': self._rule_enum,
            'imageFile': lambda root, chain, scope: ['image'],
            'file': lambda root, chain, scope: ['file'],
            'date': lambda root, chain, scope: ['date'],
            'numeric': lambda root, chain, scope: ['numeric'],
            'email': lambda root, chain, scope: ['email'],
            'array': lambda root, chain, scope: ['array'],
            'dimensions': self._rule_dimensions,
        }

    def extract(self, method_name: str = 'rules') -> ConditionalRuleSet:
        """Extract the rule sets of a method of this class"""
        if method_name not in self.methods:
            return ConditionalRuleSet.empty()
        return self._extract_named(method_name)

    def extract_method(self, method_node: Node) -> ConditionalRuleSet:
        collected: List[ConditionalRule] = []
        self._walk(method_body_statements(method_node), [_State([], {})], collected)
        logger.debug("Extracted %d rule set(s)", len(collected))
        return ConditionalRuleSet.from_rule_sets(collected)

    def extract_array_literal(self, method_name: str) -> Dict[str, str]:
        """Key -> string map returned by attributes() or messages()"""
        method = self.methods.get(method_name)
        if method is None:
            return {}
        for node in walk_outside_closures(method):
            if node.type == 'return_statement':
                values = named(node)
                return self.string_map(values[0]) if values else {}
        return {}

    def _extract_named(self, name: str) -> ConditionalRuleSet:
        if name in self._method_cache:
            return self._method_cache[name]
        if name in self._resolving:
            return ConditionalRuleSet.empty()
        self._resolving.append(name)
        try:
            result = self.extract_method(self.methods[name])
        finally:
            self._resolving.pop()
        self._method_cache[name] = result
        return result

    # -- statement walking --------------------------------------------------

    def _walk(self, statements: List[Node], states: List[_State],
              collected: List[ConditionalRule]) -> List[_State]:
        for statement in statements:
            if not states:
                break
            if statement.type in ('break_statement', 'continue_statement'):
                break
            states = self._statement(statement, states, collected)
            if len(states) > MAX_LIVE_STATES:
                states = [self._collapse(states)]
        return states

    def _statement(self, statement: Node, states: List[_State],
                   collected: List[ConditionalRule]) -> List[_State]:
        kind = statement.type
        if kind == 'return_statement':
            values = named(statement)
            for state in states:
                self._record_return(values[0] if values else None, state, collected)
            return []
        if kind == 'expression_statement':
            values = named(statement)
            expression = unwrap(values[0]) if values else None
            if expression is not None and expression.type in ('assignment_expression',
                                                                'augmented_assignment_expression'):
                for state in states:
                    self.assign(expression, state.scope)
            return states
        if kind in ('compound_statement', 'colon_block'):
            return self._walk(named(statement), states, collected)
        if kind == 'if_statement':
            return self._branch(self._if_arms(statement), states, collected)
        if kind == 'switch_statement':
            return self._branch(self._switch_arms(statement), states, collected)
        if kind in LOOP_TYPES:
            body = statement.child_by_field_name('body')
            if body is None:
                return states
            return self._branch([(None, body, False)], states, collected, exhaustive=False)
        if kind == 'try_statement':
            body = statement.child_by_field_name('body')
            return self._walk(named(body), states, collected) if body is not None else states
        return states

    def _if_arms(self, statement: Node) -> List[Tuple[Optional[ConditionResult], Optional[Node], bool]]:
        arms = [(self.classifier.classify(statement.child_by_field_name('condition')),
                 statement.child_by_field_name('body'), False)]
        for child in named(statement):
            if child.type == 'else_if_clause':
                arms.append((self.classifier.classify(child.child_by_field_name('condition')),
                             child.child_by_field_name('body'), False))
            elif child.type == 'else_clause':
                body = child.child_by_field_name('body')
                if body is not None and body.type == 'if_statement':
                    arms.extend(self._if_arms(body))
                else:
                    arms.append((self.classifier.else_branch(), body, True))
        return arms

    def _switch_arms(self, statement: Node) -> List[Tuple[Optional[ConditionResult], Optional[Node], bool]]:
        subject = statement.child_by_field_name('condition')
        body = statement.child_by_field_name('body')
        cases = [c for c in named(body) if c.type in ('case_statement', 'default_statement')] if body else []
        arms = []
        pending: List[Node] = []
        for case in cases:
            parts = named(case)
            if case.type == 'case_statement':
                value = case.child_by_field_name('value') or (parts[0] if parts else None)
                statements = [p for p in parts if p != value]
                if value is not None:
                    pending.append(value)
            else:
                statements = parts
            if not statements and case.type == 'case_statement':
                continue
            for value in pending:
                arms.append((self.classify_case(subject, value), case, False))
            pending = []
            if case.type == 'default_statement':
                arms.append((self.classifier.else_branch(), case, True))
        return arms

    def classify_case(self, subject: Optional[Node], value: Node) -> ConditionResult:
        """Condition for one switch case or match arm value"""
        expression = f"{render(unwrap(subject))} === {render(value)}"
        subject = unwrap(subject)
        if subject is not None and subject.type in MEMBER_CALL_TYPES and call_name(subject) in (
                'method', 'getMethod', 'getRealMethod'):
            return ConditionResult.http_method(string_value(value), expression)
        return ConditionResult.custom(expression)

    def _branch(self, arms, states: List[_State], collected: List[ConditionalRule],
                exhaustive: Optional[bool] = None) -> List[_State]:
        has_else = any(is_else for _, _, is_else in arms) if exhaustive is None else exhaustive
        result: List[_State] = []
        for state in states:
            keep_original = not has_else
            for condition, body, _ in arms:
                path = state.path + [condition] if condition is not None else list(state.path)
                arm_state = _State(path, dict(state.scope))
                if body is None:
                    statements: List[Node] = []
                elif body.type in ('compound_statement', 'colon_block'):
                    statements = named(body)
                elif body.type in ('case_statement', 'default_statement'):
                    value = body.child_by_field_name('value')
                    statements = [p for p in named(body) if p != value]
                    if body.type == 'case_statement' and value is None and statements:
                        statements = statements[1:]
                else:
                    statements = [body]
                for live in self._walk(statements, [arm_state], collected):
                    if live.scope == state.scope:
                        keep_original = True
                    else:
                        result.append(live)
            if keep_original:
                result.append(state)
        return result

    def _collapse(self, states: List[_State]) -> _State:
        prefix: List[ConditionResult] = []
        for conditions in zip(*(s.path for s in states)):
            if all(c == conditions[0] for c in conditions):
                prefix.append(conditions[0])
            else:
                break
        scope: Dict[str, Binding] = {}
        for state in states:
            for name, binding in state.scope.items():
                if name not in scope:
                    scope[name] = binding
                elif scope[name] != binding:
                    scope[name] = Binding(
                        mapping=self._union_results(scope[name].mapping, binding.mapping),
                        tokens=self._union_results(scope[name].tokens, binding.tokens),
                    )
        return _State(prefix, scope)

    def _record_return(self, expression: Optional[Node], state: _State,
                       collected: List[ConditionalRule]) -> None:
        expression = unwrap(expression)
        if expression is not None and expression.type == 'match_expression':
            for condition, arm_value in self._match_arms(expression):
                path = state.path + [condition]
                collected.append(self._conditional_rule(path, self.evaluate_mapping(arm_value, state.scope)))
            return
        result = self.evaluate_mapping(expression, state.scope) if expression is not None else EMPTY
        collected.append(self._conditional_rule(list(state.path), result))

    def _conditional_rule(self, path: List[ConditionResult], result: Result) -> ConditionalRule:
        rules = result.value if isinstance(result, Resolved) else {}
        return ConditionalRule(conditions=path, rules=rules, probability=1.0 / (2 ** len(path)))

    def _match_arms(self, expression: Node) -> List[Tuple[ConditionResult, Node]]:
        subject = expression.child_by_field_name('condition')
        body = expression.child_by_field_name('body')
        arms = []
        for arm in named(body) if body is not None else []:
            value = arm.child_by_field_name('return_expression')
            if value is None:
                parts = named(arm)
                value = parts[-1] if parts else None
            if value is None:
                continue
            if arm.type == 'match_default_expression':
                arms.append((self.classifier.else_branch(), value))
                continue
            conditions = arm.child_by_field_name('conditional_expressions')
            for candidate in named(conditions) if conditions is not None else []:
                arms.append((self.classify_case(subject, candidate), value))
        return arms

    def assign(self, expression: Node, scope: Dict[str, Binding]) -> None:
        left = expression.child_by_field_name('left')
        right = expression.child_by_field_name('right')
        name = variable_name(left)
        # element assignment ($rules['x'] = ...) is not tracked
        if name is None or right is None:
            return
        if expression.type == 'augmented_assignment_expression':
            operator = binary_operator(expression)
            current = scope.get(name)
            if current is None:
                return
            if operator == '+=':
                addition = self.evaluate_mapping(right, scope)
                if isinstance(current.mapping, Resolved) and isinstance(addition, Resolved):
                    scope[name] = Binding(Resolved(keep_first_rules(current.mapping.value, addition.value)),
                                          current.tokens)
            elif operator == '??=' and not isinstance(current.mapping, Resolved):
                scope[name] = Binding(self.evaluate_mapping(right, scope), self.evaluate_rule(right, scope))
            return

        mapping = self.evaluate_mapping(right, scope)
        tokens = self.evaluate_rule(right, scope)
        if not isinstance(mapping, Resolved) and not isinstance(tokens, Resolved):
            scope.pop(name, None)
            return
        scope[name] = Binding(mapping, tokens)

    # -- rule mapping evaluation ------------------------------------------

    def evaluate_mapping(self, node: Optional[Node], scope: Optional[Dict[str, Binding]] = None) -> Result:
        """Evaluate an expression to a field -> tokens mapping"""
        scope = scope if scope is not None else {}
        node = unwrap(node)
        if node is None:
            return EMPTY
        kind = node.type

        if kind == 'array_creation_expression':
            return Resolved(self._array_mapping(node, scope))

        if kind == 'variable_name':
            binding = scope.get(variable_name(node))
            return binding.mapping if binding is not None else EMPTY

        if kind == 'function_call_expression':
            name = call_name(node)
            if name == 'array_merge':
                merged: RuleMapping = {}
                for arg in argument_nodes(node):
                    value = self.evaluate_mapping(arg, scope)
                    if isinstance(value, Resolved):
                        merged = overwrite_rules(merged, value.value)
                return Resolved(merged)
            if name == 'array_merge_recursive':
                results = [self.evaluate_mapping(arg, scope) for arg in argument_nodes(node)]
                return Resolved(union_rules(*(r.value for r in results if isinstance(r, Resolved))))
            return EMPTY

        if kind == 'binary_expression':
            operator = binary_operator(node)
            left, right = binary_operands(node)
            if operator == '+':
                first = self.evaluate_mapping(left, scope)
                second = self.evaluate_mapping(right, scope)
                if isinstance(first, Resolved) and isinstance(second, Resolved):
                    return Resolved(keep_first_rules(first.value, second.value))
                return first if isinstance(first, Resolved) else second
            if operator == '??':
                return self._either(self.evaluate_mapping(left, scope), self.evaluate_mapping(right, scope))
            return EMPTY

        if kind == 'conditional_expression':
            condition, body, alternative = ternary_parts(node)
            left = body if body is not None else condition
            return self._either(self.evaluate_mapping(left, scope), self.evaluate_mapping(alternative, scope))

        if kind == 'match_expression':
            results = [self.evaluate_mapping(value, scope) for _, value in self._match_arms(node)]
            resolved = [r.value for r in results if isinstance(r, Resolved)]
            return Resolved(union_rules(*resolved)) if resolved else EMPTY

        if kind in MEMBER_CALL_TYPES:
            name = call_name(node)
            if is_this(call_object(node)) and name in self.methods:
                return self._delegate_mapping(name)
            return EMPTY

        if kind == 'scoped_call_expression':
            name = call_name(node)
            if call_scope(node) in ('self', 'static') and name in self.methods:
                return self._delegate_mapping(name)
            return EMPTY

        return EMPTY

    def _either(self, first: Result, second: Result) -> Result:
        """Both ternary outcomes merged; the right one alone when the left is unknown"""
        if not isinstance(first, Resolved):
            return second
        if not isinstance(second, Resolved):
            return first
        return Resolved(union_rules(first.value, second.value))

    def _union_results(self, first: Result, second: Result) -> Result:
        if isinstance(first, Resolved) and isinstance(second, Resolved):
            if isinstance(first.value, dict) and isinstance(second.value, dict):
                return Resolved(union_rules(first.value, second.value))
            if isinstance(first.value, list) and isinstance(second.value, list):
                return Resolved(dedupe_tokens(first.value + second.value))
        return first if isinstance(first, Resolved) else second

    def _delegate_mapping(self, name: str) -> Result:
        rule_set = self._extract_named(name)
        if not rule_set.rule_sets:
            return EMPTY
        if len(rule_set.rule_sets) == 1:
            return Resolved(dict(rule_set.rule_sets[0].rules))
        return Resolved(dict(rule_set.merged_rules))

    def _array_mapping(self, node: Node, scope: Dict[str, Binding]) -> RuleMapping:
        mapping: RuleMapping = {}
        for key_node, value_node, spread in array_elements(node):
            if spread:
                nested = self.evaluate_mapping(value_node, scope)
                if isinstance(nested, Resolved):
                    mapping = overwrite_rules(mapping, nested.value)
                continue
            if key_node is None:
                continue
            mapping[self._key(key_node)] = self.evaluate_tokens(value_node, scope)
        return mapping

    def _key(self, node: Node) -> str:
        value = literal_value(node)
        if isinstance(value, str):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return php_string(value)
        unwrapped = unwrap(node)
        if unwrapped is not None and unwrapped.type == 'binary_expression' and binary_operator(unwrapped) == '.':
            joined = self._concat_literal(unwrapped)
            if joined is not None:
                return joined
        return render(node)

    def string_map(self, node: Node) -> Dict[str, str]:
        node = unwrap(node)
        if node is None:
            return {}
        if node.type == 'function_call_expression' and call_name(node) == 'array_merge':
            merged: Dict[str, str] = {}
            for arg in argument_nodes(node):
                merged.update(self.string_map(arg))
            return merged
        if node.type != 'array_creation_expression':
            return {}
        result = {}
        for key_node, value_node, spread in array_elements(node):
            if spread or key_node is None:
                continue
            value = literal_value(value_node)
            result[self._key(key_node)] = php_string(value) if value is not NOT_LITERAL else render(value_node)
        return result

    # -- rule value evaluation --------------------------------------------

    def evaluate_tokens(self, node: Optional[Node], scope: Optional[Dict[str, Binding]] = None) -> List[Any]:
        """Rule tokens of a single field value"""
        result = self.evaluate_rule(node, scope if scope is not None else {})
        if isinstance(result, Resolved):
            return dedupe_tokens(result.value)
        if isinstance(result, Fallback):
            return [result.text]
        return []

    def evaluate_rule(self, node: Optional[Node], scope: Dict[str, Binding]) -> Result:
        node = unwrap(node)
        if node is None:
            return EMPTY
        kind = node.type

        if kind in STRING_TYPES:
            value = string_value(node)
            if value is None:
                value = interpolated_body(node)
            return Resolved(split_rule_string(value))

        if kind == 'array_creation_expression':
            tokens: List[Any] = []
            for _, value_node, spread in array_elements(node):
                if spread:
                    nested = self.evaluate_rule(value_node, scope)
                    if isinstance(nested, Resolved):
                        tokens.extend(nested.value)
                    elif isinstance(nested, Fallback):
                        tokens.append(nested.text)
                    continue
                tokens.extend(self._rule_item(value_node, scope))
            return Resolved(tokens)

        if kind == 'binary_expression':
            operator = binary_operator(node)
            if operator == '.':
                joined = self._concat_literal(node)
                if joined is None:
                    return Fallback(render(node))
                return Resolved(split_rule_string(joined))
            if operator == '??':
                left, right = binary_operands(node)
                return self._either_tokens(self.evaluate_rule(left, scope), self.evaluate_rule(right, scope))
            return Fallback(render(node))

        if kind == 'variable_name':
            binding = scope.get(variable_name(node))
            if binding is not None and isinstance(binding.tokens, Resolved):
                return binding.tokens
            return Fallback(render(node))

        if kind == 'conditional_expression':
            condition, body, alternative = ternary_parts(node)
            left = body if body is not None else condition
            return self._either_tokens(self.evaluate_rule(left, scope), self.evaluate_rule(alternative, scope))

        if kind == 'function_call_expression' and call_name(node) == 'array_merge':
            tokens = []
            for arg in argument_nodes(node):
                nested = self.evaluate_rule(arg, scope)
                if isinstance(nested, Resolved):
                    tokens.extend(nested.value)
                elif isinstance(nested, Fallback):
                    tokens.append(nested.text)
            return Resolved(tokens)

        if kind == 'scoped_call_expression':
            return self._static_chain(node, [], scope)

        if kind in MEMBER_CALL_TYPES:
            root, chain = self._chain(node)
            if root is not None and root.type == 'scoped_call_expression':
                return self._static_chain(root, chain, scope)
            if root is not None and root.type == 'object_creation_expression':
                return self._new_rule(root, chain, scope)
            if is_this(call_object(node)) and call_name(node) in self.methods:
                return self._delegate_tokens(call_name(node))
            return Fallback(render(node))

        if kind == 'object_creation_expression':
            return self._new_rule(node, [], scope)

        return Fallback(render(node))

    def _either_tokens(self, first: Result, second: Result) -> Result:
        if not isinstance(first, Resolved):
            return second if not isinstance(second, Empty) else first
        if not isinstance(second, Resolved):
            return first
        return Resolved(dedupe_tokens(first.value + second.value))

    def _rule_item(self, node: Node, scope: Dict[str, Binding]) -> List[Any]:
        """Tokens for one element of an array-form rule list"""
        node = unwrap(node)
        if node is None:
            return []
        if node.type in STRING_TYPES:
            value = string_value(node)
            return [value if value is not None else interpolated_body(node)]
        result = self.evaluate_rule(node, scope)
        if isinstance(result, Resolved):
            return list(result.value)
        if isinstance(result, Fallback):
            return [result.text]
        return []

    def _concat_literal(self, node: Node) -> Optional[str]:
        """Joined value of a fully literal concatenation, else None"""
        operands: List[Node] = []
        stack = [node]
        while stack:
            current = unwrap(stack.pop())
            if current is not None and current.type == 'binary_expression' and binary_operator(current) == '.':
                left, right = binary_operands(current)
                stack.append(right)
                stack.append(left)
            elif current is not None:
                operands.append(current)
        parts = []
        for operand in operands:
            value = literal_value(operand)
            if value is NOT_LITERAL or isinstance(value, (list, dict)):
                return None
            parts.append(php_string(value))
        return ''.join(parts)

    def _chain(self, node: Node) -> Tuple[Optional[Node], List[Node]]:
        """Root expression of a method chain and the calls applied to it, innermost first"""
        calls = []
        current = node
        while current is not None and current.type in MEMBER_CALL_TYPES:
            calls.append(current)
            current = unwrap(call_object(current))
        return current, list(reversed(calls))

    def _delegate_tokens(self, name: str) -> Result:
        if name in self._resolving:
            return EMPTY
        self._resolving.append(name)
        try:
            for node in walk_outside_closures(self.methods[name]):
                if node.type == 'return_statement':
                    values = named(node)
                    return self.evaluate_rule(values[0], {}) if values else EMPTY
        finally:
            self._resolving.pop()
        return EMPTY

    def _static_chain(self, root: Node, chain: List[Node], scope: Dict[str, Binding]) -> Result:
        scope_name = call_scope(root)
        name = call_name(root) or ''
        if scope_name == 'Rule':
            builder = self._rule_builders.get(name)
            if builder is None:
                return Resolved([snake_case(name)])
            return Resolved(builder(root, chain, scope))
        if scope_name == 'Password':
            return Resolved([self._password([root] + chain)])
        if scope_name == 'File':
            return Resolved(self._file_rule([root] + chain))
        if scope_name in ('self', 'static') and name in self.methods:
            return self._delegate_tokens(name)
        return Fallback(render(chain[-1] if chain else root))

    def _new_rule(self, node: Node, chain: List[Node], scope: Dict[str, Binding]) -> Result:
        raw = new_class_name(node)
        if raw is None:
            return Fallback(render(node))
        name = short_name(raw)
        args = arguments(node)
        if not self._is_framework_rule(raw):
            return Resolved([self._custom_rule(name, args)])
        values = [value for _, value in args]
        if name == 'Enum':
            return Resolved([self._enum_descriptor(values[0]) if values else ENUM_FALLBACK])
        if name in ('In', 'NotIn'):
            prefix = 'in' if name == 'In' else 'not_in'
            return Resolved([self._in_token(prefix, values)])
        if name in ('Unique', 'Exists'):
            return Resolved([self._table_token(name.lower(), values)])
        if name == 'Password':
            return Resolved([self._password([node] + chain)])
        if name == 'Dimensions':
            return Resolved(self._rule_dimensions(node, chain, scope))
        if name == 'File':
            return Resolved(self._file_rule([node] + chain))
        if name == 'ImageFile':
            return Resolved(['image'] + self._file_rule(chain)[1:])
        if name == 'Email':
            return Resolved(['email'])
        return Resolved([snake_case(name)])

    def _is_framework_rule(self, raw: str) -> bool:
        name = short_name(raw)
        if name not in FRAMEWORK_RULE_CLASSES:
            return False
        if '\\' in raw:
            return raw.lstrip('\\').startswith('Illuminate\\')
        if self.source_file is not None:
            imported = self.source_file.use_statements.get(raw)
            if imported is not None:
                return imported.startswith('Illuminate\\')
        return True

    def _custom_rule(self, name: str, args: List[Tuple[Optional[str], Node]]) -> Dict[str, Any]:
        if any(arg_name for arg_name, _ in args):
            values: Any = {}
            for index, (arg_name, value) in enumerate(args):
                values[arg_name or str(index)] = self._argument_value(value)
        else:
            values = [self._argument_value(value) for _, value in args]
        return {'type': 'custom_rule', 'class': name, 'args': values}

    def _argument_value(self, node: Node) -> Any:
        value = literal_value(node)
        return render(node) if value is NOT_LITERAL else value

    def _enum_descriptor(self, node: Node) -> Union[str, Dict[str, Any]]:
        node = unwrap(node)
        if node is None or node.type != 'class_constant_access_expression':
            return ENUM_FALLBACK
        parts = named(node)
        if len(parts) != 2 or node_text(parts[1]) != 'class':
            return ENUM_FALLBACK
        raw = node_text(parts[0])
        descriptor: Dict[str, Any] = {'type': 'enum', 'class': short_name(raw)}
        if self.enum_resolver is not None:
            fqcn = self.source_file.resolve_name(raw) if self.source_file is not None else raw
            info = self.enum_resolver(fqcn)
            if info is not None:
                descriptor['values'] = list(info.values)
                descriptor['backing'] = info.type
        return descriptor

    def _in_token(self, prefix: str, values: List[Node]) -> str:
        if not values:
            return f"{prefix}:"
        items: List[Any] = []
        for node in values:
            value = literal_value(node)
            if isinstance(value, list):
                items.extend(value)
            elif value is NOT_LITERAL or isinstance(value, dict):
                return f"{prefix}:..."
            else:
                items.append(value)
        if any(isinstance(item, (list, dict)) for item in items):
            return f"{prefix}:..."
        return f"{prefix}:" + ','.join(php_string(item) for item in items)

    def _table_token(self, prefix: str, values: List[Node]) -> str:
        table = literal_value(values[0]) if values else NOT_LITERAL
        if isinstance(table, str) and table:
            return f"{prefix}:{table}"
        return f"{prefix}:..."

    # -- Rule:: builders ----------------------------------------------------

    def _rule_in(self, root: Node, chain: List[Node], scope: Dict[str, Binding]) -> List[Any]:
        return [self._in_token('in', argument_nodes(root))]

    def _rule_not_in(self, root: Node, chain: List[Node], scope: Dict[str, Binding]) -> List[Any]:
        return [self._in_token('not_in', argument_nodes(root))]

    def _rule_exists(self, root: Node, chain: List[Node], scope: Dict[str, Binding]) -> List[Any]:
        return [self._table_token('exists', argument_nodes(root))]

    def _rule_unique(self, root: Node, chain: List[Node], scope: Dict[str, Binding]) -> List[Any]:
        return [self._table_token('unique', argument_nodes(root))]

    def _rule_required_if(self, root: Node, chain: List[Node], scope: Dict[str, Binding]) -> List[Any]:
        parts = []
        for node in argument_nodes(root):
            value = literal_value(node)
            if isinstance(value, (str, int, float)) and not isinstance(value, bool):
                parts.append(php_string(value))
        return ['required_if:' + ':'.join(parts)]

    def _rule_when(self, root: Node, chain: List[Node], scope: Dict[str, Binding]) -> List[Any]:
        args = argument_nodes(root)
        if not args:
            return ['sometimes']
        condition = literal_value(args[0])
        if condition is NOT_LITERAL:
            return ['sometimes']
        if condition:
            return self.evaluate_tokens(args[1], scope) if len(args) > 1 else []
        return self.evaluate_tokens(args[2], scope) if len(args) > 2 else []

    def _rule_enum(self, root: Node, chain: List[Node], scope: Dict[str, Binding]) -> List[Any]:
        args = argument_nodes(root)
        return [self._enum_descriptor(args[0]) if args else ENUM_FALLBACK]

    def _rule_dimensions(self, root: Node, chain: List[Node], scope: Dict[str, Binding]) -> List[Any]:
        constraints: Dict[str, Any] = {}
        args = argument_nodes(root)
        if args:
            initial = literal_value(args[0])
            if isinstance(initial, dict):
                constraints.update(initial)
        for call in chain:
            name = call_name(call) or ''
            values = argument_nodes(call)
            value = literal_value(values[0]) if values else NOT_LITERAL
            if value is NOT_LITERAL:
                value = render(values[0]) if values else ''
            constraints[snake_case(name)] = value
        if not constraints:
            return ['dimensions']
        return ['dimensions:' + ','.join(f"{k}={php_string(v)}" for k, v in constraints.items())]

    def _password(self, calls: List[Node]) -> Dict[str, Any]:
        descriptor: Dict[str, Any] = {
            'type': 'password',
            'min_length': DEFAULT_PASSWORD_LENGTH,
            'letters': False,
            'mixed_case': False,
            'numbers': False,
            'symbols': False,
            'uncompromised': False,
        }
        for call in calls:
            name = 'min' if call.type == 'object_creation_expression' else (call_name(call) or '')
            values = argument_nodes(call)
            value = literal_value(values[0]) if values else NOT_LITERAL
            if name == 'min' and isinstance(value, int):
                descriptor['min_length'] = value
            elif name == 'max' and isinstance(value, int):
                descriptor['max_length'] = value
            elif name in ('letters', 'numbers', 'symbols', 'uncompromised'):
                descriptor[name] = True
            elif name == 'mixedCase':
                descriptor['mixed_case'] = True
        return descriptor

    def _file_rule(self, calls: List[Node]) -> List[Any]:
        tokens: List[Any] = ['file']
        for call in calls:
            name = 'types' if call.type == 'object_creation_expression' else (call_name(call) or '')
            values = argument_nodes(call)
            value = literal_value(values[0]) if values else NOT_LITERAL
            if name == 'image':
                tokens[0] = 'image'
            elif name == 'types' and value is not NOT_LITERAL and value is not None:
                extensions = value if isinstance(value, list) else [value]
                tokens.append('mimes:' + ','.join(php_string(e) for e in extensions))
            elif name in ('max', 'min'):
                size = kilobytes(value)
                if size is not None:
                    tokens.append(f"{name}:{size}")
            elif name == 'between' and len(values) == 2:
                low, high = kilobytes(literal_value(values[0])), kilobytes(literal_value(values[1]))
                if low is not None and high is not None:
                    tokens.append(f"between:{low},{high}")
            elif name == 'dimensions' and values:
                nested = self.evaluate_rule(values[0], {})
                if isinstance(nested, Resolved):
                    tokens.extend(nested.value)
        return tokens
