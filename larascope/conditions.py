"""
Classification of branch conditions found in rules() methods.

Only the left-most operand of a negation or conjunction decides the kind; the
rest of a compound condition survives only in the rendered expression text.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from tree_sitter import Node

from .parser import (MEMBER_CALL_TYPES, arguments, binary_operands, binary_operator, call_name,
                     call_object, call_scope, is_this, named, render, string_value,
                     unary_operator, unwrap, variable_name)

HTTP_METHOD_CALLS = ('isMethod',)
METHOD_ACCESSORS = ('method', 'getMethod', 'getRealMethod')
USER_ACCESSORS = ('user',)
AUTH_CHECKS = ('check', 'guest')
FIELD_CHECKS = ('has', 'filled', 'missing', 'exists', 'hasAny', 'anyFilled', 'isNotFilled')
FIELD_ACCESSORS = ('input', 'get', 'query', 'post', 'boolean', 'string', 'integer', 'route')
COMPARISON_OPERATORS = ('==', '===', '!=', '!==', '<>', '<', '>', '<=', '>=')


class ConditionKind(str, Enum):
    HTTP_METHOD = 'http_method'
    USER_CHECK = 'user_check'
    REQUEST_FIELD = 'request_field'
    RULE_WHEN = 'rule_when'
    ELSE_BRANCH = 'else'
    CUSTOM = 'custom'


@dataclass(frozen=True)
class ConditionResult:
    """One classified branch condition"""
    kind: ConditionKind
    expression: str
    method: Optional[str] = None
    check: Optional[str] = None
    field: Optional[str] = None

    @classmethod
    def http_method(cls, method: Optional[str], expression: str) -> 'ConditionResult':
        return cls(ConditionKind.HTTP_METHOD, expression, method=method.upper() if method else None)

    @classmethod
    def user_check(cls, method: str, expression: str) -> 'ConditionResult':
        return cls(ConditionKind.USER_CHECK, expression, method=method)

    @classmethod
    def request_field(cls, check: Optional[str], field: Optional[str], expression: str) -> 'ConditionResult':
        return cls(ConditionKind.REQUEST_FIELD, expression, check=check, field=field)

    @classmethod
    def rule_when(cls, expression: str) -> 'ConditionResult':
        return cls(ConditionKind.RULE_WHEN, expression)

    @classmethod
    def custom(cls, expression: str) -> 'ConditionResult':
        return cls(ConditionKind.CUSTOM, expression)

    @classmethod
    def else_branch(cls, description: str = 'Default case') -> 'ConditionResult':
        return cls(ConditionKind.ELSE_BRANCH, description)

    def is_http_method(self) -> bool:
        return self.kind == ConditionKind.HTTP_METHOD

    def is_else_branch(self) -> bool:
        return self.kind == ConditionKind.ELSE_BRANCH

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {'type': self.kind.value}
        if self.kind == ConditionKind.ELSE_BRANCH:
            result['description'] = self.expression
        else:
            result['expression'] = self.expression
        if self.method is not None:
            result['method'] = self.method
        if self.check is not None:
            result['check'] = self.check
        if self.field is not None:
            result['field'] = self.field
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ConditionResult':
        kind = ConditionKind(data['type'])
        if kind == ConditionKind.ELSE_BRANCH:
            expression = data.get('description', 'Default case')
        else:
            expression = data.get('expression', '')
        return cls(kind, expression, method=data.get('method'), check=data.get('check'),
                   field=data.get('field'))


def is_request_receiver(node: Optional[Node]) -> bool:
    """$this (a FormRequest), $request, request() or $this->request"""
    node = unwrap(node)
    if node is None:
        return False
    if is_this(node) or variable_name(node) in ('request', 'req'):
        return True
    if node.type == 'function_call_expression' and call_name(node) == 'request':
        return True
    if node.type == 'member_access_expression':
        return is_this(node.child_by_field_name('object')) and call_name(node) == 'request'
    return False


def is_user_accessor(node: Optional[Node]) -> bool:
    """$this->user(), $request->user(), auth()->user(), Auth::user()"""
    node = unwrap(node)
    if node is None:
        return False
    if node.type in MEMBER_CALL_TYPES and call_name(node) in USER_ACCESSORS:
        receiver = unwrap(call_object(node))
        if is_request_receiver(receiver):
            return True
        return receiver is not None and receiver.type == 'function_call_expression' and call_name(receiver) == 'auth'
    if node.type == 'scoped_call_expression' and call_scope(node) == 'Auth':
        return call_name(node) in USER_ACCESSORS
    if node.type == 'function_call_expression' and call_name(node) == 'auth':
        return True
    return False


class ConditionClassifier:
    """Classify boolean expressions into ConditionResult values"""

    def classify(self, node: Node) -> ConditionResult:
        expression = render(unwrap(node))
        return self._classify(unwrap(node), expression)

    def else_branch(self) -> ConditionResult:
        return ConditionResult.else_branch()

    def _classify(self, node: Optional[Node], expression: str) -> ConditionResult:
        if node is None:
            return ConditionResult.custom(expression)

        if node.type == 'unary_op_expression' and unary_operator(node) == '!':
            operand = named(node)
            if operand:
                return self._classify(unwrap(operand[-1]), expression)

        if node.type == 'binary_expression':
            operator = binary_operator(node)
            left, right = binary_operands(node)
            if operator in ('&&', 'and'):
                return self._classify(unwrap(left), expression)
            if operator in COMPARISON_OPERATORS:
                return self._classify_comparison(unwrap(left), unwrap(right), expression)
            return ConditionResult.custom(expression)

        result = self._http_method(node, expression)
        if result is None:
            result = self._user_check(node, expression)
        if result is None:
            result = self._request_field(node, expression)
        if result is None:
            result = self._rule_when(node, expression)
        return result or ConditionResult.custom(expression)

    def _http_method(self, node: Node, expression: str) -> Optional[ConditionResult]:
        if node.type in MEMBER_CALL_TYPES and call_name(node) in HTTP_METHOD_CALLS:
            args = arguments(node)
            method = string_value(args[0][1]) if args else None
            return ConditionResult.http_method(method, expression)
        return None

    def _user_check(self, node: Node, expression: str) -> Optional[ConditionResult]:
        if is_user_accessor(node):
            return ConditionResult.user_check(call_name(node) or 'user', expression)
        if node.type in MEMBER_CALL_TYPES:
            receiver = unwrap(call_object(node))
            name = call_name(node)
            if is_user_accessor(receiver):
                return ConditionResult.user_check(name, expression)
            if (receiver is not None and receiver.type == 'function_call_expression'
                    and call_name(receiver) == 'auth' and name in AUTH_CHECKS):
                return ConditionResult.user_check(name, expression)
        if node.type == 'scoped_call_expression' and call_scope(node) == 'Auth' and call_name(node) in AUTH_CHECKS:
            return ConditionResult.user_check(call_name(node), expression)
        return None

    def _request_field(self, node: Node, expression: str) -> Optional[ConditionResult]:
        if node.type in MEMBER_CALL_TYPES and call_name(node) in FIELD_CHECKS:
            if is_request_receiver(call_object(node)):
                args = arguments(node)
                field = string_value(args[0][1]) if args else None
                return ConditionResult.request_field(call_name(node), field, expression)
        return None

    def _rule_when(self, node: Node, expression: str) -> Optional[ConditionResult]:
        if node.type == 'scoped_call_expression' and call_scope(node) == 'Rule' and call_name(node) == 'when':
            return ConditionResult.rule_when(expression)
        return None

    def _classify_comparison(self, left: Optional[Node], right: Optional[Node],
                             expression: str) -> ConditionResult:
        for call, other in ((left, right), (right, left)):
            if call is None or call.type not in MEMBER_CALL_TYPES:
                continue
            name = call_name(call)
            if name in METHOD_ACCESSORS and is_request_receiver(call_object(call)):
                return ConditionResult.http_method(string_value(other), expression)
            if name in FIELD_ACCESSORS and is_request_receiver(call_object(call)):
                args = arguments(call)
                field = string_value(args[0][1]) if args else None
                return ConditionResult.request_field(name, field, expression)
        if left is not None:
            return self._classify(left, expression)
        return ConditionResult.custom(expression)


def describe(condition: ConditionResult) -> str:
    """Short human readable label for a condition"""
    if condition.kind == ConditionKind.HTTP_METHOD and condition.method:
        return f"HTTP method is {condition.method}"
    if condition.kind == ConditionKind.USER_CHECK:
        return f"user check {condition.method}()"
    if condition.kind == ConditionKind.REQUEST_FIELD and condition.field:
        return f"request {condition.check} '{condition.field}'"
    if condition.kind == ConditionKind.ELSE_BRANCH:
        return condition.expression
    return condition.expression
