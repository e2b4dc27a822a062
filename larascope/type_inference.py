"""
Type inference from validation rule tokens.

TypeInference.infer() is a pure function: the same token list always gives the
same TypeInfo. The base type comes from the first category of the precedence
table that any token belongs to; bounds, formats and enums are then applied
according to that base type.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .file_uploads import FileUploadAnalyzer, FileUploadInfo, rule_name, rule_parameters
from .requirements import RuleRequirementAnalyzer

logger = logging.getLogger(__name__)

TYPE_PRECEDENCE: List[Tuple[str, Optional[str], Tuple[str, ...]]] = [
    ('file', 'binary', ('file', 'image', 'mimes', 'mimetypes', 'dimensions')),
    ('integer', None, ('integer', 'int', 'digits', 'digits_between')),
    ('number', None, ('numeric', 'decimal')),
    ('boolean', None, ('boolean', 'bool', 'accepted', 'declined', 'accepted_if', 'declined_if')),
    ('array', None, ('array', 'list')),
    ('object', None, ('json',)),
    ('string', 'email', ('email',)),
    ('string', 'date-time', ('date', 'date_format', 'after', 'before', 'after_or_equal',
                             'before_or_equal', 'date_equals')),
    ('string', 'uuid', ('uuid',)),
]

STRING_FORMATS = {
    'url': 'uri',
    'active_url': 'uri',
    'ip': 'ipv4',
    'ipv4': 'ipv4',
    'ipv6': 'ipv6',
    'mac_address': 'mac',
    'ulid': 'ulid',
    'current_password': 'password',
}

NAMED_PATTERNS = {
    'alpha': '^[a-zA-Z]+$',
    'alpha_num': '^[a-zA-Z0-9]+$',
    'alpha_dash': '^[a-zA-Z0-9_-]+$',
    'lowercase': '^[^A-Z]*$',
    'uppercase': '^[^a-z]*$',
}

BOUND_RULES = ('min', 'max', 'size', 'between', 'gt', 'gte', 'lt', 'lte')
NUMERIC_TYPES = ('integer', 'number')


@dataclass
class TypeInfo:
    """Structured type descriptor for one validated field"""
    type: str = 'string'
    format: Optional[str] = None
    nullable: bool = False
    required: bool = False
    conditionally_required: bool = False
    enum: Optional[List[Any]] = None
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    exclusive_minimum: bool = False
    exclusive_maximum: bool = False
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    min_items: Optional[int] = None
    max_items: Optional[int] = None
    pattern: Optional[str] = None
    file_info: Optional[FileUploadInfo] = None
    items: Optional[Dict[str, Any]] = None
    properties: Optional[Dict[str, Any]] = None
    example: Any = None
    description: Optional[str] = None

    def to_schema(self) -> Dict[str, Any]:
        """OpenAPI 3.0 schema object"""
        if self.type == 'file':
            schema: Dict[str, Any] = {'type': 'string', 'format': 'binary'}
        elif self.type == 'mixed':
            schema = {}
        else:
            schema = {'type': self.type}
            if self.format:
                schema['format'] = self.format
        if self.nullable:
            schema['nullable'] = True
        if self.enum is not None:
            schema['enum'] = list(self.enum)
        if self.minimum is not None:
            schema['minimum'] = self.minimum
            if self.exclusive_minimum:
                schema['exclusiveMinimum'] = True
        if self.maximum is not None:
            schema['maximum'] = self.maximum
            if self.exclusive_maximum:
                schema['exclusiveMaximum'] = True
        if self.min_length is not None:
            schema['minLength'] = self.min_length
        if self.max_length is not None:
            schema['maxLength'] = self.max_length
        if self.min_items is not None:
            schema['minItems'] = self.min_items
        if self.max_items is not None:
            schema['maxItems'] = self.max_items
        if self.pattern is not None:
            schema['pattern'] = self.pattern
        if self.type == 'array':
            schema['items'] = dict(self.items) if self.items else {}
        if self.properties:
            schema['properties'] = dict(self.properties)
        if self.description:
            schema['description'] = self.description
        if self.example is not None:
            schema['example'] = self.example
        return schema

    def to_dict(self) -> Dict[str, Any]:
        result = {}
        for name in self.__dataclass_fields__:
            value = getattr(self, name)
            if name == 'file_info':
                value = value.to_dict() if value is not None else None
            result[name] = value
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TypeInfo':
        values = {name: data[name] for name in cls.__dataclass_fields__ if name in data}
        if values.get('file_info') is not None:
            values['file_info'] = FileUploadInfo.from_dict(values['file_info'])
        return cls(**values)


def to_number(value: str) -> Optional[float]:
    value = value.strip()
    if re.fullmatch(r'-?\d+', value):
        return int(value)
    if re.fullmatch(r'-?\d*\.\d+', value):
        return float(value)
    return None


def strip_regex_delimiters(expression: str) -> str:
    """/^[a-z]+$/i -> ^[a-z]+$"""
    expression = expression.strip()
    if len(expression) >= 2 and not expression[0].isalnum() and expression[0] != '\\':
        delimiter = {'(': ')', '{': '}', '[': ']', '<': '>'}.get(expression[0], expression[0])
        end = expression.rfind(delimiter)
        if end > 0:
            return expression[1:end]
    return expression


def split_concatenation(text: str) -> List[str]:
    """Top-level operands of a rendered `a . b` expression"""
    operands, current = [], []
    depth, quote = 0, None
    for index, char in enumerate(text):
        if quote:
            current.append(char)
            if char == quote and text[index - 1] != '\\':
                quote = None
            continue
        if char in ('"', "'"):
            quote = char
        elif char in '([{':
            depth += 1
        elif char in ')]}':
            depth -= 1
        elif char == '.' and depth == 0:
            before = text[index - 1] if index else ''
            after = text[index + 1] if index + 1 < len(text) else ''
            if not (before.isdigit() and after.isdigit()):
                operands.append(''.join(current).strip())
                current = []
                continue
        current.append(char)
    operands.append(''.join(current).strip())
    return operands


def expand_tokens(tokens: List[Any]) -> List[Any]:
    """Re-expand rendered concatenation fallbacks from their quoted segments"""
    expanded: List[Any] = []
    for token in tokens:
        if isinstance(token, str) and ("'" in token or '"' in token) and '.' in token:
            operands = split_concatenation(token)
            if len(operands) > 1:
                literal = ''.join(op[1:-1] for op in operands
                                  if len(op) >= 2 and op[0] == op[-1] and op[0] in ('"', "'"))
                for part in literal.split('|'):
                    part = part.strip()
                    # a trailing parameter separator means the value was dynamic
                    if part and not part.endswith(':') and part not in expanded:
                        expanded.append(part)
                continue
        if token not in expanded:
            expanded.append(token)
    return expanded


def field_leaf(field_name: Optional[str]) -> str:
    """Last meaningful segment of a dotted field name"""
    if not field_name:
        return ''
    parts = [p for p in field_name.split('.') if p and p != '*']
    return parts[-1].lower() if parts else ''


class TypeInference:
    """Map rule token lists to TypeInfo"""

    def __init__(self):
        self.file_analyzer = FileUploadAnalyzer()
        self.requirements = RuleRequirementAnalyzer()

    def infer(self, tokens: List[Any], field_name: Optional[str] = None) -> TypeInfo:
        tokens = expand_tokens(list(tokens))
        names = [rule_name(t) for t in tokens]
        descriptors = [t for t in tokens if isinstance(t, dict)]

        info = TypeInfo()
        info.type, info.format = self._base_type(names, descriptors)
        info.nullable = 'nullable' in names
        info.required = self.requirements.is_required(tokens)
        info.conditionally_required = self.requirements.is_conditionally_required(tokens)

        if info.type == 'string' and info.format is None:
            for name in names:
                if name in STRING_FORMATS:
                    info.format = STRING_FORMATS[name]
                    break

        for token in tokens:
            if isinstance(token, dict):
                self._apply_descriptor(info, token)
                continue
            name = rule_name(token)
            parameters = rule_parameters(token)
            if name in BOUND_RULES:
                self._apply_bound(info, name, parameters)
            elif name == 'in' and parameters:
                info.enum = self._enum_values(info.type, parameters.split(','))
            elif name == 'regex' and parameters:
                info.pattern = strip_regex_delimiters(parameters)
            elif name in NAMED_PATTERNS and info.pattern is None:
                info.pattern = NAMED_PATTERNS[name]
            elif name == 'digits' and info.type == 'integer':
                digits = to_number(parameters)
                if isinstance(digits, int) and digits > 0:
                    info.minimum = 10 ** (digits - 1) if digits > 1 else 0
                    info.maximum = 10 ** digits - 1

        if info.type == 'file':
            info.file_info = self.file_analyzer.analyze(tokens, field_name or '')
            if info.file_info is not None:
                info.description = info.file_info.description() or None

        logger.debug("Inferred %s for %s from %s", info.type, field_name, tokens)
        return info

    def _base_type(self, names: List[str], descriptors: List[Dict[str, Any]]) -> Tuple[str, Optional[str]]:
        for type_name, type_format, rule_names in TYPE_PRECEDENCE:
            if any(name in rule_names for name in names):
                return type_name, type_format
        for descriptor in descriptors:
            if descriptor.get('type') == 'enum':
                return ('integer' if descriptor.get('backing') == 'int' else 'string'), None
        for descriptor in descriptors:
            if descriptor.get('type') == 'password':
                return 'string', 'password'
        return 'string', None

    def _apply_bound(self, info: TypeInfo, name: str, parameters: str) -> None:
        if name == 'between':
            low, _, high = parameters.partition(',')
            self._apply_bound(info, 'min', low)
            self._apply_bound(info, 'max', high)
            return
        if name == 'size':
            self._apply_bound(info, 'min', parameters)
            self._apply_bound(info, 'max', parameters)
            return
        value = to_number(parameters)
        # gt:other_field compares against another field, not a constant
        if value is None or info.type in ('file', 'boolean', 'object'):
            return
        lower = name in ('min', 'gt', 'gte')
        exclusive = name in ('gt', 'lt')
        if info.type in NUMERIC_TYPES:
            if lower:
                info.minimum = value
                info.exclusive_minimum = exclusive
            else:
                info.maximum = value
                info.exclusive_maximum = exclusive
        elif info.type == 'array':
            count = int(value) + (1 if exclusive and lower else -1 if exclusive else 0)
            if lower:
                info.min_items = count
            else:
                info.max_items = count
        else:
            length = int(value) + (1 if exclusive and lower else -1 if exclusive else 0)
            if lower:
                info.min_length = length
            else:
                info.max_length = length

    def _enum_values(self, type_name: str, values: List[Any]) -> List[Any]:
        result = []
        for value in values:
            if isinstance(value, str):
                value = value.strip().strip('"\'')
                if type_name in NUMERIC_TYPES:
                    number = to_number(value)
                    if number is not None:
                        value = int(number) if type_name == 'integer' else number
            if value not in result:
                result.append(value)
        return result

    def _apply_descriptor(self, info: TypeInfo, descriptor: Dict[str, Any]) -> None:
        kind = descriptor.get('type')
        if kind == 'enum':
            values = descriptor.get('values')
            if values:
                info.enum = self._enum_values(info.type, list(values))
            if not info.description:
                info.description = f"One of {descriptor.get('class')} values"
        elif kind == 'password':
            info.min_length = descriptor.get('min_length')
            if descriptor.get('max_length') is not None:
                info.max_length = descriptor['max_length']
            requirements = [label for key, label in (('letters', 'letters'), ('mixed_case', 'mixed case'),
                                                     ('numbers', 'numbers'), ('symbols', 'symbols'))
                            if descriptor.get(key)]
            if requirements:
                info.description = 'Must contain ' + ', '.join(requirements)
        elif kind == 'custom_rule':
            args = descriptor.get('args')
            if isinstance(args, dict):
                self._apply_custom_args(info, args)

    def _apply_custom_args(self, info: TypeInfo, args: Dict[str, Any]) -> None:
        numeric = info.type in NUMERIC_TYPES
        for key, value in args.items():
            if key in ('minLength', 'min_length') and isinstance(value, int):
                info.min_length = value
            elif key in ('maxLength', 'max_length') and isinstance(value, int):
                info.max_length = value
            elif key == 'min' and isinstance(value, (int, float)):
                if numeric:
                    info.minimum = value
                else:
                    info.min_length = int(value)
            elif key == 'max' and isinstance(value, (int, float)):
                if numeric:
                    info.maximum = value
                else:
                    info.max_length = int(value)
            elif key in ('pattern', 'regex') and isinstance(value, str):
                info.pattern = strip_regex_delimiters(value)
            elif key == 'format' and isinstance(value, str):
                info.format = value


def generate_example(field_name: Optional[str], type_info: TypeInfo) -> Any:
    """Plausible example value from the field name and inferred type"""
    name = field_leaf(field_name)

    if type_info.enum:
        return type_info.enum[0]
    if type_info.type == 'file':
        return None
    if type_info.type == 'boolean':
        return True
    if type_info.type == 'array':
        return []
    if type_info.type == 'object':
        return {'key': 'value'}
    if type_info.type == 'integer':
        return _integer_example(name, type_info)
    if type_info.type == 'number':
        value = 99.99 if any(k in name for k in ('price', 'amount', 'cost', 'total')) else 19.99
        if type_info.maximum is not None and value > type_info.maximum:
            value = type_info.maximum
        if type_info.minimum is not None and value < type_info.minimum:
            value = type_info.minimum
        return value

    formats = {
        'email': 'user@example.com',
        'date-time': '2024-01-01T00:00:00Z',
        'uuid': '550e8400-e29b-41d4-a716-446655440000',
        'uri': 'https://example.com',
        'ipv4': '192.168.1.1',
        'ipv6': '2001:0db8:85a3:0000:0000:8a2e:0370:7334',
        'mac': '00:11:22:33:44:55',
        'ulid': '01ARZ3NDEKTSV4RRFFQ69G5FAV',
        'password': 'password123',
    }
    if type_info.format in formats:
        value = formats[type_info.format]
    elif 'email' in name:
        value = 'user@example.com'
    elif 'password' in name:
        value = 'password123'
    elif name in ('first_name', 'firstname'):
        value = 'John'
    elif name in ('last_name', 'lastname'):
        value = 'Doe'
    elif 'name' in name:
        value = 'John Doe'
    elif 'phone' in name:
        value = '+1234567890'
    elif 'address' in name:
        value = '123 Main Street'
    elif 'url' in name or 'website' in name:
        value = 'https://example.com'
    elif 'slug' in name:
        value = 'example-slug'
    elif 'title' in name:
        value = 'Example title'
    elif 'description' in name or 'body' in name or 'content' in name:
        value = 'Lorem ipsum dolor sit amet.'
    elif 'date' in name:
        value = '2024-01-01'
    elif 'timezone' in name:
        value = 'UTC'
    elif 'time' in name:
        value = '14:30:00'
    elif 'country' in name:
        value = 'US'
    elif 'token' in name:
        value = 'abc123def456'
    else:
        value = 'string'

    if type_info.max_length is not None and len(value) > type_info.max_length:
        value = value[:max(type_info.max_length, 0)]
    if type_info.min_length is not None and len(value) < type_info.min_length:
        value = value + 'x' * (type_info.min_length - len(value))
    return value


def _integer_example(name: str, type_info: TypeInfo) -> int:
    minimum = int(type_info.minimum) if type_info.minimum is not None else 1
    maximum = int(type_info.maximum) if type_info.maximum is not None else 100
    if name == 'id' or name.endswith('_id'):
        value = 1
    elif 'age' in name:
        value = 25
    elif any(k in name for k in ('count', 'quantity', 'per_page', 'limit')):
        value = 10
    elif name == 'page':
        value = 1
    else:
        value = minimum + 1
    return max(min(value, maximum), minimum)
