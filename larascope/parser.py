"""
PHP source parsing with tree-sitter.

Wraps the tree-sitter PHP grammar and exposes the small set of node helpers
the analyzers share: literal extraction, argument and array element access,
class/method lookup and source rendering for fallback tokens.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

import tree_sitter_php as tsphp
from tree_sitter import Language, Node, Parser

logger = logging.getLogger(__name__)

PHP_LANGUAGE = Language(tsphp.language_php())

STRING_TYPES = ('string', 'encapsed_string')
CLOSURE_TYPES = ('anonymous_function', 'anonymous_function_creation_expression', 'arrow_function')
CALL_TYPES = ('member_call_expression', 'nullsafe_member_call_expression',
              'scoped_call_expression', 'function_call_expression')
MEMBER_CALL_TYPES = ('member_call_expression', 'nullsafe_member_call_expression')
MEMBER_ACCESS_TYPES = ('member_access_expression', 'nullsafe_member_access_expression')
NAME_TYPES = ('name', 'qualified_name', 'relative_name')
# quoted literals are kept verbatim by render()
QUOTED_OR_SPACE = re.compile(r"""('(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")|\s+""", re.DOTALL)


class _NotLiteral:
    """Sentinel for expressions without a static value"""

    def __repr__(self):
        return 'NOT_LITERAL'

    def __bool__(self):
        return False


NOT_LITERAL = _NotLiteral()


@dataclass
class ParseFailure:
    """A source file that could not be turned into a usable syntax tree"""
    path: str
    reason: str
    message: str = ''
    line: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'path': self.path, 'reason': self.reason, 'message': self.message, 'line': self.line}


@dataclass
class SourceFile:
    """Parsed PHP file with namespace and import context"""
    path: Path
    source: bytes
    tree: Any
    _uses: Optional[Dict[str, str]] = field(default=None, repr=False)
    _namespace: Optional[str] = field(default=None, repr=False)

    @property
    def root(self) -> Node:
        return self.tree.root_node

    @property
    def text(self) -> str:
        return self.source.decode('utf-8', errors='ignore')

    @property
    def namespace(self) -> str:
        if self._namespace is None:
            self._namespace = ''
            for node in walk(self.root):
                if node.type == 'namespace_definition':
                    name_node = node.child_by_field_name('name')
                    if name_node is None:
                        name_node = find_child(node, 'namespace_name')
                    if name_node is not None:
                        self._namespace = node_text(name_node)
                    break
        return self._namespace

    @property
    def use_statements(self) -> Dict[str, str]:
        """Alias -> fully qualified class name"""
        if self._uses is None:
            self._uses = {}
            for node in walk(self.root):
                if node.type == 'namespace_use_declaration':
                    self._uses.update(parse_use_statement(node_text(node)))
        return self._uses

    def find_class(self, short_name: Optional[str] = None) -> Optional[Node]:
        """Find a class declaration by short name, or the first one"""
        for node in walk(self.root):
            if node.type == 'class_declaration':
                if short_name is None:
                    return node
                name_node = node.child_by_field_name('name')
                if name_node is not None and node_text(name_node) == short_name:
                    return node
        return None

    def find_enum(self, short_name: Optional[str] = None) -> Optional[Node]:
        for node in walk(self.root):
            if node.type == 'enum_declaration':
                name_node = node.child_by_field_name('name')
                if short_name is None or (name_node is not None and node_text(name_node) == short_name):
                    return node
        return None

    def resolve_name(self, name: str) -> str:
        """Resolve a class reference as written in this file to a FQCN"""
        name = name.strip()
        if name.startswith('\\'):
            return name.lstrip('\\')
        head, _, rest = name.partition('\\')
        uses = self.use_statements
        if head in uses:
            return uses[head] + ('\\' + rest if rest else '')
        if name in ('self', 'static'):
            return name
        if self.namespace:
            return f"{self.namespace}\\{name}"
        return name


class SourceParser:
    """Parse PHP files into tree-sitter syntax trees"""

    def __init__(self):
        self.parser = Parser(PHP_LANGUAGE)

    def parse(self, file_path: Union[str, Path]) -> Union[SourceFile, ParseFailure]:
        """Parse a PHP file; never raises"""
        file_path = Path(file_path)
        try:
            with open(file_path, 'rb') as f:
                source_code = f.read()
        except OSError as e:
            logger.debug("Cannot read %s: %s", file_path, e)
            return ParseFailure(path=str(file_path), reason='unreadable', message=str(e))
        return self.parse_source(source_code, file_path)

    def parse_source(self, source_code: Union[str, bytes],
                     file_path: Union[str, Path] = '<memory>') -> Union[SourceFile, ParseFailure]:
        if isinstance(source_code, str):
            source_code = source_code.encode('utf-8')
        try:
            tree = self.parser.parse(source_code)
        except (ValueError, TypeError) as e:
            return ParseFailure(path=str(file_path), reason='parser', message=str(e))

        if tree.root_node.has_error:
            line = first_error_line(tree.root_node)
            return ParseFailure(
                path=str(file_path),
                reason='syntax',
                message=f"Syntax error near line {line}" if line else 'Syntax error',
                line=line,
            )
        return SourceFile(path=Path(file_path), source=source_code, tree=tree)


def first_error_line(node: Node) -> Optional[int]:
    if node.type == 'ERROR' or node.is_missing:
        return node.start_point[0] + 1
    for child in node.children:
        if child.has_error:
            line = first_error_line(child)
            if line:
                return line
    return None


def render(node: Optional[Node]) -> str:
    """Source text with whitespace runs collapsed outside quoted literals"""
    if node is None:
        return ''
    return QUOTED_OR_SPACE.sub(lambda m: m.group(1) or ' ', node_text(node)).strip()


def node_text(node: Optional[Node]) -> str:
    if node is None or node.text is None:
        return ''
    return node.text.decode('utf-8', errors='ignore')


def named(node: Optional[Node]) -> List[Node]:
    """Named children without comments"""
    if node is None:
        return []
    return [c for c in node.named_children if c.type != 'comment']


def find_child(node: Node, node_type: str) -> Optional[Node]:
    for child in node.children:
        if child.type == node_type:
            return child
    return None


def find_children(node: Node, node_type: str) -> List[Node]:
    return [child for child in node.children if child.type == node_type]


def walk(node: Node) -> Iterator[Node]:
    """Pre-order traversal"""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def walk_outside_closures(node: Node) -> Iterator[Node]:
    """Pre-order traversal that does not descend into closures or nested classes"""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        for child in reversed(current.children):
            if child.type in CLOSURE_TYPES or child.type == 'class_declaration':
                continue
            stack.append(child)


def unwrap(node: Optional[Node]) -> Optional[Node]:
    """Strip parentheses around an expression"""
    while node is not None and node.type == 'parenthesized_expression':
        inner = named(node)
        if not inner:
            return node
        node = inner[0]
    return node


def short_name(name: str) -> str:
    return name.strip().lstrip('\\').split('\\')[-1]


def string_value(node: Optional[Node]) -> Optional[str]:
    """Value of a string literal, or None if the node is not a plain string"""
    node = unwrap(node)
    if node is None or node.type not in STRING_TYPES:
        return None
    if node.type == 'encapsed_string':
        for child in named(node):
            if child.type not in ('string_content', 'string_value', 'escape_sequence'):
                return None
    text = node_text(node)
    if text[:1] in ('b', 'B'):
        text = text[1:]
    if len(text) < 2:
        return None
    quote = text[0]
    body = text[1:-1]
    if quote == "'":
        return body.replace("\\'", "'").replace('\\\\', '\\')
    return (body.replace('\\"', '"').replace('\\$', '$').replace('\\n', '\n')
            .replace('\\t', '\t').replace('\\\\', '\\'))


def interpolated_body(node: Node) -> str:
    """Inner text of a double-quoted string including its interpolations"""
    text = node_text(node)
    if text[:1] in ('b', 'B'):
        text = text[1:]
    return text[1:-1] if len(text) >= 2 else text


def literal_value(node: Optional[Node]) -> Any:
    """Python value of a literal expression, NOT_LITERAL otherwise"""
    node = unwrap(node)
    if node is None:
        return NOT_LITERAL
    if node.type in STRING_TYPES:
        value = string_value(node)
        return NOT_LITERAL if value is None else value
    if node.type == 'integer':
        try:
            return int(node_text(node).replace('_', ''), 0)
        except ValueError:
            return NOT_LITERAL
    if node.type == 'float':
        try:
            return float(node_text(node).replace('_', ''))
        except ValueError:
            return NOT_LITERAL
    if node.type == 'boolean':
        return node_text(node).lower() == 'true'
    if node.type == 'null':
        return None
    if node.type == 'unary_op_expression':
        operator = unary_operator(node)
        operand = named(node)
        if operator == '-' and operand:
            value = literal_value(operand[-1])
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return -value
        return NOT_LITERAL
    if node.type == 'class_constant_access_expression':
        parts = named(node)
        if len(parts) == 2 and node_text(parts[1]) == 'class':
            return short_name(node_text(parts[0]))
        return NOT_LITERAL
    if node.type == 'array_creation_expression':
        elements = array_elements(node)
        if all(key is None for key, _, _ in elements):
            values = []
            for _, value_node, spread in elements:
                value = literal_value(value_node)
                if spread or value is NOT_LITERAL:
                    return NOT_LITERAL
                values.append(value)
            return values
        mapping = {}
        for key_node, value_node, spread in elements:
            if spread or key_node is None:
                return NOT_LITERAL
            key = literal_value(key_node)
            value = literal_value(value_node)
            if key is NOT_LITERAL or value is NOT_LITERAL:
                return NOT_LITERAL
            mapping[str(key)] = value
        return mapping
    return NOT_LITERAL


def unary_operator(node: Node) -> Optional[str]:
    operator = node.child_by_field_name('operator')
    if operator is not None:
        return operator.type
    for child in node.children:
        if not child.is_named:
            return child.type
    return None


def binary_operator(node: Node) -> Optional[str]:
    operator = node.child_by_field_name('operator')
    if operator is not None:
        return operator.type
    for child in node.children:
        if not child.is_named:
            return child.type
    return None


def binary_operands(node: Node) -> Tuple[Optional[Node], Optional[Node]]:
    left = node.child_by_field_name('left')
    right = node.child_by_field_name('right')
    if left is None or right is None:
        parts = named(node)
        if len(parts) >= 2:
            left, right = parts[0], parts[-1]
    return left, right


def ternary_parts(node: Node) -> Tuple[Optional[Node], Optional[Node], Optional[Node]]:
    """(condition, body, alternative) of a conditional expression; body is None for ?:"""
    condition, body, alternative = None, None, None
    stage = 0
    for child in node.children:
        if not child.is_named:
            if child.type == '?':
                stage = 1
            elif child.type == ':':
                stage = 2
            elif child.type == '?:':
                stage = 2
            continue
        if child.type == 'comment':
            continue
        if stage == 0:
            condition = child
        elif stage == 1:
            body = child
        else:
            alternative = child
    return condition, body, alternative


def call_name(node: Node) -> Optional[str]:
    """Method or function name of a call expression"""
    if node.type == 'function_call_expression':
        function = node.child_by_field_name('function')
        return short_name(node_text(function)) if function is not None else None
    name_node = node.child_by_field_name('name')
    return node_text(name_node) if name_node is not None else None


def call_object(node: Node) -> Optional[Node]:
    if node.type in MEMBER_CALL_TYPES or node.type in MEMBER_ACCESS_TYPES:
        return node.child_by_field_name('object')
    return None


def call_scope(node: Node) -> Optional[str]:
    """Short class name of a static call scope"""
    if node.type != 'scoped_call_expression':
        return None
    scope = node.child_by_field_name('scope')
    return short_name(node_text(scope)) if scope is not None else None


def arguments(node: Node) -> List[Tuple[Optional[str], Node]]:
    """Call arguments as (name, value) pairs; name is set for named arguments"""
    args_node = node.child_by_field_name('arguments')
    if args_node is None:
        args_node = find_child(node, 'arguments')
    if args_node is None:
        return []
    result = []
    for arg in named(args_node):
        if arg.type != 'argument':
            result.append((None, arg))
            continue
        parts = named(arg)
        if not parts:
            continue
        has_colon = any(not c.is_named and c.type == ':' for c in arg.children)
        if has_colon and len(parts) >= 2:
            result.append((node_text(parts[0]), parts[-1]))
        else:
            result.append((None, parts[-1]))
    return result


def argument_nodes(node: Node) -> List[Node]:
    return [value for _, value in arguments(node)]


def array_elements(node: Node) -> List[Tuple[Optional[Node], Node, bool]]:
    """Elements of an array literal as (key, value, is_spread)"""
    elements = []
    for child in named(node):
        if child.type != 'array_element_initializer':
            continue
        parts = [p for p in named(child) if p.type not in ('by_ref', 'reference_modifier')]
        if not parts:
            continue
        if parts[0].type == 'variadic_unpacking':
            inner = named(parts[0])
            if inner:
                elements.append((None, inner[-1], True))
            continue
        has_arrow = any(not c.is_named and c.type == '=>' for c in child.children)
        if has_arrow and len(parts) >= 2:
            elements.append((parts[0], parts[-1], False))
        else:
            elements.append((None, parts[-1], False))
    return elements


def new_class_name(node: Node) -> Optional[str]:
    """Class name as written in a `new X(...)` expression"""
    for child in named(node):
        if child.type in NAME_TYPES:
            return node_text(child)
    return None


def class_name_of(class_node: Node) -> Optional[str]:
    name_node = class_node.child_by_field_name('name')
    return node_text(name_node) if name_node is not None else None


def parent_class_name(class_node: Node) -> Optional[str]:
    """Name in the extends clause, as written"""
    base_clause = find_child(class_node, 'base_clause')
    if base_clause is None:
        return None
    for child in named(base_clause):
        if child.type in NAME_TYPES:
            return node_text(child)
    return None


def method_table(class_node: Node) -> Dict[str, Node]:
    """Method name -> method_declaration node for a class body"""
    methods = {}
    body = class_node.child_by_field_name('body')
    if body is None:
        return methods
    for child in named(body):
        if child.type == 'method_declaration':
            name_node = child.child_by_field_name('name')
            if name_node is not None:
                methods[node_text(name_node)] = child
    return methods


def class_properties(class_node: Node) -> Dict[str, Optional[Node]]:
    """Property name (without $) -> default value node"""
    properties = {}
    body = class_node.child_by_field_name('body')
    if body is None:
        return properties
    for child in named(body):
        if child.type != 'property_declaration':
            continue
        for element in find_children(child, 'property_element'):
            var_name = find_child(element, 'variable_name')
            if var_name is None:
                continue
            value = element.child_by_field_name('default_value')
            if value is not None and value.type == 'property_initializer':
                inner = named(value)
                value = inner[0] if inner else None
            if value is None:
                initializer = find_child(element, 'property_initializer')
                if initializer is not None:
                    inner = named(initializer)
                    value = inner[0] if inner else None
            properties[node_text(var_name).lstrip('$')] = value
    return properties


def method_body_statements(method_node: Node) -> List[Node]:
    body = method_node.child_by_field_name('body')
    return named(body) if body is not None else []


def method_parameters(method_node: Node) -> List[Dict[str, Any]]:
    """Declared parameters as dicts with name, type, nullable and default"""
    parameters = []
    params = method_node.child_by_field_name('parameters')
    if params is None:
        return parameters
    for child in named(params):
        if child.type not in ('simple_parameter', 'property_promotion_parameter', 'variadic_parameter'):
            continue
        info = {'name': None, 'type': None, 'nullable': False, 'default': None, 'has_default': False}
        type_node = child.child_by_field_name('type')
        if type_node is not None:
            type_text = node_text(type_node).strip()
            parts = [p.strip() for p in type_text.split('|')]
            info['nullable'] = type_text.startswith('?') or 'null' in [p.lower() for p in parts]
            candidates = [p.lstrip('?') for p in parts if p.lower() != 'null']
            info['type'] = candidates[0] if candidates else None
        name_node = child.child_by_field_name('name')
        if name_node is None:
            name_node = find_child(child, 'variable_name')
        if name_node is not None:
            info['name'] = node_text(name_node).lstrip('$')
        default_node = child.child_by_field_name('default_value')
        if default_node is not None:
            info['has_default'] = True
            info['default'] = literal_value(default_node)
        if info['name']:
            parameters.append(info)
    return parameters


def is_this(node: Optional[Node]) -> bool:
    return node is not None and node.type == 'variable_name' and node_text(node) == '$this'


def variable_name(node: Optional[Node]) -> Optional[str]:
    node = unwrap(node)
    if node is not None and node.type == 'variable_name':
        return node_text(node).lstrip('$')
    return None


def parse_use_statement(use_text: str) -> Dict[str, str]:
    """Parse a use statement into alias -> FQCN, grouped uses included"""
    use_text = use_text.strip()
    use_text = re.sub(r'^use\s+', '', use_text)
    use_text = re.sub(r';$', '', use_text).strip()
    use_text = re.sub(r'^(function|const)\s+', '', use_text)

    imports = {}

    def add(name: str):
        name = name.strip()
        if not name:
            return
        match = re.match(r'(.+?)\s+as\s+(\w+)$', name, re.IGNORECASE)
        if match:
            fqcn, alias = match.group(1).strip(), match.group(2)
        else:
            fqcn, alias = name, short_name(name)
        imports[alias] = fqcn.lstrip('\\')

    if '{' in use_text and '}' in use_text:
        match = re.match(r'(.+?)\{(.+?)\}', use_text, re.DOTALL)
        if match:
            base = match.group(1).strip().rstrip('\\')
            for item in match.group(2).split(','):
                item = item.strip()
                if item:
                    add(f"{base}\\{item}")
    else:
        for item in use_text.split(','):
            add(item)

    return imports
