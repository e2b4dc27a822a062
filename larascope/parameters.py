"""
Request parameter definitions built from validation rules.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .conditions import describe
from .file_uploads import FileUploadInfo
from .requirements import ConditionalRuleDetail, RuleRequirementAnalyzer
from .rules import ConditionalRuleSet, union_rules
from .type_inference import TypeInference, TypeInfo, generate_example

logger = logging.getLogger(__name__)

CONSTRAINT_KEYS = ('minimum', 'maximum', 'exclusiveMinimum', 'exclusiveMaximum', 'minLength',
                   'maxLength', 'minItems', 'maxItems', 'pattern')


@dataclass(frozen=True)
class ParameterDefinition:
    """One inferred input field"""
    name: str
    location: str = 'body'
    required: bool = False
    type: str = 'string'
    description: str = ''
    validation: Tuple[Any, ...] = ()
    format: Optional[str] = None
    enum: Optional[Tuple[Any, ...]] = None
    example: Any = None
    nullable: bool = False
    file_info: Optional[FileUploadInfo] = None
    conditional_required: bool = False
    conditional_rules: Tuple[ConditionalRuleDetail, ...] = ()
    constraints: Dict[str, Any] = field(default_factory=dict)
    conditions: Tuple[str, ...] = ()

    def is_file_upload(self) -> bool:
        return self.type == 'file'

    def has_conditional_rules(self) -> bool:
        return bool(self.conditional_rules)

    def to_schema(self) -> Dict[str, Any]:
        if self.type == 'file':
            schema: Dict[str, Any] = {'type': 'string', 'format': 'binary'}
        elif self.type == 'mixed':
            schema = {}
        else:
            schema = {'type': self.type}
            if self.format:
                schema['format'] = self.format
        if self.type == 'array':
            schema['items'] = {}
        if self.nullable:
            schema['nullable'] = True
        if self.enum is not None:
            schema['enum'] = list(self.enum)
        for key in CONSTRAINT_KEYS:
            if key in self.constraints:
                schema[key] = self.constraints[key]
        if self.description:
            schema['description'] = self.description
        if self.example is not None:
            schema['example'] = self.example
        return schema

    def with_location(self, location: str) -> 'ParameterDefinition':
        values = self.to_dict()
        values['in'] = location
        return ParameterDefinition.from_dict(values)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            'name': self.name,
            'in': self.location,
            'required': self.required,
            'type': self.type,
            'description': self.description,
            'example': self.example,
            'validation': list(self.validation),
        }
        if self.format is not None:
            result['format'] = self.format
        if self.enum is not None:
            result['enum'] = list(self.enum)
        if self.nullable:
            result['nullable'] = True
        if self.file_info is not None:
            result['file_info'] = self.file_info.to_dict()
        if self.conditional_required:
            result['conditional_required'] = True
        if self.conditional_rules:
            result['conditional_rules'] = [r.to_dict() for r in self.conditional_rules]
        if self.constraints:
            result['constraints'] = dict(self.constraints)
        if self.conditions:
            result['conditions'] = list(self.conditions)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ParameterDefinition':
        file_info = data.get('file_info')
        enum = data.get('enum')
        return cls(
            name=data['name'],
            location=data.get('in', 'body'),
            required=data.get('required', False),
            type=data.get('type', 'string'),
            description=data.get('description', ''),
            validation=tuple(data.get('validation') or ()),
            format=data.get('format'),
            enum=tuple(enum) if enum is not None else None,
            example=data.get('example'),
            nullable=data.get('nullable', False),
            file_info=FileUploadInfo.from_dict(file_info) if file_info is not None else None,
            conditional_required=data.get('conditional_required', False),
            conditional_rules=tuple(ConditionalRuleDetail.from_dict(r) for r in data.get('conditional_rules', [])),
            constraints=dict(data.get('constraints') or {}),
            conditions=tuple(data.get('conditions') or ()),
        )


def humanize(field_name: str) -> str:
    """items.*.unit_price -> Unit price"""
    parts = [p for p in field_name.split('.') if p and p != '*']
    label = (parts[-1] if parts else field_name).replace('_', ' ').replace('-', ' ').strip()
    return label[:1].upper() + label[1:]


def type_constraints(type_info: TypeInfo) -> Dict[str, Any]:
    schema = type_info.to_schema()
    return {key: schema[key] for key in CONSTRAINT_KEYS if key in schema}


class ParameterBuilder:
    """Build ParameterDefinitions from rule mappings and conditional rule sets"""

    def __init__(self, type_inference: Optional[TypeInference] = None,
                 requirements: Optional[RuleRequirementAnalyzer] = None):
        self.type_inference = type_inference or TypeInference()
        self.requirements = requirements or RuleRequirementAnalyzer()

    def build(self, rules: Dict[str, List[Any]], location: str = 'body',
              attributes: Optional[Dict[str, str]] = None) -> List[ParameterDefinition]:
        parameters = []
        for field_name, tokens in rules.items():
            if self._skip(field_name, tokens):
                continue
            parameters.append(self.build_parameter(field_name, tokens, location, attributes))
        return parameters

    def build_conditional(self, rule_set: ConditionalRuleSet, http_method: Optional[str] = None,
                          location: str = 'body',
                          attributes: Optional[Dict[str, str]] = None) -> List[ParameterDefinition]:
        branches = rule_set.rules_for_http_method(http_method)
        merged = union_rules(*(branch.rules for branch in branches))
        parameters = []
        for field_name, tokens in merged.items():
            if self._skip(field_name, tokens):
                continue
            present = [b for b in branches if field_name in b.rules]
            required = any(self.requirements.is_required(b.rules[field_name]) for b in present)
            conditions = tuple(' && '.join(describe(c) for c in b.conditions) for b in present if b.conditions)
            parameters.append(self.build_parameter(field_name, tokens, location, attributes,
                                                   required=required, conditions=conditions))
        logger.debug("Built %d parameter(s) from %d branch(es) for %s", len(parameters), len(branches),
                     http_method)
        return parameters

    def build_parameter(self, field_name: str, tokens: List[Any], location: str = 'body',
                        attributes: Optional[Dict[str, str]] = None, required: Optional[bool] = None,
                        conditions: Tuple[str, ...] = ()) -> ParameterDefinition:
        type_info = self.type_inference.infer(tokens, field_name)
        conditional_rules = tuple(self.requirements.conditional_rules(tokens))
        label = (attributes or {}).get(field_name)
        return ParameterDefinition(
            name=field_name,
            location=location,
            required=type_info.required if required is None else required,
            type=type_info.type,
            description=label or self.describe(field_name, type_info, conditions),
            validation=tuple(tokens),
            format='binary' if type_info.type == 'file' else type_info.format,
            enum=tuple(type_info.enum) if type_info.enum is not None else None,
            example=generate_example(field_name, type_info),
            nullable=type_info.nullable,
            file_info=type_info.file_info,
            conditional_required=type_info.conditionally_required,
            conditional_rules=conditional_rules,
            constraints=type_constraints(type_info),
            conditions=conditions,
        )

    def describe(self, field_name: str, type_info: TypeInfo, conditions: Tuple[str, ...] = ()) -> str:
        parts = [humanize(field_name)]
        if type_info.description:
            parts.append(type_info.description)
        if type_info.min_length is not None and type_info.max_length is not None:
            parts.append(f"Between {type_info.min_length} and {type_info.max_length} characters")
        elif type_info.max_length is not None:
            parts.append(f"Max {type_info.max_length} characters")
        elif type_info.min_length is not None:
            parts.append(f"Min {type_info.min_length} characters")
        if conditions:
            parts.append('Applies when: ' + '; '.join(conditions))
        return '. '.join(parts)

    def _skip(self, field_name: str, tokens: List[Any]) -> bool:
        if field_name.startswith('_'):
            return True
        # only a bare exclude removes the field from validated data
        return any(isinstance(t, str) and t == 'exclude' for t in tokens)
