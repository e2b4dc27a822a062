"""Required / conditionally required state of validation rule tokens"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Union

from .file_uploads import rule_name, rule_parameters

CONDITIONAL_REQUIRED_RULES = (
    'required_if',
    'required_unless',
    'required_with',
    'required_without',
    'required_with_all',
    'required_without_all',
    'required_if_accepted',
    'required_if_declined',
)

PROHIBITED_RULES = (
    'prohibited_if',
    'prohibited_unless',
    'prohibited_with',
    'prohibited_without',
)

EXCLUDE_RULES = (
    'exclude_if',
    'exclude_unless',
    'exclude_with',
    'exclude_without',
)


@dataclass(frozen=True)
class ConditionalRuleDetail:
    type: str
    parameters: str
    full_rule: str

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.type, 'parameters': self.parameters, 'full_rule': self.full_rule}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ConditionalRuleDetail':
        return cls(type=data['type'], parameters=data.get('parameters', ''),
                   full_rule=data.get('full_rule', data['type']))


class RuleRequirementAnalyzer:

    def is_required(self, tokens: Iterable[Any]) -> bool:
        """`required` makes a field required unless it is also `sometimes`"""
        names = {rule_name(token) for token in tokens}
        return 'required' in names and 'sometimes' not in names

    def is_conditionally_required(self, tokens: Iterable[Any]) -> bool:
        return any(rule_name(token) in CONDITIONAL_REQUIRED_RULES for token in tokens)

    def conditional_rules(self, tokens: Iterable[Any]) -> List[ConditionalRuleDetail]:
        details = []
        for token in tokens:
            name = rule_name(token)
            if name in CONDITIONAL_REQUIRED_RULES or name in PROHIBITED_RULES or name in EXCLUDE_RULES:
                details.append(ConditionalRuleDetail(type=name, parameters=rule_parameters(token),
                                                     full_rule=token))
        return details

    def is_required_in_any_condition(self, field_name: str, rule_sets: Union[Iterable[Any], Any]) -> bool:
        """True when some branch marks the field required"""
        branches = getattr(rule_sets, 'rule_sets', rule_sets)
        for branch in branches:
            tokens = branch.rules.get(field_name) if hasattr(branch, 'rules') else branch.get(field_name)
            if tokens and self.is_required(tokens):
                return True
        return False
