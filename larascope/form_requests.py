"""
FormRequest analysis: conditional rules, attribute labels and messages.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .cache import DocumentationCache
from .conditions import ConditionClassifier
from .diagnostics import AnalyzerErrorType, ErrorCollector
from .enums import EnumAnalyzer
from .locator import ClassLocator, LocatedClass
from .parser import ParseFailure, parent_class_name, short_name
from .rules import ConditionalRuleSet, RuleSetExtractor

logger = logging.getLogger(__name__)

MAX_PARENT_DEPTH = 5
FORM_REQUEST_BASES = ('Illuminate\\Foundation\\Http\\FormRequest',)


@dataclass
class FormRequestInfo:
    class_name: str
    namespace: str = ''
    rule_set: ConditionalRuleSet = field(default_factory=ConditionalRuleSet.empty)
    attributes: Dict[str, str] = field(default_factory=dict)
    messages: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def empty(cls, class_name: str) -> 'FormRequestInfo':
        namespace, _, _ = class_name.rpartition('\\')
        return cls(class_name=class_name, namespace=namespace)

    def has_rules(self) -> bool:
        return not self.rule_set.is_empty()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'class_name': self.class_name,
            'namespace': self.namespace,
            'rule_set': self.rule_set.to_dict(),
            'attributes': dict(self.attributes),
            'messages': dict(self.messages),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FormRequestInfo':
        return cls(
            class_name=data['class_name'],
            namespace=data.get('namespace', ''),
            rule_set=ConditionalRuleSet.from_dict(data.get('rule_set') or {}),
            attributes=dict(data.get('attributes') or {}),
            messages=dict(data.get('messages') or {}),
        )


class FormRequestAnalyzer:
    """Extract validation information from FormRequest classes"""

    def __init__(self, locator: ClassLocator, cache: Optional[DocumentationCache] = None,
                 enum_analyzer: Optional[EnumAnalyzer] = None,
                 error_collector: Optional[ErrorCollector] = None,
                 classifier: Optional[ConditionClassifier] = None):
        self.locator = locator
        self.cache = cache
        self.enum_analyzer = enum_analyzer or EnumAnalyzer(locator)
        self.error_collector = error_collector or ErrorCollector()
        self.classifier = classifier or ConditionClassifier()

    def analyze(self, fqcn: str) -> FormRequestInfo:
        fqcn = fqcn.lstrip('\\')
        located = self.locator.load(fqcn)
        if isinstance(located, ParseFailure):
            self.error_collector.add_warning('FormRequestAnalyzer', f"Cannot parse {located.path}: {located.message}",
                                             {'class': fqcn, **located.to_dict()}, AnalyzerErrorType.PARSE_ERROR)
            return FormRequestInfo.empty(fqcn)
        if located is None:
            self.error_collector.add_warning('FormRequestAnalyzer', f"FormRequest class not found: {fqcn}",
                                             {'class': fqcn}, AnalyzerErrorType.MISSING_CLASS)
            return FormRequestInfo.empty(fqcn)

        if self.cache is None:
            return self._analyze(located)
        data = self.cache.remember_form_request(fqcn, located.path, lambda: self._analyze(located).to_dict())
        return FormRequestInfo.from_dict(data)

    def _analyze(self, located: LocatedClass) -> FormRequestInfo:
        logger.debug("Analyzing FormRequest %s", located.fqcn)
        info = FormRequestInfo(class_name=located.fqcn, namespace=located.source_file.namespace)
        rules_found = False
        current: Optional[LocatedClass] = located
        depth = 0
        # nearest definition of each method wins, like PHP method resolution
        while current is not None and depth <= MAX_PARENT_DEPTH:
            extractor = RuleSetExtractor(current.source_file, current.node, self.classifier, self.enum_analyzer)
            if not rules_found and 'rules' in extractor.methods:
                info.rule_set = extractor.extract('rules')
                rules_found = True
            for name, mapping in (('attributes', info.attributes), ('messages', info.messages)):
                for key, value in extractor.extract_array_literal(name).items():
                    mapping.setdefault(key, value)
            current = self._parent(current)
            depth += 1

        if not rules_found:
            self.error_collector.add_warning('FormRequestAnalyzer', f"No rules() method in {located.fqcn}",
                                             {'class': located.fqcn}, AnalyzerErrorType.METHOD_NOT_FOUND)
        return info

    def _parent(self, located: LocatedClass) -> Optional[LocatedClass]:
        parent = parent_class_name(located.node)
        if parent is None:
            return None
        fqcn = located.source_file.resolve_name(parent)
        if fqcn in FORM_REQUEST_BASES:
            return None
        parent_located = self.locator.load(fqcn)
        return parent_located if isinstance(parent_located, LocatedClass) else None

    def is_form_request(self, fqcn: str) -> bool:
        """True when the class extends FormRequest, directly or through ancestors"""
        located = self.locator.load(fqcn)
        depth = 0
        while isinstance(located, LocatedClass) and depth <= MAX_PARENT_DEPTH:
            parent = parent_class_name(located.node)
            if parent is None:
                return False
            resolved = located.source_file.resolve_name(parent)
            if resolved in FORM_REQUEST_BASES or short_name(parent) == 'FormRequest':
                return True
            located = self.locator.load(resolved)
            depth += 1
        return False
