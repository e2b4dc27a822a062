"""
Error and warning collection.

Analyzers record per-item failures here instead of raising; the pipeline turns
the collected entries into a DiagnosticReport next to the generated document.
"""

import logging
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .exceptions import LarascopeError

logger = logging.getLogger(__name__)

TYPE_ERROR = 'error'
TYPE_WARNING = 'warning'


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class AnalyzerErrorType(str, Enum):
    PARSE_ERROR = 'parse_error'
    MISSING_CLASS = 'missing_class'
    METHOD_NOT_FOUND = 'method_not_found'
    ROUTE_LOADING_ERROR = 'route_loading_error'
    ANALYSIS_ERROR = 'analysis_error'
    CACHE_ERROR = 'cache_error'


@dataclass(frozen=True)
class ErrorEntry:
    """One recorded error or warning"""
    context: str
    message: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    type: str = TYPE_ERROR
    timestamp: str = field(default_factory=now_iso)
    trace: Optional[Tuple[str, ...]] = None
    error_type: Optional[AnalyzerErrorType] = None

    @classmethod
    def error(cls, context: str, message: str, metadata: Optional[Dict[str, Any]] = None,
              error_type: Optional[AnalyzerErrorType] = None) -> 'ErrorEntry':
        trace = tuple(line.strip() for line in traceback.format_stack(limit=6)[:-1])
        return cls(context=context, message=message, metadata=dict(metadata or {}),
                   type=TYPE_ERROR, trace=trace, error_type=error_type)

    @classmethod
    def warning(cls, context: str, message: str, metadata: Optional[Dict[str, Any]] = None,
                error_type: Optional[AnalyzerErrorType] = None) -> 'ErrorEntry':
        return cls(context=context, message=message, metadata=dict(metadata or {}),
                   type=TYPE_WARNING, error_type=error_type)

    def is_error(self) -> bool:
        return self.type == TYPE_ERROR

    def is_warning(self) -> bool:
        return self.type == TYPE_WARNING

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'context': self.context,
            'message': self.message,
            'metadata': dict(self.metadata),
            'type': self.type,
            'timestamp': self.timestamp,
        }
        if self.trace is not None:
            result['trace'] = list(self.trace)
        if self.error_type is not None:
            result['errorType'] = self.error_type.value
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ErrorEntry':
        error_type = None
        if isinstance(data.get('errorType'), str):
            try:
                error_type = AnalyzerErrorType(data['errorType'])
            except ValueError:
                error_type = None
        trace = data.get('trace')
        return cls(
            context=data.get('context', ''),
            message=data.get('message', ''),
            metadata=dict(data.get('metadata') or {}),
            type=data.get('type', TYPE_ERROR),
            timestamp=data.get('timestamp') or now_iso(),
            trace=tuple(trace) if trace is not None else None,
            error_type=error_type,
        )


@dataclass(frozen=True)
class DiagnosticReport:
    """Finalized list of errors and warnings from one run"""
    errors: Tuple[ErrorEntry, ...] = ()
    warnings: Tuple[ErrorEntry, ...] = ()
    generated_at: str = field(default_factory=now_iso)

    @classmethod
    def create(cls, errors: List[ErrorEntry], warnings: List[ErrorEntry]) -> 'DiagnosticReport':
        return cls(errors=tuple(errors), warnings=tuple(warnings))

    @property
    def total_errors(self) -> int:
        return len(self.errors)

    @property
    def total_warnings(self) -> int:
        return len(self.warnings)

    def has_errors(self) -> bool:
        return self.total_errors > 0

    def has_warnings(self) -> bool:
        return self.total_warnings > 0

    def has_issues(self) -> bool:
        return self.has_errors() or self.has_warnings()

    def total_issues(self) -> int:
        return self.total_errors + self.total_warnings

    def errors_by_context(self, context: str) -> List[ErrorEntry]:
        return [e for e in self.errors if e.context == context]

    def warnings_by_context(self, context: str) -> List[ErrorEntry]:
        return [w for w in self.warnings if w.context == context]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'summary': {
                'total_errors': self.total_errors,
                'total_warnings': self.total_warnings,
                'generated_at': self.generated_at,
            },
            'errors': [e.to_dict() for e in self.errors],
            'warnings': [w.to_dict() for w in self.warnings],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DiagnosticReport':
        # counts are derived from the lists, never trusted from the summary
        return cls(
            errors=tuple(ErrorEntry.from_dict(e) for e in data.get('errors', [])),
            warnings=tuple(ErrorEntry.from_dict(w) for w in data.get('warnings', [])),
            generated_at=data.get('summary', {}).get('generated_at') or now_iso(),
        )


class ErrorCollector:
    """Accumulates errors and warnings during analysis"""

    def __init__(self, fail_on_error: bool = False):
        self.fail_on_error = fail_on_error
        self._errors: List[ErrorEntry] = []
        self._warnings: List[ErrorEntry] = []

    def add_error(self, context: str, message: str, metadata: Optional[Dict[str, Any]] = None,
                  error_type: Optional[AnalyzerErrorType] = None) -> None:
        self._errors.append(ErrorEntry.error(context, message, metadata, error_type))
        logger.error("[%s] %s", context, message)
        if self.fail_on_error:
            raise LarascopeError(f"Error in {context}: {message}")

    def add_warning(self, context: str, message: str, metadata: Optional[Dict[str, Any]] = None,
                    error_type: Optional[AnalyzerErrorType] = None) -> None:
        self._warnings.append(ErrorEntry.warning(context, message, metadata, error_type))
        logger.warning("[%s] %s", context, message)

    def has_errors(self) -> bool:
        return bool(self._errors)

    @property
    def errors(self) -> List[ErrorEntry]:
        return list(self._errors)

    @property
    def warnings(self) -> List[ErrorEntry]:
        return list(self._warnings)

    def generate_report(self) -> DiagnosticReport:
        return DiagnosticReport.create(self._errors, self._warnings)
