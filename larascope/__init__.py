"""Static OpenAPI contract inference for Laravel applications"""

from .config import Config
from .diagnostics import DiagnosticReport, ErrorCollector
from .exceptions import ConfigurationError, LarascopeError, RouteTableError
from .openapi import OpenApiSpec
from .pipeline import Pipeline

__version__ = '0.1.0'

__all__ = [
    'Config',
    'ConfigurationError',
    'DiagnosticReport',
    'ErrorCollector',
    'LarascopeError',
    'OpenApiSpec',
    'Pipeline',
    'RouteTableError',
]
