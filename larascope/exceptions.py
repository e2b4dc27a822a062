"""Exception types raised by larascope"""


class LarascopeError(Exception):
    """Base class for larascope errors"""


class RouteTableError(LarascopeError):
    """The route table could not be enumerated at all"""


class ConfigurationError(LarascopeError):
    """Invalid configuration value or file"""
