"""
Exception hierarchy for the OpenAPI to MCP bridge.
"""

from typing import List, Optional


class MCPSwaggerError(Exception):
    """Base exception for OpenAPI to MCP bridge errors."""
    pass


class ConfigError(MCPSwaggerError):
    """Raised when a bridge configuration file cannot be loaded or is invalid."""
    pass


class TransformError(MCPSwaggerError):
    """Raised when an OpenAPI specification cannot be transformed into tools."""
    pass


class SpecLoadError(TransformError):
    """Raised when an OpenAPI specification cannot be read or parsed."""

    def __init__(self, source: str, message: str):
        super().__init__(f"Failed to load OpenAPI specification from {source}: {message}")
        self.source = source


class DereferenceError(MCPSwaggerError):
    """Raised when a reference cannot be resolved."""
    pass


class SchemaConversionError(MCPSwaggerError):
    """Raised when a JSON schema cannot be converted into an input model."""
    pass


class ToolValidationError(MCPSwaggerError):
    """Raised when a tool descriptor fails validation."""

    def __init__(self, message: str, errors: Optional[List] = None):
        super().__init__(message)
        self.errors = errors or []


class BindingError(MCPSwaggerError):
    """Raised when a tool cannot be registered with a live server."""
    pass


class LifecycleError(MCPSwaggerError):
    """Raised when operating on an unknown or conflicting server or tool."""
    pass


class ToolManagerDisposedError(LifecycleError):
    """Raised when a disposed ToolManager is mutated."""

    def __init__(self):
        super().__init__("ToolManager has been disposed")


class AuthError(MCPSwaggerError):
    """Raised when an authentication configuration is invalid."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
