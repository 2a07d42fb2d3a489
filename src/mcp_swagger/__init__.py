"""OpenAPI to MCP bridge package."""

from .exceptions import MCPSwaggerError, ToolValidationError, TransformError
from .models import ServerConfig, ToolDescriptor, TransformOptions
from .registry import MCPRegistry
from .tool_manager import ToolManager
from .transformer import Transformer

__version__ = "0.1.0"
__all__ = [
    "MCPRegistry",
    "MCPSwaggerError",
    "ServerConfig",
    "ToolDescriptor",
    "ToolManager",
    "ToolValidationError",
    "TransformError",
    "TransformOptions",
    "Transformer",
]
