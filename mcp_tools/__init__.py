"""MCP Tools - the tool interface, plugin registry and MCP content types."""

# Import interfaces
from mcp_tools.interfaces import ToolInterface

from config import env

# Import plugin system
from mcp_tools.plugin import (
    register_tool,
    registry,
    discover_and_register_tools,
    PluginRegistry,
)

# Import types
from mcp_tools.types import TextContent, Tool, ToolResult, Annotations

__version__ = "0.1.0"

__all__ = [
    # Interfaces
    "ToolInterface",
    "env",
    # Plugin system
    "register_tool",
    "registry",
    "discover_and_register_tools",
    "PluginRegistry",
    # Types
    "TextContent",
    "Tool",
    "ToolResult",
    "Annotations",
]
