"""The interface every MCP tool implements.

A dispatch shell lists tools through ``definition()`` and calls
``execute_tool`` with the client's JSON arguments.
"""

from abc import ABC, abstractmethod
from typing import Dict, Any

from mcp_tools.types import Tool


class ToolInterface(ABC):
    """Base interface for all tools."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique tool name, as seen by MCP clients."""
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        pass

    @property
    @abstractmethod
    def input_schema(self) -> Dict[str, Any]:
        """JSON schema of the ``arguments`` accepted by execute_tool."""
        pass

    @abstractmethod
    async def execute_tool(self, arguments: Dict[str, Any]) -> Any:
        """Run the tool.

        Args:
            arguments: Arguments sent by the client, shaped by input_schema

        Returns:
            A ToolResult; failures are reported with ``isError`` set rather
            than raised
        """
        pass

    def definition(self) -> Tool:
        """MCP definition of this tool."""
        return Tool(name=self.name, description=self.description, inputSchema=self.input_schema)
