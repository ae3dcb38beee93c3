"""Base class for the n8n MCP tools."""

import json
import logging
from abc import abstractmethod
from typing import Any, Callable, Dict, Iterable, List, Optional

from mcp_tools.interfaces import ToolInterface
from mcp_tools.types import ToolResult
from plugins.n8n.client import N8nApiService
from plugins.n8n.errors import N8nApiError
from plugins.n8n.safe_update import update_workflow_safely
from plugins.n8n import workflow_utils

logger = logging.getLogger(__name__)


class N8nToolBase(ToolInterface):
    """Shared plumbing for tools that talk to n8n.

    Subclasses implement ``_execute``; ``execute_tool`` turns every exception
    into an error ``ToolResult`` so nothing escapes to the caller. The API
    service is created on first use unless one is injected.
    """

    def __init__(self, api_service: Optional[N8nApiService] = None):
        self._api_service = api_service

    @property
    def api_service(self) -> N8nApiService:
        if self._api_service is None:
            self._api_service = N8nApiService()
        return self._api_service

    @abstractmethod
    async def _execute(self, arguments: Dict[str, Any]) -> ToolResult:
        pass

    async def execute_tool(self, arguments: Dict[str, Any]) -> ToolResult:
        return await self.handle_execution(self._execute, arguments or {})

    async def handle_execution(
        self, func: Callable[[Dict[str, Any]], Any], arguments: Dict[str, Any]
    ) -> ToolResult:
        try:
            return await func(arguments)
        except N8nApiError as e:
            logger.error(f"{self.name} failed: {e.message}")
            return ToolResult.from_text(f"Error: {e.message}", is_error=True)
        except Exception as e:
            logger.exception(f"Unexpected error in {self.name}")
            return ToolResult.from_text(f"Error executing {self.name}: {e}", is_error=True)

    @staticmethod
    def format_success(data: Any, message: str) -> ToolResult:
        text = f"{message}\n\n{json.dumps(data, indent=2, default=str)}"
        return ToolResult.from_text(text)

    @staticmethod
    def require(arguments: Dict[str, Any], *names: str) -> None:
        """Raise N8nApiError naming the first missing required argument."""
        for name in names:
            value = arguments.get(name)
            if value is None or value == "":
                raise N8nApiError(f"Missing required parameter: {name}")

    @staticmethod
    def require_object(arguments: Dict[str, Any], name: str) -> Dict[str, Any]:
        value = arguments.get(name)
        if not isinstance(value, dict):
            raise N8nApiError(f"Missing or invalid required parameter: {name}")
        return value

    @staticmethod
    def ensure_node_exists(workflow: Dict[str, Any], node_id: str) -> Dict[str, Any]:
        validation = workflow_utils.validate_node_exists(workflow, node_id)
        if not validation.is_valid:
            raise N8nApiError(", ".join(validation.errors))
        return workflow_utils.find_node_by_id(workflow, node_id)

    @staticmethod
    def ensure_nodes_exist(workflow: Dict[str, Any], node_ids: Iterable[str]) -> None:
        validation = workflow_utils.validate_nodes_exist(workflow, node_ids)
        if not validation.is_valid:
            raise N8nApiError(", ".join(validation.errors))

    async def update_workflow_safely(
        self,
        workflow_id: str,
        mutator: Callable[[Dict[str, Any]], Any],
        validate_integrity: bool = True,
    ) -> Dict[str, Any]:
        return await update_workflow_safely(
            self.api_service, workflow_id, mutator, validate_integrity=validate_integrity
        )


def workflow_id_schema(description: str) -> Dict[str, Any]:
    return {"type": "string", "description": description}


def connection_properties() -> Dict[str, Any]:
    """JSON schema properties shared by the connection tools."""
    return {
        "workflowId": workflow_id_schema("ID of the workflow containing the nodes"),
        "sourceNodeId": {"type": "string", "description": "ID of the source node"},
        "targetNodeId": {"type": "string", "description": "ID of the target node"},
        "sourceIndex": {
            "type": "integer",
            "description": "Output slot of the source node",
            "default": 0,
            "minimum": 0,
        },
        "targetIndex": {
            "type": "integer",
            "description": "Input slot of the target node",
            "default": 0,
            "minimum": 0,
        },
        "connectionType": {
            "type": "string",
            "description": "Connection type",
            "default": "main",
        },
    }


def summarize_nodes(nodes: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [
        {"id": node.get("id"), "name": node.get("name"), "type": node.get("type")}
        for node in nodes or []
    ]
