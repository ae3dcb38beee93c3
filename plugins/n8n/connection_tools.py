"""Tools that add, remove and repair connections between workflow nodes."""

import logging
from typing import Any, Dict

from pydantic import ValidationError

from mcp_tools.constants import Ecosystem, OSType
from mcp_tools.plugin import register_tool
from mcp_tools.types import ToolResult
from plugins.n8n import workflow_utils
from plugins.n8n.base_tool import N8nToolBase, connection_properties, workflow_id_schema
from plugins.n8n.errors import N8nApiError
from plugins.n8n.types import ConnectionSpec

logger = logging.getLogger(__name__)


def _parse_connection(arguments: Dict[str, Any]) -> ConnectionSpec:
    fields = ("sourceNodeId", "targetNodeId", "sourceIndex", "targetIndex", "connectionType")
    payload = {key: arguments[key] for key in fields if arguments.get(key) is not None}
    try:
        return ConnectionSpec.model_validate(payload)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in e.errors()
        )
        raise N8nApiError(f"Invalid connection: {problems}")


def _describe(spec: ConnectionSpec) -> str:
    return (
        f"{spec.source_node_id}[{spec.source_index}] -> "
        f"{spec.target_node_id}[{spec.target_index}] ({spec.connection_type})"
    )


@register_tool(ecosystem=Ecosystem.N8N, os_type=OSType.ALL)
class AddConnectionTool(N8nToolBase):
    """Connect two nodes."""

    @property
    def name(self) -> str:
        return "add_connection"

    @property
    def description(self) -> str:
        return "Add a connection between two nodes of a workflow"

    @property
    def input_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": connection_properties(),
            "required": ["workflowId", "sourceNodeId", "targetNodeId"],
        }

    async def _execute(self, arguments: Dict[str, Any]) -> ToolResult:
        self.require(arguments, "workflowId", "sourceNodeId", "targetNodeId")
        workflow_id = arguments["workflowId"]
        spec = _parse_connection(arguments)
        if spec.source_node_id == spec.target_node_id:
            raise N8nApiError("Cannot create connection: source and target nodes cannot be the same")

        def mutate(workflow):
            self.ensure_nodes_exist(workflow, [spec.source_node_id, spec.target_node_id])
            if not workflow_utils.add_connection_to_workflow(workflow, spec):
                raise N8nApiError(
                    f"Failed to add connection from {spec.source_node_id} to {spec.target_node_id}"
                )

        updated = await self.update_workflow_safely(workflow_id, mutate)
        logger.info(f"Added connection {_describe(spec)} in workflow {workflow_id}")

        return self.format_success(
            {"connection": spec.to_dict(), "workflowId": updated.get("id", workflow_id)},
            f"Connection added successfully: {_describe(spec)}",
        )


@register_tool(ecosystem=Ecosystem.N8N, os_type=OSType.ALL)
class RemoveConnectionTool(N8nToolBase):
    """Remove a single connection between two nodes."""

    @property
    def name(self) -> str:
        return "remove_connection"

    @property
    def description(self) -> str:
        return "Remove a connection between two nodes of a workflow"

    @property
    def input_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": connection_properties(),
            "required": ["workflowId", "sourceNodeId", "targetNodeId"],
        }

    async def _execute(self, arguments: Dict[str, Any]) -> ToolResult:
        self.require(arguments, "workflowId", "sourceNodeId", "targetNodeId")
        workflow_id = arguments["workflowId"]
        spec = _parse_connection(arguments)

        def mutate(workflow):
            self.ensure_nodes_exist(workflow, [spec.source_node_id, spec.target_node_id])
            if not workflow_utils.remove_connection_from_workflow(workflow, spec):
                raise N8nApiError(f"Connection not found: {_describe(spec)}")

        updated = await self.update_workflow_safely(workflow_id, mutate)
        logger.info(f"Removed connection {_describe(spec)} in workflow {workflow_id}")

        return self.format_success(
            {"removedConnection": spec.to_dict(), "workflowId": updated.get("id", workflow_id)},
            f"Connection removed successfully: {_describe(spec)}",
        )


@register_tool(ecosystem=Ecosystem.N8N, os_type=OSType.ALL)
class RepairWorkflowConnectionsTool(N8nToolBase):
    """Re-key connections that were stored under node ids instead of names."""

    @property
    def name(self) -> str:
        return "repair_workflow_connections"

    @property
    def description(self) -> str:
        return (
            "Repair a workflow whose connections reference nodes by ID instead of name. "
            "Nothing is written if no repair is needed."
        )

    @property
    def input_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "workflowId": workflow_id_schema("ID of the workflow to repair"),
            },
            "required": ["workflowId"],
        }

    async def _execute(self, arguments: Dict[str, Any]) -> ToolResult:
        self.require(arguments, "workflowId")
        workflow_id = arguments["workflowId"]

        workflow = await self.api_service.get_workflow(workflow_id)
        integrity = workflow_utils.validate_workflow_integrity(workflow)
        if integrity.is_valid:
            return self.format_success(
                {"workflowId": workflow_id, "repairedKeys": 0, "retargetedEdges": 0},
                f"Workflow {workflow_id} connections are consistent, nothing to repair",
            )

        repaired = {}

        def mutate(working_copy):
            repaired["edges"] = workflow_utils.retarget_id_valued_edges(working_copy)
            repaired["keys"] = workflow_utils.cleanup_corrupted_connections(working_copy)

        updated = await self.update_workflow_safely(workflow_id, mutate)
        logger.info(
            f"Repaired {repaired['keys']} connection keys and {repaired['edges']} edge targets "
            f"in workflow {workflow_id}"
        )

        return self.format_success(
            {
                "workflowId": updated.get("id", workflow_id),
                "repairedKeys": repaired["keys"],
                "retargetedEdges": repaired["edges"],
            },
            f"Repaired {repaired['keys']} connection keys and retargeted {repaired['edges']} edges "
            f"in workflow {workflow_id}",
        )
