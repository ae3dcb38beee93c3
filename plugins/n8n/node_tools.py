"""Tools that edit individual nodes of an n8n workflow."""

import logging
from numbers import Number
from typing import Any, Dict, List

from pydantic import ValidationError

from mcp_tools.constants import Ecosystem, OSType
from mcp_tools.plugin import register_tool
from mcp_tools.types import ToolResult
from plugins.n8n import workflow_utils
from plugins.n8n.base_tool import N8nToolBase, workflow_id_schema
from plugins.n8n.errors import N8nApiError
from plugins.n8n.types import NodeUpdate

logger = logging.getLogger(__name__)


def _is_coordinate(value: Any) -> bool:
    return isinstance(value, Number) and not isinstance(value, bool)


@register_tool(ecosystem=Ecosystem.N8N, os_type=OSType.ALL)
class AddNodeTool(N8nToolBase):
    """Add a node to a workflow."""

    @property
    def name(self) -> str:
        return "add_node"

    @property
    def description(self) -> str:
        return "Add a new node to an existing n8n workflow"

    @property
    def input_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "workflowId": workflow_id_schema("ID of the workflow to add the node to"),
                "nodeConfig": {
                    "type": "object",
                    "description": "Configuration for the new node",
                    "properties": {
                        "id": {"type": "string", "description": "Node ID (optional, generated if not provided)"},
                        "name": {"type": "string", "description": "Node name (optional, defaults to the node ID)"},
                        "type": {"type": "string", "description": 'Node type (e.g. "n8n-nodes-base.httpRequest")'},
                        "typeVersion": {"type": "number", "description": "Node type version (defaults to 1)"},
                        "parameters": {"type": "object", "description": "Node parameters"},
                        "credentials": {"type": "object", "description": "Node credentials"},
                        "position": {
                            "type": "array",
                            "description": "Node position [x, y]",
                            "items": {"type": "number"},
                            "minItems": 2,
                            "maxItems": 2,
                        },
                    },
                    "required": ["type"],
                },
                "position": {
                    "type": "array",
                    "description": "Node position [x, y] (overrides position in nodeConfig)",
                    "items": {"type": "number"},
                    "minItems": 2,
                    "maxItems": 2,
                },
            },
            "required": ["workflowId", "nodeConfig"],
        }

    async def _execute(self, arguments: Dict[str, Any]) -> ToolResult:
        self.require(arguments, "workflowId")
        workflow_id = arguments["workflowId"]
        node_config = self.require_object(arguments, "nodeConfig")
        if not node_config.get("type"):
            raise N8nApiError("Missing required field in nodeConfig: type")

        node_to_add = dict(node_config)
        node_to_add["position"] = arguments.get("position") or node_config.get("position") or [0, 0]
        node_to_add["parameters"] = node_config.get("parameters") or {}

        added: Dict[str, Any] = {}

        def mutate(workflow):
            node = workflow_utils.add_node_to_workflow(workflow, node_to_add)
            added.update(node)

        updated = await self.update_workflow_safely(workflow_id, mutate)
        logger.info(f"Added node {added['id']} to workflow {workflow_id}")

        return self.format_success(
            {
                "nodeId": added["id"],
                "name": added["name"],
                "type": added["type"],
                "position": added["position"],
                "parameters": added["parameters"],
                "workflowId": updated.get("id", workflow_id),
            },
            f'Node added successfully: "{added["name"]}" ({added["id"]})',
        )


@register_tool(ecosystem=Ecosystem.N8N, os_type=OSType.ALL)
class DeleteNodeTool(N8nToolBase):
    """Delete a node together with every connection touching it."""

    @property
    def name(self) -> str:
        return "delete_node"

    @property
    def description(self) -> str:
        return "Delete a node from a workflow, removing all of its connections"

    @property
    def input_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "workflowId": workflow_id_schema("ID of the workflow containing the node"),
                "nodeId": {"type": "string", "description": "ID of the node to delete"},
            },
            "required": ["workflowId", "nodeId"],
        }

    async def _execute(self, arguments: Dict[str, Any]) -> ToolResult:
        self.require(arguments, "workflowId", "nodeId")
        workflow_id = arguments["workflowId"]
        node_id = arguments["nodeId"]

        removed = []
        deleted = {}

        def mutate(workflow):
            node = self.ensure_node_exists(workflow, node_id)
            deleted["name"] = node.get("name")
            removed.extend(workflow_utils.remove_node_from_workflow(workflow, node_id))

        updated = await self.update_workflow_safely(workflow_id, mutate)
        logger.info(f"Deleted node {node_id} from workflow {workflow_id}, {len(removed)} connections removed")

        return self.format_success(
            {
                "deletedNodeId": node_id,
                "deletedNodeName": deleted["name"],
                "removedConnections": len(removed),
                "connectionDetails": [spec.to_dict() for spec in removed],
                "workflowId": updated.get("id", workflow_id),
            },
            f'Node "{deleted["name"]}" ({node_id}) deleted successfully. '
            f"Removed {len(removed)} connections.",
        )


@register_tool(ecosystem=Ecosystem.N8N, os_type=OSType.ALL)
class UpdateNodeNameTool(N8nToolBase):
    """Rename a node; connections follow the new name."""

    @property
    def name(self) -> str:
        return "update_node_name"

    @property
    def description(self) -> str:
        return "Rename a node in a workflow, keeping its connections intact"

    @property
    def input_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "workflowId": workflow_id_schema("ID of the workflow containing the node"),
                "nodeId": {"type": "string", "description": "ID of the node to rename"},
                "newName": {"type": "string", "description": "New name for the node"},
            },
            "required": ["workflowId", "nodeId", "newName"],
        }

    async def _execute(self, arguments: Dict[str, Any]) -> ToolResult:
        self.require(arguments, "workflowId", "nodeId")
        workflow_id = arguments["workflowId"]
        node_id = arguments["nodeId"]
        new_name = arguments.get("newName")
        if not new_name or not isinstance(new_name, str):
            raise N8nApiError("Missing or invalid required parameter: newName")

        old = {}

        def mutate(workflow):
            node = self.ensure_node_exists(workflow, node_id)
            old["name"] = node.get("name")
            try:
                workflow_utils.rename_node_in_workflow(workflow, node_id, new_name)
            except ValueError as e:
                raise N8nApiError(f"{e} in workflow {workflow_id}")

        updated = await self.update_workflow_safely(workflow_id, mutate)
        node = workflow_utils.find_node_by_id(updated, node_id) or {}

        return self.format_success(
            {
                "nodeId": node_id,
                "oldName": old["name"],
                "name": node.get("name", new_name),
                "connections": [
                    spec.to_dict() for spec in workflow_utils.get_connections_for_node(updated, node_id)
                ],
                "workflowId": updated.get("id", workflow_id),
            },
            f'Node name updated successfully: "{old["name"]}" -> "{new_name}"',
        )


@register_tool(ecosystem=Ecosystem.N8N, os_type=OSType.ALL)
class UpdateNodeParametersTool(N8nToolBase):
    """Merge or replace the parameters of a node."""

    @property
    def name(self) -> str:
        return "update_node_parameters"

    @property
    def description(self) -> str:
        return "Update the parameters of a node, merging with or replacing the existing ones"

    @property
    def input_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "workflowId": workflow_id_schema("ID of the workflow containing the node"),
                "nodeId": {"type": "string", "description": "ID of the node to update"},
                "parameters": {"type": "object", "description": "New parameters for the node"},
                "mergeParameters": {
                    "type": "boolean",
                    "description": "Merge with the existing parameters (true) or replace them (false)",
                    "default": True,
                },
            },
            "required": ["workflowId", "nodeId", "parameters"],
        }

    async def _execute(self, arguments: Dict[str, Any]) -> ToolResult:
        self.require(arguments, "workflowId", "nodeId")
        workflow_id = arguments["workflowId"]
        node_id = arguments["nodeId"]
        parameters = self.require_object(arguments, "parameters")
        merge = arguments.get("mergeParameters", True)

        def mutate(workflow):
            node = self.ensure_node_exists(workflow, node_id)
            new_parameters = {**(node.get("parameters") or {}), **parameters} if merge else parameters
            workflow_utils.update_node_in_workflow(workflow, node_id, {"parameters": new_parameters})

        updated = await self.update_workflow_safely(workflow_id, mutate)
        node = workflow_utils.find_node_by_id(updated, node_id) or {}

        return self.format_success(
            {
                "nodeId": node_id,
                "name": node.get("name"),
                "parameters": node.get("parameters"),
                "workflowId": updated.get("id", workflow_id),
            },
            f'Node parameters updated successfully for "{node_id}" ({"merged" if merge else "replaced"})',
        )


@register_tool(ecosystem=Ecosystem.N8N, os_type=OSType.ALL)
class MoveNodeTool(N8nToolBase):
    """Change the canvas position of a node."""

    @property
    def name(self) -> str:
        return "move_node"

    @property
    def description(self) -> str:
        return "Move a node to a new [x, y] position on the workflow canvas"

    @property
    def input_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "workflowId": workflow_id_schema("ID of the workflow containing the node"),
                "nodeId": {"type": "string", "description": "ID of the node to move"},
                "newPosition": {
                    "type": "array",
                    "description": "New position [x, y]",
                    "items": {"type": "number"},
                    "minItems": 2,
                    "maxItems": 2,
                },
            },
            "required": ["workflowId", "nodeId", "newPosition"],
        }

    async def _execute(self, arguments: Dict[str, Any]) -> ToolResult:
        self.require(arguments, "workflowId", "nodeId")
        workflow_id = arguments["workflowId"]
        node_id = arguments["nodeId"]
        new_position = arguments.get("newPosition")
        if not isinstance(new_position, (list, tuple)) or len(new_position) != 2:
            raise N8nApiError("Invalid newPosition: must be an array of [x, y] coordinates")
        if not all(_is_coordinate(coord) for coord in new_position):
            raise N8nApiError("Invalid newPosition: coordinates must be numbers")

        position = [new_position[0], new_position[1]]
        old = {}

        def mutate(workflow):
            node = self.ensure_node_exists(workflow, node_id)
            old["position"] = node.get("position", [0, 0])
            workflow_utils.update_node_in_workflow(workflow, node_id, {"position": position})

        updated = await self.update_workflow_safely(workflow_id, mutate)
        node = workflow_utils.find_node_by_id(updated, node_id) or {}

        return self.format_success(
            {
                "nodeId": node_id,
                "name": node.get("name"),
                "oldPosition": old["position"],
                "newPosition": node.get("position", position),
                "workflowId": updated.get("id", workflow_id),
            },
            f'Node "{node.get("name", node_id)}" ({node_id}) moved from '
            f"{old['position']} to {position}",
        )


@register_tool(ecosystem=Ecosystem.N8N, os_type=OSType.ALL)
class UpdateMultipleNodesTool(N8nToolBase):
    """Apply several node updates in one workflow write."""

    @property
    def name(self) -> str:
        return "update_multiple_nodes"

    @property
    def description(self) -> str:
        return (
            "Update several nodes of a workflow in a single operation. "
            "Parameters are merged; a new name also renames the node's connections."
        )

    @property
    def input_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "workflowId": workflow_id_schema("ID of the workflow containing the nodes"),
                "nodeUpdates": {
                    "type": "array",
                    "description": "Updates to apply",
                    "items": {
                        "type": "object",
                        "properties": {
                            "nodeId": {"type": "string", "description": "ID of the node to update"},
                            "updates": {"type": "object", "description": "Fields to update on the node"},
                        },
                        "required": ["nodeId", "updates"],
                    },
                    "minItems": 1,
                },
            },
            "required": ["workflowId", "nodeUpdates"],
        }

    @staticmethod
    def _parse_updates(raw_updates: Any) -> List[NodeUpdate]:
        if not isinstance(raw_updates, list) or not raw_updates:
            raise N8nApiError(
                "Missing or invalid required parameter: nodeUpdates (must be a non-empty array)"
            )

        parsed = []
        for index, raw in enumerate(raw_updates):
            if not isinstance(raw, dict) or not raw.get("nodeId"):
                raise N8nApiError(f"Invalid nodeUpdate at index {index}: missing nodeId")
            try:
                parsed.append(NodeUpdate.model_validate(raw))
            except ValidationError:
                raise N8nApiError(
                    f"Invalid nodeUpdate at index {index}: missing or invalid updates object"
                )
        return parsed

    async def _execute(self, arguments: Dict[str, Any]) -> ToolResult:
        self.require(arguments, "workflowId")
        workflow_id = arguments["workflowId"]
        node_updates = self._parse_updates(arguments.get("nodeUpdates"))

        applied: List[Dict[str, Any]] = []

        def mutate(workflow):
            self.ensure_nodes_exist(workflow, [update.node_id for update in node_updates])

            for update in node_updates:
                node = workflow_utils.find_node_by_id(workflow, update.node_id)
                fields = []
                for field, value in update.updates.items():
                    if field == "id":
                        logger.warning(f"Ignoring id change for node {update.node_id}")
                        continue
                    if field == "parameters" and isinstance(value, dict):
                        value = {**(node.get("parameters") or {}), **value}
                    if field == "name":
                        try:
                            workflow_utils.rename_node_in_workflow(workflow, update.node_id, value)
                        except ValueError as e:
                            raise N8nApiError(
                                f"Invalid nodeUpdate for node {update.node_id}: {e} in workflow {workflow_id}"
                            )
                    else:
                        workflow_utils.update_node_in_workflow(workflow, update.node_id, {field: value})
                    fields.append(field)
                applied.append({"nodeId": update.node_id, "applied": fields})

        updated = await self.update_workflow_safely(workflow_id, mutate)
        logger.info(f"Updated {len(applied)} nodes in workflow {workflow_id}")

        return self.format_success(
            {
                "updatedNodes": len(applied),
                "updates": applied,
                "workflowId": updated.get("id", workflow_id),
            },
            f"Successfully updated {len(applied)} nodes in workflow",
        )
