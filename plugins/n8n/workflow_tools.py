"""Workflow-level tools: list, get, create, update, delete and (de)activate."""

import logging
from typing import Any, Dict

from mcp_tools.constants import Ecosystem, OSType
from mcp_tools.plugin import register_tool
from mcp_tools.types import ToolResult
from plugins.n8n import workflow_utils
from plugins.n8n.base_tool import N8nToolBase, summarize_nodes, workflow_id_schema
from plugins.n8n.errors import N8nApiError
from plugins.n8n.update_guard import (
    UPDATE_MODES,
    enforce_update_safety,
    merge_connections,
    merge_nodes,
    validate_workflow_update,
)

logger = logging.getLogger(__name__)

TAGS_IGNORED_WARNING = "Tags are read-only through the n8n API and were ignored"


def _workflow_summary(workflow: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": workflow.get("id"),
        "name": workflow.get("name"),
        "active": workflow.get("active", False),
        "nodeCount": len(workflow.get("nodes") or []),
        "createdAt": workflow.get("createdAt"),
        "updatedAt": workflow.get("updatedAt"),
    }


@register_tool(ecosystem=Ecosystem.N8N, os_type=OSType.ALL)
class ListWorkflowsTool(N8nToolBase):
    @property
    def name(self) -> str:
        return "list_workflows"

    @property
    def description(self) -> str:
        return "List all workflows in n8n, optionally only active or inactive ones"

    @property
    def input_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "active": {
                    "type": "boolean",
                    "description": "Only return workflows with this active state",
                },
            },
        }

    async def _execute(self, arguments: Dict[str, Any]) -> ToolResult:
        workflows = await self.api_service.get_workflows()
        active = arguments.get("active")
        if active is not None:
            workflows = [wf for wf in workflows if bool(wf.get("active")) == bool(active)]

        summaries = [_workflow_summary(wf) for wf in workflows]
        return self.format_success(
            {"workflows": summaries, "total": len(summaries)},
            f"Found {len(summaries)} workflows",
        )


@register_tool(ecosystem=Ecosystem.N8N, os_type=OSType.ALL)
class GetWorkflowTool(N8nToolBase):
    @property
    def name(self) -> str:
        return "get_workflow"

    @property
    def description(self) -> str:
        return "Get the full definition of a workflow, including nodes and connections"

    @property
    def input_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {"workflowId": workflow_id_schema("ID of the workflow to retrieve")},
            "required": ["workflowId"],
        }

    async def _execute(self, arguments: Dict[str, Any]) -> ToolResult:
        self.require(arguments, "workflowId")
        workflow = await self.api_service.get_workflow(arguments["workflowId"])
        return self.format_success(workflow, f'Workflow "{workflow.get("name")}" ({workflow.get("id")})')


@register_tool(ecosystem=Ecosystem.N8N, os_type=OSType.ALL)
class CreateWorkflowTool(N8nToolBase):
    """Create a workflow; nodes without an id get one generated."""

    @property
    def name(self) -> str:
        return "create_workflow"

    @property
    def description(self) -> str:
        return "Create a new workflow in n8n"

    @property
    def input_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "name": {"type": "string", "description": "Name of the workflow"},
                "nodes": {
                    "type": "array",
                    "description": "Nodes of the workflow",
                    "items": {"type": "object"},
                },
                "connections": {
                    "type": "object",
                    "description": "Connections keyed by source node name",
                },
                "settings": {"type": "object", "description": "Workflow settings"},
                "active": {
                    "type": "boolean",
                    "description": "Activate the workflow after creating it",
                },
                "tags": {
                    "type": "array",
                    "description": "Tags (read-only in the n8n API, ignored)",
                    "items": {"type": "string"},
                },
            },
            "required": ["name"],
        }

    async def _execute(self, arguments: Dict[str, Any]) -> ToolResult:
        self.require(arguments, "name")
        nodes = arguments.get("nodes") or []
        connections = arguments.get("connections") or {}
        if not isinstance(nodes, list):
            raise N8nApiError('Parameter "nodes" must be an array')
        if not isinstance(connections, dict):
            raise N8nApiError('Parameter "connections" must be an object')

        workflow: Dict[str, Any] = {
            "name": arguments["name"],
            "nodes": [],
            "connections": connections,
            "settings": arguments.get("settings") or {},
        }
        for node in nodes:
            workflow_utils.add_node_to_workflow(workflow, node)

        integrity = workflow_utils.validate_workflow_integrity(workflow)
        if not integrity.is_valid:
            raise N8nApiError("Workflow integrity validation failed: " + "; ".join(integrity.errors))

        warnings = []
        if arguments.get("tags") is not None:
            logger.warning(TAGS_IGNORED_WARNING)
            warnings.append(TAGS_IGNORED_WARNING)

        created = await self.api_service.create_workflow(workflow)
        if arguments.get("active"):
            created = await self.api_service.activate_workflow(created["id"])

        logger.info(f"Created workflow {created.get('id')} ({created.get('name')})")
        result = _workflow_summary(created)
        result["nodes"] = summarize_nodes(created.get("nodes"))
        if warnings:
            result["warnings"] = warnings

        return self.format_success(
            result, f'Workflow "{created.get("name")}" created with ID {created.get("id")}'
        )


@register_tool(ecosystem=Ecosystem.N8N, os_type=OSType.ALL)
class UpdateWorkflowTool(N8nToolBase):
    """Update a whole workflow with safety checks against mass deletion.

    In ``merge`` mode nodes are updated by id and connections are replaced
    per source and type, keeping everything not mentioned. In ``replace``
    mode the given nodes/connections become the new state, but shrinking
    either to nothing is refused and shrinking below half needs ``force``.
    """

    @property
    def name(self) -> str:
        return "update_workflow"

    @property
    def description(self) -> str:
        return (
            "Update an existing workflow with safety checks that prevent accidental "
            "deletion of nodes and connections"
        )

    @property
    def input_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "workflowId": workflow_id_schema("ID of the workflow to update"),
                "name": {"type": "string", "description": "New name for the workflow"},
                "nodes": {
                    "type": "array",
                    "description": (
                        "Nodes to update/add. Merge mode updates existing nodes by ID and adds "
                        "new ones; replace mode replaces all nodes."
                    ),
                    "items": {"type": "object"},
                },
                "connections": {
                    "type": "object",
                    "description": (
                        "Connections keyed by source node name. Merge mode replaces only the "
                        "given sources/types; replace mode replaces all connections."
                    ),
                },
                "active": {"type": "boolean", "description": "Whether the workflow should be active"},
                "tags": {
                    "type": "array",
                    "description": "Tags (read-only in the n8n API, ignored)",
                    "items": {"type": "string"},
                },
                "updateMode": {
                    "type": "string",
                    "enum": list(UPDATE_MODES),
                    "description": 'Update mode: "merge" (default, safer) or "replace"',
                    "default": "merge",
                },
                "force": {
                    "type": "boolean",
                    "description": "Allow replace-mode updates that drop more than half of the nodes or connections",
                    "default": False,
                },
            },
            "required": ["workflowId"],
        }

    async def _execute(self, arguments: Dict[str, Any]) -> ToolResult:
        self.require(arguments, "workflowId")
        workflow_id = arguments["workflowId"]
        update_mode = arguments.get("updateMode") or "merge"
        force = bool(arguments.get("force", False))
        name = arguments.get("name")
        nodes = arguments.get("nodes")
        connections = arguments.get("connections")
        active = arguments.get("active")

        if update_mode not in UPDATE_MODES:
            raise N8nApiError('updateMode must be either "merge" or "replace"')
        if nodes is not None and not isinstance(nodes, list):
            raise N8nApiError('Parameter "nodes" must be an array')
        if connections is not None and not isinstance(connections, dict):
            raise N8nApiError('Parameter "connections" must be an object')

        warnings = []
        if arguments.get("tags") is not None:
            logger.warning(TAGS_IGNORED_WARNING)
            warnings.append(TAGS_IGNORED_WARNING)

        previous: Dict[str, Any] = {}

        def mutate(workflow):
            previous["name"] = workflow.get("name")
            previous["active"] = workflow.get("active", False)

            validation = validate_workflow_update(workflow, nodes, connections, update_mode)
            enforce_update_safety(validation, force)
            warnings.extend(validation.warnings)

            if name is not None:
                workflow["name"] = name
            if nodes is not None:
                if update_mode == "merge":
                    workflow["nodes"] = merge_nodes(workflow.get("nodes"), nodes)
                else:
                    workflow["nodes"] = list(nodes)
            if connections is not None:
                if update_mode == "merge":
                    workflow["connections"] = merge_connections(workflow.get("connections"), connections)
                else:
                    workflow["connections"] = dict(connections)

        updated = await self.update_workflow_safely(workflow_id, mutate)

        if active is not None and bool(active) != bool(previous["active"]):
            if active:
                updated = await self.api_service.activate_workflow(workflow_id)
            else:
                updated = await self.api_service.deactivate_workflow(workflow_id)

        changes = []
        if name is not None and name != previous["name"]:
            changes.append(f'name: "{previous["name"]}" -> "{name}"')
        if active is not None and bool(active) != bool(previous["active"]):
            changes.append(f"active: {previous['active']} -> {bool(active)}")
        if nodes is not None:
            changes.append(f"nodes {'merged' if update_mode == 'merge' else 'replaced'}")
        if connections is not None:
            changes.append(f"connections {'merged' if update_mode == 'merge' else 'replaced'}")

        summary = f"Changes: {', '.join(changes)}" if changes else "No changes were made"
        logger.info(f"Updated workflow {workflow_id} ({update_mode}): {summary}")

        result = {
            "id": updated.get("id", workflow_id),
            "name": updated.get("name"),
            "active": updated.get("active"),
            "nodeCount": len(updated.get("nodes") or []),
            "updateMode": update_mode,
            "safetyChecks": "passed",
        }
        if warnings:
            result["warnings"] = warnings

        return self.format_success(result, f"Workflow updated successfully. {summary}")


@register_tool(ecosystem=Ecosystem.N8N, os_type=OSType.ALL)
class DeleteWorkflowTool(N8nToolBase):
    @property
    def name(self) -> str:
        return "delete_workflow"

    @property
    def description(self) -> str:
        return "Delete a workflow from n8n"

    @property
    def input_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {"workflowId": workflow_id_schema("ID of the workflow to delete")},
            "required": ["workflowId"],
        }

    async def _execute(self, arguments: Dict[str, Any]) -> ToolResult:
        self.require(arguments, "workflowId")
        workflow_id = arguments["workflowId"]
        deleted = await self.api_service.delete_workflow(workflow_id) or {}
        logger.info(f"Deleted workflow {workflow_id}")
        return self.format_success(
            {"id": workflow_id, "name": deleted.get("name"), "deleted": True},
            f"Workflow {workflow_id} deleted successfully",
        )


@register_tool(ecosystem=Ecosystem.N8N, os_type=OSType.ALL)
class ActivateWorkflowTool(N8nToolBase):
    @property
    def name(self) -> str:
        return "activate_workflow"

    @property
    def description(self) -> str:
        return "Activate a workflow so its triggers start running"

    @property
    def input_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {"workflowId": workflow_id_schema("ID of the workflow to activate")},
            "required": ["workflowId"],
        }

    async def _execute(self, arguments: Dict[str, Any]) -> ToolResult:
        self.require(arguments, "workflowId")
        workflow = await self.api_service.activate_workflow(arguments["workflowId"])
        return self.format_success(
            _workflow_summary(workflow), f'Workflow "{workflow.get("name")}" activated'
        )


@register_tool(ecosystem=Ecosystem.N8N, os_type=OSType.ALL)
class DeactivateWorkflowTool(N8nToolBase):
    @property
    def name(self) -> str:
        return "deactivate_workflow"

    @property
    def description(self) -> str:
        return "Deactivate a workflow so its triggers stop running"

    @property
    def input_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {"workflowId": workflow_id_schema("ID of the workflow to deactivate")},
            "required": ["workflowId"],
        }

    async def _execute(self, arguments: Dict[str, Any]) -> ToolResult:
        self.require(arguments, "workflowId")
        workflow = await self.api_service.deactivate_workflow(arguments["workflowId"])
        return self.format_success(
            _workflow_summary(workflow), f'Workflow "{workflow.get("name")}" deactivated'
        )
