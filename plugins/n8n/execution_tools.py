"""Tools that run workflows and inspect their executions."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from mcp_tools.constants import Ecosystem, OSType
from mcp_tools.plugin import register_tool
from mcp_tools.types import ToolResult
from config import env_manager
from plugins.n8n.base_tool import N8nToolBase, workflow_id_schema
from plugins.n8n.errors import N8nApiError
from plugins.n8n.execution_poller import (
    ERROR_STATUSES,
    ExecutionPoller,
    parse_timestamp,
    extract_error_message,
)

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 10


def _duration_seconds(execution: Dict[str, Any]) -> Optional[float]:
    started_at = parse_timestamp(execution.get("startedAt"))
    stopped_at = parse_timestamp(execution.get("stoppedAt"))
    if started_at and stopped_at:
        return round((stopped_at - started_at).total_seconds(), 3)
    return None


def _execution_status(execution: Dict[str, Any]) -> str:
    if execution.get("finished") or execution.get("stoppedAt"):
        return execution.get("status") or "success"
    return execution.get("status") or "running"


def summarize_node_runs(execution: Dict[str, Any]) -> Dict[str, Any]:
    """Summarize the last run of every node from ``data.resultData.runData``."""
    run_data = ((execution.get("data") or {}).get("resultData") or {}).get("runData") or {}
    summary = {}
    for node_name, runs in run_data.items():
        if not isinstance(runs, list) or not runs:
            continue
        last_run = runs[-1] or {}
        error = last_run.get("error")
        summary[node_name] = {
            "status": "error" if error else "success",
            "executionTime": last_run.get("executionTime", 0),
            "data": last_run.get("data"),
            "error": (error or {}).get("message") if error else None,
        }
    return summary


def _started_record(execution_id: Optional[str], message: str) -> Dict[str, Any]:
    return {
        "executionId": execution_id,
        "status": "started",
        "startTime": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "message": message,
    }


@register_tool(ecosystem=Ecosystem.N8N, os_type=OSType.ALL)
class ExecuteWorkflowTool(N8nToolBase):
    """Run a workflow and, by default, wait for it to finish."""

    def __init__(self, api_service=None, poller_factory=ExecutionPoller):
        super().__init__(api_service)
        self._poller_factory = poller_factory

    @property
    def name(self) -> str:
        return "execute_workflow"

    @property
    def description(self) -> str:
        return (
            "Execute a workflow with optional input data. Waits for completion "
            "(polling with backoff) unless waitForCompletion is false."
        )

    @property
    def input_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "workflowId": workflow_id_schema("ID of the workflow to execute"),
                "inputData": {"type": "object", "description": "Input data passed to the workflow"},
                "waitForCompletion": {
                    "type": "boolean",
                    "description": "Wait for the execution to finish",
                    "default": True,
                },
                "timeout": {
                    "type": "number",
                    "description": "Maximum seconds to wait for completion",
                    "exclusiveMinimum": 0,
                },
            },
            "required": ["workflowId"],
        }

    async def _execute(self, arguments: Dict[str, Any]) -> ToolResult:
        self.require(arguments, "workflowId")
        workflow_id = arguments["workflowId"]
        wait = arguments.get("waitForCompletion", True)
        timeout = arguments.get("timeout")
        if timeout is None:
            timeout = env_manager.get_n8n_parameter("execution_timeout", 300)
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
            raise N8nApiError("Invalid timeout: must be a positive number of seconds")

        poller = self._poller_factory(self.api_service)
        await poller.start(workflow_id, arguments.get("inputData"))

        if not wait:
            record = _started_record(
                poller.execution_id,
                f"Workflow execution {poller.execution_id} started successfully",
            )
            return self.format_success(record, f"Started execution {poller.execution_id}")

        result = await poller.poll(timeout=timeout)
        status = result.get("status")
        if status == "timeout":
            message = f"Execution {poller.execution_id} did not finish within {timeout} seconds"
        elif status in ERROR_STATUSES:
            message = f"Execution {poller.execution_id} failed: {result.get('error')}"
        else:
            message = f"Execution {poller.execution_id} finished with status {status}"
        return self.format_success(result, message)


@register_tool(ecosystem=Ecosystem.N8N, os_type=OSType.ALL)
class ExecuteWorkflowAsyncTool(N8nToolBase):
    """Start a workflow without waiting for it."""

    @property
    def name(self) -> str:
        return "execute_workflow_async"

    @property
    def description(self) -> str:
        return "Start a workflow execution and return immediately with its execution ID"

    @property
    def input_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "workflowId": workflow_id_schema("ID of the workflow to execute"),
                "inputData": {"type": "object", "description": "Input data passed to the workflow"},
            },
            "required": ["workflowId"],
        }

    async def _execute(self, arguments: Dict[str, Any]) -> ToolResult:
        self.require(arguments, "workflowId")
        poller = ExecutionPoller(self.api_service)
        await poller.start(arguments["workflowId"], arguments.get("inputData"))
        record = _started_record(
            poller.execution_id,
            f"Async workflow execution {poller.execution_id} started successfully",
        )
        return self.format_success(record, f"Started execution {poller.execution_id}")


@register_tool(ecosystem=Ecosystem.N8N, os_type=OSType.ALL)
class GetExecutionStatusTool(N8nToolBase):
    @property
    def name(self) -> str:
        return "get_execution_status"

    @property
    def description(self) -> str:
        return "Get the status of an execution, with a per-node summary of its last runs"

    @property
    def input_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "executionId": {"type": "string", "description": "ID of the execution"},
            },
            "required": ["executionId"],
        }

    async def _execute(self, arguments: Dict[str, Any]) -> ToolResult:
        self.require(arguments, "executionId")
        execution_id = str(arguments["executionId"])
        execution = await self.api_service.get_execution(execution_id) or {}

        status = _execution_status(execution)
        result = {
            "executionId": execution_id,
            "workflowId": execution.get("workflowId"),
            "status": status,
            "startTime": execution.get("startedAt"),
            "endTime": execution.get("stoppedAt"),
            "duration": _duration_seconds(execution),
            "data": execution.get("data"),
        }
        if status in ERROR_STATUSES:
            result["error"] = extract_error_message(execution)
        node_runs = summarize_node_runs(execution)
        if node_runs:
            result["nodeExecutions"] = node_runs

        return self.format_success(result, f"Execution {execution_id} status: {status}")


@register_tool(ecosystem=Ecosystem.N8N, os_type=OSType.ALL)
class ListRecentExecutionsTool(N8nToolBase):
    @property
    def name(self) -> str:
        return "list_recent_executions"

    @property
    def description(self) -> str:
        return "List recent executions, optionally filtered by workflow and status"

    @property
    def input_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "workflowId": workflow_id_schema("Only list executions of this workflow"),
                "status": {
                    "type": "string",
                    "description": "Only list executions with this status",
                    "enum": ["error", "success", "waiting", "running", "canceled"],
                },
                "limit": {
                    "type": "integer",
                    "description": "Maximum number of executions to return",
                    "default": DEFAULT_LIST_LIMIT,
                    "minimum": 1,
                },
                "includeData": {
                    "type": "boolean",
                    "description": "Include the execution data",
                    "default": False,
                },
            },
        }

    async def _execute(self, arguments: Dict[str, Any]) -> ToolResult:
        limit = arguments.get("limit") or DEFAULT_LIST_LIMIT
        include_data = bool(arguments.get("includeData", False))

        executions = await self.api_service.list_executions(
            workflow_id=arguments.get("workflowId"),
            status=arguments.get("status"),
            limit=limit,
            include_data=include_data,
        )

        summaries = []
        for execution in executions:
            summary = {
                "executionId": execution.get("id"),
                "workflowId": execution.get("workflowId"),
                "workflowName": (execution.get("workflowData") or {}).get("name") or "Unknown Workflow",
                "status": _execution_status(execution),
                "startTime": execution.get("startedAt"),
                "endTime": execution.get("stoppedAt"),
                "duration": _duration_seconds(execution),
            }
            if include_data:
                summary["data"] = execution.get("data")
            summaries.append(summary)

        return self.format_success(
            {"executions": summaries, "total": len(summaries)},
            f"Found {len(summaries)} executions",
        )


@register_tool(ecosystem=Ecosystem.N8N, os_type=OSType.ALL)
class CancelExecutionTool(N8nToolBase):
    @property
    def name(self) -> str:
        return "cancel_execution"

    @property
    def description(self) -> str:
        return "Stop a running execution"

    @property
    def input_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "executionId": {"type": "string", "description": "ID of the execution to stop"},
            },
            "required": ["executionId"],
        }

    async def _execute(self, arguments: Dict[str, Any]) -> ToolResult:
        self.require(arguments, "executionId")
        execution_id = str(arguments["executionId"])
        await self.api_service.cancel_execution(execution_id)
        logger.info(f"Canceled execution {execution_id}")
        return self.format_success(
            {"executionId": execution_id, "status": "canceled"},
            f"Execution {execution_id} has been canceled successfully",
        )


@register_tool(ecosystem=Ecosystem.N8N, os_type=OSType.ALL)
class DeleteExecutionTool(N8nToolBase):
    @property
    def name(self) -> str:
        return "delete_execution"

    @property
    def description(self) -> str:
        return "Delete an execution record"

    @property
    def input_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "executionId": {"type": "string", "description": "ID of the execution to delete"},
            },
            "required": ["executionId"],
        }

    async def _execute(self, arguments: Dict[str, Any]) -> ToolResult:
        self.require(arguments, "executionId")
        execution_id = str(arguments["executionId"])
        await self.api_service.delete_execution(execution_id)
        logger.info(f"Deleted execution {execution_id}")
        return self.format_success(
            {"executionId": execution_id, "deleted": True},
            f"Execution {execution_id} deleted successfully",
        )
