"""
Shared fixtures for the n8n plugin tests.
"""

import copy
import itertools
import json

import pytest

from plugins.n8n.errors import N8nApiError


class FakeN8nApi:
    """In-memory stand-in for N8nApiService.

    Stores workflows and executions as plain dicts, records every call and
    returns deep copies so tests can check what was actually written.
    """

    def __init__(self):
        self.workflows = {}
        self.executions = {}
        self.calls = []
        self.updates = []
        self._ids = itertools.count(1)
        self.execution_script = []

    def add_workflow(self, workflow):
        self.workflows[workflow["id"]] = copy.deepcopy(workflow)
        return workflow

    def _get(self, workflow_id):
        if workflow_id not in self.workflows:
            raise N8nApiError(
                f"Failed to get workflow {workflow_id}: Resource not found", status_code=404
            )
        return self.workflows[workflow_id]

    async def get_workflows(self):
        self.calls.append(("get_workflows",))
        return [copy.deepcopy(wf) for wf in self.workflows.values()]

    async def get_workflow(self, workflow_id):
        self.calls.append(("get_workflow", workflow_id))
        return copy.deepcopy(self._get(workflow_id))

    async def create_workflow(self, workflow):
        self.calls.append(("create_workflow", copy.deepcopy(workflow)))
        created = copy.deepcopy(workflow)
        created["id"] = f"wf{next(self._ids)}"
        created["active"] = False
        self.workflows[created["id"]] = created
        return copy.deepcopy(created)

    async def update_workflow(self, workflow_id, workflow):
        self.calls.append(("update_workflow", workflow_id))
        self.updates.append(copy.deepcopy(workflow))
        stored = self._get(workflow_id)
        stored.update(copy.deepcopy(workflow))
        return copy.deepcopy(stored)

    async def delete_workflow(self, workflow_id):
        self.calls.append(("delete_workflow", workflow_id))
        return self.workflows.pop(workflow_id, None) or self._get(workflow_id)

    async def activate_workflow(self, workflow_id):
        self.calls.append(("activate_workflow", workflow_id))
        self._get(workflow_id)["active"] = True
        return copy.deepcopy(self._get(workflow_id))

    async def deactivate_workflow(self, workflow_id):
        self.calls.append(("deactivate_workflow", workflow_id))
        self._get(workflow_id)["active"] = False
        return copy.deepcopy(self._get(workflow_id))

    async def execute_workflow(self, workflow_id, input_data=None):
        self.calls.append(("execute_workflow", workflow_id, input_data))
        self._get(workflow_id)
        execution_id = str(next(self._ids))
        self.executions[execution_id] = {
            "id": execution_id,
            "workflowId": workflow_id,
            "finished": False,
            "status": "running",
            "startedAt": "2025-01-01T00:00:00.000Z",
        }
        return {"id": execution_id}

    async def get_execution(self, execution_id):
        self.calls.append(("get_execution", execution_id))
        if execution_id not in self.executions:
            raise N8nApiError(
                f"Failed to get execution {execution_id}: Resource not found", status_code=404
            )
        if self.execution_script:
            self.executions[execution_id].update(self.execution_script.pop(0))
        return copy.deepcopy(self.executions[execution_id])

    async def list_executions(self, workflow_id=None, status=None, limit=None, include_data=False):
        self.calls.append(("list_executions", workflow_id, status, limit, include_data))
        executions = [
            copy.deepcopy(execution)
            for execution in self.executions.values()
            if (workflow_id is None or execution.get("workflowId") == workflow_id)
            and (status is None or execution.get("status") == status)
        ]
        return executions[:limit] if limit else executions

    async def cancel_execution(self, execution_id):
        self.calls.append(("cancel_execution", execution_id))
        self.executions[execution_id]["status"] = "canceled"
        return copy.deepcopy(self.executions[execution_id])

    async def delete_execution(self, execution_id):
        self.calls.append(("delete_execution", execution_id))
        if execution_id not in self.executions:
            raise N8nApiError(
                f"Failed to delete execution {execution_id}: Resource not found", status_code=404
            )
        return self.executions.pop(execution_id)


def make_node(node_id, name=None, node_type="n8n-nodes-base.set", position=None, parameters=None):
    return {
        "id": node_id,
        "name": name or node_id,
        "type": node_type,
        "typeVersion": 1,
        "position": position or [0, 0],
        "parameters": parameters or {},
    }


def edge(target, index=0, connection_type="main"):
    return {"node": target, "type": connection_type, "index": index}


def sample_workflow():
    """Start -> HTTP Request -> Set, addressed by ids node1..node3."""
    return {
        "id": "wf-123",
        "name": "Test Workflow",
        "active": False,
        "nodes": [
            make_node("node1", "Start", "n8n-nodes-base.start", [100, 200]),
            make_node(
                "node2",
                "HTTP Request",
                "n8n-nodes-base.httpRequest",
                [300, 200],
                {"url": "https://api.example.com", "method": "GET"},
            ),
            make_node("node3", "Set", "n8n-nodes-base.set", [500, 200]),
        ],
        "connections": {
            "Start": {"main": [[edge("HTTP Request")]]},
            "HTTP Request": {"main": [[edge("Set")]]},
        },
        "settings": {"executionOrder": "v1", "callerPolicy": "workflowsFromSameOwner"},
        "versionId": "v-1",
        "createdAt": "2025-01-01T00:00:00.000Z",
        "updatedAt": "2025-01-01T00:00:00.000Z",
        "tags": [],
        "pinData": {},
    }


@pytest.fixture
def workflow():
    return sample_workflow()


@pytest.fixture
def fake_api():
    api = FakeN8nApi()
    api.add_workflow(sample_workflow())
    return api


def result_data(result):
    """Decode the JSON payload that follows the message line of a tool result."""
    _, _, payload = result.text.partition("\n\n")
    return json.loads(payload)
