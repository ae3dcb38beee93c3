"""n8n workflow tools.

Importing this package registers every n8n tool with the plugin registry.
"""

from plugins.n8n.errors import N8nApiError
from plugins.n8n.client import N8nApiService, N8nHttpClient
from plugins.n8n.execution_poller import ExecutionPoller, ExecutionState
from plugins.n8n import workflow_tools, node_tools, connection_tools, execution_tools

__all__ = [
    "N8nApiError",
    "N8nApiService",
    "N8nHttpClient",
    "ExecutionPoller",
    "ExecutionState",
    "workflow_tools",
    "node_tools",
    "connection_tools",
    "execution_tools",
]
