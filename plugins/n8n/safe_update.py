"""Fetch, mutate, validate and write back a workflow as one step.

n8n only supports a full PUT for workflow nodes and connections, and rejects
bodies that carry server-owned fields, so every graph edit goes through
update_workflow_safely.
"""

import copy
import inspect
import logging
from typing import Any, Callable, Dict

from plugins.n8n.errors import N8nApiError
from plugins.n8n.workflow_utils import validate_workflow_integrity

logger = logging.getLogger(__name__)

# Top-level fields n8n owns and refuses on update
READ_ONLY_FIELDS = (
    "pinData",
    "versionId",
    "staticData",
    "meta",
    "shared",
    "createdAt",
    "updatedAt",
    "id",
    "triggerCount",
    "isArchived",
    "active",
    "tags",
)

READ_ONLY_SETTINGS = ("callerIds", "callerPolicy")


def clean_workflow_for_update(workflow: Dict[str, Any]) -> Dict[str, Any]:
    """Return a shallow copy of ``workflow`` without the fields n8n rejects on write."""
    cleaned = {key: value for key, value in workflow.items() if key not in READ_ONLY_FIELDS}

    settings = cleaned.get("settings")
    if isinstance(settings, dict):
        cleaned["settings"] = {
            key: value for key, value in settings.items() if key not in READ_ONLY_SETTINGS
        }

    return cleaned


async def update_workflow_safely(
    api,
    workflow_id: str,
    mutator: Callable[[Dict[str, Any]], Any],
    validate_integrity: bool = True,
) -> Dict[str, Any]:
    """Apply ``mutator`` to a fresh copy of a workflow and persist the result.

    Args:
        api: Object exposing async ``get_workflow`` and ``update_workflow``
        workflow_id: Id of the workflow to update
        mutator: Callable receiving the working copy; may be sync or async
        validate_integrity: Reject the write if the edited graph is inconsistent

    Returns:
        The workflow as stored by n8n after the update

    Raises:
        N8nApiError: If any step fails. Nothing is written when the mutator or
            the integrity check fails.
    """
    try:
        current = await api.get_workflow(workflow_id)
        working_copy = copy.deepcopy(current)

        result = mutator(working_copy)
        if inspect.isawaitable(result):
            await result

        if validate_integrity:
            validation = validate_workflow_integrity(working_copy)
            if not validation.is_valid:
                raise N8nApiError(
                    "Workflow integrity validation failed: " + "; ".join(validation.errors)
                )

        cleaned = clean_workflow_for_update(working_copy)
        logger.debug(
            f"Writing workflow {workflow_id} with {len(cleaned.get('nodes', []))} nodes "
            f"and {len(cleaned.get('connections') or {})} connection sources"
        )
        return await api.update_workflow(workflow_id, cleaned)
    except N8nApiError:
        raise
    except Exception as e:
        raise N8nApiError(f"Failed to update workflow {workflow_id}: {e}") from e
