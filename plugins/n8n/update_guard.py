"""Safety checks and structural merge for whole-workflow updates.

Because n8n only offers a full replace of nodes and connections, a careless
``update_workflow`` call can wipe out most of a graph. Replace-mode updates
are compared against the current workflow and blocked when they would
delete everything, or more than half of it without ``force``.
"""

import logging
from typing import Any, Dict, List, Optional

from plugins.n8n.errors import N8nApiError
from plugins.n8n.types import UpdateValidation

logger = logging.getLogger(__name__)

UPDATE_MODES = ("merge", "replace")


def merge_nodes(current: Optional[List[Dict[str, Any]]], incoming: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """Update existing nodes by id, append unknown ones, keep the rest."""
    merged = [dict(node) for node in (current or [])]
    if not incoming:
        return merged

    index_by_id = {node.get("id"): i for i, node in enumerate(merged) if node.get("id")}
    for node in incoming:
        node_id = node.get("id")
        if node_id and node_id in index_by_id:
            position = index_by_id[node_id]
            merged[position] = {**merged[position], **node}
        else:
            merged.append(dict(node))
            if node_id:
                index_by_id[node_id] = len(merged) - 1

    return merged


def merge_connections(current: Optional[Dict[str, Any]], incoming: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Replace the slot list of every incoming source/type, keep the others."""
    merged = {source: dict(type_map or {}) for source, type_map in (current or {}).items()}
    if not incoming:
        return merged

    for source, type_map in incoming.items():
        if not isinstance(type_map, dict):
            continue
        target = merged.setdefault(source, {})
        for connection_type, slots in type_map.items():
            if isinstance(slots, list):
                target[connection_type] = slots

    return merged


def _check_count(label: str, before: int, after: int, verb: str, validation: UpdateValidation) -> None:
    if before == 0:
        return

    if after == 0:
        validation.errors.append(
            f"CRITICAL: Attempting to delete all {before} {label}! "
            f"This would {verb} the entire workflow."
        )
        validation.blocked_checks.append(f"{label}: {before} -> 0 (all {label} removed)")
    elif after < before / 2:
        validation.warnings.append(
            f"WARNING: Replacing {before} {label} with only {after} {label}. "
            f"This will delete {before - after} existing {label}."
        )
        validation.blocked_checks.append(
            f"{label}: {before} -> {after} (less than half of the existing {label} kept)"
        )


def validate_workflow_update(
    current: Dict[str, Any],
    nodes: Optional[List[Dict[str, Any]]] = None,
    connections: Optional[Dict[str, Any]] = None,
    update_mode: str = "merge",
) -> UpdateValidation:
    """Compare node and connection-source counts before and after an update.

    Merge mode never removes anything, so only replace mode is checked.
    ``None`` means the caller is not changing that part of the workflow.
    """
    validation = UpdateValidation()
    if update_mode != "replace":
        return validation

    if nodes is not None:
        _check_count(
            "nodes", len(current.get("nodes") or []), len(nodes), "destroy", validation
        )

    if connections is not None:
        _check_count(
            "connections",
            len(current.get("connections") or {}),
            len(connections),
            "disconnect",
            validation,
        )

    validation.is_valid = not validation.errors
    return validation


def enforce_update_safety(validation: UpdateValidation, force: bool = False) -> None:
    """Raise N8nApiError if the update must not proceed.

    Errors always block. Warnings block unless ``force`` is set.
    """
    if validation.errors:
        header = "Workflow update blocked for safety:"
        problems = validation.errors + validation.warnings
    elif validation.warnings and not force:
        header = "Workflow update has safety warnings:"
        problems = validation.warnings
    else:
        if validation.warnings:
            logger.warning(f"Proceeding with forced update: {'; '.join(validation.warnings)}")
        return

    lines = [header, *problems, "", "Thresholds crossed:"]
    lines.extend(f"- {check}" for check in validation.blocked_checks)
    lines.append("")
    lines.append(
        "Use the granular node and connection tools instead (add_node, delete_node, "
        "add_connection, remove_connection, ...)"
    )
    if validation.errors:
        lines.append(
            "force=true only overrides the less-than-half warnings; "
            "removing every node or connection is never allowed."
        )
    else:
        lines.append("or pass force=true to apply the replace anyway.")

    raise N8nApiError("\n".join(lines))
