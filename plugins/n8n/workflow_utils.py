"""Pure helpers for editing n8n workflow documents in memory.

A workflow is the dict returned by the n8n REST API. Nodes are addressed by
their ``id`` from the outside, but ``connections`` is keyed by the source
node's ``name`` and every edge points at its target by ``name``:

    {"Start": {"main": [[{"node": "HTTP", "type": "main", "index": 0}]]}}

The outer list is indexed by the source output slot. None of these helpers
perform I/O or raise for missing nodes; they return ``None``, ``False`` or an
empty list and leave the decision to the caller.
"""

import copy
from typing import Any, Dict, Iterable, List, Optional, Union

from plugins.n8n.types import (
    ConnectionSpec,
    NodeValidationResult,
    WorkflowValidationResult,
)

Workflow = Dict[str, Any]
Node = Dict[str, Any]

DEFAULT_NODE_TYPE = "n8n-nodes-base.set"


def _node_name(node: Node) -> str:
    return node.get("name") or node.get("id")


def _as_spec(connection: Union[ConnectionSpec, Dict[str, Any]]) -> ConnectionSpec:
    if isinstance(connection, ConnectionSpec):
        return connection
    return ConnectionSpec.model_validate(connection)


def _edge_matches(edge: Dict[str, Any], target_name: str, target_index: int, connection_type: str) -> bool:
    return (
        edge.get("node") == target_name
        and edge.get("index", 0) == target_index
        and edge.get("type", connection_type) == connection_type
    )


def _prune_source(connections: Dict[str, Any], source_name: str) -> None:
    """Drop trailing empty output slots, empty type maps and an empty source entry.

    Interior empty slots are kept so later slots keep their index.
    """
    type_map = connections.get(source_name)
    if type_map is None:
        return

    for connection_type in list(type_map):
        slots = type_map[connection_type] or []
        while slots and not slots[-1]:
            slots.pop()
        if not slots:
            del type_map[connection_type]

    if not type_map:
        del connections[source_name]


def generate_node_id(workflow: Workflow, prefix: str = "node") -> str:
    """Return ``prefix + N`` for the smallest N >= 1 not used as a node id."""
    existing_ids = {node.get("id") for node in workflow.get("nodes", [])}
    counter = 1
    while f"{prefix}{counter}" in existing_ids:
        counter += 1
    return f"{prefix}{counter}"


def find_node_by_id(workflow: Workflow, node_id: str) -> Optional[Node]:
    return next((node for node in workflow.get("nodes", []) if node.get("id") == node_id), None)


def find_node_by_name(workflow: Workflow, name: str) -> Optional[Node]:
    return next((node for node in workflow.get("nodes", []) if _node_name(node) == name), None)


def validate_node_exists(workflow: Workflow, node_id: str) -> NodeValidationResult:
    if find_node_by_id(workflow, node_id) is None:
        return NodeValidationResult(
            is_valid=False,
            errors=[f"Node with ID '{node_id}' not found in workflow"],
            node_id=node_id,
        )
    return NodeValidationResult(is_valid=True, node_id=node_id)


def validate_nodes_exist(workflow: Workflow, node_ids: Iterable[str]) -> WorkflowValidationResult:
    node_errors = []
    errors: List[str] = []
    for node_id in node_ids:
        result = validate_node_exists(workflow, node_id)
        if not result.is_valid:
            node_errors.append(result)
            errors.extend(result.errors)

    return WorkflowValidationResult(
        is_valid=not node_errors, errors=errors, node_errors=node_errors
    )


def add_node_to_workflow(
    workflow: Workflow, node_config: Dict[str, Any], node_id: Optional[str] = None
) -> Node:
    """Append a new node built from ``node_config`` and return it.

    The id is ``node_id`` if given, else the config's own ``id``, else a
    generated one. Values in the config override the defaults.
    """
    resolved_id = node_id or node_config.get("id") or generate_node_id(workflow)

    node: Node = {
        "id": resolved_id,
        "name": node_config.get("name") or resolved_id,
        "type": DEFAULT_NODE_TYPE,
        "typeVersion": 1,
        "position": [0, 0],
        "parameters": {},
    }
    node.update({key: value for key, value in node_config.items() if value is not None})
    node["id"] = resolved_id
    if not node.get("name"):
        node["name"] = resolved_id

    workflow.setdefault("nodes", []).append(node)
    return node


def update_node_in_workflow(
    workflow: Workflow, node_id: str, updates: Dict[str, Any]
) -> Optional[Node]:
    """Shallow-merge ``updates`` onto a node.

    Connection keys are not touched, so changing ``name`` here leaves the
    node's edges pointing at the old name. Use rename_node_in_workflow for
    renames.
    """
    node = find_node_by_id(workflow, node_id)
    if node is None:
        return None
    node.update(updates)
    return node


def rename_node_in_workflow(workflow: Workflow, node_id: str, new_name: str) -> Optional[Node]:
    """Rename a node and move its connection key and incoming edges along.

    Raises:
        ValueError: If another node already holds ``new_name``
    """
    node = find_node_by_id(workflow, node_id)
    if node is None:
        return None

    holder = find_node_by_name(workflow, new_name)
    if holder is not None and holder is not node:
        raise ValueError(f"A node named '{new_name}' already exists")

    old_name = _node_name(node)
    node["name"] = new_name
    if old_name == new_name:
        return node

    connections = workflow.setdefault("connections", {})
    if old_name in connections:
        # Rebuild to keep the key in its original position
        renamed = {}
        for key, type_map in connections.items():
            renamed[new_name if key == old_name else key] = type_map
        connections.clear()
        connections.update(renamed)

    for type_map in connections.values():
        for slots in type_map.values():
            for slot in slots or []:
                for edge in slot or []:
                    if edge.get("node") == old_name:
                        edge["node"] = new_name

    return node


def _id_for_name(workflow: Workflow, name: str) -> str:
    node = find_node_by_name(workflow, name)
    return node["id"] if node is not None and node.get("id") else name


def remove_node_from_workflow(workflow: Workflow, node_id: str) -> List[ConnectionSpec]:
    """Remove a node and every edge touching it.

    Returns the removed edges, outgoing ones first, with node names translated
    back to ids where the node still exists.
    """
    nodes = workflow.get("nodes", [])
    index = next((i for i, node in enumerate(nodes) if node.get("id") == node_id), None)
    if index is None:
        return []

    node = nodes.pop(index)
    name = _node_name(node)
    connections = workflow.setdefault("connections", {})

    def resolve(node_name: str) -> str:
        if node_name == name:
            return node_id
        return _id_for_name(workflow, node_name)

    removed: List[ConnectionSpec] = []

    outgoing = connections.pop(name, None) or {}
    for connection_type, slots in outgoing.items():
        for slot_index, slot in enumerate(slots or []):
            for edge in slot or []:
                removed.append(
                    ConnectionSpec(
                        source_node_id=node_id,
                        target_node_id=resolve(edge.get("node")),
                        source_index=slot_index,
                        target_index=edge.get("index", 0),
                        connection_type=connection_type,
                    )
                )

    for source_name in list(connections):
        touched = False
        for connection_type, slots in connections[source_name].items():
            for slot_index, slot in enumerate(slots or []):
                if not slot:
                    continue
                kept = []
                for edge in slot:
                    if edge.get("node") != name:
                        kept.append(edge)
                        continue
                    removed.append(
                        ConnectionSpec(
                            source_node_id=resolve(source_name),
                            target_node_id=node_id,
                            source_index=slot_index,
                            target_index=edge.get("index", 0),
                            connection_type=connection_type,
                        )
                    )
                if len(kept) != len(slot):
                    slot[:] = kept
                    touched = True
        if touched:
            _prune_source(connections, source_name)

    return removed


def add_connection_to_workflow(
    workflow: Workflow, connection: Union[ConnectionSpec, Dict[str, Any]]
) -> bool:
    """Add an edge between two nodes addressed by id.

    Returns False if either node is missing. Adding an edge that already
    exists is a no-op that still returns True.
    """
    spec = _as_spec(connection)
    if not validate_nodes_exist(workflow, [spec.source_node_id, spec.target_node_id]).is_valid:
        return False

    source_name = _node_name(find_node_by_id(workflow, spec.source_node_id))
    target_name = _node_name(find_node_by_id(workflow, spec.target_node_id))

    connections = workflow.setdefault("connections", {})
    slots = connections.setdefault(source_name, {}).setdefault(spec.connection_type, [])
    while len(slots) <= spec.source_index:
        slots.append([])
    if slots[spec.source_index] is None:
        slots[spec.source_index] = []

    slot = slots[spec.source_index]
    if any(_edge_matches(edge, target_name, spec.target_index, spec.connection_type) for edge in slot):
        return True

    slot.append({"node": target_name, "type": spec.connection_type, "index": spec.target_index})
    return True


def remove_connection_from_workflow(
    workflow: Workflow, connection: Union[ConnectionSpec, Dict[str, Any]]
) -> bool:
    """Remove one edge. Returns True only if an edge was actually removed."""
    spec = _as_spec(connection)
    source = find_node_by_id(workflow, spec.source_node_id)
    target = find_node_by_id(workflow, spec.target_node_id)
    if source is None or target is None:
        return False

    source_name = _node_name(source)
    target_name = _node_name(target)
    connections = workflow.get("connections", {})
    slots = connections.get(source_name, {}).get(spec.connection_type)
    if not slots or spec.source_index >= len(slots) or not slots[spec.source_index]:
        return False

    slot = slots[spec.source_index]
    position = next(
        (
            i
            for i, edge in enumerate(slot)
            if _edge_matches(edge, target_name, spec.target_index, spec.connection_type)
        ),
        None,
    )
    if position is None:
        return False

    del slot[position]
    _prune_source(connections, source_name)
    return True


def get_connections_for_node(workflow: Workflow, node_id: str) -> List[ConnectionSpec]:
    """List every edge touching a node, outgoing first, without changing anything."""
    node = find_node_by_id(workflow, node_id)
    if node is None:
        return []

    # Work on a copy so the removal logic can be reused read-only
    scratch = copy.deepcopy(workflow)
    return remove_node_from_workflow(scratch, node_id)


def validate_workflow_integrity(workflow: Workflow) -> WorkflowValidationResult:
    """Check node id/name uniqueness and that every connection resolves to a node name."""
    errors: List[str] = []
    node_ids = set()
    node_names = set()

    for node in workflow.get("nodes", []):
        node_id = node.get("id")
        if node_id in node_ids:
            errors.append(f"Duplicate node ID found: {node_id}")
        node_ids.add(node_id)

        name = _node_name(node)
        if name in node_names:
            errors.append(f"Duplicate node name found: {name}")
        node_names.add(name)

    for source_name, type_map in (workflow.get("connections") or {}).items():
        if source_name not in node_names:
            errors.append(f"Connection source node '{source_name}' does not exist")

        for slots in (type_map or {}).values():
            for slot in slots or []:
                for edge in slot or []:
                    if edge.get("node") not in node_names:
                        errors.append(
                            f"Connection target node '{edge.get('node')}' does not exist "
                            f"(from '{source_name}')"
                        )

    return WorkflowValidationResult(is_valid=not errors, errors=errors)


def _merge_type_maps(into: Dict[str, Any], other: Dict[str, Any]) -> None:
    """Concatenate output slots of ``other`` onto ``into`` position by position."""
    for connection_type, slots in other.items():
        existing = into.setdefault(connection_type, [])
        for slot_index, slot in enumerate(slots or []):
            while len(existing) <= slot_index:
                existing.append([])
            if existing[slot_index] is None:
                existing[slot_index] = []
            existing[slot_index].extend(slot or [])


def _id_only_names(workflow: Workflow) -> Dict[str, str]:
    """Map node ids that are not also some node's name to that node's name."""
    nodes = workflow.get("nodes", [])
    names = {_node_name(node) for node in nodes}
    return {
        node["id"]: _node_name(node)
        for node in nodes
        if node.get("id") and node["id"] not in names
    }


def retarget_id_valued_edges(workflow: Workflow) -> int:
    """Point edges that name their target by node id at the node's name instead.

    Returns the number of edges changed.
    """
    id_to_name = _id_only_names(workflow)
    retargeted = 0
    for type_map in (workflow.get("connections") or {}).values():
        for slots in (type_map or {}).values():
            for slot in slots or []:
                for edge in slot or []:
                    if edge.get("node") in id_to_name:
                        edge["node"] = id_to_name[edge["node"]]
                        retargeted += 1
    return retargeted


def cleanup_corrupted_connections(workflow: Workflow) -> int:
    """Re-key connection entries that were written under a node id instead of its name.

    A key that matches a node id but no node name is renamed in place, or
    merged into the entry already stored under the name. Edges that point at
    a node id are retargeted to the name as well. Returns the number of
    connection keys repaired; a second run returns 0.
    """
    connections = workflow.get("connections")
    if not connections:
        return 0

    retarget_id_valued_edges(workflow)

    id_to_name = _id_only_names(workflow)
    corrupted = [key for key in connections if key in id_to_name]
    if not corrupted:
        return 0

    merged_later = [key for key in corrupted if id_to_name[key] in connections]
    rebuilt: Dict[str, Any] = {}
    for key, type_map in connections.items():
        if key in merged_later:
            continue
        new_key = id_to_name[key] if key in corrupted else key
        if new_key in rebuilt:
            _merge_type_maps(rebuilt[new_key], type_map)
        else:
            rebuilt[new_key] = type_map

    for key in merged_later:
        _merge_type_maps(rebuilt[id_to_name[key]], connections[key])

    connections.clear()
    connections.update(rebuilt)
    return len(corrupted)
