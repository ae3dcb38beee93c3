"""Tests for the in-memory workflow editing helpers."""

import copy

import pytest

from plugins.n8n import workflow_utils
from plugins.n8n.types import ConnectionSpec
from plugins.n8n.tests.conftest import edge, make_node


def chain_workflow():
    """A -> B -> C where every node name differs from its id."""
    return {
        "nodes": [
            make_node("a", "Node A"),
            make_node("b", "Node B"),
            make_node("c", "Node C"),
        ],
        "connections": {
            "Node A": {"main": [[edge("Node B")]]},
            "Node B": {"main": [[edge("Node C")]]},
        },
    }


class TestLookups:
    def test_generate_node_id_skips_used_ids(self):
        workflow = {"nodes": [make_node("node1"), make_node("node2"), make_node("node4")]}
        assert workflow_utils.generate_node_id(workflow) == "node3"

    def test_generate_node_id_custom_prefix(self):
        assert workflow_utils.generate_node_id({"nodes": []}, prefix="http") == "http1"

    def test_find_node_by_id_and_name(self, workflow):
        assert workflow_utils.find_node_by_id(workflow, "node2")["name"] == "HTTP Request"
        assert workflow_utils.find_node_by_name(workflow, "Set")["id"] == "node3"
        assert workflow_utils.find_node_by_id(workflow, "missing") is None
        assert workflow_utils.find_node_by_name(workflow, "missing") is None

    def test_validate_node_exists(self, workflow):
        assert workflow_utils.validate_node_exists(workflow, "node1").is_valid

        result = workflow_utils.validate_node_exists(workflow, "ghost")
        assert not result.is_valid
        assert result.node_id == "ghost"
        assert result.errors == ["Node with ID 'ghost' not found in workflow"]

    def test_validate_nodes_exist_collects_every_missing_node(self, workflow):
        result = workflow_utils.validate_nodes_exist(workflow, ["node1", "x", "y"])
        assert not result.is_valid
        assert [error.node_id for error in result.node_errors] == ["x", "y"]
        assert len(result.errors) == 2


class TestAddNode:
    def test_defaults(self):
        workflow = {"nodes": [], "connections": {}}
        node = workflow_utils.add_node_to_workflow(workflow, {})

        assert node == {
            "id": "node1",
            "name": "node1",
            "type": "n8n-nodes-base.set",
            "typeVersion": 1,
            "position": [0, 0],
            "parameters": {},
        }
        assert workflow["nodes"] == [node]

    def test_config_overrides_defaults(self):
        workflow = {"nodes": []}
        node = workflow_utils.add_node_to_workflow(
            workflow,
            {
                "name": "Fetch",
                "type": "n8n-nodes-base.httpRequest",
                "position": [10, 20],
                "parameters": {"url": "https://example.com"},
                "credentials": {"httpBasicAuth": {"id": "1"}},
            },
        )
        assert node["name"] == "Fetch"
        assert node["type"] == "n8n-nodes-base.httpRequest"
        assert node["position"] == [10, 20]
        assert node["credentials"] == {"httpBasicAuth": {"id": "1"}}

    def test_explicit_id_wins_over_config_id(self):
        workflow = {"nodes": []}
        node = workflow_utils.add_node_to_workflow(workflow, {"id": "from-config"}, node_id="explicit")
        assert node["id"] == "explicit"

        node = workflow_utils.add_node_to_workflow(workflow, {"id": "from-config"})
        assert node["id"] == "from-config"

    def test_creates_nodes_list_when_missing(self):
        workflow = {}
        workflow_utils.add_node_to_workflow(workflow, {"name": "X"})
        assert len(workflow["nodes"]) == 1

    def test_generated_ids_stay_unique(self):
        workflow = {"nodes": [], "connections": {}}
        for _ in range(5):
            workflow_utils.add_node_to_workflow(workflow, {})
        ids = [node["id"] for node in workflow["nodes"]]
        assert len(set(ids)) == len(ids)
        assert workflow_utils.validate_workflow_integrity(workflow).is_valid


class TestUpdateAndRename:
    def test_update_is_shallow(self, workflow):
        node = workflow_utils.update_node_in_workflow(
            workflow, "node2", {"parameters": {"method": "POST"}}
        )
        assert node["parameters"] == {"method": "POST"}

    def test_update_missing_node_returns_none(self, workflow):
        before = copy.deepcopy(workflow)
        assert workflow_utils.update_node_in_workflow(workflow, "ghost", {"name": "x"}) is None
        assert workflow == before

    def test_update_does_not_touch_connections(self, workflow):
        workflow_utils.update_node_in_workflow(workflow, "node1", {"name": "Begin"})
        assert "Start" in workflow["connections"]
        assert not workflow_utils.validate_workflow_integrity(workflow).is_valid

    def test_rename_moves_key_and_edges(self, workflow):
        workflow_utils.rename_node_in_workflow(workflow, "node2", "Fetch")

        assert list(workflow["connections"]) == ["Start", "Fetch"]
        assert workflow["connections"]["Start"]["main"][0][0]["node"] == "Fetch"
        assert workflow["connections"]["Fetch"]["main"][0][0]["node"] == "Set"
        assert workflow_utils.validate_workflow_integrity(workflow).is_valid

    def test_rename_missing_node(self, workflow):
        assert workflow_utils.rename_node_in_workflow(workflow, "ghost", "x") is None

    def test_rename_refuses_a_name_held_by_another_node(self, workflow):
        before = copy.deepcopy(workflow)

        with pytest.raises(ValueError, match="A node named 'HTTP Request' already exists"):
            workflow_utils.rename_node_in_workflow(workflow, "node1", "HTTP Request")

        assert workflow == before

    def test_rename_to_own_name_is_a_no_op(self, workflow):
        before = copy.deepcopy(workflow)
        assert workflow_utils.rename_node_in_workflow(workflow, "node2", "HTTP Request")["id"] == "node2"
        assert workflow == before


class TestConnections:
    def test_add_connection_creates_slots(self, workflow):
        spec = ConnectionSpec(source_node_id="node3", target_node_id="node1", source_index=2)
        assert workflow_utils.add_connection_to_workflow(workflow, spec)
        assert workflow["connections"]["Set"]["main"] == [[], [], [edge("Start")]]

    def test_add_connection_accepts_camel_case_dict(self, workflow):
        assert workflow_utils.add_connection_to_workflow(
            workflow, {"sourceNodeId": "node3", "targetNodeId": "node1", "targetIndex": 1}
        )
        assert workflow["connections"]["Set"]["main"][0] == [edge("Start", index=1)]

    def test_add_connection_is_idempotent(self, workflow):
        spec = ConnectionSpec(source_node_id="node1", target_node_id="node3")
        assert workflow_utils.add_connection_to_workflow(workflow, spec)
        once = copy.deepcopy(workflow)

        assert workflow_utils.add_connection_to_workflow(workflow, spec)
        assert workflow == once
        assert workflow["connections"]["Start"]["main"][0] == [edge("HTTP Request"), edge("Set")]

    def test_add_connection_missing_node(self, workflow):
        before = copy.deepcopy(workflow)
        spec = ConnectionSpec(source_node_id="node1", target_node_id="ghost")
        assert not workflow_utils.add_connection_to_workflow(workflow, spec)
        assert workflow == before

    def test_remove_connection_prunes_empty_source(self, workflow):
        spec = ConnectionSpec(source_node_id="node2", target_node_id="node3")
        assert workflow_utils.remove_connection_from_workflow(workflow, spec)
        assert "HTTP Request" not in workflow["connections"]

    def test_remove_connection_keeps_interior_empty_slots(self):
        workflow = {
            "nodes": [make_node("if", "If"), make_node("t", "True"), make_node("f", "False")],
            "connections": {"If": {"main": [[edge("True")], [edge("False")]]}},
        }
        spec = ConnectionSpec(source_node_id="if", target_node_id="t", source_index=0)
        assert workflow_utils.remove_connection_from_workflow(workflow, spec)
        assert workflow["connections"]["If"]["main"] == [[], [edge("False")]]

    def test_remove_connection_not_present(self, workflow):
        spec = ConnectionSpec(source_node_id="node3", target_node_id="node1")
        assert not workflow_utils.remove_connection_from_workflow(workflow, spec)

        spec = ConnectionSpec(source_node_id="node1", target_node_id="node2", target_index=3)
        assert not workflow_utils.remove_connection_from_workflow(workflow, spec)

    def test_add_then_remove_restores_connections(self, workflow):
        before = copy.deepcopy(workflow["connections"])
        spec = ConnectionSpec(source_node_id="node3", target_node_id="node1", source_index=1)

        workflow_utils.add_connection_to_workflow(workflow, spec)
        workflow_utils.remove_connection_from_workflow(workflow, spec)
        assert workflow["connections"] == before

    def test_add_nodes_then_connect(self):
        workflow = {"nodes": [], "connections": {}}
        first = workflow_utils.add_node_to_workflow(workflow, {"name": "First"})
        second = workflow_utils.add_node_to_workflow(workflow, {"name": "Second"})

        assert workflow_utils.add_connection_to_workflow(
            workflow, ConnectionSpec(source_node_id=first["id"], target_node_id=second["id"])
        )
        assert workflow["connections"] == {"First": {"main": [[edge("Second")]]}}
        assert workflow_utils.validate_workflow_integrity(workflow).is_valid


class TestRemoveNode:
    def test_cascading_delete_of_middle_node(self):
        workflow = chain_workflow()
        removed = workflow_utils.remove_node_from_workflow(workflow, "b")

        assert len(removed) == 2
        assert removed[0] == ConnectionSpec(source_node_id="b", target_node_id="c")
        assert removed[1] == ConnectionSpec(source_node_id="a", target_node_id="b")
        assert workflow["connections"] == {}
        assert [node["id"] for node in workflow["nodes"]] == ["a", "c"]
        assert workflow_utils.validate_workflow_integrity(workflow).is_valid

    def test_remove_missing_node_changes_nothing(self):
        workflow = chain_workflow()
        before = copy.deepcopy(workflow)
        assert workflow_utils.remove_node_from_workflow(workflow, "ghost") == []
        assert workflow == before

    def test_remove_node_keeps_unrelated_edges(self, workflow):
        workflow_utils.add_connection_to_workflow(
            workflow, ConnectionSpec(source_node_id="node1", target_node_id="node3")
        )
        removed = workflow_utils.remove_node_from_workflow(workflow, "node2")

        assert len(removed) == 2
        assert workflow["connections"] == {"Start": {"main": [[edge("Set")]]}}

    def test_self_loop_is_reported_once(self):
        workflow = {
            "nodes": [make_node("loop", "Loop")],
            "connections": {"Loop": {"main": [[edge("Loop")]]}},
        }
        removed = workflow_utils.remove_node_from_workflow(workflow, "loop")
        assert removed == [ConnectionSpec(source_node_id="loop", target_node_id="loop")]
        assert workflow == {"nodes": [], "connections": {}}

    def test_get_connections_for_node_is_read_only(self):
        workflow = chain_workflow()
        before = copy.deepcopy(workflow)

        specs = workflow_utils.get_connections_for_node(workflow, "b")
        assert {(spec.source_node_id, spec.target_node_id) for spec in specs} == {("b", "c"), ("a", "b")}
        assert workflow == before
        assert workflow_utils.get_connections_for_node(workflow, "ghost") == []


class TestIntegrity:
    def test_valid_workflow(self, workflow):
        result = workflow_utils.validate_workflow_integrity(workflow)
        assert result.is_valid
        assert result.errors == []

    def test_duplicates(self):
        workflow = {
            "nodes": [make_node("x", "Same"), make_node("x", "Same")],
            "connections": {},
        }
        result = workflow_utils.validate_workflow_integrity(workflow)
        assert "Duplicate node ID found: x" in result.errors
        assert "Duplicate node name found: Same" in result.errors

    def test_dangling_connections(self, workflow):
        workflow["connections"]["Ghost"] = {"main": [[edge("Start")]]}
        workflow["connections"]["Set"] = {"main": [[edge("Nowhere")]]}

        result = workflow_utils.validate_workflow_integrity(workflow)
        assert not result.is_valid
        assert "Connection source node 'Ghost' does not exist" in result.errors
        assert "Connection target node 'Nowhere' does not exist (from 'Set')" in result.errors

    def test_connections_keyed_by_id_are_invalid(self):
        workflow = chain_workflow()
        workflow["connections"] = {"a": workflow["connections"]["Node A"]}
        assert not workflow_utils.validate_workflow_integrity(workflow).is_valid


class TestCleanup:
    def test_rekeys_id_keyed_entries(self):
        workflow = chain_workflow()
        workflow["connections"] = {
            "a": {"main": [[edge("Node B")]]},
            "Node B": {"main": [[edge("Node C")]]},
        }

        assert workflow_utils.cleanup_corrupted_connections(workflow) == 1
        assert list(workflow["connections"]) == ["Node A", "Node B"]
        assert workflow_utils.validate_workflow_integrity(workflow).is_valid

    def test_merges_into_existing_name_entry(self):
        workflow = chain_workflow()
        workflow["connections"]["a"] = {"main": [[edge("Node C")], [edge("Node B", index=1)]]}

        assert workflow_utils.cleanup_corrupted_connections(workflow) == 1
        assert workflow["connections"]["Node A"]["main"] == [
            [edge("Node B"), edge("Node C")],
            [edge("Node B", index=1)],
        ]

    def test_retargets_id_valued_edges(self):
        workflow = chain_workflow()
        workflow["connections"] = {"b": {"main": [[edge("c")]]}}

        assert workflow_utils.cleanup_corrupted_connections(workflow) == 1
        assert workflow["connections"] == {"Node B": {"main": [[edge("Node C")]]}}

    def test_retarget_counts_edges(self):
        workflow = chain_workflow()
        workflow["connections"] = {
            "Node A": {"main": [[edge("b"), edge("c", index=1)]]},
            "Node B": {"main": [[edge("Node C")]]},
        }

        assert workflow_utils.retarget_id_valued_edges(workflow) == 2
        assert workflow["connections"]["Node A"]["main"][0] == [edge("Node B"), edge("Node C", index=1)]
        assert workflow_utils.retarget_id_valued_edges(workflow) == 0

    def test_second_run_is_a_no_op(self):
        workflow = chain_workflow()
        workflow["connections"] = {
            "a": {"main": [[edge("b")]]},
            "Node B": {"main": [[edge("Node C")]]},
        }

        assert workflow_utils.cleanup_corrupted_connections(workflow) == 1
        repaired = copy.deepcopy(workflow)
        assert workflow_utils.cleanup_corrupted_connections(workflow) == 0
        assert workflow == repaired

    def test_clean_workflow_untouched(self, workflow):
        before = copy.deepcopy(workflow)
        assert workflow_utils.cleanup_corrupted_connections(workflow) == 0
        assert workflow == before

    def test_name_equal_to_id_is_not_corrupted(self, workflow):
        workflow["nodes"].append(make_node("node1-copy", "node1-copy"))
        workflow["connections"]["node1-copy"] = {"main": [[edge("Start")]]}
        assert workflow_utils.cleanup_corrupted_connections(workflow) == 0

    @pytest.mark.parametrize("connections", [None, {}])
    def test_empty_connections(self, connections):
        workflow = {"nodes": [make_node("a")], "connections": connections}
        assert workflow_utils.cleanup_corrupted_connections(workflow) == 0
