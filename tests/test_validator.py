"""Two-pass validator: structural shape checks and graph semantics."""

from __future__ import annotations

import copy

import pytest

from flow_editor.examples import load_example
from flow_editor.graph.errors import (
    ReferentialInconsistencyWarning,
    SemanticGraphError,
    StructuralError,
)
from flow_editor.graph.adapter import to_presentation
from flow_editor.graph.model import FlowDocument
from flow_editor.graph.validator import (
    ensure_valid,
    find_dangling_references,
    validate_graph,
    validate_presentation_structure,
    validate_structure,
)


def _messages(issues) -> list[str]:
    return [i.message for i in issues]


# ---------------------------------------------------------------------------
# Structural pass
# ---------------------------------------------------------------------------


class TestValidateStructure:
    @pytest.mark.parametrize("name", ["minimal", "food_ordering"])
    def test_examples_are_valid(self, name):
        result = validate_structure(load_example(name))
        assert result.valid, result.errors
        assert result.errors == []

    def test_accepts_typed_document(self):
        doc = FlowDocument.from_dict(load_example("minimal"))
        assert validate_structure(doc).valid

    def test_non_object(self):
        result = validate_structure([])
        assert not result.valid
        assert result.errors[0].message == "must be an object"

    def test_missing_meta_and_nodes(self):
        result = validate_structure({})
        paths = {e.path for e in result.errors}
        assert {"meta", "nodes"} <= paths

    def test_bad_kind_reports_path(self):
        raw = load_example("minimal")
        raw["nodes"][1]["kind"] = "terminal"
        result = validate_structure(raw)
        assert not result.valid
        assert result.errors[0].path == "nodes[1].kind"
        assert "terminal" in result.errors[0].message

    def test_bad_operator(self):
        raw = load_example("food_ordering")
        raw["nodes"][3]["data"]["functions"][0]["decision"]["conditions"][0]["operator"] = "=~"
        result = validate_structure(raw)
        assert [e.path for e in result.errors] == [
            "nodes[3].data.functions[0].decision.conditions[0].operator"
        ]

    def test_bad_message_role(self):
        raw = load_example("minimal")
        raw["nodes"][0]["data"]["task_messages"][0]["role"] = "tool"
        result = validate_structure(raw)
        assert result.errors[0].path == "nodes[0].data.task_messages[0].role"

    def test_bad_property_type(self):
        raw = load_example("food_ordering")
        raw["nodes"][1]["data"]["functions"][0]["properties"]["size"]["type"] = "enum"
        result = validate_structure(raw)
        assert result.errors[0].path == "nodes[1].data.functions[0].properties.size.type"

    def test_invalid_function_name(self):
        raw = load_example("minimal")
        raw["nodes"][0]["data"]["functions"][0]["name"] = "end conversation"
        result = validate_structure(raw)
        assert result.errors[0].path == "nodes[0].data.functions[0].name"

    def test_position_must_be_numeric(self):
        raw = load_example("minimal")
        raw["nodes"][0]["position"] = {"x": "100", "y": 0}
        result = validate_structure(raw)
        assert result.errors[0].path == "nodes[0].position.x"

    def test_bad_context_strategy(self):
        raw = load_example("food_ordering")
        raw["nodes"][3]["data"]["context_strategy"]["strategy"] = "KEEP"
        result = validate_structure(raw)
        assert result.errors[0].path == "nodes[3].data.context_strategy.strategy"

    def test_to_dict(self):
        result = validate_structure({"nodes": []})
        out = result.to_dict()
        assert out["valid"] is False
        assert {"path": "meta", "message": "is required"} in out["errors"]


class TestValidatePresentationStructure:
    @pytest.mark.parametrize("name", ["minimal", "food_ordering"])
    def test_canvas_graphs_are_valid(self, name):
        graph = to_presentation(load_example(name)).to_dict()
        result = validate_presentation_structure(graph)
        assert result.valid, result.errors

    def test_meta_is_optional(self):
        assert validate_presentation_structure({"nodes": []}).valid

    def test_malformed_node_data(self):
        graph = {"nodes": [{"id": "a", "kind": "initial", "position": {"x": 0, "y": 0},
                            "data": "oops"}]}
        result = validate_presentation_structure(graph)
        assert [str(e) for e in result.errors] == ["nodes[0].data: must be an object"]

    def test_decision_node_condition_count(self):
        graph = to_presentation(load_example("food_ordering")).to_dict()
        decision = next(n for n in graph["nodes"] if n["kind"] == "decision")
        decision["data"]["condition_count"] = "two"
        result = validate_presentation_structure(graph)
        assert [e.message for e in result.errors] == ["must be an integer"]
        assert result.errors[0].path.endswith(".data.condition_count")

    def test_edges_and_extra_must_be_containers(self):
        result = validate_presentation_structure({"nodes": [], "edges": ["e"], "extra": []})
        assert {e.path for e in result.errors} == {"edges[0]", "extra"}


# ---------------------------------------------------------------------------
# Graph pass
# ---------------------------------------------------------------------------


class TestValidateGraph:
    @pytest.mark.parametrize("name", ["minimal", "food_ordering"])
    def test_examples_have_no_issues(self, name):
        assert validate_graph(load_example(name)) == []

    def test_duplicated_first_node(self):
        """Appending a copy of the first node yields a duplicate-id error."""
        raw = load_example("minimal")
        raw["nodes"].append(copy.deepcopy(raw["nodes"][0]))
        messages = _messages(validate_graph(raw))
        assert any("Duplicate node id" in m for m in messages)

    def test_duplicate_reported_once_per_id(self):
        raw = load_example("minimal")
        raw["nodes"].append(copy.deepcopy(raw["nodes"][1]))
        raw["nodes"].append(copy.deepcopy(raw["nodes"][1]))
        messages = _messages(validate_graph(raw))
        assert messages.count("Duplicate node id: end") == 1

    def test_dangling_next_node_id(self):
        raw = load_example("minimal")
        raw["nodes"][0]["data"]["functions"][0]["next_node_id"] = "gone"
        messages = _messages(validate_graph(raw))
        assert any("references unknown node: gone" in m for m in messages)

    def test_dangling_decision_targets(self):
        raw = load_example("food_ordering")
        decision = raw["nodes"][3]["data"]["functions"][0]["decision"]
        decision["conditions"][0]["next_node_id"] = "nowhere"
        decision["default_next_node_id"] = "void"
        messages = " | ".join(_messages(validate_graph(raw)))
        assert "nowhere (decision.conditions[0].next_node_id)" in messages
        assert "void (decision.default_next_node_id)" in messages

    def test_edge_cache_reference(self):
        raw = load_example("minimal")
        raw["edges"].append({"source": "initial", "target": "ghost"})
        assert "Edge references unknown node: ghost" in _messages(validate_graph(raw))

    def test_unset_targets_are_not_references(self):
        raw = load_example("minimal")
        raw["nodes"][0]["data"]["functions"][0]["next_node_id"] = ""
        raw["edges"] = []
        assert validate_graph(raw) == []

    def test_initial_count(self):
        raw = load_example("minimal")
        raw["nodes"][0]["kind"] = "step"
        assert "Flow must have exactly one initial node (found 0)" in _messages(
            validate_graph(raw)
        )

    def test_reserved_prefix(self):
        raw = load_example("minimal")
        raw["nodes"][1]["id"] = "decision:end"
        raw["nodes"][0]["data"]["functions"][0]["next_node_id"] = "decision:end"
        raw["edges"] = []
        messages = _messages(validate_graph(raw))
        assert any("reserved prefix" in m for m in messages)

    def test_duplicate_function_names(self):
        raw = load_example("minimal")
        functions = raw["nodes"][0]["data"]["functions"]
        functions.append(copy.deepcopy(functions[0]))
        messages = _messages(validate_graph(raw))
        assert "Duplicate function name in node initial: end_conversation" in messages

    def test_tolerates_broken_input(self):
        assert _messages(validate_graph({"nodes": "nope"})) == [
            "Flow must have exactly one initial node (found 0)"
        ]
        assert validate_graph("nope")[0].message == "Document must be an object"


# ---------------------------------------------------------------------------
# Gates and warnings
# ---------------------------------------------------------------------------


class TestEnsureValid:
    def test_passes_valid(self):
        ensure_valid(load_example("food_ordering"))

    def test_structural_first(self):
        raw = load_example("minimal")
        raw["nodes"][0]["kind"] = "bogus"
        raw["nodes"].append(copy.deepcopy(raw["nodes"][1]))
        with pytest.raises(StructuralError) as exc:
            ensure_valid(raw)
        assert exc.value.errors[0].startswith("nodes[0].kind")

    def test_semantic(self):
        raw = load_example("minimal")
        raw["nodes"][0]["data"]["functions"][0]["next_node_id"] = "gone"
        with pytest.raises(SemanticGraphError) as exc:
            ensure_valid(raw)
        assert any("gone" in e for e in exc.value.errors)


class TestFindDanglingReferences:
    def test_none_for_valid_flow(self):
        doc = FlowDocument.from_dict(load_example("food_ordering"))
        assert find_dangling_references(doc.nodes) == []

    def test_reports_each_reference(self):
        raw = load_example("food_ordering")
        raw["nodes"] = [n for n in raw["nodes"] if n["id"] != "end"]
        doc = FlowDocument.from_dict(raw)
        warnings = find_dangling_references(doc.nodes)
        assert warnings == [
            ReferentialInconsistencyWarning(
                node_id="confirm",
                function_name="complete_order",
                field="decision.conditions[0].next_node_id",
                target="end",
            )
        ]
        assert str(warnings[0]) == 'Invalid: Target node "end" was deleted'
        assert isinstance(warnings[0], UserWarning)
