"""Adapter between canonical documents and the canvas graph."""

from __future__ import annotations

import copy

import pytest

from flow_editor.examples import load_example
from flow_editor.graph.adapter import (
    export_document,
    import_document,
    to_document,
    to_presentation,
)
from flow_editor.graph.decisions import apply_decision_node_drag
from flow_editor.graph.errors import SemanticGraphError, StructuralError
from flow_editor.graph.model import FlowDocument, Position
from flow_editor.graph.updates import delete_node


class TestRoundTrip:
    @pytest.mark.parametrize("name", ["minimal", "food_ordering"])
    def test_document_survives_round_trip(self, name):
        raw = load_example(name)
        assert to_document(to_presentation(raw)).to_dict() == raw

    def test_missing_edges_are_populated(self):
        raw = load_example("minimal")
        expected = copy.deepcopy(raw)
        del raw["edges"]
        assert to_document(to_presentation(raw)).to_dict() == expected

    def test_context_and_global_functions_pass_through(self):
        raw = load_example("minimal")
        raw["context"] = {"customer_tier": "gold"}
        raw["global_functions"] = [
            {"name": "help", "description": "Ask for help", "next_node_id": "initial"},
        ]
        out = to_document(to_presentation(raw)).to_dict()
        assert out["context"] == {"customer_tier": "gold"}
        assert out["global_functions"] == raw["global_functions"]

    def test_unknown_position_keys_survive(self):
        raw = load_example("minimal")
        raw["nodes"][0]["position"]["z"] = 3
        assert to_document(to_presentation(raw)).to_dict() == raw

    def test_explicit_null_context_survives(self):
        raw = load_example("minimal")
        raw["context"] = None
        out = to_document(to_presentation(raw)).to_dict()
        assert "context" in out and out["context"] is None
        assert out == raw

    def test_absent_context_stays_absent(self):
        out = to_document(to_presentation(load_example("minimal"))).to_dict()
        assert "context" not in out


class TestToPresentation:
    def test_every_document_node_appears_once(self):
        raw = load_example("food_ordering")
        graph = to_presentation(raw)
        assert [n.id for n in graph.regular_nodes()] == [n["id"] for n in raw["nodes"]]

    def test_accepts_typed_document_without_sharing_state(self):
        doc = FlowDocument.from_dict(load_example("minimal"))
        graph = to_presentation(doc)
        graph.nodes[0].data.functions[0].name = "changed"
        graph.meta["name"] = "changed"
        assert doc.nodes[0].data.functions[0].name == "end_conversation"
        assert doc.meta["name"] == "Minimal"

    def test_edges_are_derived(self):
        graph = to_presentation(load_example("minimal"))
        assert [(e.source, e.target, e.label) for e in graph.edges] == [
            ("initial", "end", "end_conversation"),
        ]


class TestToDocument:
    def test_synthetic_nodes_are_stripped(self):
        graph = to_presentation(load_example("food_ordering"))
        doc = to_document(graph)
        assert not any(n.id.startswith("decision:") for n in doc.nodes)

    def test_dragged_decision_position_is_persisted(self):
        graph = to_presentation(load_example("food_ordering"))
        nodes = apply_decision_node_drag(
            graph.nodes, "decision:confirm:complete_order", Position(640, 480),
        )
        graph.nodes = nodes
        doc = to_document(graph).to_dict()
        confirm = next(n for n in doc["nodes"] if n["id"] == "confirm")
        decision = confirm["data"]["functions"][0]["decision"]
        assert decision["decision_node_position"] == {"x": 640, "y": 480}


class TestGates:
    def test_import_rejects_bad_shape(self):
        raw = load_example("minimal")
        raw["nodes"][0]["kind"] = "start"
        with pytest.raises(StructuralError):
            import_document(raw)

    def test_import_rejects_dangling(self):
        raw = load_example("minimal")
        raw["nodes"][0]["data"]["functions"][0]["next_node_id"] = "gone"
        with pytest.raises(SemanticGraphError):
            import_document(raw)

    def test_export_rejects_dangling_after_delete(self):
        graph = import_document(load_example("minimal"))
        graph.nodes = delete_node(graph.nodes, "end")
        with pytest.raises(SemanticGraphError) as exc:
            export_document(graph)
        assert any("references unknown node: end" in e for e in exc.value.errors)

    def test_export_valid(self):
        graph = import_document(load_example("food_ordering"))
        assert export_document(graph).to_dict() == load_example("food_ordering")
