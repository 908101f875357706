"""Identifier helpers and flow-wide property suggestions."""

from __future__ import annotations

from flow_editor.examples import load_example
from flow_editor.graph.adapter import to_presentation
from flow_editor.graph.model import FlowFunction, FlowNode, NodeData
from flow_editor.graph.naming import (
    format_function_name,
    generate_copy_label,
    generate_node_id_from_label,
    python_identifier,
    validate_function_name,
)
from flow_editor.graph.properties import collect_properties


class TestFormatFunctionName:
    def test_free_text_to_snake_case(self):
        assert format_function_name("Collect Order Info!") == "collect_order_info"

    def test_leading_digit_gets_prefix(self):
        assert format_function_name("123 go") == "func_123_go"

    def test_blank(self):
        assert format_function_name("   ") == ""

    def test_runs_of_separators_collapse(self):
        assert format_function_name("a -- b__c") == "a_b_c"


class TestValidateFunctionName:
    def test_valid(self):
        assert validate_function_name("check_status") is None

    def test_empty(self):
        assert validate_function_name("") == "Function name cannot be empty"

    def test_leading_digit(self):
        assert validate_function_name("1abc") is not None

    def test_keyword(self):
        assert "keyword" in validate_function_name("class")

    def test_non_ascii(self):
        assert validate_function_name("café") is not None


class TestNodeIds:
    def test_from_label(self):
        assert generate_node_id_from_label("Collect Order", []) == "collect_order"

    def test_suffix_when_taken(self):
        taken = ["collect_order", "collect_order_2"]
        assert generate_node_id_from_label("Collect Order", taken) == "collect_order_3"

    def test_blank_label(self):
        assert generate_node_id_from_label("!!", []) == "node"

    def test_python_identifier_avoids_keywords(self):
        assert python_identifier("class") == "class_"
        assert python_identifier("--", prefix="action") == "action"


class TestCopyLabel:
    def test_first_copy(self):
        assert generate_copy_label("Node", ["Node"]) == "Node copy"

    def test_next_copy_number(self):
        assert generate_copy_label("Node", ["Node", "Node copy"]) == "Node copy 2"

    def test_copy_of_a_copy(self):
        labels = ["Node", "Node copy", "Node copy 2"]
        assert generate_copy_label("Node copy 2", labels) == "Node copy 3"


class TestCollectProperties:
    def test_sorted_and_unique(self):
        graph = to_presentation(load_example("food_ordering"))
        names = [p.name for p in collect_properties(graph.nodes)]
        assert names == ["confirmed", "count", "size", "type"]

    def test_first_definition_wins(self):
        graph = to_presentation(load_example("food_ordering"))
        by_name = {p.name: p.property for p in collect_properties(graph.nodes)}
        # pizza's "type" comes before sushi's
        assert by_name["type"]["description"] == "Type of pizza"
        assert by_name["count"] == {
            "type": "integer", "description": "Number of rolls", "minimum": 1, "maximum": 8,
        }

    def test_enum_values_become_strings(self):
        node = FlowNode(id="a", kind="step", data=NodeData(functions=[
            FlowFunction(name="f", description="d", properties={
                "level": {"type": "integer", "enum": [1, 2, 3]},
                " ": {"type": "string"},
            }),
        ]))
        result = collect_properties([node])
        assert len(result) == 1
        assert result[0].property["enum"] == ["1", "2", "3"]

    def test_exported_from_graph_package(self):
        from flow_editor import graph

        assert graph.collect_properties is collect_properties
        assert "collect_properties" in graph.__all__
        assert "SuggestedProperty" in graph.__all__
