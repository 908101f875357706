"""Decision-node synthesizer: synthetic ids, reconciliation and drag write-back."""

from __future__ import annotations

from dataclasses import replace

from flow_editor.examples import load_example
from flow_editor.graph.adapter import to_presentation
from flow_editor.graph.decisions import (
    apply_decision_node_drag,
    decision_node_id,
    default_decision_position,
    parse_decision_node_id,
    reconcile_decision_nodes,
)
from flow_editor.graph.model import (
    KIND_DECISION,
    Decision,
    DecisionCondition,
    DecisionNodeData,
    FlowFunction,
    NodeData,
    Position,
    PresentationNode,
)


def _decision_fn(name: str, action: str = "result", position: Position | None = None):
    return FlowFunction(
        name=name,
        description=name,
        decision=Decision(
            action=action,
            conditions=[DecisionCondition(operator="==", value="yes", next_node_id="b")],
            default_next_node_id="b",
            decision_node_position=position,
        ),
    )


def _node(node_id: str, *functions: FlowFunction, x: float = 0, y: float = 0):
    return PresentationNode(
        id=node_id, kind="step", position=Position(x, y),
        data=NodeData(label=node_id, functions=list(functions)),
    )


def _synthetic_ids(nodes):
    return [n.id for n in nodes if n.kind == KIND_DECISION]


# ---------------------------------------------------------------------------
# Id codec
# ---------------------------------------------------------------------------


class TestDecisionIds:
    def test_compose(self):
        assert decision_node_id("ask", "check") == "decision:ask:check"

    def test_parse_splits_on_last_colon(self):
        assert parse_decision_node_id("decision:ns:ask:check") == ("ns:ask", "check")

    def test_parse_rejects_other_ids(self):
        assert parse_decision_node_id("ask") is None
        assert parse_decision_node_id("decision:only") is None
        assert parse_decision_node_id("decision::f") is None


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------


class TestReconcile:
    def test_one_synthetic_node_per_decision_function(self):
        nodes = [
            _node("a", _decision_fn("first"), FlowFunction(name="plain", description="p"),
                  _decision_fn("second"), x=10, y=20),
            _node("b"),
        ]
        result = reconcile_decision_nodes(nodes)
        assert _synthetic_ids(result) == ["decision:a:first", "decision:a:second"]
        synthetic = {n.id: n for n in result if n.is_decision}
        assert synthetic["decision:a:first"].position == Position(260, 170)
        assert synthetic["decision:a:second"].position == Position(260, 270)
        assert synthetic["decision:a:second"].data == DecisionNodeData(
            label="second", action="result", condition_count=1,
            source_node_id="a", function_name="second",
        )

    def test_stored_position_wins(self):
        nodes = [_node("a", _decision_fn("f", position=Position(500, 600))), _node("b")]
        result = reconcile_decision_nodes(nodes)
        assert result[-1].position == Position(500, 600)

    def test_unchanged_returns_same_list(self):
        once = reconcile_decision_nodes([_node("a", _decision_fn("f")), _node("b")])
        assert reconcile_decision_nodes(once) is once

    def test_does_not_mutate_input(self):
        nodes = [_node("a", _decision_fn("f")), _node("b")]
        before = list(nodes)
        reconcile_decision_nodes(nodes)
        assert nodes == before

    def test_removing_decision_drops_only_its_node(self):
        nodes = reconcile_decision_nodes([
            _node("a", _decision_fn("f"), _decision_fn("g")), _node("b", _decision_fn("h")),
        ])
        owner = nodes[0]
        functions = [owner.data.functions[0], replace(owner.data.functions[1], decision=None)]
        nodes[0] = replace(owner, data=replace(owner.data, functions=functions))
        result = reconcile_decision_nodes(nodes)
        assert _synthetic_ids(result) == ["decision:a:f", "decision:b:h"]

    def test_deleting_owner_drops_its_nodes(self):
        nodes = reconcile_decision_nodes([
            _node("a", _decision_fn("f")), _node("b", _decision_fn("h")),
        ])
        result = reconcile_decision_nodes([n for n in nodes if n.id != "a"])
        assert _synthetic_ids(result) == ["decision:b:h"]

    def test_projection_refresh_keeps_position(self):
        nodes = reconcile_decision_nodes([_node("a", _decision_fn("f")), _node("b")])
        moved = [
            replace(n, position=Position(999, 999)) if n.is_decision else n for n in nodes
        ]
        owner = moved[0]
        function = owner.data.functions[0]
        new_function = replace(function, decision=replace(function.decision, action="other"))
        moved[0] = replace(owner, data=replace(owner.data, functions=[new_function]))

        result = reconcile_decision_nodes(moved)
        synthetic = result[-1]
        assert synthetic.data.action == "other"
        assert synthetic.position == Position(999, 999)

    def test_example_completeness(self):
        graph = to_presentation(load_example("food_ordering"))
        decision_functions = [
            (n.id, f.name) for n in graph.regular_nodes() for f in n.functions if f.decision
        ]
        synthetic = [
            (n.data.source_node_id, n.data.function_name) for n in graph.decision_nodes()
        ]
        assert synthetic == decision_functions


class TestDefaultPosition:
    def test_stacks_by_ordinal(self):
        owner = Position(100, 100)
        assert default_decision_position(owner, 0) == Position(350, 250)
        assert default_decision_position(owner, 2) == Position(350, 450)


# ---------------------------------------------------------------------------
# Drag write-back
# ---------------------------------------------------------------------------


class TestDecisionDrag:
    def test_writes_position_to_owning_function(self):
        nodes = reconcile_decision_nodes([_node("a", _decision_fn("f")), _node("b")])
        result = apply_decision_node_drag(nodes, "decision:a:f", Position(42, 43))
        owner = result[0]
        assert owner.data.functions[0].decision.decision_node_position == Position(42, 43)
        assert result[-1].position == Position(42, 43)
        # input untouched
        assert nodes[0].data.functions[0].decision.decision_node_position is None

    def test_position_survives_reconcile(self):
        nodes = reconcile_decision_nodes([_node("a", _decision_fn("f")), _node("b")])
        dragged = apply_decision_node_drag(nodes, "decision:a:f", Position(42, 43))
        rebuilt = reconcile_decision_nodes([n for n in dragged if not n.is_decision])
        assert rebuilt[-1].position == Position(42, 43)

    def test_unknown_id_is_a_no_op(self):
        nodes = reconcile_decision_nodes([_node("a", _decision_fn("f")), _node("b")])
        assert apply_decision_node_drag(nodes, "decision:a:missing", Position(1, 1)) is nodes
        assert apply_decision_node_drag(nodes, "a", Position(1, 1)) is nodes
