"""Edge deriver: presentation edges computed from routing metadata.

Edges are never drawn by hand. For every regular node and every function on
it, in order:

  - plain routing (``next_node_id``, no decision):
        node ──[function name]──▶ target
  - decision routing:
        node ──▶ decision:<node>:<function>
        decision:<node>:<function> ──["<op> <value>"]──▶ condition target
        decision:<node>:<function> ──["default"]──▶ default target

Unset ("" / None) targets and targets naming a node that is not on the
canvas produce no edge; the dangling reference is reported by the validator
instead. Self-loops get a stable lateral offset from their ordinal among the
node's self-loop functions so several loops on one node never coincide.

derive_edges is total and deterministic: ordering is source node, then
function order, then condition order, with the default last.
"""

from __future__ import annotations

from typing import Any, Iterable

from flow_editor.graph.decisions import decision_node_id
from flow_editor.graph.model import (
    DecisionCondition,
    FlowFunction,
    FlowNode,
    PresentationEdge,
    PresentationNode,
)

EDGE_DEFAULT = "default"
EDGE_SELF_LOOP = "selfloop"
EDGE_DECISION = "decision"

DEFAULT_BRANCH_LABEL = "default"

# Label metrics used to space self-loops (pixels)
_LABEL_CHAR_WIDTH: int = 6
_LABEL_BASE_WIDTH: int = 4
_LABEL_PADDING: int = 4


def measure_label_width(text: str) -> int:
    """Approximate rendered width of an edge label."""
    return len(text) * _LABEL_CHAR_WIDTH + _LABEL_BASE_WIDTH


def condition_label(condition: DecisionCondition) -> str:
    return f"{condition.operator} {condition.value}".strip()


def self_loop_functions(node_id: str, functions: list[FlowFunction]) -> list[FlowFunction]:
    """Functions that route plainly back to their own node, in order."""
    return [f for f in functions if f.decision is None and f.next_node_id == node_id]


def self_loop_offsets(node_id: str, functions: list[FlowFunction]) -> dict[str, int]:
    """Lateral offset per self-loop function name.

    Each loop is pushed out by the summed label widths of the loops before
    it, so offsets are strictly increasing in ordinal order.
    """
    offsets: dict[str, int] = {}
    cumulative = 0
    for function in self_loop_functions(node_id, functions):
        offsets[function.name] = cumulative
        cumulative += measure_label_width(function.name) + _LABEL_PADDING
    return offsets


def _functions_of(node: PresentationNode | FlowNode) -> list[FlowFunction]:
    return node.data.function_list if hasattr(node.data, "function_list") else []


def derive_edges(nodes: Iterable[PresentationNode | FlowNode]) -> list[PresentationEdge]:
    """Compute the full presentation edge set for ``nodes``.

    Accepts presentation nodes (synthetic ones are skipped as sources) or
    plain document nodes.
    """
    nodes = list(nodes)
    present = {n.id for n in nodes}
    edges: list[PresentationEdge] = []

    for node in nodes:
        if getattr(node, "is_decision", False):
            continue
        functions = _functions_of(node)
        loop_names = [f.name for f in self_loop_functions(node.id, functions)]
        offsets = self_loop_offsets(node.id, functions)

        for function in functions:
            if function.decision is not None:
                synthetic = decision_node_id(node.id, function.name)
                if synthetic in present:
                    edges.extend(_decision_edges(node.id, function, synthetic, present))
                continue

            target = function.next_node_id
            if not target or target not in present:
                continue
            if target == node.id:
                edges.append(PresentationEdge(
                    id=f"e-{node.id}-{function.name}",
                    source=node.id,
                    target=target,
                    label=function.name,
                    type=EDGE_SELF_LOOP,
                    data={
                        "loop_index": loop_names.index(function.name),
                        "loop_offset": offsets[function.name],
                    },
                ))
            else:
                edges.append(PresentationEdge(
                    id=f"e-{node.id}-{function.name}",
                    source=node.id,
                    target=target,
                    label=function.name,
                ))

    return edges


def _decision_edges(
    node_id: str, function: FlowFunction, synthetic: str, present: set[str],
) -> list[PresentationEdge]:
    decision = function.decision
    edges = [PresentationEdge(
        id=f"e-{node_id}-{function.name}-decision",
        source=node_id,
        target=synthetic,
        type=EDGE_DECISION,
    )]
    for i, condition in enumerate(decision.conditions):
        if condition.next_node_id and condition.next_node_id in present:
            edges.append(PresentationEdge(
                id=f"e-{synthetic}-c{i}",
                source=synthetic,
                target=condition.next_node_id,
                label=condition_label(condition),
                data={"condition_index": i},
            ))
    default = decision.default_next_node_id
    if default and default in present:
        edges.append(PresentationEdge(
            id=f"e-{synthetic}-default",
            source=synthetic,
            target=default,
            label=DEFAULT_BRANCH_LABEL,
            data={"condition_index": -1},
        ))
    return edges


def derive_document_edges(nodes: Iterable[FlowNode | PresentationNode]) -> list[dict[str, Any]]:
    """Edge cache written into exported documents.

    Node→node edges only (no synthetic ids), so the cache passes the
    graph-semantic validator. Decision branches are labelled
    "<function>: <op> <value>" and "<function>: default".
    """
    nodes = [n for n in nodes if not getattr(n, "is_decision", False)]
    present = {n.id for n in nodes}
    cache: list[dict[str, Any]] = []
    for node in nodes:
        for function in _functions_of(node):
            if function.decision is None:
                target = function.next_node_id
                if target and target in present:
                    cache.append({
                        "id": f"e-{node.id}-{function.name}",
                        "source": node.id,
                        "target": target,
                        "label": function.name,
                    })
                continue
            decision = function.decision
            for i, condition in enumerate(decision.conditions):
                if condition.next_node_id and condition.next_node_id in present:
                    cache.append({
                        "id": f"e-{node.id}-{function.name}-c{i}",
                        "source": node.id,
                        "target": condition.next_node_id,
                        "label": f"{function.name}: {condition_label(condition)}",
                    })
            default = decision.default_next_node_id
            if default and default in present:
                cache.append({
                    "id": f"e-{node.id}-{function.name}-default",
                    "source": node.id,
                    "target": default,
                    "label": f"{function.name}: {DEFAULT_BRANCH_LABEL}",
                })
    return cache


def edges_changed(
    current: list[PresentationEdge], derived: list[PresentationEdge],
) -> tuple[bool, list[PresentationEdge]]:
    """Compare the displayed edges with a fresh derivation.

    Returns (changed, edges_to_use). When nothing changed the *current* list
    object is returned so the caller can skip a redundant update.
    """
    if current is derived or current == derived:
        return False, current
    return True, derived
