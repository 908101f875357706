"""Decision-node synthesizer.

A function carrying a ``decision`` block is shown on the canvas as a
synthetic ``decision`` node sitting between the owning node and the
decision's targets. These nodes are a projection of the function and are
reconciled after every node-set change:

  1. scan regular nodes; every function with a decision is *wanted*
  2. create missing synthetic nodes, seeded from the function (position from
     ``decision_node_position`` or an offset from the owning node)
  3. refresh the data of existing ones whose projection changed, keeping
     their current position
  4. drop synthetic nodes nobody wants any more

The single piece of presentation state that flows back into the document
is the synthetic node's position after a drag (apply_decision_node_drag).
"""

from __future__ import annotations

from dataclasses import replace

from flow_editor.graph.model import (
    KIND_DECISION,
    Decision,
    DecisionNodeData,
    FlowFunction,
    NodeData,
    Position,
    PresentationNode,
)

DECISION_ID_PREFIX = "decision:"

# Default placement of a new synthetic node relative to its owning node
_OFFSET_X: int = 250
_OFFSET_Y: int = 150
_STACK_Y: int = 100


# ---------------------------------------------------------------------------
# Id codec
# ---------------------------------------------------------------------------


def decision_node_id(source_node_id: str, function_name: str) -> str:
    """Deterministic synthetic id for the (node, function) pair."""
    return f"{DECISION_ID_PREFIX}{source_node_id}:{function_name}"


def parse_decision_node_id(node_id: str) -> tuple[str, str] | None:
    """Inverse of decision_node_id. Returns (source_node_id, function_name).

    Function names are identifiers and never contain ':', so the last ':'
    always separates the two halves even when the node id contains one.
    """
    if not node_id.startswith(DECISION_ID_PREFIX):
        return None
    rest = node_id[len(DECISION_ID_PREFIX):]
    source, sep, function_name = rest.rpartition(":")
    if not sep or not source or not function_name:
        return None
    return source, function_name


# ---------------------------------------------------------------------------
# Projection
# ---------------------------------------------------------------------------


def decision_projection(source_node_id: str, function: FlowFunction) -> DecisionNodeData:
    """Synthetic-node data for a function that has a decision."""
    decision = function.decision or Decision()
    return DecisionNodeData(
        label=function.name,
        action=decision.action,
        condition_count=len(decision.conditions),
        source_node_id=source_node_id,
        function_name=function.name,
    )


def default_decision_position(owner: Position, ordinal: int) -> Position:
    """Where a synthetic node appears when the user never dragged it.

    ordinal is the index of the function among the owner's decision
    functions, so sibling decision nodes stack instead of overlapping.
    """
    return Position(x=owner.x + _OFFSET_X, y=owner.y + _OFFSET_Y + ordinal * _STACK_Y)


def build_decision_node(
    owner: PresentationNode, function: FlowFunction, ordinal: int,
) -> PresentationNode:
    decision = function.decision or Decision()
    if decision.decision_node_position is not None:
        position = decision.decision_node_position.copy()
    else:
        position = default_decision_position(owner.position, ordinal)
    return PresentationNode(
        id=decision_node_id(owner.id, function.name),
        kind=KIND_DECISION,
        position=position,
        data=decision_projection(owner.id, function),
    )


def wanted_decision_nodes(
    nodes: list[PresentationNode],
) -> dict[str, tuple[PresentationNode, FlowFunction, int]]:
    """Map synthetic id → (owner, function, ordinal) for every decision function."""
    wanted: dict[str, tuple[PresentationNode, FlowFunction, int]] = {}
    for node in nodes:
        if node.is_decision:
            continue
        ordinal = 0
        for function in node.functions:
            if function.decision is None:
                continue
            wanted[decision_node_id(node.id, function.name)] = (node, function, ordinal)
            ordinal += 1
    return wanted


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------


def reconcile_decision_nodes(nodes: list[PresentationNode]) -> list[PresentationNode]:
    """Bring synthetic decision nodes in line with the functions' decisions.

    Returns the *same list object* when nothing needs to change so callers can
    skip a state update; otherwise returns a new list. Never mutates ``nodes``
    or any node in it. Existing nodes keep their order; new synthetic nodes
    are appended in scan order.
    """
    wanted = wanted_decision_nodes(nodes)
    existing_ids = {n.id for n in nodes if n.is_decision}

    changed = False
    result: list[PresentationNode] = []
    for node in nodes:
        if not node.is_decision:
            result.append(node)
            continue
        entry = wanted.get(node.id)
        if entry is None:
            changed = True
            continue
        owner, function, _ = entry
        projection = decision_projection(owner.id, function)
        if node.data != projection:
            result.append(replace(node, data=projection))
            changed = True
        else:
            result.append(node)

    for synthetic_id, (owner, function, ordinal) in wanted.items():
        if synthetic_id not in existing_ids:
            result.append(build_decision_node(owner, function, ordinal))
            changed = True

    return result if changed else nodes


def apply_decision_node_drag(
    nodes: list[PresentationNode], node_id: str, position: Position,
) -> list[PresentationNode]:
    """Finish a drag of a synthetic node.

    Moves the synthetic node and writes the position onto the owning
    function's ``decision.decision_node_position``. Returns ``nodes``
    unchanged when ``node_id`` is not a live synthetic node.
    """
    parsed = parse_decision_node_id(node_id)
    if parsed is None:
        return nodes
    source_id, function_name = parsed
    owner_index = next(
        (i for i, n in enumerate(nodes) if n.id == source_id and not n.is_decision), None,
    )
    if owner_index is None:
        return nodes
    owner = nodes[owner_index]
    if not isinstance(owner.data, NodeData):
        return nodes

    functions = owner.data.function_list
    fn_index = next(
        (i for i, f in enumerate(functions) if f.name == function_name and f.decision),
        None,
    )
    if fn_index is None:
        return nodes

    function = functions[fn_index]
    new_decision = replace(function.decision, decision_node_position=position.copy())
    new_functions = list(functions)
    new_functions[fn_index] = replace(function, decision=new_decision)
    new_owner = replace(owner, data=replace(owner.data, functions=new_functions))

    result = list(nodes)
    result[owner_index] = new_owner
    for i, n in enumerate(result):
        if n.id == node_id and n.is_decision:
            result[i] = replace(n, position=position.copy())
    return result
