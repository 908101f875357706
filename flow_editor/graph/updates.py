"""Edit helpers for the presentation node list.

Every helper takes the current node list and returns a new one (or a new
node); inputs are never mutated, so a stale reference held elsewhere, e.g. an
undo snapshot, cannot be corrupted. Synthetic decision nodes and edges are
not patched here: the caller's settle cycle reconciles and re-derives them.

Cross-cutting reference maintenance:
  rename_node   rewrites every next_node_id / condition target / default
                target equal to the old id.
                rename_global_references does the same for the graph's
                global functions.
  delete_node   leaves references to the deleted id in place; they become
                dangling and are reported by the validator, so the user can
                still repoint them or undo.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Callable

from flow_editor.graph.decisions import (
    DECISION_ID_PREFIX,
    apply_decision_node_drag,
    decision_node_id,
    decision_projection,
    parse_decision_node_id,
)
from flow_editor.graph.model import (
    KIND_DECISION,
    KIND_END,
    KIND_INITIAL,
    KIND_STEP,
    NODE_KINDS,
    Decision,
    DecisionCondition,
    FlowFunction,
    NodeData,
    Position,
    PresentationNode,
)
from flow_editor.graph.naming import (
    generate_copy_label,
    generate_node_id_from_label,
    python_identifier,
)

# Offset applied to a duplicated node (pixels)
_DUPLICATE_DX: int = 100
_DUPLICATE_DY: int = 20

_NODE_TEMPLATES: dict[str, dict[str, Any]] = {
    KIND_INITIAL: {
        "label": "Initial",
        "role_messages": [{
            "role": "system",
            "content": (
                "You are a helpful assistant. You must ALWAYS use the available "
                "functions to progress the conversation."
            ),
        }],
        "task_messages": [{
            "role": "system",
            "content": "Greet the user and guide them through the conversation.",
        }],
        "functions": [],
    },
    KIND_STEP: {
        "label": "Node",
        "task_messages": [{"role": "system", "content": ""}],
        "functions": [],
    },
    KIND_END: {
        "label": "End",
        "task_messages": [{
            "role": "system",
            "content": "Thank the user and end the conversation.",
        }],
        "post_actions": [{"type": "end_conversation"}],
    },
}


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _regular_index(nodes: list[PresentationNode], node_id: str) -> int | None:
    return next(
        (i for i, n in enumerate(nodes) if n.id == node_id and not n.is_decision), None,
    )


def _map_node(
    nodes: list[PresentationNode],
    node_id: str,
    fn: Callable[[PresentationNode], PresentationNode],
) -> list[PresentationNode]:
    index = _regular_index(nodes, node_id)
    if index is None:
        raise KeyError(f"Node not found: {node_id}")
    result = list(nodes)
    result[index] = fn(nodes[index])
    return result


def _map_function(
    nodes: list[PresentationNode],
    node_id: str,
    function_name: str,
    fn: Callable[[FlowFunction], FlowFunction],
) -> list[PresentationNode]:
    def _update(node: PresentationNode) -> PresentationNode:
        functions = node.data.function_list
        index = next((i for i, f in enumerate(functions) if f.name == function_name), None)
        if index is None:
            raise KeyError(f"Function not found: {node_id}.{function_name}")
        new_functions = list(functions)
        new_functions[index] = fn(functions[index])
        return replace(node, data=replace(node.data, functions=new_functions))

    return _map_node(nodes, node_id, _update)


def _retarget(function: FlowFunction, old_id: str, new_id: str) -> FlowFunction:
    changed = False
    next_node_id = function.next_node_id
    if next_node_id == old_id:
        next_node_id = new_id
        changed = True
    decision = function.decision
    if decision is not None:
        conditions = [
            replace(c, next_node_id=new_id) if c.next_node_id == old_id else c
            for c in decision.conditions
        ]
        default = decision.default_next_node_id
        if default == old_id:
            default = new_id
        if conditions != decision.conditions or default != decision.default_next_node_id:
            decision = replace(decision, conditions=conditions, default_next_node_id=default)
            changed = True
    if not changed:
        return function
    return replace(function, next_node_id=next_node_id, decision=decision)


# ---------------------------------------------------------------------------
# Node data / functions
# ---------------------------------------------------------------------------


def update_node_data(
    nodes: list[PresentationNode], node_id: str, **changes: Any,
) -> list[PresentationNode]:
    """Replace fields of a regular node's data (label, task_messages, ...)."""
    return _map_node(nodes, node_id, lambda n: replace(n, data=replace(n.data, **changes)))


def add_function(
    nodes: list[PresentationNode], node_id: str, function: FlowFunction,
) -> list[PresentationNode]:
    def _add(node: PresentationNode) -> PresentationNode:
        if node.data.get_function(function.name) is not None:
            raise ValueError(f"Duplicate function name in node {node_id}: {function.name}")
        functions = node.data.function_list + [function.copy()]
        return replace(node, data=replace(node.data, functions=functions))

    return _map_node(nodes, node_id, _add)


def remove_function(
    nodes: list[PresentationNode], node_id: str, function_name: str,
) -> list[PresentationNode]:
    def _remove(node: PresentationNode) -> PresentationNode:
        functions = [f for f in node.data.function_list if f.name != function_name]
        return replace(node, data=replace(node.data, functions=functions))

    return _map_node(nodes, node_id, _remove)


def update_function(
    nodes: list[PresentationNode], node_id: str, function_name: str, **changes: Any,
) -> list[PresentationNode]:
    """Replace fields of one function (name, description, properties, ...)."""
    return _map_function(nodes, node_id, function_name, lambda f: replace(f, **changes))


def clear_function_connection(
    nodes: list[PresentationNode], node_id: str, function_name: str,
) -> list[PresentationNode]:
    """Unset a function's plain routing target (deleting its edge)."""
    return _map_function(
        nodes, node_id, function_name, lambda f: replace(f, next_node_id=None),
    )


def set_function_decision(
    nodes: list[PresentationNode], node_id: str, function_name: str, action: str = "",
) -> list[PresentationNode]:
    """Give a function an empty decision block.

    The current ``next_node_id`` becomes the decision's default target and is
    then cleared, so the decision is the only routing mode left.
    """
    def _attach(function: FlowFunction) -> FlowFunction:
        if function.decision is not None:
            return function
        decision = Decision(
            action=action,
            conditions=[],
            default_next_node_id=function.next_node_id or "",
        )
        return replace(function, decision=decision, next_node_id=None)

    return _map_function(nodes, node_id, function_name, _attach)


def remove_function_decision(
    nodes: list[PresentationNode], node_id: str, function_name: str,
) -> list[PresentationNode]:
    return _map_function(nodes, node_id, function_name, lambda f: replace(f, decision=None))


def update_decision(
    nodes: list[PresentationNode], node_id: str, function_name: str, **changes: Any,
) -> list[PresentationNode]:
    """Replace fields of a function's decision (action, conditions, default)."""
    def _update(function: FlowFunction) -> FlowFunction:
        if function.decision is None:
            raise ValueError(f"Function {node_id}.{function_name} has no decision")
        return replace(function, decision=replace(function.decision, **changes))

    return _map_function(nodes, node_id, function_name, _update)


# ---------------------------------------------------------------------------
# Structural edits
# ---------------------------------------------------------------------------


def update_function_references(
    nodes: list[PresentationNode], old_id: str, new_id: str,
) -> list[PresentationNode]:
    """Rewrite every routing target equal to ``old_id`` across all nodes."""
    result: list[PresentationNode] = []
    for node in nodes:
        if node.is_decision or not node.data.function_list:
            result.append(node)
            continue
        functions = [_retarget(f, old_id, new_id) for f in node.data.function_list]
        if functions == node.data.function_list:
            result.append(node)
        else:
            result.append(replace(node, data=replace(node.data, functions=functions)))
    return result


def rename_global_references(
    global_functions: list[FlowFunction] | None, old_id: str, new_id: str,
) -> list[FlowFunction] | None:
    """Global-function counterpart of update_function_references.

    Global functions live on the graph rather than on a node, so node-list
    helpers cannot reach them; EditorSession.rename_node applies both.
    Returns the input list itself when nothing pointed at ``old_id``.
    """
    if not global_functions:
        return global_functions
    functions = [_retarget(f, old_id, new_id) for f in global_functions]
    if functions == global_functions:
        return global_functions
    return functions


def rename_node(
    nodes: list[PresentationNode], old_id: str, new_id: str,
) -> list[PresentationNode]:
    """Change a node id and cascade the rename to every reference.

    The renamed node's synthetic decision nodes are rebuilt under their new
    ids (projection recomputed, dragged position kept).
    """
    if old_id == new_id:
        return nodes
    if not new_id:
        raise ValueError("Node id cannot be empty")
    if new_id.startswith(DECISION_ID_PREFIX):
        raise ValueError(f"Node id uses reserved prefix '{DECISION_ID_PREFIX}': {new_id}")
    if any(n.id == new_id for n in nodes):
        raise ValueError(f"Duplicate node id: {new_id}")
    if _regular_index(nodes, old_id) is None:
        raise KeyError(f"Node not found: {old_id}")

    renamed = [replace(n, id=new_id) if n.id == old_id and not n.is_decision else n
               for n in nodes]
    renamed = update_function_references(renamed, old_id, new_id)
    owner = renamed[_regular_index(renamed, new_id)]

    result: list[PresentationNode] = []
    for node in renamed:
        parsed = parse_decision_node_id(node.id) if node.is_decision else None
        if parsed is not None and parsed[0] == old_id:
            function = owner.data.get_function(parsed[1])
            if function is None or function.decision is None:
                continue
            node = replace(
                node,
                id=decision_node_id(new_id, function.name),
                data=decision_projection(new_id, function),
            )
        result.append(node)
    return result


def can_delete_node(nodes: list[PresentationNode], node_id: str) -> bool:
    """Deleting is refused for the initial node, the last remaining node,
    unknown ids and synthetic decision nodes."""
    index = _regular_index(nodes, node_id)
    if index is None:
        return False
    if nodes[index].kind == KIND_INITIAL:
        return False
    return sum(1 for n in nodes if not n.is_decision) > 1


def delete_node(nodes: list[PresentationNode], node_id: str) -> list[PresentationNode]:
    """Remove a node; references to it are left dangling on purpose."""
    if not can_delete_node(nodes, node_id):
        raise ValueError(f"Node cannot be deleted: {node_id}")
    return [n for n in nodes if not (n.id == node_id and not n.is_decision)]


def duplicate_node(nodes: list[PresentationNode], node_id: str) -> PresentationNode:
    """Structural copy of a regular node under a fresh id and copy label.

    Routing references are preserved so the copy keeps its connections.
    Dragged decision-node positions move along with the copy.
    """
    index = _regular_index(nodes, node_id)
    if index is None:
        raise KeyError(f"Node not found: {node_id}")
    original = nodes[index]
    if original.kind == KIND_INITIAL:
        raise ValueError("The initial node cannot be duplicated")

    existing_labels = [
        n.data.label for n in nodes if not n.is_decision and n.data.label
    ]
    label = generate_copy_label(original.data.label or "Node", existing_labels)
    new_id = generate_node_id_from_label(label, [n.id for n in nodes])

    clone = original.copy()
    functions = clone.data.functions
    if functions is not None:
        for i, function in enumerate(functions):
            decision = function.decision
            if decision is not None and decision.decision_node_position is not None:
                moved = decision.decision_node_position.offset(_DUPLICATE_DX, _DUPLICATE_DY)
                functions[i] = replace(
                    function, decision=replace(decision, decision_node_position=moved),
                )
    return replace(
        clone,
        id=new_id,
        position=original.position.offset(_DUPLICATE_DX, _DUPLICATE_DY),
        data=replace(clone.data, label=label),
    )


def create_node(
    nodes: list[PresentationNode],
    kind: str,
    position: Position,
    label: str | None = None,
) -> PresentationNode:
    """New regular node from the kind's template. Only one initial node."""
    if kind not in NODE_KINDS:
        raise ValueError(f"Unknown node kind: {kind!r}")
    if kind == KIND_INITIAL and any(n.kind == KIND_INITIAL for n in nodes):
        raise ValueError("Flow already has an initial node")
    data = NodeData.from_dict(_NODE_TEMPLATES[kind])
    if label:
        data = replace(data, label=label)
    new_id = generate_node_id_from_label(data.label or kind, [n.id for n in nodes])
    return PresentationNode(id=new_id, kind=kind, position=position.copy(), data=data)


def add_node(
    nodes: list[PresentationNode],
    kind: str,
    position: Position,
    label: str | None = None,
) -> list[PresentationNode]:
    return nodes + [create_node(nodes, kind, position, label)]


def connect_nodes(
    nodes: list[PresentationNode], source_id: str, target_id: str,
) -> list[PresentationNode]:
    """Route ``source`` to ``target`` as the user drew a connection.

    From a synthetic decision node: the first condition without a target,
    else an unset default, else a new ``==`` condition.
    From a regular node: the first plain function without a target, else a
    new ``go_to_<target>`` function.
    """
    if _regular_index(nodes, target_id) is None:
        raise ValueError(f"Cannot connect to {target_id!r}: not a regular node")

    parsed = parse_decision_node_id(source_id)
    if parsed is not None:
        owner_id, function_name = parsed

        def _route_decision(function: FlowFunction) -> FlowFunction:
            decision = function.decision
            if decision is None:
                raise ValueError(f"Function {owner_id}.{function_name} has no decision")
            conditions = list(decision.conditions)
            for i, condition in enumerate(conditions):
                if not condition.next_node_id:
                    conditions[i] = replace(condition, next_node_id=target_id)
                    return replace(function, decision=replace(decision, conditions=conditions))
            if not decision.default_next_node_id:
                return replace(
                    function, decision=replace(decision, default_next_node_id=target_id),
                )
            conditions.append(DecisionCondition(operator="==", value="", next_node_id=target_id))
            return replace(function, decision=replace(decision, conditions=conditions))

        return _map_function(nodes, owner_id, function_name, _route_decision)

    source_index = _regular_index(nodes, source_id)
    if source_index is None:
        raise KeyError(f"Node not found: {source_id}")
    source = nodes[source_index]
    for function in source.data.function_list:
        if function.decision is None and not function.next_node_id:
            return _map_function(
                nodes, source_id, function.name,
                lambda f: replace(f, next_node_id=target_id),
            )

    base = f"go_to_{python_identifier(target_id)}"
    name = base
    n = 2
    while source.data.get_function(name) is not None:
        name = f"{base}_{n}"
        n += 1
    return add_function(nodes, source_id, FlowFunction(
        name=name,
        description=f"Transition to {target_id}",
        next_node_id=target_id,
    ))


def move_node(
    nodes: list[PresentationNode], node_id: str, position: Position,
) -> list[PresentationNode]:
    """Finish a drag. Synthetic nodes write their position back to the
    owning function's decision in the same step."""
    if any(n.id == node_id and n.kind == KIND_DECISION for n in nodes):
        return apply_decision_node_drag(nodes, node_id, position)
    return _map_node(nodes, node_id, lambda n: replace(n, position=position.copy()))
