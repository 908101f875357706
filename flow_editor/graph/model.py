"""Typed records for flow documents and the editor's presentation graph.

Two representations share the node/function/decision records defined here:

  FlowDocument       canonical JSON document (meta, nodes, global functions,
                     an edge cache). This is what gets imported, exported,
                     saved and compiled.
  PresentationGraph  what the canvas shows: the same nodes plus synthetic
                     ``decision`` nodes and the derived edge set.

Every record has ``from_dict`` / ``to_dict`` / ``copy``. Keys the record does
not model are kept in ``extra`` and written back unchanged, so documents
carrying ``$schema``/``$id`` or newer fields survive a round-trip. ``copy``
is the single structural-copy routine for each entity type; duplicate,
import and undo all go through it.

Optional fields use ``None`` for "absent" and are omitted by ``to_dict``.
"""

from __future__ import annotations

import copy as _copy
from dataclasses import dataclass, field
from typing import Any

# Node kinds
KIND_INITIAL = "initial"
KIND_STEP = "step"
KIND_END = "end"
KIND_DECISION = "decision"

NODE_KINDS: tuple[str, ...] = (KIND_INITIAL, KIND_STEP, KIND_END)
PRESENTATION_KINDS: tuple[str, ...] = NODE_KINDS + (KIND_DECISION,)

CONDITION_OPERATORS: tuple[str, ...] = (
    "<", "<=", "==", ">=", ">", "!=", "not", "in", "not in",
)
MESSAGE_ROLES: tuple[str, ...] = ("system", "user", "assistant")
ACTION_TYPES: tuple[str, ...] = ("function", "end_conversation", "tts_say")
PROPERTY_TYPES: tuple[str, ...] = (
    "string", "integer", "number", "boolean", "array", "object",
)
CONTEXT_STRATEGIES: tuple[str, ...] = ("APPEND", "RESET", "RESET_WITH_SUMMARY")


def _extra(raw: dict[str, Any], known: tuple[str, ...]) -> dict[str, Any]:
    return {k: _copy.deepcopy(v) for k, v in raw.items() if k not in known}


def _put(out: dict[str, Any], key: str, value: Any) -> None:
    if value is not None:
        out[key] = value


# ---------------------------------------------------------------------------
# Shared records
# ---------------------------------------------------------------------------


@dataclass
class Position:
    """Canvas coordinates in pixels."""

    x: float = 0
    y: float = 0
    extra: dict[str, Any] = field(default_factory=dict)

    _KEYS = ("x", "y")

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | None) -> "Position":
        raw = raw or {}
        return cls(x=raw.get("x", 0), y=raw.get("y", 0), extra=_extra(raw, cls._KEYS))

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"x": self.x, "y": self.y}
        out.update(_copy.deepcopy(self.extra))
        return out

    def copy(self) -> "Position":
        return Position(x=self.x, y=self.y, extra=_copy.deepcopy(self.extra))

    def offset(self, dx: float, dy: float) -> "Position":
        return Position(x=self.x + dx, y=self.y + dy, extra=_copy.deepcopy(self.extra))


@dataclass
class DecisionCondition:
    """One ``if``/``elif`` branch of a decision, evaluated in list order."""

    operator: str = "=="
    value: str = ""
    next_node_id: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    _KEYS = ("operator", "value", "next_node_id")

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "DecisionCondition":
        return cls(
            operator=raw.get("operator", "=="),
            value=raw.get("value", ""),
            next_node_id=raw.get("next_node_id", ""),
            extra=_extra(raw, cls._KEYS),
        )

    def to_dict(self) -> dict[str, Any]:
        out = {
            "operator": self.operator,
            "value": self.value,
            "next_node_id": self.next_node_id,
        }
        out.update(_copy.deepcopy(self.extra))
        return out

    def copy(self) -> "DecisionCondition":
        return DecisionCondition(
            operator=self.operator,
            value=self.value,
            next_node_id=self.next_node_id,
            extra=_copy.deepcopy(self.extra),
        )


@dataclass
class Decision:
    """Conditional routing block attached to a function.

    action:                  opaque expression; its result is compared by
                             each condition.
    conditions:              ordered if/elif chain.
    default_next_node_id:    the trailing ``else`` target.
    decision_node_position:  last position the user dragged the synthetic
                             decision node to (the only user-authored
                             presentation state that is persisted).
    """

    action: str = ""
    conditions: list[DecisionCondition] = field(default_factory=list)
    default_next_node_id: str = ""
    decision_node_position: Position | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    _KEYS = ("action", "conditions", "default_next_node_id", "decision_node_position")

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Decision":
        pos = raw.get("decision_node_position")
        return cls(
            action=raw.get("action", ""),
            conditions=[DecisionCondition.from_dict(c) for c in raw.get("conditions") or []],
            default_next_node_id=raw.get("default_next_node_id", ""),
            decision_node_position=Position.from_dict(pos) if pos is not None else None,
            extra=_extra(raw, cls._KEYS),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "action": self.action,
            "conditions": [c.to_dict() for c in self.conditions],
            "default_next_node_id": self.default_next_node_id,
        }
        if self.decision_node_position is not None:
            out["decision_node_position"] = self.decision_node_position.to_dict()
        out.update(_copy.deepcopy(self.extra))
        return out

    def copy(self) -> "Decision":
        return Decision(
            action=self.action,
            conditions=[c.copy() for c in self.conditions],
            default_next_node_id=self.default_next_node_id,
            decision_node_position=(
                self.decision_node_position.copy()
                if self.decision_node_position is not None
                else None
            ),
            extra=_copy.deepcopy(self.extra),
        )

    def targets(self) -> list[str]:
        """Every routing target in evaluation order, default last."""
        return [c.next_node_id for c in self.conditions] + [self.default_next_node_id]


@dataclass
class FlowFunction:
    """A callable the LLM can invoke from a node.

    Routing is either ``next_node_id`` or ``decision``. When both are set the
    decision wins and ``next_node_id`` is ignored for routing.
    """

    name: str
    description: str | None = None
    properties: dict[str, Any] | None = None
    required: list[str] | None = None
    next_node_id: str | None = None
    decision: Decision | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    _KEYS = ("name", "description", "properties", "required", "next_node_id", "decision")

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "FlowFunction":
        decision = raw.get("decision")
        return cls(
            name=raw.get("name", ""),
            description=raw.get("description"),
            properties=_copy.deepcopy(raw.get("properties")),
            required=list(raw["required"]) if raw.get("required") is not None else None,
            next_node_id=raw.get("next_node_id"),
            decision=Decision.from_dict(decision) if decision is not None else None,
            extra=_extra(raw, cls._KEYS),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"name": self.name}
        _put(out, "description", self.description)
        _put(out, "properties", _copy.deepcopy(self.properties))
        _put(out, "required", list(self.required) if self.required is not None else None)
        _put(out, "next_node_id", self.next_node_id)
        if self.decision is not None:
            out["decision"] = self.decision.to_dict()
        out.update(_copy.deepcopy(self.extra))
        return out

    def copy(self) -> "FlowFunction":
        return FlowFunction(
            name=self.name,
            description=self.description,
            properties=_copy.deepcopy(self.properties),
            required=list(self.required) if self.required is not None else None,
            next_node_id=self.next_node_id,
            decision=self.decision.copy() if self.decision is not None else None,
            extra=_copy.deepcopy(self.extra),
        )

    def routing_targets(self) -> list[str]:
        """Non-empty targets this function can transition to."""
        if self.decision is not None:
            return [t for t in self.decision.targets() if t]
        return [self.next_node_id] if self.next_node_id else []


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------


@dataclass
class NodeData:
    """Conversation-step payload of a regular node.

    Messages, actions and the context strategy are opaque JSON objects to the
    core; only their shape is checked by the validator.
    """

    label: str | None = None
    role_messages: list[dict[str, Any]] | None = None
    task_messages: list[dict[str, Any]] | None = None
    functions: list[FlowFunction] | None = None
    pre_actions: list[dict[str, Any]] | None = None
    post_actions: list[dict[str, Any]] | None = None
    context_strategy: dict[str, Any] | None = None
    respond_immediately: bool | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    _KEYS = (
        "label", "role_messages", "task_messages", "functions", "pre_actions",
        "post_actions", "context_strategy", "respond_immediately",
    )

    @property
    def function_list(self) -> list[FlowFunction]:
        return self.functions or []

    def get_function(self, name: str) -> FlowFunction | None:
        return next((f for f in self.function_list if f.name == name), None)

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | None) -> "NodeData":
        raw = raw or {}
        functions = raw.get("functions")
        return cls(
            label=raw.get("label"),
            role_messages=_copy.deepcopy(raw.get("role_messages")),
            task_messages=_copy.deepcopy(raw.get("task_messages")),
            functions=(
                [FlowFunction.from_dict(f) for f in functions]
                if functions is not None
                else None
            ),
            pre_actions=_copy.deepcopy(raw.get("pre_actions")),
            post_actions=_copy.deepcopy(raw.get("post_actions")),
            context_strategy=_copy.deepcopy(raw.get("context_strategy")),
            respond_immediately=raw.get("respond_immediately"),
            extra=_extra(raw, cls._KEYS),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        _put(out, "label", self.label)
        _put(out, "role_messages", _copy.deepcopy(self.role_messages))
        _put(out, "task_messages", _copy.deepcopy(self.task_messages))
        if self.functions is not None:
            out["functions"] = [f.to_dict() for f in self.functions]
        _put(out, "pre_actions", _copy.deepcopy(self.pre_actions))
        _put(out, "post_actions", _copy.deepcopy(self.post_actions))
        _put(out, "context_strategy", _copy.deepcopy(self.context_strategy))
        _put(out, "respond_immediately", self.respond_immediately)
        out.update(_copy.deepcopy(self.extra))
        return out

    def copy(self) -> "NodeData":
        return NodeData(
            label=self.label,
            role_messages=_copy.deepcopy(self.role_messages),
            task_messages=_copy.deepcopy(self.task_messages),
            functions=(
                [f.copy() for f in self.functions] if self.functions is not None else None
            ),
            pre_actions=_copy.deepcopy(self.pre_actions),
            post_actions=_copy.deepcopy(self.post_actions),
            context_strategy=_copy.deepcopy(self.context_strategy),
            respond_immediately=self.respond_immediately,
            extra=_copy.deepcopy(self.extra),
        )


@dataclass
class DecisionNodeData:
    """Projection of a function's decision block onto a synthetic node.

    Never a source of truth: always recomputable from the owning function.
    """

    label: str
    action: str
    condition_count: int
    source_node_id: str
    function_name: str

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "DecisionNodeData":
        return cls(
            label=raw.get("label", ""),
            action=raw.get("action", ""),
            condition_count=int(raw.get("condition_count", 0)),
            source_node_id=raw.get("source_node_id", ""),
            function_name=raw.get("function_name", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "action": self.action,
            "condition_count": self.condition_count,
            "source_node_id": self.source_node_id,
            "function_name": self.function_name,
        }

    def copy(self) -> "DecisionNodeData":
        return DecisionNodeData(
            label=self.label,
            action=self.action,
            condition_count=self.condition_count,
            source_node_id=self.source_node_id,
            function_name=self.function_name,
        )


@dataclass
class FlowNode:
    """A conversation step in the canonical document."""

    id: str
    kind: str
    position: Position = field(default_factory=Position)
    data: NodeData = field(default_factory=NodeData)
    extra: dict[str, Any] = field(default_factory=dict)

    _KEYS = ("id", "kind", "position", "data")

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "FlowNode":
        return cls(
            id=raw.get("id", ""),
            kind=raw.get("kind", KIND_STEP),
            position=Position.from_dict(raw.get("position")),
            data=NodeData.from_dict(raw.get("data")),
            extra=_extra(raw, cls._KEYS),
        )

    def to_dict(self) -> dict[str, Any]:
        out = {
            "id": self.id,
            "kind": self.kind,
            "position": self.position.to_dict(),
            "data": self.data.to_dict(),
        }
        out.update(_copy.deepcopy(self.extra))
        return out

    def copy(self) -> "FlowNode":
        return FlowNode(
            id=self.id,
            kind=self.kind,
            position=self.position.copy(),
            data=self.data.copy(),
            extra=_copy.deepcopy(self.extra),
        )


@dataclass
class PresentationNode:
    """A node on the canvas: a regular step or a synthetic decision node."""

    id: str
    kind: str
    position: Position = field(default_factory=Position)
    data: NodeData | DecisionNodeData = field(default_factory=NodeData)
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_decision(self) -> bool:
        return self.kind == KIND_DECISION

    @property
    def functions(self) -> list[FlowFunction]:
        if isinstance(self.data, NodeData):
            return self.data.function_list
        return []

    @classmethod
    def from_flow_node(cls, node: FlowNode) -> "PresentationNode":
        node = node.copy()
        return cls(id=node.id, kind=node.kind, position=node.position,
                   data=node.data, extra=node.extra)

    def to_flow_node(self) -> FlowNode:
        if self.is_decision:
            raise ValueError(f"Synthetic decision node {self.id!r} has no document form")
        return FlowNode(
            id=self.id,
            kind=self.kind,
            position=self.position.copy(),
            data=self.data.copy(),
            extra=_copy.deepcopy(self.extra),
        )

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "PresentationNode":
        kind = raw.get("kind", KIND_STEP)
        data: NodeData | DecisionNodeData
        if kind == KIND_DECISION:
            data = DecisionNodeData.from_dict(raw.get("data") or {})
        else:
            data = NodeData.from_dict(raw.get("data"))
        return cls(
            id=raw.get("id", ""),
            kind=kind,
            position=Position.from_dict(raw.get("position")),
            data=data,
            extra=_extra(raw, FlowNode._KEYS),
        )

    def to_dict(self) -> dict[str, Any]:
        out = {
            "id": self.id,
            "kind": self.kind,
            "position": self.position.to_dict(),
            "data": self.data.to_dict(),
        }
        out.update(_copy.deepcopy(self.extra))
        return out

    def copy(self) -> "PresentationNode":
        return PresentationNode(
            id=self.id,
            kind=self.kind,
            position=self.position.copy(),
            data=self.data.copy(),
            extra=_copy.deepcopy(self.extra),
        )


@dataclass
class PresentationEdge:
    """A derived on-screen edge. Never edited by hand."""

    id: str
    source: str
    target: str
    label: str | None = None
    type: str = "default"
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "PresentationEdge":
        return cls(
            id=raw.get("id", ""),
            source=raw.get("source", ""),
            target=raw.get("target", ""),
            label=raw.get("label"),
            type=raw.get("type", "default"),
            data=_copy.deepcopy(raw.get("data") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "type": self.type,
        }
        _put(out, "label", self.label)
        if self.data:
            out["data"] = _copy.deepcopy(self.data)
        return out

    def copy(self) -> "PresentationEdge":
        return PresentationEdge(
            id=self.id,
            source=self.source,
            target=self.target,
            label=self.label,
            type=self.type,
            data=_copy.deepcopy(self.data),
        )


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


@dataclass
class FlowDocument:
    """Canonical flow document. ``edges`` is a cache, not a source of truth."""

    meta: dict[str, Any] = field(default_factory=dict)
    nodes: list[FlowNode] = field(default_factory=list)
    edges: list[dict[str, Any]] | None = None
    global_functions: list[FlowFunction] | None = None
    context: Any = None
    extra: dict[str, Any] = field(default_factory=dict)

    _KEYS = ("meta", "nodes", "edges", "global_functions", "context")

    def node_ids(self) -> set[str]:
        return {n.id for n in self.nodes}

    def get_node(self, node_id: str) -> FlowNode | None:
        return next((n for n in self.nodes if n.id == node_id), None)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "FlowDocument":
        global_functions = raw.get("global_functions")
        extra = _extra(raw, cls._KEYS)
        # An explicit null context rides in extra so to_dict writes it back
        if "context" in raw and raw["context"] is None:
            extra["context"] = None
        return cls(
            meta=_copy.deepcopy(raw.get("meta") or {}),
            nodes=[FlowNode.from_dict(n) for n in raw.get("nodes") or []],
            edges=_copy.deepcopy(raw.get("edges")),
            global_functions=(
                [FlowFunction.from_dict(f) for f in global_functions]
                if global_functions is not None
                else None
            ),
            context=_copy.deepcopy(raw.get("context")),
            extra=extra,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = _copy.deepcopy(self.extra)
        out["meta"] = _copy.deepcopy(self.meta)
        _put(out, "context", _copy.deepcopy(self.context))
        if self.global_functions is not None:
            out["global_functions"] = [f.to_dict() for f in self.global_functions]
        out["nodes"] = [n.to_dict() for n in self.nodes]
        out["edges"] = _copy.deepcopy(self.edges) if self.edges is not None else []
        return out

    def copy(self) -> "FlowDocument":
        return FlowDocument(
            meta=_copy.deepcopy(self.meta),
            nodes=[n.copy() for n in self.nodes],
            edges=_copy.deepcopy(self.edges),
            global_functions=(
                [f.copy() for f in self.global_functions]
                if self.global_functions is not None
                else None
            ),
            context=_copy.deepcopy(self.context),
            extra=_copy.deepcopy(self.extra),
        )


@dataclass
class PresentationGraph:
    """Canvas state: nodes (incl. synthetic), derived edges, and the
    document-level fields that ride along untouched until export."""

    nodes: list[PresentationNode] = field(default_factory=list)
    edges: list[PresentationEdge] = field(default_factory=list)
    meta: dict[str, Any] = field(default_factory=dict)
    global_functions: list[FlowFunction] | None = None
    context: Any = None
    extra: dict[str, Any] = field(default_factory=dict)

    def node_ids(self) -> set[str]:
        return {n.id for n in self.nodes}

    def get_node(self, node_id: str) -> PresentationNode | None:
        return next((n for n in self.nodes if n.id == node_id), None)

    def regular_nodes(self) -> list[PresentationNode]:
        return [n for n in self.nodes if not n.is_decision]

    def decision_nodes(self) -> list[PresentationNode]:
        return [n for n in self.nodes if n.is_decision]

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "PresentationGraph":
        global_functions = raw.get("global_functions")
        return cls(
            nodes=[PresentationNode.from_dict(n) for n in raw.get("nodes") or []],
            edges=[PresentationEdge.from_dict(e) for e in raw.get("edges") or []],
            meta=_copy.deepcopy(raw.get("meta") or {}),
            global_functions=(
                [FlowFunction.from_dict(f) for f in global_functions]
                if global_functions is not None
                else None
            ),
            context=_copy.deepcopy(raw.get("context")),
            extra=_copy.deepcopy(raw.get("extra") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "meta": _copy.deepcopy(self.meta),
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
        }
        if self.global_functions is not None:
            out["global_functions"] = [f.to_dict() for f in self.global_functions]
        _put(out, "context", _copy.deepcopy(self.context))
        if self.extra:
            out["extra"] = _copy.deepcopy(self.extra)
        return out

    def copy(self) -> "PresentationGraph":
        return PresentationGraph(
            nodes=[n.copy() for n in self.nodes],
            edges=[e.copy() for e in self.edges],
            meta=_copy.deepcopy(self.meta),
            global_functions=(
                [f.copy() for f in self.global_functions]
                if self.global_functions is not None
                else None
            ),
            context=_copy.deepcopy(self.context),
            extra=_copy.deepcopy(self.extra),
        )
