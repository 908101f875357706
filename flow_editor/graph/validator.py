"""Two-pass validation gate for flow documents.

Pass 1: validate_structure(json):
  Shape of the document: required fields and their types, enum membership
  (node ``kind``, condition ``operator``, message ``role``, action ``type``,
  property ``type``, context ``strategy``), function names. Errors carry the
  path of the offending value, e.g. ``nodes[0].data.functions[1].name``.

validate_presentation_structure(graph) applies the structural pass to a
serialized canvas graph before it is rebuilt into a PresentationGraph.

Pass 2: validate_graph(doc):
  Graph semantics: unique node ids, exactly one initial node, unique
  function names per node, and every routing/edge reference naming an
  existing node.

Both passes are pure and never raise on bad input; the caller decides
whether to block (import, save, export, compile) or just warn (in-canvas
editing). find_dangling_references is the editing-time variant of the
reference check, producing inline warnings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from flow_editor.graph.decisions import DECISION_ID_PREFIX
from flow_editor.graph.errors import (
    ReferentialInconsistencyWarning,
    SemanticGraphError,
    StructuralError,
)
from flow_editor.graph.model import (
    ACTION_TYPES,
    CONDITION_OPERATORS,
    CONTEXT_STRATEGIES,
    KIND_DECISION,
    KIND_INITIAL,
    MESSAGE_ROLES,
    NODE_KINDS,
    PROPERTY_TYPES,
    FlowDocument,
    FlowNode,
    PresentationNode,
)
from flow_editor.graph.naming import validate_function_name


@dataclass
class ValidationIssue:
    """Structural error: where (path) and what (message)."""

    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path or '<root>'}: {self.message}"


@dataclass
class ValidationResult:
    """Outcome of the structural pass."""

    valid: bool
    errors: list[ValidationIssue] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": [{"path": e.path, "message": e.message} for e in self.errors],
        }


@dataclass
class GraphIssue:
    """Graph-semantic error."""

    message: str

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Structural pass
# ---------------------------------------------------------------------------


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class _StructureChecker:
    def __init__(self) -> None:
        self.errors: list[ValidationIssue] = []

    def fail(self, path: str, message: str) -> None:
        self.errors.append(ValidationIssue(path=path, message=message))

    def object(self, value: Any, path: str) -> bool:
        if not isinstance(value, dict):
            self.fail(path, "must be an object")
            return False
        return True

    def array(self, value: Any, path: str) -> bool:
        if not isinstance(value, list):
            self.fail(path, "must be an array")
            return False
        return True

    def string(self, obj: dict, key: str, path: str, *, required: bool = False) -> None:
        if key not in obj:
            if required:
                self.fail(f"{path}.{key}", "is required")
            return
        if not isinstance(obj[key], str):
            self.fail(f"{path}.{key}", "must be a string")

    def enum(self, obj: dict, key: str, allowed: tuple[str, ...], path: str) -> None:
        if key not in obj:
            self.fail(f"{path}.{key}", "is required")
        elif obj[key] not in allowed:
            self.fail(
                f"{path}.{key}",
                f"must be one of {list(allowed)}, got {obj[key]!r}",
            )

    def position(self, value: Any, path: str) -> None:
        if not self.object(value, path):
            return
        for axis in ("x", "y"):
            if axis not in value:
                self.fail(f"{path}.{axis}", "is required")
            elif not _is_number(value[axis]):
                self.fail(f"{path}.{axis}", "must be a number")

    # -- document ---------------------------------------------------------

    def document(self, doc: Any) -> None:
        if not self.object(doc, ""):
            return
        if "meta" not in doc:
            self.fail("meta", "is required")
        elif self.object(doc["meta"], "meta"):
            self.string(doc["meta"], "name", "meta", required=True)
            self.string(doc["meta"], "version", "meta")
            self.string(doc["meta"], "description", "meta")

        if "nodes" not in doc:
            self.fail("nodes", "is required")
        elif self.array(doc["nodes"], "nodes"):
            for i, node in enumerate(doc["nodes"]):
                self.node(node, f"nodes[{i}]")

        if "edges" in doc and self.array(doc["edges"], "edges"):
            for i, edge in enumerate(doc["edges"]):
                self.edge(edge, f"edges[{i}]")

        if "global_functions" in doc and self.array(doc["global_functions"], "global_functions"):
            for i, fn in enumerate(doc["global_functions"]):
                self.function(fn, f"global_functions[{i}]")

    def edge(self, edge: Any, path: str) -> None:
        if not self.object(edge, path):
            return
        self.string(edge, "source", path, required=True)
        self.string(edge, "target", path, required=True)
        self.string(edge, "id", path)
        self.string(edge, "label", path)

    def node(self, node: Any, path: str) -> None:
        if not self.object(node, path):
            return
        if "id" not in node:
            self.fail(f"{path}.id", "is required")
        elif not isinstance(node["id"], str) or not node["id"]:
            self.fail(f"{path}.id", "must be a non-empty string")
        self.enum(node, "kind", NODE_KINDS, path)
        if "position" not in node:
            self.fail(f"{path}.position", "is required")
        else:
            self.position(node["position"], f"{path}.position")
        if "data" not in node:
            self.fail(f"{path}.data", "is required")
        else:
            self.node_data(node["data"], f"{path}.data")

    def node_data(self, data: Any, path: str) -> None:
        if not self.object(data, path):
            return
        self.string(data, "label", path)
        for key in ("role_messages", "task_messages"):
            if key in data and self.array(data[key], f"{path}.{key}"):
                for i, msg in enumerate(data[key]):
                    self.message(msg, f"{path}.{key}[{i}]")
        if "functions" in data and self.array(data["functions"], f"{path}.functions"):
            for i, fn in enumerate(data["functions"]):
                self.function(fn, f"{path}.functions[{i}]")
        for key in ("pre_actions", "post_actions"):
            if key in data and self.array(data[key], f"{path}.{key}"):
                for i, action in enumerate(data[key]):
                    self.action(action, f"{path}.{key}[{i}]")
        if "context_strategy" in data:
            cs_path = f"{path}.context_strategy"
            if self.object(data["context_strategy"], cs_path):
                self.enum(data["context_strategy"], "strategy", CONTEXT_STRATEGIES, cs_path)
                self.string(data["context_strategy"], "summary_prompt", cs_path)
        if "respond_immediately" in data and not isinstance(data["respond_immediately"], bool):
            self.fail(f"{path}.respond_immediately", "must be a boolean")

    def message(self, msg: Any, path: str) -> None:
        if not self.object(msg, path):
            return
        self.enum(msg, "role", MESSAGE_ROLES, path)
        self.string(msg, "content", path, required=True)

    def action(self, action: Any, path: str) -> None:
        if not self.object(action, path):
            return
        self.enum(action, "type", ACTION_TYPES, path)
        self.string(action, "handler", path)
        self.string(action, "text", path)

    def function(self, fn: Any, path: str) -> None:
        if not self.object(fn, path):
            return
        if "name" not in fn:
            self.fail(f"{path}.name", "is required")
        elif not isinstance(fn["name"], str):
            self.fail(f"{path}.name", "must be a string")
        else:
            problem = validate_function_name(fn["name"])
            if problem:
                self.fail(f"{path}.name", problem)
        self.string(fn, "description", path, required=True)
        if "properties" in fn and self.object(fn["properties"], f"{path}.properties"):
            for name, prop in fn["properties"].items():
                self.property(prop, f"{path}.properties.{name}")
        if "required" in fn and self.array(fn["required"], f"{path}.required"):
            for i, item in enumerate(fn["required"]):
                if not isinstance(item, str):
                    self.fail(f"{path}.required[{i}]", "must be a string")
        self.string(fn, "next_node_id", path)
        if "decision" in fn:
            self.decision(fn["decision"], f"{path}.decision")

    def property(self, prop: Any, path: str) -> None:
        if not self.object(prop, path):
            return
        self.enum(prop, "type", PROPERTY_TYPES, path)
        self.string(prop, "description", path)
        self.string(prop, "pattern", path)
        if "enum" in prop:
            self.array(prop["enum"], f"{path}.enum")
        for bound in ("minimum", "maximum"):
            if bound in prop and not _is_number(prop[bound]):
                self.fail(f"{path}.{bound}", "must be a number")

    def decision(self, decision: Any, path: str) -> None:
        if not self.object(decision, path):
            return
        self.string(decision, "action", path, required=True)
        self.string(decision, "default_next_node_id", path, required=True)
        if "conditions" not in decision:
            self.fail(f"{path}.conditions", "is required")
        elif self.array(decision["conditions"], f"{path}.conditions"):
            for i, cond in enumerate(decision["conditions"]):
                cond_path = f"{path}.conditions[{i}]"
                if not self.object(cond, cond_path):
                    continue
                self.enum(cond, "operator", CONDITION_OPERATORS, cond_path)
                self.string(cond, "value", cond_path, required=True)
                self.string(cond, "next_node_id", cond_path, required=True)
        if "decision_node_position" in decision:
            self.position(decision["decision_node_position"], f"{path}.decision_node_position")

    # -- canvas graph -----------------------------------------------------

    def presentation(self, graph: Any) -> None:
        if not self.object(graph, ""):
            return
        if "meta" in graph:
            self.object(graph["meta"], "meta")
        if "nodes" not in graph:
            self.fail("nodes", "is required")
        elif self.array(graph["nodes"], "nodes"):
            for i, node in enumerate(graph["nodes"]):
                path = f"nodes[{i}]"
                if isinstance(node, dict) and node.get("kind") == KIND_DECISION:
                    self.decision_node(node, path)
                else:
                    self.node(node, path)
        if "edges" in graph and self.array(graph["edges"], "edges"):
            for i, edge in enumerate(graph["edges"]):
                self.object(edge, f"edges[{i}]")
        if "global_functions" in graph and self.array(graph["global_functions"], "global_functions"):
            for i, fn in enumerate(graph["global_functions"]):
                self.function(fn, f"global_functions[{i}]")
        if "extra" in graph:
            self.object(graph["extra"], "extra")

    def decision_node(self, node: dict, path: str) -> None:
        self.string(node, "id", path, required=True)
        if "position" in node:
            self.position(node["position"], f"{path}.position")
        if "data" in node and self.object(node["data"], f"{path}.data"):
            count = node["data"].get("condition_count", 0)
            if not isinstance(count, int) or isinstance(count, bool):
                self.fail(f"{path}.data.condition_count", "must be an integer")


def validate_structure(doc: Any) -> ValidationResult:
    """Structural pass over raw JSON (a parsed FlowDocument dict)."""
    if isinstance(doc, FlowDocument):
        doc = doc.to_dict()
    checker = _StructureChecker()
    checker.document(doc)
    return ValidationResult(valid=not checker.errors, errors=checker.errors)


def validate_presentation_structure(graph: Any) -> ValidationResult:
    """Structural pass over a serialized canvas graph.

    Lighter than validate_structure: ``meta`` may be empty and synthetic
    decision nodes are accepted, but every regular node must have the shape
    PresentationGraph.from_dict expects.
    """
    checker = _StructureChecker()
    checker.presentation(graph)
    return ValidationResult(valid=not checker.errors, errors=checker.errors)


# ---------------------------------------------------------------------------
# Graph-semantic pass
# ---------------------------------------------------------------------------


def _function_references(fn: dict[str, Any]) -> list[tuple[str, str]]:
    """(field, target) pairs for every non-empty routing target of ``fn``."""
    refs: list[tuple[str, str]] = []
    if isinstance(fn.get("next_node_id"), str) and fn["next_node_id"]:
        refs.append(("next_node_id", fn["next_node_id"]))
    decision = fn.get("decision")
    if isinstance(decision, dict):
        for i, cond in enumerate(decision.get("conditions") or []):
            if isinstance(cond, dict) and isinstance(cond.get("next_node_id"), str):
                if cond["next_node_id"]:
                    refs.append((f"decision.conditions[{i}].next_node_id", cond["next_node_id"]))
        default = decision.get("default_next_node_id")
        if isinstance(default, str) and default:
            refs.append(("decision.default_next_node_id", default))
    return refs


def validate_graph(doc: FlowDocument | dict[str, Any]) -> list[GraphIssue]:
    """Graph-semantic pass. Tolerates structurally broken input."""
    if isinstance(doc, FlowDocument):
        doc = doc.to_dict()
    if not isinstance(doc, dict):
        return [GraphIssue("Document must be an object")]

    issues: list[GraphIssue] = []
    nodes = [n for n in doc.get("nodes") or [] if isinstance(n, dict)]

    seen: set[str] = set()
    reported: set[str] = set()
    for node in nodes:
        nid = node.get("id")
        if not isinstance(nid, str):
            continue
        if nid in seen and nid not in reported:
            issues.append(GraphIssue(f"Duplicate node id: {nid}"))
            reported.add(nid)
        seen.add(nid)
        if nid.startswith(DECISION_ID_PREFIX):
            issues.append(GraphIssue(
                f"Node id uses reserved prefix '{DECISION_ID_PREFIX}': {nid}"
            ))

    initial_count = sum(1 for n in nodes if n.get("kind") == KIND_INITIAL)
    if initial_count != 1:
        issues.append(GraphIssue(
            f"Flow must have exactly one initial node (found {initial_count})"
        ))

    for node in nodes:
        nid = node.get("id")
        data = node.get("data") if isinstance(node.get("data"), dict) else {}
        names: set[str] = set()
        for fn in data.get("functions") or []:
            if not isinstance(fn, dict):
                continue
            name = fn.get("name")
            if name in names:
                issues.append(GraphIssue(f"Duplicate function name in node {nid}: {name}"))
            names.add(name)
            for field_path, target in _function_references(fn):
                if target not in seen:
                    issues.append(GraphIssue(
                        f"Function '{name}' in node '{nid}' references unknown node: "
                        f"{target} ({field_path})"
                    ))

    for fn in doc.get("global_functions") or []:
        if not isinstance(fn, dict):
            continue
        for field_path, target in _function_references(fn):
            if target not in seen:
                issues.append(GraphIssue(
                    f"Global function '{fn.get('name')}' references unknown node: "
                    f"{target} ({field_path})"
                ))

    for edge in doc.get("edges") or []:
        if not isinstance(edge, dict):
            continue
        for end in ("source", "target"):
            ref = edge.get(end)
            if ref not in seen:
                issues.append(GraphIssue(f"Edge references unknown node: {ref}"))

    return issues


# ---------------------------------------------------------------------------
# Gates and editing-time warnings
# ---------------------------------------------------------------------------


def ensure_valid(doc: FlowDocument | dict[str, Any]) -> None:
    """Run both passes; raise on the first failing pass.

    Raises StructuralError when the shape is wrong (the graph pass is then
    skipped) and SemanticGraphError when the graph is inconsistent.
    """
    structure = validate_structure(doc)
    if not structure.valid:
        raise StructuralError([str(e) for e in structure.errors])
    graph_issues = validate_graph(doc)
    if graph_issues:
        raise SemanticGraphError([i.message for i in graph_issues])


def find_dangling_references(
    nodes: Iterable[FlowNode | PresentationNode],
) -> list[ReferentialInconsistencyWarning]:
    """Routing targets naming a node that is not present.

    Synthetic decision nodes are neither sources nor valid targets.
    """
    regular = [n for n in nodes if not getattr(n, "is_decision", False)]
    present = {n.id for n in regular}
    warnings: list[ReferentialInconsistencyWarning] = []
    for node in regular:
        for fn in node.data.function_list:
            for field_path, target in _function_references(fn.to_dict()):
                if target not in present:
                    warnings.append(ReferentialInconsistencyWarning(
                        node_id=node.id,
                        function_name=fn.name,
                        field=field_path,
                        target=target,
                    ))
    return warnings
