"""Compile a flow document into a pipecat-flows Python scaffold.

Output layout, in document order:

  imports            ContextStrategy imports only when a node uses one
  per node           one handler per function, then ``create_<node>_node()``
  globals            ``GLOBAL_FUNCTIONS`` only when the flow defines any
  action stubs       one stub per distinct ``function`` action handler
  entry point        ``create_initial_node()``

Decision functions become an if/elif chain over the decision's ``action``
result in condition order, with the default target as the ``else``. The
action expression is inserted verbatim. Identical input always yields
identical text.

generate_python_code() assumes a valid document; compile_flow() runs both
validator passes first and raises CompileRefusal instead of emitting code.
"""

from __future__ import annotations

import math
import pprint
from typing import Any

from flow_editor.graph.errors import CompileRefusal, FlowEditorError
from flow_editor.graph.model import (
    KIND_INITIAL,
    DecisionCondition,
    FlowDocument,
    FlowFunction,
    FlowNode,
)
from flow_editor.graph.naming import python_identifier
from flow_editor.graph.validator import ensure_valid

_INDENT = "    "

_BASE_IMPORTS = ("FlowArgs", "FlowManager", "FlowsFunctionSchema", "NodeConfig")
_CONTEXT_IMPORTS = ("ContextStrategy", "ContextStrategyConfig")

ENTRY_POINT = "create_initial_node"
GLOBALS_NAME = "GLOBAL_FUNCTIONS"


class _Code:
    """A Python expression that pformat must print unquoted."""

    def __init__(self, text: str) -> None:
        self.text = text

    def __repr__(self) -> str:
        return self.text


class _Namer:
    """Hands out unique module-level names: base, base_2, base_3, ..."""

    def __init__(self, reserved: set[str]) -> None:
        self._used = set(reserved)

    def claim(self, base: str) -> str:
        name = base
        n = 2
        while name in self._used:
            name = f"{base}_{n}"
            n += 1
        self._used.add(name)
        return name


# ---------------------------------------------------------------------------
# Value rendering
# ---------------------------------------------------------------------------


def _format(value: Any, indent: str) -> str:
    """pformat ``value`` with continuation lines indented to ``indent``."""
    text = pprint.pformat(value, width=88 - len(indent), sort_dicts=False)
    return text.replace("\n", "\n" + indent)


def _literal(value: str) -> str:
    """Render a condition value: numbers/booleans/None bare, else a string."""
    text = value.strip()
    lowered = text.lower()
    if lowered == "true":
        return "True"
    if lowered == "false":
        return "False"
    if lowered in ("none", "null"):
        return "None"
    try:
        return repr(int(text))
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return repr(value)
    if math.isfinite(number):
        return repr(number)
    return repr(value)


def _condition_expr(condition: DecisionCondition) -> str:
    op = condition.operator
    if op == "not":
        return "not result"
    if op in ("in", "not in"):
        items = [v for v in (part.strip() for part in condition.value.split(",")) if v]
        return f"result {op} [{', '.join(_literal(v) for v in items)}]"
    return f"result {op} {_literal(condition.value)}"


def _one_line(text: Any) -> str:
    return " ".join(str(text).split())


def _message_list(messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [dict(m) for m in messages]


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------


class _Generator:
    def __init__(self, doc: FlowDocument) -> None:
        self.doc = doc
        self.lines: list[str] = []
        self.action_handlers: dict[str, str] = {}

        initial = next((n for n in doc.nodes if n.kind == KIND_INITIAL), None)
        self.initial_id = initial.id if initial is not None else None

        reserved = set(_BASE_IMPORTS) | set(_CONTEXT_IMPORTS) | {GLOBALS_NAME}
        initial_ident = python_identifier(self.initial_id) if initial else None
        if initial_ident != "initial":
            reserved.add(ENTRY_POINT)
        self.namer = _Namer(reserved)

        # Constructors are named up front so handlers can reference any node
        self.constructors: dict[str, str] = {}
        if initial is not None:
            self.constructors[initial.id] = self.namer.claim(f"create_{initial_ident}_node")
        for node in doc.nodes:
            if node.id not in self.constructors:
                ident = python_identifier(node.id)
                self.constructors[node.id] = self.namer.claim(f"create_{ident}_node")

    # -- helpers ---------------------------------------------------------

    def emit(self, line: str = "", depth: int = 0) -> None:
        self.lines.append(f"{_INDENT * depth}{line}" if line else "")

    def transition(self, target: str | None) -> str:
        if not target:
            return "None, None"
        return f"None, {self.constructors[target]}()"

    def uses_context_strategy(self) -> bool:
        return any(n.data.context_strategy for n in self.doc.nodes)

    def action_handler(self, name: str) -> str:
        if name not in self.action_handlers:
            self.action_handlers[name] = self.namer.claim(
                python_identifier(name, prefix="action_handler")
            )
        return self.action_handlers[name]

    def actions(self, actions: list[dict[str, Any]]) -> list[dict[str, Any]]:
        rendered = []
        for action in actions:
            action = dict(action)
            if action.get("type") == "function" and action.get("handler"):
                action["handler"] = _Code(self.action_handler(action["handler"]))
            rendered.append(action)
        return rendered

    # -- sections --------------------------------------------------------

    def header(self) -> None:
        name = self.doc.meta.get("name") or "flow"
        self.emit(f"# Flow scaffold for {_one_line(name)!r}, generated by flow-editor.")
        description = self.doc.meta.get("description")
        if description:
            self.emit(f"# {_one_line(description)}")
        self.emit()
        self.emit("from __future__ import annotations")
        self.emit()
        imports = list(_BASE_IMPORTS)
        if self.uses_context_strategy():
            imports += _CONTEXT_IMPORTS
        imports.sort()
        self.emit("from pipecat_flows import (")
        for name in imports:
            self.emit(f"{name},", 1)
        self.emit(")")

    def handler(self, owner: str, function: FlowFunction) -> str:
        name = self.namer.claim(f"{owner}_{python_identifier(function.name)}_handler")
        self.emit()
        self.emit()
        self.emit(
            f"async def {name}(args: FlowArgs, flow_manager: FlowManager)"
            " -> tuple[None, NodeConfig | None]:"
        )
        decision = function.decision
        if decision is None:
            self.emit(f"return {self.transition(function.next_node_id)}", 1)
            return name

        action_lines = decision.action.strip().splitlines() if decision.action else []
        if action_lines:
            self.emit(f"result = {action_lines[0]}", 1)
            for line in action_lines[1:]:
                self.emit(line, 1)
        else:
            self.emit("result = None", 1)

        if not decision.conditions:
            self.emit(f"return {self.transition(decision.default_next_node_id)}", 1)
            return name
        for i, condition in enumerate(decision.conditions):
            keyword = "if" if i == 0 else "elif"
            self.emit(f"{keyword} {_condition_expr(condition)}:", 1)
            self.emit(f"return {self.transition(condition.next_node_id)}", 2)
        self.emit("else:", 1)
        self.emit(f"return {self.transition(decision.default_next_node_id)}", 2)
        return name

    def schema(self, function: FlowFunction, handler: str, depth: int) -> None:
        inner = _INDENT * (depth + 1)
        self.emit("FlowsFunctionSchema(", depth)
        self.emit(f"name={function.name!r},", depth + 1)
        self.emit(f"description={(function.description or '')!r},", depth + 1)
        self.emit(f"properties={_format(function.properties or {}, inner)},", depth + 1)
        self.emit(f"required={_format(function.required or [], inner)},", depth + 1)
        self.emit(f"handler={handler},", depth + 1)
        self.emit("),", depth)

    def node(self, node: FlowNode) -> None:
        owner = python_identifier(node.id)
        data = node.data
        handlers = [(f, self.handler(owner, f)) for f in data.function_list]

        self.emit()
        self.emit()
        self.emit(f"def {self.constructors[node.id]}() -> NodeConfig:")
        if data.label:
            self.emit(f"# {_one_line(data.label)}", 1)
        self.emit("return NodeConfig(", 1)
        inner = _INDENT * 3
        self.emit(f"name={node.id!r},", 2)
        if data.role_messages is not None:
            self.emit(f"role_messages={_format(_message_list(data.role_messages), inner)},", 2)
        self.emit(
            f"task_messages={_format(_message_list(data.task_messages or []), inner)},", 2,
        )
        self.emit("functions=[", 2)
        for function, handler in handlers:
            self.schema(function, handler, 3)
        self.emit("],", 2)
        if data.pre_actions:
            self.emit(f"pre_actions={_format(self.actions(data.pre_actions), inner)},", 2)
        if data.post_actions:
            self.emit(f"post_actions={_format(self.actions(data.post_actions), inner)},", 2)
        if data.context_strategy:
            strategy = data.context_strategy.get("strategy", "APPEND")
            args = [f"strategy=ContextStrategy.{strategy}"]
            if data.context_strategy.get("summary_prompt"):
                args.append(f"summary_prompt={data.context_strategy['summary_prompt']!r}")
            self.emit(f"context_strategy=ContextStrategyConfig({', '.join(args)}),", 2)
        if data.respond_immediately is not None:
            self.emit(f"respond_immediately={data.respond_immediately!r},", 2)
        self.emit(")", 1)

    def global_functions(self) -> None:
        functions = self.doc.global_functions or []
        if not functions:
            return
        handlers = [(f, self.handler("global", f)) for f in functions]
        self.emit()
        self.emit()
        self.emit(f"{GLOBALS_NAME} = [")
        for function, handler in handlers:
            self.schema(function, handler, 1)
        self.emit("]")

    def action_stubs(self) -> None:
        for original, name in self.action_handlers.items():
            self.emit()
            self.emit()
            self.emit(f"async def {name}(action: dict, flow_manager: FlowManager) -> None:")
            self.emit(f"raise NotImplementedError({original!r})", 1)

    def entry_point(self) -> None:
        if self.initial_id is None:
            return
        constructor = self.constructors[self.initial_id]
        if constructor == ENTRY_POINT:
            return
        self.emit()
        self.emit()
        self.emit(f"def {ENTRY_POINT}() -> NodeConfig:")
        self.emit(f"return {constructor}()", 1)

    def run(self) -> str:
        self.header()
        for node in self.doc.nodes:
            self.node(node)
        self.global_functions()
        self.action_stubs()
        self.entry_point()
        return "\n".join(self.lines) + "\n"


def generate_python_code(doc: FlowDocument | dict[str, Any]) -> str:
    """Render ``doc`` as Python source. The document must already be valid."""
    if isinstance(doc, dict):
        doc = FlowDocument.from_dict(doc)
    return _Generator(doc).run()


def compile_flow(doc: FlowDocument | dict[str, Any]) -> str:
    """Validate, then generate. Raises CompileRefusal on the first failing pass."""
    try:
        ensure_valid(doc)
    except FlowEditorError as e:
        raise CompileRefusal(e.errors) from e
    return generate_python_code(doc)
