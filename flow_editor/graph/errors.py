"""Error taxonomy for the flow editor core.

  StructuralError      document shape violation; fatal to the operation
                       that asked for validation.
  SemanticGraphError   duplicate ids, dangling references; fatal for
                       compile/export, advisory while editing.
  CompileRefusal       compile attempted on an invalid document; carries the
                       first validator error and never any partial output.

ReferentialInconsistencyWarning is returned (not raised) by the dangling
reference scan so the inspector can render it next to the offending field.
"""

from __future__ import annotations


class FlowEditorError(Exception):
    """Base error. ``errors`` lists one human-readable string per problem."""

    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors))
        self.errors = errors


class StructuralError(FlowEditorError):
    """Raised when a document fails the structural validation pass."""


class SemanticGraphError(FlowEditorError):
    """Raised when a document fails the graph-semantic validation pass."""


class CompileRefusal(FlowEditorError):
    """Raised by compile_flow instead of emitting source for invalid input."""

    @property
    def first_error(self) -> str:
        return self.errors[0] if self.errors else ""


class ReferentialInconsistencyWarning(UserWarning):
    """A routing target names a node that no longer exists.

    node_id:        node owning the function.
    function_name:  function carrying the reference.
    field:          dotted path of the reference inside the function
                    (``next_node_id``, ``decision.conditions[1].next_node_id``,
                    ``decision.default_next_node_id``).
    target:         the missing node id.
    """

    def __init__(self, node_id: str, function_name: str, field: str, target: str) -> None:
        super().__init__(f'Invalid: Target node "{target}" was deleted')
        self.node_id = node_id
        self.function_name = function_name
        self.field = field
        self.target = target

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ReferentialInconsistencyWarning):
            return NotImplemented
        return (
            self.node_id, self.function_name, self.field, self.target
        ) == (other.node_id, other.function_name, other.field, other.target)

    def __hash__(self) -> int:
        return hash((self.node_id, self.function_name, self.field, self.target))

    def __repr__(self) -> str:
        return (
            f"ReferentialInconsistencyWarning(node_id={self.node_id!r}, "
            f"function_name={self.function_name!r}, field={self.field!r}, "
            f"target={self.target!r})"
        )
