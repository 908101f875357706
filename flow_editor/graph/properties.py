"""Flow-wide property suggestions for the function editor.

When the user adds a property to a function, definitions already used
elsewhere in the flow are offered so the same argument is described the
same way everywhere.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from flow_editor.graph.model import FlowNode, PresentationNode

# Keys copied from a property definition into a suggestion
_SUGGESTED_KEYS = ("description", "minimum", "maximum", "pattern")


@dataclass
class SuggestedProperty:
    name: str
    property: dict[str, Any]


def _suggestion(definition: dict[str, Any]) -> dict[str, Any]:
    prop: dict[str, Any] = {"type": definition.get("type")}
    for key in _SUGGESTED_KEYS:
        if definition.get(key) is not None:
            prop[key] = definition[key]
    if isinstance(definition.get("enum"), list):
        prop["enum"] = [str(v) for v in definition["enum"]]
    return prop


def collect_properties(
    nodes: Iterable[FlowNode | PresentationNode],
) -> list[SuggestedProperty]:
    """Unique properties across all functions, sorted by name.

    The first definition seen for a name wins. Synthetic decision nodes are
    skipped, as are blank property names.
    """
    by_name: dict[str, dict[str, Any]] = {}
    for node in nodes:
        if getattr(node, "is_decision", False):
            continue
        for function in node.data.function_list:
            for name, definition in (function.properties or {}).items():
                if not name.strip() or name in by_name or not isinstance(definition, dict):
                    continue
                by_name[name] = _suggestion(definition)
    return [SuggestedProperty(name, by_name[name]) for name in sorted(by_name)]
