"""Flow graph core: documents, canvas graph, validation and editing.

Public surface:
    FlowDocument / PresentationGraph     canonical document and canvas state.
    validate_structure / validate_graph   the two validator passes.
    validate_presentation_structure       shape check for a serialized canvas graph.
    ensure_valid                          both passes, raising on failure.
    derive_edges                          edges from routing metadata.
    reconcile_decision_nodes              synthetic decision-node lifecycle.
    to_presentation / to_document         the adapter pair.
    collect_properties                    flow-wide property suggestions.
    UndoManager                           snapshot history.
    EditorSession                         settle-cycle owner for one editor.
"""

from flow_editor.graph.adapter import (
    export_document,
    import_document,
    to_document,
    to_presentation,
)
from flow_editor.graph.decisions import reconcile_decision_nodes
from flow_editor.graph.edges import derive_edges
from flow_editor.graph.errors import (
    CompileRefusal,
    FlowEditorError,
    ReferentialInconsistencyWarning,
    SemanticGraphError,
    StructuralError,
)
from flow_editor.graph.model import FlowDocument, PresentationGraph
from flow_editor.graph.properties import SuggestedProperty, collect_properties
from flow_editor.graph.session import EditorSession
from flow_editor.graph.undo import UndoManager
from flow_editor.graph.validator import (
    ensure_valid,
    find_dangling_references,
    validate_graph,
    validate_presentation_structure,
    validate_structure,
)

__all__ = [
    "CompileRefusal",
    "EditorSession",
    "FlowDocument",
    "FlowEditorError",
    "PresentationGraph",
    "ReferentialInconsistencyWarning",
    "SemanticGraphError",
    "StructuralError",
    "SuggestedProperty",
    "UndoManager",
    "collect_properties",
    "derive_edges",
    "ensure_valid",
    "export_document",
    "find_dangling_references",
    "import_document",
    "reconcile_decision_nodes",
    "to_document",
    "to_presentation",
    "validate_graph",
    "validate_presentation_structure",
    "validate_structure",
]
