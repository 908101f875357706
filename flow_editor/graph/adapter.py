"""Adapter between the canonical document and the presentation graph.

  to_presentation(doc)   document nodes 1:1 → synthesizer → edge deriver
  to_document(graph)     drop synthetic nodes and derived edges, keep the
                         regular nodes verbatim, rebuild the edge cache

Round-trip contract: ``to_document(to_presentation(d))`` equals ``d``
except that a missing ``edges`` cache is populated. Both functions are total
for well-formed input; externally sourced JSON goes through
import_document / export_document, which put the validator in front.
"""

from __future__ import annotations

from typing import Any

from flow_editor.graph.decisions import reconcile_decision_nodes
from flow_editor.graph.edges import derive_document_edges, derive_edges
from flow_editor.graph.model import (
    FlowDocument,
    PresentationGraph,
    PresentationNode,
)
from flow_editor.graph.validator import ensure_valid


def to_presentation(doc: FlowDocument | dict[str, Any]) -> PresentationGraph:
    """Build the canvas graph for a document."""
    if isinstance(doc, dict):
        doc = FlowDocument.from_dict(doc)
    snapshot = doc.copy()
    nodes = [PresentationNode.from_flow_node(n) for n in snapshot.nodes]
    nodes = reconcile_decision_nodes(nodes)
    return PresentationGraph(
        nodes=list(nodes),
        edges=derive_edges(nodes),
        meta=snapshot.meta,
        global_functions=snapshot.global_functions,
        context=snapshot.context,
        extra=snapshot.extra,
    )


def to_document(graph: PresentationGraph) -> FlowDocument:
    """Reconstruct the canonical document from canvas state."""
    flow_nodes = [n.to_flow_node() for n in graph.nodes if not n.is_decision]
    snapshot = graph.copy()
    return FlowDocument(
        meta=snapshot.meta,
        nodes=flow_nodes,
        edges=derive_document_edges(flow_nodes),
        global_functions=snapshot.global_functions,
        context=snapshot.context,
        extra=snapshot.extra,
    )


def import_document(raw: Any) -> PresentationGraph:
    """Validate externally sourced JSON, then convert it for the canvas.

    Raises StructuralError / SemanticGraphError; nothing is converted when
    either pass fails.
    """
    ensure_valid(raw)
    return to_presentation(raw)


def export_document(graph: PresentationGraph) -> FlowDocument:
    """Convert canvas state to a document that passed both validator passes."""
    doc = to_document(graph)
    ensure_valid(doc)
    return doc
