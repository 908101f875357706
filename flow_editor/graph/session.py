"""EditorSession: owner of one editor's canvas state.

Every edit goes through the settle cycle:

  mutation(nodes) → reconcile synthetic decision nodes → derive edges
    → replace the graph (only if something changed) → push undo snapshot

Undo/redo restore snapshots verbatim and bypass the cycle, so a restore is
never recorded as a new history entry. Loading a document resets history.

Remote loading races a local cache: ``load_remote`` waits ``timeout``
seconds for the backend, then falls back to the autosave cache. A remote
document arriving after the session was loaded or edited is discarded.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from flow_editor.graph.adapter import export_document, import_document, to_document
from flow_editor.graph.decisions import reconcile_decision_nodes
from flow_editor.graph.edges import derive_edges, edges_changed
from flow_editor.graph.errors import FlowEditorError, ReferentialInconsistencyWarning
from flow_editor.graph.model import (
    KIND_INITIAL,
    FlowDocument,
    Position,
    PresentationGraph,
    PresentationNode,
)
from flow_editor.graph.undo import DEFAULT_HISTORY_LIMIT, UndoManager
from flow_editor.graph.updates import (
    create_node,
    move_node,
    rename_global_references,
    rename_node,
)
from flow_editor.graph.validator import find_dangling_references

if TYPE_CHECKING:
    from flow_editor.storage.local_store import LocalStore

logger = logging.getLogger("flow_editor.graph.session")

Mutation = Callable[[list[PresentationNode]], list[PresentationNode]]
RemoteFetch = Callable[[], Awaitable[dict[str, Any] | None]]

# Where a fresh flow places its initial node
NEW_FLOW_POSITION = Position(x=100, y=100)

SOURCE_REMOTE = "remote"
SOURCE_CACHE = "cache"


def new_flow_graph() -> PresentationGraph:
    """A graph holding a single initial node."""
    initial = create_node([], KIND_INITIAL, NEW_FLOW_POSITION)
    return PresentationGraph(nodes=[initial], edges=[], meta={"name": "New Flow"})


class EditorSession:
    """Canvas state plus its undo history and autosave target."""

    def __init__(
        self,
        graph: PresentationGraph | None = None,
        *,
        store: LocalStore | None = None,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        self._store = store
        self._history_limit = history_limit
        self._graph = graph.copy() if graph is not None else new_flow_graph()
        self._history = UndoManager(self._graph, limit=history_limit)
        self._loaded = False
        self._edited = False
        # Bumped by every state replacement; lets load_remote spot stale replies
        self._revision = 0

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def graph(self) -> PresentationGraph:
        return self._graph

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def edited(self) -> bool:
        return self._edited

    def document(self) -> FlowDocument:
        """Current state as a document, without validation."""
        return to_document(self._graph)

    def export(self) -> FlowDocument:
        """Current state as a document; raises if either validator pass fails."""
        return export_document(self._graph)

    def warnings(self) -> list[ReferentialInconsistencyWarning]:
        return find_dangling_references(self._graph.nodes)

    def can_undo(self) -> bool:
        return self._history.can_undo()

    def can_redo(self) -> bool:
        return self._history.can_redo()

    # ------------------------------------------------------------------
    # Settle cycle
    # ------------------------------------------------------------------

    def _settle(self, nodes: list[PresentationNode]) -> bool:
        current = self._graph
        nodes = reconcile_decision_nodes(nodes)
        edges_differ, edges = edges_changed(current.edges, derive_edges(nodes))
        nodes_differ = nodes is not current.nodes and nodes != current.nodes
        if not nodes_differ and not edges_differ:
            logger.debug("Settle: no change")
            return False
        self._graph = replace(current, nodes=nodes, edges=edges)
        self._revision += 1
        self._edited = True
        if self._history.push(self._graph):
            logger.debug("Settle: recorded snapshot (%d nodes, %d edges)",
                         len(nodes), len(edges))
        return True

    def apply(self, mutation: Mutation) -> bool:
        """Run an edit helper against the current nodes and settle.

        Returns False when the edit left the graph unchanged. Exceptions from
        the helper (ValueError for disallowed edits) propagate and leave the
        state untouched.
        """
        return self._settle(mutation(self._graph.nodes))

    def move_node(self, node_id: str, position: Position) -> bool:
        """Drag end. Decision-node drags are written back to the owning function."""
        return self.apply(lambda nodes: move_node(nodes, node_id, position))

    def rename_node(self, old_id: str, new_id: str) -> bool:
        """Rename a node, retargeting node and global-function routing alike.

        Raises like updates.rename_node; the state is left untouched then.
        """
        nodes = rename_node(self._graph.nodes, old_id, new_id)
        global_functions = rename_global_references(
            self._graph.global_functions, old_id, new_id,
        )
        if global_functions is not self._graph.global_functions:
            self._graph = replace(self._graph, global_functions=global_functions)
        return self._settle(nodes)

    def update_meta(self, **changes: Any) -> None:
        meta = dict(self._graph.meta)
        meta.update(changes)
        self._graph = replace(self._graph, meta=meta)
        self._revision += 1
        self._edited = True
        self._history.push(self._graph)

    def undo(self) -> bool:
        snapshot = self._history.undo()
        if snapshot is None:
            return False
        self._graph = snapshot
        self._revision += 1
        return True

    def redo(self) -> bool:
        snapshot = self._history.redo()
        if snapshot is None:
            return False
        self._graph = snapshot
        self._revision += 1
        return True

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _replace_all(self, graph: PresentationGraph) -> None:
        self._graph = graph
        self._history = UndoManager(graph, limit=self._history_limit)
        self._revision += 1
        self._loaded = True
        self._edited = False

    def load_document(self, raw: FlowDocument | dict[str, Any]) -> None:
        """Replace the canvas with a validated document and reset history.

        Raises StructuralError / SemanticGraphError without touching state.
        """
        if isinstance(raw, FlowDocument):
            raw = raw.to_dict()
        graph = import_document(raw)
        self._replace_all(graph)
        logger.info("Loaded flow %r (%d nodes)", graph.meta.get("name"),
                    len(graph.regular_nodes()))

    def load_cached(self) -> bool:
        """Restore the autosaved canvas, if there is one."""
        if self._store is None:
            return False
        cached = self._store.load_current()
        if cached is None:
            return False
        nodes = reconcile_decision_nodes(cached.nodes)
        self._replace_all(replace(cached, nodes=nodes, edges=derive_edges(nodes)))
        logger.info("Restored flow from local cache %s", self._store.path)
        return True

    def _accept_remote(self, raw: dict[str, Any] | None) -> bool:
        if raw is None:
            return False
        try:
            self.load_document(raw)
        except FlowEditorError as e:
            logger.error("Remote flow rejected: %s", "; ".join(e.errors))
            return False
        return True

    async def load_remote(
        self, fetch: RemoteFetch, timeout: float = 0.5,
    ) -> str | None:
        """Load from the backend, falling back to the local cache.

        ``timeout`` is advisory: once it elapses the cache is tried, and if
        the cache is empty the remote reply is still awaited. Returns the
        source that was loaded ("remote" / "cache") or None.
        """
        if self._loaded:
            logger.warning("Session already loaded; skipping remote load")
            return None
        revision = self._revision
        task = asyncio.ensure_future(fetch())
        done, _ = await asyncio.wait({task}, timeout=timeout)

        if not done:
            logger.info("Remote load exceeded %.2fs; trying local cache", timeout)
            if self.load_cached():
                task.add_done_callback(self._discard_late_reply)
                return SOURCE_CACHE
            await asyncio.wait({task})

        try:
            raw = task.result()
        except Exception as e:
            logger.error("Remote load failed: %s", e)
            raw = None

        if self._revision != revision:
            logger.warning("Ignoring remote flow: session changed while loading")
            return None
        if self._accept_remote(raw):
            return SOURCE_REMOTE
        return SOURCE_CACHE if self.load_cached() else None

    @staticmethod
    def _discard_late_reply(task: asyncio.Future) -> None:
        if task.cancelled():
            return
        if task.exception() is not None:
            logger.debug("Late remote load failed: %s", task.exception())
            return
        if task.result() is not None:
            logger.warning("Ignoring remote flow that arrived after the session was loaded")

    def new_flow(self) -> None:
        """Reset to a single initial node with empty history."""
        self._replace_all(new_flow_graph())
        self._loaded = False

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def autosave(self) -> bool:
        if self._store is None:
            return False
        self._store.save_current(self._graph)
        return True
