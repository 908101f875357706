"""Snapshot-based undo/redo over the presentation graph.

The manager stores full graph snapshots and knows nothing about decisions or
synthetic nodes. Callers debounce ``push`` themselves, restore popped
snapshots verbatim (no re-derivation) and suppress the push that their own
restore would otherwise trigger.
"""

from __future__ import annotations

from flow_editor.graph.model import PresentationGraph

DEFAULT_HISTORY_LIMIT: int = 100


class UndoManager:
    """Two bounded stacks of PresentationGraph snapshots.

    The top of the past stack is the state currently on screen; ``undo``
    moves it to the future stack and returns the one below it.
    """

    def __init__(
        self,
        initial: PresentationGraph | None = None,
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self._limit = limit
        self._past: list[PresentationGraph] = []
        self._future: list[PresentationGraph] = []
        if initial is not None:
            self._past.append(initial.copy())

    def push(self, snapshot: PresentationGraph) -> bool:
        """Record a new state. Returns False when it equals the current top."""
        if self._past and self._past[-1] == snapshot:
            return False
        self._past.append(snapshot.copy())
        if len(self._past) > self._limit:
            del self._past[0]
        self._future.clear()
        return True

    def undo(self) -> PresentationGraph | None:
        if len(self._past) < 2:
            return None
        self._future.append(self._past.pop())
        return self._past[-1].copy()

    def redo(self) -> PresentationGraph | None:
        if not self._future:
            return None
        snapshot = self._future.pop()
        self._past.append(snapshot)
        return snapshot.copy()

    def can_undo(self) -> bool:
        return len(self._past) > 1

    def can_redo(self) -> bool:
        return bool(self._future)

    def clear(self, initial: PresentationGraph | None = None) -> None:
        self._past.clear()
        self._future.clear()
        if initial is not None:
            self._past.append(initial.copy())
