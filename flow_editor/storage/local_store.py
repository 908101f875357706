"""Local autosave cache for the editor's presentation graph.

Stores the current canvas state as ``current.json`` inside the cache
directory. Reads are tolerant: a missing or corrupt file means "nothing
saved" and is logged, never raised, so a broken cache cannot block the
editor from starting.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from flow_editor.graph.model import PresentationGraph

logger = logging.getLogger("flow_editor.storage.local_store")

_CURRENT_FILE = "current.json"


class LocalStore:
    """JSON-file store for the current canvas state."""

    def __init__(self, directory: str | Path) -> None:
        self._dir = Path(directory).expanduser()

    @property
    def path(self) -> Path:
        return self._dir / _CURRENT_FILE

    def save_current(self, graph: PresentationGraph) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(graph.to_dict(), indent=2), encoding="utf-8")
        tmp.replace(self.path)
        logger.debug("Saved current graph to %s", self.path)

    def load_raw(self) -> dict[str, Any] | None:
        if not self.path.exists():
            return None
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable cache %s: %s", self.path, e)
            return None
        if not isinstance(raw, dict) or not isinstance(raw.get("nodes"), list):
            logger.warning("Ignoring malformed cache %s", self.path)
            return None
        return raw

    def load_current(self) -> PresentationGraph | None:
        raw = self.load_raw()
        return PresentationGraph.from_dict(raw) if raw is not None else None

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
