"""Local persistence for the editor's canvas state."""

from flow_editor.storage.local_store import LocalStore

__all__ = ["LocalStore"]
