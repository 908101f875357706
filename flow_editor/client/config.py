"""Configuration for the flow editor (remote backend, cache, history)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field


@dataclass(frozen=True)
class Settings:
    """Immutable settings loaded from environment variables."""

    backend_url: str = ""
    api_key: str = field(default="", repr=False)
    timeout: float = 30.0
    load_timeout: float = 0.5
    cache_dir: str = "~/.flow_editor"
    history_limit: int = 100
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> Settings:
        return cls(
            backend_url=os.getenv("FLOW_EDITOR_BACKEND_URL", "").rstrip("/"),
            api_key=os.getenv("FLOW_EDITOR_API_KEY", ""),
            timeout=float(os.getenv("FLOW_EDITOR_TIMEOUT", "30")),
            load_timeout=float(os.getenv("FLOW_EDITOR_LOAD_TIMEOUT", "0.5")),
            cache_dir=os.getenv("FLOW_EDITOR_CACHE_DIR", "~/.flow_editor"),
            history_limit=int(os.getenv("FLOW_EDITOR_HISTORY_LIMIT", "100")),
            log_level=os.getenv("FLOW_EDITOR_LOG_LEVEL", "WARNING").upper(),
        )

    @property
    def remote_enabled(self) -> bool:
        return bool(self.backend_url)

    @property
    def base_url(self) -> str:
        return f"{self.backend_url}/api/v1"

    @property
    def headers(self) -> dict[str, str]:
        h: dict[str, str] = {"Content-Type": "application/json"}
        if self.api_key:
            h["Authorization"] = f"Bearer {self.api_key}"
        return h
