"""Async client for the backend that stores flows per agent version.

Endpoints:
  GET  /agent/get-flows-prompt?agent_id=&version_number=
  PUT  /agent/save-flows-prompt
       {"agent_id", "version_number", "flows_prompt": {<flow name>: <document>}}

HTTP failures never raise: they come back as ``{"error", "detail"}`` dicts
and are logged, so a flaky backend cannot interrupt editing.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from flow_editor.client.config import Settings
from flow_editor.graph.model import FlowDocument
from flow_editor.graph.validator import ensure_valid

logger = logging.getLogger("flow_editor.client")

DEFAULT_FLOW_NAME = "flow1"


def _looks_like_document(value: Any) -> bool:
    return (
        isinstance(value, dict)
        and isinstance(value.get("nodes"), list)
        and isinstance(value.get("edges"), list)
    )


def extract_flow_from_response(payload: Any) -> dict[str, Any] | None:
    """Find the flow document inside a backend response.

    Accepted shapes, in order:
      {"flows_prompt": {<name>: doc}}   first flow wins
      {"flow": doc}
      doc                               bare document (nodes + edges arrays)
      {<any>: doc}                      first value that looks like a document
    """
    if not isinstance(payload, dict):
        return None

    flows = payload.get("flows_prompt")
    if isinstance(flows, dict) and flows:
        first = next(iter(flows.values()))
        if isinstance(first, dict):
            return first

    if isinstance(payload.get("flow"), dict):
        return payload["flow"]

    if _looks_like_document(payload):
        return payload

    for value in payload.values():
        if _looks_like_document(value):
            return value
    return None


class FlowsClient:
    """Thin async wrapper around the flows backend."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._client = httpx.AsyncClient(
            base_url=settings.base_url,
            headers=settings.headers,
            timeout=httpx.Timeout(settings.timeout, connect=10.0),
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "FlowsClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _get(self, path: str, params: dict | None = None) -> Any:
        try:
            r = await self._client.get(path, params=params)
            r.raise_for_status()
            return r.json()
        except httpx.HTTPStatusError as e:
            logger.error("GET %s -> %s", path, e.response.status_code)
            return {
                "error": f"HTTP {e.response.status_code}",
                "status": e.response.status_code,
                "detail": e.response.text,
            }
        except Exception as e:
            logger.error("GET %s failed: %s", path, e)
            return {"error": str(e)}

    async def _put(self, path: str, payload: dict | None = None) -> Any:
        try:
            r = await self._client.put(path, json=payload or {})
            r.raise_for_status()
            return r.json() if r.text.strip() else {"success": True}
        except httpx.HTTPStatusError as e:
            logger.error("PUT %s -> %s", path, e.response.status_code)
            return {
                "error": f"HTTP {e.response.status_code}",
                "status": e.response.status_code,
                "detail": e.response.text,
            }
        except Exception as e:
            logger.error("PUT %s failed: %s", path, e)
            return {"error": str(e)}

    # ------------------------------------------------------------------
    # Flows
    # ------------------------------------------------------------------

    async def get_flows_prompt(self, agent_id: str, version_number: str = "1") -> Any:
        return await self._get(
            "/agent/get-flows-prompt",
            params={"agent_id": agent_id, "version_number": version_number},
        )

    async def fetch_flow(self, agent_id: str, version_number: str = "1") -> dict[str, Any] | None:
        """The stored document for an agent version, or None.

        None covers "nothing stored yet" (404), transport errors and
        responses without a recognizable document.
        """
        payload = await self.get_flows_prompt(agent_id, version_number)
        if isinstance(payload, dict) and "error" in payload:
            if payload.get("status") != 404:
                logger.warning("Could not load flow for agent %s: %s", agent_id, payload["error"])
            return None
        flow = extract_flow_from_response(payload)
        if flow is None:
            logger.error("Could not determine flow JSON from response for agent %s", agent_id)
        return flow

    async def save_flow(
        self, agent_id: str, doc: FlowDocument, version_number: str = "1",
    ) -> Any:
        """Validate ``doc`` with both passes, then store it.

        Raises StructuralError / SemanticGraphError before any request is made.
        """
        if not agent_id:
            raise ValueError("agent_id is required")
        ensure_valid(doc)
        name = (doc.meta.get("name") or "").strip() or DEFAULT_FLOW_NAME
        return await self._put("/agent/save-flows-prompt", {
            "agent_id": agent_id,
            "version_number": version_number,
            "flows_prompt": {name: doc.to_dict()},
        })
