"""Remote flows backend client and editor settings."""

from flow_editor.client.config import Settings
from flow_editor.client.flows_client import FlowsClient, extract_flow_from_response

__all__ = ["FlowsClient", "Settings", "extract_flow_from_response"]
