"""Read-only REST, WebSocket and MCP API over validation, tenant and scan-job resources."""

__version__ = "0.1.1"