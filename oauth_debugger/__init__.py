"""Step-by-step debugger for the MCP OAuth authorization flow."""

__version__ = "0.1.0"
