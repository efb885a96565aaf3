"""Flash-flood station/basin search and event history MCP server."""

__version__ = "0.1.0"
