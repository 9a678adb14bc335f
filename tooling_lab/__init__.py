"""MCP server exposing embedding, indexing and semantic search tools."""

__version__ = "0.1.0"
