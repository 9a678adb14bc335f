"""Tool operations exposed by the MCP server."""

from tooling_lab.tools.operations import (
    ToolDependencies,
    embed_text,
    index_documents,
    merge_query_hits,
    vector_search,
)

__all__ = [
    "ToolDependencies",
    "embed_text",
    "index_documents",
    "merge_query_hits",
    "vector_search",
]
