"""Pydantic schemas for tool inputs and results."""

from tooling_lab.schemas.tools import (
    DocumentInput,
    EmbedTextResult,
    IndexDocumentsResult,
    SearchHit,
    VectorSearchResult,
)

__all__ = [
    "DocumentInput",
    "EmbedTextResult",
    "IndexDocumentsResult",
    "SearchHit",
    "VectorSearchResult",
]
