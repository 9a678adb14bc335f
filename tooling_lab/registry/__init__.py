"""Backend gateways: embedding service and vector store."""

from tooling_lab.registry.embedding_client import EmbeddingClient
from tooling_lab.registry.vector_store import (
    CollectionHandle,
    QueryResult,
    VectorStore,
    compile_metadata_filter,
)

__all__ = [
    "EmbeddingClient",
    "CollectionHandle",
    "QueryResult",
    "VectorStore",
    "compile_metadata_filter",
]
