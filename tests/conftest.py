"""Pytest configuration and fixtures for test suite."""
import math
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock

import pytest

from tooling_lab.config import Settings, get_settings
from tooling_lab.errors import BackendError
from tooling_lab.registry.embedding_client import EmbeddingClient
from tooling_lab.registry.vector_store import CollectionHandle, QueryResult
from tooling_lab.tools.operations import ToolDependencies

TEST_DIMENSION = 4
TEST_MODEL = "text-embedding-3-small"
TEST_COLLECTION = "test_collection"


def fake_vector(text: str) -> List[float]:
    """Deterministic, text-dependent 4-dimensional vector."""
    return [
        float(len(text)),
        float(sum(ord(c) for c in text) % 97),
        float(text.count("a") + 1),
        1.0,
    ]


def cosine_distance(a: List[float], b: List[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return 1.0 - dot / norm if norm else 1.0


class InMemoryVectorStore:
    """Substitute vector store with upsert semantics and equality filters."""

    def __init__(self):
        self.collections: Dict[str, CollectionHandle] = {}
        self.rows: Dict[int, Dict[str, Dict[str, Any]]] = {}
        self.add_calls: List[Dict[str, Any]] = []
        self.query_calls: List[Dict[str, Any]] = []

    async def get_or_create_collection(self, name: str) -> CollectionHandle:
        if name not in self.collections:
            handle = CollectionHandle(id=len(self.collections) + 1, name=name)
            self.collections[name] = handle
            self.rows[handle.id] = {}
        return self.collections[name]

    async def add(self, collection, ids, documents, embeddings, metadatas) -> None:
        if len({len(ids), len(documents), len(embeddings), len(metadatas)}) != 1:
            raise BackendError("length mismatch", backend="vector_store")
        self.add_calls.append(
            {
                "ids": list(ids),
                "documents": list(documents),
                "embeddings": list(embeddings),
                "metadatas": list(metadatas),
            }
        )
        for doc_id, document, embedding, metadata in zip(ids, documents, embeddings, metadatas):
            self.rows[collection.id][doc_id] = {
                "document": document,
                "embedding": embedding,
                "metadata": metadata,
            }

    async def query(
        self,
        collection,
        query_embeddings,
        n_results: int,
        where: Optional[Dict[str, Any]] = None,
    ) -> QueryResult:
        self.query_calls.append({"n_results": n_results, "where": where})
        result: QueryResult = {"ids": [], "documents": [], "metadatas": [], "distances": []}
        for vector in query_embeddings:
            scored = []
            for doc_id, row in self.rows[collection.id].items():
                if where and any(row["metadata"].get(k) != v for k, v in where.items()):
                    continue
                scored.append((cosine_distance(vector, row["embedding"]), doc_id, row))
            scored.sort(key=lambda item: item[0])
            scored = scored[:n_results]
            result["ids"].append([doc_id for _, doc_id, _ in scored])
            result["documents"].append([row["document"] for _, _, row in scored])
            result["metadatas"].append([row["metadata"] for _, _, row in scored])
            result["distances"].append([distance for distance, _, _ in scored])
        return result

    async def count(self, collection) -> int:
        return len(self.rows[collection.id])


def make_session_factory(session):
    """Session factory yielding the given (mock) session."""

    @asynccontextmanager
    async def factory():
        yield session

    return factory


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Settings are cached per process; isolate tests from each other."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def test_settings():
    """Settings for testing, ignoring any local .env file."""
    return Settings(
        _env_file=None,
        OPENAI_API_KEY="test-api-key",
        EMBEDDING_DIMENSION=TEST_DIMENSION,
        VECTOR_COLLECTION=TEST_COLLECTION,
        LOG_LEVEL="DEBUG",
    )


@pytest.fixture
def mock_embedding_client():
    """Embedding client double returning one deterministic vector per text."""
    client = AsyncMock(spec=EmbeddingClient)
    client.model = TEST_MODEL
    client.dimension = TEST_DIMENSION

    async def embed_batch(texts):
        return [fake_vector(text) for text in texts]

    client.embed_batch.side_effect = embed_batch
    return client


@pytest.fixture
def vector_store():
    """In-memory vector store."""
    return InMemoryVectorStore()


@pytest.fixture
def deps(mock_embedding_client, vector_store):
    """Tool dependencies wired to the substitute backends."""
    return ToolDependencies(
        embedding_client=mock_embedding_client,
        vector_store=vector_store,
        collection_name=TEST_COLLECTION,
    )


@pytest.fixture
def sample_docs():
    """Sample documents for indexing."""
    return [
        {"id": "cat-1", "text": "cats purr when they are happy", "metadata": {"topic": "cats"}},
        {"id": "dog-1", "text": "dogs bark at the mail carrier", "metadata": {"topic": "dogs"}},
        {"id": "misc-1", "text": "a note without metadata"},
    ]
