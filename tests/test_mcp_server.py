"""
Tests for the MCP tool surface.

Drives the FastMCP server in memory through ``fastmcp.Client`` and checks
that every tool answers with a single JSON text block.
"""
import json

import httpx
import pytest
from fastmcp import Client
from fastmcp.exceptions import ToolError
from unittest.mock import AsyncMock

from tooling_lab.errors import BackendError
from tooling_lab.mcp_server import create_http_app, create_server

from tests.conftest import TEST_MODEL


@pytest.fixture
def server(deps):
    return create_server(deps)


def payload(result) -> dict:
    assert len(result.content) == 1
    assert result.content[0].type == "text"
    return json.loads(result.content[0].text)


class TestToolListing:
    @pytest.mark.asyncio
    async def test_lists_three_tools(self, server):
        async with Client(server) as client:
            tools = await client.list_tools()

        assert {tool.name for tool in tools} == {"embed_text", "index_documents", "vector_search"}

    @pytest.mark.asyncio
    async def test_vector_search_schema(self, server):
        async with Client(server) as client:
            tools = {tool.name: tool for tool in await client.list_tools()}

        schema = tools["vector_search"].inputSchema
        assert set(schema["properties"]) == {"query", "topK", "where"}
        assert schema["required"] == ["query"]

    @pytest.mark.asyncio
    async def test_descriptions(self, server):
        async with Client(server) as client:
            tools = {tool.name: tool for tool in await client.list_tools()}

        assert tools["embed_text"].description == "Generate OpenAI embeddings for an array of texts."
        assert "where" in tools["vector_search"].description


class TestToolCalls:
    @pytest.mark.asyncio
    async def test_embed_text(self, server):
        async with Client(server) as client:
            result = await client.call_tool("embed_text", {"texts": ["a", "b"]})

        data = payload(result)
        assert data["model"] == TEST_MODEL
        assert data["count"] == 2
        assert len(data["embeddings"]) == 2

    @pytest.mark.asyncio
    async def test_index_then_search(self, server, sample_docs):
        async with Client(server) as client:
            indexed = await client.call_tool("index_documents", {"docs": sample_docs})
            found = await client.call_tool(
                "vector_search", {"query": "cats", "topK": 2, "where": {"topic": "cats"}}
            )

        assert payload(indexed) == {"indexed": 3}
        data = payload(found)
        assert data["query"] == "cats"
        assert data["topK"] == 2
        assert [hit["id"] for hit in data["hits"]] == ["cat-1"]
        assert data["hits"][0]["metadata"] == {"topic": "cats"}

    @pytest.mark.asyncio
    async def test_missing_metadata_indexed_as_empty(self, server, vector_store):
        async with Client(server) as client:
            await client.call_tool("index_documents", {"docs": [{"id": "x", "text": "hello"}]})

        assert vector_store.add_calls[0]["metadatas"] == [{}]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("requested, effective", [(0, 1), (25, 20)])
    async def test_top_k_clamped_not_rejected(self, server, vector_store, requested, effective):
        async with Client(server) as client:
            result = await client.call_tool("vector_search", {"query": "cats", "topK": requested})

        assert payload(result)["topK"] == effective
        assert vector_store.query_calls[-1]["n_results"] == effective

    @pytest.mark.asyncio
    async def test_default_top_k(self, server):
        async with Client(server) as client:
            result = await client.call_tool("vector_search", {"query": "cats"})

        assert payload(result)["topK"] == 5


class TestToolErrors:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "tool, arguments",
        [
            ("embed_text", {"texts": []}),
            ("embed_text", {"texts": [""]}),
            ("index_documents", {"docs": []}),
            ("index_documents", {"docs": [{"id": "x"}]}),
            ("vector_search", {"query": ""}),
        ],
    )
    async def test_invalid_arguments(self, server, mock_embedding_client, tool, arguments):
        async with Client(server) as client:
            with pytest.raises(ToolError):
                await client.call_tool(tool, arguments)

        mock_embedding_client.embed_batch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_backend_error_reported(self, server, mock_embedding_client):
        mock_embedding_client.embed_batch.side_effect = BackendError(
            "Embedding request failed: HTTP 401", backend="embedding", status_code=401
        )

        async with Client(server) as client:
            with pytest.raises(ToolError, match="HTTP 401"):
                await client.call_tool("embed_text", {"texts": ["hello"]})


class TestHealthRoute:
    @pytest.mark.asyncio
    async def test_healthy(self, server, deps, test_settings, vector_store):
        collection = await vector_store.get_or_create_collection(deps.collection_name)
        await vector_store.add(
            collection,
            ids=["a"],
            documents=["doc"],
            embeddings=[[1.0, 0.0, 0.0, 0.0]],
            metadatas=[{}],
        )
        app = create_http_app(server, deps, test_settings)

        async with httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        ) as client:
            response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {
            "status": "healthy",
            "service": "mcp-tooling-lab",
            "version": "0.1.0",
            "collection": deps.collection_name,
            "indexed_documents": 1,
        }

    @pytest.mark.asyncio
    async def test_degraded(self, server, deps, test_settings, vector_store):
        vector_store.count = AsyncMock(side_effect=BackendError("connection refused"))
        app = create_http_app(server, deps, test_settings)

        async with httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        ) as client:
            response = await client.get("/health")

        body = response.json()
        assert body["status"] == "degraded"
        assert body["indexed_documents"] is None
