"""
FastMCP-based MCP Server for the tooling lab.

Exposes three tools:
- embed_text: Generate embeddings for an array of texts
- index_documents: Embed documents and store them in the vector store
- vector_search: Semantic search with an optional metadata filter

Each tool returns one text content block holding the JSON result.
"""
import asyncio
import json
import logging
import sys
import time
from typing import Annotated, Any, Awaitable, Callable, Dict, List, Optional

from fastmcp import FastMCP
from pydantic import Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from tooling_lab.config import Settings, load_settings
from tooling_lab.db.session import close_db, create_engine, create_session_factory, init_db
from tooling_lab.errors import BackendError, ConfigurationError
from tooling_lab.observability import (
    add_span_attributes,
    create_span,
    init_telemetry,
    instrument_fastapi,
    record_tool_call,
)
from tooling_lab.registry import EmbeddingClient, VectorStore
from tooling_lab.schemas.tools import DocumentInput
from tooling_lab.tools.operations import (
    ToolDependencies,
    embed_text,
    index_documents,
    vector_search,
)
from tooling_lab.utils.validation import ValidationError

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

INSTRUCTIONS = """
Embedding and semantic search tools backed by a vector store.

1. **embed_text**: Generate embeddings for one or more texts.
2. **index_documents**: Embed documents ({id, text, metadata?}) and store them.
   Re-indexing an existing id overwrites it.
3. **vector_search**: Find the stored documents nearest to a query. `topK`
   defaults to 5 and is clamped to 1..20. `where` filters on metadata, e.g.
   {"source": "docs"} or {"year": {"$gte": 2020}}.
"""


def create_server(deps: ToolDependencies, name: str = "mcp-tooling-lab") -> FastMCP:
    """
    Build the FastMCP server with the three tools bound to ``deps``.

    Args:
        deps: Backends shared by every tool call
        name: Server name announced to the host

    Returns:
        Configured FastMCP instance
    """
    mcp = FastMCP(name=name, instructions=INSTRUCTIONS)

    async def run_tool(
        tool_name: str,
        operation: Callable[..., Awaitable[Dict[str, Any]]],
        **arguments: Any,
    ) -> str:
        started = time.perf_counter()
        with create_span(f"tool.{tool_name}", {"tool.name": tool_name}):
            try:
                result = await operation(deps, **arguments)
            except (BackendError, ValidationError) as e:
                record_tool_call(
                    tool_name,
                    time.perf_counter() - started,
                    success=False,
                    error_type=type(e).__name__,
                )
                logger.error(f"Error in {tool_name}: {e}")
                raise
            add_span_attributes({"tool.success": True})

        record_tool_call(tool_name, time.perf_counter() - started, success=True)
        return json.dumps(result, indent=2)

    @mcp.tool(
        name="embed_text",
        description="Generate OpenAI embeddings for an array of texts.",
    )
    async def embed_text_tool(
        texts: Annotated[
            List[Annotated[str, Field(min_length=1)]],
            Field(min_length=1, description="Texts to embed, in order"),
        ],
    ) -> str:
        return await run_tool("embed_text", embed_text, texts=texts)

    @mcp.tool(
        name="index_documents",
        description="Embed and index documents into the vector store.",
    )
    async def index_documents_tool(
        docs: Annotated[
            List[DocumentInput],
            Field(min_length=1, description="Documents to index: {id, text, metadata?}"),
        ],
    ) -> str:
        return await run_tool("index_documents", index_documents, docs=docs)

    @mcp.tool(
        name="vector_search",
        description=(
            "Semantic search using embeddings + the vector store. "
            "Optional metadata filter via `where`."
        ),
    )
    async def vector_search_tool(
        query: Annotated[str, Field(min_length=1, description="Natural language query")],
        topK: Annotated[
            Optional[int],
            Field(description="Number of results, default 5, clamped to 1..20"),
        ] = None,
        where: Annotated[
            Optional[Dict[str, Any]],
            Field(description="Metadata filter, e.g. {\"lang\": \"en\"}"),
        ] = None,
    ) -> str:
        return await run_tool(
            "vector_search", vector_search, query=query, top_k=topK, where=where
        )

    return mcp


def build_dependencies(settings: Settings, engine: AsyncEngine) -> ToolDependencies:
    """Construct the shared backend clients from settings."""
    return ToolDependencies(
        embedding_client=EmbeddingClient.from_settings(settings),
        vector_store=VectorStore(create_session_factory(engine)),
        collection_name=settings.VECTOR_COLLECTION,
        default_top_k=settings.DEFAULT_TOP_K,
        max_top_k=settings.MAX_TOP_K,
    )


def create_http_app(mcp: FastMCP, deps: ToolDependencies, settings: Settings):
    """Wrap the FastMCP streamable HTTP app in FastAPI with CORS and a health route."""
    from fastapi import FastAPI
    from fastapi.middleware.cors import CORSMiddleware

    fastmcp_app = mcp.http_app()

    # FastMCP's lifespan drives the session manager
    app = FastAPI(title=settings.APP_NAME, version=settings.APP_VERSION, lifespan=fastmcp_app.lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Mcp-Session-Id"],
    )

    @app.get("/health")
    async def health() -> dict:
        """Liveness plus the size of the configured collection."""
        indexed_documents = None
        try:
            collection = await deps.vector_store.get_or_create_collection(deps.collection_name)
            indexed_documents = await deps.vector_store.count(collection)
        except BackendError as e:
            logger.warning(f"Vector store health check failed: {e}")

        return {
            "status": "healthy" if indexed_documents is not None else "degraded",
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "collection": deps.collection_name,
            "indexed_documents": indexed_documents,
        }

    instrument_fastapi(app)
    app.mount("/", fastmcp_app)
    return app


async def serve(settings: Settings) -> None:
    """Prepare the store, run the selected transport, release backends on exit."""
    engine = create_engine(settings)
    deps = build_dependencies(settings, engine)
    mcp = create_server(deps, name=settings.APP_NAME)

    try:
        await init_db(engine)
    except (SQLAlchemyError, OSError) as e:
        # The store may come up later; tool calls surface the error then
        logger.warning(f"Vector store schema setup failed (non-fatal): {e}", exc_info=True)

    try:
        if settings.MCP_TRANSPORT == "http":
            import uvicorn

            app = create_http_app(mcp, deps, settings)
            logger.info(f"Serving MCP over HTTP on {settings.MCP_HOST}:{settings.MCP_PORT}")
            config = uvicorn.Config(app, host=settings.MCP_HOST, port=settings.MCP_PORT)
            await uvicorn.Server(config).serve()
        else:
            logger.info("Serving MCP over stdio")
            await mcp.run_async(transport="stdio")
    finally:
        await deps.embedding_client.aclose()
        await close_db(engine)
        logger.info("Backends closed")


def main() -> None:
    """Process entry point: load configuration once, then serve."""
    try:
        settings = load_settings()
    except ConfigurationError as e:
        logging.basicConfig(level=logging.ERROR, format=LOG_FORMAT)
        logger.error(f"MCP server failed to start: {e}")
        sys.exit(1)

    # basicConfig writes to stderr; stdout belongs to the stdio transport
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
        format=LOG_FORMAT,
    )

    if settings.OTEL_ENABLED:
        init_telemetry(
            service_name=settings.OTEL_SERVICE_NAME,
            service_version=settings.APP_VERSION,
            otlp_endpoint=settings.OTEL_EXPORTER_OTLP_ENDPOINT,
        )

    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    asyncio.run(serve(settings))


if __name__ == "__main__":
    main()
