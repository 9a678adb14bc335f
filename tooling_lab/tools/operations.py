"""
Tool operations: embed_text, index_documents and vector_search.

Each operation is a plain coroutine that receives its backends through a
``ToolDependencies`` instance, so it can run against substitute gateways.
"""
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from tooling_lab.observability import record_indexed_documents, record_search_metrics
from tooling_lab.registry.embedding_client import EmbeddingClient
from tooling_lab.registry.vector_store import QueryResult, VectorStore
from tooling_lab.schemas.tools import (
    DocumentInput,
    EmbedTextResult,
    IndexDocumentsResult,
    SearchHit,
    VectorSearchResult,
)
from tooling_lab.utils.validation import (
    DEFAULT_TOP_K,
    MAX_TOP_K,
    ValidationError,
    clamp_top_k,
    validate_metadata_filter,
    validate_search_query,
    validate_texts,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolDependencies:
    """Long-lived collaborators shared by every tool call."""

    embedding_client: EmbeddingClient
    vector_store: VectorStore
    collection_name: str
    default_top_k: int = DEFAULT_TOP_K
    max_top_k: int = MAX_TOP_K

    @property
    def model(self) -> str:
        return self.embedding_client.model


# ============================================================================
# Result normalisation
# ============================================================================

def _first_query(arrays: Optional[Sequence[Optional[Sequence[Any]]]]) -> Optional[Sequence[Any]]:
    """Inner list for the first query vector, or None when absent."""
    if not arrays:
        return None
    return arrays[0]


def _at(values: Optional[Sequence[Any]], index: int) -> Any:
    if values is None or index >= len(values):
        return None
    return values[index]


def merge_query_hits(result: Union[QueryResult, Mapping[str, Any], None]) -> List[SearchHit]:
    """
    Zip the parallel arrays of a query result into hits.

    ``ids`` drives the iteration. ``documents``, ``metadatas`` and
    ``distances`` are read at the same position; an array that is missing,
    None, or too short yields None for that field. Backend order is kept.
    """
    if not result:
        return []

    ids = _first_query(result.get("ids")) or []
    documents = _first_query(result.get("documents"))
    metadatas = _first_query(result.get("metadatas"))
    distances = _first_query(result.get("distances"))

    return [
        SearchHit(
            id=doc_id,
            document=_at(documents, i),
            metadata=_at(metadatas, i),
            distance=_at(distances, i),
        )
        for i, doc_id in enumerate(ids)
    ]


# ============================================================================
# Operations
# ============================================================================

async def embed_text(deps: ToolDependencies, texts: Sequence[str]) -> Dict[str, Any]:
    """
    Embed a batch of texts.

    Returns:
        {"model", "count", "embeddings"} with one vector per text, input order
    """
    texts = validate_texts(texts)

    embeddings = await deps.embedding_client.embed_batch(texts)

    return EmbedTextResult(
        model=deps.model,
        count=len(texts),
        embeddings=embeddings,
    ).model_dump()


def _coerce_documents(
    docs: Sequence[Union[DocumentInput, Mapping[str, Any]]],
) -> List[DocumentInput]:
    if not isinstance(docs, (list, tuple)) or not docs:
        raise ValidationError("docs must be a non-empty list")

    coerced = []
    for i, doc in enumerate(docs):
        if isinstance(doc, DocumentInput):
            coerced.append(doc)
            continue
        try:
            coerced.append(DocumentInput.model_validate(doc))
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid document at index {i}: {e}") from e
    return coerced


async def index_documents(
    deps: ToolDependencies,
    docs: Sequence[Union[DocumentInput, Mapping[str, Any]]],
) -> Dict[str, Any]:
    """
    Embed documents and store them in the configured collection.

    Duplicate ids are passed to the store as-is. Either the whole batch is
    stored or the call raises; ``indexed`` is the size of the batch sent.
    """
    documents = _coerce_documents(docs)

    collection = await deps.vector_store.get_or_create_collection(deps.collection_name)

    ids = [doc.id for doc in documents]
    texts = [doc.text for doc in documents]
    # The store needs a concrete mapping, never None
    metadatas = [doc.metadata if doc.metadata is not None else {} for doc in documents]

    embeddings = await deps.embedding_client.embed_batch(texts)

    await deps.vector_store.add(
        collection,
        ids=ids,
        documents=texts,
        embeddings=embeddings,
        metadatas=metadatas,
    )

    record_indexed_documents(len(ids), collection.name)
    logger.info(f"Indexed {len(ids)} documents into '{collection.name}'")
    return IndexDocumentsResult(indexed=len(ids)).model_dump()


async def vector_search(
    deps: ToolDependencies,
    query: str,
    top_k: Optional[int] = None,
    where: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Semantic nearest-neighbour search over the configured collection.

    ``top_k`` defaults to 5 and is clamped into [1, 20]. ``where`` is handed
    to the vector store untouched.

    Returns:
        {"query", "topK", "hits"}; ``topK`` is the clamped value actually used
    """
    query = validate_search_query(query)
    where = validate_metadata_filter(where)
    effective_top_k = clamp_top_k(top_k, default=deps.default_top_k, maximum=deps.max_top_k)

    started = time.perf_counter()

    collection = await deps.vector_store.get_or_create_collection(deps.collection_name)

    query_embedding = (await deps.embedding_client.embed_batch([query]))[0]

    raw = await deps.vector_store.query(
        collection,
        query_embeddings=[query_embedding],
        n_results=effective_top_k,
        where=where,
    )

    hits = merge_query_hits(raw)

    record_search_metrics(
        results_count=len(hits),
        search_time=time.perf_counter() - started,
        filtered=where is not None,
    )

    return VectorSearchResult(
        query=query,
        top_k=effective_top_k,
        hits=hits,
    ).model_dump(by_alias=True)
