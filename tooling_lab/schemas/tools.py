"""
Pydantic schemas for the tool surface.

Defines the document input model and the result shapes for:
- embed_text
- index_documents
- vector_search
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Inputs
# ============================================================================

class DocumentInput(BaseModel):
    """A document submitted for indexing."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1, description="Document id, unique within the collection")
    text: str = Field(..., min_length=1, description="Text to embed and store")
    metadata: Optional[Dict[str, Any]] = Field(
        None, description="Arbitrary metadata, usable in vector_search filters"
    )


# ============================================================================
# Results
# ============================================================================

class EmbedTextResult(BaseModel):
    """Result of embed_text."""

    model: str
    count: int = Field(..., ge=0)
    embeddings: List[List[float]]


class IndexDocumentsResult(BaseModel):
    """Result of index_documents. ``indexed`` is the attempted batch size."""

    indexed: int = Field(..., ge=0)


class SearchHit(BaseModel):
    """One nearest neighbour. Fields the backend did not return are None."""

    id: str
    document: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    distance: Optional[float] = None


class VectorSearchResult(BaseModel):
    """Result of vector_search, hits nearest first."""

    model_config = ConfigDict(populate_by_name=True)

    query: str
    top_k: int = Field(..., alias="topK", ge=1)
    hits: List[SearchHit] = Field(default_factory=list)
