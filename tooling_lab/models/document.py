"""
SQLAlchemy models for collections and their embedded documents.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List

from pgvector.sqlalchemy import Vector
from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from tooling_lab.config import get_embedding_dimension
from tooling_lab.db.session import Base

# Column width is fixed when the table is created
EMBEDDING_DIMENSION = get_embedding_dimension()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Collection(Base):
    """
    Named partition of the vector store.

    Attributes:
        id: Surrogate key referenced by documents
        name: Unique collection name
        created_at: Timestamp when the collection was created
    """

    __tablename__ = "collections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<Collection(id={self.id}, name='{self.name}')>"


class StoredDocument(Base):
    """
    A document, its embedding and metadata inside one collection.

    Document ids are unique per collection, so re-indexing an id overwrites it.
    """

    __tablename__ = "documents"

    collection_id: Mapped[int] = mapped_column(
        ForeignKey("collections.id", ondelete="CASCADE"), primary_key=True
    )
    id: Mapped[str] = mapped_column(String(512), primary_key=True)
    document: Mapped[str] = mapped_column(Text, nullable=False)
    metadata_: Mapped[Dict[str, Any]] = mapped_column(
        "metadata", JSONB, nullable=False, default=dict, server_default=text("'{}'::jsonb")
    )
    embedding: Mapped[List[float]] = mapped_column(Vector(EMBEDDING_DIMENSION), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    __table_args__ = (
        Index(
            "ix_documents_embedding",
            "embedding",
            postgresql_using="hnsw",
            postgresql_ops={"embedding": "vector_cosine_ops"},
        ),
        Index("ix_documents_metadata", "metadata", postgresql_using="gin"),
    )

    def __repr__(self) -> str:
        return f"<StoredDocument(collection_id={self.collection_id}, id='{self.id}')>"

