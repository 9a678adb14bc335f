"""
Vector store implementation using PostgreSQL + pgvector.

Documents live in named collections. Queries return parallel arrays
(ids / documents / metadatas / distances), one inner list per query vector.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, TypedDict

from sqlalchemy import and_, false, func, not_, or_, select, text, true
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.sql.elements import ColumnElement

from tooling_lab.errors import BackendError
from tooling_lab.models.document import Collection, StoredDocument

logger = logging.getLogger(__name__)

BACKEND_NAME = "vector_store"

_documents = StoredDocument.__table__
_collections = Collection.__table__


@dataclass(frozen=True)
class CollectionHandle:
    """Resolved collection: the surrogate id used by queries, and its name."""

    id: int
    name: str


class QueryResult(TypedDict, total=False):
    """Raw query bundle. Any array may be absent or hold None entries."""

    ids: List[List[str]]
    documents: Optional[List[List[Optional[str]]]]
    metadatas: Optional[List[List[Optional[Dict[str, Any]]]]]
    distances: Optional[List[List[Optional[float]]]]


# ============================================================================
# Metadata filters
# ============================================================================

_COMPARISONS = {
    "$gt": lambda lhs, v: lhs > v,
    "$gte": lambda lhs, v: lhs >= v,
    "$lt": lambda lhs, v: lhs < v,
    "$lte": lambda lhs, v: lhs <= v,
}


def _is_scalar(value: Any) -> bool:
    return isinstance(value, (str, int, float, bool))


def _invalid_filter(message: str) -> BackendError:
    return BackendError(f"Invalid metadata filter: {message}", backend=BACKEND_NAME)


def _compile_field(column, field: str, condition: Any) -> ColumnElement:
    """Compile the condition for a single metadata field."""
    if _is_scalar(condition):
        return column.contains({field: condition})

    if not isinstance(condition, dict) or not condition:
        raise _invalid_filter(f"condition for '{field}' must be a scalar or an operator object")

    clauses = []
    for op, value in condition.items():
        if op == "$eq":
            if not _is_scalar(value):
                raise _invalid_filter(f"$eq on '{field}' expects a scalar")
            clauses.append(column.contains({field: value}))

        elif op == "$ne":
            if not _is_scalar(value):
                raise _invalid_filter(f"$ne on '{field}' expects a scalar")
            clauses.append(not_(column.contains({field: value})))

        elif op in ("$in", "$nin"):
            if not isinstance(value, list) or not all(_is_scalar(v) for v in value):
                raise _invalid_filter(f"{op} on '{field}' expects a list of scalars")
            matches = or_(false(), *[column.contains({field: v}) for v in value])
            clauses.append(matches if op == "$in" else not_(matches))

        elif op in _COMPARISONS:
            if isinstance(value, bool):
                raise _invalid_filter(f"{op} on '{field}' does not accept booleans")
            if isinstance(value, (int, float)):
                lhs = column[field].as_float()
            elif isinstance(value, str):
                lhs = column[field].as_string()
            else:
                raise _invalid_filter(f"{op} on '{field}' expects a number or string")
            clauses.append(_COMPARISONS[op](lhs, value))

        else:
            raise _invalid_filter(f"unsupported operator '{op}'")

    return and_(true(), *clauses)


def compile_metadata_filter(where: Dict[str, Any], column=None) -> ColumnElement:
    """
    Translate a metadata filter into a SQL expression over the JSONB column.

    Grammar:
        {"field": scalar}                      equality
        {"field": {"$gt": 3, "$lt": 9}}        operators, AND-ed
        {"$and": [filter, ...]}
        {"$or": [filter, ...]}
    Several top-level keys are AND-ed.

    Raises:
        BackendError: If the filter is malformed or uses an unknown operator
    """
    if column is None:
        column = _documents.c["metadata"]

    if not isinstance(where, dict):
        raise _invalid_filter("filter must be an object")

    clauses = []
    for key, value in where.items():
        if key in ("$and", "$or"):
            if not isinstance(value, list) or not value:
                raise _invalid_filter(f"{key} expects a non-empty list of filters")
            parts = [compile_metadata_filter(sub, column) for sub in value]
            clauses.append(and_(*parts) if key == "$and" else or_(*parts))
        elif key.startswith("$"):
            raise _invalid_filter(f"unsupported operator '{key}'")
        else:
            clauses.append(_compile_field(column, key, value))

    return and_(true(), *clauses)


# ============================================================================
# Vector store
# ============================================================================

class VectorStore:
    """
    Collection-scoped vector store over PostgreSQL with pgvector.

    Every call opens its own session from the shared factory, so one
    instance is safe to use from concurrent tasks.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """
        Initialize vector store with a session factory.

        Args:
            session_factory: Async SQLAlchemy session factory
        """
        self.session_factory = session_factory

    async def initialize(self) -> None:
        """
        Verify the pgvector extension is installed.

        Tables are created by Alembic migrations or ``init_db``.
        """
        async with self.session_factory() as session:
            result = await session.execute(
                text("SELECT extname FROM pg_extension WHERE extname = 'vector'")
            )
            if not result.scalar():
                raise RuntimeError("pgvector extension is not installed")

    async def get_or_create_collection(self, name: str) -> CollectionHandle:
        """
        Return the named collection, creating it if it does not exist.

        Raises:
            BackendError: If the database rejects the operation
        """
        create = (
            pg_insert(_collections)
            .values(name=name, created_at=datetime.now(timezone.utc))
            .on_conflict_do_nothing(index_elements=["name"])
        )
        lookup = select(_collections.c.id, _collections.c.name).where(
            _collections.c.name == name
        )

        try:
            async with self.session_factory() as session:
                await session.execute(create)
                result = await session.execute(lookup)
                row = result.one()
                await session.commit()
        except SQLAlchemyError as e:
            raise BackendError(
                f"Failed to resolve collection '{name}': {e}",
                backend=BACKEND_NAME,
            ) from e

        return CollectionHandle(id=row[0], name=row[1])

    async def add(
        self,
        collection: CollectionHandle,
        ids: List[str],
        documents: List[str],
        embeddings: List[List[float]],
        metadatas: List[Dict[str, Any]],
    ) -> None:
        """
        Insert or overwrite documents in a collection.

        The four lists are parallel: position ``i`` in each describes the
        same document.

        Raises:
            BackendError: On length mismatch or if the database rejects the write
        """
        lengths = {len(ids), len(documents), len(embeddings), len(metadatas)}
        if len(lengths) != 1:
            raise BackendError(
                "ids, documents, embeddings and metadatas must have the same length "
                f"(got {len(ids)}, {len(documents)}, {len(embeddings)}, {len(metadatas)})",
                backend=BACKEND_NAME,
            )
        if not ids:
            return

        now = datetime.now(timezone.utc)
        rows = [
            {
                "collection_id": collection.id,
                "id": doc_id,
                "document": document,
                "metadata": metadata,
                "embedding": embedding,
                "created_at": now,
                "updated_at": now,
            }
            for doc_id, document, embedding, metadata in zip(ids, documents, embeddings, metadatas)
        ]

        stmt = pg_insert(_documents).values(rows)
        stmt = stmt.on_conflict_do_update(
            index_elements=["collection_id", "id"],
            set_={
                "document": stmt.excluded["document"],
                "metadata": stmt.excluded["metadata"],
                "embedding": stmt.excluded["embedding"],
                "updated_at": stmt.excluded["updated_at"],
            },
        )

        try:
            async with self.session_factory() as session:
                await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as e:
            raise BackendError(
                f"Failed to add {len(rows)} documents to '{collection.name}': {e}",
                backend=BACKEND_NAME,
            ) from e

        logger.info(f"Stored {len(rows)} documents in collection '{collection.name}'")

    async def query(
        self,
        collection: CollectionHandle,
        query_embeddings: List[List[float]],
        n_results: int,
        where: Optional[Dict[str, Any]] = None,
    ) -> QueryResult:
        """
        Nearest-neighbour search by cosine distance.

        Args:
            collection: Collection to search
            query_embeddings: One or more query vectors
            n_results: Maximum neighbours per query vector
            where: Optional metadata filter (see ``compile_metadata_filter``)

        Returns:
            QueryResult with one inner list per query vector, nearest first

        Raises:
            BackendError: If the filter is invalid or the database rejects the query
        """
        condition = compile_metadata_filter(where) if where else None

        result: QueryResult = {"ids": [], "documents": [], "metadatas": [], "distances": []}

        try:
            async with self.session_factory() as session:
                for vector in query_embeddings:
                    distance = _documents.c.embedding.cosine_distance(vector).label("distance")
                    stmt = select(
                        _documents.c.id,
                        _documents.c.document,
                        _documents.c["metadata"],
                        distance,
                    ).where(_documents.c.collection_id == collection.id)
                    if condition is not None:
                        stmt = stmt.where(condition)
                    stmt = stmt.order_by(distance).limit(n_results)

                    rows = (await session.execute(stmt)).all()
                    result["ids"].append([row[0] for row in rows])
                    result["documents"].append([row[1] for row in rows])
                    result["metadatas"].append([row[2] for row in rows])
                    result["distances"].append(
                        [float(row[3]) if row[3] is not None else None for row in rows]
                    )
        except SQLAlchemyError as e:
            raise BackendError(
                f"Query against '{collection.name}' failed: {e}",
                backend=BACKEND_NAME,
            ) from e

        return result

    async def count(self, collection: CollectionHandle) -> int:
        """Number of documents stored in a collection."""
        stmt = select(func.count()).select_from(_documents).where(
            _documents.c.collection_id == collection.id
        )
        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                return result.scalar() or 0
        except SQLAlchemyError as e:
            raise BackendError(
                f"Failed to count documents in '{collection.name}': {e}",
                backend=BACKEND_NAME,
            ) from e
