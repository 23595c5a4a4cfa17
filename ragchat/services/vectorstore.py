# =============================================================================
# Vector Store Abstraction - Pluggable Backend Protocol
# =============================================================================
#
# Persists (content, embedding) pairs and answers nearest-neighbour queries
# by cosine similarity above a threshold. Two backends share one Protocol:
#
#   VectorStore (Protocol)
#   ├── PgVectorStore     - PostgreSQL + pgvector, HNSW index, one SQL query
#   └── ChromaVectorStore - ChromaDB collection with hnsw:space=cosine
#
# SIMILARITY: similarity = 1 - cosine_distance(a, b). Cosine distance lies
# in [0, 2], so similarity lies in [-1, 1]; it is only guaranteed to be in
# [0, 1] for non-negative or normalised vectors.
#
# QUERY CONTRACT (both backends):
#   - 0 <= threshold <= 1, limit >= 1, non-empty vector of width D,
#     otherwise InvalidArgument / ConfigurationError
#   - results sorted by similarity descending, at most `limit`, each one
#     with similarity >= threshold
#   - backend failures surface as StorageError
#
# The store is append-only: there is no update or delete.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol
from urllib.parse import urlparse

import chromadb
from sqlalchemy import Select, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ragchat.config import Settings
from ragchat.db.engine import session_scope
from ragchat.db.models import DocumentChunkRecord
from ragchat.errors import ConfigurationError, InvalidArgument, StorageError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DocumentChunk:
    """A chunk of source text and its embedding, ready to be stored."""

    content: str
    embedding: list[float]
    source: str | None = None


@dataclass(frozen=True)
class SimilarityMatch:
    """A stored chunk returned by a similarity query."""

    content: str
    similarity: float  # 1 - cosine distance, higher = more relevant


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class VectorStore(Protocol):
    """Interface shared by every vector store backend."""

    async def insert(self, chunks: Sequence[DocumentChunk]) -> int:
        """Store chunks; returns how many were inserted."""
        ...

    async def query(
        self,
        vector: Sequence[float],
        threshold: float,
        limit: int,
    ) -> list[SimilarityMatch]:
        """Nearest chunks by cosine similarity, best first."""
        ...


def validate_query_args(
    vector: Sequence[float],
    threshold: float,
    limit: int,
    dimensions: int,
) -> None:
    """Reject query arguments outside the store contract."""
    if not vector:
        raise InvalidArgument("Query vector must not be empty.")
    if not 0.0 <= threshold <= 1.0:
        raise InvalidArgument("Similarity threshold must be between 0 and 1.")
    if limit < 1:
        raise InvalidArgument("Result limit must be at least 1.")
    if len(vector) != dimensions:
        raise ConfigurationError(
            f"Query vector has {len(vector)} dimensions; the store expects {dimensions}."
        )


def _check_chunk_widths(chunks: Sequence[DocumentChunk], dimensions: int) -> None:
    for i, chunk in enumerate(chunks):
        if len(chunk.embedding) != dimensions:
            raise ConfigurationError(
                f"Chunk {i} has a {len(chunk.embedding)}-dimensional embedding; "
                f"the store expects {dimensions}."
            )


# ---------------------------------------------------------------------------
# Implementation 1: pgvector (PostgreSQL)
# ---------------------------------------------------------------------------


def build_similarity_query(
    vector: Sequence[float],
    threshold: float,
    limit: int,
) -> Select:
    """
    Build the single nearest-neighbour statement.

    ORDER BY uses the bare `embedding <=> :vector` expression so PostgreSQL
    can serve it from the HNSW cosine index. The threshold is applied as a
    distance bound: similarity >= t  <=>  distance <= 1 - t.
    """
    distance = DocumentChunkRecord.embedding.cosine_distance(list(vector))
    return (
        select(DocumentChunkRecord.content, distance.label("distance"))
        .where(distance <= 1.0 - threshold)
        .order_by(distance)
        .limit(limit)
    )


class PgVectorStore:
    """
    pgvector-backed vector store.

    Writes go through the ORM in one transaction; reads are one SQL
    statement evaluated by PostgreSQL, so vectors never leave the database
    during a query.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dimensions: int,
    ) -> None:
        self._session_factory = session_factory
        self._dimensions = dimensions

    async def insert(self, chunks: Sequence[DocumentChunk]) -> int:
        """Insert all chunks in a single transaction."""
        if not chunks:
            return 0
        _check_chunk_widths(chunks, self._dimensions)

        records = [
            DocumentChunkRecord(
                content=chunk.content,
                embedding=list(chunk.embedding),
                source=chunk.source,
            )
            for chunk in chunks
        ]
        try:
            async with session_scope(self._session_factory) as session:
                session.add_all(records)
        except (SQLAlchemyError, OSError) as exc:
            logger.error("pgvector insert failed for %d chunks: %s", len(records), exc)
            raise StorageError(f"Failed to insert chunks: {exc}") from exc

        logger.info("Stored %d chunks in pgvector", len(records))
        return len(records)

    async def query(
        self,
        vector: Sequence[float],
        threshold: float,
        limit: int,
    ) -> list[SimilarityMatch]:
        """Cosine similarity search served by the HNSW index."""
        validate_query_args(vector, threshold, limit, self._dimensions)
        stmt = build_similarity_query(vector, threshold, limit)

        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                rows = result.all()
        except (SQLAlchemyError, OSError) as exc:
            logger.error("pgvector query failed: %s", exc)
            raise StorageError(f"Similarity query failed: {exc}") from exc

        logger.debug(
            "Vector search returned %d rows (threshold=%.3f, limit=%d)",
            len(rows), threshold, limit,
        )
        return [
            SimilarityMatch(content=content, similarity=1.0 - float(distance))
            for content, distance in rows
        ]


# ---------------------------------------------------------------------------
# Implementation 2: ChromaDB
# ---------------------------------------------------------------------------


class ChromaVectorStore:
    """
    ChromaDB-backed vector store.

    The Chroma client is synchronous; every call runs in a worker thread via
    asyncio.to_thread() so the event loop is never blocked.
    """

    def __init__(
        self,
        client: chromadb.ClientAPI,
        dimensions: int,
        collection_name: str = "document_chunks",
    ) -> None:
        self._client = client
        self._dimensions = dimensions
        # Cosine space so distances match pgvector's <=> operator
        self._collection = client.get_or_create_collection(
            name=collection_name,
            metadata={"hnsw:space": "cosine"},
        )

    async def insert(self, chunks: Sequence[DocumentChunk]) -> int:
        if not chunks:
            return 0
        _check_chunk_widths(chunks, self._dimensions)

        def _sync_add() -> None:
            self._collection.add(
                ids=[uuid.uuid4().hex for _ in chunks],
                documents=[chunk.content for chunk in chunks],
                embeddings=[list(chunk.embedding) for chunk in chunks],
                # Chroma rejects empty metadata dicts and None values
                metadatas=[{"source": chunk.source or ""} for chunk in chunks],
            )

        try:
            await asyncio.to_thread(_sync_add)
        except Exception as exc:
            logger.error("Chroma insert failed for %d chunks: %s", len(chunks), exc)
            raise StorageError(f"Failed to insert chunks: {exc}") from exc

        logger.info("Stored %d chunks in ChromaDB", len(chunks))
        return len(chunks)

    async def query(
        self,
        vector: Sequence[float],
        threshold: float,
        limit: int,
    ) -> list[SimilarityMatch]:
        validate_query_args(vector, threshold, limit, self._dimensions)

        def _sync_query() -> list[SimilarityMatch]:
            stored = self._collection.count()
            if stored == 0:
                return []
            results = self._collection.query(
                query_embeddings=[list(vector)],
                n_results=min(limit, stored),
                include=["documents", "distances"],
            )
            documents = results["documents"][0] if results["documents"] else []
            distances = results["distances"][0] if results["distances"] else []
            return [
                SimilarityMatch(content=content, similarity=1.0 - float(distance))
                for content, distance in zip(documents, distances, strict=True)
            ]

        try:
            matches = await asyncio.to_thread(_sync_query)
        except Exception as exc:
            logger.error("Chroma query failed: %s", exc)
            raise StorageError(f"Similarity query failed: {exc}") from exc

        matches = [m for m in matches if m.similarity >= threshold]
        matches.sort(key=lambda m: m.similarity, reverse=True)
        return matches[:limit]


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------


def build_chroma_client(chroma_url: str | None) -> chromadb.ClientAPI:
    """HTTP client when a server URL is configured, in-process otherwise."""
    if not chroma_url:
        return chromadb.Client()
    parsed = urlparse(chroma_url if "://" in chroma_url else f"http://{chroma_url}")
    return chromadb.HttpClient(
        host=parsed.hostname or "localhost",
        port=parsed.port or 8000,
        ssl=parsed.scheme == "https",
    )


def get_vector_store(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> PgVectorStore | ChromaVectorStore:
    """
    Build the configured vector store backend.

    - "pgvector" → PgVectorStore (requires `session_factory`)
    - "chroma"   → ChromaVectorStore
    """
    if settings.vectorstore_type == "chroma":
        logger.info("Using ChromaDB vector store (collection=%s)", settings.chroma_collection)
        return ChromaVectorStore(
            client=build_chroma_client(settings.chroma_url),
            dimensions=settings.embedding_dimensions,
            collection_name=settings.chroma_collection,
        )

    if session_factory is None:
        raise ConfigurationError("pgvector store requires a database session factory.")
    logger.info("Using pgvector vector store")
    return PgVectorStore(session_factory, dimensions=settings.embedding_dimensions)
