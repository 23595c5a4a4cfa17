# =============================================================================
# Database Models - SQLAlchemy ORM
# =============================================================================
#
# SCHEMA:
#
# ┌──────────────────────────────────┐
# │  document_chunks                 │
# ├──────────────────────────────────┤
# │ id (PK)                          │
# │ content (text)                   │
# │ embedding (vector(D))            │
# │ source (varchar, nullable)       │
# │ created_at                       │
# └──────────────────────────────────┘
#
# Rows are append-only: ingestion inserts, retrieval reads. Nothing in the
# service updates or deletes a chunk.
#
# D comes from `embedding_dimensions` and must equal the width the embedding
# model returns. The embedder and the store both check it at runtime.
# =============================================================================

from datetime import datetime

from pgvector.sqlalchemy import Vector
from sqlalchemy import DateTime, Index, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ragchat.config import get_settings


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class."""

    pass


class DocumentChunkRecord(Base):
    """
    A chunk of source text and its embedding.

    The similarity search in PgVectorStore runs entirely in PostgreSQL
    against the `embedding` column; the application never pulls vectors
    back out.
    """

    __tablename__ = "document_chunks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    content: Mapped[str] = mapped_column(Text, nullable=False)

    embedding: Mapped[list[float]] = mapped_column(
        Vector(get_settings().embedding_dimensions),
        nullable=False,
    )

    # File name the chunk was ingested from, when known
    source: Mapped[str | None] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<DocumentChunkRecord(id={self.id}, source={self.source!r})>"


# =============================================================================
# Indexes
# =============================================================================
#
# HNSW (Hierarchical Navigable Small World) approximate nearest neighbour
# index with `vector_cosine_ops`, so `ORDER BY embedding <=> :query LIMIT k`
# walks the graph instead of scanning every row.
# =============================================================================

document_chunk_embedding_idx = Index(
    "idx_document_chunk_embedding_hnsw",
    DocumentChunkRecord.embedding,
    postgresql_using="hnsw",
    postgresql_with={"m": 16, "ef_construction": 64},
    postgresql_ops={"embedding": "vector_cosine_ops"},
)
