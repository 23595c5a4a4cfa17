# =============================================================================
# Ingestion Pipeline - Document → Chunks → Embeddings → Vector Store
# =============================================================================
#
#   1. Read the document (file path or caller-supplied text)
#   2. Split it on the separator (services/chunker.py)
#   3. Embed every chunk in one all-or-nothing embed_many call
#   4. Insert (content, embedding) pairs into the vector store
#
# A document with no chunks is not an error: nothing is embedded or stored
# and the reported count is 0.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

from ragchat.config import DEFAULT_CHUNK_SEPARATOR
from ragchat.services.chunker import chunk_text
from ragchat.services.embedder import Embedder
from ragchat.services.vectorstore import DocumentChunk, VectorStore

logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    """Summary of one ingestion run."""

    chunk_count: int
    source: str | None = None


class IngestionService:
    """Chunks, embeds, and stores documents."""

    def __init__(
        self,
        embedder: Embedder,
        store: VectorStore,
        separator: str = DEFAULT_CHUNK_SEPARATOR,
    ) -> None:
        self._embedder = embedder
        self._store = store
        self._separator = separator

    async def ingest_text(
        self,
        text: str,
        source: str | None = None,
        separator: str | None = None,
    ) -> IngestResult:
        """Ingest an in-memory document."""
        chunks = chunk_text(text, separator or self._separator)
        logger.info("Ingesting %s: %d chunks", source or "<buffer>", len(chunks))
        if not chunks:
            return IngestResult(chunk_count=0, source=source)

        embeddings = await self._embedder.embed_many(chunks)
        stored = await self._store.insert([
            DocumentChunk(content=content, embedding=embedding, source=source)
            for content, embedding in zip(chunks, embeddings, strict=True)
        ])

        logger.info("Ingestion complete: %s, %d chunks stored", source or "<buffer>", stored)
        return IngestResult(chunk_count=stored, source=source)

    async def ingest_file(self, path: str | Path, separator: str | None = None) -> IngestResult:
        """Ingest a UTF-8 text file from disk."""
        file_path = Path(path)
        text = await asyncio.to_thread(file_path.read_text, encoding="utf-8")
        return await self.ingest_text(text, source=file_path.name, separator=separator)
