# =============================================================================
# Retriever - Query Text → Ranked Similarity Matches
# =============================================================================
#
#   query text ──embed_one──▶ vector ──store.query──▶ [SimilarityMatch, ...]
#
# Errors from either step propagate unchanged (EmbeddingServiceError,
# StorageError, InvalidArgument). Whether a failed retrieval aborts a chat
# request or degrades to an empty context is decided by the chat pipeline
# (services/chat.py), not here.
# =============================================================================

from __future__ import annotations

import logging

from ragchat.services.embedder import Embedder
from ragchat.services.vectorstore import SimilarityMatch, VectorStore

logger = logging.getLogger(__name__)


class Retriever:
    """
    Embeds a query and looks up the nearest stored chunks.

    Args:
        embedder: Produces the query vector.
        store: Answers the similarity query.
        threshold: Default minimum similarity.
        limit: Default maximum number of matches.
    """

    def __init__(
        self,
        embedder: Embedder,
        store: VectorStore,
        threshold: float = 0.5,
        limit: int = 5,
    ) -> None:
        self._embedder = embedder
        self._store = store
        self.threshold = threshold
        self.limit = limit

    async def retrieve(
        self,
        query_text: str,
        threshold: float | None = None,
        limit: int | None = None,
    ) -> list[SimilarityMatch]:
        """Return stored chunks similar to `query_text`, best first."""
        _threshold = self.threshold if threshold is None else threshold
        _limit = self.limit if limit is None else limit

        vector = await self._embedder.embed_one(query_text)
        matches = await self._store.query(vector, _threshold, _limit)

        logger.info(
            "Retrieved %d matches (threshold=%.2f, limit=%d, top=%.3f)",
            len(matches), _threshold, _limit,
            matches[0].similarity if matches else 0.0,
        )
        return matches
