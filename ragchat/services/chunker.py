# =============================================================================
# Separator-Based Text Chunker
# =============================================================================
#
# Source documents are authored with an explicit sentinel line between
# semantic sections. Chunking is therefore a literal split on that
# sentinel, not a token window: each section becomes exactly one chunk and
# one embedding.
#
# ALGORITHM:
# 1. Split the text on every literal occurrence of the separator
# 2. Strip surrounding whitespace from each piece
# 3. Drop pieces that are empty after stripping
#
# Order is preserved and duplicates are kept.
# =============================================================================

from __future__ import annotations

import logging

from ragchat.config import DEFAULT_CHUNK_SEPARATOR
from ragchat.errors import InvalidArgument

logger = logging.getLogger(__name__)


def chunk_text(text: str, separator: str = DEFAULT_CHUNK_SEPARATOR) -> list[str]:
    """
    Split `text` into trimmed, non-empty chunks on `separator`.

    Args:
        text: Raw document text. Empty input yields no chunks.
        separator: Literal delimiter between sections.

    Returns:
        Chunks in document order.

    Raises:
        InvalidArgument: If `separator` is empty.
    """
    if not separator:
        raise InvalidArgument("Chunk separator must not be empty.")

    chunks = [piece.strip() for piece in text.split(separator)]
    chunks = [chunk for chunk in chunks if chunk]

    logger.debug("Chunked %d characters into %d chunks", len(text), len(chunks))
    return chunks
