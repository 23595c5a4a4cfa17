# =============================================================================
# Embedding Service - Batch Vector Generation (Provider-Agnostic)
# =============================================================================
#
# Generates vector embeddings through any OpenAI-compatible embeddings API
# (OpenAI, Azure-style gateways, self-hosted proxies) using the async SDK.
#
# The AsyncOpenAI client is injected by the service container; this module
# never builds its own client or reads global settings.
#
# BATCHING:
# - Inputs are split into sub-batches of `batch_size` texts per API call
# - Sub-batches run concurrently, at most `max_concurrency` at a time
# - Every vector is written back by input index, never by arrival order
#
# ALL-OR-NOTHING: any failed sub-batch fails the whole call and cancels the
# sub-batches still waiting or in flight. The caller either gets one vector
# per input or an EmbeddingServiceError.
#
# TOKEN LIMITS:
# - Each input: max 8,191 tokens (cl100k_base). Oversized inputs are
#   rejected before any network call.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

import openai
import tiktoken
from openai import AsyncOpenAI

from ragchat.errors import ConfigurationError, EmbeddingInputTooLong, EmbeddingServiceError

logger = logging.getLogger(__name__)

MAX_INPUT_TOKENS = 8191


# ---------------------------------------------------------------------------
# Tiktoken Encoder - Cached Singleton
# ---------------------------------------------------------------------------
# cl100k_base is the encoding used by the text-embedding-3 family.
# ---------------------------------------------------------------------------

_encoder: tiktoken.Encoding | None = None


def _get_encoder() -> tiktoken.Encoding:
    """Lazily initialize and cache the tiktoken encoder."""
    global _encoder
    if _encoder is None:
        try:
            _encoder = tiktoken.get_encoding("cl100k_base")
        except Exception as exc:
            # First use may download the BPE file; network and cache failures
            # surface here as requests or OS errors.
            logger.error("Failed to load tiktoken encoding cl100k_base: %s", exc)
            raise EmbeddingServiceError(f"Tokenizer unavailable: {exc}") from exc
    return _encoder


def normalize_text(text: str) -> str:
    """Replace literal backslash-n sequences (pre-escaped content) with spaces."""
    return text.replace("\\n", " ")


def count_tokens(text: str) -> int:
    """
    Count cl100k_base tokens in `text`.

    Every token covers at least one UTF-8 byte, so texts whose byte length
    is within the limit are returned by byte length without encoding.
    """
    byte_length = len(text.encode("utf-8"))
    if byte_length <= MAX_INPUT_TOKENS:
        return byte_length
    return len(_get_encoder().encode(text, disallowed_special=()))


class Embedder:
    """
    Turns text into fixed-width vectors.

    Args:
        client: Injected AsyncOpenAI client (may point at any compatible host).
        model: Embedding model identifier.
        dimensions: Expected vector width D. Every returned vector is checked.
        batch_size: Texts per API call.
        max_concurrency: Sub-batches in flight at once.
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str,
        dimensions: int,
        batch_size: int = 100,
        max_concurrency: int = 4,
    ) -> None:
        self._client = client
        self._model = model
        self._dimensions = dimensions
        self._batch_size = batch_size
        self._max_concurrency = max_concurrency

    @property
    def dimensions(self) -> int:
        return self._dimensions

    async def embed_one(self, text: str) -> list[float]:
        """Embed a single text (used for query embedding at retrieval time)."""
        vectors = await self.embed_many([text])
        return vectors[0]

    async def embed_many(self, texts: Sequence[str]) -> list[list[float]]:
        """
        Embed many texts, returning vectors in input order.

        Raises:
            EmbeddingInputTooLong: An input exceeds the model's token limit.
            EmbeddingServiceError: The API failed or returned a malformed batch.
            ConfigurationError: A returned vector is not `dimensions` wide.
        """
        if not texts:
            return []

        inputs = [normalize_text(text) for text in texts]
        for i, text in enumerate(inputs):
            tokens = count_tokens(text)
            if tokens > MAX_INPUT_TOKENS:
                raise EmbeddingInputTooLong(
                    f"Input {i} has {tokens} tokens; the embedding model "
                    f"accepts at most {MAX_INPUT_TOKENS}."
                )

        results: list[list[float] | None] = [None] * len(inputs)
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def _run(start: int, batch: list[str]) -> None:
            async with semaphore:
                logger.info(
                    "Embedding batch %d-%d of %d texts (model=%s)",
                    start + 1, start + len(batch), len(inputs), self._model,
                )
                vectors = await self._embed_batch(batch)
            results[start : start + len(vectors)] = vectors

        tasks = [
            asyncio.create_task(_run(start, inputs[start : start + self._batch_size]))
            for start in range(0, len(inputs), self._batch_size)
        ]
        try:
            await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        finally:
            # First failure (or caller cancellation) stops the remaining
            # sub-batches before they reach the API.
            pending = [task for task in tasks if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        for task in tasks:
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()

        if any(vector is None for vector in results):
            raise EmbeddingServiceError("Embedding results are incomplete.")

        logger.info(
            "Generated %d embeddings (model=%s, dimensions=%d)",
            len(inputs), self._model, self._dimensions,
        )
        return results  # type: ignore[return-value]

    async def _embed_batch(self, batch: list[str]) -> list[list[float]]:
        """One embeddings API call; vectors placed by their response index."""
        create_kwargs: dict = {"model": self._model, "input": batch}
        # Only the text-embedding-3 family accepts a dimensions override
        if self._model.startswith("text-embedding-3"):
            create_kwargs["dimensions"] = self._dimensions

        try:
            response = await self._client.embeddings.create(**create_kwargs)
        except openai.APITimeoutError as exc:
            logger.error("embed_batch timed out (model=%s, size=%d)", self._model, len(batch))
            raise EmbeddingServiceError(
                f"Embedding request timed out: {exc}", timeout=True,
            ) from exc
        except openai.OpenAIError as exc:
            logger.error("embed_batch failed (model=%s, size=%d): %s", self._model, len(batch), exc)
            raise EmbeddingServiceError(f"Embedding request failed: {exc}") from exc

        if len(response.data) != len(batch):
            logger.error(
                "embed_batch returned %d vectors for %d inputs",
                len(response.data), len(batch),
            )
            raise EmbeddingServiceError(
                f"Embedding API returned {len(response.data)} vectors "
                f"for {len(batch)} inputs."
            )

        vectors: list[list[float] | None] = [None] * len(batch)
        for item in response.data:
            if not 0 <= item.index < len(batch) or vectors[item.index] is not None:
                raise EmbeddingServiceError(
                    f"Embedding API returned an invalid index {item.index}."
                )
            if len(item.embedding) != self._dimensions:
                raise ConfigurationError(
                    f"Embedding model {self._model} returned "
                    f"{len(item.embedding)}-dimensional vectors; the store "
                    f"expects {self._dimensions}."
                )
            vectors[item.index] = item.embedding

        logger.debug(
            "Batch complete: %d embeddings, %d prompt tokens",
            len(batch),
            response.usage.prompt_tokens if response.usage else 0,
        )
        return vectors  # type: ignore[return-value]
