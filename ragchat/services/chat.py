# =============================================================================
# Chat Pipeline - Retrieval Policy, Prompt Assembly, Stream Opening
# =============================================================================
#
# FLOW (everything before the first frame):
#   1. Take the text of the last message as the retrieval query
#   2. Retrieve matches (failure handled by the retrieval policy)
#   3. Build the system prompt from the matches (degraded if none)
#   4. Open the completion stream (failure raises CompletionServiceError)
#
# The route handler only starts the SSE response once all four steps have
# succeeded, so every failure here is still an ordinary HTTP error.
#
# RETRIEVAL FAILURE POLICY:
#   continue - EmbeddingServiceError, StorageError and an anchor text over
#              the embedding token limit (EmbeddingInputTooLong) are logged
#              and the request proceeds with an empty context; no error frame
#   abort    - the same errors propagate and the request fails
# Configuration errors and other argument errors propagate under both
# policies. Under abort an over-long anchor text is a 400.
# =============================================================================

from __future__ import annotations

import enum
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from ragchat.errors import (
    EmbeddingInputTooLong,
    EmbeddingServiceError,
    InvalidArgument,
    StorageError,
)
from ragchat.models.messages import ChatMessage
from ragchat.services.llm import CompletionProvider, CompletionStream
from ragchat.services.prompt import build_system_prompt, format_references
from ragchat.services.retriever import Retriever
from ragchat.services.streaming import ResponseMultiplexer
from ragchat.services.vectorstore import SimilarityMatch

logger = logging.getLogger(__name__)


class RetrievalFailurePolicy(str, enum.Enum):
    CONTINUE = "continue"
    ABORT = "abort"


@dataclass
class PreparedChat:
    """Everything needed to start streaming one chat response."""

    references: list[SimilarityMatch]
    system_prompt: str
    completion: CompletionStream

    def multiplexer(
        self,
        is_disconnected: Callable[[], Awaitable[bool]] | None = None,
    ) -> ResponseMultiplexer:
        return ResponseMultiplexer(self.references, self.completion, is_disconnected)


class ChatService:
    """
    Prepares retrieval-augmented chat streams.

    Args:
        retriever: Query → similarity matches.
        provider: Opens completion streams.
        failure_policy: What to do when retrieval fails.
    """

    def __init__(
        self,
        retriever: Retriever,
        provider: CompletionProvider,
        failure_policy: RetrievalFailurePolicy = RetrievalFailurePolicy.CONTINUE,
    ) -> None:
        self._retriever = retriever
        self._provider = provider
        self._failure_policy = RetrievalFailurePolicy(failure_policy)

    @property
    def failure_policy(self) -> RetrievalFailurePolicy:
        return self._failure_policy

    async def retrieve_context(self, messages: Sequence[ChatMessage]) -> list[SimilarityMatch]:
        """Retrieve matches for the last message, applying the failure policy."""
        query = messages[-1].text.strip()
        if not query:
            logger.info("Last message has no text; skipping retrieval")
            return []

        try:
            return await self._retriever.retrieve(query)
        except (EmbeddingServiceError, EmbeddingInputTooLong, StorageError) as exc:
            if self._failure_policy is RetrievalFailurePolicy.ABORT:
                logger.error("Retrieval failed (%s); aborting request", type(exc).__name__)
                raise
            logger.warning(
                "Retrieval failed (%s); continuing with empty context",
                type(exc).__name__,
            )
            return []

    async def start(self, messages: Sequence[ChatMessage]) -> PreparedChat:
        """
        Run retrieval and open the completion stream.

        Raises:
            InvalidArgument: No messages.
            EmbeddingServiceError / StorageError / EmbeddingInputTooLong:
                Retrieval failed under the abort policy.
            CompletionServiceError: The completion stream could not be opened.
        """
        if not messages:
            raise InvalidArgument("At least one message is required.")

        references = await self.retrieve_context(messages)
        system_prompt = build_system_prompt(format_references(references))
        completion = await self._provider.stream_completion(system_prompt, messages)

        logger.info(
            "Chat stream ready: %d messages, %d references",
            len(messages), len(references),
        )
        return PreparedChat(
            references=references,
            system_prompt=system_prompt,
            completion=completion,
        )
