# =============================================================================
# Error Taxonomy
# =============================================================================
#
#   RagChatError
#   ├── InvalidArgument        - caller bug (bad threshold/limit/vector)
#   │   └── EmbeddingInputTooLong - text over the embedding token limit
#   ├── ConfigurationError     - dimension mismatch, missing API key
#   ├── UpstreamServiceError   - remote API failure (timeout flag set on
#   │   │                        transport timeouts)
#   │   ├── EmbeddingServiceError
#   │   └── CompletionServiceError
#   ├── StorageError           - vector store insert/query failure
#   └── StreamError            - failure after streaming has begun
#
# Every error carries a `public_message` that is safe to send to clients.
# The full upstream message stays in `str(exc)` and in the logs only.
# Nothing in the core retries; callers decide.
# =============================================================================

from __future__ import annotations


class RagChatError(Exception):
    """Base class for all errors raised by the RAG chat core."""

    public_message = "An internal error occurred."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.public_message)


class InvalidArgument(RagChatError, ValueError):
    """A caller passed an argument outside the operation's contract."""

    public_message = "Invalid request."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message)
        # Argument errors describe the caller's own input, so the detail
        # is safe to echo back.
        if message:
            self.public_message = message


class EmbeddingInputTooLong(InvalidArgument):
    """A text exceeds the embedding model's input token limit."""


class ConfigurationError(RagChatError):
    """Deployment configuration is inconsistent (keys, vector widths)."""

    public_message = "The service is misconfigured."


class UpstreamServiceError(RagChatError):
    """A remote model API call failed or timed out."""

    public_message = "An upstream model service failed."

    def __init__(self, message: str | None = None, *, timeout: bool = False) -> None:
        super().__init__(message)
        self.timeout = timeout


class EmbeddingServiceError(UpstreamServiceError):
    """The embedding API failed or returned an unusable batch."""

    public_message = "The embedding service is unavailable."


class CompletionServiceError(UpstreamServiceError):
    """The completion API failed to open or continue a stream."""

    public_message = "The completion service is unavailable."


class StorageError(RagChatError):
    """The vector store failed to insert or query."""

    public_message = "The document store is unavailable."


class StreamError(RagChatError):
    """A failure after some output was already sent to the caller."""

    public_message = "The response stream was interrupted."
