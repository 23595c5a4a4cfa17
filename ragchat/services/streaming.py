# =============================================================================
# Response Multiplexer - Evidence + Token Stream → SSE Frames
# =============================================================================
#
# Merges one request's retrieval result and its completion stream into a
# single outbound sequence of frames (see models/frames.py).
#
# STATE MACHINE (one request):
#
#   INIT ──▶ STREAMING ──▶ DONE
#     │          │
#     └──────────┴──▶ ERROR        (upstream or serialisation failure)
#                └──▶ CANCELLED    (caller stopped reading / disconnected)
#
# FRAME ORDER:
#   [reference]  once, first, only when the context is non-empty
#   content*     one per non-empty TextDelta
#   done | error exactly one terminal frame (none after a cancellation)
#
# PULL MODEL: frames are produced by an async generator. The upstream is
# pulled only when the consumer asks for the next frame, so a slow socket
# suspends the upstream instead of buffering. Before every pull the
# optional `is_disconnected` probe is checked.
#
# The upstream CompletionStream is closed exactly once on every exit path:
# normal end, error, generator close, and task cancellation. The close runs
# in a shielded cancel scope so it still completes while the surrounding
# response task is being cancelled.
# =============================================================================

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence

import anyio

from ragchat.errors import RagChatError, StreamError
from ragchat.models.frames import (
    ContentFrame,
    DoneFrame,
    ErrorFrame,
    ReferenceFrame,
    StreamFrame,
    encode_sse,
)
from ragchat.models.responses import MatchResponse
from ragchat.services.llm import CompletionStream
from ragchat.services.prompt import format_references
from ragchat.services.vectorstore import SimilarityMatch

logger = logging.getLogger(__name__)

# Headers for the chat stream. X-Accel-Buffering disables proxy buffering
# (nginx) so frames reach the client as they are produced.
SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class StreamState(str, enum.Enum):
    INIT = "init"
    STREAMING = "streaming"
    DONE = "done"
    ERROR = "error"
    CANCELLED = "cancelled"


class ResponseMultiplexer:
    """
    Produces the outbound frames for one chat request.

    Args:
        references: Retrieval context (may be empty).
        completion: Opened completion stream; owned by the multiplexer
            from here on and always closed by it.
        is_disconnected: Optional async probe, e.g. Starlette's
            `Request.is_disconnected`. True stops the stream before the
            next upstream pull.
    """

    def __init__(
        self,
        references: Sequence[SimilarityMatch],
        completion: CompletionStream,
        is_disconnected: Callable[[], Awaitable[bool]] | None = None,
    ) -> None:
        self._references = list(references)
        self._completion = completion
        self._is_disconnected = is_disconnected
        self._started = False
        self.state = StreamState.INIT

    async def frames(self) -> AsyncIterator[StreamFrame]:
        """Yield frames until a terminal frame, an error, or cancellation."""
        if self._started:
            raise RuntimeError("ResponseMultiplexer.frames() can only be consumed once")
        self._started = True

        try:
            self.state = StreamState.STREAMING

            if self._references:
                yield ReferenceFrame(
                    content=format_references(self._references) or "",
                    references=[
                        MatchResponse(content=m.content, similarity=m.similarity)
                        for m in self._references
                    ],
                )

            finish_reason = "stop"
            while True:
                if self._is_disconnected is not None and await self._is_disconnected():
                    self.state = StreamState.CANCELLED
                    logger.info("Client disconnected; stopping completion stream")
                    return
                try:
                    delta = await anext(self._completion)
                except StopAsyncIteration:
                    break
                if delta.text:
                    yield ContentFrame(content=delta.text)
                if delta.finish_reason:
                    finish_reason = delta.finish_reason
                    break

            self.state = StreamState.DONE
            yield DoneFrame(finish_reason=finish_reason)

        except (GeneratorExit, asyncio.CancelledError):
            if self.state is StreamState.STREAMING:
                self.state = StreamState.CANCELLED
                logger.info("Chat stream cancelled by the caller")
            raise
        except Exception as exc:
            self.state = StreamState.ERROR
            logger.exception("Chat stream failed mid-stream: %s", exc)
            public = exc.public_message if isinstance(exc, RagChatError) else StreamError.public_message
            yield ErrorFrame(error=public)
        finally:
            with anyio.CancelScope(shield=True):
                await self._completion.aclose()

    async def sse(self) -> AsyncIterator[str]:
        """Yield the frames encoded as Server-Sent Events."""
        frames = self.frames()
        try:
            async for frame in frames:
                try:
                    payload = encode_sse(frame)
                except (ValueError, TypeError) as exc:
                    self.state = StreamState.ERROR
                    logger.error("Failed to serialise %s frame: %s", frame.type, exc)
                    yield encode_sse(ErrorFrame(error=StreamError.public_message))
                    return
                yield payload
        finally:
            await frames.aclose()
