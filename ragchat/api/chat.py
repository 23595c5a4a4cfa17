# =============================================================================
# Chat API - Streamed Retrieval-Augmented Answers
# =============================================================================
#
# ENDPOINT:
#   POST /chat  {messages: [...]}  → text/event-stream
#
# Everything that can fail before the first byte (retrieval under the abort
# policy, opening the completion stream) is awaited here, so those failures
# are plain JSON errors:
#   400  malformed body / invalid argument
#   502  retrieval failed under the abort policy, or the completion stream
#        could not be opened
#   500  configuration or unexpected errors (main.py handlers)
#
# Once the StreamingResponse starts, failures are reported in-band as an
# error frame (services/streaming.py).
# =============================================================================

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from ragchat.api.deps import get_chat_service
from ragchat.errors import CompletionServiceError, EmbeddingServiceError, StorageError
from ragchat.models.requests import ChatRequest
from ragchat.models.responses import ErrorResponse
from ragchat.services.chat import ChatService
from ragchat.services.streaming import SSE_HEADERS

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Chat"])


@router.post(
    "/chat",
    response_class=StreamingResponse,
    summary="Ask a question and stream the answer",
    description=(
        "Retrieves documentation chunks similar to the last message, then "
        "streams the model's answer as Server-Sent Events. Each event is "
        "`data: <json>` with `type` one of reference, content, done, error."
    ),
    responses={
        200: {"content": {"text/event-stream": {}}},
        400: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
async def chat_endpoint(
    body: ChatRequest,
    request: Request,
    chat_service: ChatService = Depends(get_chat_service),
) -> StreamingResponse:
    try:
        prepared = await chat_service.start(body.messages)
    except (EmbeddingServiceError, StorageError) as exc:
        logger.error("Chat aborted: retrieval failed (%s)", type(exc).__name__)
        raise HTTPException(status_code=502, detail=exc.public_message) from exc
    except CompletionServiceError as exc:
        logger.error("Chat aborted: completion stream failed to open")
        raise HTTPException(status_code=502, detail=exc.public_message) from exc

    multiplexer = prepared.multiplexer(is_disconnected=request.is_disconnected)
    return StreamingResponse(
        multiplexer.sse(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
        # Covers responses cancelled before the body iterator ever started.
        background=BackgroundTask(prepared.completion.aclose),
    )
