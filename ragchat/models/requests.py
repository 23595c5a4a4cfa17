# =============================================================================
# API Request Models - Pydantic V2 Schemas
# =============================================================================
#
# Shapes of data coming INTO the API. Validation failures are reported as
# HTTP 400 with a JSON body (see the handler registered in main.py).
# =============================================================================

from pydantic import BaseModel, ConfigDict, Field

from ragchat.models.messages import ChatMessage


class ChatRequest(BaseModel):
    """
    Request body for POST /chat.

    `messages` is in chronological order; the last message anchors retrieval.

    Example:
        {
            "messages": [
                {"role": "user", "content": "How do I use the Button component?"}
            ]
        }
    """

    messages: list[ChatMessage] = Field(
        ...,
        min_length=1,
        description="Conversation so far, oldest first. Must not be empty.",
    )

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "messages": [
                        {"role": "user", "content": "How do I use the Button component?"},
                    ]
                },
                {
                    "messages": [
                        {
                            "role": "user",
                            "content": [
                                {"type": "text", "text": "What component is this?"},
                                {
                                    "type": "image_url",
                                    "image_url": {"url": "data:image/png;base64,iVBORw0..."},
                                },
                            ],
                        }
                    ]
                },
            ]
        }
    )


class SearchRequest(BaseModel):
    """
    Request body for POST /search - retrieval without generation.

    threshold and limit default to the deployment's retrieval settings.
    """

    query: str = Field(..., min_length=1, max_length=8000)
    threshold: float | None = Field(
        default=None,
        description="Minimum cosine similarity, between 0 and 1.",
    )
    limit: int | None = Field(
        default=None,
        description="Maximum number of matches, at least 1.",
    )
