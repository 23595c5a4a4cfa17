# =============================================================================
# Chat Message Schemas - Tagged Union Content
# =============================================================================
#
# A message's content is either a plain string or an ordered list of typed
# parts. Parts are a discriminated union on the `type` field:
#
#   TextPart   {"type": "text", "text": "..."}
#   ImagePart  {"type": "image_url", "image_url": {"url": "...", "detail": ...}}
#
# The wire shape follows the OpenAI chat format, which is what browser
# clients already send. Provider-specific shapes are produced later by the
# completion provider (services/llm.py).
# =============================================================================

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, Field

Role = Literal["user", "assistant", "system"]


class TextPart(BaseModel):
    """A run of text inside a multi-part message."""

    type: Literal["text"] = "text"
    text: str


class ImageURL(BaseModel):
    """Reference to an image: an http(s) URL or a base64 data URI."""

    url: str = Field(..., min_length=1)
    detail: Literal["auto", "low", "high"] | None = None


class ImagePart(BaseModel):
    """An image inside a multi-part message."""

    type: Literal["image_url"] = "image_url"
    image_url: ImageURL


ContentPart = Annotated[TextPart | ImagePart, Field(discriminator="type")]


class ChatMessage(BaseModel):
    """One turn of the conversation."""

    role: Role
    content: str | list[ContentPart]

    @property
    def text(self) -> str:
        """The text portion of this message (image parts dropped)."""
        return extract_text(self.content)


def extract_text(content: str | list[TextPart | ImagePart]) -> str:
    """
    Collapse message content to its text.

    Strings are returned unchanged; for part lists the text parts are
    concatenated in order and every other part type is skipped.
    """
    if isinstance(content, str):
        return content
    return "".join(part.text for part in content if isinstance(part, TextPart))
