# =============================================================================
# Stream Frames - SSE Payloads for POST /chat
# =============================================================================
#
# Each frame is sent as one SSE event:  data: <json>\n\n
#
#   {"type": "reference", "content": "...", "references": [...]}
#   {"type": "content",   "content": "..."}
#   {"type": "done",      "finish_reason": "stop"}
#   {"type": "error",     "error": "..."}
#
# A stream carries at most one reference frame (first), any number of
# content frames, and exactly one terminal frame (done or error) unless the
# caller disconnects first.
# =============================================================================

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel

from ragchat.models.responses import MatchResponse


class ReferenceFrame(BaseModel):
    type: Literal["reference"] = "reference"
    # Reference text as injected into the system prompt
    content: str
    references: list[MatchResponse]


class ContentFrame(BaseModel):
    type: Literal["content"] = "content"
    content: str


class DoneFrame(BaseModel):
    type: Literal["done"] = "done"
    finish_reason: str


class ErrorFrame(BaseModel):
    type: Literal["error"] = "error"
    error: str


StreamFrame = ReferenceFrame | ContentFrame | DoneFrame | ErrorFrame


def encode_sse(frame: StreamFrame) -> str:
    """Serialise a frame as a single Server-Sent Event."""
    return f"data: {frame.model_dump_json()}\n\n"
