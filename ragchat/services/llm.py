# =============================================================================
# Multi-Provider Completion Streaming
# =============================================================================
#
# Sends the assembled conversation to a chat model and exposes the answer
# as a pull-based async stream of TextDelta values.
#
# ARCHITECTURE:
#   CompletionProvider (Protocol)
#   ├── OpenAICompatibleProvider - chat.completions, system prompt as message
#   ├── AnthropicProvider        - messages API, system prompt as kwarg
#   └── get_completion_provider()
#
#   CompletionStream - single-use async iterator of TextDelta; aclose()
#                      releases the upstream HTTP response
#
# TWO FAILURE WINDOWS:
# 1. Opening: `stream_completion()` awaits the SDK call that sends the
#    request and reads the response headers. Bad requests, auth errors and
#    quota errors raise CompletionServiceError here, before any output.
# 2. Streaming: errors while pulling deltas raise CompletionServiceError
#    from the iterator. The multiplexer turns those into an error frame.
#
# Message conversion (`to_openai_messages`, `to_anthropic_messages`) is a
# pure function of the request, run once per call.
# =============================================================================

from __future__ import annotations

import logging
import re
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Protocol

import anthropic
import httpx
import openai
from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from ragchat.config import Settings
from ragchat.errors import CompletionServiceError, ConfigurationError
from ragchat.models.messages import ChatMessage, ImagePart, TextPart

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TextDelta:
    """An incremental piece of the answer; the last one carries a finish reason."""

    text: str
    finish_reason: str | None = None


class CompletionStream:
    """
    Single-use async iterator over an upstream completion stream.

    Not restartable: a retry is a new `stream_completion()` call.
    `aclose()` is idempotent and is also run automatically when the
    upstream is exhausted or fails.
    """

    def __init__(
        self,
        deltas: AsyncIterator[TextDelta],
        close_upstream: Callable[[], Awaitable[None]],
    ) -> None:
        self._deltas = deltas
        self._close_upstream = close_upstream
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> CompletionStream:
        return self

    async def __anext__(self) -> TextDelta:
        if self._closed:
            raise StopAsyncIteration
        try:
            return await self._deltas.__anext__()
        except (StopAsyncIteration, Exception):
            await self.aclose()
            raise

    async def aclose(self) -> None:
        """Stop pulling and release the upstream response."""
        if self._closed:
            return
        self._closed = True
        aclose = getattr(self._deltas, "aclose", None)
        if aclose is not None:
            await aclose()
        await self._close_upstream()


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class CompletionProvider(Protocol):
    """Interface shared by every completion backend."""

    async def stream_completion(
        self,
        system_prompt: str,
        messages: Sequence[ChatMessage],
    ) -> CompletionStream:
        """
        Open a streamed completion.

        Raises CompletionServiceError if the upstream rejects the request;
        no stream object is returned in that case.
        """
        ...


# ---------------------------------------------------------------------------
# Finish Reasons
# ---------------------------------------------------------------------------

_FINISH_REASONS = {
    # OpenAI
    "stop": "stop",
    "length": "length",
    "content_filter": "content_filter",
    "tool_calls": "tool_calls",
    "function_call": "tool_calls",
    # Anthropic
    "end_turn": "stop",
    "stop_sequence": "stop",
    "max_tokens": "length",
    "tool_use": "tool_calls",
    "refusal": "content_filter",
}


def normalize_finish_reason(reason: str | None) -> str | None:
    """Map provider-specific stop reasons onto one vocabulary."""
    if reason is None:
        return None
    return _FINISH_REASONS.get(reason, reason)


# ---------------------------------------------------------------------------
# Message Conversion
# ---------------------------------------------------------------------------

_DATA_URI_PREFIX = re.compile(r"^data:(image/[\w.+-]+);base64,")


def strip_data_uri_prefix(url: str) -> str:
    """Remove a `data:image/<type>;base64,` prefix, leaving the base64 payload."""
    return _DATA_URI_PREFIX.sub("", url, count=1)


def to_openai_messages(
    system_prompt: str,
    messages: Sequence[ChatMessage],
) -> list[dict]:
    """System prompt first, then the conversation in OpenAI's own shape."""
    converted: list[dict] = [{"role": "system", "content": system_prompt}]
    converted.extend(message.model_dump(exclude_none=True) for message in messages)
    return converted


def _anthropic_image_source(url: str) -> dict:
    match = _DATA_URI_PREFIX.match(url)
    if match:
        return {
            "type": "base64",
            "media_type": match.group(1),
            "data": strip_data_uri_prefix(url),
        }
    return {"type": "url", "url": url}


def to_anthropic_messages(
    system_prompt: str,
    messages: Sequence[ChatMessage],
) -> tuple[str, list[dict]]:
    """
    Convert to Anthropic's messages format.

    The messages API has no "system" role: system-role turns are appended
    to the system prompt. Image parts become image blocks, with data URIs
    split into media type and bare base64 data.
    """
    system_parts = [system_prompt]
    converted: list[dict] = []

    for message in messages:
        if message.role == "system":
            system_parts.append(message.text)
            continue

        if isinstance(message.content, str):
            content: str | list[dict] = message.content
        else:
            content = []
            for part in message.content:
                if isinstance(part, TextPart):
                    content.append({"type": "text", "text": part.text})
                elif isinstance(part, ImagePart):
                    content.append({
                        "type": "image",
                        "source": _anthropic_image_source(part.image_url.url),
                    })
        converted.append({"role": message.role, "content": content})

    return "\n\n".join(p for p in system_parts if p), converted


# ---------------------------------------------------------------------------
# Implementation 1: OpenAI-Compatible
# ---------------------------------------------------------------------------


class OpenAICompatibleProvider:
    """
    Streams chat completions from any API following the OpenAI spec.

    The client (base URL, key, proxy, timeout) is built by the service
    container and injected here.
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 4096,
    ) -> None:
        self._client = client
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens

    async def stream_completion(
        self,
        system_prompt: str,
        messages: Sequence[ChatMessage],
    ) -> CompletionStream:
        payload = to_openai_messages(system_prompt, messages)

        logger.info(
            "Opening completion stream (provider=openai_compatible, model=%s, messages=%d)",
            self._model, len(messages),
        )
        try:
            upstream = await self._client.chat.completions.create(
                model=self._model,
                messages=payload,
                max_tokens=self._max_tokens,
                temperature=self._temperature,
                stream=True,
            )
        except openai.APITimeoutError as exc:
            logger.error("stream_completion timed out before streaming (model=%s)", self._model)
            raise CompletionServiceError(
                f"Completion request timed out: {exc}", timeout=True,
            ) from exc
        except openai.OpenAIError as exc:
            logger.error("stream_completion failed to open (model=%s): %s", self._model, exc)
            raise CompletionServiceError(f"Completion request failed: {exc}") from exc

        return CompletionStream(_openai_deltas(upstream), upstream.close)


async def _openai_deltas(upstream: openai.AsyncStream) -> AsyncIterator[TextDelta]:
    try:
        async for chunk in upstream:
            if not chunk.choices:
                continue
            choice = chunk.choices[0]
            text = choice.delta.content if choice.delta else None
            yield TextDelta(
                text=text or "",
                finish_reason=normalize_finish_reason(choice.finish_reason),
            )
    except openai.APITimeoutError as exc:
        raise CompletionServiceError(f"Completion stream timed out: {exc}", timeout=True) from exc
    except (openai.OpenAIError, httpx.HTTPError) as exc:
        raise CompletionServiceError(f"Completion stream failed: {exc}") from exc


# ---------------------------------------------------------------------------
# Implementation 2: Anthropic (Claude)
# ---------------------------------------------------------------------------


class AnthropicProvider:
    """
    Streams completions from Claude via the native Anthropic SDK.

    KEY API DIFFERENCE: Anthropic takes the system prompt as a top-level
    `system=` kwarg, not as a message with role "system".
    """

    def __init__(
        self,
        client: AsyncAnthropic,
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 4096,
    ) -> None:
        self._client = client
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens

    async def stream_completion(
        self,
        system_prompt: str,
        messages: Sequence[ChatMessage],
    ) -> CompletionStream:
        system, payload = to_anthropic_messages(system_prompt, messages)

        logger.info(
            "Opening completion stream (provider=anthropic, model=%s, messages=%d)",
            self._model, len(messages),
        )
        try:
            upstream = await self._client.messages.create(
                model=self._model,
                system=system,
                messages=payload,
                max_tokens=self._max_tokens,
                temperature=self._temperature,
                stream=True,
            )
        except anthropic.APITimeoutError as exc:
            logger.error("stream_completion timed out before streaming (model=%s)", self._model)
            raise CompletionServiceError(
                f"Completion request timed out: {exc}", timeout=True,
            ) from exc
        except anthropic.AnthropicError as exc:
            logger.error("stream_completion failed to open (model=%s): %s", self._model, exc)
            raise CompletionServiceError(f"Completion request failed: {exc}") from exc

        return CompletionStream(_anthropic_deltas(upstream), upstream.close)


async def _anthropic_deltas(upstream: anthropic.AsyncStream) -> AsyncIterator[TextDelta]:
    try:
        async for event in upstream:
            if event.type == "content_block_delta" and event.delta.type == "text_delta":
                yield TextDelta(text=event.delta.text)
            elif event.type == "message_delta" and event.delta.stop_reason:
                yield TextDelta(
                    text="",
                    finish_reason=normalize_finish_reason(event.delta.stop_reason),
                )
    except anthropic.APITimeoutError as exc:
        raise CompletionServiceError(f"Completion stream timed out: {exc}", timeout=True) from exc
    except (anthropic.AnthropicError, httpx.HTTPError) as exc:
        raise CompletionServiceError(f"Completion stream failed: {exc}") from exc


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------


def get_completion_provider(
    settings: Settings,
    openai_client: AsyncOpenAI | None = None,
    anthropic_client: AsyncAnthropic | None = None,
) -> OpenAICompatibleProvider | AnthropicProvider:
    """
    Build the configured completion provider around an injected client.

    - "openai_compatible" → OpenAICompatibleProvider (needs openai_client)
    - "anthropic"         → AnthropicProvider (needs anthropic_client)
    """
    if settings.llm_provider == "anthropic":
        if anthropic_client is None:
            raise ConfigurationError("llm_provider=anthropic requires an Anthropic client.")
        return AnthropicProvider(
            anthropic_client,
            model=settings.llm_model,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
        )

    if openai_client is None:
        raise ConfigurationError("llm_provider=openai_compatible requires an OpenAI client.")
    return OpenAICompatibleProvider(
        openai_client,
        model=settings.llm_model,
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
    )
