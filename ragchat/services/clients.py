# =============================================================================
# SDK Client Construction
# =============================================================================
#
# One place that turns settings into AsyncOpenAI / AsyncAnthropic clients.
# Components receive these clients through their constructors; nothing
# else in the package builds an SDK client.
#
# PROXY: when `http_proxy` is set every client gets its own
# httpx.AsyncClient routed through it. The SDK closes that transport when
# the client itself is closed (ServiceContainer.aclose).
# =============================================================================

from __future__ import annotations

import logging

import httpx
from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from ragchat.config import Settings
from ragchat.errors import ConfigurationError

logger = logging.getLogger(__name__)


def _http_client(settings: Settings, timeout: float) -> httpx.AsyncClient | None:
    if not settings.http_proxy:
        return None
    logger.info("Routing upstream API calls through proxy")
    return httpx.AsyncClient(proxy=settings.http_proxy, timeout=timeout)


def build_openai_client(
    settings: Settings,
    api_key: str,
    base_url: str | None,
    timeout: float,
) -> AsyncOpenAI:
    """
    Create an AsyncOpenAI client for an OpenAI-compatible host.

    Raises ConfigurationError when no API key is configured, so the
    problem surfaces at startup instead of on the first request.
    """
    if not api_key:
        raise ConfigurationError("No API key configured for the OpenAI-compatible client.")

    client_kwargs: dict = {"api_key": api_key, "timeout": timeout, "max_retries": 0}
    if base_url:
        client_kwargs["base_url"] = base_url
    http_client = _http_client(settings, timeout)
    if http_client is not None:
        client_kwargs["http_client"] = http_client

    logger.info(
        "Initialized AsyncOpenAI client (base_url=%s)",
        base_url or "https://api.openai.com/v1",
    )
    return AsyncOpenAI(**client_kwargs)


def build_anthropic_client(settings: Settings, timeout: float) -> AsyncAnthropic:
    """Create an AsyncAnthropic client from `completion_api_key`."""
    api_key = settings.completion_api_key
    if not api_key:
        raise ConfigurationError("No API key configured for the Anthropic client.")

    client_kwargs: dict = {"api_key": api_key, "timeout": timeout, "max_retries": 0}
    if settings.llm_base_url:
        client_kwargs["base_url"] = settings.llm_base_url
    http_client = _http_client(settings, timeout)
    if http_client is not None:
        client_kwargs["http_client"] = http_client

    logger.info("Initialized AsyncAnthropic client")
    return AsyncAnthropic(**client_kwargs)
