# =============================================================================
# Service Container - Process-Wide Service Lifetime
# =============================================================================
#
# Built once in the FastAPI lifespan (or once per CLI run) from explicit
# settings, and closed on shutdown.
#
#   Settings ──▶ build_services()
#                 ├── AsyncOpenAI (embeddings)
#                 ├── AsyncOpenAI | AsyncAnthropic (completions)
#                 ├── AsyncEngine + session factory (pgvector only)
#                 ├── VectorStore
#                 ├── Embedder ──▶ Retriever ──▶ ChatService
#                 └── Embedder ──▶ IngestionService
#
# Route handlers reach the container through `request.app.state.services`
# (see api/deps.py). No module holds a global client.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from anthropic import AsyncAnthropic
from openai import AsyncOpenAI
from sqlalchemy.ext.asyncio import AsyncEngine

from ragchat.config import Settings
from ragchat.db.engine import build_engine, build_session_factory
from ragchat.services.chat import ChatService, RetrievalFailurePolicy
from ragchat.services.clients import build_anthropic_client, build_openai_client
from ragchat.services.embedder import Embedder
from ragchat.services.ingest import IngestionService
from ragchat.services.llm import get_completion_provider
from ragchat.services.retriever import Retriever
from ragchat.services.vectorstore import VectorStore, get_vector_store

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Owns every long-lived client and service of one process."""

    settings: Settings
    embedder: Embedder
    store: VectorStore
    retriever: Retriever
    chat: ChatService
    ingestion: IngestionService
    engine: AsyncEngine | None = None
    sdk_clients: list[AsyncOpenAI | AsyncAnthropic] = field(default_factory=list)

    async def aclose(self) -> None:
        """Close SDK clients and dispose of the database pool."""
        for client in self.sdk_clients:
            await client.close()
        if self.engine is not None:
            await self.engine.dispose()
        logger.info("Services closed")


def build_services(settings: Settings) -> ServiceContainer:
    """
    Wire all services from `settings`.

    Raises ConfigurationError for missing keys or an unusable backend choice.
    """
    sdk_clients: list[AsyncOpenAI | AsyncAnthropic] = []

    embedding_client = build_openai_client(
        settings,
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        timeout=settings.embedding_timeout_seconds,
    )
    sdk_clients.append(embedding_client)

    openai_completion_client = None
    anthropic_client = None
    if settings.llm_provider == "anthropic":
        anthropic_client = build_anthropic_client(settings, timeout=settings.llm_timeout_seconds)
        sdk_clients.append(anthropic_client)
    else:
        openai_completion_client = build_openai_client(
            settings,
            api_key=settings.completion_api_key,
            base_url=settings.llm_base_url or settings.openai_base_url,
            timeout=settings.llm_timeout_seconds,
        )
        sdk_clients.append(openai_completion_client)

    engine = None
    session_factory = None
    if settings.vectorstore_type == "pgvector":
        engine = build_engine(settings)
        session_factory = build_session_factory(engine)
    store = get_vector_store(settings, session_factory)

    embedder = Embedder(
        embedding_client,
        model=settings.embedding_model,
        dimensions=settings.embedding_dimensions,
        batch_size=settings.embedding_batch_size,
        max_concurrency=settings.embedding_max_concurrency,
    )
    retriever = Retriever(
        embedder,
        store,
        threshold=settings.retrieval_similarity_threshold,
        limit=settings.retrieval_top_k,
    )
    provider = get_completion_provider(
        settings,
        openai_client=openai_completion_client,
        anthropic_client=anthropic_client,
    )

    logger.info(
        "Services ready (store=%s, llm=%s/%s, retrieval_policy=%s)",
        settings.vectorstore_type, settings.llm_provider, settings.llm_model,
        settings.retrieval_failure_policy,
    )
    return ServiceContainer(
        settings=settings,
        embedder=embedder,
        store=store,
        retriever=retriever,
        chat=ChatService(
            retriever,
            provider,
            failure_policy=RetrievalFailurePolicy(settings.retrieval_failure_policy),
        ),
        ingestion=IngestionService(embedder, store, separator=settings.chunk_separator),
        engine=engine,
        sdk_clients=sdk_clients,
    )
