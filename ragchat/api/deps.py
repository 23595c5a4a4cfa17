# =============================================================================
# API Dependencies - Service Lookup
# =============================================================================
#
# Route handlers receive services through these FastAPI dependencies, which
# read the ServiceContainer the lifespan stored on `app.state.services`.
#
# DESIGN DECISION: dependencies, not module globals. Tests swap in fakes
# with `app.dependency_overrides[get_chat_service] = lambda: fake`.
# =============================================================================

from __future__ import annotations

from fastapi import Depends, Request

from ragchat.config import Settings
from ragchat.errors import ConfigurationError
from ragchat.services.chat import ChatService
from ragchat.services.container import ServiceContainer
from ragchat.services.ingest import IngestionService
from ragchat.services.retriever import Retriever


def get_services(request: Request) -> ServiceContainer:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise ConfigurationError("Services were not initialised at startup.")
    return services


def get_app_settings(services: ServiceContainer = Depends(get_services)) -> Settings:
    return services.settings


def get_chat_service(services: ServiceContainer = Depends(get_services)) -> ChatService:
    return services.chat


def get_ingestion_service(
    services: ServiceContainer = Depends(get_services),
) -> IngestionService:
    return services.ingestion


def get_retriever(services: ServiceContainer = Depends(get_services)) -> Retriever:
    return services.retriever
