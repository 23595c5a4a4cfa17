# =============================================================================
# FastAPI Application Entry Point
# =============================================================================
#
# create_app() registers routers and exception handlers; the lifespan builds
# the ServiceContainer once and closes it on shutdown.
#
# ERROR MAPPING (non-streaming responses, body always {"detail": ...}):
#   RequestValidationError / InvalidArgument → 400
#   UpstreamServiceError                     → 502
#   ConfigurationError / StorageError / other→ 500 (public message only)
# =============================================================================

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ragchat.api import chat, health, ingest, search
from ragchat.config import get_settings
from ragchat.errors import InvalidArgument, RagChatError, UpstreamServiceError
from ragchat.services.container import build_services

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    """Root logging: DEBUG when `settings.debug`, INFO otherwise."""
    settings = get_settings()
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("Application startup: building services")
    services = build_services(get_settings())
    app.state.services = services
    try:
        yield
    finally:
        logger.info("Application shutdown")
        await services.aclose()


def status_for_error(exc: RagChatError) -> int:
    if isinstance(exc, InvalidArgument):
        return 400
    if isinstance(exc, UpstreamServiceError):
        return 502
    return 500


def _format_validation_errors(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(p) for p in error.get("loc", ()) if p != "body")
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts) or "Invalid request."


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": _format_validation_errors(exc)})


async def _ragchat_error_handler(request: Request, exc: RagChatError) -> JSONResponse:
    status_code = status_for_error(exc)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"detail": exc.public_message})


async def _unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("%s %s failed unexpectedly", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": RagChatError.public_message})


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Retrieval-augmented chat over component documentation, streamed as SSE",
        version=settings.app_version,
        lifespan=lifespan,
    )

    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(RagChatError, _ragchat_error_handler)
    app.add_exception_handler(Exception, _unexpected_error_handler)

    app.include_router(health.router)
    app.include_router(chat.router)
    app.include_router(search.router)
    app.include_router(ingest.router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("ragchat.main:app", host="0.0.0.0", port=8000)
