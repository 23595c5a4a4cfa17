# =============================================================================
# API Tests - HTTP Surface
# =============================================================================
#
# Uses FastAPI's TestClient with dependency_overrides, so no lifespan runs
# and no real services are built. Chat responses are parsed frame by frame.
# =============================================================================

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from ragchat.api.deps import (
    get_app_settings,
    get_chat_service,
    get_ingestion_service,
    get_retriever,
)
from ragchat.config import DEFAULT_CHUNK_SEPARATOR, Settings
from ragchat.errors import (
    CompletionServiceError,
    ConfigurationError,
    EmbeddingServiceError,
    InvalidArgument,
    StorageError,
)
from ragchat.main import create_app
from ragchat.services.chat import PreparedChat
from ragchat.services.ingest import IngestionService, IngestResult
from ragchat.services.llm import CompletionStream, TextDelta
from ragchat.services.vectorstore import SimilarityMatch


def _completion(*deltas: TextDelta) -> CompletionStream:
    async def generate():
        for delta in deltas:
            yield delta

    return CompletionStream(generate(), AsyncMock())


def _parse_sse(body: str) -> list[dict]:
    return [
        json.loads(event[len("data: "):])
        for event in body.split("\n\n")
        if event.startswith("data: ")
    ]


@pytest.fixture
def app():
    application = create_app()
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
def client(app):
    return TestClient(app, raise_server_exceptions=False)


def _override_chat(app, start):
    service = MagicMock()
    service.start = start
    app.dependency_overrides[get_chat_service] = lambda: service
    return service


USER_BODY = {"messages": [{"role": "user", "content": "How do I use Button?"}]}


class TestChatEndpoint:
    def test_streams_reference_content_and_done(self, app, client):
        prepared = PreparedChat(
            references=[SimilarityMatch("Button docs", 0.9)],
            system_prompt="S",
            completion=_completion(TextDelta("Use "), TextDelta("<Button/>", "stop")),
        )
        _override_chat(app, AsyncMock(return_value=prepared))

        response = client.post("/chat", json=USER_BODY)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"
        assert response.headers["x-accel-buffering"] == "no"
        frames = _parse_sse(response.text)
        assert [f["type"] for f in frames] == ["reference", "content", "content", "done"]
        assert "".join(f["content"] for f in frames if f["type"] == "content") == "Use <Button/>"
        assert frames[0]["references"] == [{"content": "Button docs", "similarity": 0.9}]
        assert prepared.completion.closed

    def test_mid_stream_failure_is_in_band(self, app, client):
        async def failing():
            yield TextDelta("partial")
            raise CompletionServiceError("reset")

        prepared = PreparedChat([], "S", CompletionStream(failing(), AsyncMock()))
        _override_chat(app, AsyncMock(return_value=prepared))

        response = client.post("/chat", json=USER_BODY)

        assert response.status_code == 200
        frames = _parse_sse(response.text)
        assert [f["type"] for f in frames] == ["content", "error"]
        assert frames[-1]["error"] == CompletionServiceError.public_message

    def test_empty_messages_is_400(self, app, client):
        service = _override_chat(app, AsyncMock())
        response = client.post("/chat", json={"messages": []})

        assert response.status_code == 400
        assert "detail" in response.json()
        service.start.assert_not_called()

    def test_malformed_message_is_400(self, app, client):
        _override_chat(app, AsyncMock())
        response = client.post("/chat", json={"messages": [{"role": "robot", "content": "hi"}]})
        assert response.status_code == 400

    @pytest.mark.parametrize(
        "error", [EmbeddingServiceError("down"), StorageError("down"), CompletionServiceError("401")],
    )
    def test_failures_before_streaming_are_502(self, app, client, error):
        _override_chat(app, AsyncMock(side_effect=error))
        response = client.post("/chat", json=USER_BODY)

        assert response.status_code == 502
        assert response.json() == {"detail": error.public_message}

    def test_configuration_error_is_500(self, app, client):
        _override_chat(app, AsyncMock(side_effect=ConfigurationError("dimension mismatch: 768 vs 1536")))
        response = client.post("/chat", json=USER_BODY)

        assert response.status_code == 500
        assert "768" not in response.json()["detail"]

    def test_unexpected_error_is_500(self, app, client):
        _override_chat(app, AsyncMock(side_effect=RuntimeError("secret")))
        response = client.post("/chat", json=USER_BODY)

        assert response.status_code == 500
        assert "secret" not in response.json()["detail"]


class TestSearchEndpoint:
    def _override(self, app, retrieve):
        retriever = MagicMock()
        retriever.retrieve = retrieve
        app.dependency_overrides[get_retriever] = lambda: retriever
        return retriever

    def test_returns_matches(self, app, client):
        retriever = self._override(app, AsyncMock(return_value=[SimilarityMatch("A", 0.8)]))
        response = client.post("/search", json={"query": "button", "limit": 3})

        assert response.status_code == 200
        assert response.json() == {"query": "button", "matches": [{"content": "A", "similarity": 0.8}]}
        retriever.retrieve.assert_awaited_once_with("button", threshold=None, limit=3)

    def test_invalid_threshold_is_400(self, app, client):
        self._override(app, AsyncMock(side_effect=InvalidArgument("Similarity threshold must be between 0 and 1.")))
        response = client.post("/search", json={"query": "button", "threshold": 1.5})

        assert response.status_code == 400
        assert response.json() == {"detail": "Similarity threshold must be between 0 and 1."}

    def test_empty_query_is_400(self, app, client):
        self._override(app, AsyncMock())
        assert client.post("/search", json={"query": ""}).status_code == 400


class TestIngestEndpoint:
    def _override(self, app):
        service = MagicMock(spec=IngestionService)
        service.ingest_text = AsyncMock(
            side_effect=lambda text, source=None, separator=None: IngestResult(
                chunk_count=len(text.split(separator or DEFAULT_CHUNK_SEPARATOR)), source=source,
            )
        )
        app.dependency_overrides[get_ingestion_service] = lambda: service
        return service

    def test_upload_is_ingested(self, app, client):
        service = self._override(app)
        content = f"A\n{DEFAULT_CHUNK_SEPARATOR}\nB".encode()
        response = client.post("/ingest", files={"file": ("docs.txt", content, "text/plain")})

        assert response.status_code == 201
        assert response.json() == {"chunks_stored": 2, "source": "docs.txt"}
        service.ingest_text.assert_awaited_once()

    def test_separator_query_is_forwarded(self, app, client):
        service = self._override(app)
        response = client.post(
            "/ingest",
            params={"separator": "###"},
            files={"file": ("docs.txt", b"A###B###C", "text/plain")},
        )

        assert response.json()["chunks_stored"] == 3
        assert service.ingest_text.await_args.kwargs["separator"] == "###"

    def test_empty_upload_is_400(self, app, client):
        service = self._override(app)
        response = client.post("/ingest", files={"file": ("docs.txt", b"", "text/plain")})

        assert response.status_code == 400
        service.ingest_text.assert_not_called()

    def test_non_utf8_upload_is_400(self, app, client):
        self._override(app)
        response = client.post("/ingest", files={"file": ("docs.bin", b"\xff\xfe\x00", "application/octet-stream")})
        assert response.status_code == 400


class TestHealth:
    def test_reports_container_settings(self, app, client):
        settings = Settings(app_name="Docs Chat", app_version="9.9.9")
        app.dependency_overrides[get_app_settings] = lambda: settings
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "version": "9.9.9", "service": "Docs Chat"}

    def test_unavailable_before_startup(self, client):
        assert client.get("/health").status_code == 500
