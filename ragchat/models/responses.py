# =============================================================================
# API Response Models - Pydantic V2 Schemas
# =============================================================================
#
# Shapes of data going OUT of the API. Embedding vectors are never part of
# a response; only chunk text and similarity scores are exposed.
# =============================================================================

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response for GET /health - confirms the API is running."""

    status: str = "ok"
    version: str
    service: str


class ErrorResponse(BaseModel):
    """JSON body for every non-streaming error response."""

    detail: str


class MatchResponse(BaseModel):
    """A retrieved chunk and its cosine similarity to the query."""

    content: str
    similarity: float


class SearchResponse(BaseModel):
    """Response for POST /search."""

    query: str
    matches: list[MatchResponse] = Field(default_factory=list)


class IngestResponse(BaseModel):
    """Response for POST /ingest."""

    chunks_stored: int = Field(description="Number of chunks embedded and stored")
    source: str | None = Field(
        default=None,
        description="Name of the ingested document, when provided",
    )
