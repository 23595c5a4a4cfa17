# =============================================================================
# Ingestion API - Text Document Upload
# =============================================================================
#
# ENDPOINT:
#   POST /ingest  (multipart file, optional ?separator=...)  → 201
#
# The upload is chunked, embedded and stored before the response returns.
# Documentation sets are small, so no background queue is involved.
# =============================================================================

import logging

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile

from ragchat.api.deps import get_ingestion_service
from ragchat.models.responses import ErrorResponse, IngestResponse
from ragchat.services.ingest import IngestionService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Ingestion"])


@router.post(
    "/ingest",
    response_model=IngestResponse,
    status_code=201,
    summary="Upload a text document into the knowledge base",
    responses={400: {"model": ErrorResponse}},
)
async def ingest_endpoint(
    file: UploadFile = File(..., description="UTF-8 text document"),
    separator: str | None = Query(
        default=None,
        min_length=1,
        description="Chunk separator. Defaults to the configured separator.",
    ),
    ingestion: IngestionService = Depends(get_ingestion_service),
) -> IngestResponse:
    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Uploaded file is empty.")

    try:
        text = content.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise HTTPException(status_code=400, detail="Uploaded file must be UTF-8 text.") from exc

    result = await ingestion.ingest_text(text, source=file.filename, separator=separator)
    logger.info("Ingested upload %s: %d chunks", file.filename, result.chunk_count)
    return IngestResponse(chunks_stored=result.chunk_count, source=result.source)
