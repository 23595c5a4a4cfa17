# =============================================================================
# Search API - Retrieval Without Generation
# =============================================================================
#
#   POST /search  {query, threshold?, limit?}  → {query, matches}
#
# Useful for checking what the chat endpoint would retrieve. Threshold
# outside [0, 1] or limit < 1 → 400 (InvalidArgument, main.py handler).
# =============================================================================

from fastapi import APIRouter, Depends

from ragchat.api.deps import get_retriever
from ragchat.models.requests import SearchRequest
from ragchat.models.responses import ErrorResponse, MatchResponse, SearchResponse
from ragchat.services.retriever import Retriever

router = APIRouter(tags=["Search"])


@router.post(
    "/search",
    response_model=SearchResponse,
    summary="Find documentation chunks similar to a query",
    responses={400: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def search_endpoint(
    body: SearchRequest,
    retriever: Retriever = Depends(get_retriever),
) -> SearchResponse:
    matches = await retriever.retrieve(body.query, threshold=body.threshold, limit=body.limit)
    return SearchResponse(
        query=body.query,
        matches=[MatchResponse(content=m.content, similarity=m.similarity) for m in matches],
    )
