# =============================================================================
# API Package - FastAPI Route Handlers
# =============================================================================
# Each module defines a FastAPI APIRouter for one feature:
#   - chat.py:   streamed retrieval-augmented chat (SSE)
#   - ingest.py: document upload into the vector store
#   - search.py: retrieval without generation
#   - health.py: liveness probe
# Shared dependencies live in deps.py.
# =============================================================================
