# =============================================================================
# RAG Chat Backend
# =============================================================================
# Retrieval-augmented chat over a pgvector store of pre-embedded document
# chunks. The latest user message is embedded, matched against stored chunks
# by cosine similarity, injected into the system prompt, and the model's
# streamed answer is relayed to the caller as Server-Sent Events together
# with the retrieved evidence.
#
# Package structure:
#   ragchat/
#   ├── api/          → FastAPI route handlers (chat, ingest, search, health)
#   ├── db/           → Async engine, session factory, ORM models
#   ├── models/       → Pydantic V2 request/response and message schemas
#   └── services/     → Chunking, embedding, vector store, retrieval, prompt
#                       assembly, completion streaming, SSE multiplexing
# =============================================================================

__version__ = "0.1.0"
