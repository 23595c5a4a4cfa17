# =============================================================================
# Services Package - Business Logic
# =============================================================================
# Contains the core logic, separated from API handlers:
#   - chunker.py:     separator-based document splitting
#   - embedder.py:    batched OpenAI-compatible embeddings
#   - vectorstore.py: pluggable vector store protocol (pgvector, Chroma)
#   - retriever.py:   query text → similarity matches
#   - prompt.py:      reference text → system prompt
#   - llm.py:         streamed completions (OpenAI-compatible, Anthropic)
#   - streaming.py:   references + completion → SSE frames
#   - chat.py:        chat pipeline and retrieval failure policy
#   - ingest.py:      document → chunks → embeddings → store
#   - clients.py / container.py: SDK clients and service lifetime
# =============================================================================
