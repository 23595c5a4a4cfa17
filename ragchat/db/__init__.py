# =============================================================================
# Database Package
# =============================================================================
# Async SQLAlchemy engine construction, session scope, and the ORM model for
# stored document chunks.
#
# Key exports:
#   - build_engine / build_session_factory: called by the service container
#   - init_db: installs pgvector and creates the chunk table + HNSW index
#   - DocumentChunkRecord: ORM model for (content, embedding) rows
# =============================================================================
