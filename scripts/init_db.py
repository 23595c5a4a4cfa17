#!/usr/bin/env python3
"""
Prepare PostgreSQL for the pgvector store.

Installs the `vector` extension and creates the document_chunks table with
its HNSW index. Safe to run more than once.

Usage:
    python scripts/init_db.py
"""

import asyncio

from ragchat.config import get_settings
from ragchat.db.engine import build_engine, init_db
from ragchat.main import configure_logging


async def run() -> None:
    engine = build_engine(get_settings())
    try:
        await init_db(engine)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    configure_logging()
    asyncio.run(run())
    print("Database ready")
