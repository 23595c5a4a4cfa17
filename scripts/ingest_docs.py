#!/usr/bin/env python3
"""
Ingest a documentation file into the vector store.

Splits the file on the chunk separator, embeds every chunk, and stores
the (content, embedding) pairs. Run scripts/init_db.py first when using
pgvector.

Usage:
    python scripts/ingest_docs.py                       # settings.docs_path
    python scripts/ingest_docs.py docs/components.txt --separator "---"
"""

import argparse
import asyncio
import logging

from ragchat.config import get_settings
from ragchat.main import configure_logging
from ragchat.services.container import build_services


async def ingest(path: str, separator: str | None) -> int:
    services = build_services(get_settings())
    try:
        result = await services.ingestion.ingest_file(path, separator=separator)
    finally:
        await services.aclose()
    return result.chunk_count


def main() -> None:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Ingest a text document into the vector store.")
    parser.add_argument("path", nargs="?", default=settings.docs_path, help="UTF-8 text file")
    parser.add_argument(
        "--separator",
        default=None,
        help=f"Chunk separator (default: {settings.chunk_separator!r})",
    )
    args = parser.parse_args()
    if args.separator == "":
        parser.error("--separator must not be empty")

    configure_logging()
    logging.getLogger(__name__).info("Ingesting %s", args.path)
    count = asyncio.run(ingest(args.path, args.separator))
    print(f"Stored {count} chunks from {args.path}")


if __name__ == "__main__":
    main()
