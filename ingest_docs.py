"""
Ingest the data directory into the configured vector store.

    python ingest_docs.py                # uses RAG_DATA_DIR (default: data/)
    python ingest_docs.py --data-dir docs --allow-missing-urls
"""

import argparse
import asyncio
import sys
from pathlib import Path

from ftc_assistant.core.config import Settings
from ftc_assistant.core.context import build_app_context
from ftc_assistant.core.errors import ConfigurationError, IngestionError, VectorStoreError
from ftc_assistant.utils.logging import get_logger, setup_logging
from ftc_assistant.vector_logic.processor import ingest_directory

logger = get_logger("ftc_assistant.ingest")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Chunk, embed and store FTC reference documents.")
    parser.add_argument("--data-dir", help="Directory holding the documents and sources.json")
    parser.add_argument(
        "--allow-missing-urls",
        action="store_true",
        help="Ingest files that have no URL in sources.json",
    )
    parser.add_argument("--log-level", default="INFO")
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    overrides = {}
    if args.data_dir:
        overrides["rag_data_dir"] = args.data_dir
    if args.allow_missing_urls:
        overrides["rag_require_source_url"] = False
    settings = Settings(**overrides)

    app_ctx = build_app_context(settings)
    try:
        summary = await ingest_directory(
            Path(settings.rag_data_dir).resolve(),
            embedder=app_ctx.get_embedder(),
            vector_store=app_ctx.get_vector_store(),
            settings=settings,
        )
    except (ConfigurationError, IngestionError, VectorStoreError) as e:
        logger.error("Ingestion failed: %s", e)
        return 1
    finally:
        await app_ctx.aclose()

    if summary.skipped:
        logger.warning("Skipped %d unsupported file(s): %s", len(summary.skipped), summary.skipped)
    return 0


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level.upper())
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
