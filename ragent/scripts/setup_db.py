"""
Ragent - Context Ingestion Script
==================================
CLI entry point that loads a directory of text files into Pinecone as
one user's context documents:
    1. Load settings (fail-fast on missing keys).
    2. Initialise the Gemini embedder and ``AgentVectorStore``.
    3. Run ``IngestionPipeline.ingest_directory``.
    4. Print a summary with a startup / processing timing split.

Flags:
    --user          Owner of the ingested records (required).
    --source        Directory of ``.txt`` / ``.md`` files (default: data/raw).
    --category      Category label; repeat for several.
    --purge-cache   Forget file hashes so every file is re-ingested.

Usage:
    python -m ragent.scripts.setup_db --user user_123 --category fitness
    python -m ragent.scripts.setup_db --user user_123 --source ./notes --category notes --category personal --purge-cache
"""

from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="setup_db", description="Ragent: ingest a directory of text files as user context.")
    parser.add_argument("--user", required=True, help="User id that owns the ingested records.")
    parser.add_argument("--source", type=Path, default=None, help="Directory of .txt/.md files (default: settings.DATA_RAW_DIR).")
    parser.add_argument("--category", action="append", default=[], dest="categories", help="Category label for every ingested file (repeatable).")
    parser.add_argument("--purge-cache", action="store_true", default=False, help="Clear the file hash cache before ingesting.")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    t_start = time.perf_counter()

    # ── 0. Load settings + .env (timed) ────────────────────────────────
    t_settings = time.perf_counter()
    try:
        from ragent.config.settings import settings
    except Exception as exc:
        print("\n[FATAL] Configuration error, check your .env file:\n")
        print(f"  {exc}")
        print()
        return 1
    settings_ms = (time.perf_counter() - t_settings) * 1000

    from ragent.src.utils.logger import get_logger
    logger = get_logger(__name__)

    source = args.source or settings.DATA_RAW_DIR
    _print_header(settings, args.user, source, args.categories)

    # ── 1. Embedder + Pinecone (timed) ─────────────────────────────────
    t_init = time.perf_counter()
    try:
        from langchain_google_genai import GoogleGenerativeAIEmbeddings

        from ragent.src.database.vector_store import AgentVectorStore

        embedder = GoogleGenerativeAIEmbeddings(model=settings.EMBEDDING_MODEL, google_api_key=settings.GOOGLE_API_KEY.get_secret_value())
        store = AgentVectorStore(embedder)
    except Exception:
        logger.exception("Failed to initialise embedder / Pinecone index.")
        return 1
    init_ms = (time.perf_counter() - t_init) * 1000
    logger.info("Startup: settings %.1fms, embedder + index %.1fms", settings_ms, init_ms)

    # ── 2. Ingest ──────────────────────────────────────────────────────
    from ragent.src.core.ingestor import IngestionPipeline

    pipeline = IngestionPipeline(store)
    if args.purge_cache:
        pipeline.purge_cache()

    summary = pipeline.ingest_directory(args.user, source, args.categories)

    _print_footer(summary, time.perf_counter() - t_start, settings_ms + init_ms)
    return 0


# ── Pretty-print helpers ──────────────────────────────────────────────

def _print_header(settings: object, user_id: str, source: Path, categories: list[str]) -> None:
    api_key_val = settings.PINECONE_API_KEY.get_secret_value()  # type: ignore[attr-defined]
    masked = f"****{api_key_val[-4:]}" if len(api_key_val) > 4 else "****"

    print()
    print("=" * 60)
    print("  RAGENT: Context Ingestion")
    print("=" * 60)
    print(f"  Environment  : {settings.ENV}")                   # type: ignore[attr-defined]
    print(f"  Index        : {settings.PINECONE_INDEX}")        # type: ignore[attr-defined]
    print(f"  Embedding    : {settings.EMBEDDING_MODEL}")       # type: ignore[attr-defined]
    print(f"  User         : {user_id}")
    print(f"  Source dir   : {source}")
    print(f"  Categories   : {', '.join(categories) or '(none)'}")
    print(f"  Chunk size   : {settings.CHUNK_SIZE} chars")      # type: ignore[attr-defined]
    print(f"  Pinecone key : {masked}")
    print("=" * 60)
    print()


def _print_footer(summary: dict, elapsed: float, startup_ms: float) -> None:
    print()
    print("=" * 60)
    print("  EXECUTION SUMMARY")
    print("-" * 60)
    print(f"  Total files scanned  : {summary['total_files']}")
    print(f"  Files ingested       : {summary['files_processed']}")
    print(f"  Files skipped (cache): {summary['files_skipped']}")
    print(f"  Total chunks stored  : {summary['total_chunks']}")
    print("-" * 60)
    print(f"  Startup time         : {startup_ms:>8.1f}ms")
    print(f"  Processing time      : {summary['elapsed_seconds']:>8.2f}s")
    print(f"  Total elapsed        : {elapsed:>8.2f}s")
    print("=" * 60)
    print()


if __name__ == "__main__":
    sys.exit(main())
