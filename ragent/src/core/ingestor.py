"""
Ragent - IngestionPipeline
===========================
Turns user content (uploaded documents, notes, activity logs) into
chunked, embedded context records in the Pinecone index.

Key design decisions:
    • **Dependency Injection** – receives an ``AgentVectorStore``; all
      embedding goes through the store's embedder.
    • **Deterministic chunk ids** – ``<contentId>_chunk_<i>`` so
      re-ingesting the same content id overwrites its chunks.
    • **Category-tagged** – every chunk carries the ``categories`` list
      that agents select context by.
    • **Concurrency** – directory ingestion processes files in parallel
      via ``ThreadPoolExecutor`` (Gemini API calls are I/O-bound).
    • **Caching** – MD5-based file hashing skips unchanged files.

Usage:
    from ragent.src.core.ingestor import IngestionPipeline
    pipeline = IngestionPipeline(vector_store)
    result   = pipeline.ingest_text("user_1", text, "note", "Morning run", ["fitness"], "app")
"""

from __future__ import annotations

import hashlib
import json
import secrets
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

from ragent.config.settings import settings
from ragent.src.database.vector_store import DEFAULT_CATEGORY, AgentVectorStore
from ragent.src.utils.logger import get_logger
from ragent.src.utils.text_utils import chunk_text, clean_labels, clean_text

logger = get_logger(__name__)

CONTENT_TYPES = ("document", "note", "activity", "context")

# File extensions the directory ingester knows how to read
_SUPPORTED_EXTENSIONS = {".txt", ".md"}


@dataclass(frozen=True, slots=True)
class IngestionResult:
    content_id: str
    chunks: int


class IngestionPipeline:
    """
    Content ingestion: clean → chunk → embed → store.

    Parameters
    ----------
    vector_store
        An initialised ``AgentVectorStore`` instance (injected).
    max_workers
        Number of parallel threads for directory ingestion.
    cache_path
        Override the hash cache file.  Defaults to
        ``settings.DATA_PROCESSED_DIR / "ingestion_hashes.json"``.
    """

    def __init__(self, vector_store: AgentVectorStore, max_workers: int | None = None, cache_path: Path | None = None) -> None:
        self._store = vector_store
        self._max_workers = max_workers or settings.MAX_WORKERS
        self._hash_cache_path: Path = cache_path or settings.DATA_PROCESSED_DIR / "ingestion_hashes.json"
        self._hash_cache: dict[str, str] = self._load_hash_cache()

    # ══════════════════════════════════════════════════════════════════
    #  SINGLE CONTENT ITEM
    # ══════════════════════════════════════════════════════════════════

    def ingest_text(self, user_id: str, content: str, content_type: str = "document", title: str = "Untitled", categories: Iterable[str] = (), source: str = "upload", content_id: str | None = None) -> IngestionResult:
        """
        Chunk, embed and store one piece of user content.

        Parameters
        ----------
        content_type
            One of ``CONTENT_TYPES``; also names the ``<type>Id`` metadata
            key (``documentId``, ``noteId`` …).
        categories
            Category labels, stored as given (trimmed, deduped).  Defaults
            to ``["general"]``.
        content_id
            Stable id for the content.  Generated when omitted.

        Raises
        ------
        ValueError
            Empty *user_id*, empty *content*, or unknown *content_type*.
        """
        if not user_id:
            raise ValueError("user_id is required.")
        if content_type not in CONTENT_TYPES:
            raise ValueError(f"Unsupported content type: {content_type!r} (expected one of {', '.join(CONTENT_TYPES)}).")

        cleaned = clean_text(content or "")
        if not cleaned:
            raise ValueError("Content is empty.")

        t_start = time.perf_counter()
        now = int(time.time() * 1000)
        content_id = content_id or f"{content_type}_{now}_{secrets.token_hex(4)}"
        labels = clean_labels(categories, default=DEFAULT_CATEGORY)

        chunks = chunk_text(cleaned, settings.CHUNK_SIZE)
        ids = [f"{content_id}_chunk_{i}" for i in range(len(chunks))]
        metadatas = [
            {
                "userId": user_id,
                "type": content_type,
                f"{content_type}Id": content_id,
                "title": title or "Untitled",
                "source": source or "upload",
                "categories": labels,
                "text": chunk,
                "chunkIndex": i,
                "totalChunks": len(chunks),
                "createdAt": now,
            }
            for i, chunk in enumerate(chunks)
        ]

        self._store.upsert_texts(ids, chunks, metadatas)

        elapsed_ms = (time.perf_counter() - t_start) * 1000
        logger.info("[INGEST] %s '%s' → %d chunk(s) %s in %.1fms.", content_type, content_id, len(chunks), labels, elapsed_ms)
        return IngestionResult(content_id=content_id, chunks=len(chunks))

    # ══════════════════════════════════════════════════════════════════
    #  DIRECTORY INGESTION
    # ══════════════════════════════════════════════════════════════════

    def ingest_directory(self, user_id: str, source_dir: Path | None = None, categories: Iterable[str] = ()) -> dict[str, Any]:
        """
        Ingest every ``.txt`` / ``.md`` file in *source_dir* as a document.

        Returns
        -------
        dict
            Execution summary with keys:
            ``total_files``, ``files_processed``, ``files_skipped``,
            ``total_chunks``, ``elapsed_seconds``.
        """
        t_start = time.perf_counter()
        source = Path(source_dir or settings.DATA_RAW_DIR)
        labels = list(categories)

        if not source.exists():
            logger.warning("[INGEST] Source directory does not exist: %s", source)
            return self._summary(0, 0, 0, 0, time.perf_counter() - t_start)

        files = sorted(f for f in source.iterdir() if f.is_file() and f.suffix.lower() in _SUPPORTED_EXTENSIONS)
        if not files:
            logger.warning("[INGEST] No supported files found in %s", source)
            return self._summary(0, 0, 0, 0, time.perf_counter() - t_start)

        logger.info("[INGEST] Starting ingestion: %d file(s) found in %s", len(files), source)

        total_chunks = 0
        files_processed = 0
        files_skipped = 0

        with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
            future_to_path = {pool.submit(self._ingest_file, user_id, fp, labels): fp for fp in files}

            for future in as_completed(future_to_path):
                filepath = future_to_path[future]
                try:
                    result = future.result()
                except Exception:
                    logger.exception("[INGEST] Failed to ingest file: %s", filepath.name)
                    continue
                if result == -1:
                    files_skipped += 1
                else:
                    total_chunks += result
                    files_processed += 1

        self._save_hash_cache()

        elapsed = time.perf_counter() - t_start
        logger.info("[INGEST] Complete: %d file(s) processed, %d skipped, %d chunk(s) stored in %.2fs.", files_processed, files_skipped, total_chunks, elapsed)
        return self._summary(len(files), files_processed, files_skipped, total_chunks, elapsed)


    def _ingest_file(self, user_id: str, filepath: Path, categories: list[str]) -> int:
        """
        Returns
        -------
        int
            Number of chunks stored, or ``-1`` on a cache hit.
        """
        cache_key = f"{user_id}:{filepath.name}"
        file_hash = self._compute_file_hash(filepath)
        if self._hash_cache.get(cache_key) == file_hash:
            logger.info("[INGEST] CACHE_HIT, skipping unchanged file: %s", filepath.name)
            return -1

        text = filepath.read_text(encoding="utf-8")
        if not text.strip():
            logger.warning("[INGEST] Skipping empty file: %s", filepath.name)
            return 0

        content_id = f"document_{hashlib.md5(cache_key.encode('utf-8')).hexdigest()[:16]}"
        result = self.ingest_text(user_id, text, "document", filepath.stem, categories, filepath.name, content_id)

        self._hash_cache[cache_key] = file_hash
        return result.chunks

    # ══════════════════════════════════════════════════════════════════
    #  MD5 CACHING
    # ══════════════════════════════════════════════════════════════════

    @staticmethod
    def _compute_file_hash(filepath: Path) -> str:
        """Return the MD5 hex digest of a file's contents."""
        hasher = hashlib.md5()
        with open(filepath, "rb") as f:
            for block in iter(lambda: f.read(8192), b""):
                hasher.update(block)
        return hasher.hexdigest()


    def _load_hash_cache(self) -> dict[str, str]:
        if self._hash_cache_path.exists():
            try:
                return json.loads(self._hash_cache_path.read_text(encoding="utf-8"))
            except (json.JSONDecodeError, OSError):
                logger.warning("[INGEST] Corrupt hash cache, starting fresh.")
        return {}


    def _save_hash_cache(self) -> None:
        self._hash_cache_path.parent.mkdir(parents=True, exist_ok=True)
        self._hash_cache_path.write_text(json.dumps(self._hash_cache, indent=2, ensure_ascii=False), encoding="utf-8")
        logger.debug("[INGEST] Hash cache saved to %s", self._hash_cache_path)


    def purge_cache(self) -> None:
        """Forget every recorded file hash so the next run re-ingests all files."""
        self._hash_cache.clear()
        if self._hash_cache_path.exists():
            self._hash_cache_path.unlink()
        logger.info("[INGEST] Hash cache purged.")


    @staticmethod
    def _summary(total: int, processed: int, skipped: int, chunks: int, elapsed: float) -> dict[str, Any]:
        return {
            "total_files": total,
            "files_processed": processed,
            "files_skipped": skipped,
            "total_chunks": chunks,
            "elapsed_seconds": round(elapsed, 2),
        }
