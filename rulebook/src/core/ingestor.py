"""
Rulebook - IngestionPipeline
=============================
Drives raw policy text through normalise → chunk → embed → store.

Key design decisions:
    • **Dependency Injection**: receives the ``EmbeddingClient``, a
      ``PassageRepository`` and a ``DocumentCleaner``.
    • **Batched fan-out**: chunks are processed in fixed-size batches.
      Within a batch every embed+store runs concurrently and the batch
      waits for *all* outcomes before the next one starts; a short pause
      separates batches to stay under external rate limits.
    • **Partial failure**: one chunk failing its embedding or insert is
      recorded and counted, siblings carry on.
    • **Deterministic numbering**: outcomes are recombined by chunk
      index, so numbering never depends on completion order.
    • **Best-effort cleanup**: once the input validates, earlier passages
      for the same title are deleted; a failed cleanup is reported, not raised.

Usage:
    from rulebook.src.core.ingestor import IngestionPipeline
    pipeline = IngestionPipeline(settings, embedding_client, store)
    stats = await pipeline.ingest([raw_text], title="Student Resource Book")
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence

from pydantic import BaseModel

from rulebook.config.prompt_templates import SOURCE_SEPARATOR
from rulebook.config.settings import Settings
from rulebook.src.core.chunker import chunk_text
from rulebook.src.core.embedding_client import EmbeddingClient
from rulebook.src.core.exceptions import ValidationError
from rulebook.src.core.models import ChunkFailure, IngestionStats, Passage, PassageMetadata
from rulebook.src.database.vector_store import DocumentCleaner, PassageRepository
from rulebook.src.utils.logger import get_logger
from rulebook.src.utils.text_utils import count_words, normalize

logger = get_logger(__name__)

SleepFn = Callable[[float], Awaitable[None]]

# Characters of a chunk used to locate it in the normalised source.
_POSITION_PREFIX_CHARS = 50


class _ChunkOutcome(BaseModel):
    chunk_index: int
    success: bool
    word_count: int = 0
    error: str = ""


class IngestionPipeline:
    """
    End-to-end ingestion of one source document.

    Parameters
    ----------
    settings
        Supplies defaults for chunking, batching and naming.
    embedding_client
        Retrying embedding client.
    store
        Passage storage.
    cleaner
        Cleanup collaborator.  Defaults to one wrapping *store*.
    sleep
        Awaitable sleep used between batches (injected in tests).
    """

    __slots__ = ("_settings", "_embeddings", "_store", "_cleaner", "_sleep")

    def __init__(self, settings: Settings, embedding_client: EmbeddingClient, store: PassageRepository, cleaner: DocumentCleaner | None = None, sleep: SleepFn = asyncio.sleep) -> None:
        self._settings = settings
        self._embeddings = embedding_client
        self._store = store
        self._cleaner = cleaner or DocumentCleaner(store)
        self._sleep = sleep

    # ══════════════════════════════════════════════════════════════════
    #  PUBLIC ENTRY POINT
    # ══════════════════════════════════════════════════════════════════

    async def ingest(self, raw_texts: Sequence[str], title: str | None = None, category: str | None = None, cleanup_first: bool = True, chunk_size: int | None = None, overlap_words: int | None = None) -> IngestionStats:
        """
        Ingest *raw_texts* as one source document called *title*.

        Returns
        -------
        IngestionStats
            Aggregate counts plus per-chunk failures and the cleanup
            side-effect result.

        Raises
        ------
        ValidationError
            No text, blank text, blank title, or non-positive sizes.
        """
        s = self._settings
        title = (title if title is not None else s.DEFAULT_TITLE).strip()
        category = category if category is not None else s.DEFAULT_CATEGORY
        chunk_size = chunk_size if chunk_size is not None else s.CHUNK_SIZE
        overlap_words = overlap_words if overlap_words is not None else s.CHUNK_OVERLAP_WORDS

        if not title:
            raise ValidationError("Title is required", field="title")
        texts = [t for t in raw_texts if t and t.strip()]
        if not texts:
            raise ValidationError("Document content is required", field="raw_texts")
        if chunk_size < 1:
            raise ValidationError("Chunk size must be positive", field="chunk_size")
        if overlap_words < 1:
            raise ValidationError("Overlap must be positive", field="overlap_words")

        t_start = time.perf_counter()

        # ── 1. Normalise (rejected input never reaches cleanup) ───────
        cleaned = normalize(SOURCE_SEPARATOR.join(texts))
        if not cleaned:
            raise ValidationError("Document content is empty after normalisation", field="raw_texts")

        # ── 2. Optional cleanup (never fatal) ─────────────────────────
        cleanup = None
        if cleanup_first:
            cleanup = await self._cleaner.cleanup(category=category, title_prefix=title)

        # ── 3. Chunk ──────────────────────────────────────────────────
        t_chunk = time.perf_counter()
        chunks = chunk_text(cleaned, chunk_size, overlap_words)
        logger.info("[INGEST] '%s' → %d chunk(s) from %d chars in %.1fms.", title, len(chunks), len(cleaned), (time.perf_counter() - t_chunk) * 1000)

        # ── 4. Embed + store in batches ───────────────────────────────
        outcomes = await self._process_batches(chunks, cleaned, title, category, overlap_words)

        succeeded = [o for o in outcomes if o.success]
        failures = [ChunkFailure(chunk_index=o.chunk_index, error=o.error) for o in outcomes if not o.success]

        stats = IngestionStats(
            title=title,
            chunks_total=len(chunks),
            chunks_succeeded=len(succeeded),
            chunks_failed=len(failures),
            total_words=sum(o.word_count for o in succeeded),
            total_characters=len(cleaned),
            average_chunk_size=round(len(cleaned) / len(chunks)) if chunks else 0,
            overlap_size=overlap_words,
            batch_size=s.INGEST_BATCH_SIZE,
            cleanup_performed=cleanup_first,
            cleanup=cleanup,
            failures=failures,
        )

        logger.info("[INGEST] '%s' complete: %d/%d chunk(s) stored, %d failed, %d words in %.2fs.", title, stats.chunks_succeeded, stats.chunks_total, stats.chunks_failed, stats.total_words, time.perf_counter() - t_start)
        return stats

    # ══════════════════════════════════════════════════════════════════
    #  BATCHING
    # ══════════════════════════════════════════════════════════════════

    async def _process_batches(self, chunks: list[str], source_text: str, title: str, category: str | None, overlap_words: int) -> list[_ChunkOutcome]:
        batch_size = self._settings.INGEST_BATCH_SIZE
        delay = self._settings.INGEST_BATCH_DELAY_SECONDS
        total = len(chunks)
        outcomes: list[_ChunkOutcome] = []

        for start in range(0, total, batch_size):
            batch = chunks[start : start + batch_size]
            results = await asyncio.gather(
                *(self._process_chunk(start + offset, chunk, total, source_text, title, category, overlap_words) for offset, chunk in enumerate(batch)),
                return_exceptions=True,
            )
            for offset, result in enumerate(results):
                if isinstance(result, BaseException):
                    outcomes.append(_ChunkOutcome(chunk_index=start + offset, success=False, error=str(result)))
                else:
                    outcomes.append(result)

            logger.debug("[INGEST] Batch %d-%d done.", start, start + len(batch) - 1)
            if start + batch_size < total and delay > 0:
                await self._sleep(delay)

        outcomes.sort(key=lambda o: o.chunk_index)
        return outcomes


    async def _process_chunk(self, index: int, chunk: str, total: int, source_text: str, title: str, category: str | None, overlap_words: int) -> _ChunkOutcome:
        try:
            embedding = await self._embeddings.embed(chunk)
            word_count = count_words(chunk)
            start_pos = source_text.find(chunk[:_POSITION_PREFIX_CHARS])
            end_pos = start_pos + len(chunk) if start_pos >= 0 else 0

            passage = Passage(
                title=f"{title} (Part {index + 1}/{total})",
                content=chunk,
                category=category,
                metadata=PassageMetadata(
                    chunk_index=index,
                    total_chunks=total,
                    embedding=embedding,
                    source_document=title,
                    chunk_size=len(chunk),
                    overlap_size=overlap_words,
                    start_position=max(0, start_pos),
                    end_position=end_pos,
                    word_count=word_count,
                ),
            )
            await self._store.insert(passage)
        except Exception as exc:
            logger.warning("[INGEST] Chunk %d/%d failed: %s", index + 1, total, exc)
            return _ChunkOutcome(chunk_index=index, success=False, error=str(exc))

        return _ChunkOutcome(chunk_index=index, success=True, word_count=word_count)
