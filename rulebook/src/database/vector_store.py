"""
Rulebook - PassageStore
========================
Wrapper around a LanceDB table holding ingested passages.

Provides:
  • Passage table creation from ``PASSAGE_SCHEMA``
  • Single-passage insertion (append-only)
  • Full-table reads with optional equality filters
  • Bulk deletion by category and/or title prefix

LanceDB is used as plain columnar storage here: ranking scores every
passage linearly in ``SimilarityRanker``, no vector index is built.

Design decisions:
  • **Singleton DB connection**: ``_get_connection()`` caches the
    ``lancedb.DBConnection`` per path.
  • **Async facade**: LanceDB calls block, so each public coroutine runs
    its work with ``asyncio.to_thread``; writes are serialised by a lock.
  • **Error mapping**: filesystem / LanceDB failures surface as
    ``StoreError``.

Usage:
    store = PassageStore(settings)
    await store.insert(passage)
    passages = await store.select_all(category="University Policy")
    deleted = await store.delete_where(title_prefix="Student Resource Book")
"""

from __future__ import annotations

import asyncio
import threading
from typing import Any, Protocol, runtime_checkable

import lancedb
import pyarrow as pa

from rulebook.config.settings import Settings
from rulebook.src.core.exceptions import StoreError
from rulebook.src.core.models import Passage, PassageMetadata, SideEffectResult
from rulebook.src.utils.logger import get_logger

logger = get_logger(__name__)

PassageRecord = dict[str, str | int | list[float] | None]


# ── Store Protocol ────────────────────────────────────────────────────

@runtime_checkable
class PassageRepository(Protocol):
    """What the orchestrators need from passage storage."""

    async def insert(self, passage: Passage) -> None: ...

    async def select_all(self, category: str | None = None, source_document: str | None = None) -> list[Passage]: ...

    async def delete_where(self, category: str | None = None, title_prefix: str | None = None) -> int: ...


# ── LanceDB Table Schema ──────────────────────────────────────────────
PASSAGE_SCHEMA = pa.schema([
    pa.field("id", pa.utf8()),
    pa.field("title", pa.utf8()),
    pa.field("content", pa.utf8()),
    pa.field("category", pa.utf8()),
    pa.field("source_document", pa.utf8()),
    pa.field("chunk_index", pa.int32()),
    pa.field("total_chunks", pa.int32()),
    pa.field("chunk_size", pa.int32()),
    pa.field("overlap_size", pa.int32()),
    pa.field("start_position", pa.int32()),
    pa.field("end_position", pa.int32()),
    pa.field("word_count", pa.int32()),
    pa.field("embedding", pa.list_(pa.float32())),
])

_DB_LOCK = threading.Lock()
_WRITE_LOCK = threading.Lock()
_db_connection_cache: dict[str, lancedb.DBConnection] = {}


def _get_connection(db_path: str) -> lancedb.DBConnection:
    """Return a **singleton** ``lancedb.DBConnection`` for *db_path*."""
    if db_path not in _db_connection_cache:
        with _DB_LOCK:
            if db_path not in _db_connection_cache:
                logger.info("Connecting to LanceDB at %s", db_path)
                _db_connection_cache[db_path] = lancedb.connect(db_path)
    return _db_connection_cache[db_path]


def _sql_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def delete_clause(category: str | None, title_prefix: str | None) -> str:
    """
    SQL predicate for ``delete_where``.

    No filter at all selects every row.  ``%`` and ``_`` inside
    *title_prefix* keep their ``LIKE`` wildcard meaning.
    """
    clauses: list[str] = []
    if category:
        clauses.append(f"category = {_sql_literal(category)}")
    if title_prefix:
        clauses.append(f"title LIKE {_sql_literal(title_prefix + '%')}")
    return " AND ".join(clauses) if clauses else "id IS NOT NULL"


def to_record(passage: Passage) -> PassageRecord:
    meta = passage.metadata
    return {
        "id": passage.id,
        "title": passage.title,
        "content": passage.content,
        "category": passage.category,
        "source_document": meta.source_document,
        "chunk_index": meta.chunk_index,
        "total_chunks": meta.total_chunks,
        "chunk_size": meta.chunk_size,
        "overlap_size": meta.overlap_size,
        "start_position": meta.start_position,
        "end_position": meta.end_position,
        "word_count": meta.word_count,
        "embedding": meta.embedding,
    }


def from_record(row: dict[str, Any]) -> Passage:
    embedding = row.get("embedding")
    metadata = PassageMetadata(
        chunk_index=row.get("chunk_index") or 0,
        total_chunks=row.get("total_chunks") or 0,
        embedding=[float(v) for v in embedding] if embedding else None,
        source_document=row.get("source_document") or "",
        chunk_size=row.get("chunk_size") or 0,
        overlap_size=row.get("overlap_size") or 0,
        start_position=row.get("start_position") or 0,
        end_position=row.get("end_position") or 0,
        word_count=row.get("word_count") or 0,
    )
    return Passage(id=row["id"], title=row["title"], content=row["content"], category=row.get("category"), metadata=metadata)


class PassageStore:
    """
    LanceDB-backed ``PassageRepository``.

    Parameters
    ----------
    settings
        Supplies ``LANCEDB_PATH`` and ``LANCEDB_TABLE_NAME``.
    db_path
        Override the database directory (tests use ``tmp_path``).
    """

    __slots__ = ("_db_path", "_table_name", "db", "table")

    def __init__(self, settings: Settings, db_path: str | None = None) -> None:
        self._db_path: str = str(db_path or settings.LANCEDB_PATH)
        self._table_name: str = settings.LANCEDB_TABLE_NAME
        self.db: lancedb.DBConnection | None = None
        self.table: Any = None
        self._connect()


    def _connect(self) -> None:
        """Open (or re-use) the connection and open / create the table."""
        try:
            self.db = _get_connection(self._db_path)
            if self._table_name in self.db.table_names():
                self.table = self.db.open_table(self._table_name)
                logger.info("Opened passage table '%s' (%d passages).", self._table_name, self.table.count_rows())
            else:
                self.table = self.db.create_table(self._table_name, schema=PASSAGE_SCHEMA)
                logger.info("Created empty passage table '%s'.", self._table_name)
        except OSError as exc:
            logger.error("Cannot open passage store at %s: %s", self._db_path, exc)
            raise StoreError(f"Cannot open passage store at {self._db_path}", {"error": str(exc)}) from exc


    def _require_table(self) -> Any:
        if self.table is None:
            raise StoreError("Passage table is not initialised.", {"table": self._table_name})
        return self.table

    # ── Sync workers (run in a thread) ─────────────────────────────────

    def _insert_sync(self, passage: Passage) -> None:
        table = self._require_table()
        with _WRITE_LOCK:
            table.add([to_record(passage)])


    def _select_sync(self, category: str | None, source_document: str | None) -> list[Passage]:
        rows = self._require_table().to_arrow().to_pylist()
        passages = [from_record(r) for r in rows]
        if category is not None:
            passages = [p for p in passages if p.category == category]
        if source_document is not None:
            passages = [p for p in passages if p.metadata.source_document == source_document]
        return passages


    def _delete_sync(self, category: str | None, title_prefix: str | None) -> int:
        table = self._require_table()
        where = delete_clause(category, title_prefix)
        with _WRITE_LOCK:
            before = table.count_rows()
            table.delete(where)
            after = table.count_rows()
        logger.info("Deleted %d passage(s) where %s.", before - after, where)
        return before - after

    # ── Public async API ───────────────────────────────────────────────

    async def insert(self, passage: Passage) -> None:
        try:
            await asyncio.to_thread(self._insert_sync, passage)
        except StoreError:
            raise
        except Exception as exc:
            raise StoreError(f"Failed to insert passage '{passage.title}'", {"error": str(exc)}) from exc


    async def select_all(self, category: str | None = None, source_document: str | None = None) -> list[Passage]:
        try:
            return await asyncio.to_thread(self._select_sync, category, source_document)
        except StoreError:
            raise
        except Exception as exc:
            raise StoreError("Failed to read passages", {"error": str(exc)}) from exc


    async def delete_where(self, category: str | None = None, title_prefix: str | None = None) -> int:
        try:
            return await asyncio.to_thread(self._delete_sync, category, title_prefix)
        except StoreError:
            raise
        except Exception as exc:
            raise StoreError("Failed to delete passages", {"error": str(exc)}) from exc


    def count(self) -> int:
        """Number of stored passages (0 after ``drop_table``)."""
        if self.table is None:
            return 0
        return self.table.count_rows()


    def drop_table(self) -> None:
        """Drop the passage table (full re-ingestion)."""
        if self.db is None:
            logger.warning("Passage store is not connected; nothing to drop.")
            return
        try:
            self.db.drop_table(self._table_name)
            self.table = None
            logger.info("Dropped passage table '%s'.", self._table_name)
        except (ValueError, FileNotFoundError):
            logger.warning("Table '%s' does not exist; nothing to drop.", self._table_name)


    def __repr__(self) -> str:
        return f"PassageStore(db='{self._db_path}', table='{self._table_name}', rows={self.count()})"


# ══════════════════════════════════════════════════════════════════════
#  CLEANUP COLLABORATOR
# ══════════════════════════════════════════════════════════════════════


class DocumentCleaner:
    """
    Best-effort removal of earlier passages before a re-ingestion.

    Failures are logged and reported through ``SideEffectResult``; they
    never propagate.
    """

    __slots__ = ("_store",)

    def __init__(self, store: PassageRepository) -> None:
        self._store = store


    async def cleanup(self, category: str | None = None, title_prefix: str | None = None) -> SideEffectResult:
        logger.info("[CLEANUP] Removing passages with category=%r, title prefix=%r", category, title_prefix)
        try:
            deleted = await self._store.delete_where(category=category, title_prefix=title_prefix)
        except Exception as exc:
            logger.warning("[CLEANUP] Cleanup failed (continuing anyway): %s", exc)
            return SideEffectResult.failure(str(exc))
        logger.info("[CLEANUP] Deleted %d passage(s).", deleted)
        return SideEffectResult.success(f"deleted {deleted} passage(s)")
