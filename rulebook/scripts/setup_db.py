"""
Rulebook - Passage Store Setup & Ingestion Script
===================================================
CLI entry point that:
    1. Loads settings (fail-fast on a missing ``GOOGLE_API_KEY``).
    2. Opens the LanceDB passage store (optionally dropping the table).
    3. Reads plain-text sources and runs the ``IngestionPipeline``.
    4. Prints an execution summary.

PDF extraction is out of scope; pass the extracted ``.txt`` files.  All
files given in one run are joined and ingested as one source document.

Flags:
    --title        Source document title (default: settings.DEFAULT_TITLE).
    --category     Category tag (default: settings.DEFAULT_CATEGORY).
    --chunk-size   Soft chunk size in characters.
    --overlap      Overlap in words between consecutive chunks.
    --no-cleanup   Keep earlier passages for this title.
    --drop         Drop the passage table before ingesting.
    --drop-only    Drop the passage table and exit.

Usage:
    python -m rulebook.scripts.setup_db book.txt
    python -m rulebook.scripts.setup_db --title "Hostel Rules" hostel.txt
    python -m rulebook.scripts.setup_db                 # every .txt in DATA_RAW_DIR
    python -m rulebook.scripts.setup_db --drop-only
"""

from __future__ import annotations

import argparse
import asyncio
import sys
import time
from pathlib import Path


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="setup_db", description="Rulebook: ingest policy text into the passage store.")
    parser.add_argument("files", nargs="*", type=Path, help="Plain-text source files (default: every .txt in DATA_RAW_DIR).")
    parser.add_argument("--title", default=None, help="Source document title.")
    parser.add_argument("--category", default=None, help="Category tag stored with every passage.")
    parser.add_argument("--chunk-size", type=int, default=None, help="Soft chunk size in characters.")
    parser.add_argument("--overlap", type=int, default=None, help="Overlap in words between chunks.")
    parser.add_argument("--no-cleanup", action="store_true", default=False, help="Do not delete earlier passages for this title.")
    parser.add_argument("--drop", action="store_true", default=False, help="Drop the passage table before ingesting.")
    parser.add_argument("--drop-only", action="store_true", default=False, help="Drop the passage table and exit.")
    return parser.parse_args(argv)


def read_sources(files: list[Path], raw_dir: Path) -> list[str]:
    """Read each file as UTF-8 (``latin-1`` fallback), in the given or sorted order."""
    if files:
        paths = list(files)
    elif raw_dir.exists():
        paths = sorted(raw_dir.glob("*.txt"))
    else:
        paths = []

    texts: list[str] = []
    for path in paths:
        try:
            texts.append(path.read_text(encoding="utf-8"))
        except UnicodeDecodeError:
            texts.append(path.read_text(encoding="latin-1"))
    return texts


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    t_start = time.perf_counter()

    try:
        from rulebook.config.settings import get_settings

        settings = get_settings()
    except Exception as exc:
        print("\n[FATAL] Configuration error. Check your .env file:\n")
        print(f"  {exc}")
        print()
        return 1

    from rulebook.src.core.container import RulebookContainer
    from rulebook.src.core.exceptions import RulebookError
    from rulebook.src.utils.logger import get_logger

    logger = get_logger(__name__)
    if args.drop or args.drop_only:
        from rulebook.src.database.vector_store import PassageStore

        logger.warning("Dropping table '%s' as requested.", settings.LANCEDB_TABLE_NAME)
        PassageStore(settings).drop_table()
        if args.drop_only:
            logger.info("--drop-only: Table dropped. Exiting.")
            return 0

    # Built after any drop so a fresh table is created
    container = RulebookContainer(settings)
    store = container.passage_store

    texts = read_sources(args.files, settings.DATA_RAW_DIR)
    if not texts:
        logger.error("No source text found (files: %s, raw dir: %s).", args.files, settings.DATA_RAW_DIR)
        return 1

    try:
        stats = asyncio.run(container.ingestion.ingest(texts, title=args.title, category=args.category, cleanup_first=not args.no_cleanup, chunk_size=args.chunk_size, overlap_words=args.overlap))
    except RulebookError as exc:
        logger.error("Ingestion failed: %s", exc)
        return 1

    _print_summary(stats, store.count(), time.perf_counter() - t_start)
    return 0 if stats.chunks_failed == 0 else 2


def _print_summary(stats: object, row_count: int, elapsed: float) -> None:
    print()
    print("=" * 60)
    print("  EXECUTION SUMMARY")
    print("-" * 60)
    print(f"  Title                : {stats.title}")                   # type: ignore[attr-defined]
    print(f"  Chunks total         : {stats.chunks_total}")            # type: ignore[attr-defined]
    print(f"  Chunks stored        : {stats.chunks_succeeded}")        # type: ignore[attr-defined]
    print(f"  Chunks failed        : {stats.chunks_failed}")           # type: ignore[attr-defined]
    print(f"  Words stored         : {stats.total_words}")             # type: ignore[attr-defined]
    print(f"  Avg chunk size       : {stats.average_chunk_size} chars")  # type: ignore[attr-defined]
    print(f"  Rows in table        : {row_count}")
    print(f"  Total elapsed        : {elapsed:>8.2f}s")
    print("=" * 60)
    print()


if __name__ == "__main__":
    sys.exit(main())
