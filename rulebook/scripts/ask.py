"""
Rulebook - Question / Search CLI
=================================
Ask a question against the ingested passages, or inspect what the
retriever returns for it.

Flags:
    --search        Print ranked passages with scores instead of answering.
    --limit N       Number of search results (default: settings.DEFAULT_SEARCH_LIMIT).
    --top-k N       Ranked hits used for the answer (clamped to settings bounds).
    --history N     Print the N most recent logged questions and exit.

Usage:
    python -m rulebook.scripts.ask "What is the minimum attendance?"
    python -m rulebook.scripts.ask --search "medical certificate deadline"
    python -m rulebook.scripts.ask                      # interactive
"""

from __future__ import annotations

import argparse
import asyncio
import sys


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="ask", description="Rulebook: ask the Student Resource Book.")
    parser.add_argument("question", nargs="?", default=None, help="Question text (omit for interactive mode).")
    parser.add_argument("--search", action="store_true", default=False, help="Show ranked passages instead of an answer.")
    parser.add_argument("--limit", type=int, default=None, help="Number of search results.")
    parser.add_argument("--top-k", type=int, default=None, help="Ranked hits used for the answer.")
    parser.add_argument("--history", type=int, default=None, metavar="N", help="Show the N most recent logged questions.")
    return parser.parse_args(argv)


async def _run_once(container: object, question: str, args: argparse.Namespace) -> None:
    if args.search:
        hits = await container.rag.search(question, limit=args.limit)  # type: ignore[attr-defined]
        if not hits:
            print("No relevant passages found.")
        for i, hit in enumerate(hits, 1):
            print(f"\n--- Result {i} ---")
            print(f"  Title:     {hit.passage.title}")
            print(f"  Score:     {hit.score:.4f}")
            print(f"  Chunk #:   {hit.passage.metadata.chunk_index}")
            print(f"    {hit.passage.content}")
        return

    result = await container.rag.answer(question, top_k=args.top_k)  # type: ignore[attr-defined]
    print()
    print(result.answer_text)
    print()
    print(f"[path={result.path} model={result.used_model or '-'} sources={len(result.sources)}]")


async def _show_history(container: object, limit: int) -> None:
    rows = await container.query_log.recent(limit)  # type: ignore[attr-defined]
    for row in rows:
        print(f"{row.get('created_at')}  {row.get('question')}")


async def _interactive(container: object, args: argparse.Namespace) -> None:
    from rulebook.config.prompt_templates import WELCOME_MESSAGE

    print(WELCOME_MESSAGE)
    while True:
        try:
            question = (await asyncio.to_thread(input, "\n> ")).strip()
        except EOFError:
            break
        if question.lower() in {"exit", "quit"}:
            break
        if question:
            await _run_once(container, question, args)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

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

    container = RulebookContainer(settings)

    try:
        if args.history is not None:
            asyncio.run(_show_history(container, args.history))
        elif args.question:
            asyncio.run(_run_once(container, args.question, args))
        else:
            asyncio.run(_interactive(container, args))
    except RulebookError as exc:
        print(f"[ERROR] {exc}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
