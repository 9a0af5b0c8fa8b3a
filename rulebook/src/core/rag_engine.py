"""
Rulebook - RAG Engine
======================
Answers questions against the stored passages.

``RAGManager`` flow for ``answer``:
    1. Validate the question; start the query-log write concurrently.
    2. Primary path: embed → rank (answer floor, boosts, clamped top-k)
       → expand neighbours → synthesize.
    3. Fallback path (primary raised, returned empty text, or returned
       the "I don't know" sentinel): rank through the search floor
       without boosts, take up to ``FALLBACK_RESULTS_LIMIT`` hits and
       resynthesize with their raw content as the context.
    4. Nothing usable from either path → fixed apology.
    5. Collect the query-log outcome onto its own result channel.

Raw internal errors never reach the returned answer text.

``search`` is the exploratory path: embed → rank through the search
floor, no boosts, no expansion.

The manager holds no request-scoped state; one instance can serve
concurrent requests.

Usage:
    rag = RAGManager(settings, embedding_client, store, synthesizer, query_log)
    result = await rag.answer("What is the minimum attendance?")
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Sequence

from rulebook.config.prompt_templates import APOLOGY_MESSAGE, NO_ANSWER_SENTINEL
from rulebook.config.settings import Settings
from rulebook.src.core.embedding_client import EmbeddingClient
from rulebook.src.core.exceptions import NotFoundError, ValidationError
from rulebook.src.core.models import AnswerResult, Passage, RankedPassage, SearchHit, SideEffectResult, SourceRef, SynthesisResult
from rulebook.src.core.ranker import SimilarityRanker
from rulebook.src.core.synthesizer import AnswerSynthesizer
from rulebook.src.database.query_log import QueryLogRepository
from rulebook.src.database.vector_store import PassageRepository
from rulebook.src.utils.logger import get_logger

logger = get_logger(__name__)


def _is_usable(text: str | None) -> bool:
    return bool(text and text.strip()) and text.strip() != NO_ANSWER_SENTINEL


def _sources(ranked: Sequence[RankedPassage]) -> list[SourceRef]:
    return [SourceRef(id=r.passage.id, title=r.passage.title, chunk_index=r.passage.metadata.chunk_index, similarity=r.score) for r in ranked]


class RAGManager:
    """
    Query orchestrator: retrieval, synthesis and fallback.

    Parameters
    ----------
    settings
        Supplies floors, top-k bounds and fallback limits.
    embedding_client
        Embeds the question.
    store
        Passage storage (read-only here).
    synthesizer
        Grounded answer generation.
    query_log
        Question log; ``None`` disables logging.
    ranker
        Optional custom ``SimilarityRanker``.
    """

    __slots__ = ("_settings", "_embeddings", "_store", "_synth", "_query_log", "_ranker")

    def __init__(self, settings: Settings, embedding_client: EmbeddingClient, store: PassageRepository, synthesizer: AnswerSynthesizer, query_log: QueryLogRepository | None = None, ranker: SimilarityRanker | None = None) -> None:
        self._settings = settings
        self._embeddings = embedding_client
        self._store = store
        self._synth = synthesizer
        self._query_log = query_log
        self._ranker = ranker or SimilarityRanker(settings)

    # ══════════════════════════════════════════════════════════════════
    #  ANSWER
    # ══════════════════════════════════════════════════════════════════

    async def answer(self, query: str, top_k: int | None = None, context_override: Sequence[str] | None = None) -> AnswerResult:
        """
        Answer *query* from the stored passages.

        Parameters
        ----------
        top_k
            Requested number of ranked hits, clamped to the configured
            bounds.
        context_override
            Raw snippets to answer from directly (ranking is skipped).

        Raises
        ------
        ValidationError
            Empty question.
        """
        if not query or not query.strip():
            raise ValidationError("Query text is required", field="query")
        query = query.strip()

        t_start = time.perf_counter()
        log_task = asyncio.create_task(self._log_query(query))

        result = await self._answer(query, top_k, context_override)
        result.query_log = await log_task

        logger.info("[RAG] Answered via %s path in %.1fms (model=%s).", result.path, (time.perf_counter() - t_start) * 1000, result.used_model)
        return result


    async def _answer(self, query: str, top_k: int | None, context_override: Sequence[str] | None) -> AnswerResult:
        primary: SynthesisResult | None = None
        ranked: list[RankedPassage] = []
        considered = 0

        # ── 1. Primary path ───────────────────────────────────────────
        try:
            if context_override:
                primary = await self._synth.synthesize(query, list(context_override))
            else:
                query_vector = await self._embeddings.embed(query)
                passages = await self._store.select_all()
                considered = len(passages)
                ranked = self._ranker.rank(query_vector, passages, self._ranker.clamp_top_k(top_k), self._settings.ANSWER_SIMILARITY_FLOOR)
                if not ranked:
                    raise NotFoundError("No relevant documents found", {"floor": self._settings.ANSWER_SIMILARITY_FLOOR})
                context = self._ranker.expand(ranked, passages)
                primary = await self._synth.synthesize(query, [p.content for p in context])
        except Exception as exc:
            logger.warning("[RAG] Primary path failed, switching to fallback: %s", exc)

        if primary is not None and _is_usable(primary.text):
            return AnswerResult(answer_text=primary.text, path="primary", used_model=primary.model, sources=_sources(ranked), total_passages_considered=considered)

        # ── 2. Fallback path ──────────────────────────────────────────
        fallback, fallback_ranked, fallback_considered = await self._fallback(query)
        if fallback is not None and fallback.text.strip():
            return AnswerResult(answer_text=fallback.text, path="fallback", used_model=fallback.model, sources=_sources(fallback_ranked), total_passages_considered=fallback_considered)

        # ── 3. Apology ────────────────────────────────────────────────
        logger.warning("[RAG] Both paths yielded nothing, returning apology.")
        return AnswerResult(answer_text=APOLOGY_MESSAGE, path="apology", total_passages_considered=max(considered, fallback_considered))


    async def _fallback(self, query: str) -> tuple[SynthesisResult | None, list[RankedPassage], int]:
        try:
            hits, considered = await self._search(query, self._settings.FALLBACK_RESULTS_LIMIT)
            if not hits:
                logger.info("[RAG] Fallback search found nothing above floor %.2f.", self._settings.SEARCH_SIMILARITY_FLOOR)
                return None, [], considered
            ranked = [RankedPassage(passage=h.passage, score=h.score) for h in hits]
            result = await self._synth.synthesize(query, [h.passage.content for h in hits])
            return result, ranked, considered
        except Exception as exc:
            logger.warning("[RAG] Fallback path failed: %s", exc)
            return None, [], 0

    # ══════════════════════════════════════════════════════════════════
    #  SEARCH
    # ══════════════════════════════════════════════════════════════════

    async def search(self, query: str, limit: int | None = None) -> list[SearchHit]:
        """
        Exploratory ranked search (search floor, no boosts, no expansion).

        Raises
        ------
        ValidationError
            Empty question.
        EmbeddingServiceError
            The query could not be embedded.
        """
        if not query or not query.strip():
            raise ValidationError("Query text is required", field="query")
        hits, _ = await self._search(query.strip(), limit if limit is not None else self._settings.DEFAULT_SEARCH_LIMIT)
        return hits


    async def _search(self, query: str, limit: int) -> tuple[list[SearchHit], int]:
        query_vector = await self._embeddings.embed(query)
        passages: list[Passage] = await self._store.select_all()
        ranked = self._ranker.rank(query_vector, passages, max(1, limit), self._settings.SEARCH_SIMILARITY_FLOOR, apply_boosts=False)
        logger.info("[RAG] Search found %d relevant passage(s) among %d.", len(ranked), len(passages))
        return [SearchHit(passage=r.passage, score=r.score) for r in ranked], len(passages)

    # ══════════════════════════════════════════════════════════════════
    #  QUERY LOG (side effect)
    # ══════════════════════════════════════════════════════════════════

    async def _log_query(self, query: str) -> SideEffectResult:
        if self._query_log is None:
            return SideEffectResult.success("query logging disabled")
        try:
            await self._query_log.insert(query)
        except Exception as exc:
            logger.warning("[RAG] Query log write failed: %s", exc)
            return SideEffectResult.failure(str(exc))
        return SideEffectResult.success()
