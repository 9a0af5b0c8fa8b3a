"""
Rulebook - Similarity Ranker
=============================
Linear scoring of every stored passage against a query vector, plus
neighbour expansion to rebuild rules that straddle a chunk boundary.

Scoring:
    1. Cosine similarity (clipped to [-1, 1]); passages without a usable
       embedding score 0.
    2. Additive boosts (answer path only): a percentage numeral in the
       content, a policy keyword stem in the content.
    3. Floor filter: scores at or below the floor are dropped.
    4. Stable descending sort, so ties keep storage order.

Expansion:
    For each top hit, pull neighbours from the same source document at
    the configured chunk-index offsets, whatever their own score.
    Content is de-duplicated by a fixed-length prefix and the assembled
    context is capped.  Neighbours are included unconditionally, which
    can add filler for very short documents.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence

import numpy as np

from rulebook.config.prompt_templates import POLICY_KEYWORDS
from rulebook.config.settings import Settings
from rulebook.src.core.models import Passage, RankedPassage
from rulebook.src.utils.logger import get_logger

logger = get_logger(__name__)

_PERCENT_RE = re.compile(r"\d+(?:\.\d+)?\s?%")


def cosine_similarity(a: Sequence[float], b: Sequence[float] | None) -> float:
    """
    Cosine similarity in [-1, 1].

    Returns 0.0 when *b* is missing, the dimensions differ, or either
    vector has zero magnitude.
    """
    if not b or not a or len(a) != len(b):
        return 0.0
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    return float(np.clip(np.dot(va, vb) / denom, -1.0, 1.0))


def has_percentage(content: str) -> bool:
    return bool(_PERCENT_RE.search(content))


def has_policy_keyword(content: str, keywords: Iterable[str] = POLICY_KEYWORDS) -> bool:
    lowered = content.lower()
    return any(k in lowered for k in keywords)


class SimilarityRanker:
    """
    Scores passages and assembles expanded context.

    Parameters
    ----------
    settings
        Supplies boosts, top-k bounds, neighbour offsets and caps.
    """

    __slots__ = ("_settings",)

    def __init__(self, settings: Settings) -> None:
        self._settings = settings


    def clamp_top_k(self, top_k: int | None) -> int:
        s = self._settings
        requested = top_k if top_k is not None else s.DEFAULT_TOP_K
        return max(s.TOP_K_MIN, min(requested, s.TOP_K_MAX))


    def score(self, query_vector: Sequence[float], passage: Passage, apply_boosts: bool = True) -> float:
        """Cosine similarity plus heuristic boosts for one passage."""
        embedding = passage.metadata.embedding
        if not embedding:
            return 0.0

        sim = cosine_similarity(query_vector, embedding)
        if apply_boosts:
            if has_percentage(passage.content):
                sim += self._settings.NUMERIC_BOOST
            if has_policy_keyword(passage.content):
                sim += self._settings.KEYWORD_BOOST
        return sim


    def rank(self, query_vector: Sequence[float], passages: Sequence[Passage], top_k: int | None, floor: float, apply_boosts: bool = True) -> list[RankedPassage]:
        """
        Rank *passages* against *query_vector*.

        Parameters
        ----------
        top_k
            Maximum results; ``None`` keeps everything above the floor.
        floor
            Exclusive lower bound on the adjusted score.
        apply_boosts
            ``False`` on the exploratory search path.
        """
        scored = [
            RankedPassage(passage=p, score=self.score(query_vector, p, apply_boosts))
            for p in passages
            if p.metadata.embedding
        ]
        kept = [r for r in scored if r.score > floor]
        kept.sort(key=lambda r: r.score, reverse=True)

        result = kept if top_k is None else kept[:top_k]
        logger.debug("[RANK] %d/%d passages above floor %.2f, returning %d.", len(kept), len(passages), floor, len(result))
        return result


    def expand(self, ranked: Sequence[RankedPassage], passages: Sequence[Passage]) -> list[Passage]:
        """
        Assemble context from the top hits and their chunk-index neighbours.

        Returns passages in assembly order: each hit followed by its
        neighbours at ``NEIGHBOR_OFFSETS``.
        """
        s = self._settings
        by_document: dict[str, dict[int, Passage]] = {}
        for p in passages:
            group = by_document.setdefault(p.metadata.source_document, {})
            group.setdefault(p.metadata.chunk_index, p)

        context: list[Passage] = []
        seen: set[str] = set()

        def _push(p: Passage | None) -> None:
            if p is None or len(context) >= s.MAX_CONTEXT_PASSAGES:
                return
            key = p.content[: s.DEDUP_PREFIX_CHARS]
            if key in seen:
                return
            seen.add(key)
            context.append(p)

        for hit in ranked:
            if len(context) >= s.MAX_CONTEXT_PASSAGES:
                break
            _push(hit.passage)
            group = by_document.get(hit.passage.metadata.source_document, {})
            idx = hit.passage.metadata.chunk_index
            for offset in s.NEIGHBOR_OFFSETS:
                _push(group.get(idx + offset))

        logger.debug("[RANK] Expanded %d hit(s) into %d context passage(s).", len(ranked), len(context))
        return context
