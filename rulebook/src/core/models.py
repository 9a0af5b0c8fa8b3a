"""
Rulebook - Data Models
=======================
Pydantic models shared by the pipeline stages.

``Passage`` is the unit persisted in and read back from the passage
store.  Result models returned to callers keep side effects (query
logging, pre-ingestion cleanup) on their own ``SideEffectResult`` field,
separate from the primary outcome.
"""

from __future__ import annotations

from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, Field


class PassageMetadata(BaseModel):
    chunk_index: int
    total_chunks: int
    embedding: list[float] | None = None
    source_document: str
    chunk_size: int = 0
    overlap_size: int = 0
    start_position: int = 0
    end_position: int = 0
    word_count: int = 0


class Passage(BaseModel):
    """A stored chunk of source text plus its embedding and provenance."""

    model_config = {"frozen": True}

    id: str = Field(default_factory=lambda: uuid4().hex)
    title: str
    content: str
    category: str | None = None
    metadata: PassageMetadata


class RankedPassage(BaseModel):
    passage: Passage
    score: float


class ModelInfo(BaseModel):
    """A generation model advertised by the external service."""

    name: str
    capabilities: list[str] = Field(default_factory=list)


class SynthesisResult(BaseModel):
    text: str
    model: str


class SideEffectResult(BaseModel):
    """Outcome of a best-effort side effect; never affects the primary result."""

    ok: bool
    detail: str = ""

    @classmethod
    def success(cls, detail: str = "") -> "SideEffectResult":
        return cls(ok=True, detail=detail)

    @classmethod
    def failure(cls, detail: str) -> "SideEffectResult":
        return cls(ok=False, detail=detail)


class ChunkFailure(BaseModel):
    chunk_index: int
    error: str


class IngestionStats(BaseModel):
    title: str
    chunks_total: int
    chunks_succeeded: int
    chunks_failed: int
    total_words: int
    total_characters: int
    average_chunk_size: int
    overlap_size: int
    batch_size: int
    cleanup_performed: bool
    cleanup: SideEffectResult | None = None
    failures: list[ChunkFailure] = Field(default_factory=list)


class SourceRef(BaseModel):
    id: str
    title: str
    chunk_index: int | None
    similarity: float


class AnswerResult(BaseModel):
    answer_text: str
    path: Literal["primary", "fallback", "apology"]
    used_model: str | None = None
    sources: list[SourceRef] = Field(default_factory=list)
    total_passages_considered: int = 0
    query_log: SideEffectResult | None = None


class SearchHit(BaseModel):
    passage: Passage
    score: float
