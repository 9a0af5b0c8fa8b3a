"""
Rulebook - Composition Root
============================
The one place where concrete adapters (Gemini embedder and backend,
LanceDB passage store, MongoDB query log) are wired to the pipeline
components.  Components are built lazily and cached on first access; no
network or disk access happens at import time.

Usage:
    from rulebook.config.settings import get_settings
    from rulebook.src.core.container import RulebookContainer

    c = RulebookContainer(get_settings())
    stats = await c.ingestion.ingest([text], title="Student Resource Book")
    result = await c.rag.answer("What is the minimum attendance?")
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import cached_property

from rulebook.config.settings import Settings
from rulebook.src.core.embedding_client import EmbeddingClient, build_embedder
from rulebook.src.core.ingestor import IngestionPipeline
from rulebook.src.core.rag_engine import RAGManager
from rulebook.src.core.synthesizer import AnswerSynthesizer, GeminiBackend, ModelSelector
from rulebook.src.database.query_log import QueryLogStore
from rulebook.src.database.vector_store import PassageStore


@dataclass(frozen=True)
class RulebookContainer:
    """Holds the configured, cached runtime components."""

    settings: Settings

    @cached_property
    def embedding_client(self) -> EmbeddingClient:
        return EmbeddingClient(build_embedder(self.settings), self.settings)

    @cached_property
    def passage_store(self) -> PassageStore:
        return PassageStore(self.settings)

    @cached_property
    def query_log(self) -> QueryLogStore:
        return QueryLogStore(self.settings)

    @cached_property
    def synthesizer(self) -> AnswerSynthesizer:
        return AnswerSynthesizer(GeminiBackend(self.settings), ModelSelector.from_settings(self.settings))

    @cached_property
    def ingestion(self) -> IngestionPipeline:
        return IngestionPipeline(self.settings, self.embedding_client, self.passage_store)

    @cached_property
    def rag(self) -> RAGManager:
        return RAGManager(self.settings, self.embedding_client, self.passage_store, self.synthesizer, self.query_log)
