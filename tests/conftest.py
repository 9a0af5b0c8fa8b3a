"""
Shared test fixtures and fakes.

Provides: settings without secrets from the environment, a keyword-count
fake embedder, a scripted fake generative backend, in-memory passage and
query-log stores, and a recording sleep.

Dependencies: pytest, pytest-asyncio
System role: Offline test infrastructure (no Gemini, no MongoDB)
"""

from __future__ import annotations

import pytest

from rulebook.config.settings import Settings
from rulebook.src.core.embedding_client import EmbeddingClient
from rulebook.src.core.models import ModelInfo, Passage, PassageMetadata

VOCABULARY = ("attendance", "minimum", "percentage", "medical", "certificate", "hostel", "fee", "library")


def keyword_vector(text: str) -> list[float]:
    lowered = text.lower()
    return [float(lowered.count(term)) for term in VOCABULARY]


class FakeEmbedder:
    """Embeds by counting vocabulary terms; can be told to fail."""

    def __init__(self, fail_on: set[str] | None = None, fail_times: int = 0, response: object = None) -> None:
        self.fail_on = fail_on or set()
        self.fail_times = fail_times
        self.response = response
        self.calls: list[str] = []

    async def aembed_query(self, text: str) -> list[float]:
        self.calls.append(text)
        if any(marker in text for marker in self.fail_on):
            raise RuntimeError("Gemini API error: 500")
        if self.fail_times > 0:
            self.fail_times -= 1
            raise ConnectionError("connection reset")
        if self.response is not None:
            return self.response  # type: ignore[return-value]
        return keyword_vector(text)


class FakeBackend:
    """Scripted generative backend: ``behaviour[model]`` is text or an exception."""

    def __init__(self, models: list[ModelInfo] | None = None, behaviour: dict[str, object] | None = None, list_error: Exception | None = None) -> None:
        self.models = models if models is not None else [ModelInfo(name="models/gemini-2.5-flash", capabilities=["generateContent"])]
        self.behaviour = behaviour or {}
        self.list_error = list_error
        self.prompts: list[tuple[str, str]] = []

    async def list_models(self) -> list[ModelInfo]:
        if self.list_error is not None:
            raise self.list_error
        return self.models

    async def generate(self, model_name: str, prompt: str) -> str:
        self.prompts.append((model_name, prompt))
        outcome = self.behaviour.get(model_name, "Minimum 75% attendance is required.")
        if isinstance(outcome, Exception):
            raise outcome
        return str(outcome)


class InMemoryPassageStore:
    def __init__(self, passages: list[Passage] | None = None, fail_on_index: set[int] | None = None, delete_error: Exception | None = None) -> None:
        self.passages: list[Passage] = list(passages or [])
        self.fail_on_index = fail_on_index or set()
        self.delete_error = delete_error
        self.delete_calls: list[tuple[str | None, str | None]] = []

    async def insert(self, passage: Passage) -> None:
        if passage.metadata.chunk_index in self.fail_on_index:
            raise RuntimeError("insert rejected")
        self.passages.append(passage)

    async def select_all(self, category: str | None = None, source_document: str | None = None) -> list[Passage]:
        result = self.passages
        if category is not None:
            result = [p for p in result if p.category == category]
        if source_document is not None:
            result = [p for p in result if p.metadata.source_document == source_document]
        return list(result)

    async def delete_where(self, category: str | None = None, title_prefix: str | None = None) -> int:
        self.delete_calls.append((category, title_prefix))
        if self.delete_error is not None:
            raise self.delete_error
        keep = [p for p in self.passages if not ((category is None or p.category == category) and (title_prefix is None or p.title.startswith(title_prefix)))]
        deleted = len(self.passages) - len(keep)
        self.passages = keep
        return deleted


class FakeQueryLog:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.questions: list[str] = []

    async def insert(self, question: str) -> None:
        if self.error is not None:
            raise self.error
        self.questions.append(question)


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def make_passage(content: str, chunk_index: int = 0, source: str = "Student Resource Book", total: int = 1, embedding: list[float] | None = None, category: str | None = "University Policy", use_keyword_embedding: bool = True) -> Passage:
    if embedding is None and use_keyword_embedding:
        embedding = keyword_vector(content)
    return Passage(
        title=f"{source} (Part {chunk_index + 1}/{total})",
        content=content,
        category=category,
        metadata=PassageMetadata(chunk_index=chunk_index, total_chunks=total, embedding=embedding, source_document=source),
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(GOOGLE_API_KEY="test-key", MONGO_URI="mongodb://localhost:27017", INGEST_BATCH_DELAY_SECONDS=0.5, _env_file=None)


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def embedding_client(fake_embedder: FakeEmbedder, settings: Settings, recording_sleep: RecordingSleep) -> EmbeddingClient:
    return EmbeddingClient(fake_embedder, settings, sleep=recording_sleep)
