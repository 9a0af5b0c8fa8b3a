"""
Test suite for the RAG orchestrator.

Covers the primary path, the fallback path, the apology message, query
logging as a separate result channel, and exploratory search.
"""

import math

import pytest

from conftest import FakeBackend, FakeEmbedder, FakeQueryLog, InMemoryPassageStore, RecordingSleep, keyword_vector, make_passage
from rulebook.config.prompt_templates import APOLOGY_MESSAGE, NO_ANSWER_SENTINEL
from rulebook.src.core.embedding_client import EmbeddingClient
from rulebook.src.core.exceptions import StoreError, ValidationError
from rulebook.src.core.rag_engine import RAGManager
from rulebook.src.core.synthesizer import AnswerSynthesizer, ModelSelector

QUESTION = "What is the minimum attendance percentage?"
MODEL = "models/gemini-2.5-flash"


class SequenceBackend(FakeBackend):
    """Returns (or raises) scripted outcomes in call order."""

    def __init__(self, outcomes: list[object]) -> None:
        super().__init__()
        self.outcomes = list(outcomes)

    async def generate(self, model_name: str, prompt: str) -> str:
        self.prompts.append((model_name, prompt))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return str(outcome)


def _policy_store() -> InMemoryPassageStore:
    return InMemoryPassageStore([
        make_passage("Minimum 75% attendance is mandatory for appearing in examinations", chunk_index=0, total=3),
        make_passage("Hostel fees are due before the semester starts.", chunk_index=1, total=3),
        make_passage("The library is open until 8 pm on weekdays.", chunk_index=2, total=3),
    ])


def _manager(settings, store, backend=None, embedder=None, query_log=None) -> RAGManager:
    client = EmbeddingClient(embedder or FakeEmbedder(), settings, sleep=RecordingSleep())
    synth = AnswerSynthesizer(backend or FakeBackend(), ModelSelector.from_settings(settings))
    return RAGManager(settings, client, store, synth, query_log)


class TestAnswerPrimaryPath:
    """Test suite for RAGManager.answer() when retrieval succeeds."""

    @pytest.mark.asyncio
    async def test_should_answer_from_ranked_context(self, settings) -> None:
        # Arrange
        store = _policy_store()
        backend = FakeBackend()
        query_log = FakeQueryLog()
        rag = _manager(settings, store, backend=backend, query_log=query_log)

        # Act
        result = await rag.answer(QUESTION)

        # Assert
        assert result.path == "primary"
        assert result.answer_text == "Minimum 75% attendance is required."
        assert result.used_model == MODEL
        assert [s.id for s in result.sources] == [store.passages[0].id]
        assert result.sources[0].chunk_index == 0
        assert result.total_passages_considered == 3
        assert result.query_log is not None and result.query_log.ok
        assert query_log.questions == [QUESTION]

    @pytest.mark.asyncio
    async def test_context_should_include_neighbour_passages(self, settings) -> None:
        store = _policy_store()
        backend = FakeBackend()
        rag = _manager(settings, store, backend=backend)

        await rag.answer(QUESTION)

        _, prompt = backend.prompts[0]
        assert "Minimum 75% attendance" in prompt
        # chunk 1 (offset +1) and chunk 2 (offset +2) come along unconditionally
        assert "Hostel fees are due" in prompt
        assert "The library is open" in prompt

    @pytest.mark.asyncio
    async def test_top_k_should_be_clamped_to_minimum(self, settings) -> None:
        store = InMemoryPassageStore([make_passage(f"Attendance rule {i} applies.", chunk_index=i, total=8) for i in range(8)])
        rag = _manager(settings, store)

        result = await rag.answer(QUESTION, top_k=1)

        assert len(result.sources) == settings.TOP_K_MIN

    @pytest.mark.asyncio
    async def test_context_override_should_skip_retrieval(self, settings) -> None:
        embedder = FakeEmbedder()
        backend = FakeBackend()
        store = InMemoryPassageStore()
        rag = _manager(settings, store, backend=backend, embedder=embedder)

        result = await rag.answer(QUESTION, context_override=["Attendance below 75% bars students from exams."])

        assert result.path == "primary"
        assert result.sources == []
        assert embedder.calls == []
        assert "Attendance below 75% bars students from exams." in backend.prompts[0][1]


class TestAnswerFallbackPath:
    """Test suite for the fallback and apology outcomes."""

    @pytest.mark.asyncio
    async def test_sentinel_should_trigger_fallback(self, settings) -> None:
        backend = SequenceBackend([NO_ANSWER_SENTINEL, "Eligible with at least 75% attendance."])
        rag = _manager(settings, _policy_store(), backend=backend)

        result = await rag.answer(QUESTION)

        assert result.path == "fallback"
        assert result.answer_text == "Eligible with at least 75% attendance."
        assert result.used_model == MODEL
        assert len(backend.prompts) == 2
        # Fallback context is the raw hits only: no neighbour expansion
        assert "Hostel fees" not in backend.prompts[1][1]

    @pytest.mark.asyncio
    async def test_generation_failure_should_trigger_fallback(self, settings) -> None:
        backend = SequenceBackend([RuntimeError("503 overloaded"), "Recovered answer."])
        rag = _manager(settings, _policy_store(), backend=backend)

        result = await rag.answer(QUESTION)

        assert result.path == "fallback"
        assert result.answer_text == "Recovered answer."

    @pytest.mark.asyncio
    async def test_should_apologise_when_sentinel_and_fallback_finds_nothing(self, settings) -> None:
        """A weak match clears the answer floor but not the search floor."""
        # cos = 1 / (sqrt(3) * sqrt(50)) ~ 0.082: between 0.05 and 0.1
        weak = make_passage("Library rules.", embedding=[1.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 7.0])
        backend = SequenceBackend([NO_ANSWER_SENTINEL])
        rag = _manager(settings, InMemoryPassageStore([weak]), backend=backend)

        result = await rag.answer(QUESTION)

        assert settings.ANSWER_SIMILARITY_FLOOR < 1 / (math.sqrt(3) * math.sqrt(50)) < settings.SEARCH_SIMILARITY_FLOOR
        assert result.path == "apology"
        assert result.answer_text == APOLOGY_MESSAGE
        assert result.used_model is None
        assert len(backend.prompts) == 1

    @pytest.mark.asyncio
    async def test_should_apologise_when_nothing_matches(self, settings) -> None:
        """No passage clears the floor: apology, and no model is ever called."""
        store = InMemoryPassageStore([make_passage("Hostel fees are due before the semester starts.")])
        backend = FakeBackend()
        rag = _manager(settings, store, backend=backend)

        result = await rag.answer(QUESTION)

        assert result.path == "apology"
        assert result.answer_text == APOLOGY_MESSAGE
        assert result.used_model is None
        assert result.sources == []
        assert backend.prompts == []

    @pytest.mark.asyncio
    async def test_should_apologise_on_empty_store(self, settings) -> None:
        result = await _manager(settings, InMemoryPassageStore()).answer(QUESTION)

        assert result.path == "apology"
        assert result.total_passages_considered == 0

    @pytest.mark.asyncio
    async def test_embedding_outage_should_not_leak_error_text(self, settings) -> None:
        embedder = FakeEmbedder(fail_on={"attendance"})
        rag = _manager(settings, _policy_store(), embedder=embedder)

        result = await rag.answer(QUESTION)

        assert result.path == "apology"
        assert "Gemini API error" not in result.answer_text

    @pytest.mark.asyncio
    async def test_should_reject_blank_question(self, settings) -> None:
        query_log = FakeQueryLog()
        rag = _manager(settings, _policy_store(), query_log=query_log)

        with pytest.raises(ValidationError):
            await rag.answer("   ")

        assert query_log.questions == []


class TestQueryLogChannel:
    @pytest.mark.asyncio
    async def test_log_failure_should_not_affect_answer(self, settings) -> None:
        rag = _manager(settings, _policy_store(), query_log=FakeQueryLog(error=StoreError("mongo down")))

        result = await rag.answer(QUESTION)

        assert result.path == "primary"
        assert result.query_log is not None
        assert result.query_log.ok is False
        assert "mongo down" in result.query_log.detail

    @pytest.mark.asyncio
    async def test_disabled_log_is_reported_as_success(self, settings) -> None:
        result = await _manager(settings, _policy_store()).answer(QUESTION)

        assert result.query_log is not None
        assert result.query_log.ok
        assert result.query_log.detail == "query logging disabled"


class TestSearch:
    """Test suite for RAGManager.search()."""

    @pytest.mark.asyncio
    async def test_should_return_unboosted_scores_above_search_floor(self, settings) -> None:
        store = _policy_store()
        rag = _manager(settings, store)

        hits = await rag.search(QUESTION)

        assert [h.passage.id for h in hits] == [store.passages[0].id]
        expected = 2 / (math.sqrt(3) * math.sqrt(2))
        assert hits[0].score == pytest.approx(expected)

    @pytest.mark.asyncio
    async def test_should_honour_limit(self, settings) -> None:
        store = InMemoryPassageStore([make_passage(f"Attendance rule {i}.", chunk_index=i) for i in range(10)])
        rag = _manager(settings, store)

        assert len(await rag.search("attendance", limit=4)) == 4
        assert len(await rag.search("attendance")) == settings.DEFAULT_SEARCH_LIMIT

    @pytest.mark.asyncio
    async def test_should_reject_blank_query(self, settings) -> None:
        with pytest.raises(ValidationError):
            await _manager(settings, _policy_store()).search("")

    @pytest.mark.asyncio
    async def test_query_vector_matches_keyword_embedding(self, settings) -> None:
        embedder = FakeEmbedder()
        rag = _manager(settings, _policy_store(), embedder=embedder)

        await rag.search("  minimum attendance  ")

        assert embedder.calls == ["minimum attendance"]
        assert keyword_vector(embedder.calls[0])[0] == 1.0
