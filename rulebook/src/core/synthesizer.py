"""
Rulebook - Answer Synthesizer
==============================
Builds the grounded answer prompt and obtains an answer from whichever
generation model is available.

Architecture
------------
``GenerativeBackend``
    Protocol for the external service: ``list_models`` and ``generate``.
``GeminiBackend``
    Production backend.  Model discovery goes through ``google-genai``;
    generation goes through ``ChatGoogleGenerativeAI`` (one cached
    instance per model name).
``ModelSelector``
    Ordered candidate list: exact preferred names first, then names
    matching the preferred family pattern, then every other model that
    advertises the generation capability.  Vendor naming only enters
    through settings.
``AnswerSynthesizer``
    Tries candidates in order; the first non-empty answer wins.
"""

from __future__ import annotations

import re
import time
from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

from rulebook.config.prompt_templates import ANSWER_PROMPT_TEMPLATE, CONTEXT_DELIMITER, NO_ANSWER_SENTINEL
from rulebook.config.settings import Settings
from rulebook.src.core.exceptions import GenerationError, ValidationError
from rulebook.src.core.models import ModelInfo, SynthesisResult
from rulebook.src.utils.logger import get_logger

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  BACKEND PROTOCOL
# ══════════════════════════════════════════════════════════════════════


@runtime_checkable
class GenerativeBackend(Protocol):
    """Anything that can list models and generate text with one of them."""

    async def list_models(self) -> list[ModelInfo]: ...

    async def generate(self, model_name: str, prompt: str) -> str: ...


def _message_text(content: Any) -> str:
    """Flatten a LangChain message ``content`` (str or list of parts) to text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type") == "text":
                parts.append(str(part.get("text", "")))
        return "".join(parts)
    return str(content or "")


class GeminiBackend:
    """
    Gemini implementation of ``GenerativeBackend``.

    Parameters
    ----------
    settings
        Supplies the API key, temperature and output-token cap.
    """

    __slots__ = ("_settings", "_client", "_llms")

    def __init__(self, settings: Settings) -> None:
        from google import genai

        self._settings = settings
        self._client = genai.Client(api_key=settings.GOOGLE_API_KEY.get_secret_value())
        self._llms: dict[str, Any] = {}


    async def list_models(self) -> list[ModelInfo]:
        pager = await self._client.aio.models.list()
        models: list[ModelInfo] = []
        async for model in pager:
            models.append(ModelInfo(name=model.name or "", capabilities=list(model.supported_actions or [])))
        logger.debug("[SYNTH] Service advertises %d model(s).", len(models))
        return models


    async def generate(self, model_name: str, prompt: str) -> str:
        from langchain_core.messages import HumanMessage

        llm = self._llm_for(model_name)
        response = await llm.ainvoke([HumanMessage(content=prompt)])
        return _message_text(getattr(response, "content", response))


    def _llm_for(self, model_name: str) -> Any:
        if model_name not in self._llms:
            from langchain_google_genai import ChatGoogleGenerativeAI

            self._llms[model_name] = ChatGoogleGenerativeAI(model=model_name, temperature=self._settings.LLM_TEMPERATURE, max_output_tokens=self._settings.LLM_MAX_OUTPUT_TOKENS, google_api_key=self._settings.GOOGLE_API_KEY.get_secret_value())
            logger.info("[SYNTH] LLM initialised: %s (temperature=%.1f)", model_name, self._settings.LLM_TEMPERATURE)
        return self._llms[model_name]


# ══════════════════════════════════════════════════════════════════════
#  MODEL SELECTION
# ══════════════════════════════════════════════════════════════════════


class ModelSelector:
    """Ranks generation-capable models by a fixed preference order."""

    __slots__ = ("_preferred", "_pattern", "_capability")

    def __init__(self, preferred: Sequence[str], family_pattern: str | None, capability: str) -> None:
        self._preferred = list(preferred)
        self._pattern = re.compile(family_pattern, re.IGNORECASE) if family_pattern else None
        self._capability = capability

    @classmethod
    def from_settings(cls, settings: Settings) -> "ModelSelector":
        return cls(settings.PREFERRED_MODELS, settings.PREFERRED_MODEL_PATTERN, settings.GENERATION_CAPABILITY)


    def candidates(self, models: Sequence[ModelInfo]) -> list[str]:
        usable = [m.name for m in models if m.name and self._capability in m.capabilities]

        ranked: list[str] = [p for p in self._preferred if p in usable]
        if self._pattern is not None:
            ranked += [u for u in usable if u not in ranked and self._pattern.search(u)]
        ranked += [u for u in usable if u not in ranked]
        return ranked


# ══════════════════════════════════════════════════════════════════════
#  SYNTHESIZER
# ══════════════════════════════════════════════════════════════════════


def build_prompt(query: str, context_passages: Sequence[str]) -> str:
    return ANSWER_PROMPT_TEMPLATE.format(sentinel=NO_ANSWER_SENTINEL, question=query, context=CONTEXT_DELIMITER.join(context_passages))


class AnswerSynthesizer:
    """
    Grounded answer generation with model fallback.

    Parameters
    ----------
    backend
        A ``GenerativeBackend``.
    selector
        Candidate ranking strategy.
    """

    __slots__ = ("_backend", "_selector")

    def __init__(self, backend: GenerativeBackend, selector: ModelSelector) -> None:
        self._backend = backend
        self._selector = selector


    async def synthesize(self, query: str, context_passages: Sequence[str]) -> SynthesisResult:
        """
        Answer *query* from *context_passages*.

        Returns the sentinel (``model="none"``) without calling any model
        when there is no context.

        Raises
        ------
        ValidationError
            Empty query.
        GenerationError
            Model listing failed, no candidate exists, or every candidate
            errored / returned empty text.
        """
        if not query or not query.strip():
            raise ValidationError("Query text is required", field="query")

        context = [c for c in context_passages if c and c.strip()]
        if not context:
            logger.warning("[SYNTH] No context passages, returning sentinel.")
            return SynthesisResult(text=NO_ANSWER_SENTINEL, model="none")

        prompt = build_prompt(query.strip(), context)

        try:
            models = await self._backend.list_models()
        except Exception as exc:
            raise GenerationError(f"ListModels failed: {exc}") from exc

        candidates = self._selector.candidates(models)
        if not candidates:
            raise GenerationError("no_usable_model")

        last_error = ""
        tried: list[str] = []
        for model_name in candidates:
            tried.append(model_name)
            t_start = time.perf_counter()
            try:
                text = await self._backend.generate(model_name, prompt)
            except Exception as exc:
                last_error = f"{model_name}: {type(exc).__name__}: {exc}"
                logger.warning("[SYNTH] Candidate failed: %s", last_error)
                continue

            if text and text.strip():
                elapsed_ms = (time.perf_counter() - t_start) * 1000
                logger.info("[SYNTH] Answer from %s in %.1fms (%d chars).", model_name, elapsed_ms, len(text))
                return SynthesisResult(text=text.strip(), model=model_name)

            last_error = f"{model_name}: empty response"
            logger.warning("[SYNTH] Candidate returned empty text: %s", model_name)

        raise GenerationError(last_error, tried)
