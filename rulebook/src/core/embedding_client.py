"""
Rulebook - Embedding Client
============================
Turns a text string into a fixed-length vector through an injected
LangChain-compatible embedder (``GoogleGenerativeAIEmbeddings`` in
production), with input truncation and exponential back-off.

Retry policy:
    attempt 1 fails → sleep ``base ** 1`` s → attempt 2 fails → sleep
    ``base ** 2`` s → … → after ``retries`` attempts the last failure is
    raised as ``EmbeddingServiceError``.

A response only counts as a success when it is a non-empty sequence of
real numbers; anything else is treated like a transport failure.
"""

from __future__ import annotations

import asyncio
import numbers
from collections.abc import Awaitable, Callable, Sequence
from typing import Protocol, runtime_checkable

from rulebook.config.settings import Settings
from rulebook.src.core.exceptions import EmbeddingServiceError, ValidationError
from rulebook.src.utils.logger import get_logger

logger = get_logger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


@runtime_checkable
class Embedder(Protocol):
    """Structural type for any LangChain-compatible async embedding model."""

    async def aembed_query(self, text: str) -> list[float]: ...


def build_embedder(settings: Settings) -> Embedder:
    """Create the production Gemini embedder."""
    from langchain_google_genai import GoogleGenerativeAIEmbeddings

    return GoogleGenerativeAIEmbeddings(model=settings.EMBEDDING_MODEL, google_api_key=settings.GOOGLE_API_KEY.get_secret_value())


def _as_vector(raw: object) -> list[float]:
    if not isinstance(raw, Sequence) or isinstance(raw, (str, bytes)) or not raw:
        raise TypeError(f"expected a non-empty numeric vector, got {type(raw).__name__}")
    if not all(isinstance(v, numbers.Real) and not isinstance(v, bool) for v in raw):
        raise TypeError("embedding contains non-numeric values")
    return [float(v) for v in raw]


class EmbeddingClient:
    """
    Retrying wrapper around an ``Embedder``.

    Parameters
    ----------
    embedder
        Object exposing ``aembed_query``.
    settings
        Supplies ``EMBEDDING_MAX_INPUT_CHARS``, ``EMBEDDING_RETRIES`` and
        ``EMBEDDING_BACKOFF_BASE``.
    sleep
        Awaitable sleep used between attempts (injected in tests).
    """

    __slots__ = ("_embedder", "_max_chars", "_retries", "_backoff_base", "_sleep")

    def __init__(self, embedder: Embedder, settings: Settings, sleep: SleepFn = asyncio.sleep) -> None:
        self._embedder = embedder
        self._max_chars = settings.EMBEDDING_MAX_INPUT_CHARS
        self._retries = settings.EMBEDDING_RETRIES
        self._backoff_base = settings.EMBEDDING_BACKOFF_BASE
        self._sleep = sleep


    async def embed(self, text: str, retries: int | None = None) -> list[float]:
        """
        Embed *text*, retrying transient failures.

        Raises
        ------
        ValidationError
            If *text* is empty or whitespace.
        EmbeddingServiceError
            After ``retries`` failed attempts.
        """
        if not text or not text.strip():
            raise ValidationError("Text to embed is required", field="text")

        attempts = retries if retries is not None else self._retries
        attempts = max(1, attempts)
        payload = text[: self._max_chars]
        if len(text) > self._max_chars:
            logger.debug("[EMBED] Input truncated from %d to %d chars.", len(text), self._max_chars)

        last_error = ""
        for attempt in range(1, attempts + 1):
            try:
                raw = await self._embedder.aembed_query(payload)
                return _as_vector(raw)
            except Exception as exc:
                last_error = f"{type(exc).__name__}: {exc}"
                if attempt < attempts:
                    delay = self._backoff_base ** attempt
                    logger.warning("[EMBED] Attempt %d/%d failed: %s; retrying in %.1fs", attempt, attempts, last_error, delay)
                    await self._sleep(delay)
                else:
                    logger.error("[EMBED] Failed after %d attempt(s): %s", attempts, last_error)

        raise EmbeddingServiceError(last_error, attempts)
