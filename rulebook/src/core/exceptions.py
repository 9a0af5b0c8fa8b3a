"""
Rulebook - Exception Hierarchy
===============================
Every error raised by the pipeline derives from ``RulebookError`` and
carries a ``details`` dict for logging.  Adapters wrap third-party
exceptions (LanceDB, motor, google-genai, LangChain) into this taxonomy
at the boundary.

Propagation:
    • ``ValidationError`` / ``NotFoundError`` surface immediately, no retry.
    • ``EmbeddingServiceError`` is raised only after the retry budget is spent.
    • ``GenerationError`` is raised only after every model candidate failed.
    • ``StoreError`` wraps persistence failures.
"""

from typing import Any


class RulebookError(Exception):
    """Base exception for all Rulebook errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ValidationError(RulebookError):
    """Missing or empty required input."""

    def __init__(self, message: str, field: str | None = None, details: dict[str, Any] | None = None) -> None:
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, details)


class EmbeddingServiceError(RulebookError):
    """The embedding service kept failing after every retry."""

    def __init__(self, last_error: str, attempts: int, details: dict[str, Any] | None = None) -> None:
        details = details or {}
        details["attempts"] = attempts
        details["last_error"] = last_error
        self.last_error = last_error
        self.attempts = attempts
        super().__init__(f"Embedding failed after {attempts} attempt(s): {last_error}", details)


class GenerationError(RulebookError):
    """No candidate model produced an answer."""

    def __init__(self, last_error: str, tried_models: list[str] | None = None) -> None:
        self.last_error = last_error
        self.tried_models = tried_models or []
        super().__init__(f"Generation failed: {last_error}", {"tried_models": self.tried_models})


class StoreError(RulebookError):
    """Passage or query-log persistence failed."""


class NotFoundError(RulebookError):
    """No stored passage clears the similarity floor."""
