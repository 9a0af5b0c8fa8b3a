"""
Rulebook - Centralized Configuration
=====================================
Every knob of the pipeline (chunking, embedding retries, retrieval
floors and boosts, model preferences) is a ``BaseSettings`` field read
from the environment or the project ``.env``.

Components never read configuration from module state.  An entry point
builds one ``Settings`` object (usually via ``get_settings()``) and passes
it into every component constructor, so tests can build their own
instance pointing at fakes.

Security
--------
- ``GOOGLE_API_KEY`` is a ``SecretStr`` without a default.
  If the key is missing, Pydantic raises a ``ValidationError`` with a
  clear message.  The raw value never appears in reprs or log lines.
- ``MONGO_URI`` is also ``SecretStr``; connection strings carry credentials.

Retrieval thresholds
--------------------
The answer path and the exploratory search path use different similarity
floors (``ANSWER_SIMILARITY_FLOOR`` / ``SEARCH_SIMILARITY_FLOOR``).  They
are kept as two separate knobs.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_FILE = Path(__file__).resolve().parent.parent.parent / ".env"


class Settings(BaseSettings):
    """
    Pipeline settings: storage, ingestion, embedding, generation, retrieval.

    Fields *without* a default are **required**.

    Attributes
    ----------
    GOOGLE_API_KEY : SecretStr
        Gemini key used for both embeddings and generation.  **Required.**
    MONGO_URI : SecretStr
        MongoDB connection string for the query log.  **Required.**
    CHUNK_SIZE : int
        Soft upper bound, in characters, for one passage.
    CHUNK_OVERLAP_WORDS : int
        Words carried from the end of one passage into the next.
    INGEST_BATCH_SIZE : int
        Chunks embedded and stored concurrently per batch.
    INGEST_BATCH_DELAY_SECONDS : float
        Pause between batches (external rate limits).
    PREFERRED_MODELS : list[str]
        Generation models tried first, in order, when available.
    """

    # ── Resolved Absolute Paths ────────────────────────────────────────
    BASE_DIR: Path = Path(__file__).resolve().parent.parent
    DATA_RAW_DIR: Path = BASE_DIR / "data" / "raw"
    LANCEDB_PATH: Path = BASE_DIR / "data" / "lancedb"

    # ── Environment Mode ───────────────────────────────────────────────
    ENV: Literal["dev", "prod"] = "dev"

    # ── API Keys (REQUIRED, no default) ───────────────────────────────
    GOOGLE_API_KEY: SecretStr

    # ── MongoDB query log (REQUIRED, no default) ──────────────────────
    MONGO_URI: SecretStr
    MONGO_DB_NAME: str = "rulebook"
    QUERY_LOG_COLLECTION: str = "user_queries"

    # ── LanceDB passage store ──────────────────────────────────────────
    LANCEDB_TABLE_NAME: str = "passages"

    # ── Ingestion Parameters ───────────────────────────────────────────
    DEFAULT_TITLE: str = "Student Resource Book"
    DEFAULT_CATEGORY: str = "University Policy"
    CHUNK_SIZE: int = 1200
    CHUNK_OVERLAP_WORDS: int = 120
    INGEST_BATCH_SIZE: int = 5
    INGEST_BATCH_DELAY_SECONDS: float = 1.0

    # ── Embedding ──────────────────────────────────────────────────────
    EMBEDDING_MODEL: str = "models/gemini-embedding-001"
    EMBEDDING_MAX_INPUT_CHARS: int = 30_000
    EMBEDDING_RETRIES: int = 3
    EMBEDDING_BACKOFF_BASE: float = 2.0

    # ── Generation ─────────────────────────────────────────────────────
    LLM_TEMPERATURE: float = 0.2
    LLM_MAX_OUTPUT_TOKENS: int = 192
    GENERATION_CAPABILITY: str = "generateContent"
    PREFERRED_MODELS: list[str] = [
        "models/gemini-2.5-flash",
        "models/gemini-2.5-flash-lite",
        "models/gemini-1.5-flash",
        "models/gemini-1.5-flash-latest",
    ]
    PREFERRED_MODEL_PATTERN: str = r"gemini-.*flash"

    # ── Retrieval ──────────────────────────────────────────────────────
    ANSWER_SIMILARITY_FLOOR: float = 0.05
    SEARCH_SIMILARITY_FLOOR: float = 0.1
    DEFAULT_TOP_K: int = 3
    TOP_K_MIN: int = 3
    TOP_K_MAX: int = 6
    NUMERIC_BOOST: float = 0.02
    KEYWORD_BOOST: float = 0.02
    NEIGHBOR_OFFSETS: list[int] = [-1, 1, -2, 2]
    MAX_CONTEXT_PASSAGES: int = 10
    DEDUP_PREFIX_CHARS: int = 120
    FALLBACK_RESULTS_LIMIT: int = 8
    DEFAULT_SEARCH_LIMIT: int = 5

    # ── Validators ─────────────────────────────────────────────────────

    @field_validator("CHUNK_SIZE", "CHUNK_OVERLAP_WORDS", "EMBEDDING_MAX_INPUT_CHARS", "EMBEDDING_RETRIES", "MAX_CONTEXT_PASSAGES")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"value must be ≥ 1, got {v}")
        return v


    @field_validator("INGEST_BATCH_SIZE")
    @classmethod
    def _batch_range(cls, v: int) -> int:
        if not 1 <= v <= 32:
            raise ValueError(f"INGEST_BATCH_SIZE must be 1-32, got {v}")
        return v


    @model_validator(mode="after")
    def _top_k_bounds(self) -> "Settings":
        if self.TOP_K_MIN < 1 or self.TOP_K_MIN > self.TOP_K_MAX:
            raise ValueError(f"TOP_K bounds invalid: min={self.TOP_K_MIN}, max={self.TOP_K_MAX}")
        return self

    # ── Pydantic Settings Configuration ────────────────────────────────
    model_config = SettingsConfigDict(env_file=_ENV_FILE, env_file_encoding="utf-8", extra="ignore")


class _RuntimeMode(BaseSettings):
    """Just the ``ENV`` switch, readable without any secrets present."""

    ENV: Literal["dev", "prod"] = "dev"

    model_config = SettingsConfigDict(env_file=_ENV_FILE, env_file_encoding="utf-8", extra="ignore")


def runtime_mode() -> str:
    """Return ``"dev"`` or ``"prod"`` from the environment / ``.env``."""
    return _RuntimeMode().ENV


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build (once) the settings object used by the command-line entry points."""
    return Settings()
