"""
Rulebook - Paragraph/Sentence Chunker
======================================
Splits normalised text into overlapping, bounded-size passages.

Strategy (``paragraph_sentence_overlap``):
    1. Paragraphs (blank-line separated) are the preferred cut points.
    2. Inside a paragraph, text is split into sentences with a boundary
       heuristic: ``.``/``!``/``?`` followed by whitespace and an
       uppercase letter, digit, quote, ``*`` or ``(``.  Abbreviations
       followed by a lowercase word are therefore not split, but this is
       not a full sentence tokenizer.
    3. Sentences accumulate in a buffer.  When the next sentence would
       overflow ``max_size`` the buffer is emitted and the next one is
       seeded with its last ``overlap_words`` words, so a rule straddling
       the cut can still be read in full from one passage.
    4. At the end of a paragraph a buffer above 90% of ``max_size`` is
       emitted without carry-over.
    5. Degenerate fragments shorter than ``min(60, max_size * 0.08)``
       characters are dropped.

``max_size`` is a soft bound: a single long sentence is never cut.
"""

from __future__ import annotations

import re

from rulebook.src.core.exceptions import ValidationError

DEFAULT_CHUNK_SIZE = 1200
DEFAULT_OVERLAP_WORDS = 120

_PARAGRAPH_SPLIT_RE = re.compile(r"\n{2,}")
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+(?=[A-Z0-9(\"'*“‘])")

_PARAGRAPH_FLUSH_RATIO = 0.9
_MIN_CHUNK_CHARS = 60
_MIN_CHUNK_RATIO = 0.08


def split_paragraphs(text: str) -> list[str]:
    return [p.strip() for p in _PARAGRAPH_SPLIT_RE.split(text) if p.strip()]


def split_sentences(paragraph: str) -> list[str]:
    return [s.strip() for s in _SENTENCE_SPLIT_RE.split(paragraph) if s.strip()]


def min_chunk_length(max_size: int) -> int:
    """Shortest chunk kept for a given ``max_size``."""
    return min(_MIN_CHUNK_CHARS, int(max_size * _MIN_CHUNK_RATIO))


def tail_words(text: str, count: int) -> str:
    """The last *count* words of *text*, joined by single spaces."""
    words = text.split()
    return " ".join(words[-count:]) if count > 0 else ""


def chunk_text(text: str, max_size: int = DEFAULT_CHUNK_SIZE, overlap_words: int = DEFAULT_OVERLAP_WORDS) -> list[str]:
    """
    Split normalised *text* into overlapping passages.

    Parameters
    ----------
    text
        Output of ``text_utils.normalize``.
    max_size
        Soft upper bound in characters.
    overlap_words
        Words carried over from one passage into the next.

    Returns
    -------
    list[str]
        Passages in document order.

    Raises
    ------
    ValidationError
        If ``max_size`` or ``overlap_words`` is not a positive integer.
    """
    if max_size < 1:
        raise ValidationError(f"max_size must be positive, got {max_size}", field="max_size")
    if overlap_words < 1:
        raise ValidationError(f"overlap_words must be positive, got {overlap_words}", field="overlap_words")

    chunks: list[str] = []
    buffer = ""

    for paragraph in split_paragraphs(text):
        for sentence in split_sentences(paragraph):
            added = len(sentence) + (1 if buffer else 0)
            if buffer and len(buffer) + added > max_size:
                chunks.append(buffer.strip())
                buffer = tail_words(buffer, overlap_words)
            buffer = f"{buffer} {sentence}" if buffer else sentence

        if len(buffer) > max_size * _PARAGRAPH_FLUSH_RATIO:
            chunks.append(buffer.strip())
            buffer = ""

    if buffer.strip():
        chunks.append(buffer.strip())

    floor = min_chunk_length(max_size)
    return [c for c in chunks if len(c) >= floor]
