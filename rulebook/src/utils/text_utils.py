"""
Rulebook - Text Utilities
==========================
Normalisation of raw policy text before chunking.

Text handed to the pipeline usually comes out of a PDF extractor, so it
carries layout artefacts: hard line breaks in the middle of sentences,
words hyphenated across lines, soft hyphens, and ragged whitespace.
``normalize`` undoes those while keeping blank-line paragraph breaks,
which the chunker relies on as preferred cut points.

These helpers are stateless and side-effect-free.
"""

from __future__ import annotations

import re

_BOM = "\ufeff"
_SOFT_HYPHEN = "\u00ad"

_LINE_BREAK_RE = re.compile(r"\r\n?")
_LINE_EDGE_WS_RE = re.compile(r"[^\S\n]*\n[^\S\n]*")
_HYPHEN_BREAK_RE = re.compile(r"([^\W\d_])-\n([^\W\d_])")
_EXCESS_BLANK_LINES_RE = re.compile(r"\n{3,}")
_LAYOUT_BREAK_RE = re.compile(r"([^\n])\n(?!\n)")
_HORIZONTAL_WS_RE = re.compile(r"[^\S\n]+")
_WORD_RE = re.compile(r"\S+")


def normalize(raw: str) -> str:
    """
    Clean raw extracted text for chunking.

    Steps:
        1. Strip a leading byte-order mark.
        2. Normalise ``\\r\\n`` / ``\\r`` line breaks to ``\\n`` and drop
           spaces hugging them (whitespace-only lines become blank).
        3. Remove soft hyphens.
        4. Rejoin words hyphenated across a line break
           (``regu-\\nlation`` → ``regulation``).
        5. Collapse 3+ consecutive newlines to one blank line.
        6. Replace single (layout) newlines with a space.
        7. Collapse runs of horizontal whitespace to one space.
        8. Trim.

    Never raises; empty input gives an empty string.
    """
    if not raw:
        return ""

    text = raw[1:] if raw.startswith(_BOM) else raw
    text = _LINE_BREAK_RE.sub("\n", text)
    text = _LINE_EDGE_WS_RE.sub("\n", text)
    text = text.replace(_SOFT_HYPHEN, "")
    text = _HYPHEN_BREAK_RE.sub(r"\1\2", text)
    text = _EXCESS_BLANK_LINES_RE.sub("\n\n", text)
    text = _LAYOUT_BREAK_RE.sub(r"\1 ", text)
    text = _HORIZONTAL_WS_RE.sub(" ", text)
    return text.strip()


def count_words(text: str) -> int:
    """Number of whitespace-separated words in *text*."""
    return len(_WORD_RE.findall(text))
