"""Sentence-boundary text chunker.

Long passages are split into segments no larger than ``max_size`` (characters
or words) so each fits one evaluation prompt. A segment boundary never falls
inside a sentence; a sentence longer than ``max_size`` becomes its own
oversized segment rather than being truncated.
"""

from __future__ import annotations

import re

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")

CHUNK_UNITS = ("chars", "words")


def split_sentences(text: str) -> list[str]:
    """Split on whitespace that follows ``.``, ``!`` or ``?``; drop empties."""
    return [s for s in (part.strip() for part in _SENTENCE_SPLIT.split(text)) if s]


def text_size(text: str, unit: str = "chars") -> int:
    """Size of ``text`` in the given unit."""
    if unit == "chars":
        return len(text)
    if unit == "words":
        return len(text.split())
    raise ValueError(f"Unknown chunk unit: {unit!r} (expected one of {CHUNK_UNITS})")


def chunk_text(text: str, max_size: int, unit: str = "chars") -> list[str]:
    """Split ``text`` into sentence-aligned chunks.

    Returns ``[text]`` unchanged when it already fits. Otherwise sentences are
    packed greedily and joined with a single space, so re-splitting the
    chunks yields the original sentence sequence.
    """
    if max_size <= 0:
        raise ValueError("max_size must be positive")
    if text_size(text, unit) <= max_size:
        return [text]

    # A separating space counts toward the char budget, not the word budget
    joiner = 1 if unit == "chars" else 0

    chunks: list[str] = []
    current: list[str] = []
    current_size = 0

    for sentence in split_sentences(text):
        size = text_size(sentence, unit)
        if current and current_size + joiner + size > max_size:
            chunks.append(" ".join(current))
            current, current_size = [], 0
        if current:
            current_size += joiner
        current.append(sentence)
        current_size += size

    if current:
        chunks.append(" ".join(current))
    # Whitespace-only input has no sentences
    return chunks or [text]
