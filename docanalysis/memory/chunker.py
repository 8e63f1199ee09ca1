# docanalysis/memory/chunker.py

import logging
import math
import re
from typing import List, Tuple

from docanalysis.config import (
    CHARS_PER_TOKEN,
    CHUNK_MAX_TOKENS,
    CHUNK_OVERLAP_TOKENS,
    MIN_CHUNK_CHARS,
)

logger = logging.getLogger(__name__)


_PARAGRAPH_BREAK = re.compile(r"\n[ \t]*\n\s*")
_SENTENCE_BREAK = re.compile(r"(?<=[.!?…])\s+")
_SENTENCE_END = re.compile(r"[.!?…]\s+")
_WHITESPACE = re.compile(r"\s+")

PARAGRAPH_SEPARATOR = "\n\n"
SENTENCE_SEPARATOR = " "


def estimate_tokens(text: str, chars_per_token: int = CHARS_PER_TOKEN) -> int:
    """
    Approximate token count: one token per `chars_per_token` characters.
    """
    if not text:
        return 0
    return math.ceil(len(text) / chars_per_token)


def _split_sentences(paragraph: str) -> List[str]:
    sentences = [s.strip() for s in _SENTENCE_BREAK.split(paragraph) if s.strip()]
    return sentences or [paragraph]


def _overlap_tail(text: str, overlap_tokens: int, chars_per_token: int) -> str:
    """
    Last `overlap_tokens` worth of `text`, starting on a sentence boundary
    when the tail contains one, otherwise on a word boundary.
    """
    if overlap_tokens <= 0 or not text:
        return ""

    budget = overlap_tokens * chars_per_token

    if len(text) <= budget:
        return text

    start = len(text) - budget
    tail = text[start:]

    # already cut on whitespace
    if text[start - 1].isspace():
        return tail.strip()

    sentence_end = _SENTENCE_END.search(tail)
    if sentence_end:
        return tail[sentence_end.end():].strip()

    word_break = _WHITESPACE.search(tail)
    if word_break:
        return tail[word_break.end():].strip()

    # a single word longer than the budget
    return ""


def _units(text: str, max_tokens: int, chars_per_token: int) -> List[Tuple[str, str]]:
    """
    Paragraphs, with oversized paragraphs broken into sentences.

    Each unit carries the separator that joins it to the previous one.
    """
    units: List[Tuple[str, str]] = []

    for paragraph in _PARAGRAPH_BREAK.split(text):

        paragraph = paragraph.strip()

        if not paragraph:
            continue

        if estimate_tokens(paragraph, chars_per_token) <= max_tokens:
            units.append((paragraph, PARAGRAPH_SEPARATOR))
            continue

        for i, sentence in enumerate(_split_sentences(paragraph)):
            units.append(
                (sentence, PARAGRAPH_SEPARATOR if i == 0 else SENTENCE_SEPARATOR)
            )

    return units


def chunk_text(
    text: str,
    max_tokens: int = CHUNK_MAX_TOKENS,
    overlap_tokens: int = CHUNK_OVERLAP_TOKENS,
    chars_per_token: int = CHARS_PER_TOKEN,
    min_chunk_chars: int = MIN_CHUNK_CHARS,
) -> List[str]:
    """
    Split text into overlapping chunks bounded by an estimated token budget.

    Paragraphs are packed first; a paragraph over budget is split into
    sentences. When the next unit would overflow the buffer, the buffer is
    emitted and the new buffer starts with the tail of the emitted chunk.

    Guarantees:
    • deterministic chunk generation
    • a unit larger than `max_tokens` is emitted alone, never dropped
    • only a single oversized unit ever exceeds `max_tokens`
    • chunks shorter than `min_chunk_chars` are discarded as noise
    """

    # ============================================================
    # SAFETY CHECKS
    # ============================================================

    if max_tokens <= 0:
        raise ValueError(f"Invalid max_tokens: {max_tokens}")

    if overlap_tokens < 0:
        raise ValueError(f"Invalid overlap_tokens: {overlap_tokens}")

    if overlap_tokens >= max_tokens:
        raise ValueError(
            f"Overlap must be smaller than max_tokens "
            f"(overlap_tokens={overlap_tokens}, max_tokens={max_tokens})"
        )

    if chars_per_token <= 0:
        raise ValueError(f"Invalid chars_per_token: {chars_per_token}")

    if not text or not text.strip():
        logger.warning("Chunking skipped: empty text")
        return []

    normalized = text.replace("\r\n", "\n").replace("\r", "\n")

    units = _units(normalized, max_tokens, chars_per_token)

    # ============================================================
    # PACKING LOOP
    # ============================================================

    chunks: List[str] = []
    buffer = ""
    # buffer holds text not yet emitted (not just an overlap seed)
    fresh = False

    for unit, separator in units:

        if estimate_tokens(unit, chars_per_token) > max_tokens:

            if fresh:
                chunks.append(buffer)

            chunks.append(unit)

            buffer = _overlap_tail(unit, overlap_tokens, chars_per_token)
            fresh = False
            continue

        candidate = f"{buffer}{separator}{unit}" if buffer else unit

        if fresh and estimate_tokens(candidate, chars_per_token) > max_tokens:

            chunks.append(buffer)

            seed = _overlap_tail(buffer, overlap_tokens, chars_per_token)
            candidate = f"{seed}{separator}{unit}" if seed else unit

        # overlap seed does not fit alongside this unit
        if estimate_tokens(candidate, chars_per_token) > max_tokens:
            candidate = unit

        buffer = candidate
        fresh = True

    if fresh:
        chunks.append(buffer)

    kept = [c.strip() for c in chunks if len(c.strip()) >= min_chunk_chars]

    logger.info(
        "Chunking completed",
        extra={
            "total_chars": len(text),
            "max_tokens": max_tokens,
            "overlap_tokens": overlap_tokens,
            "chunks_created": len(kept),
            "chunks_discarded": len(chunks) - len(kept),
        },
    )

    return kept
