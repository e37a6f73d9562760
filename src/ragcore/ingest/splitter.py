"""Text segmenter — paragraph → sentence → word splitting with overlap.

Pipeline for one document's plain text:
  1. Split on blank lines into paragraphs; a paragraph that fits chunk_size
     becomes a candidate as-is.
  2. Longer paragraphs are split at sentence boundaries (terminal
     punctuation kept) and sentences accumulated up to chunk_size.
  3. A sentence longer than chunk_size is accumulated word by word; a single
     word longer than chunk_size is truncated.
  4. Candidates shorter than chunk_size / 2 absorb their successors while the
     merged text still fits.
  5. Every chunk after the first is prefixed with the tail of the previous
     chunk, clipped so the result never exceeds chunk_size.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)

_PARAGRAPH_RE = re.compile(r"\n\s*\n")
_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+")


@dataclass(frozen=True)
class TextChunk:
    """One segment of a document.

    Attributes:
        index: 0-based position in the final chunk sequence.
        text: Chunk text including any prepended overlap.
        overlap_chars: Length of the overlap prefix copied from the previous
            chunk (0 for the first chunk). The prefix is followed by a single
            joining space.
    """

    index: int
    text: str
    overlap_chars: int = 0

    @property
    def body(self) -> str:
        """The chunk text without the prepended overlap."""
        if self.overlap_chars == 0:
            return self.text
        return self.text[self.overlap_chars + 1 :]


class TextSplitter:
    """Split plain text into bounded, overlapping chunks.

    Args:
        chunk_size: Maximum characters per chunk, overlap included.
        chunk_overlap: Characters carried from the end of one chunk into the
            start of the next.
    """

    def __init__(self, chunk_size: int = 3000, chunk_overlap: int = 200) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        if not 0 <= chunk_overlap < chunk_size:
            raise ValueError("chunk_overlap must be in [0, chunk_size)")
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap

    def split(self, text: str | None) -> list[TextChunk]:
        """Return the ordered chunks of *text* (empty for empty/blank input)."""
        if not text or not text.strip():
            return []

        candidates: list[str] = []
        for paragraph in _PARAGRAPH_RE.split(text):
            paragraph = paragraph.strip()
            if not paragraph:
                continue
            if len(paragraph) <= self.chunk_size:
                candidates.append(paragraph)
            else:
                candidates.extend(self._split_sentences(paragraph))

        merged = self._merge_small(candidates)
        chunks = self._apply_overlap(merged)
        logger.debug("Split %d chars into %d chunks", len(text), len(chunks))
        return chunks

    # ------------------------------------------------------------------
    # Splitting
    # ------------------------------------------------------------------

    def _split_sentences(self, paragraph: str) -> list[str]:
        parts: list[str] = []
        current = ""
        for sentence in _SENTENCE_RE.split(paragraph):
            sentence = sentence.strip()
            if not sentence:
                continue
            if self._fits(current, sentence):
                current = f"{current} {sentence}" if current else sentence
                continue
            if current:
                parts.append(current)
                current = ""
            if len(sentence) > self.chunk_size:
                parts.extend(self._split_words(sentence))
            else:
                current = sentence
        if current:
            parts.append(current)
        return parts

    def _split_words(self, sentence: str) -> list[str]:
        parts: list[str] = []
        current = ""
        for word in sentence.split():
            if self._fits(current, word):
                current = f"{current} {word}" if current else word
                continue
            if current:
                parts.append(current)
                current = ""
            if len(word) > self.chunk_size:
                logger.debug("Truncating %d-char word to chunk_size", len(word))
                parts.append(word[: self.chunk_size])
            else:
                current = word
        if current:
            parts.append(current)
        return parts

    def _fits(self, current: str, addition: str) -> bool:
        if not current:
            return len(addition) <= self.chunk_size
        return len(current) + 1 + len(addition) <= self.chunk_size

    # ------------------------------------------------------------------
    # Post-passes
    # ------------------------------------------------------------------

    def _merge_small(self, candidates: list[str]) -> list[str]:
        merged: list[str] = []
        i = 0
        while i < len(candidates):
            current = candidates[i]
            i += 1
            while (
                len(current) < self.chunk_size / 2
                and i < len(candidates)
                and self._fits(current, candidates[i])
            ):
                current = f"{current} {candidates[i]}"
                i += 1
            merged.append(current)
        return merged

    def _apply_overlap(self, bodies: list[str]) -> list[TextChunk]:
        chunks: list[TextChunk] = []
        for index, body in enumerate(bodies):
            prefix = ""
            if index > 0 and self.chunk_overlap > 0:
                previous = bodies[index - 1]
                if len(previous) >= self.chunk_overlap:
                    room = min(self.chunk_overlap, self.chunk_size - len(body) - 1)
                    if room > 0:
                        prefix = previous[-room:]
            if prefix:
                chunks.append(TextChunk(index, f"{prefix} {body}", len(prefix)))
            else:
                chunks.append(TextChunk(index, body))
        return chunks
