"""Content chunker - deterministic text splitting for provider requests."""

import re
from dataclasses import dataclass

from backend.app.generation.errors import ChunkingError
from backend.app.models.questions import Section

_PARAGRAPH_BREAK = re.compile(r"\n[^\S\n]*\n")
_WHITESPACE_RUN = re.compile(r"\s+")
_SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+")

# Upper bounds of each fractional position band, in document order.
_SECTION_BANDS: tuple[tuple[float, Section], ...] = (
    (0.2, Section.beginning),
    (0.4, Section.early_middle),
    (0.6, Section.middle),
    (0.8, Section.late_middle),
)


@dataclass(frozen=True)
class Chunk:
    """Ordered slice of normalized content (index is 1-based)."""

    index: int
    total: int
    text: str

    @property
    def section(self) -> Section:
        """Position band of this chunk within the document."""
        return section_for_position(self.index - 1, self.total)


def normalize_whitespace(text: str) -> str:
    """Collapse every whitespace run to a single space and strip the ends."""
    return _WHITESPACE_RUN.sub(" ", text).strip()


def section_for_position(position: int, total: int) -> Section:
    """Map a 0-based position within ``total`` items to one of five bands."""
    if total <= 0:
        return Section.beginning
    fraction = position / total
    for upper, section in _SECTION_BANDS:
        if fraction < upper:
            return section
    return Section.end


def split_sentences(paragraph: str) -> list[str]:
    """Split a whitespace-normalized paragraph after ``.``, ``?`` or ``!``."""
    return [s for s in _SENTENCE_BREAK.split(paragraph) if s]


def chunk_content(text: str, max_chunk_size: int) -> list[Chunk]:
    """Chunk content into ordered, size-bounded segments.

    Pure function with no I/O or randomness. Paragraphs (separated by blank
    lines) are whitespace-normalized and packed greedily into chunks joined
    by single spaces. A paragraph longer than ``max_chunk_size`` is split on
    sentence boundaries and packed the same way; a single sentence longer
    than the limit is emitted whole.

    Args:
        text: Raw extracted document text
        max_chunk_size: Maximum characters per chunk

    Returns:
        Chunks with 1-based indexes; ``" ".join(c.text for c in chunks)``
        equals ``normalize_whitespace(text)``.

    Raises:
        ChunkingError: If the content is empty or whitespace only
        ValueError: If max_chunk_size is not positive
    """
    if max_chunk_size <= 0:
        raise ValueError("max_chunk_size must be positive")

    if not text or not text.strip():
        raise ChunkingError("Content is empty; nothing to generate questions from")

    unified = text.replace("\r\n", "\n").replace("\r", "\n")
    paragraphs = [normalize_whitespace(p) for p in _PARAGRAPH_BREAK.split(unified)]
    paragraphs = [p for p in paragraphs if p]

    texts: list[str] = []
    parts: list[str] = []
    length = 0

    def flush() -> None:
        nonlocal length
        if parts:
            texts.append(" ".join(parts))
            parts.clear()
            length = 0

    def add(piece: str) -> None:
        nonlocal length
        if parts and length + 1 + len(piece) > max_chunk_size:
            flush()
        if parts:
            length += 1  # joining space
        parts.append(piece)
        length += len(piece)

    for paragraph in paragraphs:
        if len(paragraph) <= max_chunk_size:
            add(paragraph)
            continue

        flush()
        for sentence in split_sentences(paragraph):
            add(sentence)
        flush()

    flush()

    total = len(texts)
    return [Chunk(index=i + 1, total=total, text=chunk_text) for i, chunk_text in enumerate(texts)]
