from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ChunkOptions:
    """Sizing for the sentence-aware chunker.

    `overlap >= chunk_size` is accepted: the progress guard then turns the
    overlap off and chunks tile the text back to back.
    """

    chunk_size: int = 1000
    overlap: int = 200

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.overlap < 0:
            raise ValueError(f"overlap must not be negative, got {self.overlap}")


@dataclass(frozen=True)
class TextChunk:
    """A trimmed slice of the source text and its `[start, end)` offsets."""

    content: str
    start_index: int
    end_index: int


@dataclass(frozen=True)
class PageChunk(TextChunk):
    """A chunk attributed to a single 1-based source page."""

    page_number: int = 1
