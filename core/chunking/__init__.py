from __future__ import annotations

from .models import ChunkOptions, PageChunk, TextChunk
from .sentence import chunk_text, chunk_text_by_pages

__all__ = [
    "ChunkOptions",
    "PageChunk",
    "TextChunk",
    "chunk_text",
    "chunk_text_by_pages",
]
