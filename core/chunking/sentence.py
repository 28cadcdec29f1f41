from __future__ import annotations

import re
from typing import Sequence

from .models import ChunkOptions, PageChunk, TextChunk


SENTENCE_SEARCH_WINDOW = 100
MIN_CHUNK_FRACTION = 0.5

_RE_SENTENCE_END = re.compile(r"[.!?]\s+")


def _sentence_boundary(text: str, *, start: int, end: int, chunk_size: int) -> int:
    window_start = max(0, end - SENTENCE_SEARCH_WINDOW)
    match = _RE_SENTENCE_END.search(text, window_start, end + SENTENCE_SEARCH_WINDOW)
    if match is None:
        return end
    # Break right after the punctuation mark; leading whitespace goes to the next chunk.
    boundary = match.start() + 1
    if boundary > start + chunk_size * MIN_CHUNK_FRACTION:
        return boundary
    return end


def chunk_text(text: str, options: ChunkOptions | None = None) -> list[TextChunk]:
    """Split text into overlapping chunks, preferring sentence boundaries.

    Each window is `chunk_size` characters long unless a sentence terminator
    (`.`, `!` or `?` followed by whitespace) sits within 100 characters of the
    raw boundary, in which case the chunk ends right after it, provided the
    chunk stays longer than half of `chunk_size`. Consecutive windows share
    `overlap` characters. Blank windows are dropped, and the window that reaches
    the end of the text is the last one.

    Args:
        text: Source text, may be empty.
        options: Chunk sizing; defaults to 1000 characters with 200 overlap.

    Returns:
        Chunks in document order with strictly increasing start offsets.
    """
    opts = options or ChunkOptions()
    length = len(text)

    if length <= opts.chunk_size:
        content = text.strip()
        if not content:
            return []
        return [TextChunk(content=content, start_index=0, end_index=length)]

    chunks: list[TextChunk] = []
    start = 0
    while start < length:
        end = min(start + opts.chunk_size, length)
        if end < length:
            end = _sentence_boundary(text, start=start, end=end, chunk_size=opts.chunk_size)

        content = text[start:end].strip()
        if content:
            chunks.append(TextChunk(content=content, start_index=start, end_index=end))
        # Anything after this window would be a suffix of it.
        if end == length:
            break

        next_start = end - opts.overlap
        # Measured against this window's start, not the last emitted chunk: a blank
        # trailing run longer than `overlap` would otherwise be revisited forever.
        if next_start <= start:
            next_start = end
        start = next_start

    return chunks


def chunk_text_by_pages(text_by_page: Sequence[str], options: ChunkOptions | None = None) -> list[PageChunk]:
    """Chunk each page on its own so no chunk crosses a page boundary.

    Blank pages yield nothing but still count towards page numbering.
    """
    out: list[PageChunk] = []
    for index, page_text in enumerate(text_by_page):
        if not (page_text or "").strip():
            continue
        for chunk in chunk_text(page_text, options):
            out.append(
                PageChunk(
                    content=chunk.content,
                    start_index=chunk.start_index,
                    end_index=chunk.end_index,
                    page_number=index + 1,
                )
            )
    return out
