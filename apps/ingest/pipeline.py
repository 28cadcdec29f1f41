from __future__ import annotations

from dataclasses import dataclass
import logging
import time
import uuid

from core.chunking import ChunkOptions, PageChunk, chunk_text_by_pages
from core.db import Db

from .pdf_extract import PdfPageText, extract_pdf_text_pages
from .store import save_document


log = logging.getLogger("pdfchat.ingest")


@dataclass(frozen=True)
class IngestResult:
    document_id: uuid.UUID
    filename: str
    page_count: int
    chunk_count: int


def chunk_pdf(data: bytes, options: ChunkOptions) -> tuple[list[PdfPageText], list[PageChunk]]:
    pages = extract_pdf_text_pages(data)
    chunks = chunk_text_by_pages([p.text for p in pages], options)
    return pages, chunks


def ingest_pdf(
    db: Db,
    *,
    filename: str,
    data: bytes,
    options: ChunkOptions,
    mime_type: str = "application/pdf",
) -> IngestResult:
    """Extract, chunk and persist one PDF.

    Raises:
        PdfExtractionError: The bytes are not a readable PDF.
        ValueError: The PDF has no extractable text.
    """
    started = time.monotonic()
    pages, chunks = chunk_pdf(data, options)
    if not chunks:
        raise ValueError(f"No text could be extracted from {filename!r}")

    document = save_document(
        db,
        filename=filename,
        mime_type=mime_type,
        data=data,
        page_count=len(pages),
        chunks=chunks,
    )
    log.info(
        "ingest_done document_id=%s filename=%s pages=%s chunks=%s chunk_size=%s overlap=%s dur_ms=%.1f",
        document.id,
        filename,
        len(pages),
        len(chunks),
        options.chunk_size,
        options.overlap,
        (time.monotonic() - started) * 1000.0,
    )
    return IngestResult(
        document_id=document.id,
        filename=document.filename,
        page_count=document.page_count,
        chunk_count=len(chunks),
    )
