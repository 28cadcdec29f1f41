from __future__ import annotations

from dataclasses import dataclass
import logging
import re
import unicodedata

import ftfy
import pypdfium2 as pdfium


log = logging.getLogger("pdfchat.ingest")


@dataclass(frozen=True)
class PdfPageText:
    page: int
    text: str


class PdfExtractionError(RuntimeError):
    """The bytes could not be opened or read as a PDF."""


_RE_CONTROL = re.compile(r"[\u0000-\u0008\u000B\u000C\u000E-\u001F\u007F]")


def _clean_extracted_text(text: str) -> str:
    if not text:
        return ""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    # Remove control chars (keep \n and \t).
    text = _RE_CONTROL.sub("", text)
    # Soft hyphens are common in PDF text layers.
    text = text.replace("\u00ad", "")
    text = ftfy.fix_text(text)
    # Normalize ligatures / compatibility chars.
    text = unicodedata.normalize("NFKC", text)
    # Collapse excessive whitespace while preserving paragraphs.
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def _read_page_text(doc: pdfium.PdfDocument, index: int) -> str:
    page = doc[index]
    try:
        text_page = page.get_textpage()
        try:
            return text_page.get_text_range() or ""
        finally:
            text_page.close()
    finally:
        page.close()


def extract_pdf_text_pages(data: bytes) -> list[PdfPageText]:
    """Extract cleaned text for every page, blank pages included.

    Blank pages are kept with empty text so page numbers stay aligned with the
    source document.
    """
    try:
        doc = pdfium.PdfDocument(data)
    except (pdfium.PdfiumError, OSError, ValueError) as e:
        raise PdfExtractionError(f"Unable to open PDF: {e}") from e

    try:
        out: list[PdfPageText] = []
        for index in range(len(doc)):
            try:
                raw = _read_page_text(doc, index)
            except pdfium.PdfiumError as e:
                raise PdfExtractionError(f"Unable to read page {index + 1}: {e}") from e
            out.append(PdfPageText(page=index + 1, text=_clean_extracted_text(raw)))
    finally:
        doc.close()

    blank = sum(1 for p in out if not p.text)
    log.debug("pdf_extract pages=%s blank_pages=%s", len(out), blank)
    return out
