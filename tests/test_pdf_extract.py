"""
PDF extraction tests. pypdfium2 is replaced by small fakes at the document boundary.
"""

from __future__ import annotations

import pypdfium2 as pdfium
import pytest

from apps.ingest import pdf_extract
from apps.ingest.pdf_extract import PdfExtractionError, PdfPageText, _clean_extracted_text, extract_pdf_text_pages


class _FakeTextPage:
    def __init__(self, text):
        self._text = text
        self.closed = False

    def get_text_range(self):
        return self._text

    def close(self):
        self.closed = True


class _FakePage:
    def __init__(self, text):
        self._text = text
        self.closed = False

    def get_textpage(self):
        if isinstance(self._text, Exception):
            raise self._text
        return _FakeTextPage(self._text)

    def close(self):
        self.closed = True


class _FakeDocument:
    instances: list["_FakeDocument"] = []
    page_texts: list = []

    def __init__(self, data):
        self.data = data
        self.pages = [_FakePage(t) for t in self.page_texts]
        self.closed = False
        _FakeDocument.instances.append(self)

    def __len__(self):
        return len(self.pages)

    def __getitem__(self, index):
        return self.pages[index]

    def close(self):
        self.closed = True


@pytest.fixture
def fake_pdfium(monkeypatch):
    _FakeDocument.instances = []
    monkeypatch.setattr(pdf_extract.pdfium, "PdfDocument", _FakeDocument)
    return _FakeDocument


class TestCleanExtractedText:
    def test_normalizes_newlines_and_collapses_whitespace(self):
        raw = "Line one\r\nLine   two\t\tend\r\n\n\n\nNext paragraph"
        assert _clean_extracted_text(raw) == "Line one\nLine two end\n\nNext paragraph"

    def test_removes_control_chars_and_soft_hyphens(self):
        assert _clean_extracted_text("con\u00adtrol\u0007 text\u000c") == "control text"

    def test_normalizes_ligatures(self):
        assert _clean_extracted_text("ﬁnal oﬀer") == "final offer"

    def test_empty(self):
        assert _clean_extracted_text("") == ""
        assert _clean_extracted_text("   \n ") == ""


class TestExtractPdfTextPages:
    def test_pages_in_order_with_blank_pages_kept(self, fake_pdfium):
        fake_pdfium.page_texts = ["First  page.\r\n", "   ", "Third page."]
        pages = extract_pdf_text_pages(b"%PDF-1.7")

        assert pages == [
            PdfPageText(page=1, text="First page."),
            PdfPageText(page=2, text=""),
            PdfPageText(page=3, text="Third page."),
        ]
        doc = fake_pdfium.instances[0]
        assert doc.closed
        assert all(p.closed for p in doc.pages)

    def test_unopenable_bytes_raise_extraction_error(self, monkeypatch):
        def _boom(data):
            raise pdfium.PdfiumError("Failed to load document")

        monkeypatch.setattr(pdf_extract.pdfium, "PdfDocument", _boom)
        with pytest.raises(PdfExtractionError):
            extract_pdf_text_pages(b"not a pdf")

    def test_unreadable_page_raises_and_closes_document(self, fake_pdfium):
        fake_pdfium.page_texts = ["ok", pdfium.PdfiumError("bad page")]
        with pytest.raises(PdfExtractionError, match="page 2"):
            extract_pdf_text_pages(b"%PDF-1.7")
        assert fake_pdfium.instances[0].closed
