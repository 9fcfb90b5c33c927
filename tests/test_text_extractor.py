"""Tests for PDF text extraction."""
import fitz  # PyMuPDF
import pytest

from curriculum_admin.errors import UnreadableDocument
from curriculum_admin.text_extractor import TextExtractor


def build_pdf(*pages: str) -> bytes:
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        if text:
            page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


class TestTextExtractor:

    def test_extracts_text_from_every_page(self):
        pdf = build_pdf("EF01MA01 Contar objetos", "EF01MA02 Comparar quantidades")

        text = TextExtractor().extract(pdf)

        assert "EF01MA01" in text
        assert "EF01MA02" in text

    def test_blank_pdf_yields_blank_text(self):
        assert TextExtractor().extract(build_pdf("")).strip() == ""

    def test_pdfplumber_backend(self):
        extractor = TextExtractor()
        extractor.use_pymupdf = False

        assert "EF01MA01" in extractor.extract(build_pdf("EF01MA01 Contar objetos"))

    def test_garbage_bytes_are_unreadable(self):
        with pytest.raises(UnreadableDocument):
            TextExtractor().extract(b"this is not a pdf")
