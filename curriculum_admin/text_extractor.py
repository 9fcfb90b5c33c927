"""Plain-text extraction from PDF using PyMuPDF and pdfplumber"""
import io
import logging

import fitz  # PyMuPDF
import pdfplumber

from .errors import UnreadableDocument

logger = logging.getLogger(__name__)


class TextExtractor:
    """Extracts the text of a PDF, page by page"""

    def __init__(self):
        self.use_pymupdf = True  # Prefer PyMuPDF for better performance

    def extract(self, pdf_bytes: bytes) -> str:
        """
        Extract text from PDF bytes

        Args:
            pdf_bytes: PDF file as bytes

        Returns:
            Text of all pages joined by blank lines (may be blank for scans)

        Raises:
            UnreadableDocument: when neither backend can open the file
        """
        try:
            if self.use_pymupdf:
                return self._extract_pymupdf(pdf_bytes)
            return self._extract_pdfplumber(pdf_bytes)
        except Exception as e:
            if not self.use_pymupdf:
                raise UnreadableDocument(f"Failed to extract text from PDF: {e}") from e
            # Fallback to pdfplumber if PyMuPDF fails
            logger.warning("PyMuPDF could not read document, trying pdfplumber: %s", e)
            try:
                return self._extract_pdfplumber(pdf_bytes)
            except Exception as fallback_error:
                raise UnreadableDocument(
                    f"Failed to extract text from PDF: {e}"
                ) from fallback_error

    def _extract_pymupdf(self, pdf_bytes: bytes) -> str:
        """Extract using PyMuPDF (fitz)"""
        pages = []
        with fitz.open(stream=pdf_bytes, filetype="pdf") as doc:
            for page in doc:
                pages.append(page.get_text("text").strip())
        return "\n\n".join(p for p in pages if p)

    def _extract_pdfplumber(self, pdf_bytes: bytes) -> str:
        """Extract using pdfplumber (fallback)"""
        pages = []
        with pdfplumber.open(io.BytesIO(pdf_bytes)) as pdf:
            for page in pdf.pages:
                text = page.extract_text() or ""
                pages.append(text.strip())
        return "\n\n".join(p for p in pages if p)
