"""Main extraction orchestrator"""
import asyncio
import logging
from typing import Optional

from .config import SUPPORTED_CONTENT_TYPES, EMPTY_TEXT_MESSAGE, NOT_IN_DOMAIN_MESSAGE
from .errors import ExtractionServiceError, UnreadableDocument, UnsupportedFormat
from .llm_client import LLMClient
from .models import Classified, Document, ExtractionOutcome, Failed
from .text_extractor import TextExtractor

logger = logging.getLogger(__name__)


class ExtractionOrchestrator:
    """Drives text extraction then structured extraction for one upload"""

    def __init__(self,
                 text_extractor: Optional[TextExtractor] = None,
                 llm_client: Optional[LLMClient] = None):
        self.text_extractor = text_extractor or TextExtractor()
        self.llm_client = llm_client or LLMClient()

    async def extract(self, document: Document) -> ExtractionOutcome:
        """
        Main extraction method

        Args:
            document: Uploaded document

        Returns:
            ``Classified`` or ``Failed``; never ``InProgress``

        Raises:
            UnsupportedFormat: if the document is not a PDF
        """
        # 1. Reject unsupported uploads before any external call
        if document.content_type not in SUPPORTED_CONTENT_TYPES:
            raise UnsupportedFormat(document.content_type, document.filename)

        # 2. Extract text; unreadable scans are classified, not failed
        try:
            text = await asyncio.to_thread(self.text_extractor.extract, document.data)
        except UnreadableDocument as e:
            logger.warning("No text extracted from %s: %s", document.filename, e)
            text = ""
        if not text or not text.strip():
            return Classified(is_in_domain=False, candidates=(), message=EMPTY_TEXT_MESSAGE)

        # 3. Structured extraction, no retry
        try:
            response = await self.llm_client.extract_candidates(text)
        except ExtractionServiceError as e:
            logger.error("Extraction failed for %s: %s", document.filename, e.message)
            return Failed(reason=e.message)

        # 4. Out-of-domain documents never carry candidates
        if not response.is_in_domain:
            if response.candidates:
                logger.info("Dropping %d candidate(s) from out-of-domain document %s",
                            len(response.candidates), document.filename)
            return Classified(
                is_in_domain=False,
                candidates=(),
                message=response.message or NOT_IN_DOMAIN_MESSAGE,
            )

        return Classified(
            is_in_domain=True,
            candidates=tuple(response.candidates),
            message=response.message or None,
        )
