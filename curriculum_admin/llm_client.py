"""LLM client for structured BNCC extraction"""
import json
import logging
from typing import Optional

from openai import AsyncOpenAI, OpenAIError
from pydantic import ValidationError as SchemaError

from .config import OPENAI_API_KEY, LLM_MODEL, MAX_TEXT_CHARS
from .errors import ExtractionServiceError
from .models import StructuredExtraction

logger = logging.getLogger(__name__)


PROMPT_TEMPLATE = """You are an expert on the Brazilian Base Nacional Comum Curricular (BNCC).
Analyze the document text below and decide whether it contains BNCC competencies or skills.

Document Text:
{document_text}

Instructions:
- Set "is_in_domain" to true only if the document lists BNCC skills identified by
  alphanumeric codes such as EF01MA01, EM13LGG101 or EI03TS01
- For every skill found, return one entry in "candidates" with:
  - "code": the alphanumeric BNCC code, exactly as written
  - "component": the curricular component (e.g. Matemática, Língua Portuguesa)
  - "description": the full text of the skill
  - "grade": the year/grade the skill belongs to (e.g. 1º Ano)
  - "thematic_unit": the thematic unit or field of experience
- Use an empty string for information that is not in the document
- Keep every entry even if a code appears more than once
- If the document is not related to the BNCC, return an empty "candidates" list
  and explain why in "message"

Return your response as a JSON object in this format:
{{
  "is_in_domain": true,
  "candidates": [
    {{"code": "EF01MA01", "component": "Matemática", "description": "...", "grade": "1º Ano", "thematic_unit": "Números"}}
  ],
  "message": ""
}}
"""


class LLMClient:
    """Client for OpenAI API (structured extraction)"""

    def __init__(self, client: Optional[AsyncOpenAI] = None, model: str = LLM_MODEL):
        if client is None:
            if not OPENAI_API_KEY:
                raise ValueError("OPENAI_API_KEY not set in environment variables")
            client = AsyncOpenAI(api_key=OPENAI_API_KEY)
        self.client = client
        self.model = model

    async def extract_candidates(self, document_text: str) -> StructuredExtraction:
        """
        Classify a document and extract BNCC candidate records

        Args:
            document_text: Plain text of the document

        Returns:
            Parsed extraction response

        Raises:
            ExtractionServiceError: on transport, API or parsing failures
        """
        # Limit context size to reduce costs
        text_snippet = document_text[:MAX_TEXT_CHARS]
        prompt = PROMPT_TEMPLATE.format(document_text=text_snippet)

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": "You are a precise curriculum extraction assistant. Return only valid JSON."},
                    {"role": "user", "content": prompt}
                ],
                response_format={"type": "json_object"}
            )
        except OpenAIError as e:
            raise ExtractionServiceError(f"Extraction service request failed: {e}") from e

        try:
            result_text = response.choices[0].message.content or ""
        except (IndexError, AttributeError, TypeError) as e:
            raise ExtractionServiceError("Extraction service returned no choices") from e

        try:
            result = StructuredExtraction.model_validate(json.loads(result_text))
        except (json.JSONDecodeError, SchemaError) as e:
            logger.debug("Unparseable extraction response: %s", result_text[:500])
            raise ExtractionServiceError(f"Extraction service returned an invalid response: {e}") from e

        logger.info(
            "Extraction service classified document: in_domain=%s candidates=%d",
            result.is_in_domain, len(result.candidates)
        )
        return result
