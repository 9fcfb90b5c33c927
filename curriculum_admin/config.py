"""Configuration settings for the curriculum admin console"""
import os
from dotenv import load_dotenv

load_dotenv()

# LLM Configuration
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
LLM_MODEL = os.getenv("LLM_MODEL", "gpt-5-mini")  # JSON responses enabled via response_format
MAX_TEXT_CHARS = int(os.getenv("MAX_TEXT_CHARS", "30000"))  # Text sent to the LLM is truncated to this

# Upload configuration
SUPPORTED_CONTENT_TYPES = ("application/pdf",)

# Messages shown when a document yields no candidates
EMPTY_TEXT_MESSAGE = (
    "Could not extract text from the PDF. The file may be a scanned image, "
    "corrupted or password protected."
)
NOT_IN_DOMAIN_MESSAGE = (
    "The document does not contain content related to the "
    "Base Nacional Comum Curricular (BNCC)."
)

# Persistence
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///curriculum_admin.db")

# Authorization
ADMIN_RULE_NAME = "Administrator"
CONSOLE_RULE_NAME = os.getenv("CONSOLE_RULE_NAME", "")  # Rule held by the acting principal

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
