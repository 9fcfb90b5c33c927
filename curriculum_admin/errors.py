"""
Exceptions raised by the ingestion pipeline and the lifecycle controller.

Every error carries a human readable message plus an optional ``details``
dictionary so outer surfaces (CLI, HTTP API) can report it without parsing.
"""
from typing import Any, Dict, Optional


class AdminConsoleError(Exception):
    """Base exception for all console errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# =============================================================================
# Extraction
# =============================================================================


class UnsupportedFormat(AdminConsoleError):
    """Uploaded file is not a supported document type."""

    def __init__(self, content_type: str, filename: str = "") -> None:
        super().__init__(
            f"Unsupported document type '{content_type}'. Please select a PDF file.",
            {"content_type": content_type, "filename": filename},
        )


class UnreadableDocument(AdminConsoleError):
    """No text could be read from the document."""

    pass


class ExtractionServiceError(AdminConsoleError):
    """The structured extraction service failed or returned garbage."""

    pass


class ExtractionInProgress(AdminConsoleError):
    """An extraction is already running for this review session."""

    def __init__(self) -> None:
        super().__init__("An extraction is already in progress; wait for it to finish.")


# =============================================================================
# Entity store / lifecycle
# =============================================================================


class NotFound(AdminConsoleError):
    """Entity id is unknown to the store."""

    def __init__(self, kind: str, entity_id: str) -> None:
        super().__init__(f"{kind} {entity_id} not found", {"kind": kind, "id": entity_id})


class Forbidden(AdminConsoleError):
    """Acting principal is not an administrator."""

    def __init__(self, action: str = "") -> None:
        message = "Only administrators can perform this action"
        if action:
            message += f": {action}"
        super().__init__(message, {"action": action} if action else None)


class ValidationError(AdminConsoleError):
    """Submitted fields are invalid for the entity kind."""

    pass


class DuplicateEntity(ValidationError):
    """A unique field collides with another active record."""

    def __init__(self, kind: str, field: str, value: Any) -> None:
        super().__init__(
            f"An active {kind} with {field} '{value}' already exists",
            {"kind": kind, "field": field, "value": value},
        )


class EntityDeleted(ValidationError):
    """Edits are only allowed while the record is active."""

    def __init__(self, kind: str, entity_id: str) -> None:
        super().__init__(
            f"{kind} {entity_id} is deleted; restore it before editing",
            {"kind": kind, "id": entity_id},
        )
