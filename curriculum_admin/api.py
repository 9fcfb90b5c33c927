"""FastAPI interface for the curriculum admin console"""
import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse

from .console import AdminConsole, open_console
from .errors import (
    AdminConsoleError,
    ExtractionInProgress,
    Forbidden,
    NotFound,
    UnsupportedFormat,
    ValidationError,
)
from .models import Classified, Document, Failed, InProgress, ManagedEntity
from .review import ReviewSession

logger = logging.getLogger(__name__)

STATUS_CODES = (
    (NotFound, 404),
    (Forbidden, 403),
    (ExtractionInProgress, 409),
    (UnsupportedFormat, 415),
    (ValidationError, 422),
)


def status_for(error: AdminConsoleError) -> int:
    for error_type, status in STATUS_CODES:
        if isinstance(error, error_type):
            return status
    return 500


def review_state(review: ReviewSession) -> Dict[str, Any]:
    """Serialize the live extraction outcome and selection"""
    outcome = review.outcome
    state: Dict[str, Any] = {"filename": review.filename, "status": "empty"}
    if isinstance(outcome, InProgress):
        state["status"] = "in_progress"
    elif isinstance(outcome, Failed):
        state.update(status="failed", reason=outcome.reason)
    elif isinstance(outcome, Classified):
        state.update(
            status="classified",
            is_in_domain=outcome.is_in_domain,
            message=outcome.message,
            candidates=[c.model_dump() for c in outcome.candidates],
            selection=sorted(review.selection),
            can_commit=review.can_commit,
        )
    return state


def entity_payload(entity: ManagedEntity) -> Dict[str, Any]:
    return entity.to_dict()


def create_app(console: Optional[AdminConsole] = None) -> FastAPI:
    """
    Build the API app.

    When no console is given one is opened on startup against DATABASE_URL
    with the CONSOLE_RULE_NAME principal.
    """
    app = FastAPI(title="Curriculum Admin API", version="1.0.0")
    app.state.console = console
    app.state.engine = None

    @app.on_event("startup")
    async def startup_event():
        """Open the console on startup"""
        if app.state.console is None:
            app.state.console, app.state.engine = await open_console()

    @app.on_event("shutdown")
    async def shutdown_event():
        if app.state.engine is not None:
            await app.state.engine.dispose()

    @app.exception_handler(AdminConsoleError)
    async def console_error_handler(request: Request, exc: AdminConsoleError):
        return JSONResponse(
            status_code=status_for(exc),
            content={"error": type(exc).__name__, "detail": exc.message, "details": exc.details},
        )

    def get_console() -> AdminConsole:
        if app.state.console is None:
            raise HTTPException(status_code=500, detail="Console not initialized")
        return app.state.console

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "console_initialized": app.state.console is not None
        }

    # ------------------------------------------------------------------
    # Managed entities
    # ------------------------------------------------------------------

    @app.get("/entities/{kind}")
    async def list_entities(kind: str, include_deleted: bool = False, search: Optional[str] = None):
        controller = get_console().controller(kind)
        records = await controller.list(include_deleted=include_deleted, search=search)
        return {
            "items": [entity_payload(r) for r in records],
            "can_mutate": await controller.authorization_state(),
        }

    @app.post("/entities/{kind}", status_code=201)
    async def create_entity(kind: str, fields: Dict[str, Any]):
        entity = await get_console().controller(kind).create(fields)
        return entity_payload(entity)

    @app.patch("/entities/{kind}/{entity_id}")
    async def update_entity(kind: str, entity_id: str, fields: Dict[str, Any]):
        entity = await get_console().controller(kind).update(entity_id, fields)
        return entity_payload(entity)

    @app.delete("/entities/{kind}/{entity_id}")
    async def delete_entity(kind: str, entity_id: str):
        """Soft delete; repeated calls succeed"""
        entity = await get_console().controller(kind).delete(entity_id)
        return entity_payload(entity)

    @app.post("/entities/{kind}/{entity_id}/restore")
    async def restore_entity(kind: str, entity_id: str):
        """Restore; restoring an active record succeeds"""
        entity = await get_console().controller(kind).restore(entity_id)
        return entity_payload(entity)

    # ------------------------------------------------------------------
    # Extraction review
    # ------------------------------------------------------------------

    @app.get("/extraction")
    async def get_extraction():
        return review_state(get_console().review)

    @app.post("/extraction")
    async def upload_extraction(pdf_file: UploadFile = File(...)):
        """
        Extract BNCC skills from an uploaded PDF.

        Replaces the previous outcome; every candidate starts selected.
        """
        console = get_console()
        document = Document(
            filename=pdf_file.filename or "upload.pdf",
            content_type=pdf_file.content_type or "",
            data=await pdf_file.read(),
        )
        await console.extract(document)
        return review_state(console.review)

    @app.post("/extraction/toggle/{index}")
    async def toggle_candidate(index: int):
        review = get_console().review
        try:
            review.toggle(index)
        except IndexError as e:
            raise HTTPException(status_code=422, detail=str(e))
        return review_state(review)

    @app.post("/extraction/select-all")
    async def select_all():
        review = get_console().review
        review.select_all()
        return review_state(review)

    @app.post("/extraction/select-none")
    async def select_none():
        review = get_console().review
        review.select_none()
        return review_state(review)

    @app.post("/extraction/commit")
    async def commit_extraction():
        """Save the selected candidates in order; reports partial success"""
        review = get_console().review
        result = await review.commit()
        return {
            "created": [entity_payload(e) for e in result.created],
            "created_count": result.created_count,
            "total": result.total,
            "success": result.succeeded,
            "error": str(result.error) if result.error is not None else None,
            "summary": result.summary(),
            "state": review_state(review),
        }

    @app.delete("/extraction")
    async def discard_extraction():
        review = get_console().review
        review.discard()
        return review_state(review)

    return app
