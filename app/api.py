"""
FastAPI routes for acceptance drafts.
Upload a sheet, edit positions and work groups, then save the draft as one batch.
"""
import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, List

from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.responses import FileResponse, JSONResponse

from core.config import get_settings
from core.db import get_repository
from core.exceptions import (
    DataNotFoundError,
    EmptyDraftError,
    ExportError,
    NothingToSaveError,
    ParsingError,
    PersistenceError,
    PositionNotFoundError,
    ReceptionException,
    SaveInProgressError,
    ValidationError,
)
from core.exporters import create_output_filename, export_draft_to_excel
from core.logger import setup_logger
from core.parsing import parse_reception_excel
from core.schema import ComposeRequest, DraftResponse, DraftSummary, LineItem
from services.draft_service import MSG_CONFIRM_DELETE, DraftRegistry, error_message

logger = setup_logger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    get_repository().init_db()
    yield


# Initialize FastAPI app
app = FastAPI(
    title="Acceptance Draft Service",
    description="Stage uploaded acceptance line items, reconcile positions and save them as one batch",
    version="1.0.0",
    lifespan=lifespan
)

# In-memory draft sessions (single user per session)
registry = DraftRegistry()

STATUS_CODES = {
    EmptyDraftError: 400,
    NothingToSaveError: 400,
    ValidationError: 400,
    ParsingError: 400,
    PositionNotFoundError: 404,
    DataNotFoundError: 404,
    SaveInProgressError: 409,
    PersistenceError: 502,
    ExportError: 500,
}


@app.exception_handler(ReceptionException)
async def reception_exception_handler(request: Request, exc: ReceptionException):
    """Turn draft errors into dismissible messages; the draft itself is untouched."""
    status_code = next(
        (code for exc_type, code in STATUS_CODES.items() if isinstance(exc, exc_type)),
        500
    )
    logger.warning(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content={"message": error_message(exc), "error": exc.message, "details": exc.details}
    )


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "acceptance_drafts",
        "version": "1.0.0"
    }


def validate_file_extension(filename: str) -> None:
    """
    Validate file has correct extension.
    
    Raises:
        HTTPException: If file extension is invalid
    """
    if not filename or not filename.lower().endswith((".xlsx", ".xls")):
        raise HTTPException(
            status_code=400,
            detail=f"Invalid file type: {filename}. Only .xlsx and .xls are supported."
        )


@app.post("/drafts", status_code=201, response_model=DraftResponse)
async def create_draft():
    """Start an empty draft session."""
    session = registry.create()
    return session.to_response()


@app.get("/drafts/{session_id}", response_model=DraftResponse)
async def get_draft(session_id: str):
    return registry.get(session_id).to_response()


@app.delete("/drafts/{session_id}", status_code=204)
async def drop_draft(session_id: str):
    registry.drop(session_id)


@app.post("/drafts/{session_id}/upload", response_model=DraftResponse)
async def upload_sheet(session_id: str, file: UploadFile = File(...)):
    """
    Replace the draft with the rows of an uploaded acceptance sheet.
    
    Args:
        session_id: Draft session identifier
        file: Acceptance Excel file
    
    Returns:
        Draft with the uploaded rows
    """
    session = registry.get(session_id)
    validate_file_extension(file.filename)
    logger.info(f"Session {session_id}: received upload {file.filename}")
    
    upload_path = Path(settings.storage_path) / f"{session_id}_upload_{Path(file.filename).name}"
    upload_path.parent.mkdir(parents=True, exist_ok=True)
    
    try:
        with open(upload_path, "wb") as f:
            f.write(await file.read())
        # pandas I/O runs in the thread pool
        loop = asyncio.get_running_loop()
        rows = await loop.run_in_executor(None, parse_reception_excel, str(upload_path))
    finally:
        try:
            if upload_path.exists():
                upload_path.unlink()
                logger.debug(f"Cleaned up: {upload_path}")
        except OSError as cleanup_error:
            logger.warning(f"Failed to cleanup {upload_path}: {cleanup_error}")
    
    session.load(rows)
    return session.to_response(message=f"Загружено строк: {len(rows)}")


@app.put("/drafts/{session_id}/rows", response_model=DraftResponse)
async def replace_rows(session_id: str, rows: List[LineItem]):
    """Replace the draft rows wholesale (inline table edits)."""
    session = registry.get(session_id)
    session.replace_rows(rows)
    return session.to_response()


@app.patch("/drafts/{session_id}/rows/{reception_id}", response_model=DraftResponse)
async def update_row(session_id: str, reception_id: str, changes: Dict[str, Any]):
    session = registry.get(session_id)
    session.update_row(reception_id, changes)
    return session.to_response()


@app.post("/drafts/{session_id}/items", status_code=201, response_model=DraftResponse)
async def add_item(session_id: str, request: ComposeRequest):
    """
    Add a manually entered service to a work group.
    
    Without a position number the item goes into the position of the first row.
    """
    session = registry.get(session_id)
    item, message = session.add_item(request.position_number, request.group_name, request.service)
    response = session.to_response(message=message)
    response.details = {"reception_id": item.reception_id, "position_number": item.position_number}
    return response


@app.post("/drafts/{session_id}/positions/{position_number}/duplicate", response_model=DraftResponse)
async def duplicate_position(session_id: str, position_number: int):
    session = registry.get(session_id)
    new_number, message = session.duplicate(position_number)
    response = session.to_response(message=message)
    response.details = {"position_number": new_number}
    return response


@app.delete("/drafts/{session_id}/positions/{position_number}", response_model=DraftResponse)
async def delete_position(session_id: str, position_number: int, confirm: bool = False):
    """
    Delete a position. Irreversible, so the caller must pass confirm=true.
    
    Returns:
        Draft without the position; 409 with the confirmation prompt if not confirmed
    """
    session = registry.get(session_id)
    message = session.delete(position_number, lambda _: confirm)
    if message is None:
        return JSONResponse(
            status_code=409,
            content={
                "message": MSG_CONFIRM_DELETE.format(position=position_number),
                "details": {"position_number": position_number, "confirm_required": True},
            }
        )
    return session.to_response(message=message)


@app.get("/drafts/{session_id}/summary", response_model=DraftSummary)
async def draft_summary(session_id: str):
    return registry.get(session_id).summary()


@app.get("/drafts/{session_id}/export")
async def export_draft(session_id: str):
    """
    Download the current draft as an Excel file.
    
    Returns:
        File response
    """
    session = registry.get(session_id)
    if not session.rows:
        raise ValidationError(
            "Draft is empty, nothing to export",
            details={"session_id": session_id}
        )
    
    loop = asyncio.get_running_loop()
    output_path = await loop.run_in_executor(
        None,
        export_draft_to_excel,
        list(session.rows),
        create_output_filename(session_id)
    )
    return FileResponse(
        path=output_path,
        filename=Path(output_path).name,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    )


@app.post("/drafts/{session_id}/save", response_model=DraftResponse)
async def save_draft(session_id: str):
    """Save the whole draft as one batch; the draft is cleared only on success."""
    session = registry.get(session_id)
    message = await session.save()
    return session.to_response(message=message)


@app.post("/drafts/{session_id}/cancel", response_model=DraftResponse)
async def cancel_draft(session_id: str):
    session = registry.get(session_id)
    session.cancel()
    return session.to_response()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)
