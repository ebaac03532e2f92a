"""FastAPI app exposing pdfoid editor sessions to a browser UI."""

from __future__ import annotations

import logging
import os
from typing import Any, Literal

from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel, Field

from pdfoid import __version__
from pdfoid.config import EngineSettings
from pdfoid.errors import (
    DocumentLoadError,
    InvalidPageIndexError,
    NoDocumentLoadedError,
    PdfoidError,
    UnsupportedImageError,
)
from pdfoid.logging_utils import configure_web_logging
from pdfoid.search.schemas import FindTextOptions, ReplaceTextOptions
from pdfoid.session.engine import EditorSession
from pdfoid.session.highlight import MatchBadge
from pdfoid.session.page_edits import CropBox, ImageBox, PageSize

configure_web_logging(
    os.environ.get("PDFOID_WEB_LOG", "logs/pdfoid_web.log"),
    debug=EngineSettings.from_env().debug,
)
log = logging.getLogger("pdfoid.web.api")

app = FastAPI(title="pdfoid: PDF text search and replace", version=__version__)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class SessionRegistry:
    """Open editor sessions keyed by id; one session per uploaded document."""

    def __init__(self) -> None:
        self._sessions: dict[str, EditorSession] = {}

    def create(self) -> EditorSession:
        session = EditorSession(settings=EngineSettings.from_env())
        self._sessions[session.session_id] = session
        return session

    def get(self, session_id: str) -> EditorSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
        return session

    def discard(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def __len__(self) -> int:
        return len(self._sessions)


sessions = SessionRegistry()


class ReplaceMatchRequest(BaseModel):
    match_id: str
    replacement: str = ""


class HighlightRequest(BaseModel):
    match_id: str | None = None
    index: int | None = None
    total: int | None = None


class UiSettingsRequest(BaseModel):
    flash_ttl_ms: int | None = None
    auto_clear_highlight_ms: int | None = None


class BlankPageRequest(BaseModel):
    position: Literal["start", "end"] | int = "end"
    size: PageSize | None = None


class ReorderRequest(BaseModel):
    from_index: int
    to_index: int


class RotateRequest(BaseModel):
    direction: Literal["left", "right"]


class CropRequest(BaseModel):
    x: float
    y: float
    width: float = Field(gt=0)
    height: float = Field(gt=0)
    normalized: bool = False


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, InvalidPageIndexError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, NoDocumentLoadedError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, (DocumentLoadError, UnsupportedImageError, PdfoidError, ValueError)):
        return HTTPException(status_code=400, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


def _state(session: EditorSession) -> dict[str, Any]:
    return {
        "session_id": session.session_id,
        "file_name": session.file_name,
        "num_pages": session.num_pages,
        "page_sizes": [{"width": w, "height": h} for w, h in session.page_sizes],
        "revision": session.revision,
        "dirty": session.dirty,
        "error": session.error,
    }


@app.get("/api/health")
def health() -> dict[str, str]:
    return {"status": "ok", "version": __version__}


@app.post("/api/sessions")
async def create_session(file: UploadFile = File(...)) -> dict[str, Any]:
    if not file.filename:
        raise HTTPException(status_code=400, detail="No filename provided.")
    if not file.filename.lower().endswith(".pdf"):
        raise HTTPException(status_code=400, detail="Only PDF files are accepted.")
    data = await file.read()
    session = sessions.create()
    try:
        await session.load_document(data, file.filename)
    except PdfoidError as exc:
        sessions.discard(session.session_id)
        raise _http_error(exc)
    log.info("Session %s opened %s (%s bytes)", session.session_id, file.filename, len(data))
    return _state(session)


@app.get("/api/sessions/{session_id}")
def session_state(session_id: str) -> dict[str, Any]:
    return _state(sessions.get(session_id))


@app.delete("/api/sessions/{session_id}")
def close_session(session_id: str) -> dict[str, bool]:
    if not sessions.discard(session_id):
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
    return {"closed": True}


@app.post("/api/sessions/{session_id}/find")
async def find(session_id: str, payload: FindTextOptions) -> dict[str, Any]:
    session = sessions.get(session_id)
    try:
        matches = await session.find_text_matches(payload)
    except PdfoidError as exc:
        raise _http_error(exc)
    return {"revision": session.revision, "matches": [m.model_dump() for m in matches]}


@app.post("/api/sessions/{session_id}/replace-match")
async def replace_match(session_id: str, payload: ReplaceMatchRequest) -> dict[str, Any]:
    session = sessions.get(session_id)
    try:
        outcome = await session.replace_match(payload.match_id, payload.replacement)
    except PdfoidError as exc:
        log.exception("replace-match failed for session %s", session_id)
        raise _http_error(exc)
    return {**outcome.model_dump(), "revision": session.revision}


@app.post("/api/sessions/{session_id}/replace-text")
async def replace_text(session_id: str, payload: ReplaceTextOptions) -> dict[str, Any]:
    session = sessions.get(session_id)
    try:
        result = await session.replace_text(payload)
    except PdfoidError as exc:
        log.exception("replace-text failed for session %s", session_id)
        raise _http_error(exc)
    return {**result.model_dump(), "revision": session.revision}


@app.get("/api/sessions/{session_id}/highlight")
def get_highlight(session_id: str) -> dict[str, Any]:
    state = sessions.get(session_id).current_match_highlight
    return {"highlight": state.model_dump() if state else None}


@app.put("/api/sessions/{session_id}/highlight")
async def set_highlight(session_id: str, payload: HighlightRequest) -> dict[str, Any]:
    session = sessions.get(session_id)
    match = None
    if payload.match_id is not None:
        match = next((m for m in session.last_find_results if m.id == payload.match_id), None)
        if match is None:
            raise HTTPException(status_code=404, detail=f"Match not in current results: {payload.match_id}")
    badge = None
    if payload.index is not None and payload.total is not None:
        badge = MatchBadge(index=payload.index, total=payload.total)
    state = session.set_current_match_highlight(match, badge)
    return {"highlight": state.model_dump() if state else None}


@app.get("/api/sessions/{session_id}/flashes")
def flashes(session_id: str) -> dict[str, Any]:
    session = sessions.get(session_id)
    return {"flashes": [f.model_dump() for f in session.active_flash_rects()]}


@app.put("/api/sessions/{session_id}/ui-settings")
async def ui_settings(session_id: str, payload: UiSettingsRequest) -> dict[str, int]:
    session = sessions.get(session_id)
    if payload.flash_ttl_ms is not None:
        session.set_default_flash_ttl_ms(payload.flash_ttl_ms)
    if payload.auto_clear_highlight_ms is not None:
        session.set_auto_clear_highlight_ms(payload.auto_clear_highlight_ms)
    return {
        "flash_ttl_ms": session.settings.flash_ttl_ms,
        "auto_clear_highlight_ms": session.settings.auto_clear_highlight_ms,
    }


@app.post("/api/sessions/{session_id}/reset")
async def reset(session_id: str) -> dict[str, Any]:
    session = sessions.get(session_id)
    if not await session.reset_to_original():
        raise HTTPException(status_code=409, detail="No PDF loaded")
    return _state(session)


@app.get("/api/sessions/{session_id}/export")
def export(session_id: str) -> Response:
    session = sessions.get(session_id)
    try:
        data = session.export_pdf()
    except PdfoidError as exc:
        raise _http_error(exc)
    name = session.file_name or "document.pdf"
    return Response(
        content=data,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{name}"'},
    )


@app.post("/api/sessions/{session_id}/pages")
async def add_blank_page(session_id: str, payload: BlankPageRequest) -> dict[str, Any]:
    session = sessions.get(session_id)
    try:
        index = await session.add_blank_page(payload.position, payload.size)
    except (PdfoidError, ValueError) as exc:
        raise _http_error(exc)
    return {"page_index": index, **_state(session)}


@app.delete("/api/sessions/{session_id}/pages/{page_index}")
async def delete_page(session_id: str, page_index: int) -> dict[str, Any]:
    session = sessions.get(session_id)
    try:
        await session.delete_page(page_index)
    except (PdfoidError, ValueError) as exc:
        raise _http_error(exc)
    return _state(session)


@app.post("/api/sessions/{session_id}/pages/reorder")
async def reorder_pages(session_id: str, payload: ReorderRequest) -> dict[str, Any]:
    session = sessions.get(session_id)
    try:
        await session.reorder_pages(payload.from_index, payload.to_index)
    except (PdfoidError, ValueError) as exc:
        raise _http_error(exc)
    return _state(session)


@app.post("/api/sessions/{session_id}/pages/{page_index}/rotate")
async def rotate_page(session_id: str, page_index: int, payload: RotateRequest) -> dict[str, Any]:
    session = sessions.get(session_id)
    try:
        rotation = await session.rotate_page(page_index, payload.direction)
    except (PdfoidError, ValueError) as exc:
        raise _http_error(exc)
    return {"rotation": rotation, **_state(session)}


@app.post("/api/sessions/{session_id}/pages/{page_index}/crop")
async def crop_page(session_id: str, page_index: int, payload: CropRequest) -> dict[str, Any]:
    session = sessions.get(session_id)
    try:
        await session.crop_page(page_index, CropBox(**payload.model_dump()))
    except (PdfoidError, ValueError) as exc:
        raise _http_error(exc)
    return _state(session)


@app.post("/api/sessions/{session_id}/pages/{page_index}/image")
async def insert_image(
    session_id: str,
    page_index: int,
    file: UploadFile = File(...),
    x: float | None = Form(None),
    y: float | None = Form(None),
    width: float | None = Form(None),
    height: float | None = Form(None),
    normalized: bool = Form(False),
) -> dict[str, Any]:
    session = sessions.get(session_id)
    image = await file.read()
    box = ImageBox(x=x, y=y, width=width, height=height, normalized=normalized)
    try:
        await session.insert_image(page_index, image, box)
    except (PdfoidError, ValueError) as exc:
        raise _http_error(exc)
    return _state(session)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host=os.environ.get("PDFOID_HOST", "127.0.0.1"),
        port=int(os.environ.get("PDFOID_PORT", "8000")),
        log_level="info",
    )
