"""FastAPI application exposing folders, documents and shared PDFs."""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, TypeVar

from fastapi import Body, FastAPI, File, HTTPException, Query, Request, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, Response
from pydantic import BaseModel
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ..config import AppConfig
from ..errors import (
    EncoderUnavailableError,
    MyProfessorError,
    NotFoundError,
    RemoteServiceError,
    ValidationError,
)
from ..services.ingestion import DocumentIngestor, DocumentRenderer
from ..services.media import MediaIngestor
from ..services.sharing import LinkStatus, ShareService
from ..services.storage import Document, Folder, MetadataStore


LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


_CORS_ORIGINS = ["http://localhost:8080", "http://localhost:5173"]


class FolderPayload(BaseModel):
    name: str


class CoursePayload(BaseModel):
    instructions: str = ""


def _status_for_error(error: MyProfessorError) -> int:
    if isinstance(error, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(error, EncoderUnavailableError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    if isinstance(error, RemoteServiceError):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _serialize_folder(folder: Folder) -> Dict[str, Any]:
    return folder.to_dict()


def _serialize_document(document: Document) -> Dict[str, Any]:
    return document.to_dict()


async def _run_blocking(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a blocking store or filesystem call without stalling the event loop."""

    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))


class RequestLoggingMiddleware:
    """Log method, path, status code and duration for each HTTP request."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        start = time.perf_counter()
        status_code = 500

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = int(message["status"])
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            duration_ms = (time.perf_counter() - start) * 1000.0
            LOGGER.info(
                "%s %s %s %.1fms",
                scope.get("method"),
                scope.get("path"),
                status_code,
                duration_ms,
            )


def create_app(
    store: MetadataStore,
    media: MediaIngestor,
    share: ShareService,
    *,
    config: AppConfig,
    ingestor: Optional[DocumentIngestor] = None,
    renderer: Optional[DocumentRenderer] = None,
) -> FastAPI:
    """Return a configured FastAPI application."""

    app = FastAPI(title="myProfessor", description="Lecture transcripts, summaries and PDFs")
    app.state.server = None
    app.state.config = config
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_CORS_ORIGINS,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Origin", "Content-Type", "Accept", "Authorization"],
        expose_headers=["Content-Length"],
        max_age=12 * 3600,
    )
    app.add_middleware(RequestLoggingMiddleware)

    pipeline = ingestor or DocumentIngestor(store, media)

    def _require_renderer() -> DocumentRenderer:
        if renderer is not None:
            return renderer
        from ..processing.pdf import PyMuPDFDocumentRenderer

        return PyMuPDFDocumentRenderer()

    def _remove_document_files(document: Document) -> None:
        for path in (document.audio_path, document.original_audio_path, document.pdf_path):
            media.remove_file(path)

    @app.exception_handler(MyProfessorError)
    async def handle_core_error(request: Request, error: MyProfessorError) -> JSONResponse:
        status_code = _status_for_error(error)
        if status_code >= 500:
            LOGGER.error("%s %s failed: %s", request.method, request.url.path, error)
        else:
            LOGGER.debug("%s %s rejected: %s", request.method, request.url.path, error)
        return JSONResponse(status_code=status_code, content={"detail": str(error)})

    @app.get("/api/health")
    async def health() -> Dict[str, Any]:
        return {"ok": True}

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------
    @app.get("/api/folders")
    async def list_folders() -> List[Dict[str, Any]]:
        folders = await _run_blocking(store.list_folders)
        return [_serialize_folder(folder) for folder in folders]

    @app.post("/api/folders", status_code=status.HTTP_201_CREATED)
    async def create_folder(payload: FolderPayload) -> Dict[str, Any]:
        name = payload.name.strip()
        if not name:
            raise HTTPException(status_code=400, detail="Folder name is required")
        folder = await _run_blocking(store.create_folder, name)
        return _serialize_folder(folder)

    @app.patch("/api/folders/{folder_id}")
    async def rename_folder(folder_id: str, payload: FolderPayload) -> Dict[str, Any]:
        name = payload.name.strip()
        if not name:
            raise HTTPException(status_code=400, detail="Folder name is required")
        folder = await _run_blocking(store.rename_folder, folder_id, name)
        return _serialize_folder(folder)

    @app.delete(
        "/api/folders/{folder_id}",
        status_code=status.HTTP_204_NO_CONTENT,
        response_class=Response,
    )
    async def delete_folder(folder_id: str) -> Response:
        documents = await _run_blocking(store.list_documents_by_folder, folder_id)
        await _run_blocking(store.delete_folder, folder_id)
        for document in documents:
            _remove_document_files(document)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.get("/api/folders/{folder_id}/documents")
    async def list_documents(folder_id: str) -> List[Dict[str, Any]]:
        await _run_blocking(store.get_folder, folder_id)
        documents = await _run_blocking(store.list_documents_by_folder, folder_id)
        return [_serialize_document(document) for document in documents]

    @app.post(
        "/api/folders/{folder_id}/documents/upload",
        status_code=status.HTTP_201_CREATED,
    )
    async def upload_document(
        folder_id: str,
        file: Optional[UploadFile] = File(None),
    ) -> Dict[str, Any]:
        await _run_blocking(store.get_folder, folder_id)
        if file is None:
            raise HTTPException(status_code=400, detail="missing audio file")

        LOGGER.info("Received upload: folder=%s filename=%s", folder_id, file.filename)
        try:
            document = await _run_blocking(
                pipeline.ingest_upload, folder_id, file.file, file.filename
            )
        finally:
            await file.close()
        return {"document": _serialize_document(document)}

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------
    @app.get("/api/documents/{document_id}")
    async def get_document(document_id: str) -> Dict[str, Any]:
        document = await _run_blocking(store.get_document, document_id)
        return _serialize_document(document)

    @app.delete(
        "/api/documents/{document_id}",
        status_code=status.HTTP_204_NO_CONTENT,
        response_class=Response,
    )
    async def delete_document(document_id: str) -> Response:
        document = await _run_blocking(store.get_document, document_id)
        await _run_blocking(store.delete_document, document_id)
        _remove_document_files(document)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.post("/api/documents/{document_id}/process")
    async def process_document(document_id: str) -> Dict[str, Any]:
        document = await _run_blocking(pipeline.process, document_id)
        return {"document": _serialize_document(document)}

    @app.post("/api/documents/{document_id}/course")
    async def generate_course(
        document_id: str,
        payload: Optional[CoursePayload] = Body(None),
    ) -> Dict[str, Any]:
        instructions = payload.instructions if payload is not None else ""
        document = await _run_blocking(pipeline.generate_course, document_id, instructions)
        return {"course": document.course}

    @app.post("/api/documents/{document_id}/pdf")
    async def generate_pdf(document_id: str) -> Dict[str, Any]:
        document = await _run_blocking(pipeline.render_pdf, document_id, _require_renderer())
        return {"pdfPath": document.pdf_path}

    @app.post("/api/documents/{document_id}/share")
    async def share_document(document_id: str) -> Dict[str, Any]:
        document = await _run_blocking(store.get_document, document_id)
        if not document.pdf_path:
            raise HTTPException(status_code=400, detail="no pdf available for this document")
        link = share.issue(document_id)
        expires = datetime.fromtimestamp(link.expires_at, tz=timezone.utc)
        return {"url": link.url, "expiresAt": expires.isoformat()}

    # ------------------------------------------------------------------
    # Signed downloads
    # ------------------------------------------------------------------
    @app.get("/pdf/{document_id}")
    async def serve_pdf(
        document_id: str,
        exp: Optional[str] = Query(None),
        sig: Optional[str] = Query(None),
    ) -> FileResponse:
        if not exp or not sig:
            raise HTTPException(status_code=400, detail="missing signature")
        try:
            expires_at = int(exp)
        except ValueError as error:
            raise HTTPException(status_code=400, detail="invalid expiration") from error

        outcome = share.check(f"/pdf/{document_id}", expires_at, sig)
        if outcome is LinkStatus.EXPIRED:
            raise HTTPException(status_code=status.HTTP_410_GONE, detail="link expired")
        if outcome is LinkStatus.INVALID_SIGNATURE:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="invalid signature")

        document = await _run_blocking(store.get_document, document_id)
        pdf_path = Path(document.pdf_path) if document.pdf_path else media.pdf_path(document_id)
        if not pdf_path.is_file():
            raise HTTPException(status_code=404, detail="pdf not found")
        return FileResponse(pdf_path, media_type="application/pdf", filename=pdf_path.name)

    return app


__all__ = ["create_app"]
