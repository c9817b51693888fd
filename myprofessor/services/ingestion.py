"""High level processing pipeline for uploaded lectures."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import BinaryIO, Optional, Protocol

from ..errors import MyProfessorError, NotFoundError, ValidationError
from .media import MediaIngestor
from .naming import strip_extension
from .storage import Document, Folder, MetadataStore, ProcessingStatus


LOGGER = logging.getLogger(__name__)


SOURCE_TYPE_UPLOAD = "upload"


class TranscriptionEngine(Protocol):
    """Protocol describing a transcription backend."""

    def transcribe(self, audio_path: Path) -> str:
        """Return the transcript of *audio_path*."""


class Summarizer(Protocol):
    """Protocol describing the text generation backend."""

    def summarize(self, transcription: str) -> str:
        """Return study notes for *transcription*."""

    def generate_course(self, transcription: str, instructions: str = "") -> str:
        """Return a structured course written from *transcription*."""


class DocumentRenderer(Protocol):
    """Protocol describing a PDF renderer."""

    def render(self, document: Document, folder: Optional[Folder], destination: Path) -> Path:
        """Write *document* as a PDF at *destination*."""


class DocumentIngestor:
    """Coordinates storing, compressing, transcribing and summarising lectures."""

    def __init__(
        self,
        store: MetadataStore,
        media: MediaIngestor,
        *,
        transcription_engine: Optional[TranscriptionEngine] = None,
        summarizer: Optional[Summarizer] = None,
    ) -> None:
        self._store = store
        self._media = media
        self._transcription_engine = transcription_engine
        self._summarizer = summarizer

    @property
    def can_process(self) -> bool:
        return self._transcription_engine is not None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def ingest_upload(
        self,
        folder_id: str,
        stream: BinaryIO,
        filename: Optional[str],
        *,
        process: bool = True,
    ) -> Document:
        """Store an uploaded recording as a new document in *folder_id*.

        When a transcription engine is configured and *process* is true the
        document is processed immediately; a processing failure leaves the
        document in the ``failed`` state and the error propagates.
        """

        self._store.get_folder(folder_id)
        audio_path = self._media.save_upload(stream, filename)
        try:
            document = self._store.create_document(
                Document(
                    folder_id=folder_id,
                    title=strip_extension(filename) or audio_path.stem,
                    audio_path=str(audio_path),
                    source_type=SOURCE_TYPE_UPLOAD,
                )
            )
        except MyProfessorError:
            self._media.remove_file(audio_path)
            raise
        LOGGER.info("Document %s created for folder %s", document.id, folder_id)

        if process and self.can_process:
            return self.process(document.id)
        return document

    def process(self, document_id: str) -> Document:
        """Run compression, transcription and summarisation for a document."""

        if self._transcription_engine is None:
            raise ValidationError("no transcription engine is configured")

        document = self._store.get_document(document_id)
        document.processing_status = ProcessingStatus.PROCESSING.value
        document.processing_error = ""
        document = self._store.update_document(document)
        LOGGER.debug("Processing document %s", document_id)

        try:
            source = Path(document.original_audio_path or document.audio_path)
            compressed = self._media.compress(source)
            transcription = self._transcription_engine.transcribe(compressed)
            summary = self._summarizer.summarize(transcription) if self._summarizer else ""
        except MyProfessorError as error:
            LOGGER.error("Processing failed for document %s: %s", document_id, error)
            # Re-read so edits made while processing ran are kept.
            current = self._store.get_document(document_id)
            current.processing_status = ProcessingStatus.FAILED.value
            current.processing_error = str(error) or error.__class__.__name__
            self._store.update_document(current)
            raise

        current = self._store.get_document(document_id)
        current.original_audio_path = str(source)
        current.audio_path = str(compressed)
        current.transcription = transcription
        current.summary = summary
        current.processing_status = ProcessingStatus.COMPLETED.value
        current.processing_error = ""
        LOGGER.info("Processing completed for document %s", document_id)
        return self._store.update_document(current)

    def generate_course(self, document_id: str, instructions: str = "") -> Document:
        document = self._store.get_document(document_id)
        if not document.transcription.strip():
            raise ValidationError("document has no transcription")
        if self._summarizer is None:
            raise ValidationError("no summarizer is configured")

        document.course = self._summarizer.generate_course(document.transcription, instructions)
        return self._store.update_document(document)

    def render_pdf(self, document_id: str, renderer: DocumentRenderer) -> Document:
        document = self._store.get_document(document_id)
        folder: Optional[Folder] = None
        if document.folder_id:
            try:
                folder = self._store.get_folder(document.folder_id)
            except NotFoundError:
                LOGGER.warning(
                    "Document %s references missing folder %s", document_id, document.folder_id
                )

        destination = renderer.render(document, folder, self._media.pdf_path(document.id))
        document.pdf_path = str(destination)
        LOGGER.debug("Rendered PDF for document %s at %s", document_id, destination)
        return self._store.update_document(document)


__all__ = [
    "DocumentIngestor",
    "DocumentRenderer",
    "SOURCE_TYPE_UPLOAD",
    "Summarizer",
    "TranscriptionEngine",
]
