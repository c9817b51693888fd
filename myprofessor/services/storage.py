"""Persistence helpers backed by a single JSON snapshot file."""

from __future__ import annotations

import contextlib
import copy
import json
import logging
import os
import tempfile
import threading
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

from ..errors import NotFoundError, PersistenceError, ValidationError


LOGGER = logging.getLogger(__name__)


SNAPSHOT_FILENAME = "meta.json"


class ProcessingStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Folder:
    id: str
    name: str
    created_at: int = 0
    updated_at: int = 0
    document_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "documentIds": list(self.document_ids),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Folder":
        return cls(
            id=str(payload.get("id") or ""),
            name=str(payload.get("name") or ""),
            created_at=int(payload.get("createdAt") or 0),
            updated_at=int(payload.get("updatedAt") or 0),
            document_ids=[str(item) for item in payload.get("documentIds") or []],
        )


@dataclass
class Document:
    id: str = ""
    folder_id: str = ""
    title: str = ""
    transcription: str = ""
    summary: str = ""
    course: str = ""
    audio_path: str = ""
    original_audio_path: str = ""
    processing_status: str = ""
    processing_error: str = ""
    pdf_path: str = ""
    source_type: str = ""
    created_at: int = 0
    updated_at: int = 0

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "folderId": self.folder_id,
            "title": self.title,
            "transcription": self.transcription,
            "summary": self.summary,
            "course": self.course,
            "audioPath": self.audio_path,
            "processingStatus": _status_value(self.processing_status),
            "sourceType": self.source_type,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        # Optional fields are omitted when empty.
        if self.original_audio_path:
            payload["originalAudioPath"] = self.original_audio_path
        if self.processing_error:
            payload["processingError"] = self.processing_error
        if self.pdf_path:
            payload["pdfPath"] = self.pdf_path
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Document":
        return cls(
            id=str(payload.get("id") or ""),
            folder_id=str(payload.get("folderId") or ""),
            title=str(payload.get("title") or ""),
            transcription=str(payload.get("transcription") or ""),
            summary=str(payload.get("summary") or ""),
            course=str(payload.get("course") or ""),
            audio_path=str(payload.get("audioPath") or ""),
            original_audio_path=str(payload.get("originalAudioPath") or ""),
            processing_status=str(payload.get("processingStatus") or ""),
            processing_error=str(payload.get("processingError") or ""),
            pdf_path=str(payload.get("pdfPath") or ""),
            source_type=str(payload.get("sourceType") or ""),
            created_at=int(payload.get("createdAt") or 0),
            updated_at=int(payload.get("updatedAt") or 0),
        )


def _status_value(status: Any) -> str:
    if isinstance(status, ProcessingStatus):
        return status.value
    return str(status or "")


@dataclass
class MetadataSnapshot:
    """The durable aggregate: every folder and document keyed by identifier."""

    folders: Dict[str, Folder] = field(default_factory=dict)
    documents: Dict[str, Document] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "folders": {key: folder.to_dict() for key, folder in self.folders.items()},
            "documents": {key: doc.to_dict() for key, doc in self.documents.items()},
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "MetadataSnapshot":
        if not isinstance(payload, Mapping):
            raise TypeError(f"expected a JSON object, got {type(payload).__name__}")
        folders = payload.get("folders") or {}
        documents = payload.get("documents") or {}
        return cls(
            folders={str(key): Folder.from_dict(value) for key, value in folders.items()},
            documents={str(key): Document.from_dict(value) for key, value in documents.items()},
        )

    def normalize(self) -> int:
        """Backfill documents that predate the processing status field.

        Returns the number of documents that were updated. Running the pass
        twice is a no-op the second time.
        """

        updated = 0
        for document in self.documents.values():
            if _status_value(document.processing_status):
                continue
            if document.transcription.strip():
                document.processing_status = ProcessingStatus.COMPLETED.value
            else:
                document.processing_status = ProcessingStatus.PENDING.value
            updated += 1
        return updated


class ReadWriteLock:
    """Many concurrent readers or one writer; waiting writers block new readers."""

    def __init__(self) -> None:
        self._condition = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextlib.contextmanager
    def read(self) -> Iterator[None]:
        with self._condition:
            while self._writer or self._writers_waiting:
                self._condition.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._condition:
                self._readers -= 1
                if self._readers == 0:
                    self._condition.notify_all()

    @contextlib.contextmanager
    def write(self) -> Iterator[None]:
        with self._condition:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._condition.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._condition:
                self._writer = False
                self._condition.notify_all()


class MetadataStore:
    """Authoritative folder/document graph persisted to one JSON file.

    Every mutation holds the exclusive lock for the whole
    read-modify-persist sequence and returns only after the snapshot has been
    atomically replaced on disk. Values handed to callers are copies.
    """

    def __init__(
        self,
        data_dir: Path,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._data_dir = Path(data_dir)
        self._path = self._data_dir / SNAPSHOT_FILENAME
        self._clock = clock
        self._lock = ReadWriteLock()
        self._snapshot = MetadataSnapshot()
        try:
            self._data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as error:
            raise PersistenceError(f"create data directory: {error}") from error
        self.load()

    @property
    def path(self) -> Path:
        return self._path

    def _now(self) -> int:
        return int(self._clock())

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def load(self) -> None:
        """Load the snapshot from disk, creating an empty one when missing."""

        with self._lock.write():
            self._snapshot = MetadataSnapshot()
            try:
                raw = self._path.read_text(encoding="utf-8")
            except FileNotFoundError:
                LOGGER.info("Metadata file %s missing; writing empty snapshot", self._path)
                self._save_locked()
                return
            except OSError as error:
                raise PersistenceError(f"open meta file: {error}") from error

            if not raw.strip():
                LOGGER.info("Metadata file %s is empty; writing empty snapshot", self._path)
                self._save_locked()
                return

            try:
                self._snapshot = MetadataSnapshot.from_dict(json.loads(raw))
            except (ValueError, TypeError, AttributeError) as error:
                raise PersistenceError(f"decode meta file: {error}") from error

            migrated = self._snapshot.normalize()
            LOGGER.debug(
                "Loaded %s folders and %s documents from %s (status backfilled=%s)",
                len(self._snapshot.folders),
                len(self._snapshot.documents),
                self._path,
                migrated,
            )

    def save(self) -> None:
        with self._lock.write():
            self._save_locked()

    def _save_locked(self) -> None:
        payload = self._snapshot.to_dict()
        try:
            handle_fd, temp_name = tempfile.mkstemp(
                prefix="meta-", suffix=".json", dir=self._path.parent
            )
        except OSError as error:
            raise PersistenceError(f"create temp meta: {error}") from error

        temp_path = Path(temp_name)
        try:
            with os.fdopen(handle_fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2, ensure_ascii=False)
                handle.write("\n")
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(temp_path, self._path)
        except (OSError, TypeError, ValueError) as error:
            with contextlib.suppress(OSError):
                temp_path.unlink()
            raise PersistenceError(f"replace meta file: {error}") from error

        LOGGER.debug(
            "Persisted snapshot (%s folders, %s documents) to %s",
            len(payload["folders"]),
            len(payload["documents"]),
            self._path,
        )

    # ------------------------------------------------------------------
    # Folder operations
    # ------------------------------------------------------------------
    def create_folder(self, name: str) -> Folder:
        with self._lock.write():
            now = self._now()
            folder = Folder(
                id=str(uuid.uuid4()),
                name=name,
                created_at=now,
                updated_at=now,
            )
            self._snapshot.folders[folder.id] = folder
            LOGGER.debug("Creating folder '%s' with id=%s", name, folder.id)
            self._save_locked()
            return copy.deepcopy(folder)

    def list_folders(self) -> List[Folder]:
        with self._lock.read():
            return [copy.deepcopy(folder) for folder in self._snapshot.folders.values()]

    def get_folder(self, folder_id: str) -> Folder:
        with self._lock.read():
            folder = self._snapshot.folders.get(folder_id)
            if folder is None:
                raise NotFoundError("folder", folder_id)
            return copy.deepcopy(folder)

    def rename_folder(self, folder_id: str, name: str) -> Folder:
        with self._lock.write():
            folder = self._snapshot.folders.get(folder_id)
            if folder is None:
                raise NotFoundError("folder", folder_id)
            LOGGER.debug("Renaming folder id=%s from '%s' to '%s'", folder_id, folder.name, name)
            folder.name = name
            folder.updated_at = self._now()
            self._save_locked()
            return copy.deepcopy(folder)

    def delete_folder(self, folder_id: str) -> None:
        with self._lock.write():
            folder = self._snapshot.folders.get(folder_id)
            if folder is None:
                raise NotFoundError("folder", folder_id)
            for document_id in folder.document_ids:
                self._snapshot.documents.pop(document_id, None)
            del self._snapshot.folders[folder_id]
            LOGGER.debug(
                "Deleted folder id=%s together with %s documents",
                folder_id,
                len(folder.document_ids),
            )
            self._save_locked()

    # ------------------------------------------------------------------
    # Document operations
    # ------------------------------------------------------------------
    def create_document(self, document: Document) -> Document:
        stored = copy.deepcopy(document)
        with self._lock.write():
            if not stored.id:
                stored.id = str(uuid.uuid4())
            if not _status_value(stored.processing_status):
                stored.processing_status = ProcessingStatus.PENDING.value
            self._normalize_document(stored)
            now = self._now()
            if not stored.created_at:
                stored.created_at = now
            stored.updated_at = now

            existing = self._snapshot.documents.get(stored.id)
            if existing is not None and existing.folder_id != stored.folder_id:
                self._detach_from_folder(existing.folder_id, stored.id)
            self._snapshot.documents[stored.id] = stored
            self._attach_to_folder(stored.folder_id, stored.id)
            LOGGER.debug(
                "Creating document id=%s in folder '%s' (status=%s)",
                stored.id,
                stored.folder_id or "<unfiled>",
                stored.processing_status,
            )
            self._save_locked()
            return copy.deepcopy(stored)

    def get_document(self, document_id: str) -> Document:
        with self._lock.read():
            document = self._snapshot.documents.get(document_id)
            if document is None:
                raise NotFoundError("document", document_id)
            return copy.deepcopy(document)

    def list_documents_by_folder(self, folder_id: str) -> List[Document]:
        with self._lock.read():
            return [
                copy.deepcopy(document)
                for document in self._snapshot.documents.values()
                if document.folder_id == folder_id
            ]

    def update_document(self, document: Document) -> Document:
        stored = copy.deepcopy(document)
        with self._lock.write():
            existing = self._snapshot.documents.get(stored.id)
            if existing is None:
                raise NotFoundError("document", stored.id)

            if not stored.created_at:
                stored.created_at = existing.created_at
            if not _status_value(stored.processing_status):
                stored.processing_status = existing.processing_status
            self._normalize_document(stored)

            if stored.folder_id != existing.folder_id:
                LOGGER.debug(
                    "Moving document id=%s from folder '%s' to '%s'",
                    stored.id,
                    existing.folder_id or "<unfiled>",
                    stored.folder_id or "<unfiled>",
                )
                self._detach_from_folder(existing.folder_id, stored.id)
                self._attach_to_folder(stored.folder_id, stored.id)
            stored.updated_at = self._now()

            self._snapshot.documents[stored.id] = stored
            LOGGER.debug(
                "Updated document id=%s (status=%s)", stored.id, stored.processing_status
            )
            self._save_locked()
            return copy.deepcopy(stored)

    def delete_document(self, document_id: str) -> None:
        with self._lock.write():
            document = self._snapshot.documents.get(document_id)
            if document is None:
                raise NotFoundError("document", document_id)
            self._detach_from_folder(document.folder_id, document_id)
            del self._snapshot.documents[document_id]
            LOGGER.debug("Deleted document id=%s", document_id)
            self._save_locked()

    # ------------------------------------------------------------------
    # Internal helpers (exclusive lock must be held)
    # ------------------------------------------------------------------
    @staticmethod
    def _normalize_document(document: Document) -> None:
        raw_status = _status_value(document.processing_status)
        try:
            status = ProcessingStatus(raw_status)
        except ValueError as error:
            raise ValidationError(f"unknown processing status: {raw_status}") from error
        document.processing_status = status.value
        if status is not ProcessingStatus.FAILED:
            document.processing_error = ""

    def _attach_to_folder(self, folder_id: str, document_id: str) -> None:
        if not folder_id:
            return
        folder: Optional[Folder] = self._snapshot.folders.get(folder_id)
        if folder is None:
            LOGGER.warning(
                "Document id=%s references unknown folder id=%s", document_id, folder_id
            )
            return
        if document_id in folder.document_ids:
            return
        folder.document_ids.append(document_id)
        folder.updated_at = self._now()

    def _detach_from_folder(self, folder_id: str, document_id: str) -> None:
        if not folder_id:
            return
        folder = self._snapshot.folders.get(folder_id)
        if folder is None:
            return
        folder.document_ids = [item for item in folder.document_ids if item != document_id]
        folder.updated_at = self._now()


__all__ = [
    "Document",
    "Folder",
    "MetadataSnapshot",
    "MetadataStore",
    "ProcessingStatus",
    "ReadWriteLock",
    "SNAPSHOT_FILENAME",
]
