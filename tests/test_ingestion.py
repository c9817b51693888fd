from __future__ import annotations

import io
from pathlib import Path
from typing import List, Optional

import pytest

from myprofessor.config import AppConfig
from myprofessor.errors import (
    EncoderUnavailableError,
    NotFoundError,
    PersistenceError,
    RemoteServiceError,
    ValidationError,
)
from myprofessor.services.ingestion import (
    DocumentIngestor,
    DocumentRenderer,
    Summarizer,
    TranscriptionEngine,
)
from myprofessor.services.media import MediaIngestor
from myprofessor.services.storage import Document, Folder, MetadataStore

from conftest import FakeEncoder


MP3_BYTES = b"ID3\x04\x00\x00\x00\x00\x00\x00" + b"\x00" * 2048


class DummyTranscriptionEngine(TranscriptionEngine):
    def __init__(self, text: str = "Today we cover entropy.") -> None:
        self.text = text
        self.paths: List[Path] = []

    def transcribe(self, audio_path: Path) -> str:
        self.paths.append(Path(audio_path))
        return self.text


class FailingTranscriptionEngine(TranscriptionEngine):
    def transcribe(self, audio_path: Path) -> str:
        raise RemoteServiceError("transcription failed: quota exceeded")


class DummySummarizer(Summarizer):
    def __init__(self) -> None:
        self.instructions: List[str] = []

    def summarize(self, transcription: str) -> str:
        return f"- {transcription}"

    def generate_course(self, transcription: str, instructions: str = "") -> str:
        self.instructions.append(instructions)
        return f"# Course\n{transcription}"


class DummyRenderer(DocumentRenderer):
    def __init__(self) -> None:
        self.folders: List[Optional[Folder]] = []

    def render(self, document: Document, folder: Optional[Folder], destination: Path) -> Path:
        self.folders.append(folder)
        destination.write_bytes(b"%PDF-1.4 dummy")
        return destination


def _build(
    config: AppConfig,
    *,
    encoder: Optional[FakeEncoder] = None,
    engine: Optional[TranscriptionEngine] = None,
    summarizer: Optional[Summarizer] = None,
):
    store = MetadataStore(config.data_dir)
    media = MediaIngestor(
        config.data_dir, config.max_upload_bytes, encoder=encoder or FakeEncoder()
    )
    ingestor = DocumentIngestor(
        store, media, transcription_engine=engine, summarizer=summarizer
    )
    return store, media, ingestor


def test_upload_without_engine_stores_pending_document(temp_config: AppConfig) -> None:
    store, media, ingestor = _build(temp_config)
    folder = store.create_folder("Thermodynamics")

    document = ingestor.ingest_upload(folder.id, io.BytesIO(MP3_BYTES), "Week 1.mp3")

    assert document.title == "Week 1"
    assert document.processing_status == "pending"
    assert document.source_type == "upload"
    assert Path(document.audio_path).parent == media.audio_dir
    assert Path(document.audio_path).read_bytes() == MP3_BYTES
    assert store.get_folder(folder.id).document_ids == [document.id]


def test_upload_to_unknown_folder_writes_nothing(temp_config: AppConfig) -> None:
    store, media, ingestor = _build(temp_config)

    with pytest.raises(NotFoundError):
        ingestor.ingest_upload("missing", io.BytesIO(MP3_BYTES), "a.mp3")

    assert list(media.audio_dir.iterdir()) == []


def test_upload_is_removed_when_document_cannot_be_persisted(
    temp_config: AppConfig, monkeypatch: pytest.MonkeyPatch
) -> None:
    store, media, ingestor = _build(temp_config)
    folder = store.create_folder("Broken")

    def broken_create(document: Document) -> Document:
        raise PersistenceError("replace meta file: disk full")

    monkeypatch.setattr(store, "create_document", broken_create)

    with pytest.raises(PersistenceError):
        ingestor.ingest_upload(folder.id, io.BytesIO(MP3_BYTES), "a.mp3")

    assert list(media.audio_dir.iterdir()) == []


def test_upload_with_engine_runs_full_pipeline(temp_config: AppConfig) -> None:
    engine = DummyTranscriptionEngine()
    store, media, ingestor = _build(
        temp_config, engine=engine, summarizer=DummySummarizer()
    )
    folder = store.create_folder("Physics")

    document = ingestor.ingest_upload(folder.id, io.BytesIO(MP3_BYTES), "lecture.mp3")

    assert document.processing_status == "completed"
    assert document.processing_error == ""
    assert document.transcription == "Today we cover entropy."
    assert document.summary == "- Today we cover entropy."
    assert document.audio_path.endswith("_compressed.mp3")
    assert Path(document.original_audio_path).read_bytes() == MP3_BYTES
    assert engine.paths == [Path(document.audio_path)]


def test_reprocessing_uses_the_original_recording(temp_config: AppConfig) -> None:
    encoder = FakeEncoder()
    engine = DummyTranscriptionEngine()
    store, media, ingestor = _build(temp_config, encoder=encoder, engine=engine)
    folder = store.create_folder("Physics")
    document = ingestor.ingest_upload(folder.id, io.BytesIO(MP3_BYTES), "lecture.mp3")

    again = ingestor.process(document.id)

    assert again.original_audio_path == document.original_audio_path
    assert again.audio_path == document.audio_path
    assert len(encoder.calls) == 1


def test_processing_failure_marks_document_failed(temp_config: AppConfig) -> None:
    store, media, ingestor = _build(temp_config, engine=FailingTranscriptionEngine())
    folder = store.create_folder("Chemistry")
    pending = ingestor.ingest_upload(
        folder.id, io.BytesIO(MP3_BYTES), "lecture.mp3", process=False
    )

    with pytest.raises(RemoteServiceError):
        ingestor.process(pending.id)

    stored = store.get_document(pending.id)
    assert stored.processing_status == "failed"
    assert stored.processing_error == "transcription failed: quota exceeded"
    assert stored.transcription == ""


def test_missing_encoder_marks_document_failed(temp_config: AppConfig) -> None:
    store, media, ingestor = _build(
        temp_config,
        encoder=FakeEncoder(available=False),
        engine=DummyTranscriptionEngine(),
    )
    folder = store.create_folder("Biology")

    with pytest.raises(EncoderUnavailableError):
        ingestor.ingest_upload(folder.id, io.BytesIO(MP3_BYTES), "lecture.mp3")

    (document,) = store.list_documents_by_folder(folder.id)
    assert document.processing_status == "failed"
    assert "ffmpeg" in document.processing_error


class EditingTranscriptionEngine(TranscriptionEngine):
    """Edits the document through the store while transcription is running."""

    def __init__(self, store: MetadataStore, fail: bool = False) -> None:
        self.store = store
        self.fail = fail
        self.document_id = ""

    def transcribe(self, audio_path: Path) -> str:
        document = self.store.get_document(self.document_id)
        document.title = "Renamed meanwhile"
        document.course = "Course written meanwhile"
        self.store.update_document(document)
        if self.fail:
            raise RemoteServiceError("transcription failed: timeout")
        return "Fresh transcript"


@pytest.mark.parametrize("fail", [False, True])
def test_process_keeps_edits_made_while_running(temp_config: AppConfig, fail: bool) -> None:
    store, media, ingestor = _build(temp_config)
    engine = EditingTranscriptionEngine(store, fail=fail)
    ingestor = DocumentIngestor(store, media, transcription_engine=engine)
    folder = store.create_folder("Concurrency")
    pending = ingestor.ingest_upload(
        folder.id, io.BytesIO(MP3_BYTES), "lecture.mp3", process=False
    )
    engine.document_id = pending.id

    if fail:
        with pytest.raises(RemoteServiceError):
            ingestor.process(pending.id)
    else:
        ingestor.process(pending.id)

    stored = store.get_document(pending.id)
    assert stored.title == "Renamed meanwhile"
    assert stored.course == "Course written meanwhile"
    if fail:
        assert stored.processing_status == "failed"
        assert stored.processing_error == "transcription failed: timeout"
    else:
        assert stored.processing_status == "completed"
        assert stored.transcription == "Fresh transcript"


def test_process_requires_engine(temp_config: AppConfig) -> None:
    store, media, ingestor = _build(temp_config)

    with pytest.raises(ValidationError):
        ingestor.process("anything")


def test_generate_course_requires_transcription(temp_config: AppConfig) -> None:
    summarizer = DummySummarizer()
    store, media, ingestor = _build(temp_config, summarizer=summarizer)
    empty = store.create_document(Document(title="Empty"))
    ready = store.create_document(Document(title="Ready", transcription="Vectors"))

    with pytest.raises(ValidationError):
        ingestor.generate_course(empty.id)

    document = ingestor.generate_course(ready.id, "focus on proofs")
    assert document.course == "# Course\nVectors"
    assert summarizer.instructions == ["focus on proofs"]
    assert store.get_document(ready.id).course == "# Course\nVectors"


def test_render_pdf_records_path_and_folder(temp_config: AppConfig) -> None:
    renderer = DummyRenderer()
    store, media, ingestor = _build(temp_config)
    folder = store.create_folder("Literature")
    filed = store.create_document(Document(folder_id=folder.id, title="Poems"))
    orphan = store.create_document(Document(folder_id="ghost", title="Lost"))

    rendered = ingestor.render_pdf(filed.id, renderer)
    ingestor.render_pdf(orphan.id, renderer)

    assert rendered.pdf_path == str(media.pdf_path(filed.id))
    assert Path(rendered.pdf_path).read_bytes() == b"%PDF-1.4 dummy"
    assert renderer.folders[0].name == "Literature"
    assert renderer.folders[1] is None
