from __future__ import annotations

from pathlib import Path

import pytest

from myprofessor.processing.pdf import PyMuPDFDocumentRenderer, wrap_text
from myprofessor.services.storage import Document, Folder


def _measure(text: str, *, fontsize: float) -> float:
    return len(text) * fontsize


def test_wrap_text_breaks_on_word_boundaries() -> None:
    lines = wrap_text("one two three four", 9 * 1.0, _measure, fontsize=1.0)

    assert lines == ["one two", "three", "four"]


def test_wrap_text_keeps_blank_lines_and_long_words() -> None:
    lines = wrap_text("alpha\n\nsupercalifragilistic", 5.0, _measure, fontsize=1.0)

    assert lines == ["alpha", "", "supercalifragilistic"]


def test_renderer_writes_all_sections(tmp_path: Path) -> None:
    fitz = pytest.importorskip("fitz")
    document = Document(
        id="doc-1",
        title="Quantum Basics",
        transcription="The wave function describes the state.\n" * 80,
        summary="Superposition\nMeasurement",
        course="Lesson one",
        created_at=1_700_000_000,
    )
    folder = Folder(id="f1", name="Physics")
    destination = tmp_path / "pdf" / "doc-1.pdf"

    result = PyMuPDFDocumentRenderer().render(document, folder, destination)

    assert result == destination
    with fitz.open(str(destination)) as pdf:
        assert pdf.page_count >= 2
        text = "".join(page.get_text() for page in pdf)
        assert pdf.metadata["title"] == "Course doc-1"

    assert "Quantum Basics" in text
    assert "Folder: Physics" in text
    assert "Transcription" in text
    assert "Summary" in text
    assert "Superposition" in text
    assert "Course" in text


def test_renderer_handles_missing_folder_and_empty_sections(tmp_path: Path) -> None:
    fitz = pytest.importorskip("fitz")
    destination = tmp_path / "empty.pdf"

    PyMuPDFDocumentRenderer().render(Document(id="x", title=""), None, destination)

    with fitz.open(str(destination)) as pdf:
        text = "".join(page.get_text() for page in pdf)

    assert "Folder: None" in text
    assert "(empty)" in text
