"""PDF rendering of processed lectures."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, List, Optional

from ..errors import PdfRenderError
from ..services.storage import Document, Folder


LOGGER = logging.getLogger(__name__)


_PAGE_WIDTH = 595.0
_PAGE_HEIGHT = 842.0
_MARGIN = 56.0
_BODY_FONT = "helv"
_BOLD_FONT = "hebo"


def wrap_text(text: str, max_width: float, measure, *, fontsize: float) -> List[str]:
    """Split *text* into lines no wider than *max_width* according to *measure*."""

    lines: List[str] = []
    for paragraph in text.splitlines() or [""]:
        words = paragraph.split()
        if not words:
            lines.append("")
            continue
        current = words[0]
        for word in words[1:]:
            candidate = f"{current} {word}"
            if measure(candidate, fontsize=fontsize) <= max_width:
                current = candidate
            else:
                lines.append(current)
                current = word
        lines.append(current)
    return lines


class _PageWriter:
    """Cursor that flows lines of text across as many pages as needed."""

    def __init__(self, fitz_module: Any, document: Any) -> None:
        self._fitz = fitz_module
        self._document = document
        self._page = None
        self._y = 0.0
        self._new_page()

    def _new_page(self) -> None:
        self._page = self._document.new_page(width=_PAGE_WIDTH, height=_PAGE_HEIGHT)
        self._y = _MARGIN

    def _measure(self, fontname: str):
        def measure(text: str, *, fontsize: float) -> float:
            return self._fitz.get_text_length(text, fontname=fontname, fontsize=fontsize)

        return measure

    def write(self, text: str, *, fontsize: float = 11.0, bold: bool = False, spacing: float = 1.4) -> None:
        fontname = _BOLD_FONT if bold else _BODY_FONT
        line_height = fontsize * spacing
        width = _PAGE_WIDTH - 2 * _MARGIN
        for line in wrap_text(text, width, self._measure(fontname), fontsize=fontsize):
            if self._y + line_height > _PAGE_HEIGHT - _MARGIN:
                self._new_page()
            self._page.insert_text(
                (_MARGIN, self._y + fontsize),
                line,
                fontname=fontname,
                fontsize=fontsize,
            )
            self._y += line_height

    def skip(self, amount: float) -> None:
        self._y += amount


class PyMuPDFDocumentRenderer:
    """Render a document's transcript, summary and course with PyMuPDF."""

    def __init__(self, *, author: str = "myProfessor") -> None:
        self._author = author

    @staticmethod
    def _load_fitz() -> Any:
        try:
            import fitz  # type: ignore
        except ImportError as exc:  # pragma: no cover - runtime check
            raise PdfRenderError("PyMuPDF (fitz) is not installed") from exc
        return fitz

    def render(self, document: Document, folder: Optional[Folder], destination: Path) -> Path:
        fitz = self._load_fitz()
        destination = Path(destination)
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
        except OSError as error:
            raise PdfRenderError(f"ensure pdf directory: {error}") from error

        title = document.title.strip() or "Course"
        pdf = fitz.open()
        try:
            pdf.set_metadata({"title": f"Course {document.id}", "author": self._author})
            writer = _PageWriter(fitz, pdf)
            writer.write(title, fontsize=18, bold=True)
            writer.skip(6)
            writer.write(f"Folder: {self._folder_label(folder)}")
            created = datetime.fromtimestamp(document.created_at or 0)
            writer.write(f"Created: {created.strftime('%d/%m/%Y %H:%M')}")
            writer.skip(12)

            self._write_section(writer, "Transcription", document.transcription)
            writer.skip(8)
            self._write_section(writer, "Summary", document.summary, bullet=True)
            if document.course.strip():
                writer.skip(8)
                self._write_section(writer, "Course", document.course)

            pdf.save(str(destination))
        except PdfRenderError:
            raise
        except Exception as error:  # noqa: BLE001 - PyMuPDF raises plain exceptions
            destination.unlink(missing_ok=True)
            raise PdfRenderError(f"write pdf: {error}") from error
        finally:
            pdf.close()

        LOGGER.debug("PDF for document %s written to %s", document.id, destination)
        return destination

    @staticmethod
    def _folder_label(folder: Optional[Folder]) -> str:
        if folder is None or not folder.id:
            return "None"
        return folder.name.strip() or folder.id

    @staticmethod
    def _section_lines(content: str, bullet: bool) -> Iterable[str]:
        lines = [line.strip() for line in content.strip().splitlines() if line.strip()]
        if not lines:
            yield "(empty)"
            return
        for line in lines:
            yield f"• {line}" if bullet else line

    def _write_section(self, writer: _PageWriter, heading: str, content: str, *, bullet: bool = False) -> None:
        writer.write(heading, fontsize=14, bold=True)
        writer.skip(4)
        for line in self._section_lines(content, bullet):
            writer.write(line)


__all__ = ["PyMuPDFDocumentRenderer", "wrap_text"]
