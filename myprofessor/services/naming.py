"""Utility helpers for consistent on-disk file naming."""

from __future__ import annotations

import uuid
from pathlib import Path
from typing import Optional

__all__ = [
    "COMPRESSED_EXTENSION",
    "COMPRESSED_SUFFIX",
    "build_compressed_name",
    "build_pdf_name",
    "build_stored_name",
    "normalize_extension",
    "strip_extension",
]


COMPRESSED_SUFFIX = "_compressed"
COMPRESSED_EXTENSION = ".mp3"


def normalize_extension(filename: Optional[str]) -> str:
    """Return the lower-cased extension of *filename* including the dot, or ``""``."""

    if not filename:
        return ""
    extension = Path(filename.strip()).suffix.strip().lower()
    if extension in ("", "."):
        return ""
    return extension if extension.startswith(".") else f".{extension}"


def build_stored_name(extension: str, *, identifier: Optional[str] = None) -> str:
    """Return a fresh ``<uuid><extension>`` name unrelated to the client's filename."""

    stem = identifier or str(uuid.uuid4())
    if extension and not extension.startswith("."):
        extension = f".{extension}"
    return f"{stem}{extension}"


def build_compressed_name(source: Path) -> str:
    """Return the deterministic compressed filename derived from *source*."""

    return f"{source.stem}{COMPRESSED_SUFFIX}{COMPRESSED_EXTENSION}"


def build_pdf_name(document_id: str) -> str:
    return f"{document_id}.pdf"


def strip_extension(filename: Optional[str]) -> str:
    """Return *filename* without directories and without its final extension."""

    if not filename:
        return ""
    name = Path(filename).name
    return Path(name).stem if Path(name).suffix else name
