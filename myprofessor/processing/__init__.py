"""Processing backends for lecture documents."""

from .openai_backend import OpenAISummarizer, OpenAITranscription
from .pdf import PyMuPDFDocumentRenderer

__all__ = [
    "OpenAISummarizer",
    "OpenAITranscription",
    "PyMuPDFDocumentRenderer",
]
