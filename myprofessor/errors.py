"""Exception hierarchy shared by the myProfessor services."""

from __future__ import annotations


class MyProfessorError(RuntimeError):
    """Base class for every error raised by the application core."""


class ConfigError(MyProfessorError):
    """Raised when configuration values cannot be parsed."""


class BootstrapError(MyProfessorError):
    """Raised when initialization cannot be completed."""


class NotFoundError(MyProfessorError):
    """Raised when a referenced folder or document does not exist."""

    def __init__(self, kind: str, identifier: str) -> None:
        super().__init__(f"{kind} {identifier} not found")
        self.kind = kind
        self.identifier = identifier


class ValidationError(MyProfessorError):
    """Raised when user supplied media cannot be accepted."""


class UploadTooLargeError(ValidationError):
    """Raised when an upload exceeds the configured maximum size."""

    def __init__(self, limit: int) -> None:
        super().__init__("audio file exceeds maximum size")
        self.limit = limit


class UnsupportedMediaError(ValidationError):
    """Raised when an upload cannot be identified as usable media."""


class CompressionLimitError(ValidationError):
    """Raised when audio stays above the hard ceiling after every profile."""


class ToolError(MyProfessorError):
    """Raised when the external transcoder fails."""


class EncoderUnavailableError(ToolError):
    """Raised when the external transcoder is not installed."""


class PersistenceError(MyProfessorError):
    """Raised when the metadata snapshot cannot be written or read."""


class StorageIOError(MyProfessorError):
    """Raised for filesystem failures outside of snapshot persistence."""


class RemoteServiceError(MyProfessorError):
    """Raised when the remote transcription or summary service fails."""


class PdfRenderError(MyProfessorError):
    """Raised when a document cannot be rendered to PDF."""


__all__ = [
    "BootstrapError",
    "CompressionLimitError",
    "ConfigError",
    "EncoderUnavailableError",
    "MyProfessorError",
    "NotFoundError",
    "PdfRenderError",
    "PersistenceError",
    "RemoteServiceError",
    "StorageIOError",
    "ToolError",
    "UnsupportedMediaError",
    "UploadTooLargeError",
    "ValidationError",
]
