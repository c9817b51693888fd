"""Storage and re-encoding of uploaded lecture audio."""

from __future__ import annotations

import logging
import mimetypes
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Callable, Dict, Optional, Protocol, Sequence, Tuple

from ..errors import (
    CompressionLimitError,
    EncoderUnavailableError,
    MyProfessorError,
    StorageIOError,
    ToolError,
    UnsupportedMediaError,
    UploadTooLargeError,
    ValidationError,
)
from .naming import build_compressed_name, build_pdf_name, build_stored_name, normalize_extension


LOGGER = logging.getLogger(__name__)


SNIFF_SAMPLE_SIZE = 512
WHISPER_LIMIT_BYTES = 25 * 1024 * 1024
DEFAULT_EXTENSION = ".bin"
OCTET_STREAM = "application/octet-stream"

_CHUNK_SIZE = 32 * 1024
_MEBIBYTE = 1024.0 * 1024.0


@dataclass(frozen=True)
class CompressionProfile:
    """One rung of the compression ladder."""

    bitrate: str
    sample_rate: int


COMPRESSION_PROFILES: Tuple[CompressionProfile, ...] = (
    CompressionProfile(bitrate="128k", sample_rate=44100),
    CompressionProfile(bitrate="96k", sample_rate=32000),
    CompressionProfile(bitrate="64k", sample_rate=22050),
    CompressionProfile(bitrate="48k", sample_rate=16000),
    CompressionProfile(bitrate="32k", sample_rate=12000),
)


MIME_EXTENSION_FALLBACK: Dict[str, str] = {
    "audio/mpeg": ".mp3",
    "audio/mp3": ".mp3",
    "audio/mp4": ".m4a",
    "audio/x-m4a": ".m4a",
    "audio/wav": ".wav",
    "audio/wave": ".wav",
    "audio/x-wav": ".wav",
    "audio/webm": ".webm",
    "audio/ogg": ".webm",
    "audio/flac": ".flac",
    "audio/aiff": ".aiff",
    "video/webm": ".webm",
    "video/mp4": ".m4a",
    "video/quicktime": ".m4a",
}


# ----------------------------------------------------------------------
# Content sniffing
# ----------------------------------------------------------------------
ContentSniffer = Callable[[bytes], str]


def _looks_like_text(sample: bytes) -> bool:
    for byte in sample:
        if byte < 0x20 and byte not in (0x09, 0x0A, 0x0C, 0x0D, 0x1B):
            return False
    return True


def sniff_content_type(sample: bytes) -> str:
    """Return a MIME type for *sample* based on well-known file signatures."""

    if not sample:
        return OCTET_STREAM
    if sample.startswith(b"ID3"):
        return "audio/mpeg"
    if len(sample) >= 2 and sample[0] == 0xFF and (sample[1] & 0xE0) == 0xE0:
        return "audio/mpeg"
    if sample.startswith(b"RIFF") and sample[8:12] == b"WAVE":
        return "audio/wave"
    if sample.startswith(b"RIFF") and sample[8:12] == b"AVI ":
        return "video/avi"
    if sample.startswith(b"FORM") and sample[8:12] in (b"AIFF", b"AIFC"):
        return "audio/aiff"
    if sample.startswith(b"OggS"):
        return "audio/ogg"
    if sample.startswith(b"fLaC"):
        return "audio/flac"
    if sample.startswith(b"MThd"):
        return "audio/midi"
    if sample.startswith(b"\x1a\x45\xdf\xa3"):
        return "video/webm"
    if sample[4:8] == b"ftyp":
        brand = sample[8:12]
        if brand in (b"M4A ", b"M4B "):
            return "audio/mp4"
        if brand == b"qt  ":
            return "video/quicktime"
        return "video/mp4"
    if sample.startswith(b"%PDF-"):
        return "application/pdf"
    if _looks_like_text(sample):
        return "text/plain; charset=utf-8"
    return OCTET_STREAM


def fallback_extension(content_type: str) -> str:
    """Map *content_type* to an extension, or ``""`` when nothing is known."""

    essence = content_type.split(";", 1)[0].strip().lower()
    if essence in MIME_EXTENSION_FALLBACK:
        return MIME_EXTENSION_FALLBACK[essence]
    guessed = mimetypes.guess_extension(essence)
    return guessed or ""


def is_media_type(content_type: str) -> bool:
    return content_type.startswith("audio/") or content_type.startswith("video/")


# ----------------------------------------------------------------------
# Encoders
# ----------------------------------------------------------------------
class AudioEncoder(Protocol):
    """Protocol describing the external transcoder used by the ladder."""

    def available(self) -> bool:
        """Return ``True`` when the encoder can be invoked."""

    def encode(self, source: Path, destination: Path, profile: CompressionProfile) -> None:
        """Write a mono MP3 of *source* to *destination* using *profile*."""


class FFmpegEncoder:
    """:class:`AudioEncoder` backed by the ``ffmpeg`` command line tool."""

    def __init__(self, binary: str = "ffmpeg", *, timeout: Optional[float] = 600.0) -> None:
        self._binary = binary
        self._timeout = timeout

    def available(self) -> bool:
        return shutil.which(self._binary) is not None

    def build_command(
        self, source: Path, destination: Path, profile: CompressionProfile
    ) -> list[str]:
        command = [
            self._binary,
            "-hide_banner",
            "-loglevel",
            "error",
            "-y",
            "-i",
            str(source),
            "-vn",
            "-ac",
            "1",
            "-acodec",
            "libmp3lame",
            "-b:a",
            profile.bitrate,
        ]
        if profile.sample_rate:
            command.extend(["-ar", str(profile.sample_rate)])
        command.append(str(destination))
        return command

    def encode(self, source: Path, destination: Path, profile: CompressionProfile) -> None:
        command = self.build_command(source, destination, profile)
        LOGGER.debug("Executing FFmpeg command: %s", " ".join(command))
        try:
            completed = subprocess.run(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                check=False,
                timeout=self._timeout,
            )
        except FileNotFoundError as error:
            raise EncoderUnavailableError(f"{self._binary} not found in PATH") from error
        except subprocess.TimeoutExpired as error:
            raise ToolError(
                f"compress audio: {self._binary} timed out after {self._timeout} seconds"
            ) from error

        if completed.returncode != 0:
            stderr = completed.stderr.decode("utf-8", errors="ignore").strip()
            details = (stderr or "FFmpeg exited with a non-zero status.").splitlines()
            LOGGER.debug(
                "FFmpeg compression failed (code=%s). stderr=%s", completed.returncode, stderr
            )
            raise ToolError(
                f"compress audio: exit status {completed.returncode}: "
                f"{details[0] if details else 'Unknown error.'}"
            )


# ----------------------------------------------------------------------
# Ingestor
# ----------------------------------------------------------------------
class MediaIngestor:
    """Store uploads under fresh names and produce size-bounded MP3 copies."""

    def __init__(
        self,
        data_dir: Path,
        max_upload_bytes: int,
        *,
        encoder: Optional[AudioEncoder] = None,
        sniffer: Optional[ContentSniffer] = None,
        hard_ceiling_bytes: int = WHISPER_LIMIT_BYTES,
        profiles: Sequence[CompressionProfile] = COMPRESSION_PROFILES,
        strict_media: bool = False,
    ) -> None:
        self._data_dir = Path(data_dir)
        self._audio_dir = self._data_dir / "audio"
        self._pdf_dir = self._data_dir / "pdf"
        self._max_upload_bytes = int(max_upload_bytes)
        self._encoder: AudioEncoder = encoder or FFmpegEncoder()
        self._sniffer: ContentSniffer = sniffer or sniff_content_type
        self._hard_ceiling_bytes = int(hard_ceiling_bytes)
        self._profiles: Tuple[CompressionProfile, ...] = tuple(profiles)
        self._strict_media = strict_media

        for directory in (self._data_dir, self._audio_dir, self._pdf_dir):
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as error:
                raise StorageIOError(f"create dir {directory}: {error}") from error

    @property
    def audio_dir(self) -> Path:
        return self._audio_dir

    @property
    def pdf_dir(self) -> Path:
        return self._pdf_dir

    @property
    def profiles(self) -> Tuple[CompressionProfile, ...]:
        return self._profiles

    # ------------------------------------------------------------------
    # Uploads
    # ------------------------------------------------------------------
    def save_upload(self, stream: BinaryIO, original_filename: Optional[str]) -> Path:
        """Persist *stream* under a generated name and return the stored path."""

        sample = self._read_sample(stream)
        content_type = (self._sniffer(sample) or OCTET_STREAM).lower()

        extension = normalize_extension(original_filename)
        if not extension:
            extension = fallback_extension(content_type) or DEFAULT_EXTENSION

        if content_type != OCTET_STREAM and not is_media_type(content_type):
            if self._strict_media:
                raise UnsupportedMediaError(f"unsupported media type {content_type}")
            LOGGER.warning(
                "Unrecognized audio mime type %s; continuing with extension %s",
                content_type,
                extension,
            )

        destination = self._audio_dir / build_stored_name(extension)
        LOGGER.debug(
            "Saving upload '%s' (sniffed=%s) to %s", original_filename, content_type, destination
        )
        total = self._write_with_limit(destination, sample, stream)
        LOGGER.info("Stored upload %s (%s bytes)", destination.name, total)
        return destination

    @staticmethod
    def _read_sample(stream: BinaryIO) -> bytes:
        sample = bytearray()
        try:
            while len(sample) < SNIFF_SAMPLE_SIZE:
                chunk = stream.read(SNIFF_SAMPLE_SIZE - len(sample))
                if not chunk:
                    break
                sample.extend(chunk)
        except OSError as error:
            raise StorageIOError(f"read audio sample: {error}") from error
        return bytes(sample)

    def _exceeds_limit(self, size: int) -> bool:
        return self._max_upload_bytes > 0 and size > self._max_upload_bytes

    def _write_with_limit(self, destination: Path, sample: bytes, stream: BinaryIO) -> int:
        if self._exceeds_limit(len(sample)):
            raise UploadTooLargeError(self._max_upload_bytes)

        try:
            handle = destination.open("xb")
        except OSError as error:
            raise StorageIOError(f"create audio file: {error}") from error

        total = 0
        try:
            with handle:
                if sample:
                    handle.write(sample)
                    total += len(sample)
                while True:
                    chunk = stream.read(_CHUNK_SIZE)
                    if not chunk:
                        break
                    total += len(chunk)
                    if self._exceeds_limit(total):
                        raise UploadTooLargeError(self._max_upload_bytes)
                    handle.write(chunk)
        except UploadTooLargeError:
            LOGGER.info(
                "Upload exceeded %s bytes; removing partial file %s",
                self._max_upload_bytes,
                destination,
            )
            self.remove_file(destination)
            raise
        except OSError as error:
            self.remove_file(destination)
            raise StorageIOError(f"write audio file: {error}") from error
        return total

    # ------------------------------------------------------------------
    # Compression ladder
    # ------------------------------------------------------------------
    def compressed_path(self, input_path: Path) -> Path:
        return self._audio_dir / build_compressed_name(Path(input_path))

    def compress(self, input_path: Path | str) -> Path:
        """Return an MP3 copy of *input_path* no larger than the hard ceiling.

        Profiles are tried in order until one produces a small enough file.
        An existing output within the ceiling is returned without re-encoding.
        """

        if not str(input_path or "").strip():
            raise ValidationError("no audio path provided for compression")
        if not self._encoder.available():
            raise EncoderUnavailableError("ffmpeg not found in PATH")

        source = Path(input_path)
        output = self.compressed_path(source)

        if output.exists():
            existing_size = self._file_size(output)
            if existing_size <= self._hard_ceiling_bytes:
                LOGGER.debug("Reusing compressed audio %s (%s bytes)", output, existing_size)
                return output
            LOGGER.info(
                "Existing compressed audio %s exceeds the limit; re-encoding", output
            )
            self.remove_file(output)

        last_error: Optional[MyProfessorError] = None
        for index, profile in enumerate(self._profiles, start=1):
            LOGGER.debug(
                "Compression attempt %s/%s for %s: bitrate=%s sample_rate=%s",
                index,
                len(self._profiles),
                source.name,
                profile.bitrate,
                profile.sample_rate,
            )
            self.remove_file(output)
            try:
                self._encoder.encode(source, output, profile)
                size = self._file_size(output)
            except ToolError as error:
                LOGGER.warning("Compression profile %s failed: %s", profile.bitrate, error)
                last_error = error
                self.remove_file(output)
                continue

            if size > self._hard_ceiling_bytes:
                last_error = CompressionLimitError(
                    "compressed audio size %.2f MB exceeds Whisper limit of %.2f MB"
                    % (size / _MEBIBYTE, self._hard_ceiling_bytes / _MEBIBYTE)
                )
                LOGGER.debug("Profile %s produced %s bytes; trying next", profile.bitrate, size)
                self.remove_file(output)
                continue

            LOGGER.info(
                "Compressed %s with profile %s/%s (%s bytes)",
                source.name,
                profile.bitrate,
                profile.sample_rate,
                size,
            )
            return output

        if last_error is None:
            last_error = CompressionLimitError(
                "compressed audio still exceeds Whisper limit after applying fallback profiles"
            )
        raise last_error

    @staticmethod
    def _file_size(path: Path) -> int:
        try:
            return path.stat().st_size
        except FileNotFoundError as error:
            raise ToolError(f"encoder produced no output at {path}") from error
        except OSError as error:
            raise StorageIOError(f"stat compressed audio: {error}") from error

    # ------------------------------------------------------------------
    # PDF artifacts
    # ------------------------------------------------------------------
    def pdf_path(self, document_id: str) -> Path:
        return self._pdf_dir / build_pdf_name(document_id)

    def save_pdf(self, document_id: str, stream: BinaryIO) -> Path:
        destination = self.pdf_path(document_id)
        try:
            with destination.open("wb") as handle:
                shutil.copyfileobj(stream, handle, length=_CHUNK_SIZE)
        except OSError as error:
            self.remove_file(destination)
            raise StorageIOError(f"write pdf file: {error}") from error
        return destination

    @staticmethod
    def remove_file(path: Optional[Path | str]) -> None:
        """Best-effort removal used for partial files and deleted documents."""

        if not path:
            return
        try:
            Path(path).unlink()
        except FileNotFoundError:
            return
        except OSError as error:
            LOGGER.warning("Could not remove %s: %s", path, error)


__all__ = [
    "AudioEncoder",
    "COMPRESSION_PROFILES",
    "CompressionProfile",
    "ContentSniffer",
    "FFmpegEncoder",
    "MIME_EXTENSION_FALLBACK",
    "MediaIngestor",
    "SNIFF_SAMPLE_SIZE",
    "WHISPER_LIMIT_BYTES",
    "fallback_extension",
    "is_media_type",
    "sniff_content_type",
]
