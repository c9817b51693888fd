"""Bootstrap logic that prepares runtime directories and core services."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from . import config as config_module
from .config import AppConfig, load_config
from .errors import BootstrapError, MyProfessorError
from .services.ingestion import DocumentIngestor, Summarizer, TranscriptionEngine
from .services.media import AudioEncoder, FFmpegEncoder, MediaIngestor
from .services.sharing import ShareService
from .services.storage import MetadataStore

LOGGER = logging.getLogger(__name__)


@dataclass
class Services:
    """The wired-up core used by the web layer and the CLI."""

    config: AppConfig
    store: MetadataStore
    media: MediaIngestor
    share: ShareService
    ingestor: DocumentIngestor


class Bootstrapper:
    """High level object orchestrating initialization steps."""

    def __init__(self, config: AppConfig) -> None:
        self._config = config

    @property
    def config(self) -> AppConfig:
        return self._config

    def initialize(self) -> None:
        """Run all bootstrap tasks."""

        LOGGER.debug("Starting bootstrap sequence")
        self._ensure_directories()
        LOGGER.info("Bootstrap completed successfully")

    def _ensure_directories(self) -> None:
        directories = (
            ("data", self._config.data_dir),
            ("audio", self._config.audio_dir),
            ("pdf", self._config.pdf_dir),
        )
        for label, path in directories:
            if not config_module._ensure_writable_directory(path):
                raise BootstrapError(
                    f"Unable to prepare {label} directory '{path}'. It is not writable. "
                    "Set DATA_DIR or adjust permissions."
                )
            LOGGER.debug("Ensured %s directory exists: %s", label, path)

    def build_services(
        self,
        *,
        encoder: Optional[AudioEncoder] = None,
        transcription_engine: Optional[TranscriptionEngine] = None,
        summarizer: Optional[Summarizer] = None,
    ) -> Services:
        """Create the metadata store, media ingestor, share service and pipeline."""

        config = self._config
        try:
            store = MetadataStore(config.data_dir)
        except MyProfessorError as error:
            raise BootstrapError(f"init store: {error}") from error

        media = MediaIngestor(
            config.data_dir,
            config.max_upload_bytes,
            encoder=encoder or FFmpegEncoder(timeout=float(config.ffmpeg_timeout_seconds)),
        )
        share = ShareService(config.share_secret, config.base_url, config.share_ttl_seconds)
        ingestor = DocumentIngestor(
            store,
            media,
            transcription_engine=transcription_engine,
            summarizer=summarizer,
        )
        return Services(config=config, store=store, media=media, share=share, ingestor=ingestor)


def initialize_app(config_path: Path | None = None) -> AppConfig:
    """Convenience helper that loads configuration and runs initialization."""

    config = load_config(config_path=config_path)
    bootstrapper = Bootstrapper(config)
    bootstrapper.initialize()
    return config


__all__ = ["Bootstrapper", "Services", "initialize_app"]
