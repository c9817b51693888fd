"""Configuration loading utilities for the myProfessor service."""

from __future__ import annotations

import contextlib
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from .errors import ConfigError


LOGGER = logging.getLogger(__name__)


_PERMISSION_SENTINEL = ".myprofessor_write_check"

_DEFAULTS: Dict[str, Any] = {
    "port": "8080",
    "base_url": "",
    "share_secret": "change-me",
    "share_ttl_seconds": 86400,
    "max_upload_mb": 50,
    "data_dir": "data",
    "openai_api_key": "",
    "openai_model_transcribe": "whisper-1",
    "openai_model_summary": "gpt-4o-mini",
    "ffmpeg_timeout_seconds": 600,
}

_ENVIRONMENT_KEYS: Dict[str, str] = {
    "PORT": "port",
    "BASE_URL": "base_url",
    "SHARE_SECRET": "share_secret",
    "SHARE_TTL_SECONDS": "share_ttl_seconds",
    "MAX_UPLOAD_MB": "max_upload_mb",
    "DATA_DIR": "data_dir",
    "OPENAI_API_KEY": "openai_api_key",
    "OPENAI_MODEL_TRANSCRIBE": "openai_model_transcribe",
    "OPENAI_MODEL_SUMMARY": "openai_model_summary",
    "FFMPEG_TIMEOUT_SECONDS": "ffmpeg_timeout_seconds",
}


def _ensure_writable_directory(path: Path) -> bool:
    """Return ``True`` if *path* can be created and written to."""

    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError:
        return False

    test_file = path / _PERMISSION_SENTINEL
    try:
        with test_file.open("w", encoding="utf-8") as handle:
            handle.write("ok")
    except OSError:
        return False
    finally:
        with contextlib.suppress(OSError):
            test_file.unlink()

    return True


def _select_writable_directory(
    preferred: Path,
    *,
    label: str,
    fallbacks: Iterable[Path] = (),
) -> Tuple[Path, bool]:
    """Return a usable directory based on ``preferred`` and ``fallbacks``.

    The first writable candidate wins. A flag reports whether a fallback was
    used. When nothing can be prepared ``preferred`` is returned unchanged.
    """

    preferred = preferred.resolve()
    if _ensure_writable_directory(preferred):
        return preferred, False

    for fallback in fallbacks:
        candidate = fallback.resolve()
        if candidate == preferred:
            continue
        if _ensure_writable_directory(candidate):
            LOGGER.warning(
                "Preferred %s directory '%s' is not writable; using fallback '%s'.",
                label,
                preferred,
                candidate,
            )
            return candidate, True

    LOGGER.warning(
        "%s directory '%s' is not writable and no fallback is available.",
        label.capitalize(),
        preferred,
    )
    return preferred, False


def _parse_int(key: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"parse {key.upper()}: expected an integer, got {value!r}")
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError as error:
        raise ConfigError(f"parse {key.upper()}: {value!r} is not an integer") from error


@dataclass(frozen=True)
class AppConfig:
    """Runtime settings and on-disk layout for the service."""

    data_dir: Path
    port: int = 8080
    base_url: str = "http://localhost:8080"
    share_secret: str = "change-me"
    share_ttl_seconds: int = 86400
    max_upload_bytes: int = 50 * 1024 * 1024
    openai_api_key: str = ""
    openai_model_transcribe: str = "whisper-1"
    openai_model_summary: str = "gpt-4o-mini"
    ffmpeg_timeout_seconds: int = 600

    @property
    def metadata_file(self) -> Path:
        return self.data_dir / "meta.json"

    @property
    def audio_dir(self) -> Path:
        return self.data_dir / "audio"

    @property
    def pdf_dir(self) -> Path:
        return self.data_dir / "pdf"

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any], *, base_path: Path) -> "AppConfig":
        values: Dict[str, Any] = dict(_DEFAULTS)
        values.update({key: value for key, value in mapping.items() if value not in (None, "")})

        port = _parse_int("port", values["port"])
        share_ttl = _parse_int("share_ttl_seconds", values["share_ttl_seconds"])
        max_upload_mb = _parse_int("max_upload_mb", values["max_upload_mb"])
        ffmpeg_timeout = _parse_int("ffmpeg_timeout_seconds", values["ffmpeg_timeout_seconds"])

        preferred_data = (base_path / str(values["data_dir"])).expanduser()
        data_dir, _ = _select_writable_directory(
            preferred_data,
            label="data",
            fallbacks=(Path.home() / ".myprofessor" / "data",),
        )

        base_url = str(values["base_url"] or f"http://localhost:{port}").rstrip("/")

        return cls(
            data_dir=data_dir,
            port=port,
            base_url=base_url,
            share_secret=str(values["share_secret"]),
            share_ttl_seconds=share_ttl,
            max_upload_bytes=max_upload_mb * 1024 * 1024,
            openai_api_key=str(values["openai_api_key"]),
            openai_model_transcribe=str(values["openai_model_transcribe"]),
            openai_model_summary=str(values["openai_model_summary"]),
            ffmpeg_timeout_seconds=ffmpeg_timeout,
        )


def _read_environment(environ: Mapping[str, str]) -> Dict[str, str]:
    overrides: Dict[str, str] = {}
    for variable, key in _ENVIRONMENT_KEYS.items():
        value = environ.get(variable)
        if value:
            overrides[key] = value
    return overrides


def load_config(
    config_path: Path | None = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> AppConfig:
    """Load configuration from ``config/default.json`` and the environment.

    Environment variables take precedence over the JSON file, which in turn
    overrides the built-in defaults. The JSON file is optional.
    """

    base_path = Path.cwd()
    if config_path is None:
        config_path = base_path / "config" / "default.json"

    raw_config: Dict[str, Any] = {}
    if config_path.exists():
        try:
            with config_path.open("r", encoding="utf-8") as config_file:
                raw_config = json.load(config_file)
        except json.JSONDecodeError as error:
            raise ConfigError(f"decode {config_path}: {error}") from error
        LOGGER.debug("Loaded configuration file %s", config_path)

    raw_config.update(_read_environment(os.environ if environ is None else environ))
    return AppConfig.from_mapping(raw_config, base_path=base_path)


__all__ = ["AppConfig", "load_config"]
