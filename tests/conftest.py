from __future__ import annotations

import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from myprofessor.bootstrap import Bootstrapper
from myprofessor.config import AppConfig
from myprofessor.errors import ToolError
from myprofessor.services.media import CompressionProfile


class FakeEncoder:
    """Writes a file of a configured size per bitrate instead of running ffmpeg."""

    def __init__(
        self,
        sizes: Optional[Dict[str, int]] = None,
        *,
        default_size: int = 1024,
        available: bool = True,
        failing: Tuple[str, ...] = (),
        silent: Tuple[str, ...] = (),
    ) -> None:
        self.sizes = dict(sizes or {})
        self.default_size = default_size
        self.is_available = available
        self.failing = failing
        self.silent = silent
        self.calls: List[Tuple[Path, Path, CompressionProfile]] = []

    def available(self) -> bool:
        return self.is_available

    def encode(self, source: Path, destination: Path, profile: CompressionProfile) -> None:
        self.calls.append((Path(source), Path(destination), profile))
        if profile.bitrate in self.failing:
            raise ToolError(f"compress audio: exit status 1: bad input for {profile.bitrate}")
        if profile.bitrate in self.silent:
            return
        size = self.sizes.get(profile.bitrate, self.default_size)
        Path(destination).write_bytes(b"\0" * size)


@pytest.fixture()
def fake_encoder() -> FakeEncoder:
    return FakeEncoder()


@pytest.fixture()
def temp_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> AppConfig:
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    config_file = config_dir / "default.json"
    config_file.write_text(
        """
        {
            \"data_dir\": \"data\",
            \"share_secret\": \"test-secret\",
            \"max_upload_mb\": 1
        }
        """,
        encoding="utf-8",
    )
    monkeypatch.chdir(tmp_path)

    config = AppConfig.from_mapping(
        {
            "data_dir": "data",
            "share_secret": "test-secret",
            "max_upload_mb": 1,
            "base_url": "http://testserver",
        },
        base_path=tmp_path,
    )

    Bootstrapper(config).initialize()
    return config
