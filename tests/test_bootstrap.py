from pathlib import Path

import pytest

import myprofessor.config as config_module
from myprofessor.bootstrap import Bootstrapper
from myprofessor.config import AppConfig
from myprofessor.errors import BootstrapError
from myprofessor.services.storage import SNAPSHOT_FILENAME


def test_bootstrapper_raises_when_audio_directory_unwritable(
    tmp_path: Path, monkeypatch
) -> None:
    data_dir = tmp_path / "data"
    config = AppConfig(data_dir=data_dir)

    original_ensure = config_module._ensure_writable_directory

    def fake_ensure(path: Path) -> bool:
        if path.resolve() == (data_dir / "audio").resolve():
            return False
        return original_ensure(path)

    monkeypatch.setattr(config_module, "_ensure_writable_directory", fake_ensure)

    with pytest.raises(BootstrapError) as excinfo:
        Bootstrapper(config).initialize()

    assert "audio" in str(excinfo.value).lower()


def test_build_services_creates_empty_snapshot(temp_config: AppConfig, fake_encoder) -> None:
    services = Bootstrapper(temp_config).build_services(encoder=fake_encoder)

    assert (temp_config.data_dir / SNAPSHOT_FILENAME).exists()
    assert services.store.list_folders() == []
    assert services.media.audio_dir == temp_config.audio_dir
    assert not services.ingestor.can_process
    assert services.share.issue("doc").url.startswith("http://testserver/pdf/doc?exp=")


def test_build_services_reports_corrupt_snapshot(temp_config: AppConfig) -> None:
    (temp_config.data_dir / SNAPSHOT_FILENAME).write_text("{broken", encoding="utf-8")

    with pytest.raises(BootstrapError) as excinfo:
        Bootstrapper(temp_config).build_services()

    assert "init store" in str(excinfo.value)
