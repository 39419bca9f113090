from pathlib import Path
from typing import Iterable, Optional

import pytest
import yaml
from PIL import Image

from config import ConfigProvider


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch) -> None:
    for name in ("GALLERY_CONFIG", "GALLERY_MEDIA_DIRS", "GALLERY_THUMB_DIR"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def write_config(tmp_path: Path):
    """Write config.yaml under tmp_path and return its path."""

    def _write(
        roots: Iterable[Path] = (),
        thumbs: bool = True,
        scan: Optional[dict] = None,
        thumbnails: Optional[dict] = None,
    ) -> Path:
        data = {
            "media": {"roots": [root.as_posix() for root in roots]},
            "paths": {
                "state": (tmp_path / "state").as_posix(),
                "logs": (tmp_path / "logs").as_posix(),
            },
        }
        if thumbs:
            data["paths"]["thumbnails"] = (tmp_path / "thumbs").as_posix()
        if scan:
            data["scan"] = scan
        if thumbnails:
            data["thumbnails"] = thumbnails
        config_path = tmp_path / "config.yaml"
        config_path.write_text(yaml.safe_dump(data), encoding="utf-8")
        return config_path

    return _write


@pytest.fixture
def make_provider(write_config):
    def _make(*args, **kwargs) -> ConfigProvider:
        return ConfigProvider(write_config(*args, **kwargs))

    return _make


@pytest.fixture
def make_image():
    def _make(path: Path, size=(640, 480), color=(200, 40, 40)) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        Image.new("RGB", size, color).save(path, "JPEG")
        return path

    return _make

