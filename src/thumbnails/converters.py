"""
HEIC to JPEG converters tried in order until one succeeds.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

from .tools import ToolRunner

try:
    from PIL import Image
except ImportError:  # pragma: no cover - optional dependency
    Image = None

try:
    import pillow_heif
except ImportError:  # pragma: no cover - optional dependency
    pillow_heif = None
else:
    pillow_heif.register_heif_opener()


class HeicConverter:
    """Convert one HEIC file into a full-size intermediate JPEG."""

    name = "base"
    # False when pixels come out rotated but the EXIF tag may still say otherwise.
    trusts_orientation = True

    def __init__(self, runner: ToolRunner, logger: Optional[logging.Logger] = None) -> None:
        self.runner = runner
        self.logger = logger or logging.getLogger("gallery")

    def available(self) -> bool:
        raise NotImplementedError

    def convert(self, source: Path, destination: Path) -> None:
        raise NotImplementedError

    def try_convert(self, source: Path, destination: Path) -> bool:
        """Return True when destination holds a usable JPEG."""
        if not self.available():
            self.logger.debug("HEIC converter %s unavailable", self.name)
            return False
        try:
            self.convert(source, destination)
        except Exception as exc:
            self.logger.warning("HEIC converter %s failed for %s: %s", self.name, source, exc)
            return False
        return destination.exists() and destination.stat().st_size > 0


class PillowHeifConverter(HeicConverter):
    """In-process libheif decoding; keeps the ICC profile and EXIF block."""

    name = "pillow_heif"

    def available(self) -> bool:
        return Image is not None and pillow_heif is not None

    def convert(self, source: Path, destination: Path) -> None:
        with Image.open(source) as image:
            save_kwargs = {"quality": 95}
            for key in ("exif", "icc_profile"):
                if image.info.get(key):
                    save_kwargs[key] = image.info[key]
            image.convert("RGB").save(destination, "JPEG", **save_kwargs)


class HeifConvertConverter(HeicConverter):
    """libheif's heif-convert, which bakes orientation into the pixels."""

    name = "heif_convert"
    trusts_orientation = False

    def available(self) -> bool:
        return self.runner.available("heif-convert")

    def convert(self, source: Path, destination: Path) -> None:
        self.runner.run(["heif-convert", "-q", "90", str(source), str(destination)])
        if not self.runner.available("exiftool"):
            return
        try:
            self.runner.run(["exiftool", "-overwrite_original", "-Orientation=1", "-n", str(destination)])
        except Exception as exc:
            self.logger.debug("exiftool could not reset orientation on %s: %s", destination, exc)


class FfmpegHeicConverter(HeicConverter):
    """General transcoder fallback reading the primary image stream."""

    name = "ffmpeg"
    trusts_orientation = False

    def available(self) -> bool:
        return self.runner.available("ffmpeg")

    def convert(self, source: Path, destination: Path) -> None:
        self.runner.run(
            [
                "ffmpeg", "-y", "-v", "error",
                "-i", str(source),
                "-map", "0:v:0",
                "-frames:v", "1",
                "-pix_fmt", "yuvj420p",
                "-q:v", "2",
                str(destination),
            ]
        )


class SipsConverter(HeicConverter):
    """macOS sips, last resort."""

    name = "sips"

    def available(self) -> bool:
        return self.runner.available("sips")

    def convert(self, source: Path, destination: Path) -> None:
        self.runner.run(["sips", "-s", "format", "jpeg", str(source), "--out", str(destination)])


CONVERTERS: dict[str, type[HeicConverter]] = {
    PillowHeifConverter.name: PillowHeifConverter,
    HeifConvertConverter.name: HeifConvertConverter,
    FfmpegHeicConverter.name: FfmpegHeicConverter,
    SipsConverter.name: SipsConverter,
}


def build_converter_chain(
    names: Iterable[str], runner: ToolRunner, logger: Optional[logging.Logger] = None
) -> list[HeicConverter]:
    """Instantiate converters in configured order, skipping unknown names."""
    logger = logger or logging.getLogger("gallery")
    chain: list[HeicConverter] = []
    for name in names:
        converter_cls = CONVERTERS.get(name)
        if converter_cls is None:
            logger.warning("Unknown HEIC converter in config: %s", name)
            continue
        chain.append(converter_cls(runner, logger=logger))
    return chain
