"""
Thumbnail generation engine for images, HEIC photos and videos.
"""

from __future__ import annotations

import logging
import math
import os
import uuid
from pathlib import Path
from typing import Optional, Sequence

from config import GallerySettings
from discovery import MediaFile

from .converters import HeicConverter, build_converter_chain
from .tools import ToolError, ToolRunner

try:
    from PIL import Image, ImageOps
except ImportError:  # pragma: no cover - optional dependency
    Image = None
    ImageOps = None

THUMB_SUFFIX = ".thumb.jpg"
PARTIAL_SUFFIX = ".partial.jpg"

if Image is not None:
    try:  # Pillow >= 9.1
        _RESAMPLING_FILTER = Image.Resampling.LANCZOS
    except AttributeError:  # pragma: no cover - legacy Pillow
        _RESAMPLING_FILTER = Image.LANCZOS


class ThumbnailError(RuntimeError):
    """Raised when no thumbnail could be produced for a file."""


def thumbnail_name(file_id: str) -> str:
    return f"{file_id}{THUMB_SUFFIX}"


def format_duration(raw: str) -> Optional[str]:
    """Format ffprobe seconds output as M:SS."""
    try:
        seconds = float(raw.strip())
    except (AttributeError, ValueError):
        return None
    if math.isnan(seconds) or math.isinf(seconds) or seconds < 0:
        return None
    minutes = int(seconds // 60)
    remainder = int(seconds % 60)
    return f"{minutes}:{remainder:02d}"


class ThumbnailCodec:
    """Create square JPEG thumbnails named after media file ids."""

    def __init__(
        self,
        thumb_dir: Path,
        temp_dir: Path,
        size: int = 300,
        jpeg_quality: int = 82,
        video_offset_seconds: float = 1.0,
        runner: Optional[ToolRunner] = None,
        converters: Optional[Sequence[HeicConverter]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.thumb_dir = thumb_dir
        self.temp_dir = temp_dir
        self.size = size
        self.jpeg_quality = jpeg_quality
        self.video_offset_seconds = video_offset_seconds
        self.logger = logger or logging.getLogger("gallery")
        self.runner = runner or ToolRunner(logger=self.logger)
        if converters is None:
            converters = build_converter_chain(
                ("pillow_heif", "heif_convert", "ffmpeg", "sips"), self.runner, self.logger
            )
        self.converters = list(converters)

    @classmethod
    def from_settings(
        cls, settings: GallerySettings, logger: Optional[logging.Logger] = None
    ) -> "ThumbnailCodec":
        logger = logger or logging.getLogger("gallery")
        runner = ToolRunner(timeout_seconds=settings.tool_timeout_seconds, logger=logger)
        return cls(
            thumb_dir=settings.thumb_dir,
            temp_dir=settings.temp_dir,
            size=settings.thumb_size,
            jpeg_quality=settings.jpeg_quality,
            video_offset_seconds=settings.video_offset_seconds,
            runner=runner,
            converters=build_converter_chain(settings.heic_converters, runner, logger),
            logger=logger,
        )

    def thumbnail_path(self, file_id: str) -> Path:
        return self.thumb_dir / thumbnail_name(file_id)

    def thumbnail_exists(self, file_id: str) -> bool:
        return self.thumbnail_path(file_id).is_file()

    def ensure_thumbnail(self, media: MediaFile, is_video: bool) -> bool:
        """Generate the thumbnail unless one exists; return True if generated.

        Output goes to a hidden partial file that is renamed into place, so the
        canonical name only ever points at a complete JPEG.
        """
        target = self.thumbnail_path(media.file_id)
        if target.exists():
            return False
        self.thumb_dir.mkdir(parents=True, exist_ok=True)
        partial = self.thumb_dir / f".{media.file_id}{PARTIAL_SUFFIX}"
        try:
            if is_video:
                self._render_video(media.file_path, partial)
            elif media.is_heic:
                self._render_heic(media, partial)
            else:
                self._render_image(media.file_path, partial)
            if not partial.is_file() or partial.stat().st_size == 0:
                raise ThumbnailError(f"No thumbnail output for {media.file_path}")
            os.replace(partial, target)
        except ThumbnailError:
            raise
        except Exception as exc:
            raise ThumbnailError(f"{media.file_path}: {exc}") from exc
        finally:
            if partial.exists():
                partial.unlink()
        self.logger.debug("Thumbnail generated: %s -> %s", media.file_path, target.name)
        return True

    def get_duration(self, file_path: Path) -> Optional[str]:
        """Return the video duration as M:SS, or None when it cannot be probed."""
        try:
            result = self.runner.run(
                [
                    "ffprobe", "-v", "error",
                    "-show_entries", "format=duration",
                    "-of", "default=noprint_wrappers=1:nokey=1",
                    str(file_path),
                ],
                timeout=30,
            )
        except ToolError as exc:
            self.logger.debug("Duration probe failed for %s: %s", file_path, exc)
            return None
        return format_duration(result.stdout)

    def _render_image(self, source: Path, destination: Path, apply_orientation: bool = True) -> None:
        if Image is None:
            raise ThumbnailError("pillow_missing")
        with Image.open(source) as image:
            oriented = ImageOps.exif_transpose(image) if apply_orientation else image
            fitted = ImageOps.fit(
                oriented.convert("RGB"),
                (self.size, self.size),
                method=_RESAMPLING_FILTER,
                centering=(0.5, 0.5),
            )
        fitted.save(destination, "JPEG", quality=self.jpeg_quality)

    def _render_heic(self, media: MediaFile, destination: Path) -> None:
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        for converter in self.converters:
            intermediate = self.temp_dir / f"{media.file_id}-{uuid.uuid4().hex[:8]}-{converter.name}.jpg"
            try:
                if not converter.try_convert(media.file_path, intermediate):
                    continue
                self._render_image(
                    intermediate, destination, apply_orientation=converter.trusts_orientation
                )
                self.logger.debug("HEIC converted with %s: %s", converter.name, media.file_path)
                return
            except Exception as exc:
                self.logger.warning(
                    "HEIC intermediate from %s unusable for %s: %s",
                    converter.name,
                    media.file_path,
                    exc,
                )
            finally:
                if intermediate.exists():
                    intermediate.unlink()
        raise ThumbnailError(f"All HEIC converters failed for {media.file_path}")

    def _render_video(self, source: Path, destination: Path) -> None:
        size = self.size
        scale = f"scale={size}:{size}:force_original_aspect_ratio=increase,crop={size}:{size}"
        base = ["ffmpeg", "-y", "-v", "error", "-i", str(source)]
        tail = ["-frames:v", "1", "-vf", scale, str(destination)]
        try:
            self.runner.run(base + ["-ss", f"{self.video_offset_seconds:g}"] + tail)
        except ToolError as exc:
            raise ThumbnailError(f"ffmpeg failed for {source}: {exc}") from exc
        if destination.is_file() and destination.stat().st_size > 0:
            return
        # Clips shorter than the offset produce no frame.
        try:
            self.runner.run(base + tail)
        except ToolError as exc:
            raise ThumbnailError(f"ffmpeg failed for {source}: {exc}") from exc
