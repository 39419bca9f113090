"""
Media file records and extension rules.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .identity import file_id

IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".gif", ".heic"})
VIDEO_EXTENSIONS = frozenset({".mp4", ".mov", ".avi", ".mkv", ".hevc"})
HEIC_EXTENSIONS = frozenset({".heic"})

MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".heic": "image/heic",
    ".mp4": "video/mp4",
    ".mov": "video/quicktime",
    ".avi": "video/x-msvideo",
    ".mkv": "video/x-matroska",
    ".hevc": "video/hevc",
}


def _suffix(name: str) -> str:
    return os.path.splitext(name)[1].lower()


def is_image(name: str) -> bool:
    return _suffix(name) in IMAGE_EXTENSIONS


def is_video(name: str) -> bool:
    return _suffix(name) in VIDEO_EXTENSIONS


def is_heic(name: str) -> bool:
    return _suffix(name) in HEIC_EXTENSIONS


def is_media(name: str) -> bool:
    return is_image(name) or is_video(name)


def mime_type(name: str) -> str:
    return MIME_TYPES.get(_suffix(name), "application/octet-stream")


@dataclass(frozen=True)
class MediaFile:
    """A media file found under one of the configured roots."""

    file_path: Path
    source_root: str

    @property
    def relative_path(self) -> str:
        return Path(os.path.relpath(self.file_path, self.source_root)).as_posix()

    @property
    def file_id(self) -> str:
        return file_id(self.source_root, self.relative_path)

    @property
    def is_image(self) -> bool:
        return is_image(self.file_path.name)

    @property
    def is_video(self) -> bool:
        return is_video(self.file_path.name)

    @property
    def is_heic(self) -> bool:
        return is_heic(self.file_path.name)

    @property
    def media_type(self) -> str:
        return "video" if self.is_video else "image"

    def to_dict(self) -> dict:
        return {"file_path": str(self.file_path), "source_root": self.source_root}
