"""
Recursive media discovery across configured roots.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, Iterator, Optional

from config import GallerySettings

from .models import MediaFile, is_media


class MediaWalker:
    """Walk media roots and emit MediaFile records."""

    def __init__(
        self,
        excluded_suffixes: Iterable[str] = (".photoslibrary",),
        follow_symlinks: bool = False,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.excluded_suffixes = tuple(suffix.lower() for suffix in excluded_suffixes)
        self.follow_symlinks = follow_symlinks
        self.logger = logger or logging.getLogger("gallery")

    @classmethod
    def from_settings(
        cls, settings: GallerySettings, logger: Optional[logging.Logger] = None
    ) -> "MediaWalker":
        return cls(
            excluded_suffixes=settings.excluded_suffixes,
            follow_symlinks=settings.follow_symlinks,
            logger=logger,
        )

    def walk(self, roots: Iterable[str]) -> list[MediaFile]:
        """Return every media file under the given roots, in traversal order."""
        return list(self.iter_media(roots))

    def iter_media(self, roots: Iterable[str]) -> Iterator[MediaFile]:
        for root in roots:
            root_path = Path(root)
            if not root_path.is_dir():
                self.logger.warning("Media root does not exist: %s", root)
                continue
            for path in self._iter_files(root_path, ancestors=(os.path.realpath(root_path),)):
                yield MediaFile(file_path=path, source_root=root)

    def _iter_files(self, directory: Path, ancestors: tuple[str, ...]) -> Iterator[Path]:
        try:
            with os.scandir(directory) as handle:
                entries = list(handle)
        except OSError as exc:
            self.logger.warning("Cannot read directory %s: %s", directory, exc)
            return

        for entry in entries:
            if self._is_excluded(entry.name):
                continue
            try:
                is_dir = entry.is_dir(follow_symlinks=self.follow_symlinks)
                # Linked files always count; the flag only governs directory descent.
                is_file = not is_dir and entry.is_file(follow_symlinks=True)
            except OSError as exc:
                self.logger.warning("Cannot stat %s: %s", entry.path, exc)
                continue
            if is_dir:
                real = os.path.realpath(entry.path)
                if real in ancestors:
                    self.logger.warning("Skipping symlink loop at %s", entry.path)
                    continue
                yield from self._iter_files(Path(entry.path), ancestors + (real,))
            elif is_file and is_media(entry.name):
                yield Path(entry.path)

    def _is_excluded(self, name: str) -> bool:
        """Hidden entries and library bundles are never walked."""
        if name.startswith("."):
            return True
        lowered = name.lower()
        return any(lowered.endswith(suffix) for suffix in self.excluded_suffixes)


def count_by_kind(files: Iterable[MediaFile]) -> tuple[int, int]:
    """Return (images, videos) counts."""
    images = videos = 0
    for media in files:
        if media.is_video:
            videos += 1
        elif media.is_image:
            images += 1
    return images, videos
