"""
Orphan cleanup for thumbnails and file-keyed caches.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from storage import FileLocationCache, MediaDateCache

from .engine import PARTIAL_SUFFIX, THUMB_SUFFIX


@dataclass
class ReconcileStats:
    """Counts of removed artifacts per cache kind."""

    orphan_thumbs: int = 0
    partial_files: int = 0
    temp_files: int = 0
    location_entries: int = 0
    date_entries: int = 0
    errors: int = 0

    @property
    def total(self) -> int:
        return (
            self.orphan_thumbs
            + self.partial_files
            + self.temp_files
            + self.location_entries
            + self.date_entries
        )


class CacheReconciler:
    """Remove thumbnails and cache entries that no longer match a media file."""

    def __init__(
        self,
        thumb_dir: Path,
        temp_dir: Optional[Path] = None,
        location_cache: Optional[FileLocationCache] = None,
        date_cache: Optional[MediaDateCache] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.thumb_dir = thumb_dir
        self.temp_dir = temp_dir
        self.location_cache = location_cache
        self.date_cache = date_cache
        self.logger = logger or logging.getLogger("gallery")

    def clean_orphans(self, valid_ids: set[str]) -> int:
        """Return the number of artifacts removed across all caches."""
        return self.reconcile(valid_ids).total

    def reconcile(self, valid_ids: set[str]) -> ReconcileStats:
        stats = ReconcileStats()
        self._clean_thumb_dir(valid_ids, stats)
        self._clean_temp_dir(stats)
        if self.location_cache is not None:
            try:
                stats.location_entries = self.location_cache.prune(valid_ids)
            except OSError as exc:
                stats.errors += 1
                self.logger.error("Location cache cleanup failed: %s", exc)
        if self.date_cache is not None:
            try:
                stats.date_entries = self.date_cache.prune_missing()
            except OSError as exc:
                stats.errors += 1
                self.logger.error("Date cache cleanup failed: %s", exc)
        self.logger.info(
            "Reconcile complete. Thumbs=%s Partial=%s Temp=%s Locations=%s Dates=%s Errors=%s",
            stats.orphan_thumbs,
            stats.partial_files,
            stats.temp_files,
            stats.location_entries,
            stats.date_entries,
            stats.errors,
        )
        return stats

    def _clean_thumb_dir(self, valid_ids: set[str], stats: ReconcileStats) -> None:
        try:
            with os.scandir(self.thumb_dir) as handle:
                names = [entry.name for entry in handle if entry.is_file()]
        except FileNotFoundError:
            return
        except OSError as exc:
            stats.errors += 1
            self.logger.error("Cannot list thumbnail directory %s: %s", self.thumb_dir, exc)
            return

        for name in names:
            if name.startswith(".") and name.endswith(PARTIAL_SUFFIX):
                if self._unlink(self.thumb_dir / name, stats):
                    stats.partial_files += 1
                continue
            if not name.endswith(THUMB_SUFFIX):
                continue
            file_id = name[: -len(THUMB_SUFFIX)]
            if file_id in valid_ids:
                continue
            if self._unlink(self.thumb_dir / name, stats):
                stats.orphan_thumbs += 1
                self.logger.info("Orphan thumbnail removed: %s", name)

    def _clean_temp_dir(self, stats: ReconcileStats) -> None:
        # Runs before generation starts, so anything left here is from a dead run.
        if self.temp_dir is None:
            return
        try:
            with os.scandir(self.temp_dir) as handle:
                paths = [Path(entry.path) for entry in handle if entry.is_file()]
        except FileNotFoundError:
            return
        except OSError as exc:
            stats.errors += 1
            self.logger.error("Cannot list temp directory %s: %s", self.temp_dir, exc)
            return
        for path in paths:
            if self._unlink(path, stats):
                stats.temp_files += 1

    def _unlink(self, path: Path, stats: ReconcileStats) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            stats.errors += 1
            self.logger.error("Cannot remove %s: %s", path, exc)
            return False
        return True
