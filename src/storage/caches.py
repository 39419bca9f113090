"""
Persisted caches keyed by file id or by absolute path.
"""

from __future__ import annotations

import logging
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional

from discovery import MediaFile, is_image

from .jsonio import atomic_write_json, safe_read_json

try:
    from PIL import Image
except ImportError:  # pragma: no cover - optional dependency
    Image = None

_EXIF_IFD = 0x8769
_EXIF_DATE_TAGS = (36867, 36868)  # DateTimeOriginal, DateTimeDigitized
_IFD0_DATE_TAG = 306  # DateTime


class FileLocationCache:
    """Map file ids to the file path and root they were found under."""

    def __init__(self, path: Path, logger: Optional[logging.Logger] = None) -> None:
        self.path = path
        self.logger = logger or logging.getLogger("gallery")
        self._entries: Optional[dict[str, dict[str, str]]] = None
        self._lock = threading.RLock()

    def get(self, file_id: str) -> Optional[MediaFile]:
        with self._lock:
            entry = self._load().get(file_id)
        if not entry:
            return None
        return MediaFile(file_path=Path(entry["file_path"]), source_root=entry["source_root"])

    def set(self, media: MediaFile) -> None:
        with self._lock:
            self._load()[media.file_id] = media.to_dict()
            self._save()

    def rebuild(self, files: Iterable[MediaFile]) -> int:
        """Replace every entry with the given file set and persist it."""
        entries = {media.file_id: media.to_dict() for media in files}
        with self._lock:
            self._entries = entries
            self._save()
        return len(entries)

    def prune(self, valid_ids: set[str]) -> int:
        """Drop entries whose id is not valid or whose file is gone."""
        with self._lock:
            entries = self._load()
            stale = [
                file_id
                for file_id, entry in entries.items()
                if file_id not in valid_ids or not os.path.exists(entry.get("file_path", ""))
            ]
            if not stale:
                return 0
            for file_id in stale:
                self.logger.debug("Dropping location cache entry %s", file_id)
                del entries[file_id]
            self._save()
        return len(stale)

    def _load(self) -> dict[str, dict[str, str]]:
        if self._entries is None:
            data = safe_read_json(self.path)
            if not isinstance(data, dict):
                data = {}
            self._entries = {
                key: value
                for key, value in data.items()
                if isinstance(value, dict) and "file_path" in value and "source_root" in value
            }
        return self._entries

    def _save(self) -> None:
        atomic_write_json(self.path, self._entries or {})


class MediaDateCache:
    """Capture dates keyed by absolute path, read from EXIF or file stats."""

    def __init__(self, path: Path, logger: Optional[logging.Logger] = None) -> None:
        self.path = path
        self.logger = logger or logging.getLogger("gallery")
        self._entries: Optional[dict[str, str]] = None
        self._dirty = False
        self._lock = threading.RLock()

    def get(self, file_path: Path) -> datetime:
        key = str(file_path)
        with self._lock:
            cached = self._load().get(key)
        if cached:
            try:
                return datetime.fromisoformat(cached)
            except ValueError:
                pass
        value = self._read_date(file_path)
        with self._lock:
            self._load()[key] = value.isoformat()
            self._dirty = True
        return value

    def flush(self) -> None:
        with self._lock:
            if not self._dirty:
                return
            atomic_write_json(self.path, self._entries or {})
            self._dirty = False

    def prune_missing(self) -> int:
        """Drop entries for paths that no longer exist on disk."""
        with self._lock:
            entries = self._load()
            missing = [key for key in entries if not os.path.exists(key)]
            if not missing:
                return 0
            for key in missing:
                self.logger.debug("Dropping date cache entry %s", key)
                del entries[key]
            atomic_write_json(self.path, entries)
            self._dirty = False
        return len(missing)

    def _load(self) -> dict[str, str]:
        if self._entries is None:
            data = safe_read_json(self.path)
            self._entries = {str(k): str(v) for k, v in data.items()} if isinstance(data, dict) else {}
        return self._entries

    def _read_date(self, file_path: Path) -> datetime:
        if is_image(file_path.name):
            exif_date = self._read_exif_date(file_path)
            if exif_date is not None:
                return exif_date
        try:
            stat = file_path.stat()
        except OSError as exc:
            self.logger.warning("Cannot stat %s for media date: %s", file_path, exc)
            return datetime.now(timezone.utc)
        timestamp = getattr(stat, "st_birthtime", None) or stat.st_mtime
        return datetime.fromtimestamp(timestamp, tz=timezone.utc)

    def _read_exif_date(self, file_path: Path) -> Optional[datetime]:
        if Image is None:
            return None
        try:
            with Image.open(file_path) as image:
                exif = image.getexif()
                values = [exif.get_ifd(_EXIF_IFD).get(tag) for tag in _EXIF_DATE_TAGS]
                values.append(exif.get(_IFD0_DATE_TAG))
        except Exception:
            return None
        for value in values:
            if not value:
                continue
            try:
                return datetime.strptime(str(value).strip(), "%Y:%m:%d %H:%M:%S")
            except ValueError:
                continue
        return None
