"""
Read paths over the scanned media: id resolution, thumbnail lookups, listing.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Optional

from config import ConfigProvider, GallerySettings
from discovery import MediaFile, MediaWalker, is_valid_file_id
from storage import FileLocationCache, MediaDateCache
from thumbnails import ThumbnailCodec

DEFAULT_PAGE_SIZE = 100


class MediaCatalog:
    """Answer lookups for the gallery front end without touching scan state."""

    def __init__(self, config_provider: ConfigProvider, logger: Optional[logging.Logger] = None) -> None:
        self.config_provider = config_provider
        self.logger = logger or logging.getLogger("gallery")

    def resolve_file_id(self, file_id: str) -> Optional[MediaFile]:
        """Map a file id back to the media file it was derived from.

        The location cache answers first. A cached entry is trusted only while
        the file exists and its root is still configured; otherwise every root
        is walked again and the hit, if any, is written back to the cache.
        """
        if not is_valid_file_id(file_id):
            return None
        settings = self.config_provider.current()
        cache = FileLocationCache(settings.location_cache_path, logger=self.logger)
        cached = cache.get(file_id)
        if cached is not None and self._is_servable(cached, settings):
            return cached

        walker = MediaWalker.from_settings(settings, self.logger)
        for media in walker.iter_media(settings.media_roots):
            if media.file_id == file_id:
                try:
                    cache.set(media)
                except OSError as exc:
                    self.logger.warning("Cannot update location cache: %s", exc)
                return media
        self.logger.debug("File id not found: %s", file_id)
        return None

    def thumbnail_path(self, file_id: str) -> Optional[Path]:
        if not is_valid_file_id(file_id):
            return None
        return self._codec(self.config_provider.current()).thumbnail_path(file_id)

    def thumbnail_exists(self, file_id: str) -> bool:
        path = self.thumbnail_path(file_id)
        return path is not None and path.is_file()

    def list_media(self, offset: int = 0, limit: int = DEFAULT_PAGE_SIZE) -> dict[str, Any]:
        """Walk all roots and return one page of thumbnail entries."""
        offset = max(0, int(offset))
        limit = max(1, int(limit))
        settings = self.config_provider.current()
        files = MediaWalker.from_settings(settings, self.logger).walk(settings.media_roots)
        try:
            FileLocationCache(settings.location_cache_path, logger=self.logger).rebuild(files)
        except OSError as exc:
            self.logger.warning("Cannot rebuild location cache: %s", exc)

        codec = self._codec(settings)
        dates = MediaDateCache(settings.date_cache_path, logger=self.logger)
        page = files[offset:offset + limit]
        thumbs = [self._entry(media, codec, dates, settings) for media in page]
        try:
            dates.flush()
        except OSError as exc:
            self.logger.warning("Cannot persist date cache: %s", exc)
        return {
            "thumbs": thumbs,
            "total": len(files),
            "has_more": offset + len(page) < len(files),
            "offset": offset,
            "limit": limit,
        }

    def _entry(
        self,
        media: MediaFile,
        codec: Optional[ThumbnailCodec],
        dates: MediaDateCache,
        settings: GallerySettings,
    ) -> dict[str, Any]:
        ready = codec is not None and codec.thumbnail_exists(media.file_id)
        duration = None
        if media.is_video and ready:
            # Probing is only worth it once a scan has reached the file.
            duration = codec.get_duration(media.file_path)
        return {
            "file": media.relative_path,
            "file_id": media.file_id,
            "thumb": f"/api/serve-thumb/{media.file_id}",
            "type": media.media_type,
            "duration": duration,
            "thumb_ready": ready,
            "created_at": dates.get(media.file_path).isoformat(),
        }

    def _codec(self, settings: GallerySettings) -> Optional[ThumbnailCodec]:
        if settings.thumb_dir is None:
            return None
        return ThumbnailCodec.from_settings(settings, self.logger)

    @staticmethod
    def _is_servable(media: MediaFile, settings: GallerySettings) -> bool:
        if media.source_root not in settings.media_roots:
            return False
        return os.path.isfile(media.file_path)
