"""
Media discovery: identifiers, file records and directory walking.
"""

from .identity import album_id, file_id, is_valid_file_id
from .models import (
    IMAGE_EXTENSIONS,
    VIDEO_EXTENSIONS,
    MediaFile,
    is_heic,
    is_image,
    is_media,
    is_video,
    mime_type,
)
from .walker import MediaWalker, count_by_kind

__all__ = [
    "IMAGE_EXTENSIONS",
    "VIDEO_EXTENSIONS",
    "MediaFile",
    "MediaWalker",
    "album_id",
    "count_by_kind",
    "file_id",
    "is_heic",
    "is_image",
    "is_media",
    "is_valid_file_id",
    "is_video",
    "mime_type",
]
