"""
Content-addressed identifiers for media files and albums.
"""

from __future__ import annotations

import hashlib

FILE_ID_LENGTH = 16


def file_id(source_root: str, relative_path: str) -> str:
    """Return the 16-hex-char id for a path under a media root.

    The root is part of the hashed value, so identical relative paths in two
    roots never share an id.
    """
    unique_path = f"{source_root}/{relative_path}"
    return hashlib.sha256(unique_path.encode("utf-8")).hexdigest()[:FILE_ID_LENGTH]


def album_id(source_root: str, relative_album_path: str) -> str:
    """Albums share the file id namespace."""
    return file_id(source_root, relative_album_path)


def is_valid_file_id(value: str) -> bool:
    if len(value) != FILE_ID_LENGTH:
        return False
    return all(char in "0123456789abcdef" for char in value)
