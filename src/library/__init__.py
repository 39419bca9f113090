"""
Read-only views over scanned media.
"""

from .catalog import DEFAULT_PAGE_SIZE, MediaCatalog

__all__ = ["DEFAULT_PAGE_SIZE", "MediaCatalog"]
