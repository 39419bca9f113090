"""
File-backed persistence for scan state and caches.
"""

from .caches import FileLocationCache, MediaDateCache
from .jsonio import atomic_write_json, safe_read_json
from .scan_state import ScanState, ScanStateStore, progress_percent, utc_now

__all__ = [
    "FileLocationCache",
    "MediaDateCache",
    "ScanState",
    "ScanStateStore",
    "atomic_write_json",
    "progress_percent",
    "safe_read_json",
    "utc_now",
]
