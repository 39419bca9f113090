"""
Thumbnail generation and cache reconciliation.
"""

from .converters import HeicConverter, build_converter_chain
from .engine import (
    THUMB_SUFFIX,
    ThumbnailCodec,
    ThumbnailError,
    format_duration,
    thumbnail_name,
)
from .reconciler import CacheReconciler, ReconcileStats
from .tools import ToolError, ToolRunner

__all__ = [
    "THUMB_SUFFIX",
    "CacheReconciler",
    "HeicConverter",
    "ReconcileStats",
    "ThumbnailCodec",
    "ThumbnailError",
    "ToolError",
    "ToolRunner",
    "build_converter_chain",
    "format_duration",
    "thumbnail_name",
]
