"""
Configuration package for the gallery scanner.
"""

from .settings import (
    AppConfig,
    ConfigProvider,
    GallerySettings,
    ScanConfigurationError,
    build_settings,
    ensure_directories,
    parse_media_roots,
)

__all__ = [
    "AppConfig",
    "ConfigProvider",
    "GallerySettings",
    "ScanConfigurationError",
    "build_settings",
    "ensure_directories",
    "parse_media_roots",
]
