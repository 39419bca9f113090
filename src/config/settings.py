"""
Configuration loader and helpers for the gallery scanner.
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

import yaml

DEFAULT_CONFIG_PATH = Path("config.yaml")
ENV_CONFIG_PATH = "GALLERY_CONFIG"
ENV_MEDIA_DIRS = "GALLERY_MEDIA_DIRS"
ENV_THUMB_DIR = "GALLERY_THUMB_DIR"

DEFAULT_HEIC_CONVERTERS = ["pillow_heif", "heif_convert", "ffmpeg", "sips"]


class ScanConfigurationError(RuntimeError):
    """Raised when the configuration cannot support a scan."""


@dataclass(frozen=True)
class AppConfig:
    """Container for raw configuration data and path helpers."""

    root_dir: Path
    raw: Dict[str, Any]
    source_path: Optional[Path] = None

    @classmethod
    def load(cls, path: Path | None = None) -> "AppConfig":
        """Load configuration from YAML and normalize the root directory."""
        config_path = _config_path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
        return cls(root_dir=config_path.parent, raw=data, source_path=config_path)

    def get(self, *keys: str, default: Any = None) -> Any:
        """Retrieve nested configuration values with an optional default."""
        node: Any = self.raw
        for key in keys:
            if not isinstance(node, dict) or key not in node:
                return default
            node = node[key]
        return node

    def resolve_path(self, *keys: str, default: str | None = None) -> Path:
        """Resolve a path from configuration keys to an absolute Path."""
        value = self.get(*keys, default=default)
        if value is None:
            raise KeyError(f"Missing config path for {'.'.join(keys)}")
        path = Path(value).expanduser()
        if not path.is_absolute():
            path = (self.root_dir / path).resolve()
        return path


@dataclass(frozen=True)
class GallerySettings:
    """Resolved settings for one scan or request."""

    media_roots: list[str]
    thumb_dir: Optional[Path]
    state_dir: Path
    logs_dir: Path
    excluded_suffixes: tuple[str, ...] = (".photoslibrary",)
    thumb_size: int = 300
    jpeg_quality: int = 82
    video_offset_seconds: float = 1.0
    tool_timeout_seconds: float = 120.0
    heic_converters: tuple[str, ...] = tuple(DEFAULT_HEIC_CONVERTERS)
    workers: int = 1
    follow_symlinks: bool = False
    stale_lock_seconds: float = 0.0
    reclaim_dead_locks: bool = True
    max_cpu_percent: float = 0.0
    max_ram_percent: float = 0.0

    @property
    def scan_state_path(self) -> Path:
        return self.state_dir / "scan-state.json"

    @property
    def lock_path(self) -> Path:
        return self.state_dir / "scan.lock"

    @property
    def location_cache_path(self) -> Path:
        return self.state_dir / "file-cache.json"

    @property
    def date_cache_path(self) -> Path:
        return self.state_dir / "date-cache.json"

    @property
    def temp_dir(self) -> Path:
        return self.state_dir / "temp"

    def validate(self) -> None:
        """Raise ScanConfigurationError when a scan cannot run."""
        if not self.media_roots:
            raise ScanConfigurationError(
                f"No media roots configured. Set media.roots or {ENV_MEDIA_DIRS}."
            )
        if self.thumb_dir is None:
            raise ScanConfigurationError(
                f"Thumbnail directory not configured. Set paths.thumbnails or {ENV_THUMB_DIR}."
            )


def build_settings(config: AppConfig) -> GallerySettings:
    """Resolve GallerySettings from config values and environment overrides."""
    env_roots = os.environ.get(ENV_MEDIA_DIRS)
    if env_roots is not None:
        roots = parse_media_roots(env_roots)
    else:
        roots = parse_media_roots(config.get("media", "roots", default=[]), base=config.root_dir)

    env_thumbs = os.environ.get(ENV_THUMB_DIR)
    thumb_dir: Optional[Path]
    if env_thumbs:
        thumb_dir = Path(env_thumbs).expanduser().resolve()
    elif config.get("paths", "thumbnails") is not None:
        thumb_dir = config.resolve_path("paths", "thumbnails")
    else:
        thumb_dir = None

    suffixes = config.get("media", "excluded_suffixes", default=[".photoslibrary"]) or []
    converters = config.get("thumbnails", "heic_converters", default=DEFAULT_HEIC_CONVERTERS)
    return GallerySettings(
        media_roots=roots,
        thumb_dir=thumb_dir,
        state_dir=config.resolve_path("paths", "state", default="data/state"),
        logs_dir=config.resolve_path("paths", "logs", default="logs"),
        excluded_suffixes=tuple(str(suffix).lower() for suffix in suffixes),
        thumb_size=int(config.get("thumbnails", "size", default=300)),
        jpeg_quality=int(config.get("thumbnails", "jpeg_quality", default=82)),
        video_offset_seconds=float(config.get("thumbnails", "video_offset_seconds", default=1.0)),
        tool_timeout_seconds=float(config.get("thumbnails", "tool_timeout_seconds", default=120)),
        heic_converters=tuple(str(name) for name in converters or []),
        workers=int(config.get("scan", "workers", default=1)),
        follow_symlinks=bool(config.get("scan", "follow_symlinks", default=False)),
        stale_lock_seconds=float(config.get("scan", "stale_lock_seconds", default=0)),
        reclaim_dead_locks=bool(config.get("scan", "reclaim_dead_locks", default=True)),
        max_cpu_percent=float(config.get("resource_limits", "max_cpu_percent", default=0)),
        max_ram_percent=float(config.get("resource_limits", "max_ram_percent", default=0)),
    )


def parse_media_roots(value: Any, base: Optional[Path] = None) -> list[str]:
    """Accept a comma-separated string or a list and return normalized roots.

    Relative entries are joined onto base when one is given.
    """
    if value is None:
        return []
    items = value.split(",") if isinstance(value, str) else list(value)
    roots: list[str] = []
    for item in items:
        text = str(item).strip()
        if not text:
            continue
        expanded = os.path.expanduser(text)
        if base is not None and not os.path.isabs(expanded):
            expanded = os.path.join(base, expanded)
        normalized = os.path.normpath(expanded)
        if normalized not in roots:
            roots.append(normalized)
    return roots


class ConfigProvider:
    """Hand out fresh settings so runtime config edits reach the next scan."""

    def __init__(self, path: Path | None = None, config: AppConfig | None = None) -> None:
        self._path = path
        self._static = config

    def config(self) -> AppConfig:
        if self._static is not None:
            return self._static
        return AppConfig.load(self._path)

    def current(self) -> GallerySettings:
        return build_settings(self.config())

    def set_media_roots(self, roots: Iterable[str]) -> list[str]:
        """Persist a new ordered list of media roots to the YAML file."""
        normalized = parse_media_roots(list(roots), base=Path.cwd())
        for root in normalized:
            if not Path(root).is_dir():
                raise ScanConfigurationError(f"Directory does not exist: {root}")
        config = self.config()
        data = dict(config.raw)
        media = dict(data.get("media") or {})
        media["roots"] = normalized
        data["media"] = media
        if config.source_path is None:
            self._static = AppConfig(root_dir=config.root_dir, raw=data)
        else:
            _write_yaml(config.source_path, data)
        return normalized


def ensure_directories(paths: Iterable[Path]) -> None:
    """Create directories if they do not already exist."""
    for path in paths:
        path.mkdir(parents=True, exist_ok=True)


def _config_path(path: Path | None) -> Path:
    config_value = os.environ.get(ENV_CONFIG_PATH)
    config_path = path
    if config_path is None:
        config_path = Path(config_value) if config_value else DEFAULT_CONFIG_PATH
    config_path = config_path.expanduser()
    if not config_path.is_absolute():
        config_path = (Path.cwd() / config_path).resolve()
    return config_path


def _write_yaml(path: Path, data: Dict[str, Any]) -> None:
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            yaml.safe_dump(data, handle, sort_keys=False)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
