"""
Scan state snapshots and their persisted document.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from .jsonio import atomic_write_json, safe_read_json


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def progress_percent(scanned: int, total: int) -> int:
    if total <= 0:
        return 0
    return min(100, int(math.floor(scanned * 100 / total + 0.5)))


@dataclass(frozen=True)
class ScanState:
    """One snapshot of the process-wide scan."""

    is_scanning: bool = False
    progress: int = 0
    scanned: int = 0
    total: int = 0
    images_count: int = 0
    videos_count: int = 0
    deleted_thumbs: int = 0
    failed_thumbs: int = 0
    started_at: Optional[str] = None
    completed_at: Optional[str] = None

    @classmethod
    def started(cls, total: int, images_count: int, videos_count: int) -> "ScanState":
        return cls(
            is_scanning=True,
            total=total,
            images_count=images_count,
            videos_count=videos_count,
            started_at=utc_now(),
        )

    @classmethod
    def failed(cls, started_at: Optional[str]) -> "ScanState":
        return cls(started_at=started_at, completed_at=utc_now())

    @classmethod
    def from_dict(cls, data: Any) -> "ScanState":
        if not isinstance(data, dict):
            return cls()
        known = {name: data[name] for name in cls.__dataclass_fields__ if name in data}
        return cls(**known)

    def advanced(self, scanned: int, failed_thumbs: int) -> "ScanState":
        return replace(
            self,
            scanned=scanned,
            failed_thumbs=failed_thumbs,
            progress=progress_percent(scanned, self.total),
        )

    def completed(self) -> "ScanState":
        return replace(
            self,
            is_scanning=False,
            scanned=self.total,
            progress=100,
            completed_at=utc_now(),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class ScanStateStore:
    """Read and atomically write the scan state document."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def read(self) -> ScanState:
        return ScanState.from_dict(self.read_raw())

    def read_raw(self) -> Optional[dict]:
        data = safe_read_json(self.path)
        return data if isinstance(data, dict) else None

    def write(self, state: ScanState) -> None:
        atomic_write_json(self.path, state.to_dict())
