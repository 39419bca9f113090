"""
Scan lock marker with atomic creation and stale-owner recovery.
"""

from __future__ import annotations

import json
import logging
import os
import socket
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import psutil

_ACQUIRE_MUTEX = threading.RLock()
# Lock files created by this process and not yet released.
_HELD_PATHS: set[str] = set()


class ScanLockError(RuntimeError):
    """Raised when the scan lock cannot be inspected or cleared."""


@dataclass(frozen=True)
class LockInfo:
    """Owner details written into the lock file."""

    pid: int
    host: str
    started_at: str

    @classmethod
    def current(cls) -> "LockInfo":
        return cls(
            pid=os.getpid(),
            host=socket.gethostname(),
            started_at=datetime.now(timezone.utc).isoformat(),
        )

    def to_dict(self) -> dict:
        return {"pid": self.pid, "host": self.host, "started_at": self.started_at}


class ScanLock:
    """At most one scan per state directory, across threads and processes."""

    def __init__(
        self,
        path: Path,
        stale_after_seconds: float = 0.0,
        reclaim_dead_owner: bool = True,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.path = path
        self.stale_after_seconds = stale_after_seconds
        self.reclaim_dead_owner = reclaim_dead_owner
        self.logger = logger or logging.getLogger("gallery")
        self._owned = False

    def try_acquire(self) -> bool:
        """Create the lock file if absent; return False when someone holds it."""
        with _ACQUIRE_MUTEX:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            for attempt in range(2):
                try:
                    fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
                except FileExistsError:
                    if attempt == 0 and self._reclaim_if_stale():
                        continue
                    return False
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(LockInfo.current().to_dict(), handle)
                self._owned = True
                _HELD_PATHS.add(self._key)
                return True
        return False

    def release(self) -> None:
        """Remove the lock if this instance created it. Safe to call twice."""
        if not self._owned:
            return
        self._owned = False
        with _ACQUIRE_MUTEX:
            _HELD_PATHS.discard(self._key)
        try:
            self.path.unlink()
        except FileNotFoundError:
            self.logger.warning("Scan lock already removed: %s", self.path)

    def force_release(self) -> bool:
        """Remove the lock regardless of owner. Returns True if a file was removed."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise ScanLockError(f"Cannot remove scan lock {self.path}: {exc}") from exc
        self._owned = False
        with _ACQUIRE_MUTEX:
            _HELD_PATHS.discard(self._key)
        return True

    @property
    def _key(self) -> str:
        return os.path.abspath(self.path)

    def is_held(self) -> bool:
        return self.path.exists()

    def info(self) -> Optional[LockInfo]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return LockInfo(pid=int(data["pid"]), host=str(data["host"]), started_at=str(data["started_at"]))
        except (OSError, ValueError, KeyError, TypeError):
            return None

    def is_stale(self) -> bool:
        """True when the owner process is gone or the lock outlived its TTL."""
        if self.stale_after_seconds > 0:
            try:
                age = time.time() - self.path.stat().st_mtime
            except FileNotFoundError:
                return False
            if age > self.stale_after_seconds:
                return True
        if not self.reclaim_dead_owner:
            return False
        info = self.info()
        if info is None or info.host != socket.gethostname():
            return False
        if info.pid == os.getpid():
            # A restarted container reuses the pid; only a lock held right now is live.
            with _ACQUIRE_MUTEX:
                return self._key not in _HELD_PATHS
        return not psutil.pid_exists(info.pid)

    def _reclaim_if_stale(self) -> bool:
        if not self.is_stale():
            return False
        info = self.info()
        self.logger.warning(
            "Reclaiming stale scan lock %s (pid=%s started_at=%s)",
            self.path,
            info.pid if info else "?",
            info.started_at if info else "?",
        )
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        return True
