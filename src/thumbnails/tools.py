"""
Thin wrapper around external codec command-line tools.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from typing import Optional, Sequence


class ToolError(RuntimeError):
    """Raised when an external tool is missing, times out or exits non-zero."""


class ToolRunner:
    """Run external tools and report failures as ToolError."""

    def __init__(self, timeout_seconds: float = 120.0, logger: Optional[logging.Logger] = None) -> None:
        self.timeout_seconds = timeout_seconds
        self.logger = logger or logging.getLogger("gallery")

    def available(self, name: str) -> bool:
        return shutil.which(name) is not None

    def run(self, args: Sequence[str], timeout: Optional[float] = None) -> subprocess.CompletedProcess:
        tool = args[0]
        if not self.available(tool):
            raise ToolError(f"{tool}_missing")
        try:
            result = subprocess.run(
                list(args),
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                check=False,
                timeout=timeout or self.timeout_seconds,
            )
        except subprocess.TimeoutExpired as exc:
            raise ToolError(f"{tool}_timeout") from exc
        except OSError as exc:
            raise ToolError(f"{tool}: {exc}") from exc
        if result.returncode != 0:
            raise ToolError(result.stderr.strip() or f"{tool}_failed")
        return result
