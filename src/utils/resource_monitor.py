"""
CPU and memory throttling between thumbnail jobs.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Optional

import psutil


@dataclass
class ResourceMonitor:
    """Pause before the next codec call while the host is above its limits."""

    max_cpu_percent: float
    max_ram_percent: float
    sleep_seconds: float = 0.5
    max_throttle_seconds: float = 15.0
    min_check_interval_seconds: float = 0.5
    logger: Optional[logging.Logger] = None
    _last_check: float = field(default=0.0, init=False, repr=False)

    def __post_init__(self) -> None:
        psutil.cpu_percent(interval=None)
        if self.logger is None:
            self.logger = logging.getLogger("gallery.performance")

    @property
    def enabled(self) -> bool:
        return self.max_cpu_percent > 0 or self.max_ram_percent > 0

    def throttle(self) -> float:
        """Sleep while CPU or RAM usage exceeds thresholds; return seconds waited."""
        if not self.enabled:
            return 0.0
        now = time.monotonic()
        if (now - self._last_check) < self.min_check_interval_seconds:
            return 0.0
        self._last_check = now
        start_time = time.monotonic()
        while True:
            cpu = psutil.cpu_percent(interval=0.1)
            ram = psutil.virtual_memory().percent
            cpu_over = self.max_cpu_percent > 0 and cpu > self.max_cpu_percent
            ram_over = self.max_ram_percent > 0 and ram > self.max_ram_percent
            waited = time.monotonic() - start_time
            if not (cpu_over or ram_over) or waited >= self.max_throttle_seconds:
                if waited >= self.sleep_seconds:
                    self.logger.info("Throttled %.1fs (cpu=%.0f%% ram=%.0f%%)", waited, cpu, ram)
                return waited
            time.sleep(self.sleep_seconds)
