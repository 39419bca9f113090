"""
Logging configuration for the gallery scanner.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional


def setup_logging(log_dir: Optional[Path] = None, level: int = logging.INFO) -> Dict[str, logging.Logger]:
    """Initialize loggers and return a mapping of named loggers.

    Without a log directory only the console handler is attached.
    """
    date_stamp = datetime.utcnow().strftime("%Y%m%d")
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    base_logger = logging.getLogger("gallery")
    if not base_logger.handlers:
        base_logger.setLevel(level)
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        base_logger.addHandler(stream_handler)

        if log_dir is not None:
            log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_dir / f"gallery_{date_stamp}.log", encoding="utf-8")
            file_handler.setFormatter(formatter)
            base_logger.addHandler(file_handler)

            error_handler = logging.FileHandler(log_dir / f"error_{date_stamp}.log", encoding="utf-8")
            error_handler.setLevel(logging.ERROR)
            error_handler.setFormatter(formatter)
            base_logger.addHandler(error_handler)

    scan_logger = logging.getLogger("gallery.scan")

    performance_logger = logging.getLogger("gallery.performance")
    if log_dir is not None and not performance_logger.handlers:
        performance_logger.setLevel(logging.INFO)
        perf_handler = logging.FileHandler(log_dir / f"performance_{date_stamp}.log", encoding="utf-8")
        perf_handler.setFormatter(formatter)
        performance_logger.addHandler(perf_handler)
        performance_logger.propagate = False

    return {"main": base_logger, "scan": scan_logger, "performance": performance_logger}
