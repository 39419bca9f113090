"""
Utility helpers for the gallery scanner.
"""

from .logging_setup import setup_logging
from .resource_monitor import ResourceMonitor

__all__ = ["setup_logging", "ResourceMonitor"]
