"""
Progress fan-out to live observers.

The HTTP front end lives in ``dashboard.server`` and is imported from there.
"""

from .broadcaster import ProgressBroadcaster, ProgressObserver

__all__ = ["ProgressBroadcaster", "ProgressObserver"]
