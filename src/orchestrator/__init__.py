"""
Scan coordination and its cross-process lock.
"""

from .lock import LockInfo, ScanLock, ScanLockError
from .scan import ScanFailedError, ScanOrchestrator, ScanStartResult

__all__ = [
    "LockInfo",
    "ScanFailedError",
    "ScanLock",
    "ScanLockError",
    "ScanOrchestrator",
    "ScanStartResult",
]
