"""
Schedule feature - recurring scans.
"""
from .runner import ScanScheduler
from .store import ScheduledScan, ScheduledScanStore

__all__ = ["ScanScheduler", "ScheduledScan", "ScheduledScanStore"]
