"""
Scan feature - WebDAV tree walking, scan cache, task de-duplication and scan logs.
"""
from .cache import ScanCache
from .orchestrator import ScanOrchestrator
from .progress import ScanProgressBoard
from .scan_log import ScanLog, partition_key
from .tasks import ScanTaskRegistry
from .walker import DirectoryWalker, WalkOptions, scan_directory

__all__ = [
    "DirectoryWalker",
    "ScanCache",
    "ScanLog",
    "ScanOrchestrator",
    "ScanProgressBoard",
    "ScanTaskRegistry",
    "WalkOptions",
    "partition_key",
    "scan_directory",
]
