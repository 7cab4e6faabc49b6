"""
Incremental PayLoot scanning components.
"""

from .types import ScanWindow, ScanResult
from .event_scanner import EventScanner, LogSource

__all__ = [
    "ScanWindow",
    "ScanResult",
    "EventScanner",
    "LogSource",
]
