"""
Core types for event scanning.
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional

from dividend_keeper.core.exceptions import TransportFailure


@dataclass(frozen=True)
class ScanWindow:
    """Inclusive block range fetched by one request."""
    from_block: int
    to_block: int


@dataclass
class ScanResult:
    """Outcome of one bounded scan."""
    start_block: int
    last_scanned_block: int
    head_block: int
    up_logs: List[Any] = field(default_factory=list)
    common_logs: List[Any] = field(default_factory=list)
    windows: List[ScanWindow] = field(default_factory=list)
    requests_made: int = 0
    error: Optional[TransportFailure] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def caught_up(self) -> bool:
        return self.last_scanned_block >= self.head_block

    @property
    def events_observed(self) -> bool:
        return bool(self.up_logs or self.common_logs)
