"""
Bounded, resumable scanner for PayLoot logs of both captain pools.
"""

from typing import Any, List, Protocol

import structlog

from dividend_keeper.core.config import KeeperConfig
from dividend_keeper.core.exceptions import TransportFailure

from .types import ScanResult, ScanWindow


logger = structlog.get_logger(__name__)


class LogSource(Protocol):
    """Anything able to fetch PayLoot logs of one address in a block range."""

    async def get_logs(self, address: str, from_block: int, to_block: int) -> List[Any]:
        ...


class EventScanner:
    """
    Scans from the checkpointed block towards the chain head.

    Features:
    - Windows of at most ``max_range`` blocks to comply with RPC providers
    - At most ``max_requests`` windows per invocation to stay within the
      invocation timeout
    - Both pools fetched for the same window, so their logs cover the same range
    - Stops at the first failed window and keeps the progress made before it
    """

    def __init__(self, log_source: LogSource, config: KeeperConfig):
        self.log_source = log_source
        self.config = config
        self.logger = logger.bind(service="event_scanner")

    def windows(self, last_scanned_block: int, head_block: int) -> List[ScanWindow]:
        """Windows the next scan would request, in order."""
        windows = []
        last = last_scanned_block
        while last < head_block and len(windows) < self.config.max_requests:
            from_block = last + 1
            to_block = min(last + self.config.max_range, head_block)
            windows.append(ScanWindow(from_block, to_block))
            last = to_block
        return windows

    async def scan(self, last_scanned_block: int, head_block: int) -> ScanResult:
        """
        Fetch logs in ``(last_scanned_block, reached]``.

        Args:
            last_scanned_block: Last block whose logs are already merged
            head_block: Current chain head

        Returns:
            ScanResult with the block reached and the logs per pool; on a
            fetch failure ``error`` is set and the result covers only the
            windows fetched before it
        """
        result = ScanResult(
            start_block=last_scanned_block,
            last_scanned_block=last_scanned_block,
            head_block=head_block,
        )

        for window in self.windows(last_scanned_block, head_block):
            result.requests_made += 1
            self.logger.debug(
                "Fetching log events",
                from_block=window.from_block,
                to_block=window.to_block
            )
            try:
                up_logs = await self.log_source.get_logs(
                    self.config.up_pool_address, window.from_block, window.to_block
                )
                common_logs = await self.log_source.get_logs(
                    self.config.common_pool_address, window.from_block, window.to_block
                )
            except TransportFailure as e:
                self.logger.warning(
                    "Log fetch failed, keeping partial progress",
                    from_block=window.from_block,
                    to_block=window.to_block,
                    reached=result.last_scanned_block,
                    error=e.message
                )
                result.error = e
                break

            result.up_logs.extend(up_logs)
            result.common_logs.extend(common_logs)
            result.windows.append(window)
            result.last_scanned_block = window.to_block

        self.logger.info(
            "Scan finished",
            start_block=last_scanned_block,
            reached=result.last_scanned_block,
            head=head_block,
            requests=result.requests_made,
            up_logs=len(result.up_logs),
            common_logs=len(result.common_logs),
            failed=result.failed
        )
        return result
