"""
Main entry point for the keeper service.
Invokes the dividend keeper on a fixed interval, the way a hosted job
executor would.
"""

import asyncio
import json
import signal
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog

from dividend_keeper.core.config import Settings, settings as default_settings
from dividend_keeper.core.exceptions import DividendKeeperException
from dividend_keeper.core.logging import setup_logging
from dividend_keeper.models import InvocationResult
from dividend_keeper.services.checkpoint_store import (
    CheckpointStore, InMemoryCheckpointStore, RedisCheckpointStore
)
from dividend_keeper.services.pool_gateway import PoolGateway

from .keeper_job import DividendKeeper


logger = structlog.get_logger(__name__)


def build_store(settings: Settings, dry_run: bool = False) -> CheckpointStore:
    if dry_run:
        return InMemoryCheckpointStore()
    return RedisCheckpointStore(url=settings.redis_url, prefix=settings.redis_prefix)


async def invoke_once(settings: Settings, dry_run: bool = False) -> InvocationResult:
    """Run a single invocation with fresh connections."""
    config = settings.to_keeper_config()
    store = build_store(settings, dry_run)
    if isinstance(store, RedisCheckpointStore):
        await store.connect()
    try:
        async with PoolGateway(settings.rpc_url, config, timeout=settings.rpc_timeout) as gateway:
            keeper = DividendKeeper(config, gateway, store)
            return await keeper.run_once()
    finally:
        if isinstance(store, RedisCheckpointStore):
            await store.disconnect()


class KeeperMain:
    """Periodic keeper service coordinator."""

    def __init__(self, settings: Optional[Settings] = None, dry_run: bool = False):
        self.settings = settings or default_settings
        self.dry_run = dry_run
        self.store: Optional[CheckpointStore] = None
        self.gateway: Optional[PoolGateway] = None
        self.running = False
        self.total_runs = 0
        self.failed_runs = 0
        self.last_run: Optional[datetime] = None
        self.last_result: Optional[InvocationResult] = None
        self._stop_event = asyncio.Event()

    async def initialize(self):
        """Initialize store and chain connections."""
        try:
            logger.info("Initializing keeper service", dry_run=self.dry_run)

            self.store = build_store(self.settings, self.dry_run)
            if isinstance(self.store, RedisCheckpointStore):
                await self.store.connect()

            self.gateway = PoolGateway(
                self.settings.rpc_url,
                self.settings.to_keeper_config(),
                timeout=self.settings.rpc_timeout,
            )

            logger.info("Keeper service initialized successfully")

        except Exception as e:
            logger.error("Failed to initialize keeper", error=str(e))
            raise

    async def run_invocation(self) -> Optional[InvocationResult]:
        """Run one invocation; configuration is re-read every time."""
        keeper = DividendKeeper(self.settings.to_keeper_config(), self.gateway, self.store)
        self.total_runs += 1
        self.last_run = datetime.now(timezone.utc)
        try:
            result = await keeper.run_once()
        except DividendKeeperException as e:
            self.failed_runs += 1
            logger.error("Keeper invocation failed", code=e.code, error=e.message, details=e.details)
            return None

        self.last_result = result
        logger.info("Keeper invocation finished", result=json.dumps(result.to_dict()))
        return result

    async def start(self):
        """Invoke the keeper every poll_interval seconds until stopped."""
        logger.info("Starting keeper service", poll_interval=self.settings.poll_interval)
        self.running = True

        while self.running:
            await self.run_invocation()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.settings.poll_interval)
            except asyncio.TimeoutError:
                continue

    def request_stop(self):
        self.running = False
        self._stop_event.set()

    async def stop(self):
        """Stop the keeper service."""
        logger.info("Stopping keeper service")
        self.request_stop()

        if self.gateway:
            await self.gateway.close()
            self.gateway = None
        if isinstance(self.store, RedisCheckpointStore):
            await self.store.disconnect()

        logger.info("Keeper service stopped")

    def health_check(self) -> Dict[str, Any]:
        return {
            "healthy": self.running,
            "total_runs": self.total_runs,
            "failed_runs": self.failed_runs,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "last_result": self.last_result.to_dict() if self.last_result else None,
        }


async def main(dry_run: bool = False):
    """Main function to run the keeper service."""
    setup_logging()

    service = KeeperMain(dry_run=dry_run)
    loop = asyncio.get_running_loop()

    def signal_handler(signum):
        logger.info(f"Received signal {signum}, shutting down...")
        service.request_stop()

    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, signal_handler, signum)

    try:
        await service.initialize()
        await service.start()
    except Exception as e:
        logger.error("Keeper service failed", error=str(e))
        raise
    finally:
        await service.stop()


if __name__ == "__main__":
    asyncio.run(main())
