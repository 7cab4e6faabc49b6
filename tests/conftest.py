"""
Shared fixtures and in-memory fakes for keeper tests.
"""

from typing import Any, Dict, List, Optional, Sequence

import pytest

from dividend_keeper.core.config import KeeperConfig
from dividend_keeper.core.exceptions import TransportFailure
from dividend_keeper.models import CallDescriptor, PayLootEvent
from dividend_keeper.services.checkpoint_store import InMemoryCheckpointStore
from dividend_keeper.services.event_parser import parse_pay_loot


UP_POOL = "0xE9728Ed5E1FD05665C44a17082d77049801435f0"
COMMON_POOL = "0x0FAF09eD08D2Ec65982088f12E3Bab7e7Cb2945f"

# 2024-01-10 00:00:00 UTC
T0 = 1704844800
DAY = 24 * 60 * 60
START_BLOCK = 1000

USDC = 10 ** 6
MATIC = 10 ** 18


def pay_loot(block: int, role_id: int, amount: int, usdc: bool = True, log_index: int = 0) -> Dict[str, Any]:
    """PayLoot log in the shape web3 returns after ABI decoding."""
    return {
        "event": "PayLoot",
        "blockNumber": block,
        "logIndex": log_index,
        "args": {
            "user": "0x000000000000000000000000000000000000dEaD",
            "amount": amount,
            "usdc": usdc,
            "captainId": role_id,
        },
    }


def make_config(**overrides) -> KeeperConfig:
    values = dict(
        up_pool_address=UP_POOL,
        common_pool_address=COMMON_POOL,
        batch_counter_address=UP_POOL,
        period_seconds=DAY,
        max_range=100,
        max_requests=20,
        up_role_ids=tuple(range(9, 22)),
        common_role_ids=tuple(range(1, 9)),
        start_block=START_BLOCK,
        start_timestamp=T0,
    )
    values.update(overrides)
    return KeeperConfig(**values)


class FakeChain:
    """In-memory log source, oracle, batch counter and encoder."""

    def __init__(
        self,
        config: KeeperConfig,
        head: int = START_BLOCK + 250,
        price: Optional[int] = 100000000,
        batch: int = 0,
    ):
        self.config = config
        self.head = head
        self.price = price
        self.batch = batch
        self.logs: Dict[str, List[Dict[str, Any]]] = {
            config.up_pool_address: [],
            config.common_pool_address: [],
        }
        self.fail_on_window: Optional[int] = None
        self.head_error = False
        self.price_error = False
        self.batch_error = False
        self.get_logs_calls: List[tuple] = []
        self.price_calls = 0

    def add(self, address: str, *logs: Dict[str, Any]) -> None:
        self.logs[address].extend(logs)

    async def get_block_number(self) -> int:
        if self.head_error:
            raise TransportFailure("head unavailable")
        return self.head

    async def get_logs(self, address: str, from_block: int, to_block: int) -> List[Any]:
        self.get_logs_calls.append((address, from_block, to_block))
        window = sum(1 for call in self.get_logs_calls if call[0] == self.config.up_pool_address)
        if self.fail_on_window is not None and window == self.fail_on_window:
            raise TransportFailure("429 Too Many Requests")
        matching = [
            log for log in self.logs[address]
            if from_block <= log["blockNumber"] <= to_block
        ]
        return sorted(matching, key=lambda log: (log["blockNumber"], log["logIndex"]))

    def decode_log(self, log: Any) -> PayLootEvent:
        return parse_pay_loot(log)

    async def get_latest_price(self) -> int:
        self.price_calls += 1
        if self.price_error:
            raise TransportFailure("execution reverted")
        return self.price

    async def get_batch_counter(self) -> int:
        if self.batch_error:
            raise TransportFailure("batch unavailable")
        return self.batch

    def encode_settlement(self, address: str, role_ids: Sequence[int], amounts: Sequence[int]) -> CallDescriptor:
        return CallDescriptor(
            to=address,
            data=f"dailyDivide({list(role_ids)},{list(amounts)})",
            role_ids=tuple(role_ids),
            amounts=tuple(amounts),
        )


class RecordingCheckpointStore(InMemoryCheckpointStore):
    """In-memory store remembering the order keys were written in."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        super().__init__(initial)
        self.writes: List[str] = []

    async def set(self, key: str, value: str) -> None:
        await super().set(key, value)
        self.writes.append(key)


class Clock:
    def __init__(self, now: int):
        self.now = now

    def __call__(self) -> int:
        return self.now


@pytest.fixture
def keeper_config() -> KeeperConfig:
    return make_config()


@pytest.fixture
def chain(keeper_config) -> FakeChain:
    return FakeChain(keeper_config)


@pytest.fixture
def store() -> RecordingCheckpointStore:
    return RecordingCheckpointStore()


@pytest.fixture
def clock() -> Clock:
    return Clock(T0 + 3600)
