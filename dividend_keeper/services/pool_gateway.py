"""
EVM gateway for the captain pool contracts.
Provides log scanning, PayLoot decoding, price and batch reads and
dailyDivide calldata encoding over web3.py.
"""

from typing import Any, List, Sequence

from aiohttp import ClientTimeout
from web3 import AsyncWeb3
from web3.providers import AsyncHTTPProvider
import structlog

from dividend_keeper.core.config import KeeperConfig
from dividend_keeper.core.exceptions import DecodeFailure, TransportFailure
from dividend_keeper.models import CallDescriptor, PayLootEvent
from dividend_keeper.services.event_parser import PAY_LOOT_SIGNATURE, parse_pay_loot


logger = structlog.get_logger(__name__)


POOL_ABI = [
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "internalType": "address", "name": "user", "type": "address"},
            {"indexed": False, "internalType": "uint256", "name": "amount", "type": "uint256"},
            {"indexed": False, "internalType": "bool", "name": "usdc", "type": "bool"},
            {"indexed": False, "internalType": "uint16", "name": "captainId", "type": "uint16"},
        ],
        "name": "PayLoot",
        "type": "event",
    },
    {
        "inputs": [
            {"internalType": "uint16[]", "name": "roleIds_", "type": "uint16[]"},
            {"internalType": "uint256[]", "name": "roleIdPoolBalanceToday_", "type": "uint256[]"},
        ],
        "name": "dailyDivide",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "getLatestPrice",
        "outputs": [{"internalType": "int256", "name": "", "type": "int256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "batch",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]


class PoolGateway:
    """
    Async gateway to the captain pools and the batch counter.

    Every RPC failure surfaces as TransportFailure, every undecodable log as
    DecodeFailure.
    """

    def __init__(self, rpc_url: str, config: KeeperConfig, timeout: int = 30):
        self.rpc_url = rpc_url
        self.config = config
        self.w3 = AsyncWeb3(
            AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": ClientTimeout(total=timeout)})
        )
        self.logger = logger.bind(service="pool_gateway")

        self.up_pool = self._contract(config.up_pool_address)
        self.batch_counter = self._contract(config.batch_counter_address)
        self.pay_loot_topic = AsyncWeb3.to_hex(AsyncWeb3.keccak(text=PAY_LOOT_SIGNATURE))

    def _contract(self, address: str):
        return self.w3.eth.contract(address=AsyncWeb3.to_checksum_address(address), abi=POOL_ABI)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        """Close the provider session."""
        await self.w3.provider.disconnect()

    async def get_block_number(self) -> int:
        try:
            return await self.w3.eth.block_number
        except Exception as e:
            self.logger.error("Failed to get block number", error=str(e))
            raise TransportFailure(f"Failed to get block number: {e}")

    async def get_logs(self, address: str, from_block: int, to_block: int) -> List[Any]:
        """Fetch PayLoot logs emitted by one pool within [from_block, to_block]."""
        try:
            return list(await self.w3.eth.get_logs({
                "address": AsyncWeb3.to_checksum_address(address),
                "topics": [self.pay_loot_topic],
                "fromBlock": from_block,
                "toBlock": to_block,
            }))
        except Exception as e:
            raise TransportFailure(
                str(e),
                {"address": address, "from_block": from_block, "to_block": to_block}
            )

    def decode_log(self, log: Any) -> PayLootEvent:
        """Decode a raw PayLoot log; both pools share the event ABI."""
        try:
            event_data = self.up_pool.events.PayLoot().process_log(log)
        except Exception as e:
            raise DecodeFailure(
                f"Cannot decode PayLoot log: {e}",
                {"block": log.get("blockNumber") if hasattr(log, "get") else None}
            )
        return parse_pay_loot(event_data)

    async def get_latest_price(self) -> int:
        """MATIC/USDC rate with rate_decimals precision."""
        try:
            return await self.up_pool.functions.getLatestPrice().call()
        except Exception as e:
            self.logger.error("Error getting latest price", error=str(e))
            raise TransportFailure(f"Error getting latest price: {e}")

    async def get_batch_counter(self) -> int:
        try:
            return await self.batch_counter.functions.batch().call()
        except Exception as e:
            self.logger.error("Error reading batch counter", error=str(e))
            raise TransportFailure(f"Error reading batch counter: {e}")

    def encode_settlement(
        self,
        address: str,
        role_ids: Sequence[int],
        amounts: Sequence[int],
    ) -> CallDescriptor:
        # Calldata depends on the ABI only, which both pools share
        data = self.up_pool.encode_abi("dailyDivide", args=[list(role_ids), list(amounts)])
        return CallDescriptor(
            to=address,
            data=data,
            role_ids=tuple(role_ids),
            amounts=tuple(amounts),
        )
