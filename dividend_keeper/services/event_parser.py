"""
Event parser for PayLoot events emitted by the captain pools.
Validates decoded event data and turns it into PayLootEvent values.
"""

from typing import Any, Mapping

from dividend_keeper.core.exceptions import DecodeFailure
from dividend_keeper.models import PayLootEvent


PAY_LOOT_SIGNATURE = "PayLoot(address,uint256,bool,uint16)"

UINT256_MAX = 2 ** 256 - 1
UINT16_MAX = 2 ** 16 - 1


def _field(data: Mapping[str, Any], name: str) -> Any:
    try:
        return data[name]
    except (KeyError, TypeError):
        raise DecodeFailure(f"PayLoot field missing: {name}", {"field": name})


def _uint(value: Any, name: str, limit: int) -> int:
    # bool is an int subclass; a flag in an integer slot is malformed
    if isinstance(value, bool) or not isinstance(value, int):
        raise DecodeFailure(
            f"PayLoot field {name} is not an integer",
            {"field": name, "value": repr(value)}
        )
    if value < 0 or value > limit:
        raise DecodeFailure(
            f"PayLoot field {name} out of range",
            {"field": name, "value": str(value)}
        )
    return value


def parse_pay_loot(event_data: Mapping[str, Any]) -> PayLootEvent:
    """
    Parse ABI-decoded PayLoot event data.

    Args:
        event_data: Mapping shaped like web3 EventData, with ``blockNumber``,
            ``logIndex`` and ``args`` holding ``captainId``, ``usdc``, ``amount``

    Returns:
        The decoded event

    Raises:
        DecodeFailure: if any field is missing or cannot be interpreted
    """
    args = _field(event_data, "args")
    block_number = _uint(_field(event_data, "blockNumber"), "blockNumber", UINT256_MAX)
    log_index = event_data.get("logIndex") or 0

    usdc = _field(args, "usdc")
    if not isinstance(usdc, bool):
        raise DecodeFailure("PayLoot field usdc is not a bool", {"value": repr(usdc)})

    return PayLootEvent(
        block_number=block_number,
        role_id=_uint(_field(args, "captainId"), "captainId", UINT16_MAX),
        usdc=usdc,
        amount=_uint(_field(args, "amount"), "amount", UINT256_MAX),
        log_index=log_index,
    )
