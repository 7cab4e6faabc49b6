"""
Checkpoint serialization.

The checkpoint is stored as string fields of a key-value store. Integers are
written as decimal strings so amounts survive stores and readers limited to
double precision. Ledgers written by the original JavaScript keeper (plain
numbers or ethers BigNumber objects) are accepted on read.
"""

import json
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from dividend_keeper.core.config import KeeperConfig
from dividend_keeper.core.exceptions import CheckpointError
from dividend_keeper.models import Checkpoint, IncomeEntry, Ledger, PendingSettlement


LAST_BLOCK_KEY = "lastBlock"
LAST_EXEC_KEY = "lastExec"
BATCH_KEY = "batch"
UP_INCOME_KEY = "upIncome"
COMMON_INCOME_KEY = "commonIncome"
UP_POOL_TODAY_KEY = "lastUpPoolToday"
COMMON_POOL_TODAY_KEY = "lastCommonPoolToday"

# Order for stores without atomic multi-key writes: balances land before the
# batch marker that makes them pending, the pending settlement lands before the
# ledgers are zeroed, the scan cursor goes last.
WRITE_ORDER: Tuple[str, ...] = (
    UP_POOL_TODAY_KEY,
    COMMON_POOL_TODAY_KEY,
    BATCH_KEY,
    LAST_EXEC_KEY,
    UP_INCOME_KEY,
    COMMON_INCOME_KEY,
    LAST_BLOCK_KEY,
)

# Written to the batch key once a pending settlement is confirmed
EMPTY = ""


def _parse_int(value: Any, what: str) -> int:
    if isinstance(value, bool):
        raise CheckpointError(f"Invalid integer in {what}", {"value": repr(value)})
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 10)
        except ValueError:
            raise CheckpointError(f"Invalid integer in {what}", {"value": value})
    if isinstance(value, dict) and value.get("type") == "BigNumber":
        try:
            return int(value["hex"], 16)
        except (KeyError, TypeError, ValueError):
            raise CheckpointError(f"Invalid BigNumber in {what}", {"value": value})
    if isinstance(value, float) and value.is_integer():
        return int(value)
    raise CheckpointError(f"Invalid integer in {what}", {"value": repr(value)})


def _load_json(text: str, what: str) -> Any:
    try:
        return json.loads(text)
    except ValueError as e:
        raise CheckpointError(f"Malformed JSON in {what}", {"error": str(e)})


def encode_ledger(ledger: Ledger) -> str:
    return json.dumps(
        {
            str(role_id): {"usdc": str(entry.usdc), "matic": str(entry.matic)}
            for role_id, entry in ledger.items()
        },
        separators=(",", ":"),
    )


def decode_ledger(text: str, role_ids: Sequence[int], what: str = "ledger") -> Ledger:
    """
    Decode a stored ledger onto the configured role set.

    Missing roles start at zero and roles outside the set are dropped, so the
    result always covers exactly ``role_ids``.
    """
    raw = _load_json(text, what)
    if not isinstance(raw, dict):
        raise CheckpointError(f"{what} is not an object")

    ledger = Ledger.empty(role_ids)
    entries = dict(ledger.items())
    for key, value in raw.items():
        role_id = _parse_int(key, what)
        if role_id not in entries:
            continue
        if not isinstance(value, dict):
            raise CheckpointError(f"Invalid entry for role {role_id} in {what}")
        entry = IncomeEntry(
            usdc=_parse_int(value.get("usdc", 0), what),
            matic=_parse_int(value.get("matic", 0), what),
        )
        if entry.usdc < 0 or entry.matic < 0:
            raise CheckpointError(f"Negative income for role {role_id} in {what}")
        entries[role_id] = entry
    return Ledger(entries)


def encode_balances(balances: Sequence[int]) -> str:
    return json.dumps([str(amount) for amount in balances], separators=(",", ":"))


def decode_balances(text: str, what: str, role_ids: Sequence[int]) -> Tuple[int, ...]:
    """Decode a pending balance vector holding one amount per role of ``role_ids``."""
    raw = _load_json(text, what)
    if not isinstance(raw, list):
        raise CheckpointError(f"{what} is not a list")
    balances = tuple(_parse_int(amount, what) for amount in raw)
    if len(balances) != len(role_ids):
        raise CheckpointError(
            f"{what} holds {len(balances)} amounts for {len(role_ids)} roles",
            {"amounts": len(balances), "roles": len(role_ids)}
        )
    if any(amount < 0 for amount in balances):
        raise CheckpointError(f"Negative amount in {what}")
    return balances


def encode_checkpoint(checkpoint: Checkpoint) -> Dict[str, str]:
    """
    Serialize the checkpoint.

    Without a pending settlement the batch key is empty and the balance keys
    are left out: the last submitted balances stay in the store untouched.
    """
    fields = {
        LAST_BLOCK_KEY: str(checkpoint.last_scanned_block),
        LAST_EXEC_KEY: str(checkpoint.last_settlement_timestamp),
        BATCH_KEY: EMPTY,
        UP_INCOME_KEY: encode_ledger(checkpoint.up_income),
        COMMON_INCOME_KEY: encode_ledger(checkpoint.common_income),
    }
    pending = checkpoint.pending
    if pending:
        fields[BATCH_KEY] = str(pending.batch_id)
        fields[UP_POOL_TODAY_KEY] = encode_balances(pending.up_balances)
        fields[COMMON_POOL_TODAY_KEY] = encode_balances(pending.common_balances)
    return fields


def initial_checkpoint(config: KeeperConfig) -> Checkpoint:
    """Checkpoint used by the first-ever invocation."""
    pending = None
    if config.start_batch_id is not None:
        pending = PendingSettlement(
            batch_id=config.start_batch_id,
            up_balances=tuple(config.start_up_pool_today or ()),
            common_balances=tuple(config.start_common_pool_today or ()),
        )

    return Checkpoint(
        last_scanned_block=config.start_block,
        last_settlement_timestamp=config.start_timestamp,
        up_income=(
            decode_ledger(config.start_up_income, config.role_ids, "start_up_income")
            if config.start_up_income else Ledger.empty(config.role_ids)
        ),
        common_income=(
            decode_ledger(config.start_common_income, config.role_ids, "start_common_income")
            if config.start_common_income else Ledger.empty(config.role_ids)
        ),
        pending=pending,
    )


def decode_checkpoint(raw: Mapping[str, Optional[str]], config: KeeperConfig) -> Checkpoint:
    """
    Rebuild the checkpoint from stored fields.

    Absent fields fall back to the configured starting values. A settlement
    is pending only while the batch key holds an id.

    Raises:
        CheckpointError: if a stored field is malformed or a pending batch id
            has no balances or balances not matching the pool role sets
    """
    initial = initial_checkpoint(config)

    def present(key: str) -> Optional[str]:
        value = raw.get(key)
        return value if value not in (None, EMPTY) else None

    last_block = present(LAST_BLOCK_KEY)
    last_exec = present(LAST_EXEC_KEY)
    up_income = present(UP_INCOME_KEY)
    common_income = present(COMMON_INCOME_KEY)

    batch = present(BATCH_KEY)
    if batch is None:
        # A batch key never written falls back to the bootstrap settlement
        pending = initial.pending if raw.get(BATCH_KEY) is None else None
    else:
        up_today = present(UP_POOL_TODAY_KEY)
        common_today = present(COMMON_POOL_TODAY_KEY)
        if up_today is None or common_today is None:
            raise CheckpointError(
                "Pending settlement stored without its balances",
                {"batch": batch}
            )
        pending = PendingSettlement(
            batch_id=_parse_int(batch, BATCH_KEY),
            up_balances=decode_balances(up_today, UP_POOL_TODAY_KEY, config.up_role_ids),
            common_balances=decode_balances(common_today, COMMON_POOL_TODAY_KEY, config.common_role_ids),
        )

    return Checkpoint(
        last_scanned_block=(
            _parse_int(last_block, LAST_BLOCK_KEY) if last_block else initial.last_scanned_block
        ),
        last_settlement_timestamp=(
            _parse_int(last_exec, LAST_EXEC_KEY) if last_exec else initial.last_settlement_timestamp
        ),
        up_income=(
            decode_ledger(up_income, config.role_ids, UP_INCOME_KEY) if up_income else initial.up_income
        ),
        common_income=(
            decode_ledger(common_income, config.role_ids, COMMON_INCOME_KEY)
            if common_income else initial.common_income
        ),
        pending=pending,
    )


def changed_fields(previous: Checkpoint, current: Checkpoint) -> Dict[str, str]:
    """Fields whose serialized value differs, in WRITE_ORDER."""
    before = encode_checkpoint(previous)
    after = encode_checkpoint(current)
    return {
        key: after[key]
        for key in WRITE_ORDER
        if key in after and before.get(key) != after[key]
    }
