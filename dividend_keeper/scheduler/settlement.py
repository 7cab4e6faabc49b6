"""
Settlement state machine.

Pure functions deciding, from the checkpoint, the current time and what was
read from chain, whether to accumulate, replay a pending settlement or settle
a new period. No I/O happens here.
"""

import json
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Sequence, Tuple

import structlog

from dividend_keeper.core.config import KeeperConfig
from dividend_keeper.core.exceptions import OverflowFailure, StaleBatchMismatch, TransportFailure
from dividend_keeper.models import Checkpoint, Ledger, PendingSettlement
from dividend_keeper.services.event_parser import UINT256_MAX
from dividend_keeper.services.income_ledger import readable_income


logger = structlog.get_logger(__name__)


class SettlementState(Enum):
    """State of the settlement cycle for one invocation."""
    ACCUMULATING = "accumulating"
    PENDING_CONFIRMATION = "pending_confirmation"
    SETTLING = "settling"


class SettlementAction(Enum):
    """What the invocation asks the executor to do."""
    NONE = "none"
    SUBMIT = "submit"
    REPLAY = "replay"


@dataclass(frozen=True)
class ChainObservations:
    """Chain reads made during one invocation."""
    head_block: int
    batch_counter: int
    rate: Optional[int] = None
    events_observed: bool = False


@dataclass(frozen=True)
class SettlementDecision:
    """Result of a transition."""
    state: SettlementState
    action: SettlementAction
    up_balances: Tuple[int, ...] = ()
    common_balances: Tuple[int, ...] = ()
    message: str = ""

    @property
    def submits_calls(self) -> bool:
        return self.action is not SettlementAction.NONE


def utc_day(timestamp: int):
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).date()


def settlement_due(last_settlement_timestamp: int, now: int, period_seconds: int) -> bool:
    """
    A period has elapsed, or ``now`` falls on a later UTC day.

    The day rule keeps settlements on calendar days even when invocation
    timing drifts or the period is shorter than a day.
    """
    if now >= last_settlement_timestamp + period_seconds:
        return True
    return utc_day(now) != utc_day(last_settlement_timestamp)


def check_pending(pending: PendingSettlement, batch_counter: int) -> None:
    """
    Raises:
        StaleBatchMismatch: if the counter moved past the pending batch id
        TransportFailure: if the counter reads behind the pending batch id;
            the counter never decreases, so the node answering is lagging
    """
    if batch_counter < pending.batch_id:
        raise TransportFailure(
            f"Batch counter {batch_counter} behind pending batch {pending.batch_id}",
            {"pending_batch_id": pending.batch_id, "batch_counter": batch_counter}
        )
    if batch_counter > pending.batch_id:
        raise StaleBatchMismatch(pending.batch_id, batch_counter)


def confirm_pending(checkpoint: Checkpoint, batch_counter: int) -> Checkpoint:
    """
    Drop the pending settlement once the batch counter moved past it.

    Raises:
        TransportFailure: if the counter reads behind the pending batch id
    """
    if checkpoint.pending is None:
        return checkpoint
    try:
        check_pending(checkpoint.pending, batch_counter)
    except StaleBatchMismatch as e:
        logger.info("Pending settlement confirmed on-chain", **e.details)
        return replace(checkpoint, pending=None)
    return checkpoint


def derive_state(
    checkpoint: Checkpoint,
    now: int,
    batch_counter: int,
    config: KeeperConfig,
) -> SettlementState:
    """State of this invocation; a confirmed pending settlement counts as absent."""
    if checkpoint.pending is not None and batch_counter <= checkpoint.pending.batch_id:
        return SettlementState.PENDING_CONFIRMATION
    if settlement_due(checkpoint.last_settlement_timestamp, now, config.period_seconds):
        return SettlementState.SETTLING
    return SettlementState.ACCUMULATING


def matic_to_usdc(matic: int, rate: int, config: KeeperConfig) -> int:
    return matic * rate // config.rate_precision // config.matic_to_usdc_divisor


def pool_balances(
    ledger: Ledger,
    role_ids: Sequence[int],
    rate: int,
    config: KeeperConfig,
) -> Tuple[int, ...]:
    """
    Per-role USDC amounts to divide today, in ``role_ids`` order.

    MATIC income is converted at ``rate`` and half of the combined income is
    settled; the other half is not carried forward.

    Raises:
        OverflowFailure: if an amount does not fit uint256
    """
    balances = []
    for role_id in role_ids:
        entry = ledger[role_id]
        amount = (entry.usdc + matic_to_usdc(entry.matic, rate, config)) // 2
        if amount > UINT256_MAX:
            raise OverflowFailure(role_id, amount, UINT256_MAX)
        balances.append(amount)
    return tuple(balances)


def income_message(checkpoint: Checkpoint, observations: ChainObservations, now: int,
                   config: KeeperConfig) -> str:
    if not observations.events_observed:
        return f"No dividend at block {observations.head_block}({now})"
    report = readable_income(checkpoint.up_income, checkpoint.common_income, config)
    return f"income: {json.dumps(report, separators=(',', ':'))}"


def transition(
    checkpoint: Checkpoint,
    now: int,
    observations: ChainObservations,
    config: KeeperConfig,
) -> Tuple[Checkpoint, SettlementDecision]:
    """
    Advance the settlement cycle by one invocation.

    Args:
        checkpoint: Checkpoint with this invocation's scan already merged
        now: Current unix timestamp
        observations: Batch counter, head block and (when settling) the rate
        config: Keeper configuration

    Returns:
        The checkpoint to persist and the decision for the executor

    Raises:
        OverflowFailure: if a settlement amount does not fit uint256
        TransportFailure: if the batch counter reads behind a pending settlement
    """
    checkpoint = confirm_pending(checkpoint, observations.batch_counter)
    state = derive_state(checkpoint, now, observations.batch_counter, config)

    if state is SettlementState.PENDING_CONFIRMATION:
        pending = checkpoint.pending
        return checkpoint, SettlementDecision(
            state=state,
            action=SettlementAction.REPLAY,
            up_balances=pending.up_balances,
            common_balances=pending.common_balances,
            message=f"Replaying settlement batch {pending.batch_id}",
        )

    if state is SettlementState.SETTLING:
        rate = observations.rate
        if rate is None or rate <= 0:
            return checkpoint, SettlementDecision(
                state=state,
                action=SettlementAction.NONE,
                message=f"Failed to get latest price at {observations.head_block}",
            )

        up_balances = pool_balances(checkpoint.up_income, config.up_role_ids, rate, config)
        common_balances = pool_balances(checkpoint.common_income, config.common_role_ids, rate, config)

        settled = Checkpoint(
            last_scanned_block=checkpoint.last_scanned_block,
            last_settlement_timestamp=now,
            up_income=checkpoint.up_income.reset(),
            common_income=checkpoint.common_income.reset(),
            pending=PendingSettlement(
                batch_id=observations.batch_counter,
                up_balances=up_balances,
                common_balances=common_balances,
            ),
        )
        return settled, SettlementDecision(
            state=state,
            action=SettlementAction.SUBMIT,
            up_balances=up_balances,
            common_balances=common_balances,
            message=f"Settling batch {observations.batch_counter}",
        )

    return checkpoint, SettlementDecision(
        state=state,
        action=SettlementAction.NONE,
        message=income_message(checkpoint, observations, now, config),
    )
