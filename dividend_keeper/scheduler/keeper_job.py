"""
One keeper invocation: scan, merge, decide, persist, report.
"""

import time
from dataclasses import replace
from typing import Any, Callable, List, Optional, Protocol, Sequence

import structlog

from dividend_keeper.core.config import KeeperConfig
from dividend_keeper.core.exceptions import TransportFailure
from dividend_keeper.indexer import EventScanner
from dividend_keeper.models import (
    CallDescriptor, Checkpoint, Execute, InvocationResult, PayLootEvent, Pool, Skip
)
from dividend_keeper.services.checkpoint_codec import (
    WRITE_ORDER, changed_fields, decode_checkpoint
)
from dividend_keeper.services.checkpoint_store import CheckpointStore
from dividend_keeper.services.income_ledger import merge_logs

from .settlement import (
    ChainObservations, SettlementDecision, SettlementState,
    confirm_pending, derive_state, transition
)


logger = structlog.get_logger(__name__)


class PoolChain(Protocol):
    """Chain access the keeper needs; implemented by PoolGateway."""

    async def get_block_number(self) -> int: ...

    async def get_logs(self, address: str, from_block: int, to_block: int) -> List[Any]: ...

    def decode_log(self, log: Any) -> PayLootEvent: ...

    async def get_latest_price(self) -> int: ...

    async def get_batch_counter(self) -> int: ...

    def encode_settlement(
        self, address: str, role_ids: Sequence[int], amounts: Sequence[int]
    ) -> CallDescriptor: ...


class DividendKeeper:
    """
    Stateless dividend keeper.

    Every invocation reloads the checkpoint, so instances can be rebuilt
    between runs. Invocations against one store must not overlap.
    """

    def __init__(
        self,
        config: KeeperConfig,
        chain: PoolChain,
        store: CheckpointStore,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.config = config
        self.chain = chain
        self.store = store
        self.clock = clock or (lambda: int(time.time()))
        self.scanner = EventScanner(chain, config)
        self.logger = logger.bind(service="dividend_keeper")

    async def load_checkpoint(self) -> Checkpoint:
        raw = await self.store.get_many(WRITE_ORDER)
        return decode_checkpoint(raw, self.config)

    async def _persist(self, previous: Checkpoint, current: Checkpoint) -> None:
        fields = changed_fields(previous, current)
        if not fields:
            return
        await self.store.set_many(fields)
        self.logger.info("Checkpoint persisted", fields=list(fields))

    def _build_calls(self, decision: SettlementDecision) -> Execute:
        return Execute(call_data=(
            self.chain.encode_settlement(
                self.config.up_pool_address, self.config.up_role_ids, decision.up_balances
            ),
            self.chain.encode_settlement(
                self.config.common_pool_address, self.config.common_role_ids, decision.common_balances
            ),
        ))

    async def run_once(self) -> InvocationResult:
        """
        Run a single invocation.

        Transport failures end the invocation with a Skip after persisting
        whatever scan progress was made. OverflowFailure and CheckpointError
        propagate with nothing persisted by this invocation.
        """
        checkpoint = await self.load_checkpoint()

        try:
            head_block = await self.chain.get_block_number()
        except TransportFailure as e:
            return Skip(f"Rpc call failed: {e.message}")

        scan = await self.scanner.scan(checkpoint.last_scanned_block, head_block)
        up_income, _ = merge_logs(checkpoint.up_income, scan.up_logs, self.chain.decode_log, Pool.UP)
        common_income, _ = merge_logs(
            checkpoint.common_income, scan.common_logs, self.chain.decode_log, Pool.COMMON
        )
        scanned = replace(
            checkpoint,
            last_scanned_block=scan.last_scanned_block,
            up_income=up_income,
            common_income=common_income,
        )

        if scan.failed:
            await self._persist(checkpoint, scanned)
            return Skip(f"Rpc call failed: {scan.error.message}")

        try:
            batch_counter = await self.chain.get_batch_counter()
            confirmed = confirm_pending(scanned, batch_counter)
        except TransportFailure as e:
            await self._persist(checkpoint, scanned)
            return Skip(f"Rpc call failed: {e.message}")

        now = self.clock()
        rate = None
        state = derive_state(confirmed, now, batch_counter, self.config)
        if state is SettlementState.SETTLING:
            try:
                rate = await self.chain.get_latest_price()
            except TransportFailure as e:
                self.logger.warning("Price oracle unavailable", error=e.message)

        observations = ChainObservations(
            head_block=head_block,
            batch_counter=batch_counter,
            rate=rate,
            events_observed=scan.events_observed,
        )
        updated, decision = transition(scanned, now, observations, self.config)

        self.logger.info(
            "Settlement decision",
            state=decision.state.value,
            action=decision.action.value,
            batch_counter=batch_counter,
            pending_batch=updated.pending_batch_id,
            last_scanned_block=updated.last_scanned_block,
            head_block=head_block
        )

        result: InvocationResult
        if decision.submits_calls:
            result = self._build_calls(decision)
        else:
            result = Skip(decision.message)

        await self._persist(checkpoint, updated)
        return result
