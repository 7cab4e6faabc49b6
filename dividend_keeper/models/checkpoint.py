"""
Durable keeper state carried between invocations.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from .income import Ledger


@dataclass(frozen=True)
class PendingSettlement:
    """
    A submitted dailyDivide pair not yet observed on-chain.

    The batch id and both balance vectors live in one value so they are
    always stored and cleared together.
    """
    batch_id: int
    up_balances: Tuple[int, ...]
    common_balances: Tuple[int, ...]


@dataclass(frozen=True)
class Checkpoint:
    """Complete keeper state."""
    last_scanned_block: int
    last_settlement_timestamp: int
    up_income: Ledger
    common_income: Ledger
    pending: Optional[PendingSettlement] = None

    @property
    def pending_batch_id(self) -> Optional[int]:
        return self.pending.batch_id if self.pending else None
