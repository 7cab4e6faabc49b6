"""
Value types for the dividend keeper.

Income ledgers, the persisted checkpoint and the outcome of an invocation.
"""

from .income import Pool, Currency, IncomeEntry, PayLootEvent, Ledger
from .checkpoint import Checkpoint, PendingSettlement
from .outcome import CallDescriptor, Execute, Skip, InvocationResult

__all__ = [
    "Pool",
    "Currency",
    "IncomeEntry",
    "PayLootEvent",
    "Ledger",
    "Checkpoint",
    "PendingSettlement",
    "CallDescriptor",
    "Execute",
    "Skip",
    "InvocationResult",
]
