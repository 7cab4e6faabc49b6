"""
Settlement scheduling: the settlement state machine and the keeper job.
"""

from .settlement import (
    SettlementState,
    SettlementAction,
    SettlementDecision,
    ChainObservations,
    derive_state,
    settlement_due,
    transition,
)
from .keeper_job import DividendKeeper

__all__ = [
    "SettlementState",
    "SettlementAction",
    "SettlementDecision",
    "ChainObservations",
    "derive_state",
    "settlement_due",
    "transition",
    "DividendKeeper",
]
