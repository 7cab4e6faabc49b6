"""
Income accounting values: pools, currencies, PayLoot events and ledgers.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Iterator, Mapping, Tuple


class Pool(Enum):
    """Independently settled captain pools."""
    UP = "up"
    COMMON = "common"


class Currency(Enum):
    """Currencies a PayLoot can be paid in."""
    USDC = "usdc"
    MATIC = "matic"


@dataclass(frozen=True)
class IncomeEntry:
    """Accrued income of one role in base units of each currency."""
    usdc: int = 0
    matic: int = 0

    def credit(self, currency: Currency, amount: int) -> "IncomeEntry":
        if currency is Currency.USDC:
            return IncomeEntry(usdc=self.usdc + amount, matic=self.matic)
        return IncomeEntry(usdc=self.usdc, matic=self.matic + amount)

    def amount(self, currency: Currency) -> int:
        return self.usdc if currency is Currency.USDC else self.matic

    def __add__(self, other: "IncomeEntry") -> "IncomeEntry":
        return IncomeEntry(usdc=self.usdc + other.usdc, matic=self.matic + other.matic)

    @property
    def is_zero(self) -> bool:
        return self.usdc == 0 and self.matic == 0


@dataclass(frozen=True)
class PayLootEvent:
    """Decoded PayLoot log."""
    block_number: int
    role_id: int
    usdc: bool
    amount: int
    log_index: int = 0

    @property
    def currency(self) -> Currency:
        return Currency.USDC if self.usdc else Currency.MATIC


class Ledger:
    """
    Immutable role -> IncomeEntry mapping over a fixed role set.

    Every role of the set always has an entry; merging events returns a new
    ledger and never adds roles.
    """

    __slots__ = ("_entries",)

    def __init__(self, entries: Mapping[int, IncomeEntry]):
        self._entries: Dict[int, IncomeEntry] = dict(sorted(entries.items()))

    @classmethod
    def empty(cls, role_ids: Iterable[int]) -> "Ledger":
        return cls({role_id: IncomeEntry() for role_id in role_ids})

    @property
    def role_ids(self) -> Tuple[int, ...]:
        return tuple(self._entries)

    def __getitem__(self, role_id: int) -> IncomeEntry:
        return self._entries[role_id]

    def __contains__(self, role_id: object) -> bool:
        return role_id in self._entries

    def __iter__(self) -> Iterator[int]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Ledger):
            return NotImplemented
        return self._entries == other._entries

    def __repr__(self) -> str:
        non_zero = {k: v for k, v in self._entries.items() if not v.is_zero}
        return f"Ledger(roles={len(self._entries)}, non_zero={non_zero})"

    def items(self) -> Iterator[Tuple[int, IncomeEntry]]:
        return iter(self._entries.items())

    def reset(self) -> "Ledger":
        return Ledger.empty(self._entries)

    def total(self) -> IncomeEntry:
        result = IncomeEntry()
        for entry in self._entries.values():
            result = result + entry
        return result

    @property
    def is_zero(self) -> bool:
        return all(entry.is_zero for entry in self._entries.values())
