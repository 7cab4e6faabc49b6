"""
Income ledger service.

Merges PayLoot events into a pool's ledger with exact integer arithmetic and
builds the human readable accrued-income report.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Tuple

import structlog

from dividend_keeper.core.config import KeeperConfig
from dividend_keeper.core.exceptions import DecodeFailure
from dividend_keeper.models import Currency, IncomeEntry, Ledger, PayLootEvent, Pool
from dividend_keeper.utils.formatting import format_units


logger = structlog.get_logger(__name__)

LogDecoder = Callable[[Any], PayLootEvent]


@dataclass
class MergeStats:
    """Statistics for one merge pass."""
    events_seen: int = 0
    events_merged: int = 0
    unknown_roles: int = 0
    decode_failures: int = 0


def merge(ledger: Ledger, events: Iterable[PayLootEvent]) -> Ledger:
    """Credit every event whose role belongs to the ledger."""
    entries: Dict[int, IncomeEntry] = dict(ledger.items())
    for event in events:
        entry = entries.get(event.role_id)
        if entry is None:
            continue
        entries[event.role_id] = entry.credit(event.currency, event.amount)
    return Ledger(entries)


def merge_logs(
    ledger: Ledger,
    logs: Iterable[Any],
    decode: LogDecoder,
    pool: Pool,
) -> Tuple[Ledger, MergeStats]:
    """
    Decode raw logs and merge them into the ledger.

    Logs that cannot be decoded are skipped and reported; events for roles
    outside the ledger are dropped.

    Args:
        ledger: Ledger accumulated so far
        logs: Raw logs as returned by the log source
        decode: Turns one raw log into a PayLootEvent or raises DecodeFailure
        pool: Pool the logs were emitted by (for logging)

    Returns:
        The merged ledger and merge statistics
    """
    stats = MergeStats()
    events = []

    for log in logs:
        stats.events_seen += 1
        try:
            event = decode(log)
        except DecodeFailure as e:
            stats.decode_failures += 1
            logger.warning(
                "Skipping undecodable PayLoot log",
                pool=pool.value,
                error=e.message,
                details=e.details
            )
            continue

        if event.role_id not in ledger:
            stats.unknown_roles += 1
            logger.info(
                "Ignoring PayLoot for unmanaged role",
                pool=pool.value,
                role_id=event.role_id,
                block=event.block_number
            )
            continue

        events.append(event)
        stats.events_merged += 1

    if stats.events_seen:
        logger.debug(
            "Merged PayLoot logs",
            pool=pool.value,
            seen=stats.events_seen,
            merged=stats.events_merged,
            unknown_roles=stats.unknown_roles,
            decode_failures=stats.decode_failures
        )

    return merge(ledger, events), stats


def readable_income(up_income: Ledger, common_income: Ledger, config: KeeperConfig) -> Dict[str, Dict[str, str]]:
    """
    Combine both pools per role into decimal strings.

    Roles whose combined income is zero in both currencies are omitted.
    """
    decimals = {Currency.USDC: config.usdc_decimals, Currency.MATIC: config.matic_decimals}
    report: Dict[str, Dict[str, str]] = {}

    for role_id in config.role_ids:
        combined = IncomeEntry()
        if role_id in up_income:
            combined = combined + up_income[role_id]
        if role_id in common_income:
            combined = combined + common_income[role_id]
        if combined.is_zero:
            continue

        report[str(role_id)] = {
            currency.value: format_units(combined.amount(currency), decimals[currency])
            for currency in Currency
        }

    return report
