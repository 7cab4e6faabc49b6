"""
Test bounded PayLoot scanning.
"""

import pytest

from dividend_keeper.indexer import EventScanner, ScanWindow
from dividend_keeper.models import Ledger, Pool
from dividend_keeper.services.income_ledger import merge_logs

from conftest import COMMON_POOL, START_BLOCK, UP_POOL, FakeChain, make_config, pay_loot


def test_windows_cover_range_without_overlap(keeper_config, chain):
    scanner = EventScanner(chain, keeper_config)

    assert scanner.windows(1000, 1250) == [
        ScanWindow(1001, 1100),
        ScanWindow(1101, 1200),
        ScanWindow(1201, 1250),
    ]


def test_windows_respect_request_budget(chain):
    config = make_config(max_requests=2)
    scanner = EventScanner(chain, config)

    assert scanner.windows(1000, 10_000) == [ScanWindow(1001, 1100), ScanWindow(1101, 1200)]


def test_no_windows_at_head(keeper_config, chain):
    scanner = EventScanner(chain, keeper_config)

    assert scanner.windows(1250, 1250) == []
    assert scanner.windows(1300, 1250) == []


@pytest.mark.asyncio
async def test_scan_fetches_both_pools_per_window(keeper_config, chain):
    chain.add(UP_POOL, pay_loot(1001, 9, 10), pay_loot(1250, 10, 20))
    chain.add(COMMON_POOL, pay_loot(1100, 1, 30))

    result = await EventScanner(chain, keeper_config).scan(START_BLOCK, chain.head)

    assert result.last_scanned_block == 1250
    assert result.caught_up
    assert not result.failed
    assert result.requests_made == 3
    assert [log["blockNumber"] for log in result.up_logs] == [1001, 1250]
    assert [log["blockNumber"] for log in result.common_logs] == [1100]
    assert chain.get_logs_calls[:2] == [(UP_POOL, 1001, 1100), (COMMON_POOL, 1001, 1100)]


@pytest.mark.asyncio
async def test_scan_stops_at_budget(chain):
    config = make_config(max_requests=2)
    chain.head = 5000
    chain.add(UP_POOL, pay_loot(1150, 9, 1), pay_loot(1201, 9, 1))

    result = await EventScanner(chain, config).scan(START_BLOCK, chain.head)

    assert result.last_scanned_block == 1200
    assert not result.caught_up
    assert len(result.up_logs) == 1


@pytest.mark.asyncio
async def test_failure_keeps_progress_of_previous_windows(keeper_config, chain):
    chain.fail_on_window = 2
    chain.add(UP_POOL, pay_loot(1050, 9, 10), pay_loot(1150, 9, 20))
    chain.add(COMMON_POOL, pay_loot(1099, 1, 5), pay_loot(1101, 1, 7))

    result = await EventScanner(chain, keeper_config).scan(START_BLOCK, chain.head)

    assert result.failed
    assert result.requests_made == 2
    assert result.last_scanned_block == 1100
    assert result.windows == [ScanWindow(1001, 1100)]
    assert [log["blockNumber"] for log in result.up_logs] == [1050]
    assert [log["blockNumber"] for log in result.common_logs] == [1099]


@pytest.mark.asyncio
async def test_failure_on_first_window_reports_no_progress(keeper_config, chain):
    chain.fail_on_window = 1
    chain.add(UP_POOL, pay_loot(1050, 9, 10))

    result = await EventScanner(chain, keeper_config).scan(START_BLOCK, chain.head)

    assert result.failed
    assert result.last_scanned_block == START_BLOCK
    assert not result.events_observed


@pytest.mark.asyncio
async def test_split_scans_merge_like_single_scan(keeper_config):
    logs = [
        pay_loot(1001, 9, 1), pay_loot(1100, 9, 2), pay_loot(1101, 10, 4),
        pay_loot(1150, 11, 8), pay_loot(1151, 9, 16, usdc=False), pay_loot(1300, 21, 32),
    ]
    chain = FakeChain(keeper_config, head=1300)
    chain.add(UP_POOL, *logs)
    scanner = EventScanner(chain, keeper_config)
    empty = Ledger.empty(keeper_config.role_ids)

    first = await scanner.scan(1000, 1150)
    second = await scanner.scan(first.last_scanned_block, 1300)
    ledger, _ = merge_logs(empty, first.up_logs, chain.decode_log, Pool.UP)
    split, _ = merge_logs(ledger, second.up_logs, chain.decode_log, Pool.UP)

    whole = await scanner.scan(1000, 1300)
    single, _ = merge_logs(empty, whole.up_logs, chain.decode_log, Pool.UP)

    assert split == single
    assert len(first.up_logs) + len(second.up_logs) == len(logs)
    assert single.total().usdc == 1 + 2 + 4 + 8 + 32
    assert single.total().matic == 16
