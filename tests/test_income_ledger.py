"""
Test income ledger merging and reporting.
"""

import pytest

from dividend_keeper.core.exceptions import DecodeFailure
from dividend_keeper.models import Currency, IncomeEntry, Ledger, PayLootEvent, Pool
from dividend_keeper.services.event_parser import parse_pay_loot
from dividend_keeper.services.income_ledger import merge, merge_logs, readable_income
from dividend_keeper.utils.formatting import format_units

from conftest import MATIC, USDC, make_config, pay_loot


ROLES = range(1, 22)


def event(role_id, amount, usdc=True, block=1):
    return PayLootEvent(block_number=block, role_id=role_id, usdc=usdc, amount=amount)


def test_merge_credits_matching_currency():
    ledger = merge(Ledger.empty(ROLES), [
        event(9, 100 * USDC),
        event(9, 2 * MATIC, usdc=False),
        event(9, 5 * USDC),
    ])

    assert ledger[9] == IncomeEntry(usdc=105 * USDC, matic=2 * MATIC)
    assert ledger[10].is_zero


def test_merge_returns_new_ledger():
    original = Ledger.empty(ROLES)
    merged = merge(original, [event(3, 7)])

    assert original[3].is_zero
    assert merged[3].usdc == 7


def test_unknown_roles_are_dropped():
    ledger = merge(Ledger.empty(ROLES), [event(0, 10), event(22, 10), event(500, 10)])

    assert ledger.role_ids == tuple(ROLES)
    assert ledger.is_zero


def test_conservation_and_order_independence():
    events = [event(role, role * 1000 + i, usdc=bool(i % 2), block=i) for i, role in
              enumerate([1, 9, 9, 21, 4, 13, 1, 8, 9, 2])]

    forward = merge(Ledger.empty(ROLES), events)
    backward = merge(Ledger.empty(ROLES), reversed(events))
    stepwise = merge(merge(Ledger.empty(ROLES), events[:4]), events[4:])

    assert forward == backward == stepwise
    assert forward.total().usdc == sum(e.amount for e in events if e.usdc)
    assert forward.total().matic == sum(e.amount for e in events if not e.usdc)


def test_large_amounts_are_exact():
    huge = 2 ** 255 + 12345
    ledger = merge(Ledger.empty(ROLES), [event(5, huge, usdc=False), event(5, huge, usdc=False)])

    assert ledger[5].matic == 2 * huge


def test_merge_logs_skips_undecodable_logs():
    broken = {"blockNumber": 5, "args": {"captainId": 9, "usdc": True}}
    logs = [pay_loot(1, 9, 10), broken, pay_loot(6, 9, 5), pay_loot(7, 77, 5)]

    ledger, stats = merge_logs(Ledger.empty(ROLES), logs, parse_pay_loot, Pool.UP)

    assert ledger[9].usdc == 15
    assert stats.events_seen == 4
    assert stats.events_merged == 2
    assert stats.decode_failures == 1
    assert stats.unknown_roles == 1


def test_merge_logs_propagates_unexpected_decoder_errors():
    def decoder(log):
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        merge_logs(Ledger.empty(ROLES), [pay_loot(1, 9, 10)], decoder, Pool.UP)


class TestParsePayLoot:
    """Test PayLoot event validation."""

    def test_valid_event(self):
        parsed = parse_pay_loot(pay_loot(42, 9, 100, usdc=False, log_index=3))

        assert parsed == PayLootEvent(block_number=42, role_id=9, usdc=False, amount=100, log_index=3)
        assert parsed.currency is Currency.MATIC

    @pytest.mark.parametrize("field, value", [
        ("amount", -1),
        ("amount", "100"),
        ("amount", 2 ** 256),
        ("captainId", True),
        ("captainId", 70000),
        ("usdc", 1),
    ])
    def test_invalid_fields(self, field, value):
        log = pay_loot(1, 9, 100)
        log["args"][field] = value

        with pytest.raises(DecodeFailure):
            parse_pay_loot(log)

    def test_missing_args(self):
        with pytest.raises(DecodeFailure):
            parse_pay_loot({"blockNumber": 1})


def test_readable_income_combines_pools_and_omits_zero_roles():
    config = make_config()
    up = merge(Ledger.empty(config.role_ids), [event(9, 100 * USDC), event(2, 1)])
    common = merge(Ledger.empty(config.role_ids), [event(9, MATIC // 2, usdc=False)])

    report = readable_income(up, common, config)

    assert report == {
        "2": {"usdc": "0.000001", "matic": "0.0"},
        "9": {"usdc": "100.0", "matic": "0.5"},
    }


@pytest.mark.parametrize("value, decimals, expected", [
    (100 * USDC, 6, "100.0"),
    (1, 6, "0.000001"),
    (1500000000000000000, 18, "1.5"),
    (0, 18, "0.0"),
    (123, 0, "123.0"),
    (-2500000, 6, "-2.5"),
])
def test_format_units(value, decimals, expected):
    assert format_units(value, decimals) == expected
