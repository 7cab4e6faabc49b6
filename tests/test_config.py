"""
Test settings validation and conversion to the keeper configuration.
"""

import pytest
from pydantic import ValidationError

from dividend_keeper.core.config import Settings
from dividend_keeper.core.exceptions import ConfigurationError

from conftest import make_config


def make_settings(**values) -> Settings:
    return Settings(_env_file=None, **values)


def test_defaults_describe_the_deployed_pools():
    config = make_settings().to_keeper_config()

    assert config.up_role_ids == tuple(range(9, 22))
    assert config.common_role_ids == tuple(range(1, 9))
    assert config.role_ids == tuple(range(1, 22))
    assert config.batch_counter_address == config.up_pool_address
    assert config.period_seconds == 24 * 60 * 60
    assert config.rate_precision == 10 ** 8
    assert config.matic_to_usdc_divisor == 10 ** 12
    assert config.start_batch_id is None


def test_overrides_are_carried_over():
    config = make_settings(
        interval_hours=6,
        batch_counter_address="0x0000000000000000000000000000000000000001",
        start_batch_id=12,
        start_up_pool_today=[1, 2] + [0] * 11,
        start_common_pool_today=[3] + [0] * 7,
    ).to_keeper_config()

    assert config.period_seconds == 6 * 60 * 60
    assert config.batch_counter_address.endswith("01")
    assert config.start_up_pool_today == (1, 2) + (0,) * 11
    assert config.start_common_pool_today == (3,) + (0,) * 7


def test_log_level_is_normalized():
    assert make_settings(log_level="debug").log_level == "DEBUG"


@pytest.mark.parametrize("values", [
    {"environment": "qa"},
    {"log_level": "verbose"},
    {"max_range": 0},
    {"max_requests": -1},
    {"up_role_first": 8},
    {"common_role_first": 2},
    {"up_role_first": 22, "up_role_last": 21},
    {"matic_decimals": 4},
    {"start_batch_id": 3},
    {"start_batch_id": 3, "start_up_pool_today": [1, 2], "start_common_pool_today": [7]},
    {"start_batch_id": 3, "start_up_pool_today": [0] * 13, "start_common_pool_today": [0] * 9},
    {"start_batch_id": 3, "start_up_pool_today": [-1] + [0] * 12, "start_common_pool_today": [0] * 8},
])
def test_invalid_settings_are_rejected(values):
    with pytest.raises(ValidationError):
        make_settings(**values)


@pytest.mark.parametrize("overrides", [
    {"up_role_ids": (8, 9, 10)},
    {"common_role_ids": ()},
    {"max_range": 0},
    {"start_batch_id": 1, "start_up_pool_today": (5,), "start_common_pool_today": (0,) * 8},
    {"start_batch_id": 1, "start_up_pool_today": (0,) * 13, "start_common_pool_today": None},
])
def test_keeper_config_rejects_inconsistent_values(overrides):
    with pytest.raises(ConfigurationError):
        make_config(**overrides)
