"""
Configuration management using Pydantic Settings.
Supports multiple environments: development, staging, production.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError


class Settings(BaseSettings):
    """Keeper settings with environment-based configuration."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Application
    environment: str = Field(default="development")

    # Chain
    rpc_url: str = Field(default="https://rpc.ankr.com/polygon")
    rpc_timeout: int = 30  # seconds
    up_pool_address: str = "0xE9728Ed5E1FD05665C44a17082d77049801435f0"
    common_pool_address: str = "0x0FAF09eD08D2Ec65982088f12E3Bab7e7Cb2945f"
    # Contract exposing batch(); falls back to the up pool
    batch_counter_address: Optional[str] = None

    # Scanning limits imposed by RPC providers and the invocation timeout
    max_range: int = 3000  # blocks per getLogs request
    max_requests: int = 20  # getLogs windows per invocation

    # Settlement
    interval_hours: int = 24
    usdc_decimals: int = 6
    matic_decimals: int = 18
    rate_decimals: int = 8

    # Roles
    up_role_first: int = 9
    up_role_last: int = 21
    common_role_first: int = 1
    common_role_last: int = 8

    # First-ever invocation
    start_block: int = 47352057  # 2023-09-10 00:00:00 UTC
    start_timestamp: int = 1694304000
    start_up_income: Optional[str] = None
    start_common_income: Optional[str] = None
    start_batch_id: Optional[int] = None
    start_up_pool_today: Optional[List[int]] = None
    start_common_pool_today: Optional[List[int]] = None

    # Checkpoint store
    redis_url: str = Field(default="redis://localhost:6379/0")
    redis_prefix: str = "dividend_keeper:"

    # Watch loop
    poll_interval: int = 300  # seconds

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console
    log_file: Optional[str] = None

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        allowed = ["development", "staging", "production"]
        if v not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {allowed}")
        return v.upper()

    @field_validator("max_range", "max_requests", "interval_hours", "poll_interval")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Value must be positive")
        return v

    @model_validator(mode="after")
    def validate_roles(self) -> "Settings":
        if self.up_role_first > self.up_role_last:
            raise ValueError("Up pool role range is empty")
        if self.common_role_first > self.common_role_last:
            raise ValueError("Common pool role range is empty")

        ranges = sorted([
            (self.common_role_first, self.common_role_last),
            (self.up_role_first, self.up_role_last),
        ])
        if ranges[0][0] != 1 or ranges[1][0] != ranges[0][1] + 1:
            raise ValueError("Role ranges must be disjoint and cover 1..N contiguously")
        return self

    @model_validator(mode="after")
    def validate_decimals(self) -> "Settings":
        if self.matic_decimals < self.usdc_decimals:
            raise ValueError("MATIC decimals must not be lower than USDC decimals")
        return self

    @model_validator(mode="after")
    def validate_start_settlement(self) -> "Settings":
        fields = [self.start_batch_id, self.start_up_pool_today, self.start_common_pool_today]
        if any(f is not None for f in fields) and not all(f is not None for f in fields):
            raise ValueError(
                "start_batch_id, start_up_pool_today and start_common_pool_today "
                "must be set together"
            )
        if self.start_batch_id is None:
            return self

        pools = [
            ("up", self.start_up_pool_today, self.up_role_last - self.up_role_first + 1),
            ("common", self.start_common_pool_today, self.common_role_last - self.common_role_first + 1),
        ]
        for name, amounts, role_count in pools:
            if len(amounts) != role_count:
                raise ValueError(
                    f"start_{name}_pool_today needs one amount per {name} role "
                    f"({role_count}), got {len(amounts)}"
                )
            if any(amount < 0 for amount in amounts):
                raise ValueError(f"start_{name}_pool_today amounts must not be negative")
        return self

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    def to_keeper_config(self) -> "KeeperConfig":
        """Freeze the settings into the configuration handed to the keeper core."""
        return KeeperConfig(
            up_pool_address=self.up_pool_address,
            common_pool_address=self.common_pool_address,
            batch_counter_address=self.batch_counter_address or self.up_pool_address,
            period_seconds=self.interval_hours * 60 * 60,
            max_range=self.max_range,
            max_requests=self.max_requests,
            up_role_ids=tuple(range(self.up_role_first, self.up_role_last + 1)),
            common_role_ids=tuple(range(self.common_role_first, self.common_role_last + 1)),
            usdc_decimals=self.usdc_decimals,
            matic_decimals=self.matic_decimals,
            rate_decimals=self.rate_decimals,
            start_block=self.start_block,
            start_timestamp=self.start_timestamp,
            start_up_income=self.start_up_income,
            start_common_income=self.start_common_income,
            start_batch_id=self.start_batch_id,
            start_up_pool_today=(
                tuple(self.start_up_pool_today) if self.start_up_pool_today is not None else None
            ),
            start_common_pool_today=(
                tuple(self.start_common_pool_today)
                if self.start_common_pool_today is not None else None
            ),
        )


@dataclass(frozen=True)
class KeeperConfig:
    """Immutable per-invocation configuration of the keeper core."""

    up_pool_address: str
    common_pool_address: str
    batch_counter_address: str
    period_seconds: int
    max_range: int
    max_requests: int
    up_role_ids: Tuple[int, ...]
    common_role_ids: Tuple[int, ...]
    usdc_decimals: int = 6
    matic_decimals: int = 18
    rate_decimals: int = 8
    start_block: int = 0
    start_timestamp: int = 0
    start_up_income: Optional[str] = None
    start_common_income: Optional[str] = None
    start_batch_id: Optional[int] = None
    start_up_pool_today: Optional[Tuple[int, ...]] = None
    start_common_pool_today: Optional[Tuple[int, ...]] = None

    def __post_init__(self):
        if not self.up_role_ids or not self.common_role_ids:
            raise ConfigurationError("Both pools need at least one role")
        overlap = set(self.up_role_ids) & set(self.common_role_ids)
        if overlap:
            raise ConfigurationError(
                "Role sets of the two pools overlap",
                {"roles": sorted(overlap)}
            )
        if self.max_range <= 0 or self.max_requests <= 0:
            raise ConfigurationError(
                "Scan limits must be positive",
                {"max_range": self.max_range, "max_requests": self.max_requests}
            )
        if self.start_batch_id is not None:
            for role_ids, amounts in (
                (self.up_role_ids, self.start_up_pool_today),
                (self.common_role_ids, self.start_common_pool_today),
            ):
                if amounts is None or len(amounts) != len(role_ids) or any(a < 0 for a in amounts):
                    raise ConfigurationError(
                        "Start settlement needs one non-negative amount per pool role",
                        {"roles": len(role_ids), "amounts": list(amounts) if amounts else None}
                    )

    @property
    def role_ids(self) -> Tuple[int, ...]:
        """Every managed role, ascending."""
        return tuple(sorted(self.up_role_ids + self.common_role_ids))

    @property
    def rate_precision(self) -> int:
        return 10 ** self.rate_decimals

    @property
    def matic_to_usdc_divisor(self) -> int:
        return 10 ** (self.matic_decimals - self.usdc_decimals)


# Global settings instance
settings = Settings()
