"""
Custom exception classes for the keeper.
Provides structured error handling across all modules.
"""

from typing import Any, Optional, Dict


class DividendKeeperException(Exception):
    """Base exception class for the dividend keeper."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(DividendKeeperException):
    """Raised when there's a configuration error."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CONFIGURATION_ERROR", details)


class TransportFailure(DividendKeeperException):
    """Raised when the log source, oracle or batch counter cannot be reached."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "TRANSPORT_FAILURE", details)


class DecodeFailure(DividendKeeperException):
    """Raised when a PayLoot log cannot be interpreted."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "DECODE_FAILURE", details)


class OverflowFailure(DividendKeeperException):
    """Raised when a settlement amount does not fit the on-chain integer type."""

    def __init__(self, role_id: int, amount: int, limit: int):
        super().__init__(
            f"Settlement amount for role {role_id} overflows uint256: {amount}",
            "OVERFLOW_FAILURE",
            {"role_id": role_id, "amount": str(amount), "limit": str(limit)}
        )


class CheckpointError(DividendKeeperException):
    """Raised when persisted checkpoint state cannot be read or written."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CHECKPOINT_ERROR", details)


class StaleBatchMismatch(DividendKeeperException):
    """Raised when the batch counter has moved past a pending settlement."""

    def __init__(self, pending_batch_id: int, batch_counter: int):
        super().__init__(
            f"Pending settlement batch {pending_batch_id} superseded by batch counter {batch_counter}",
            "STALE_BATCH_MISMATCH",
            {"pending_batch_id": pending_batch_id, "batch_counter": batch_counter}
        )
