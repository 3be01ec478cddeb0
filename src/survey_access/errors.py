# survey_access/errors.py
from __future__ import annotations

import asyncio
from typing import ClassVar

from survey_access._compat import StrEnum


class ErrorKind(StrEnum):
    VALIDATION = "validation"
    TIMEOUT = "timeout"
    NETWORK = "network"
    SERVICE_UNAVAILABLE = "service_unavailable"
    UNKNOWN = "unknown"


# ------------------------------------------------------------------------------
# Runtime failures raised while talking to the eligibility service
# ------------------------------------------------------------------------------


class AccessError(Exception):
    """Base class for failures that strategies translate into denials."""

    kind: ClassVar[ErrorKind] = ErrorKind.UNKNOWN
    retryable: ClassVar[bool] = False


class IdentifierRequiredError(AccessError):
    kind = ErrorKind.VALIDATION


class AccessTimeoutError(AccessError, TimeoutError):
    kind = ErrorKind.TIMEOUT
    retryable = True


class NetworkError(AccessError, ConnectionError):
    kind = ErrorKind.NETWORK
    retryable = True


class ServiceUnavailableError(AccessError):
    kind = ErrorKind.SERVICE_UNAVAILABLE


class UnknownAccessError(AccessError):
    kind = ErrorKind.UNKNOWN


# ------------------------------------------------------------------------------
# Programmer errors: these are raised, never converted into denials
# ------------------------------------------------------------------------------


class UnknownStrategyError(KeyError):
    """Raised when a strategy id is looked up that was never registered."""

    def __init__(self, strategy_id: str) -> None:
        super().__init__(strategy_id)
        self.strategy_id = strategy_id

    def __str__(self) -> str:
        return f"Unknown access strategy: {self.strategy_id!r}"


class DuplicateStrategyError(ValueError):
    """Raised when a second strategy is registered under an existing id."""


class StrategyConfigError(ValueError):
    """Raised when a strategy receives a configuration it cannot validate."""


_TIMEOUT_MARKERS = ("timeout", "timed out")
_NETWORK_MARKERS = ("network", "fetch", "connection", "abort")


def classify_error(exc: BaseException) -> ErrorKind:
    if isinstance(exc, AccessError):
        return exc.kind
    if isinstance(exc, (TimeoutError, asyncio.TimeoutError)):
        return ErrorKind.TIMEOUT
    if isinstance(exc, ConnectionError):
        return ErrorKind.NETWORK

    message = str(exc).lower()
    if any(marker in message for marker in _TIMEOUT_MARKERS):
        return ErrorKind.TIMEOUT
    if type(exc).__name__ == "AbortError" or any(marker in message for marker in _NETWORK_MARKERS):
        return ErrorKind.NETWORK
    return ErrorKind.UNKNOWN


def is_transient(exc: BaseException) -> bool:
    """Retry predicate: only timeouts and network failures are worth another attempt."""
    return classify_error(exc) in (ErrorKind.TIMEOUT, ErrorKind.NETWORK)


def user_safe_reason(kind: ErrorKind, *, label: str) -> str:
    if kind is ErrorKind.VALIDATION:
        return f"Wallet identifier required for {label} verification."
    if kind is ErrorKind.TIMEOUT:
        return f"{label} verification is taking too long. Please try again."
    if kind is ErrorKind.NETWORK:
        return f"We couldn't verify your {label} status due to a network issue. Please check your connection and retry."
    return f"{label} verification service is unavailable. Please try later."


__all__ = [
    "AccessError",
    "AccessTimeoutError",
    "DuplicateStrategyError",
    "ErrorKind",
    "IdentifierRequiredError",
    "NetworkError",
    "ServiceUnavailableError",
    "StrategyConfigError",
    "UnknownAccessError",
    "UnknownStrategyError",
    "classify_error",
    "is_transient",
    "user_safe_reason",
]
