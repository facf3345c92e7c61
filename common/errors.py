"""
Error taxonomy for provider, storage and configuration failures.

Only ConfigurationError is fatal. ProviderError is caught at the per-signal
fetch boundary and turns into a missing signal; StorageError never leaves the
storage layer. INSUFFICIENT_HISTORY is a kind, not an exception: the history
store reports it by returning None.
"""
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    RATE_LIMIT = "RATE_LIMIT"
    AUTH = "AUTH"
    NETWORK = "NETWORK"
    DATA_FORMAT = "DATA_FORMAT"
    STORAGE = "STORAGE"
    INSUFFICIENT_HISTORY = "INSUFFICIENT_HISTORY"
    UNKNOWN = "UNKNOWN"


class CompassError(Exception):
    """Base exception for the market compass."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ProviderError(CompassError):
    """A provider call failed or returned an unusable payload."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        status: Optional[int] = None,
        provider: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.status = status
        self.provider = provider

    @classmethod
    def from_status(cls, status: int, message: str = "", provider: Optional[str] = None) -> "ProviderError":
        if status == 429:
            kind = ErrorKind.RATE_LIMIT
        elif status in (401, 403):
            kind = ErrorKind.AUTH
        elif status >= 500:
            kind = ErrorKind.NETWORK
        else:
            kind = ErrorKind.UNKNOWN
        return cls(kind, message or f"HTTP {status}", status=status, provider=provider)

    def __str__(self) -> str:
        parts = [f"{self.kind.value}: {self.message}"]
        if self.provider:
            parts.append(f"[provider={self.provider}]")
        if self.status is not None:
            parts.append(f"(status={self.status})")
        return " ".join(parts)


class StorageError(CompassError):
    kind = ErrorKind.STORAGE


class ConfigurationError(CompassError):
    """Invariant violated while wiring the system; raised at construction."""
