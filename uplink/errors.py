"""
Error Types

Typed failures raised by the UPLINK client core.

PROPAGATION:
============
1. TransportError      - retried by the cache, raised after the last attempt
2. HttpStatusError     - terminal, never retried
3. ValidationError     - terminal, result is never cached
4. SecureContextError  - surfaced by the gate as an inline attempt result
5. StorageError        - raised by storage backends only; the store swallows it
"""

from __future__ import annotations
from enum import Enum
from typing import Optional


class ErrorCode(Enum):
    """Stable error codes, shown on the load failure screen."""
    TRANSPORT_FAILED = "TRANSPORT_FAILED"
    HTTP_STATUS = "HTTP_STATUS"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    HTTPS_REQUIRED = "HTTPS_REQUIRED"
    STORAGE_FAILED = "STORAGE_FAILED"
    CLOCK_MISUSE = "CLOCK_MISUSE"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class UplinkError(Exception):
    """Base class for all client errors."""
    code: ErrorCode = ErrorCode.UNKNOWN_ERROR


class FetchError(UplinkError):
    """A document could not be obtained."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class TransportError(FetchError):
    """Network or connection failure (retried)."""
    code = ErrorCode.TRANSPORT_FAILED


class HttpStatusError(FetchError):
    """Non-success response status (terminal)."""
    code = ErrorCode.HTTP_STATUS

    def __init__(self, status: int, url: Optional[str] = None, reason: str = ""):
        message = f"HTTP {status}: {reason}" if reason else f"HTTP {status}"
        super().__init__(message, url)
        self.status = status


class ValidationError(FetchError):
    """Payload shape rejected (terminal, not cached)."""
    code = ErrorCode.VALIDATION_FAILED


class SecureContextError(UplinkError):
    """The hashing primitive needed by the access gate is unavailable."""
    code = ErrorCode.HTTPS_REQUIRED


class StorageError(UplinkError):
    """Persistent store read or write failure."""
    code = ErrorCode.STORAGE_FAILED


class ClockError(UplinkError):
    """Operation not supported by the clock's mode."""
    code = ErrorCode.CLOCK_MISUSE


def error_code_of(error: BaseException) -> str:
    """Code string for any exception, UNKNOWN_ERROR for foreign ones."""
    if isinstance(error, UplinkError):
        return error.code.value
    return ErrorCode.UNKNOWN_ERROR.value
