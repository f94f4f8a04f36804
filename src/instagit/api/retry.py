"""Backoff policy and failure classification for transient API failures.

Handles cold-start 303s and gateway errors (502/503/504) plus
connection-level failures: any connect or timeout error, and anything
else recognised by its message.
"""

from __future__ import annotations

import httpx

from instagit.config import RETRY_BASE_DELAY

RETRYABLE_STATUS_CODES = frozenset({303, 502, 503, 504})

TRANSPORT_ERROR_PATTERNS = (
    "incomplete chunked read",
    "peer closed connection",
    "connection reset",
    "timed out",
    "fetch failed",
    "econnrefused",
    # httpx / anyio phrasing of the same failures
    "connection refused",
    "all connection attempts failed",
    "server disconnected",
    # resolver failures
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "temporary failure in name resolution",
)

_SECURITY_PHRASE = "security validation"
_SECURITY_MAX_LENGTH = 100


def get_retry_delay(attempt: int, base_delay: float = RETRY_BASE_DELAY) -> float:
    """Seconds to wait after the 0-indexed *attempt* failed."""
    return base_delay * (2 ** attempt)


def is_retryable_status(status_code: int) -> bool:
    return status_code in RETRYABLE_STATUS_CODES


def is_transport_error(error: BaseException | str) -> bool:
    """Check whether *error* is a transient connection-level failure."""
    if isinstance(error, (httpx.TimeoutException, httpx.ConnectError)):
        return True
    message = error if isinstance(error, str) else str(error)
    lower = message.lower()
    return any(p in lower for p in TRANSPORT_ERROR_PATTERNS)


def is_security_rejection(text: str) -> bool:
    return len(text) < _SECURITY_MAX_LENGTH and _SECURITY_PHRASE in text.lower()
