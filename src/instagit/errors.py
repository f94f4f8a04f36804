"""Exception taxonomy for the streaming client.

Of these, only ``TerminalHttpError``, ``SecurityRejection`` and ``ExhaustedRetries``
leave ``AnalysisClient.run()``; the rest are retried or absorbed.
"""

from __future__ import annotations

import json


class InstagitError(Exception):
    """Base class for all client errors."""


class TransportError(InstagitError):
    """Connection-level failure (reset, timeout, refused, premature close)."""


class RetryableServerError(InstagitError):
    """Gateway / cold-start status, or a 2xx stream that produced no text."""

    def __init__(self, message: str, status_code: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class TerminalHttpError(InstagitError):
    """Non-retryable HTTP status.  Status code and body are kept verbatim."""

    def __init__(self, status_code: int, body: str = "") -> None:
        super().__init__(f"API error: {status_code}")
        self.status_code = status_code
        self.body = body

    @property
    def is_auth_error(self) -> bool:
        return self.status_code == 401

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429

    @property
    def rate_limit_until(self) -> str | None:
        """Reset time reported in a 429 JSON body, if any."""
        try:
            data = json.loads(self.body or "{}")
        except json.JSONDecodeError:
            return None
        if not isinstance(data, dict):
            return None
        value = data.get("rate_limit_until")
        return str(value) if value else None


class SecurityRejection(InstagitError):
    """Short response flagged by the server's security validation."""

    def __init__(self, text: str) -> None:
        super().__init__(f"Request rejected: {text.strip()}")
        self.text = text


class ExhaustedRetries(InstagitError):
    """Every attempt failed with a retryable error."""

    def __init__(self, attempts: int, last_error: Exception) -> None:
        super().__init__(f"Exhausted retries after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class MalformedEventError(InstagitError):
    """An SSE data payload could not be decoded.  Recovered by the parser."""


class AuthenticationError(InstagitError):
    """No API token could be obtained."""
