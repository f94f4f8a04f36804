"""Streaming client for the ``/v1/responses`` endpoint.

One call to ``AnalysisClient.run()`` makes up to ``max_retries + 1``
strictly sequential attempts::

    connect -> stream SSE -> accumulate -> classify
                                              |-> Success        (return)
                                              |-> RetryableFailure (backoff, loop)
                                              '-> TerminalFailure  (raise)

Every attempt starts from a fresh ``StreamAccumulator``; partial output
of a failed attempt never reaches the result.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Union

import httpx

from instagit.config import ClientConfig
from instagit.errors import (
    ExhaustedRetries,
    RetryableServerError,
    SecurityRejection,
    TerminalHttpError,
    TransportError,
)
from instagit.progress.heartbeat import Heartbeat, ProgressSink
from instagit.progress.tracker import ProgressTracker
from instagit.types import AnalysisResult, StreamRequest

from .accumulator import StreamAccumulator
from .retry import (
    get_retry_delay,
    is_retryable_status,
    is_security_rejection,
    is_transport_error,
)
from .sse import SSEParser

_logger = logging.getLogger(__name__)

RESPONSES_PATH = "/v1/responses"


# ---------------------------------------------------------------------------
# Attempt outcomes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Success:
    result: AnalysisResult


@dataclass(frozen=True)
class RetryableFailure:
    error: Exception


@dataclass(frozen=True)
class TerminalFailure:
    error: Exception


AttemptOutcome = Union[Success, RetryableFailure, TerminalFailure]


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class AnalysisClient:
    """Async client that streams an analysis and retries transient failures.

    Parameters
    ----------
    config:
        Endpoint, timeout and retry settings.  Defaults to ``ClientConfig()``.
    transport:
        Optional httpx transport, e.g. ``httpx.MockTransport`` in tests.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or ClientConfig()
        self._client = httpx.AsyncClient(
            base_url=self.config.api_url,
            timeout=httpx.Timeout(self.config.timeout, connect=30),
            transport=transport,
        )

    async def run(
        self,
        request: StreamRequest,
        progress: ProgressSink | None = None,
        *,
        tracker: ProgressTracker | None = None,
        max_retries: int | None = None,
    ) -> AnalysisResult:
        """Stream one analysis to completion.

        Raises
        ------
        TerminalHttpError
            Non-retryable HTTP status; status code and body attached.
        SecurityRejection
            The server refused the request; never retried.
        ExhaustedRetries
            Every attempt failed with a retryable error.
        """
        tracker = tracker or ProgressTracker()
        if max_retries is None:
            total = self.config.total_attempts
        else:
            total = max_retries + 1

        async with Heartbeat(tracker, progress, self.config.heartbeat_interval):
            last_error: Exception | None = None
            for attempt in range(total):
                tracker.attempts += 1
                _logger.info(
                    "Analysis attempt %d/%d for %s", attempt + 1, total, request.model,
                )
                outcome = await self._guarded_attempt(request, tracker)

                if isinstance(outcome, Success):
                    return outcome.result
                if isinstance(outcome, TerminalFailure):
                    raise outcome.error

                last_error = outcome.error
                if attempt + 1 >= total:
                    break
                delay = get_retry_delay(attempt, self.config.base_delay)
                _logger.warning(
                    "Analysis stream failed: %s (attempt %d/%d), retrying in %.0fs...",
                    outcome.error, attempt + 1, total, delay,
                )
                tracker.update(status=f"Retrying (attempt {attempt + 2}/{total})...")
                await asyncio.sleep(delay)

        assert last_error is not None
        raise ExhaustedRetries(total, last_error) from last_error

    # ------------------------------------------------------------------
    # Single attempt
    # ------------------------------------------------------------------

    async def _guarded_attempt(
        self, request: StreamRequest, tracker: ProgressTracker,
    ) -> AttemptOutcome:
        """Run one attempt under the absolute timeout and classify exceptions."""
        try:
            return await asyncio.wait_for(
                self._attempt(request, tracker), timeout=self.config.timeout,
            )
        except asyncio.TimeoutError:
            return RetryableFailure(
                TransportError(f"attempt timed out after {self.config.timeout:.0f}s"),
            )
        except (httpx.TransportError, OSError) as e:
            if is_transport_error(e):
                return RetryableFailure(TransportError(str(e) or type(e).__name__))
            raise

    async def _attempt(
        self, request: StreamRequest, tracker: ProgressTracker,
    ) -> AttemptOutcome:
        accumulator = StreamAccumulator(tracker)
        parser = SSEParser()
        tracker.update(status="Connecting...")

        async with self._client.stream(
            "POST",
            RESPONSES_PATH,
            json=request.to_payload(),
            headers=request.headers(),
        ) as resp:
            if not resp.is_success:
                body = await _read_error_body(resp)
                if is_retryable_status(resp.status_code):
                    return RetryableFailure(RetryableServerError(
                        f"API returned {resp.status_code}",
                        status_code=resp.status_code,
                        body=body,
                    ))
                return TerminalFailure(TerminalHttpError(resp.status_code, body))

            if resp.status_code == 204:
                return TerminalFailure(TerminalHttpError(resp.status_code, "No response body"))

            async for chunk in resp.aiter_bytes():
                for event in parser.feed(chunk):
                    accumulator.apply(event)
                if parser.done:
                    break

        text = accumulator.text
        if is_security_rejection(text):
            return TerminalFailure(SecurityRejection(text))
        if not text:
            return RetryableFailure(RetryableServerError("Empty response"))
        return Success(accumulator.build_result())

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> AnalysisClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


async def _read_error_body(resp: httpx.Response) -> str:
    """Best-effort read of an error body."""
    try:
        return (await resp.aread()).decode(errors="replace")
    except httpx.HTTPError as e:
        _logger.debug("Could not read error body (status %d): %s", resp.status_code, e)
        return ""
