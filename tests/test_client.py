"""Tests for AnalysisClient with a mocked httpx transport."""

from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncIterator
from unittest.mock import AsyncMock, call, patch

import httpx
import pytest

from instagit.api.client import AnalysisClient
from instagit.config import ClientConfig
from instagit.errors import (
    ExhaustedRetries,
    RetryableServerError,
    SecurityRejection,
    TerminalHttpError,
    TransportError,
)
from instagit.progress.tracker import ProgressTracker
from instagit.types import StreamRequest


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _delta(text: str) -> dict:
    return {"type": "response.output_text.delta", "delta": text}


def _completed(**usage: Any) -> dict:
    return {"type": "response.completed", "response": {"usage": usage}}


def _sse(*payloads: dict, done: bool = True) -> bytes:
    frames = [f"data: {json.dumps(p)}\n\n" for p in payloads]
    if done:
        frames.append("data: [DONE]\n\n")
    return "".join(frames).encode()


def _ok(body: bytes | AsyncIterator[bytes]) -> httpx.Response:
    return httpx.Response(200, content=body, headers={"content-type": "text/event-stream"})


async def _chunks(*parts: bytes, error: Exception | None = None) -> AsyncIterator[bytes]:
    for part in parts:
        yield part
    if error is not None:
        raise error


class _Server:
    """Plays back one scripted response (or exception) per request."""

    def __init__(self, *script: Any) -> None:
        self.script = list(script)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def _client(server: _Server, **config: Any) -> AnalysisClient:
    cfg = ClientConfig(api_url="http://test", **config)
    return AnalysisClient(cfg, transport=httpx.MockTransport(server))


@pytest.fixture
def request_() -> StreamRequest:
    return StreamRequest(repo="owner/repo", prompt="Explain the architecture")


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------

class TestStreaming:
    async def test_hello_world(self, request_: StreamRequest):
        server = _Server(_ok(_sse(_delta("Hello, "), _delta("world!"))))
        tracker = ProgressTracker()
        async with _client(server) as client:
            result = await client.run(request_, tracker=tracker)

        assert result.text == "Hello, world!"
        assert tracker.attempts == 1
        assert len(server.requests) == 1

    async def test_usage_captured(self, request_: StreamRequest):
        body = _sse(
            _delta("Answer"),
            _completed(
                input_tokens=1200, output_tokens=300, total_tokens=1500,
                tier="pro", tokens_remaining=8500, upgrade_hint="Go further",
            ),
        )
        async with _client(_Server(_ok(body))) as client:
            result = await client.run(request_)

        assert result.input_tokens == 1200
        assert result.output_tokens == 300
        assert result.total_tokens == 1500
        assert result.tier == "pro"
        assert result.tokens_remaining == 8500
        assert result.upgrade_hint == "Go further"

    async def test_usage_defaults(self, request_: StreamRequest):
        async with _client(_Server(_ok(_sse(_delta("x"))))) as client:
            result = await client.run(request_)
        assert result.tier == "free"
        assert result.tokens_remaining == 0
        assert result.upgrade_hint is None

    async def test_stream_end_without_sentinel(self, request_: StreamRequest):
        server = _Server(_ok(_sse(_delta("no sentinel"), done=False)))
        async with _client(server) as client:
            result = await client.run(request_)
        assert result.text == "no sentinel"

    async def test_chunked_stream(self, request_: StreamRequest):
        body = _sse(_delta("split "), _delta("stream"))
        parts = [body[i:i + 7] for i in range(0, len(body), 7)]
        async with _client(_Server(_ok(_chunks(*parts)))) as client:
            result = await client.run(request_)
        assert result.text == "split stream"

    async def test_request_payload_and_auth(self):
        server = _Server(_ok(_sse(_delta("ok"))))
        req = StreamRequest(repo="owner/repo", prompt="Q", ref="main", token="secret")
        async with _client(server) as client:
            await client.run(req)

        sent = server.requests[0]
        assert sent.url.path == "/v1/responses"
        assert sent.headers["Authorization"] == "Bearer secret"
        payload = json.loads(sent.content)
        assert payload["model"] == "owner/repo@main"
        assert payload["input"] == "Q"
        assert payload["stream"] is True

    async def test_no_token_sends_no_auth_header(self, request_: StreamRequest):
        server = _Server(_ok(_sse(_delta("ok"))))
        async with _client(server) as client:
            await client.run(request_)
        assert "Authorization" not in server.requests[0].headers


# ---------------------------------------------------------------------------
# Retries
# ---------------------------------------------------------------------------

class TestRetries:
    async def test_three_failures_then_success(self, request_: StreamRequest):
        server = _Server(
            # partial output, then the connection drops
            _ok(_chunks(
                _sse(_delta("stale partial "), done=False),
                error=httpx.RemoteProtocolError(
                    "peer closed connection without sending complete message body "
                    "(incomplete chunked read)"
                ),
            )),
            httpx.Response(503, text="warming up"),
            _ok(_sse()),  # 2xx but no text
            _ok(_sse(_delta("fresh "), _delta("answer"))),
        )
        tracker = ProgressTracker()
        with patch("instagit.api.client.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            async with _client(server, max_retries=3) as client:
                result = await client.run(request_, tracker=tracker)

        assert result.text == "fresh answer"
        assert tracker.attempts == 4
        assert mock_sleep.await_args_list == [call(5.0), call(10.0), call(20.0)]

    async def test_exhausted_on_empty_responses(self, request_: StreamRequest):
        server = _Server(_ok(_sse()), _ok(_sse()), _ok(_sse()))
        with patch("instagit.api.client.asyncio.sleep", new_callable=AsyncMock):
            async with _client(server, max_retries=2) as client:
                with pytest.raises(ExhaustedRetries) as exc_info:
                    await client.run(request_)

        assert len(server.requests) == 3
        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.last_error, RetryableServerError)

    async def test_max_retries_override(self, request_: StreamRequest):
        server = _Server(httpx.Response(502), httpx.Response(502))
        with patch("instagit.api.client.asyncio.sleep", new_callable=AsyncMock):
            async with _client(server) as client:
                with pytest.raises(ExhaustedRetries) as exc_info:
                    await client.run(request_, max_retries=1)

        assert len(server.requests) == 2
        last = exc_info.value.last_error
        assert isinstance(last, RetryableServerError)
        assert last.status_code == 502

    @pytest.mark.parametrize("status", [303, 502, 503, 504])
    async def test_retryable_statuses(self, request_: StreamRequest, status: int):
        server = _Server(httpx.Response(status), _ok(_sse(_delta("ok"))))
        with patch("instagit.api.client.asyncio.sleep", new_callable=AsyncMock):
            async with _client(server) as client:
                result = await client.run(request_)
        assert result.text == "ok"
        assert len(server.requests) == 2

    async def test_connect_error_retried(self, request_: StreamRequest):
        server = _Server(
            httpx.ConnectError("[Errno 111] Connection refused"),
            _ok(_sse(_delta("ok"))),
        )
        with patch("instagit.api.client.asyncio.sleep", new_callable=AsyncMock):
            async with _client(server) as client:
                result = await client.run(request_)
        assert result.text == "ok"

    async def test_dns_failure_retried(self, request_: StreamRequest):
        server = _Server(
            httpx.ConnectError("[Errno -2] Name or service not known"),
            _ok(_sse(_delta("ok"))),
        )
        with patch("instagit.api.client.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            async with _client(server) as client:
                result = await client.run(request_)
        assert result.text == "ok"
        assert len(server.requests) == 2
        mock_sleep.assert_awaited_once_with(5.0)

    async def test_dns_failure_exhausts_as_transport_error(self, request_: StreamRequest):
        server = _Server(
            httpx.ConnectError("[Errno -3] Temporary failure in name resolution"),
            httpx.ConnectError("[Errno -3] Temporary failure in name resolution"),
        )
        with patch("instagit.api.client.asyncio.sleep", new_callable=AsyncMock):
            async with _client(server, max_retries=1) as client:
                with pytest.raises(ExhaustedRetries) as exc_info:
                    await client.run(request_)
        assert isinstance(exc_info.value.last_error, TransportError)

    async def test_attempt_counts_are_per_call(self, request_: StreamRequest):
        server = _Server(
            httpx.Response(503),
            _ok(_sse(_delta("first"))),
            _ok(_sse(_delta("second"))),
        )
        first, second = ProgressTracker(), ProgressTracker()
        with patch("instagit.api.client.asyncio.sleep", new_callable=AsyncMock):
            async with _client(server) as client:
                await client.run(request_, tracker=first)
                await client.run(request_, tracker=second)
        assert first.attempts == 2
        assert second.attempts == 1

    async def test_retry_status_announced(self, request_: StreamRequest):
        tracker = ProgressTracker()
        seen: list[str] = []

        async def fake_sleep(delay: float) -> None:
            seen.append(tracker.last_status)

        server = _Server(httpx.Response(503), _ok(_sse(_delta("ok"))))
        with patch("instagit.api.client.asyncio.sleep", side_effect=fake_sleep):
            async with _client(server) as client:
                await client.run(request_, tracker=tracker)

        assert seen == ["Retrying (attempt 2/4)..."]

    async def test_absolute_attempt_timeout(self, request_: StreamRequest):
        async def stalled() -> AsyncIterator[bytes]:
            yield _sse(_delta("slow"), done=False)
            await asyncio.Event().wait()

        server = _Server(_ok(stalled()))
        async with _client(server, timeout=0.05, max_retries=0) as client:
            with pytest.raises(ExhaustedRetries) as exc_info:
                await client.run(request_)

        last = exc_info.value.last_error
        assert isinstance(last, TransportError)
        assert "timed out" in str(last)


# ---------------------------------------------------------------------------
# Terminal failures
# ---------------------------------------------------------------------------

class TestTerminal:
    @pytest.mark.parametrize("status", [400, 401, 404, 429, 500])
    async def test_terminal_status_not_retried(self, request_: StreamRequest, status: int):
        server = _Server(httpx.Response(status, text='{"error": "nope"}'))
        with patch("instagit.api.client.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            async with _client(server) as client:
                with pytest.raises(TerminalHttpError) as exc_info:
                    await client.run(request_)

        assert len(server.requests) == 1
        assert exc_info.value.status_code == status
        assert exc_info.value.body == '{"error": "nope"}'
        mock_sleep.assert_not_awaited()

    async def test_security_rejection_on_first_attempt(self, request_: StreamRequest):
        server = _Server(_ok(_sse(_delta("Request blocked by Security Validation."))))
        with patch("instagit.api.client.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            async with _client(server, max_retries=3) as client:
                with pytest.raises(SecurityRejection):
                    await client.run(request_)

        assert len(server.requests) == 1
        mock_sleep.assert_not_awaited()

    async def test_long_text_mentioning_security_validation_succeeds(
        self, request_: StreamRequest,
    ):
        text = "The security validation layer lives in auth/middleware.py. " * 3
        async with _client(_Server(_ok(_sse(_delta(text))))) as client:
            result = await client.run(request_)
        assert result.text == text

    async def test_unrecognised_transport_error_propagates(self, request_: StreamRequest):
        server = _Server(httpx.ProxyError("proxy authentication required"))
        with patch("instagit.api.client.asyncio.sleep", new_callable=AsyncMock):
            async with _client(server) as client:
                with pytest.raises(httpx.ProxyError):
                    await client.run(request_)
        assert len(server.requests) == 1

    async def test_no_content_status(self, request_: StreamRequest):
        async with _client(_Server(httpx.Response(204))) as client:
            with pytest.raises(TerminalHttpError) as exc_info:
                await client.run(request_)
        assert exc_info.value.status_code == 204


# ---------------------------------------------------------------------------
# Progress reporting
# ---------------------------------------------------------------------------

class TestProgress:
    async def test_heartbeat_reports_and_stops(self, request_: StreamRequest):
        messages: list[str] = []

        async def sink(message: str) -> None:
            messages.append(message)

        async def slow_stream() -> AsyncIterator[bytes]:
            yield _sse(_delta("one "), done=False)
            await asyncio.sleep(0.1)
            yield _sse(_delta("two"))

        tracker = ProgressTracker()
        async with _client(_Server(_ok(slow_stream())), heartbeat_interval=0.01) as client:
            result = await client.run(request_, sink, tracker=tracker)

        assert result.text == "one two"
        assert messages
        assert tracker.done
        count = len(messages)
        await asyncio.sleep(0.05)
        assert len(messages) == count

    async def test_failing_sink_does_not_abort(self, request_: StreamRequest):
        async def broken_sink(message: str) -> None:
            raise RuntimeError("client went away")

        async def slow_stream() -> AsyncIterator[bytes]:
            await asyncio.sleep(0.05)
            yield _sse(_delta("still fine"))

        async with _client(_Server(_ok(slow_stream())), heartbeat_interval=0.01) as client:
            result = await client.run(request_, broken_sink)
        assert result.text == "still fine"

    async def test_tracker_done_after_failure(self, request_: StreamRequest):
        tracker = ProgressTracker()
        async with _client(_Server(httpx.Response(404))) as client:
            with pytest.raises(TerminalHttpError):
                await client.run(request_, lambda m: None, tracker=tracker)
        assert tracker.done
