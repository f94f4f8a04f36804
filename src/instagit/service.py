"""High-level entry points: token handling around the streaming client.

``ask_repo()`` resolves a token (registering one if needed), runs the
analysis and re-authenticates once when the server answers 401.
``describe_failure()`` and ``format_result()`` turn outcomes into text
for the surrounding tool layer.
"""

from __future__ import annotations

import logging

import httpx

from instagit.api.client import AnalysisClient
from instagit.auth.token import TokenStore
from instagit.config import ClientConfig
from instagit.errors import (
    AuthenticationError,
    ExhaustedRetries,
    TerminalHttpError,
    TransportError,
)
from instagit.progress.heartbeat import ProgressSink, deliver
from instagit.progress.tracker import ProgressTracker
from instagit.types import AnalysisResult, StreamRequest

_logger = logging.getLogger(__name__)

SIGNUP_URL = "https://instagit.ai/signup"
PRICING_URL = "https://instagit.ai/pricing"


async def ask_repo(
    repo: str,
    prompt: str,
    ref: str | None = None,
    *,
    config: ClientConfig | None = None,
    progress: ProgressSink | None = None,
    token_store: TokenStore | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AnalysisResult:
    """Analyze *repo* with *prompt*.

    Raises
    ------
    AuthenticationError
        No token is configured and anonymous registration failed.
    TerminalHttpError, SecurityRejection, ExhaustedRetries
        As raised by ``AnalysisClient.run()``.
    """
    config = config or ClientConfig()
    store = token_store or TokenStore(config.token_path)
    tracker = ProgressTracker()

    token = store.get_token()
    if not token:
        if progress is not None:
            tracker.update(status="Registering anonymous token...")
            await deliver(progress, tracker.format_message())
        token = await store.register_anonymous(config.api_url, transport=transport)
        if not token:
            raise AuthenticationError("Unable to register anonymous token")

    async with AnalysisClient(config, transport=transport) as client:
        request = StreamRequest(repo=repo, prompt=prompt, ref=ref, token=token)
        try:
            return await client.run(request, progress, tracker=tracker)
        except TerminalHttpError as e:
            if not e.is_auth_error:
                raise
            _logger.info("Token rejected (401), registering a new one")
            store.clear()
            new_token = await store.register_anonymous(config.api_url, transport=transport)
            if not new_token:
                raise AuthenticationError("Authentication failed") from e
            request = StreamRequest(repo=repo, prompt=prompt, ref=ref, token=new_token)
            return await client.run(request, progress, tracker=tracker)


def describe_failure(error: Exception, api_url: str) -> str:
    """User-facing explanation for a failed ``ask_repo()`` call."""
    cause = error.last_error if isinstance(error, ExhaustedRetries) else error

    if isinstance(cause, TransportError) and (
        "refused" in str(cause).lower() or "connection attempts failed" in str(cause).lower()
    ):
        return (
            f"Could not connect to Instagit API at {api_url}. "
            "Make sure the API server is running."
        )

    if isinstance(error, TerminalHttpError) and error.is_rate_limited:
        reset = error.rate_limit_until
        reset_info = f"\nCredits will reset at: {reset}\n" if reset else ""
        return (
            f"Rate limit exceeded. Your free credits have been exhausted.\n{reset_info}\n"
            "To continue using Instagit immediately:\n"
            "- Upgrade to Pro for more credits and faster analysis\n"
            f"- Visit: {PRICING_URL}"
        )

    if isinstance(error, AuthenticationError) or (
        isinstance(error, TerminalHttpError) and error.is_auth_error
    ):
        return (
            "Authentication failed. Unable to register a new token.\n\n"
            "Please set INSTAGIT_API_KEY in your configuration, "
            f"or visit {SIGNUP_URL} to create an account."
        )

    if isinstance(error, TerminalHttpError):
        return f"API error: {error.status_code} {error.body}".rstrip()
    return f"API error: {error}"


def format_result(result: AnalysisResult) -> str:
    """Result text followed by a usage footer and the upgrade hint."""
    text = result.text

    footer: list[str] = []
    if result.total_tokens > 0:
        footer.append(
            f"Tokens: {result.input_tokens:,} input, "
            f"{result.output_tokens:,} output, "
            f"{result.total_tokens:,} total"
        )
    if result.tier:
        footer.append(f"Tier: {result.tier}")
    if result.tokens_remaining > 0:
        footer.append(f"Credits remaining: {result.tokens_remaining:,}")
    if footer:
        text += "\n\n---\n" + " | ".join(footer)
    if result.upgrade_hint:
        text += f"\n\n{result.upgrade_hint}"
    return text
