"""Streaming client for the Instagit repository-analysis API."""

from instagit.api.client import AnalysisClient
from instagit.config import ClientConfig, load_config
from instagit.errors import (
    AuthenticationError,
    ExhaustedRetries,
    InstagitError,
    SecurityRejection,
    TerminalHttpError,
)
from instagit.service import ask_repo, describe_failure, format_result
from instagit.types import AnalysisResult, StreamRequest

__all__ = [
    "AnalysisClient",
    "AnalysisResult",
    "AuthenticationError",
    "ClientConfig",
    "ExhaustedRetries",
    "InstagitError",
    "SecurityRejection",
    "StreamRequest",
    "TerminalHttpError",
    "ask_repo",
    "describe_failure",
    "format_result",
    "load_config",
]
