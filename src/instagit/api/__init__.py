"""SSE streaming, accumulation and retry for the responses endpoint."""

from instagit.api.accumulator import StreamAccumulator
from instagit.api.client import (
    AnalysisClient,
    AttemptOutcome,
    RetryableFailure,
    Success,
    TerminalFailure,
)
from instagit.api.events import (
    Completed,
    OutputDelta,
    ParsedEvent,
    ReasoningDelta,
    Sentinel,
    Unrecognized,
    decode_event,
)
from instagit.api.sse import SSEParser

__all__ = [
    "AnalysisClient",
    "AttemptOutcome",
    "Completed",
    "OutputDelta",
    "ParsedEvent",
    "ReasoningDelta",
    "RetryableFailure",
    "SSEParser",
    "Sentinel",
    "StreamAccumulator",
    "Success",
    "TerminalFailure",
    "Unrecognized",
    "decode_event",
]
