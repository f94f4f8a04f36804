"""Typed events decoded from SSE ``data:`` payloads.

Each payload is a JSON object with a ``type`` discriminator::

    {"type": "response.output_text.delta", "delta": "Hello"}

``decode_event`` maps the three recognized types onto their variants and
everything else onto ``Unrecognized``.  The literal ``[DONE]`` payload is
handled by the parser, not here.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Union

from instagit.errors import MalformedEventError
from instagit.types import LenientModel, UsageData

REASONING_DELTA = "response.reasoning.delta"
OUTPUT_TEXT_DELTA = "response.output_text.delta"
COMPLETED = "response.completed"

SENTINEL_PAYLOAD = "[DONE]"


# ---------------------------------------------------------------------------
# Wire schema
# ---------------------------------------------------------------------------

class _TokenCounts(LenientModel):
    input: int | None = None
    output: int | None = None


class _ResponseBody(LenientModel):
    usage: UsageData | None = None


class EventPayload(LenientModel):
    """Fields read by the recognized event types.  ``type`` is checked separately."""

    delta: str | None = None
    tokens: _TokenCounts | None = None
    response: _ResponseBody | None = None


# ---------------------------------------------------------------------------
# Event variants
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ReasoningDelta:
    text: str
    input_tokens: int | None = None
    output_tokens: int | None = None


@dataclass(frozen=True)
class OutputDelta:
    text: str


@dataclass(frozen=True)
class Completed:
    usage: UsageData


@dataclass(frozen=True)
class Sentinel:
    """``data: [DONE]``, normal end of stream."""


@dataclass(frozen=True)
class Unrecognized:
    type: str


ParsedEvent = Union[ReasoningDelta, OutputDelta, Completed, Sentinel, Unrecognized]


def decode_event(data: str) -> ParsedEvent:
    """Decode one ``data:`` payload.

    Raises
    ------
    MalformedEventError
        The payload is not valid JSON, not an object, or its ``type`` is
        not a string.  Mistyped fields fall back to their defaults instead.
    """
    if data == SENTINEL_PAYLOAD:
        return Sentinel()
    try:
        raw = json.loads(data)
    except json.JSONDecodeError as e:
        raise MalformedEventError(f"invalid JSON: {e}") from e
    if not isinstance(raw, dict):
        raise MalformedEventError(f"expected a JSON object, got {type(raw).__name__}")
    kind = raw.get("type", "")
    if not isinstance(kind, str):
        raise MalformedEventError(f"event type must be a string, got {type(kind).__name__}")
    if kind not in (REASONING_DELTA, OUTPUT_TEXT_DELTA, COMPLETED):
        return Unrecognized(type=kind)

    payload = EventPayload.model_validate(raw)
    if kind == REASONING_DELTA:
        tokens = payload.tokens or _TokenCounts()
        return ReasoningDelta(
            text=payload.delta or "",
            input_tokens=tokens.input,
            output_tokens=tokens.output,
        )
    if kind == OUTPUT_TEXT_DELTA:
        return OutputDelta(text=payload.delta or "")
    usage = payload.response.usage if payload.response else None
    return Completed(usage=usage or UsageData())
