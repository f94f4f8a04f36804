"""Attempt-scoped accumulation of streamed output."""

from __future__ import annotations

from instagit.progress.tracker import ProgressTracker
from instagit.types import AnalysisResult, UsageData

from .events import (
    Completed,
    OutputDelta,
    ParsedEvent,
    ReasoningDelta,
    Sentinel,
    Unrecognized,
)

WRITING_STATUS = "Writing response..."

# Rough characters-per-token ratio, used until the server reports counts
_CHARS_PER_TOKEN = 4


class StreamAccumulator:
    """Collects output text and usage for a single attempt.

    Token counts and status are mirrored onto the long-lived *tracker* so
    the progress line keeps moving; the accumulator itself is discarded
    whenever the attempt is retried.
    """

    def __init__(self, tracker: ProgressTracker | None = None) -> None:
        self.tracker = tracker or ProgressTracker()
        self.reset()

    def reset(self) -> None:
        self._chunks: list[str] = []
        self._length = 0
        self.input_tokens = 0
        self.output_tokens = 0
        self.status = ""
        self.usage: UsageData | None = None

    @property
    def text(self) -> str:
        return "".join(self._chunks)

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    def apply(self, event: ParsedEvent) -> None:
        if isinstance(event, ReasoningDelta):
            self.on_reasoning(event)
        elif isinstance(event, OutputDelta):
            self.on_output(event)
        elif isinstance(event, Completed):
            self.on_completed(event)
        elif isinstance(event, (Sentinel, Unrecognized)):
            pass
        else:
            raise TypeError(f"Unhandled event: {event!r}")

    def on_reasoning(self, event: ReasoningDelta) -> None:
        if event.text:
            self.status = event.text
        if event.input_tokens is not None:
            self.input_tokens = event.input_tokens
        if event.output_tokens is not None:
            self.output_tokens = event.output_tokens
        self.tracker.update(
            status=event.text,
            input_tokens=event.input_tokens,
            output_tokens=event.output_tokens,
        )

    def on_output(self, event: OutputDelta) -> None:
        self._chunks.append(event.text)
        self._length += len(event.text)
        if self.output_tokens == 0:
            self.output_tokens = self._length // _CHARS_PER_TOKEN
            self.tracker.update(output_tokens=self.output_tokens)
        self.status = WRITING_STATUS
        self.tracker.update(status=WRITING_STATUS)

    def on_completed(self, event: Completed) -> None:
        self.usage = event.usage

    # ------------------------------------------------------------------
    # Result
    # ------------------------------------------------------------------

    def build_result(self) -> AnalysisResult:
        return AnalysisResult.from_usage(self.text, self.usage)
