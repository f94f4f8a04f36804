"""Progress state and status-line formatting.

The tracker outlives individual attempts so elapsed time and the scanner
animation stay continuous across retries.  It is written by the stream
loop and read by the heartbeat task; both run on one event loop, so plain
attribute access is enough.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Scanner animation (comet with a directional trail)
# ---------------------------------------------------------------------------

WIDTH = 16
_SHADES = ("█", "▓", "▒")  # bright to dim
_BG = "░"


def _make_frame(pos: int, direction: int) -> str:
    chars = [_BG] * WIDTH
    chars[pos] = _SHADES[0]
    for offset in range(1, len(_SHADES)):
        # trail sits behind the head
        trail = pos - offset * direction
        if 0 <= trail < WIDTH:
            chars[trail] = _SHADES[offset]
    return "".join(chars)


def _build_frames() -> list[str]:
    # Edge positions repeat so the head lingers (ease-in-out)
    forward = [0, *range(WIDTH), WIDTH - 1]
    backward = [*range(WIDTH - 1, -1, -1), 0]
    frames = [_make_frame(i, 1) for i in forward]
    frames.extend(_make_frame(i, -1) for i in backward[1:])
    return frames


FRAMES: list[str] = _build_frames()


def format_duration(seconds: float) -> str:
    if seconds < 60:
        return f"{int(seconds)}s"
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m {secs}s"


def format_tokens(count: int) -> str:
    if count >= 1000:
        return f"{count / 1000:.1f}k"
    return str(count)


# ---------------------------------------------------------------------------
# Tracker
# ---------------------------------------------------------------------------

@dataclass
class ProgressTracker:
    """Progress of one top-level call."""

    start_time: float = field(default_factory=time.time)
    frame_index: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    displayed_tokens: int = 0
    last_status: str = "Connecting..."
    attempts: int = 0
    done: bool = False

    def update(
        self,
        status: str | None = None,
        input_tokens: int | None = None,
        output_tokens: int | None = None,
    ) -> None:
        if status:
            self.last_status = status
        if input_tokens is not None:
            self.input_tokens = input_tokens
        if output_tokens is not None:
            self.output_tokens = output_tokens

    def next_frame(self) -> str:
        frame = FRAMES[self.frame_index % len(FRAMES)]
        self.frame_index += 1
        return frame

    def elapsed(self, now: float | None = None) -> str:
        now = time.time() if now is None else now
        return format_duration(max(0.0, now - self.start_time))

    def animate_tokens(self) -> int:
        """Move the displayed count toward the real one, a step at a time."""
        actual = self.input_tokens + self.output_tokens
        if self.displayed_tokens < actual:
            step = max(50, (actual - self.displayed_tokens) // 20)
            self.displayed_tokens = min(self.displayed_tokens + step, actual)
        return self.displayed_tokens

    def format_message(self, now: float | None = None) -> str:
        """Render a single status line and advance the animation."""
        parts = [self.next_frame(), self.elapsed(now)]
        displayed = self.animate_tokens()
        if displayed > 0:
            parts.append(f"{format_tokens(displayed)} tokens")
        if self.last_status:
            parts.append(self.last_status)
        return " · ".join(parts)
