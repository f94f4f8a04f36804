"""Progress tracking and reporting."""

from instagit.progress.console import ConsoleProgress
from instagit.progress.heartbeat import Heartbeat, ProgressSink, deliver
from instagit.progress.tracker import ProgressTracker

__all__ = [
    "ConsoleProgress",
    "Heartbeat",
    "ProgressSink",
    "ProgressTracker",
    "deliver",
]
