"""Terminal progress sink: one status line redrawn in place."""

from __future__ import annotations

from rich.console import Console
from rich.live import Live
from rich.text import Text


class ConsoleProgress:
    """Progress sink backed by a rich ``Live`` display.

    Usable as ``progress=`` for ``AnalysisClient.run()``; call ``close()``
    (or use it as a context manager) to clear the line afterwards.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console(stderr=True)
        self.last_message = ""
        self._live: Live | None = None

    async def __call__(self, message: str) -> None:
        self.last_message = message
        if self._live is None:
            self._live = Live(
                Text(message, style="cyan"),
                console=self.console,
                auto_refresh=False,
                transient=True,
            )
            self._live.start()
        self._live.update(Text(message, style="cyan"), refresh=True)

    def close(self) -> None:
        if self._live is not None:
            self._live.stop()
            self._live = None

    def __enter__(self) -> ConsoleProgress:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
