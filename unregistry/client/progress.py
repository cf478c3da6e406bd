"""
Progress accounting for streamed transfers.

ProgressReader decorates any iterable of byte chunks (the upload relay,
or an httpx response body) and reports each chunk to an observer. The
observer decides how to show it; ConsoleProgress draws a bar on stderr.
"""

import sys
from typing import Iterable, Iterator, Optional, Protocol, TextIO


class ProgressObserver(Protocol):
    """Receives progress events for a single transfer."""

    def start(self, total: Optional[int], description: str) -> None:
        """Called once before the first chunk. total is None when unknown."""
        ...

    def advance(self, n: int) -> None:
        """Called for every chunk of n > 0 bytes."""
        ...

    def finish(self) -> None:
        """Called once at end of stream."""
        ...


class ProgressReader:
    """
    Iterable decorator that reports chunk sizes to an observer.

    `count` is the cumulative number of bytes seen so far and never
    decreases. finish() is called exactly once, when the wrapped
    iterable is exhausted.
    """

    def __init__(
        self,
        chunks: Iterable[bytes],
        observer: ProgressObserver,
        total: Optional[int] = None,
        description: str = "",
    ) -> None:
        self._chunks = chunks
        self._observer = observer
        self.total = total
        self.description = description
        self.count = 0
        self.finished = False

    def __iter__(self) -> Iterator[bytes]:
        self._observer.start(self.total, self.description)
        for chunk in self._chunks:
            n = len(chunk)
            if n > 0:
                self.count += n
                self._observer.advance(n)
            yield chunk

        self.finished = True
        self._observer.finish()


def format_bytes(n: float) -> str:
    """Human-readable byte count, binary units."""
    for unit in ("B", "KiB", "MiB", "GiB"):
        if abs(n) < 1024 or unit == "GiB":
            return f"{n:.0f} {unit}" if unit == "B" else f"{n:.1f} {unit}"
        n /= 1024
    return f"{n:.1f} GiB"


class ConsoleProgress:
    """
    Single-line progress bar written to a terminal stream.

        upload a.bin [=================>      ]  72% 7.2 MiB/10.0 MiB

    Without a total only the byte count is shown. The bar is redrawn at
    most once per percent to keep terminal output cheap.
    """

    GREEN = "\033[32m"
    RESET = "\033[0m"

    def __init__(self, stream: Optional[TextIO] = None, width: int = 40) -> None:
        self._stream = stream or sys.stderr
        self._width = width
        self._total: Optional[int] = None
        self._description = ""
        self._count = 0
        self._last_percent = -1
        self._color = bool(getattr(self._stream, "isatty", lambda: False)())

    def start(self, total: Optional[int], description: str) -> None:
        self._total = total
        self._description = description
        self._count = 0
        self._last_percent = -1
        self._render()

    def advance(self, n: int) -> None:
        self._count += n
        if self._total:
            percent = min(100, self._count * 100 // self._total)
            if percent == self._last_percent:
                return
            self._last_percent = percent
        self._render()

    def finish(self) -> None:
        # Upload totals are estimates; snap the bar to done at end of stream
        if self._total:
            self._total = max(self._count, 1)
        self._render()
        self._stream.write("\n")
        self._stream.flush()

    def _render(self) -> None:
        if self._total:
            fraction = min(1.0, self._count / self._total)
            filled = int(fraction * self._width)
            head = ">" if filled < self._width else ""
            bar = "=" * filled + head + " " * (self._width - filled - len(head))
            if self._color:
                bar = f"{self.GREEN}{bar}{self.RESET}"
            line = (
                f"{self._description} [{bar}] {int(fraction * 100):3d}% "
                f"{format_bytes(self._count)}/{format_bytes(self._total)}"
            )
        else:
            line = f"{self._description} {format_bytes(self._count)}"

        self._stream.write("\r" + line)
        self._stream.flush()
