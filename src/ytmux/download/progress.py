"""Download progress tracking and rendering.

The stderr reader of a running download is the only writer of the
ProgressState; the ProgressRenderer thread is its only reader and redraws a
rich progress bar on a fixed interval.
"""

import logging
import math
import re
import threading
from typing import Final

from rich.console import Console
from rich.progress import BarColumn, Progress, TaskID, TextColumn

logger = logging.getLogger(__name__)

PROGRESS_PATTERN: Final = re.compile(r"\[download\]\s+(\d+(?:\.\d+)?)%")

DEFAULT_REFRESH_INTERVAL: Final = 0.1


def parse_progress_line(line: str) -> int | None:
    """Extract a whole percentage from a ``[download]  12.3%`` line.

    Halves round up and the result is clamped to 0-100. Returns None for
    lines that are not progress lines.
    """
    match = PROGRESS_PATTERN.search(line)
    if match is None:
        return None
    try:
        percent = float(match.group(1))
    except ValueError:
        return None
    return max(0, min(100, math.floor(percent + 0.5)))


class ProgressState:
    """A percentage shared between the stderr reader and the renderer."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value = 0

    def set(self, value: int) -> None:
        with self._lock:
            self._value = max(0, min(100, value))

    def get(self) -> int:
        with self._lock:
            return self._value


class ProgressRenderer:
    """Redraws a progress bar from a ProgressState on its own thread."""

    def __init__(
        self,
        state: ProgressState,
        console: Console | None = None,
        refresh_interval: float = DEFAULT_REFRESH_INTERVAL,
    ):
        self.state = state
        self.refresh_interval = refresh_interval
        self._progress = Progress(
            BarColumn(bar_width=40, style="blue", complete_style="cyan"),
            TextColumn("{task.completed:>3.0f}%"),
            console=console,
            auto_refresh=False,
            transient=False,
        )
        self._task: TaskID | None = None
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self.rendered = 0

    def start(self) -> None:
        """Show the bar and start the redraw thread."""
        self._progress.start()
        self._task = self._progress.add_task("download", total=100)
        self._thread = threading.Thread(target=self._run, name="ytmux-progress", daemon=True)
        self._thread.start()

    def _draw(self) -> None:
        value = self.state.get()
        if self._task is not None:
            self._progress.update(self._task, completed=value)
            self._progress.refresh()
        self.rendered = value

    def _run(self) -> None:
        while not self._stop.wait(self.refresh_interval):
            self._draw()

    def stop(self) -> None:
        """Stop the redraw thread after one last redraw."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        self._draw()
        self._progress.stop()
        logger.debug("Progress bar stopped at %d%%", self.rendered)

    def __enter__(self) -> "ProgressRenderer":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()
