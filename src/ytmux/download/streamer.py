"""Subprocess runner that streams output while rendering download progress."""

import logging
import subprocess
import sys
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import IO, BinaryIO

from rich.console import Console

from ytmux.download.progress import (
    DEFAULT_REFRESH_INTERVAL,
    ProgressRenderer,
    ProgressState,
    parse_progress_line,
)
from ytmux.errors import SubprocessFailed, SubprocessSpawnError

logger = logging.getLogger(__name__)


@dataclass
class StreamResult:
    """Outcome of one streamed subprocess run."""

    exit_code: int
    progress: int

    @property
    def success(self) -> bool:
        return self.exit_code == 0


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace").rstrip("\r\n")


class ProgressStreamer:
    """Runs a command, forwarding its output and tracking ``[download]`` progress.

    Two reader threads drain the child's pipes:
    - stdout lines are forwarded unchanged to our stdout
    - stderr lines matching the progress pattern update the progress bar,
      everything else is forwarded unchanged to our stderr

    ``run`` returns only after the child has exited and both readers have
    reached EOF and been joined, so no output arrives after it returns.
    """

    def __init__(
        self,
        stdout: IO[str] | None = None,
        stderr: IO[str] | None = None,
        console: Console | None = None,
        refresh_interval: float = DEFAULT_REFRESH_INTERVAL,
    ):
        self._stdout = stdout
        self._stderr = stderr
        self._console = console
        self.refresh_interval = refresh_interval
        self._write_lock = threading.Lock()

    def _forward(self, line: str, target: Callable[[], IO[str]]) -> None:
        # Resolve the stream per write so rich's stdout redirection applies.
        with self._write_lock:
            stream = target()
            stream.write(line + "\n")
            stream.flush()

    def _read_stdout(self, pipe: BinaryIO) -> None:
        with pipe:
            for raw in iter(pipe.readline, b""):
                self._forward(_decode(raw), lambda: self._stdout or sys.stdout)

    def _read_stderr(self, pipe: BinaryIO, state: ProgressState) -> None:
        with pipe:
            for raw in iter(pipe.readline, b""):
                line = _decode(raw)
                percent = parse_progress_line(line)
                if percent is None:
                    self._forward(line, lambda: self._stderr or sys.stderr)
                else:
                    state.set(percent)

    def run(self, command: list[str]) -> StreamResult:
        """Run ``command`` to completion.

        Raises:
            SubprocessSpawnError: The executable is missing or not runnable.
            SubprocessFailed: The child exited with a non-zero status.
        """
        logger.info("Running command: %s", subprocess.list2cmdline(command))
        try:
            process = subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as err:
            raise SubprocessSpawnError(
                f"Failed to spawn {command[0]}: {err}", command=command
            ) from err

        state = ProgressState()
        renderer = ProgressRenderer(state, console=self._console, refresh_interval=self.refresh_interval)

        readers = [
            threading.Thread(
                target=self._read_stdout,
                args=(process.stdout,),
                name="ytmux-stdout-reader",
            ),
            threading.Thread(
                target=self._read_stderr,
                args=(process.stderr, state),
                name="ytmux-stderr-reader",
            ),
        ]

        with renderer:
            for reader in readers:
                reader.start()
            try:
                exit_code = process.wait()
            finally:
                for reader in readers:
                    reader.join()

        result = StreamResult(exit_code=exit_code, progress=state.get())
        if not result.success:
            logger.error("%s failed with status: %d", command[0], exit_code)
            raise SubprocessFailed(
                f"{command[0]} command failed with status {exit_code}",
                exit_code=exit_code,
                command=command,
            )
        return result
