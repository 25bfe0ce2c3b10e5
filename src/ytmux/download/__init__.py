"""Running yt-dlp downloads with progress display and retries."""

from ytmux.download.command import (
    BatchReport,
    DownloadAttempt,
    Downloader,
    DownloadOptions,
    build_download_command,
    validate_url,
)
from ytmux.download.progress import ProgressRenderer, ProgressState, parse_progress_line
from ytmux.download.retry import Backoff, RetryPolicy, run_with_retry
from ytmux.download.streamer import ProgressStreamer, StreamResult

__all__ = [
    "BatchReport",
    "DownloadAttempt",
    "Downloader",
    "DownloadOptions",
    "build_download_command",
    "validate_url",
    "ProgressRenderer",
    "ProgressState",
    "parse_progress_line",
    "Backoff",
    "RetryPolicy",
    "run_with_retry",
    "ProgressStreamer",
    "StreamResult",
]
