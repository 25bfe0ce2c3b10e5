"""yt-dlp invocation contract and download orchestration."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final
from urllib.parse import urlsplit

from ytmux.download.retry import RetryPolicy, run_with_retry
from ytmux.download.streamer import ProgressStreamer, StreamResult
from ytmux.errors import InvalidUrl, RetriesExhausted

logger = logging.getLogger(__name__)

FORMAT_SELECTOR: Final = "bestvideo[height=720]+bestaudio/best[height=720]"
MERGE_OUTPUT_FORMAT: Final = "mp4"
OUTPUT_TEMPLATE: Final = "%(title)s.%(ext)s"

BROWSER_USER_AGENT: Final = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:91.0) Gecko/20100101 Firefox/91.0"
)
BROWSER_HEADERS: Final = (
    (
        "Accept",
        "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    ),
    ("Accept-Language", "en-US,en;q=0.5"),
    ("Accept-Encoding", "gzip, deflate, br"),
    ("Connection", "keep-alive"),
    ("Upgrade-Insecure-Requests", "1"),
)


@dataclass
class DownloadOptions:
    """Fixed arguments passed to yt-dlp on every download."""

    format_selector: str = FORMAT_SELECTOR
    merge_output_format: str = MERGE_OUTPUT_FORMAT
    output_template: str = OUTPUT_TEMPLATE
    user_agent: str = BROWSER_USER_AGENT
    headers: list[tuple[str, str]] = field(default_factory=lambda: list(BROWSER_HEADERS))
    resume: bool = True


@dataclass
class DownloadAttempt:
    """One yt-dlp invocation for one URL."""

    url: str
    output_dir: Path
    yt_dlp_path: Path
    ffmpeg_path: Path
    attempt: int = 1


@dataclass
class BatchReport:
    """What happened to each URL of a batch."""

    succeeded: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


def validate_url(url: str) -> str:
    """Check that ``url`` has a scheme and a host.

    Raises:
        InvalidUrl: The URL cannot be used.
    """
    candidate = url.strip()
    try:
        parts = urlsplit(candidate)
    except ValueError as err:
        raise InvalidUrl(url) from err
    if not parts.scheme or not parts.netloc or any(c.isspace() for c in candidate):
        raise InvalidUrl(url)
    return candidate


def build_download_command(attempt: DownloadAttempt, options: DownloadOptions | None = None) -> list[str]:
    """Build the yt-dlp argument vector for one attempt."""
    options = options or DownloadOptions()
    output_template = f"{attempt.output_dir.as_posix()}/{options.output_template}"

    cmd = [str(attempt.yt_dlp_path), "-f", options.format_selector]
    if options.resume:
        cmd.append("-c")
    cmd.extend(
        [
            "--merge-output-format",
            options.merge_output_format,
            "-o",
            output_template,
            "--ffmpeg-location",
            str(attempt.ffmpeg_path),
            "--user-agent",
            options.user_agent,
            "--newline",
        ]
    )
    for key, value in options.headers:
        cmd.extend(["--add-header", f"{key}: {value}"])
    cmd.append(attempt.url)
    return cmd


class Downloader:
    """Downloads URLs with yt-dlp, merging streams with ffmpeg.

    Downloads are strictly sequential. Every retry reuses the same output
    template so yt-dlp can resume a partial file.
    """

    def __init__(
        self,
        yt_dlp_path: Path,
        ffmpeg_path: Path,
        output_dir: Path,
        options: DownloadOptions | None = None,
        streamer: ProgressStreamer | None = None,
    ):
        self.yt_dlp_path = yt_dlp_path
        self.ffmpeg_path = ffmpeg_path
        self.output_dir = output_dir
        self.options = options or DownloadOptions()
        self.streamer = streamer or ProgressStreamer()

    def download(self, url: str, attempt: int = 1) -> StreamResult:
        """Run a single download attempt."""
        request = DownloadAttempt(
            url=url,
            output_dir=self.output_dir,
            yt_dlp_path=self.yt_dlp_path,
            ffmpeg_path=self.ffmpeg_path,
            attempt=attempt,
        )
        if request.attempt > 1:
            logger.info("Downloading video from: %s (attempt %d)", request.url, request.attempt)
        else:
            logger.info("Downloading video from: %s", request.url)
        result = self.streamer.run(build_download_command(request, self.options))
        logger.info("Download complete! Saved to %s", self.output_dir)
        return result

    def download_with_retry(self, url: str, policy: RetryPolicy | None = None) -> StreamResult:
        """Download ``url``, retrying failed attempts according to ``policy``."""
        result = run_with_retry(lambda attempt: self.download(url, attempt), policy)
        logger.info("Download completed successfully.")
        return result

    def download_batch(self, urls: list[str], policy: RetryPolicy | None = None) -> BatchReport:
        """Download each URL in turn, skipping invalid ones."""
        report = BatchReport()
        for url in urls:
            try:
                valid = validate_url(url)
            except InvalidUrl as e:
                logger.error("%s", e)
                report.skipped.append(url)
                continue

            try:
                self.download_with_retry(valid, policy)
            except RetriesExhausted as e:
                logger.error("Giving up on %s: %s", valid, e)
                report.failed.append(valid)
                continue
            report.succeeded.append(valid)
        return report
