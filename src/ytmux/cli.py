"""ytmux CLI entry point."""

import logging
import os
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ytmux import __version__

if TYPE_CHECKING:
    from ytmux.download import Downloader, RetryPolicy
    from ytmux.updater import SelfUpdateResult

console = Console()

logger = logging.getLogger(__name__)

if os.name == "nt":
    DEFAULT_YT_DLP_PATH = "yt-dlp.exe"
    DEFAULT_FFMPEG_PATH = "ffmpeg/ffmpeg.exe"
else:
    DEFAULT_YT_DLP_PATH = "yt-dlp"
    DEFAULT_FFMPEG_PATH = "ffmpeg/ffmpeg"

DEFAULT_OUTPUT_DIR = "downloaded_videos"


def setup_logging(verbose: bool = False) -> None:
    """Configure logging with rich handler."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, console=console)],
    )


def get_base_dir() -> Path:
    """Directory that relative paths are resolved against.

    A frozen executable resolves next to itself, otherwise the current
    working directory is used.
    """
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    return Path.cwd()


def resolve_path(path: Path, base_dir: Path) -> Path:
    return path if path.is_absolute() else base_dir / path


def print_update_results(results: "list[SelfUpdateResult]") -> None:
    table = Table(title="Binary Updates")
    table.add_column("Binary", style="cyan")
    table.add_column("Current", style="dim")
    table.add_column("Latest")
    table.add_column("Status")

    for result in results:
        style = {"success": "green", "up_to_date": "green"}.get(result.status.value, "yellow")
        table.add_row(
            result.name,
            result.current_version or "-",
            result.latest_version or "-",
            f"[{style}]{result.message}[/{style}]",
        )

    console.print(table)


def run_updates(yt_dlp_path: Path, ffmpeg_path: Path, archive_failure: str) -> None:
    """Update both managed binaries, reporting failures without aborting."""
    from ytmux.errors import YtmuxError
    from ytmux.updater import (
        ArchiveFailurePolicy,
        ReleaseChecker,
        SelfUpdater,
        ffmpeg_binary,
        update_binaries,
        yt_dlp_binary,
    )

    with ReleaseChecker() as checker:
        updater = SelfUpdater(checker, archive_failure=ArchiveFailurePolicy(archive_failure))
        try:
            results = update_binaries([yt_dlp_binary(yt_dlp_path), ffmpeg_binary(ffmpeg_path)], updater)
        except YtmuxError as e:
            logger.error("Binary update failed: %s", e)
            raise SystemExit(1) from e

    print_update_results(results)


def interactive_loop(downloader: "Downloader", policy: "RetryPolicy") -> None:
    """Prompt for URLs until the user types 'exit' or declines another download."""
    from ytmux.download import validate_url
    from ytmux.errors import InvalidUrl, RetriesExhausted

    while True:
        url = click.prompt(
            "Enter the YouTube video URL (or type 'exit' to quit)",
            prompt_suffix=": ",
        ).strip()
        if url.lower() == "exit":
            break

        try:
            url = validate_url(url)
        except InvalidUrl:
            logger.error("Error: Invalid URL. Please enter a valid YouTube link.")
            continue

        try:
            downloader.download_with_retry(url, policy)
        except RetriesExhausted as e:
            logger.error("Giving up on %s: %s", url, e)

        again = click.prompt(
            "Do you want to download another video? (y/n)",
            default="n",
            show_default=False,
            prompt_suffix=": ",
        )
        if again.strip().lower() != "y":
            break


@click.command()
@click.option(
    "--yt-dlp-path",
    type=click.Path(path_type=Path),
    default=DEFAULT_YT_DLP_PATH,
    show_default=True,
    help="Path to the yt-dlp binary",
)
@click.option(
    "--ffmpeg-path",
    type=click.Path(path_type=Path),
    default=DEFAULT_FFMPEG_PATH,
    show_default=True,
    help="Path to the ffmpeg binary",
)
@click.option(
    "--output",
    type=click.Path(file_okay=False, path_type=Path),
    default=DEFAULT_OUTPUT_DIR,
    show_default=True,
    help="Output directory for downloaded videos (created if missing)",
)
@click.option("--update", is_flag=True, help="Check for yt-dlp and ffmpeg updates on startup")
@click.option("--non-interactive", is_flag=True, help="Download the given URLs without prompting")
@click.option("--retry-delay", default=10.0, show_default=True, help="Retry delay in seconds")
@click.option(
    "--max-attempts",
    type=click.IntRange(min=1),
    default=None,
    help="Give up on a URL after this many attempts (default: retry forever)",
)
@click.option(
    "--backoff",
    type=click.Choice(["fixed", "exponential"]),
    default="fixed",
    show_default=True,
    help="How the retry delay grows between attempts",
)
@click.option(
    "--archive-failure",
    type=click.Choice(["keep", "raise"]),
    default="keep",
    show_default=True,
    help="Keep the old ffmpeg or fail when its archive update breaks",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose logging")
@click.version_option(__version__, prog_name="ytmux")
@click.argument("urls", nargs=-1)
def cli(
    yt_dlp_path: Path,
    ffmpeg_path: Path,
    output: Path,
    update: bool,
    non_interactive: bool,
    retry_delay: float,
    max_attempts: int | None,
    backoff: str,
    archive_failure: str,
    verbose: bool,
    urls: tuple[str, ...],
) -> None:
    """ytmux - download videos with yt-dlp and merge them with ffmpeg."""
    from ytmux.download import Backoff, Downloader, ProgressStreamer, RetryPolicy

    setup_logging(verbose)
    base_dir = get_base_dir()

    yt_dlp_path = resolve_path(yt_dlp_path, base_dir)
    ffmpeg_path = resolve_path(ffmpeg_path, base_dir)
    output = resolve_path(output, base_dir)

    if not output.exists():
        try:
            output.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Failed to create output directory at %s: %s", output, e)
            raise SystemExit(1) from e
        logger.info("Created output directory at %s", output)

    if not yt_dlp_path.exists():
        logger.error("Error: yt-dlp not found at %s", yt_dlp_path)
        raise SystemExit(1)
    if not ffmpeg_path.exists():
        logger.error("Error: ffmpeg not found at %s", ffmpeg_path)
        raise SystemExit(1)

    if update:
        run_updates(yt_dlp_path, ffmpeg_path, archive_failure)

    policy = RetryPolicy(
        delay_seconds=retry_delay,
        max_attempts=max_attempts,
        backoff=Backoff(backoff),
    )
    downloader = Downloader(
        yt_dlp_path,
        ffmpeg_path,
        output,
        streamer=ProgressStreamer(console=console),
    )

    if non_interactive or urls:
        if not urls:
            logger.error("Non-interactive mode requires at least one URL.")
            raise SystemExit(1)
        report = downloader.download_batch(list(urls), policy)
        logger.info(
            "Finished: %d downloaded, %d skipped, %d failed",
            len(report.succeeded),
            len(report.skipped),
            len(report.failed),
        )
    else:
        interactive_loop(downloader, policy)


def main() -> None:
    """Main entry point."""
    cli(auto_envvar_prefix="YTMUX")


if __name__ == "__main__":
    main()
