"""Self-update of the managed yt-dlp and ffmpeg binaries.

The update flow for each binary is:
1. Ask the binary for its current version
2. Ask the release API for the latest tag
3. Compare the two (date-aware, falling back to string inequality)
4. Apply the update, either through the binary's own update command or by
   downloading a release archive and replacing the binary with a file from it

Update failures never abort the program: every step reports problems through
the log and a SelfUpdateResult. The replacement bytes are staged in memory
before the existing binary is overwritten.
"""

import io
import logging
import os
import platform
import stat
import subprocess
import tarfile
import zipfile
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Final

from ytmux.errors import ApiError, ArchiveError, TransportError, YtmuxError
from ytmux.updater.releases import (
    AssetPredicate,
    ReleaseAsset,
    ReleaseChecker,
    ReleaseInfo,
    find_asset,
    get_platform_tag,
    platform_archive_predicate,
)
from ytmux.updater.version import needs_update

logger = logging.getLogger(__name__)

YT_DLP_RELEASES_URL: Final = "https://api.github.com/repos/yt-dlp/yt-dlp/releases/latest"
FFMPEG_RELEASES_URL: Final = "https://api.github.com/repos/BtbN/FFmpeg-Builds/releases/latest"

VERSION_TIMEOUT: Final = 30
UPDATE_TIMEOUT: Final = 600


class UpdateStrategy(str, Enum):
    """How a managed binary gets updated."""

    COMMAND = "command"
    ARCHIVE = "archive"


class ArchiveFailurePolicy(str, Enum):
    """What to do when the archive update path fails."""

    KEEP = "keep"
    RAISE = "raise"


class UpdateStatus(Enum):
    """Status of an update operation."""

    UP_TO_DATE = "up_to_date"
    SUCCESS = "success"
    UPDATE_FAILED = "update_failed"
    NO_ASSET = "no_asset"
    ARCHIVE_FAILED = "archive_failed"
    ERROR = "error"


@dataclass
class SelfUpdateResult:
    """Result of an update check for one binary."""

    name: str
    status: UpdateStatus
    current_version: str | None = None
    latest_version: str | None = None
    message: str = ""
    error: str | None = None

    @property
    def updated(self) -> bool:
        return self.status == UpdateStatus.SUCCESS


def stripped_output(output: str) -> str:
    """Version extractor returning the trimmed output."""
    return output.strip()


def third_token_of_first_line(output: str) -> str:
    """Version extractor for ``ffmpeg -version`` (``ffmpeg version <v> Copyright ...``)."""
    lines = output.splitlines()
    if not lines:
        return ""
    tokens = lines[0].split()
    return tokens[2] if len(tokens) > 2 else ""


@dataclass
class ManagedBinary:
    """Description of one binary ytmux keeps up to date."""

    name: str
    path: Path
    releases_url: str
    strategy: UpdateStrategy
    version_args: list[str] = field(default_factory=lambda: ["--version"])
    version_extractor: Callable[[str], str] = stripped_output
    update_args: list[str] = field(default_factory=lambda: ["-U"])
    asset_predicate: AssetPredicate | None = None
    archive_member: str | None = None


def yt_dlp_binary(path: Path) -> ManagedBinary:
    """yt-dlp updates itself with ``-U``."""
    return ManagedBinary(
        name="yt-dlp",
        path=path,
        releases_url=YT_DLP_RELEASES_URL,
        strategy=UpdateStrategy.COMMAND,
        version_args=["--version"],
        version_extractor=stripped_output,
        update_args=["-U"],
    )


def ffmpeg_binary(path: Path, platform_tag: str | None = None) -> ManagedBinary:
    """ffmpeg is replaced with the executable from a FFmpeg-Builds archive."""
    tag = platform_tag or get_platform_tag()
    return ManagedBinary(
        name="ffmpeg",
        path=path,
        releases_url=FFMPEG_RELEASES_URL,
        strategy=UpdateStrategy.ARCHIVE,
        version_args=["-version"],
        version_extractor=third_token_of_first_line,
        asset_predicate=platform_archive_predicate(tag) if tag else None,
        archive_member=path.name,
    )


def extract_member(data: bytes, member_suffix: str) -> bytes | None:
    """Return the bytes of the first archive file whose name ends with ``member_suffix``.

    Zip and tar archives are detected from their content. Matching is
    case-insensitive and skips directories. Returns None when no file matches.

    Raises:
        ArchiveError: The data is not a readable archive.
    """
    suffix = member_suffix.lower()

    if zipfile.is_zipfile(io.BytesIO(data)):
        try:
            with zipfile.ZipFile(io.BytesIO(data)) as archive:
                for info in archive.infolist():
                    if info.is_dir() or not info.filename.lower().endswith(suffix):
                        continue
                    return archive.read(info)
        except (zipfile.BadZipFile, OSError) as err:
            raise ArchiveError(f"Failed to read zip archive: {err}") from err
        return None

    try:
        with tarfile.open(fileobj=io.BytesIO(data), mode="r:*") as archive:
            for member in archive:
                if not member.isfile() or not member.name.lower().endswith(suffix):
                    continue
                extracted = archive.extractfile(member)
                if extracted is None:
                    continue
                return extracted.read()
    except (tarfile.TarError, OSError, EOFError) as err:
        raise ArchiveError(f"Failed to read archive: {err}") from err
    return None


class SelfUpdater:
    """Runs the update state machine for managed binaries."""

    def __init__(
        self,
        checker: ReleaseChecker,
        archive_failure: ArchiveFailurePolicy = ArchiveFailurePolicy.KEEP,
    ):
        self.checker = checker
        self.archive_failure = archive_failure

    def get_current_version(self, binary: ManagedBinary) -> str | None:
        """Run the binary's version flag and extract its version string.

        Returns None (after logging a warning) when the binary cannot report one.
        """
        cmd = [str(binary.path), *binary.version_args]
        try:
            completed = subprocess.run(
                cmd,
                capture_output=True,
                timeout=VERSION_TIMEOUT,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning("Failed to execute %s: %s", " ".join(cmd), e)
            return None

        if completed.returncode != 0:
            logger.warning(
                "Failed to retrieve current %s version (exit status %d).",
                binary.name,
                completed.returncode,
            )
            return None

        version = binary.version_extractor(completed.stdout.decode("utf-8", errors="replace"))
        if not version:
            logger.warning("%s did not report a version.", binary.name)
            return None
        return version

    def check(self, binary: ManagedBinary) -> SelfUpdateResult:
        """Check one binary and update it when a newer release exists."""
        logger.info("Checking for %s updates...", binary.name)

        current_version = self.get_current_version(binary)
        if current_version is None:
            return SelfUpdateResult(
                name=binary.name,
                status=UpdateStatus.ERROR,
                message=f"Could not determine the current {binary.name} version",
                error=f"{binary.path} did not report a version",
            )
        logger.info("Current %s version: %s", binary.name, current_version)

        try:
            release = self.checker.latest_release(binary.releases_url)
        except YtmuxError as e:
            logger.warning("Failed to fetch the latest %s version info: %s", binary.name, e)
            return SelfUpdateResult(
                name=binary.name,
                status=UpdateStatus.ERROR,
                current_version=current_version,
                message=f"Could not check for {binary.name} updates",
                error=str(e),
            )

        if release is None:
            logger.warning("Could not parse the latest %s version info.", binary.name)
            return SelfUpdateResult(
                name=binary.name,
                status=UpdateStatus.ERROR,
                current_version=current_version,
                message=f"No release information available for {binary.name}",
            )

        latest_version = release.tag_name
        logger.info("Latest %s version: %s", binary.name, latest_version)

        if not needs_update(current_version, latest_version):
            logger.info("The current %s is up-to-date.", binary.name)
            return SelfUpdateResult(
                name=binary.name,
                status=UpdateStatus.UP_TO_DATE,
                current_version=current_version,
                latest_version=latest_version,
                message=f"{binary.name} is up to date",
            )

        logger.info("A newer %s version is available. Updating %s...", binary.name, binary.name)
        if binary.strategy == UpdateStrategy.COMMAND:
            result = self._apply_command(binary)
        else:
            result = self._apply_archive(binary, release)

        result.current_version = current_version
        result.latest_version = latest_version
        return result

    def _apply_command(self, binary: ManagedBinary) -> SelfUpdateResult:
        cmd = [str(binary.path), *binary.update_args]
        try:
            completed = subprocess.run(cmd, timeout=UPDATE_TIMEOUT)
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.error("Failed to execute %s: %s", " ".join(cmd), e)
            return SelfUpdateResult(
                name=binary.name,
                status=UpdateStatus.UPDATE_FAILED,
                message=f"{binary.name} update failed",
                error=str(e),
            )

        if completed.returncode != 0:
            logger.error("%s update failed (exit status %d).", binary.name, completed.returncode)
            return SelfUpdateResult(
                name=binary.name,
                status=UpdateStatus.UPDATE_FAILED,
                message=f"{binary.name} update failed",
                error=f"exit status {completed.returncode}",
            )

        logger.info("%s updated successfully.", binary.name)
        return SelfUpdateResult(
            name=binary.name,
            status=UpdateStatus.SUCCESS,
            message=f"{binary.name} updated successfully",
        )

    def _apply_archive(self, binary: ManagedBinary, release: ReleaseInfo) -> SelfUpdateResult:
        asset = find_asset(release, binary.asset_predicate) if binary.asset_predicate else None
        if asset is None:
            logger.warning(
                "Could not find a suitable %s update asset for %s %s.",
                binary.name,
                platform.system(),
                platform.machine(),
            )
            return SelfUpdateResult(
                name=binary.name,
                status=UpdateStatus.NO_ASSET,
                message=f"No {binary.name} asset for this platform",
            )

        member = binary.archive_member or binary.path.name
        try:
            data = self.checker.download_asset(asset)
            payload = extract_member(data, member)
        except (TransportError, ApiError, ArchiveError) as e:
            return self._archive_failed(binary, asset, e)

        if payload is None:
            if self.archive_failure == ArchiveFailurePolicy.RAISE:
                raise ArchiveError(f"{member} not found in {asset.name}")
            logger.warning("%s not found in the downloaded archive.", member)
            return SelfUpdateResult(
                name=binary.name,
                status=UpdateStatus.ARCHIVE_FAILED,
                message=f"{member} not found in {asset.name}",
            )

        try:
            replace_binary(binary.path, payload)
        except ArchiveError as e:
            return self._archive_failed(binary, asset, e)

        logger.info("%s updated successfully.", binary.name)
        return SelfUpdateResult(
            name=binary.name,
            status=UpdateStatus.SUCCESS,
            message=f"{binary.name} replaced from {asset.name}",
        )

    def _archive_failed(self, binary: ManagedBinary, asset: ReleaseAsset, error: YtmuxError) -> SelfUpdateResult:
        if self.archive_failure == ArchiveFailurePolicy.RAISE:
            raise error
        logger.error("Failed to update %s from %s: %s", binary.name, asset.name, error)
        return SelfUpdateResult(
            name=binary.name,
            status=UpdateStatus.ARCHIVE_FAILED,
            message=f"{binary.name} update failed",
            error=str(error),
        )


def replace_binary(path: Path, payload: bytes) -> None:
    """Overwrite ``path`` with ``payload``, keeping it executable.

    A process killed during the write can leave a truncated file.

    Raises:
        ArchiveError: The binary could not be written.
    """
    try:
        mode = path.stat().st_mode if path.exists() else 0o755
        path.write_bytes(payload)
        if os.name != "nt":
            path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    except OSError as err:
        raise ArchiveError(f"Failed to write {path}: {err}") from err


def update_binaries(binaries: list[ManagedBinary], updater: SelfUpdater) -> list[SelfUpdateResult]:
    """Check each binary in order."""
    return [updater.check(binary) for binary in binaries]
