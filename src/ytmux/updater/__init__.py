"""Update checks for the managed yt-dlp and ffmpeg binaries.

This package can:
- Parse and compare date-style release versions
- Query GitHub releases for the latest tag and platform assets
- Update a binary through its own update command
- Replace a binary with a file extracted from a release archive
"""

from ytmux.updater.binaries import (
    ArchiveFailurePolicy,
    ManagedBinary,
    SelfUpdater,
    SelfUpdateResult,
    UpdateStatus,
    UpdateStrategy,
    ffmpeg_binary,
    update_binaries,
    yt_dlp_binary,
)
from ytmux.updater.releases import (
    ReleaseAsset,
    ReleaseChecker,
    ReleaseInfo,
    find_asset,
    get_platform_tag,
    platform_archive_predicate,
)
from ytmux.updater.version import compare_versions, needs_update, parse_version

__all__ = [
    "ArchiveFailurePolicy",
    "ManagedBinary",
    "SelfUpdater",
    "SelfUpdateResult",
    "UpdateStatus",
    "UpdateStrategy",
    "ffmpeg_binary",
    "yt_dlp_binary",
    "update_binaries",
    "ReleaseAsset",
    "ReleaseChecker",
    "ReleaseInfo",
    "find_asset",
    "get_platform_tag",
    "platform_archive_predicate",
    "parse_version",
    "compare_versions",
    "needs_update",
]
