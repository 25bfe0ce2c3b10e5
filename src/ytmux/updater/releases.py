"""GitHub release metadata client.

Fetches the latest release of a managed binary and picks the downloadable
asset that matches the running platform. Release feeds occasionally come back
without a tag; that is reported as "no information" (None) rather than as an
error.
"""

import logging
import platform
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Final

import httpx
from pydantic import BaseModel, Field, ValidationError

from ytmux import __version__
from ytmux.errors import ApiError, ParseError, TransportError

logger = logging.getLogger(__name__)

# User agent for GitHub API (required by GitHub)
USER_AGENT: Final = f"ytmux/{__version__}"
ACCEPT: Final = "application/vnd.github.v3+json"

DEFAULT_TIMEOUT: Final = 30.0
DOWNLOAD_TIMEOUT: Final = 300.0

ARCHIVE_EXTENSIONS: Final = (".zip", ".tar.xz", ".tar.gz")


class ReleaseAsset(BaseModel):
    """A downloadable file attached to a release."""

    name: str
    browser_download_url: str
    size: int = 0


class ReleaseInfo(BaseModel):
    """Information about a GitHub release."""

    tag_name: str
    assets: list[ReleaseAsset] = Field(default_factory=list)
    published_at: datetime | None = None
    prerelease: bool = False
    html_url: str = ""


AssetPredicate = Callable[[str], bool]


def get_platform_tag() -> str | None:
    """Get the release asset tag for the current platform.

    The tags follow the FFmpeg-Builds naming (``ffmpeg-master-latest-win64-gpl.zip``).
    Returns None if the platform has no pre-built archive.
    """
    system = platform.system().lower()
    machine = platform.machine().lower()

    if system == "windows":
        if machine in ("x86_64", "amd64"):
            return "win64"
        if machine in ("x86", "i386", "i686"):
            return "win32"
    elif system == "linux":
        if machine in ("x86_64", "amd64"):
            return "linux64"
        if machine in ("aarch64", "arm64"):
            return "linuxarm64"

    return None


def platform_archive_predicate(
    platform_tag: str,
    extensions: Iterable[str] = ARCHIVE_EXTENSIONS,
) -> AssetPredicate:
    """Build a case-insensitive "contains tag and ends with extension" predicate."""
    tag = platform_tag.lower()
    suffixes = tuple(ext.lower() for ext in extensions)

    def predicate(name: str) -> bool:
        lowered = name.lower()
        return tag in lowered and lowered.endswith(suffixes)

    return predicate


def find_asset(release: ReleaseInfo, predicate: AssetPredicate) -> ReleaseAsset | None:
    """Return the first asset, in listed order, whose name satisfies ``predicate``."""
    for asset in release.assets:
        if predicate(asset.name):
            return asset
    return None


class ReleaseChecker:
    """Queries a release metadata endpoint.

    The HTTP client is injectable so callers can share one connection pool
    and tests can substitute a mock transport.
    """

    def __init__(
        self,
        client: httpx.Client | None = None,
        user_agent: str = USER_AGENT,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self._client = client or httpx.Client(timeout=timeout, follow_redirects=True)
        self._owns_client = client is None
        self.headers = {
            "User-Agent": user_agent,
            "Accept": ACCEPT,
        }

    def close(self) -> None:
        """Close the underlying client if this checker created it."""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "ReleaseChecker":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _get(self, url: str, headers: dict[str, str], timeout: float | None = None) -> httpx.Response:
        try:
            if timeout is None:
                response = self._client.get(url, headers=headers)
            else:
                response = self._client.get(url, headers=headers, timeout=timeout)
        except (httpx.HTTPError, httpx.InvalidURL) as err:
            raise TransportError(f"Failed to reach {url}: {err}") from err

        if not response.is_success:
            raise ApiError(
                f"Request to {url} failed. HTTP Status: {response.status_code}",
                status_code=response.status_code,
            )
        return response

    def latest_release(self, api_url: str) -> ReleaseInfo | None:
        """Fetch the latest release from ``api_url``.

        Returns None when the response carries no usable ``tag_name``.

        Raises:
            TransportError: The server could not be reached.
            ApiError: The server answered with a non-success status.
            ParseError: The body is not a JSON object or an asset is malformed.
        """
        response = self._get(api_url, self.headers)

        try:
            data = response.json()
        except ValueError as err:
            raise ParseError(f"Response from {api_url} is not valid JSON") from err

        if not isinstance(data, dict):
            raise ParseError(f"Response from {api_url} is not a JSON object")

        tag_name = data.get("tag_name")
        if not isinstance(tag_name, str) or not tag_name.strip():
            logger.warning("Release feed %s did not report a tag name", api_url)
            return None

        try:
            release = ReleaseInfo.model_validate({**data, "tag_name": tag_name.strip()})
        except ValidationError as err:
            raise ParseError(f"Unexpected release metadata from {api_url}: {err}") from err

        logger.debug("Latest release at %s is %s (%d assets)", api_url, release.tag_name, len(release.assets))
        return release

    def download_asset(self, asset: ReleaseAsset) -> bytes:
        """Download an asset fully into memory."""
        logger.info("Downloading %s from %s", asset.name, asset.browser_download_url)
        response = self._get(
            asset.browser_download_url,
            {"User-Agent": self.headers["User-Agent"]},
            timeout=DOWNLOAD_TIMEOUT,
        )
        return response.content
