"""Date-style version parsing and comparison.

yt-dlp tags its releases as ``YYYY.MM.DD`` (optionally followed by a build
suffix such as ``.232``). Binaries that do not follow that scheme fall back
to a plain string comparison, see :func:`needs_update`.
"""

import logging
import re
from typing import Final

logger = logging.getLogger(__name__)

VERSION_PATTERN: Final = re.compile(r"^\s*(\d{4})\.(\d{1,2})\.(\d{1,2})")

Version = tuple[int, int, int]


def parse_version(s: str) -> Version | None:
    """Parse the leading ``YYYY.M.D`` prefix of a version string.

    Anything after the date is ignored. Returns None when the string does not
    start with a date.
    """
    match = VERSION_PATTERN.match(s)
    if match is None:
        return None
    year, month, day = (int(group) for group in match.groups())
    return year, month, day


def compare_versions(a: Version, b: Version) -> int:
    """Return -1, 0 or 1 as ``a`` sorts before, equal to or after ``b``."""
    return (a > b) - (a < b)


def needs_update(current: str, latest: str) -> bool:
    """Decide whether ``latest`` should replace ``current``.

    When both strings parse as dates the comparison is numeric. Otherwise any
    difference between the two strings counts as an update, since there is no
    ordering to consult.
    """
    current_parsed = parse_version(current)
    latest_parsed = parse_version(latest)

    if current_parsed is not None and latest_parsed is not None:
        return compare_versions(current_parsed, latest_parsed) < 0

    logger.debug(
        "Falling back to string comparison for versions %r and %r", current, latest
    )
    return current != latest
