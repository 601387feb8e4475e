"""Helpers for the small part of semver this tool needs.

Only two questions are ever asked of a version: what exact version does a
declared range pin, and did the major component change.
"""

import re

from up_to_code.exceptions import ManifestError

# Same shape as the semver-regex package: optional "v", three numeric parts,
# optional prerelease and build metadata.
SEMVER_PATTERN = re.compile(
    r"(?<![0-9A-Za-z.\-])v?(?P<major>0|[1-9]\d*)\.(?P<minor>0|[1-9]\d*)\.(?P<patch>0|[1-9]\d*)"
    r"(?:-(?P<prerelease>[\da-zA-Z\-]+(?:\.[\da-zA-Z\-]+)*))?"
    r"(?:\+(?P<build>[\da-zA-Z\-]+(?:\.[\da-zA-Z\-]+)*))?"
)


def exact_version(version_range: str) -> str:
    """Extract the exact version a declared range pins.

    Args:
        version_range: Range as written in the manifest (e.g. "^1.4.2")

    Returns:
        The first semver found, without a leading "v" (e.g. "1.4.2")

    Raises:
        ManifestError: If the range contains no semver

    Example:
        >>> exact_version("~2.0.1")
        '2.0.1'
    """
    match = SEMVER_PATTERN.search(version_range)
    if not match:
        raise ManifestError(f"{version_range} must be valid semver")
    return match.group(0).lstrip("v")


def major_version(version: str) -> int:
    """Return the major component of a version or range."""
    match = SEMVER_PATTERN.search(version)
    if not match:
        raise ManifestError(f"{version} must be valid semver")
    return int(match.group("major"))


def is_breaking(before: str, after: str) -> bool:
    """A bump is breaking when the major component changes."""
    return major_version(before) != major_version(after)
