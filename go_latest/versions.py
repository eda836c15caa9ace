"""
Version classification for installed Go programs.

Go module versions follow golang.org/x/mod/semver: a leading "v", then
MAJOR[.MINOR[.PATCH]], where the short forms are only valid without a
pre-release or build suffix. A program whose version carries a pre-release
was installed at a specific commit (a pseudo-version) and is never upgraded.
"""

from __future__ import annotations

import re

from packaging import version as pkg_version

from .common import DEVEL_VERSION


_NUM = r"(?:0|[1-9][0-9]*)"
_PRERELEASE_IDENT = r"(?:0|[1-9][0-9]*|[0-9]*[A-Za-z-][0-9A-Za-z-]*)"
_BUILD_IDENT = r"[0-9A-Za-z-]+"

SEMVER_RE = re.compile(
    rf"^v(?P<major>{_NUM})"
    rf"(?:\.(?P<minor>{_NUM})"
    rf"(?:\.(?P<patch>{_NUM})"
    rf"(?P<prerelease>-{_PRERELEASE_IDENT}(?:\.{_PRERELEASE_IDENT})*)?"
    rf"(?P<build>\+{_BUILD_IDENT}(?:\.{_BUILD_IDENT})*)?"
    r")?)?$"
)


def is_valid_semver(v: str) -> bool:
    """Report whether v is a valid Go semantic version."""
    if not isinstance(v, str):
        return False
    return SEMVER_RE.fullmatch(v) is not None


def semver_prerelease(v: str) -> str:
    """
    Return the pre-release suffix of v, including the leading "-".

    Returns "" when v has no pre-release or is not a valid semantic version.
    """
    if not isinstance(v, str):
        return ""
    match = SEMVER_RE.fullmatch(v)
    if match is None:
        return ""
    return match.group("prerelease") or ""


def is_pinned(v: str) -> bool:
    """
    Report whether an installed version is pinned to a specific revision.

    A program is pinned when it was built from a local checkout ("(devel)")
    or installed at a commit rather than a tagged release, which shows up as
    a semantic version with a pre-release component. Pinned programs are not
    generally available through @latest and must be left alone.

    Args:
        v: Main module version from the program's build info

    Returns:
        True if the program must be skipped, False otherwise
    """
    if v == DEVEL_VERSION:
        return True
    if is_valid_semver(v) and semver_prerelease(v) != "":
        return True
    return False


def is_major_upgrade(current: str, target: str) -> bool:
    """
    Check whether moving from current to target crosses a major version.

    Only used to annotate reports. Versions that do not parse yield False.
    """
    try:
        cur = pkg_version.parse(current.lstrip("v"))
        tgt = pkg_version.parse(target.lstrip("v"))
    except (pkg_version.InvalidVersion, AttributeError):
        return False
    return tgt.major > cur.major
