"""
Upgrade decision for one program.
"""

from __future__ import annotations

from enum import Enum

from .common import UNKNOWN_VERSION


class Decision(str, Enum):
    """Per-program outcome of an upgrade run."""

    SKIPPED_PINNED = "skipped-pinned"
    EXCLUDED = "excluded"
    ALREADY_LATEST = "already-latest"
    UPGRADED = "upgraded"
    RESOLVE_FAILED = "resolve-failed"
    INSTALL_FAILED = "install-failed"
    DISCOVERY_FAILED = "discovery-failed"
    CANCELLED = "cancelled"

    @property
    def is_failure(self) -> bool:
        return self in (Decision.RESOLVE_FAILED, Decision.INSTALL_FAILED, Decision.DISCOVERY_FAILED)


def decide(
    current: str,
    target: str,
    built_go: str,
    current_go: str,
    toolchain_upgrades: bool = False,
) -> Decision:
    """
    Decide whether a program should be re-installed.

    Versions are compared as strings; both come from the same go tooling so
    equal releases are always spelled the same way.

    When toolchain_upgrades is set, a program built by a different Go
    toolchain is re-installed at @latest even if its module version is
    already the latest one.

    Args:
        current: Installed module version
        target: Latest module version, or UNKNOWN_VERSION
        built_go: Toolchain the program was built with
        current_go: Toolchain available now
        toolchain_upgrades: Re-install programs built with another toolchain

    Returns:
        RESOLVE_FAILED, ALREADY_LATEST, or UPGRADED (pending install)
    """
    if target == UNKNOWN_VERSION:
        return Decision.RESOLVE_FAILED

    go_upgrade = toolchain_upgrades and built_go != current_go
    if current == target and not go_upgrade:
        return Decision.ALREADY_LATEST
    return Decision.UPGRADED


def needs_install(decision: Decision) -> bool:
    return decision is Decision.UPGRADED
