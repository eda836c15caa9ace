"""
Common constants and utilities shared across go_latest modules.
"""

from __future__ import annotations

import os
import sys


# Version reported by Go for binaries built from a local checkout
DEVEL_VERSION = "(devel)"

# Target version recorded when the upstream query failed or never ran
UNKNOWN_VERSION = "?"


def is_debug_enabled() -> bool:
    """Check the GO_LATEST_DEBUG environment toggle."""
    return os.environ.get("GO_LATEST_DEBUG", "0") == "1"


def vlog(msg: str, verbose: bool = False) -> None:
    """
    Log verbose message using structured logging.

    Args:
        msg: Message to log
        verbose: Whether verbose mode is enabled
    """
    if verbose or is_debug_enabled():
        try:
            from .logging_config import get_logger
            get_logger().debug(msg)
        except Exception:
            # Fallback to stderr if logging fails
            try:
                print(f"[go_latest] {msg}", file=sys.stderr)
            except Exception:
                pass
