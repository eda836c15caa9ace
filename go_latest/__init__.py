"""
go-latest - Upgrade programs installed with `go install`.

Core Modules:
- Discovery: program directory scan and build info reading
- Versions: pinned-revision classification and upgrade decision
- Upstream and Installer: go list / go install wrappers with cancellation
- Runner: bounded parallel upgrade run with per-program outcomes
"""

__version__ = "0.3.0"

VERSION = __version__

from .common import DEVEL_VERSION, UNKNOWN_VERSION
from .errors import (
    GoLatestError,
    CommandError,
    DiscoveryError,
    ResolveError,
    InstallError,
    Cancelled,
)
from .process import CancelToken, CommandResult, execute_command
from .versions import is_pinned, is_valid_semver, semver_prerelease, is_major_upgrade
from .discovery import ProgramRecord, list_programs, parse_build_info, read_build_info
from .upstream import resolve_latest
from .decision import Decision, decide, needs_install
from .installer import install_program
from .config import Config, Preferences, load_config, load_config_file
from .environment import Environment, detect_environment, resolve_gobin
from .runner import Backend, RunOptions, RunResult, UpgradeOutcome, run_upgrades, upgrade_program
from .logging_config import setup_logging, get_logger

__all__ = [
    "__version__",
    "VERSION",
    "DEVEL_VERSION",
    "UNKNOWN_VERSION",
    # Errors
    "GoLatestError",
    "CommandError",
    "DiscoveryError",
    "ResolveError",
    "InstallError",
    "Cancelled",
    # Processes
    "CancelToken",
    "CommandResult",
    "execute_command",
    # Versions
    "is_pinned",
    "is_valid_semver",
    "semver_prerelease",
    "is_major_upgrade",
    # Discovery
    "ProgramRecord",
    "list_programs",
    "parse_build_info",
    "read_build_info",
    # Upstream, decision, install
    "resolve_latest",
    "Decision",
    "decide",
    "needs_install",
    "install_program",
    # Foundation
    "Config",
    "Preferences",
    "load_config",
    "load_config_file",
    "Environment",
    "detect_environment",
    "resolve_gobin",
    # Runner
    "Backend",
    "RunOptions",
    "RunResult",
    "UpgradeOutcome",
    "run_upgrades",
    "upgrade_program",
    # Logging
    "setup_logging",
    "get_logger",
]
