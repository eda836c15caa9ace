"""
Environment detection: where installed programs live and which Go is current.

Resolved once per run and passed to the runner explicitly, so nothing below
the CLI reads environment variables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

from .common import vlog
from .config import Config
from .errors import CommandError, DiscoveryError
from .process import execute_command


@dataclass(frozen=True)
class Environment:
    """
    Detected environment information.

    Attributes:
        gobin: Directory holding go install'd programs
        go_version: Version of the current Go toolchain, e.g. "go1.22.1"
        go_binary: Go command used for queries and installs
        indicators: Evidence for how gobin was chosen
    """
    gobin: str
    go_version: str
    go_binary: str = "go"
    indicators: tuple[str, ...] = ()

    def __str__(self) -> str:
        return f"{self.gobin} ({self.go_version})"


def resolve_gobin(
    override: str = "",
    environ: Mapping[str, str] | None = None,
) -> tuple[str, str]:
    """
    Locate the program directory the same way `go install` does.

    Priority: explicit override, GOBIN, first GOPATH entry + /bin,
    $HOME/go/bin.

    Args:
        override: Directory from config or command line
        environ: Environment mapping (defaults to os.environ)

    Returns:
        (directory, indicator) where directory is "" if nothing matched
    """
    if environ is None:
        environ = os.environ

    if override:
        return (override, f"config:gobin={override}")

    gobin = environ.get("GOBIN", "")
    if gobin:
        return (gobin, f"env:GOBIN={gobin}")

    gopath = environ.get("GOPATH", "")
    if gopath:
        first = gopath.split(os.pathsep)[0]
        if first:
            return (os.path.join(first, "bin"), f"env:GOPATH={gopath}")

    home = environ.get("HOME", "")
    if home:
        return (os.path.join(home, "go", "bin"), f"env:HOME={home}")

    return ("", "")


def current_go_version(go_binary: str = "go", verbose: bool = False) -> str:
    """
    Ask the Go toolchain for its version.

    Raises:
        DiscoveryError: If the go command is missing or fails
    """
    try:
        result = execute_command([go_binary, "env", "GOVERSION"], timeout=30, verbose=verbose)
    except CommandError as e:
        raise DiscoveryError(f"Go toolchain not usable: {e.message}", e.output) from e

    version = result.output.strip()
    if not result.success or not version:
        raise DiscoveryError(
            f"Go toolchain not usable: go env exited with code {result.exit_code}",
            result.output.strip(),
        )
    return version


def detect_environment(
    config: Config | None = None,
    gobin_override: str = "",
    environ: Mapping[str, str] | None = None,
    verbose: bool = False,
) -> Environment:
    """
    Detect the program directory and current toolchain for a run.

    Args:
        config: Loaded configuration (defaults if None)
        gobin_override: Directory that takes precedence over config
        environ: Environment mapping (defaults to os.environ)
        verbose: Enable verbose logging

    Returns:
        Environment for the run

    Raises:
        DiscoveryError: If no program directory can be derived or Go is unusable
    """
    if config is None:
        config = Config()

    gobin, indicator = resolve_gobin(gobin_override or config.gobin, environ)
    if not gobin:
        raise DiscoveryError("GOBIN not found")
    vlog(f"Program directory: {gobin} ({indicator})", verbose)

    go_version = current_go_version(config.go_binary, verbose)
    vlog(f"Current Go toolchain: {go_version}", verbose)

    return Environment(
        gobin=gobin,
        go_version=go_version,
        go_binary=config.go_binary,
        indicators=(indicator,),
    )
