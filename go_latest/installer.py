"""
Re-installation of a Go program at its latest release.

`go install <package>@latest` decides the output location itself (GOBIN or
GOPATH/bin) and replaces the binary in place. A cancelled install kills the
go command and is never retried.
"""

from __future__ import annotations

from .common import vlog
from .errors import CommandError, InstallError
from .process import CancelToken, CommandResult, execute_command


def install_command(package_path: str, go_binary: str = "go") -> list[str]:
    return [go_binary, "install", f"{package_path}@latest"]


def install_program(
    package_path: str,
    cancel: CancelToken | None = None,
    go_binary: str = "go",
    workdir: str | None = None,
    timeout: float | None = None,
    verbose: bool = False,
) -> CommandResult:
    """
    Install the latest release of a main package.

    Args:
        package_path: Main package import path
        cancel: Shared cancellation signal
        go_binary: Go command to run
        workdir: Working directory for the go command
        timeout: Command timeout in seconds
        verbose: Enable verbose logging

    Returns:
        CommandResult of the successful install

    Raises:
        InstallError: If go install fails; output holds its diagnostics verbatim
        Cancelled: If the run was cancelled during the install
    """
    command = install_command(package_path, go_binary)
    vlog(f"Installing {package_path}@latest", verbose)

    try:
        result = execute_command(command, cancel=cancel, timeout=timeout, cwd=workdir, verbose=verbose)
    except CommandError as e:
        raise InstallError(f"go install ({e.message})", e.output) from e

    if not result.success:
        raise InstallError(f"go install (exit status {result.exit_code})", result.output)

    return result
