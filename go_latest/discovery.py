"""
Program discovery: enumerate the Go binary directory and read build info.

Build metadata comes from `go version -m <file>`, which prints a header line
followed by tab-separated records:

    /home/user/go/bin/gopls: go1.22.1
    	path	golang.org/x/tools/gopls
    	mod	golang.org/x/tools/gopls	v0.15.2	h1:...
    	dep	...
"""

from __future__ import annotations

import os
import stat
from dataclasses import dataclass

from .common import vlog
from .errors import CommandError, DiscoveryError
from .process import CancelToken, execute_command


@dataclass(frozen=True)
class ProgramRecord:
    """
    Build information of one installed program.

    Attributes:
        path: Absolute path to the executable
        package_path: Main package import path (install target)
        module_path: Main module path (upstream query target)
        current_version: Main module version, e.g. "v1.2.3" or "(devel)"
        go_version: Toolchain that built the binary, e.g. "go1.22.1"
    """
    path: str
    package_path: str
    module_path: str
    current_version: str
    go_version: str

    @property
    def name(self) -> str:
        return os.path.basename(self.path)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "path": self.path,
            "package_path": self.package_path,
            "module_path": self.module_path,
            "current_version": self.current_version,
            "go_version": self.go_version,
        }


def is_executable(mode: int) -> bool:
    """Check whether any execute bit is set in a file mode."""
    return stat.S_IMODE(mode) & 0o111 != 0


def list_programs(directory: str, verbose: bool = False) -> list[str]:
    """
    List executable files in a directory.

    Args:
        directory: Directory to scan (normally GOBIN)
        verbose: Enable verbose logging

    Returns:
        Sorted absolute paths of regular files with an execute bit

    Raises:
        DiscoveryError: If the directory cannot be read
    """
    programs = []
    try:
        with os.scandir(directory) as entries:
            for entry in entries:
                try:
                    if not entry.is_file():
                        continue
                    mode = entry.stat().st_mode
                except OSError as e:
                    vlog(f"Cannot stat {entry.path}: {e}", verbose)
                    continue
                if is_executable(mode):
                    programs.append(os.path.abspath(entry.path))
    except OSError as e:
        raise DiscoveryError(f"Cannot read program directory {directory}: {e}") from e

    programs.sort()
    vlog(f"Found {len(programs)} programs in {directory}", verbose)
    return programs


def parse_build_info(path: str, text: str) -> ProgramRecord:
    """
    Parse `go version -m` output into a ProgramRecord.

    Args:
        path: Executable path the output belongs to
        text: Output of `go version -m <path>`

    Returns:
        ProgramRecord

    Raises:
        DiscoveryError: If the output has no build info header
    """
    go_version = ""
    package_path = ""
    module_path = ""
    current_version = ""
    header_seen = False

    for line in text.splitlines():
        if not line.strip():
            continue
        if not line.startswith("\t"):
            # Header: "<file>: go1.22.1"
            _, sep, version = line.rpartition(": ")
            if sep and version.startswith("go"):
                go_version = version.strip()
                header_seen = True
            continue

        fields = line.strip("\t").split("\t")
        if fields[0] == "path" and len(fields) >= 2:
            package_path = fields[1]
        elif fields[0] == "mod" and len(fields) >= 2:
            module_path = fields[1]
            current_version = fields[2] if len(fields) >= 3 else ""

    if not header_seen:
        raise DiscoveryError(f"No Go build info in {path}", text.strip())

    return ProgramRecord(
        path=path,
        package_path=package_path,
        module_path=module_path,
        current_version=current_version,
        go_version=go_version,
    )


def read_build_info(
    path: str,
    cancel: CancelToken | None = None,
    go_binary: str = "go",
    timeout: float | None = None,
    verbose: bool = False,
) -> ProgramRecord:
    """
    Read embedded build information from an executable.

    Args:
        path: Executable to inspect
        cancel: Shared cancellation signal
        go_binary: Go command to run
        timeout: Command timeout in seconds
        verbose: Enable verbose logging

    Returns:
        ProgramRecord for the executable

    Raises:
        DiscoveryError: If the build info cannot be read
        Cancelled: If the run was cancelled
    """
    try:
        result = execute_command(
            [go_binary, "version", "-m", path],
            cancel=cancel,
            timeout=timeout,
            verbose=verbose,
        )
    except CommandError as e:
        raise DiscoveryError(f"{path}: {e.message}", e.output) from e

    if not result.success:
        raise DiscoveryError(
            f"{path}: go version exited with code {result.exit_code}",
            result.output.strip(),
        )

    return parse_build_info(path, result.output)
