"""
Latest-version lookup for Go modules.

Queries the module proxy through `go list -m -json <module>@latest`.
Results are not cached between programs or runs.
"""

from __future__ import annotations

import json

from .common import vlog
from .errors import CommandError, ResolveError
from .process import CancelToken, execute_command


def parse_module_listing(output: str) -> str:
    """
    Extract the Version field from `go list -m -json` output.

    Raises:
        ResolveError: If the output is not a JSON object with a Version
    """
    try:
        listing = json.loads(output)
    except json.JSONDecodeError as e:
        raise ResolveError(f"json unmarshal: {e}", output.strip()) from e

    version = listing.get("Version") if isinstance(listing, dict) else None
    if not version or not isinstance(version, str):
        raise ResolveError("go list: no Version in module listing", output.strip())
    return version


def resolve_latest(
    module_path: str,
    cancel: CancelToken | None = None,
    go_binary: str = "go",
    workdir: str | None = None,
    timeout: float | None = None,
    verbose: bool = False,
) -> str:
    """
    Query the latest released version of a module.

    Args:
        module_path: Module path, e.g. "golang.org/x/tools/gopls"
        cancel: Shared cancellation signal
        go_binary: Go command to run
        workdir: Working directory for the go command
        timeout: Command timeout in seconds
        verbose: Enable verbose logging

    Returns:
        Latest version string, e.g. "v0.15.2"

    Raises:
        ResolveError: If the query fails or its output is malformed
        Cancelled: If the run was cancelled while the query was outstanding
    """
    vlog(f"Querying latest version of {module_path}...", verbose)

    try:
        result = execute_command(
            [go_binary, "list", "-m", "-json", f"{module_path}@latest"],
            cancel=cancel,
            timeout=timeout,
            cwd=workdir,
            verbose=verbose,
        )
    except CommandError as e:
        raise ResolveError(f"go list ({e.message})", e.output.strip()) from e

    if not result.success:
        raise ResolveError(f"go list (exit status {result.exit_code})", result.output.strip())

    version = parse_module_listing(result.output)
    vlog(f"Latest version of {module_path}: {version}", verbose)
    return version
