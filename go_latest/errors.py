"""
Exception hierarchy for go-latest.

DiscoveryError is fatal for a run, ResolveError is recovered per program,
InstallError is recovered per program but fails the run once all workers
settle, and Cancelled is a graceful stop that is never reported.
"""

from __future__ import annotations


class GoLatestError(Exception):
    """
    Base exception for go-latest errors.

    Attributes:
        message: Human-readable error message
        output: Raw diagnostic output of the external command, if any
    """
    def __init__(self, message: str, output: str = ""):
        self.message = message
        self.output = output
        super().__init__(message)

    def __str__(self) -> str:
        if self.output:
            return f"{self.message}:\n{self.output}"
        return self.message


class CommandError(GoLatestError):
    """External command exited non-zero, timed out, or could not start."""

    def __init__(self, message: str, output: str = "", exit_code: int | None = None):
        super().__init__(message, output)
        self.exit_code = exit_code


class DiscoveryError(GoLatestError):
    """Program directory or build metadata could not be read."""


class ResolveError(GoLatestError):
    """Latest-version query failed for one module."""


class InstallError(GoLatestError):
    """Re-installation failed for one program."""


class Cancelled(GoLatestError):
    """The run's shared cancellation signal fired."""

    def __init__(self, message: str = "cancelled"):
        super().__init__(message)
