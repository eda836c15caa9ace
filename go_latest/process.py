"""
Cancellable external command execution.

Every call to the go toolchain goes through execute_command, which polls the
run's CancelToken while the child runs and kills the child when it fires.
"""

from __future__ import annotations

import os
import signal
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import Sequence

from .common import vlog
from .errors import Cancelled, CommandError


# Seconds between cancellation checks while a child process runs
POLL_INTERVAL = 0.1


class CancelToken:
    """
    Shared cancellation signal for one run.

    Fired by an interrupt or by the first fatal error; observed by workers
    waiting for a slot and by running child processes.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason: str | None = None
        self._lock = threading.Lock()

    def cancel(self, reason: str = "cancelled") -> None:
        """Fire the signal. Only the first reason is kept."""
        with self._lock:
            if self._reason is None:
                self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the signal fires or timeout elapses."""
        return self._event.wait(timeout)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise Cancelled(self._reason or "cancelled")


@dataclass(frozen=True)
class CommandResult:
    """
    Result of a finished external command.

    Attributes:
        command: Command that was executed
        exit_code: Process exit code
        output: Combined stdout and stderr
        duration_seconds: Wall-clock time taken
    """
    command: tuple[str, ...]
    exit_code: int
    output: str
    duration_seconds: float

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "command": list(self.command),
            "exit_code": self.exit_code,
            "output": self.output,
            "duration_seconds": self.duration_seconds,
        }


def _kill(proc: subprocess.Popen) -> str:
    """Kill the child and everything it spawned, then collect its output."""
    if os.name == "posix":
        # Grandchildren holding the output pipe would keep communicate() waiting
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass  # Group already gone
    else:
        proc.kill()
    output, _ = proc.communicate()
    return output or ""


def execute_command(
    command: Sequence[str],
    cancel: CancelToken | None = None,
    timeout: float | None = None,
    cwd: str | None = None,
    poll_interval: float = POLL_INTERVAL,
    verbose: bool = False,
) -> CommandResult:
    """
    Run a command to completion, honoring cancellation and timeout.

    Args:
        command: Command and arguments
        cancel: Shared cancellation signal (optional)
        timeout: Command timeout in seconds (None = no limit)
        cwd: Working directory for the child
        poll_interval: Seconds between cancellation checks
        verbose: Enable verbose logging

    Returns:
        CommandResult for the finished process, whatever its exit code

    Raises:
        Cancelled: If the signal fired before or while the command ran
        CommandError: If the command could not start or timed out
    """
    command = tuple(command)
    if cancel is not None:
        cancel.raise_if_cancelled()

    vlog(f"Executing: {' '.join(command)}", verbose)
    start_time = time.time()

    try:
        proc = subprocess.Popen(
            command,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            cwd=cwd,
            # Own process group: terminal interrupts reach only us, and _kill
            # can take down the whole tree
            start_new_session=os.name == "posix",
        )
    except FileNotFoundError as e:
        raise CommandError(f"Command not found: {command[0]}") from e
    except OSError as e:
        raise CommandError(f"Could not start {command[0]}: {e}") from e

    while True:
        try:
            output, _ = proc.communicate(timeout=poll_interval)
            break
        except subprocess.TimeoutExpired:
            if cancel is not None and cancel.cancelled:
                _kill(proc)
                vlog(f"Killed after cancellation: {' '.join(command)}", verbose)
                raise Cancelled(cancel.reason or "cancelled")
            if timeout is not None and time.time() - start_time > timeout:
                output = _kill(proc)
                raise CommandError(f"Command timed out after {timeout}s", output, exit_code=-1)

    # A child that died from the same interrupt exits before the next poll
    if cancel is not None and cancel.cancelled and proc.returncode != 0:
        vlog(f"Exited with code {proc.returncode} after cancellation: {' '.join(command)}", verbose)
        raise Cancelled(cancel.reason or "cancelled")

    duration = time.time() - start_time
    vlog(f"Finished in {duration:.1f}s with exit code {proc.returncode}: {' '.join(command)}", verbose)

    return CommandResult(
        command=command,
        exit_code=proc.returncode,
        output=output or "",
        duration_seconds=duration,
    )
