"""
Concurrent upgrade run over all installed programs.

Each program is handled by one task on a bounded thread pool:

    read build info -> classify -> resolve latest -> decide -> install

Resolve and install failures stay local to their program. A program whose
build info cannot be read is fatal: the run records the error, fires the
shared cancellation signal, and the remaining tasks stop at their next
suspension point. Every program yields exactly one UpgradeOutcome.
"""

from __future__ import annotations

import functools
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from . import discovery, installer, upstream
from .common import UNKNOWN_VERSION, vlog
from .decision import Decision, decide, needs_install
from .discovery import ProgramRecord
from .errors import Cancelled, DiscoveryError, GoLatestError, InstallError, ResolveError
from .logging_config import get_logger
from .process import CancelToken
from .versions import is_major_upgrade, is_pinned


@dataclass(frozen=True)
class RunOptions:
    """
    Inputs of one upgrade run.

    Attributes:
        max_workers: Maximum concurrent tasks (0 or less = number of CPUs)
        toolchain_upgrades: Re-install programs built with another Go toolchain
        current_go_version: Version of the Go toolchain used for installs
        exclude: Program names that are never touched
        verbose: Enable verbose logging
    """
    max_workers: int = 0
    toolchain_upgrades: bool = False
    current_go_version: str = ""
    exclude: tuple[str, ...] = ()
    verbose: bool = False

    def effective_workers(self) -> int:
        if self.max_workers > 0:
            return self.max_workers
        return os.cpu_count() or 1


@dataclass(frozen=True)
class Backend:
    """
    External collaborators used by the runner.

    Each callable takes its subject and the run's CancelToken.
    """
    read_build_info: Callable[[str, CancelToken], ProgramRecord]
    resolve_latest: Callable[[str, CancelToken], str]
    install: Callable[[str, CancelToken], Any]

    @staticmethod
    def for_go(
        go_binary: str = "go",
        workdir: str | None = None,
        resolve_timeout: float | None = None,
        install_timeout: float | None = None,
        verbose: bool = False,
    ) -> Backend:
        """Backend that shells out to the go command."""
        return Backend(
            read_build_info=functools.partial(
                discovery.read_build_info, go_binary=go_binary, verbose=verbose,
            ),
            resolve_latest=functools.partial(
                upstream.resolve_latest,
                go_binary=go_binary, workdir=workdir, timeout=resolve_timeout, verbose=verbose,
            ),
            install=functools.partial(
                installer.install_program,
                go_binary=go_binary, workdir=workdir, timeout=install_timeout, verbose=verbose,
            ),
        )


@dataclass(frozen=True)
class UpgradeOutcome:
    """
    Result of handling one program.

    Attributes:
        path: Executable path
        decision: What happened to the program
        package_path: Main package import path (empty if build info was not read)
        module_path: Main module path
        current_version: Installed version
        target_version: Latest version, or UNKNOWN_VERSION
        go_version: Toolchain the installed binary was built with
        error_message: Failure diagnostics, including raw command output
        duration_seconds: Time spent on this program
    """
    path: str
    decision: Decision
    package_path: str = ""
    module_path: str = ""
    current_version: str = ""
    target_version: str = UNKNOWN_VERSION
    go_version: str = ""
    error_message: str | None = None
    duration_seconds: float = 0.0

    @property
    def name(self) -> str:
        return os.path.basename(self.path)

    @property
    def label(self) -> str:
        return self.package_path or self.path

    @property
    def major_upgrade(self) -> bool:
        if self.target_version == UNKNOWN_VERSION:
            return False
        return is_major_upgrade(self.current_version, self.target_version)

    def message(self) -> str:
        """One-line report for this outcome."""
        label = self.label
        cur = self.current_version
        if self.decision is Decision.SKIPPED_PINNED:
            return f"{label} {cur} skip"
        if self.decision is Decision.EXCLUDED:
            return f"{label} excluded"
        if self.decision is Decision.ALREADY_LATEST:
            return f"{label} {cur} already latest"
        if self.decision is Decision.UPGRADED:
            jump = f"{label} {cur} -> {self.target_version}"
            return f"{jump} (major)" if self.major_upgrade else jump
        if self.decision is Decision.RESOLVE_FAILED:
            return f"{label} {cur} -> {self.target_version}: {self.error_message}"
        if self.decision is Decision.INSTALL_FAILED:
            return f"{label} {cur} -> {self.target_version} failed: {self.error_message}"
        if self.decision is Decision.DISCOVERY_FAILED:
            return f"{self.error_message}"
        return f"{label} cancelled"

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "path": self.path,
            "decision": self.decision.value,
            "package_path": self.package_path,
            "module_path": self.module_path,
            "current_version": self.current_version,
            "target_version": self.target_version,
            "go_version": self.go_version,
            "error_message": self.error_message,
            "duration_seconds": self.duration_seconds,
        }


@dataclass(frozen=True)
class RunResult:
    """
    Result of an upgrade run.

    Attributes:
        outcomes: One outcome per program, in completion order
        error: First fatal error (discovery or install failure), if any
        cancelled: Whether the shared cancellation signal fired
        duration_seconds: Total execution time
    """
    outcomes: tuple[UpgradeOutcome, ...]
    error: GoLatestError | None
    cancelled: bool
    duration_seconds: float

    @property
    def success(self) -> bool:
        return self.error is None

    def by_decision(self, decision: Decision) -> tuple[UpgradeOutcome, ...]:
        return tuple(o for o in self.outcomes if o.decision is decision)

    def counts(self) -> dict[str, int]:
        counts = {d.value: 0 for d in Decision}
        for outcome in self.outcomes:
            counts[outcome.decision.value] += 1
        return counts

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "outcomes": [o.to_dict() for o in self.outcomes],
            "error": str(self.error) if self.error else None,
            "cancelled": self.cancelled,
            "duration_seconds": self.duration_seconds,
            "counts": self.counts(),
        }

    def summary(self) -> str:
        """Human-readable summary."""
        counts = self.counts()
        failed = (
            counts[Decision.RESOLVE_FAILED.value]
            + counts[Decision.INSTALL_FAILED.value]
            + counts[Decision.DISCOVERY_FAILED.value]
        )
        skipped = counts[Decision.SKIPPED_PINNED.value] + counts[Decision.EXCLUDED.value]
        return f"""
Upgrade Summary:
  ✅ Upgraded: {counts[Decision.UPGRADED.value]}
  ✔️  Already latest: {counts[Decision.ALREADY_LATEST.value]}
  ⏭️  Skipped: {skipped}
  ❌ Failed: {failed}
  ⛔ Cancelled: {counts[Decision.CANCELLED.value]}
  ⏱️  Duration: {self.duration_seconds:.1f}s
"""


class _FirstError:
    """Holds the first fatal error reported by any task."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._error: GoLatestError | None = None

    def record(self, error: GoLatestError) -> bool:
        """Store error if none is stored yet. Returns True if it was stored."""
        with self._lock:
            if self._error is None:
                self._error = error
                return True
            return False

    @property
    def error(self) -> GoLatestError | None:
        with self._lock:
            return self._error


def _report(outcome: UpgradeOutcome) -> None:
    """Emit the outcome as a single log record."""
    logger = get_logger()
    # Discovery failures end the run and are reported once by the caller
    if outcome.decision in (Decision.CANCELLED, Decision.DISCOVERY_FAILED):
        logger.debug(outcome.message())
    elif outcome.decision.is_failure:
        logger.error(outcome.message())
    else:
        logger.info(outcome.message())


def upgrade_program(
    path: str,
    options: RunOptions,
    cancel: CancelToken,
    backend: Backend,
    fatal: _FirstError | None = None,
) -> UpgradeOutcome:
    """
    Run the full pipeline for one program.

    Never raises for expected failures; they are folded into the outcome.
    A build info failure is additionally recorded in fatal and cancels the run.
    """
    start_time = time.time()
    verbose = options.verbose

    def finish(**kwargs: Any) -> UpgradeOutcome:
        return UpgradeOutcome(path=path, duration_seconds=time.time() - start_time, **kwargs)

    # Waiting for a pool slot is a suspension point too
    if cancel.cancelled:
        return finish(decision=Decision.CANCELLED)

    if os.path.basename(path) in options.exclude:
        return finish(decision=Decision.EXCLUDED)

    try:
        record = backend.read_build_info(path, cancel)
    except Cancelled:
        return finish(decision=Decision.CANCELLED)
    except Exception as e:
        error = e if isinstance(e, DiscoveryError) else DiscoveryError(f"{path}: {e}")
        if fatal is not None:
            fatal.record(error)
        cancel.cancel(f"fatal: {error.message}")
        return finish(decision=Decision.DISCOVERY_FAILED, error_message=str(error))

    base = dict(
        package_path=record.package_path,
        module_path=record.module_path,
        current_version=record.current_version,
        go_version=record.go_version,
    )

    if is_pinned(record.current_version):
        return finish(decision=Decision.SKIPPED_PINNED, **base)

    # Latest available is checked per module
    error_message = None
    try:
        target = backend.resolve_latest(record.module_path, cancel)
    except Cancelled:
        return finish(decision=Decision.CANCELLED, **base)
    except Exception as e:
        error = e if isinstance(e, ResolveError) else ResolveError(f"go list ({e})")
        vlog(f"Resolve failed for {record.module_path}: {error}", verbose)
        error_message = str(error)
        target = UNKNOWN_VERSION

    decision = decide(
        record.current_version,
        target,
        record.go_version,
        options.current_go_version,
        options.toolchain_upgrades,
    )
    if not needs_install(decision):
        return finish(decision=decision, target_version=target, error_message=error_message, **base)

    vlog(f"{record.package_path} {record.current_version} -> {target}: installing", verbose)
    try:
        backend.install(record.package_path, cancel)
    except Cancelled:
        return finish(decision=Decision.CANCELLED, target_version=target, **base)
    except Exception as e:
        error = e if isinstance(e, InstallError) else InstallError(f"go install ({e})")
        if fatal is not None:
            fatal.record(error)
        return finish(
            decision=Decision.INSTALL_FAILED,
            target_version=target,
            error_message=str(error),
            **base,
        )

    return finish(decision=Decision.UPGRADED, target_version=target, **base)


def run_upgrades(
    programs: Sequence[str],
    options: RunOptions | None = None,
    cancel: CancelToken | None = None,
    backend: Backend | None = None,
) -> RunResult:
    """
    Upgrade installed programs in parallel.

    Args:
        programs: Executable paths (normally from discovery.list_programs)
        options: Run options (defaults if None)
        cancel: Shared cancellation signal (new one if None)
        backend: External collaborators (go command if None)

    Returns:
        RunResult with one outcome per program. error holds the first
        discovery or install failure; cancellation is never an error.
    """
    if options is None:
        options = RunOptions()
    if cancel is None:
        cancel = CancelToken()
    if backend is None:
        backend = Backend.for_go(verbose=options.verbose)

    start_time = time.time()
    programs = list(programs)
    fatal = _FirstError()
    outcomes: list[UpgradeOutcome] = []

    if not programs:
        vlog("No programs to upgrade", options.verbose)
        return RunResult(
            outcomes=(),
            error=None,
            cancelled=cancel.cancelled,
            duration_seconds=time.time() - start_time,
        )

    max_workers = options.effective_workers()
    vlog(f"Checking {len(programs)} programs with {max_workers} workers...", options.verbose)

    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="go-latest") as executor:
        future_to_path = {
            executor.submit(upgrade_program, path, options, cancel, backend, fatal): path
            for path in programs
        }

        for future in as_completed(future_to_path):
            path = future_to_path[future]
            try:
                outcome = future.result()
            except Exception as e:
                vlog(f"Unexpected error upgrading {path}: {e}", options.verbose)
                error = GoLatestError(f"{path}: unexpected error: {e}")
                fatal.record(error)
                outcome = UpgradeOutcome(
                    path=path,
                    decision=Decision.INSTALL_FAILED,
                    error_message=str(error),
                )
            _report(outcome)
            outcomes.append(outcome)

    return RunResult(
        outcomes=tuple(outcomes),
        error=fatal.error,
        cancelled=cancel.cancelled,
        duration_seconds=time.time() - start_time,
    )
