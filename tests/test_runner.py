"""
Tests for the concurrent upgrade run (go_latest/runner.py).

A FakeGo backend stands in for the go command so the tests can observe
concurrency, cancellation and per-program isolation directly.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import replace

import pytest

from go_latest.common import UNKNOWN_VERSION
from go_latest.decision import Decision
from go_latest.discovery import ProgramRecord
from go_latest.errors import Cancelled, DiscoveryError, InstallError, ResolveError
from go_latest.logging_config import setup_logging
from go_latest.process import CancelToken
from go_latest.runner import (
    Backend,
    RunOptions,
    RunResult,
    UpgradeOutcome,
    run_upgrades,
    upgrade_program,
)


GO = "go1.22.1"


def record(name, version, go_version=GO, module=None):
    module = module or f"example.com/{name}"
    return ProgramRecord(
        path=f"/home/user/go/bin/{name}",
        package_path=f"{module}/cmd/{name}",
        module_path=module,
        current_version=version,
        go_version=go_version,
    )


class FakeGo:
    """In-memory stand-in for go version -m / go list / go install."""

    def __init__(
        self,
        records,
        latest,
        fail_resolve=(),
        fail_install=(),
        broken=(),
        delay=0.0,
        block_install=False,
    ):
        self.records = {r.path: r for r in records}
        self.latest = dict(latest)
        self.fail_resolve = set(fail_resolve)
        self.fail_install = set(fail_install)
        self.broken = set(broken)
        self.delay = delay
        self.block_install = block_install
        self.lock = threading.Lock()
        self.active = 0
        self.max_active = 0
        self.read = []
        self.resolved = []
        self.installed = []

    @property
    def paths(self):
        return list(self.records)

    @contextmanager
    def _busy(self):
        with self.lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            yield
        finally:
            with self.lock:
                self.active -= 1

    def read_build_info(self, path, cancel):
        with self.lock:
            self.read.append(path)
        if path in self.broken:
            raise DiscoveryError(f"{path}: go version exited with code 1", "not a Go executable")
        return self.records[path]

    def resolve_latest(self, module, cancel):
        with self._busy():
            if self.delay:
                cancel.wait(self.delay)
            cancel.raise_if_cancelled()
            with self.lock:
                self.resolved.append(module)
            if module in self.fail_resolve:
                raise ResolveError("go list (exit status 1)", f"go: {module}@latest: not found")
            return self.latest[module]

    def install(self, package, cancel):
        with self._busy():
            if self.block_install:
                cancel.wait(10)
            cancel.raise_if_cancelled()
            with self.lock:
                self.installed.append(package)
            if package in self.fail_install:
                raise InstallError("go install (exit status 1)", "# build failed\nundefined: foo\n")
            with self.lock:
                for path, rec in list(self.records.items()):
                    if rec.package_path == package:
                        self.records[path] = replace(
                            rec,
                            current_version=self.latest[rec.module_path],
                            go_version=GO,
                        )

    def backend(self):
        return Backend(
            read_build_info=self.read_build_info,
            resolve_latest=self.resolve_latest,
            install=self.install,
        )


def outcome_for(result: RunResult, name: str) -> UpgradeOutcome:
    matches = [o for o in result.outcomes if o.name == name]
    assert len(matches) == 1
    return matches[0]


class TestScenario:
    """End-to-end decision scenario over several programs."""

    def setup_method(self):
        self.records = [
            record("a", "v1.0.0"),
            record("b", "v1.0.0"),
            record("c", "(devel)"),
            record("d", "v0.3.0"),
            record("e", "v2.0.0"),
        ]
        self.go = FakeGo(
            self.records,
            latest={
                "example.com/a": "v1.0.0",
                "example.com/b": "v1.1.0",
                "example.com/c": "v9.9.9",
                "example.com/e": "v2.1.0",
            },
            fail_resolve={"example.com/d"},
        )
        self.result = run_upgrades(
            self.go.paths,
            RunOptions(max_workers=2, current_go_version=GO),
            backend=self.go.backend(),
        )

    def test_one_outcome_per_program(self):
        assert len(self.result.outcomes) == 5
        assert sorted(o.name for o in self.result.outcomes) == ["a", "b", "c", "d", "e"]

    def test_already_latest(self):
        a = outcome_for(self.result, "a")
        assert a.decision is Decision.ALREADY_LATEST
        assert a.target_version == "v1.0.0"
        assert "example.com/a/cmd/a" not in self.go.installed

    def test_upgraded(self):
        b = outcome_for(self.result, "b")
        assert b.decision is Decision.UPGRADED
        assert b.current_version == "v1.0.0"
        assert b.target_version == "v1.1.0"
        assert "example.com/b/cmd/b" in self.go.installed

    def test_pinned_skipped_without_resolve(self):
        c = outcome_for(self.result, "c")
        assert c.decision is Decision.SKIPPED_PINNED
        assert c.target_version == UNKNOWN_VERSION
        assert "example.com/c" not in self.go.resolved

    def test_resolve_failure_isolated(self):
        d = outcome_for(self.result, "d")
        assert d.decision is Decision.RESOLVE_FAILED
        assert d.target_version == UNKNOWN_VERSION
        assert "not found" in d.error_message
        assert "example.com/d/cmd/d" not in self.go.installed

    def test_run_continues_after_resolve_failure(self):
        assert outcome_for(self.result, "e").decision is Decision.UPGRADED

    def test_resolve_failure_is_not_fatal(self):
        assert self.result.error is None
        assert self.result.success is True
        assert self.result.cancelled is False

    def test_installs_use_package_path(self):
        assert sorted(self.go.installed) == ["example.com/b/cmd/b", "example.com/e/cmd/e"]


class TestConcurrency:
    """Tests for bounded parallelism."""

    @pytest.mark.parametrize("workers", [1, 2, 3])
    def test_never_exceeds_max_workers(self, workers):
        records = [record(f"p{i}", "v1.0.0") for i in range(9)]
        go = FakeGo(records, {r.module_path: "v1.1.0" for r in records}, delay=0.03)

        result = run_upgrades(go.paths, RunOptions(max_workers=workers), backend=go.backend())

        assert len(result.outcomes) == 9
        assert all(o.decision is Decision.UPGRADED for o in result.outcomes)
        assert 1 <= go.max_active <= workers

    def test_parallel_when_allowed(self):
        """Test several slow queries overlap when workers allow it."""
        records = [record(f"p{i}", "v1.0.0") for i in range(4)]
        go = FakeGo(records, {r.module_path: "v1.0.0" for r in records}, delay=0.2)

        start = time.time()
        run_upgrades(go.paths, RunOptions(max_workers=4), backend=go.backend())
        assert time.time() - start < 0.75

    def test_auto_workers(self, monkeypatch):
        monkeypatch.setattr("go_latest.runner.os.cpu_count", lambda: 6)
        assert RunOptions(max_workers=0).effective_workers() == 6
        assert RunOptions(max_workers=-3).effective_workers() == 6
        assert RunOptions(max_workers=2).effective_workers() == 2

    def test_auto_workers_unknown_cpu_count(self, monkeypatch):
        monkeypatch.setattr("go_latest.runner.os.cpu_count", lambda: None)
        assert RunOptions().effective_workers() == 1


class TestErrorIsolation:
    """Tests for per-program failures and fatal errors."""

    def test_install_failure_fails_run_but_not_siblings(self):
        records = [record("good", "v1.0.0"), record("bad", "v1.0.0"), record("same", "v1.0.0")]
        go = FakeGo(
            records,
            {"example.com/good": "v1.1.0", "example.com/bad": "v1.1.0", "example.com/same": "v1.0.0"},
            fail_install={"example.com/bad/cmd/bad"},
        )
        token = CancelToken()

        result = run_upgrades(go.paths, RunOptions(max_workers=3), token, go.backend())

        bad = outcome_for(result, "bad")
        assert bad.decision is Decision.INSTALL_FAILED
        assert "undefined: foo" in bad.error_message
        assert outcome_for(result, "good").decision is Decision.UPGRADED
        assert outcome_for(result, "same").decision is Decision.ALREADY_LATEST
        assert isinstance(result.error, InstallError)
        assert result.error.output == "# build failed\nundefined: foo\n"
        assert token.cancelled is False

    def test_discovery_failure_is_fatal_and_cancels(self):
        records = [record("broken", "v1.0.0"), record("x", "v1.0.0"), record("y", "v1.0.0")]
        go = FakeGo(
            records,
            {r.module_path: "v1.1.0" for r in records},
            broken={records[0].path},
        )
        token = CancelToken()

        result = run_upgrades(go.paths, RunOptions(max_workers=1), token, go.backend())

        assert len(result.outcomes) == 3
        assert outcome_for(result, "broken").decision is Decision.DISCOVERY_FAILED
        assert outcome_for(result, "x").decision is Decision.CANCELLED
        assert outcome_for(result, "y").decision is Decision.CANCELLED
        assert isinstance(result.error, DiscoveryError)
        assert token.cancelled is True
        assert go.installed == []

    def test_first_fatal_error_kept(self):
        records = [record("b1", "v1.0.0"), record("b2", "v1.0.0")]
        go = FakeGo(
            records,
            {r.module_path: "v1.1.0" for r in records},
            fail_install={"example.com/b1/cmd/b1", "example.com/b2/cmd/b2"},
        )

        result = run_upgrades(go.paths, RunOptions(max_workers=1), backend=go.backend())

        assert isinstance(result.error, InstallError)
        assert len(result.by_decision(Decision.INSTALL_FAILED)) == 2

    def test_unexpected_resolve_exception(self):
        """Test arbitrary query exceptions degrade to RESOLVE_FAILED."""
        rec = record("odd", "v1.0.0")
        backend = Backend(
            read_build_info=lambda path, cancel: rec,
            resolve_latest=lambda module, cancel: (_ for _ in ()).throw(RuntimeError("proxy exploded")),
            install=lambda package, cancel: None,
        )

        outcome = upgrade_program(rec.path, RunOptions(), CancelToken(), backend)
        assert outcome.decision is Decision.RESOLVE_FAILED
        assert "proxy exploded" in outcome.error_message

    def test_unexpected_read_exception_is_fatal(self):
        backend = Backend(
            read_build_info=lambda path, cancel: (_ for _ in ()).throw(PermissionError("denied")),
            resolve_latest=lambda module, cancel: "v1.0.0",
            install=lambda package, cancel: None,
        )
        token = CancelToken()

        result = run_upgrades(["/bin/x"], RunOptions(), token, backend)
        assert result.outcomes[0].decision is Decision.DISCOVERY_FAILED
        assert isinstance(result.error, DiscoveryError)
        assert "denied" in str(result.error)
        assert token.cancelled is True


class TestCancellation:
    """Tests for cooperative cancellation."""

    def test_cancel_in_flight_installs(self):
        records = [record(f"slow{i}", "v1.0.0") for i in range(4)]
        go = FakeGo(records, {r.module_path: "v1.1.0" for r in records}, block_install=True)
        token = CancelToken()
        threading.Timer(0.3, token.cancel, args=("interrupted",)).start()

        start = time.time()
        result = run_upgrades(go.paths, RunOptions(max_workers=4), token, go.backend())

        assert time.time() - start < 5
        assert len(result.outcomes) == 4
        assert all(o.decision is Decision.CANCELLED for o in result.outcomes)
        assert result.error is None
        assert result.cancelled is True

    def test_cancelled_before_start(self):
        records = [record("a", "v1.0.0"), record("b", "v1.0.0")]
        go = FakeGo(records, {r.module_path: "v1.1.0" for r in records})
        token = CancelToken()
        token.cancel()

        result = run_upgrades(go.paths, RunOptions(max_workers=1), token, go.backend())

        assert [o.decision for o in result.outcomes] == [Decision.CANCELLED, Decision.CANCELLED]
        assert go.read == []
        assert result.error is None

    def test_cancelled_during_resolve(self):
        rec = record("a", "v1.0.0")

        def resolve(module, cancel):
            raise Cancelled()

        backend = Backend(lambda p, c: rec, resolve, lambda p, c: None)
        outcome = upgrade_program(rec.path, RunOptions(), CancelToken(), backend)
        assert outcome.decision is Decision.CANCELLED
        assert outcome.error_message is None


class TestToolchainAndExclusion:
    """Tests for toolchain refresh and excluded programs."""

    def test_toolchain_refresh(self):
        rec = record("old", "v1.0.0", go_version="go1.20.3")
        go = FakeGo([rec], {rec.module_path: "v1.0.0"})

        result = run_upgrades(
            go.paths,
            RunOptions(toolchain_upgrades=True, current_go_version=GO),
            backend=go.backend(),
        )

        assert result.outcomes[0].decision is Decision.UPGRADED
        assert go.installed == [rec.package_path]

    def test_toolchain_refresh_disabled(self):
        rec = record("old", "v1.0.0", go_version="go1.20.3")
        go = FakeGo([rec], {rec.module_path: "v1.0.0"})

        result = run_upgrades(go.paths, RunOptions(current_go_version=GO), backend=go.backend())

        assert result.outcomes[0].decision is Decision.ALREADY_LATEST
        assert go.installed == []

    def test_excluded_program_not_inspected(self):
        """Test excluded programs skip build info reading entirely."""
        rec = record("script", "v1.0.0")
        go = FakeGo([rec], {rec.module_path: "v2.0.0"}, broken={rec.path})

        result = run_upgrades(go.paths, RunOptions(exclude=("script",)), backend=go.backend())

        assert result.outcomes[0].decision is Decision.EXCLUDED
        assert result.error is None
        assert go.read == []


class TestIdempotence:
    """Tests for repeated runs without upstream changes."""

    def test_second_run_is_already_latest(self):
        records = [record("a", "v1.0.0"), record("b", "v0.9.0", go_version="go1.19"), record("c", "(devel)")]
        go = FakeGo(records, {r.module_path: "v1.2.0" for r in records})
        options = RunOptions(max_workers=2, toolchain_upgrades=True, current_go_version=GO)

        first = run_upgrades(go.paths, options, backend=go.backend())
        assert len(first.by_decision(Decision.UPGRADED)) == 2

        second = run_upgrades(go.paths, options, backend=go.backend())
        assert len(second.by_decision(Decision.ALREADY_LATEST)) == 2
        assert len(second.by_decision(Decision.SKIPPED_PINNED)) == 1
        assert len(go.installed) == 2


class TestRunResult:
    """Tests for result types."""

    def test_empty_run(self):
        result = run_upgrades([], backend=FakeGo([], {}).backend())
        assert result.outcomes == ()
        assert result.error is None

    def test_counts_and_dict(self):
        outcomes = (
            UpgradeOutcome(path="/bin/a", decision=Decision.UPGRADED, current_version="v1", target_version="v2"),
            UpgradeOutcome(path="/bin/b", decision=Decision.SKIPPED_PINNED),
        )
        result = RunResult(outcomes=outcomes, error=None, cancelled=False, duration_seconds=1.5)

        counts = result.counts()
        assert counts["upgraded"] == 1
        assert counts["skipped-pinned"] == 1
        assert counts["install-failed"] == 0

        d = result.to_dict()
        assert d["error"] is None
        assert d["outcomes"][0]["decision"] == "upgraded"
        assert "Upgraded: 1" in result.summary()
        assert "Skipped: 1" in result.summary()

    def test_error_serialized(self):
        result = RunResult((), InstallError("go install (exit status 1)", "boom"), False, 0.0)
        assert result.to_dict()["error"] == "go install (exit status 1):\nboom"
        assert result.success is False


class TestOutcomeMessages:
    """Tests for one-line outcome reports."""

    def base(self, **kwargs):
        values = dict(
            path="/home/user/go/bin/gopls",
            package_path="golang.org/x/tools/gopls",
            current_version="v0.14.0",
        )
        values.update(kwargs)
        return UpgradeOutcome(**values)

    def test_skip(self):
        assert self.base(decision=Decision.SKIPPED_PINNED).message() == "golang.org/x/tools/gopls v0.14.0 skip"

    def test_already_latest(self):
        outcome = self.base(decision=Decision.ALREADY_LATEST, target_version="v0.14.0")
        assert outcome.message() == "golang.org/x/tools/gopls v0.14.0 already latest"

    def test_upgraded(self):
        outcome = self.base(decision=Decision.UPGRADED, target_version="v0.15.2")
        assert outcome.message() == "golang.org/x/tools/gopls v0.14.0 -> v0.15.2"

    def test_major_upgrade_flagged(self):
        outcome = self.base(decision=Decision.UPGRADED, current_version="v0.9.0", target_version="v1.0.0")
        assert outcome.message().endswith("(major)")

    def test_install_failed(self):
        outcome = self.base(
            decision=Decision.INSTALL_FAILED,
            target_version="v0.15.2",
            error_message="go install (exit status 1):\nboom",
        )
        assert outcome.message().startswith("golang.org/x/tools/gopls v0.14.0 -> v0.15.2 failed")

    def test_label_falls_back_to_path(self):
        outcome = UpgradeOutcome(path="/bin/x", decision=Decision.CANCELLED)
        assert outcome.message() == "/bin/x cancelled"


class TestReporting:
    """Tests that each outcome is logged as one record."""

    def test_outcome_lines_logged(self, caplog):
        setup_logging(propagate=True)
        records = [record("a", "v1.0.0"), record("b", "v1.0.0")]
        go = FakeGo(records, {"example.com/a": "v1.0.0", "example.com/b": "v1.1.0"}, fail_install={"example.com/b/cmd/b"})

        with caplog.at_level(logging.INFO, logger="go_latest"):
            run_upgrades(go.paths, RunOptions(max_workers=2), backend=go.backend())

        messages = {r.getMessage(): r.levelno for r in caplog.records if r.name == "go_latest"}
        assert messages["example.com/a/cmd/a v1.0.0 already latest"] == logging.INFO
        failed = [m for m in messages if m.startswith("example.com/b/cmd/b v1.0.0 -> v1.1.0 failed")]
        assert len(failed) == 1
        assert "undefined: foo" in failed[0]
        assert messages[failed[0]] == logging.ERROR


class TestBackendForGo:
    """Tests for the go command backend."""

    def test_partials(self):
        backend = Backend.for_go(go_binary="go1.22.1", workdir="/tmp/w", resolve_timeout=10, install_timeout=20)
        assert backend.read_build_info.keywords["go_binary"] == "go1.22.1"
        assert backend.resolve_latest.keywords["workdir"] == "/tmp/w"
        assert backend.resolve_latest.keywords["timeout"] == 10
        assert backend.install.keywords["timeout"] == 20
