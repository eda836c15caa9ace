#!/usr/bin/env python3
"""
go-latest - Install the latest version of go install'd programs in GOBIN.

Usage:
    latest.py             # Upgrade every outdated program
    latest.py -j 4        # Limit to 4 parallel workers
    latest.py -go         # Also rebuild programs built with an older Go
    latest.py -v          # Print version and exit
"""

import argparse
import signal
import sys
import tempfile

from go_latest import __version__
from go_latest.config import load_config
from go_latest.decision import Decision
from go_latest.discovery import list_programs
from go_latest.environment import detect_environment
from go_latest.errors import DiscoveryError, InstallError
from go_latest.logging_config import setup_logging
from go_latest.process import CancelToken
from go_latest.render import render_json, render_summary
from go_latest.runner import Backend, RunOptions, RunResult, run_upgrades


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="go-latest",
        description="Install the latest version of go install'd programs in GOBIN.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-v",
        dest="show_version",
        action="store_true",
        help="Print version and exit",
    )
    parser.add_argument(
        "-j",
        dest="jobs",
        type=int,
        default=None,
        help="Number of parallel workers, defaults to number of CPUs",
    )
    parser.add_argument(
        "-go",
        dest="go",
        action="store_true",
        help="Re-install programs not built with the current version of Go",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a configuration file",
    )
    parser.add_argument(
        "--gobin",
        default="",
        help="Program directory (overrides config, GOBIN and GOPATH)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Verbose output",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Only print warnings and errors",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Also write a debug log to this file",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print outcomes as JSON",
    )
    parser.add_argument(
        "--summary",
        action="store_true",
        help="Print a summary table after the run",
    )
    return parser


def failure_message(result: RunResult) -> str:
    if isinstance(result.error, InstallError):
        failed = len(result.by_decision(Decision.INSTALL_FAILED))
        return f"upgrade failed: {failed} program(s) could not be installed"
    return str(result.error)


def main(argv=None) -> int:
    """Main entry point for go-latest."""
    args = build_parser().parse_args(argv)

    if args.show_version:
        print(__version__)
        return 0

    # JSON output owns stdout
    quiet = args.quiet or args.json
    logger = setup_logging(verbose=args.verbose, quiet=quiet, log_file=args.log_file)

    try:
        config = load_config(args.config, verbose=args.verbose)
        env = detect_environment(config, gobin_override=args.gobin, verbose=args.verbose)
        programs = list_programs(env.gobin, verbose=args.verbose)
    except (ValueError, DiscoveryError) as e:
        logger.error(str(e))
        return 1

    prefs = config.preferences
    options = RunOptions(
        max_workers=args.jobs if args.jobs is not None else prefs.max_workers,
        toolchain_upgrades=args.go or prefs.toolchain_upgrades,
        current_go_version=env.go_version,
        exclude=config.exclude,
        verbose=args.verbose,
    )

    cancel = CancelToken()

    def on_signal(signum, frame):
        cancel.cancel(f"interrupted by signal {signum}")

    previous = {sig: signal.signal(sig, on_signal) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        # A go.mod in the caller's directory must not affect go list / go install
        with tempfile.TemporaryDirectory(prefix="go-latest-") as workdir:
            backend = Backend.for_go(
                go_binary=env.go_binary,
                workdir=workdir,
                resolve_timeout=prefs.resolve_timeout_seconds,
                install_timeout=prefs.install_timeout_seconds,
                verbose=args.verbose,
            )
            result = run_upgrades(programs, options, cancel, backend)
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    if args.json:
        print(render_json(result))
    if args.summary:
        print(render_summary(result.outcomes))
        print(result.summary())

    if result.error is not None:
        logger.error(failure_message(result))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
