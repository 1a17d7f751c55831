#!/usr/bin/env python3
"""Main entry point for fleetssh."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .benchmark import CalibrationStep, Calibrator
from .config import Config, load_config
from .dashboard import Dashboard
from .errors import ConfigurationError
from .executor import Executor
from .hosts import HostAddress, load_hosts, load_kv_hosts
from .progress import ProgressReporter, RichProgress
from .sink import ResultSink, SinkSummary, write_results


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Run one command on many SSH hosts concurrently"
    )
    parser.add_argument("config", type=Path, help="Path to YAML configuration file")
    parser.add_argument("hosts", type=Path, help="Host list, one address per line")
    parser.add_argument("-c", "--command", help="Override the command from config")
    parser.add_argument(
        "--kv",
        action="store_true",
        help="Host list is a two-column 'address,label' CSV file",
    )
    parser.add_argument(
        "--benchmark",
        action="store_true",
        help="Search for a safe concurrency level instead of running the command",
    )
    parser.add_argument(
        "--dashboard",
        action="store_true",
        help="Run with the TUI dashboard",
    )
    parser.add_argument("-o", "--output", help="Write the report to this file")
    parser.add_argument("--pretty", action="store_true", help="Indent the JSON report")
    parser.add_argument(
        "--progress",
        action="store_true",
        help="Show a progress bar while running",
    )
    parser.add_argument(
        "-v", "--verbose", action="count", default=0, help="More logging (repeatable)"
    )
    args = parser.parse_args(argv)

    _setup_logging(args.verbose)

    # Load configuration
    try:
        config = load_config(args.config)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    if args.command:
        config.command = args.command
    if args.output:
        config.output.save_to_file = True
        config.output.filename = args.output
    if args.pretty:
        config.output.pretty_format = True
    if args.progress:
        config.output.show_progress = True

    try:
        if args.kv:
            hosts = list(load_kv_hosts(args.hosts, config.port))
        else:
            hosts = load_hosts(args.hosts, config.port)
    except (OSError, UnicodeDecodeError) as e:
        print(f"Error reading host list: {e}", file=sys.stderr)
        return 1

    if args.benchmark:
        return _run_benchmark(config, hosts)

    if not config.command:
        print("Error: no command given in config or on the command line", file=sys.stderr)
        return 1

    name = args.hosts.stem
    if args.dashboard:
        app = Dashboard(
            lambda reporter: _fan_out(config, hosts, name, reporter),
            host_count=len(hosts),
        )
        app.run()
        summary = app.job_result
        if summary is None:
            print("Run interrupted before completion", file=sys.stderr)
            return 1
    else:
        reporter = RichProgress(len(hosts)) if config.output.show_progress else None
        summary = asyncio.run(_fan_out(config, hosts, name, reporter))

    return _finish(config, summary)


def _setup_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity > 1:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


async def _fan_out(
    config: Config,
    hosts: list[HostAddress],
    name: str,
    reporter: ProgressReporter | None,
) -> SinkSummary:
    executor = Executor(config.run, username=config.user)
    sink = ResultSink(
        config.store_dir, name, reporter=reporter, pretty=config.output.pretty_format
    )
    return await sink.consume(executor.stream(hosts, config.command))


def _finish(config: Config, summary: SinkSummary) -> int:
    write_results(summary.results, config.output)

    if summary.results_path and summary.complete and not config.output.keep_incremental_data:
        summary.results_path.unlink(missing_ok=True)

    counters = summary.counters
    print(f"OK: {counters.ok_count}, Failed: {counters.error_count}", file=sys.stderr)
    if summary.ledger_path:
        print(
            f"{len(summary.diverted)} hosts failed on our side, "
            f"retry list: {summary.ledger_path}",
            file=sys.stderr,
        )
    elif summary.diverted:
        print(f"{len(summary.diverted)} hosts failed on our side:", file=sys.stderr)
        for host in summary.diverted:
            print(host, file=sys.stderr)
    return 1 if counters.error_count else 0


def _run_benchmark(config: Config, hosts: list[HostAddress]) -> int:
    """Probe increasing concurrency levels and print the recommendation."""

    def on_step(step: CalibrationStep) -> None:
        print(
            f"With rate limit {step.concurrency} there is {step.rate:.2f} error rate "
            f"({step.overloaded}/{step.probed} hosts)."
        )

    calibrator = Calibrator(
        config.run,
        max_concurrency=config.run.max_concurrent_sessions,
        executor_factory=lambda run: Executor(run, username=config.user),
        command=config.command,
        on_step=on_step,
    )

    print("Benchmark started")
    try:
        result = asyncio.run(calibrator.run(hosts))
    except ConfigurationError as e:
        print(str(e), file=sys.stderr)
        return 1

    if not result.steps:
        print(
            f"max_concurrent_sessions ({calibrator.max_concurrency}) is below the "
            f"starting benchmark level ({calibrator.start_concurrency}), nothing was tested"
        )
        return 1
    if result.recommended is None:
        print("No tested concurrency level stayed under the overload threshold")
        return 1
    print(f"Recommended max_concurrent_sessions: {result.recommended}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
