"""Result sink: classify outcomes, persist them incrementally, count progress."""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, AsyncIterable

from .config import OutputConfig
from .errors import is_local_side
from .hosts import bare_host
from .pipeline import Response
from .progress import ProgressReporter

logger = logging.getLogger(__name__)


@dataclass
class ProgressCounters:
    ok_count: int = 0
    error_count: int = 0

    @property
    def total(self) -> int:
        return self.ok_count + self.error_count


@dataclass
class SinkSummary:
    """What a finished (or interrupted) consumption produced."""

    results: list[Response] = field(default_factory=list)
    counters: ProgressCounters = field(default_factory=ProgressCounters)
    diverted: list[str] = field(default_factory=list)
    results_path: Path | None = None
    ledger_path: Path | None = None
    complete: bool = False


class ResultSink:
    """Consumes the completion stream of a fan-out.

    Successes and remote failures go to a JSON array that is flushed after
    every record, so the file can be inspected while the run is going. The
    array is only closed once the stream is exhausted. Failures caused on
    our side are set aside as bare hostnames in a plain-text ledger meant
    to be fed back as a host list; an empty ledger is removed.
    """

    def __init__(
        self,
        store_dir: str | Path,
        name: str,
        reporter: ProgressReporter | None = None,
        pretty: bool = True,
        today: datetime | None = None,
    ):
        today = today or datetime.now(timezone.utc)
        self.work_dir = Path(store_dir) / today.strftime("%d_%B_%Y")
        self.results_path = self.work_dir / f"incremental_{name}.json"
        self.ledger_path = self.work_dir / f"failed_hosts_{name}.txt"
        self.reporter = reporter
        self.pretty = pretty
        self.counters = ProgressCounters()
        self._results_file: IO[str] | None = None
        self._ledger_file: IO[str] | None = None

    def _open_files(self) -> tuple[IO[str] | None, IO[str] | None]:
        try:
            self.work_dir.mkdir(parents=True, exist_ok=True)
            results_file = open(self.results_path, "w")
        except OSError as e:
            logger.error("incremental saving disabled: %s", e)
            return None, None
        try:
            ledger_file = open(self.ledger_path, "w")
        except OSError as e:
            logger.error("failed-hosts ledger disabled: %s", e)
            ledger_file = None
        return results_file, ledger_file

    async def consume(self, outcomes: AsyncIterable[Response]) -> SinkSummary:
        summary = SinkSummary(counters=self.counters)
        self._results_file, self._ledger_file = self._open_files()
        if self._results_file is not None:
            summary.results_path = self.results_path
        if self._ledger_file is not None:
            summary.ledger_path = self.ledger_path

        first = True
        try:
            self._write_results("[", summary)

            async for response in outcomes:
                if response.status:
                    self.counters.ok_count += 1
                else:
                    self.counters.error_count += 1

                if not response.status and is_local_side(response.failure):
                    host = bare_host(response.hostname)
                    summary.diverted.append(host)
                    self._write_ledger(host + "\n", summary)
                else:
                    summary.results.append(response)
                    self._write_results(
                        ("\n" if first else ",\n") + self._dump(response), summary
                    )
                    first = False

                if self.reporter:
                    self.reporter.update(
                        response, self.counters.ok_count, self.counters.error_count
                    )

            self._write_results("\n]\n", summary)
            summary.complete = True
        finally:
            if self._results_file is not None:
                _close_quietly(self._results_file)
                self._results_file = None
            if self._ledger_file is not None:
                _close_quietly(self._ledger_file)
                self._ledger_file = None
                if not summary.diverted:
                    self.ledger_path.unlink(missing_ok=True)
                    summary.ledger_path = None
            if self.reporter:
                self.reporter.close()

        logger.info(
            "consumed %d outcomes: %d ok, %d failed, %d set aside for retry",
            self.counters.total,
            self.counters.ok_count,
            self.counters.error_count,
            len(summary.diverted),
        )
        return summary

    def _write_results(self, text: str, summary: SinkSummary) -> None:
        if self._results_file is None:
            return
        try:
            self._results_file.write(text)
            self._results_file.flush()
        except OSError as e:
            logger.error("incremental saving stopped, results kept in memory: %s", e)
            _close_quietly(self._results_file)
            self._results_file = None
            summary.results_path = None

    def _write_ledger(self, text: str, summary: SinkSummary) -> None:
        if self._ledger_file is None:
            return
        try:
            self._ledger_file.write(text)
            self._ledger_file.flush()
        except OSError as e:
            logger.error("failed-hosts ledger stopped: %s", e)
            _close_quietly(self._ledger_file)
            self._ledger_file = None
            summary.ledger_path = None

    def _dump(self, response: Response) -> str:
        return json.dumps(response.to_dict(), indent=2 if self.pretty else None)


def _close_quietly(f: IO[str]) -> None:
    try:
        f.close()
    except OSError as e:
        logger.debug("error closing %s: %s", getattr(f, "name", f), e)


def render_results(results: list[Response], pretty: bool = False) -> str:
    return json.dumps([r.to_dict() for r in results], indent=2 if pretty else None)


def save_to_console(
    results: list[Response], output: OutputConfig, stream: IO[str] | None = None
) -> None:
    print(render_results(results, output.pretty_format), file=stream or sys.stdout)


def save_to_file(
    results: list[Response], output: OutputConfig, stream: IO[str] | None = None
) -> bool:
    """Write results to ``output.filename``; fall back to the console on failure."""
    if not output.filename:
        print("Filename to save is not given. Printing to stdout.", file=sys.stderr)
        save_to_console(results, output, stream)
        return False

    try:
        with open(output.filename, "w") as f:
            f.write(render_results(results, output.pretty_format))
    except OSError as e:
        print(f"Error saving content to file: {e}", file=sys.stderr)
        save_to_console(results, output, stream)
        return False

    print(f"Saved successfully to {output.filename}", file=sys.stderr)
    return True


def write_results(
    results: list[Response], output: OutputConfig, stream: IO[str] | None = None
) -> bool:
    """Write the final report. Returns True if it went to a file."""
    if output.save_to_file:
        return save_to_file(results, output, stream)
    save_to_console(results, output, stream)
    return False
