"""Progress reporting for the result sink."""

from __future__ import annotations

from typing import Protocol

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    TaskID,
    TextColumn,
    TimeRemainingColumn,
)

from .pipeline import Response


class ProgressReporter(Protocol):
    """Receives one update per consumed outcome."""

    def update(self, response: Response, ok: int, error: int) -> None: ...

    def close(self) -> None: ...


class RichProgress:
    """A progress bar with running ok/failed tallies."""

    def __init__(self, total: int, console: Console | None = None):
        self._progress = Progress(
            TimeRemainingColumn(),
            BarColumn(),
            TextColumn("Hosts processed:"),
            MofNCompleteColumn(),
            TextColumn("{task.fields[tally]}"),
            console=console,
        )
        self._task: TaskID = self._progress.add_task(
            "hosts", total=total, tally="OK: 0, Failed: 0"
        )
        self._progress.start()

    def update(self, response: Response, ok: int, error: int) -> None:
        self._progress.update(
            self._task, advance=1, tally=f"OK: {ok}, Failed: {error}"
        )

    def close(self) -> None:
        self._progress.stop()
