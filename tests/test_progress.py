"""Tests for the rich progress reporter."""

from __future__ import annotations

import io

from rich.console import Console

from fleetssh.pipeline import Response
from fleetssh.progress import RichProgress


def test_progress_advances_and_shows_tally():
    console = Console(file=io.StringIO(), force_terminal=False, width=120)
    progress = RichProgress(3, console=console)

    progress.update(Response("up", "10.0.0.1:22", 0.1, True), 1, 0)
    progress.update(Response("down", "10.0.0.2:22", 0.1, False), 1, 1)
    progress.close()

    task = progress._progress.tasks[0]
    assert task.completed == 2
    assert task.total == 3
    assert task.fields["tally"] == "OK: 1, Failed: 1"
