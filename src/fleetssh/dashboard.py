"""TUI Dashboard for fleetssh."""

from __future__ import annotations

from typing import Any, Awaitable, Callable

from rich.markup import escape
from textual.app import App, ComposeResult
from textual.message import Message
from textual.reactive import reactive
from textual.widgets import Footer, Header, RichLog, Static
from textual.worker import Worker, WorkerState

from .pipeline import Response, format_duration
from .progress import ProgressReporter

# The job gets a reporter that feeds the dashboard.
Job = Callable[[ProgressReporter], Awaitable[Any]]


class StatusBar(Static):
    """Bottom status bar showing overall progress."""

    completed: reactive[int] = reactive(0)
    total: reactive[int] = reactive(0)
    ok: reactive[int] = reactive(0)
    failed: reactive[int] = reactive(0)
    running: reactive[bool] = reactive(True)

    def render(self) -> str:
        status = "Running..." if self.running else "Complete"
        return (
            f"Progress: {self.completed}/{self.total} hosts | OK: {self.ok} | "
            f"Failed: {self.failed} | {status} | Press 'q' to quit"
        )


class HostOutcome(Message):
    """Message for one finished host."""

    def __init__(self, response: Response, ok: int, error: int) -> None:
        super().__init__()
        self.response = response
        self.ok = ok
        self.error = error


class DashboardReporter:
    """Forwards sink progress to the dashboard as messages."""

    def __init__(self, app: App) -> None:
        self.app = app

    def update(self, response: Response, ok: int, error: int) -> None:
        self.app.post_message(HostOutcome(response, ok, error))

    def close(self) -> None:
        pass


class Dashboard(App):
    """Live view of a fan-out: a log of finished hosts and running tallies."""

    CSS = """
    #outcomes {
        height: 1fr;
        border: solid $primary;
        padding: 0 1;
    }

    StatusBar {
        dock: bottom;
        height: 1;
        background: $surface;
        padding: 0 1;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("escape", "quit", "Quit"),
    ]

    def __init__(self, job: Job, host_count: int, **kwargs) -> None:
        super().__init__(**kwargs)
        self.job = job
        self.host_count = host_count
        self.job_result: Any = None
        self.reporter = DashboardReporter(self)
        self._worker: Worker | None = None

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        yield RichLog(id="outcomes", highlight=True, markup=True, wrap=True, auto_scroll=True)
        yield StatusBar(id="status-bar")
        yield Footer()

    def on_mount(self) -> None:
        """Start the job when the app mounts."""
        status_bar = self.query_one("#status-bar", StatusBar)
        status_bar.total = self.host_count
        self._worker = self.run_worker(self._run_job(), exclusive=True)

    async def _run_job(self) -> Any:
        self.job_result = await self.job(self.reporter)
        return self.job_result

    def on_worker_state_changed(self, event: Worker.StateChanged) -> None:
        """Handle worker completion."""
        if event.worker == self._worker and event.state == WorkerState.SUCCESS:
            status_bar = self.query_one("#status-bar", StatusBar)
            status_bar.running = False

    def on_host_outcome(self, message: HostOutcome) -> None:
        """Handle HostOutcome message in main thread."""
        response = message.response
        log = self.query_one("#outcomes", RichLog)
        took = format_duration(response.process_time)
        if response.status:
            log.write(f"[green]OK[/green] [bold]{escape(response.hostname)}[/bold] ({took})")
        else:
            log.write(
                f"[bold red]FAIL[/bold red] [bold]{escape(response.hostname)}[/bold] "
                f"({took}) [red]{escape(response.result)}[/red]"
            )

        status_bar = self.query_one("#status-bar", StatusBar)
        status_bar.completed += 1
        status_bar.ok = message.ok
        status_bar.failed = message.error

    async def action_quit(self) -> None:
        """Quit the application."""
        if self._worker and self._worker.is_running:
            self._worker.cancel()
        self.exit()
