"""Per-host session pipeline."""

from __future__ import annotations

import asyncio
import logging
import time
from concurrent.futures import Executor as ThreadExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from .config import RunConfig
from .errors import PipelineError, Stage, UpstreamCode, UpstreamError
from .hosts import HostAddress
from .pools import AdmissionPools
from .transport import ParamikoSession

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Progress of one host through the pipeline."""

    INIT = "init"
    RESOLVED = "resolved"
    CONNECTED = "connected"
    HANDSHAKE_DONE = "handshake_done"
    AGENT_AUTHENTICATED = "agent_authenticated"
    CHANNEL_OPEN = "channel_open"
    EXECUTING = "executing"
    OUTPUT_COLLECTED = "output_collected"
    DONE = "done"
    FAILED = "failed"


def format_duration(seconds: float) -> str:
    return f"{seconds:.6f}s"


def parse_duration(text: str) -> float:
    if not text.endswith("s"):
        raise ValueError(f"not a duration: {text!r}")
    return float(text[:-1])


@dataclass
class Response:
    """Outcome of one host's pipeline.

    ``result`` holds the command's stdout when ``status`` is True and the
    stage-tagged failure message otherwise.
    """

    result: str
    hostname: str
    process_time: float
    status: bool
    failure: PipelineError | None = field(default=None, compare=False, repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "result": self.result,
            "hostname": self.hostname,
            "process_time": format_duration(self.process_time),
            "status": self.status,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Response:
        return cls(
            result=data["result"],
            hostname=data["hostname"],
            process_time=parse_duration(data["process_time"]),
            status=bool(data["status"]),
        )


# Type alias for state callback
StateCallback = Callable[[str, SessionState], None]  # (hostname, state) -> None


class SessionPipeline:
    """Runs the full remote-execution sequence for one host at a time.

    One instance is shared by every host of a fan-out; it holds only
    read-only state, so any number of ``run`` calls may be in flight.
    """

    def __init__(
        self,
        command: str,
        run: RunConfig,
        pools: AdmissionPools,
        username: str = "root",
        session_factory: Callable[[], Any] = ParamikoSession,
        thread_pool: ThreadExecutor | None = None,
        on_state: StateCallback | None = None,
    ):
        self.command = command
        self.run_config = run
        self.pools = pools
        self.username = username
        self.session_factory = session_factory
        self.thread_pool = thread_pool
        self.on_state = on_state

    def _emit_state(self, hostname: str, state: SessionState) -> None:
        logger.debug("%s: %s", hostname, state.value)
        if self.on_state:
            self.on_state(hostname, state)

    async def run(self, host: HostAddress) -> Response:
        """Process one host. Never raises for per-host failures."""
        start = time.monotonic()
        hostname = str(host)
        self._emit_state(hostname, SessionState.INIT)
        try:
            output = await self._process(host, hostname)
        except PipelineError as e:
            self._emit_state(hostname, SessionState.FAILED)
            logger.info("%s failed: %s", hostname, e.message)
            return Response(
                result=e.message,
                hostname=hostname,
                process_time=_elapsed(start),
                status=False,
                failure=e,
            )

        self._emit_state(hostname, SessionState.DONE)
        return Response(
            result=output,
            hostname=hostname,
            process_time=_elapsed(start),
            status=True,
        )

    async def _process(self, host: HostAddress, hostname: str) -> str:
        loop = asyncio.get_running_loop()

        async with self.pools.sessions.ticket():
            session = self.session_factory()
            closed = False
            try:
                family, sockaddr = await self._stage(
                    Stage.RESOLVE, None, session.resolve, host.host, host.port
                )
                self._emit_state(hostname, SessionState.RESOLVED)

                await self._stage(
                    Stage.CONNECT,
                    None,
                    session.connect,
                    family,
                    sockaddr,
                    self.run_config.socket_timeout,
                )
                self._emit_state(hostname, SessionState.CONNECTED)

                await self._stage(
                    Stage.SESSION_INIT, None, session.start, self.run_config.session_timeout
                )
                # One ceiling for everything that follows.
                deadline = loop.time() + self.run_config.session_timeout

                await self._stage(Stage.HANDSHAKE, deadline, session.handshake)
                self._emit_state(hostname, SessionState.HANDSHAKE_DONE)

                async with self.pools.agent_auths.ticket():
                    try:
                        await self._stage(Stage.AGENT_CONNECT, deadline, session.connect_agent)
                        await self._stage(
                            Stage.AGENT_AUTH, deadline, session.authenticate, self.username
                        )
                    except PipelineError as e:
                        if e.code is UpstreamCode.TIMEOUT:
                            # The abandoned worker still holds the agent socket.
                            await self._close(session, hostname)
                            closed = True
                        raise
                self._emit_state(hostname, SessionState.AGENT_AUTHENTICATED)

                await self._stage(Stage.CHANNEL_OPEN, deadline, session.open_channel)
                self._emit_state(hostname, SessionState.CHANNEL_OPEN)

                await self._stage(Stage.EXECUTE, deadline, session.execute, self.command)
                self._emit_state(hostname, SessionState.EXECUTING)

                output = await self._stage(Stage.READ, deadline, session.read_output)
                self._emit_state(hostname, SessionState.OUTPUT_COLLECTED)
                return output
            finally:
                if not closed:
                    await self._close(session, hostname)

    async def _stage(
        self,
        stage: Stage,
        deadline: float | None,
        fn: Callable[..., Any],
        *args: Any,
    ) -> Any:
        """Run one blocking stage in a worker thread, tagging any failure."""
        loop = asyncio.get_running_loop()
        try:
            if deadline is None:
                return await loop.run_in_executor(self.thread_pool, fn, *args)
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise asyncio.TimeoutError()
            return await asyncio.wait_for(
                loop.run_in_executor(self.thread_pool, fn, *args), remaining
            )
        except UpstreamError as e:
            raise PipelineError(stage, e.detail, e.code) from e
        except (asyncio.TimeoutError, TimeoutError) as e:
            detail = str(e) or f"timed out after {self.run_config.session_timeout:g}s"
            raise PipelineError(stage, detail, UpstreamCode.TIMEOUT) from e
        except Exception as e:
            raise PipelineError(stage, str(e) or type(e).__name__) from e

    async def _close(self, session: Any, hostname: str) -> None:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(self.thread_pool, session.close)
        except Exception:
            # The outcome is already decided; a failed close must not change it.
            logger.warning("%s: error closing session", hostname, exc_info=True)


def _elapsed(start: float) -> float:
    return round(max(time.monotonic() - start, 0.0), 6)
