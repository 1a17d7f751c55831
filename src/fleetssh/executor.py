"""Fan-out engine: one session pipeline per host, results in completion order."""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, AsyncIterator, Callable, Iterable

from .config import RunConfig
from .hosts import HostAddress
from .pipeline import Response, SessionPipeline, StateCallback
from .pools import AdmissionPools
from .transport import ParamikoSession

logger = logging.getLogger(__name__)


class Executor:
    """Manages SSH execution across many hosts."""

    def __init__(
        self,
        run: RunConfig,
        username: str = "root",
        session_factory: Callable[[], Any] = ParamikoSession,
        on_state: StateCallback | None = None,
    ):
        self.run_config = run
        self.username = username
        self.session_factory = session_factory
        self.on_state = on_state
        self.pools: AdmissionPools | None = None

    async def stream(
        self, hosts: Iterable[HostAddress], command: str
    ) -> AsyncIterator[Response]:
        """Yield one Response per host, first finished first.

        Pipelines are never cancelled: if the consumer stops early, closing
        the generator waits for every launched pipeline before returning.
        """
        hosts = list(hosts)
        pools = AdmissionPools.from_config(self.run_config)
        self.pools = pools
        # A timed-out stage may still occupy a thread while its close runs.
        thread_pool = ThreadPoolExecutor(
            max_workers=2 * self.run_config.max_concurrent_sessions,
            thread_name_prefix="fleetssh",
        )
        pipeline = SessionPipeline(
            command,
            self.run_config,
            pools,
            username=self.username,
            session_factory=self.session_factory,
            thread_pool=thread_pool,
            on_state=self.on_state,
        )

        logger.info(
            "starting fan-out over %d hosts (sessions=%d, agent auths=%d)",
            len(hosts),
            self.run_config.max_concurrent_sessions,
            self.run_config.max_concurrent_agent_auths,
        )
        tasks = [asyncio.ensure_future(pipeline.run(host)) for host in hosts]
        try:
            for next_done in asyncio.as_completed(tasks):
                yield await next_done
        finally:
            await asyncio.gather(*tasks, return_exceptions=True)
            thread_pool.shutdown(wait=False)
            logger.info("fan-out finished")

    async def run_all(
        self, hosts: Iterable[HostAddress], command: str
    ) -> list[Response]:
        """Run the command on all hosts and collect every Response."""
        return [response async for response in self.stream(hosts, command)]
