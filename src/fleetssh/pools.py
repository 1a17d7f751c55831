"""Bounded admission pools gating sessions and agent authentications."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

from .config import RunConfig


class AdmissionPool:
    """A counting pool of tickets.

    Waiters are served in FIFO order by the underlying semaphore. The
    counters are only touched from the event loop thread.
    """

    def __init__(self, name: str, capacity: int):
        if capacity < 1:
            raise ValueError(f"{name} pool capacity must be at least 1")
        self.name = name
        self.capacity = capacity
        self._semaphore = asyncio.Semaphore(capacity)
        self.in_use = 0
        self.peak = 0
        self.acquired = 0
        self.released = 0

    async def acquire(self) -> None:
        await self._semaphore.acquire()
        self.in_use += 1
        self.acquired += 1
        self.peak = max(self.peak, self.in_use)

    def release(self) -> None:
        self.in_use -= 1
        self.released += 1
        self._semaphore.release()

    @asynccontextmanager
    async def ticket(self) -> AsyncIterator[None]:
        """Hold one ticket for the duration of the block."""
        await self.acquire()
        try:
            yield
        finally:
            self.release()

    @property
    def balanced(self) -> bool:
        return self.in_use == 0 and self.acquired == self.released

    def __repr__(self) -> str:
        return (
            f"AdmissionPool({self.name!r}, capacity={self.capacity}, "
            f"in_use={self.in_use}, peak={self.peak})"
        )


class AdmissionPools:
    """The session pool and the agent-authentication pool."""

    def __init__(self, sessions: int, agent_auths: int):
        self.sessions = AdmissionPool("session", sessions)
        self.agent_auths = AdmissionPool("agent", agent_auths)

    @classmethod
    def from_config(cls, run: RunConfig) -> AdmissionPools:
        return cls(run.max_concurrent_sessions, run.max_concurrent_agent_auths)

    @property
    def balanced(self) -> bool:
        return self.sessions.balanced and self.agent_auths.balanced
