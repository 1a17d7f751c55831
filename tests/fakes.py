"""Scripted SSH sessions for testing without real hosts."""

from __future__ import annotations

import socket
import threading
import time

from fleetssh.pools import AdmissionPools

STAGE_METHODS = (
    "resolve",
    "connect",
    "start",
    "handshake",
    "connect_agent",
    "authenticate",
    "open_channel",
    "execute",
    "read_output",
)


class FakeFleet:
    """Factory and bookkeeper for FakeSession instances.

    ``failures`` maps a stage method name to the exception every session
    raises there; ``host_failures`` does the same for a single host.
    ``delays`` maps host to seconds slept in every stage; ``stage_delays``
    maps a stage method name to seconds slept there by every session.
    """

    def __init__(
        self,
        failures: dict[str, Exception] | None = None,
        host_failures: dict[str, tuple[str, Exception]] | None = None,
        delays: dict[str, float] | None = None,
        default_delay: float = 0.0,
        stage_delays: dict[str, float] | None = None,
    ):
        self.failures = failures or {}
        self.host_failures = host_failures or {}
        self.delays = delays or {}
        self.default_delay = default_delay
        self.stage_delays = stage_delays or {}
        self.pools: AdmissionPools | None = None
        self._lock = threading.Lock()
        self.created = 0
        self.closed = 0
        self.active = 0
        self.peak_active = 0
        self.agent_in_use_at_channel_open: list[int] = []
        self.agent_in_use_at_close: list[int] = []
        self.commands: list[str] = []

    def session(self) -> FakeSession:
        with self._lock:
            self.created += 1
        return FakeSession(self)

    def _enter(self) -> None:
        with self._lock:
            self.active += 1
            self.peak_active = max(self.peak_active, self.active)

    def _leave(self) -> None:
        with self._lock:
            self.active -= 1
            self.closed += 1


class FakeSession:
    def __init__(self, fleet: FakeFleet):
        self.fleet = fleet
        self.host: str | None = None
        self.command: str | None = None

    def _step(self, name: str) -> None:
        delay = self.fleet.stage_delays.get(name) or self.fleet.delays.get(
            self.host, self.fleet.default_delay
        )
        if delay:
            time.sleep(delay)
        host_failure = self.fleet.host_failures.get(self.host)
        if host_failure and host_failure[0] == name:
            raise host_failure[1]
        if name in self.fleet.failures:
            raise self.fleet.failures[name]

    def resolve(self, host: str, port: int) -> tuple[int, tuple]:
        self.host = host
        self.fleet._enter()
        self._step("resolve")
        return socket.AF_INET, (host, port)

    def connect(self, family: int, sockaddr: tuple, timeout: float) -> None:
        self._step("connect")

    def start(self, timeout: float) -> None:
        self._step("start")

    def handshake(self) -> None:
        self._step("handshake")

    def connect_agent(self) -> None:
        self._step("connect_agent")

    def authenticate(self, username: str) -> None:
        self._step("authenticate")

    def open_channel(self) -> None:
        if self.fleet.pools is not None:
            self.fleet.agent_in_use_at_channel_open.append(
                self.fleet.pools.agent_auths.in_use
            )
        self._step("open_channel")

    def execute(self, command: str) -> None:
        self.command = command
        self.fleet.commands.append(command)
        self._step("execute")

    def read_output(self) -> str:
        self._step("read_output")
        return f"ran {self.command!r} on {self.host}"

    def close(self) -> None:
        if self.fleet.pools is not None:
            self.fleet.agent_in_use_at_close.append(self.fleet.pools.agent_auths.in_use)
        if self.host is not None:
            self.fleet._leave()
        else:
            with self.fleet._lock:
                self.fleet.closed += 1
