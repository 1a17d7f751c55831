"""Tests for the fan-out engine."""

from __future__ import annotations

from contextlib import aclosing

import pytest

from fleetssh.config import RunConfig
from fleetssh.errors import UpstreamCode, UpstreamError
from fleetssh.executor import Executor
from fleetssh.hosts import HostAddress
from tests.fakes import FakeFleet


def _executor(fleet, run_config):
    return Executor(run_config, username="scan", session_factory=fleet.session)


@pytest.mark.asyncio
async def test_one_outcome_per_host(run_config, hosts):
    fleet = FakeFleet(
        host_failures={
            "10.0.0.2": ("connect", ConnectionRefusedError("refused")),
            "10.0.0.5": ("authenticate", UpstreamError(UpstreamCode.AGENT_PROTOCOL, "lost")),
            "10.0.0.9": ("read_output", OSError("eof")),
        }
    )

    responses = await _executor(fleet, run_config).run_all(hosts, "uptime")

    assert len(responses) == len(hosts)
    assert {r.hostname for r in responses} == {str(h) for h in hosts}
    failed = {r.hostname for r in responses if not r.status}
    assert failed == {"10.0.0.2:22", "10.0.0.5:22", "10.0.0.9:22"}
    assert all(r.process_time >= 0 for r in responses)


@pytest.mark.asyncio
async def test_concurrency_never_exceeds_limits(hosts):
    run = RunConfig(max_concurrent_sessions=3, max_concurrent_agent_auths=2)
    fleet = FakeFleet(default_delay=0.005)
    executor = _executor(fleet, run)

    await executor.run_all(hosts, "uptime")

    assert executor.pools.sessions.peak <= 3
    assert executor.pools.agent_auths.peak <= 2
    assert fleet.peak_active <= 3
    assert executor.pools.balanced


@pytest.mark.asyncio
async def test_tickets_balance_with_failures_everywhere(run_config, hosts):
    methods = ["resolve", "connect", "start", "handshake", "connect_agent",
               "authenticate", "open_channel", "execute", "read_output"]
    fleet = FakeFleet(
        host_failures={
            str(h.host): (methods[i % len(methods)], OSError("injected"))
            for i, h in enumerate(hosts)
        }
    )
    executor = _executor(fleet, run_config)

    responses = await executor.run_all(hosts, "uptime")

    assert not any(r.status for r in responses)
    assert executor.pools.balanced
    assert executor.pools.sessions.acquired == len(hosts)
    assert fleet.closed == len(hosts)


@pytest.mark.asyncio
async def test_results_arrive_in_completion_order():
    run = RunConfig(max_concurrent_sessions=2)
    fleet = FakeFleet(delays={"10.0.0.1": 0.05})

    responses = await _executor(fleet, run).run_all(
        [HostAddress("10.0.0.1"), HostAddress("10.0.0.2")], "uptime"
    )

    assert [r.hostname for r in responses] == ["10.0.0.2:22", "10.0.0.1:22"]


@pytest.mark.asyncio
async def test_command_is_shared_by_every_pipeline(fleet, run_config, hosts):
    await _executor(fleet, run_config).run_all(hosts, "cat /etc/os-release")

    assert fleet.commands == ["cat /etc/os-release"] * len(hosts)


@pytest.mark.asyncio
async def test_early_stop_still_finishes_every_pipeline(run_config, hosts):
    fleet = FakeFleet(default_delay=0.002)
    executor = _executor(fleet, run_config)

    async with aclosing(executor.stream(hosts, "uptime")) as stream:
        async for _ in stream:
            break

    assert fleet.closed == len(hosts)
    assert executor.pools.balanced


@pytest.mark.asyncio
async def test_empty_host_list(fleet, run_config):
    assert await _executor(fleet, run_config).run_all([], "uptime") == []
    assert fleet.created == 0
