"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from fleetssh.config import RunConfig
from fleetssh.hosts import HostAddress
from tests.fakes import FakeFleet


@pytest.fixture
def fleet():
    """Provide a FakeFleet where every session succeeds."""
    return FakeFleet()


@pytest.fixture
def run_config():
    return RunConfig(
        max_concurrent_sessions=3,
        max_concurrent_agent_auths=1,
        socket_timeout=1.0,
        session_timeout=5.0,
    )


@pytest.fixture
def hosts():
    return [HostAddress(f"10.0.0.{i}") for i in range(1, 13)]
