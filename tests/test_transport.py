"""Tests for the paramiko session's error mapping (no network)."""

from __future__ import annotations

import socket
from unittest import mock

import paramiko
import pytest

from fleetssh.errors import PipelineError, Stage, UpstreamCode, UpstreamError, is_local_side
from fleetssh.transport import ParamikoSession


class FakeTransport:
    def __init__(self, outcomes, active=True):
        self.outcomes = list(outcomes)
        self.authenticated = False
        self.active = active
        self.offered = 0

    def auth_publickey(self, username, key):
        self.offered += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        self.authenticated = True
        return []

    def is_authenticated(self):
        return self.authenticated

    def is_active(self):
        return self.active


def _session(outcomes, keys=2, active=True):
    session = ParamikoSession()
    session._transport = FakeTransport(outcomes, active=active)
    session._keys = tuple(mock.Mock(name=f"key{i}") for i in range(keys))
    session._agent = mock.Mock()
    return session


def test_second_key_accepted():
    session = _session([paramiko.AuthenticationException("nope"), None])

    session.authenticate("scan")

    assert session._transport.offered == 2
    assert session._agent is None


def test_every_key_rejected():
    session = _session([paramiko.AuthenticationException("nope")] * 2)

    with pytest.raises(UpstreamError) as excinfo:
        session.authenticate("scan")

    assert excinfo.value.code is UpstreamCode.AUTHENTICATION_FAILED


def test_lost_agent_is_agent_protocol():
    session = _session([paramiko.SSHException("lost ssh-agent")])

    with pytest.raises(UpstreamError) as excinfo:
        session.authenticate("scan")

    assert excinfo.value.code is UpstreamCode.AGENT_PROTOCOL
    assert session._agent is None


def test_signing_refused_is_unverified():
    session = _session([paramiko.SSHException("key cannot be used for signing")])

    with pytest.raises(UpstreamError) as excinfo:
        session.authenticate("scan")

    assert excinfo.value.code is UpstreamCode.PUBLICKEY_UNVERIFIED


def test_server_hangup_during_auth_is_remote():
    session = _session(
        [paramiko.AuthenticationException("nope"), paramiko.SSHException("No existing session")],
        active=False,
    )

    with pytest.raises(UpstreamError) as excinfo:
        session.authenticate("scan")

    assert excinfo.value.code is UpstreamCode.AUTHENTICATION_FAILED
    assert not is_local_side(PipelineError(Stage.AGENT_AUTH, excinfo.value.detail, excinfo.value.code))
    assert session._agent is None


def test_unknown_auth_error_has_no_code():
    session = _session([paramiko.SSHException("Unexpected message")])

    with pytest.raises(UpstreamError) as excinfo:
        session.authenticate("scan")

    assert excinfo.value.code is None


def test_agent_without_keys():
    agent = mock.Mock()
    agent.get_keys.return_value = ()
    session = ParamikoSession()

    with mock.patch.object(paramiko, "Agent", return_value=agent):
        with pytest.raises(UpstreamError) as excinfo:
            session.connect_agent()

    assert excinfo.value.code is None
    agent.close.assert_called_once()


def test_channel_refused():
    session = ParamikoSession()
    session._transport = mock.Mock()
    session._transport.open_session.side_effect = paramiko.ChannelException(
        1, "Administratively prohibited"
    )

    with pytest.raises(UpstreamError) as excinfo:
        session.open_channel()

    assert excinfo.value.code is UpstreamCode.CHANNEL_FAILURE


def test_read_output_until_eof():
    session = ParamikoSession()
    session._channel = mock.Mock()
    session._channel.recv.side_effect = [b"hello ", "wörld".encode(), b""]

    assert session.read_output() == "hello wörld"


def test_resolve_numeric_address():
    family, sockaddr = ParamikoSession().resolve("127.0.0.1", 2222)

    assert family == socket.AF_INET
    assert sockaddr == ("127.0.0.1", 2222)


def test_close_is_safe_on_a_fresh_session():
    ParamikoSession().close()
