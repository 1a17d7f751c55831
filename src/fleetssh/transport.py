"""Blocking SSH session built on paramiko.

Every method here may block; the pipeline runs them in worker threads.
Each method covers exactly one pipeline stage so a failure can be tagged
with the stage it happened in.
"""

from __future__ import annotations

import logging
import socket

import paramiko

from .errors import UpstreamCode, UpstreamError

logger = logging.getLogger(__name__)

READ_CHUNK = 4096

# Texts of an agent refusing to sign with a key it listed.
SIGNING_REFUSED = ("key cannot be used for signing", "agent cannot sign")


class ParamikoSession:
    """One host's SSH session, authenticated through the local agent."""

    def __init__(self) -> None:
        self._sock: socket.socket | None = None
        self._transport: paramiko.Transport | None = None
        self._agent: paramiko.Agent | None = None
        self._keys: tuple[paramiko.AgentKey, ...] = ()
        self._channel: paramiko.Channel | None = None
        self._timeout: float | None = None

    def resolve(self, host: str, port: int) -> tuple[int, tuple]:
        """Return ``(family, sockaddr)`` for the first usable address."""
        infos = socket.getaddrinfo(host, port, type=socket.SOCK_STREAM)
        if not infos:
            raise OSError(f"no addresses for {host}")
        family, _, _, _, sockaddr = infos[0]
        return family, sockaddr

    def connect(self, family: int, sockaddr: tuple, timeout: float) -> None:
        sock = socket.socket(family, socket.SOCK_STREAM)
        sock.settimeout(timeout)
        try:
            sock.connect(sockaddr)
        except OSError:
            sock.close()
            raise
        self._sock = sock

    def start(self, timeout: float) -> None:
        """Create the SSH transport and apply the session timeout to it."""
        if self._sock is None:
            raise RuntimeError("socket is not connected")
        self._sock.settimeout(timeout)
        transport = paramiko.Transport(self._sock)
        transport.banner_timeout = timeout
        transport.handshake_timeout = timeout
        transport.auth_timeout = timeout
        transport.channel_timeout = timeout
        self._transport = transport
        self._timeout = timeout

    def handshake(self) -> None:
        self._transport.start_client(timeout=self._timeout)

    def connect_agent(self) -> None:
        try:
            agent = paramiko.Agent()
        except paramiko.SSHException as e:
            raise UpstreamError(UpstreamCode.AGENT_PROTOCOL, str(e)) from e
        keys = agent.get_keys()
        if not keys:
            agent.close()
            raise UpstreamError(None, "no identities available from ssh-agent")
        self._agent = agent
        self._keys = tuple(keys)

    def authenticate(self, username: str) -> None:
        """Offer each agent key in turn until the server accepts one."""
        try:
            for key in self._keys:
                try:
                    self._transport.auth_publickey(username, key)
                except paramiko.AuthenticationException:
                    logger.debug("key %s rejected for %s", key.get_name(), username)
                    continue
                except paramiko.SSHException as e:
                    raise self._auth_error(e) from e
                except OSError as e:
                    raise UpstreamError(UpstreamCode.AGENT_PROTOCOL, str(e)) from e
                if self._transport.is_authenticated():
                    return
            raise UpstreamError(
                UpstreamCode.AUTHENTICATION_FAILED,
                f"no agent key accepted for user {username!r}",
            )
        finally:
            self._close_agent()

    def _auth_error(self, e: paramiko.SSHException) -> UpstreamError:
        """Map an auth-time SSHException to the upstream code it stands for."""
        text = str(e)
        # paramiko reports a dropped agent socket as "lost ssh-agent"
        if "lost ssh-agent" in text:
            return UpstreamError(UpstreamCode.AGENT_PROTOCOL, text)
        if any(marker in text for marker in SIGNING_REFUSED):
            return UpstreamError(UpstreamCode.PUBLICKEY_UNVERIFIED, text)
        if not self._transport.is_active():
            # the server hung up on us, e.g. after too many auth attempts
            return UpstreamError(UpstreamCode.AUTHENTICATION_FAILED, text)
        return UpstreamError(None, text)

    def open_channel(self) -> None:
        try:
            channel = self._transport.open_session(timeout=self._timeout)
        except paramiko.ChannelException as e:
            raise UpstreamError(UpstreamCode.CHANNEL_FAILURE, str(e)) from e
        channel.settimeout(self._timeout)
        self._channel = channel

    def execute(self, command: str) -> None:
        self._channel.exec_command(command)
        self._channel.shutdown_write()

    def read_output(self) -> str:
        """Read stdout until the remote side closes it."""
        chunks = []
        while True:
            data = self._channel.recv(READ_CHUNK)
            if not data:
                break
            chunks.append(data)
        return b"".join(chunks).decode("utf-8", errors="replace")

    def _close_agent(self) -> None:
        if self._agent is not None:
            self._agent.close()
            self._agent = None

    def close(self) -> None:
        self._close_agent()
        if self._channel is not None:
            self._channel.close()
            self._channel = None
        if self._transport is not None:
            self._transport.close()
            self._transport = None
        if self._sock is not None:
            self._sock.close()
            self._sock = None
