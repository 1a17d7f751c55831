"""Failure taxonomy for fleetssh."""

from __future__ import annotations

from enum import Enum, IntEnum


class FleetSSHError(Exception):
    """Base class for fleetssh errors."""


class ConfigurationError(FleetSSHError):
    """Fatal setup problem detected before any pipeline is launched."""


class Stage(Enum):
    """Pipeline stage a failure is attributed to."""

    RESOLVE = "Failed resolving address"
    CONNECT = "Failed connecting socket"
    SESSION_INIT = "Error initializing session"
    HANDSHAKE = "Failed establishing handshake"
    AGENT_CONNECT = "Failed connecting to agent"
    AGENT_AUTH = "Error connecting via agent"
    CHANNEL_OPEN = "Failed opening channel"
    EXECUTE = "Failed executing command in channel"
    READ = "Error reading result of work"


class UpstreamCode(IntEnum):
    """Protocol-level error codes (libssh2 numbering)."""

    TIMEOUT = -9
    AUTHENTICATION_FAILED = -18
    PUBLICKEY_UNVERIFIED = -19
    CHANNEL_FAILURE = -21
    AGENT_PROTOCOL = -42


# The agent dropped us mid-conversation: it is serialising more
# authentications than it can handle.
OVERLOAD_CODES = frozenset({UpstreamCode.AGENT_PROTOCOL})

# Transient failures caused by local conditions, worth retrying later.
LOCAL_SIDE_CODES = frozenset(
    {UpstreamCode.AGENT_PROTOCOL, UpstreamCode.PUBLICKEY_UNVERIFIED}
)


class UpstreamError(FleetSSHError):
    """Raised by a session when it can name the upstream error code."""

    def __init__(self, code: UpstreamCode | None, detail: str):
        super().__init__(detail)
        self.code = code
        self.detail = detail


class PipelineError(FleetSSHError):
    """A stage-tagged failure of one host's session pipeline."""

    def __init__(self, stage: Stage, detail: str, code: UpstreamCode | None = None):
        self.stage = stage
        self.detail = detail
        self.code = code
        super().__init__(self.message)

    @property
    def message(self) -> str:
        if self.code is None:
            return f"{self.stage.value}: {self.detail}"
        return f"{self.stage.value}: [{int(self.code)}] {self.detail}"

    def __repr__(self) -> str:
        return f"PipelineError({self.stage.name}, {self.detail!r}, code={self.code!r})"


def is_overload(failure: PipelineError | None) -> bool:
    """True if the failure signals the far end rejected us due to load."""
    return failure is not None and failure.code in OVERLOAD_CODES


def is_local_side(failure: PipelineError | None) -> bool:
    """True if the failure is transient and caused on our side."""
    return failure is not None and failure.code in LOCAL_SIDE_CODES
