"""Configuration loader for fleetssh."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


@dataclass(frozen=True)
class RunConfig:
    """Concurrency and timeout limits for one fan-out invocation."""

    max_concurrent_sessions: int = 10
    max_concurrent_agent_auths: int = 1
    socket_timeout: float = 1.0
    session_timeout: float = 60.0

    def __post_init__(self) -> None:
        for name in ("max_concurrent_sessions", "max_concurrent_agent_auths"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                raise ValueError(f"'{name}' must be a positive integer, got {value!r}")
        for name in ("socket_timeout", "session_timeout"):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
                raise ValueError(f"'{name}' must be a positive number, got {value!r}")


@dataclass
class OutputConfig:
    """Where and how the final report is written."""

    save_to_file: bool = False
    filename: str | None = None
    pretty_format: bool = False
    show_progress: bool = False
    keep_incremental_data: bool = False


@dataclass
class Config:
    """Main configuration for a fleetssh run."""

    command: str = ""
    user: str = "root"
    port: int = 22
    run: RunConfig = field(default_factory=RunConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    store_dir: Path = field(default_factory=lambda: Path("."))


def load_config(config_path: str | Path) -> Config:
    """Load and validate configuration from a YAML file."""
    config_path = Path(config_path).resolve()

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    if not isinstance(raw, dict):
        raise ValueError("Configuration must be a mapping")

    return _parse_config(raw)


def _parse_run(raw: dict[str, Any]) -> RunConfig:
    """Parse the run section."""
    run_raw = raw.get("run") or {}
    defaults = RunConfig()
    return RunConfig(
        max_concurrent_sessions=run_raw.get(
            "max_concurrent_sessions", defaults.max_concurrent_sessions
        ),
        max_concurrent_agent_auths=run_raw.get(
            "max_concurrent_agent_auths", defaults.max_concurrent_agent_auths
        ),
        socket_timeout=run_raw.get("socket_timeout", defaults.socket_timeout),
        session_timeout=run_raw.get("session_timeout", defaults.session_timeout),
    )


def _parse_output(raw: dict[str, Any]) -> OutputConfig:
    """Parse the output section."""
    output_raw = raw.get("output") or {}
    return OutputConfig(
        save_to_file=bool(output_raw.get("save_to_file", False)),
        filename=output_raw.get("filename"),
        pretty_format=bool(output_raw.get("pretty_format", False)),
        show_progress=bool(output_raw.get("show_progress", False)),
        keep_incremental_data=bool(output_raw.get("keep_incremental_data", False)),
    )


def _parse_config(raw: dict[str, Any]) -> Config:
    """Parse raw YAML data into Config object."""
    command = raw.get("command", "")
    if not isinstance(command, str):
        raise ValueError("'command' must be a string")

    port = raw.get("port", 22)
    if not isinstance(port, int) or not 0 < port < 65536:
        raise ValueError(f"'port' must be a valid TCP port, got {port!r}")

    return Config(
        command=command,
        user=raw.get("user", "root"),
        port=port,
        run=_parse_run(raw),
        output=_parse_output(raw),
        store_dir=Path(raw.get("store_dir", ".")).expanduser(),
    )
