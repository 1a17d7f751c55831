"""Host addresses and host-list parsing."""

from __future__ import annotations

import csv
import ipaddress
import logging
import re
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

_HOSTNAME_RE = re.compile(
    r"^(?=.{1,253}$)[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?"
    r"(?:\.[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?)*$"
)


@dataclass(frozen=True)
class HostAddress:
    """A remote endpoint: name or numeric address plus port."""

    host: str
    port: int = 22

    def __str__(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


def bare_host(hostname: str) -> str:
    """Strip the port from a rendered ``host:port`` string."""
    if hostname.startswith("["):
        return hostname[1:].split("]", 1)[0]
    if hostname.count(":") == 1:
        return hostname.split(":", 1)[0]
    return hostname


def parse_address(text: str, port: int = 22) -> HostAddress | None:
    """Parse a single address, returning None if it is not usable."""
    text = text.strip().replace('"', "").replace("'", "")
    if not text:
        return None
    try:
        return HostAddress(str(ipaddress.ip_address(text)), port)
    except ValueError:
        pass
    if _HOSTNAME_RE.match(text):
        return HostAddress(text.lower(), port)
    return None


def load_hosts(path: str | Path, port: int = 22) -> list[HostAddress]:
    """Load a line-delimited host list.

    Blank lines and ``#`` comments are ignored; lines that are not an
    address or hostname are skipped with a warning.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Host list not found: {path}")

    hosts = []
    with open(path) as f:
        for lineno, line in enumerate(f, 1):
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                continue
            address = parse_address(stripped, port)
            if address is None:
                logger.warning("%s:%d: skipping unparseable host %r", path, lineno, stripped)
                continue
            hosts.append(address)
    return hosts


def load_kv_hosts(path: str | Path, port: int = 22) -> dict[HostAddress, str]:
    """Load a two-column ``address,label`` CSV file.

    The first row is treated as a header. Rows with an invalid address are
    skipped. Insertion order follows the file.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Host list not found: {path}")

    hosts: dict[HostAddress, str] = {}
    with open(path, newline="") as f:
        reader = csv.reader(f)
        next(reader, None)
        for row in reader:
            if not row:
                continue
            address = parse_address(row[0], port)
            if address is None:
                logger.debug("skipping row with invalid address: %r", row)
                continue
            hosts[address] = row[1].strip() if len(row) > 1 else ""
    return hosts
