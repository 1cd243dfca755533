"""Batch rule parsing and local port conflict tracking.

Batch input is one rule per line in the form ``LOCAL_PORT:REMOTE``, where
REMOTE is ``host:port`` or ``[ipv6]:port``:

    8080:10.0.0.5:80
    8443:[2001:db8::1]:443

Only the shape of each line is checked here. The remote part is sent to the
panel as typed; unlike single adds, its host is not run through the address
validator.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional, Union

from realmctl.services.rules import WILDCARD_HOST, ForwardingRule

BATCH_LINE_PATTERN = re.compile(r"(\d+):(\[.*?\]:\d+|\S+)", re.ASCII)

FORMAT_ERROR = "format error"

# More significant digits than any port has; such text is never converted
MAX_PORT_DIGITS = 5


@dataclass(frozen=True)
class Accepted:
    """A line with the right shape, ready to be sent."""
    line: str
    local_port: str
    remote: str

    @property
    def port(self) -> Optional[int]:
        """Numeric local port, or None if it is too long to be one."""
        return port_number(self.local_port)

    def to_rule(self) -> ForwardingRule:
        return ForwardingRule(listen=f"{WILDCARD_HOST}:{self.local_port}", remote=self.remote)


@dataclass(frozen=True)
class Rejected:
    """A line that will never be sent."""
    line: str
    reason: str = FORMAT_ERROR


BatchParseItem = Union[Accepted, Rejected]


def split_lines(text: str) -> list[str]:
    """Non-blank lines of ``text``, trimmed, in order."""
    return [line.strip() for line in text.strip().splitlines() if line.strip()]


def parse_line(line: str) -> BatchParseItem:
    match = BATCH_LINE_PATTERN.fullmatch(line)
    if match is None:
        return Rejected(line=line)
    return Accepted(line=line, local_port=match.group(1), remote=match.group(2))


def parse_batch(text: str) -> list[BatchParseItem]:
    """Parse multi-line batch input into one item per non-blank line."""
    return [parse_line(line) for line in split_lines(text)]


def port_number(text: str) -> Optional[int]:
    """Integer value of an ASCII digit string of at most five significant digits."""
    if not text.isascii() or not text.isdigit():
        return None
    if len(text.lstrip("0")) > MAX_PORT_DIGITS:
        return None
    return int(text)


def listen_port(listen: str) -> Optional[int]:
    """Integer port of a listen address, or None if it has no numeric port."""
    _, sep, port = listen.rpartition(":")
    if not sep:
        return None
    return port_number(port)


class UsedPortSet:
    """Local ports taken by the current view plus this operation's adds.

    Seeded once per operation from a possibly stale view, so a conflict here
    is advisory; the panel has the final say. Ports are only ever added.
    """

    def __init__(self, ports: Iterable[int] = ()) -> None:
        self._ports: set[int] = set(ports)

    @classmethod
    def from_rules(cls, rules: Iterable[ForwardingRule]) -> "UsedPortSet":
        ports = (listen_port(rule.listen) for rule in rules)
        return cls(port for port in ports if port is not None)

    def is_free(self, port: Optional[int]) -> bool:
        """None stands for a port too long to be real; it never conflicts."""
        return port is None or port not in self._ports

    def reserve(self, port: Optional[int]) -> None:
        """Mark a port taken. Call only after the panel accepted the rule."""
        if port is not None:
            self._ports.add(port)

    def __contains__(self, port: object) -> bool:
        return port in self._ports

    def __len__(self) -> int:
        return len(self._ports)
