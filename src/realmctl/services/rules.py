"""Forwarding rules: model, candidate validation and the panel repository.

The panel stores rules as ``{listen, remote}`` address pairs. Older panel
builds serialise the keys capitalised (``Listen``/``Remote``); both are
accepted here and normalised to one shape at this boundary.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Optional

from realmctl.core.exceptions import FetchError, FormatError, MutationFailedError
from realmctl.core.validation import (
    AddressValidator,
    is_loose_ip_address,
    parse_port,
    validate_remote_host,
)
from realmctl.services.panel import PanelClient, describe_failure

# Rules created through realmctl always listen on every interface
WILDCARD_HOST = "0.0.0.0"

NO_CACHE_HEADERS = {"Cache-Control": "no-cache", "Pragma": "no-cache"}


@dataclass(frozen=True)
class ForwardingRule:
    """One listen -> remote mapping relayed by the forwarding service."""
    listen: str
    remote: str

    @property
    def local_port(self) -> str:
        """Port part of the listen address ("" if there is none)."""
        parts = self.listen.split(":")
        return parts[1] if len(parts) > 1 else ""

    @property
    def remote_host(self) -> str:
        return self.remote.rpartition(":")[0]

    @property
    def remote_port(self) -> str:
        return self.remote.rpartition(":")[2]

    def to_payload(self) -> dict[str, str]:
        return {"listen": self.listen, "remote": self.remote}

    def __str__(self) -> str:
        return f"{self.listen} -> {self.remote}"


@dataclass(frozen=True)
class PaginatedRuleView:
    """One page of the authoritative rule list. Replaced, never edited."""
    rules: tuple[ForwardingRule, ...] = field(default_factory=tuple)
    total: int = 0
    page: int = 1
    page_size: int = 10

    @property
    def total_pages(self) -> int:
        """Number of pages; an empty list still has one page."""
        return max(1, math.ceil(self.total / self.page_size))

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    @property
    def first_index(self) -> int:
        """1-based position of the first rule on this page."""
        return (self.page - 1) * self.page_size + 1


def validate_candidate(
    local_port: str,
    remote_host: str,
    remote_port: str,
    *,
    address_validator: AddressValidator = is_loose_ip_address,
) -> ForwardingRule:
    """Validate a single rule entered field by field.

    Args:
        local_port: Port to listen on, as typed
        remote_host: IPv4 or IPv6 address of the target
        remote_port: Port on the target, as typed
        address_validator: Host syntax check (loose regex filter by default)

    Returns:
        The rule, listening on the wildcard host

    Raises:
        InvalidPortError: If either port is not a number in 1-65535
        InvalidAddressError: If the host fails the address check
    """
    local_port = local_port.strip()
    remote_host = remote_host.strip()
    remote_port = remote_port.strip()

    parse_port(local_port, "local port")
    parse_port(remote_port, "remote port")
    validate_remote_host(remote_host, address_validator)

    return ForwardingRule(
        listen=f"{WILDCARD_HOST}:{local_port}",
        remote=f"{remote_host}:{remote_port}",
    )


def _pick(entry: dict[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = entry.get(key)
        if value:
            return value
    return None


def normalize_rule(entry: Any) -> ForwardingRule:
    """Map one panel rule entry onto ForwardingRule.

    Raises:
        FormatError: If the entry is not an object with string listen/remote
    """
    if not isinstance(entry, dict):
        raise FormatError(f"Rule entry is not an object: {entry!r}")

    listen = _pick(entry, "Listen", "listen")
    remote = _pick(entry, "Remote", "remote")
    if not isinstance(listen, str) or not isinstance(remote, str):
        raise FormatError(
            "Rule entry is missing listen/remote addresses",
            details=[repr(entry)],
        )
    return ForwardingRule(listen=listen, remote=remote)


def parse_rules_payload(data: Any, page: int, page_size: int) -> PaginatedRuleView:
    """Turn a ``/get_rules`` body into a view.

    Raises:
        FormatError: If the body does not have the expected shape
    """
    if not isinstance(data, dict):
        raise FormatError("Panel returned an unexpected rules payload")

    raw_rules = data.get("rules")
    if not isinstance(raw_rules, list):
        raise FormatError(
            "Panel returned rules in an unexpected format",
            details=[f"Expected a list, got {type(raw_rules).__name__}"],
        )

    total = data.get("total")
    if not isinstance(total, int) or isinstance(total, bool) or total < 0:
        raise FormatError(
            "Panel returned an invalid total count",
            details=[f"total={total!r}"],
        )

    return PaginatedRuleView(
        rules=tuple(normalize_rule(entry) for entry in raw_rules),
        total=total,
        page=page,
        page_size=page_size,
    )


class RuleRepository:
    """Reads pages of rules from the panel and issues single add/delete calls."""

    def __init__(self, panel: PanelClient) -> None:
        self.panel = panel

    async def fetch_page(self, page: int, page_size: int) -> PaginatedRuleView:
        """Fetch one page of rules.

        Raises:
            FetchError: On a transport failure or non-success status
            FormatError: If the payload is malformed
        """
        response = await self.panel.request(
            "GET",
            "/get_rules",
            params={"page": page, "size": page_size},
            headers=NO_CACHE_HEADERS,
            error_cls=FetchError,
        )
        if not response.is_success:
            raise FetchError(
                f"Failed to fetch rules: {describe_failure(response)}",
                status_code=response.status_code,
                status_text=response.reason_phrase,
            )
        try:
            data = response.json()
        except ValueError as e:
            raise FormatError("Panel returned a non-JSON rules payload") from e

        return parse_rules_payload(data, page, page_size)

    async def add(self, rule: ForwardingRule) -> None:
        """Create one rule. Fetches its own token.

        Raises:
            AuthError: If no token could be obtained
            MutationFailedError: If the panel rejects the rule
        """
        await self.panel.mutate(
            "POST",
            "/add_rule",
            json=rule.to_payload(),
            error_cls=MutationFailedError,
            action="Add rule",
        )

    async def delete(self, listen: str) -> None:
        """Delete the rule listening on ``listen``.

        Raises:
            AuthError: If no token could be obtained
            MutationFailedError: If the panel rejects the delete
        """
        await self.panel.mutate(
            "DELETE",
            "/delete_rule",
            params={"listen": listen},
            error_cls=MutationFailedError,
            action="Delete rule",
        )
