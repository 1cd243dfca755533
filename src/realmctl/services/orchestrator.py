"""Mutation orchestration for forwarding rules.

Every change follows the same protocol:

1. validate locally (no network on failure)
2. fetch a fresh token and send the mutation
3. restart the forwarding service so it reloads its rules
4. refresh the rule view and the service status

Single mutations raise on local or mutation failures but still run step 4
once the network has been touched. Batch adds never raise per item: each
failure is collected into a ``BatchReport`` and the batch carries on, with
a single restart after the last item when at least one rule went in.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from rich.markup import escape

from realmctl.core.audit import AuditEvent, AuditEventType, AuditLogger, AuditResult
from realmctl.core.context import ExecutionContext
from realmctl.core.exceptions import (
    ApiError,
    ConflictError,
    FetchError,
    FormatError,
    ValidationError,
)
from realmctl.core.validation import AddressValidator, is_loose_ip_address
from realmctl.services.batch import Accepted, UsedPortSet, listen_port, parse_batch
from realmctl.services.pagination import PaginationController
from realmctl.services.panel import PanelClient, ServiceState
from realmctl.services.rules import ForwardingRule, PaginatedRuleView, validate_candidate

RESTART_TARGET = "restart"


@dataclass(frozen=True)
class MutationOutcome:
    """Result of one attempted change within a batch."""
    attempted: str
    succeeded: bool
    reason: Optional[str] = None

    def __str__(self) -> str:
        if self.succeeded:
            return self.attempted
        return f"{self.attempted}: {self.reason}"


@dataclass
class BatchReport:
    """Aggregate result of a batch add."""
    successes: int = 0
    failures: list[MutationOutcome] = field(default_factory=list)
    added: list[ForwardingRule] = field(default_factory=list)
    restarted: bool = False
    refresh_error: Optional[str] = None
    service_state: ServiceState = ServiceState.UNKNOWN
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return not self.failures

    def record_failure(self, attempted: str, reason: str) -> None:
        self.failures.append(MutationOutcome(attempted=attempted, succeeded=False, reason=reason))

    def record_success(self, rule: ForwardingRule) -> None:
        self.successes += 1
        self.added.append(rule)


@dataclass
class MutationReport:
    """Result of a committed single add or delete.

    A failed restart does not undo the mutation; it is reported in
    ``restart_error``.
    """
    action: str
    target: str
    restarted: bool = False
    restart_error: Optional[str] = None
    refresh_error: Optional[str] = None
    service_state: ServiceState = ServiceState.UNKNOWN
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return self.restart_error is None


class MutationOrchestrator:
    """Drives rule changes against one panel.

    Owns the rule view (through the pagination controller) and the last
    known service state. Operations are serialised with a lock: a second
    call waits for the first to finish, refresh included.
    """

    def __init__(
        self,
        ctx: ExecutionContext,
        panel: PanelClient,
        pagination: PaginationController,
        audit: Optional[AuditLogger] = None,
    ) -> None:
        self.ctx = ctx
        self.panel = panel
        self.pagination = pagination
        self.repository = pagination.repository
        self.audit = audit or AuditLogger(enabled=False)
        self.service_state = ServiceState.UNKNOWN
        self._lock = asyncio.Lock()

    @property
    def view(self) -> Optional[PaginatedRuleView]:
        return self.pagination.view

    def used_ports(self) -> UsedPortSet:
        """Fresh conflict set seeded from the current view."""
        if self.view is None:
            return UsedPortSet()
        return UsedPortSet.from_rules(self.view.rules)

    async def sync(self) -> Optional[str]:
        """Refresh the rule view and service status. Never raises.

        Returns:
            The refresh failure message, or None if the view was refreshed
        """
        refresh_error = None
        try:
            await self.pagination.refresh()
        except (FetchError, FormatError) as e:
            refresh_error = str(e)
            self.ctx.console.warn(f"Could not refresh rules: {e}")
        self.service_state = await self.panel.check_status()
        return refresh_error

    # Single mutations

    async def add_rule(
        self,
        local_port: str,
        remote_host: str,
        remote_port: str,
        *,
        address_validator: AddressValidator = is_loose_ip_address,
    ) -> MutationReport:
        """Validate and add one rule, then restart and refresh.

        Raises:
            ValidationError: If a port or the host is invalid
            ConflictError: If the local port is already used in the view
            AuthError: If no token could be obtained
            MutationFailedError: If the panel rejects the rule
        """
        async with self._lock:
            rule = validate_candidate(
                local_port,
                remote_host,
                remote_port,
                address_validator=address_validator,
            )
            port = int(rule.local_port)
            if not self.used_ports().is_free(port):
                raise ConflictError(
                    f"Port {port} is already in use",
                    port=port,
                    hint="Remove the existing rule first or pick another local port",
                )

            report = MutationReport(action="add", target=str(rule), dry_run=self.ctx.dry_run)
            if self.ctx.dry_run:
                self.ctx.console.dry_run_msg(f"add rule {escape(str(rule))} and restart the service")
                self.audit.log_dry_run(AuditEventType.RULE_ADD, target=rule.listen,
                                       parameters=rule.to_payload())
                return report

            self.ctx.console.step(f"Adding rule {escape(str(rule))}")
            return await self._apply(
                report,
                lambda: self.repository.add(rule),
                AuditEventType.RULE_ADD,
                rule.to_payload(),
            )

    async def delete_rule(self, listen: str) -> MutationReport:
        """Delete the rule listening on ``listen``, then restart and refresh.

        Raises:
            ValidationError: If ``listen`` is empty
            AuthError: If no token could be obtained
            MutationFailedError: If the panel rejects the delete
        """
        async with self._lock:
            listen = listen.strip()
            if not listen:
                raise ValidationError(
                    "Listen address is required",
                    hint="Use the address shown by `realmctl rules list`, e.g. 0.0.0.0:8080",
                )

            report = MutationReport(action="delete", target=listen, dry_run=self.ctx.dry_run)
            if self.ctx.dry_run:
                self.ctx.console.dry_run_msg(f"delete rule {escape(listen)} and restart the service")
                self.audit.log_dry_run(AuditEventType.RULE_REMOVE, target=listen)
                return report

            self.ctx.console.step(f"Deleting rule {escape(listen)}")
            return await self._apply(
                report,
                lambda: self.repository.delete(listen),
                AuditEventType.RULE_REMOVE,
                {"listen": listen},
            )

    async def _apply(
        self,
        report: MutationReport,
        mutation: Callable[[], Awaitable[None]],
        event_type: AuditEventType,
        parameters: dict[str, str],
    ) -> MutationReport:
        try:
            try:
                await mutation()
            except ApiError as e:
                self.audit.log_failure(event_type, str(e), target=report.target,
                                       parameters=parameters)
                raise
            self.audit.log_success(event_type, target=report.target, parameters=parameters)

            self.ctx.console.step("Restarting forwarding service")
            try:
                await self.panel.restart_service()
                report.restarted = True
                self.audit.log_success(AuditEventType.SERVICE_RESTART)
            except ApiError as e:
                report.restart_error = str(e)
                self.audit.log_failure(AuditEventType.SERVICE_RESTART, str(e))
        finally:
            report.refresh_error = await self.sync()
            report.service_state = self.service_state
        return report

    # Batch mutation

    async def add_batch(self, text: str) -> BatchReport:
        """Add every rule in ``text``, one line at a time.

        Lines are handled strictly in order and each one's outcome is
        recorded before the next request goes out. Failures never stop the
        batch.

        Raises:
            ValidationError: If ``text`` contains no rules at all
        """
        async with self._lock:
            items = parse_batch(text)
            if not items:
                raise ValidationError(
                    "No rules to add",
                    hint="Provide one LOCAL_PORT:HOST:PORT rule per line",
                )

            report = BatchReport(dry_run=self.ctx.dry_run)
            used = self.used_ports()

            with self.audit.correlation("batch_add"):
                for item in items:
                    if not isinstance(item, Accepted):
                        report.record_failure(item.line, item.reason)
                        continue
                    await self._add_batch_item(item, used, report)

                if report.successes and not self.ctx.dry_run:
                    await self._restart_after_batch(report)

                self.audit.log(AuditEvent(
                    event_type=AuditEventType.RULE_BATCH_ADD,
                    result=_batch_result(report),
                    parameters={
                        "lines": len(items),
                        "successes": report.successes,
                        "failures": len(report.failures),
                    },
                ))

            if not self.ctx.dry_run:
                report.refresh_error = await self.sync()
                report.service_state = self.service_state
            return report

    async def _add_batch_item(
        self,
        item: Accepted,
        used: UsedPortSet,
        report: BatchReport,
    ) -> None:
        if not used.is_free(item.port):
            report.record_failure(item.line, f"port {item.local_port} already in use")
            return

        rule = item.to_rule()
        if self.ctx.dry_run:
            self.ctx.console.dry_run_msg(f"add rule {escape(str(rule))}")
            used.reserve(item.port)
            report.record_success(rule)
            return

        self.ctx.console.step(f"Adding rule {escape(str(rule))}")
        try:
            await self.repository.add(rule)
        except ApiError as e:
            self.audit.log_failure(AuditEventType.RULE_ADD, str(e), target=rule.listen,
                                   parameters=rule.to_payload())
            report.record_failure(item.line, str(e))
            return

        self.audit.log_success(AuditEventType.RULE_ADD, target=rule.listen,
                               parameters=rule.to_payload())
        used.reserve(item.port)
        report.record_success(rule)

    async def _restart_after_batch(self, report: BatchReport) -> None:
        self.ctx.console.step("Restarting forwarding service")
        try:
            await self.panel.restart_service()
        except ApiError as e:
            self.audit.log_failure(AuditEventType.SERVICE_RESTART, str(e))
            report.record_failure(RESTART_TARGET, str(e))
            return
        report.restarted = True
        self.audit.log_success(AuditEventType.SERVICE_RESTART)


def _batch_result(report: BatchReport) -> AuditResult:
    if report.dry_run:
        return AuditResult.DRY_RUN
    if report.ok:
        return AuditResult.SUCCESS
    return AuditResult.PARTIAL if report.successes else AuditResult.FAILURE


def is_listed(view: Optional[PaginatedRuleView], listen: str) -> bool:
    """True if the view shows a rule with this listen address or port."""
    if view is None:
        return False
    port = listen_port(listen)
    return any(
        rule.listen == listen or (port is not None and listen_port(rule.listen) == port)
        for rule in view.rules
    )
