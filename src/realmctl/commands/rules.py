"""Forwarding rule commands.

Commands:
- realmctl rules list    - Show one page of rules
- realmctl rules browse  - Page through rules interactively
- realmctl rules add     - Add a single rule
- realmctl rules remove  - Remove a rule by listen address
- realmctl rules import  - Add many rules from text, one per line
"""

from __future__ import annotations

import asyncio
from typing import Annotated, Optional

import typer
from rich.markup import escape

from realmctl.commands.common import (
    STATE_MARKUP,
    ConfigOption,
    DryRunOption,
    NoColorOption,
    QuietOption,
    VerboseOption,
    YesOption,
    get_audit,
    handle_error,
    panel_session,
)
from realmctl.core import MutationFailedError, RealmCtlError, ValidationError, create_context
from realmctl.core.config import PAGE_SIZE_CHOICES
from realmctl.core.context import ExecutionContext
from realmctl.services.batch import split_lines
from realmctl.services.orchestrator import (
    BatchReport,
    MutationOrchestrator,
    MutationReport,
    is_listed,
)
from realmctl.services.pagination import PaginationController
from realmctl.services.panel import PanelClient
from realmctl.services.rules import WILDCARD_HOST, PaginatedRuleView, RuleRepository

app = typer.Typer(
    name="rules",
    help="Forwarding rule management.",
    no_args_is_help=True,
)


def _pagination(ctx: ExecutionContext, panel: PanelClient, page_size: Optional[int] = None) -> PaginationController:
    return PaginationController(
        RuleRepository(panel),
        page_size=page_size or ctx.config.rules.page_size,
    )


def render_rules(ctx: ExecutionContext, view: PaginatedRuleView) -> None:
    """Print one page of rules as a table with a page footer."""
    if not view.rules:
        ctx.console.info("No forwarding rules configured" if view.total == 0 else "No rules on this page")
    else:
        rows = [
            [str(view.first_index + i), rule.local_port, rule.remote_host, rule.remote_port, rule.listen]
            for i, rule in enumerate(view.rules)
        ]
        ctx.console.table(
            "Forwarding Rules",
            ["#", "Local Port", "Remote Host", "Remote Port", "Listen"],
            rows,
        )
    ctx.console.print(
        f"Page {view.page} / {view.total_pages}  "
        f"({view.total} rule(s), {view.page_size} per page)"
    )


def _report_single(ctx: ExecutionContext, report: MutationReport, verb: str) -> None:
    if report.dry_run:
        return
    if report.restart_error:
        ctx.console.warn(f"Rule {verb}, but the service restart failed: {report.restart_error}")
        ctx.console.hint("Run `realmctl service restart` to apply the change")
        raise typer.Exit(MutationFailedError.exit_code)
    ctx.console.success(f"Rule {verb}, service restarted")
    ctx.console.print(f"Service: {STATE_MARKUP[report.service_state]}")


def _report_batch(ctx: ExecutionContext, report: BatchReport) -> None:
    if report.dry_run:
        ctx.console.info(
            f"Dry run: {report.successes} rule(s) would be added, "
            f"{len(report.failures)} would fail"
        )
    elif report.ok:
        ctx.console.success("All rules added, service restarted")
    else:
        ctx.console.info(f"Import finished: {report.successes} rule(s) added")

    if report.failures:
        ctx.console.failures(
            f"Failed rules ({len(report.failures)})",
            [str(outcome) for outcome in report.failures],
        )

    if not report.dry_run:
        ctx.console.print(f"Service: {STATE_MARKUP[report.service_state]}")

    if report.failures:
        raise typer.Exit(1)


# ============================================================================
# list / browse
# ============================================================================

@app.command("list")
def list_rules(
    page: Annotated[int, typer.Option("--page", help="Page to show (1-based).", min=1)] = 1,
    size: Annotated[
        Optional[int],
        typer.Option("--size", "-s", help="Rules per page. Default: rules.page_size from config.", min=1),
    ] = None,
    verbose: VerboseOption = 0,
    config: ConfigOption = None,
    no_color: NoColorOption = False,
) -> None:
    """List forwarding rules, one page at a time.

    Examples:

        realmctl rules list

        realmctl rules list --page 2 --size 20
    """
    ctx = create_context(verbose=verbose, config=config, no_color=no_color)

    async def _run() -> PaginatedRuleView:
        async with panel_session(ctx) as panel:
            return await _pagination(ctx, panel, size).go_to(page)

    try:
        view = asyncio.run(_run())
    except RealmCtlError as e:
        handle_error(e)

    render_rules(ctx, view)


@app.command("browse")
def browse_rules(
    size: Annotated[
        Optional[int],
        typer.Option("--size", "-s", help="Rules per page. Default: rules.page_size from config.", min=1),
    ] = None,
    verbose: VerboseOption = 0,
    config: ConfigOption = None,
    no_color: NoColorOption = False,
) -> None:
    """Page through rules interactively.

    Keys: [bold]n[/bold]ext, [bold]p[/bold]rev, [bold]s[/bold] SIZE,
    [bold]r[/bold]efresh, [bold]q[/bold]uit.
    """
    ctx = create_context(verbose=verbose, config=config, no_color=no_color)

    try:
        asyncio.run(_browse(ctx, size))
    except RealmCtlError as e:
        handle_error(e)


async def _browse(ctx: ExecutionContext, size: Optional[int]) -> None:
    async with panel_session(ctx) as panel:
        pagination = _pagination(ctx, panel, size)
        view = await pagination.refresh()

        while True:
            render_rules(ctx, view)
            try:
                command = ctx.console.input(escape("[n]ext [p]rev [s N] size [r]efresh [q]uit > ")).strip().lower()
            except (EOFError, KeyboardInterrupt):
                return

            if command in ("q", "quit", ""):
                return
            if command in ("n", "next"):
                if not await pagination.next_page():
                    ctx.console.info("Already on the last page")
            elif command in ("p", "prev"):
                if not await pagination.prev_page():
                    ctx.console.info("Already on the first page")
            elif command in ("r", "refresh"):
                await pagination.refresh()
            elif command.startswith("s"):
                value = command[1:].strip()
                if not value.isdigit() or int(value) < 1:
                    ctx.console.warn(
                        f"Page size must be a positive number (the panel offers "
                        f"{', '.join(str(n) for n in PAGE_SIZE_CHOICES)})"
                    )
                    continue
                await pagination.set_page_size(int(value))
            else:
                ctx.console.warn(f"Unknown command: {command}")
                continue

            view = pagination.view or view


# ============================================================================
# add / remove / import
# ============================================================================

@app.command("add")
def add_rule(
    local_port: Annotated[str, typer.Option("--local-port", "-l", help="Local port to listen on (1-65535).")],
    remote_host: Annotated[str, typer.Option("--remote-host", "-r", help="Remote IPv4 or IPv6 address.")],
    remote_port: Annotated[str, typer.Option("--remote-port", "-p", help="Remote port (1-65535).")],
    dry_run: DryRunOption = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    config: ConfigOption = None,
    no_color: NoColorOption = False,
) -> None:
    """Add one forwarding rule and restart the service.

    The rule listens on 0.0.0.0. The local port must not already be in use.

    Examples:

        realmctl rules add -l 8080 -r 10.0.0.5 -p 80

        realmctl rules add -l 2222 -r 2001:db8::1 -p 22 --dry-run
    """
    ctx = create_context(dry_run=dry_run, verbose=verbose, quiet=quiet, config=config, no_color=no_color)

    async def _run() -> MutationReport:
        async with panel_session(ctx) as panel:
            orchestrator = MutationOrchestrator(ctx, panel, _pagination(ctx, panel), get_audit(ctx))
            await orchestrator.sync()
            return await orchestrator.add_rule(local_port, remote_host, remote_port)

    try:
        report = asyncio.run(_run())
    except RealmCtlError as e:
        handle_error(e)

    _report_single(ctx, report, "added")


@app.command("remove")
def remove_rule(
    listen: Annotated[str, typer.Argument(help="Listen address (0.0.0.0:8080) or just the local port.")],
    yes: YesOption = False,
    dry_run: DryRunOption = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    config: ConfigOption = None,
    no_color: NoColorOption = False,
) -> None:
    """Remove a forwarding rule and restart the service.

    Examples:

        realmctl rules remove 0.0.0.0:8080

        realmctl rules remove 8080 --yes
    """
    ctx = create_context(dry_run=dry_run, yes=yes, verbose=verbose, quiet=quiet, config=config, no_color=no_color)

    listen = listen.strip()
    if listen.isdigit():
        listen = f"{WILDCARD_HOST}:{listen}"

    if ctx.should_confirm and not ctx.console.confirm(f"Remove rule listening on {escape(listen)}?"):
        ctx.console.info("Cancelled")
        return

    async def _run() -> tuple[MutationReport, bool]:
        async with panel_session(ctx) as panel:
            orchestrator = MutationOrchestrator(ctx, panel, _pagination(ctx, panel), get_audit(ctx))
            report = await orchestrator.delete_rule(listen)
            return report, is_listed(orchestrator.view, listen)

    try:
        report, still_listed = asyncio.run(_run())
    except RealmCtlError as e:
        handle_error(e)

    if still_listed and not report.dry_run:
        ctx.console.warn(f"{escape(listen)} is still listed after refresh")
    _report_single(ctx, report, "removed")


@app.command("import")
def import_rules(
    rules_file: Annotated[
        typer.FileText,
        typer.Argument(help="File with one LOCAL_PORT:HOST:PORT rule per line, or - for stdin."),
    ] = "-",
    dry_run: DryRunOption = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    config: ConfigOption = None,
    no_color: NoColorOption = False,
) -> None:
    """Add many rules at once, then restart the service once.

    Each line is LOCAL_PORT:HOST:PORT or LOCAL_PORT:[IPV6]:PORT. Lines are
    sent one by one in order; bad lines and rejected rules are listed at the
    end and do not stop the rest.

    Examples:

        realmctl rules import rules.txt

        printf '8080:10.0.0.5:80\\n8443:[2001:db8::1]:443\\n' | realmctl rules import -
    """
    ctx = create_context(dry_run=dry_run, verbose=verbose, quiet=quiet, config=config, no_color=no_color)
    text = rules_file.read()
    if not split_lines(text):
        handle_error(ValidationError(
            "No rules to add",
            hint="Provide one LOCAL_PORT:HOST:PORT rule per line",
        ))

    async def _run() -> BatchReport:
        async with panel_session(ctx) as panel:
            orchestrator = MutationOrchestrator(ctx, panel, _pagination(ctx, panel), get_audit(ctx))
            await orchestrator.sync()
            return await orchestrator.add_batch(text)

    try:
        report = asyncio.run(_run())
    except RealmCtlError as e:
        handle_error(e)

    _report_batch(ctx, report)
