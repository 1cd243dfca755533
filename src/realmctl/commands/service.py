"""Forwarding service control commands.

Commands:
- realmctl service start    - Start the forwarding service
- realmctl service stop     - Stop the forwarding service
- realmctl service restart  - Restart it so it reloads its rules
- realmctl service status   - Show (or watch) the service state
"""

from __future__ import annotations

import asyncio
from contextlib import aclosing
from datetime import datetime
from typing import Annotated, Awaitable, Callable, Optional

import typer

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
from realmctl.core import ApiError, AuditEventType, RealmCtlError, create_context
from realmctl.core.context import ExecutionContext
from realmctl.services.panel import PanelClient, ServiceState

app = typer.Typer(
    name="service",
    help="Forwarding service control.",
    no_args_is_help=True,
)

_ACTIONS: dict[str, tuple[AuditEventType, Callable[[PanelClient], Awaitable[None]]]] = {
    "start": (AuditEventType.SERVICE_START, PanelClient.start_service),
    "stop": (AuditEventType.SERVICE_STOP, PanelClient.stop_service),
    "restart": (AuditEventType.SERVICE_RESTART, PanelClient.restart_service),
}


async def control_service(ctx: ExecutionContext, action: str) -> Optional[ServiceState]:
    """Run one service action and return the state polled afterwards.

    Returns None on dry-run, when nothing is sent.

    Raises:
        AuthError: If login or the token fetch fails
        ServiceError: If start/stop is rejected
        MutationFailedError: If restart is rejected
    """
    event_type, call = _ACTIONS[action]
    audit = get_audit(ctx)

    if ctx.dry_run:
        ctx.console.dry_run_msg(f"{action} the forwarding service")
        audit.log_dry_run(event_type)
        return None

    async with panel_session(ctx) as panel:
        ctx.console.step(f"Sending {action} to {panel.base_url}")
        try:
            await call(panel)
        except ApiError as e:
            audit.log_failure(event_type, str(e))
            raise
        audit.log_success(event_type)
        return await panel.check_status()


def _run_action(ctx: ExecutionContext, action: str, past: str) -> None:
    try:
        state = asyncio.run(control_service(ctx, action))
    except RealmCtlError as e:
        handle_error(e)

    if state is None:
        return
    ctx.console.success(f"Forwarding service {past}")
    ctx.console.print(f"Service: {STATE_MARKUP[state]}")


@app.command("start")
def service_start(
    dry_run: DryRunOption = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    config: ConfigOption = None,
    no_color: NoColorOption = False,
) -> None:
    """Start the forwarding service."""
    ctx = create_context(dry_run=dry_run, verbose=verbose, quiet=quiet, config=config, no_color=no_color)
    _run_action(ctx, "start", "started")


@app.command("stop")
def service_stop(
    yes: YesOption = False,
    dry_run: DryRunOption = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    config: ConfigOption = None,
    no_color: NoColorOption = False,
) -> None:
    """Stop the forwarding service.

    Every forwarded port stops relaying until the service is started again.

    [bold]Examples:[/bold]

        realmctl service stop

        realmctl service stop --yes
    """
    ctx = create_context(dry_run=dry_run, yes=yes, verbose=verbose, quiet=quiet, config=config, no_color=no_color)

    if ctx.should_confirm and not ctx.console.confirm("Stop the forwarding service? All forwarded ports go down."):
        ctx.console.info("Cancelled")
        return

    _run_action(ctx, "stop", "stopped")


@app.command("restart")
def service_restart(
    dry_run: DryRunOption = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    config: ConfigOption = None,
    no_color: NoColorOption = False,
) -> None:
    """Restart the forwarding service so it reloads its rules."""
    ctx = create_context(dry_run=dry_run, verbose=verbose, quiet=quiet, config=config, no_color=no_color)
    _run_action(ctx, "restart", "restarted")


@app.command("status")
def service_status(
    watch: Annotated[
        bool,
        typer.Option("--watch", "-w", help="Keep polling until interrupted.", is_flag=True),
    ] = False,
    interval: Annotated[
        Optional[float],
        typer.Option("--interval", "-i", help="Seconds between polls. Default: panel.status_interval.", min=0.1),
    ] = None,
    count: Annotated[
        Optional[int],
        typer.Option("--count", "-n", help="Stop watching after this many polls.", min=1),
    ] = None,
    verbose: VerboseOption = 0,
    config: ConfigOption = None,
    no_color: NoColorOption = False,
) -> None:
    """Show the forwarding service state.

    The state is [green]running[/green], [red]stopped[/red] or
    [yellow]unknown[/yellow] (the status call failed).

    [bold]Examples:[/bold]

        realmctl service status

        realmctl service status --watch --interval 5
    """
    ctx = create_context(verbose=verbose, config=config, no_color=no_color)

    try:
        asyncio.run(_status(ctx, watch, interval, count))
    except RealmCtlError as e:
        handle_error(e)
    except KeyboardInterrupt:
        ctx.console.print()


async def _status(
    ctx: ExecutionContext,
    watch: bool,
    interval: Optional[float],
    count: Optional[int],
) -> None:
    async with panel_session(ctx) as panel:
        if not watch:
            state = await panel.check_status()
            ctx.console.print(f"Service: {STATE_MARKUP[state]}")
            return

        period = interval or ctx.config.panel.status_interval
        ctx.console.verbose(f"Polling every {period:g}s, Ctrl+C to stop")
        polls = 0
        async with aclosing(panel.watch_status(period)) as states:
            async for state in states:
                stamp = datetime.now().strftime("%H:%M:%S")
                ctx.console.print(f"[dim]{stamp}[/dim] Service: {STATE_MARKUP[state]}")
                polls += 1
                if count is not None and polls >= count:
                    return
