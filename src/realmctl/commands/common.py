"""Helpers shared by the command groups: option aliases, error exit, panel session."""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Annotated, AsyncIterator, NoReturn, Optional

import typer
from rich.markup import escape

from realmctl.core.audit import AuditLogger
from realmctl.core.config import DEFAULT_CONFIG_PATH
from realmctl.core.context import ExecutionContext
from realmctl.core.exceptions import ConfigurationError, RealmCtlError
from realmctl.core.output import console as app_console
from realmctl.services.panel import PanelClient, ServiceState


DryRunOption = Annotated[
    bool,
    typer.Option(
        "--dry-run",
        help="Validate and show what would be sent without changing anything.",
        is_flag=True,
    ),
]

YesOption = Annotated[
    bool,
    typer.Option(
        "--yes",
        "-y",
        help="Skip confirmation prompts.",
        is_flag=True,
    ),
]

VerboseOption = Annotated[
    int,
    typer.Option(
        "--verbose",
        "-v",
        count=True,
        help="Increase output verbosity. Can be repeated (-v, -vv).",
    ),
]

QuietOption = Annotated[
    bool,
    typer.Option(
        "--quiet",
        "-q",
        help="Suppress non-essential output. Only show errors.",
        is_flag=True,
    ),
]

NoColorOption = Annotated[
    bool,
    typer.Option(
        "--no-color",
        help="Disable colored output.",
        is_flag=True,
    ),
]

ConfigOption = Annotated[
    Optional[Path],
    typer.Option(
        "--config",
        "-c",
        help=f"Path to configuration file. Default: {DEFAULT_CONFIG_PATH}",
        exists=False,
        file_okay=True,
        dir_okay=False,
    ),
]


STATE_MARKUP = {
    ServiceState.RUNNING: "[green]running[/green]",
    ServiceState.STOPPED: "[red]stopped[/red]",
    ServiceState.UNKNOWN: "[yellow]unknown[/yellow]",
}


def handle_error(error: RealmCtlError) -> NoReturn:
    """Print a RealmCtlError with its details and hint, then exit with its code."""
    app_console.error(escape(error.message))

    for detail in error.details:
        app_console.print(f"  [dim]{escape(detail)}[/dim]")

    if error.hint:
        app_console.hint(error.hint)

    raise typer.Exit(error.exit_code)


def get_audit(ctx: ExecutionContext) -> AuditLogger:
    """Audit logger for this invocation, built from the loaded config."""
    settings = ctx.config.audit
    return AuditLogger(
        log_path=settings.log_path,
        enabled=settings.enabled and not ctx.dry_run,
        panel_url=ctx.config.panel.url,
    )


def make_panel(ctx: ExecutionContext) -> PanelClient:
    """Build the panel client for this invocation."""
    return PanelClient.from_settings(ctx.config.panel)


@asynccontextmanager
async def panel_session(ctx: ExecutionContext) -> AsyncIterator[PanelClient]:
    """Open a client and log in with REALMCTL_PASSWORD.

    Raises:
        ConfigurationError: If no password is configured
        AuthError: If the panel rejects the login
    """
    password = ctx.config.password
    if not password:
        raise ConfigurationError(
            "Panel password is not set",
            hint="Export REALMCTL_PASSWORD or add it to a .env file",
        )

    async with make_panel(ctx) as panel:
        ctx.console.verbose(f"Logging in to {panel.base_url}")
        await panel.login(password)
        yield panel
