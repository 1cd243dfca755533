"""Panel session commands.

realmctl keeps no session between invocations: every command logs in with
REALMCTL_PASSWORD. These commands check the credentials and end the
server-side session explicitly.
"""

from __future__ import annotations

import asyncio

import typer

from realmctl.commands.common import (
    ConfigOption,
    NoColorOption,
    VerboseOption,
    get_audit,
    handle_error,
    make_panel,
)
from realmctl.core import AuditEventType, AuthError, ConfigurationError, RealmCtlError, create_context
from realmctl.core.context import ExecutionContext

app = typer.Typer(
    name="session",
    help="Panel login and logout.",
    no_args_is_help=True,
)


async def open_and_close(ctx: ExecutionContext, logout: bool) -> str:
    """Log in, optionally log out again, and audit both steps.

    Returns:
        The panel URL that was used

    Raises:
        ConfigurationError: If REALMCTL_PASSWORD is not set
        AuthError: If login or logout is rejected
    """
    password = ctx.config.password
    if not password:
        raise ConfigurationError(
            "Panel password is not set",
            hint="Export REALMCTL_PASSWORD or add it to a .env file",
        )

    audit = get_audit(ctx)
    async with make_panel(ctx) as panel:
        ctx.console.step(f"Logging in to {panel.base_url}")
        try:
            await panel.login(password)
        except AuthError as e:
            audit.log_failure(AuditEventType.SESSION_LOGIN, str(e))
            raise
        audit.log_success(AuditEventType.SESSION_LOGIN)

        if logout:
            ctx.console.step("Logging out")
            try:
                await panel.logout()
            except AuthError as e:
                audit.log_failure(AuditEventType.SESSION_LOGOUT, str(e))
                raise
            audit.log_success(AuditEventType.SESSION_LOGOUT)

        return panel.base_url


@app.command("login")
def session_login(
    verbose: VerboseOption = 0,
    config: ConfigOption = None,
    no_color: NoColorOption = False,
) -> None:
    """Check that the panel accepts REALMCTL_PASSWORD."""
    ctx = create_context(verbose=verbose, config=config, no_color=no_color)

    try:
        url = asyncio.run(open_and_close(ctx, logout=False))
    except RealmCtlError as e:
        handle_error(e)

    ctx.console.success(f"Logged in to {url}")


@app.command("logout")
def session_logout(
    verbose: VerboseOption = 0,
    config: ConfigOption = None,
    no_color: NoColorOption = False,
) -> None:
    """Log in and immediately end the panel session."""
    ctx = create_context(verbose=verbose, config=config, no_color=no_color)

    try:
        url = asyncio.run(open_and_close(ctx, logout=True))
    except RealmCtlError as e:
        handle_error(e)

    ctx.console.success(f"Logged out of {url}")
