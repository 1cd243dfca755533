"""realmctl command-line entry point.

Builds the root Typer app, mounts the rules, service and session groups
and defines the config group inline.
"""

from typing import Annotated
from urllib.parse import urlsplit

import typer
from rich.markup import escape

from realmctl import __version__
from realmctl.commands.common import (
    ConfigOption,
    NoColorOption,
    VerboseOption,
    handle_error,
)
from realmctl.commands.rules import app as rules_app
from realmctl.commands.service import app as service_app
from realmctl.commands.session import app as session_app
from realmctl.core.config import AppConfig, RealmCtlConfig, get_example_config, init_config
from realmctl.core.context import create_context
from realmctl.core.exceptions import RealmCtlError
from realmctl.core.output import console

# Panel hosts for which plain http is not worth a warning
LOCAL_HOSTS = ("127.0.0.1", "localhost", "::1")

app = typer.Typer(
    name="realmctl",
    help="Manage port-forwarding rules on a remote panel.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_enable=True,
    pretty_exceptions_show_locals=False,
)

config_app = typer.Typer(
    name="config",
    help="Show, create and check the realmctl config file.",
    no_args_is_help=True,
)

app.add_typer(rules_app, name="rules")
app.add_typer(service_app, name="service")
app.add_typer(session_app, name="session")
app.add_typer(config_app, name="config")


def _print_version(value: bool) -> None:
    if value:
        console.print(f"realmctl version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            callback=_print_version,
            is_eager=True,
            help="Print the realmctl version and exit.",
        ),
    ] = False,
) -> None:
    """Manage port-forwarding rules on a remote panel.

    Every change is sent with a fresh token, followed by a service restart
    and a refresh of the rule list.

    [bold]Examples:[/bold]
        realmctl rules list
        realmctl rules add -l 8080 -r 10.0.0.5 -p 80
        realmctl rules import rules.txt --dry-run
        realmctl service status --watch
        realmctl config show
    """


# ============================================================================
# config
# ============================================================================

@config_app.command("show")
def config_show(
    config: ConfigOption = None,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
) -> None:
    """Print the effective settings (file values merged over defaults).

    Only whether REALMCTL_PASSWORD is set is shown, never its value.
    """
    ctx = create_context(verbose=verbose, no_color=no_color, config=config)

    try:
        settings = ctx.config
    except RealmCtlError as e:
        handle_error(e)

    source = ctx.config_path if ctx.config_path.exists() else f"{ctx.config_path} (missing, using defaults)"
    ctx.console.print(f"[bold]Config:[/bold] {escape(str(source))}")
    ctx.console.yaml(settings.config.to_yaml(), title="Settings")
    ctx.console.summary("Environment", {
        "REALMCTL_PASSWORD": "set" if settings.password else "[red]not set[/red]",
    })


@config_app.command("init")
def config_init(
    config: ConfigOption = None,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Overwrite an existing configuration file.", is_flag=True),
    ] = False,
    no_color: NoColorOption = False,
) -> None:
    """Write a commented starter config (mode 0600)."""
    ctx = create_context(no_color=no_color, config=config)

    try:
        init_config(ctx.config_path, force=force)
    except RealmCtlError as e:
        handle_error(e)

    ctx.console.success(f"Wrote {ctx.config_path}")
    ctx.console.hint("Set panel.url, then export REALMCTL_PASSWORD")


@config_app.command("validate")
def config_validate(
    config: ConfigOption = None,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
) -> None:
    """Check the config file and warn about risky panel settings.

    Fails if the file is missing, is not YAML or holds invalid values.
    """
    ctx = create_context(verbose=verbose, no_color=no_color, config=config)

    try:
        loaded = AppConfig(config_path=ctx.config_path, config=RealmCtlConfig.load(ctx.config_path))
    except RealmCtlError as e:
        handle_error(e)

    ctx.console.success(f"{ctx.config_path} is valid")
    if ctx.is_verbose:
        ctx.console.yaml(loaded.config.to_yaml(), title="Settings")

    panel = loaded.panel
    if not loaded.password:
        ctx.console.warn("REALMCTL_PASSWORD is not set; panel commands will fail")
    if not panel.verify_tls:
        ctx.console.warn("TLS verification is disabled for the panel")
    if urlsplit(panel.url).scheme == "http" and urlsplit(panel.url).hostname not in LOCAL_HOSTS:
        ctx.console.warn("Panel URL is plain http; the password is sent unencrypted")


@config_app.command("example")
def config_example(no_color: NoColorOption = False) -> None:
    """Print a commented example config to stdout."""
    ctx = create_context(no_color=no_color)
    ctx.console.print(get_example_config(), markup=False)


if __name__ == "__main__":
    app()
