"""Console output for realmctl, built on Rich.

Everything user-facing goes through the module-level ``console``:
levelled messages, dry-run markers, rule tables and result panels.
Warnings and errors go to stderr so piped ``rules list`` output stays clean.

Messages are Rich markup. Anything that came from the user or the panel
(addresses, rule lines, error bodies) must be passed through
``rich.markup.escape`` first: ``[::1]`` is otherwise read as a tag.
"""

from enum import IntEnum
from typing import Any, Iterable

from rich import box
from rich.console import Console as RichConsole
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table


class Verbosity(IntEnum):
    QUIET = 0    # errors and warnings only
    NORMAL = 1
    VERBOSE = 2  # login and polling details
    DEBUG = 3    # every HTTP request


# Columns rendered right-aligned in rule tables
NUMERIC_COLUMNS = frozenset({"#", "Local Port", "Remote Port"})


class Console:
    """Verbosity-aware wrapper around a stdout and a stderr Rich console."""

    def __init__(self) -> None:
        self.verbosity = Verbosity.NORMAL
        self.dry_run = False
        self.no_color = False
        self._build(no_color=False)

    def _build(self, no_color: bool) -> None:
        self._out = RichConsole(highlight=False, no_color=no_color)
        self._err = RichConsole(stderr=True, highlight=False, no_color=no_color)

    def configure(self, verbosity: int = Verbosity.NORMAL, dry_run: bool = False, no_color: bool = False) -> None:
        """Apply one command's flags. Called for every new ExecutionContext."""
        self.verbosity = Verbosity(max(Verbosity.QUIET, min(verbosity, Verbosity.DEBUG)))
        self.dry_run = dry_run
        if no_color != self.no_color:
            self.no_color = no_color
            self._build(no_color)

    def _emit(self, tag: str, message: str, level: Verbosity = Verbosity.NORMAL) -> None:
        if self.verbosity >= level:
            self._out.print(f"{tag} {message}" if tag else message)

    def info(self, message: str) -> None:
        self._emit("[green][INFO][/green]", message)

    def success(self, message: str) -> None:
        self._emit("[green][OK][/green]", message)

    def step(self, message: str) -> None:
        """One leg of a multi-request operation (token, mutation, restart...)."""
        self._emit("[blue]->[/blue]", message)

    def verbose(self, message: str) -> None:
        self._emit("", f"[dim]{message}[/dim]", Verbosity.VERBOSE)

    def debug(self, message: str) -> None:
        self._emit("[cyan][DEBUG][/cyan]", message, Verbosity.DEBUG)

    def dry_run_msg(self, message: str) -> None:
        if self.dry_run:
            self._out.print(f"[blue][DRY-RUN][/blue] Would: {message}")

    def hint(self, message: str) -> None:
        self._out.print(f"[cyan]Hint:[/cyan] {message}")

    def warn(self, message: str) -> None:
        self._err.print(f"[yellow][WARN][/yellow] {message}")

    def error(self, message: str) -> None:
        self._err.print(f"[red][ERROR][/red] {message}")

    def print(self, message: Any = "", **kwargs: Any) -> None:
        """Print markup text or any Rich renderable, regardless of verbosity."""
        self._out.print(message, **kwargs)

    def table(
        self,
        title: str,
        columns: list[str],
        rows: Iterable[list[str]],
        *,
        caption: str | None = None,
    ) -> None:
        """Print a table of plain-text cells; cell text is escaped."""
        table = Table(title=title, caption=caption, box=box.ROUNDED, header_style="bold")
        for name in columns:
            table.add_column(name, justify="right" if name in NUMERIC_COLUMNS else "left")
        for row in rows:
            table.add_row(*map(escape, row))
        self._out.print(table)

    def yaml(self, text: str, title: str = "Configuration") -> None:
        self._out.print(Panel(Syntax(text, "yaml", theme="monokai"), title=title, border_style="cyan"))

    def summary(self, title: str, items: dict[str, Any]) -> None:
        """Key/value panel; booleans render as a green Yes or red No."""
        def render(value: Any) -> str:
            if isinstance(value, bool):
                return "[green]Yes[/green]" if value else "[red]No[/red]"
            return str(value)

        body = "\n".join(f"[bold]{key}:[/bold] {render(value)}" for key, value in items.items())
        self._out.print(Panel(body, title=title, border_style="blue"))

    def failures(self, title: str, lines: list[str]) -> None:
        """Red panel listing plain-text failure messages in the given order."""
        body = "\n".join(f"[red]x[/red] {escape(line)}" for line in lines)
        self._out.print(Panel(body, title=title, border_style="red"))

    def input(self, prompt: str) -> str:
        return self._out.input(prompt)

    def confirm(self, message: str, default: bool = False) -> bool:
        """Ask a yes/no question on the terminal. EOF or Ctrl+C answers no."""
        choices = escape("[Y/n]" if default else "[y/N]")
        try:
            answer = self._out.input(f"{message} {choices}: ")
        except (EOFError, KeyboardInterrupt):
            return False
        answer = answer.strip().lower()
        return default if not answer else answer in ("y", "yes")


console = Console()
