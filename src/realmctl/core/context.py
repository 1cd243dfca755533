"""Per-invocation state shared by every command.

A command turns its CLI flags into an ``ExecutionContext`` once and passes
it down to the orchestrator, which reads the dry-run flag and talks to the
user through ``ctx.console``.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from realmctl.core.config import AppConfig, DEFAULT_CONFIG_PATH
from realmctl.core.output import Console, console, Verbosity


@dataclass
class ExecutionContext:
    """Flags of one realmctl run plus its (lazily loaded) configuration.

    Attributes:
        dry_run: Validate and describe changes, send no mutating request
        yes: Answer yes to every confirmation prompt
        verbosity: One of the ``Verbosity`` levels
        no_color: Plain output without ANSI colors
        config_path: YAML file read on first access to ``config``
    """

    dry_run: bool = False
    yes: bool = False
    verbosity: int = Verbosity.NORMAL
    no_color: bool = False
    config_path: Path = DEFAULT_CONFIG_PATH

    # `--help` and argument errors never read the config file
    _config: Optional[AppConfig] = field(default=None, repr=False)
    _console: Console = field(default=console, repr=False)

    def __post_init__(self) -> None:
        self._console.configure(self.verbosity, dry_run=self.dry_run, no_color=self.no_color)

    @property
    def config(self) -> AppConfig:
        if self._config is None:
            self._config = AppConfig(config_path=self.config_path)
        return self._config

    @property
    def console(self) -> Console:
        return self._console

    @property
    def is_verbose(self) -> bool:
        return self.verbosity >= Verbosity.VERBOSE

    @property
    def is_quiet(self) -> bool:
        return self.verbosity == Verbosity.QUIET

    @property
    def should_confirm(self) -> bool:
        """Prompts are skipped with --yes, and on dry runs nothing needs confirming."""
        return not (self.yes or self.dry_run)


def create_context(
    dry_run: bool = False,
    yes: bool = False,
    verbose: int = 0,
    quiet: bool = False,
    no_color: bool = False,
    config: Optional[Path] = None,
) -> ExecutionContext:
    """Build the context for one command from its CLI flags.

    ``--quiet`` wins over any number of ``-v``.
    """
    verbosity = Verbosity.QUIET if quiet else Verbosity(min(Verbosity.NORMAL + verbose, Verbosity.DEBUG))
    return ExecutionContext(
        dry_run=dry_run,
        yes=yes,
        verbosity=verbosity,
        no_color=no_color,
        config_path=config if config is not None else DEFAULT_CONFIG_PATH,
    )
