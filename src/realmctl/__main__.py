"""Allow ``python -m realmctl``."""

from realmctl.cli import app

app(prog_name="realmctl")
