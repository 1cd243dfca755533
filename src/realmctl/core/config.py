"""realmctl settings.

Non-secret settings live in a YAML file (``~/.config/realmctl/config.yaml``
unless ``--config`` says otherwise) and are validated with pydantic; every
key is optional. The panel password only ever comes from the environment
or a ``.env`` file, via pydantic-settings.
"""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from realmctl.core.exceptions import ConfigurationError, ValidationError
from realmctl.core.validation import validate_url


DEFAULT_CONFIG_PATH = Path("~/.config/realmctl/config.yaml").expanduser()
DEFAULT_AUDIT_LOG_PATH = Path("~/.local/state/realmctl/audit.log").expanduser()

DEFAULT_PAGE_SIZE = 10
# Sizes offered by the panel's web UI; any positive size works over the API
PAGE_SIZE_CHOICES = (10, 20, 50, 100)


class PanelSettings(BaseModel):
    """Where the forwarding panel lives and how to talk to it."""

    url: str = "http://127.0.0.1:8081"
    verify_tls: bool = True
    # Seconds per request; None waits forever
    timeout: Optional[float] = 30.0
    # Seconds between polls for `service status --watch`
    status_interval: float = 15.0

    @field_validator("url")
    @classmethod
    def validate_panel_url(cls, v: str) -> str:
        try:
            return validate_url(v)
        except ValidationError as e:
            raise ValueError(str(e)) from e

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError("timeout must be positive (or null to disable)")
        return v

    @field_validator("status_interval")
    @classmethod
    def validate_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("status_interval must be positive")
        return v


class RulesSettings(BaseModel):
    """Rule listing defaults."""

    page_size: int = DEFAULT_PAGE_SIZE

    @field_validator("page_size")
    @classmethod
    def validate_page_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError("page_size must be at least 1")
        return v


class AuditSettings(BaseModel):
    """Audit log settings."""

    enabled: bool = True
    log_path: Path = DEFAULT_AUDIT_LOG_PATH

    @field_validator("log_path")
    @classmethod
    def expand_log_path(cls, v: Path) -> Path:
        return v.expanduser()


class RealmCtlConfig(BaseModel):
    """Everything config.yaml may hold, grouped by section.

    The panel password is never part of it; it comes from the
    REALMCTL_PASSWORD environment variable.
    """

    panel: PanelSettings = Field(default_factory=PanelSettings)
    rules: RulesSettings = Field(default_factory=RulesSettings)
    audit: AuditSettings = Field(default_factory=AuditSettings)

    @classmethod
    def load(cls, path: Path) -> "RealmCtlConfig":
        """Read and validate ``path``. An empty file yields the defaults.

        Raises:
            ConfigurationError: If the file is missing, unreadable, not YAML,
                not a mapping, or holds invalid values
        """
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise ConfigurationError(
                f"Config file not found: {path}",
                hint="Create one with: realmctl config init",
            ) from None
        except OSError as e:
            raise ConfigurationError(f"Cannot read config file {path}: {e.strerror}") from e

        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"{path} is not valid YAML", details=[str(e)]) from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"{path} must hold a mapping of sections (panel, rules, audit)")

        try:
            return cls.model_validate(data)
        except PydanticValidationError as e:
            raise ConfigurationError(
                f"Invalid configuration in {path}",
                details=[
                    f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
                    for err in e.errors()
                ],
            ) from e

    @classmethod
    def load_or_default(cls, path: Optional[Path] = None) -> "RealmCtlConfig":
        """Like ``load``, but a missing file means all defaults."""
        path = path or DEFAULT_CONFIG_PATH
        return cls.load(path) if path.exists() else cls()

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.model_dump(mode="json"), sort_keys=False)


class SecretsConfig(BaseSettings):
    """Credentials read from the environment or ``.env``, never from YAML."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    realmctl_password: Optional[str] = Field(None, alias="REALMCTL_PASSWORD")


class AppConfig:
    """The YAML settings and the environment secrets of one invocation."""

    def __init__(
        self,
        config_path: Optional[Path] = None,
        config: Optional[RealmCtlConfig] = None,
        secrets: Optional[SecretsConfig] = None,
    ) -> None:
        self.config_path = config_path or DEFAULT_CONFIG_PATH
        self._config = config if config is not None else RealmCtlConfig.load_or_default(self.config_path)
        self._secrets = secrets if secrets is not None else SecretsConfig()

    @property
    def config(self) -> RealmCtlConfig:
        return self._config

    @property
    def secrets(self) -> SecretsConfig:
        return self._secrets

    @property
    def panel(self) -> PanelSettings:
        return self._config.panel

    @property
    def rules(self) -> RulesSettings:
        return self._config.rules

    @property
    def audit(self) -> AuditSettings:
        return self._config.audit

    @property
    def password(self) -> Optional[str]:
        return self._secrets.realmctl_password


EXAMPLE_CONFIG = """\
# realmctl configuration
# The panel password is read from REALMCTL_PASSWORD (or .env), never from here

panel:
  url: http://127.0.0.1:8081
  verify_tls: true
  timeout: 30            # seconds per request, null to wait forever
  status_interval: 15    # seconds between polls for `service status --watch`

rules:
  page_size: 10          # the web panel offers 10, 20, 50 or 100

# JSON-lines record of every change sent to the panel
audit:
  enabled: true
  log_path: ~/.local/state/realmctl/audit.log
"""


def get_example_config() -> str:
    return EXAMPLE_CONFIG


def init_config(path: Path, force: bool = False) -> None:
    """Write the example config to ``path``, readable by the owner only.

    Raises:
        ConfigurationError: If ``path`` exists and ``force`` is False
    """
    if path.exists() and not force:
        raise ConfigurationError(
            f"Config file already exists: {path}",
            hint="Pass --force to overwrite it",
        )

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(EXAMPLE_CONFIG, encoding="utf-8")
    os.chmod(path, 0o600)
