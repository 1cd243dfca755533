"""Unit tests for configuration loading and the execution context."""

import pytest
import yaml

from realmctl.core.config import (
    DEFAULT_PAGE_SIZE,
    AppConfig,
    RealmCtlConfig,
    SecretsConfig,
    get_example_config,
    init_config,
)
from realmctl.core.context import create_context
from realmctl.core.exceptions import ConfigurationError
from realmctl.core.output import Verbosity


class TestRealmCtlConfig:
    """Tests for the YAML-backed config model."""

    def test_defaults(self):
        config = RealmCtlConfig()
        assert config.panel.url == "http://127.0.0.1:8081"
        assert config.panel.timeout == 30.0
        assert config.panel.status_interval == 15.0
        assert config.rules.page_size == DEFAULT_PAGE_SIZE
        assert config.audit.enabled is True

    def test_load(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "panel:\n"
            "  url: https://panel.example.com:8081/\n"
            "  timeout: null\n"
            "rules:\n"
            "  page_size: 50\n"
        )

        config = RealmCtlConfig.load(path)

        assert config.panel.url == "https://panel.example.com:8081"
        assert config.panel.timeout is None
        assert config.rules.page_size == 50

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc:
            RealmCtlConfig.load(tmp_path / "missing.yaml")
        assert exc.value.hint is not None

    def test_load_or_default_without_file(self, tmp_path):
        config = RealmCtlConfig.load_or_default(tmp_path / "missing.yaml")
        assert config == RealmCtlConfig()

    def test_empty_file_uses_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert RealmCtlConfig.load(path) == RealmCtlConfig()

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("panel: [unclosed\n")
        with pytest.raises(ConfigurationError) as exc:
            RealmCtlConfig.load(path)
        assert "not valid YAML" in str(exc.value)

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError):
            RealmCtlConfig.load(path)

    @pytest.mark.parametrize("body", [
        "panel:\n  url: ftp://panel\n",
        "panel:\n  timeout: 0\n",
        "panel:\n  status_interval: -1\n",
        "rules:\n  page_size: 0\n",
    ])
    def test_invalid_values(self, tmp_path, body):
        path = tmp_path / "config.yaml"
        path.write_text(body)
        with pytest.raises(ConfigurationError) as exc:
            RealmCtlConfig.load(path)
        assert "Invalid configuration" in str(exc.value)

    def test_to_yaml_round_trips(self):
        data = yaml.safe_load(RealmCtlConfig().to_yaml())
        assert data["panel"]["url"] == "http://127.0.0.1:8081"
        assert data["rules"]["page_size"] == DEFAULT_PAGE_SIZE

    def test_audit_path_expands_home(self):
        config = RealmCtlConfig(audit={"log_path": "~/audit.log"})
        assert "~" not in str(config.audit.log_path)


class TestExampleConfig:
    """Tests for the example and init helpers."""

    def test_example_is_valid(self):
        data = yaml.safe_load(get_example_config())
        config = RealmCtlConfig(**data)
        assert config.panel.url == "http://127.0.0.1:8081"

    def test_example_never_holds_the_password(self):
        assert "password:" not in get_example_config().lower()

    def test_init_config(self, tmp_path):
        path = tmp_path / "nested" / "config.yaml"
        init_config(path)
        assert path.exists()
        assert (path.stat().st_mode & 0o777) == 0o600

    def test_init_refuses_overwrite(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("rules:\n  page_size: 20\n")
        with pytest.raises(ConfigurationError):
            init_config(path)
        init_config(path, force=True)
        assert "page_size: 10" in path.read_text()


class TestSecrets:
    """Tests for secrets from the environment."""

    def test_password_from_env(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("REALMCTL_PASSWORD", "s3cret")
        app_config = AppConfig(config_path=tmp_path / "missing.yaml")
        assert app_config.password == "s3cret"

    def test_password_unset(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("REALMCTL_PASSWORD", raising=False)
        assert SecretsConfig().realmctl_password is None


class TestExecutionContext:
    """Tests for building the execution context from CLI flags."""

    def test_verbosity(self):
        assert create_context().verbosity == Verbosity.NORMAL
        assert create_context(verbose=1).is_verbose
        assert create_context(verbose=5).verbosity == Verbosity.DEBUG
        assert create_context(quiet=True, verbose=2).is_quiet

    def test_should_confirm(self):
        assert create_context().should_confirm
        assert not create_context(yes=True).should_confirm
        assert not create_context(dry_run=True).should_confirm

    def test_config_is_lazy(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("rules:\n  page_size: 20\n")
        ctx = create_context(config=path)
        assert ctx._config is None
        assert ctx.config.rules.page_size == 20
