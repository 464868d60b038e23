"""Tests for drupal.toml loading and validation."""

from __future__ import annotations

from pathlib import Path

import pytest

from drupal_services.config import (
    CONFIG_FILENAME,
    ClientConfig,
    ConfigError,
    load_config,
    parse_config,
    resolve_env_vars,
)

pytestmark = pytest.mark.unit

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_toml(tmp_path: Path, content: str) -> Path:
    """Write *content* to drupal.toml inside *tmp_path* and return the directory."""
    (tmp_path / CONFIG_FILENAME).write_text(content)
    return tmp_path


FULL_TOML = """\
[drupal]
app_root = "https://example.com/api/"
timeout_s = 5
verify_ssl = false
csrf_header = "X-Token"

[drupal.endpoints]
token = "services/session/token"

[drupal.auth]
username = "editor"
password = "${DRUPAL_TEST_PASSWORD}"
revalidate_session = true

[drupal.coercion]
strict = true

[drupal.logging]
level = "debug"
format = "JSON"
log_root = "/tmp/drupal-logs"
"""


# ---------------------------------------------------------------------------
# resolve_env_vars
# ---------------------------------------------------------------------------


class TestResolveEnvVars:
    def test_simple_string(self, monkeypatch):
        monkeypatch.setenv("MY_SECRET", "hunter2")
        assert resolve_env_vars("${MY_SECRET}") == "hunter2"

    def test_partial_string(self, monkeypatch):
        monkeypatch.setenv("HOST", "example.com")
        assert resolve_env_vars("https://${HOST}/api") == "https://example.com/api"

    def test_nested_and_lists(self, monkeypatch):
        monkeypatch.setenv("ITEM", "alpha")
        data = {"outer": {"items": ["${ITEM}", "literal"], "n": 3}}
        assert resolve_env_vars(data) == {"outer": {"items": ["alpha", "literal"], "n": 3}}

    def test_missing_vars_reported_together(self, monkeypatch):
        monkeypatch.delenv("MISSING_A", raising=False)
        monkeypatch.delenv("MISSING_B", raising=False)
        with pytest.raises(ConfigError, match="MISSING_A, MISSING_B"):
            resolve_env_vars("${MISSING_A}:${MISSING_B}")


# ---------------------------------------------------------------------------
# parse_config
# ---------------------------------------------------------------------------


class TestParseConfig:
    def test_minimal_defaults(self):
        config = parse_config({"drupal": {"app_root": "http://drupal.test/api"}})
        assert isinstance(config, ClientConfig)
        assert config.app_root == "http://drupal.test/api"
        assert config.timeout_s == 20.0
        assert config.verify_ssl is True
        assert config.csrf_header == "X-CSRF-Token"
        assert config.strict_coercion is False
        assert config.endpoints.token == "/user/token"
        assert config.endpoints.connect == "/system/connect"
        assert config.endpoints.login == "/user/login"
        assert config.endpoints.logout == "/user/logout"
        assert config.auth.username is None
        assert config.auth.revalidate_session is False
        assert config.logging.level == "INFO"
        assert config.logging.format == "text"

    def test_site_name(self):
        config = parse_config({"drupal": {"app_root": "https://example.com:8443/api"}})
        assert config.site_name == "example.com:8443"

    def test_missing_section(self):
        with pytest.raises(ConfigError, match=r"Missing \[drupal\] section"):
            parse_config({})

    def test_missing_app_root(self):
        with pytest.raises(ConfigError, match="drupal.app_root"):
            parse_config({"drupal": {}})

    def test_app_root_must_be_http(self):
        with pytest.raises(ConfigError, match="http"):
            parse_config({"drupal": {"app_root": "ftp://example.com"}})

    @pytest.mark.parametrize("timeout", [0, -1, "soon"])
    def test_bad_timeout(self, timeout):
        with pytest.raises(ConfigError, match="timeout_s"):
            parse_config({"drupal": {"app_root": "http://x.test", "timeout_s": timeout}})

    def test_verify_ssl_must_be_bool(self):
        with pytest.raises(ConfigError, match="verify_ssl"):
            parse_config({"drupal": {"app_root": "http://x.test", "verify_ssl": "no"}})

    def test_strict_must_be_bool(self):
        with pytest.raises(ConfigError, match="coercion.strict"):
            parse_config({"drupal": {"app_root": "http://x.test", "coercion": {"strict": 1}}})

    def test_table_type_checked(self):
        with pytest.raises(ConfigError, match="drupal.auth must be a table"):
            parse_config({"drupal": {"app_root": "http://x.test", "auth": "editor"}})

    def test_bad_log_format(self):
        with pytest.raises(ConfigError, match="logging.format"):
            parse_config(
                {"drupal": {"app_root": "http://x.test", "logging": {"format": "xml"}}}
            )

    def test_blank_endpoint(self):
        with pytest.raises(ConfigError, match="endpoints.login"):
            parse_config(
                {"drupal": {"app_root": "http://x.test", "endpoints": {"login": " "}}}
            )

    def test_password_not_in_repr(self):
        config = parse_config(
            {
                "drupal": {
                    "app_root": "http://x.test",
                    "auth": {"username": "editor", "password": "hunter2"},
                }
            }
        )
        assert "hunter2" not in repr(config)


# ---------------------------------------------------------------------------
# load_config
# ---------------------------------------------------------------------------


class TestLoadConfig:
    def test_full_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DRUPAL_TEST_PASSWORD", "s3cret")
        config = load_config(_write_toml(tmp_path, FULL_TOML))

        assert config.app_root == "https://example.com/api"
        assert config.timeout_s == 5.0
        assert config.verify_ssl is False
        assert config.csrf_header == "X-Token"
        assert config.endpoints.token == "/services/session/token"
        assert config.auth.username == "editor"
        assert config.auth.password == "s3cret"
        assert config.auth.revalidate_session is True
        assert config.strict_coercion is True
        assert config.logging.level == "DEBUG"
        assert config.logging.format == "json"
        assert config.logging.log_root == "/tmp/drupal-logs"

    def test_file_path_accepted(self, tmp_path):
        _write_toml(tmp_path, '[drupal]\napp_root = "http://x.test"\n')
        config = load_config(tmp_path / CONFIG_FILENAME)
        assert config.app_root == "http://x.test"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="Config file not found"):
            load_config(tmp_path)

    def test_invalid_toml(self, tmp_path):
        with pytest.raises(ConfigError, match="Invalid TOML"):
            load_config(_write_toml(tmp_path, "[drupal\napp_root ="))

    def test_unresolved_env_var(self, tmp_path, monkeypatch):
        monkeypatch.delenv("DRUPAL_TEST_PASSWORD", raising=False)
        with pytest.raises(ConfigError, match="DRUPAL_TEST_PASSWORD"):
            load_config(_write_toml(tmp_path, FULL_TOML))
