"""Client configuration loading and validation.

Reads ``drupal.toml`` (a file path, or a directory containing one), resolves
``${VAR}`` environment references, and returns a validated ClientConfig
dataclass.
"""

from __future__ import annotations

import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from drupal_services.core.sync import DEFAULT_CSRF_HEADER
from drupal_services.core.tokens import DEFAULT_TOKEN_PATH
from drupal_services.session import (
    DEFAULT_CONNECT_PATH,
    DEFAULT_LOGIN_PATH,
    DEFAULT_LOGOUT_PATH,
)

CONFIG_FILENAME = "drupal.toml"

# Matches ${VAR_NAME}: letters, digits and underscores, not starting with a digit.
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


class ConfigError(Exception):
    """Raised when client configuration is missing, malformed, or invalid."""


@dataclass
class LoggingConfig:
    """Logging configuration from [drupal.logging] section."""

    level: str = "INFO"
    format: str = "text"  # "text" or "json"
    log_root: str | None = None


@dataclass
class EndpointConfig:
    """Services endpoint paths from [drupal.endpoints], relative to app_root."""

    token: str = DEFAULT_TOKEN_PATH
    connect: str = DEFAULT_CONNECT_PATH
    login: str = DEFAULT_LOGIN_PATH
    logout: str = DEFAULT_LOGOUT_PATH


@dataclass
class AuthConfig:
    """Credentials and session policy from [drupal.auth].

    revalidate_session makes an already-authenticated login() re-check the
    server session via /system/connect instead of trusting local state.
    """

    username: str | None = None
    password: str | None = field(default=None, repr=False)
    revalidate_session: bool = False


@dataclass
class ClientConfig:
    """Parsed configuration for a Services client."""

    app_root: str
    timeout_s: float = 20.0
    verify_ssl: bool = True
    csrf_header: str = DEFAULT_CSRF_HEADER
    strict_coercion: bool = False
    endpoints: EndpointConfig = field(default_factory=EndpointConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def site_name(self) -> str:
        """Host part of app_root, used as the logging context."""
        without_scheme = self.app_root.split("://", 1)[-1]
        return without_scheme.split("/", 1)[0] or self.app_root


def resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ``${VAR_NAME}`` references in config values.

    Walks dicts, lists, and strings.  Non-string leaf values (int, bool,
    float, None) are returned unchanged.

    Raises
    ------
    ConfigError
        If a referenced environment variable is not set.
    """
    if isinstance(value, dict):
        return {k: resolve_env_vars(v) for k, v in value.items()}

    if isinstance(value, list):
        return [resolve_env_vars(item) for item in value]

    if isinstance(value, str):
        return _resolve_string(value)

    return value


def _resolve_string(s: str) -> str:
    """Replace all ``${VAR_NAME}`` occurrences in *s* with env var values.

    Collects all missing variable names and reports them in a single error.
    """
    missing: list[str] = []

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is None:
            missing.append(var_name)
            return match.group(0)  # keep placeholder for error reporting
        return env_value

    result = _ENV_VAR_PATTERN.sub(_replace, s)

    if missing:
        vars_str = ", ".join(missing)
        raise ConfigError(f"Unresolved environment variable(s) in config value: {vars_str}")

    return result


def _require_table(section: dict, key: str) -> dict:
    value = section.get(key, {})
    if not isinstance(value, dict):
        raise ConfigError(f"drupal.{key} must be a table")
    return value


def _parse_path(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"drupal.endpoints.{name} must be a non-empty string")
    path = value.strip()
    return path if path.startswith("/") else f"/{path}"


def _parse_endpoints(section: dict) -> EndpointConfig:
    defaults = EndpointConfig()
    return EndpointConfig(
        token=_parse_path(section.get("token", defaults.token), "token"),
        connect=_parse_path(section.get("connect", defaults.connect), "connect"),
        login=_parse_path(section.get("login", defaults.login), "login"),
        logout=_parse_path(section.get("logout", defaults.logout), "logout"),
    )


def _parse_auth(section: dict) -> AuthConfig:
    username = section.get("username")
    password = section.get("password")
    for name, value in (("username", username), ("password", password)):
        if value is not None and not isinstance(value, str):
            raise ConfigError(f"drupal.auth.{name} must be a string")
    revalidate = section.get("revalidate_session", False)
    if not isinstance(revalidate, bool):
        raise ConfigError("drupal.auth.revalidate_session must be a boolean")
    return AuthConfig(
        username=username or None,
        password=password or None,
        revalidate_session=revalidate,
    )


def _parse_logging(section: dict) -> LoggingConfig:
    level = str(section.get("level", "INFO")).upper()
    fmt = str(section.get("format", "text")).lower()
    if fmt not in ("text", "json"):
        raise ConfigError(f"Invalid drupal.logging.format: {fmt!r}. Expected 'text' or 'json'.")
    log_root = section.get("log_root")
    if log_root is not None and not isinstance(log_root, str):
        raise ConfigError("drupal.logging.log_root must be a string when set")
    return LoggingConfig(level=level, format=fmt, log_root=log_root)


def parse_config(data: dict[str, Any]) -> ClientConfig:
    """Validate a parsed ``drupal.toml`` document.

    Raises
    ------
    ConfigError
        If the [drupal] section or app_root is missing, or a value is invalid.
    """
    data = resolve_env_vars(data)

    section = data.get("drupal")
    if not isinstance(section, dict):
        raise ConfigError("Missing [drupal] section in config")

    app_root = section.get("app_root")
    if not isinstance(app_root, str) or not app_root.strip():
        raise ConfigError("Missing required field: drupal.app_root")
    app_root = app_root.strip().rstrip("/")
    if not app_root.startswith(("http://", "https://")):
        raise ConfigError(f"drupal.app_root must be an http(s) URL, got {app_root!r}")

    try:
        timeout_s = float(section.get("timeout_s", 20.0))
    except (TypeError, ValueError) as exc:
        raise ConfigError("drupal.timeout_s must be a number") from exc
    if timeout_s <= 0:
        raise ConfigError("drupal.timeout_s must be positive")

    verify_ssl = section.get("verify_ssl", True)
    if not isinstance(verify_ssl, bool):
        raise ConfigError("drupal.verify_ssl must be a boolean")

    csrf_header = str(section.get("csrf_header", DEFAULT_CSRF_HEADER)).strip()
    if not csrf_header:
        raise ConfigError("drupal.csrf_header must be a non-empty string")

    coercion = _require_table(section, "coercion")
    strict = coercion.get("strict", False)
    if not isinstance(strict, bool):
        raise ConfigError("drupal.coercion.strict must be a boolean")

    return ClientConfig(
        app_root=app_root,
        timeout_s=timeout_s,
        verify_ssl=verify_ssl,
        csrf_header=csrf_header,
        strict_coercion=strict,
        endpoints=_parse_endpoints(_require_table(section, "endpoints")),
        auth=_parse_auth(_require_table(section, "auth")),
        logging=_parse_logging(_require_table(section, "logging")),
    )


def load_config(path: Path) -> ClientConfig:
    """Load and validate ``drupal.toml``.

    Parameters
    ----------
    path:
        The TOML file, or a directory containing ``drupal.toml``.

    Raises
    ------
    ConfigError
        If the file is missing, contains invalid TOML, or lacks required fields.
    """
    toml_path = path / CONFIG_FILENAME if path.is_dir() else path

    if not toml_path.exists():
        raise ConfigError(f"Config file not found: {toml_path}")

    try:
        data = tomllib.loads(toml_path.read_bytes().decode())
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {toml_path}: {exc}") from exc

    return parse_config(data)
