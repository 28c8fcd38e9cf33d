from __future__ import annotations

"""Configuration loading for the dp2 client.

Settings come from a YAML file (`config.yml` next to the executable or the
path given with `--config`). Unknown keys are ignored so that configuration
files shared with other pipeline tools keep working.
"""

import os
from dataclasses import dataclass, fields, replace
from typing import IO, Any

import yaml

DEFAULT_CONFIG_PATH = os.path.join(os.path.expanduser("~"), ".daisy-pipeline", "config.yml")

# YAML key -> LinkConfig attribute
_YAML_KEYS = {
    "host": "host",
    "port": "port",
    "ws_path": "ws_path",
    "ws_timeup": "ws_timeup",
    "exec_line_nix": "exec_line_nix",
    "exec_line_win": "exec_line_win",
    "local": "local",
    "client_key": "client_key",
    "client_secret": "client_secret",
    "timeout_seconds": "timeout_seconds",
    "debug": "debug",
    "starting": "starting",
}


class ConfigError(ValueError):
    """Raised when a configuration file cannot be parsed."""


@dataclass(frozen=True)
class LinkConfig:
    """Connection, launch and credential settings for the link."""

    host: str = "http://localhost"
    port: int = 8181
    ws_path: str = "ws"
    ws_timeup: int = 25
    exec_line_nix: str = "../bin/pipeline2"
    exec_line_win: str = "..\\bin\\pipeline2.bat"
    local: bool = True
    client_key: str = ""
    client_secret: str = ""
    timeout_seconds: int = 60
    debug: bool = False
    starting: bool = False

    @property
    def url(self) -> str:
        """Base URL of the web service, always ending with a slash."""
        return "%s:%d/%s/" % (self.host.rstrip("/"), self.port, self.ws_path.strip("/"))

    def with_overrides(self, **overrides: Any) -> "LinkConfig":
        """Return a copy with the non-None overrides applied."""
        return replace(self, **{key: value for key, value in overrides.items() if value is not None})

    @classmethod
    def from_yaml(cls, stream: IO[str] | str) -> "LinkConfig":
        """Build a config from YAML text, starting from the defaults."""
        try:
            payload = yaml.safe_load(stream)
        except yaml.YAMLError as exc:
            raise ConfigError(f"invalid configuration: {exc}") from exc
        if payload is None:
            return cls()
        if not isinstance(payload, dict):
            raise ConfigError("configuration must be a mapping of keys to values")
        return cls.from_mapping(payload)

    @classmethod
    def from_mapping(cls, payload: dict[str, Any]) -> "LinkConfig":
        types = {item.name: item.type for item in fields(cls)}
        values: dict[str, Any] = {}
        for key, attr in _YAML_KEYS.items():
            if key not in payload or payload[key] is None:
                continue
            values[attr] = _coerce(key, payload[key], types[attr])
        return cls(**values)


def _coerce(key: str, value: Any, annotation: str) -> Any:
    """Coerce YAML scalars to the attribute type declared on LinkConfig."""
    try:
        if annotation == "bool":
            if isinstance(value, str):
                return value.strip().lower() == "true"
            return bool(value)
        if annotation == "int":
            return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"invalid value for {key}: {value!r}") from exc
    return str(value)


def load_link_config(path: str | None = DEFAULT_CONFIG_PATH) -> LinkConfig:
    """Load configuration from `path`; a missing file yields the defaults."""
    if not path or not os.path.exists(path):
        return LinkConfig()
    with open(path, "r", encoding="utf-8") as fp:
        return LinkConfig.from_yaml(fp)
