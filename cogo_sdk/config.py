"""SDK configuration: where the edge functions live and how to reach them."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import MissingCredentialsError

DEFAULT_CONFIG_DIR = Path.home() / ".config" / "cogo"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"


def _default_edge_base() -> str:
    edge = os.getenv("SUPABASE_EDGE", "")
    if edge:
        return edge
    project_id = os.getenv("SUPABASE_PROJECT_ID", "")
    if project_id:
        return f"https://{project_id}.functions.supabase.co/functions/v1"
    return ""


def project_url_from_edge(edge_base: str) -> str:
    """Derive the project URL from an edge-functions base URL."""
    base = edge_base.rstrip("/")
    if base.endswith("/functions/v1"):
        base = base[: -len("/functions/v1")]
    return base.replace(".functions.supabase.co", ".supabase.co")


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}") from None


@dataclass
class SdkConfig:
    """Connection settings for the chat SDK.

    Defaults come from the environment. A YAML file may override any field;
    unknown keys are preserved in ``extras``.

    Usage::

        config = SdkConfig.from_file("~/.config/cogo/config.yaml")
        client = CogoClient.from_config(config)
    """

    edge_base: str = field(default_factory=_default_edge_base)
    anon_key: str = field(default_factory=lambda: os.getenv("SUPABASE_ANON_KEY", ""))
    supabase_url: str = field(default_factory=lambda: os.getenv("SUPABASE_URL", ""))
    realtime_dsn: str | None = field(default_factory=lambda: os.getenv("COGO_REALTIME_DSN"))
    idle_ms: float = field(default_factory=lambda: _env_float("COGO_IDLE_MS", 15000))
    reconnect_delay_ms: float = field(
        default_factory=lambda: _env_float("COGO_RECONNECT_DELAY_MS", 1000)
    )
    http_timeout_s: float = field(default_factory=lambda: _env_float("COGO_HTTP_TIMEOUT_S", 30.0))
    extras: dict[str, Any] = field(default_factory=dict)

    _KNOWN_FIELDS = frozenset(
        {
            "edge_base",
            "anon_key",
            "supabase_url",
            "realtime_dsn",
            "idle_ms",
            "reconnect_delay_ms",
            "http_timeout_s",
        }
    )

    @classmethod
    def from_file(cls, path: str | Path) -> SdkConfig:
        """Load config from a YAML file."""
        path = Path(path).expanduser()
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file must contain a YAML mapping: {path}")
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SdkConfig:
        known: dict[str, Any] = {}
        extras: dict[str, Any] = {}
        for key, value in data.items():
            if key in cls._KNOWN_FIELDS:
                known[key] = value
            else:
                extras[key] = value
        known["extras"] = extras
        return cls(**known)

    @classmethod
    def load(cls, path: str | Path | None = None) -> SdkConfig:
        """Load ``path``, else the default config file if present, else the environment."""
        if path is not None:
            return cls.from_file(path)
        if DEFAULT_CONFIG_FILE.exists():
            return cls.from_file(DEFAULT_CONFIG_FILE)
        return cls()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "edge_base": self.edge_base,
            "anon_key": self.anon_key,
            "idle_ms": self.idle_ms,
            "reconnect_delay_ms": self.reconnect_delay_ms,
            "http_timeout_s": self.http_timeout_s,
        }
        if self.supabase_url:
            data["supabase_url"] = self.supabase_url
        if self.realtime_dsn:
            data["realtime_dsn"] = self.realtime_dsn
        data.update(self.extras)
        return data

    @property
    def project_url(self) -> str:
        """Project URL for realtime and storage; derived from ``edge_base`` unless set."""
        if self.supabase_url:
            return self.supabase_url.rstrip("/")
        return project_url_from_edge(self.edge_base) if self.edge_base else ""

    def require_credentials(self) -> None:
        """Raise ``MissingCredentialsError`` unless edge base and key are set."""
        if not self.edge_base:
            raise MissingCredentialsError("edge base URL")
        if not self.anon_key:
            raise MissingCredentialsError("anon key")
