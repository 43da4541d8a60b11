"""Shared CLI state: console, app, settings."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import typer
from rich.console import Console

from ..config import SdkConfig

# Rich console for all output
console = Console()


@dataclass
class Settings:
    """Options from the top-level callback, read by subcommands."""

    config_path: Path | None = None
    log_level: str = "WARNING"
    _config: SdkConfig | None = field(default=None, repr=False)

    def config(self) -> SdkConfig:
        if self._config is None:
            self._config = SdkConfig.load(self.config_path)
        return self._config

    def reset(self) -> None:
        self._config = None


settings = Settings()

# Typer app
app = typer.Typer(
    name="cogo",
    help="Stream design generations and watch traces on a COGO edge deployment.",
    epilog=(
        "Examples:\n"
        '  cogo generate "login screen with email and password"\n'
        '  cogo generate --mode typed "pricing page"\n'
        '  cogo generate --mode realtime --idle-ms 8000 "dashboard"\n'
        "  cogo watch 4f1c0d2e-trace\n"
        "  cogo capabilities"
    ),
    add_completion=False,
    no_args_is_help=True,
)
