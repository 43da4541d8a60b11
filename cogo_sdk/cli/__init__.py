"""CLI package for cogo-chat-sdk."""

from dotenv import load_dotenv

load_dotenv()

from .events import EventPrinter, print_broadcast, print_frame
from .state import app, console, settings

# Import subcommand module so its @app.command() decorators register
from . import commands as _commands  # noqa: F401


def cli() -> None:
    """CLI entrypoint."""
    app(prog_name="cogo")


__all__ = [
    "EventPrinter",
    "app",
    "cli",
    "console",
    "print_broadcast",
    "print_frame",
    "settings",
]


if __name__ == "__main__":
    cli()
