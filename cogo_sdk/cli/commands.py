"""Subcommands: generate, watch, capabilities, trace-status."""

from __future__ import annotations

import asyncio
import json
import platform
import signal
from collections.abc import Coroutine
from enum import Enum
from pathlib import Path
from typing import Annotated, Any

import httpx
import typer
from rich.table import Table

from ..cancellation import CancellationToken
from ..client import CogoClient
from ..config import SdkConfig
from ..editor import build_editor_context
from ..endpoints import ChatEndpoints, GenerateRequest
from ..errors import CogoError, StreamAborted
from ..http import new_idempotency_key
from ..realtime.postgres import PostgresBroadcastClient
from ..realtime.protocol import BroadcastClient
from ..realtime.subscriber import TraceSubscriber
from ..realtime.supabase import SupabaseBroadcastClient
from ..streaming.events import TERMINAL_EVENTS
from .events import EventPrinter, print_broadcast, print_frame, print_result
from .formatting import _configure_logging, _get_version, _markup
from .state import app, console, settings
from .theme import THEME


class Mode(str, Enum):
    raw = "raw"
    typed = "typed"
    final = "final"
    realtime = "realtime"


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"cogo {_get_version()}")
        raise typer.Exit(0)


@app.callback()
def main(
    config: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="YAML config file (default ~/.config/cogo/config.yaml)"),
    ] = None,
    log_level: Annotated[
        str,
        typer.Option("--log-level", help="Logging level: DEBUG, INFO, WARNING, ERROR"),
    ] = "WARNING",
    version: Annotated[
        bool,
        typer.Option("--version", callback=_version_callback, is_eager=True, help="Show version"),
    ] = False,
) -> None:
    """COGO chat SDK command line."""
    settings.config_path = config
    settings.log_level = log_level
    settings.reset()
    _configure_logging(log_level)


def _fail(message: str) -> typer.Exit:
    console.print(_markup(message, THEME.error))
    return typer.Exit(1)


def _load_config() -> SdkConfig:
    try:
        config = settings.config()
        config.require_credentials()
    except (OSError, ValueError) as exc:
        raise _fail(str(exc)) from exc
    return config


def _run(coro: Coroutine[Any, Any, Any]) -> Any:
    """Run ``coro``; CogoError and transport failures become exit code 1."""
    try:
        return asyncio.run(coro)
    except CogoError as exc:
        raise _fail(str(exc)) from exc
    except httpx.HTTPError as exc:
        raise _fail(f"Request failed: {exc}") from exc


def _interrupt_cancels(token: CancellationToken) -> None:
    """Ctrl+C cancels ``token`` instead of raising KeyboardInterrupt."""
    if platform.system() == "Windows":
        return

    def on_cancel() -> None:
        console.print(f"\n{_markup('Cancelling...', THEME.notice)}")
        token.cancel("interrupted")

    asyncio.get_running_loop().add_signal_handler(signal.SIGINT, on_cancel)


@app.command()
def generate(
    prompt: Annotated[str, typer.Argument(help="What to design")],
    mode: Annotated[
        Mode,
        typer.Option("--mode", "-m", help="Output mode: raw, typed, final or realtime"),
    ] = Mode.typed,
    idle_ms: Annotated[
        float | None,
        typer.Option("--idle-ms", help="Idle window before subscribing (realtime mode)"),
    ] = None,
    handoff_timeout_ms: Annotated[
        float | None,
        typer.Option("--handoff-timeout-ms", help="Close the stream after handoff (realtime mode)"),
    ] = None,
    open_file: Annotated[
        list[str] | None,
        typer.Option("--open-file", help="Editor open file (repeatable)"),
    ] = None,
    active_file: Annotated[
        str | None,
        typer.Option("--active-file", help="Editor active file"),
    ] = None,
    language: Annotated[
        str,
        typer.Option("--language", "-l", help="Preferred toast language"),
    ] = "en",
    idempotency_key: Annotated[
        str | None,
        typer.Option("--idempotency-key", help="Reuse a key to deduplicate retries"),
    ] = None,
    simulate_cli: Annotated[
        bool,
        typer.Option("--simulate-cli", help="Ask dev deployments to emit simulated cli.* frames"),
    ] = False,
) -> None:
    """Run design-generate and render its stream."""
    config = _load_config()
    editor_context = build_editor_context(open_file, active_file)
    request = GenerateRequest(
        text=prompt,
        editor_context=editor_context or None,
        dev_cli_simulate=True if simulate_cli else None,
    )
    key = idempotency_key or new_idempotency_key("cli")
    _run(
        _generate(
            config,
            request,
            mode=mode,
            idle_ms=config.idle_ms if idle_ms is None else idle_ms,
            handoff_timeout_ms=handoff_timeout_ms,
            language=language,
            idempotency_key=key,
        )
    )


async def _generate(
    config: SdkConfig,
    request: GenerateRequest,
    *,
    mode: Mode,
    idle_ms: float,
    handoff_timeout_ms: float | None,
    language: str,
    idempotency_key: str,
) -> None:
    token = CancellationToken()
    _interrupt_cancels(token)
    printer = EventPrinter(language=language)

    async with CogoClient.from_config(config) as client:
        endpoints = ChatEndpoints(client)
        try:
            if mode is Mode.raw:
                await endpoints.stream_design_generate(
                    request, print_frame, cancel=token, idempotency_key=idempotency_key
                )
            elif mode is Mode.final:
                with console.status("generating", spinner="dots", spinner_style=THEME.running):
                    result = await endpoints.stream_design_generate_to_final(
                        request, cancel=token, idempotency_key=idempotency_key
                    )
                print_result(result)
            elif mode is Mode.typed:
                await endpoints.stream_design_generate_typed(
                    request, printer.handlers(), cancel=token, idempotency_key=idempotency_key
                )
            else:
                broadcasts = _broadcast_client(config)
                try:
                    terminal = await endpoints.stream_design_generate_or_realtime(
                        request,
                        printer.handlers(),
                        subscribe_trace=_trace_subscriber(config, broadcasts),
                        idle_ms=idle_ms,
                        cancel=token,
                        idempotency_key=idempotency_key,
                        handoff_timeout_ms=handoff_timeout_ms,
                    )
                finally:
                    await broadcasts.close()
                if terminal is None and not token.is_cancelled():
                    console.print(_markup("Stream ended without a result", THEME.notice))
        except StreamAborted:
            if not token.is_cancelled():
                raise

    if token.is_cancelled():
        console.print(_markup("Cancelled", THEME.dim))


def _broadcast_client(config: SdkConfig) -> BroadcastClient:
    """Postgres when ``COGO_REALTIME_DSN`` is set, else the project's Supabase Realtime."""
    if config.realtime_dsn:
        return PostgresBroadcastClient(config.realtime_dsn)
    return SupabaseBroadcastClient(config.project_url, config.anon_key)


def _trace_subscriber(config: SdkConfig, broadcasts: BroadcastClient) -> TraceSubscriber:
    return TraceSubscriber(broadcasts, reconnect_delay=config.reconnect_delay_ms / 1000)


@app.command()
def watch(
    trace_id: Annotated[str, typer.Argument(help="Trace to follow")],
    timeout: Annotated[
        float | None,
        typer.Option("--timeout", "-t", help="Give up after this many seconds"),
    ] = None,
) -> None:
    """Print a trace's realtime broadcasts until done or error."""
    config = _load_config()
    _run(_watch(config, trace_id, timeout))


async def _watch(config: SdkConfig, trace_id: str, timeout: float | None) -> None:
    token = CancellationToken()
    _interrupt_cancels(token)
    broadcasts = _broadcast_client(config)
    subscriber = _trace_subscriber(config, broadcasts)

    def on_event(name: str, payload: Any) -> None:
        print_broadcast(name, payload)
        if name in TERMINAL_EVENTS:
            token.cancel(f"terminal:{name}")

    try:
        unsubscribe = await subscriber(trace_id, on_event)
        console.print(_markup(f"Watching trace:{trace_id} (Ctrl+C to stop)", THEME.dim))
        try:
            await asyncio.wait_for(token.wait(), timeout)
        except asyncio.TimeoutError:
            console.print(_markup(f"No terminal event after {timeout:g}s", THEME.notice))
        finally:
            await unsubscribe()
    finally:
        await broadcasts.close()


@app.command()
def capabilities(
    as_json: Annotated[bool, typer.Option("--json", help="Print the raw report")] = False,
) -> None:
    """Show the deployment's capability report."""
    config = _load_config()
    caps = _run(_capabilities(config))
    if as_json:
        console.print_json(json.dumps(caps.raw, default=str))
        return
    table = Table(show_header=False, border_style=THEME.border)
    table.add_column(style=THEME.dim)
    table.add_column(style=THEME.payload)
    table.add_row("ok", str(caps.ok))
    table.add_row("server", caps.server_version or "-")
    table.add_row("envelope", caps.envelope_version or "-")
    table.add_row("capabilities", caps.capabilities_version or "-")
    table.add_row("task types", ", ".join(caps.task_types) or "-")
    table.add_row("sse events", ", ".join(caps.sse_events) or "-")
    if caps.limits:
        table.add_row("limits", json.dumps(caps.limits, default=str))
    console.print(table)


async def _capabilities(config: SdkConfig) -> Any:
    async with CogoClient.from_config(config) as client:
        return await client.get_capabilities()


@app.command("trace-status")
def trace_status(
    trace_id: Annotated[str, typer.Argument(help="Trace to look up")],
) -> None:
    """Print the server-side status of a trace."""
    config = _load_config()
    status = _run(_trace_status(config, trace_id))
    console.print_json(json.dumps(status, default=str))


async def _trace_status(config: SdkConfig, trace_id: str) -> Any:
    async with CogoClient.from_config(config) as client:
        return await ChatEndpoints(client).trace_status(trace_id)
