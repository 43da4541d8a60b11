from __future__ import annotations

import asyncio

import httpx
import pytest
from typer.testing import CliRunner

from cogo_sdk import config as config_module
from cogo_sdk.cli import app, commands
from cogo_sdk.client import CogoClient
from cogo_sdk.config import SdkConfig
from cogo_sdk.realtime.local import LocalBroadcastHub, LocalChannel
from cogo_sdk.realtime.postgres import PostgresBroadcastClient
from cogo_sdk.realtime.supabase import SupabaseBroadcastClient

runner = CliRunner()


@pytest.fixture(autouse=True)
def env(monkeypatch, tmp_path):
    monkeypatch.setenv("SUPABASE_EDGE", "https://edge.test/functions/v1")
    monkeypatch.setenv("SUPABASE_ANON_KEY", "anon")
    monkeypatch.delenv("COGO_REALTIME_DSN", raising=False)
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_FILE", tmp_path / "missing.yaml")


@pytest.fixture
def use_http(monkeypatch):
    """Route every CLI client through ``http``."""

    def install(http: httpx.AsyncClient) -> None:
        def from_config(cls, config, *, http_client=None):
            return cls(config.edge_base, config.anon_key, http=http)

        monkeypatch.setattr(CogoClient, "from_config", classmethod(from_config))

    return install


def test_version() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert "cogo" in result.output


def test_missing_credentials_exit_code(monkeypatch) -> None:
    monkeypatch.delenv("SUPABASE_ANON_KEY")
    result = runner.invoke(app, ["capabilities"])
    assert result.exit_code == 1
    assert "Missing anon key" in result.output


def test_generate_typed_renders_events(sse_client, sse, use_http) -> None:
    use_http(
        sse_client(
            sse("meta", {"trace_id": "t1"}),
            sse("cli.plan", {"trace_id": "t1", "actions": ["a", "b"]}),
            sse("cli.apply", {"trace_id": "t1", "action_id": "a", "status": "success"}),
            sse("done", {"trace_id": "t1", "ide_hints": {"toast": "Done", "toast_ko": "완료"}}),
        )
    )

    result = runner.invoke(app, ["generate", "login page", "--language", "ko"])

    assert result.exit_code == 0, result.output
    assert "trace t1" in result.output
    assert "plan: 2 action(s)" in result.output
    assert "완료" in result.output


def test_generate_final_prints_result(sse_client, sse, use_http) -> None:
    use_http(sse_client(sse("done", {"trace_id": "t1", "screens": 3})))

    result = runner.invoke(app, ["generate", "pricing", "--mode", "final"])

    assert result.exit_code == 0, result.output
    assert '"screens": 3' in result.output


def test_generate_raw_stream_error_exits_1(sse_client, use_http) -> None:
    use_http(sse_client(status=500))

    result = runner.invoke(app, ["generate", "pricing", "--mode", "raw"])

    assert result.exit_code == 1
    assert "SSE error" in result.output


def test_trace_status(use_http) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["trace_id"] == "t1"
        return httpx.Response(200, json={"trace_id": "t1", "status": "done"})

    use_http(httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    result = runner.invoke(app, ["trace-status", "t1"])

    assert result.exit_code == 0, result.output
    assert '"status": "done"' in result.output


class ReplayHub(LocalBroadcastHub):
    """Hub that replays ``messages`` on a channel as soon as it is joined."""

    def __init__(self, *messages: tuple[str, dict]) -> None:
        super().__init__()
        self.messages = messages
        self.closed = False

    def _attach(self, channel: LocalChannel) -> None:
        super()._attach(channel)
        asyncio.get_running_loop().call_soon(asyncio.ensure_future, self._replay(channel.name))

    async def _replay(self, name: str) -> None:
        for event, payload in self.messages:
            await self.broadcast(name, event, payload)

    async def close(self) -> None:
        self.closed = True
        await super().close()


def test_watch_prints_broadcasts_until_terminal(monkeypatch) -> None:
    hub = ReplayHub(("progress", {"pct": 50}), ("done", {"trace_id": "t1"}))
    monkeypatch.setattr(commands, "_broadcast_client", lambda config: hub)

    result = runner.invoke(app, ["watch", "t1", "--timeout", "5"])

    assert result.exit_code == 0, result.output
    assert "Watching trace:t1" in result.output
    assert "progress" in result.output
    assert "done" in result.output
    assert hub.subscriber_count("trace:t1") == 0
    assert hub.closed


def test_watch_requires_credentials(monkeypatch) -> None:
    monkeypatch.delenv("SUPABASE_ANON_KEY")
    result = runner.invoke(app, ["watch", "t1"])
    assert result.exit_code == 1
    assert "Missing anon key" in result.output


def test_generate_realtime_uses_broadcasts(sse_client, sse, use_http, monkeypatch) -> None:
    hub = ReplayHub(("done", {"trace_id": "t1", "screens": 2}))
    monkeypatch.setattr(commands, "_broadcast_client", lambda config: hub)
    use_http(sse_client(sse("meta", {"trace_id": "t1"}), sse("queued", {"trace_id": "t1"})))

    result = runner.invoke(app, ["generate", "pricing", "--mode", "realtime"])

    assert result.exit_code == 0, result.output
    assert "queued" in result.output
    assert '"screens": 2' in result.output
    assert hub.closed


def test_broadcast_backend_selection() -> None:
    supabase = commands._broadcast_client(
        SdkConfig(edge_base="https://abcd.functions.supabase.co/functions/v1", anon_key="anon")
    )
    assert isinstance(supabase, SupabaseBroadcastClient)
    assert supabase.project_url == "https://abcd.supabase.co"

    postgres = commands._broadcast_client(
        SdkConfig(
            edge_base="https://edge.test/functions/v1",
            anon_key="anon",
            realtime_dsn="postgresql://localhost/cogo",
        )
    )
    assert isinstance(postgres, PostgresBroadcastClient)
