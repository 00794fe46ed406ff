# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Tests for the wsrpc CLI tool."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
from typer.testing import CliRunner

from wsrpc.cli import app
from wsrpc.typescript import render_client_declarations

runner = CliRunner()

_TARGET = "examples.people_api:registry"


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the caller's WSRPC_* variables out of the tests."""
    for name in (
        "WSRPC_HOST",
        "WSRPC_PORT",
        "WSRPC_PATH",
        "WSRPC_CLIENT_OUT",
        "WSRPC_ON_GENERATE_ERROR",
        "WSRPC_LOG_FORMAT",
        "WSRPC_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def served(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    """Replace the blocking server and logging setup with recorders."""
    calls: list[dict[str, Any]] = []

    def fake_serve(dispatcher: Any, **kwargs: Any) -> None:
        calls.append({"dispatcher": dispatcher, **kwargs})

    monkeypatch.setattr("wsrpc.cli.serve_websocket", fake_serve)
    monkeypatch.setattr("wsrpc.cli.configure_logging", lambda *args, **kwargs: None)
    return calls


def test_help_lists_commands() -> None:
    """The console script's Typer app exposes every command."""
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for command in ("describe", "generate", "serve"):
        assert command in result.output


# ---------------------------------------------------------------------------
# describe
# ---------------------------------------------------------------------------


class TestDescribe:
    """``wsrpc describe``."""

    def test_table(self) -> None:
        """The default output is a readable listing."""
        result = runner.invoke(app, ["describe", _TARGET])
        assert result.exit_code == 0, result.output
        assert "RPC Registry: API" in result.output
        assert "  Add(a: int, b: int) -> int" in result.output
        assert "  Welcome(p: Person) -> str" in result.output

    def test_json(self) -> None:
        """JSON output keeps registration order."""
        result = runner.invoke(app, ["describe", _TARGET, "--format", "json"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["name"] == "API"
        assert [p["name"] for p in data["procedures"]] == ["Add", "Welcome", "Names", "MapExample"]
        assert data["procedures"][2]["params"] == [{"name": "people", "type": "list[Person]"}]

    @pytest.mark.parametrize(
        ("target", "message"),
        [
            ("examples.people_api", "Expected module:attribute"),
            ("no_such_module_xyz:registry", "Cannot import module"),
            ("examples.people_api:missing", "has no attribute"),
            ("wsrpc.rpc._common:METHOD_NOT_FOUND_PREFIX", "is not a Registry"),
            ("examples.people_api:PeopleApiImpl", "is not a Registry (got PeopleApiImpl)"),
            ("examples.people_api:Person", "must be callable without arguments"),
        ],
    )
    def test_bad_target(self, target: str, message: str) -> None:
        """Unusable targets are a usage error."""
        result = runner.invoke(app, ["describe", target])
        assert result.exit_code == 2
        assert message in " ".join(result.output.replace("│", " ").split())


# ---------------------------------------------------------------------------
# generate
# ---------------------------------------------------------------------------


class TestGenerate:
    """``wsrpc generate``."""

    def test_write_then_unchanged(self, tmp_path: Path) -> None:
        """The second run reports the file as unchanged."""
        out = tmp_path / "api.gen.ts"
        first = runner.invoke(app, ["generate", _TARGET, "--out", str(out)])
        assert first.exit_code == 0, first.output
        assert f"Wrote: {out}" in first.output
        second = runner.invoke(app, ["generate", _TARGET, "-o", str(out)])
        assert second.exit_code == 0
        assert f"Unchanged: {out}" in second.output

    def test_content(self, tmp_path: Path) -> None:
        """The written file is the rendered declarations."""
        from examples.people_api import registry

        out = tmp_path / "api.gen.ts"
        runner.invoke(app, ["generate", _TARGET, "--out", str(out)])
        text = out.read_text(encoding="utf-8")
        assert text == render_client_declarations(registry)
        assert "  Names(people: { name: string; age: number | null; tags?: string[]; }[]): Promise<string[]>;" in text

    def test_failure_exits_1(self, tmp_path: Path) -> None:
        """A path that cannot be written is reported and exits 1."""
        result = runner.invoke(app, ["generate", _TARGET, "--out", str(tmp_path)])
        assert result.exit_code == 1
        assert "Failed to write client declarations" in result.output


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


class TestServe:
    """``wsrpc serve`` with the blocking server replaced."""

    def test_generates_then_serves(self, tmp_path: Path, served: list[dict[str, Any]]) -> None:
        """Declarations are written before the server starts."""
        out = tmp_path / "api.gen.ts"
        result = runner.invoke(app, ["serve", _TARGET, "--out", str(out), "--port", "9001"])
        assert result.exit_code == 0, result.output
        assert out.exists()
        [call] = served
        assert call["dispatcher"].registry.name == "API"
        assert call["host"] == "127.0.0.1"
        assert call["port"] == 9001
        assert call["path"] == "/ws"
        assert call["log_level"] == "INFO"

    def test_environment_and_override(
        self, tmp_path: Path, served: list[dict[str, Any]], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Options win over WSRPC_* variables, which win over defaults."""
        monkeypatch.setenv("WSRPC_HOST", "0.0.0.0")
        monkeypatch.setenv("WSRPC_PORT", "9100")
        monkeypatch.setenv("WSRPC_CLIENT_OUT", str(tmp_path / "env.gen.ts"))
        result = runner.invoke(app, ["serve", _TARGET, "--port", "9200", "--path", "/rpc", "--log-level", "debug"])
        assert result.exit_code == 0, result.output
        [call] = served
        assert call["host"] == "0.0.0.0"
        assert call["port"] == 9200
        assert call["path"] == "/rpc"
        assert call["log_level"] == "DEBUG"
        assert (tmp_path / "env.gen.ts").exists()

    def test_fatal_generation_failure(self, tmp_path: Path, served: list[dict[str, Any]]) -> None:
        """Under the default policy a generation failure aborts startup."""
        result = runner.invoke(app, ["serve", _TARGET, "--out", str(tmp_path)])
        assert result.exit_code == 1
        assert "Failed to write client declarations" in result.output
        assert served == []

    def test_log_policy_keeps_serving(self, tmp_path: Path, served: list[dict[str, Any]]) -> None:
        """Under the log policy the server starts anyway."""
        result = runner.invoke(app, ["serve", _TARGET, "--out", str(tmp_path), "--on-generate-error", "log"])
        assert result.exit_code == 0, result.output
        assert len(served) == 1

    def test_invalid_environment(self, served: list[dict[str, Any]], monkeypatch: pytest.MonkeyPatch) -> None:
        """A bad WSRPC_* value is a usage error."""
        monkeypatch.setenv("WSRPC_PORT", "not-a-port")
        result = runner.invoke(app, ["serve", _TARGET])
        assert result.exit_code == 2
        assert "WSRPC_PORT must be an integer" in result.output
        assert served == []
