"""Command-line interface for wsrpc services.

Provides ``generate``, ``describe`` and ``serve`` commands for any
registry reachable as ``module:attribute``.  The attribute may be a
``Registry`` or a zero-argument callable returning one.

Usage::

    wsrpc describe examples.people_api:registry
    wsrpc generate examples.people_api:registry --out web/api.gen.ts
    wsrpc serve examples.people_api:registry --port 8080 --log-format json

"""

from __future__ import annotations

import importlib
import json
import sys
from enum import StrEnum
from pathlib import Path
from typing import Annotated

import typer

from wsrpc.config import LogFormat, ServerConfig
from wsrpc.http import serve_websocket
from wsrpc.logging_utils import configure_logging
from wsrpc.rpc import ClientGenerationError, Dispatcher, Registry, describe_registry, type_name
from wsrpc.typescript import GenerationPolicy, write_client_declarations

# ---------------------------------------------------------------------------
# Output format enum
# ---------------------------------------------------------------------------


class OutputFormat(StrEnum):
    """Output format for the ``describe`` command."""

    table = "table"
    json = "json"


app = typer.Typer(
    name="wsrpc",
    help="Generate client declarations for and serve wsrpc registries.",
    add_completion=False,
    no_args_is_help=True,
)

_AppDir = Annotated[
    Path,
    typer.Option("--app-dir", help="Directory prepended to sys.path before importing TARGET"),
]
_Target = Annotated[str, typer.Argument(help="Registry location as module:attribute")]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_target(target: str, app_dir: Path | None = None) -> Registry:
    """Import ``module:attribute`` and resolve it to a :class:`Registry`.

    Raises:
        typer.BadParameter: If the target cannot be imported or does not
            resolve to a registry.

    """
    module_name, sep, attr_path = target.partition(":")
    if not sep or not module_name or not attr_path:
        raise typer.BadParameter(f"Expected module:attribute, got: {target}")
    if app_dir is not None:
        resolved = str(app_dir.resolve())
        if resolved not in sys.path:
            sys.path.insert(0, resolved)
    try:
        obj: object = importlib.import_module(module_name)
    except ImportError as exc:
        raise typer.BadParameter(f"Cannot import module '{module_name}': {exc}") from exc
    for part in attr_path.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError:
            raise typer.BadParameter(f"'{module_name}' has no attribute '{attr_path}'") from None
    if not isinstance(obj, Registry) and callable(obj):
        try:
            obj = obj()
        except TypeError as exc:
            raise typer.BadParameter(f"'{target}' must be callable without arguments: {exc}") from exc
    if not isinstance(obj, Registry):
        raise typer.BadParameter(f"'{target}' is not a Registry (got {type(obj).__name__})")
    return obj


def _describe_json(registry: Registry) -> str:
    data = {
        "name": registry.name,
        "procedures": [
            {
                "name": proc.name,
                "params": [{"name": p.name, "type": type_name(p.type)} for p in proc.params],
                "result": type_name(proc.result),
                "fallible": proc.fallible,
                "doc": proc.doc,
            }
            for proc in registry.values()
        ],
    }
    return json.dumps(data, indent=2)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def describe(
    target: _Target,
    fmt: Annotated[OutputFormat, typer.Option("--format", "-f", help="Output format")] = OutputFormat.table,
    app_dir: _AppDir = Path("."),
) -> None:
    """Show the procedures of a registry."""
    registry = _load_target(target, app_dir)
    if fmt == OutputFormat.json:
        typer.echo(_describe_json(registry))
    else:
        typer.echo(describe_registry(registry))


@app.command()
def generate(
    target: _Target,
    out: Annotated[Path, typer.Option("--out", "-o", help="Destination .ts file")] = Path("api.gen.ts"),
    app_dir: _AppDir = Path("."),
) -> None:
    """Write TypeScript client declarations for a registry."""
    registry = _load_target(target, app_dir)
    try:
        written = write_client_declarations(registry, out)
    except ClientGenerationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None
    typer.echo(f"{'Wrote' if written else 'Unchanged'}: {out}")


@app.command()
def serve(
    target: _Target,
    host: Annotated[str | None, typer.Option("--host", help="Interface to bind")] = None,
    port: Annotated[int | None, typer.Option("--port", "-p", help="Port to bind")] = None,
    path: Annotated[str | None, typer.Option("--path", help="WebSocket route")] = None,
    out: Annotated[Path | None, typer.Option("--out", "-o", help="Destination .ts file")] = None,
    on_generate_error: Annotated[
        GenerationPolicy | None,
        typer.Option("--on-generate-error", help="Abort startup or only log when generation fails"),
    ] = None,
    log_format: Annotated[LogFormat | None, typer.Option("--log-format", help="Log output format")] = None,
    log_level: Annotated[str | None, typer.Option("--log-level", help="Root logging level")] = None,
    app_dir: _AppDir = Path("."),
) -> None:
    """Generate client declarations, then serve the registry over WebSocket."""
    try:
        config = ServerConfig.from_env().with_overrides(
            host=host,
            port=port,
            path=path,
            client_out=out,
            generate_policy=on_generate_error,
            log_format=log_format,
            log_level=log_level.upper() if log_level else None,
        )
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(2) from None

    configure_logging(config.log_level, json_format=config.log_format == LogFormat.JSON)
    registry = _load_target(target, app_dir)
    try:
        write_client_declarations(registry, config.client_out, policy=config.generate_policy)
    except ClientGenerationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None

    serve_websocket(
        Dispatcher(registry),
        host=config.host,
        port=config.port,
        path=config.path,
        log_level=config.log_level,
    )
