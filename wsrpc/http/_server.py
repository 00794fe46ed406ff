"""WebSocket endpoint implementation using Falcon/ASGI.

Every accepted WebSocket runs its own sequential dispatch loop as one
asyncio task.  Procedure invocation is off-loaded to a worker thread so
a slow procedure never blocks other connections' event-loop work.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import falcon
import falcon.asgi
import uvicorn

from wsrpc.rpc import Dispatcher, type_name
from wsrpc.rpc._common import _generate_id, _logger
from wsrpc.rpc._debug import wire_websocket_logger


class _WebSocketResource:
    """Falcon resource for the RPC socket: ``GET {path}`` with upgrade."""

    def __init__(self, dispatcher: Dispatcher) -> None:
        self._dispatcher = dispatcher

    async def on_websocket(self, req: falcon.asgi.Request, ws: falcon.asgi.WebSocket) -> None:
        """Run the dispatch loop until the peer disconnects."""
        connection_id = _generate_id()
        metadata: dict[str, Any] = {"remote_addr": req.remote_addr or ""}
        await ws.accept()
        if wire_websocket_logger.isEnabledFor(logging.DEBUG):
            wire_websocket_logger.debug(
                "WebSocket %s accepted from %s",
                connection_id,
                metadata["remote_addr"],
            )
        try:
            while True:
                try:
                    frame = await ws.receive_text()
                except falcon.errors.PayloadTypeError:
                    _logger.debug(
                        "Dropping binary frame",
                        extra={"server_id": self._dispatcher.server_id, "connection_id": connection_id},
                    )
                    continue
                reply = await asyncio.to_thread(
                    self._dispatcher.handle_frame,
                    frame,
                    connection_id=connection_id,
                    transport_metadata=metadata,
                )
                if reply is not None:
                    await ws.send_text(reply)
        except falcon.WebSocketDisconnected:
            pass
        if wire_websocket_logger.isEnabledFor(logging.DEBUG):
            wire_websocket_logger.debug("WebSocket %s closed", connection_id)


class _DescribeResource:
    """Falcon resource listing the registry: ``GET {path}/describe``."""

    def __init__(self, dispatcher: Dispatcher) -> None:
        self._dispatcher = dispatcher

    async def on_get(self, req: falcon.asgi.Request, resp: falcon.asgi.Response) -> None:
        """Return the procedures as JSON, in registration order."""
        registry = self._dispatcher.registry
        resp.media = {
            "name": registry.name,
            "server_id": self._dispatcher.server_id,
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


def make_asgi_app(dispatcher: Dispatcher, *, path: str = "/ws") -> falcon.asgi.App:
    """Create a Falcon ASGI app that serves RPC calls over WebSocket.

    Args:
        dispatcher: The Dispatcher to serve.
        path: Route of the WebSocket endpoint (default ``/ws``).

    Returns:
        A Falcon ASGI application.

    Raises:
        ValueError: If *path* does not start with ``/``.

    """
    if not path.startswith("/"):
        raise ValueError(f"path must start with '/', got {path!r}")
    path = path.rstrip("/") or "/"
    app = falcon.asgi.App()
    app.add_route(path, _WebSocketResource(dispatcher))
    app.add_route(f"{path.rstrip('/')}/describe", _DescribeResource(dispatcher))

    _logger.info(
        "ASGI app created for %s (server_id=%s, path=%s)",
        dispatcher.registry.name,
        dispatcher.server_id,
        path,
        extra={
            "server_id": dispatcher.server_id,
            "registry": dispatcher.registry.name,
            "path": path,
        },
    )
    return app


def serve_websocket(
    dispatcher: Dispatcher,
    *,
    host: str = "127.0.0.1",
    port: int = 8080,
    path: str = "/ws",
    log_level: str = "info",
) -> None:
    """Serve *dispatcher* over WebSocket with uvicorn, blocking until interrupted.

    uvicorn's own logging configuration is disabled so records flow
    through the application's handlers.
    """
    app = make_asgi_app(dispatcher, path=path)
    _logger.info(
        "WebSocket running at ws://%s:%d%s",
        host,
        port,
        path,
        extra={"server_id": dispatcher.server_id},
    )
    uvicorn.run(app, host=host, port=port, log_level=log_level.lower(), log_config=None)
