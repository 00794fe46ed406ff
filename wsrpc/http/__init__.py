"""WebSocket transport for wsrpc using Falcon (ASGI) and uvicorn.

Provides ``make_asgi_app`` to expose a ``Dispatcher`` as a Falcon ASGI
application, and ``serve_websocket`` to run it under uvicorn.

WebSocket Wire Protocol
-----------------------
- ``GET {path}`` (WebSocket upgrade): each text frame is one JSON request;
  each reply is one JSON text frame.  Binary frames are dropped.
- ``GET {path}/describe``: JSON listing of the registry's procedures.
"""

from wsrpc.http._server import make_asgi_app, serve_websocket

__all__ = [
    "make_asgi_app",
    "serve_websocket",
]
