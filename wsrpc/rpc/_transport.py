"""Frame transport protocol and implementations.

A frame transport moves whole, self-contained messages in both directions
over an already-established channel.  The stream and socket transports
here carry one JSON frame per line (newline-delimited); the WebSocket
endpoint in :mod:`wsrpc.http` uses native WebSocket text frames.
"""

from __future__ import annotations

import contextlib
import logging
import os
import socket
import threading
from collections.abc import Mapping
from io import IOBase
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from wsrpc.rpc._common import _EMPTY_TRANSPORT_METADATA, TransportError, _logger
from wsrpc.rpc._debug import wire_transport_logger

if TYPE_CHECKING:
    from wsrpc.rpc._server import Dispatcher


# ---------------------------------------------------------------------------
# FrameTransport protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class FrameTransport(Protocol):
    """Bidirectional message-oriented channel."""

    def receive(self) -> str | bytes:
        """Block until the next inbound frame arrives.

        Raises:
            TransportError: When the channel is closed or fails.

        """
        ...

    def send(self, frame: str) -> None:
        """Send one frame.

        Raises:
            TransportError: When the channel is closed or fails.

        """
        ...

    def close(self) -> None:
        """Close the transport."""
        ...


# ---------------------------------------------------------------------------
# StreamTransport + make_pipe_pair
# ---------------------------------------------------------------------------


class StreamTransport:
    """Newline-delimited frames over a pair of binary IO streams (e.g. from os.pipe())."""

    __slots__ = ("_metadata", "_reader", "_send_lock", "_writer")

    def __init__(self, reader: IOBase, writer: IOBase, *, metadata: Mapping[str, Any] | None = None) -> None:
        """Initialize with reader and writer streams."""
        self._reader = reader
        self._writer = writer
        self._metadata: Mapping[str, Any] = metadata or _EMPTY_TRANSPORT_METADATA
        self._send_lock = threading.Lock()

    @property
    def transport_metadata(self) -> Mapping[str, Any]:
        """Connection details (``remote_addr`` for sockets)."""
        return self._metadata

    def receive(self) -> bytes:
        """Read the next line; end of stream raises ``TransportError``."""
        try:
            line = self._reader.readline()
        except (OSError, ValueError) as exc:
            raise TransportError(f"Receive failed: {exc}") from exc
        if not line:
            raise TransportError("Stream closed")
        return line.rstrip(b"\r\n")

    def send(self, frame: str) -> None:
        """Write *frame* followed by a newline and flush."""
        data = frame.encode("utf-8") + b"\n"
        with self._send_lock:
            try:
                self._writer.write(data)
                self._writer.flush()
            except (OSError, ValueError) as exc:
                raise TransportError(f"Send failed: {exc}") from exc

    def close(self) -> None:
        """Close both streams."""
        with contextlib.suppress(OSError, ValueError):
            self._writer.close()
        with contextlib.suppress(OSError, ValueError):
            self._reader.close()


def make_pipe_pair() -> tuple[StreamTransport, StreamTransport]:
    """Create connected client/server transports using os.pipe().

    Returns (client_transport, server_transport).
    """
    c2s_r, c2s_w = os.pipe()
    s2c_r, s2c_w = os.pipe()
    if wire_transport_logger.isEnabledFor(logging.DEBUG):
        wire_transport_logger.debug(
            "make_pipe_pair: c2s=(%d,%d), s2c=(%d,%d)",
            c2s_r,
            c2s_w,
            s2c_r,
            s2c_w,
        )
    client = StreamTransport(os.fdopen(s2c_r, "rb"), os.fdopen(c2s_w, "wb"))
    server = StreamTransport(os.fdopen(c2s_r, "rb"), os.fdopen(s2c_w, "wb"))
    return client, server


# ---------------------------------------------------------------------------
# SocketTransport + TcpServer
# ---------------------------------------------------------------------------


class SocketTransport(StreamTransport):
    """Newline-delimited frames over a connected stream socket."""

    __slots__ = ("_sock",)

    def __init__(self, sock: socket.socket) -> None:
        """Wrap a connected socket.  The transport owns the socket."""
        try:
            peer = sock.getpeername()
        except OSError:
            peer = None
        remote_addr = f"{peer[0]}:{peer[1]}" if isinstance(peer, tuple) else str(peer or "")
        super().__init__(
            sock.makefile("rb"),
            sock.makefile("wb"),
            metadata={"remote_addr": remote_addr} if remote_addr else None,
        )
        self._sock = sock

    def close(self) -> None:
        """Shut down and close the socket."""
        with contextlib.suppress(OSError):
            self._sock.shutdown(socket.SHUT_RDWR)
        super().close()
        self._sock.close()


def _serve_connection(dispatcher: Dispatcher, sock: socket.socket) -> None:
    transport = SocketTransport(sock)
    try:
        dispatcher.serve(transport)
    except Exception:
        _logger.exception("Connection handler failed")
    finally:
        transport.close()


class TcpServer:
    """Threaded TCP server: one dispatch loop per accepted connection.

    Connections share the dispatcher's read-only registry and nothing else.
    """

    __slots__ = ("_closed", "_dispatcher", "_sock")

    def __init__(self, dispatcher: Dispatcher, host: str = "127.0.0.1", port: int = 0) -> None:
        """Bind and listen on ``(host, port)``; port 0 picks a free port."""
        self._dispatcher = dispatcher
        self._sock = socket.create_server((host, port))
        self._closed = False

    @property
    def address(self) -> tuple[str, int]:
        """The bound ``(host, port)``."""
        host, port = self._sock.getsockname()[:2]
        return host, port

    def serve_forever(self) -> None:
        """Accept connections until :meth:`close` is called."""
        _logger.info(
            "Serving %s over TCP on %s:%d",
            self._dispatcher.registry.name,
            *self.address,
            extra={"server_id": self._dispatcher.server_id},
        )
        while not self._closed:
            try:
                conn, _ = self._sock.accept()
            except OSError:
                if self._closed:
                    break
                raise
            threading.Thread(target=_serve_connection, args=(self._dispatcher, conn), daemon=True).start()

    def close(self) -> None:
        """Stop accepting connections.  Open connections run until their peers disconnect."""
        self._closed = True
        with contextlib.suppress(OSError):
            self._sock.shutdown(socket.SHUT_RDWR)
        self._sock.close()


def serve_tcp(dispatcher: Dispatcher, host: str = "127.0.0.1", port: int = 0) -> None:
    """Serve *dispatcher* over TCP, blocking until interrupted."""
    server = TcpServer(dispatcher, host, port)
    try:
        server.serve_forever()
    finally:
        server.close()


def tcp_connect(host: str, port: int) -> SocketTransport:
    """Connect to a :class:`TcpServer` and return the client-side transport."""
    return SocketTransport(socket.create_connection((host, port)))
