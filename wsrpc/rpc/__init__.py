# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Name-based RPC over message-oriented channels with JSON payloads.

Exposes a set of host-side procedures to remote peers.  Procedures are
declared as methods on a Protocol class (or registered explicitly with
typed descriptors); parameter and result types are derived once at
startup into a read-only :class:`Registry`.

Wire Protocol
-------------
Every frame is one JSON object.  Requests carry positional parameters::

    {"id": "1", "method": "Add", "params": [2, 3]}

Every response, whether a result or a failure, has the same shape and
echoes the request id::

    {"id": "1", "result": {"data": 5, "error": null}}
    {"id": "2", "result": {"data": null, "error": "method not found: Foo"}}

A frame that cannot be decoded as a request is dropped without a
response; the connection stays open.  Only a closed or failed channel
ends a connection.

Dispatch
--------
Each connection runs a strictly sequential loop: receive a frame, decode
it, resolve the method by exact name, coerce the positional parameters
into the declared types, invoke, encode the reply.  Coercion never falls
back to defaults: a missing or mistyped parameter is an error response.

Call Context
------------
Procedure implementations can accept an optional ``ctx`` parameter (type
``CallContext``) to get a request-scoped logger and transport metadata.
The parameter is injected by the framework when present in the method
signature; it does **not** appear on the wire.

"""

from __future__ import annotations

import contextlib
import threading
from collections.abc import Iterator

from wsrpc.rpc._client import RpcClient
from wsrpc.rpc._common import (
    METHOD_NOT_FOUND_PREFIX,
    ArgumentCoercionError,
    CallContext,
    ClientGenerationError,
    MethodNotFoundError,
    ProcedureError,
    ProtocolError,
    RpcError,
    TransportError,
    WsRpcError,
)
from wsrpc.rpc._registry import (
    Parameter,
    ProcedureDescriptor,
    Registry,
    RegistryBuilder,
    describe,
    describe_registry,
)
from wsrpc.rpc._server import Dispatcher
from wsrpc.rpc._transport import (
    FrameTransport,
    SocketTransport,
    StreamTransport,
    TcpServer,
    make_pipe_pair,
    serve_tcp,
    tcp_connect,
)
from wsrpc.rpc._types import (
    BOOLEAN,
    FLOAT,
    INTEGER,
    NULL,
    STRING,
    UNKNOWN,
    Array,
    Field,
    Map,
    Nullable,
    Primitive,
    PrimitiveKind,
    Struct,
    TypeDescriptor,
    TypeVisitor,
    Unknown,
    type_name,
    type_of,
)
from wsrpc.rpc._wire import Envelope, Response, coerce_params, decode_envelope, encode_response, to_json

__all__ = [
    # Registry
    "Parameter",
    "ProcedureDescriptor",
    "Registry",
    "RegistryBuilder",
    "describe",
    "describe_registry",
    # Types
    "Array",
    "BOOLEAN",
    "FLOAT",
    "Field",
    "INTEGER",
    "Map",
    "NULL",
    "Nullable",
    "Primitive",
    "PrimitiveKind",
    "STRING",
    "Struct",
    "TypeDescriptor",
    "TypeVisitor",
    "UNKNOWN",
    "Unknown",
    "type_name",
    "type_of",
    # Wire
    "Envelope",
    "Response",
    "coerce_params",
    "decode_envelope",
    "encode_response",
    "to_json",
    # Server & client
    "CallContext",
    "Dispatcher",
    "RpcClient",
    "serve_pipe",
    # Transports
    "FrameTransport",
    "SocketTransport",
    "StreamTransport",
    "TcpServer",
    "make_pipe_pair",
    "serve_tcp",
    "tcp_connect",
    # Errors
    "METHOD_NOT_FOUND_PREFIX",
    "ArgumentCoercionError",
    "ClientGenerationError",
    "MethodNotFoundError",
    "ProcedureError",
    "ProtocolError",
    "RpcError",
    "TransportError",
    "WsRpcError",
]


@contextlib.contextmanager
def serve_pipe(registry: Registry) -> Iterator[RpcClient]:
    """Start an in-process pipe server and yield a connected client.

    Useful for tests and demos.  A background thread runs
    ``Dispatcher.serve()`` on the server side of a pipe pair.

    Args:
        registry: The procedures to expose.

    Yields:
        An :class:`RpcClient` connected to the server.

    """
    client_transport, server_transport = make_pipe_pair()
    dispatcher = Dispatcher(registry)
    thread = threading.Thread(target=dispatcher.serve, args=(server_transport,), daemon=True)
    thread.start()
    try:
        with RpcClient(client_transport) as client:
            yield client
    finally:
        thread.join(timeout=5)
        server_transport.close()
