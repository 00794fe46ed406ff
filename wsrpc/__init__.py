# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Name-based RPC over WebSockets with typed procedures and generated TypeScript clients."""

import logging

from wsrpc.rpc import (
    METHOD_NOT_FOUND_PREFIX,
    ArgumentCoercionError,
    CallContext,
    ClientGenerationError,
    Dispatcher,
    FrameTransport,
    MethodNotFoundError,
    Parameter,
    ProcedureDescriptor,
    ProcedureError,
    ProtocolError,
    Registry,
    RegistryBuilder,
    RpcClient,
    RpcError,
    SocketTransport,
    StreamTransport,
    TcpServer,
    TransportError,
    TypeDescriptor,
    WsRpcError,
    describe,
    describe_registry,
    make_pipe_pair,
    serve_pipe,
    serve_tcp,
    tcp_connect,
    type_of,
)
from wsrpc.http import make_asgi_app, serve_websocket
from wsrpc.typescript import GenerationPolicy, render_client_declarations, write_client_declarations

__all__ = [
    # Core
    "Dispatcher",
    "Registry",
    "RegistryBuilder",
    "Parameter",
    "ProcedureDescriptor",
    "TypeDescriptor",
    "CallContext",
    "describe",
    "describe_registry",
    "type_of",
    # Client
    "RpcClient",
    # WebSocket endpoint
    "make_asgi_app",
    "serve_websocket",
    # Convenience
    "serve_pipe",
    "serve_tcp",
    "tcp_connect",
    # Transports
    "FrameTransport",
    "SocketTransport",
    "StreamTransport",
    "TcpServer",
    "make_pipe_pair",
    # Client declarations
    "GenerationPolicy",
    "render_client_declarations",
    "write_client_declarations",
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

# Attach NullHandler to the root logger so library users don't get
# "No handler found" warnings.  Must come after all imports so the
# logger hierarchy is fully populated.
logging.getLogger("wsrpc").addHandler(logging.NullHandler())
