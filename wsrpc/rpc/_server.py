"""Dispatcher: per-connection decode, resolve, coerce, invoke and encode loop."""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Mapping
from typing import Any, Literal

from wsrpc.rpc._common import (
    _EMPTY_TRANSPORT_METADATA,
    ArgumentCoercionError,
    CallContext,
    MethodNotFoundError,
    ProcedureError,
    ProtocolError,
    TransportError,
    _access_logger,
    _generate_id,
    _logger,
)
from wsrpc.rpc._debug import trace_frame
from wsrpc.rpc._registry import ProcedureDescriptor, Registry
from wsrpc.rpc._transport import FrameTransport
from wsrpc.rpc._wire import Envelope, Response, coerce_params, decode_envelope, encode_response, to_json

__all__ = ["Dispatcher"]


def _log_method_error(registry_name: str, method_name: str, server_id: str, request_id: str, exc: BaseException) -> str:
    """Log a procedure failure with traceback and return the exception class name.

    Returns:
        The exception class name (for use as ``error_type``).

    """
    error_type = type(exc).__name__
    extra: dict[str, object] = {"server_id": server_id, "method": method_name, "error_type": error_type}
    if request_id:
        extra["request_id"] = request_id
    _logger.error(
        "Error in %s.%s: %s",
        registry_name,
        method_name,
        exc,
        exc_info=True,
        extra=extra,
    )
    return error_type


def _emit_access_log(
    registry_name: str,
    method_name: str,
    server_id: str,
    connection_id: str,
    request_id: str,
    transport_metadata: Mapping[str, Any],
    duration_ms: float,
    status: Literal["ok", "error"],
    error_type: str = "",
) -> None:
    """Emit a structured access log record for a completed call."""
    if not _access_logger.isEnabledFor(logging.INFO):
        return
    try:
        extra: dict[str, object] = {
            "server_id": server_id,
            "registry": registry_name,
            "method": method_name,
            "connection_id": connection_id,
            "remote_addr": transport_metadata.get("remote_addr", ""),
            "duration_ms": round(duration_ms, 2),
            "status": status,
            "error_type": error_type,
        }
        if request_id:
            extra["request_id"] = request_id
        _access_logger.info(
            "%s.%s %s",
            registry_name,
            method_name,
            status,
            extra=extra,
        )
    except Exception:
        _logger.debug("Access log emission failed", exc_info=True)


class Dispatcher:
    """Turns inbound frames into calls against a :class:`Registry`.

    A single dispatcher is shared by every connection.  It holds no
    per-connection state, so the only thing connections share is the
    read-only registry.
    """

    __slots__ = ("_registry", "_server_id")

    def __init__(self, registry: Registry, *, server_id: str | None = None) -> None:
        """Initialize with the registry to dispatch against.

        Args:
            registry: The procedures to expose.
            server_id: Optional server identifier; auto-generated if ``None``.

        """
        self._registry = registry
        self._server_id = server_id if server_id is not None else uuid.uuid4().hex[:12]
        _logger.info(
            "Dispatcher created for %s (server_id=%s, procedures=%d)",
            registry.name,
            self._server_id,
            len(registry),
            extra={"server_id": self._server_id, "registry": registry.name, "procedure_count": len(registry)},
        )

    @property
    def registry(self) -> Registry:
        """The registry calls are resolved against."""
        return self._registry

    @property
    def server_id(self) -> str:
        """Short random identifier for this dispatcher instance."""
        return self._server_id

    def serve(self, transport: FrameTransport) -> None:
        """Run the dispatch loop until the transport closes.

        Each inbound frame produces at most one outbound frame, in order.
        Only a :class:`TransportError` ends the loop.
        """
        connection_id = _generate_id()
        metadata: Mapping[str, Any] = getattr(transport, "transport_metadata", _EMPTY_TRANSPORT_METADATA)
        _logger.debug(
            "Connection %s opened",
            connection_id,
            extra={"server_id": self._server_id, "connection_id": connection_id},
        )
        while True:
            try:
                frame = transport.receive()
            except TransportError:
                break
            reply = self.handle_frame(frame, connection_id=connection_id, transport_metadata=metadata)
            if reply is None:
                continue
            try:
                transport.send(reply)
            except TransportError:
                break
        _logger.debug(
            "Connection %s closed",
            connection_id,
            extra={"server_id": self._server_id, "connection_id": connection_id},
        )

    def handle_frame(
        self,
        frame: str | bytes,
        *,
        connection_id: str = "",
        transport_metadata: Mapping[str, Any] | None = None,
    ) -> str | None:
        """Process one inbound frame and return the reply frame.

        Returns:
            The encoded response, or ``None`` when the frame was malformed
            and has been dropped.

        """
        trace_frame("in", connection_id, frame)
        try:
            envelope = decode_envelope(frame)
        except ProtocolError as exc:
            _logger.debug(
                "Dropping malformed frame: %s",
                exc,
                extra={"server_id": self._server_id, "connection_id": connection_id},
            )
            return None
        response = self.dispatch(envelope, connection_id=connection_id, transport_metadata=transport_metadata)
        reply = encode_response(response)
        trace_frame("out", connection_id, reply)
        return reply

    def dispatch(
        self,
        envelope: Envelope,
        *,
        connection_id: str = "",
        transport_metadata: Mapping[str, Any] | None = None,
    ) -> Response:
        """Resolve, coerce and invoke one decoded request.

        Never raises for per-request failures; every failure becomes an
        error response echoing the request id.
        """
        metadata = transport_metadata or _EMPTY_TRANSPORT_METADATA
        start = time.monotonic()
        response: Response
        proc = self._registry.lookup(envelope.method)
        if proc is None:
            not_found = MethodNotFoundError(envelope.method)
            response, error_type = Response.failure(envelope.id, str(not_found)), type(not_found).__name__
        else:
            try:
                args = coerce_params(proc, envelope.params)
            except ArgumentCoercionError as exc:
                response, error_type = Response.failure(envelope.id, str(exc)), type(exc).__name__
            else:
                response, error_type = self._invoke(proc, args, envelope, connection_id, metadata)
        _emit_access_log(
            self._registry.name,
            envelope.method,
            self._server_id,
            connection_id,
            envelope.id,
            metadata,
            (time.monotonic() - start) * 1000,
            "ok" if response.ok else "error",
            error_type,
        )
        return response

    def _invoke(
        self,
        proc: ProcedureDescriptor,
        args: list[object],
        envelope: Envelope,
        connection_id: str,
        metadata: Mapping[str, Any],
    ) -> tuple[Response, str]:
        try:
            if proc.accepts_context:
                ctx = CallContext(
                    proc.name,
                    envelope.id,
                    connection_id=connection_id,
                    registry_name=self._registry.name,
                    transport_metadata=metadata,
                )
                result = proc.handler(*args, ctx=ctx)
            else:
                result = proc.handler(*args)
            data = to_json(result)
        except ProcedureError as exc:
            _logger.info(
                "%s.%s reported: %s",
                self._registry.name,
                proc.name,
                exc,
                extra={"server_id": self._server_id, "method": proc.name, "request_id": envelope.id},
            )
            return Response.failure(envelope.id, str(exc)), type(exc).__name__
        except Exception as exc:
            error_type = _log_method_error(self._registry.name, proc.name, self._server_id, envelope.id, exc)
            return Response.failure(envelope.id, f"{error_type}: {exc}"), error_type
        return Response.success(envelope.id, data), ""
