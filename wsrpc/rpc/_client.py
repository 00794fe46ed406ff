# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Minimal synchronous client for frame transports."""

from __future__ import annotations

import json
import logging
from types import TracebackType
from typing import Any

from wsrpc.rpc._common import ProtocolError, RpcError, _generate_id
from wsrpc.rpc._debug import fmt_frame, wire_transport_logger
from wsrpc.rpc._transport import FrameTransport

__all__ = ["RpcClient"]


def _decode_response(frame: str | bytes) -> tuple[str, Any, str | None]:
    """Parse a response frame into ``(id, data, error)``.

    Raises:
        ProtocolError: If the frame is not a response object.

    """
    try:
        payload = json.loads(frame)
    except (ValueError, RecursionError) as exc:
        raise ProtocolError(f"Response cannot be decoded: {exc}") from exc
    if not isinstance(payload, dict) or not isinstance(payload.get("result"), dict):
        raise ProtocolError(f"Unexpected response frame: {fmt_frame(frame)}")
    result = payload["result"]
    error = result.get("error")
    if error is not None and not isinstance(error, str):
        raise ProtocolError(f"'error' must be a string or null, got {type(error).__name__}")
    return str(payload.get("id", "")), result.get("data"), error


class RpcClient:
    """Sends calls over a :class:`FrameTransport` and waits for each reply.

    One call is in flight at a time.  Replies whose id does not match the
    outstanding request are discarded::

        with RpcClient(transport) as client:
            client.call("Add", 2, 3)   # -> 5

    """

    __slots__ = ("_transport",)

    def __init__(self, transport: FrameTransport) -> None:
        """Initialize with a connected transport.  The client owns it."""
        self._transport = transport

    @property
    def transport(self) -> FrameTransport:
        """The underlying transport."""
        return self._transport

    def call(self, method: str, *params: Any) -> Any:
        """Invoke *method* with positional *params* and return the result data.

        Raises:
            RpcError: If the server reports an error.
            TransportError: If the channel closes before a reply arrives.
            ProtocolError: If the reply cannot be decoded.

        """
        request_id = _generate_id()
        frame = json.dumps({"id": request_id, "method": method, "params": list(params)}, separators=(",", ":"))
        self._transport.send(frame)
        while True:
            reply_id, data, error = _decode_response(self._transport.receive())
            if reply_id == request_id:
                break
            if wire_transport_logger.isEnabledFor(logging.DEBUG):
                wire_transport_logger.debug("Discarding reply for unknown id %s (waiting for %s)", reply_id, request_id)
        if error is not None:
            raise RpcError(error, request_id=request_id)
        return data

    def close(self) -> None:
        """Close the transport."""
        self._transport.close()

    def __enter__(self) -> RpcClient:
        """Enter the context."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Close the transport."""
        self.close()
