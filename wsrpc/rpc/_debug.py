"""Debug logging infrastructure for wire protocol diagnostics.

Provides logger instances under the ``wsrpc.wire.*`` hierarchy and
formatting helpers for frames.  Enabling
``logging.getLogger("wsrpc.wire").setLevel(logging.DEBUG)`` gives full
visibility into what flows over the wire.

Setting ``WSRPC_WIRE_DEBUG=1`` additionally traces every raw frame to
stderr through a structlog console renderer, independent of the host
application's logging configuration.

All formatting helpers return ``str`` and never log directly.
They are designed to be called inside ``isEnabledFor`` guards so
there is zero overhead when debug logging is disabled.
"""

from __future__ import annotations

import logging
import os
import sys

import structlog

# ---------------------------------------------------------------------------
# Logger hierarchy: wsrpc.wire.*
# ---------------------------------------------------------------------------

wire_request_logger = logging.getLogger("wsrpc.wire.request")
"""Inbound frame decoding and argument coercion."""

wire_response_logger = logging.getLogger("wsrpc.wire.response")
"""Outbound frame encoding."""

wire_transport_logger = logging.getLogger("wsrpc.wire.transport")
"""Transport lifecycle (pipe, socket)."""

wire_websocket_logger = logging.getLogger("wsrpc.wire.websocket")
"""WebSocket connection lifecycle."""

# ---------------------------------------------------------------------------
# Raw frame tracing (structlog, stderr)
# ---------------------------------------------------------------------------

_WIRE_DEBUG = os.environ.get("WSRPC_WIRE_DEBUG", "").lower() in ("1", "true", "yes")
_frame_log: structlog.stdlib.BoundLogger | None = None


def _get_frame_log() -> structlog.stdlib.BoundLogger:
    """Get or create the frame trace logger, configured to write to stderr."""
    global _frame_log
    if _frame_log is None:
        structlog.configure(
            processors=[
                structlog.processors.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.dev.ConsoleRenderer(),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(0),
            logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        )
        _frame_log = structlog.get_logger().bind(component="wire")
    return _frame_log


def trace_frame(direction: str, connection_id: str, frame: str | bytes) -> None:
    """Trace one raw frame when ``WSRPC_WIRE_DEBUG`` is set."""
    if not _WIRE_DEBUG:
        return
    _get_frame_log().debug(
        "frame",
        direction=direction,
        connection_id=connection_id,
        size=len(frame),
        body=fmt_frame(frame),
    )


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

_MAX_VALUE_LEN = 80
"""Maximum length for individual values in fmt_frame / fmt_params."""


def fmt_frame(frame: str | bytes) -> str:
    """Format a raw frame, truncated.

    Returns:
        ``'{"id": "1", "method": "Add", ...'`` with non-UTF-8 bytes replaced.

    """
    text = frame.decode("utf-8", errors="replace") if isinstance(frame, bytes) else frame
    if len(text) > _MAX_VALUE_LEN:
        return text[:_MAX_VALUE_LEN] + "..."
    return text


def fmt_params(params: list[object]) -> str:
    """Format positional parameters compactly.

    Returns:
        ``"2, 3"`` with long repr values truncated.

    """
    parts: list[str] = []
    for v in params:
        r = repr(v)
        if len(r) > _MAX_VALUE_LEN:
            r = r[:_MAX_VALUE_LEN] + "..."
        parts.append(r)
    return ", ".join(parts)
