"""Errors, loggers, and call context for the RPC framework."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping, MutableMapping
from types import MappingProxyType
from typing import Any, Final

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_logger = logging.getLogger("wsrpc.rpc")
_access_logger = logging.getLogger("wsrpc.access")

_EMPTY_TRANSPORT_METADATA: Final[Mapping[str, Any]] = MappingProxyType({})

METHOD_NOT_FOUND_PREFIX: Final = "method not found: "
"""Prefix of the error message reported for unresolvable method names."""


# ---------------------------------------------------------------------------
# Error taxonomy
# ---------------------------------------------------------------------------


class WsRpcError(Exception):
    """Base class for all wsrpc errors."""


class TransportError(WsRpcError):
    """The underlying channel closed or failed.

    Ends the connection's dispatch loop.  Never reported to the peer and
    never retried.
    """


class ProtocolError(WsRpcError):
    """An inbound frame could not be decoded as a request envelope.

    The frame is dropped without a response; the connection stays open.
    """


class MethodNotFoundError(WsRpcError):
    """The requested method name is not in the registry."""

    def __init__(self, method: str) -> None:
        """Initialize with the unresolved method name."""
        self.method = method
        super().__init__(f"{METHOD_NOT_FOUND_PREFIX}{method}")


class ArgumentCoercionError(WsRpcError):
    """Parameter count mismatch or a parameter value of the wrong shape."""


class ProcedureError(WsRpcError):
    """Domain failure raised by a procedure implementation.

    The message is reported to the caller verbatim.
    """


class ClientGenerationError(WsRpcError):
    """The client declaration artifact could not be generated or written."""


class RpcError(WsRpcError):
    """Raised on the client side when the server reports an error."""

    def __init__(self, error_message: str, *, request_id: str = "") -> None:
        """Initialize with the error text from the remote side."""
        self.error_message = error_message
        self.request_id = request_id
        super().__init__(error_message)


# ---------------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------------


def _generate_id() -> str:
    """Generate a 16-char hex identifier for connections and client requests."""
    return uuid.uuid4().hex[:16]


# ---------------------------------------------------------------------------
# Call context
# ---------------------------------------------------------------------------


class _ContextLoggerAdapter(logging.LoggerAdapter[logging.Logger]):
    """LoggerAdapter that preserves framework-bound extra fields.

    User-supplied ``extra`` in individual log calls is merged, but
    framework fields take precedence on key conflicts.
    """

    def process(self, msg: str, kwargs: MutableMapping[str, Any]) -> tuple[str, MutableMapping[str, Any]]:
        """Merge user extra with framework extra, framework wins on conflict."""
        user_extra = kwargs.get("extra", {})
        kwargs["extra"] = {**user_extra, **(self.extra or {})}
        return msg, kwargs


class CallContext:
    """Request-scoped context injected into procedures that declare a ``ctx`` parameter.

    The ``ctx`` parameter is an implicit context argument: it never appears
    in a procedure's parameter list, on the wire, or in the generated client
    declarations.
    """

    __slots__ = (
        "_logger",
        "_registry_name",
        "connection_id",
        "method",
        "request_id",
        "transport_metadata",
    )

    def __init__(
        self,
        method: str,
        request_id: str,
        *,
        connection_id: str = "",
        registry_name: str = "",
        transport_metadata: Mapping[str, Any] | None = None,
    ) -> None:
        """Initialize with the call's method, correlation id and connection fields."""
        self.method = method
        self.request_id = request_id
        self.connection_id = connection_id
        self.transport_metadata: Mapping[str, Any] = transport_metadata or _EMPTY_TRANSPORT_METADATA
        self._registry_name = registry_name
        self._logger: _ContextLoggerAdapter | None = None

    @property
    def logger(self) -> logging.LoggerAdapter[logging.Logger]:
        """Server-side logger with request context pre-bound.

        Returns:
            A ``LoggerAdapter`` with logger name ``wsrpc.service.<RegistryName>``.
            Always includes ``method`` and ``request_id``; includes
            ``connection_id`` and ``remote_addr`` when available.

        """
        if self._logger is None:
            base = logging.getLogger(f"wsrpc.service.{self._registry_name}")
            extra: dict[str, object] = {"method": self.method, "request_id": self.request_id}
            if self.connection_id:
                extra["connection_id"] = self.connection_id
            remote = self.transport_metadata.get("remote_addr")
            if remote:
                extra["remote_addr"] = remote
            self._logger = _ContextLoggerAdapter(base, extra)
        return self._logger
