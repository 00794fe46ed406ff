"""Wire format: request envelopes, responses, argument coercion and result encoding.

Request::

    {"id": "<string>", "method": "<string>", "params": [<arg0>, <arg1>, ...]}

Response (one canonical shape for success and every kind of failure)::

    {"id": "<string>", "result": {"data": <value>, "error": null}}
    {"id": "<string>", "result": {"data": null, "error": "<message>"}}
"""

from __future__ import annotations

import dataclasses
import json
import logging
import math
from collections.abc import Mapping, Sequence
from collections.abc import Set as AbstractSet
from dataclasses import dataclass
from enum import Enum
from typing import Any

from wsrpc.rpc._common import ArgumentCoercionError, ProtocolError
from wsrpc.rpc._debug import fmt_frame, fmt_params, wire_request_logger, wire_response_logger
from wsrpc.rpc._registry import ProcedureDescriptor
from wsrpc.rpc._types import (
    Array,
    Map,
    Nullable,
    Primitive,
    PrimitiveKind,
    Struct,
    TypeDescriptor,
    Unknown,
    type_name,
)

__all__ = [
    "Envelope",
    "Response",
    "coerce_params",
    "decode_envelope",
    "encode_response",
    "to_json",
]


@dataclass(frozen=True)
class Envelope:
    """Decoded form of one inbound frame."""

    id: str
    method: str
    params: list[Any]


@dataclass(frozen=True)
class Response:
    """One outbound frame; exactly one of ``data`` / ``error`` is meaningful."""

    id: str
    data: Any = None
    error: str | None = None

    @classmethod
    def success(cls, request_id: str, data: Any) -> Response:
        """Build a success response."""
        return cls(request_id, data, None)

    @classmethod
    def failure(cls, request_id: str, error: str) -> Response:
        """Build a failure response."""
        return cls(request_id, None, error)

    @property
    def ok(self) -> bool:
        """Whether this response carries a result rather than an error."""
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        """Return the wire representation."""
        return {"id": self.id, "result": {"data": self.data, "error": self.error}}


# ---------------------------------------------------------------------------
# Frame codec
# ---------------------------------------------------------------------------


def decode_envelope(frame: str | bytes) -> Envelope:
    """Parse one inbound frame.

    A missing ``id`` or ``method`` decodes as ``""`` and missing ``params``
    as ``[]``; a present field of the wrong JSON type is malformed.

    Raises:
        ProtocolError: If the frame is not a well-formed request object.

    """
    # ValueError covers JSONDecodeError, UnicodeDecodeError and the
    # integer digit limit; RecursionError covers deeply nested payloads.
    try:
        payload = json.loads(frame)
    except (ValueError, RecursionError) as exc:
        raise ProtocolError(f"Frame cannot be decoded: {exc}") from exc
    if not isinstance(payload, dict):
        raise ProtocolError(f"Frame must be a JSON object, got {type(payload).__name__}")

    request_id = payload.get("id", "")
    method = payload.get("method", "")
    params = payload.get("params", [])
    if params is None:
        params = []
    if not isinstance(request_id, str):
        raise ProtocolError(f"'id' must be a string, got {type(request_id).__name__}")
    if not isinstance(method, str):
        raise ProtocolError(f"'method' must be a string, got {type(method).__name__}")
    if not isinstance(params, list):
        raise ProtocolError(f"'params' must be an array, got {type(params).__name__}")

    if wire_request_logger.isEnabledFor(logging.DEBUG):
        wire_request_logger.debug("Decoded request: id=%s, method=%s, params=[%s]", request_id, method, fmt_params(params))
    return Envelope(request_id, method, params)


def encode_response(response: Response) -> str:
    """Serialize a response to a JSON text frame."""
    frame = json.dumps(response.to_dict(), allow_nan=False, separators=(",", ":"))
    if wire_response_logger.isEnabledFor(logging.DEBUG):
        wire_response_logger.debug("Encoded response: %s", fmt_frame(frame))
    return frame


# ---------------------------------------------------------------------------
# Coercion: untyped JSON -> declared parameter types
# ---------------------------------------------------------------------------

_JSON_NAMES: dict[type, str] = {
    bool: "boolean",
    int: "number",
    float: "number",
    str: "string",
    list: "array",
    dict: "object",
    type(None): "null",
}


class _CoercionFailure(Exception):
    """Internal: a value did not match its descriptor at *path*."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


def _json_name(value: object) -> str:
    return _JSON_NAMES.get(type(value), type(value).__name__)


def _mismatch(path: str, expected: TypeDescriptor, value: object) -> _CoercionFailure:
    return _CoercionFailure(path, f"expected {type_name(expected)}, got {_json_name(value)}")


def _coerce_number(value: object, t: Primitive, path: str) -> object:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise _mismatch(path, t, value)
    if t.python_type is int:
        if isinstance(value, float):
            if not value.is_integer():
                raise _CoercionFailure(path, f"expected int, got non-integral number {value!r}")
            return int(value)
        return value
    if t.python_type is float:
        return float(value)
    return value


def _coerce_primitive(value: object, t: Primitive, path: str) -> object:
    if t.kind is PrimitiveKind.NUMBER:
        return _coerce_number(value, t, path)
    if t.kind is PrimitiveKind.STRING:
        if not isinstance(value, str):
            raise _mismatch(path, t, value)
        return value
    if t.kind is PrimitiveKind.BOOLEAN:
        if not isinstance(value, bool):
            raise _mismatch(path, t, value)
        return value
    if value is not None:
        raise _mismatch(path, t, value)
    return None


def _coerce_map_key(key: str, t: TypeDescriptor, path: str) -> object:
    if isinstance(t, Primitive) and t.kind is PrimitiveKind.NUMBER:
        try:
            number = int(key) if t.python_type is int else float(key)
        except ValueError:
            raise _CoercionFailure(path, f"map key {key!r} is not a valid {type_name(t)}") from None
        if isinstance(number, float) and not math.isfinite(number):
            raise _CoercionFailure(path, f"map key {key!r} is not a finite number")
        return number
    return key


def _coerce_struct(value: object, t: Struct, path: str) -> object:
    if not isinstance(value, dict):
        raise _mismatch(path, t, value)
    kwargs: dict[str, object] = {}
    for member in t.fields:
        member_path = f"{path}.{member.name}"
        if member.name in value:
            kwargs[member.name] = _coerce_value(value[member.name], member.type, member_path)
        elif isinstance(member.type, Nullable) and member.required:
            kwargs[member.name] = None
        elif member.required:
            raise _CoercionFailure(member_path, "missing required field")
    try:
        return t.factory(**kwargs)
    except (TypeError, ValueError) as exc:
        raise _CoercionFailure(path, f"cannot build {t.name}: {exc}") from exc


def _coerce_value(value: object, t: TypeDescriptor, path: str) -> object:
    """Coerce one JSON value into the Python value described by *t*."""
    if isinstance(t, Unknown):
        return value
    if isinstance(t, Nullable):
        return None if value is None else _coerce_value(value, t.inner, path)
    if isinstance(t, Primitive):
        return _coerce_primitive(value, t, path)
    if isinstance(t, Array):
        if not isinstance(value, list):
            raise _mismatch(path, t, value)
        return [_coerce_value(v, t.element, f"{path}[{i}]") for i, v in enumerate(value)]
    if isinstance(t, Map):
        if not isinstance(value, dict):
            raise _mismatch(path, t, value)
        return {
            _coerce_map_key(k, t.key, path): _coerce_value(v, t.value, f"{path}[{k!r}]") for k, v in value.items()
        }
    if isinstance(t, Struct):
        return _coerce_struct(value, t, path)
    raise TypeError(f"Unsupported type descriptor: {t!r}")


def coerce_params(proc: ProcedureDescriptor, params: Sequence[object]) -> list[object]:
    """Coerce raw positional arguments into the procedure's declared parameter types.

    Raises:
        ArgumentCoercionError: On a parameter count mismatch or when any
            argument does not match its declared type.  A failed argument
            is never replaced by a default value.

    """
    if len(params) != proc.arity:
        raise ArgumentCoercionError(
            f"invalid params for {proc.name}: expected {proc.arity} params, got {len(params)}"
        )
    coerced: list[object] = []
    for i, (param, raw) in enumerate(zip(proc.params, params, strict=True)):
        try:
            coerced.append(_coerce_value(raw, param.type, ""))
        except _CoercionFailure as exc:
            raise ArgumentCoercionError(
                f"invalid params for {proc.name}: params[{i}] ({param.name}){exc.path}: {exc.reason}"
            ) from None
    return coerced


# ---------------------------------------------------------------------------
# Result encoding: Python values -> JSON-compatible values
# ---------------------------------------------------------------------------


def to_json(value: Any) -> Any:
    """Convert a procedure result to a JSON-compatible value.

    Dataclasses become objects with their init fields in declaration order
    (``field(init=False)`` members are omitted), tuples and sets become
    arrays, mapping keys become strings and enums become their values.

    Raises:
        TypeError: If the value contains something with no JSON form.

    """
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise TypeError(f"Cannot encode non-finite number {value!r}")
        return value
    if isinstance(value, Enum):
        return to_json(value.value)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        # Only init fields are part of the struct descriptor.
        return {f.name: to_json(getattr(value, f.name)) for f in dataclasses.fields(value) if f.init}
    if isinstance(value, Mapping):
        return {_json_key(k): to_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json(v) for v in value]
    if isinstance(value, AbstractSet):
        return [to_json(v) for v in sorted(value, key=repr)]
    raise TypeError(f"Cannot encode value of type {type(value).__name__}")


def _json_key(key: object) -> str:
    if isinstance(key, str):
        return key
    if isinstance(key, Enum):
        return str(key.value)
    if isinstance(key, bool) or not isinstance(key, (int, float)):
        raise TypeError(f"Cannot encode map key of type {type(key).__name__}")
    return json.dumps(key)
