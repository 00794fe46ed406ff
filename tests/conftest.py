"""Shared test fixtures for wsrpc tests."""

# ruff: noqa: N802

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import pytest

from wsrpc.rpc import CallContext, Dispatcher, ProcedureError, Registry, describe

# ---------------------------------------------------------------------------
# Fixture service: wire-cased method names, as a browser client expects
# ---------------------------------------------------------------------------


@dataclass
class Person:
    """Struct whose field order must survive into the generated declarations."""

    Name: str
    Age: int


@dataclass
class Profile:
    """Struct with a nullable field and a defaulted field."""

    name: str
    age: int | None
    tags: list[str] = field(default_factory=list)


class FixtureService(Protocol):
    """Procedures covering every descriptor variant and failure path."""

    def Add(self, a: int, b: int) -> int:
        """Add two integers."""
        ...

    def Welcome(self, p: Person) -> str:
        """Greet a person.

        The greeting uses only the name.
        """
        ...

    def Names(self, people: list[Profile]) -> list[str]:
        """Return every profile's name."""
        ...

    def MapExample(self, m: dict[str, int]) -> dict[str, int]:
        """Echo a map."""
        ...

    def Scale(self, values: dict[int, float], factor: float) -> dict[int, float]:
        """Multiply every value by *factor*."""
        ...

    def Fail(self, message: str) -> None:
        """Report a domain error."""
        ...

    def Crash(self) -> int:
        """Raise an unexpected exception."""
        ...

    def WhoAmI(self) -> str:
        """Return the method name and request id seen by the procedure."""
        ...

    def Unencodable(self) -> Any:
        """Return a value with no JSON form."""
        ...

    def Echo(self, value: Any) -> Any:
        """Return *value* unchanged."""
        ...


class FixtureServiceImpl:
    """Concrete implementation of FixtureService."""

    def Add(self, a: int, b: int) -> int:
        """Add two integers."""
        return a + b

    def Welcome(self, p: Person) -> str:
        """Greet a person."""
        return f"Hello {p.Name}"

    def Names(self, people: list[Profile]) -> list[str]:
        """Return every profile's name."""
        return [p.name for p in people]

    def MapExample(self, m: dict[str, int]) -> dict[str, int]:
        """Echo a map."""
        return m

    def Scale(self, values: dict[int, float], factor: float) -> dict[int, float]:
        """Multiply every value by *factor*."""
        return {k: v * factor for k, v in values.items()}

    def Fail(self, message: str) -> None:
        """Report a domain error."""
        raise ProcedureError(message)

    def Crash(self) -> int:
        """Raise an unexpected exception."""
        raise ValueError("boom")

    def WhoAmI(self, ctx: CallContext) -> str:
        """Return the method name and request id seen by the procedure."""
        ctx.logger.info("WhoAmI called", extra={"custom": "value"})
        return f"{ctx.method}:{ctx.request_id}"

    def Unencodable(self) -> Any:
        """Return a value with no JSON form."""
        return object()

    def Echo(self, value: Any) -> Any:
        """Return *value* unchanged."""
        return value


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _extra(record: logging.LogRecord, key: str) -> Any:
    """Read a dynamic extra field from a log record without ``type: ignore``."""
    return record.__dict__[key]


def request_frame(method: str, *params: Any, request_id: str = "1") -> str:
    """Build a request frame."""
    return json.dumps({"id": request_id, "method": method, "params": list(params)})


def call_frame(dispatcher: Dispatcher, method: str, *params: Any, request_id: str = "1") -> dict[str, Any]:
    """Dispatch one request and return the decoded response."""
    reply = dispatcher.handle_frame(request_frame(method, *params, request_id=request_id))
    assert reply is not None
    result: dict[str, Any] = json.loads(reply)
    return result


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def registry() -> Registry:
    """Registry for the fixture service, named ``API``."""
    return describe(FixtureService, FixtureServiceImpl(), name="API")


@pytest.fixture()
def dispatcher(registry: Registry) -> Dispatcher:
    """Dispatcher over the fixture registry."""
    return Dispatcher(registry, server_id="test-server")
