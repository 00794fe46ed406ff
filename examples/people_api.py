"""A small service with structs, arrays, nullable fields and maps.

Writes ``api.gen.ts`` next to the working directory, then serves the
registry over WebSocket at ``ws://127.0.0.1:8080/ws``.

Run::

    python examples/people_api.py

or, equivalently::

    wsrpc serve examples.people_api:registry --out api.gen.ts

"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from wsrpc import CallContext, Dispatcher, ProcedureError, describe, serve_websocket, write_client_declarations
from wsrpc.logging_utils import configure_logging


@dataclass
class Person:
    """Someone to greet."""

    name: str
    age: int | None
    tags: list[str] = field(default_factory=list)


# Method names are the wire names, so they follow the client's casing.
class PeopleApi(Protocol):
    """People directory."""

    def Add(self, a: int, b: int) -> int:  # noqa: N802
        """Add two integers."""
        ...

    def Welcome(self, p: Person) -> str:  # noqa: N802
        """Build a greeting for *p*."""
        ...

    def Names(self, people: list[Person]) -> list[str]:  # noqa: N802
        """Return the name of every person, in order."""
        ...

    def MapExample(self, m: dict[str, int]) -> dict[str, int]:  # noqa: N802
        """Echo a string-to-number map."""
        ...


class PeopleApiImpl:
    """Concrete implementation of PeopleApi."""

    def Add(self, a: int, b: int) -> int:  # noqa: N802
        """Add two integers."""
        return a + b

    def Welcome(self, p: Person, ctx: CallContext) -> str:  # noqa: N802
        """Build a greeting for *p*."""
        if not p.name:
            raise ProcedureError("name must not be empty")
        ctx.logger.info("Welcoming %s", p.name)
        return f"Hello {p.name}"

    def Names(self, people: list[Person]) -> list[str]:  # noqa: N802
        """Return the name of every person, in order."""
        return [p.name for p in people]

    def MapExample(self, m: dict[str, int]) -> dict[str, int]:  # noqa: N802
        """Echo a string-to-number map."""
        return m


registry = describe(PeopleApi, PeopleApiImpl(), name="API")


def main() -> None:
    """Generate the client declarations and serve until interrupted."""
    configure_logging("INFO")
    write_client_declarations(registry, "api.gen.ts")
    serve_websocket(Dispatcher(registry), host="127.0.0.1", port=8080, path="/ws")


if __name__ == "__main__":
    main()
