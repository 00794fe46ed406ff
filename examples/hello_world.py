"""Minimal wsrpc example: register procedures and call them in-process.

This is the quickest way to get started. The dispatcher runs in a
background thread and communicates over an in-process pipe, so no network
is needed.

Run::

    python examples/hello_world.py
"""

from __future__ import annotations

from wsrpc import RegistryBuilder, RpcError, serve_pipe
from wsrpc.rpc import FLOAT, STRING


def greet(name: str) -> str:
    """Return a greeting for *name*."""
    return f"Hello, {name}!"


# 1. Register handlers with explicit parameter and result types.
registry = (
    RegistryBuilder("Greeter")
    .register("greet", greet, params=[("name", STRING)], result=STRING, doc="Return a greeting.")
    .register("add", lambda a, b: a + b, params=[("a", FLOAT), ("b", FLOAT)], result=FLOAT, fallible=False)
    .build()
)


# 2. Start the dispatcher in-process and call procedures by name.
def main() -> None:
    """Run the example."""
    with serve_pipe(registry) as client:
        print(client.call("greet", "World"))  # Hello, World!
        print(client.call("add", 2.5, 3.5))  # 6.0
        try:
            client.call("greet")
        except RpcError as e:
            print(e)  # invalid params for greet: expected 1 params, got 0


if __name__ == "__main__":
    main()
