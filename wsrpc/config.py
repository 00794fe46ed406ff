"""Server configuration resolved from the environment.

Every field has a default; ``WSRPC_*`` environment variables override the
defaults and command-line options override the environment.

==========================  ==============================  ==============
Variable                    Field                           Default
==========================  ==============================  ==============
``WSRPC_HOST``              ``host``                        ``127.0.0.1``
``WSRPC_PORT``              ``port``                        ``8080``
``WSRPC_PATH``              ``path``                        ``/ws``
``WSRPC_CLIENT_OUT``        ``client_out``                  ``api.gen.ts``
``WSRPC_ON_GENERATE_ERROR`` ``generate_policy``             ``fatal``
``WSRPC_LOG_FORMAT``        ``log_format``                  ``text``
``WSRPC_LOG_LEVEL``         ``log_level``                   ``INFO``
==========================  ==============================  ==============
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, replace
from enum import StrEnum
from pathlib import Path
from typing import Any

from wsrpc.typescript import GenerationPolicy

__all__ = ["LogFormat", "ServerConfig"]

_ENV_PREFIX = "WSRPC_"


class LogFormat(StrEnum):
    """Log output format for the ``serve`` command."""

    TEXT = "text"
    JSON = "json"


def _parse_port(raw: str) -> int:
    try:
        port = int(raw)
    except ValueError:
        raise ValueError(f"{_ENV_PREFIX}PORT must be an integer, got {raw!r}") from None
    if not 0 <= port <= 65535:
        raise ValueError(f"{_ENV_PREFIX}PORT must be between 0 and 65535, got {port}")
    return port


def _parse_level(raw: str) -> str:
    level = raw.strip().upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ValueError(f"{_ENV_PREFIX}LOG_LEVEL is not a logging level: {raw!r}")
    return level


def _parse_enum[E: StrEnum](enum_type: type[E], name: str, raw: str) -> E:
    try:
        return enum_type(raw.strip().lower())
    except ValueError:
        choices = ", ".join(m.value for m in enum_type)
        raise ValueError(f"{_ENV_PREFIX}{name} must be one of {choices}, got {raw!r}") from None


@dataclass(frozen=True)
class ServerConfig:
    """Settings for ``wsrpc serve``.

    Attributes:
        host: Interface to bind.
        port: TCP port to bind.
        path: Route of the WebSocket endpoint.
        client_out: Where the TypeScript client declarations are written.
        generate_policy: Whether a declaration generation failure aborts
            startup (``fatal``) or is only logged (``log``).
        log_format: ``text`` or ``json``.
        log_level: Name of the root logging level.

    """

    host: str = "127.0.0.1"
    port: int = 8080
    path: str = "/ws"
    client_out: Path = Path("api.gen.ts")
    generate_policy: GenerationPolicy = GenerationPolicy.FATAL
    log_format: LogFormat = LogFormat.TEXT
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        """Validate field values.

        Raises:
            ValueError: If the port, path or log level is invalid.

        """
        if not 0 <= self.port <= 65535:
            raise ValueError(f"port must be between 0 and 65535, got {self.port}")
        if not self.path.startswith("/"):
            raise ValueError(f"path must start with '/', got {self.path!r}")
        if not isinstance(logging.getLevelName(self.log_level), int):
            raise ValueError(f"log_level is not a logging level: {self.log_level!r}")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ServerConfig:
        """Build a config from ``WSRPC_*`` variables.

        Args:
            environ: Mapping to read instead of ``os.environ``.

        Raises:
            ValueError: If a variable holds an invalid value.

        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        if (raw := env.get(f"{_ENV_PREFIX}HOST")) is not None:
            values["host"] = raw
        if (raw := env.get(f"{_ENV_PREFIX}PORT")) is not None:
            values["port"] = _parse_port(raw)
        if (raw := env.get(f"{_ENV_PREFIX}PATH")) is not None:
            values["path"] = raw
        if (raw := env.get(f"{_ENV_PREFIX}CLIENT_OUT")) is not None:
            values["client_out"] = Path(raw)
        if (raw := env.get(f"{_ENV_PREFIX}ON_GENERATE_ERROR")) is not None:
            values["generate_policy"] = _parse_enum(GenerationPolicy, "ON_GENERATE_ERROR", raw)
        if (raw := env.get(f"{_ENV_PREFIX}LOG_FORMAT")) is not None:
            values["log_format"] = _parse_enum(LogFormat, "LOG_FORMAT", raw)
        if (raw := env.get(f"{_ENV_PREFIX}LOG_LEVEL")) is not None:
            values["log_level"] = _parse_level(raw)
        return cls(**values)

    def with_overrides(self, **overrides: Any) -> ServerConfig:
        """Return a copy with every non-``None`` override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})
