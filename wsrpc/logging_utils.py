# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Log output setup for ``wsrpc serve``.

:func:`configure_logging` installs a single stderr handler, either plain
text or one JSON object per line.  The JSON shape comes from
:class:`WsRpcJsonFormatter`, which copies whatever a call site passed as
``extra`` (``connection_id``, ``request_id``, ``duration_ms`` and so on)
into the object next to the fixed keys.

Library code only ever logs; nothing here runs on ``import wsrpc``.
"""

from __future__ import annotations

import json
import logging
import sys

__all__ = ["WsRpcJsonFormatter", "configure_logging"]

# Attribute names every LogRecord has by default.
# Anything *not* in this set was injected via ``extra``.
_DEFAULT_RECORD_ATTRS: frozenset[str] = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()) | {
    "message",
    "asctime",
    "taskName",
}

_RESERVED_KEYS: frozenset[str] = frozenset({"timestamp", "level", "logger", "message", "exception", "stack_info"})

_TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


class WsRpcJsonFormatter(logging.Formatter):
    """Render each record as one line of JSON for log shippers.

    The object always carries ``timestamp``, ``level``, ``logger`` and
    ``message``; a record's ``extra`` keys are added alongside them, so a
    dispatched call's access record arrives with its ids and timing as
    top-level keys.  An ``extra`` key that collides with one of the fixed
    keys is dropped.  Tracebacks go under ``exception`` and stack dumps
    under ``stack_info``.  Values JSON cannot encode are written with
    ``str()``.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as a single-line JSON string."""
        record.message = record.getMessage()
        obj: dict[str, object] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.message,
            **{k: v for k, v in record.__dict__.items() if k not in _DEFAULT_RECORD_ATTRS and k not in _RESERVED_KEYS},
        }
        if record.exc_info and record.exc_info[1]:
            obj["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            obj["stack_info"] = self.formatStack(record.stack_info)
        return json.dumps(obj, default=str)


def configure_logging(level: str = "INFO", *, json_format: bool = False) -> logging.Handler:
    """Install a stderr handler on the root logger and return it.

    Replaces handlers previously installed by this function so repeated
    calls do not duplicate output.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.set_name("wsrpc")
    handler.setFormatter(WsRpcJsonFormatter() if json_format else logging.Formatter(_TEXT_FORMAT))
    root = logging.getLogger()
    for existing in list(root.handlers):
        if existing.get_name() == "wsrpc":
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level.upper())
    return handler
