"""TypeScript client declarations generated from a :class:`~wsrpc.rpc.Registry`.

The projector walks the same descriptor trees the dispatcher coerces
against, so the declarations a client compiles against always describe
what the server accepts.  Rendering is pure: the same registry always
yields byte-identical text.

Usage::

    from wsrpc.typescript import write_client_declarations

    write_client_declarations(registry, "client/api.gen.ts")

"""

from __future__ import annotations

import contextlib
import logging
import os
import re
import tempfile
from enum import StrEnum
from pathlib import Path

from wsrpc.rpc import (
    Array,
    ClientGenerationError,
    Map,
    Nullable,
    Primitive,
    PrimitiveKind,
    ProcedureDescriptor,
    Registry,
    Struct,
    TypeDescriptor,
    Unknown,
)

__all__ = [
    "GenerationPolicy",
    "TypeScriptProjector",
    "project_type",
    "render_client_declarations",
    "write_client_declarations",
]

_logger = logging.getLogger("wsrpc.typescript")

HEADER = "// Code generated by wsrpc. DO NOT EDIT.\n"

ENVELOPE_DECLARATIONS = """\
export interface RpcRequest {
  id: string;
  method: string;
  params: unknown[];
}

export interface RpcResponse<T> {
  id: string;
  result: {
    data: T | null;
    error: string | null;
  };
}
"""

_IDENTIFIER = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")

# Reserved in TypeScript but legal as Python parameter names.
_TS_RESERVED = frozenset(
    {
        "case",
        "catch",
        "const",
        "debugger",
        "default",
        "delete",
        "do",
        "enum",
        "export",
        "extends",
        "function",
        "instanceof",
        "let",
        "new",
        "switch",
        "this",
        "throw",
        "typeof",
        "var",
        "void",
        "implements",
        "interface",
        "package",
        "private",
        "protected",
        "public",
        "static",
        "super",
    }
)

_PRIMITIVE_NAMES: dict[PrimitiveKind, str] = {
    PrimitiveKind.NUMBER: "number",
    PrimitiveKind.STRING: "string",
    PrimitiveKind.BOOLEAN: "boolean",
    PrimitiveKind.NULL: "null",
}


class GenerationPolicy(StrEnum):
    """What to do when the declaration file cannot be generated or written."""

    FATAL = "fatal"
    LOG = "log"


# ---------------------------------------------------------------------------
# Type projection
# ---------------------------------------------------------------------------


def _property_key(name: str) -> str:
    """Quote object keys and method names that are not plain identifiers."""
    if _IDENTIFIER.match(name):
        return name
    return '"' + name.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _param_name(name: str, index: int) -> str:
    if not _IDENTIFIER.match(name):
        return f"arg{index}"
    if name in _TS_RESERVED:
        return f"{name}_"
    return name


class TypeScriptProjector:
    """Renders a descriptor as a TypeScript type expression.

    Structs are rendered inline as object types with fields in declaration
    order.  Stateless; one instance can be shared.
    """

    def visit_primitive(self, t: Primitive) -> str:
        """Map a primitive to ``number``, ``string``, ``boolean`` or ``null``."""
        return _PRIMITIVE_NAMES[t.kind]

    def visit_struct(self, t: Struct) -> str:
        """Render ``{ a: T; b?: U; }``, or ``{}`` for a struct with no fields."""
        if not t.fields:
            return "{}"
        members = " ".join(
            f"{_property_key(f.name)}{'' if f.required else '?'}: {f.type.accept(self)};" for f in t.fields
        )
        return f"{{ {members} }}"

    def visit_array(self, t: Array) -> str:
        """Render ``T[]``, parenthesising union element types."""
        element = t.element.accept(self)
        if isinstance(t.element, Nullable):
            element = f"({element})"
        return f"{element}[]"

    def visit_map(self, t: Map) -> str:
        """Render ``Record<K, V>``."""
        return f"Record<{t.key.accept(self)}, {t.value.accept(self)}>"

    def visit_nullable(self, t: Nullable) -> str:
        """Render ``T | null``."""
        inner = t.inner.accept(self)
        if inner == "null" or inner.endswith(" | null"):
            return inner
        return f"{inner} | null"

    def visit_unknown(self, t: Unknown) -> str:
        """Render ``any``."""
        return "any"


_PROJECTOR = TypeScriptProjector()


def project_type(t: TypeDescriptor) -> str:
    """Return the TypeScript type expression for *t*."""
    return t.accept(_PROJECTOR)


# ---------------------------------------------------------------------------
# Declaration file
# ---------------------------------------------------------------------------


def _first_paragraph(doc: str) -> list[str]:
    lines: list[str] = []
    for line in doc.strip().splitlines():
        if not line.strip():
            break
        lines.append(line.strip().replace("*/", "*\\/"))
    return lines


def _render_doc(proc: ProcedureDescriptor) -> list[str]:
    body = _first_paragraph(proc.doc) if proc.doc else []
    if proc.fallible:
        body.append("@throws Error when the server reports an error for this call.")
    if not body:
        return []
    return ["  /**", *(f"   * {line}" for line in body), "   */"]


def _render_procedure(proc: ProcedureDescriptor) -> list[str]:
    params = ", ".join(f"{_param_name(p.name, i)}: {project_type(p.type)}" for i, p in enumerate(proc.params))
    return [*_render_doc(proc), f"  {_property_key(proc.name)}({params}): Promise<{project_type(proc.result)}>;"]


def render_client_declarations(registry: Registry) -> str:
    """Render the full declaration file for *registry*.

    Contains a generated-file header, the wire envelope interfaces, and one
    interface named after the registry with a method per procedure, sorted
    by procedure name.
    """
    lines: list[str] = [HEADER, ENVELOPE_DECLARATIONS, f"export interface {_property_key(registry.name)} {{"]
    for i, name in enumerate(sorted(registry)):
        if i:
            lines.append("")
        lines.extend(_render_procedure(registry[name]))
    lines.append("}")
    return "\n".join(lines) + "\n"


def _atomic_write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            f.write(content)
        os.replace(tmp_name, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_name)
        raise


def write_client_declarations(
    registry: Registry,
    path: str | os.PathLike[str],
    *,
    policy: GenerationPolicy = GenerationPolicy.FATAL,
) -> bool:
    """Generate the declaration file for *registry* and write it to *path*.

    The write is atomic (temporary file plus rename) and is skipped when
    *path* already holds identical content.

    Args:
        registry: Procedures to describe.
        path: Destination ``.ts`` file.
        policy: ``FATAL`` raises on failure; ``LOG`` logs the failure at
            ERROR and returns ``False``.

    Returns:
        ``True`` if the file was written, ``False`` if it was already up to
        date or generation failed under ``GenerationPolicy.LOG``.

    Raises:
        ClientGenerationError: On failure under ``GenerationPolicy.FATAL``.

    """
    target = Path(path)
    try:
        content = render_client_declarations(registry)
        try:
            current: str | None = target.read_text(encoding="utf-8")
        except FileNotFoundError:
            current = None
        if current == content:
            _logger.debug("Client declarations at %s are up to date", target)
            return False
        _atomic_write(target, content)
    except (OSError, TypeError, ValueError) as exc:
        error = ClientGenerationError(f"Failed to write client declarations to {target}: {exc}")
        if policy is GenerationPolicy.FATAL:
            raise error from exc
        _logger.error("%s", error, exc_info=True, extra={"registry": registry.name, "path": str(target)})
        return False
    _logger.info(
        "Wrote client declarations for %s to %s (procedures=%d)",
        registry.name,
        target,
        len(registry),
        extra={"registry": registry.name, "path": str(target)},
    )
    return True
