"""Procedure registry: descriptors built once at startup, read-only thereafter."""

from __future__ import annotations

import inspect
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, get_type_hints

from wsrpc.rpc._common import _logger
from wsrpc.rpc._types import NULL, TypeDescriptor, _DescriptorBuilder, type_name

__all__ = [
    "Parameter",
    "ProcedureDescriptor",
    "Registry",
    "RegistryBuilder",
    "describe",
    "describe_registry",
]

_CTX_PARAM = "ctx"


@dataclass(frozen=True)
class Parameter:
    """A positional procedure parameter."""

    name: str
    type: TypeDescriptor


@dataclass(frozen=True)
class ProcedureDescriptor:
    """Metadata for a single exposed procedure.

    Attributes:
        name: Method name as it appears on the wire (case-sensitive).
        params: Parameters in declaration order, excluding the receiver and
            any ``ctx`` context argument.
        result: Type of the value returned on success.
        handler: Callable invoked with the coerced positional arguments
            (plus ``ctx=`` when ``accepts_context`` is set).
        doc: The procedure's docstring, or ``None``.
        fallible: ``True`` when the procedure may report a domain error
            instead of a value.
        accepts_context: Whether ``handler`` takes a ``ctx`` keyword argument.

    """

    name: str
    params: tuple[Parameter, ...]
    result: TypeDescriptor
    handler: Callable[..., Any] = field(compare=False, repr=False)
    doc: str | None = None
    fallible: bool = True
    accepts_context: bool = False

    @property
    def arity(self) -> int:
        """Number of positional parameters expected on the wire."""
        return len(self.params)

    def signature(self) -> str:
        """Format the signature for logs and error messages."""
        params = ", ".join(f"{p.name}: {type_name(p.type)}" for p in self.params)
        return f"{self.name}({params}) -> {type_name(self.result)}"


class Registry(Mapping[str, ProcedureDescriptor]):
    """Immutable catalog of exposed procedures keyed by name.

    Iteration follows registration order.  There is no writer after
    construction, so concurrent reads from many connection loops need no
    locking.
    """

    __slots__ = ("_name", "_procedures")

    def __init__(self, procedures: Sequence[ProcedureDescriptor], *, name: str = "Api") -> None:
        """Freeze *procedures* into a read-only mapping.

        Raises:
            ValueError: If two procedures share a name.

        """
        table: dict[str, ProcedureDescriptor] = {}
        for proc in procedures:
            if proc.name in table:
                raise ValueError(f"Duplicate procedure name: {proc.name!r}")
            table[proc.name] = proc
        self._procedures: Mapping[str, ProcedureDescriptor] = MappingProxyType(table)
        self._name = name

    @property
    def name(self) -> str:
        """Service name, used for the generated client interface and service loggers."""
        return self._name

    def lookup(self, name: str) -> ProcedureDescriptor | None:
        """Return the descriptor for *name*, or ``None`` when it is not registered."""
        return self._procedures.get(name)

    def __getitem__(self, name: str) -> ProcedureDescriptor:
        return self._procedures[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._procedures)

    def __len__(self) -> int:
        return len(self._procedures)

    def __repr__(self) -> str:
        return f"Registry(name={self._name!r}, procedures={list(self._procedures)!r})"


class RegistryBuilder:
    """Collects explicit registrations and freezes them into a :class:`Registry`.

    Each registration supplies a handler plus the parameter and result
    descriptors, so no runtime type discovery is needed::

        builder = RegistryBuilder("Math")
        builder.register("Add", lambda a, b: a + b, params=[("a", INTEGER), ("b", INTEGER)], result=INTEGER)
        registry = builder.build()
    """

    __slots__ = ("_name", "_procedures")

    def __init__(self, name: str = "Api") -> None:
        """Initialize an empty builder for a service called *name*."""
        self._name = name
        self._procedures: dict[str, ProcedureDescriptor] = {}

    def register(
        self,
        name: str,
        handler: Callable[..., Any],
        *,
        params: Sequence[Parameter | tuple[str, TypeDescriptor]] = (),
        result: TypeDescriptor = NULL,
        doc: str | None = None,
        fallible: bool = True,
        accepts_context: bool = False,
    ) -> RegistryBuilder:
        """Register one procedure.  Returns self for chaining.

        Raises:
            ValueError: If *name* is empty or already registered.

        """
        if not name:
            raise ValueError("Procedure name must not be empty")
        if name in self._procedures:
            raise ValueError(f"Duplicate procedure name: {name!r}")
        self._procedures[name] = ProcedureDescriptor(
            name=name,
            params=tuple(p if isinstance(p, Parameter) else Parameter(*p) for p in params),
            result=result,
            handler=handler,
            doc=doc,
            fallible=fallible,
            accepts_context=accepts_context,
        )
        return self

    def build(self) -> Registry:
        """Freeze the registrations collected so far."""
        registry = Registry(list(self._procedures.values()), name=self._name)
        _logger.info(
            "Registry %s built (procedures=%d)",
            self._name,
            len(registry),
            extra={"registry": self._name, "procedure_count": len(registry)},
        )
        return registry


# ---------------------------------------------------------------------------
# Protocol introspection
# ---------------------------------------------------------------------------


_UNSUPPORTED_PARAM_KINDS: dict[Any, str] = {
    inspect.Parameter.KEYWORD_ONLY: "keyword-only (after '*')",
    inspect.Parameter.VAR_POSITIONAL: "*args",
    inspect.Parameter.VAR_KEYWORD: "**kwargs",
}


def _protocol_method_names(protocol: type) -> list[str]:
    """Public callables declared on *protocol* and its bases, in declaration order."""
    names: list[str] = []
    for klass in reversed(protocol.__mro__):
        if klass is object or klass.__module__ == "typing":
            continue
        for name, attr in vars(klass).items():
            if name.startswith("_") or name in names:
                continue
            if callable(attr):
                names.append(name)
    return names


def _validate_protocol_params(protocol: type, method_name: str, sig: inspect.Signature) -> None:
    """Validate that protocol method parameters can be passed positionally.

    The wire carries parameters as an ordered array, so keyword-only,
    ``*args`` and ``**kwargs`` parameters cannot be expressed.

    Raises:
        TypeError: If any parameter uses an unsupported kind.

    """
    errors: list[str] = []
    for name, param in sig.parameters.items():
        if name in ("self", _CTX_PARAM):
            continue
        label = _UNSUPPORTED_PARAM_KINDS.get(param.kind)
        if label is not None:
            errors.append(f"  - '{name}' is {label}")
    if errors:
        detail = "\n".join(errors)
        raise TypeError(
            f"{protocol.__name__}.{method_name}() has parameters incompatible"
            f" with the positional wire format:\n{detail}"
        )


def _validate_implementation(protocol: type, implementation: object, names: Sequence[str]) -> None:
    """Validate that *implementation* provides every protocol method.

    Checks that each method exists, is callable, accepts every protocol
    parameter, and has no extra required parameters.  The ``ctx`` context
    parameter is allowed on implementations even when absent from the
    protocol.

    Raises:
        TypeError: Listing every problem found.

    """
    errors: list[str] = []
    for name in names:
        method = getattr(implementation, name, None)
        if method is None:
            errors.append(f"missing method {name}()")
            continue
        if not callable(method):
            errors.append(f"'{name}' exists but is not callable")
            continue

        proto_params = [p for p in inspect.signature(getattr(protocol, name)).parameters if p != "self"]
        impl_params = {k: v for k, v in inspect.signature(method).parameters.items() if k != "self"}
        errors.extend(
            f"'{name}()' missing parameter '{param_name}'"
            for param_name in proto_params
            if param_name not in impl_params and param_name != _CTX_PARAM
        )
        for param_name, param in impl_params.items():
            if param_name in proto_params or param_name == _CTX_PARAM:
                continue
            if param.default is inspect.Parameter.empty and param.kind not in (
                inspect.Parameter.VAR_POSITIONAL,
                inspect.Parameter.VAR_KEYWORD,
            ):
                errors.append(f"'{name}()' has required parameter '{param_name}' not defined in {protocol.__name__}")

    if errors:
        header = f"{type(implementation).__name__} does not implement {protocol.__name__}:"
        detail = "\n".join(f"  - {e}" for e in errors)
        raise TypeError(f"{header}\n{detail}")


def _bind_handler(implementation: object, name: str) -> tuple[Callable[..., Any], bool]:
    """Return the bound implementation method and whether it accepts ``ctx``."""
    method = getattr(implementation, name)
    return method, _CTX_PARAM in inspect.signature(method).parameters


def describe(protocol: type, implementation: object | None = None, *, name: str | None = None) -> Registry:
    """Introspect a Protocol class and build a :class:`Registry`.

    Every public method of *protocol* becomes a procedure.  Parameter and
    result descriptors come from the method's type hints; ``self`` and a
    ``ctx`` parameter are excluded.  Procedures appear in declaration order.

    Args:
        protocol: Class whose method signatures define the exposed API.
        implementation: Object providing the methods.  Defaults to an
            instance of *protocol* when *protocol* is a concrete class.
        name: Service name; defaults to ``protocol.__name__``.

    Raises:
        TypeError: If type hints cannot be resolved, a parameter kind is
            unsupported, a dataclass is self-referential, or the
            implementation does not match the protocol.

    """
    if implementation is None:
        implementation = protocol()
    names = _protocol_method_names(protocol)
    _validate_implementation(protocol, implementation, names)

    builder = RegistryBuilder(name or protocol.__name__)
    types = _DescriptorBuilder()
    for method_name in names:
        attr = getattr(protocol, method_name)
        try:
            hints = get_type_hints(attr, include_extras=True)
        except (NameError, AttributeError) as exc:
            raise TypeError(f"Failed to resolve type hints for {protocol.__name__}.{method_name}(): {exc}") from exc

        sig = inspect.signature(attr)
        _validate_protocol_params(protocol, method_name, sig)

        params = [
            Parameter(pname, types.build(hints.get(pname, Any)))
            for pname in sig.parameters
            if pname not in ("self", _CTX_PARAM)
        ]
        handler, accepts_context = _bind_handler(implementation, method_name)
        builder.register(
            method_name,
            handler,
            params=params,
            result=types.build(hints.get("return", Any)),
            doc=inspect.getdoc(attr),
            accepts_context=accepts_context,
        )
    return builder.build()


# ---------------------------------------------------------------------------
# describe_registry
# ---------------------------------------------------------------------------


def describe_registry(registry: Registry) -> str:
    """Return a human-readable description of a registry's procedures."""
    lines: list[str] = [f"RPC Registry: {registry.name}", ""]

    for name in sorted(registry):
        proc = registry[name]
        lines.append(f"  {proc.signature()}")
        if proc.fallible:
            lines.append("    fallible: yes")
        if proc.doc:
            lines.append(f"    doc: {proc.doc.strip()}")
        lines.append("")

    return "\n".join(lines)
