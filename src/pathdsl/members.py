"""Member resolution and type reflection utilities.

Resolves attribute, method and constructor members on Python types using
type hints and ``inspect``. Declared types are normalised so that
``ClassVar[X]``, ``Annotated[X, ...]`` and ``X | None`` all resolve to ``X``,
which is the type autovivification instantiates.
"""

from __future__ import annotations

import builtins
import importlib
import inspect
import types
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import (
    Annotated,
    Any,
    ClassVar,
    Literal,
    TypeVar,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)

from pathdsl.errors import InstantiationError, MemberNotFoundError

_MISSING: Any = object()


@dataclass(frozen=True)
class Member:
    """A resolved member of a type.

    Attributes:
        owner: The type the member was resolved on
        name: The member name
        type: Declared value type (field annotation or method return
            annotation), normalised. ``Any`` when undeclared.
        is_static: True for class-level members (class variables,
            staticmethods and classmethods)

    """

    owner: type
    name: str
    type: Any
    is_static: bool = False


@dataclass(frozen=True)
class FieldMember(Member):
    """An attribute: instance field, class variable or property."""

    is_property: bool = False


@dataclass(frozen=True)
class MethodMember(Member):
    """A callable member, with its receiver parameter already dropped.

    ``parameters`` is None when the callable exposes no signature (some
    builtins); such methods accept any arguments.
    """

    function: Callable[..., Any] | None = field(default=None, compare=False)
    parameters: tuple[inspect.Parameter, ...] | None = field(
        default=None,
        compare=False,
    )
    annotations: Mapping[str, Any] = field(default_factory=dict, compare=False)


# =============================================================================
# Type normalisation
# =============================================================================


def normalize_type(tp: Any) -> Any:
    """Strip ClassVar, Annotated and Optional wrappers from a declared type."""
    if tp is ClassVar:
        return Any
    origin = get_origin(tp)
    if origin is ClassVar or origin is Annotated:
        args = get_args(tp)
        return normalize_type(args[0]) if args else Any
    if origin is Union or isinstance(tp, types.UnionType):
        options = [arg for arg in get_args(tp) if arg is not type(None)]
        if len(options) == 1:
            return normalize_type(options[0])
    return tp


def element_type(tp: Any, index: int | None = None) -> Any:
    """Get the element type of a sequence type, or None if it has none.

    ``list[int]`` → ``int``; ``tuple[int, ...]`` → ``int``;
    ``tuple[int, str]`` with ``index=1`` → ``str``.
    """
    tp = normalize_type(tp)
    origin = get_origin(tp)
    if not isinstance(origin, type) or not issubclass(origin, Sequence):
        return None
    if issubclass(origin, str | bytes):
        return None
    args = get_args(tp)
    if not args:
        return None
    if origin is tuple and args[-1] is not Ellipsis:
        if index is not None and -len(args) <= index < len(args):
            return normalize_type(args[index])
        return None
    return normalize_type(args[0])


def innermost_type(tp: Any) -> Any:
    """Unwrap nested sequence types down to their innermost element type."""
    tp = normalize_type(tp)
    while (inner := element_type(tp)) is not None:
        tp = inner
    return tp


def qualified_name(cls: type) -> str:
    """Get the importable dotted name of a class (bare name for builtins)."""
    if cls.__module__ == "builtins":
        return cls.__qualname__
    return f"{cls.__module__}.{cls.__qualname__}"


def matches_type(value: Any, annotation: Any) -> bool:
    """Check whether a value is acceptable for a parameter annotation.

    Follows the value validators used for schema type checking: ``bool`` is
    not an ``int``, an ``int`` is acceptable as ``float``, and ``None`` only
    matches annotations that allow it. Unresolved forward references and
    type variables accept anything.
    """
    if annotation in (Any, object, inspect.Parameter.empty):
        return True
    if isinstance(annotation, str | TypeVar):
        return True
    origin = get_origin(annotation)
    if origin is ClassVar or origin is Annotated:
        return matches_type(value, get_args(annotation)[0])
    if origin is Union or isinstance(annotation, types.UnionType):
        return any(matches_type(value, arg) for arg in get_args(annotation))
    if origin is Literal:
        return value in get_args(annotation)
    if annotation is None or annotation is type(None):
        return value is None
    if value is None:
        return False
    if origin is not None:
        annotation = origin
    if not isinstance(annotation, type):
        return True
    if annotation is int:
        return isinstance(value, int) and not isinstance(value, bool)
    if annotation is float:
        return isinstance(value, int | float) and not isinstance(value, bool)
    if annotation is complex:
        return isinstance(value, int | float | complex) and not isinstance(value, bool)
    return isinstance(value, annotation)


# =============================================================================
# Member predicates
# =============================================================================


def is_getter(member: Member) -> bool:
    """Return True for ``get*`` methods that take no arguments."""
    return (
        isinstance(member, MethodMember)
        and member.name.startswith("get")
        and member.parameters is not None
        and all(p.default is not inspect.Parameter.empty for p in member.parameters)
    )


def is_setter(member: Member) -> bool:
    """Return True for ``set*`` methods that take exactly one argument."""
    return (
        isinstance(member, MethodMember)
        and member.name.startswith("set")
        and member.parameters is not None
        and len(member.parameters) == 1
    )


def is_static(member: Member) -> bool:
    """Return True for class-level members."""
    return member.is_static


# =============================================================================
# Resolver
# =============================================================================


class MemberResolver:
    """Resolves and accesses members of Python types.

    Lookups by (type, name) are cached per resolver. Resolution covers
    inherited members, annotated-but-unset attributes, class variables and
    properties for fields; functions, staticmethods, classmethods and builtin
    method descriptors for methods.
    """

    def __init__(self) -> None:
        self._types: dict[str, type] = {}
        self._hints: dict[type, dict[str, Any]] = {}
        self._fields: dict[tuple[type, str], FieldMember] = {}
        self._methods: dict[tuple[type, str], MethodMember] = {}

    def clear(self) -> None:
        """Drop every cached lookup."""
        self._types.clear()
        self._hints.clear()
        self._fields.clear()
        self._methods.clear()

    # -------------------------------------------------------------------------
    # Types
    # -------------------------------------------------------------------------

    def resolve_type(self, name: str) -> type:
        """Resolve a fully-qualified class name such as ``pkg.module.Outer.Inner``.

        Bare names resolve against builtins. The longest importable module
        prefix is imported and the remaining parts are looked up as
        attributes.

        Raises:
            MemberNotFoundError: If no class with that name can be found, or
                importing its module fails

        """
        if (cached := self._types.get(name)) is not None:
            return cached

        try:
            cls = self._find_type(name)
        except Exception as exc:
            msg = f"Type not found: {name} (import failed: {exc})"
            raise MemberNotFoundError(msg, name=name) from exc
        if cls is None:
            msg = f"Type not found: {name}"
            raise MemberNotFoundError(msg, name=name)
        self._types[name] = cls
        return cls

    def _find_type(self, name: str) -> type | None:
        parts = name.split(".")
        if not all(part.isidentifier() for part in parts):
            return None
        if len(parts) == 1:
            candidate = getattr(builtins, name, None)
            return candidate if isinstance(candidate, type) else None

        for split in range(len(parts) - 1, 0, -1):
            module_name = ".".join(parts[:split])
            try:
                obj: Any = importlib.import_module(module_name)
            except ModuleNotFoundError as exc:
                # Only a missing candidate module means "try a shorter prefix".
                if exc.name is None or not f"{module_name}.".startswith(f"{exc.name}."):
                    raise
                continue
            for attr in parts[split:]:
                obj = getattr(obj, attr, None)
                if obj is None:
                    return None
            return obj if isinstance(obj, type) else None
        return None

    def type_hints(self, cls: type) -> dict[str, Any]:
        """Get resolved type hints for a class, including inherited ones.

        Falls back to the raw ``__annotations__`` of the MRO when forward
        references cannot be evaluated.
        """
        if (cached := self._hints.get(cls)) is not None:
            return cached
        try:
            hints = get_type_hints(cls)
        except (NameError, TypeError):
            hints = {}
            for base in reversed(cls.__mro__):
                hints.update(getattr(base, "__annotations__", {}))
        self._hints[cls] = hints
        return hints

    # -------------------------------------------------------------------------
    # Fields
    # -------------------------------------------------------------------------

    def resolve_field(self, cls: type, name: str) -> FieldMember:
        """Resolve an attribute declared on a class or its bases.

        Raises:
            MemberNotFoundError: If the class declares no such attribute

        """
        key = (cls, name)
        if (cached := self._fields.get(key)) is not None:
            return cached

        member = self._find_field(cls, name)
        if member is None:
            msg = f"Field not found: {qualified_name(cls)}.{name}"
            raise MemberNotFoundError(msg, cls, name)
        self._fields[key] = member
        return member

    def _find_field(self, cls: type, name: str) -> FieldMember | None:
        raw = inspect.getattr_static(cls, name, _MISSING)
        if isinstance(raw, property):
            returns = _function_hints(raw.fget).get("return", Any) if raw.fget else Any
            return FieldMember(cls, name, normalize_type(returns), is_property=True)

        hints = self.type_hints(cls)
        if name in hints:
            hint = hints[name]
            static = hint is ClassVar or get_origin(hint) is ClassVar
            return FieldMember(cls, name, normalize_type(hint), is_static=static)

        if raw is _MISSING or _is_routine(raw):
            return None
        if inspect.ismemberdescriptor(raw) or inspect.isgetsetdescriptor(raw):
            return FieldMember(cls, name, Any)
        return FieldMember(cls, name, type(raw), is_static=True)

    def fields(
        self,
        cls: type,
        predicate: Callable[[FieldMember], bool] | None = None,
    ) -> tuple[FieldMember, ...]:
        """List the fields of a class, inherited ones included."""
        names = dict.fromkeys(self.type_hints(cls))
        for base in reversed(cls.__mro__):
            if base is object:
                continue
            for attr, raw in vars(base).items():
                if attr.startswith("__") or _is_routine(raw):
                    continue
                names.setdefault(attr)
        found = (self.resolve_field(cls, attr) for attr in names)
        return tuple(f for f in found if predicate is None or predicate(f))

    def field_type(self, obj: Any, name: str) -> Any:
        """Get the declared type of an attribute on an instance.

        Falls back to the type of the current value when the attribute is
        undeclared; ``Any`` when neither is known.
        """
        declared = self._field_on_instance(obj, name).type
        if declared is not Any:
            return declared
        value = getattr(obj, name, None)
        return Any if value is None else type(value)

    def _field_on_instance(self, obj: Any, name: str) -> FieldMember:
        try:
            return self.resolve_field(type(obj), name)
        except MemberNotFoundError:
            if name in getattr(obj, "__dict__", {}):
                return FieldMember(type(obj), name, Any)
            raise

    def get_field_value(self, obj: Any, name: str) -> Any:
        """Read an attribute; a declared but unset attribute reads as None.

        Raises:
            MemberNotFoundError: If the attribute is neither set nor declared

        """
        try:
            return getattr(obj, name)
        except AttributeError:
            self._field_on_instance(obj, name)
            return None

    def set_field_value(self, obj: Any, name: str, value: Any) -> None:
        """Write a declared or existing attribute.

        Raises:
            MemberNotFoundError: If the attribute is neither set nor declared

        """
        if not hasattr(obj, name):
            self._field_on_instance(obj, name)
        setattr(obj, name, value)

    def get_static_field_value(self, cls: type, name: str) -> Any:
        """Read a class-level attribute; declared but unset reads as None."""
        member = self.resolve_field(cls, name)
        if member.is_property:
            msg = f"Field {qualified_name(cls)}.{name} is a property, not a static field"
            raise MemberNotFoundError(msg, cls, name)
        return getattr(cls, name, None)

    def set_static_field_value(self, cls: type, name: str, value: Any) -> None:
        """Write a class-level attribute."""
        member = self.resolve_field(cls, name)
        if member.is_property:
            msg = f"Field {qualified_name(cls)}.{name} is a property, not a static field"
            raise MemberNotFoundError(msg, cls, name)
        setattr(cls, name, value)

    # -------------------------------------------------------------------------
    # Methods
    # -------------------------------------------------------------------------

    def resolve_method(
        self,
        cls: type,
        name: str,
        values: Sequence[Any] = (),
    ) -> MethodMember:
        """Resolve a method on a class and check it accepts the given values.

        Raises:
            MemberNotFoundError: If there is no such method, or it cannot be
                called with ``values``

        """
        member = self._method(cls, name)
        if not self.accepts_values(member, values):
            msg = (
                f"No compatible method {qualified_name(cls)}.{name} for "
                f"arguments {tuple(type(v).__name__ for v in values)}"
            )
            raise MemberNotFoundError(msg, cls, name)
        return member

    def _method(self, cls: type, name: str) -> MethodMember:
        key = (cls, name)
        if (cached := self._methods.get(key)) is not None:
            return cached

        raw = inspect.getattr_static(cls, name, _MISSING)
        match raw:
            case staticmethod():
                function, receivers, static = raw.__func__, 0, True
            case classmethod():
                function, receivers, static = raw.__func__, 1, True
            case _ if inspect.isfunction(raw) or inspect.ismethoddescriptor(raw):
                function, receivers, static = raw, 1, False
            case _:
                msg = f"Method not found: {qualified_name(cls)}.{name}"
                raise MemberNotFoundError(msg, cls, name)

        try:
            parameters: tuple[inspect.Parameter, ...] | None = tuple(
                inspect.signature(function).parameters.values(),
            )[receivers:]
        except (TypeError, ValueError):
            parameters = None

        hints = _function_hints(function)
        member = MethodMember(
            cls,
            name,
            normalize_type(hints.get("return", Any)),
            is_static=static,
            function=function,
            parameters=parameters,
            annotations=hints,
        )
        self._methods[key] = member
        return member

    def methods(
        self,
        cls: type,
        predicate: Callable[[MethodMember], bool] | None = None,
    ) -> tuple[MethodMember, ...]:
        """List the non-dunder methods of a class, inherited ones included."""
        found = (
            self._method(cls, attr)
            for attr in dir(cls)
            if not attr.startswith("__")
            and _is_routine(inspect.getattr_static(cls, attr, None))
        )
        return tuple(m for m in found if predicate is None or predicate(m))

    def accepts_values(self, member: MethodMember, values: Sequence[Any]) -> bool:
        """Check whether a method can be called with the given positional values."""
        if member.parameters is None:
            return True
        try:
            bound = inspect.Signature(list(member.parameters)).bind(*values)
        except TypeError:
            return False

        for param_name, value in bound.arguments.items():
            annotation = member.annotations.get(param_name, Any)
            kind = bound.signature.parameters[param_name].kind
            if kind is inspect.Parameter.VAR_POSITIONAL:
                if not all(matches_type(v, annotation) for v in value):
                    return False
            elif not matches_type(value, annotation):
                return False
        return True

    def invoke_method(self, obj: Any, name: str, values: Sequence[Any] = ()) -> Any:
        """Call a method on an instance with positional values."""
        try:
            self.resolve_method(type(obj), name, values)
        except MemberNotFoundError:
            if not callable(getattr(obj, "__dict__", {}).get(name)):
                raise
        return getattr(obj, name)(*values)

    def invoke_static_method(
        self,
        cls: type,
        name: str,
        values: Sequence[Any] = (),
    ) -> Any:
        """Call a staticmethod or classmethod on a class with positional values."""
        member = self.resolve_method(cls, name, values)
        if not member.is_static:
            msg = f"Method {qualified_name(cls)}.{name} is not static"
            raise MemberNotFoundError(msg, cls, name)
        return getattr(cls, name)(*values)

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    def construct(self, cls: Any, values: Iterable[Any] = ()) -> Any:
        """Instantiate a class, or the origin class of a parameterised generic.

        Raises:
            InstantiationError: If the target is not a concrete class or its
                constructor fails

        """
        if cls is Any:
            msg = "Cannot instantiate an undeclared type (typing.Any)"
            raise InstantiationError(msg, cls)
        target = get_origin(cls) or cls
        if not isinstance(target, type) or inspect.isabstract(target):
            msg = f"Cannot instantiate {cls!r}: not a concrete class"
            raise InstantiationError(msg, cls)
        try:
            return target(*values)
        except Exception as exc:
            msg = f"Cannot instantiate {qualified_name(target)}: {exc}"
            raise InstantiationError(msg, cls) from exc


def _is_routine(raw: Any) -> bool:
    return isinstance(raw, staticmethod | classmethod) or inspect.isroutine(raw)


def _function_hints(function: Any) -> dict[str, Any]:
    try:
        return get_type_hints(function)
    except (NameError, TypeError):
        return dict(getattr(function, "__annotations__", {}))


DEFAULT_RESOLVER = MemberResolver()
