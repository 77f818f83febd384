"""Expression nodes: the addressing units a path expression is made of.

A node is identified by its canonical text. Nodes are compiled and interned
by a PathCompiler, so two nodes parsed from the same text are the same
object. Nodes never hold target data; they only know how to read, write and
type the member they address.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, ClassVar, dataclass_transform

from pathdsl.errors import (
    AbandonedWriteError,
    InvalidExpressionError,
    MissingArgumentError,
    UnsupportedWriteError,
)
from pathdsl.factory import DEFAULT_FACTORY, InstanceFactory
from pathdsl.members import DEFAULT_RESOLVER, Member, MemberResolver, element_type

type Arguments = Mapping[str, Any]
type NodeCompiler = Callable[[str], ExpressionNode]


@dataclass(frozen=True)
@dataclass_transform(frozen_default=True)
class ExpressionNode(ABC):
    """Base for expression nodes. Equality and hashing use ``text`` only."""

    text: str
    resolver: MemberResolver = field(
        default=DEFAULT_RESOLVER,
        compare=False,
        repr=False,
        kw_only=True,
    )

    tag: ClassVar[str]
    registry: ClassVar[dict[str, type[ExpressionNode]]] = {}

    def __init_subclass__(cls, tag: str | None = None, **kwargs: Any) -> None:
        """Register node subclass with automatic tag derivation."""
        super().__init_subclass__(**kwargs)
        dataclass(frozen=True)(cls)
        cls.tag = tag if tag is not None else cls.__name__.lower().removesuffix("node")

        if (existing := ExpressionNode.registry.get(cls.tag)) and existing is not cls:
            msg = (
                f"Tag '{cls.tag}' already registered to {existing}. "
                "Choose a different tag."
            )
            raise ValueError(msg)

        ExpressionNode.registry[cls.tag] = cls

    @classmethod
    def parse(
        cls,
        text: str,
        compile_node: NodeCompiler,
        resolver: MemberResolver = DEFAULT_RESOLVER,
    ) -> ExpressionNode:
        """Build the node variant whose syntax matches ``text``.

        Args:
            text: A single top-level segment, e.g. ``name``, ``get(a)``, ``a[0]``
            compile_node: Compiles nested segments (array prefixes)
            resolver: Member resolver the node delegates to

        Raises:
            InvalidExpressionError: If no variant accepts the text

        """
        for node_cls in ExpressionNode.registry.values():
            if node_cls.accepts(text):
                return node_cls.from_text(text, compile_node, resolver)
        msg = f"Invalid expression node: {text!r}"
        raise InvalidExpressionError(msg)

    @classmethod
    @abstractmethod
    def accepts(cls, text: str) -> bool:
        """Return True if ``text`` has this variant's syntax."""

    @classmethod
    @abstractmethod
    def from_text(
        cls,
        text: str,
        compile_node: NodeCompiler,
        resolver: MemberResolver,
    ) -> ExpressionNode:
        """Parse ``text`` into a node of this variant."""

    @property
    def argument_keys(self) -> tuple[str, ...]:
        """Keys this node reads from the argument mapping, in call order."""
        return ()

    @property
    def needs_arguments(self) -> bool:
        """Return True if evaluating this node requires an argument mapping."""
        return bool(self.argument_keys)

    def node_class(self, target: Any, args: Arguments | None = None) -> Any:
        """Get the type this node reads and writes on ``target``."""
        return self.static_node_class(type(target), args)

    @abstractmethod
    def static_node_class(self, cls: type, args: Arguments | None = None) -> Any:
        """Get the type this node reads and writes on class ``cls``."""

    @abstractmethod
    def member(self, cls: type, args: Arguments | None = None) -> Member | None:
        """Resolve the member this node addresses on class ``cls``."""

    @abstractmethod
    def get_value(self, target: Any, args: Arguments | None = None) -> Any:
        """Read the addressed value from ``target``."""

    @abstractmethod
    def set_value(
        self,
        target: Any,
        value: Any,
        args: Arguments | None = None,
        factory: InstanceFactory | None = None,
    ) -> None:
        """Write ``value`` into ``target``."""

    @abstractmethod
    def get_static_value(self, cls: type, args: Arguments | None = None) -> Any:
        """Read the addressed class-level value from ``cls``."""

    @abstractmethod
    def set_static_value(
        self,
        cls: type,
        value: Any,
        args: Arguments | None = None,
        factory: InstanceFactory | None = None,
    ) -> None:
        """Write ``value`` into class-level state of ``cls``."""

    def __str__(self) -> str:
        return self.text


class FieldNode(ExpressionNode, tag="field"):
    """Attribute access: ``name``."""

    def __post_init__(self) -> None:
        if not self.text.isidentifier():
            msg = f"Invalid field name: {self.text!r}"
            raise InvalidExpressionError(msg)

    @classmethod
    def accepts(cls, text: str) -> bool:
        return bool(text) and not text.endswith((")", "]"))

    @classmethod
    def from_text(
        cls,
        text: str,
        compile_node: NodeCompiler,
        resolver: MemberResolver,
    ) -> FieldNode:
        return cls(text, resolver=resolver)

    @property
    def name(self) -> str:
        return self.text

    def node_class(self, target: Any, args: Arguments | None = None) -> Any:
        return self.resolver.field_type(target, self.name)

    def static_node_class(self, cls: type, args: Arguments | None = None) -> Any:
        return self.resolver.resolve_field(cls, self.name).type

    def member(self, cls: type, args: Arguments | None = None) -> Member:
        return self.resolver.resolve_field(cls, self.name)

    def get_value(self, target: Any, args: Arguments | None = None) -> Any:
        return self.resolver.get_field_value(target, self.name)

    def set_value(
        self,
        target: Any,
        value: Any,
        args: Arguments | None = None,
        factory: InstanceFactory | None = None,
    ) -> None:
        self.resolver.set_field_value(target, self.name, value)

    def get_static_value(self, cls: type, args: Arguments | None = None) -> Any:
        return self.resolver.get_static_field_value(cls, self.name)

    def set_static_value(
        self,
        cls: type,
        value: Any,
        args: Arguments | None = None,
        factory: InstanceFactory | None = None,
    ) -> None:
        self.resolver.set_static_field_value(cls, self.name, value)


class MethodNode(ExpressionNode, tag="method"):
    """Method call with named arguments: ``name(key1, key2)``.

    Argument values are looked up by key in the argument mapping at
    evaluation time. Methods named ``get*`` are writable through the
    matching ``set*`` method.
    """

    name: str = field(compare=False)
    keys: tuple[str, ...] = field(compare=False)
    setter_name: str | None = field(compare=False)

    @classmethod
    def accepts(cls, text: str) -> bool:
        return text.endswith(")")

    @classmethod
    def from_text(
        cls,
        text: str,
        compile_node: NodeCompiler,
        resolver: MemberResolver,
    ) -> MethodNode:
        open_paren = text.find("(")
        name = text[:open_paren]
        if open_paren <= 0 or not name.isidentifier():
            msg = f"Invalid method name in expression node: {text!r}"
            raise InvalidExpressionError(msg)

        inside = text[open_paren + 1 : -1].strip()
        keys = tuple(key.strip() for key in inside.split(",")) if inside else ()
        if not all(key.isidentifier() for key in keys):
            msg = f"Invalid argument keys in expression node: {text!r}"
            raise InvalidExpressionError(msg)

        setter = "set" + name.removeprefix("get") if name.startswith("get") else None
        return cls(text, name, keys, setter, resolver=resolver)

    @property
    def argument_keys(self) -> tuple[str, ...]:
        return self.keys

    def argument_values(self, args: Arguments | None) -> tuple[Any, ...]:
        """Look up this node's argument values, in order.

        Raises:
            MissingArgumentError: If the mapping is missing/empty or lacks a key

        """
        if not self.keys:
            return ()
        if not args:
            msg = f"The arguments mapping is None or empty; {self.text} requires {self.keys}."
            raise MissingArgumentError(msg)
        values = []
        for key in self.keys:
            if key not in args:
                msg = f"Not found argument for the key [{key}]."
                raise MissingArgumentError(msg, key)
            values.append(args[key])
        return tuple(values)

    def static_node_class(self, cls: type, args: Arguments | None = None) -> Any:
        return self.member(cls, args).type

    def member(self, cls: type, args: Arguments | None = None) -> Member:
        return self.resolver.resolve_method(cls, self.name, self.argument_values(args))

    def get_value(self, target: Any, args: Arguments | None = None) -> Any:
        return self.resolver.invoke_method(target, self.name, self.argument_values(args))

    def set_value(
        self,
        target: Any,
        value: Any,
        args: Arguments | None = None,
        factory: InstanceFactory | None = None,
    ) -> None:
        self.resolver.invoke_method(target, self._setter(), (value,))

    def get_static_value(self, cls: type, args: Arguments | None = None) -> Any:
        return self.resolver.invoke_static_method(
            cls,
            self.name,
            self.argument_values(args),
        )

    def set_static_value(
        self,
        cls: type,
        value: Any,
        args: Arguments | None = None,
        factory: InstanceFactory | None = None,
    ) -> None:
        self.resolver.invoke_static_method(cls, self._setter(), (value,))

    def _setter(self) -> str:
        if self.setter_name is None:
            msg = f"Unknown setter method for {self.text}: only get* methods are writable."
            raise UnsupportedWriteError(msg)
        return self.setter_name


class ArrayNode(ExpressionNode, tag="array"):
    """Sequence indexing: ``[0]`` on the target itself, or ``prefix[0]``.

    The prefix is compiled as the inner node, so ``a[0][1]`` nests one
    array node inside another.
    """

    index: int = field(compare=False)
    inner: ExpressionNode | None = field(compare=False)

    @classmethod
    def accepts(cls, text: str) -> bool:
        return text.endswith("]")

    @classmethod
    def from_text(
        cls,
        text: str,
        compile_node: NodeCompiler,
        resolver: MemberResolver,
    ) -> ArrayNode:
        open_bracket = text.rfind("[")
        if open_bracket < 0:
            msg = f"Invalid array expression node: {text!r}"
            raise InvalidExpressionError(msg)
        raw_index = text[open_bracket + 1 : -1].strip()
        try:
            index = int(raw_index)
        except ValueError as exc:
            msg = f"Invalid array index {raw_index!r} in expression node: {text!r}"
            raise InvalidExpressionError(msg) from exc

        prefix = text[:open_bracket]
        inner = compile_node(prefix) if prefix else None
        return cls(text, index, inner, resolver=resolver)

    @property
    def argument_keys(self) -> tuple[str, ...]:
        return () if self.inner is None else self.inner.argument_keys

    def node_class(self, target: Any, args: Arguments | None = None) -> Any:
        if self.inner is None:
            container, sample = type(target), target
        else:
            container = self.inner.node_class(target, args)
            sample = self.inner.get_value(target, args)
        declared = element_type(container, self.index)
        return declared if declared is not None else _sampled_element_type(sample)

    def static_node_class(self, cls: type, args: Arguments | None = None) -> Any:
        container = cls if self.inner is None else self.inner.static_node_class(cls, args)
        declared = element_type(container, self.index)
        return declared if declared is not None else Any

    def member(self, cls: type, args: Arguments | None = None) -> Member | None:
        return None if self.inner is None else self.inner.member(cls, args)

    def get_value(self, target: Any, args: Arguments | None = None) -> Any:
        array = target if self.inner is None else self.inner.get_value(target, args)
        return None if array is None else array[self.index]

    def set_value(
        self,
        target: Any,
        value: Any,
        args: Arguments | None = None,
        factory: InstanceFactory | None = None,
    ) -> None:
        if self.inner is None:
            if target is not None:
                target[self.index] = value
            return
        array = self.inner.get_value(target, args)
        if array is not None:
            array[self.index] = value
            return

        factory = factory or DEFAULT_FACTORY
        array = self._produce(factory, self.inner.node_class(target, args), args)
        # Fill before attaching, so a failed index leaves the target untouched.
        array[self.index] = value
        self.inner.set_value(target, array, args, factory)

    def get_static_value(self, cls: type, args: Arguments | None = None) -> Any:
        array = None if self.inner is None else self.inner.get_static_value(cls, args)
        return None if array is None else array[self.index]

    def set_static_value(
        self,
        cls: type,
        value: Any,
        args: Arguments | None = None,
        factory: InstanceFactory | None = None,
    ) -> None:
        if self.inner is None:
            return
        array = self.inner.get_static_value(cls, args)
        if array is not None:
            array[self.index] = value
            return

        factory = factory or DEFAULT_FACTORY
        array = self._produce(factory, self.inner.static_node_class(cls, args), args)
        array[self.index] = value
        self.inner.set_static_value(cls, array, args, factory)

    def _produce(self, factory: InstanceFactory, container: Any, args: Arguments | None) -> Any:
        array = factory.get(container, args)
        if array is None:
            msg = f"No sequence produced for node {self.inner} of {self.text}"
            raise AbandonedWriteError(msg, container)
        return array


def _sampled_element_type(sequence: Sequence[Any] | None) -> Any:
    """Infer an element type from the first non-None element, else Any."""
    for item in sequence or ():
        if item is not None:
            return type(item)
    return Any
