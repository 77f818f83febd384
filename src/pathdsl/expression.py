"""Path expression compilation and the compiled expression type.

A path expression is a dot-separated chain of nodes::

    name                    field
    get_name()              zero-argument method
    lowercase(locale)       method whose argument is looked up by key
    addresses[0]            sequence element
    addresses[0].state      chained

A static expression binds a root type with the ``class(...)`` prefix, e.g.
``class(myapp.models.Person)NAME``; its first node addresses class-level
state instead of an instance.

Usage:
    expr = compile("addresses[0].state")
    expr.set_value(person, "PE")
    expr.get_value(person)  # "PE"
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, get_origin

from pathdsl.errors import (
    InvalidArgumentError,
    InvalidExpressionError,
    MemberNotFoundError,
    PathError,
    UnsupportedOperationError,
)
from pathdsl.members import DEFAULT_RESOLVER, Member, MemberResolver, innermost_type, qualified_name
from pathdsl.nodes import ExpressionNode

if TYPE_CHECKING:
    from pathdsl.factory import InstanceFactory

logger = logging.getLogger(__name__)

type Arguments = Mapping[str, Any]

STATIC_PREFIX = "class("

_OPENERS = {")": "(", "]": "["}


# =============================================================================
# Text helpers
# =============================================================================


def split_segments(text: str) -> list[str]:
    """Split expression text on the dots that are not inside brackets.

    Raises:
        InvalidExpressionError: On unbalanced brackets or an empty segment

    """
    segments: list[str] = []
    stack: list[str] = []
    start = 0
    for position, char in enumerate(text):
        if char in "([":
            stack.append(char)
        elif char in ")]":
            if not stack or stack.pop() != _OPENERS[char]:
                msg = f"Unbalanced {char!r} at position {position} in {text!r}"
                raise InvalidExpressionError(msg)
        elif char == "." and not stack:
            segments.append(text[start:position])
            start = position + 1
    if stack:
        msg = f"Unclosed {stack[-1]!r} in {text!r}"
        raise InvalidExpressionError(msg)
    segments.append(text[start:])

    if not all(segments):
        msg = f"Empty node in path expression: {text!r}"
        raise InvalidExpressionError(msg)
    return segments


def to_non_static_expression(text: str) -> str:
    """Strip the ``class(...)`` prefix from expression text, if present.

    Raises:
        InvalidExpressionError: If the prefix names no type or nothing follows it

    """
    if text.startswith(STATIC_PREFIX):
        index = text.find(")") + 1
        if index <= len(STATIC_PREFIX) + 1 or index == len(text):
            msg = "Invalid static path expression."
            raise InvalidExpressionError(msg)
        return text[index:]
    return text


def to_static_expression(cls: type, text: str) -> str:
    """Rewrite expression text so it is bound to ``cls``, replacing any existing root type."""
    return f"{STATIC_PREFIX}{qualified_name(cls)}){to_non_static_expression(text)}"


# =============================================================================
# Compiler
# =============================================================================


class PathCompiler:
    """Compiles and caches path expressions and their nodes.

    Compiling the same text twice returns the same object. The caches are
    guarded by a re-entrant lock. Expressions are built outside the lock and
    published with setdefault, so concurrent first compilation of a text still
    yields a single instance.
    """

    def __init__(self, resolver: MemberResolver = DEFAULT_RESOLVER) -> None:
        self.resolver = resolver
        self._expressions: dict[str, PathExpression] = {}
        self._nodes: dict[str, ExpressionNode] = {}
        self._lock = threading.RLock()

    def compile(self, text: str, root_type: type | None = None) -> PathExpression:
        """Compile expression text, optionally binding it to a root type.

        Args:
            text: The expression text; surrounding whitespace is ignored
            root_type: When given, compile ``class(<root_type>)<text>``

        Returns:
            The cached expression for the text

        Raises:
            InvalidExpressionError: If the text is blank or malformed, the
                static root type cannot be found, or a static path does not
                resolve against its root type

        """
        if not isinstance(text, str) or not text.strip():
            msg = "The path expression cannot be None or empty."
            raise InvalidExpressionError(msg)
        source = text.strip()
        if root_type is not None:
            source = to_static_expression(root_type, source)

        with self._lock:
            if (cached := self._expressions.get(source)) is not None:
                return cached
        # Resolving a root type may import modules, so build outside the lock.
        logger.debug("Compiling path expression %r", source)
        expression = self._build(source)
        with self._lock:
            return self._expressions.setdefault(source, expression)

    def compile_node(self, text: str) -> ExpressionNode:
        """Compile a single node, returning the cached instance for its text."""
        with self._lock:
            if (cached := self._nodes.get(text)) is not None:
                return cached
            node = ExpressionNode.parse(text, self.compile_node, self.resolver)
            self._nodes[text] = node
            return node

    def clear(self) -> None:
        """Evict every cached expression and node."""
        with self._lock:
            self._expressions.clear()
            self._nodes.clear()

    def _build(self, source: str) -> PathExpression:
        root_type: type | None = None
        body = source
        if source.startswith(STATIC_PREFIX):
            close = source.find(")")
            if close <= len(STATIC_PREFIX) or close == len(source) - 1:
                msg = "Invalid static path expression."
                raise InvalidExpressionError(msg)
            type_name = source[len(STATIC_PREFIX) : close].strip()
            try:
                root_type = self.resolver.resolve_type(type_name)
            except MemberNotFoundError as exc:
                msg = f"Invalid static path expression: unknown type {type_name!r}"
                raise InvalidExpressionError(msg) from exc
            body = source[close + 1 :]

        nodes = tuple(self.compile_node(segment) for segment in split_segments(body))
        expression = PathExpression(source, nodes, root_type, self)

        if root_type is not None and not expression.needs_arguments:
            try:
                expression.last_member()
            except PathError as exc:
                msg = "Invalid static path expression."
                raise InvalidExpressionError(msg) from exc
        return expression

    def __repr__(self) -> str:
        return f"PathCompiler({len(self._expressions)} expressions, {len(self._nodes)} nodes)"


# =============================================================================
# Compiled expression
# =============================================================================


@dataclass(frozen=True)
class PathExpression:
    """A compiled, immutable path expression.

    Equality and hashing use ``source`` only. Instances are created by a
    PathCompiler and cached there; use ``compile`` rather than the
    constructor.

    Attributes:
        source: The stripped expression text, static prefix included
        nodes: The compiled nodes, in evaluation order
        static_root: The bound root type of a static expression, else None
        compiler: The compiler that produced this expression; derived
            expressions are compiled with it

    """

    source: str
    nodes: tuple[ExpressionNode, ...] = field(compare=False, repr=False)
    static_root: type | None = field(default=None, compare=False)
    compiler: PathCompiler = field(
        default_factory=lambda: DEFAULT_COMPILER,
        compare=False,
        repr=False,
    )

    # -------------------------------------------------------------------------
    # Structure
    # -------------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self.nodes)

    def __iter__(self) -> Iterator[ExpressionNode]:
        return iter(self.nodes)

    def __getitem__(self, index: int) -> ExpressionNode:
        return self.nodes[index]

    def __str__(self) -> str:
        return self.source

    @property
    def first_node(self) -> ExpressionNode:
        return self.nodes[0]

    @property
    def last_node(self) -> ExpressionNode:
        return self.nodes[-1]

    @property
    def needs_arguments(self) -> bool:
        """Return True if any node reads from the argument mapping."""
        return any(node.needs_arguments for node in self.nodes)

    @property
    def argument_keys(self) -> tuple[str, ...]:
        """Distinct argument keys across all nodes, in first-use order."""
        return tuple(dict.fromkeys(key for node in self.nodes for key in node.argument_keys))

    @property
    def is_static(self) -> bool:
        return self.static_root is not None

    @property
    def root_type(self) -> type:
        """The bound root type.

        Raises:
            UnsupportedOperationError: If this is not a static expression

        """
        if self.static_root is None:
            msg = f"{self.source!r} is not a static path expression"
            raise UnsupportedOperationError(msg)
        return self.static_root

    # -------------------------------------------------------------------------
    # Derived expressions
    # -------------------------------------------------------------------------

    def sub_path(self, begin: int, end: int) -> PathExpression:
        """Get the expression made of nodes ``begin`` (inclusive) to ``end`` (exclusive).

        ``"foo.bar.name".sub_path(1, 2)`` is ``"bar"``. The root type of a
        static expression is kept.

        Raises:
            IndexError: If either index is out of range
            InvalidArgumentError: If ``end`` is not greater than ``begin``

        """
        size = len(self.nodes)
        if begin == 0 and end == size:
            return self
        if not 0 <= begin < size:
            msg = f"Begin index: {begin}, Size: {size}"
            raise IndexError(msg)
        if not 0 <= end <= size:
            msg = f"End index: {end}, Size: {size}"
            raise IndexError(msg)
        if end <= begin:
            msg = "The end index must be greater than the begin index."
            raise InvalidArgumentError(msg)

        text = ".".join(node.text for node in self.nodes[begin:end])
        return self.compiler.compile(text, self.static_root)

    def move_forward(self, count: int) -> PathExpression:
        """Drop ``count`` nodes from the start."""
        return self.sub_path(count, len(self.nodes))

    def move_backward(self, count: int) -> PathExpression:
        """Drop ``count`` nodes from the end."""
        return self.sub_path(0, len(self.nodes) - count)

    def concat(self, other: PathExpression) -> PathExpression:
        """Append another expression; its static prefix, if any, is dropped."""
        return self.compiler.compile(f"{self.source}.{other.to_non_static_expression().source}")

    def to_static_expression(self, cls: type) -> PathExpression:
        """Bind this expression to ``cls``, replacing any existing root type."""
        return self.compiler.compile(to_static_expression(cls, self.source))

    def to_non_static_expression(self) -> PathExpression:
        """Get this expression without its root type."""
        if not self.is_static:
            return self
        return self.compiler.compile(to_non_static_expression(self.source))

    # -------------------------------------------------------------------------
    # Members
    # -------------------------------------------------------------------------

    def member_of(
        self,
        index: int,
        cls: type | None = None,
        args: Arguments | None = None,
    ) -> Member | None:
        """Resolve the member node ``index`` addresses, starting from ``cls``.

        Between nodes the walk continues on the declared type of the previous
        member, unwrapped to its innermost sequence element type. ``cls``
        defaults to the root type of a static expression.

        Raises:
            IndexError: If ``index`` is out of range
            UnsupportedOperationError: If ``cls`` is omitted on a non-static
                expression, or differs from a static expression's root type
            MemberNotFoundError: If a node does not resolve

        """
        current = self.check_root(cls)
        if not 0 <= index < len(self.nodes):
            msg = f"Index: {index}, Size: {len(self.nodes)}"
            raise IndexError(msg)

        member = None
        for node in self.nodes[: index + 1]:
            member = node.member(current, args)
            owner = innermost_type(member.type if member is not None else current)
            current = get_origin(owner) or owner
        return member

    def last_member(
        self,
        cls: type | None = None,
        args: Arguments | None = None,
    ) -> Member | None:
        """Resolve the member the last node addresses. See ``member_of``."""
        return self.member_of(len(self.nodes) - 1, cls, args)

    def check_root(self, cls: type | None) -> type:
        """Get the type static evaluation starts from, defaulting to the root type.

        Raises:
            UnsupportedOperationError: If ``cls`` is omitted on a non-static
                expression, or differs from a static expression's root type

        """
        if cls is None:
            return self.root_type
        if self.static_root is not None and cls is not self.static_root:
            msg = (
                f"The static path expression only supports "
                f"{qualified_name(self.static_root)} as root type, got {cls!r}"
            )
            raise UnsupportedOperationError(msg)
        return cls

    # -------------------------------------------------------------------------
    # Evaluation, delegated to the default evaluator
    # -------------------------------------------------------------------------

    def get_value(
        self,
        root: Any,
        args: Arguments | None = None,
        factory: InstanceFactory | None = None,
    ) -> Any:
        """Read this expression's value from ``root``. See ``PathEvaluator.get``."""
        from pathdsl.evaluator import DEFAULT_EVALUATOR  # noqa: PLC0415

        return DEFAULT_EVALUATOR.get(self, root, args, factory)

    def set_value(
        self,
        root: Any,
        value: Any,
        args: Arguments | None = None,
        factory: InstanceFactory | None = None,
        *,
        strict: bool = False,
    ) -> None:
        """Write ``value`` through this expression. See ``PathEvaluator.set``."""
        from pathdsl.evaluator import DEFAULT_EVALUATOR  # noqa: PLC0415

        DEFAULT_EVALUATOR.set(self, root, value, args, factory, strict=strict)

    def get_static_value(
        self,
        cls: type | None = None,
        args: Arguments | None = None,
        factory: InstanceFactory | None = None,
    ) -> Any:
        """Read this expression's value from class-level state."""
        from pathdsl.evaluator import DEFAULT_EVALUATOR  # noqa: PLC0415

        return DEFAULT_EVALUATOR.get_static(self, cls, args, factory)

    def set_static_value(
        self,
        value: Any,
        cls: type | None = None,
        args: Arguments | None = None,
        factory: InstanceFactory | None = None,
        *,
        strict: bool = False,
    ) -> None:
        """Write ``value`` through this expression, starting at class-level state."""
        from pathdsl.evaluator import DEFAULT_EVALUATOR  # noqa: PLC0415

        DEFAULT_EVALUATOR.set_static(self, value, cls, args, factory, strict=strict)


DEFAULT_COMPILER = PathCompiler()


def compile(text: str, root_type: type | None = None) -> PathExpression:  # noqa: A001
    """Compile expression text with the default compiler."""
    return DEFAULT_COMPILER.compile(text, root_type)
