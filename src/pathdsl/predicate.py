"""Boolean predicates composed from path expressions.

A predicate reads a ``when`` value from one root, optionally a ``than``
value from a second root, and applies an ``is`` test to them::

    adult = PathExpressionPredicate.of("age", Is.GREATER_EQUAL, "class(myapp.Limits)ADULT_AGE")
    adults = list(filter(adult, people))

Method nodes may take the reserved ``root`` argument key; when no argument
mapping is supplied, each side gets a mapping binding ``root`` to its own
root object.
"""

from __future__ import annotations

import operator
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pathdsl.errors import InvalidArgumentError, UnsupportedOperationError
from pathdsl.evaluator import DEFAULT_EVALUATOR, PathEvaluator
from pathdsl.expression import DEFAULT_COMPILER, PathCompiler, PathExpression
from pathdsl.factory import InstanceFactory

type Arguments = Mapping[str, Any]

ROOT_KEY = "root"

_SAME: Any = object()


# =============================================================================
# Tests
# =============================================================================


class IsTest(ABC):
    """A unary or binary test over path expression values, or the undefined test."""

    @abstractmethod
    def is_defined(self) -> bool:
        """Return False only for the undefined test."""

    @abstractmethod
    def requires_two_values(self) -> bool:
        """Return True for binary tests."""

    @abstractmethod
    def test(self, *values: Any) -> bool:
        """Apply the test to one or two values."""


@dataclass(frozen=True)
class FunctionTest(IsTest):
    """An IsTest backed by a plain function of one or two values."""

    function: Callable[..., Any] | None
    arity: int
    name: str = field(default="", compare=False)

    def is_defined(self) -> bool:
        return self.function is not None

    def requires_two_values(self) -> bool:
        return self.arity == 2  # noqa: PLR2004

    def test(self, *values: Any) -> bool:
        if self.function is None:
            msg = "The undefined test cannot be applied."
            raise UnsupportedOperationError(msg)
        if len(values) != self.arity:
            msg = f"The [{self}] test requires {self.arity} value(s), got {len(values)}."
            raise InvalidArgumentError(msg)
        return bool(self.function(*values))

    def __str__(self) -> str:
        return self.name


def unary(function: Callable[[Any], Any], name: str | None = None) -> FunctionTest:
    """Wrap a one-value function as a test."""
    return FunctionTest(function, 1, name or function.__name__)


def binary(function: Callable[[Any, Any], Any], name: str | None = None) -> FunctionTest:
    """Wrap a two-value function as a test."""
    return FunctionTest(function, 2, name or function.__name__)


class Is(Enum):
    """Stock tests. Binary tests compare the ``when`` value with the ``than`` value."""

    UNDEFINED = FunctionTest(None, 0, "UNDEFINED")
    NONE = unary(lambda x: x is None, "NONE")
    NOT_NONE = unary(lambda x: x is not None, "NOT_NONE")
    TRUTHY = unary(operator.truth, "TRUTHY")
    FALSY = unary(operator.not_, "FALSY")
    EQUAL = binary(operator.eq, "EQUAL")
    NOT_EQUAL = binary(operator.ne, "NOT_EQUAL")
    SAME = binary(operator.is_, "SAME")
    NOT_SAME = binary(operator.is_not, "NOT_SAME")
    LESS = binary(operator.lt, "LESS")
    LESS_EQUAL = binary(operator.le, "LESS_EQUAL")
    GREATER = binary(operator.gt, "GREATER")
    GREATER_EQUAL = binary(operator.ge, "GREATER_EQUAL")
    IN = binary(lambda x, y: x in y, "IN")
    CONTAINS = binary(operator.contains, "CONTAINS")

    def is_defined(self) -> bool:
        return self.value.is_defined()

    def requires_two_values(self) -> bool:
        return self.value.requires_two_values()

    def test(self, *values: Any) -> bool:
        return self.value.test(*values)

    def __str__(self) -> str:
        return self.name


IsTest.register(Is)


# =============================================================================
# Predicate
# =============================================================================


@dataclass(frozen=True)
class PathExpressionPredicate:
    """A reusable boolean predicate over one or two root objects.

    Build instances with ``of``, which validates the combination of
    ``when``, ``is`` and ``than``. A predicate without ``when`` is constant;
    see ``ACCEPT_ALL`` and ``DENY_ALL``.
    """

    when: PathExpression | None = None
    is_: IsTest = Is.UNDEFINED
    than: PathExpression | None = None
    default_value: bool = field(default=False, kw_only=True)
    evaluator: PathEvaluator = field(default=DEFAULT_EVALUATOR, kw_only=True, compare=False)
    _inject_when: bool = field(init=False, compare=False)
    _inject_than: bool = field(init=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_inject_when", ROOT_KEY in _argument_keys(self.when))
        object.__setattr__(self, "_inject_than", ROOT_KEY in _argument_keys(self.than))

    @classmethod
    def of(
        cls,
        when: str | None = "",
        is_: IsTest = Is.UNDEFINED,
        than: str | None = "",
        default: PathExpressionPredicate | None = None,
        *,
        compiler: PathCompiler = DEFAULT_COMPILER,
        evaluator: PathEvaluator = DEFAULT_EVALUATOR,
    ) -> PathExpressionPredicate | None:
        """Build a predicate, or return ``default`` when ``when`` is empty.

        Args:
            when: Expression read from the first root; empty or None for none
            is_: The test to apply
            than: Expression read from the second root, for binary tests
            default: Returned unchanged when ``when``, ``is_`` and ``than``
                are all empty

        Raises:
            InvalidArgumentError: If the combination is inconsistent
            InvalidExpressionError: If ``when`` or ``than`` does not compile

        """
        when = when or ""
        than = than or ""
        if not when:
            if is_.is_defined():
                msg = "The [is] predicate cannot be defined if the [when] path expression is not specified."
                raise InvalidArgumentError(msg)
            if than:
                msg = "The [than] path expression cannot be specified if the [when] path expression is not specified."
                raise InvalidArgumentError(msg)
        elif not is_.is_defined():
            msg = "The [is] predicate cannot be undefined if the [when] path expression is specified."
            raise InvalidArgumentError(msg)

        if is_.requires_two_values():
            if not than:
                msg = f"The [than] path expression must be specified because the [{is_}] predicate require two values."
                raise InvalidArgumentError(msg)
        elif than:
            msg = f"The [than] path expression cannot be specified because the [{is_}] predicate require only one value."
            raise InvalidArgumentError(msg)

        if not when:
            return default
        return cls(
            compiler.compile(when),
            is_,
            compiler.compile(than) if is_.requires_two_values() else None,
            evaluator=evaluator,
        )

    @property
    def argument_keys(self) -> tuple[str, ...]:
        return tuple(dict.fromkeys(_argument_keys(self.when) + _argument_keys(self.than)))

    @property
    def needs_arguments(self) -> bool:
        return bool(self.argument_keys)

    @property
    def has_only_root_key(self) -> bool:
        """Return True if no argument key other than ``ROOT_KEY`` is used."""
        return all(key == ROOT_KEY for key in self.argument_keys)

    def test(
        self,
        root_a: Any,
        root_b: Any = _SAME,
        args: Arguments | None = None,
        factory: InstanceFactory | None = None,
    ) -> bool:
        """Evaluate the predicate.

        Args:
            root_a: Root for ``when``. A type evaluates ``when`` statically.
            root_b: Root for ``than``; defaults to ``root_a``
            args: Argument mapping shared by both sides. When omitted, a side
                that uses ``ROOT_KEY`` gets ``{ROOT_KEY: its root}``.
            factory: Passed to the evaluator to autovivify missing values

        """
        if self.when is None:
            return self.default_value
        if root_b is _SAME:
            root_b = root_a

        x = self._value(self.when, root_a, _side_args(args, root_a, inject=self._inject_when), factory)
        if self.than is None:
            return self.is_.test(x)
        y = self._value(self.than, root_b, _side_args(args, root_b, inject=self._inject_than), factory)
        return self.is_.test(x, y)

    def __call__(self, root: Any) -> bool:
        return self.test(root)

    def _value(
        self,
        expression: PathExpression,
        root: Any,
        args: Arguments | None,
        factory: InstanceFactory | None,
    ) -> Any:
        if expression.is_static:
            return self.evaluator.get_static(expression, None, args, factory)
        if isinstance(root, type):
            return self.evaluator.get_static(expression, root, args, factory)
        return self.evaluator.get(expression, root, args, factory)

    def __repr__(self) -> str:
        if self.when is None:
            return f"PathExpressionPredicate(default_value={self.default_value})"
        return f"PathExpressionPredicate(when={self.when}, is_={self.is_}, than={self.than})"


def _argument_keys(expression: PathExpression | None) -> tuple[str, ...]:
    return () if expression is None else expression.argument_keys


def _side_args(args: Arguments | None, root: Any, *, inject: bool) -> Arguments | None:
    if args is not None or not inject:
        return args
    return {ROOT_KEY: root}


ACCEPT_ALL = PathExpressionPredicate(default_value=True)
DENY_ALL = PathExpressionPredicate(default_value=False)
