"""Path evaluation: reading and writing through compiled expressions.

Reads propagate None: a missing intermediate value makes the whole read
None unless a factory is supplied, in which case the missing value is
created and written back ("autovivification"). Writes always autovivify
intermediate values.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from pathdsl.errors import AbandonedWriteError, UnsupportedOperationError
from pathdsl.expression import DEFAULT_COMPILER, PathCompiler, PathExpression
from pathdsl.factory import DEFAULT_FACTORY, InstanceFactory
from pathdsl.nodes import ExpressionNode

logger = logging.getLogger(__name__)

type Arguments = Mapping[str, Any]


class PathEvaluator:
    """Evaluates path expressions against object graphs and types.

    Args:
        default_factory: Factory used by writes when the caller supplies none
        compiler: Compiler used by the bulk helpers to compile expression text

    """

    def __init__(
        self,
        default_factory: InstanceFactory = DEFAULT_FACTORY,
        compiler: PathCompiler = DEFAULT_COMPILER,
    ) -> None:
        self.default_factory = default_factory
        self.compiler = compiler

    # -------------------------------------------------------------------------
    # Instance evaluation
    # -------------------------------------------------------------------------

    def get(
        self,
        expression: PathExpression,
        root: Any,
        args: Arguments | None = None,
        factory: InstanceFactory | None = None,
    ) -> Any:
        """Read the value ``expression`` addresses on ``root``.

        Args:
            expression: A non-static expression
            root: The object the first node is read from
            args: Argument values for method nodes, by key
            factory: When given, missing intermediate values are created and
                written back instead of ending the read

        Returns:
            The addressed value, or None if ``root`` or any value along the
            path is None

        Raises:
            UnsupportedOperationError: If ``expression`` is static

        """
        _reject_static(expression)
        if root is None:
            return None
        return self._read(expression, root, args, factory, static=False)

    def set(
        self,
        expression: PathExpression,
        root: Any,
        value: Any,
        args: Arguments | None = None,
        factory: InstanceFactory | None = None,
        *,
        strict: bool = False,
    ) -> None:
        """Write ``value`` at the location ``expression`` addresses on ``root``.

        Missing intermediate values are created with ``factory`` (or the
        default factory). If one cannot be produced the write is abandoned
        with a warning, or raises when ``strict`` is set. A None root is a
        no-op.

        Raises:
            UnsupportedOperationError: If ``expression`` is static
            InstantiationError: If an intermediate value cannot be produced
                and ``strict`` is set, or its type cannot be constructed
            UnsupportedWriteError: If the last node is not writable

        """
        _reject_static(expression)
        if root is None:
            return
        self._write(expression, root, value, args, factory, static=False, strict=strict)

    # -------------------------------------------------------------------------
    # Static evaluation
    # -------------------------------------------------------------------------

    def get_static(
        self,
        expression: PathExpression,
        cls: type | None = None,
        args: Arguments | None = None,
        factory: InstanceFactory | None = None,
    ) -> Any:
        """Read starting from class-level state of ``cls``.

        ``cls`` defaults to the root type of a static expression. A
        non-static expression may be read statically from an explicit type.

        Raises:
            UnsupportedOperationError: If ``cls`` is omitted on a non-static
                expression, or differs from a static expression's root type

        """
        cls = expression.check_root(cls)
        return self._read(expression, cls, args, factory, static=True)

    def set_static(
        self,
        expression: PathExpression,
        value: Any,
        cls: type | None = None,
        args: Arguments | None = None,
        factory: InstanceFactory | None = None,
        *,
        strict: bool = False,
    ) -> None:
        """Write starting from class-level state of ``cls``. See ``set``."""
        cls = expression.check_root(cls)
        self._write(expression, cls, value, args, factory, static=True, strict=strict)

    # -------------------------------------------------------------------------
    # Bulk helpers
    # -------------------------------------------------------------------------

    def get_all(
        self,
        root: Any,
        texts: Iterable[str],
        args: Arguments | None = None,
        factory: InstanceFactory | None = None,
    ) -> dict[str, Any]:
        """Read several expressions from one root, keyed by expression text."""
        return {
            text: self.get(self.compiler.compile(text), root, args, factory)
            for text in texts
        }

    def set_all[T](
        self,
        root: T,
        values: Mapping[str, Any],
        args: Arguments | None = None,
        factory: InstanceFactory | None = None,
    ) -> T:
        """Write several expression values into one root and return the root."""
        for text, value in values.items():
            self.set(self.compiler.compile(text), root, value, args, factory)
        return root

    # -------------------------------------------------------------------------
    # Walks
    # -------------------------------------------------------------------------

    def _read(
        self,
        expression: PathExpression,
        target: Any,
        args: Arguments | None,
        factory: InstanceFactory | None,
        *,
        static: bool,
    ) -> Any:
        last = len(expression) - 1
        try:
            for position, node in enumerate(expression):
                target = _next_value(
                    node,
                    target,
                    args,
                    factory if position < last else None,
                    static=static and position == 0,
                )
                if target is None:
                    return None
        except AbandonedWriteError as exc:
            logger.debug("Read through %r ended: %s", expression.source, exc)
            return None
        return target

    def _write(
        self,
        expression: PathExpression,
        target: Any,
        value: Any,
        args: Arguments | None,
        factory: InstanceFactory | None,
        *,
        static: bool,
        strict: bool,
    ) -> None:
        factory = factory if factory is not None else self.default_factory
        try:
            _write_nodes(expression, target, value, args, factory, static=static)
        except AbandonedWriteError as exc:
            if strict:
                raise
            logger.warning("Write through %r abandoned: %s", expression.source, exc)


def _write_nodes(
    expression: PathExpression,
    target: Any,
    value: Any,
    args: Arguments | None,
    factory: InstanceFactory,
    *,
    static: bool,
) -> None:
    for position, node in enumerate(expression.nodes[:-1]):
        next_target = _next_value(node, target, args, factory, static=static and position == 0)
        if next_target is None:
            msg = f"No instance produced for node {node} of {expression.source!r}"
            raise AbandonedWriteError(msg)
        target = next_target

    if static and len(expression) == 1:
        expression.last_node.set_static_value(target, value, args, factory)
    else:
        expression.last_node.set_value(target, value, args, factory)


def _next_value(
    node: ExpressionNode,
    target: Any,
    args: Arguments | None,
    factory: InstanceFactory | None,
    *,
    static: bool,
) -> Any:
    """Read one node, creating and writing back a missing value when a factory is given."""
    value = node.get_static_value(target, args) if static else node.get_value(target, args)
    if value is not None or factory is None:
        return value

    if static:
        node_class = node.static_node_class(target, args)
    else:
        node_class = node.node_class(target, args)
    logger.debug("Instantiating %r for missing node %s", node_class, node)
    value = factory.get(node_class, args)
    if value is not None:
        if static:
            node.set_static_value(target, value, args, factory)
        else:
            node.set_value(target, value, args, factory)
    return value


def _reject_static(expression: PathExpression) -> None:
    if expression.is_static:
        msg = (
            f"Static expressions do not accept a root object: {expression.source!r}. "
            "Use get_static/set_static instead."
        )
        raise UnsupportedOperationError(msg)


DEFAULT_EVALUATOR = PathEvaluator()
