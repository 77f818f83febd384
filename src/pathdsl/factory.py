"""Instance factories for autovivification."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from decimal import Decimal
from fractions import Fraction
from typing import Any, Self

from pathdsl.errors import InvalidArgumentError
from pathdsl.members import DEFAULT_RESOLVER, MemberResolver

logger = logging.getLogger(__name__)

type Arguments = Mapping[str, Any]
type Producer[T] = Callable[[Arguments | None], T]


class InstanceFactory:
    """Registry of per-type producers used to create missing values.

    A producer receives the evaluation's argument mapping (or None) and
    returns a new instance. Types without a producer are constructed with no
    arguments; parameterised generics such as ``list[Address]`` construct
    their origin class.

    Usage:
        factory = InstanceFactory.empty().put(list[Address], lambda args: [None] * 5)
        expr.set_value(person, "PE", factory=factory)
    """

    def __init__(
        self,
        producers: Mapping[Any, Producer[Any]] | None = None,
        resolver: MemberResolver = DEFAULT_RESOLVER,
    ) -> None:
        self._producers: dict[Any, Producer[Any]] = dict(producers or {})
        self._resolver = resolver

    @classmethod
    def empty(cls, resolver: MemberResolver = DEFAULT_RESOLVER) -> InstanceFactory:
        """Create a factory with no registered producers."""
        return cls(resolver=resolver)

    @classmethod
    def with_defaults(
        cls,
        resolver: MemberResolver = DEFAULT_RESOLVER,
    ) -> InstanceFactory:
        """Create a factory whose numeric and boolean types yield zero/False."""
        return cls(_ZERO_PRODUCERS, resolver)

    def get[T](self, cls: type[T] | Any, args: Arguments | None = None) -> T:
        """Produce an instance of ``cls``.

        Raises:
            InvalidArgumentError: If ``cls`` is None
            InstantiationError: If no producer is registered and the type
                cannot be constructed without arguments

        """
        if cls is None:
            msg = "The given class is None."
            raise InvalidArgumentError(msg)
        if (producer := self._producers.get(cls)) is not None:
            return producer(args)
        logger.debug("No producer registered for %r; constructing it", cls)
        return self._resolver.construct(cls)

    def put[T](self, cls: type[T] | Any, producer: Producer[T]) -> Self:
        """Register (or replace) the producer for a type."""
        if cls is None:
            msg = "The class key cannot be None."
            raise InvalidArgumentError(msg)
        if producer is None:
            msg = "The producer cannot be None."
            raise InvalidArgumentError(msg)
        self._producers[cls] = producer
        return self

    def remove(self, cls: type | Any) -> Self:
        """Unregister a type's producer, reverting to plain construction."""
        self._producers.pop(cls, None)
        return self

    def copy(self) -> InstanceFactory:
        """Create an independent factory with the same producers."""
        return InstanceFactory(self._producers, self._resolver)

    def __contains__(self, cls: object) -> bool:
        return cls in self._producers

    def __repr__(self) -> str:
        return f"InstanceFactory({len(self._producers)} producers)"


_ZERO_PRODUCERS: dict[type, Producer[Any]] = {
    int: lambda _: 0,
    float: lambda _: 0.0,
    complex: lambda _: 0j,
    bool: lambda _: False,
    Decimal: lambda _: Decimal(0),
    Fraction: lambda _: Fraction(0),
}

DEFAULT_FACTORY = InstanceFactory.with_defaults()

