"""Exception hierarchy for path expression compilation and evaluation.

Every error derives from PathError and from the builtin exception that
best describes it, so callers can catch either the library base class or
the familiar builtin (ValueError, LookupError, TypeError).
"""

from __future__ import annotations


class PathError(Exception):
    """Base class for all path expression errors."""


class InvalidExpressionError(PathError, ValueError):
    """Expression text is malformed or cannot be resolved.

    Raised at compile time for blank text, bad segment syntax, an unknown
    static root type, or a static path whose members do not exist.
    """


class InvalidArgumentError(PathError, ValueError):
    """An API argument violates a precondition (e.g. predicate composition)."""


class MissingArgumentError(PathError, LookupError):
    """A method node argument key is not present in the argument mapping."""

    def __init__(self, message: str, key: str | None = None) -> None:
        super().__init__(message)
        self.key = key


class MemberNotFoundError(PathError, LookupError):
    """A field or method could not be resolved on a type."""

    def __init__(self, message: str, owner: object = None, name: str | None = None) -> None:
        super().__init__(message)
        self.owner = owner
        self.name = name


class UnsupportedWriteError(PathError, TypeError):
    """A write was attempted through a node that has no setter."""


class UnsupportedOperationError(PathError, TypeError):
    """An evaluation call does not match the expression's static/instance kind."""


class InstantiationError(PathError, TypeError):
    """An instance could not be produced for autovivification."""

    def __init__(self, message: str, cls: object = None) -> None:
        super().__init__(message)
        self.cls = cls


class AbandonedWriteError(InstantiationError):
    """A factory produced no value for a missing node, so a write cannot proceed.

    Non-strict writes catch this and log a warning instead.
    """
