"""pathDSL - Path expressions for reading and writing nested Python objects."""

from pathdsl.errors import (
    AbandonedWriteError,
    InstantiationError,
    InvalidArgumentError,
    InvalidExpressionError,
    MemberNotFoundError,
    MissingArgumentError,
    PathError,
    UnsupportedOperationError,
    UnsupportedWriteError,
)
from pathdsl.evaluator import (
    DEFAULT_EVALUATOR,
    PathEvaluator,
)
from pathdsl.expression import (
    DEFAULT_COMPILER,
    PathCompiler,
    PathExpression,
    compile,  # noqa: A004
    to_non_static_expression,
    to_static_expression,
)
from pathdsl.factory import (
    DEFAULT_FACTORY,
    InstanceFactory,
)
from pathdsl.members import (
    DEFAULT_RESOLVER,
    FieldMember,
    Member,
    MemberResolver,
    MethodMember,
    is_getter,
    is_setter,
    is_static,
)
from pathdsl.nodes import (
    ArrayNode,
    ExpressionNode,
    FieldNode,
    MethodNode,
)
from pathdsl.predicate import (
    ACCEPT_ALL,
    DENY_ALL,
    ROOT_KEY,
    FunctionTest,
    Is,
    IsTest,
    PathExpressionPredicate,
    binary,
    unary,
)

__all__ = [
    "ACCEPT_ALL",
    "DEFAULT_COMPILER",
    "DEFAULT_EVALUATOR",
    "DEFAULT_FACTORY",
    "DEFAULT_RESOLVER",
    "DENY_ALL",
    "ROOT_KEY",
    "AbandonedWriteError",
    "ArrayNode",
    "ExpressionNode",
    "FieldMember",
    "FieldNode",
    "FunctionTest",
    "InstanceFactory",
    "InstantiationError",
    "InvalidArgumentError",
    "InvalidExpressionError",
    "Is",
    "IsTest",
    "Member",
    "MemberNotFoundError",
    "MemberResolver",
    "MethodMember",
    "MethodNode",
    "MissingArgumentError",
    "PathCompiler",
    "PathError",
    "PathEvaluator",
    "PathExpression",
    "PathExpressionPredicate",
    "UnsupportedOperationError",
    "UnsupportedWriteError",
    "binary",
    "compile",
    "is_getter",
    "is_setter",
    "is_static",
    "to_non_static_expression",
    "to_static_expression",
    "unary",
]
