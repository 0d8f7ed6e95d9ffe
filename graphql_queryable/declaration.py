# Copyright 2021-present Kensho Technologies, LLC.
"""Turn ordinary Python lambdas into query trees by calling them with tracing proxies.

A declaration like

    lambda db, args: db.animals.first(lambda animal: animal.uuid == args.uuid)

is called once with one QueryBuilder per parameter. Every attribute access, operator and sequence
method applied to a QueryBuilder records a node instead of computing a value, so the returned
QueryBuilder holds the query tree of the whole declaration. Any other Python value that takes part
in the expression is embedded as a Constant.
"""
import inspect
from typing import Any, Callable, List, Optional, Sequence, Union

from .exceptions import QueryDeclarationError
from .query_tree import (
    ENUMERABLE_NAMESPACE,
    QUERYABLE_NAMESPACE,
    STRING_NAMESPACE,
    BinaryOperation,
    Constant,
    Lambda,
    MemberAccess,
    MethodCall,
    Parameter,
    QueryExpression,
    QueryMethod,
    UnaryOperation,
)
from .typedefs import get_element_type, is_queryable_type


QueryFunction = Callable[..., Any]
DeclaredQuery = Union[Lambda, QueryFunction]


def to_expression(value: Any) -> QueryExpression:
    """Return the query tree represented by the value, embedding plain values as constants."""
    if isinstance(value, QueryBuilder):
        return value._query_expression  # pylint: disable=protected-access
    elif isinstance(value, QueryExpression):
        return value
    else:
        return Constant(value)


class QueryBuilder(object):
    """Tracing proxy that records the operations applied to it as query tree nodes.

    Members whose names clash with the methods of this class, or start with an underscore,
    can be accessed with subscript syntax instead: builder["count"].
    """

    __slots__ = ("_query_expression",)

    # Rich comparisons build expressions, so builders cannot be hashed.
    __hash__ = None  # type: ignore[assignment]

    def __init__(self, query_expression: QueryExpression) -> None:
        """Construct a new QueryBuilder wrapping the given expression."""
        self._query_expression = query_expression

    def __repr__(self) -> str:
        """Return a human-readable representation of the recorded expression."""
        return "QueryBuilder({})".format(self._query_expression)

    def __getattr__(self, member_name: str) -> "QueryBuilder":
        """Record an access to the named member."""
        if member_name.startswith("_"):
            raise AttributeError(member_name)
        return QueryBuilder(MemberAccess(self._query_expression, member_name))

    def __getitem__(self, member_name: str) -> "QueryBuilder":
        """Record an access to the named member, including names reserved by this class."""
        if not isinstance(member_name, str):
            raise QueryDeclarationError(
                "Only members with string names can be accessed, got: {}".format(member_name)
            )
        return QueryBuilder(MemberAccess(self._query_expression, member_name))

    def __iter__(self) -> Any:
        """Refuse iteration, which cannot be recorded."""
        raise QueryDeclarationError(
            "Query declarations cannot iterate over {}. Use sequence methods like where() or "
            "select() instead.".format(self._query_expression)
        )

    def __bool__(self) -> bool:
        """Refuse truth testing, which cannot be recorded."""
        raise QueryDeclarationError(
            'Query declarations cannot use "and", "or", "not" or "if" on {}. '
            'Use the "&", "|" and "~" operators instead.'.format(self._query_expression)
        )

    def _binary(self, operator: str, other: Any, reflected: bool = False) -> "QueryBuilder":
        """Record a binary operation between this builder and another value."""
        left = self._query_expression
        right = to_expression(other)
        if reflected:
            left, right = right, left
        return QueryBuilder(BinaryOperation(operator, left, right))

    def __eq__(self, other: Any) -> "QueryBuilder":  # type: ignore[override]
        return self._binary("=", other)

    def __ne__(self, other: Any) -> "QueryBuilder":  # type: ignore[override]
        return self._binary("!=", other)

    def __lt__(self, other: Any) -> "QueryBuilder":
        return self._binary("<", other)

    def __le__(self, other: Any) -> "QueryBuilder":
        return self._binary("<=", other)

    def __gt__(self, other: Any) -> "QueryBuilder":
        return self._binary(">", other)

    def __ge__(self, other: Any) -> "QueryBuilder":
        return self._binary(">=", other)

    def __and__(self, other: Any) -> "QueryBuilder":
        return self._binary("&&", other)

    def __rand__(self, other: Any) -> "QueryBuilder":
        return self._binary("&&", other, reflected=True)

    def __or__(self, other: Any) -> "QueryBuilder":
        return self._binary("||", other)

    def __ror__(self, other: Any) -> "QueryBuilder":
        return self._binary("||", other, reflected=True)

    def __add__(self, other: Any) -> "QueryBuilder":
        return self._binary("+", other)

    def __radd__(self, other: Any) -> "QueryBuilder":
        return self._binary("+", other, reflected=True)

    def __sub__(self, other: Any) -> "QueryBuilder":
        return self._binary("-", other)

    def __rsub__(self, other: Any) -> "QueryBuilder":
        return self._binary("-", other, reflected=True)

    def __mul__(self, other: Any) -> "QueryBuilder":
        return self._binary("*", other)

    def __rmul__(self, other: Any) -> "QueryBuilder":
        return self._binary("*", other, reflected=True)

    def __invert__(self) -> "QueryBuilder":
        return QueryBuilder(UnaryOperation("!", self._query_expression))

    def __neg__(self) -> "QueryBuilder":
        return QueryBuilder(UnaryOperation("-", self._query_expression))

    # Sequence operations.
    def _sequence_call(
        self, name: str, *arguments: QueryExpression, namespace: Optional[str] = None
    ) -> "QueryBuilder":
        """Record a call to a static sequence method with this builder as the source sequence."""
        source = self._query_expression
        if get_element_type(source.result_type) is None:
            raise QueryDeclarationError(
                "Cannot apply sequence method {} to {}, whose type {} is not a sequence "
                "type.".format(name, source, source.result_type)
            )
        if namespace is None:
            if is_queryable_type(source.result_type):
                namespace = QUERYABLE_NAMESPACE
            else:
                namespace = ENUMERABLE_NAMESPACE
        return QueryBuilder(MethodCall(QueryMethod(namespace, name), (source,) + arguments))

    def _element_lambda(self, query_fn: QueryFunction) -> Lambda:
        """Trace a function of a single element of this sequence."""
        element_type = get_element_type(self._query_expression.result_type)
        return trace_query(query_fn, [element_type])

    def where(self, predicate: QueryFunction) -> "QueryBuilder":
        """Record filtering the sequence by the predicate."""
        return self._sequence_call("where", self._element_lambda(predicate))

    def select(self, selector: QueryFunction) -> "QueryBuilder":
        """Record projecting each element of the sequence with the selector."""
        return self._sequence_call("select", self._element_lambda(selector))

    def order_by(self, key: QueryFunction) -> "QueryBuilder":
        """Record sorting the sequence by the key."""
        return self._sequence_call("order_by", self._element_lambda(key))

    def take(self, count: int) -> "QueryBuilder":
        """Record keeping only the first count elements."""
        return self._sequence_call("take", to_expression(count))

    def skip(self, count: int) -> "QueryBuilder":
        """Record dropping the first count elements."""
        return self._sequence_call("skip", to_expression(count))

    def first(self, predicate: Optional[QueryFunction] = None) -> "QueryBuilder":
        """Record taking the first element, optionally the first one matching the predicate."""
        if predicate is None:
            return self._sequence_call("first")
        return self._sequence_call("first", self._element_lambda(predicate))

    def first_or_default(self, predicate: Optional[QueryFunction] = None) -> "QueryBuilder":
        """Record taking the first element if there is one, optionally matching the predicate."""
        if predicate is None:
            return self._sequence_call("first_or_default")
        return self._sequence_call("first_or_default", self._element_lambda(predicate))

    def count(self) -> "QueryBuilder":
        """Record counting the elements of the sequence."""
        return self._sequence_call("count")

    def as_enumerable(self) -> "QueryBuilder":
        """Record switching to in-memory evaluation for all later sequence operations."""
        return self._sequence_call("as_enumerable", namespace=ENUMERABLE_NAMESPACE)

    def to_list(self) -> "QueryBuilder":
        """Record materializing the sequence as a list."""
        return self._sequence_call("to_list", namespace=ENUMERABLE_NAMESPACE)

    # String operations.
    def _string_call(self, name: str, argument: Any) -> "QueryBuilder":
        """Record a call to a str method with this builder as the receiver."""
        method = QueryMethod(STRING_NAMESPACE, name, is_static=False)
        return QueryBuilder(
            MethodCall(method, (self._query_expression, to_expression(argument)))
        )

    def startswith(self, prefix: str) -> "QueryBuilder":
        """Record testing whether the string starts with the prefix."""
        return self._string_call("startswith", prefix)

    def endswith(self, suffix: str) -> "QueryBuilder":
        """Record testing whether the string ends with the suffix."""
        return self._string_call("endswith", suffix)


def _get_parameter_names(query_fn: QueryFunction, expected_count: int) -> List[str]:
    """Return the names of the positional parameters of the function, checking their count."""
    try:
        signature = inspect.signature(query_fn)
    except (TypeError, ValueError) as e:
        raise QueryDeclarationError(
            "Cannot inspect the parameters of query declaration {}.".format(query_fn)
        ) from e

    positional_kinds = {
        inspect.Parameter.POSITIONAL_ONLY,
        inspect.Parameter.POSITIONAL_OR_KEYWORD,
    }
    names = [
        parameter.name
        for parameter in signature.parameters.values()
        if parameter.kind in positional_kinds
    ]
    if len(names) != expected_count:
        raise QueryDeclarationError(
            "Expected a query declaration with {} parameter(s), but {} has {}: {}".format(
                expected_count, query_fn, len(names), names
            )
        )
    return names


def trace_query(
    query_fn: QueryFunction,
    parameter_types: Sequence[Any],
    parameter_names: Optional[Sequence[str]] = None,
) -> Lambda:
    """Return the query tree of the function, traced with parameters of the given types.

    Args:
        query_fn: function whose positional parameters correspond to parameter_types
        parameter_types: the type of each parameter, e.g. the data context type
        parameter_names: names for the Lambda's parameters. Defaults to the function's own names.

    Returns:
        Lambda with one Parameter per entry in parameter_types
    """
    if parameter_names is None:
        parameter_names = _get_parameter_names(query_fn, len(parameter_types))

    parameters = [
        Parameter(name, parameter_type)
        for name, parameter_type in zip(parameter_names, parameter_types)
    ]
    result = query_fn(*(QueryBuilder(parameter) for parameter in parameters))
    return Lambda(parameters, to_expression(result))


def as_query_tree(query: DeclaredQuery, parameter_types: Sequence[Any]) -> Lambda:
    """Return the query tree of a declaration given either as a Lambda or as a Python function."""
    if isinstance(query, Lambda):
        if len(query.parameters) != len(parameter_types):
            raise QueryDeclarationError(
                "Expected a query tree with {} parameter(s), got: {}".format(
                    len(parameter_types), query
                )
            )
        return query
    elif callable(query):
        return trace_query(query, parameter_types)

    raise QueryDeclarationError(
        "Expected a Lambda query tree or a function, got: {} {}".format(
            type(query).__name__, query
        )
    )
