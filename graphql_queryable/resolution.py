# Copyright 2021-present Kensho Technologies, LLC.
"""Classify how the result of a declared single-value query must be resolved."""
from dataclasses import dataclass
import logging
from typing import Optional

from .exceptions import QueryDeclarationError
from .query_tree import (
    ENUMERABLE_NAMESPACE,
    QUERYABLE_NAMESPACE,
    Lambda,
    MethodCall,
    make_queryable_call,
)
from .typedefs import ResolutionKind


logger = logging.getLogger(__name__)


# Queryable method name -> the resolution it stands for, when it is the root of a declared query.
RESOLUTION_METHODS = {
    "first": ResolutionKind.FIRST,
    "first_or_default": ResolutionKind.FIRST_OR_DEFAULT,
}


@dataclass(frozen=True)
class QueryInfo:
    """The classification of a declared single-value query.

    base_query is set if and only if resolution_kind is not UNMODIFIED. It is then the
    sequence-returning query whose first element is the value of the original query.
    """

    original_query: Lambda
    base_query: Optional[Lambda]
    resolution_kind: ResolutionKind


def get_query_info(query: Lambda) -> QueryInfo:
    """Classify a single-parameter (context) -> entity query, extracting its base sequence query.

    Queries whose body is a call to the queryable "first" or "first_or_default" method are split
    into the sequence the method reads from, and the reduction to apply to it after fetching.
    If the call has a predicate, the base sequence is filtered by it with a "where" call, so that
    the filter stays part of the translatable query.

    Every other query shape is classified as UNMODIFIED and returned as-is. This is a fallback,
    not an error.

    Args:
        query: Lambda with a single parameter, the data context

    Returns:
        QueryInfo for the query

    Raises:
        QueryDeclarationError: if the query does not have exactly one parameter
    """
    if len(query.parameters) != 1:
        raise QueryDeclarationError(
            "Expected a query with a single context parameter, got: {}".format(query)
        )

    unmodified_info = QueryInfo(
        original_query=query, base_query=None, resolution_kind=ResolutionKind.UNMODIFIED
    )

    method_call = query.body
    if not isinstance(method_call, MethodCall):
        return unmodified_info

    method = method_call.method
    if method.namespace != QUERYABLE_NAMESPACE:
        if method.namespace == ENUMERABLE_NAMESPACE and method.name in RESOLUTION_METHODS:
            # In-memory reductions are never resolved by the provider.
            logger.warning(
                "Query %s ends in the in-memory %s method and will be resolved as an unmodified "
                "value. Apply %s to the queryable sequence instead to let the provider resolve it.",
                query,
                method.name,
                method.name,
            )
        return unmodified_info
    if not method.is_static:
        return unmodified_info

    resolution_kind = RESOLUTION_METHODS.get(method.name)
    if resolution_kind is None:
        return unmodified_info

    base_sequence = method_call.arguments[0]
    if len(method_call.arguments) > 1:
        base_sequence = make_queryable_call("where", base_sequence, method_call.arguments[1])

    return QueryInfo(
        original_query=query,
        base_query=Lambda(query.parameters, base_sequence),
        resolution_kind=resolution_kind,
    )
