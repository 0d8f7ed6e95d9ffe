# Copyright 2021-present Kensho Technologies, LLC.
"""Normalize declared queries into single-parameter (context) -> sequence queries."""
from typing import Optional, Tuple

from .exceptions import QueryDeclarationError
from .query_tree import Lambda, Parameter, substitute_parameters
from .typedefs import is_sequence_type


def split_declared_query(query: Lambda) -> Tuple[Lambda, Optional[Parameter]]:
    """Split a (context) or (context, args) declaration into a context query and its args parameter.

    The args parameter, if any, is left free in the body of the returned context query. It is
    bound later, when the argument binder turns the query into a template.

    Returns:
        tuple (context query, args parameter or None)
    """
    if len(query.parameters) == 1:
        return query, None
    elif len(query.parameters) == 2:
        context_parameter, args_parameter = query.parameters
        return Lambda((context_parameter,), query.body), args_parameter

    raise QueryDeclarationError(
        "Expected a query declaration with a context parameter and optionally an arguments "
        "parameter, but got {} parameters: {}".format(len(query.parameters), query)
    )


def ensure_sequence_query(query: Lambda) -> Lambda:
    """Return the query unchanged, after checking it is a (context) -> sequence query."""
    if len(query.parameters) != 1:
        raise QueryDeclarationError(
            "Expected a query with a single context parameter, got: {}".format(query)
        )

    if not is_sequence_type(query.body.result_type):
        raise QueryDeclarationError(
            "Expected a query producing a sequence, but it produces {}: {}".format(
                query.body.result_type, query
            )
        )

    return query


def canonicalize_sequence_query(query: Lambda) -> Lambda:
    """Rebind a (context) -> sequence query to a fresh context parameter.

    The old context parameter is replaced by identity everywhere in the body, including inside
    nested lambdas. Any other free parameter is left untouched, so the fetched entities and the
    applied filters are exactly the same as in the original query.
    """
    ensure_sequence_query(query)

    old_context = query.parameters[0]
    new_context = Parameter(old_context.name, old_context.parameter_type)
    new_body = substitute_parameters(query.body, {old_context: new_context})
    return Lambda((new_context,), new_body)
