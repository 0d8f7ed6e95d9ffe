# Copyright 2021-present Kensho Technologies, LLC.
"""Declare schema fields from ordinary queries against the schema's data context.

Fields without arguments are declared with a function of the data context:

    add_field(schema, "oldest_animal", lambda db: db.animals.order_by(lambda a: a.birthday).first())

Fields with arguments also take an example argument value. Only its type is used, to type the
second parameter of the declaration; its contents are never read:

    add_field(
        schema,
        "animal",
        lambda db, args: db.animals.first(lambda a: a.uuid == args.uuid),
        arg_example={"uuid": ""},
    )
"""
import logging
from typing import Any, Optional, Tuple

from .binding import bind_query
from .canonicalization import (
    canonicalize_sequence_query,
    ensure_sequence_query,
    split_declared_query,
)
from .declaration import DeclaredQuery, as_query_tree
from .query_tree import Lambda, Parameter
from .resolution import get_query_info
from .schema import GraphQLFieldBuilder, GraphQLSchema, MutationCallback
from .typedefs import ResolutionKind, get_element_type, make_sequence_type


logger = logging.getLogger(__name__)


class _NoArguments(object):
    """Marker for declarations that only take the data context."""

    def __repr__(self) -> str:
        return "NO_ARGUMENTS"


NO_ARGUMENTS: Any = _NoArguments()


def _declare(
    schema: GraphQLSchema, query: DeclaredQuery, arg_example: Any
) -> Tuple[Lambda, Optional[Parameter]]:
    """Return the context query of the declaration, and its args parameter if it has one."""
    parameter_types = [schema.context_type]
    if arg_example is not NO_ARGUMENTS:
        parameter_types.append(type(arg_example))

    return split_declared_query(as_query_tree(query, parameter_types))


def _add_field(
    schema: GraphQLSchema,
    name: str,
    query: DeclaredQuery,
    arg_example: Any,
    mutation: Optional[MutationCallback],
) -> GraphQLFieldBuilder:
    """Classify the declaration, then bind and register it according to its resolution kind."""
    context_query, args_parameter = _declare(schema, query, arg_example)
    info = get_query_info(context_query)
    logger.debug("Field %s is resolved as %s", name, info.resolution_kind.value)

    if info.resolution_kind != ResolutionKind.UNMODIFIED:
        if info.base_query is None:
            raise AssertionError(
                "Query classified as {} has no base query: {}".format(
                    info.resolution_kind, context_query
                )
            )
        base_query = canonicalize_sequence_query(info.base_query)
        result_type = make_sequence_type(info.original_query.result_type)
        compiled_query = bind_query(base_query, result_type, args_parameter)
        return schema.add_field_internal(name, compiled_query, info.resolution_kind, mutation)

    compiled_query = bind_query(
        info.original_query, info.original_query.result_type, args_parameter
    )
    return schema.add_unmodified_field_internal(name, compiled_query, mutation)


def _add_list_field(
    schema: GraphQLSchema,
    name: str,
    query: DeclaredQuery,
    arg_example: Any,
    mutation: Optional[MutationCallback],
) -> GraphQLFieldBuilder:
    """Bind and register the declaration as a sequence, without classifying it."""
    context_query, args_parameter = _declare(schema, query, arg_example)
    base_query = ensure_sequence_query(context_query)
    result_type = make_sequence_type(get_element_type(base_query.result_type))
    compiled_query = bind_query(base_query, result_type, args_parameter)
    return schema.add_field_internal(name, compiled_query, ResolutionKind.TO_LIST, mutation)


def add_field(
    schema: GraphQLSchema, name: str, query: DeclaredQuery, arg_example: Any = NO_ARGUMENTS
) -> GraphQLFieldBuilder:
    """Declare a single-value field.

    Queries ending in first() or first_or_default() on a queryable sequence are registered as
    sequence queries resolved with FIRST or FIRST_OR_DEFAULT. All other queries are registered
    as UNMODIFIED fields.

    Args:
        schema: the schema to register the field in
        name: name of the field
        query: function of the data context (and of the arguments, if arg_example is given),
               or the equivalent Lambda query tree
        arg_example: example argument value, used only for its type

    Returns:
        GraphQLFieldBuilder for the registered field
    """
    return _add_field(schema, name, query, arg_example, None)


def add_list_field(
    schema: GraphQLSchema, name: str, query: DeclaredQuery, arg_example: Any = NO_ARGUMENTS
) -> GraphQLFieldBuilder:
    """Declare a list field, whose query must produce a sequence. It is resolved with TO_LIST.

    Args:
        schema: the schema to register the field in
        name: name of the field
        query: function of the data context (and of the arguments, if arg_example is given),
               or the equivalent Lambda query tree
        arg_example: example argument value, used only for its type

    Returns:
        GraphQLFieldBuilder for the registered field
    """
    return _add_list_field(schema, name, query, arg_example, None)


def add_mutation(
    schema: GraphQLSchema,
    name: str,
    arg_example: Any,
    query: DeclaredQuery,
    mutation: MutationCallback,
) -> GraphQLFieldBuilder:
    """Declare a single-value field that runs mutation(context, args) before its query."""
    return _add_field(schema, name, query, arg_example, mutation)


def add_list_mutation(
    schema: GraphQLSchema,
    name: str,
    arg_example: Any,
    query: DeclaredQuery,
    mutation: MutationCallback,
) -> GraphQLFieldBuilder:
    """Declare a list field that runs mutation(context, args) before its query."""
    return _add_list_field(schema, name, query, arg_example, mutation)
