# Copyright 2021-present Kensho Technologies, LLC.
"""The selection request model: a tree of named fields with optional aliases and arguments."""
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

from graphql.error import GraphQLSyntaxError
from graphql.language.ast import (
    DocumentNode,
    FieldNode,
    OperationDefinitionNode,
    OperationType,
    SelectionSetNode,
)
from graphql.language.parser import parse
from graphql.utilities import value_from_ast_untyped

from .exceptions import GraphQLParsingError
from .helpers import get_only_element_from_collection


@dataclass(frozen=True)
class Field:
    """A selected field, with its optional alias, arguments and selected sub-fields."""

    name: str
    alias: Optional[str] = None
    fields: Tuple["Field", ...] = ()
    arguments: Mapping[str, Any] = field(default_factory=dict)

    @property
    def output_name(self) -> str:
        """Return the key under which the field's value is returned: its alias, else its name."""
        return self.alias if self.alias is not None else self.name


@dataclass(frozen=True)
class Query:
    """A selection request: the operation's name, if any, and its root fields."""

    name: Optional[str]
    fields: Tuple[Field, ...]


def safe_parse_graphql(graphql_string: str) -> DocumentNode:
    """Return an AST representation of the given GraphQL input, reraising GraphQL library errors."""
    try:
        ast = parse(graphql_string)
    except GraphQLSyntaxError as e:
        raise GraphQLParsingError(e) from e

    return ast


def _get_fields(
    selection_set: Optional[SelectionSetNode], variables: Optional[Dict[str, Any]]
) -> Tuple[Field, ...]:
    """Convert the selections of a selection set into Field objects."""
    if selection_set is None:
        return ()

    fields = []
    for selection in selection_set.selections:
        if not isinstance(selection, FieldNode):
            raise GraphQLParsingError(
                "Fragments are not supported in selection requests, got: {}".format(
                    type(selection).__name__
                )
            )

        arguments = {
            argument.name.value: value_from_ast_untyped(argument.value, variables)
            for argument in selection.arguments or ()
        }
        fields.append(
            Field(
                name=selection.name.value,
                alias=selection.alias.value if selection.alias is not None else None,
                fields=_get_fields(selection.selection_set, variables),
                arguments=arguments,
            )
        )

    return tuple(fields)


def parse_query(graphql_string: str, variables: Optional[Dict[str, Any]] = None) -> Query:
    """Parse a GraphQL document with a single query or mutation operation into a Query.

    Args:
        graphql_string: the GraphQL document
        variables: values of the variables referenced by field arguments, if any

    Returns:
        Query whose fields mirror the operation's selection set
    """
    document = safe_parse_graphql(graphql_string)

    if len(document.definitions) != 1:
        raise GraphQLParsingError(
            "Expected a GraphQL document with exactly one definition, got {}.".format(
                len(document.definitions)
            )
        )
    definition = get_only_element_from_collection(document.definitions)

    if not isinstance(definition, OperationDefinitionNode) or definition.operation not in (
        OperationType.QUERY,
        OperationType.MUTATION,
    ):
        raise GraphQLParsingError(
            "Expected a query or mutation operation, got: {}".format(definition)
        )

    name = definition.name.value if definition.name is not None else None
    return Query(name=name, fields=_get_fields(definition.selection_set, variables))
