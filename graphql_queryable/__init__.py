# Copyright 2021-present Kensho Technologies, LLC.
"""Commonly-used functions and data types from this package."""
from .binding import CompiledFieldQuery, QueryTemplate, bind_query, compile_template  # noqa
from .canonicalization import (  # noqa
    canonicalize_sequence_query,
    ensure_sequence_query,
    split_declared_query,
)
from .declaration import QueryBuilder, as_query_tree, trace_query  # noqa
from .exceptions import (  # noqa
    GraphQLInvalidArgumentError,
    GraphQLParsingError,
    GraphQLQueryableError,
    QueryCompilationError,
    QueryDeclarationError,
    QueryEvaluationError,
    QueryTranslationError,
    SchemaRegistrationError,
)
from .field_builder import (  # noqa
    NO_ARGUMENTS,
    add_field,
    add_list_field,
    add_list_mutation,
    add_mutation,
)
from .interpreter import apply_resolution, evaluate_lambda, execute_query, resolve_field  # noqa
from .query_tree import Lambda, Parameter, are_trees_equivalent  # noqa
from .resolution import QueryInfo, get_query_info  # noqa
from .schema import FieldDescriptor, GraphQLFieldBuilder, GraphQLSchema  # noqa
from .selection import Field, Query, parse_query  # noqa
from .sql_translation import translate_field_query, translate_to_sql  # noqa
from .typedefs import Enumerable, Queryable, ResolutionKind  # noqa


__package_name__ = "graphql-queryable"
__version__ = "1.0.0"
