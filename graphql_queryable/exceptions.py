# Copyright 2021-present Kensho Technologies, LLC.
class GraphQLQueryableError(Exception):
    """Generic error when declaring, compiling or running queryable GraphQL fields."""


class QueryDeclarationError(GraphQLQueryableError):
    """Exception raised when a declared query cannot be turned into a query tree.

    For example:
    - the declaration has an unsupported number of parameters;
    - the declaration uses a Python construct that cannot be traced, like "and" / "or" / "not";
    - a sequence operation is applied to a value that is not a sequence.
    """


class QueryCompilationError(GraphQLQueryableError):
    """Exception raised when a query tree cannot be compiled into a reusable field query.

    This is raised at schema construction time, never while serving requests. Most commonly it
    means that the tree references a parameter that is not in scope.
    """


class SchemaRegistrationError(GraphQLQueryableError):
    """Exception raised when a compiled field cannot be registered in the schema.

    For example:
    - a field with the same name is already registered;
    - the resolution kind of the field does not agree with the type of its compiled query.
    """


class GraphQLParsingError(GraphQLQueryableError):
    """Exception raised when the provided GraphQL string could not be parsed."""


class GraphQLInvalidArgumentError(GraphQLQueryableError):
    """Exception raised when the arguments passed to a compiled field query are invalid.

    For example, the query reads an argument member that the provided value does not have.
    """


class QueryEvaluationError(GraphQLQueryableError):
    """Exception raised when the in-memory provider cannot evaluate a query tree."""


class QueryTranslationError(GraphQLQueryableError):
    """Exception raised when a query tree cannot be translated into a SQL statement."""
