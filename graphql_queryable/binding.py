# Copyright 2021-present Kensho Technologies, LLC.
"""Turn context queries into reusable, argument-parameterized field queries.

A field query is compiled once, when the field is declared, into a CompiledFieldQuery. Calling the
CompiledFieldQuery with an argument value produces a new query tree of the form

    (context, base) -> result

in which every argument value the query reads is embedded as a Constant. The produced trees
therefore reference nothing but their own two parameters and constant data, so a data-access
provider can translate them without access to any Python closure.
"""
from copy import deepcopy
from dataclasses import dataclass
import logging
from typing import Any, Optional

from .exceptions import GraphQLInvalidArgumentError, QueryCompilationError
from .helpers import read_member
from .query_tree import (
    Constant,
    Convert,
    Lambda,
    MemberAccess,
    Parameter,
    QueryExpression,
    get_free_parameters,
    make_type_replacement_visitor,
    substitute_parameters,
)
from .typedefs import is_assignable


logger = logging.getLogger(__name__)


BASE_CONTEXT_PARAMETER_NAME = "base"
ARGS_PARAMETER_NAME = "args"


def _fold_member_access_on_constant(member_access: MemberAccess) -> QueryExpression:
    """Replace a member access on a constant with a constant holding the member's value."""
    target = member_access.target
    if not isinstance(target, Constant):
        return member_access

    try:
        member_value = read_member(target.value, member_access.member_name)
    except AttributeError as e:
        raise GraphQLInvalidArgumentError(
            'Argument value {} has no member "{}", which the query reads.'.format(
                target.value, member_access.member_name
            )
        ) from e

    return Constant(member_value)


@dataclass(frozen=True)
class QueryTemplate:
    """A quoted (context, base) -> result query tree, with a free args parameter.

    The template is data, never executed: specialize() produces a closure-free copy of it with the
    args parameter replaced by a concrete argument value.
    """

    query: Lambda
    args_parameter: Parameter

    def specialize(self, args_value: Any) -> Lambda:
        """Return the template's query with the argument value embedded as constant data.

        The tree holds a deep copy of the argument value, so mutating the value afterwards does
        not affect it, and trees specialized from the same value share no mutable state.
        """
        args_constant = Constant(deepcopy(args_value), self.args_parameter.parameter_type)
        substituted = substitute_parameters(self.query, {self.args_parameter: args_constant})
        specialized = substituted.visit_and_update(
            make_type_replacement_visitor(MemberAccess, _fold_member_access_on_constant)
        )
        if not isinstance(specialized, Lambda):
            raise AssertionError(
                "Specializing a template produced a non-Lambda tree: {} {}".format(
                    specialized, self
                )
            )
        return specialized


class CompiledFieldQuery(object):
    """An immutable, reusable query builder: args value -> (context, base) -> result tree.

    Instances hold no state other than their compiled template, and may be shared and called
    concurrently from any number of threads.
    """

    __slots__ = ("_template", "_result_type")

    def __init__(self, template: QueryTemplate, result_type: Any) -> None:
        """Construct a new CompiledFieldQuery. Use compile_template() instead of calling this."""
        self._template = template
        self._result_type = result_type

    @property
    def template(self) -> QueryTemplate:
        """Return the template this query was compiled from."""
        return self._template

    @property
    def result_type(self) -> Any:
        """Return the type of the value produced by the query trees this object builds."""
        return self._result_type

    def __call__(self, args_value: Any = None) -> Lambda:
        """Return a new (context, base) -> result query tree for the given argument value."""
        return self._template.specialize(args_value)

    def __repr__(self) -> str:
        """Return a human-readable representation of the compiled query."""
        return "CompiledFieldQuery({})".format(self._template.query)


def _validate_tree(expression: QueryExpression) -> QueryExpression:
    """Re-validate a single node of a query tree, returning it unchanged."""
    expression.validate()
    return expression


def compile_template(template: QueryTemplate, result_type: Any) -> CompiledFieldQuery:
    """Check the template once, and return a CompiledFieldQuery that specializes it on demand.

    Raises:
        QueryCompilationError: if the template references any parameter other than its own
                               (context, base) parameters and the args parameter, or if any of
                               its nodes is invalid.
    """
    query = template.query
    if len(query.parameters) != 2:
        raise QueryCompilationError(
            "Expected a (context, base) template, but got {} parameters: {}".format(
                len(query.parameters), query
            )
        )

    out_of_scope = [
        parameter
        for parameter in get_free_parameters(query)
        if parameter is not template.args_parameter
    ]
    if out_of_scope:
        raise QueryCompilationError(
            "Query references parameter(s) {} that are not in scope. Only the context and the "
            "arguments may be referenced: {}".format(
                ", ".join(parameter.name for parameter in out_of_scope), query
            )
        )

    try:
        query.visit_and_update(_validate_tree)
    except (TypeError, ValueError) as e:
        raise QueryCompilationError("Malformed query tree {}: {}".format(query, e)) from e

    logger.debug("Compiled field query template %s", query)
    return CompiledFieldQuery(template, result_type)


def bind_query(
    base_query: Lambda, result_type: Any, args_parameter: Optional[Parameter] = None
) -> CompiledFieldQuery:
    """Bind a (context) -> result query into a compiled args -> (context, base) -> result query.

    Args:
        base_query: Lambda with a single context parameter. The args_parameter, if given, may be
                    referenced as a free parameter in its body.
        result_type: the declared result type of the field. The body is converted to it if its
                     own type is not assignable to it.
        args_parameter: the declaration's arguments parameter, or None for context-only queries.
                        A placeholder parameter is used in that case, and argument values passed
                        to the compiled query are ignored.

    Returns:
        CompiledFieldQuery producing a new query tree for every argument value
    """
    if len(base_query.parameters) != 1:
        raise QueryCompilationError(
            "Expected a query with a single context parameter, got: {}".format(base_query)
        )

    context_parameter = base_query.parameters[0]
    base_context_parameter = Parameter(
        BASE_CONTEXT_PARAMETER_NAME, context_parameter.parameter_type
    )

    body = base_query.body
    if not is_assignable(body.result_type, result_type):
        body = Convert(body, result_type)

    if args_parameter is None:
        args_parameter = Parameter(ARGS_PARAMETER_NAME, object)

    template = QueryTemplate(
        query=Lambda((context_parameter, base_context_parameter), body),
        args_parameter=args_parameter,
    )
    return compile_template(template, result_type)
