# Copyright 2021-present Kensho Technologies, LLC.
"""SQL provider: translate compiled field query trees into SQLAlchemy statements.

The data context of a translated query is a mapping of collection names to SQLAlchemy tables.
A member access on the context selects from the table with that name, and a member access on
the parameter of a predicate, key or selector reads the column with that name.
"""
from typing import Any, Dict, Mapping, Optional

import sqlalchemy
from sqlalchemy import and_, false, func, not_, null, or_, select
from sqlalchemy.sql.selectable import FromClause, Select

from .exceptions import QueryTranslationError
from .query_tree import (
    QUERYABLE_NAMESPACE,
    STRING_NAMESPACE,
    BinaryOperation,
    Constant,
    Convert,
    Lambda,
    MemberAccess,
    MethodCall,
    Parameter,
    QueryExpression,
    UnaryOperation,
)
from .schema import FieldDescriptor
from .typedefs import ResolutionKind


_ORDERING_OPERATORS = {
    ">": lambda left, right: left > right,
    ">=": lambda left, right: left >= right,
    "<": lambda left, right: left < right,
    "<=": lambda left, right: left <= right,
}

_ARITHMETIC_OPERATORS = {
    "+": lambda left, right: left + right,
    "-": lambda left, right: left - right,
    "*": lambda left, right: left * right,
}


def _translate_comparison(operator: str, left: Any, right: Any) -> Any:
    """Return a comparison that is never NULL, matching apply_operator() in the interpreter.

    None equals None and is distinct from every other value. Ordering comparisons involving None
    are False, except that None >= None and None <= None are True.
    """
    if operator == "=":
        return left.is_not_distinct_from(right)
    elif operator == "!=":
        return left.is_distinct_from(right)

    both_present = and_(
        left.is_not(None), right.is_not(None), _ORDERING_OPERATORS[operator](left, right)
    )
    if operator in {">=", "<="}:
        return or_(and_(left.is_(None), right.is_(None)), both_present)
    return both_present


def _is_never_null(expression: QueryExpression) -> bool:
    """Return True if the expression's translation is a condition that never evaluates to NULL."""
    if isinstance(expression, BinaryOperation):
        return expression.operator not in BinaryOperation.ARITHMETIC_OPERATORS
    elif isinstance(expression, UnaryOperation):
        return expression.operator == "!"
    elif isinstance(expression, MethodCall):
        return expression.method.namespace == STRING_NAMESPACE
    elif isinstance(expression, Constant):
        return expression.value is not None
    return False


class _SelectState(object):
    """A SELECT statement under construction, and the row source its lambdas refer to."""

    def __init__(self, statement: Select, row_source: Optional[FromClause]) -> None:
        self.statement = statement
        # None once the rows have been projected, so later lambdas have no columns to read.
        self.row_source = row_source
        self.is_limited = False

    def as_filterable(self) -> "_SelectState":
        """Return a state whose statement can be filtered, sorted or limited again.

        Filtering, sorting or limiting after LIMIT / OFFSET must apply to the limited rows, and
        SQLAlchemy replaces an existing LIMIT / OFFSET instead of composing with it. The limited
        statement is therefore wrapped into a subquery first.
        """
        if not self.is_limited:
            return self
        subquery = self.statement.subquery()
        row_source = subquery if self.row_source is not None else None
        return _SelectState(select(subquery), row_source)


class _SqlTranslator(object):
    """Translate the body of a closed (context, base) query tree."""

    def __init__(self, tables: Mapping[str, FromClause], context_parameters: Any) -> None:
        self._tables = tables
        self._context_parameters = frozenset(context_parameters)

    def translate_sequence(self, expression: QueryExpression) -> _SelectState:
        """Return the SELECT state producing the rows of a sequence expression."""
        if isinstance(expression, MemberAccess):
            target = expression.target
            if not isinstance(target, Parameter) or target not in self._context_parameters:
                raise QueryTranslationError(
                    "Only collections of the data context can be selected from, got: {}".format(
                        expression
                    )
                )
            table = self._tables.get(expression.member_name)
            if table is None:
                raise QueryTranslationError(
                    "No table is mapped to collection {}. Mapped collections: {}".format(
                        expression.member_name, sorted(self._tables)
                    )
                )
            return _SelectState(select(table), table)
        elif isinstance(expression, Convert):
            return self.translate_sequence(expression.operand)
        elif isinstance(expression, MethodCall):
            return self._translate_sequence_call(expression)

        raise QueryTranslationError("Cannot translate sequence expression: {}".format(expression))

    def _translate_sequence_call(self, expression: MethodCall) -> _SelectState:
        """Apply a queryable sequence operation to the SELECT state of its source."""
        method = expression.method
        if method.namespace != QUERYABLE_NAMESPACE:
            raise QueryTranslationError(
                "Only queryable sequence operations can be translated to SQL, got: {}".format(
                    method
                )
            )

        state = self.translate_sequence(expression.arguments[0])
        extra_arguments = expression.arguments[1:]

        if method.name == "where":
            state = state.as_filterable()
            condition = self._translate_row_lambda(extra_arguments[0], state)
            state.statement = state.statement.where(condition)
        elif method.name == "order_by":
            state = state.as_filterable()
            key = self._translate_row_lambda(extra_arguments[0], state)
            state.statement = state.statement.order_by(key)
        elif method.name == "select":
            column = self._translate_row_lambda(extra_arguments[0], state)
            state.statement = state.statement.with_only_columns(column)
            state.row_source = None
        elif method.name in {"take", "skip"}:
            count = self._get_constant_value(extra_arguments[0])
            state = state.as_filterable()
            if method.name == "take":
                state.statement = state.statement.limit(count)
            else:
                state.statement = state.statement.offset(count)
            state.is_limited = True
        elif method.name in {"first", "first_or_default"} and not extra_arguments:
            state = state.as_filterable()
            state.statement = state.statement.limit(1)
            state.is_limited = True
        else:
            raise QueryTranslationError(
                "Queryable method {} cannot be translated to SQL here: {}".format(
                    method.name, expression
                )
            )
        return state

    def _get_constant_value(self, expression: QueryExpression) -> Any:
        if not isinstance(expression, Constant):
            raise QueryTranslationError("Expected a constant, got: {}".format(expression))
        return expression.value

    def _translate_row_lambda(self, expression: QueryExpression, state: _SelectState) -> Any:
        """Translate a single-parameter lambda over the rows of the given state."""
        if state.row_source is None:
            raise QueryTranslationError(
                "Cannot apply {} to projected values; apply it before select().".format(expression)
            )
        if not isinstance(expression, Lambda) or len(expression.parameters) != 1:
            raise QueryTranslationError(
                "Expected a single-parameter lambda, got: {}".format(expression)
            )
        row_bindings = {expression.parameters[0]: state.row_source}
        return self.translate_scalar(expression.body, row_bindings)

    def translate_scalar(
        self, expression: QueryExpression, row_bindings: Dict[Parameter, FromClause]
    ) -> Any:
        """Return the SQLAlchemy column expression for a scalar expression over the bound rows."""
        if isinstance(expression, Constant):
            if expression.value is None:
                return null()
            return sqlalchemy.literal(expression.value)
        elif isinstance(expression, MemberAccess):
            target = expression.target
            row_source = row_bindings.get(target) if isinstance(target, Parameter) else None
            if row_source is None:
                raise QueryTranslationError(
                    "Only columns of the rows being filtered can be read, got: {}".format(
                        expression
                    )
                )
            try:
                return row_source.c[expression.member_name]
            except KeyError as e:
                raise QueryTranslationError(
                    "Table {} has no column {}.".format(row_source, expression.member_name)
                ) from e
        elif isinstance(expression, UnaryOperation):
            if expression.operator == "!":
                return not_(self.translate_condition(expression.operand, row_bindings))
            return -self.translate_scalar(expression.operand, row_bindings)
        elif isinstance(expression, BinaryOperation):
            operator = expression.operator
            if operator in BinaryOperation.LOGICAL_OPERATORS:
                left = self.translate_condition(expression.left, row_bindings)
                right = self.translate_condition(expression.right, row_bindings)
                return and_(left, right) if operator == "&&" else or_(left, right)

            left = self.translate_scalar(expression.left, row_bindings)
            right = self.translate_scalar(expression.right, row_bindings)
            if operator in BinaryOperation.ARITHMETIC_OPERATORS:
                return _ARITHMETIC_OPERATORS[operator](left, right)
            return _translate_comparison(operator, left, right)
        elif isinstance(expression, Convert):
            return self.translate_scalar(expression.operand, row_bindings)
        elif isinstance(expression, MethodCall) and expression.method.namespace == STRING_NAMESPACE:
            receiver = self.translate_scalar(expression.arguments[0], row_bindings)
            affix = self._get_constant_value(expression.arguments[1])
            # None neither starts nor ends with anything.
            if expression.method.name == "startswith":
                return and_(receiver.is_not(None), receiver.startswith(affix))
            elif expression.method.name == "endswith":
                return and_(receiver.is_not(None), receiver.endswith(affix))
        elif isinstance(expression, Parameter):
            raise QueryTranslationError(
                "Query references parameter {} directly. Translated query trees may only contain "
                "constants and the columns of their rows.".format(expression.name)
            )

        raise QueryTranslationError("Cannot translate scalar expression: {}".format(expression))

    def translate_condition(
        self, expression: QueryExpression, row_bindings: Dict[Parameter, FromClause]
    ) -> Any:
        """Translate an operand of a logical operator, treating NULL as false like Python's None."""
        condition = self.translate_scalar(expression, row_bindings)
        if _is_never_null(expression):
            return condition
        return func.coalesce(condition, false())


def translate_to_sql(
    query: Lambda,
    tables: Mapping[str, FromClause],
    resolution_kind: ResolutionKind = ResolutionKind.TO_LIST,
) -> Select:
    """Translate a closed (context, base) -> result query tree into a SELECT statement.

    Args:
        query: query tree produced by calling a CompiledFieldQuery
        tables: collection name -> SQLAlchemy table (or other selectable) holding its rows
        resolution_kind: the reduction the field applies after fetching. FIRST and
                         FIRST_OR_DEFAULT fetch at most one row.

    Returns:
        SQLAlchemy Select statement
    """
    translator = _SqlTranslator(tables, query.parameters)
    body = query.body

    if resolution_kind == ResolutionKind.UNMODIFIED:
        if (
            isinstance(body, MethodCall)
            and body.method.namespace == QUERYABLE_NAMESPACE
            and body.method.name == "count"
        ):
            counted = translator.translate_sequence(body.arguments[0]).statement.subquery()
            return select(func.count()).select_from(counted)
        raise QueryTranslationError(
            "Only count() can be translated for fields without resolution, got: {}".format(body)
        )

    state = translator.translate_sequence(body)
    if resolution_kind in {ResolutionKind.FIRST, ResolutionKind.FIRST_OR_DEFAULT}:
        state = state.as_filterable()
        state.statement = state.statement.limit(1)
    return state.statement


def translate_field_query(
    descriptor: FieldDescriptor, args: Any, tables: Mapping[str, FromClause]
) -> Select:
    """Build the field's query tree for the given arguments, and translate it into SQL."""
    return translate_to_sql(descriptor.compiled_query(args), tables, descriptor.resolution_kind)

