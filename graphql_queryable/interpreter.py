# Copyright 2021-present Kensho Technologies, LLC.
"""In-memory provider: evaluate query trees against plain Python objects, and resolve fields."""
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

import funcy

from .exceptions import QueryEvaluationError
from .helpers import read_member
from .query_tree import (
    ENUMERABLE_NAMESPACE,
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
from .schema import FieldDescriptor, GraphQLSchema
from .selection import Field, Query, parse_query
from .typedefs import ResolutionKind


Bindings = Mapping[Parameter, Any]

# Define the various operators' behavior for values other than None.
# The behavior with respect to None is defined explicitly in the "apply_operator()" function.
_operator_definitions_for_non_null_values = {
    "=": lambda left, right: left == right,
    "!=": lambda left, right: left != right,
    ">": lambda left, right: left > right,
    ">=": lambda left, right: left >= right,
    "<": lambda left, right: left < right,
    "<=": lambda left, right: left <= right,
    "+": lambda left, right: left + right,
    "-": lambda left, right: left - right,
    "*": lambda left, right: left * right,
}

# Conversions that change the runtime representation of a value. Other conversions are no-ops.
_SCALAR_CONVERSIONS = frozenset({int, float, str, bool})


def apply_operator(operator: str, left_value: Any, right_value: Any) -> Any:
    """Apply a non-logical binary operator with SQL-like semantics for None values."""
    # SQL-like semantics: comparisons with "None" generally produce False unless comparing to None:
    # - None is equal to None
    # - None != <anything other than None> is True
    # - None is not greater than, nor less than, any other value
    # - arithmetic involving None produces None
    left_none = left_value is None
    right_none = right_value is None

    if operator in BinaryOperation.ARITHMETIC_OPERATORS and (left_none or right_none):
        return None
    elif left_none and right_none:
        return operator in {"=", ">=", "<="}
    elif left_none or right_none:
        return operator == "!="

    operator_handler = _operator_definitions_for_non_null_values.get(operator, None)
    if operator_handler is None:
        raise NotImplementedError(f"Operator {operator} is not currently implemented.")
    return operator_handler(left_value, right_value)


def _first(sequence: Iterable[Any]) -> Any:
    """Return the first element of the sequence, raising QueryEvaluationError if it is empty."""
    head = funcy.take(1, sequence)
    if not head:
        raise QueryEvaluationError("Sequence contains no elements.")
    return head[0]


def _evaluate_parameter(expression: Parameter, bindings: Bindings) -> Any:
    if expression not in bindings:
        raise QueryEvaluationError(
            "Parameter {} is not bound. Query trees must only reference the parameters of their "
            "enclosing lambdas.".format(expression.name)
        )
    return bindings[expression]


def _evaluate_constant(expression: Constant, bindings: Bindings) -> Any:
    return expression.value


def _evaluate_member_access(expression: MemberAccess, bindings: Bindings) -> Any:
    target_value = evaluate_expression(expression.target, bindings)
    try:
        return read_member(target_value, expression.member_name)
    except AttributeError as e:
        raise QueryEvaluationError(
            "Value {} has no member {}.".format(target_value, expression.member_name)
        ) from e


def _evaluate_unary_operation(expression: UnaryOperation, bindings: Bindings) -> Any:
    operand_value = evaluate_expression(expression.operand, bindings)
    if expression.operator == "!":
        return not operand_value
    elif expression.operator == "-":
        return None if operand_value is None else -operand_value

    raise AssertionError("Unreachable code reached: {}".format(expression))


def _evaluate_binary_operation(expression: BinaryOperation, bindings: Bindings) -> Any:
    left_value = evaluate_expression(expression.left, bindings)

    # Logical operators short-circuit, like their Python counterparts.
    if expression.operator == "&&":
        return bool(left_value) and bool(evaluate_expression(expression.right, bindings))
    elif expression.operator == "||":
        return bool(left_value) or bool(evaluate_expression(expression.right, bindings))

    right_value = evaluate_expression(expression.right, bindings)
    return apply_operator(expression.operator, left_value, right_value)


def _evaluate_convert(expression: Convert, bindings: Bindings) -> Any:
    value = evaluate_expression(expression.operand, bindings)
    if value is not None and expression.target_type in _SCALAR_CONVERSIONS:
        return expression.target_type(value)
    return value


def _evaluate_lambda(expression: Lambda, bindings: Bindings) -> Callable[..., Any]:
    def evaluate_body(*argument_values: Any) -> Any:
        if len(argument_values) != len(expression.parameters):
            raise QueryEvaluationError(
                "Expected {} argument(s) for {}, got {}.".format(
                    len(expression.parameters), expression, len(argument_values)
                )
            )
        inner_bindings = dict(bindings)
        inner_bindings.update(zip(expression.parameters, argument_values))
        return evaluate_expression(expression.body, inner_bindings)

    return evaluate_body


def _select(source: Iterable[Any], selector: Callable[[Any], Any]) -> List[Any]:
    return [selector(element) for element in source]


def _where(source: Iterable[Any], predicate: Callable[[Any], Any]) -> List[Any]:
    return [element for element in source if predicate(element)]


def _order_by(source: Iterable[Any], key: Callable[[Any], Any]) -> List[Any]:
    def sort_key(element: Any) -> Any:
        # None sorts before every other value, as in SQLite and MSSQL.
        key_value = key(element)
        return (key_value is not None, key_value)

    return sorted(source, key=sort_key)


def _first_method(source: Iterable[Any], predicate: Optional[Callable[[Any], Any]] = None) -> Any:
    return _first(source if predicate is None else filter(predicate, source))


def _first_or_default_method(
    source: Iterable[Any], predicate: Optional[Callable[[Any], Any]] = None
) -> Any:
    return funcy.first(source if predicate is None else filter(predicate, source))


# Method name -> in-memory implementation, shared by the queryable and enumerable APIs.
# Each implementation takes the evaluated arguments of the call, source sequence first.
_SEQUENCE_METHODS: Dict[str, Callable[..., Any]] = {
    "where": _where,
    "select": _select,
    "order_by": _order_by,
    "take": lambda source, count: funcy.take(count, source),
    "skip": lambda source, count: list(source)[count:],
    "first": _first_method,
    "first_or_default": _first_or_default_method,
    "count": funcy.ilen,
    "as_enumerable": list,
    "to_list": list,
}

_STRING_METHODS: Dict[str, Callable[..., Any]] = {
    "startswith": lambda receiver, prefix: receiver is not None and receiver.startswith(prefix),
    "endswith": lambda receiver, suffix: receiver is not None and receiver.endswith(suffix),
}

_METHODS_BY_NAMESPACE = {
    QUERYABLE_NAMESPACE: _SEQUENCE_METHODS,
    ENUMERABLE_NAMESPACE: _SEQUENCE_METHODS,
    STRING_NAMESPACE: _STRING_METHODS,
}


def _evaluate_method_call(expression: MethodCall, bindings: Bindings) -> Any:
    method = expression.method
    implementation = _METHODS_BY_NAMESPACE.get(method.namespace, {}).get(method.name)
    if implementation is None:
        raise QueryEvaluationError(
            "Method {} is not supported by the in-memory provider.".format(method)
        )

    argument_values = [evaluate_expression(argument, bindings) for argument in expression.arguments]
    return implementation(*argument_values)


_EXPRESSION_HANDLERS: Dict[type, Callable[[Any, Bindings], Any]] = {
    Parameter: _evaluate_parameter,
    Constant: _evaluate_constant,
    MemberAccess: _evaluate_member_access,
    UnaryOperation: _evaluate_unary_operation,
    BinaryOperation: _evaluate_binary_operation,
    Convert: _evaluate_convert,
    Lambda: _evaluate_lambda,
    MethodCall: _evaluate_method_call,
}


def evaluate_expression(expression: QueryExpression, bindings: Bindings) -> Any:
    """Evaluate the expression, with its free parameters bound to the given values."""
    handler = _EXPRESSION_HANDLERS[type(expression)]
    return handler(expression, bindings)


def evaluate_lambda(query: Lambda, *argument_values: Any) -> Any:
    """Evaluate the body of a closed query tree, with its parameters bound to the given values."""
    return _evaluate_lambda(query, {})(*argument_values)


def apply_resolution(resolution_kind: ResolutionKind, result: Any) -> Any:
    """Apply the field's post-fetch reduction to the result of its query."""
    if resolution_kind == ResolutionKind.UNMODIFIED:
        return result
    elif resolution_kind == ResolutionKind.FIRST:
        return _first(result)
    elif resolution_kind == ResolutionKind.FIRST_OR_DEFAULT:
        return funcy.first(result)
    elif resolution_kind == ResolutionKind.TO_LIST:
        return list(result)

    raise AssertionError("Unreachable code reached: {}".format(resolution_kind))


def resolve_field(descriptor: FieldDescriptor, context: Any, args: Any = None) -> Any:
    """Run the field's mutation, if any, then fetch and resolve its value from the context."""
    if descriptor.mutation is not None:
        descriptor.mutation(context, args)

    query_tree = descriptor.compiled_query(args)
    result = evaluate_lambda(query_tree, context, context)
    return apply_resolution(descriptor.resolution_kind, result)


def _project(value: Any, selected_field: Field) -> Any:
    """Keep only the selected sub-fields of the value, recursively."""
    if not selected_field.fields or value is None:
        return value

    if isinstance(value, (list, tuple)):
        return [_project(element, selected_field) for element in value]

    projected = {}
    for sub_field in selected_field.fields:
        try:
            member_value = read_member(value, sub_field.name)
        except AttributeError as e:
            raise QueryEvaluationError(
                "Field {} was selected, but {} has no such member.".format(sub_field.name, value)
            ) from e
        projected[sub_field.output_name] = _project(member_value, sub_field)
    return projected


def execute_query(
    schema: GraphQLSchema, context: Any, query: Union[str, Query]
) -> Dict[str, Any]:
    """Resolve every root field of the selection request, returning the selected data.

    Root fields are looked up in the schema, and their arguments are passed to the field's
    compiled query as a dict. Nested selections pick members of the resolved values.
    """
    if isinstance(query, str):
        query = parse_query(query)

    result = {}
    for root_field in query.fields:
        try:
            descriptor = schema.get_field(root_field.name)
        except KeyError as e:
            raise QueryEvaluationError(
                "Field {} is not defined in the schema.".format(root_field.name)
            ) from e

        value = resolve_field(descriptor, context, dict(root_field.arguments))
        result[root_field.output_name] = _project(value, root_field)
    return result
