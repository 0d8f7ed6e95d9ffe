# Copyright 2021-present Kensho Technologies, LLC.
"""Immutable query tree nodes, and the visitor helpers used to analyze and rewrite them."""
from abc import ABCMeta, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Sequence, Set, Tuple, Type, Union

from .typedefs import (
    Enumerable,
    Queryable,
    get_element_type,
    get_member_type,
    is_queryable_type,
    is_sequence_type,
)


# Namespaces of the methods that may appear in a MethodCall node.
QUERYABLE_NAMESPACE = "queryable"  # deferred operations a data-access provider can translate
ENUMERABLE_NAMESPACE = "enumerable"  # in-memory operations evaluated by Python code
STRING_NAMESPACE = "str"

SEQUENCE_NAMESPACES = frozenset({QUERYABLE_NAMESPACE, ENUMERABLE_NAMESPACE})

# Sequence methods whose optional second argument is a single-parameter lambda.
LAMBDA_ARGUMENT_METHODS = frozenset({"where", "select", "order_by", "first", "first_or_default"})


class QueryExpression(metaclass=ABCMeta):
    """An abstract, immutable node of a query tree that produces a value of a known type."""

    __slots__ = ("_print_args", "_print_kwargs")

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        """Construct a new QueryExpression."""
        self._print_args = args
        self._print_kwargs = kwargs

    @property
    @abstractmethod
    def result_type(self) -> Any:
        """Return the type of the value this expression produces."""
        raise NotImplementedError()

    @abstractmethod
    def validate(self) -> None:
        """Ensure that the QueryExpression is valid."""
        raise NotImplementedError()

    def visit_and_update(
        self, visitor_fn: Callable[["QueryExpression"], "QueryExpression"]
    ) -> "QueryExpression":
        """Create an updated version (if needed) of the QueryExpression via the visitor pattern.

        Args:
            visitor_fn: function that takes a QueryExpression argument, and returns one.
                        This function is recursively called on all child expressions that may
                        exist within this expression. If the visitor_fn does not return the
                        exact same object that was passed in, this is interpreted as an update
                        request, and the visit_and_update() method will return a new expression
                        with the given update applied. No expressions are mutated in-place.

        Returns:
            - If the visitor_fn does not request any updates (by always returning the exact same
              object it was called with), this method returns 'self'.
            - Otherwise, this method returns a new QueryExpression object that reflects the
              updates requested by the visitor_fn.
        """
        # Leaf expressions simply visit themselves.
        # Any expressions that contain expressions will override this method.
        return visitor_fn(self)

    def __str__(self) -> str:
        """Return a human-readable representation of this QueryExpression."""
        printed_args = []
        if self._print_args:
            printed_args.append("{args}")
        if self._print_kwargs:
            printed_args.append("{kwargs}")

        template = "{cls_name}(" + ", ".join(printed_args) + ")"
        return template.format(
            cls_name=type(self).__name__, args=self._print_args, kwargs=self._print_kwargs
        )

    def __repr__(self) -> str:
        """Return a human-readable str representation of the QueryExpression object."""
        return self.__str__()

    # pylint: disable=protected-access
    def __eq__(self, other: Any) -> bool:
        """Return True if the QueryExpression objects are equal, and False otherwise."""
        if type(self) != type(other):
            return False

        return (
            self._print_args == other._print_args and self._print_kwargs == other._print_kwargs
        )

    # pylint: enable=protected-access

    def __ne__(self, other: Any) -> bool:
        """Check another object for non-equality against this one."""
        return not self.__eq__(other)

    __hash__ = None  # type: ignore[assignment]


def _validate_expression_args(owner: QueryExpression, *expressions: Any) -> None:
    """Raise TypeError if any of the given values is not a QueryExpression."""
    for expression in expressions:
        if not isinstance(expression, QueryExpression):
            raise TypeError(
                "Expected QueryExpression, got: {} {} in {}".format(
                    type(expression).__name__, expression, type(owner).__name__
                )
            )


class Parameter(QueryExpression):
    """A parameter of a Lambda, referenced by identity rather than by name.

    Two Parameter objects with the same name and type are still different parameters. This makes
    substitution safe: replacing one parameter can never capture an unrelated same-named one.
    """

    __slots__ = ("name", "parameter_type")

    def __init__(self, name: str, parameter_type: Any) -> None:
        """Construct a new Parameter with the given name and type."""
        super(Parameter, self).__init__(name, parameter_type)
        self.name = name
        self.parameter_type = parameter_type
        self.validate()

    @property
    def result_type(self) -> Any:
        """Return the type of the parameter."""
        return self.parameter_type

    def validate(self) -> None:
        """Validate that the Parameter is correctly representable."""
        if not isinstance(self.name, str) or not self.name.isidentifier():
            raise ValueError("Expected identifier parameter name, got: {}".format(self.name))

    def __str__(self) -> str:
        """Return the name of the parameter."""
        return "Parameter({})".format(self.name)

    def __eq__(self, other: Any) -> bool:
        """Return True only if the other object is this exact parameter."""
        return self is other

    def __hash__(self) -> int:
        """Hash the parameter by identity, consistently with equality."""
        return id(self)


class Constant(QueryExpression):
    """A value embedded into the query tree as data, such as a bound argument value."""

    __slots__ = ("value", "value_type")

    def __init__(self, value: Any, value_type: Any = None) -> None:
        """Construct a new Constant holding the given value.

        Args:
            value: the embedded value
            value_type: the declared type of the value. Defaults to the runtime type of the value,
                        or Any for None.
        """
        if value_type is None:
            value_type = Any if value is None else type(value)
        super(Constant, self).__init__(value, value_type)
        self.value = value
        self.value_type = value_type
        self.validate()

    @property
    def result_type(self) -> Any:
        """Return the type of the embedded value."""
        return self.value_type

    def validate(self) -> None:
        """Validate that the Constant holds plain data, not a query tree."""
        if isinstance(self.value, QueryExpression):
            raise TypeError(
                "Query trees cannot be embedded as constant data: {}".format(self.value)
            )


NullConstant = Constant(None)


class MemberAccess(QueryExpression):
    """Access to a named member of a value, e.g. a collection of a context or a field of a row."""

    __slots__ = ("target", "member_name", "member_type")

    def __init__(
        self, target: QueryExpression, member_name: str, member_type: Any = None
    ) -> None:
        """Construct a new MemberAccess of the given member of the target expression.

        Args:
            target: expression producing the value whose member is read
            member_name: name of the member
            member_type: type of the member. If omitted, it is looked up in the type annotations
                         of the target's type.
        """
        if member_type is None and isinstance(target, QueryExpression):
            member_type = get_member_type(target.result_type, member_name)
        super(MemberAccess, self).__init__(target, member_name, member_type)
        self.target = target
        self.member_name = member_name
        self.member_type = member_type
        self.validate()

    @property
    def result_type(self) -> Any:
        """Return the type of the member."""
        return self.member_type

    def validate(self) -> None:
        """Validate that the MemberAccess is correctly representable."""
        _validate_expression_args(self, self.target)
        if not isinstance(self.member_name, str) or not self.member_name:
            raise ValueError("Expected non-empty member name, got: {}".format(self.member_name))

    def visit_and_update(
        self, visitor_fn: Callable[[QueryExpression], QueryExpression]
    ) -> QueryExpression:
        """Create an updated version (if needed) of MemberAccess via the visitor pattern."""
        new_target = self.target.visit_and_update(visitor_fn)

        if new_target is not self.target:
            return visitor_fn(MemberAccess(new_target, self.member_name, self.member_type))
        else:
            return visitor_fn(self)


class UnaryOperation(QueryExpression):
    """An operator applied to a single expression."""

    SUPPORTED_OPERATORS = frozenset({"!", "-"})

    __slots__ = ("operator", "operand")

    def __init__(self, operator: str, operand: QueryExpression) -> None:
        """Construct a new UnaryOperation applying the operator to the operand."""
        super(UnaryOperation, self).__init__(operator, operand)
        self.operator = operator
        self.operand = operand
        self.validate()

    @property
    def result_type(self) -> Any:
        """Return bool for negation, and the operand's type otherwise."""
        if self.operator == "!":
            return bool
        return self.operand.result_type

    def validate(self) -> None:
        """Validate that the UnaryOperation is correctly representable."""
        _validate_operator_name(self.operator, UnaryOperation.SUPPORTED_OPERATORS)
        _validate_expression_args(self, self.operand)

    def visit_and_update(
        self, visitor_fn: Callable[[QueryExpression], QueryExpression]
    ) -> QueryExpression:
        """Create an updated version (if needed) of UnaryOperation via the visitor pattern."""
        new_operand = self.operand.visit_and_update(visitor_fn)

        if new_operand is not self.operand:
            return visitor_fn(UnaryOperation(self.operator, new_operand))
        else:
            return visitor_fn(self)


class BinaryOperation(QueryExpression):
    """An expression created by composing two expressions with an operator."""

    COMPARISON_OPERATORS = frozenset({"=", "!=", ">=", "<=", ">", "<"})
    LOGICAL_OPERATORS = frozenset({"&&", "||"})
    ARITHMETIC_OPERATORS = frozenset({"+", "-", "*"})
    SUPPORTED_OPERATORS = COMPARISON_OPERATORS | LOGICAL_OPERATORS | ARITHMETIC_OPERATORS

    __slots__ = ("operator", "left", "right")

    def __init__(self, operator: str, left: QueryExpression, right: QueryExpression) -> None:
        """Construct an expression that connects two expressions with an operator.

        Args:
            operator: str, one of SUPPORTED_OPERATORS
            left: QueryExpression on the left side of the binary operator
            right: QueryExpression on the right side of the binary operator
        """
        super(BinaryOperation, self).__init__(operator, left, right)
        self.operator = operator
        self.left = left
        self.right = right
        self.validate()

    @property
    def result_type(self) -> Any:
        """Return bool for comparisons and logical operators, and the left type otherwise."""
        if self.operator in BinaryOperation.ARITHMETIC_OPERATORS:
            return self.left.result_type
        return bool

    def validate(self) -> None:
        """Validate that the BinaryOperation is correctly representable."""
        _validate_operator_name(self.operator, BinaryOperation.SUPPORTED_OPERATORS)
        _validate_expression_args(self, self.left, self.right)

    def visit_and_update(
        self, visitor_fn: Callable[[QueryExpression], QueryExpression]
    ) -> QueryExpression:
        """Create an updated version (if needed) of BinaryOperation via the visitor pattern."""
        new_left = self.left.visit_and_update(visitor_fn)
        new_right = self.right.visit_and_update(visitor_fn)

        if new_left is not self.left or new_right is not self.right:
            return visitor_fn(BinaryOperation(self.operator, new_left, new_right))
        else:
            return visitor_fn(self)


class Convert(QueryExpression):
    """A conversion of an expression's value to a declared result type."""

    __slots__ = ("operand", "target_type")

    def __init__(self, operand: QueryExpression, target_type: Any) -> None:
        """Construct a new Convert of the operand to the target type."""
        super(Convert, self).__init__(operand, target_type)
        self.operand = operand
        self.target_type = target_type
        self.validate()

    @property
    def result_type(self) -> Any:
        """Return the target type of the conversion."""
        return self.target_type

    def validate(self) -> None:
        """Validate that the Convert is correctly representable."""
        _validate_expression_args(self, self.operand)

    def visit_and_update(
        self, visitor_fn: Callable[[QueryExpression], QueryExpression]
    ) -> QueryExpression:
        """Create an updated version (if needed) of Convert via the visitor pattern."""
        new_operand = self.operand.visit_and_update(visitor_fn)

        if new_operand is not self.operand:
            return visitor_fn(Convert(new_operand, self.target_type))
        else:
            return visitor_fn(self)


@dataclass(frozen=True)
class QueryMethod:
    """Identifies a method that a MethodCall node invokes."""

    namespace: str  # which API declares the method, e.g. QUERYABLE_NAMESPACE
    name: str
    is_static: bool = True  # static methods take their source sequence as the first argument


class Lambda(QueryExpression):
    """A function expression with explicitly declared parameters."""

    __slots__ = ("parameters", "body")

    def __init__(self, parameters: Sequence[Parameter], body: QueryExpression) -> None:
        """Construct a new Lambda with the given parameters and body."""
        parameters = tuple(parameters)
        super(Lambda, self).__init__(parameters, body)
        self.parameters = parameters
        self.body = body
        self.validate()

    @property
    def result_type(self) -> Any:
        """Return the type produced by the lambda's body."""
        return self.body.result_type

    def validate(self) -> None:
        """Validate that the Lambda is correctly representable."""
        _validate_expression_args(self, self.body)
        for parameter in self.parameters:
            if not isinstance(parameter, Parameter):
                raise TypeError(
                    "Expected Parameter, got: {} {}".format(type(parameter).__name__, parameter)
                )
        if len(set(self.parameters)) != len(self.parameters):
            raise ValueError("Lambda declares the same parameter twice: {}".format(self))

    def visit_and_update(
        self, visitor_fn: Callable[[QueryExpression], QueryExpression]
    ) -> QueryExpression:
        """Create an updated version (if needed) of Lambda via the visitor pattern.

        The declared parameters are not visited: rebinding them requires building a new Lambda.
        """
        new_body = self.body.visit_and_update(visitor_fn)

        if new_body is not self.body:
            return visitor_fn(Lambda(self.parameters, new_body))
        else:
            return visitor_fn(self)


class MethodCall(QueryExpression):
    """An invocation of a sequence operation or an instance method."""

    __slots__ = ("method", "arguments", "return_type")

    def __init__(
        self,
        method: QueryMethod,
        arguments: Sequence[QueryExpression],
        return_type: Any = None,
    ) -> None:
        """Construct a new MethodCall.

        Args:
            method: QueryMethod being invoked
            arguments: argument expressions. For static methods the first argument is the source
                       sequence, for instance methods it is the receiver.
            return_type: the type produced by the call. If omitted, it is inferred from the method
                         and the types of its arguments.
        """
        arguments = tuple(arguments)
        if return_type is None:
            return_type = infer_method_return_type(method, arguments)
        super(MethodCall, self).__init__(method, arguments, return_type)
        self.method = method
        self.arguments = arguments
        self.return_type = return_type
        self.validate()

    @property
    def result_type(self) -> Any:
        """Return the type produced by the call."""
        return self.return_type

    def validate(self) -> None:
        """Validate that the MethodCall is correctly representable."""
        if not isinstance(self.method, QueryMethod):
            raise TypeError(
                "Expected QueryMethod, got: {} {}".format(type(self.method).__name__, self.method)
            )
        if not self.arguments:
            raise ValueError("Expected at least one argument for method call: {}".format(self))
        _validate_expression_args(self, *self.arguments)

        if self.method.namespace not in SEQUENCE_NAMESPACES or not self.method.is_static:
            return

        source = self.arguments[0]
        if not is_sequence_type(source.result_type):
            raise TypeError(
                "Sequence method {} applied to non-sequence source of type {}: {}".format(
                    self.method.name, source.result_type, source
                )
            )
        if self.method.name in LAMBDA_ARGUMENT_METHODS and len(self.arguments) > 1:
            selector = self.arguments[1]
            if not isinstance(selector, Lambda) or len(selector.parameters) != 1:
                raise TypeError(
                    "Method {} expects a single-parameter Lambda, got: {}".format(
                        self.method.name, selector
                    )
                )

    def visit_and_update(
        self, visitor_fn: Callable[[QueryExpression], QueryExpression]
    ) -> QueryExpression:
        """Create an updated version (if needed) of MethodCall via the visitor pattern."""
        new_arguments = tuple(argument.visit_and_update(visitor_fn) for argument in self.arguments)

        if any(new is not old for new, old in zip(new_arguments, self.arguments)):
            return visitor_fn(MethodCall(self.method, new_arguments, self.return_type))
        else:
            return visitor_fn(self)


def _validate_operator_name(operator: str, supported_operators: Set[str]) -> None:
    """Ensure the named operator is valid and supported."""
    if not isinstance(operator, str):
        raise TypeError(
            "Expected operator as string, got: {} {}".format(type(operator).__name__, operator)
        )

    if operator not in supported_operators:
        raise ValueError("Unrecognized operator: {}".format(operator))


def infer_method_return_type(method: QueryMethod, arguments: Tuple[QueryExpression, ...]) -> Any:
    """Return the type produced by invoking the given method with the given arguments."""
    if method.namespace == STRING_NAMESPACE and method.name in {"startswith", "endswith"}:
        return bool

    if method.namespace not in SEQUENCE_NAMESPACES or not arguments:
        raise ValueError(
            "Cannot infer the return type of method {}, please provide it explicitly.".format(
                method
            )
        )

    if not isinstance(arguments[0], QueryExpression):
        raise TypeError("Expected QueryExpression source, got: {}".format(arguments[0]))

    source_type = arguments[0].result_type
    element_type = get_element_type(source_type)
    sequence_origin = Queryable if is_queryable_type(source_type) else Enumerable

    if method.name in {"where", "order_by", "take", "skip"}:
        return source_type
    elif method.name in {"first", "first_or_default"}:
        return element_type
    elif method.name == "count":
        return int
    elif method.name == "select" and len(arguments) == 2:
        return sequence_origin[arguments[1].result_type]
    elif method.name == "as_enumerable":
        return Enumerable[element_type]
    elif method.name == "to_list":
        return List[element_type]

    raise ValueError(
        "Cannot infer the return type of method {}, please provide it explicitly.".format(method)
    )


def make_queryable_call(name: str, *arguments: QueryExpression) -> MethodCall:
    """Return a call to the named static method of the queryable sequence API."""
    return MethodCall(QueryMethod(QUERYABLE_NAMESPACE, name), arguments)


def make_replacement_visitor(
    find_expression: QueryExpression, replace_expression: QueryExpression
) -> Callable[[QueryExpression], QueryExpression]:
    """Return a visitor function that replaces every instance of one expression with another one."""

    def visitor_fn(expression: QueryExpression) -> QueryExpression:
        """Return the replacement if this expression matches the expression we're looking for."""
        if expression == find_expression:
            return replace_expression
        else:
            return expression

    return visitor_fn


def make_type_replacement_visitor(
    find_types: Union[Type[QueryExpression], Tuple[Type[QueryExpression], ...]],
    replacement_func: Callable[[Any], QueryExpression],
) -> Callable[[QueryExpression], QueryExpression]:
    """Return a visitor function that replaces expressions of a given type with new expressions."""

    def visitor_fn(expression: QueryExpression) -> QueryExpression:
        """Return a replacement expression if the original expression is of the correct type."""
        if isinstance(expression, find_types):
            return replacement_func(expression)
        else:
            return expression

    return visitor_fn


def substitute_parameters(
    expression: QueryExpression, replacements: Dict[Parameter, QueryExpression]
) -> QueryExpression:
    """Return the expression with each given parameter replaced, matching parameters by identity."""

    def replace_parameter(parameter: Parameter) -> QueryExpression:
        return replacements.get(parameter, parameter)

    return expression.visit_and_update(
        make_type_replacement_visitor(Parameter, replace_parameter)
    )


def get_free_parameters(expression: QueryExpression) -> List[Parameter]:
    """Return the parameters referenced by the expression but not declared by a Lambda inside it.

    Parameters are returned in order of first reference, without duplicates.
    """
    free_parameters: List[Parameter] = []
    _collect_free_parameters(expression, frozenset(), free_parameters)
    return free_parameters


def _collect_free_parameters(
    expression: QueryExpression, bound: FrozenSet[Parameter], free_parameters: List[Parameter]
) -> None:
    """Append the free parameters of the expression to free_parameters, given the bound ones."""
    if isinstance(expression, Parameter):
        if expression not in bound and expression not in free_parameters:
            free_parameters.append(expression)
    elif isinstance(expression, Lambda):
        inner_bound = bound | frozenset(expression.parameters)
        _collect_free_parameters(expression.body, inner_bound, free_parameters)
    else:
        for child in get_child_expressions(expression):
            _collect_free_parameters(child, bound, free_parameters)


def get_child_expressions(expression: QueryExpression) -> Tuple[QueryExpression, ...]:
    """Return the direct child expressions of the given expression, in evaluation order."""
    if isinstance(expression, MemberAccess):
        return (expression.target,)
    elif isinstance(expression, (UnaryOperation, Convert)):
        return (expression.operand,)
    elif isinstance(expression, BinaryOperation):
        return (expression.left, expression.right)
    elif isinstance(expression, MethodCall):
        return expression.arguments
    elif isinstance(expression, Lambda):
        return (expression.body,)
    elif isinstance(expression, (Parameter, Constant)):
        return ()

    raise AssertionError("Unreachable code reached: unknown expression {}".format(expression))


def are_trees_equivalent(
    left: QueryExpression,
    right: QueryExpression,
    parameter_mapping: Optional[Dict[Parameter, Parameter]] = None,
) -> bool:
    """Return True if the two trees are equal up to a consistent renaming of Lambda parameters.

    Parameters declared by corresponding Lambdas are matched by position. Parameters that are free
    in both trees are only equivalent to themselves.
    """
    if parameter_mapping is None:
        parameter_mapping = {}

    if type(left) != type(right):
        return False

    if isinstance(left, Parameter):
        return parameter_mapping.get(left, left) is right
    elif isinstance(left, Constant):
        return left.value == right.value and left.value_type == right.value_type
    elif isinstance(left, Lambda):
        if len(left.parameters) != len(right.parameters):
            return False
        if any(
            left_param.parameter_type != right_param.parameter_type
            for left_param, right_param in zip(left.parameters, right.parameters)
        ):
            return False
        inner_mapping = dict(parameter_mapping)
        inner_mapping.update(zip(left.parameters, right.parameters))
        return are_trees_equivalent(left.body, right.body, inner_mapping)

    if isinstance(left, MemberAccess):
        same_node = (
            left.member_name == right.member_name and left.member_type == right.member_type
        )
    elif isinstance(left, (UnaryOperation, BinaryOperation)):
        same_node = left.operator == right.operator
    elif isinstance(left, Convert):
        same_node = left.target_type == right.target_type
    elif isinstance(left, MethodCall):
        same_node = left.method == right.method and left.return_type == right.return_type
    else:
        raise AssertionError("Unreachable code reached: unknown expression {}".format(left))

    left_children = get_child_expressions(left)
    right_children = get_child_expressions(right)
    return (
        same_node
        and len(left_children) == len(right_children)
        and all(
            are_trees_equivalent(left_child, right_child, parameter_mapping)
            for left_child, right_child in zip(left_children, right_children)
        )
    )
