# Copyright 2021-present Kensho Technologies, LLC.
from typing import Any, Iterable, List
import unittest

from ..query_tree import (
    ENUMERABLE_NAMESPACE,
    QUERYABLE_NAMESPACE,
    BinaryOperation,
    Constant,
    Convert,
    Lambda,
    MemberAccess,
    MethodCall,
    Parameter,
    QueryMethod,
    UnaryOperation,
    are_trees_equivalent,
    get_free_parameters,
    make_queryable_call,
    make_replacement_visitor,
    substitute_parameters,
)
from ..typedefs import Enumerable, Queryable
from .test_helpers import Animal, ZooContext, animals_of, make_context_parameter


def _make_id_predicate(value: Any) -> Lambda:
    animal = Parameter("animal", Animal)
    return Lambda([animal], BinaryOperation("=", MemberAccess(animal, "id"), Constant(value)))


class QueryTreeTests(unittest.TestCase):
    def test_parameters_are_compared_by_identity(self) -> None:
        first = Parameter("x", int)
        second = Parameter("x", int)

        self.assertEqual(first, first)
        self.assertNotEqual(first, second)
        self.assertEqual(2, len({first, second}))

    def test_invalid_parameter_name(self) -> None:
        with self.assertRaises(ValueError):
            Parameter("not an identifier", int)

    def test_constant_types(self) -> None:
        self.assertEqual(int, Constant(5).result_type)
        self.assertEqual(Any, Constant(None).result_type)
        self.assertEqual(dict, Constant({"id": 5}, dict).result_type)

        with self.assertRaises(TypeError):
            Constant(Constant(5))

    def test_member_access_type_lookup(self) -> None:
        db = make_context_parameter()
        animals = animals_of(db)
        self.assertEqual(Queryable[Animal], animals.result_type)

        animal = Parameter("animal", Animal)
        self.assertEqual(int, MemberAccess(animal, "net_worth").result_type)

        # Mappings and untyped values have members of unknown type.
        self.assertEqual(Any, MemberAccess(Parameter("args", dict), "id").result_type)

        with self.assertRaises(TypeError):
            MemberAccess("not an expression", "id")  # type: ignore[arg-type]

    def test_operation_validation(self) -> None:
        value = Constant(5)
        with self.assertRaises(ValueError):
            BinaryOperation("%", value, value)
        with self.assertRaises(ValueError):
            UnaryOperation("~", value)
        with self.assertRaises(TypeError):
            BinaryOperation("=", value, 5)  # type: ignore[arg-type]

        self.assertEqual(bool, BinaryOperation("<", value, value).result_type)
        self.assertEqual(bool, BinaryOperation("&&", value, value).result_type)
        self.assertEqual(int, BinaryOperation("+", value, value).result_type)
        self.assertEqual(bool, UnaryOperation("!", value).result_type)
        self.assertEqual(int, UnaryOperation("-", value).result_type)

    def test_lambda_validation(self) -> None:
        x = Parameter("x", int)
        with self.assertRaises(ValueError):
            Lambda([x, x], x)
        with self.assertRaises(TypeError):
            Lambda(["x"], x)  # type: ignore[list-item]

    def test_method_call_return_types(self) -> None:
        db = make_context_parameter()
        animals = animals_of(db)
        predicate = _make_id_predicate(5)

        filtered = make_queryable_call("where", animals, predicate)
        self.assertEqual(Queryable[Animal], filtered.result_type)
        self.assertEqual(Animal, make_queryable_call("first", animals).result_type)
        self.assertEqual(Animal, make_queryable_call("first", animals, predicate).result_type)
        self.assertEqual(int, make_queryable_call("count", animals).result_type)

        animal = Parameter("animal", Animal)
        selector = Lambda([animal], MemberAccess(animal, "name"))
        names = make_queryable_call("select", animals, selector)
        self.assertEqual(Queryable[str], names.result_type)

        in_memory = MethodCall(QueryMethod(ENUMERABLE_NAMESPACE, "as_enumerable"), [animals])
        self.assertEqual(Enumerable[Animal], in_memory.result_type)
        to_list = MethodCall(QueryMethod(ENUMERABLE_NAMESPACE, "to_list"), [animals])
        self.assertEqual(List[Animal], to_list.result_type)

        with self.assertRaises(ValueError):
            make_queryable_call("group_by", animals)

    def test_method_call_validation(self) -> None:
        db = make_context_parameter()

        # Sequence methods need a sequence source.
        with self.assertRaises(TypeError):
            MethodCall(QueryMethod(QUERYABLE_NAMESPACE, "count"), [db], int)

        # Predicates must be single-parameter lambdas.
        with self.assertRaises(TypeError):
            make_queryable_call("where", animals_of(db), Constant(True))
        x = Parameter("x", Animal)
        y = Parameter("y", Animal)
        with self.assertRaises(TypeError):
            make_queryable_call("where", animals_of(db), Lambda([x, y], Constant(True)))

        with self.assertRaises(ValueError):
            MethodCall(QueryMethod(QUERYABLE_NAMESPACE, "count"), [], int)

    def test_structural_equality(self) -> None:
        db = make_context_parameter()
        self.assertEqual(MemberAccess(db, "animals"), MemberAccess(db, "animals"))
        self.assertNotEqual(MemberAccess(db, "animals"), MemberAccess(db, "species"))

        # Equal-looking trees over different parameters are not equal.
        other_db = make_context_parameter()
        self.assertNotEqual(MemberAccess(db, "animals"), MemberAccess(other_db, "animals"))

    def test_visit_and_update_without_changes_returns_self(self) -> None:
        db = make_context_parameter()
        query = Lambda([db], make_queryable_call("where", animals_of(db), _make_id_predicate(5)))

        self.assertIs(query, query.visit_and_update(lambda expression: expression))

    def test_replacement_visitor(self) -> None:
        db = make_context_parameter()
        query = Lambda([db], make_queryable_call("where", animals_of(db), _make_id_predicate(5)))

        updated = query.visit_and_update(make_replacement_visitor(Constant(5), Constant(7)))
        expected = Lambda(
            [db], make_queryable_call("where", animals_of(db), _make_id_predicate(7))
        )
        self.assertIsNot(query, updated)
        self.assertTrue(are_trees_equivalent(expected, updated))
        self.assertFalse(are_trees_equivalent(query, updated))

    def test_substitution_matches_parameters_by_identity(self) -> None:
        outer = Parameter("x", int)
        inner = Parameter("x", int)
        body = BinaryOperation("+", outer, inner)

        substituted = substitute_parameters(body, {outer: Constant(1)})

        self.assertIsInstance(substituted, BinaryOperation)
        self.assertEqual(Constant(1), substituted.left)
        self.assertIs(inner, substituted.right)

    def test_free_parameters(self) -> None:
        db = make_context_parameter()
        args = Parameter("args", dict)
        animal = Parameter("animal", Animal)
        predicate = Lambda(
            [animal],
            BinaryOperation("=", MemberAccess(animal, "id"), MemberAccess(args, "id")),
        )
        body = make_queryable_call("where", animals_of(db), predicate)

        self.assertEqual([db, args], get_free_parameters(body))
        self.assertEqual([args], get_free_parameters(Lambda([db], body)))
        self.assertEqual([], get_free_parameters(Lambda([db, args], body)))

    def test_alpha_equivalence(self) -> None:
        first_db = make_context_parameter()
        second_db = make_context_parameter()
        first = Lambda(
            [first_db], make_queryable_call("where", animals_of(first_db), _make_id_predicate(5))
        )
        second = Lambda(
            [second_db], make_queryable_call("where", animals_of(second_db), _make_id_predicate(5))
        )
        self.assertTrue(are_trees_equivalent(first, second))

        # Free parameters are only equivalent to themselves.
        self.assertFalse(are_trees_equivalent(first.body, second.body))
        self.assertTrue(are_trees_equivalent(first.body, first.body))

        # Lambda parameters must have the same types.
        untyped = Parameter("db", Any)
        self.assertFalse(
            are_trees_equivalent(
                Lambda([first_db], Constant(1)), Lambda([untyped], Constant(1))
            )
        )

    def test_constants_compare_values_and_types(self) -> None:
        self.assertTrue(are_trees_equivalent(Constant(5), Constant(5)))
        self.assertFalse(are_trees_equivalent(Constant(5), Constant(6)))
        self.assertFalse(are_trees_equivalent(Constant(5), Constant(5, Any)))

    def test_convert(self) -> None:
        db = make_context_parameter()
        converted = Convert(animals_of(db), Iterable[Animal])
        self.assertEqual(Iterable[Animal], converted.result_type)
        self.assertFalse(are_trees_equivalent(converted, Convert(animals_of(db), List[Animal])))

    def test_str(self) -> None:
        self.assertEqual("Parameter(db)", str(Parameter("db", ZooContext)))
        self.assertEqual("Constant((5, <class 'int'>))", str(Constant(5)))
