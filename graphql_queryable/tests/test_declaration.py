# Copyright 2021-present Kensho Technologies, LLC.
from typing import Any
import unittest

from ..declaration import QueryBuilder, as_query_tree, trace_query
from ..exceptions import QueryDeclarationError
from ..query_tree import (
    ENUMERABLE_NAMESPACE,
    QUERYABLE_NAMESPACE,
    STRING_NAMESPACE,
    BinaryOperation,
    Constant,
    Lambda,
    MemberAccess,
    MethodCall,
    Parameter,
    QueryMethod,
    UnaryOperation,
    are_trees_equivalent,
    make_queryable_call,
)
from ..typedefs import Queryable
from .test_helpers import Animal, ZooContext, animals_of


class DeclarationTests(unittest.TestCase):
    def test_trace_filter_query(self) -> None:
        query = trace_query(
            lambda db: db.animals.where(lambda animal: animal.net_worth > 15), [ZooContext]
        )

        db = Parameter("db", ZooContext)
        animal = Parameter("animal", Animal)
        expected = Lambda(
            [db],
            make_queryable_call(
                "where",
                animals_of(db),
                Lambda(
                    [animal],
                    BinaryOperation(">", MemberAccess(animal, "net_worth"), Constant(15)),
                ),
            ),
        )
        self.assertTrue(are_trees_equivalent(expected, query))
        self.assertEqual(("db",), tuple(parameter.name for parameter in query.parameters))
        self.assertEqual(Queryable[Animal], query.result_type)

    def test_trace_query_with_arguments(self) -> None:
        query = trace_query(
            lambda db, args: db.animals.first(lambda animal: animal.id == args.id),
            [ZooContext, dict],
        )

        db, args = query.parameters
        self.assertEqual(dict, args.parameter_type)
        self.assertIsInstance(query.body, MethodCall)
        self.assertEqual(QueryMethod(QUERYABLE_NAMESPACE, "first"), query.body.method)
        self.assertEqual(Animal, query.result_type)

        predicate = query.body.arguments[1]
        self.assertIsInstance(predicate, Lambda)
        self.assertIsInstance(predicate.body.right, MemberAccess)
        self.assertIs(args, predicate.body.right.target)
        self.assertEqual(Any, predicate.body.right.result_type)

    def test_captured_python_values_become_constants(self) -> None:
        threshold = 25
        query = trace_query(
            lambda db: db.animals.where(lambda animal: animal.net_worth > threshold).take(2),
            [ZooContext],
        )

        self.assertEqual("take", query.body.method.name)
        self.assertEqual(Constant(2), query.body.arguments[1])
        predicate = query.body.arguments[0].arguments[1]
        self.assertEqual(Constant(25), predicate.body.right)

    def test_operators(self) -> None:
        predicate = trace_query(
            lambda animal: ~(animal.species == "Lion") & (1 + animal.net_worth * 2 >= -animal.id)
            | animal.name.startswith("A"),
            [Animal],
        )

        body = predicate.body
        self.assertEqual("||", body.operator)
        conjunction = body.left
        self.assertEqual("&&", conjunction.operator)
        self.assertIsInstance(conjunction.left, UnaryOperation)
        self.assertEqual("!", conjunction.left.operator)

        comparison = conjunction.right
        self.assertEqual(">=", comparison.operator)
        self.assertEqual("+", comparison.left.operator)
        self.assertEqual(Constant(1), comparison.left.left)
        self.assertEqual("*", comparison.left.right.operator)
        negated_id = UnaryOperation("-", MemberAccess(predicate.parameters[0], "id"))
        self.assertEqual(negated_id, comparison.right)

        starts_with = body.right
        self.assertEqual(
            QueryMethod(STRING_NAMESPACE, "startswith", is_static=False), starts_with.method
        )
        self.assertEqual(bool, starts_with.result_type)

    def test_subscript_member_access(self) -> None:
        query = trace_query(lambda db: db["animals"].count(), [ZooContext])
        self.assertEqual(make_queryable_call("count", animals_of(query.parameters[0])), query.body)

    def test_as_enumerable_switches_namespace(self) -> None:
        query = trace_query(lambda db: db.animals.as_enumerable().first(), [ZooContext])

        self.assertEqual(ENUMERABLE_NAMESPACE, query.body.method.namespace)
        self.assertEqual(Animal, query.result_type)

    def test_python_boolean_logic_is_rejected(self) -> None:
        with self.assertRaises(QueryDeclarationError):
            trace_query(
                lambda db: db.animals.where(lambda a: a.net_worth > 1 and a.net_worth < 5),
                [ZooContext],
            )
        with self.assertRaises(QueryDeclarationError):
            trace_query(lambda db: [animal for animal in db.animals], [ZooContext])

    def test_sequence_methods_on_non_sequences_are_rejected(self) -> None:
        with self.assertRaises(QueryDeclarationError):
            trace_query(lambda animal: animal.name.count(), [Animal])

    def test_unknown_member_is_rejected(self) -> None:
        with self.assertRaises(QueryDeclarationError):
            trace_query(lambda db: db.plants, [ZooContext])

    def test_parameter_count_mismatch(self) -> None:
        with self.assertRaises(QueryDeclarationError):
            trace_query(lambda db: db.animals, [ZooContext, dict])
        with self.assertRaises(QueryDeclarationError):
            as_query_tree(lambda db, args: db.animals, [ZooContext])

    def test_as_query_tree(self) -> None:
        db = Parameter("db", ZooContext)
        tree = Lambda([db], animals_of(db))
        self.assertIs(tree, as_query_tree(tree, [ZooContext]))

        with self.assertRaises(QueryDeclarationError):
            as_query_tree(tree, [ZooContext, dict])
        with self.assertRaises(QueryDeclarationError):
            as_query_tree("db.animals", [ZooContext])  # type: ignore[arg-type]

    def test_query_builder_is_not_hashable(self) -> None:
        builder = QueryBuilder(Parameter("db", ZooContext))
        with self.assertRaises(TypeError):
            hash(builder)
