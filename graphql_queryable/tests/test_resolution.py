# Copyright 2021-present Kensho Technologies, LLC.
import unittest

from ..declaration import trace_query
from ..exceptions import QueryDeclarationError
from ..query_tree import (
    QUERYABLE_NAMESPACE,
    Lambda,
    MethodCall,
    Parameter,
    QueryMethod,
    are_trees_equivalent,
    make_queryable_call,
)
from ..resolution import get_query_info
from ..typedefs import ResolutionKind
from .test_helpers import Animal, ZooContext, animals_of


class ResolutionTests(unittest.TestCase):
    def test_first_with_predicate_becomes_filtered_sequence(self) -> None:
        query = trace_query(
            lambda db: db.animals.first(lambda animal: animal.name == "Bob"), [ZooContext]
        )
        predicate = query.body.arguments[1]

        info = get_query_info(query)

        self.assertEqual(ResolutionKind.FIRST, info.resolution_kind)
        self.assertIs(query, info.original_query)
        db = query.parameters[0]
        expected = Lambda([db], make_queryable_call("where", animals_of(db), predicate))
        self.assertTrue(are_trees_equivalent(expected, info.base_query))
        self.assertEqual(query.parameters, info.base_query.parameters)

    def test_first_without_predicate_keeps_its_source(self) -> None:
        query = trace_query(
            lambda db: db.animals.order_by(lambda animal: animal.net_worth).first(), [ZooContext]
        )

        info = get_query_info(query)

        self.assertEqual(ResolutionKind.FIRST, info.resolution_kind)
        self.assertIs(query.body.arguments[0], info.base_query.body)

    def test_first_or_default(self) -> None:
        query = trace_query(
            lambda db: db.animals.first_or_default(lambda animal: animal.id == 42), [ZooContext]
        )

        info = get_query_info(query)

        self.assertEqual(ResolutionKind.FIRST_OR_DEFAULT, info.resolution_kind)
        self.assertEqual("where", info.base_query.body.method.name)

    def test_other_queries_are_unmodified(self) -> None:
        queries = [
            trace_query(lambda db: db.animals.count(), [ZooContext]),
            trace_query(lambda db: db.animals, [ZooContext]),
            trace_query(lambda db: db.animals.where(lambda a: a.id > 1), [ZooContext]),
            trace_query(lambda db: db.animals.first().name, [ZooContext]),
            trace_query(lambda db: 5, [ZooContext]),
        ]

        for query in queries:
            info = get_query_info(query)
            self.assertEqual(ResolutionKind.UNMODIFIED, info.resolution_kind)
            self.assertIs(query, info.original_query)
            self.assertIsNone(info.base_query)

    def test_instance_first_method_is_unmodified(self) -> None:
        db = Parameter("db", ZooContext)
        method = QueryMethod(QUERYABLE_NAMESPACE, "first", is_static=False)
        query = Lambda([db], MethodCall(method, [animals_of(db)], Animal))

        self.assertEqual(ResolutionKind.UNMODIFIED, get_query_info(query).resolution_kind)

    def test_in_memory_first_is_unmodified_and_logged(self) -> None:
        query = trace_query(lambda db: db.animals.as_enumerable().first(), [ZooContext])

        with self.assertLogs("graphql_queryable.resolution", level="WARNING") as logs:
            info = get_query_info(query)

        self.assertEqual(ResolutionKind.UNMODIFIED, info.resolution_kind)
        self.assertIsNone(info.base_query)
        self.assertEqual(1, len(logs.records))
        self.assertIn("first", logs.output[0])

    def test_multiple_parameters_are_rejected(self) -> None:
        query = trace_query(lambda db, args: db.animals.first(), [ZooContext, dict])
        with self.assertRaises(QueryDeclarationError):
            get_query_info(query)
