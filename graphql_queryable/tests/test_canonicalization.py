# Copyright 2021-present Kensho Technologies, LLC.
import unittest

from ..canonicalization import (
    canonicalize_sequence_query,
    ensure_sequence_query,
    split_declared_query,
)
from ..declaration import trace_query
from ..exceptions import QueryDeclarationError
from ..query_tree import Lambda, Parameter, are_trees_equivalent, get_free_parameters
from .test_helpers import ZooContext, animals_of, get_lambda_parameters, iter_tree


class CanonicalizationTests(unittest.TestCase):
    def test_split_context_only_query(self) -> None:
        query = trace_query(lambda db: db.animals, [ZooContext])

        context_query, args_parameter = split_declared_query(query)

        self.assertIs(query, context_query)
        self.assertIsNone(args_parameter)

    def test_split_query_with_arguments(self) -> None:
        query = trace_query(
            lambda db, args: db.animals.where(lambda a: a.id == args.id), [ZooContext, dict]
        )
        db, args = query.parameters

        context_query, args_parameter = split_declared_query(query)

        self.assertIs(args, args_parameter)
        self.assertEqual((db,), context_query.parameters)
        self.assertIs(query.body, context_query.body)
        self.assertEqual([args], get_free_parameters(context_query))

    def test_split_rejects_other_arities(self) -> None:
        x = Parameter("x", int)
        y = Parameter("y", int)
        z = Parameter("z", int)
        with self.assertRaises(QueryDeclarationError):
            split_declared_query(Lambda([x, y, z], x))
        with self.assertRaises(QueryDeclarationError):
            split_declared_query(Lambda([], Parameter("w", int)))

    def test_ensure_sequence_query(self) -> None:
        sequence_query = trace_query(lambda db: db.animals, [ZooContext])
        self.assertIs(sequence_query, ensure_sequence_query(sequence_query))

        with self.assertRaises(QueryDeclarationError):
            ensure_sequence_query(trace_query(lambda db: db.animals.count(), [ZooContext]))

    def test_canonicalize_rebinds_context(self) -> None:
        query = trace_query(
            lambda db: db.animals.where(lambda a: a.net_worth > 10), [ZooContext]
        )
        old_context = query.parameters[0]

        canonical = canonicalize_sequence_query(query)
        new_context = canonical.parameters[0]

        self.assertIsNot(old_context, new_context)
        self.assertEqual(old_context.name, new_context.name)
        self.assertEqual(old_context.parameter_type, new_context.parameter_type)
        self.assertTrue(are_trees_equivalent(query, canonical))
        self.assertNotIn(old_context, iter_tree(canonical))
        self.assertEqual([], get_free_parameters(canonical))

        # Nested lambdas keep their own parameters.
        self.assertEqual(
            [
                parameter
                for parameter in get_lambda_parameters(query)
                if parameter is not old_context
            ],
            [
                parameter
                for parameter in get_lambda_parameters(canonical)
                if parameter is not new_context
            ],
        )

    def test_canonicalize_keeps_args_parameter_free(self) -> None:
        query = trace_query(
            lambda db, args: db.animals.where(lambda a: a.id == args.id), [ZooContext, dict]
        )
        context_query, args_parameter = split_declared_query(query)

        canonical = canonicalize_sequence_query(context_query)

        self.assertEqual([args_parameter], get_free_parameters(canonical))

    def test_canonicalize_requires_sequence(self) -> None:
        db = Parameter("db", ZooContext)
        with self.assertRaises(QueryDeclarationError):
            canonicalize_sequence_query(Lambda([db], db))
        with self.assertRaises(QueryDeclarationError):
            canonicalize_sequence_query(Lambda([db, Parameter("args", dict)], animals_of(db)))
