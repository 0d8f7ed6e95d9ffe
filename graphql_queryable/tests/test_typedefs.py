# Copyright 2021-present Kensho Technologies, LLC.
from typing import Any, Dict, Iterable, List, Optional, Sequence
import unittest

from ..exceptions import QueryDeclarationError
from ..helpers import read_member, validate_field_name
from ..typedefs import (
    Enumerable,
    Queryable,
    get_element_type,
    get_member_type,
    is_assignable,
    is_queryable_type,
    is_sequence_type,
    make_sequence_type,
)
from .test_helpers import Animal, ZooContext


class TypedefsTests(unittest.TestCase):
    def test_element_types(self) -> None:
        self.assertEqual(Animal, get_element_type(Queryable[Animal]))
        self.assertEqual(Animal, get_element_type(Enumerable[Animal]))
        self.assertEqual(int, get_element_type(List[int]))
        self.assertEqual(int, get_element_type(Sequence[int]))
        self.assertEqual(Any, get_element_type(list))
        self.assertIsNone(get_element_type(str))
        self.assertIsNone(get_element_type(Dict[str, int]))
        self.assertIsNone(get_element_type(Animal))

        self.assertTrue(is_sequence_type(Iterable[Animal]))
        self.assertFalse(is_sequence_type(int))
        self.assertTrue(is_queryable_type(Queryable[Animal]))
        self.assertFalse(is_queryable_type(Enumerable[Animal]))
        self.assertEqual(Iterable[Animal], make_sequence_type(Animal))

    def test_assignability(self) -> None:
        self.assertTrue(is_assignable(int, int))
        self.assertTrue(is_assignable(bool, int))
        self.assertTrue(is_assignable(Any, Animal))
        self.assertTrue(is_assignable(Animal, object))
        self.assertTrue(is_assignable(int, Optional[int]))
        self.assertTrue(is_assignable(Queryable[Animal], Iterable[Animal]))
        self.assertTrue(is_assignable(List[bool], List[int]))

        self.assertFalse(is_assignable(str, int))
        self.assertFalse(is_assignable(Queryable[Animal], List[Animal]))
        self.assertFalse(is_assignable(Queryable[Animal], Iterable[str]))
        self.assertFalse(is_assignable(Queryable[Animal], Animal))
        self.assertFalse(is_assignable(Animal, Iterable[Animal]))

    def test_member_types(self) -> None:
        self.assertEqual(Queryable[Animal], get_member_type(ZooContext, "animals"))
        self.assertEqual(Optional[int], get_member_type(Animal, "parent_id"))
        self.assertEqual(Any, get_member_type(dict, "anything"))
        self.assertEqual(Any, get_member_type(Any, "anything"))
        self.assertEqual(Any, get_member_type(object, "anything"))

        with self.assertRaises(QueryDeclarationError):
            get_member_type(Animal, "wings")


class HelpersTests(unittest.TestCase):
    def test_read_member(self) -> None:
        animal = Animal(1, "Alice", "Lion", 10)
        self.assertEqual("Alice", read_member(animal, "name"))
        self.assertEqual(5, read_member({"id": 5}, "id"))
        with self.assertRaises(AttributeError):
            read_member({"id": 5}, "name")
        with self.assertRaises(AttributeError):
            read_member(animal, "wings")

    def test_validate_field_name(self) -> None:
        validate_field_name("animal_count")
        validate_field_name("_private2")
        with self.assertRaises(ValueError):
            validate_field_name("2animals")
        with self.assertRaises(ValueError):
            validate_field_name("__typename")
        with self.assertRaises(TypeError):
            validate_field_name(5)  # type: ignore[arg-type]
